# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

import hashlib
import os
import stat

import pytest

from secstorage.storage import fileUtils

from testlib import make_file


@pytest.mark.parametrize("path, normalized", [
    ("//mnt/SecStorage/a/../b", "/mnt/SecStorage/b"),
    ("/mnt/SecStorage/", "/mnt/SecStorage"),
])
def test_normpath(path, normalized):
    assert fileUtils.normpath(path) == normalized


@pytest.mark.parametrize("relpath", ["template/tmpl", "/template/tmpl"])
def test_join_root(relpath):
    assert fileUtils.join_root("/mnt/root", relpath) == \
        "/mnt/root/template/tmpl"


def test_join_root_keeps_parent_segments():
    assert fileUtils.join_root("/mnt/root", "/a/../../etc") == \
        "/mnt/root/a/../../etc"


class TestCreatedir:

    def test_create(self, tmpdir):
        path = str(tmpdir.join("a", "b"))
        fileUtils.createdir(path, mode=0o750)
        assert stat.S_IMODE(os.stat(path).st_mode) & 0o750 == 0o750

    def test_existing(self, tmpdir):
        fileUtils.createdir(str(tmpdir))

    def test_existing_file(self, tmpdir):
        path = make_file(str(tmpdir.join("file")))
        with pytest.raises(OSError):
            fileUtils.createdir(path)


def test_rmfile_missing(tmpdir):
    fileUtils.rmfile(str(tmpdir.join("missing")))


def test_rmdir_contents_keeps_directories(tmpdir):
    make_file(str(tmpdir.join("a")))
    make_file(str(tmpdir.join("sub", "b")))

    fileUtils.rmdir_contents(str(tmpdir))

    assert os.listdir(str(tmpdir)) == ["sub"]
    assert os.listdir(str(tmpdir.join("sub"))) == ["b"]


def test_remove_matching(tmpdir):
    for name in ("snap-1", "snap-1.vhd", "snap-10"):
        make_file(str(tmpdir.join(name)))
    tmpdir.mkdir("snap-1.d")

    removed = fileUtils.remove_matching(str(tmpdir), "snap-1.*")

    assert removed == [str(tmpdir.join("snap-1.vhd"))]
    assert sorted(os.listdir(str(tmpdir))) == \
        ["snap-1", "snap-1.d", "snap-10"]


def test_atomic_write(tmpdir):
    path = str(tmpdir.join("template.properties"))
    fileUtils.atomic_write(path, b"size=1\n", mode=0o600)
    with open(path, "rb") as f:
        assert f.read() == b"size=1\n"
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
    assert os.listdir(str(tmpdir)) == ["template.properties"]


def test_md5sum(tmpdir):
    data = b"x" * (3 * 8192 + 17)
    path = make_file(str(tmpdir.join("image")), data=data)
    assert fileUtils.md5sum(path) == hashlib.md5(data).hexdigest()


def test_fsstat(tmpdir):
    total, used = fileUtils.fsstat(str(tmpdir))
    assert total > 0
    assert 0 <= used <= total
