# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

"""
Common fixtures that can be used without importing anything.
"""

import os

import pytest

from secstorage.storage import constants as sc
from secstorage.storage import scripts
from secstorage.storage.backends import Backends
from secstorage.storage.deletion import Deleter
from secstorage.storage.mountmanager import MountManager
from secstorage.storage.transfer import Transfer

import storagefakelib


@pytest.fixture
def fake_scripts(monkeypatch, tmpdir):
    """
    Locate fake storage scripts and replace scripts.run() with a recorder.
    """
    scripts_dir = tmpdir.mkdir("scripts")
    for name in scripts.REQUIRED_SCRIPTS:
        scripts_dir.join(name).write("#!/bin/sh\n")
    monkeypatch.setattr(scripts, "_scripts", {})
    scripts.locate(str(scripts_dir))

    fake = storagefakelib.FakeScripts()
    monkeypatch.setattr(scripts, "run", fake.run)
    return fake


@pytest.fixture
def fake_swift(fake_scripts):
    swift = storagefakelib.FakeSwift()
    fake_scripts.register("swift", swift)
    return swift


@pytest.fixture
def mount_table():
    return storagefakelib.MountTable()


@pytest.fixture
def mounts(tmpdir, mount_table):
    """
    MountManager running in the system vm, using a fake mount table and
    resolving every host to 192.0.2.1.
    """
    return MountManager(root=str(tmpdir.mkdir("mnt")),
                        in_system_vm=True,
                        mountClass=mount_table.mount_class(),
                        resolve=lambda host: "192.0.2.1")


@pytest.fixture
def s3_client():
    return storagefakelib.FakeS3Client()


@pytest.fixture
def backends(mounts, s3_client):
    return Backends(mounts, s3_client=lambda store: s3_client,
                    swift_cli="swift")


@pytest.fixture
def deleter(backends):
    return Deleter(backends)


@pytest.fixture
def transfer(backends, deleter):
    return Transfer(backends, deleter)


@pytest.fixture
def nfs_root(mounts, backends):
    """
    Return a function returning the local root of a filesystem store,
    creating the store layout.
    """
    def root(store):
        path = backends.nfs.resolve_root(store)
        for name in (sc.TEMPLATE_ROOT_DIR, sc.VOLUME_ROOT_DIR,
                     sc.SNAPSHOT_ROOT_DIR):
            os.makedirs(os.path.join(path, name), exist_ok=True)
        return path
    return root
