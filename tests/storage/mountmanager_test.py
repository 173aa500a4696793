# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

import os
import socket
import threading
import time

import pytest

from secstorage.common.password import ProtectedPassword
from secstorage.storage import exception as se
from secstorage.storage import mountmanager
from secstorage.storage.mountmanager import MountManager
from secstorage.storage.mountmanager import MountState

import storagefakelib

NFS_URL = "nfs://nfs.example.com/export/secondary"
CIFS_URL = "cifs://smb.example.com/share?user=admin&password=secret"


def test_mount_name_is_stable():
    name = mountmanager.mount_name("192.0.2.1", "/export/secondary")
    assert name == mountmanager.mount_name("192.0.2.1", "/export/secondary")
    assert name != mountmanager.mount_name("192.0.2.2", "/export/secondary")


def test_mount_name_is_uuid3():
    # Same value as java.util.UUID.nameUUIDFromBytes("192.0.2.1:/export").
    name = mountmanager.mount_name("192.0.2.1", "/export")
    assert name[14] == "3"
    assert name[19] in "89ab"


def test_mount_nfs(mounts, mount_table):
    local_path = mounts.mount(NFS_URL)

    assert local_path == os.path.join(
        mounts.root, mountmanager.mount_name("192.0.2.1",
                                             "/export/secondary"))
    assert os.path.isdir(local_path)
    assert mount_table.calls == [
        ("mount", "192.0.2.1:/export/secondary", local_path,
         "soft,timeo=133,retrans=2147483647,tcp,acdirmax=0,acdirmin=0",
         "nfs"),
    ]


def test_mount_creates_layout(mounts):
    local_path = mounts.mount(NFS_URL)
    assert os.path.isdir(os.path.join(local_path, "snapshots"))
    assert os.path.isdir(os.path.join(local_path, "volumes"))


def test_mount_replaces_file_in_place_of_layout_dir(mounts, mount_table):
    local_path = mounts.local_path(NFS_URL)
    os.makedirs(local_path)
    with open(os.path.join(local_path, "volumes"), "w") as f:
        f.write("not a directory")

    mounts.mount(NFS_URL)
    assert os.path.isdir(os.path.join(local_path, "volumes"))


def test_mount_twice_mounts_once(mounts, mount_table):
    first = mounts.mount(NFS_URL)
    second = mounts.mount(NFS_URL)

    assert first == second
    assert len(mount_table.calls) == 1


def test_mount_already_mounted_by_other_process(mounts, mount_table):
    local_path = mounts.local_path(NFS_URL)
    mount_table.mounted[local_path] = "192.0.2.1:/export/secondary"

    assert mounts.mount(NFS_URL) == local_path
    assert mount_table.calls == []


def test_mount_failure_removes_mount_point(mounts, mount_table):
    mount_table.mount_error = storagefakelib.mount_error()

    with pytest.raises(se.MountError):
        mounts.mount(NFS_URL)

    assert not os.path.exists(mounts.local_path(NFS_URL))
    assert mounts.state(NFS_URL) == MountState.UNMOUNTED


def test_mount_cifs(mounts, mount_table):
    local_path = mounts.mount(CIFS_URL)

    op, device, path, options, vfstype = mount_table.calls[0]
    assert device == "//192.0.2.1/share"
    assert path == local_path
    assert vfstype == "cifs"
    assert isinstance(options, ProtectedPassword)
    assert options.value == "user=admin,password=secret,soft,actimeo=0"


@pytest.mark.parametrize("url", [
    "cifs://smb.example.com/share",
    "cifs://smb.example.com/share?user=admin",
    "cifs://smb.example.com/share?password=secret",
])
def test_mount_cifs_missing_credentials(mounts, mount_table, url):
    with pytest.raises(se.ConfigurationError):
        mounts.mount(url)
    assert mount_table.calls == []


def test_mount_unsupported_scheme(mounts, mount_table):
    with pytest.raises(se.ConfigurationError):
        mounts.mount("iscsi://target.example.com/lun1")
    assert mount_table.calls == []


def test_mount_unresolved_host(tmpdir, mount_table):
    def resolve(host):
        raise socket.gaierror(-2, "Name or service not known")

    mounts = MountManager(root=str(tmpdir),
                          in_system_vm=True,
                          mountClass=mount_table.mount_class(),
                          resolve=resolve)

    with pytest.raises(se.MountError):
        mounts.mount(NFS_URL)
    assert mount_table.calls == []


def test_mount_outside_system_vm_uses_default_options(tmpdir, mount_table):
    mounts = MountManager(root=str(tmpdir),
                          in_system_vm=False,
                          mountClass=mount_table.mount_class(),
                          resolve=lambda host: "192.0.2.1")
    mounts.mount(NFS_URL)
    assert mount_table.calls[0][3] is None


def test_root_dir_outside_system_vm(tmpdir, mount_table):
    mounts = MountManager(root=str(tmpdir),
                          in_system_vm=False,
                          mountClass=mount_table.mount_class(),
                          resolve=lambda host: "192.0.2.1")
    assert mounts.root_dir(NFS_URL) == str(tmpdir)
    assert mount_table.calls == []


def test_root_dir_in_system_vm_mounts(mounts, mount_table):
    assert mounts.root_dir(NFS_URL) == mounts.local_path(NFS_URL)
    assert len(mount_table.calls) == 1


def test_unmount(mounts, mount_table):
    local_path = mounts.mount(NFS_URL)
    # A real umount leaves an empty mount point.
    for name in os.listdir(local_path):
        os.rmdir(os.path.join(local_path, name))

    mounts.unmount(NFS_URL)

    assert mount_table.calls[-1] == ("umount", local_path)
    assert local_path not in mount_table.mounted
    assert not os.path.exists(local_path)


def test_unmount_not_mounted(mounts, mount_table):
    mounts.unmount(NFS_URL)
    assert mount_table.calls == []


def test_unmount_failure_removes_mount_point(mounts, mount_table):
    local_path = mounts.mount(NFS_URL)
    for name in os.listdir(local_path):
        os.rmdir(os.path.join(local_path, name))
    mount_table.umount_error = storagefakelib.mount_error(b"target is busy")

    with pytest.raises(se.MountError):
        mounts.unmount(NFS_URL)
    assert not os.path.exists(local_path)


def test_cifs_options_keep_query_order():
    opts = mountmanager.cifs_options("password=p&user=u&domain=d",
                                     "soft,actimeo=0")
    assert opts == "password=p,user=u,domain=d,soft,actimeo=0"


def test_state_mounted(mounts, mount_table):
    assert not mounts.is_mounted(NFS_URL)
    mounts.mount(NFS_URL)
    assert mounts.is_mounted(NFS_URL)
    assert mounts.state(NFS_URL) == MountState.MOUNTED


def test_concurrent_mounts_of_same_share_mount_once(tmpdir, mount_table):
    FakeMount = mount_table.mount_class()

    class SlowMount(FakeMount):

        def mount(self, *args, **kwargs):
            time.sleep(0.1)
            super().mount(*args, **kwargs)

    mounts = MountManager(root=str(tmpdir),
                          in_system_vm=True,
                          mountClass=SlowMount,
                          resolve=lambda host: "192.0.2.1")
    barrier = threading.Barrier(10)
    results = []

    def run():
        barrier.wait()
        results.append(mounts.mount(NFS_URL))

    threads = [threading.Thread(target=run) for i in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == 10
    assert set(results) == {mounts.local_path(NFS_URL)}
    assert len(mount_table.calls) == 1


def test_mount_and_unmount_of_same_share_serialized(tmpdir, mount_table):
    FakeMount = mount_table.mount_class()
    other_url = "nfs://nfs.example.com/export/other"
    entered = threading.Event()
    release = threading.Event()

    local_path = os.path.join(
        str(tmpdir), mountmanager.mount_name("192.0.2.1", "/export/secondary"))
    other_path = os.path.join(
        str(tmpdir), mountmanager.mount_name("192.0.2.1", "/export/other"))

    class BlockingMount(FakeMount):

        def mount(self, *args, **kwargs):
            if self.fs_file == local_path:
                entered.set()
                release.wait(5)
            super().mount(*args, **kwargs)

    mounts = MountManager(root=str(tmpdir),
                          in_system_vm=True,
                          mountClass=BlockingMount,
                          resolve=lambda host: "192.0.2.1")

    mounting = threading.Thread(target=mounts.mount, args=(NFS_URL,))
    unmounting = threading.Thread(target=mounts.unmount, args=(NFS_URL,))
    mounting.start()
    assert entered.wait(5)
    unmounting.start()
    try:
        assert mounts.state(NFS_URL) == MountState.MOUNTING
        unmounting.join(0.2)
        assert unmounting.is_alive()

        # Other shares are not blocked.
        assert mounts.mount(other_url) == other_path
        assert [(c[0], c[2]) for c in mount_table.calls] == [
            ("mount", other_path),
        ]
    finally:
        release.set()
        mounting.join()
        unmounting.join()

    assert [c[0] for c in mount_table.calls] == ["mount", "mount", "umount"]
    assert mount_table.calls[1][2] == local_path
    assert mount_table.calls[2] == ("umount", local_path)
    assert local_path not in mount_table.mounted
    assert other_path in mount_table.mounted
