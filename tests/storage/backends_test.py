# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

import os

import pytest

from secstorage.storage import exception as se
from secstorage.storage.backends import s3
from secstorage.storage.backends import swift
from secstorage.storage.constants import MiB
from secstorage.storage.types import NfsStore
from secstorage.storage.types import S3Store
from secstorage.storage.types import SwiftStore

from testlib import make_file

NFS = NfsStore("nfs://nfs.example.com/export/secondary")
S3 = S3Store("images", access_key="AKIA", secret_key="secret",
             endpoint="http://s3.example.com:9000", region="us-east-1")
SWIFT = SwiftStore("http://swift.example.com/auth/v1.0", "admin", "ssvm",
                   "swift-key")


class TestAdapterFor:

    def test_known_stores(self, backends):
        assert backends.adapter_for(NFS) is backends.nfs
        assert backends.adapter_for(S3) is backends.s3
        assert backends.adapter_for(SWIFT) is backends.swift

    def test_unknown_store(self, backends):
        with pytest.raises(se.ConfigurationError):
            backends.adapter_for("nfs://nfs.example.com/export")


class TestNfs:

    def test_resolve_root_mounts(self, backends, mount_table):
        root = backends.nfs.resolve_root(NFS)
        assert root in mount_table.mounted

    def test_fetch(self, backends, tmpdir):
        root = backends.nfs.resolve_root(NFS)
        make_file(os.path.join(root, "template/tmpl/1/2/t.qcow2"),
                  data=b"image")
        local_dir = tmpdir.mkdir("local")

        path = backends.nfs.fetch(NFS, "template/tmpl/1/2/t.qcow2",
                                  str(local_dir))

        assert path == str(local_dir.join("t.qcow2"))
        assert local_dir.join("t.qcow2").read_binary() == b"image"

    def test_fetch_missing(self, backends, tmpdir):
        with pytest.raises(se.NotFound):
            backends.nfs.fetch(NFS, "template/tmpl/1/2/t.qcow2", str(tmpdir))

    def test_put(self, backends, tmpdir):
        src = tmpdir.join("t.qcow2")
        src.write(b"image", mode="wb")

        key = backends.nfs.put(NFS, str(src), "volumes/1/2/t.qcow2")

        local = backends.nfs.local_path(NFS, key)
        with open(local, "rb") as f:
            assert f.read() == b"image"

    def test_delete_directory(self, backends):
        root = backends.nfs.resolve_root(NFS)
        make_file(os.path.join(root, "snapshots/2/10/a"))
        make_file(os.path.join(root, "snapshots/2/10/b"))

        assert backends.nfs.delete_directory(NFS, "snapshots/2/10")
        assert not os.path.exists(os.path.join(root, "snapshots/2/10"))

    def test_delete_directory_missing(self, backends):
        assert not backends.nfs.delete_directory(NFS, "snapshots/2/10")

    def test_list(self, backends):
        root = backends.nfs.resolve_root(NFS)
        make_file(os.path.join(root, "volumes/1/a.vhd"), size=10)
        make_file(os.path.join(root, "volumes/2/b.vhd"), size=20)

        entries = list(backends.nfs.list(NFS, "volumes"))
        assert entries == [
            ("volumes/1/a.vhd", 10),
            ("volumes/2/b.vhd", 20),
        ]


class TestS3:

    def test_helpers(self):
        assert s3.key_name("template/tmpl/2/201/routing/t.qcow2") == \
            "t.qcow2"
        assert s3.parent_name("template/tmpl/2/201/routing/t.qcow2") == \
            "routing"
        assert s3.parent_name("t.qcow2") is None

    def test_resolve_root(self, backends):
        assert backends.s3.resolve_root(S3) == "images"

    def test_fetch(self, backends, s3_client, tmpdir):
        s3_client.objects("images")["volumes/2/9/v.qcow2"] = b"data"

        path = backends.s3.fetch(S3, "volumes/2/9/v.qcow2", str(tmpdir))

        assert path == str(tmpdir.join("v.qcow2"))
        assert tmpdir.join("v.qcow2").read_binary() == b"data"

    def test_fetch_missing(self, backends, tmpdir):
        with pytest.raises(se.NotFound):
            backends.s3.fetch(S3, "volumes/2/9/v.qcow2", str(tmpdir))

    def test_put_single(self, backends, s3_client, tmpdir):
        src = tmpdir.join("v.qcow2")
        src.write(b"x" * 100, mode="wb")
        store = S3Store("images", max_single_upload_size=100)

        backends.s3.put(store, str(src), "volumes/2/9/v.qcow2")

        assert [c[0] for c in s3_client.__calls__] == ["put_object"]
        assert s3_client.objects("images")["volumes/2/9/v.qcow2"] == \
            b"x" * 100

    def test_put_unlimited_single(self, backends, s3_client, tmpdir):
        src = tmpdir.join("v.qcow2")
        src.write(b"x" * 100, mode="wb")

        backends.s3.put(S3, str(src), "volumes/2/9/v.qcow2")

        assert [c[0] for c in s3_client.__calls__] == ["put_object"]

    def test_put_multipart(self, backends, s3_client, tmpdir):
        src = tmpdir.join("v.qcow2")
        src.write(b"x" * 101, mode="wb")
        store = S3Store("images", max_single_upload_size=100)

        backends.s3.put(store, str(src), "volumes/2/9/v.qcow2")

        name, args, kwargs = s3_client.__calls__[0]
        assert name == "upload_file"
        assert kwargs["Config"].multipart_threshold == 100
        assert s3_client.objects("images")["volumes/2/9/v.qcow2"] == \
            b"x" * 101

    def test_delete_directory_batches(self, backends, s3_client):
        objects = s3_client.objects("images")
        for i in range(2500):
            objects["snapshots/2/10/s%04d" % i] = b""
        objects["snapshots/2/11/keep"] = b""

        deleted = backends.s3.delete_directory(S3, "snapshots/2/10/")

        assert deleted == 2500
        assert [len(b) for b in s3_client.delete_batches] == [1000, 1000, 500]
        assert list(objects) == ["snapshots/2/11/keep"]

    def test_delete_directory_empty(self, backends, s3_client):
        assert backends.s3.delete_directory(S3, "snapshots/2/10/") == 0
        assert s3_client.delete_batches == []

    def test_delete_objects_errors(self, backends, s3_client):
        s3_client.objects("images")["volumes/2/9/v.qcow2"] = b""

        def delete_objects(Bucket, Delete):
            return {"Errors": [{"Key": "volumes/2/9/v.qcow2",
                                "Code": "AccessDenied"}]}

        s3_client.delete_objects = delete_objects
        with pytest.raises(se.TransferError):
            backends.s3.delete_directory(S3, "volumes/2/9/")

    def test_list(self, backends, s3_client):
        s3_client.page_size = 2
        objects = s3_client.objects("images")
        for name in ("a", "b", "c"):
            objects["volumes/2/9/" + name] = b"xx"

        entries = list(backends.s3.list(S3, "volumes/"))
        assert entries == [
            ("volumes/2/9/a", 2),
            ("volumes/2/9/b", 2),
            ("volumes/2/9/c", 2),
        ]

    def test_client_config(self, monkeypatch):
        created = {}

        def fake_client(service, **kwargs):
            created["service"] = service
            created.update(kwargs)
            return object()

        monkeypatch.setattr(s3.boto3, "client", fake_client)
        s3.client(S3)

        assert created["service"] == "s3"
        assert created["endpoint_url"] == "http://s3.example.com:9000"
        assert created["region_name"] == "us-east-1"
        assert created["aws_access_key_id"] == "AKIA"
        assert created["aws_secret_access_key"] == "secret"
        assert created["config"].retries["mode"] == "standard"


class TestSwift:

    def test_containers(self):
        assert swift.template_container(201) == "T-201"
        assert swift.volume_container(9) == "V-9"
        assert swift.split_key("T-201/t.qcow2") == ("T-201", "t.qcow2")
        assert swift.split_key("T-201") == ("T-201", None)

    def test_put_container(self, backends, fake_scripts, fake_swift, tmpdir):
        src = tmpdir.join("t.qcow2")
        src.write(b"image", mode="wb")

        key = backends.swift.put(SWIFT, str(src), "T-201")

        assert key == "T-201/t.qcow2"
        assert fake_swift.containers == {"T-201": {"t.qcow2": b"image"}}
        cmd, _, cwd = fake_scripts.commands[0]
        assert cmd == [
            "swift",
            "-A", "http://swift.example.com/auth/v1.0",
            "-U", "admin:ssvm",
            "-K", "********",
            "upload", "T-201", "t.qcow2",
        ]
        assert cwd == str(tmpdir)

    def test_put_object_name(self, backends, fake_scripts, fake_swift,
                             tmpdir):
        src = tmpdir.join("s.vhd")
        src.write(b"image", mode="wb")

        key = backends.swift.put(SWIFT, str(src), "V-9/snapshot-1")

        assert key == "V-9/snapshot-1"
        assert fake_swift.containers == {"V-9": {"snapshot-1": b"image"}}

    def test_put_segments(self, fake_scripts, fake_swift, tmpdir):
        backend = swift.Backend(cli="swift", segment_size=MiB)
        src = tmpdir.join("t.qcow2")
        src.write(b"x" * (MiB + 1), mode="wb")

        backend.put(SWIFT, str(src), "T-201")

        cmd, _, _ = fake_scripts.commands[0]
        assert cmd[7:] == ["upload", "-S", str(MiB), "T-201", "t.qcow2"]

    def test_fetch(self, backends, fake_swift, tmpdir):
        fake_swift.containers["T-201"] = {"template.properties": b"size=1\n"}

        path = backends.swift.fetch(SWIFT, "T-201/template.properties",
                                    str(tmpdir))

        assert tmpdir.join("template.properties").read() == "size=1\n"
        assert path == str(tmpdir.join("template.properties"))

    def test_fetch_missing(self, backends, fake_swift, tmpdir):
        with pytest.raises(se.NotFound):
            backends.swift.fetch(SWIFT, "T-201/t.qcow2", str(tmpdir))

    def test_delete_object(self, backends, fake_swift):
        fake_swift.containers["V-9"] = {"a": b"", "b": b""}
        backends.swift.delete_object(SWIFT, "V-9/a")
        assert fake_swift.containers == {"V-9": {"b": b""}}

    def test_delete_container_as_object(self, backends, fake_swift):
        with pytest.raises(se.ConfigurationError):
            backends.swift.delete_object(SWIFT, "V-9")

    def test_delete_directory(self, backends, fake_swift):
        fake_swift.containers["T-201"] = {"a": b""}
        backends.swift.delete_directory(SWIFT, "T-201")
        assert fake_swift.containers == {}

    def test_delete_directory_missing(self, backends, fake_swift):
        with pytest.raises(se.NotFound):
            backends.swift.delete_directory(SWIFT, "T-201")

    def test_list(self, backends, fake_swift):
        fake_swift.containers["T-201"] = {"a": b"", "b": b""}
        fake_swift.containers["V-9"] = {}

        assert [e.key for e in backends.swift.list(SWIFT)] == \
            ["T-201", "V-9"]
        assert [e.key for e in backends.swift.list(SWIFT, "T-201")] == \
            ["T-201/a", "T-201/b"]

    def test_error_marker(self, backends, fake_scripts, tmpdir):
        def fail(cmd, cwd):
            raise RuntimeError("Object PUT failed: 503 Service Unavailable")

        fake_scripts.register("swift", fail)
        src = tmpdir.join("t.qcow2")
        src.write(b"image", mode="wb")

        with pytest.raises(se.TransferError):
            backends.swift.put(SWIFT, str(src), "T-201")
