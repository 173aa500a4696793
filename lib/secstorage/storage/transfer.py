# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

"""
Copying templates, volumes and snapshots between image stores.

Strategies, in order of precedence:

1. Snapshot to template: convert a snapshot on a filesystem store to a
   template. For object store destinations, the template is created on the
   snapshot store, pushed, and removed from the snapshot store.
2. Pull to cache: download from S3 or Swift to a filesystem image cache and
   install the downloaded image using the post processing scripts.
3. Push from cache: upload from a filesystem image cache to an S3 image store.

Anything else is unsupported.
"""

import functools
import logging
import os
import shutil
import tempfile
import uuid

from secstorage import utils
from secstorage.storage import constants as sc
from secstorage.storage import curl
from secstorage.storage import exception as se
from secstorage.storage import fileUtils
from secstorage.storage import imageformat
from secstorage.storage import properties
from secstorage.storage import scripts
from secstorage.storage.backends import is_filesystem
from secstorage.storage.backends import is_object_store
from secstorage.storage.backends import swift
from secstorage.storage.types import Hypervisor
from secstorage.storage.types import ImageFormat
from secstorage.storage.types import Role
from secstorage.storage.types import S3Store
from secstorage.storage.types import Snapshot
from secstorage.storage.types import SwiftStore
from secstorage.storage.types import Template
from secstorage.storage.types import Volume

# Extensions tried when the source of a push has no extension.
PUSH_SOURCE_EXTENSIONS = (".qcow2", ".vhd", ".ova", ".vmdk")

SNAPSHOT_SOURCE_ROLES = (Role.IMAGE, Role.IMAGE_CACHE, Role.PRIMARY)


def _fs_errors(f):
    """
    Report unexpected filesystem errors as TransferError.
    """
    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except OSError as e:
            raise se.TransferError(str(e))
    return wrapper


def join_path(path, name):
    """
    Join a store relative path and a name using "/".
    """
    if not path:
        return name
    return path.rstrip("/") + "/" + name


class Transfer(object):

    log = logging.getLogger("storage.transfer")

    def __init__(self, backends, deleter):
        self._backends = backends
        self._deleter = deleter
        self._converters = {
            Hypervisor.XENSERVER: self._xen_template_from_snapshot,
            Hypervisor.KVM: self._kvm_template_from_snapshot,
        }

    @_fs_errors
    def copy(self, src, dst, wait=None):
        """
        Copy src to dst and return a new data object describing the copy.

        Arguments:
            src (DataObject): source object and store
            dst (DataObject): destination object and store
            wait (int): timeout in seconds for snapshot conversion, the
                configured default if None or 0

        Raises:
            se.Unsupported if no strategy handles src and dst.
            se.StorageException subclass if the copy failed.
        """
        self.log.info("Copying %r to %r", src, dst)

        if isinstance(src, Snapshot) and isinstance(dst, Template):
            return self._template_from_snapshot(src, dst, wait or None)

        if (is_filesystem(dst.store) and
                dst.store.role == Role.IMAGE_CACHE and
                is_object_store(src.store)):
            return self._pull_to_cache(src, dst)

        if (src.store.role == Role.IMAGE_CACHE and
                dst.store.role == Role.IMAGE):
            return self._push_from_cache(src, dst)

        raise se.Unsupported("Cannot copy %r to %r" % (src, dst))

    @_fs_errors
    def register_on_swift(self, store, cache_store, url, path, name, fmt,
                          template_id, timeout=None):
        """
        Download the template at url to the cache store, upload it with a
        new template.properties to the template container, and remove the
        downloaded file.

        Returns:
            (swift path, size, md5 checksum)
        """
        if cache_store is None or not is_filesystem(cache_store):
            raise se.ConfigurationError("cache store can't be null")

        nfs = self._backends.adapter_for(cache_store)
        directory = nfs.local_path(cache_store, path)
        fileUtils.createdir(directory)

        filename = "%s.%s" % (name, fmt.extension)
        local_file = os.path.join(directory, filename)
        try:
            curl.download(url, local_file, timeout=timeout)
            size = os.path.getsize(local_file)

            container = swift.template_container(template_id)
            backend = self._backends.adapter_for(store)
            swift_path = backend.put(store, local_file, container)

            tmpdir = tempfile.mkdtemp(prefix="secstorage-")
            try:
                sidecar = properties.write(tmpdir, name, filename, size)
                backend.put(store, sidecar, container)
            finally:
                shutil.rmtree(tmpdir, ignore_errors=True)

            try:
                checksum = fileUtils.md5sum(local_file)
            except OSError as e:
                self.log.debug("Failed to get md5sum of %s: %s",
                               local_file, e)
                checksum = None

            return swift_path, size, checksum
        finally:
            fileUtils.rmfile(local_file)

    # Snapshot to template

    def _template_from_snapshot(self, snapshot, template, wait):
        src_store = snapshot.store
        if src_store.role not in SNAPSHOT_SOURCE_ROLES:
            raise se.Unsupported("Cannot create template from snapshot on "
                                 "%s store" % src_store.role.value)
        if not is_filesystem(src_store):
            raise se.Unsupported("only nfs storage is supported as source "
                                 "when creating template from snapshot")

        dst_store = template.store
        if is_filesystem(dst_store):
            return self._convert_snapshot(snapshot, template, dst_store, wait)

        # Create the template on the snapshot store first.
        staged = self._convert_snapshot(snapshot, template, src_store, wait)
        try:
            if isinstance(dst_store, SwiftStore):
                return self._push_template_to_swift(staged, template)
            elif isinstance(dst_store, S3Store):
                return self._push_from_cache(staged, template)
            else:
                raise se.ConfigurationError(
                    "Unsupported image data store: %r" % (dst_store,))
        finally:
            self._cleanup_staging(staged)

    def _convert_snapshot(self, snapshot, template, store, wait):
        try:
            converter = self._converters[snapshot.hypervisor]
        except KeyError:
            raise se.Unsupported(
                "Cannot create template from %s snapshot" %
                (snapshot.hypervisor.value if snapshot.hypervisor else None))

        nfs = self._backends.nfs
        src_root = nfs.resolve_root(snapshot.store)
        dst_root = nfs.resolve_root(store)
        with utils.stopwatch("Created template from snapshot %s" %
                             snapshot.path, level=logging.INFO, log=self.log):
            return converter(src_root, dst_root, snapshot, template, store,
                             wait)

    def _xen_template_from_snapshot(self, src_root, dst_root, snapshot,
                                    template, store, wait):
        snapshot_dir, snapshot_name = os.path.split(snapshot.path)
        if (not snapshot_name.startswith("VHD-") and
                not snapshot_name.endswith(".vhd")):
            snapshot_name += ".vhd"
        snapshot_dir = fileUtils.join_root(src_root, snapshot_dir)

        dest_dir = fileUtils.join_root(dst_root, template.path)
        fileUtils.createdir(dest_dir)

        template_uuid = str(uuid.uuid4())
        template_name = template_uuid + "." + ImageFormat.VHD.extension

        cmd = [
            scripts.path(sc.XEN_TEMPLATE_FROM_SNAPSHOT_SCRIPT),
            "-p", snapshot_dir,
            "-s", snapshot_name,
            "-n", template_name,
            "-t", dest_dir,
        ]
        scripts.run(cmd, timeout=wait)

        info = imageformat.process(dest_dir, template_uuid, ImageFormat.VHD)
        if info is None:
            raise se.ProcessingError("Template %s was not created in %s" %
                                     (template_name, dest_dir))
        properties.write(dest_dir, template_uuid, info.filename, info.size,
                         virtual_size=info.virtual_size,
                         fmt=ImageFormat.VHD, is_public=True)

        return Template(path=join_path(template.path, template_name),
                        store=store,
                        format=ImageFormat.VHD,
                        size=info.virtual_size,
                        physical_size=info.size,
                        id=template.id,
                        name=template_uuid,
                        account_id=template.account_id)

    def _kvm_template_from_snapshot(self, src_root, dst_root, snapshot,
                                    template, store, wait):
        fmt = snapshot.image_format
        if fmt not in (ImageFormat.QCOW2, ImageFormat.RAW):
            raise se.ProcessingError("Unknown image format %s" % fmt.value)

        src_file = fileUtils.join_root(src_root, snapshot.path)
        if not os.path.isfile(src_file):
            raise se.NotFound("Snapshot %s does not exist" % snapshot.path)

        dest_dir = fileUtils.join_root(dst_root, template.path)
        fileUtils.createdir(dest_dir)

        snapshot_name = os.path.basename(src_file)
        file_name = "%s.%s" % (snapshot_name, fmt.extension)
        dest_file = os.path.join(dest_dir, file_name)
        self.log.debug("copy snapshot %s to template %s", src_file, dest_file)
        fileUtils.copyfile(src_file, dest_file)

        info = imageformat.process(dest_dir, snapshot_name, fmt)
        properties.write(dest_dir, template.name, file_name, info.size,
                         virtual_size=info.virtual_size, fmt=fmt,
                         is_public=True)

        return Template(path=join_path(template.path, file_name),
                        store=store,
                        format=fmt,
                        size=info.virtual_size,
                        physical_size=info.size,
                        id=template.id,
                        name=template.name,
                        account_id=template.account_id)

    def _push_template_to_swift(self, staged, template):
        nfs = self._backends.nfs
        template_file = nfs.local_path(staged.store, staged.path)
        container = swift.template_container(template.id)

        backend = self._backends.adapter_for(template.store)
        swift_path = backend.put(template.store, template_file, container)

        sidecar = os.path.join(os.path.dirname(template_file),
                               sc.TEMPLATE_PROPERTIES)
        if os.path.exists(sidecar):
            backend.put(template.store, sidecar, container)

        size = os.path.getsize(template_file)
        return Template(path=swift_path,
                        store=template.store,
                        format=staged.format,
                        size=size,
                        physical_size=size,
                        id=template.id,
                        name=staged.name,
                        account_id=template.account_id)

    def _cleanup_staging(self, staged):
        try:
            self._deleter.delete(staged)
        except (se.StorageException, OSError) as e:
            self.log.warning("Failed to clean up staging area %r: %s",
                             staged, e)

    # Pull to cache

    def _pull_to_cache(self, src, dst):
        nfs = self._backends.nfs
        download_dir = nfs.local_path(dst.store, dst.path)

        if os.path.isdir(download_dir):
            self.log.debug("Directory %s already exists", download_dir)
        else:
            try:
                fileUtils.createdir(download_dir)
            except OSError as e:
                raise se.TransferError(
                    "Unable to create directory %s to copy from %s to "
                    "cache: %s" % (download_dir, src.store, e))

        backend = self._backends.adapter_for(src.store)
        local_file = backend.fetch(src.store, src.path, download_dir)
        return self._post_process(local_file, download_dir, src, dst)

    def _post_process(self, local_file, download_dir, src, dst):
        if isinstance(dst, Snapshot):
            return Snapshot(
                path=join_path(dst.path, os.path.basename(local_file)),
                store=dst.store,
                id=dst.id,
                account_id=dst.account_id)

        if isinstance(src, Template):
            script = scripts.path(sc.CREATE_TEMPLATE_SCRIPT)
        else:
            script = scripts.path(sc.CREATE_VOLUME_SCRIPT)

        fmt = src.format or imageformat.get_format(local_file)
        if fmt is None:
            raise se.ProcessingError("Unknown format of %s" % local_file)

        size = os.path.getsize(local_file)
        filename = "%s.%s" % (uuid.uuid4(), fmt.extension)
        cmd = [
            script,
            "-s", str(scripts.image_size_gigs(size)),
            "-n", filename,
            "-t", download_dir,
            "-f", local_file,
        ]
        with utils.stopwatch("Installed %s" % local_file, level=logging.INFO,
                             log=self.log):
            scripts.run(cmd, timeout=scripts.install_timeout(size))

        final_path = join_path(dst.path, filename)
        final_size = os.path.getsize(os.path.join(download_dir, filename))

        if isinstance(dst, Template):
            return Template(path=final_path,
                            store=dst.store,
                            format=fmt,
                            size=final_size,
                            physical_size=final_size,
                            id=dst.id,
                            name=filename,
                            account_id=dst.account_id)
        return Volume(path=final_path,
                      store=dst.store,
                      format=fmt,
                      size=final_size,
                      id=dst.id,
                      name=filename,
                      account_id=dst.account_id)

    # Push from cache

    def _push_from_cache(self, src, dst):
        if not isinstance(dst.store, S3Store):
            raise se.Unsupported("Cannot push %r from cache to %r" %
                                 (src, dst.store))
        if not is_filesystem(src.store):
            raise se.Unsupported("Cannot push from %r" % (src.store,))

        nfs = self._backends.nfs
        src_file = self._find_source(nfs.local_path(src.store, src.path))
        size = os.path.getsize(src_file)
        fmt = imageformat.get_format(src_file)
        key = join_path(dst.path, os.path.basename(src_file))

        self._backends.s3.put(dst.store, src_file, key)

        if isinstance(dst, Template):
            return Template(path=key,
                            store=dst.store,
                            format=fmt,
                            size=imageformat.virtual_size(src_file, fmt),
                            physical_size=size,
                            id=dst.id,
                            name=dst.name,
                            account_id=dst.account_id)
        elif isinstance(dst, Volume):
            return Volume(path=key,
                          store=dst.store,
                          size=size,
                          id=dst.id,
                          name=dst.name,
                          account_id=dst.account_id)
        return Snapshot(path=key,
                        store=dst.store,
                        id=dst.id,
                        account_id=dst.account_id)

    def _find_source(self, path):
        """
        Return path, or path with one of the known image extensions, if such
        a file exists.
        """
        candidates = [path] + [path + ext for ext in PUSH_SOURCE_EXTENSIONS]
        for candidate in candidates:
            if os.path.isfile(candidate):
                self.log.debug("Found source file %s", candidate)
                return candidate
        raise se.NotFound("Can't find src file: %s" % path)
