# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

"""
Listing templates and volumes stored in image stores, and store statistics.

Only complete artifacts, having a readable properties sidecar, are reported.
"""

import logging
import os
import shutil
import tempfile

from secstorage.storage import constants as sc
from secstorage.storage import exception as se
from secstorage.storage import fileUtils
from secstorage.storage import properties
from secstorage.storage.backends import s3
from secstorage.storage.types import NfsStore
from secstorage.storage.types import S3Store
from secstorage.storage.types import SwiftStore
from secstorage.storage.types import TemplateProp


class Inventory(object):

    log = logging.getLogger("storage.inventory")

    def __init__(self, backends, mounts):
        self._backends = backends
        self._mounts = mounts

    def list_templates(self, store):
        """
        Return a dict mapping template unique name to TemplateProp.
        """
        if not self._mounts.in_system_vm:
            self.log.debug("Not running in system vm, no templates to list")
            return {}

        if isinstance(store, NfsStore):
            return self._list_fs(store, sc.TEMPLATE_ROOT_DIR,
                                 sc.TEMPLATE_PROPERTIES, key=_uniquename)
        elif isinstance(store, S3Store):
            return self._list_s3(store, sc.TEMPLATE_ROOT_DIR)
        elif isinstance(store, SwiftStore):
            return self._list_swift_templates(store)
        else:
            raise se.ConfigurationError(
                "Unsupported image data store: %r" % (store,))

    def list_volumes(self, store):
        """
        Return a dict mapping volume id to TemplateProp.
        """
        if not self._mounts.in_system_vm:
            self.log.debug("Not running in system vm, no volumes to list")
            return {}

        if isinstance(store, NfsStore):
            return self._list_fs(store, sc.VOLUME_ROOT_DIR,
                                 sc.VOLUME_PROPERTIES, key=_dirname)
        elif isinstance(store, S3Store):
            return self._list_s3(store, sc.VOLUME_ROOT_DIR)
        elif isinstance(store, SwiftStore):
            raise se.Unsupported("Listing volumes is not supported on swift")
        else:
            raise se.ConfigurationError(
                "Unsupported image data store: %r" % (store,))

    def compute_checksum(self, store, path):
        """
        Return the MD5 hex digest of the file at path on a filesystem store.
        """
        if not isinstance(store, NfsStore):
            raise se.Unsupported("Checksum is supported only on nfs stores")

        local_path = self._backends.nfs.local_path(store, path)
        if not os.path.isfile(local_path):
            raise se.NotFound("%s does not exist on %r" % (path, store))
        try:
            return fileUtils.md5sum(local_path)
        except OSError as e:
            raise se.TransferError("Cannot read %s: %s" % (local_path, e))

    def storage_stats(self, store):
        """
        Return (capacity, used) in bytes. Object stores have no fixed
        capacity.
        """
        if isinstance(store, (S3Store, SwiftStore)):
            return sc.INFINITE_CAPACITY, 0

        root = self._backends.nfs.resolve_root(store)
        try:
            return fileUtils.fsstat(root)
        except OSError as e:
            raise se.TransferError("Cannot stat %s: %s" % (root, e))

    def _list_fs(self, store, top, sidecar_name, key):
        nfs = self._backends.nfs
        root = nfs.resolve_root(store)
        result = {}
        for entry in nfs.list(store, top):
            if os.path.basename(entry.key) != sidecar_name:
                continue
            sidecar = properties.read(os.path.join(root, entry.key))
            if sidecar is None:
                continue
            directory = os.path.dirname(entry.key)
            filename = sidecar.filename or ""
            prop = TemplateProp(
                uniquename=sidecar.uniquename,
                install_path=os.path.join(directory, filename),
                size=sidecar.virtual_size,
                physical_size=sidecar.size,
                is_public=sidecar.is_public,
                is_corrupted=False)
            result[key(sidecar, directory)] = prop
        return result

    def _list_s3(self, store, top):
        result = {}
        for entry in self._backends.s3.list(store, top + sc.S3_SEPARATOR):
            name = s3.key_name(entry.key)
            if not name or name in (sc.TEMPLATE_PROPERTIES,
                                    sc.VOLUME_PROPERTIES):
                continue
            parent = s3.parent_name(entry.key)
            if parent is None:
                continue
            result[parent] = TemplateProp(
                uniquename=parent,
                install_path=entry.key,
                size=entry.size,
                physical_size=entry.size,
                is_public=False,
                is_corrupted=False)
        return result

    def _list_swift_templates(self, store):
        swift = self._backends.swift
        result = {}
        tmpdir = tempfile.mkdtemp(prefix="secstorage-")
        try:
            for entry in swift.list(store):
                if not entry.key.startswith(sc.TEMPLATE_CONTAINER_PREFIX):
                    continue
                key = "%s/%s" % (entry.key, sc.TEMPLATE_PROPERTIES)
                try:
                    local = swift.fetch(store, key, tmpdir)
                except se.NotFound:
                    self.log.debug("No %s in container %s",
                                   sc.TEMPLATE_PROPERTIES, entry.key)
                    continue
                sidecar = properties.read(local)
                fileUtils.rmfile(local)
                if sidecar is None:
                    continue
                result[sidecar.uniquename] = TemplateProp(
                    uniquename=sidecar.uniquename,
                    install_path="%s/%s" % (entry.key, sidecar.filename),
                    size=sidecar.virtual_size,
                    physical_size=sidecar.size,
                    is_public=sidecar.is_public,
                    is_corrupted=False)
        finally:
            shutil.rmtree(tmpdir, ignore_errors=True)
        return result


def _uniquename(sidecar, directory):
    return sidecar.uniquename


def _dirname(sidecar, directory):
    return os.path.basename(directory)
