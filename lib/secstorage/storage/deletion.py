# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

"""
Deleting templates, volumes and snapshots from image stores.

Deleting something that does not exist succeeds. Operations return a
message describing what was done (or None), and raise StorageException
subclasses on failure.
"""

import errno
import glob
import logging
import os

from secstorage.storage import constants as sc
from secstorage.storage import exception as se
from secstorage.storage import fileUtils
from secstorage.storage.backends import swift
from secstorage.storage.types import NfsStore
from secstorage.storage.types import S3Store
from secstorage.storage.types import Snapshot
from secstorage.storage.types import SwiftStore
from secstorage.storage.types import Template
from secstorage.storage.types import Volume

NULL_PATH_MESSAGE = ("Object with null install path does not exist on "
                     "image store, no need to delete")


class Deleter(object):

    log = logging.getLogger("storage.deletion")

    def __init__(self, backends):
        self._backends = backends

    def delete(self, obj):
        """
        Delete obj from its store.

        Returns:
            A message for the control plane, or None.
        """
        if obj.path is None:
            # Placeholder records migrated from filesystem stores.
            self.log.debug("Not deleting %r with null path", obj)
            return NULL_PATH_MESSAGE

        if isinstance(obj, Template):
            return self._delete_image(obj, "template", sc.TEMPLATE_PROPERTIES)
        elif isinstance(obj, Volume):
            return self._delete_image(obj, "volume", sc.VOLUME_PROPERTIES)
        elif isinstance(obj, Snapshot):
            return self._delete_snapshot(obj)
        else:
            raise se.Unsupported("Cannot delete %r" % obj)

    def delete_snapshots_dir(self, store, directory):
        """
        Delete a directory holding all the snapshots of a volume.
        """
        backend = self._backends.adapter_for(store)

        if isinstance(store, NfsStore):
            path = backend.local_path(store, directory)
            if not os.path.isdir(path):
                details = "snapshot directory %s doesn't exist" % (
                    os.path.basename(path))
                self.log.debug(details)
                return details
            backend.delete_directory(store, directory)
            return None

        elif isinstance(store, S3Store):
            backend.delete_directory(store, directory)
            return "Deleted snapshot %s from bucket %s." % (
                directory, store.bucket)

        elif isinstance(store, SwiftStore):
            volume_id = directory.rstrip("/").rsplit("/", 1)[-1]
            container = swift.volume_container(volume_id)
            try:
                backend.delete_directory(store, container)
            except se.NotFound as e:
                self.log.debug("Container %s does not exist: %s",
                               container, e)
            return "Deleted snapshot %s from swift" % directory

        else:
            raise se.ConfigurationError(
                "Unsupported image data store: %r" % (store,))

    def _delete_image(self, obj, kind, sidecar):
        store = obj.store
        backend = self._backends.adapter_for(store)

        if isinstance(store, NfsStore):
            return self._delete_image_dir(backend, obj, kind, sidecar)

        elif isinstance(store, S3Store):
            backend.delete_directory(store, obj.path)
            return "Deleted %s %s from bucket %s." % (
                kind, obj.path, store.bucket)

        elif isinstance(store, SwiftStore):
            if isinstance(obj, Template):
                key = swift.template_container(obj.id)
                delete = backend.delete_directory
            else:
                filename = obj.path.rstrip("/").rsplit("/", 1)[-1]
                key = "%s/%s" % (swift.volume_container(obj.id), filename)
                delete = backend.delete_object
            try:
                delete(store, key)
            except se.NotFound as e:
                self.log.debug("%s does not exist: %s", key, e)
            return "Deleted %s %s from swift" % (kind, obj.path)

        else:
            raise se.ConfigurationError(
                "Unsupported image data store: %r" % (store,))

    def _delete_image_dir(self, backend, obj, kind, sidecar):
        path = backend.local_path(obj.store, obj.path)
        # Some hypervisors keep multi-file images in a directory.
        if os.path.isdir(path):
            directory = path
        else:
            directory = os.path.dirname(path)

        if not os.path.isdir(directory):
            details = "%s parent directory %s doesn't exist" % (
                kind, os.path.basename(directory))
            self.log.debug(details)
            return details

        entries = os.listdir(directory)
        if not entries:
            self.log.debug("No files under %s parent directory %s",
                           kind, os.path.basename(directory))
        elif sidecar not in entries:
            self.log.debug("Can not find %s under %s",
                           sidecar, os.path.basename(directory))

        for name in entries:
            entry = os.path.join(directory, name)
            try:
                if name == sc.KVMHA_DIR and os.path.isdir(entry):
                    # Left by the KVM HA monitor heartbeat.
                    self.log.debug("Deleting %s directory contents from %s "
                                   "location", sc.KVMHA_DIR, kind)
                    fileUtils.rmdir_contents(entry)
                    os.rmdir(entry)
                elif os.path.isdir(entry) and not os.path.islink(entry):
                    os.rmdir(entry)
                else:
                    fileUtils.rmfile(entry)
            except OSError as e:
                raise se.TransferError(
                    "Unable to delete file %s under %s path %s: %s" %
                    (name, kind, obj.path, e))

        try:
            os.rmdir(directory)
        except OSError as e:
            if e.errno != errno.ENOENT:
                raise se.TransferError(
                    "Unable to delete directory %s under %s path %s: %s" %
                    (os.path.basename(directory), kind, obj.path, e))
        return None

    def _delete_snapshot(self, obj):
        store = obj.store
        backend = self._backends.adapter_for(store)

        if isinstance(store, NfsStore):
            path = backend.local_path(store, obj.path)
            if os.path.isdir(path):
                # The path of snapshots in image cache stores is a
                # directory, already removed by the backup.
                self.log.debug("snapshot path %s is a directory, already "
                               "deleted during backup snapshot, so no need "
                               "to delete", obj.path)
                return None

            directory, name = os.path.split(path)
            if not os.path.isdir(directory):
                details = "snapshot directory %s doesn't exist" % (
                    os.path.basename(directory))
                self.log.debug(details)
                return details

            pattern = "*%s*" % glob.escape(name)
            try:
                removed = fileUtils.remove_matching(directory, pattern)
            except OSError as e:
                raise se.TransferError("failed to delete snapshot %s: %s" %
                                       (os.path.join(directory, pattern), e))
            self.log.debug("Removed snapshot files %s", removed)
            return None

        elif isinstance(store, S3Store):
            backend.delete_object(store, obj.path)
            return "Deleted snapshot %s from bucket %s." % (
                obj.path, store.bucket)

        elif isinstance(store, SwiftStore):
            try:
                backend.delete_object(store, obj.path)
            except se.NotFound as e:
                self.log.debug("%s does not exist: %s", obj.path, e)
            return "Deleted snapshot %s from swift" % obj.path

        else:
            raise se.ConfigurationError(
                "Unsupported image data store: %r" % (store,))
