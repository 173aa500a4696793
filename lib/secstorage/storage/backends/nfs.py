# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

"""
Network filesystem (NFS, CIFS) backend. Keys are paths relative to the root
of the mounted share.
"""

import errno
import logging
import os

from secstorage import utils
from secstorage.storage import exception as se
from secstorage.storage import fileUtils
from secstorage.storage.types import ObjectEntry


class Backend(object):

    name = "nfs"
    log = logging.getLogger("storage.backends.nfs")

    def __init__(self, mounts):
        self._mounts = mounts

    def resolve_root(self, store):
        return self._mounts.root_dir(store.url)

    def local_path(self, store, key):
        return fileUtils.join_root(self.resolve_root(store), key)

    def fetch(self, store, key, local_dir):
        src = self.local_path(store, key)
        if not os.path.isfile(src):
            raise se.NotFound("%s does not exist on %r" % (key, store))

        dst = os.path.join(local_dir, os.path.basename(key))
        try:
            with utils.stopwatch("Copied %s" % src, level=logging.INFO,
                                 log=self.log):
                fileUtils.copyfile(src, dst)
        except OSError as e:
            raise se.TransferError("Cannot copy %s to %s: %s" % (src, dst, e))
        return dst

    def put(self, store, local_file, key):
        dst = self.local_path(store, key)
        try:
            fileUtils.createdir(os.path.dirname(dst))
            with utils.stopwatch("Copied %s" % local_file, level=logging.INFO,
                                 log=self.log):
                fileUtils.copyfile(local_file, dst)
        except OSError as e:
            raise se.TransferError("Cannot copy %s to %s: %s" %
                                   (local_file, dst, e))
        return key

    def delete_object(self, store, key):
        path = self.local_path(store, key)
        try:
            fileUtils.rmfile(path)
        except OSError as e:
            raise se.TransferError("Cannot delete %s: %s" % (path, e))

    def delete_directory(self, store, key):
        """
        Remove all files directly under key, then the directory itself.

        Returns False if the directory does not exist.
        """
        path = self.local_path(store, key)
        if not os.path.isdir(path):
            self.log.debug("Directory %s does not exist", path)
            return False

        try:
            fileUtils.rmdir_contents(path)
            os.rmdir(path)
        except OSError as e:
            if e.errno == errno.ENOENT:
                return False
            raise se.TransferError("Cannot delete directory %s: %s" %
                                   (path, e))
        return True

    def list(self, store, prefix=""):
        root = self.resolve_root(store)
        top = fileUtils.join_root(root, prefix)
        for dirpath, dirnames, filenames in os.walk(top):
            dirnames.sort()
            for name in sorted(filenames):
                path = os.path.join(dirpath, name)
                try:
                    size = os.path.getsize(path)
                except OSError as e:
                    if e.errno != errno.ENOENT:
                        raise
                    continue
                yield ObjectEntry(os.path.relpath(path, root), size)
