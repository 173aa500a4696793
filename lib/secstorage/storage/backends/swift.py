# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

"""
Swift object store backend, using the swift command line client.

Keys are "<container>/<object>". A directory is a container.
"""

import logging
import os

from secstorage import utils
from secstorage.common.config import config
from secstorage.storage import constants as sc
from secstorage.storage import exception as se
from secstorage.storage import scripts
from secstorage.storage.types import ObjectEntry

_NOT_FOUND_MARKERS = ("404", "not found", "Not Found")


def split_key(key):
    """
    Split key to (container, object). object is None if key is a container.
    """
    key = key.strip("/")
    if "/" in key:
        container, obj = key.split("/", 1)
        return container, obj
    return key, None


def template_container(template_id):
    return "%s%s" % (sc.TEMPLATE_CONTAINER_PREFIX, template_id)


def volume_container(volume_id):
    return "%s%s" % (sc.VOLUME_CONTAINER_PREFIX, volume_id)


class Backend(object):

    name = "swift"
    log = logging.getLogger("storage.backends.swift")

    def __init__(self, cli=None, segment_size=None, timeout=None):
        if cli is None:
            cli = config.get("swift", "cli")
        if segment_size is None:
            segment_size = config.getint("swift", "segment_size")
        if timeout is None:
            timeout = config.getint("swift", "timeout")
        self._cli = cli
        self._segment_size = segment_size
        self._timeout = timeout

    def resolve_root(self, store):
        return store.url

    def fetch(self, store, key, local_dir):
        container, obj = split_key(key)
        if obj is None:
            raise se.ConfigurationError("Cannot fetch container %s" % key)
        dst = os.path.join(local_dir, os.path.basename(obj))
        with utils.stopwatch("Downloaded %s" % key, level=logging.INFO,
                             log=self.log):
            self._run(store, "download", container, obj, "-o", dst)
        return dst

    def put(self, store, local_file, key):
        """
        Upload local_file to key. If key is a container, the object is named
        after the file. Returns the key of the new object.
        """
        container, obj = split_key(key)
        filename = os.path.basename(local_file)
        if obj is None:
            obj = filename

        args = ["upload"]
        if os.path.getsize(local_file) > self._segment_size:
            args.extend(("-S", str(self._segment_size)))
        args.extend((container, filename))
        if obj != filename:
            args.extend(("--object-name", obj))

        with utils.stopwatch("Uploaded %s" % local_file, level=logging.INFO,
                             log=self.log):
            self._run(store, *args, cwd=os.path.dirname(local_file) or None)
        return "%s/%s" % (container, obj)

    def delete_object(self, store, key):
        container, obj = split_key(key)
        if obj is None:
            raise se.ConfigurationError(
                "Refusing to delete container %s as an object" % key)
        self._run(store, "delete", container, obj)

    def delete_directory(self, store, container):
        """
        Delete a container and all its objects.
        """
        container, _ = split_key(container)
        self._run(store, "delete", container)
        return True

    def list(self, store, prefix=""):
        """
        List containers when prefix is empty, otherwise the objects in the
        container named by the first segment of prefix.
        """
        container, obj_prefix = split_key(prefix)
        if not container:
            out = self._run(store, "list")
            for line in out.splitlines():
                if line.strip():
                    yield ObjectEntry(line.strip(), None)
            return

        args = ["list", container]
        if obj_prefix:
            args.extend(("--prefix", obj_prefix))
        out = self._run(store, *args)
        for line in out.splitlines():
            if line.strip():
                yield ObjectEntry("%s/%s" % (container, line.strip()), None)

    def _run(self, store, *args, **kwargs):
        cmd = [
            self._cli,
            "-A", store.url,
            "-U", "%s:%s" % (store.account, store.username),
            "-K", store.key,
        ]
        cmd.extend(args)
        try:
            return scripts.run(cmd,
                               timeout=self._timeout,
                               error=se.TransferError,
                               cwd=kwargs.get("cwd"))
        except se.TransferError as e:
            if any(m in str(e) for m in _NOT_FOUND_MARKERS):
                raise se.NotFound(
                    "swift %s %s: %s" % (args[0], " ".join(args[1:]), e))
            raise
