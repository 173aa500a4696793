# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

"""
Mount lifecycle of filesystem stores.

Every remote share is mounted at <root>/<name>, where name is a name based
UUID of "<host ip>:<remote path>". The same share always maps to the same
directory, so mounting is idempotent across commands and processes.

Whether a share is mounted is always decided by reading the system mount
table. The manager keeps in memory only the locks serializing mount and
umount of the same share, and the transitional state of operations in
progress.
"""

from enum import Enum
import errno
import hashlib
import logging
import os
import socket
import threading
import uuid
from urllib.parse import parse_qsl
from urllib.parse import urlsplit

from secstorage import utils
from secstorage.common.config import config
from secstorage.common.password import ProtectedPassword
from secstorage.storage import constants as sc
from secstorage.storage import exception as se
from secstorage.storage import fileUtils
from secstorage.storage import mount

SUPPORTED_SCHEMES = ("nfs", "cifs")

_CIFS_CREDENTIALS_ERROR = (
    "Missing user and password from URI. Make sure they are in the query "
    "string and separated by '&'.  E.g. "
    "cifs://example.com/some_share?user=foo&password=bar")


class MountState(Enum):
    UNMOUNTED = "unmounted"
    MOUNTING = "mounting"
    MOUNTED = "mounted"
    UNMOUNTING = "unmounting"


def mount_name(host_ip, path):
    """
    Return the local directory name for a remote share. This is the same
    value as a version 3 UUID computed from the MD5 of "<host ip>:<path>",
    without a namespace.
    """
    digest = hashlib.md5(("%s:%s" % (host_ip, path)).encode("utf-8")).digest()
    return str(uuid.UUID(bytes=digest, version=3))


def cifs_options(query, extra_options):
    """
    Build cifs mount options from the share URI query string. The user and
    password parameters are required.
    """
    found_user = found_password = False
    opts = []
    for name, value in parse_qsl(query, keep_blank_values=True):
        if name == "user":
            found_user = True
        elif name == "password":
            found_password = True
        opts.append("%s=%s" % (name, value))

    if not found_user or not found_password:
        raise se.ConfigurationError(_CIFS_CREDENTIALS_ERROR)

    opts.append(extra_options)
    return ",".join(o for o in opts if o)


class MountManager(object):

    log = logging.getLogger("storage.MountManager")

    def __init__(self, root=None, in_system_vm=None, nfs_options=None,
                 cifs_extra_options=None, timeout=None,
                 mountClass=mount.Mount, resolve=socket.gethostbyname):
        if root is None:
            root = config.get("vars", "mount_root")
        if in_system_vm is None:
            in_system_vm = config.getboolean("vars", "in_system_vm")
        if nfs_options is None:
            nfs_options = config.get("mount", "nfs_options")
        if cifs_extra_options is None:
            cifs_extra_options = config.get("mount", "cifs_options")
        if timeout is None:
            timeout = config.getint("mount", "mount_timeout")

        self._root = root
        self._in_system_vm = in_system_vm
        self._nfs_options = nfs_options
        self._cifs_extra_options = cifs_extra_options
        self._timeout = timeout
        self._mountClass = mountClass
        self._resolve = resolve
        self._lock = utils.KeyedLock()
        self._transitions_lock = threading.Lock()
        self._transitions = {}

    @property
    def root(self):
        return self._root

    @property
    def in_system_vm(self):
        return self._in_system_vm

    def root_dir(self, url):
        """
        Return the local root directory of a filesystem store, mounting it
        if needed. Outside of the system VM the store is expected to be
        mounted already at the mount root.
        """
        if not self._in_system_vm:
            return self._root
        return self.mount(url)

    def mount(self, url):
        """
        Mount the share at url if it is not mounted yet, and return the local
        mount point.

        Raises:
            se.ConfigurationError if the url is invalid.
            se.MountError if the share could not be mounted.
        """
        target = self._target(url)
        self.log.debug("mount %s on %s", target, target.local_path)

        with self._lock(target.local_path):
            self._ensure_local_path(target)

            m = self._mountClass(target.device, target.local_path)
            if m.isMounted():
                self.log.debug("Some device already mounted at %s, no need "
                               "to mount %s", target.local_path, target)
                return target.local_path

            with self._transition(target.local_path, MountState.MOUNTING):
                try:
                    m.mount(target.options, target.scheme,
                            sudo=not self._in_system_vm,
                            timeout=self._timeout)
                except mount.MountError as e:
                    msg = "Unable to mount %s at %s due to %s" % (
                        target.device, target.local_path, e)
                    self.log.error(msg)
                    self._remove_local_path(target.local_path)
                    raise se.MountError(msg)

            self.log.debug("Successfully mounted %s at %s",
                           target.device, target.local_path)

            self._ensure_subdir(target.local_path, sc.SNAPSHOT_ROOT_DIR)
            self._ensure_subdir(target.local_path, sc.VOLUME_ROOT_DIR)

        return target.local_path

    def unmount(self, url):
        """
        Unmount the share at url. Do nothing if it is not mounted.

        If umount fails the mount point directory is removed anyway, and
        se.MountError is raised.
        """
        target = self._target(url)

        with self._lock(target.local_path):
            m = self._mountClass(target.device, target.local_path)
            if not m.isMounted():
                self.log.debug("%s is not mounted", target.local_path)
                return

            with self._transition(target.local_path, MountState.UNMOUNTING):
                try:
                    m.umount(sudo=not self._in_system_vm,
                             timeout=self._timeout)
                except mount.MountError as e:
                    msg = "Unable to umount %s due to %s" % (
                        target.local_path, e)
                    self.log.error(msg)
                    self._remove_local_path(target.local_path)
                    raise se.MountError(msg)

            self._remove_local_path(target.local_path)
            self.log.debug("Successfully umounted %s", target.local_path)

    def is_mounted(self, url):
        target = self._target(url)
        return self._mountClass(target.device, target.local_path).isMounted()

    def state(self, url):
        local_path = self.local_path(url)
        with self._transitions_lock:
            state = self._transitions.get(local_path)
        if state is not None:
            return state
        if self.is_mounted(url):
            return MountState.MOUNTED
        return MountState.UNMOUNTED

    def local_path(self, url):
        return self._target(url).local_path

    def _target(self, url):
        parts = urlsplit(url)
        scheme = parts.scheme.lower()
        if scheme not in SUPPORTED_SCHEMES:
            raise se.ConfigurationError(
                "Unsupported storage device scheme %s in uri %s" %
                (scheme, parts._replace(query="").geturl()))
        if not parts.hostname:
            raise se.ConfigurationError("Missing host in uri %s" % url)

        if scheme == "cifs":
            options = ProtectedPassword(
                cifs_options(parts.query, self._cifs_extra_options))
        elif self._in_system_vm:
            options = self._nfs_options
        else:
            options = None

        host_ip = self._host_ip(parts.hostname)
        path = parts.path
        if scheme == "cifs":
            device = "//" + host_ip + path
        else:
            device = host_ip + ":" + path
        local_path = os.path.join(self._root, mount_name(host_ip, path))

        return _Target(scheme, device, local_path, options)

    def _host_ip(self, hostname):
        try:
            host_ip = self._resolve(hostname)
        except (socket.gaierror, socket.herror) as e:
            raise se.MountError("Cannot resolve host %s: %s" % (hostname, e))
        self.log.info("Determined host %s corresponds to IP %s",
                      hostname, host_ip)
        return host_ip

    def _ensure_local_path(self, target):
        self.log.debug("local folder for mount will be %s", target.local_path)
        if not os.path.exists(target.local_path):
            self.log.debug("create mount point: %s", target.local_path)
            try:
                fileUtils.createdir(target.local_path)
            except OSError as e:
                self.log.error("Cannot create %s: %s", target.local_path, e)

            if not os.path.isdir(target.local_path):
                msg = ("Unable to create local folder for: %s in order to "
                       "mount %s" % (target.local_path, target))
                self.log.error(msg)
                raise se.MountError(msg)

    def _remove_local_path(self, local_path):
        try:
            os.rmdir(local_path)
        except OSError as e:
            if e.errno != errno.ENOENT:
                self.log.warning("Error removing mountpoint directory %r: %s",
                                 local_path, e)

    def _ensure_subdir(self, mount_point, name):
        path = os.path.join(mount_point, name)
        try:
            if os.path.exists(path) and not os.path.isdir(path):
                os.unlink(path)
            fileUtils.createdir(path)
        except OSError as e:
            self.log.info("%s directory does not exist on Secondary Storage: "
                          "%s", name, e)
            return False
        self.log.info("%s directory created/exists on Secondary Storage.",
                      name)
        return True

    def _transition(self, local_path, state):
        return _Transition(self, local_path, state)


class _Transition(object):

    def __init__(self, manager, local_path, state):
        self._manager = manager
        self._local_path = local_path
        self._state = state

    def __enter__(self):
        with self._manager._transitions_lock:
            self._manager._transitions[self._local_path] = self._state

    def __exit__(self, t, v, tb):
        with self._manager._transitions_lock:
            self._manager._transitions.pop(self._local_path, None)


class _Target(object):

    def __init__(self, scheme, device, local_path, options):
        self.scheme = scheme
        self.device = device
        self.local_path = local_path
        self.options = options

    def __str__(self):
        return "%s://%s" % (self.scheme, self.device.lstrip("/"))
