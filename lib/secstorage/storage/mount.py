# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

"""
Thin layer over the system mount table and the mount/umount tools.

The system mount table is the only source of truth about what is mounted.
"""

import logging
import re

from collections import namedtuple

from secstorage import utils
from secstorage.common import cmdutils
from secstorage.common import commands
from secstorage.storage import fileUtils

MountRecord = namedtuple("MountRecord", "fs_spec fs_file fs_vfstype "
                         "fs_mntops")

_PROC_MOUNTS_PATH = "/proc/mounts"

# The kernel escapes spaces, tabs and newlines as octal sequences, and marks
# mount points removed after mounting with this suffix.
_OCTAL_ESCAPE = re.compile(r"\\([0-7]{3})")
_DELETED_SUFFIX = " (deleted)"

_mount = cmdutils.CommandPath("mount", "/usr/bin/mount", "/bin/mount")
_umount = cmdutils.CommandPath("umount", "/usr/bin/umount", "/bin/umount")


class MountError(cmdutils.Error):
    """
    Raised when "mount" or "umount" command failed.
    """


def parse_record(line):
    """
    Parse one /proc/mounts line into a MountRecord.
    """
    fs_spec, fs_file, fs_vfstype, fs_mntops = line.split()[:4]
    fs_file = _unescape(fs_file)
    if fs_file.endswith(_DELETED_SUFFIX):
        fs_file = fs_file[:-len(_DELETED_SUFFIX)]
    return MountRecord(_unescape(fs_spec), fs_file, fs_vfstype,
                       fs_mntops.split(","))


def _unescape(s):
    return _OCTAL_ESCAPE.sub(lambda m: chr(int(m.group(1), 8)), s)


def records():
    with open(_PROC_MOUNTS_PATH) as f:
        for line in f:
            if line.strip():
                yield parse_record(line)


def isMounted(fs_file):
    """
    Return True if anything is mounted at fs_file.
    """
    fs_file = fileUtils.normpath(fs_file)
    return any(rec.fs_file == fs_file for rec in records())


class Mount(object):

    log = logging.getLogger("storage.Mount")

    def __init__(self, fs_spec, fs_file):
        self.fs_spec = fs_spec
        self.fs_file = fileUtils.normpath(fs_file)

    def mount(self, mntOpts=None, vfstype=None, sudo=False, timeout=None):
        self.log.info("mounting %s at %s", self.fs_spec, self.fs_file)
        with utils.stopwatch("%s mounted" % self.fs_file, log=self.log):
            _runcmd(mount_command(self.fs_spec, self.fs_file, mntOpts=mntOpts,
                                  vfstype=vfstype),
                    sudo=sudo, timeout=timeout)

    def umount(self, sudo=False, timeout=None):
        self.log.info("unmounting %s", self.fs_file)
        with utils.stopwatch("%s unmounted" % self.fs_file, log=self.log):
            _runcmd([_umount.cmd, self.fs_file], sudo=sudo, timeout=timeout)

    def isMounted(self):
        """
        Only the mount point is compared. The kernel may report a different
        fs_spec than the requested one (e.g. a host name resolved to an
        address).
        """
        return isMounted(self.fs_file)

    def __repr__(self):
        return ("<%s fs_spec='%s' fs_file='%s'>" %
                (self.__class__.__name__, self.fs_spec, self.fs_file))


def mount_command(fs_spec, fs_file, mntOpts=None, vfstype=None):
    cmd = [_mount.cmd]
    if vfstype is not None:
        cmd.extend(("-t", vfstype))
    if mntOpts:
        cmd.extend(("-o", mntOpts))
    cmd.extend((fs_spec, fs_file))
    return cmd


def _runcmd(cmd, sudo=False, timeout=None):
    try:
        commands.run(cmd, sudo=sudo, timeout=timeout)
    except cmdutils.Error as e:
        raise MountError(e.cmd, e.rc, e.out, e.err)
    except cmdutils.TimeoutExpired as e:
        raise MountError(cmd, None, b"", str(e).encode("utf-8"))
