# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

"""
Helpers shared by the external command runners: locating executables,
formatting command lines for the log, and the command failure errors.
"""

import errno
import os
import re
import shutil

from secstorage.common import errors
from secstorage.common.password import ProtectedPassword

SUDO = "sudo"
SUDO_NON_INTERACTIVE = "-n"

# Characters that never need quoting in a shell command line.
_UNSAFE = re.compile(r'[^A-Za-z0-9_%+,\-./:=@]')


class CommandPath(object):
    """
    An executable looked up lazily, first in the given paths, then in PATH.

    The lookup result is cached, so a missing executable is reported when
    first used, not when the module is imported.
    """

    def __init__(self, name, *paths, search_path=True):
        self.name = name
        self.paths = paths
        self._search_path = search_path
        self._cmd = None

    @property
    def cmd(self):
        if self._cmd is None:
            self._cmd = self._lookup()
        return self._cmd

    def _lookup(self):
        for path in self.paths:
            if os.path.exists(path):
                return path
        if self._search_path:
            path = shutil.which(self.name)
            if path is not None:
                return path
        raise OSError(errno.ENOENT,
                      "%s: %s" % (os.strerror(errno.ENOENT), self.name))

    def __str__(self):
        return self.cmd

    __repr__ = __str__


def command_log_line(args, cwd=None):
    return "%s (cwd %s)" % (_list2cmdline(args), cwd)


def retcode_log_line(code, err=None):
    result = "FAILED" if code else "SUCCESS"
    return "%s: <err> = %r; <rc> = %r" % (result, err, code)


def _list2cmdline(args):
    """
    Format args as a shell command line for the log. ProtectedPassword
    arguments are logged as "********".
    """
    return " ".join(_quote(str(arg)) if isinstance(arg, ProtectedPassword)
                    else _quote(arg) for arg in args)


def _quote(arg):
    if arg and not _UNSAFE.search(arg):
        return arg
    return "'" + arg.replace("'", r"'\''") + "'"


class Error(errors.Base):
    msg = ("Command {self.cmd} failed with rc={self.rc} out={self.out!r} "
           "err={self.err!r}")

    def __init__(self, cmd, rc, out, err):
        self.cmd = cmd
        self.rc = rc
        self.out = out
        self.err = err


class TimeoutExpired(errors.Base):
    msg = "Timeout waiting for process pid={self.pid} after {self.timeout}s"

    def __init__(self, pid, timeout=None):
        self.pid = pid
        self.timeout = timeout


def sudo(cmd):
    """
    Prefix cmd with non interactive sudo unless running as root.
    """
    if os.geteuid() == 0:
        return cmd
    return [SUDO, SUDO_NON_INTERACTIVE] + list(cmd)
