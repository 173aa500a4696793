# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

"""
Running external commands.

Every child process is started with start(), which logs the command line,
and reaped by communicate(), which kills it if anything goes wrong while we
wait for it.
"""

from contextlib import contextmanager
import logging
import subprocess

from secstorage.common import cmdutils
from secstorage.common import password

log = logging.getLogger("common.commands")


def run(args, input=None, cwd=None, env=None, sudo=False, timeout=None):
    """
    Run a command to completion and return its standard output.

    Arguments:
        args (list): command line; secrets must be wrapped with
            ProtectedPassword so they are not logged.
        input (bytes): data written to the command stdin.
        cwd (str): working directory of the command.
        env (dict): environment of the command, inherited if None.
        sudo (bool): run the command via sudo when not running as root.
        timeout (float): seconds to wait before killing the command.

    Returns:
        The command output (bytes).

    Raises:
        OSError if the command could not be started.
        cmdutils.Error if the command exited with non-zero code.
        cmdutils.TimeoutExpired if the command was killed after timeout.
    """
    p = start(args,
              stdin=subprocess.PIPE if input else None,
              stdout=subprocess.PIPE,
              stderr=subprocess.PIPE,
              cwd=cwd,
              env=env,
              sudo=sudo)

    out, err = communicate(p, input, timeout=timeout)

    if p.returncode != 0:
        raise cmdutils.Error(args, p.returncode, out, err)

    return out


def start(args, stdin=None, stdout=None, stderr=None, cwd=None, env=None,
          sudo=False):
    """
    Start a command and return the subprocess.Popen object. The caller must
    reap the process, usually with communicate().
    """
    if sudo:
        args = cmdutils.sudo(args)

    log.debug(cmdutils.command_log_line(args, cwd=cwd))

    return subprocess.Popen(
        [password.unprotect(a) for a in args],
        cwd=cwd,
        stdin=stdin,
        stdout=stdout,
        stderr=stderr,
        env=env)


def communicate(proc, input=None, timeout=None):
    """
    Wait for proc, logging its exit code and error output.

    Returns:
        (out, err) tuple.

    Raises:
        cmdutils.TimeoutExpired if proc did not exit within timeout. The
            process is killed before raising.
    """
    with terminating(proc):
        try:
            out, err = proc.communicate(input, timeout=timeout)
        except subprocess.TimeoutExpired:
            log.warning("Process (pid=%d) did not terminate within %s "
                        "seconds", proc.pid, timeout)
            raise cmdutils.TimeoutExpired(proc.pid, timeout)

    log.debug(cmdutils.retcode_log_line(proc.returncode, err=err))

    return out, err


class TerminatingFailure(Exception):

    def __init__(self, pid, error):
        self.pid = pid
        self.error = error

    def __str__(self):
        return "Failed to terminate process %s: %s" % (self.pid, self.error)


@contextmanager
def terminating(proc):
    """
    Kill proc when leaving the context if it is still running.
    """
    try:
        yield proc
    finally:
        try:
            if proc.poll() is None:
                log.debug("Killing process pid=%d", proc.pid)
                proc.kill()
                proc.wait()
        except Exception as e:
            raise TerminatingFailure(proc.pid, e)
