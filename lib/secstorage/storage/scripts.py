# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

"""
Running external scripts and tools.

Every shell-out site (conversion scripts, the swift client, curl) goes
through run(), so the policy deciding what a failed command is lives here:
a command failed if it could not start, timed out, exited with non-zero
code, or printed one of the error markers.
"""

import logging
import math
import os
import subprocess

from secstorage.common import cmdutils
from secstorage.common import commands
from secstorage.common.config import config
from secstorage.storage import constants as sc
from secstorage.storage import exception as se

ERROR_MARKERS = ("Errno", "failed")

REQUIRED_SCRIPTS = (
    sc.CREATE_TEMPLATE_SCRIPT,
    sc.CREATE_VOLUME_SCRIPT,
    sc.XEN_TEMPLATE_FROM_SNAPSHOT_SCRIPT,
)

log = logging.getLogger("storage.scripts")

_scripts = {}


def install_timeout(size):
    """
    Return the timeout in seconds for post processing an image of size
    bytes: 180 minutes for every started GiB, plus one more GiB.
    """
    return image_size_gigs(size) * sc.INSTALL_TIMEOUT_PER_GIB


def image_size_gigs(size):
    return int(math.ceil(size / sc.GiB)) + 1


def locate(scripts_dir=None, names=REQUIRED_SCRIPTS):
    """
    Locate the required scripts in scripts_dir. Called once on startup.

    Raises:
        se.ConfigurationError if a script is missing.
    """
    if scripts_dir is None:
        scripts_dir = config.get("vars", "scripts_dir")

    found = {}
    for name in names:
        path = os.path.join(scripts_dir, name)
        if not os.path.isfile(path):
            raise se.ConfigurationError("Unable to find %s in %s" %
                                        (name, scripts_dir))
        log.info("%s found in %s", name, path)
        found[name] = path

    _scripts.clear()
    _scripts.update(found)


def path(name):
    try:
        return _scripts[name]
    except KeyError:
        raise se.ConfigurationError("Script %s was not located" % name)


def run(cmd, timeout=None, markers=ERROR_MARKERS, error=se.ProcessingError,
        cwd=None, env=None):
    """
    Run cmd and return its combined output as text.

    Arguments:
        cmd (list): command arguments, secrets wrapped with ProtectedPassword.
        timeout (float): seconds to wait before killing the command. Defaults
            to vars:scripts_timeout if None or 0.
        markers (sequence): substrings of the output meaning failure.
        error (class): exception class raised on failure.

    Raises:
        error if the command failed.
    """
    if not timeout:
        timeout = config.getint("vars", "scripts_timeout")

    try:
        p = commands.start(cmd,
                           stdout=subprocess.PIPE,
                           stderr=subprocess.PIPE,
                           cwd=cwd,
                           env=env)
    except OSError as e:
        raise error("Cannot run %s: %s" % (_name(cmd), e))

    try:
        out, err = commands.communicate(p, timeout=timeout)
    except cmdutils.TimeoutExpired as e:
        raise error("%s timed out: %s" % (_name(cmd), e))

    output = (out + err).decode("utf-8", "replace")

    if p.returncode != 0:
        raise error("%s failed with rc=%s: %s" %
                    (_name(cmd), p.returncode, output.strip()))

    for marker in markers:
        if marker in output:
            raise error("%s reported an error: %s" %
                        (_name(cmd), output.strip()))

    return output


def _name(cmd):
    return os.path.basename(str(cmd[0]))
