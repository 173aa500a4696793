# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

import logging

from secstorage import utils
from secstorage.common import cmdutils
from secstorage.storage import exception as se
from secstorage.storage import scripts

_curl = cmdutils.CommandPath("curl", "/usr/bin/curl", "/bin/curl")

CURL_OPTIONS = ["-q", "--silent", "--fail", "--show-error", "--location"]

log = logging.getLogger("storage.curl")


def _headers_to_options(headers):
    options = []
    for k, v in sorted(headers.items()):
        options.extend(("--header", "%s: %s" % (k, v)))
    return options


def download(url, path, headers=None, timeout=None):
    """
    Download url to path.

    Raises:
        se.TransferError if curl is missing or the download failed.
    """
    cmd = [_cmd()] + CURL_OPTIONS + ["--output", path]
    if headers:
        cmd.extend(_headers_to_options(headers))
    cmd.append(url)

    log.info("Downloading %s to %s", url, path)
    with utils.stopwatch("Downloaded %s" % url, level=logging.INFO, log=log):
        scripts.run(cmd, timeout=timeout, markers=(), error=se.TransferError)


def _cmd():
    # Cannot be moved out because _curl.cmd is lazy-evaluated
    try:
        return _curl.cmd
    except OSError as e:
        raise se.TransferError("curl is not available: %s" % e)
