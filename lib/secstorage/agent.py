# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

"""
Bring up of the secondary storage agent.

The control channel is provided by the caller; the agent wires the storage
components together and hands commands to the dispatcher.
"""

import argparse
import logging
import os
import sys

from secstorage.common import logutils
from secstorage.common.config import config
from secstorage.dispatcher import Dispatcher
from secstorage.storage import exception as se
from secstorage.storage import fileUtils
from secstorage.storage import scripts
from secstorage.storage.backends import Backends
from secstorage.storage.deletion import Deleter
from secstorage.storage.inventory import Inventory
from secstorage.storage.mountmanager import MountManager
from secstorage.storage.transfer import Transfer


class FatalError(Exception):
    """ Raised when the agent fails to start """


class Agent(object):

    log = logging.getLogger("secstorage.agent")

    def __init__(self, mounts=None, backends=None, manager=None):
        if mounts is None:
            mounts = MountManager()
        if backends is None:
            backends = Backends(mounts)
        self.mounts = mounts
        self.backends = backends
        self.deleter = Deleter(backends)
        self.transfer = Transfer(backends, self.deleter)
        self.inventory = Inventory(backends, mounts)
        self.dispatcher = Dispatcher(self.transfer, self.deleter,
                                     self.inventory, mounts, manager=manager)

    def start(self, scripts_dir=None):
        """
        Check the environment needed to handle commands.

        Raises:
            FatalError if required scripts are missing or the mount root
                cannot be created.
        """
        try:
            scripts.locate(scripts_dir)
        except se.ConfigurationError as e:
            raise FatalError(str(e))

        try:
            fileUtils.createdir(self.mounts.root)
        except OSError as e:
            raise FatalError("Cannot create mount root %s: %s" %
                             (self.mounts.root, e))

        self.log.info("Agent ready (pid=%s, in_system_vm=%s, mount_root=%s)",
                      os.getpid(), self.mounts.in_system_vm, self.mounts.root)

    def handle(self, cmd):
        return self.dispatcher.dispatch(cmd)


def parse_args(args=None):
    parser = argparse.ArgumentParser(
        description="Secondary storage agent")
    parser.add_argument(
        "--scripts-dir",
        help="Directory holding the storage scripts (default %s)" %
             config.get("vars", "scripts_dir"))
    parser.add_argument(
        "--log-conf",
        default=config.get("logging", "conf_file"),
        help="Logging configuration file (default %(default)s)")
    return parser.parse_args(args)


@logutils.traceback(msg="Unhandled exception in agent")
def main(args=None):
    args = parse_args(args)
    logutils.configure(args.log_conf,
                       default_level=config.get("logging", "default_level"))
    log = logging.getLogger("secstorage.agent")

    agent = Agent()
    try:
        agent.start(args.scripts_dir)
    except FatalError as e:
        log.error("Cannot start agent: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
