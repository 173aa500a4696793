# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

import logging

from secstorage import command
from secstorage.common import exception
from secstorage.common import logutils
from secstorage.common import response
from secstorage.storage.types import NfsStore
from secstorage.storage.types import SwiftStore


class Dispatcher(object):
    """
    Route commands to their handlers and return one answer per command.

    dispatch() never raises: failures are returned as error responses.
    """

    log = logging.getLogger("secstorage.dispatcher")

    def __init__(self, transfer, deleter, inventory, mounts, manager=None):
        self._transfer = transfer
        self._deleter = deleter
        self._inventory = inventory
        self._mounts = mounts
        self._manager = manager
        self._handlers = {
            command.CopyCommand: self._copy,
            command.DeleteCommand: self._delete,
            command.DeleteSnapshotsDirCommand: self._delete_snapshots_dir,
            command.ListTemplateCommand: self._list_templates,
            command.ListVolumeCommand: self._list_volumes,
            command.ComputeChecksumCommand: self._compute_checksum,
            command.GetStorageStatsCommand: self._storage_stats,
            command.CheckHealthCommand: self._ready,
            command.ReadyCommand: self._ready,
            command.SecStorageSetupCommand: self._setup,
            command.DownloadCommand: self._download,
        }
        for cls in command.MANAGER_COMMANDS:
            self._handlers.setdefault(cls, self._forward)

    def dispatch(self, cmd):
        try:
            handler = self._handlers.get(type(cmd))
            if handler is None:
                self.log.warning("Unsupported command %r", cmd)
                return response.unsupported(cmd)

            log = logutils.SimpleLogAdapter(self.log, {"cmd": cmd.name})
            log.info("START")
            try:
                res = handler(cmd)
            except exception.SecStorageException as e:
                if e.expected:
                    log.info("FINISH error=%s", e)
                else:
                    log.error("FINISH error=%s", e)
                return response.error(e)
            except Exception as e:
                log.exception("FINISH error=%s", e)
                return response.error(e)

            log.info("FINISH")
            return res
        except Exception:
            # We should never reach this
            self.log.exception("Unhandled exception dispatching %r", cmd)
            return response.error_raw(exception.UnexpectedError.code,
                                      exception.UnexpectedError.message)

    def _copy(self, cmd):
        result = self._transfer.copy(cmd.src, cmd.dst, wait=cmd.wait)
        return response.success(data=result.info())

    def _delete(self, cmd):
        return response.success(self._deleter.delete(cmd.data))

    def _delete_snapshots_dir(self, cmd):
        return response.success(
            self._deleter.delete_snapshots_dir(cmd.store, cmd.directory))

    def _list_templates(self, cmd):
        templates = self._inventory.list_templates(cmd.store)
        return response.success(
            templates={k: v._asdict() for k, v in templates.items()})

    def _list_volumes(self, cmd):
        volumes = self._inventory.list_volumes(cmd.store)
        return response.success(
            volumes={k: v._asdict() for k, v in volumes.items()})

    def _compute_checksum(self, cmd):
        checksum = self._inventory.compute_checksum(cmd.store,
                                                    cmd.template_path)
        return response.success(checksum, checksum=checksum)

    def _storage_stats(self, cmd):
        capacity, used = self._inventory.storage_stats(cmd.store)
        return response.success(capacity=capacity, used=used)

    def _ready(self, cmd):
        return response.success()

    def _setup(self, cmd):
        if not self._mounts.in_system_vm:
            return response.success()
        if isinstance(cmd.store, NfsStore):
            root = self._mounts.mount(cmd.url or cmd.store.url)
            self.log.info("Secondary storage %r mounted at %s",
                          cmd.store, root)
            return response.success(dir=root)
        return response.success()

    def _download(self, cmd):
        if not isinstance(cmd.store, SwiftStore):
            return self._forward(cmd)

        path, size, checksum = self._transfer.register_on_swift(
            cmd.store, cmd.cache_store, cmd.url, cmd.install_path, cmd.name,
            cmd.format, cmd.id, timeout=cmd.timeout)
        return response.success(install_path=path, size=size,
                                physical_size=size, checksum=checksum)

    def _forward(self, cmd):
        if self._manager is None:
            return response.unsupported(cmd)
        return self._manager.handle(cmd)
