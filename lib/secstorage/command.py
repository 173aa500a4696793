# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

"""
Commands sent by the control plane.

Commands are plain value objects, decoded from the control channel by the
caller. The dispatcher routes a command by its class.
"""


class Command(object):

    _fields = ()

    def __init__(self, **kwargs):
        for name in self._fields:
            setattr(self, name, kwargs.pop(name, None))
        if kwargs:
            raise TypeError("Unexpected arguments for %s: %s" %
                            (self.name, ", ".join(sorted(kwargs))))

    @property
    def name(self):
        return self.__class__.__name__

    def __repr__(self):
        args = ", ".join("%s=%r" % (f, getattr(self, f)) for f in self._fields)
        return "<%s %s>" % (self.name, args)


class CopyCommand(Command):
    _fields = ("src", "dst", "wait")


class DeleteCommand(Command):
    _fields = ("data",)


class DeleteSnapshotsDirCommand(Command):
    _fields = ("store", "directory")


class ListTemplateCommand(Command):
    _fields = ("store",)


class ListVolumeCommand(Command):
    _fields = ("store",)


class ComputeChecksumCommand(Command):
    _fields = ("store", "template_path")


class GetStorageStatsCommand(Command):
    _fields = ("store",)


class CheckHealthCommand(Command):
    pass


class ReadyCommand(Command):
    pass


class SecStorageSetupCommand(Command):
    _fields = ("store", "url")


class DownloadCommand(Command):
    _fields = ("store", "cache_store", "url", "install_path", "name",
               "format", "id", "account_id", "checksum", "timeout")


class DownloadProgressCommand(Command):
    _fields = ("job_id", "request")


class UploadCommand(Command):
    _fields = ("store", "url", "data")


class CreateEntityDownloadURLCommand(Command):
    _fields = ("store", "install_path", "parent_path", "extract_url")


class DeleteEntityDownloadURLCommand(Command):
    _fields = ("store", "path", "extract_url")


# Handled by the download and upload managers.
MANAGER_COMMANDS = (
    DownloadCommand,
    DownloadProgressCommand,
    UploadCommand,
    CreateEntityDownloadURLCommand,
    DeleteEntityDownloadURLCommand,
)
