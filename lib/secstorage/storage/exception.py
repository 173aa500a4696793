# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

########################################################
#
#  Set of storage exceptions reported to the control plane.
#
########################################################

from secstorage.common.exception import GeneralException


class StorageException(GeneralException):
    code = 200
    message = "General Storage Exception"


class NotFound(StorageException):
    code = 201
    message = "Object not found"
    expected = True


class TransferError(StorageException):
    code = 202
    message = "Transfer failed"


class MountError(StorageException):
    code = 203
    message = "Mount operation failed"


class ProcessingError(StorageException):
    code = 204
    message = "Image processing failed"


class ConfigurationError(StorageException):
    code = 205
    message = "Invalid configuration"


class Unsupported(StorageException):
    code = 206
    message = "Unsupported operation"
    expected = True
