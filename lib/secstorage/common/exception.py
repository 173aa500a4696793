# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later


class SecStorageException(Exception):
    code = 0
    message = "Secondary storage exception"

    # Expected errors are logged at info level by the dispatcher. Errors that
    # are always caused by the caller (e.g. unsupported backend pair) should
    # override this to True.
    expected = False

    def __str__(self):
        return self.msg

    @property
    def msg(self):
        return self.message

    def info(self):
        return {'code': self.code, 'message': str(self)}

    def response(self):
        return {'status': self.info()}


class GeneralException(SecStorageException):
    code = 100
    message = "General Exception"

    def __init__(self, *value):
        self.value = value

    def __str__(self):
        if not self.value:
            return self.msg
        if len(self.value) == 1:
            return "%s: %s" % (self.msg, self.value[0])
        return "%s: %s" % (self.msg, repr(self.value))


class UnexpectedError(GeneralException):
    code = 16
    message = "Unexpected exception"


class UnsupportedCommand(GeneralException):
    code = 17
    message = "Unsupported command"
    expected = True
