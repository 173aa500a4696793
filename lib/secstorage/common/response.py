# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

from secstorage.common import exception

DONE_CODE = 0
DONE_MESSAGE = "Done"


class MalformedResponse(Exception):

    def __init__(self, response):
        self.response = response

    def __str__(self):
        return "Missing required key in %r" % self.response


def success(message=None, **kwargs):
    kwargs["status"] = {
        "code": DONE_CODE,
        "message": message or DONE_MESSAGE,
    }
    return kwargs


def error_raw(code, message):
    return {
        "status": {
            "code": code,
            "message": message
        }
    }


def error(e):
    """
    Build an error response from a SecStorageException, or from any other
    exception using the unexpected error code.
    """
    if isinstance(e, exception.SecStorageException):
        return e.response()
    return error_raw(exception.UnexpectedError.code, str(e))


def unsupported(command):
    name = getattr(command, "name", None) or type(command).__name__
    return exception.UnsupportedCommand(
        "%s is not supported by this resource" % name).response()


def is_error(res, code=None):
    try:
        res_code = res["status"]["code"]
    except (KeyError, TypeError):
        raise MalformedResponse(res)
    if code is not None:
        return res_code == code
    return res_code != DONE_CODE


def is_valid(res):
    """
    Return True if the argument is a valid response, False otherwise. A valid
    response is produced by success() and error() functions, and looks like:

    response = {
      # ...
      status: {
        code: INTEGER,
        message: STRING,
      }
    }
    """
    if not isinstance(res, dict):
        return False
    try:
        status = res["status"]
    except KeyError:
        return False
    return "message" in status and "code" in status


def message(res):
    return res["status"]["message"]
