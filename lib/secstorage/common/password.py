# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later


class ProtectedPassword(object):
    """
    Protect a secret (CIFS password, S3 secret key, Swift key) so it will not
    be logged or serialized by mistake.
    """
    def __init__(self, value):
        self.value = value

    def __eq__(self, other):
        return isinstance(other, type(self)) and self.value == other.value

    def __ne__(self, other):
        return not self.__eq__(other)

    def __str__(self):
        return "********"

    def __repr__(self):
        return repr(str(self))

    def __hash__(self):
        return hash((self.__class__, self.value))


def protect(obj):
    """
    Wrap obj with ProtectedPassword unless it is already protected or None.
    """
    if obj is None or isinstance(obj, ProtectedPassword):
        return obj
    return ProtectedPassword(obj)


def unprotect(obj):
    """
    If obj is a protected password, return the protected value. Otherwise
    returns obj.
    """
    if isinstance(obj, ProtectedPassword):
        return obj.value
    return obj
