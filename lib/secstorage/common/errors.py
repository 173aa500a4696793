# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

"""
errors - secstorage internal errors

This module provide internal errors which are not part of the agent api. For
errors reported back to the control plane see secstorage.common.exception and
secstorage.storage.exception.
"""


class Base(Exception):
    msg = "Base class for secstorage errors"

    def __str__(self):
        return self.msg.format(self=self)
