# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

import datetime
import functools
import logging
import logging.config
import os

from dateutil import tz

_FORMAT = ("%(asctime)s %(levelname)-5s (%(threadName)s) [%(name)s] "
           "%(message)s (%(module)s:%(lineno)d)")


class SimpleLogAdapter(logging.LoggerAdapter):

    def __init__(self, logger, context):
        """
        Prefix every message with the items of context, for example
        "(cmd='CopyCommand') START".
        """
        super().__init__(logger, context)
        items = ", ".join("%s='%s'" % (k, v) for k, v in context.items())
        self.prefix = "(%s) " % items

    def process(self, msg, kwargs):
        return self.prefix + msg, kwargs


class TimezoneFormatter(logging.Formatter):
    def converter(self, timestamp):
        return datetime.datetime.fromtimestamp(timestamp, tz.tzlocal())

    def formatTime(self, record, datefmt=None):
        ct = self.converter(record.created)
        if datefmt:
            s = ct.strftime(datefmt)
        else:
            s = "%s,%03d%s" % (
                ct.strftime('%Y-%m-%d %H:%M:%S'),
                record.msecs,
                ct.strftime('%z')
            )
        return s


def configure(conf_file, default_level="INFO"):
    """
    Configure logging from a logging.config.fileConfig file. If the file does
    not exist, log to stderr using TimezoneFormatter.
    """
    if os.path.exists(conf_file):
        logging.config.fileConfig(conf_file, disable_existing_loggers=False)
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(TimezoneFormatter(_FORMAT))
        root = logging.getLogger()
        root.addHandler(handler)
        root.setLevel(default_level)

    logging.addLevelName(logging.WARNING, 'WARN')
    logging.addLevelName(logging.CRITICAL, 'CRIT')


def traceback(log=None, msg="Unhandled exception"):
    """
    Log unhandled exceptions raised by the decorated function with msg, and
    re-raise them. The root logger is used if log is None.
    """
    def decorator(f):
        @functools.wraps(f)
        def wrapper(*a, **kw):
            try:
                return f(*a, **kw)
            except Exception:
                logger = log or logging.getLogger()
                logger.exception(msg)
                raise  # Do not swallow
        return wrapper
    return decorator
