# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

from contextlib import contextmanager
import logging
import threading
import time


@contextmanager
def stopwatch(message, level=logging.DEBUG,
              log=logging.getLogger('secstorage.stopwatch')):
    if log.isEnabledFor(level):
        start = time.monotonic()
        yield
        elapsed = time.monotonic() - start
        log.log(level, "%s: %.2f seconds", message, elapsed)
    else:
        yield


class KeyedLock(object):
    """
    Serialize operations on the same key, while allowing operations on
    different keys to run concurrently.

    Locks are created on first use and kept for the lifetime of the process.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._locks = {}

    @contextmanager
    def __call__(self, key):
        with self._lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
        with lock:
            yield
