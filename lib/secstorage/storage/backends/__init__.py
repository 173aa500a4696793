# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

"""
Storage backends.

The set of backends is fixed: network filesystem, S3 and Swift. Every
backend provides the same operations:

    resolve_root(store)                 local root, bucket or swift url
    fetch(store, key, local_dir)        download key into local_dir
    put(store, local_file, key)         upload local_file to key
    delete_object(store, key)           delete one file or object
    delete_directory(store, key)        delete a directory, prefix or container
    list(store, prefix)                 iterate over ObjectEntry

Errors are reported with secstorage.storage.exception: NotFound,
TransferError, ConfigurationError and Unsupported.
"""

from secstorage.storage import exception as se
from secstorage.storage.backends import nfs
from secstorage.storage.backends import s3
from secstorage.storage.backends import swift
from secstorage.storage.types import NfsStore
from secstorage.storage.types import S3Store
from secstorage.storage.types import SwiftStore


class Backends(object):

    def __init__(self, mounts, s3_client=s3.client, swift_cli=None):
        self.nfs = nfs.Backend(mounts)
        self.s3 = s3.Backend(client_factory=s3_client)
        self.swift = swift.Backend(cli=swift_cli)

    def adapter_for(self, store):
        """
        Return the backend handling store.

        Raises:
            se.ConfigurationError if store is not a known store descriptor.
        """
        if isinstance(store, NfsStore):
            return self.nfs
        elif isinstance(store, S3Store):
            return self.s3
        elif isinstance(store, SwiftStore):
            return self.swift
        else:
            raise se.ConfigurationError(
                "Unsupported image data store: %r" % (store,))


def is_filesystem(store):
    return isinstance(store, NfsStore)


def is_object_store(store):
    return isinstance(store, (S3Store, SwiftStore))
