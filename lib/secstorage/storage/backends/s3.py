# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

"""
S3 compatible object store backend, using boto3.

Keys are object keys in the store bucket. S3 has no directories, deleting a
directory deletes every key starting with the directory path.
"""

import logging
import os

import boto3
from boto3.s3.transfer import TransferConfig
from botocore.config import Config
from botocore.exceptions import BotoCoreError
from botocore.exceptions import ClientError

from secstorage import utils
from secstorage.common import password
from secstorage.common.config import config
from secstorage.storage import constants as sc
from secstorage.storage import exception as se
from secstorage.storage.types import ObjectEntry

# Maximum number of keys in one DeleteObjects request.
DELETE_BATCH_SIZE = 1000

_NOT_FOUND_CODES = frozenset(["404", "NoSuchKey", "NotFound"])


def client(store):
    """
    Create a boto3 S3 client for store.
    """
    client_config = Config(
        connect_timeout=config.getint("s3", "connect_timeout"),
        read_timeout=config.getint("s3", "read_timeout"),
        retries={
            "max_attempts": config.getint("s3", "max_retries"),
            "mode": "standard",
        })

    kwargs = {"config": client_config}
    if store.endpoint:
        kwargs["endpoint_url"] = store.endpoint
    if store.region:
        kwargs["region_name"] = store.region
    if store.access_key:
        kwargs["aws_access_key_id"] = store.access_key
        kwargs["aws_secret_access_key"] = password.unprotect(store.secret_key)

    return boto3.client("s3", **kwargs)


def key_name(key):
    """
    Return the last segment of key.
    """
    return key.rsplit(sc.S3_SEPARATOR, 1)[-1]


def parent_name(key):
    """
    Return the segment before the last segment of key, or None.

    >>> parent_name("template/tmpl/2/201/routing-201/abc.qcow2")
    'routing-201'
    """
    parts = key.split(sc.S3_SEPARATOR)
    if len(parts) < 2:
        return None
    return parts[-2]


class Backend(object):

    name = "s3"
    log = logging.getLogger("storage.backends.s3")

    def __init__(self, client_factory=client):
        self._client_factory = client_factory

    def resolve_root(self, store):
        return store.bucket

    def fetch(self, store, key, local_dir):
        c = self._client_factory(store)
        dst = os.path.join(local_dir, key_name(key))
        self.log.info("Downloading s3://%s/%s to %s", store.bucket, key, dst)
        try:
            c.head_object(Bucket=store.bucket, Key=key)
            with utils.stopwatch("Downloaded %s" % key, level=logging.INFO,
                                 log=self.log):
                c.download_file(store.bucket, key, dst)
        except ClientError as e:
            if _is_not_found(e):
                raise se.NotFound("Key %s not found in bucket %s" %
                                  (key, store.bucket))
            raise se.TransferError("Cannot download %s from bucket %s: %s" %
                                   (key, store.bucket, e))
        except (BotoCoreError, OSError) as e:
            raise se.TransferError("Cannot download %s from bucket %s: %s" %
                                   (key, store.bucket, e))
        return dst

    def put(self, store, local_file, key):
        c = self._client_factory(store)
        size = os.path.getsize(local_file)
        try:
            with utils.stopwatch("Uploaded %s" % key, level=logging.INFO,
                                 log=self.log):
                if store.single_upload(size):
                    self.log.info("Uploading %s (%d bytes) to s3://%s/%s",
                                  local_file, size, store.bucket, key)
                    with open(local_file, "rb") as f:
                        c.put_object(Bucket=store.bucket, Key=key, Body=f,
                                     ContentLength=size)
                else:
                    self.log.info("Uploading %s (%d bytes) to s3://%s/%s "
                                  "using multipart upload",
                                  local_file, size, store.bucket, key)
                    c.upload_file(local_file, store.bucket, key,
                                  Config=self._transfer_config(store))
        except (ClientError, BotoCoreError, OSError) as e:
            raise se.TransferError("Cannot upload %s to bucket %s: %s" %
                                   (local_file, store.bucket, e))
        return key

    def delete_object(self, store, key):
        c = self._client_factory(store)
        self.log.info("Deleting s3://%s/%s", store.bucket, key)
        try:
            c.delete_object(Bucket=store.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise se.TransferError("Cannot delete %s from bucket %s: %s" %
                                   (key, store.bucket, e))

    def delete_directory(self, store, prefix):
        """
        Delete every key starting with prefix. Returns the number of deleted
        keys.
        """
        c = self._client_factory(store)
        self.log.info("Deleting s3://%s/%s*", store.bucket, prefix)
        deleted = 0
        batch = []
        try:
            for entry in self._list(c, store, prefix):
                batch.append({"Key": entry.key})
                if len(batch) == DELETE_BATCH_SIZE:
                    deleted += self._delete_batch(c, store, batch)
                    batch = []
            if batch:
                deleted += self._delete_batch(c, store, batch)
        except (ClientError, BotoCoreError) as e:
            raise se.TransferError("Cannot delete %s from bucket %s: %s" %
                                   (prefix, store.bucket, e))
        self.log.debug("Deleted %d keys under s3://%s/%s",
                       deleted, store.bucket, prefix)
        return deleted

    def list(self, store, prefix=""):
        c = self._client_factory(store)
        try:
            for entry in self._list(c, store, prefix):
                yield entry
        except (ClientError, BotoCoreError) as e:
            raise se.TransferError("Cannot list %s in bucket %s: %s" %
                                   (prefix, store.bucket, e))

    def _list(self, c, store, prefix):
        paginator = c.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=store.bucket, Prefix=prefix):
            for obj in page.get("Contents", []):
                yield ObjectEntry(obj["Key"], obj["Size"])

    def _delete_batch(self, c, store, batch):
        res = c.delete_objects(Bucket=store.bucket,
                               Delete={"Objects": batch, "Quiet": True})
        errors = res.get("Errors")
        if errors:
            raise se.TransferError(
                "Cannot delete %d keys from bucket %s, first error: %s" %
                (len(errors), store.bucket, errors[0]))
        return len(batch)

    def _transfer_config(self, store):
        # Files larger than the single upload size are always split.
        return TransferConfig(
            multipart_threshold=store.max_single_upload_size,
            multipart_chunksize=config.getint("s3", "multipart_chunksize"),
            max_concurrency=config.getint("s3", "max_concurrency"))


def _is_not_found(e):
    return e.response.get("Error", {}).get("Code") in _NOT_FOUND_CODES
