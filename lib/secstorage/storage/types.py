# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

"""
Data objects and store descriptors carried by commands.

Store descriptors are immutable and supplied with every command, the agent
never persists them. Data objects are never modified; operations producing a
new artifact return a new data object.
"""

from collections import namedtuple
from enum import Enum
from urllib.parse import urlsplit

from secstorage.common import password


class ImageFormat(Enum):
    RAW = "raw"
    QCOW2 = "qcow2"
    VHD = "vhd"
    VHDX = "vhdx"
    OVA = "ova"
    TAR = "tar"
    VMDK = "vmdk"
    VDI = "vdi"

    @property
    def extension(self):
        return self.value


class Hypervisor(Enum):
    KVM = "KVM"
    XENSERVER = "XenServer"
    VMWARE = "VMware"
    HYPERV = "Hyperv"
    LXC = "LXC"
    OVM3 = "Ovm3"
    SIMULATOR = "Simulator"


class ObjectType(Enum):
    TEMPLATE = "TEMPLATE"
    VOLUME = "VOLUME"
    SNAPSHOT = "SNAPSHOT"


class Role(Enum):
    IMAGE = "Image"
    IMAGE_CACHE = "ImageCache"
    PRIMARY = "Primary"


# Listing entry. install_path is relative to the store root.
TemplateProp = namedtuple(
    "TemplateProp",
    "uniquename, install_path, size, physical_size, is_public, is_corrupted")


class NfsStore(object):
    """
    A network filesystem store, mounted under the private mount root.

    url is nfs://host/path or cifs://host/share?user=u&password=p.
    """

    def __init__(self, url, role=Role.IMAGE):
        self._url = url
        self._role = role

    @property
    def url(self):
        return self._url

    @property
    def role(self):
        return self._role

    @property
    def scheme(self):
        return urlsplit(self._url).scheme.lower()

    def __eq__(self, other):
        return (self.__class__ == other.__class__ and
                self._url == other._url and
                self._role == other._role)

    def __ne__(self, other):
        return not self == other

    def __hash__(self):
        return hash((self.__class__, self._url, self._role))

    def __repr__(self):
        # Never log cifs credentials from the query string.
        parts = urlsplit(self._url)
        url = parts._replace(query="").geturl()
        return "<%s url=%s role=%s>" % (
            self.__class__.__name__, url, self._role.value)


class S3Store(object):

    def __init__(self, bucket, access_key=None, secret_key=None,
                 endpoint=None, region=None, max_single_upload_size=None,
                 role=Role.IMAGE):
        self._bucket = bucket
        self._access_key = access_key
        self._secret_key = password.protect(secret_key)
        self._endpoint = endpoint
        self._region = region
        self._max_single_upload_size = max_single_upload_size
        self._role = role

    @property
    def bucket(self):
        return self._bucket

    @property
    def access_key(self):
        return self._access_key

    @property
    def secret_key(self):
        return self._secret_key

    @property
    def endpoint(self):
        return self._endpoint

    @property
    def region(self):
        return self._region

    @property
    def max_single_upload_size(self):
        return self._max_single_upload_size

    @property
    def role(self):
        return self._role

    def single_upload(self, size):
        """
        Return True if an object of size bytes should be uploaded with a
        single request.
        """
        threshold = self._max_single_upload_size
        return not threshold or size <= threshold

    def __repr__(self):
        return "<%s bucket=%s endpoint=%s role=%s>" % (
            self.__class__.__name__, self._bucket, self._endpoint,
            self._role.value)


class SwiftStore(object):

    def __init__(self, url, account, username, key, role=Role.IMAGE):
        self._url = url
        self._account = account
        self._username = username
        self._key = password.protect(key)
        self._role = role

    @property
    def url(self):
        return self._url

    @property
    def account(self):
        return self._account

    @property
    def username(self):
        return self._username

    @property
    def key(self):
        return self._key

    @property
    def role(self):
        return self._role

    def __repr__(self):
        return "<%s url=%s account=%s user=%s role=%s>" % (
            self.__class__.__name__, self._url, self._account,
            self._username, self._role.value)


class DataObject(object):

    object_type = None

    def __init__(self, path, store=None, format=None, size=None,
                 physical_size=None, id=None, name=None, account_id=None):
        self.path = path
        self.store = store
        self.format = format
        self.size = size
        self.physical_size = physical_size
        self.id = id
        self.name = name
        self.account_id = account_id

    def info(self):
        """
        Return the object description sent back to the control plane.
        """
        return {
            "type": self.object_type.value,
            "path": self.path,
            "format": self.format.value if self.format else None,
            "size": self.size,
            "physical_size": self.physical_size,
            "id": self.id,
            "name": self.name,
        }

    def __repr__(self):
        return "<%s id=%s path=%s format=%s store=%r>" % (
            self.__class__.__name__, self.id, self.path,
            self.format.value if self.format else None, self.store)


class Template(DataObject):
    object_type = ObjectType.TEMPLATE


class Volume(DataObject):
    object_type = ObjectType.VOLUME


class Snapshot(DataObject):
    object_type = ObjectType.SNAPSHOT

    def __init__(self, path, store=None, hypervisor=None, volume=None,
                 **kwargs):
        super().__init__(path, store=store, **kwargs)
        self.hypervisor = hypervisor
        self.volume = volume

    @property
    def image_format(self):
        """
        Format of the snapshot image. Snapshots do not record their format,
        it is taken from the parent volume, defaulting to QCOW2.
        """
        if self.volume is not None and self.volume.format is not None:
            return self.volume.format
        return ImageFormat.QCOW2


# Backend listing entry. key is relative to the store root.
ObjectEntry = namedtuple("ObjectEntry", "key, size")
