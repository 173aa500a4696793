# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

"""
Image format detection and virtual size.

The format of an image is decided by its file extension only. The virtual
size is read from the image headers when we know how to parse them; it is
best effort, any failure falls back to the file length.
"""

from collections import namedtuple
import logging
import os
import re
import struct
import tarfile
import xml.etree.ElementTree as etree

from secstorage.common import errors
from secstorage.storage.types import ImageFormat

log = logging.getLogger("storage.imageformat")

SECTOR_SIZE = 512

_EXTENSIONS = {
    "vhd": ImageFormat.VHD,
    "vhdx": ImageFormat.VHDX,
    "qcow2": ImageFormat.QCOW2,
    "ova": ImageFormat.OVA,
    "tar": ImageFormat.TAR,
    "img": ImageFormat.RAW,
    "raw": ImageFormat.RAW,
    "vmdk": ImageFormat.VMDK,
    "vdi": ImageFormat.VDI,
}

# QCOW2 header: magic, version, backing file offset, backing file size,
# cluster bits, size.
QCOW2_MAGIC = b"QFI\xfb"
QCOW2_HEADER = struct.Struct(">4s I Q I I Q")

# VHD footer: cookie at 0, current size at 48.
VHD_COOKIE = b"conectix"
VHD_FOOTER_SIZE = 512
VHD_FOOTER = struct.Struct(">8s 40x Q")

# VMDK sparse extent header: magic, version, flags, capacity, grain size,
# descriptor offset, descriptor size. All sizes in sectors.
VMDK_MAGIC = b"KDMV"
VMDK_HEADER = struct.Struct("<4s I I Q Q Q Q")
VMDK_DESCRIPTOR_MAX = 64 * 1024

_VMDK_EXTENT = re.compile(r"^\s*(?:RW|RDONLY|NOACCESS)\s+(\d+)\s+",
                          re.MULTILINE)
_OVF_UNITS = re.compile(r"^\s*byte\s*(?:\*\s*2\s*\^\s*(\d+))?\s*$")

FormatInfo = namedtuple("FormatInfo", "format, filename, size, virtual_size")


class InvalidImage(errors.Base):
    msg = "Invalid {self.format} image {self.path}: {self.reason}"

    def __init__(self, format, path, reason):
        self.format = format
        self.path = path
        self.reason = reason


def get_format(path):
    """
    Return the ImageFormat matching the extension of path, or None if the
    extension is unknown.
    """
    name = os.path.basename(path)
    if "." not in name:
        return None
    ext = name.rsplit(".", 1)[1].lower()
    return _EXTENSIONS.get(ext)


def virtual_size(path, fmt=None):
    """
    Return the guest visible size of the image at path.

    Never fails for a readable file: if the image headers cannot be parsed,
    or the format has no parser, the file length is returned.
    """
    if fmt is None:
        fmt = get_format(path)

    parser = _PARSERS.get(fmt)
    if parser is None:
        return os.path.getsize(path)

    try:
        return parser(path)
    except (InvalidImage, OSError, EOFError, ValueError, struct.error,
            tarfile.TarError, etree.ParseError) as e:
        log.warning("Unable to get virtual size of %s, using file length: "
                    "%s", path, e)
        return os.path.getsize(path)


def process(directory, name, fmt=None):
    """
    Look for <name>.<ext> in directory and return its FormatInfo, or None if
    there is no such file.

    When fmt is None, every known format is tried.
    """
    formats = [fmt] if fmt is not None else list(ImageFormat)
    for f in formats:
        filename = "%s.%s" % (name, f.extension)
        path = os.path.join(directory, filename)
        if os.path.isfile(path):
            info = FormatInfo(format=f,
                              filename=filename,
                              size=os.path.getsize(path),
                              virtual_size=virtual_size(path, f))
            log.debug("Found image %s", info)
            return info

    log.debug("No image %s found in %s", name, directory)
    return None


def _read_at(f, offset, size):
    f.seek(offset)
    data = f.read(size)
    if len(data) < size:
        raise ValueError("Short read at offset %d: expected %d bytes, got %d"
                         % (offset, size, len(data)))
    return data


def _qcow2_size(path):
    with open(path, "rb") as f:
        header = _read_at(f, 0, QCOW2_HEADER.size)
    magic, _, _, _, _, size = QCOW2_HEADER.unpack(header)
    if magic != QCOW2_MAGIC:
        raise InvalidImage("qcow2", path, "bad magic %r" % magic)
    return size


def _vhd_size(path):
    with open(path, "rb") as f:
        f.seek(0, os.SEEK_END)
        length = f.tell()
        if length < VHD_FOOTER_SIZE:
            raise InvalidImage("vhd", path, "file too small")
        footer = _read_at(f, length - VHD_FOOTER_SIZE, VHD_FOOTER.size)
        cookie, size = VHD_FOOTER.unpack(footer)
        if cookie != VHD_COOKIE:
            # Dynamic disks keep a copy of the footer at the start.
            footer = _read_at(f, 0, VHD_FOOTER.size)
            cookie, size = VHD_FOOTER.unpack(footer)
    if cookie != VHD_COOKIE:
        raise InvalidImage("vhd", path, "bad cookie %r" % cookie)
    return size


def _vmdk_size(path):
    with open(path, "rb") as f:
        head = f.read(VMDK_HEADER.size)
        if head[:4] == VMDK_MAGIC:
            header = VMDK_HEADER.unpack(_read_at(f, 0, VMDK_HEADER.size))
            _, _, _, capacity, _, desc_offset, desc_size = header
            if desc_offset and desc_size:
                size = min(desc_size * SECTOR_SIZE, VMDK_DESCRIPTOR_MAX)
                descriptor = _read_at(f, desc_offset * SECTOR_SIZE, size)
            else:
                return capacity * SECTOR_SIZE
        else:
            f.seek(0)
            descriptor = f.read(VMDK_DESCRIPTOR_MAX)

    text = descriptor.split(b"\0", 1)[0].decode("utf-8", "replace")
    sectors = [int(s) for s in _VMDK_EXTENT.findall(text)]
    if not sectors:
        raise InvalidImage("vmdk", path, "no extents in descriptor")
    return sum(sectors) * SECTOR_SIZE


def _ova_size(path):
    with tarfile.open(path) as tar:
        for member in tar.getmembers():
            if member.isfile() and member.name.lower().endswith(".ovf"):
                ovf = tar.extractfile(member).read()
                break
        else:
            raise InvalidImage("ova", path, "no ovf descriptor")

    total = 0
    found = False
    for elem in etree.fromstring(ovf).iter():
        if _local_name(elem.tag) != "Disk":
            continue
        attrs = {_local_name(k): v for k, v in elem.attrib.items()}
        if "capacity" not in attrs:
            continue
        total += int(attrs["capacity"]) * _ovf_unit(
            attrs.get("capacityAllocationUnits"))
        found = True

    if not found:
        raise InvalidImage("ova", path, "no disk capacity in ovf")
    return total


def _ovf_unit(units):
    if not units:
        return 1
    match = _OVF_UNITS.match(units)
    if match is None:
        raise ValueError("Unsupported allocation units %r" % units)
    exponent = match.group(1)
    return 2 ** int(exponent) if exponent else 1


def _local_name(tag):
    return tag.rsplit("}", 1)[-1]


_PARSERS = {
    ImageFormat.QCOW2: _qcow2_size,
    ImageFormat.VHD: _vhd_size,
    ImageFormat.VMDK: _vmdk_size,
    ImageFormat.OVA: _ova_size,
    ImageFormat.RAW: os.path.getsize,
}
