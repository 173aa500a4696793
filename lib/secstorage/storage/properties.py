# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

"""
Properties sidecar of stored images.

A sidecar (template.properties or volume.properties) is a text file with one
key=value pair per line, written next to the image once the image is
complete. An image without a readable sidecar is incomplete, and must not be
reported by listings.

Example:

    uniquename=routing-1
    filename=0b7e0c4d-2d5e-4cd5-9a3d-6e1b2b0e0a9f.qcow2
    size=2147483648
    virtualsize=21474836480
    qcow2=true
    qcow2.size=2147483648
    qcow2.virtualsize=21474836480
    qcow2.filename=0b7e0c4d-2d5e-4cd5-9a3d-6e1b2b0e0a9f.qcow2
"""

from collections import namedtuple
import io
import logging
import os

from secstorage.storage import constants as sc
from secstorage.storage import fileUtils

log = logging.getLogger("storage.properties")

Sidecar = namedtuple(
    "Sidecar", "uniquename, filename, size, virtual_size, is_public, extra")


def format(uniquename, filename, size, virtual_size=None, fmt=None,
           is_public=None, extra=None):
    """
    Return sidecar contents as bytes.

    Arguments:
        uniquename (str): unique name of the image
        filename (str): name of the image file, relative to the sidecar
        size (int): size of the image file in bytes
        virtual_size (int): guest visible size, when known
        fmt (ImageFormat): image format, adds the per format keys
        is_public (bool): template visibility
        extra (dict): additional keys
    """
    lines = [
        ("uniquename", uniquename),
        ("filename", filename),
        ("size", size),
    ]
    if virtual_size is not None:
        lines.append(("virtualsize", virtual_size))
    if is_public is not None:
        lines.append(("public", str(bool(is_public)).lower()))
    if fmt is not None:
        ext = fmt.extension
        lines.append((ext, "true"))
        lines.append((ext + ".size", size))
        if virtual_size is not None:
            lines.append((ext + ".virtualsize", virtual_size))
        lines.append((ext + ".filename", filename))
    if extra:
        lines.extend(sorted(extra.items()))

    out = io.StringIO()
    for key, value in lines:
        out.write("%s=%s\n" % (key, value))
    return out.getvalue().encode("utf-8")


def parse(data):
    """
    Parse sidecar contents.

    Blank lines, comments and lines without "=" are ignored. Returns a
    Sidecar, or None if uniquename or filename is missing, or size is
    malformed.
    """
    if isinstance(data, bytes):
        data = data.decode("utf-8", "replace")

    values = {}
    for line in data.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        values[key.strip()] = value.strip()

    uniquename = values.pop("uniquename", None)
    if not uniquename:
        log.debug("Missing uniquename: %r", data)
        return None

    filename = values.pop("filename", None)
    if not filename:
        log.debug("Missing filename: %r", data)
        return None

    try:
        size = int(values.pop("size"))
    except (KeyError, ValueError):
        log.debug("Missing or malformed size: %r", data)
        return None

    try:
        virtual_size = int(values.pop("virtualsize", size))
    except ValueError:
        virtual_size = size

    return Sidecar(
        uniquename=uniquename,
        filename=filename,
        size=size,
        virtual_size=virtual_size,
        is_public=values.pop("public", "false").lower() == "true",
        extra=values)


def write(directory, uniquename, filename, size, name=sc.TEMPLATE_PROPERTIES,
          **kwargs):
    """
    Write a sidecar in directory and return its path.

    See format() for the other arguments.
    """
    path = os.path.join(directory, name)
    data = format(uniquename, filename, size, **kwargs)
    log.info("Writing %s: uniquename=%s filename=%s size=%s",
             path, uniquename, filename, size)
    fileUtils.atomic_write(path, data)
    return path


def read(path):
    """
    Read the sidecar at path. Returns None if the file is missing, cannot be
    read, or is incomplete.
    """
    try:
        with open(path, "rb") as f:
            data = f.read()
    except OSError as e:
        log.debug("Cannot read %s: %s", path, e)
        return None

    sidecar = parse(data)
    if sidecar is None:
        log.warning("Ignoring incomplete properties file %s", path)
    return sidecar
