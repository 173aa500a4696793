# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

KiB = 1024
MiB = 1024**2
GiB = 1024**3

# Layout of a secondary storage share and of S3 buckets.
TEMPLATE_ROOT_DIR = "template/tmpl"
VOLUME_ROOT_DIR = "volumes"
SNAPSHOT_ROOT_DIR = "snapshots"

TEMPLATE_PROPERTIES = "template.properties"
VOLUME_PROPERTIES = "volume.properties"

# Directory left in template and volume folders by the KVM HA heartbeat.
KVMHA_DIR = "KVMHA"

# Swift containers.
TEMPLATE_CONTAINER_PREFIX = "T-"
VOLUME_CONTAINER_PREFIX = "V-"

S3_SEPARATOR = "/"

# Capacity reported for object stores.
INFINITE_CAPACITY = 2**31 - 1

# Post processing scripts get 180 minutes per started GiB, plus one GiB.
INSTALL_TIMEOUT_PER_GIB = 180 * 60

CREATE_TEMPLATE_SCRIPT = "createtmplt.sh"
CREATE_VOLUME_SCRIPT = "createvolume.sh"
XEN_TEMPLATE_FROM_SNAPSHOT_SCRIPT = \
    "create_privatetemplate_from_snapshot_xen.sh"
