# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

"""
A "singleton" config object, built from the defaults below and overridden by
/etc/secstorage/secstorage.conf and the drop-in files in
/etc/secstorage/secstorage.conf.d/.
"""

import configparser
import glob
import os

CONF_DIR = "/etc/secstorage"

parameters = [
    # Section: [vars]
    ('vars', [

        ('mount_root', '/mnt/SecStorage',
            'Private root directory under which remote shares are mounted.'),

        ('scripts_dir', '/usr/share/secstorage/scripts/storage/secondary',
            'Directory holding the template creation and conversion '
            'scripts.'),

        ('scripts_timeout', '1440',
            'Default timeout in seconds for external commands that do not '
            'carry their own timeout.'),

        ('in_system_vm', 'true',
            'Act as if running inside the secondary storage system VM. When '
            'false, remote shares are not mounted and mount_root is used as '
            'the root of every filesystem store.'),

    ]),

    # Section: [mount]
    ('mount', [

        ('nfs_options',
            'soft,timeo=133,retrans=2147483647,tcp,acdirmax=0,acdirmin=0',
            'NFS mount options used inside the system VM.'),

        ('cifs_options', 'soft,actimeo=0',
            'CIFS mount options appended after the credentials taken from '
            'the store URI.'),

        ('mount_timeout', '1440',
            'Timeout in seconds for mount and umount.'),

    ]),

    # Section: [s3]
    ('s3', [

        ('connect_timeout', '60',
            'Connection timeout in seconds for S3 requests.'),

        ('read_timeout', '3600',
            'Socket read timeout in seconds for S3 requests.'),

        ('max_retries', '3',
            'Maximum number of retries for failed S3 requests.'),

        ('multipart_chunksize', '67108864',
            'Part size in bytes for multipart uploads.'),

        ('max_concurrency', '4',
            'Number of threads used by a single multipart transfer.'),

    ]),

    # Section: [swift]
    ('swift', [

        ('cli', 'swift',
            'Swift command line client. Looked up in PATH when not an '
            'absolute path.'),

        ('segment_size', str(5 * 1024**3),
            'Objects larger than this are uploaded as segments.'),

        ('timeout', '86400',
            'Timeout in seconds for a single swift client invocation.'),

    ]),

    # Section: [logging]
    ('logging', [

        ('conf_file', os.path.join(CONF_DIR, 'logger.conf'),
            'logging.config.fileConfig file. When missing, basic stderr '
            'logging is used.'),

        ('default_level', 'INFO',
            'Root logger level used when conf_file is missing.'),

    ]),
]


def set_defaults(config):
    for section, keylist in parameters:
        config.add_section(section)
        for key, value, comment in keylist:
            config.set(section, key, value)


def load(name, conf_dir=CONF_DIR):
    config = configparser.ConfigParser()
    set_defaults(config)
    read_configs(config, name, conf_dir)
    return config


def read_configs(config, name, conf_dir=CONF_DIR):
    files = [os.path.join(conf_dir, name + '.conf')]
    files.extend(sorted(
        glob.glob(os.path.join(conf_dir, name + '.conf.d', '*.conf'))))
    config.read(files)


config = load('secstorage')
