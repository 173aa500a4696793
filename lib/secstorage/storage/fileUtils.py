# SPDX-FileCopyrightText: Red Hat, Inc.
# SPDX-License-Identifier: GPL-2.0-or-later

"""
Local and mounted filesystem helpers
"""

import errno
import fnmatch
import hashlib
import logging
import os
import shutil
import stat
import tempfile

log = logging.getLogger('storage.fileUtils')

_CHECKSUM_BUFSIZE = 8 * 1024


def normpath(path):
    """
    Normalize file system path.

    POSIX allows both /path and //path. The second slash may be interpreted in
    an implementation-defined manner. The Linux interpretation seems to be to
    ignore the double slash, so it seems to be safe to remove it.

    See https://bugs.python.org/issue26329 for more info.
    """
    path = os.path.normpath(path)
    if path.startswith('//'):
        path = path[1:]
    return path


def join_root(root, relpath):
    """
    Join a store relative path to a store root, ignoring leading separators
    in relpath. The result is not normalized, so ".." segments in relpath
    are kept as is.
    """
    return os.path.join(root, relpath.lstrip(os.sep))


def createdir(dirPath, mode=None):
    """
    Recursively create directory if doesn't exist

    If already exists check that it is a directory.
    """
    if mode is not None:
        mode = stat.S_IMODE(mode)
        params = (dirPath, mode)
    else:
        params = (dirPath,)

    log.info("Creating directory: %s mode: %s", dirPath,
             mode if mode is None else oct(mode))
    try:
        os.makedirs(*params)
    except OSError as e:
        if e.errno != errno.EEXIST:
            raise
        statinfo = os.stat(dirPath)
        if not stat.S_ISDIR(statinfo.st_mode):
            raise OSError(errno.ENOTDIR, "Not a directory %s" % dirPath)
        log.debug("Using existing directory: %s", dirPath)


def rmfile(path):
    """
    Remove a file, ignoring missing files.
    """
    try:
        os.unlink(path)
    except OSError as e:
        if e.errno != errno.ENOENT:
            raise
        log.debug("File %r does not exist", path)


def rmdir_contents(dirPath):
    """
    Remove all files directly under dirPath, keeping dirPath itself.
    Directories are left in place, like "rm -f dir/*".
    """
    for name in os.listdir(dirPath):
        path = os.path.join(dirPath, name)
        if os.path.isdir(path) and not os.path.islink(path):
            continue
        rmfile(path)


def remove_matching(dirPath, pattern):
    """
    Remove every file in dirPath whose name matches the shell pattern.
    Returns the list of removed paths.
    """
    removed = []
    for name in fnmatch.filter(os.listdir(dirPath), pattern):
        path = os.path.join(dirPath, name)
        if os.path.isdir(path) and not os.path.islink(path):
            continue
        log.info("Removing file: %s", path)
        rmfile(path)
        removed.append(path)
    return removed


def copyfile(src, dst):
    log.debug("Copying %r to %r", src, dst)
    shutil.copyfile(src, dst)


def atomic_write(filename, data, mode=0o644):
    """
    Write data to filename atomically using a temporary file.

    Arguments:
        filename (str): Path to file.
        data (bytes): Data to write to filename.
        mode (int): Set mode bits on filename.
    """
    with tempfile.NamedTemporaryFile(
            mode="wb",
            dir=os.path.dirname(filename),
            prefix=os.path.basename(filename) + ".tmp",
            delete=False) as tmp:
        try:
            tmp.write(data)
            tmp.flush()
            os.chmod(tmp.name, mode)
            os.rename(tmp.name, filename)
        except Exception:
            os.unlink(tmp.name)
            raise


def md5sum(path):
    """
    Return the MD5 hex digest of the file at path.
    """
    digest = hashlib.md5()
    with open(path, "rb") as f:
        while True:
            chunk = f.read(_CHECKSUM_BUFSIZE)
            if not chunk:
                break
            digest.update(chunk)
    return digest.hexdigest()


def fsstat(path):
    """
    Return (total, used) bytes of the filesystem holding path.
    """
    st = os.statvfs(path)
    total = st.f_blocks * st.f_frsize
    used = (st.f_blocks - st.f_bfree) * st.f_frsize
    return total, used
