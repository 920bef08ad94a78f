"""
Module with high-level bindings for FUSE 3.x.

The bindings talk to libfuse3 directly through ctypes instead of depending on one of the
existing Python packages:

* fusepy only supports FUSE 2.x.
* pyfuse3 exposes the low-level inode based API and requires trio, while redisfs maps
paths onto keys and is entirely synchronous.
"""

import ctypes
from dataclasses import dataclass
import errno
import os
import sys
import threading
import traceback
from typing import Callable, Optional, Type

from redisfs.constants import REDISFS_ERROR_CODE
from redisfs.logger import log
from redisfs.store import StoreUnavailableError
from .fuse import (
    FUSE_ARGS_INIT,
    FUSE_CAP_ATOMIC_O_TRUNC,
    fuse_config_p,
    fuse_conn_info_p,
    fuse_file_info_p,
    fuse_fill_dir_t,
    fuse_operations,
    fuse_opt_proc_t,
    load_fuse3,
    stat,
    stat_p,
)

# Sink for directory entries that returns non-zero once the reply buffer is full
DirectoryFiller = Callable[[str], int]


@dataclass
class FuseConfig:
    """
    FUSE options and capabilities to enable.

    See the FUSE documentation about mount options and connection capabilities for more
    information:

    * https://man7.org/linux/man-pages/man8/mount.fuse.8.html
    * https://libfuse.github.io/doxygen/fuse__common_8h.html
    """

    default_permissions: bool = True
    auto_unmount: bool = True

    single_threaded: bool = False

    kernel_cache: bool = False
    atomic_o_trunc: bool = True


class Operations:
    """
    Base class for a FUSE file system.

    File systems should inherit this class and implement all of the file system
    functions they wish to support. Functions that are not overridden raise
    NotImplementedError, which is reported to the kernel as ENOSYS. Operations on
    links, subdirectories, ownership, modes and times are not part of this interface
    at all, so libfuse replies to them with ENOSYS directly.

    The implementation should expect functions to be invoked simultaneously from an
    arbitrary number of threads.

    Functions can return errors by raising the built-in OSError exception with the errno
    set. If exceptions are raised manually then care must be taken to ensure that they
    have the errno set:

        raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT))
    """

    def init(self) -> None:
        """Initialize data after the file system has been mounted."""

    def destroy(self) -> None:
        """Clean up after the file system has been unmounted."""

    def getattr(self, path: str, fh: Optional[int]) -> dict:
        """
        Retrieve the attributes of a file system entry.

        The function should return a dict with st_* keys that correspond to stat data.
        The file handle is set if the attributes of an open file are requested.
        """
        raise NotImplementedError()

    def opendir(self, path: str) -> int:
        """Open a directory and return a handle for it."""
        raise NotImplementedError()

    def readdir(self, path: str, filler: DirectoryFiller, offset: int) -> None:
        """
        List the contents of a directory.

        Every entry is passed to the filler. If the filler returns non-zero then its
        buffer is full and no more entries should be passed.
        """
        raise NotImplementedError()

    def releasedir(self, path: str, fh: int) -> None:
        """Close a directory handle."""

    def fsyncdir(self, path: str, fh: int, datasync: bool) -> None:
        """Synchronize the contents of a directory."""

    def mknod(self, path: str, mode: int, rdev: int) -> None:
        """Create a special or ordinary file."""
        raise NotImplementedError()

    def unlink(self, path: str) -> None:
        """Remove a file system entry."""
        raise NotImplementedError()

    def rename(self, old: str, new: str) -> None:
        """Rename a file system entry."""
        raise NotImplementedError()

    def truncate(self, path: str, fh: Optional[int], size: int) -> None:
        """
        Change the size of a file.

        The file handle is set if the file was truncated through ftruncate().
        """
        raise NotImplementedError()

    def access(self, path: str, mode: int) -> None:
        """Check file access permissions (unless mounted with default_permissions)."""

    def open(self, path: str, flags: int) -> int:
        """Open a file."""
        raise NotImplementedError()

    def create(self, path: str, flags: int, mode: int) -> int:
        """Create a file."""
        raise NotImplementedError()

    def read(self, path: str, fh: int, offset: int, size: int) -> bytes:
        """Read from a file."""
        raise NotImplementedError()

    def write(self, path: str, fh: int, offset: int, data: bytes) -> int:
        """Write to a file."""
        raise NotImplementedError()

    def release(self, path: str, fh: int) -> None:
        """Close a file handle."""

    def flush(self, path: str, fh: int) -> None:
        """
        Flush a file's attributes and contents.

        Called after every close of an open file.
        """

    def fsync(self, path: str, fh: int, datasync: bool) -> None:
        """Synchronize a file's attributes or contents."""


class FUSE:
    """
    File system wrapper class that handles the FUSE connection.

    This class starts the FUSE main loop and serves as the layer between the C callbacks
    and the Operations interface.
    """

    _OPERATIONS = [
        "init",
        "destroy",
        "getattr",
        "opendir",
        "readdir",
        "releasedir",
        "fsyncdir",
        "mknod",
        "unlink",
        "rename",
        "truncate",
        "access",
        "open",
        "create",
        "read",
        "write",
        "release",
        "flush",
        "fsync",
    ]

    def __init__(self, operations: Operations, config: FuseConfig):
        """Specify the operations and configuration for FUSE."""

        self._operations = operations
        self._config = config

    def mount(self, name: str, mount_path: str) -> int:
        """
        Mount the FUSE file system at the specified path with a given name.

        Blocks in the FUSE main loop until the file system is unmounted and returns the
        exit status of libfuse.
        """
        fuse3 = load_fuse3()

        # File system name and mount path arguments for FUSE
        argv = (ctypes.POINTER(ctypes.c_char) * 2)()
        argv[:] = [
            ctypes.create_string_buffer(name.encode(errors="surrogateescape")),
            ctypes.create_string_buffer(mount_path.encode(errors="surrogateescape")),
        ]
        args = FUSE_ARGS_INIT(2, argv)

        fuse3.fuse_opt_parse(
            ctypes.pointer(args), None, None, ctypes.cast(None, fuse_opt_proc_t)
        )

        for option in self._options():
            fuse3.fuse_opt_add_arg(ctypes.pointer(args), option)

        # Operation callbacks
        operations = fuse_operations()

        for op_name in self._OPERATIONS:
            callback = self._wrap_operation(op_name, getattr(self, f"_op_{op_name}"))
            setattr(operations, op_name, callback)

        # FUSE main loop
        return fuse3.fuse_main_real(
            args.argc,
            args.argv,
            ctypes.pointer(operations),
            ctypes.sizeof(operations),
            None,
        )

    def _options(self) -> list:
        """Return the command-line options for libfuse that correspond to the config."""
        options = [b"-f"]

        if self._config.auto_unmount:
            options.append(b"-oauto_unmount")

        if self._config.default_permissions:
            options.append(b"-odefault_permissions")

        if self._config.single_threaded:
            options.append(b"-s")

        return options

    def _wrap_operation(self, name: str, fn: Callable) -> Callable:
        """Wrap an operation callback in its C function type."""
        return self._typeof(fuse_operations, name)(self._guard(name, fn))

    @staticmethod
    def _guard(name: str, fn: Callable) -> Callable:
        """
        Wrap an operation callback to translate exceptions into negative errno values.

        The loss of the Redis server is not something that a file system call can
        recover from. It terminates the process instead, which makes the kernel fail
        all further calls on the mount point.
        """

        def wrapper(*args, **kwargs):
            # Support coverage.py within FUSE threads.
            if hasattr(threading, "_trace_hook"):
                sys.settrace(getattr(threading, "_trace_hook"))

            try:
                res = fn(*args, **kwargs)

                if res is None:
                    res = 0

                return res
            except OSError as e:
                # FUSE expects an error to be returned as negative errno.
                if e.errno:
                    return -e.errno
                else:
                    return -errno.EIO
            except NotImplementedError:
                log.debug(f"fuse::{name}() not implemented!")

                return -errno.ENOSYS
            except StoreUnavailableError as e:
                log.critical(f"fuse::{name}() lost the redis server: {e}")

                os._exit(REDISFS_ERROR_CODE)
            except Exception:
                log.warning(f"fuse::{name}() raised an unexpected exception:")
                log.warning(traceback.format_exc())

                return -errno.EIO

        return wrapper

    @staticmethod
    def _typeof(struct: ctypes.Structure, field: str) -> Type:
        """Return the type of a field in a ctypes Structure."""

        for name, t in getattr(struct, "_fields_"):
            if name == field:
                return t

        raise ValueError(f"cannot determine type of nonexistent field {field}")

    @staticmethod
    def _fh(fi: fuse_file_info_p) -> Optional[int]:
        """Return the file handle in a (possibly NULL) file info."""
        return fi.contents.fh if fi else None

    def _op_init(self, conn: fuse_conn_info_p, config: fuse_config_p) -> None:
        """
        Handle fuse_operations.init.

        Sets up the FUSE config and connection options.
        """

        if self._config.atomic_o_trunc:
            conn.contents.want |= FUSE_CAP_ATOMIC_O_TRUNC

        # Don't request capabilities that the kernel doesn't support.
        conn.contents.want &= conn.contents.capable

        config.contents.kernel_cache = 1 if self._config.kernel_cache else 0

        self._operations.init()

    def _op_destroy(self, _private_data: ctypes.c_void_p) -> None:
        """Handle fuse_operations.destroy."""
        self._operations.destroy()

    def _op_getattr(self, path: bytes, stbuf: stat_p, fi: fuse_file_info_p) -> None:
        """Handle fuse_operations.getattr."""
        stat_values = self._operations.getattr(self._decode(path), self._fh(fi))

        ctypes.memset(stbuf, 0, ctypes.sizeof(stat))

        for key, value in stat_values.items():
            if hasattr(stbuf.contents, key):
                setattr(stbuf.contents, key, value)
            elif key in ("st_atime_ns", "st_mtime_ns", "st_ctime_ns"):
                timespec = {
                    "st_atime_ns": stbuf.contents.st_atim,
                    "st_mtime_ns": stbuf.contents.st_mtim,
                    "st_ctime_ns": stbuf.contents.st_ctim,
                }[key]

                timespec.tv_sec, timespec.tv_nsec = divmod(int(value), 10 ** 9)

    def _op_opendir(self, path: bytes, fi: fuse_file_info_p) -> None:
        """Handle fuse_operations.opendir."""
        fi.contents.fh = self._operations.opendir(self._decode(path))

    def _op_readdir(
        self,
        path: bytes,
        buf: ctypes.c_void_p,
        filler: fuse_fill_dir_t,
        offset: int,
        _fi: fuse_file_info_p,
        _flags: int,
    ) -> None:
        """
        Handle fuse_operations.readdir.

        Entries are passed without offsets, so the whole directory is listed in one
        call. FUSE_FILL_DIR_PLUS is not supported.
        """

        def fill(name: str) -> int:
            return filler(buf, name.encode(errors="surrogateescape"), None, 0, 0)

        self._operations.readdir(self._decode(path), fill, offset)

    def _op_releasedir(self, path: bytes, fi: fuse_file_info_p) -> None:
        """Handle fuse_operations.releasedir."""
        self._operations.releasedir(self._decode(path), fi.contents.fh)

    def _op_fsyncdir(self, path: bytes, datasync: int, fi: fuse_file_info_p) -> None:
        """Handle fuse_operations.fsyncdir."""
        self._operations.fsyncdir(self._decode(path), fi.contents.fh, datasync != 0)

    def _op_mknod(self, path: bytes, mode: int, rdev: int) -> None:
        """Handle fuse_operations.mknod."""
        self._operations.mknod(self._decode(path), mode, rdev)

    def _op_unlink(self, path: bytes) -> None:
        """Handle fuse_operations.unlink."""
        self._operations.unlink(self._decode(path))

    def _op_rename(self, old: bytes, new: bytes, flags: int) -> None:
        """
        Handle fuse_operations.rename.

        There is currently no support for renameat2 flags.
        """
        if flags:
            raise OSError(errno.EINVAL, os.strerror(errno.EINVAL))

        self._operations.rename(self._decode(old), self._decode(new))

    def _op_truncate(self, path: bytes, size: int, fi: fuse_file_info_p) -> None:
        """Handle fuse_operations.truncate."""
        self._operations.truncate(self._decode(path), self._fh(fi), size)

    def _op_access(self, path: bytes, mode: int) -> None:
        """Handle fuse_operations.access."""
        self._operations.access(self._decode(path), mode)

    def _op_create(self, path: bytes, mode: int, fi: fuse_file_info_p) -> None:
        """Handle fuse_operations.create."""
        fi.contents.fh = self._operations.create(
            self._decode(path), fi.contents.flags, mode
        )

    def _op_open(self, path: bytes, fi: fuse_file_info_p) -> None:
        """Handle fuse_operations.open."""
        fi.contents.fh = self._operations.open(self._decode(path), fi.contents.flags)

    def _op_read(
        self,
        path: bytes,
        buf: ctypes.POINTER(ctypes.c_char),
        size: int,
        offset: int,
        fi: fuse_file_info_p,
    ) -> int:
        """Handle fuse_operations.read."""
        data = self._operations.read(self._decode(path), fi.contents.fh, offset, size)
        actual_size = len(data)

        assert actual_size <= size

        ctypes.memmove(buf, data, actual_size)

        return actual_size

    def _op_write(
        self,
        path: bytes,
        buf: ctypes.POINTER(ctypes.c_char),
        size: int,
        offset: int,
        fi: fuse_file_info_p,
    ) -> int:
        """Handle fuse_operations.write."""
        data = ctypes.string_at(buf, size)
        return self._operations.write(self._decode(path), fi.contents.fh, offset, data)

    def _op_release(self, path: bytes, fi: fuse_file_info_p) -> None:
        """Handle fuse_operations.release."""
        self._operations.release(self._decode(path), fi.contents.fh)

    def _op_flush(self, path: bytes, fi: fuse_file_info_p) -> None:
        """Handle fuse_operations.flush."""
        self._operations.flush(self._decode(path), fi.contents.fh)

    def _op_fsync(self, path: bytes, datasync: int, fi: fuse_file_info_p) -> None:
        """Handle fuse_operations.fsync."""
        self._operations.fsync(self._decode(path), fi.contents.fh, datasync != 0)

    @staticmethod
    def _decode(path: bytes) -> str:
        return path.decode(errors="surrogateescape")
