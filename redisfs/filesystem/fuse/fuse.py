"""
Module with ctypes bindings for the parts of the high-level FUSE 3.x API that are used.

These are based on the following libfuse headers:

* fuse/fuse.h
* fuse/fuse_common.h
* fuse/fuse_opt.h

The structures assume an x86-64 system. The library itself is only loaded when a file
system is mounted, so the bindings can be imported on systems without libfuse3.
"""

import ctypes
import ctypes.util
from typing import Any

#
# Types
#

# sys/types.h
off_t = ctypes.c_long
mode_t = ctypes.c_uint
dev_t = ctypes.c_ulong


class fuse_args(ctypes.Structure):
    """fuse/fuse_opt.h: struct fuse_args."""

    _fields_ = [
        ("argc", ctypes.c_int),
        ("argv", ctypes.POINTER(ctypes.POINTER(ctypes.c_char))),
        ("allocated", ctypes.c_int),
    ]


fuse_args_p = ctypes.POINTER(fuse_args)


class fuse_conn_info(ctypes.Structure):
    """fuse/fuse_common.h: struct fuse_conn_info."""

    _fields_ = [
        ("proto_major", ctypes.c_uint),
        ("proto_minor", ctypes.c_uint),
        ("max_write", ctypes.c_uint),
        ("max_read", ctypes.c_uint),
        ("max_readahead", ctypes.c_uint),
        ("capable", ctypes.c_uint),
        ("want", ctypes.c_uint),
        ("max_background", ctypes.c_uint),
        ("congestion_threshold", ctypes.c_uint),
        ("time_gran", ctypes.c_uint),
    ] + [("reserved", ctypes.c_uint)] * 22


fuse_conn_info_p = ctypes.POINTER(fuse_conn_info)


class fuse_config(ctypes.Structure):
    """fuse/fuse.h: struct fuse_config."""

    _fields_ = [
        ("set_gid", ctypes.c_int),
        ("gid", ctypes.c_uint),
        ("set_uid", ctypes.c_int),
        ("uid", ctypes.c_uint),
        ("set_mode", ctypes.c_int),
        ("umask", ctypes.c_uint),
        ("entry_timeout", ctypes.c_double),
        ("negative_timeout", ctypes.c_double),
        ("attr_timeout", ctypes.c_double),
        ("intr", ctypes.c_int),
        ("intr_signal", ctypes.c_int),
        ("remember", ctypes.c_int),
        ("hard_remove", ctypes.c_int),
        ("use_ino", ctypes.c_int),
        ("readdir_ino", ctypes.c_int),
        ("direct_io", ctypes.c_int),
        ("kernel_cache", ctypes.c_int),
        ("auto_cache", ctypes.c_int),
        ("ac_attr_timeout_set", ctypes.c_int),
        ("ac_attr_timeout", ctypes.c_double),
        ("nullpath_ok", ctypes.c_int),
        ("show_help", ctypes.c_int),
        ("modules", ctypes.POINTER(ctypes.c_char)),
        ("debug", ctypes.c_int),
    ]


fuse_config_p = ctypes.POINTER(fuse_config)


class fuse_file_info(ctypes.Structure):
    """fuse/fuse_common.h: struct fuse_file_info."""

    _fields_ = [
        ("flags", ctypes.c_int),
        ("writepage", ctypes.c_uint, 1),
        ("direct_io", ctypes.c_uint, 1),
        ("keep_cache", ctypes.c_uint, 1),
        ("flush", ctypes.c_uint, 1),
        ("nonseekable", ctypes.c_uint, 1),
        ("flock_release", ctypes.c_uint, 1),
        ("cache_readdir", ctypes.c_uint, 1),
        ("padding", ctypes.c_uint, 25),
        ("padding2", ctypes.c_uint, 32),
        ("fh", ctypes.c_uint64),
        ("lock_owner", ctypes.c_uint64),
        ("poll_events", ctypes.c_uint32),
    ]


fuse_file_info_p = ctypes.POINTER(fuse_file_info)


class timespec(ctypes.Structure):
    """bits/types/struct_timespec.h: struct timespec."""

    _fields_ = [("tv_sec", ctypes.c_long), ("tv_nsec", ctypes.c_long)]


class stat(ctypes.Structure):
    """bits/stat.h: struct stat."""

    _fields_ = [
        ("st_dev", ctypes.c_ulong),
        ("st_ino", ctypes.c_ulong),
        ("st_nlink", ctypes.c_ulong),
        ("st_mode", ctypes.c_uint),
        ("st_uid", ctypes.c_uint),
        ("st_gid", ctypes.c_uint),
        ("__pad0", ctypes.c_int),
        ("st_rdev", ctypes.c_ulong),
        ("st_size", ctypes.c_long),
        ("st_blksize", ctypes.c_long),
        ("st_blocks", ctypes.c_long),
        ("st_atim", timespec),
        ("st_mtim", timespec),
        ("st_ctim", timespec),
    ] + [("__glibc_reserved", ctypes.c_long)] * 3


stat_p = ctypes.POINTER(stat)

# fuse/fuse.h
fuse_fill_dir_t = ctypes.CFUNCTYPE(
    ctypes.c_int, ctypes.c_void_p, ctypes.c_char_p, stat_p, off_t, ctypes.c_int
)


def _callback(*argtypes: Any) -> Any:
    """Return the type of an operation callback that returns an int status."""
    return ctypes.CFUNCTYPE(ctypes.c_int, *argtypes)


path_t = ctypes.c_char_p
buffer_t = ctypes.POINTER(ctypes.c_char)


class fuse_operations(ctypes.Structure):
    """
    fuse/fuse.h: struct fuse_operations.

    Operations that redisfs doesn't support are plain pointers that are left NULL, for
    which libfuse itself replies with ENOSYS. This includes all operations on links,
    directories other than the root, ownership, modes, times and extended attributes.
    """

    _fields_ = [
        ("getattr", _callback(path_t, stat_p, fuse_file_info_p)),
        ("readlink", ctypes.c_void_p),
        ("mknod", _callback(path_t, mode_t, dev_t)),
        ("mkdir", ctypes.c_void_p),
        ("unlink", _callback(path_t)),
        ("rmdir", ctypes.c_void_p),
        ("symlink", ctypes.c_void_p),
        ("rename", _callback(path_t, path_t, ctypes.c_uint)),
        ("link", ctypes.c_void_p),
        ("chmod", ctypes.c_void_p),
        ("chown", ctypes.c_void_p),
        ("truncate", _callback(path_t, off_t, fuse_file_info_p)),
        ("open", _callback(path_t, fuse_file_info_p)),
        (
            "read",
            _callback(path_t, buffer_t, ctypes.c_size_t, off_t, fuse_file_info_p),
        ),
        (
            "write",
            _callback(path_t, buffer_t, ctypes.c_size_t, off_t, fuse_file_info_p),
        ),
        ("statfs", ctypes.c_void_p),
        ("flush", _callback(path_t, fuse_file_info_p)),
        ("release", _callback(path_t, fuse_file_info_p)),
        ("fsync", _callback(path_t, ctypes.c_int, fuse_file_info_p)),
        ("setxattr", ctypes.c_void_p),
        ("getxattr", ctypes.c_void_p),
        ("listxattr", ctypes.c_void_p),
        ("removexattr", ctypes.c_void_p),
        ("opendir", _callback(path_t, fuse_file_info_p)),
        (
            "readdir",
            _callback(
                path_t,
                ctypes.c_void_p,
                fuse_fill_dir_t,
                off_t,
                fuse_file_info_p,
                ctypes.c_int,
            ),
        ),
        ("releasedir", _callback(path_t, fuse_file_info_p)),
        ("fsyncdir", _callback(path_t, ctypes.c_int, fuse_file_info_p)),
        ("init", ctypes.CFUNCTYPE(None, fuse_conn_info_p, fuse_config_p)),
        ("destroy", ctypes.CFUNCTYPE(None, ctypes.c_void_p)),
        ("access", _callback(path_t, ctypes.c_int)),
        ("create", _callback(path_t, mode_t, fuse_file_info_p)),
        ("lock", ctypes.c_void_p),
        ("utimens", ctypes.c_void_p),
        ("bmap", ctypes.c_void_p),
        ("ioctl", ctypes.c_void_p),
        ("poll", ctypes.c_void_p),
        ("write_buf", ctypes.c_void_p),
        ("read_buf", ctypes.c_void_p),
        ("flock", ctypes.c_void_p),
        ("fallocate", ctypes.c_void_p),
        ("copy_file_range", ctypes.c_void_p),
        ("lseek", ctypes.c_void_p),
    ]


fuse_operations_p = ctypes.POINTER(fuse_operations)

fuse_opt_proc_t = ctypes.CFUNCTYPE(
    ctypes.c_int, ctypes.c_void_p, ctypes.c_char_p, ctypes.c_int, fuse_args_p
)

#
# Macros
#


def FUSE_ARGS_INIT(
    argc: ctypes.c_int, argv: ctypes.POINTER(ctypes.POINTER(ctypes.c_char))
) -> fuse_args:
    """fuse/fuse_opt.h: macro FUSE_ARGS_INIT."""
    return fuse_args(argc=argc, argv=argv, allocated=0)


#
# Constants
#

# fuse/fuse_common.h
FUSE_CAP_ATOMIC_O_TRUNC = 1 << 3

#
# Functions
#


def load_fuse3() -> ctypes.CDLL:
    """Load libfuse3 and declare the signatures of the functions that are used."""
    fuse3_so = ctypes.util.find_library("fuse3")

    if not fuse3_so:
        raise RuntimeError("failed to find fuse3 library")

    fuse3 = ctypes.cdll.LoadLibrary(fuse3_so)

    # fuse/fuse.h
    fuse3.fuse_main_real.restype = ctypes.c_int
    fuse3.fuse_main_real.argtypes = [
        ctypes.c_int,
        ctypes.POINTER(ctypes.POINTER(ctypes.c_char)),
        fuse_operations_p,
        ctypes.c_size_t,
        ctypes.c_void_p,
    ]

    # fuse/fuse_opt.h
    fuse3.fuse_opt_parse.restype = ctypes.c_int
    fuse3.fuse_opt_parse.argtypes = [
        fuse_args_p,
        ctypes.c_void_p,
        ctypes.c_void_p,
        fuse_opt_proc_t,
    ]

    fuse3.fuse_opt_add_arg.restype = ctypes.c_int
    fuse3.fuse_opt_add_arg.argtypes = [fuse_args_p, ctypes.c_char_p]

    return fuse3
