"""Data structures used by multiple file system components."""

from __future__ import annotations

from dataclasses import dataclass
import os
import stat

from redisfs.constants import BLOCK_SIZE

# Everybody may do everything, since Redis has no notion of ownership.
DEFAULT_PERMISSIONS = stat.S_IRWXU | stat.S_IRWXG | stat.S_IRWXO


@dataclass
class Attributes:
    """Container of file system attributes (the subset of os.stat_result used)."""

    st_mode: int
    st_nlink: int
    st_uid: int
    st_gid: int
    st_size: int
    st_blksize: int
    st_blocks: int
    st_atime_ns: int
    st_mtime_ns: int
    st_ctime_ns: int

    @staticmethod
    def synthesize(file_type: int, size: int, time_ns: int) -> Attributes:
        """
        Create attributes for an entry that has no stored metadata.

        Entries are owned by the user that mounted the file system, are accessible to
        everyone, and carry a single timestamp for all of their times.
        """
        if size > 0:
            blocks = size // BLOCK_SIZE + 1
        else:
            blocks = 0

        return Attributes(
            st_mode=file_type | DEFAULT_PERMISSIONS,
            st_nlink=2 if file_type == stat.S_IFDIR else 1,
            st_uid=os.getuid(),
            st_gid=os.getgid(),
            st_size=size,
            st_blksize=BLOCK_SIZE,
            st_blocks=blocks,
            st_atime_ns=time_ns,
            st_mtime_ns=time_ns,
            st_ctime_ns=time_ns,
        )
