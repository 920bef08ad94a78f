"""
Modules that expose the keys of a Redis database as a FUSE file system.

Redis is not a file system, but its string commands come surprisingly close to the
primitives that one needs. GETRANGE reads a byte range and cuts it short at the end of
the value, which is exactly how read() behaves at the end of a file. SETRANGE writes a
byte range and fills any gap before it with zero bytes, which is exactly how write()
behaves beyond the end of a file. Truncating is the odd one out and is reconstructed
from the other commands: growing a file is a one byte SETRANGE at the new end, and
shrinking a file reads the part to keep and writes it back as the whole value.

The directory structure is kept as simple as the Redis key space: a single flat root
directory with one file per key. Ownership, permissions and timestamps are not stored,
so they are the same for every file.
"""

from .filesystem import RedisFileSystem

__all__ = [
    "RedisFileSystem",
]
