"""
Modules that talk to the Redis server that stores the file contents.

The file system only needs a handful of primitives from the store: checking whether a
key exists, querying the length of its value, replacing a value, reading and writing
byte ranges, deleting and renaming keys, and listing all keys. Redis offers all of
these as single commands (EXISTS, STRLEN, SET, GETRANGE, SETRANGE, DEL, RENAME, KEYS),
so every primitive is exactly one round trip.

The commands are sent over a single connection that is owned by a CommandExecutor. The
executor serializes the FUSE worker threads, validates the shape of every reply before
it is interpreted, and recovers from a broken connection by reconnecting and retrying
once. A server that doesn't respond after that is considered gone for good.
"""

from .connection import ConnectionState, StoreConnection, StoreUnavailableError
from .executor import (
    CommandError,
    CommandExecutor,
    Outcome,
    ProtocolError,
    ReplyType,
    StoreError,
)
from .store import RedisStore

__all__ = [
    "CommandError",
    "CommandExecutor",
    "ConnectionState",
    "Outcome",
    "ProtocolError",
    "RedisStore",
    "ReplyType",
    "StoreConnection",
    "StoreError",
    "StoreUnavailableError",
]
