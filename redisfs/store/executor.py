"""Module that executes single Redis commands and classifies their outcome."""

from enum import auto, Enum
import errno
import logging
import threading
import time
from typing import Any, Tuple

import fasteners
import redis

from redisfs.logger import log, summarize
from .connection import StoreConnection, StoreUnavailableError, TRANSPORT_ERRORS


class Outcome(Enum):
    """Classification of a single round trip to the Redis server."""

    SUCCESS = auto()
    TRANSPORT_FAILURE = auto()
    STORE_ERROR = auto()
    PROTOCOL_ERROR = auto()


class ReplyType(Enum):
    """Shape of a Redis reply."""

    INTEGER = auto()
    STRING = auto()
    ARRAY = auto()
    NIL = auto()
    UNKNOWN = auto()

    @staticmethod
    def of(reply: Any) -> "ReplyType":
        """
        Determine the shape of a raw reply as produced by the redis-py parser.

        Anything else, like the doubles, maps and sets of RESP3, is UNKNOWN and never
        matches an expected shape.
        """
        # bool is an int subclass, but is never produced by the parser
        if isinstance(reply, int) and not isinstance(reply, bool):
            return ReplyType.INTEGER
        elif isinstance(reply, (bytes, str)):
            return ReplyType.STRING
        elif isinstance(reply, list):
            return ReplyType.ARRAY
        elif reply is None:
            return ReplyType.NIL
        else:
            return ReplyType.UNKNOWN


class CommandError(OSError):
    """Base class of command failures that file operations report as I/O errors."""

    outcome: Outcome

    def __init__(self, message: str) -> None:
        """Instantiate as an OSError with EIO as errno."""
        super().__init__(errno.EIO, message)


class StoreError(CommandError):
    """Exception raised when the Redis server replies with an error."""

    outcome = Outcome.STORE_ERROR


class ProtocolError(CommandError):
    """Exception raised when a Redis reply doesn't have the expected shape."""

    outcome = Outcome.PROTOCOL_ERROR


class CommandExecutor:
    """
    Executes commands over the store connection one at a time.

    Every command is classified as a success, a store error, a protocol error or a
    transport failure. Only transport failures are retried, and only once: the broken
    connection is replaced by a new one and the command is sent again. If that fails as
    well, the store is considered unavailable and StoreUnavailableError is raised. The
    file system does not attempt to ride out longer outages.

    Store errors and protocol errors are deterministic and are never retried.

    FUSE invokes file system operations from multiple threads, so the connection is
    guarded by a lock that is held for the duration of a round trip, including a
    possible reconnect.
    """

    def __init__(self, connection: StoreConnection) -> None:
        """Instantiate an executor that owns the given connection."""
        self._connection = connection
        self._lock = threading.Lock()

    @property
    def connection(self) -> StoreConnection:
        """Return the connection owned by this executor."""
        return self._connection

    @fasteners.locked
    def start(self) -> None:
        """Open the connection to the store."""
        self._connection.open()

    @fasteners.locked
    def stop(self) -> None:
        """Close the connection to the store."""
        self._connection.close()

    @fasteners.locked
    def execute(self, expect: ReplyType, *command: Any) -> Any:
        """
        Execute a command and return its reply if it has the expected shape.

        Raises StoreError if the server replies with an error, ProtocolError if the
        reply has any other shape than expected, and StoreUnavailableError if no reply
        could be obtained even after reconnecting.
        """
        t_call = time.time()

        try:
            reply = self._send_with_retry(command, t_call)
        except redis.exceptions.RedisError as e:
            self._log_outcome(command, Outcome.STORE_ERROR, t_call)
            raise StoreError(f"redis::{command[0]} failed: {e}") from e

        if ReplyType.of(reply) is not expect:
            self._log_outcome(command, Outcome.PROTOCOL_ERROR, t_call)
            raise ProtocolError(
                f"redis::{command[0]} replied with {ReplyType.of(reply).name}"
                f" instead of {expect.name}: {summarize(reply)}"
            )

        self._log_outcome(command, Outcome.SUCCESS, t_call)

        return reply

    def _send_with_retry(self, command: Tuple[Any, ...], t_call: float) -> Any:
        try:
            return self._send(command)
        except TRANSPORT_ERRORS as e:
            self._log_outcome(command, Outcome.TRANSPORT_FAILURE, t_call)
            log.warning(f"redis::{command[0]} got no reply ({e}), reconnecting")

        # Raises StoreUnavailableError if the reconnect itself fails
        self._connection.replace()

        try:
            return self._send(command)
        except TRANSPORT_ERRORS as e:
            self._log_outcome(command, Outcome.TRANSPORT_FAILURE, t_call)
            self._connection.abort()

            raise StoreUnavailableError(
                f"redis::{command[0]} got no reply after reconnecting: {e}"
            ) from e

    def _send(self, command: Tuple[Any, ...]) -> Any:
        connection = self._connection.connection

        connection.send_command(*command)
        return connection.read_response()

    @staticmethod
    def _log_outcome(command: Tuple[Any, ...], outcome: Outcome, t_call: float) -> None:
        # Explicit check before logging because summarizing is relatively slow
        if log.isEnabledFor(logging.DEBUG):
            t_millis = round((time.time() - t_call) * 1000)
            args = tuple(summarize(arg) for arg in command[1:])

            log.debug(f"redis::{command[0]}{args} - {outcome.name} - {t_millis} ms")
