"""Module with the key-value primitives that the file system is built on."""

from typing import Any, List, Union

import semver

from redisfs.constants import MIN_REDIS_VERSION
from redisfs.logger import log
from .connection import StoreUnavailableError
from .executor import CommandExecutor, ProtocolError, ReplyType, StoreError


class RedisStore:
    """
    Typed key-value operations on top of the command executor.

    Each method is a single round trip. Keys are file names and are passed around as
    strings. Names that aren't valid UTF-8 survive a listing through surrogate escapes.
    """

    def __init__(self, executor: CommandExecutor) -> None:
        """Instantiate the store with the executor that runs its commands."""
        self._executor = executor

    def connect(self) -> None:
        """
        Connect to the server and check that it responds and is recent enough.

        The connection is closed again if the server turns out to be unusable.
        """
        self._executor.start()

        try:
            self.ping()
            self._check_server_version()
        except Exception:
            self._executor.stop()
            raise

    def close(self) -> None:
        """Disconnect from the server."""
        self._executor.stop()

    #
    # Keys
    #

    def exists(self, key: str) -> bool:
        """Return whether a key exists."""
        return self._execute(ReplyType.INTEGER, "EXISTS", self._encode(key)) > 0

    def delete(self, key: str) -> bool:
        """Delete a key and return whether it existed."""
        return self._execute(ReplyType.INTEGER, "DEL", self._encode(key)) > 0

    def rename(self, key: str, new_key: str) -> None:
        """Rename a key, replacing the value of new_key if it already exists."""
        self._execute(
            ReplyType.STRING, "RENAME", self._encode(key), self._encode(new_key)
        )

    def list_keys(self) -> List[str]:
        """Return the names of all keys in the database in a single round trip."""
        reply = self._execute(ReplyType.ARRAY, "KEYS", "*")

        keys = []

        for element in reply:
            if ReplyType.of(element) is not ReplyType.STRING:
                raise ProtocolError(f"redis::KEYS replied with key {element!r}")

            keys.append(self._decode(element))

        return keys

    #
    # Values
    #

    def length(self, key: str) -> int:
        """Return the length of a value, which is 0 for keys that don't exist."""
        return self._execute(ReplyType.INTEGER, "STRLEN", self._encode(key))

    def set(self, key: str, data: bytes) -> None:
        """Replace the entire value of a key."""
        self._execute(ReplyType.STRING, "SET", self._encode(key), data)

    def get_range(self, key: str, start: int, end: int) -> bytes:
        """
        Read the bytes from start up to and including end.

        Ranges that extend beyond the end of the value are cut short, so reading past
        the end yields fewer or no bytes.
        """
        return bytes(
            self._execute(ReplyType.STRING, "GETRANGE", self._encode(key), start, end)
        )

    def set_range(self, key: str, offset: int, data: bytes) -> int:
        """
        Overwrite part of a value starting at offset and return the new length.

        If the offset lies beyond the end of the value then the gap is filled with zero
        bytes. Keys that don't exist yet are created.
        """
        return self._execute(
            ReplyType.INTEGER, "SETRANGE", self._encode(key), offset, data
        )

    #
    # Server
    #

    def ping(self) -> None:
        """Check that the server responds to commands."""
        self._execute(ReplyType.STRING, "PING")

    def server_version(self) -> str:
        """Return the version that the server reports in INFO."""
        info = self._decode(self._execute(ReplyType.STRING, "INFO", "server"))

        for line in info.splitlines():
            name, _, value = line.partition(":")

            if name == "redis_version":
                return value.strip()

        raise ProtocolError("redis::INFO reply does not contain redis_version")

    def _check_server_version(self) -> None:
        try:
            version = self.server_version()
        except StoreError as e:
            # Managed Redis services sometimes disable INFO.
            log.warning(f"failed to determine redis version: {e}")
            return

        try:
            parsed_version = semver.VersionInfo.parse(version)
        except ValueError:
            log.warning(f"unrecognized redis version {version}, assuming compatibility")
            return

        if parsed_version < semver.VersionInfo.parse(MIN_REDIS_VERSION):
            raise StoreUnavailableError(
                f"incompatible redis server ({version} < {MIN_REDIS_VERSION})"
            )

        log.info(f"redis server version is {version}")

    def _execute(self, expect: ReplyType, *command: Any) -> Any:
        return self._executor.execute(expect, *command)

    @staticmethod
    def _encode(key: str) -> bytes:
        return key.encode(errors="surrogateescape")

    @staticmethod
    def _decode(data: Union[bytes, str]) -> str:
        if isinstance(data, str):
            return data

        return bytes(data).decode(errors="surrogateescape")
