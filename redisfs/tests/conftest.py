"""Module with shared fixtures and flags to enable certain extra tests."""

import fnmatch
from typing import Any, Dict, List, Optional

import pytest
import redis

from redisfs.filesystem import RedisFileSystem
from redisfs.store import CommandExecutor, RedisStore, StoreConnection


def pytest_addoption(parser):
    parser.addoption(
        "--fuse",
        action="store_true",
        default=False,
        help="Run FUSE tests (requires a redis server on localhost:6379)",
    )


def pytest_configure(config):
    config.addinivalue_line("markers", "fuse: mark test as requiring FUSE to run")


def pytest_collection_modifyitems(config, items):
    if not config.getoption("--fuse"):
        skip_fuse = pytest.mark.skip(reason="only runs with --fuse option")

        for item in items:
            if "fuse" in item.keywords:
                item.add_marker(skip_fuse)


WRONGTYPE = "WRONGTYPE Operation against a key holding the wrong kind of value"


class FakeRedisServer:
    """
    In-memory stand-in for a Redis server with the commands used by redisfs.

    Values that are not bytes (like lists) behave as keys of another type. Transport
    failures can be injected for connects and for replies.
    """

    def __init__(self) -> None:
        self.data: Dict[bytes, Any] = {}
        self.version = "7.2.4"

        self.connect_failures = 0
        self.reply_failures = 0
        self.replies: Dict[str, Any] = {}

        self.commands: List[tuple] = []
        self.connections: List["FakeRedisConnection"] = []

    def connection(self) -> "FakeRedisConnection":
        connection = FakeRedisConnection(self)
        self.connections.append(connection)
        return connection

    def execute(self, name: str, *args: bytes) -> Any:
        self.commands.append((name, *args))

        if name in self.replies:
            reply = self.replies[name]

            if isinstance(reply, Exception):
                raise reply

            return reply

        handler = getattr(self, f"_cmd_{name.lower()}", None)

        if handler is None:
            raise redis.exceptions.ResponseError(f"ERR unknown command '{name}'")

        return handler(*args)

    def _string(self, key: bytes) -> bytes:
        value = self.data.get(key, b"")

        if not isinstance(value, bytes):
            raise redis.exceptions.ResponseError(WRONGTYPE)

        return value

    def _cmd_ping(self) -> bytes:
        return b"PONG"

    def _cmd_info(self, section: bytes) -> bytes:
        info = f"# Server\r\nredis_version:{self.version}\r\nredis_mode:standalone\r\n"
        return info.encode()

    def _cmd_exists(self, key: bytes) -> int:
        return 1 if key in self.data else 0

    def _cmd_strlen(self, key: bytes) -> int:
        return len(self._string(key))

    def _cmd_set(self, key: bytes, value: bytes) -> bytes:
        self.data[key] = value
        return b"OK"

    def _cmd_getrange(self, key: bytes, start: bytes, end: bytes) -> bytes:
        value = self._string(key)
        length = len(value)
        start_idx, end_idx = int(start), int(end)

        if start_idx < 0 and end_idx < 0 and start_idx > end_idx:
            return b""

        if start_idx < 0:
            start_idx += length
        if end_idx < 0:
            end_idx += length

        start_idx = max(start_idx, 0)
        end_idx = min(max(end_idx, 0), length - 1)

        if length == 0 or start_idx > end_idx:
            return b""

        return value[start_idx : end_idx + 1]

    def _cmd_setrange(self, key: bytes, offset: bytes, data: bytes) -> int:
        value = self._string(key)
        offset_idx = int(offset)

        if offset_idx < 0:
            raise redis.exceptions.ResponseError("ERR offset is out of range")

        # Empty writes neither create nor extend
        if not data:
            return len(value)

        buf = bytearray(value)

        if len(buf) < offset_idx + len(data):
            buf.extend(b"\0" * (offset_idx + len(data) - len(buf)))

        buf[offset_idx : offset_idx + len(data)] = data
        self.data[key] = bytes(buf)

        return len(buf)

    def _cmd_del(self, key: bytes) -> int:
        return 1 if self.data.pop(key, None) is not None else 0

    def _cmd_rename(self, key: bytes, new_key: bytes) -> bytes:
        if key not in self.data:
            raise redis.exceptions.ResponseError("ERR no such key")

        self.data[new_key] = self.data.pop(key)
        return b"OK"

    def _cmd_keys(self, pattern: bytes) -> List[bytes]:
        return [k for k in self.data if fnmatch.fnmatchcase(k, pattern)]


class FakeRedisConnection:
    """Stand-in for redis.Connection that talks to a FakeRedisServer."""

    def __init__(self, server: FakeRedisServer) -> None:
        self.server = server
        self.connected = False
        self._pending: Optional[tuple] = None

    def connect(self) -> None:
        if self.server.connect_failures > 0:
            self.server.connect_failures -= 1
            raise redis.exceptions.ConnectionError("Connection refused.")

        self.connected = True

    def disconnect(self, *args: Any) -> None:
        self.connected = False

    def send_command(self, *args: Any) -> None:
        if not self.connected:
            raise redis.exceptions.ConnectionError("Connection closed by server.")

        self._pending = args

    def read_response(self) -> Any:
        name, *args = self._pending
        self._pending = None

        if self.server.reply_failures > 0:
            self.server.reply_failures -= 1
            self.connected = False
            raise redis.exceptions.TimeoutError("Timeout reading from socket")

        return self.server.execute(name, *[self._encode(arg) for arg in args])

    @staticmethod
    def _encode(arg: Any) -> bytes:
        if isinstance(arg, bytes):
            return arg
        return str(arg).encode()


@pytest.fixture
def redis_server():
    return FakeRedisServer()


@pytest.fixture
def store_connection(redis_server):
    return StoreConnection(factory=redis_server.connection)


@pytest.fixture
def executor(store_connection):
    executor = CommandExecutor(store_connection)
    executor.start()

    yield executor

    executor.stop()


@pytest.fixture
def store(executor):
    return RedisStore(executor)


@pytest.fixture
def fs(store):
    return RedisFileSystem(store)
