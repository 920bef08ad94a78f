"""Module with the single connection to the Redis server that backs the file system."""

from enum import auto, Enum
from typing import Callable, Optional

import redis
from redis.backoff import NoBackoff
from redis.retry import Retry

from redisfs.constants import DEFAULT_HOST, DEFAULT_PORT, DEFAULT_TIMEOUT
from redisfs.logger import log


# Errors that mean that no reply could be obtained from the server at all
TRANSPORT_ERRORS = (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError)


class StoreUnavailableError(RuntimeError):
    """Exception raised when the Redis server can't be used, even after reconnecting."""


class ConnectionState(Enum):
    """Liveness of a store connection."""

    DISCONNECTED = auto()
    CONNECTED = auto()
    RECONNECTING = auto()
    ABORTED = auto()
    CLOSED = auto()


class StoreConnection:
    """
    Owner of the one session with the Redis server.

    The session is opened explicitly, replaced in place when the transport breaks down,
    and closed when the file system is unmounted. The retry logic of redis-py itself is
    disabled, because the command executor decides when a command is worth retrying.

    This class is not thread-safe. The command executor serializes access to it.
    """

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        db: int = 0,
        password: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        factory: Optional[Callable[[], redis.Connection]] = None,
    ) -> None:
        """
        Describe a connection to the Redis server at the given address.

        The timeout (in seconds) applies to both connecting and waiting for replies. A
        custom factory may be specified to create the underlying redis-py connection.
        """
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.timeout = timeout

        self._factory = factory or self._create_connection
        self._connection: Optional[redis.Connection] = None

        self.state = ConnectionState.DISCONNECTED

    @property
    def address(self) -> str:
        """Return the address of the Redis server as host:port."""
        return f"{self.host}:{self.port}"

    @property
    def connection(self) -> redis.Connection:
        """Return the live redis-py connection."""
        if self._connection is None:
            raise StoreUnavailableError(f"not connected to redis at {self.address}")

        return self._connection

    def open(self) -> None:
        """Establish the initial session."""
        self._connection = self._connect()
        self.state = ConnectionState.CONNECTED

    def replace(self) -> None:
        """Discard the current (broken) session and open exactly one new session."""
        self.state = ConnectionState.RECONNECTING
        self._discard()

        self._connection = self._connect()
        self.state = ConnectionState.CONNECTED

        log.warning(f"reconnected to redis at {self.address}")

    def abort(self) -> None:
        """Give up on the session after the server failed to respond twice."""
        self._discard()
        self.state = ConnectionState.ABORTED

    def close(self) -> None:
        """Tear down the session. Closing more than once is harmless."""
        self._discard()
        self.state = ConnectionState.CLOSED

    def _create_connection(self) -> redis.Connection:
        return redis.Connection(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            socket_connect_timeout=self.timeout,
            socket_timeout=self.timeout,
            retry=Retry(NoBackoff(), 0),
        )

    def _connect(self) -> redis.Connection:
        connection = self._factory()

        try:
            connection.connect()
        except redis.exceptions.RedisError as e:
            self.state = ConnectionState.ABORTED
            raise StoreUnavailableError(
                f"failed to connect to redis at {self.address}: {e}"
            ) from e

        log.info(f"connected to redis at {self.address}")

        return connection

    def _discard(self) -> None:
        if self._connection is not None:
            self._connection.disconnect()
            self._connection = None
