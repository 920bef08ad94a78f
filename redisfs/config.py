"""Module for configuration variables with defaults that are overridable by a file."""

from __future__ import annotations

from configparser import ConfigParser, SectionProxy
from dataclasses import dataclass, field
from typing import Optional

from redisfs.constants import DEFAULT_HOST, DEFAULT_PORT, DEFAULT_TIMEOUT
from redisfs.logger import log


@dataclass
class RedisConfig:
    """Configuration variables related to the Redis server."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    db: int = 0
    password: Optional[str] = None

    timeout: float = DEFAULT_TIMEOUT  # seconds

    @staticmethod
    def load(section: SectionProxy) -> RedisConfig:
        """Load overridden variables from a section within a config file."""
        config = RedisConfig()

        config.host = section.get("host", fallback=config.host)
        config.port = section.getint("port", fallback=config.port)
        config.db = section.getint("db", fallback=config.db)
        config.password = section.get("password", fallback=config.password)
        timeout = section.getfloat("timeout", fallback=config.timeout)

        # Zero would make the socket non-blocking
        if timeout > 0:
            config.timeout = timeout
        else:
            log.warning(f"ignoring redis timeout {timeout}, expected number > 0")

        return config

    def __repr__(self) -> str:
        """Represent the config without revealing the password."""
        password = "***" if self.password else None

        return (
            f"RedisConfig(host={self.host!r}, port={self.port}, db={self.db},"
            f" password={password}, timeout={self.timeout})"
        )


@dataclass
class MountConfig:
    """Configuration variables related to the FUSE mount."""

    default_permissions: bool = True
    auto_unmount: bool = True
    kernel_cache: bool = False
    single_threaded: bool = False

    @staticmethod
    def load(section: SectionProxy) -> MountConfig:
        """Load overridden variables from a section within a config file."""
        config = MountConfig()

        config.default_permissions = section.getboolean(
            "default_permissions", fallback=config.default_permissions
        )
        config.auto_unmount = section.getboolean(
            "auto_unmount", fallback=config.auto_unmount
        )
        config.kernel_cache = section.getboolean(
            "kernel_cache", fallback=config.kernel_cache
        )
        config.single_threaded = section.getboolean(
            "single_threaded", fallback=config.single_threaded
        )

        return config


@dataclass
class Config:
    """Configuration variables."""

    redis: RedisConfig = field(default_factory=RedisConfig)
    mount: MountConfig = field(default_factory=MountConfig)

    @staticmethod
    def load(filename: str) -> Config:
        """Load overridden configuration variables from a config file."""
        parser = ConfigParser()

        config = Config()

        try:
            with open(filename, "r") as f:
                parser.read_string(f.read(), filename)

            if "redis" in parser:
                config.redis = RedisConfig.load(parser["redis"])

            if "fuse" in parser:
                config.mount = MountConfig.load(parser["fuse"])
        except FileNotFoundError:
            log.info(f"no config file at {filename}")
        except Exception as e:
            # An unreadable config file is not considered a fatal error since we can
            # fall back to defaults.
            log.error(f"failed to read config file {filename}: {e}")
            config = Config()
        else:
            log.info(f"loaded config: {config}")

        return config
