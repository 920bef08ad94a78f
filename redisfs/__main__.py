"""
Module implementing the command-line interface and mounting the file system.

redisfs connects to a Redis server, checks that it is usable, and then mounts its keys
as files on the given mount point. The process stays in the foreground until the file
system is unmounted, for example with `fusermount -u mountpoint`.
"""

import logging
import os
import signal
import sys
from typing import List, NoReturn, Optional

import redisfs.constants as constants
from redisfs.config import Config
from redisfs.filesystem import RedisFileSystem
from redisfs.filesystem.fuse import FUSE, FuseConfig
from redisfs.logger import log
from redisfs.store import (
    CommandExecutor,
    RedisStore,
    StoreConnection,
    StoreUnavailableError,
)
from .args import Arguments


def main(arguments: Optional[List[str]] = None) -> NoReturn:
    """
    Mount the file system with the given arguments.

    Defaults to parsing command-line arguments from sys.argv if none are specified.
    """
    # Parse command-line arguments.
    args = Arguments.parse(arguments)

    # Configure debug logging.
    if args.debug:
        log.setLevel(logging.DEBUG)
    else:
        log.setLevel(logging.ERROR)

    config = Config.load(os.path.expanduser(args.config))

    # Command-line arguments take precedence over the config file.
    connection = StoreConnection(
        host=args.host if args.host is not None else config.redis.host,
        port=args.port if args.port is not None else config.redis.port,
        db=args.db if args.db is not None else config.redis.db,
        password=config.redis.password,
        timeout=args.timeout / 1000 if args.timeout else config.redis.timeout,
    )

    store = RedisStore(CommandExecutor(connection))

    try:
        store.connect()
    except StoreUnavailableError as e:
        log.error(f"redis is unavailable: {e}")
        sys.exit(constants.REDISFS_ERROR_CODE)
    except Exception as e:
        log.error(f"failed to connect to redis: {e}")
        store.close()
        sys.exit(constants.REDISFS_ERROR_CODE)

    fuse_config = FuseConfig(
        default_permissions=config.mount.default_permissions,
        auto_unmount=config.mount.auto_unmount,
        kernel_cache=config.mount.kernel_cache,
        single_threaded=args.single_threaded or config.mount.single_threaded,
    )

    try:
        fuse = FUSE(RedisFileSystem(store), fuse_config)
        exit_code = fuse.mount(constants.FILESYSTEM_NAME, args.mountpoint)
    except KeyboardInterrupt:
        exit_code = 128 + signal.SIGINT
    except Exception as e:
        log.error(f"failed to mount file system: {e}")
        exit_code = constants.REDISFS_ERROR_CODE
    finally:
        store.close()

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
