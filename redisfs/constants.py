"""Module defining various global constants."""

# redisfs version
VERSION = "1.0.0"

# Oldest Redis server that offers GETRANGE and the zero-filling SETRANGE.
MIN_REDIS_VERSION = "2.4.0"

# Special exit code for when redisfs itself fails.
REDISFS_ERROR_CODE = 254

# Name of the FUSE file system
FILESYSTEM_NAME = "redisfs"

# Default Redis endpoint and network timeout (seconds) for connects and replies
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 6379
DEFAULT_TIMEOUT = 1.5

# Block size reported in file attributes. Redis has no notion of blocks.
BLOCK_SIZE = 512
