"""redisfs exposes the string keys of a Redis database as files in a FUSE mount."""
