"""Module that contains the file system that maps files onto keys in Redis."""

import errno
import os
import stat
import time
from typing import Optional

from redisfs.filesystem.common import Attributes
from redisfs.filesystem.fuse import DirectoryFiller, Operations
from redisfs.logger import log
from redisfs.store import RedisStore

ROOT = "/"


def _error(code: int) -> OSError:
    return OSError(code, os.strerror(code))


class RedisFileSystem(Operations):
    """
    Class that implements a FUSE file system on top of the string keys of Redis.

    The root directory lists every key in the database as a regular file with the value
    of the key as its contents. There are no subdirectories, links or extended
    attributes, and the only metadata of a file is its size.

    No state is kept per file. Every call resolves the key by name again, so the file
    system always reflects changes that other Redis clients make. The file handles
    returned from open() and create() only carry the access mode of the open call.

    Operations that need multiple commands are not atomic. In particular shrinking a
    file reads the part that is kept and then writes it back, which loses writes that
    other clients make to the same key in between.
    """

    def __init__(self, store: RedisStore) -> None:
        """Instantiate file system on top of a connected store."""
        self._store = store
        self._mount_time_ns = time.time_ns()

    def init(self) -> None:
        log.info("file system mounted")

    def destroy(self) -> None:
        """Disconnect from Redis as part of unmounting the file system."""
        self._store.close()

    #
    # Metadata access
    #

    def getattr(self, path: str, fh: Optional[int]) -> dict:
        """
        Retrieve the attributes of the root directory or a file.

        The size of a file is queried from Redis on every call.
        """
        if path == ROOT:
            return Attributes.synthesize(stat.S_IFDIR, 0, self._mount_time_ns).__dict__

        key = self._key(path)

        # STRLEN reports a length of 0 for keys that don't exist
        if not self._store.exists(key):
            raise _error(errno.ENOENT)

        size = self._store.length(key)

        return Attributes.synthesize(stat.S_IFREG, size, self._mount_time_ns).__dict__

    def opendir(self, path: str) -> int:
        if path != ROOT:
            raise _error(errno.ENOTDIR)

        return 0

    def readdir(self, path: str, filler: DirectoryFiller, offset: int) -> None:
        """
        List all keys in the database as the contents of the root directory.

        All keys are retrieved at once, so the offset is ignored. Running out of space
        in the buffer of the filler is reported as ENOMEM.
        """
        if path != ROOT:
            raise _error(errno.ENOTDIR)

        for name in self._store.list_keys():
            if filler(name) != 0:
                log.debug(f"readdir buffer full at {name}")
                raise _error(errno.ENOMEM)

    #
    # File system structure
    #

    def mknod(self, path: str, mode: int, rdev: int) -> None:
        """Create an empty regular file. Other types of nodes are not supported."""
        self._create(path, mode, exclusive=True)

    def rename(self, old: str, new: str) -> None:
        """
        Rename a file, replacing the destination if it exists.

        Like rename(2), replacing an existing file is not an error.
        """
        self._store.rename(self._key(old), self._key(new))

    def unlink(self, path: str) -> None:
        if path == ROOT:
            raise _error(errno.EISDIR)

        if not self._store.delete(self._key(path)):
            raise _error(errno.ENOENT)

    #
    # File operations
    #

    def create(self, path: str, flags: int, mode: int) -> int:
        """Create an empty regular file and open it."""
        self._create(path, mode, exclusive=bool(flags & os.O_EXCL))

        return flags & os.O_ACCMODE

    def open(self, path: str, flags: int) -> int:
        """
        Open a file, creating or emptying it as requested by the flags.

        The returned handle is the access mode, which is checked by read() and write().
        """
        if path == ROOT:
            raise _error(errno.EISDIR)

        key = self._key(path)

        if not self._store.exists(key):
            if not flags & os.O_CREAT:
                raise _error(errno.ENOENT)

            self._store.set(key, b"")
        elif flags & os.O_TRUNC:
            self._store.set(key, b"")

        return flags & os.O_ACCMODE

    def read(self, path: str, fh: int, offset: int, size: int) -> bytes:
        """
        Read a range of bytes from a file.

        Fewer bytes than requested are returned near the end of the file, and none at
        all beyond it.
        """
        if path == ROOT:
            raise _error(errno.EISDIR)

        if fh == os.O_WRONLY:
            raise _error(errno.EBADF)

        # GETRANGE key 0 -1 would return the whole value
        if size == 0:
            return b""

        return self._store.get_range(self._key(path), offset, offset + size - 1)

    def write(self, path: str, fh: int, offset: int, data: bytes) -> int:
        """
        Write a range of bytes to a file.

        Writing beyond the end of the file extends it with zero bytes up to the offset.
        """
        if path == ROOT:
            raise _error(errno.EISDIR)

        if fh == os.O_RDONLY:
            raise _error(errno.EBADF)

        self._store.set_range(self._key(path), offset, data)

        return len(data)

    def truncate(self, path: str, fh: Optional[int], size: int) -> None:
        """Shrink or extend a file to the given size."""
        if path == ROOT:
            raise _error(errno.EISDIR)

        if size < 0:
            raise _error(errno.EINVAL)

        key = self._key(path)

        # Growing would silently create a key that doesn't exist
        if not self._store.exists(key):
            raise _error(errno.ENOENT)

        length = self._store.length(key)

        if size == length:
            return
        elif size > length:
            # A single byte at the new end makes Redis zero-fill the gap before it
            self._store.set_range(key, size - 1, b"\0")
        else:
            # Not atomic: writes by other clients in between the two calls are lost
            if size > 0:
                head = self._store.get_range(key, 0, size - 1)
            else:
                head = b""

            self._store.set(key, head)

    def release(self, path: str, fh: int) -> None:
        pass

    def flush(self, path: str, fh: int) -> None:
        """Nothing to flush, since every write goes straight to Redis."""

    def fsync(self, path: str, fh: int, datasync: bool) -> None:
        pass

    def _create(self, path: str, mode: int, exclusive: bool) -> None:
        if path == ROOT:
            raise _error(errno.EEXIST)

        if stat.S_IFMT(mode) not in (0, stat.S_IFREG):
            raise _error(errno.EINVAL)

        key = self._key(path)

        if exclusive and self._store.exists(key):
            raise _error(errno.EEXIST)

        self._store.set(key, b"")

    @staticmethod
    def _key(path: str) -> str:
        """Return the key that corresponds to a path, which is its file name."""
        return path[1:] if path.startswith("/") else path
