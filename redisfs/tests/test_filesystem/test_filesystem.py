import errno
import os
import stat
from unittest import mock

import pytest

from redisfs.store import ConnectionState


def test_getattr_root(fs):
    attribs = fs.getattr("/", None)

    assert stat.S_ISDIR(attribs["st_mode"])
    assert attribs["st_nlink"] == 2
    assert attribs["st_uid"] == os.getuid()


def test_getattr_nonexistent(fs):
    with pytest.raises(OSError) as e:
        fs.getattr("/foo", None)

    assert e.value.errno == errno.ENOENT


def test_getattr_file(fs, redis_server):
    redis_server.data[b"foo"] = b"x" * 1000

    attribs = fs.getattr("/foo", None)

    assert stat.S_ISREG(attribs["st_mode"])
    assert attribs["st_mode"] & 0o777 == 0o777
    assert attribs["st_size"] == 1000
    assert attribs["st_blocks"] == 2


def test_getattr_wrong_type(fs, redis_server):
    redis_server.data[b"list"] = [b"a"]

    with pytest.raises(OSError) as e:
        fs.getattr("/list", None)

    assert e.value.errno == errno.EIO


def test_create(fs, redis_server):
    fh = fs.create("/foo", os.O_WRONLY | os.O_CREAT, stat.S_IFREG | 0o644)

    assert fh == os.O_WRONLY
    assert redis_server.data[b"foo"] == b""

    attribs = fs.getattr("/foo", None)

    assert stat.S_ISREG(attribs["st_mode"])
    assert attribs["st_size"] == 0
    assert attribs["st_blocks"] == 0


def test_create_existing(fs, redis_server):
    redis_server.data[b"foo"] = b"abc"

    fs.create("/foo", os.O_RDWR | os.O_CREAT, 0o644)
    assert redis_server.data[b"foo"] == b""

    with pytest.raises(OSError) as e:
        fs.create("/foo", os.O_RDWR | os.O_CREAT | os.O_EXCL, 0o644)

    assert e.value.errno == errno.EEXIST


def test_create_root(fs):
    with pytest.raises(OSError) as e:
        fs.create("/", os.O_RDWR | os.O_CREAT, 0o644)

    assert e.value.errno == errno.EEXIST


def test_mknod(fs, redis_server):
    fs.mknod("/foo", stat.S_IFREG | 0o644, 0)
    assert redis_server.data[b"foo"] == b""

    with pytest.raises(OSError) as e:
        fs.mknod("/foo", stat.S_IFREG | 0o644, 0)

    assert e.value.errno == errno.EEXIST


def test_mknod_special(fs, redis_server):
    for file_type in (stat.S_IFIFO, stat.S_IFCHR, stat.S_IFSOCK):
        with pytest.raises(OSError) as e:
            fs.mknod("/foo", file_type | 0o644, 0)

        assert e.value.errno == errno.EINVAL

    assert redis_server.data == {}


def test_open(fs, redis_server):
    redis_server.data[b"foo"] = b"abc"

    assert fs.open("/foo", os.O_RDONLY) == os.O_RDONLY
    assert fs.open("/foo", os.O_RDWR) == os.O_RDWR

    assert redis_server.data[b"foo"] == b"abc"


def test_open_nonexistent(fs, redis_server):
    with pytest.raises(OSError) as e:
        fs.open("/foo", os.O_RDONLY)

    assert e.value.errno == errno.ENOENT
    assert redis_server.data == {}


def test_open_create(fs, redis_server):
    fs.open("/foo", os.O_WRONLY | os.O_CREAT)
    assert redis_server.data[b"foo"] == b""


def test_open_truncate(fs, redis_server):
    redis_server.data[b"foo"] = b"abc"

    fs.open("/foo", os.O_WRONLY | os.O_TRUNC)

    assert redis_server.data[b"foo"] == b""


def test_open_root(fs):
    with pytest.raises(OSError) as e:
        fs.open("/", os.O_RDONLY)

    assert e.value.errno == errno.EISDIR


def test_read_write(fs, redis_server):
    fh = fs.create("/foo", os.O_RDWR | os.O_CREAT, 0o644)

    assert fs.write("/foo", fh, 0, b"hello world") == 11
    assert fs.read("/foo", fh, 0, 5) == b"hello"
    assert fs.read("/foo", fh, 6, 100) == b"world"
    assert fs.read("/foo", fh, 11, 100) == b""
    assert fs.read("/foo", fh, 0, 0) == b""

    assert fs.write("/foo", fh, 6, b"there") == 5
    assert redis_server.data[b"foo"] == b"hello there"


def test_write_beyond_end(fs, redis_server):
    fh = fs.create("/foo", os.O_RDWR | os.O_CREAT, 0o644)

    fs.write("/foo", fh, 1000, b"x")

    assert fs.getattr("/foo", None)["st_size"] == 1001
    assert fs.read("/foo", fh, 0, 1000) == b"\0" * 1000


def test_read_write_only(fs, redis_server):
    redis_server.data[b"foo"] = b"abc"

    fh = fs.open("/foo", os.O_WRONLY)

    with pytest.raises(OSError) as e:
        fs.read("/foo", fh, 0, 3)

    assert e.value.errno == errno.EBADF


def test_write_read_only(fs, redis_server):
    redis_server.data[b"foo"] = b"abc"

    fh = fs.open("/foo", os.O_RDONLY)

    with pytest.raises(OSError) as e:
        fs.write("/foo", fh, 0, b"x")

    assert e.value.errno == errno.EBADF
    assert redis_server.data[b"foo"] == b"abc"


def test_read_write_root(fs):
    with pytest.raises(OSError) as e:
        fs.read("/", os.O_RDONLY, 0, 10)

    assert e.value.errno == errno.EISDIR

    with pytest.raises(OSError) as e:
        fs.write("/", os.O_WRONLY, 0, b"x")

    assert e.value.errno == errno.EISDIR


def test_truncate_grow(fs, redis_server):
    redis_server.data[b"foo"] = b"x" * 512

    fs.truncate("/foo", None, 1024)

    assert redis_server.data[b"foo"] == b"x" * 512 + b"\0" * 512


def test_truncate_shrink(fs, redis_server):
    redis_server.data[b"foo"] = b"abcdef" * 200

    fs.truncate("/foo", None, 512)
    assert redis_server.data[b"foo"] == (b"abcdef" * 200)[:512]

    fs.truncate("/foo", None, 0)
    assert redis_server.data[b"foo"] == b""
    assert fs.getattr("/foo", None)["st_size"] == 0


def test_truncate_same_size(fs, redis_server):
    redis_server.data[b"foo"] = b"abc"

    fs.truncate("/foo", None, 3)

    assert redis_server.data[b"foo"] == b"abc"
    assert not any(cmd[0] in ("SET", "SETRANGE") for cmd in redis_server.commands)


def test_truncate_nonexistent(fs, redis_server):
    with pytest.raises(OSError) as e:
        fs.truncate("/foo", None, 10)

    assert e.value.errno == errno.ENOENT
    assert redis_server.data == {}


def test_truncate_invalid(fs, redis_server):
    redis_server.data[b"foo"] = b"abc"

    with pytest.raises(OSError) as e:
        fs.truncate("/foo", None, -1)

    assert e.value.errno == errno.EINVAL

    with pytest.raises(OSError) as e:
        fs.truncate("/", None, 0)

    assert e.value.errno == errno.EISDIR


def test_rename(fs, redis_server):
    redis_server.data[b"foo"] = b"abc"

    fs.rename("/foo", "/bar")

    assert redis_server.data == {b"bar": b"abc"}


def test_rename_replace(fs, redis_server):
    redis_server.data[b"foo"] = b"new"
    redis_server.data[b"bar"] = b"old"

    fs.rename("/foo", "/bar")

    assert redis_server.data == {b"bar": b"new"}

    with pytest.raises(OSError) as e:
        fs.getattr("/foo", None)

    assert e.value.errno == errno.ENOENT


def test_rename_nonexistent(fs):
    with pytest.raises(OSError) as e:
        fs.rename("/foo", "/bar")

    assert e.value.errno == errno.EIO


def test_unlink(fs, redis_server):
    redis_server.data[b"foo"] = b"abc"

    fs.unlink("/foo")
    assert redis_server.data == {}

    with pytest.raises(OSError) as e:
        fs.unlink("/foo")

    assert e.value.errno == errno.ENOENT


def test_unlink_root(fs):
    with pytest.raises(OSError) as e:
        fs.unlink("/")

    assert e.value.errno == errno.EISDIR


def test_opendir(fs):
    assert fs.opendir("/") == 0

    with pytest.raises(OSError) as e:
        fs.opendir("/foo")

    assert e.value.errno == errno.ENOTDIR


def test_readdir(fs, redis_server):
    for key in (b"a", b"b", b"c"):
        redis_server.data[key] = b""

    filler = mock.Mock(return_value=0)
    fs.readdir("/", filler, 0)

    assert sorted(c.args[0] for c in filler.call_args_list) == ["a", "b", "c"]


def test_readdir_empty(fs):
    filler = mock.Mock(return_value=0)
    fs.readdir("/", filler, 0)

    filler.assert_not_called()


def test_readdir_buffer_full(fs, redis_server):
    for key in (b"a", b"b", b"c"):
        redis_server.data[key] = b""

    filler = mock.Mock(side_effect=[0, 1, 0])

    with pytest.raises(OSError) as e:
        fs.readdir("/", filler, 0)

    assert e.value.errno == errno.ENOMEM
    assert filler.call_count == 2


def test_readdir_not_root(fs):
    with pytest.raises(OSError) as e:
        fs.readdir("/foo", mock.Mock(return_value=0), 0)

    assert e.value.errno == errno.ENOTDIR


def test_noops(fs, redis_server):
    redis_server.data[b"foo"] = b"abc"
    fh = fs.open("/foo", os.O_RDWR)

    commands = len(redis_server.commands)

    fs.flush("/foo", fh)
    fs.fsync("/foo", fh, False)
    fs.release("/foo", fh)

    assert len(redis_server.commands) == commands


def test_destroy(fs, store_connection):
    fs.destroy()

    assert store_connection.state == ConnectionState.CLOSED
