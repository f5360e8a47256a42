import pytest

from xvfs.bcache import BufferCache
from xvfs.disk import MemoryDisk
from xvfs.fs import FileSystem
from xvfs.layout import DIRSIZ, ROOTINO, InodeType
from xvfs.log import Log
from xvfs.ls import fmtname, ls
from xvfs.mkfs import build_image


def make_fs():
    image = build_image([("README", b"hello")])
    disk = MemoryDisk(image, dev=1)
    cache = BufferCache(disk, 60)
    log = Log(cache, 1, 30, 10)
    return FileSystem(cache, log, 1, 50)


def test_fmtname_pads_last_element():
    name = fmtname("/a/b/cat")
    assert len(name) == DIRSIZ
    assert name.rstrip() == "cat"


def test_fmtname_long_name_unchanged():
    assert fmtname("dir/abcdefghijklmnop") == "abcdefghijklmnop"


def test_ls_file():
    lines = ls(make_fs(), "/README")
    assert len(lines) == 1
    assert lines[0].split() == ["README", str(int(InodeType.FILE)), "2", "5"]


def test_ls_root_lists_entries_in_order():
    lines = ls(make_fs(), "/")
    fields = [line.split() for line in lines]
    assert [f[0] for f in fields] == [".", "..", "README"]
    assert fields[0][1:3] == [str(int(InodeType.DIR)), str(ROOTINO)]
    assert fields[1][2] == str(ROOTINO)


def test_ls_relative_to_cwd_matches_root():
    fs = make_fs()
    with fs.log.transaction():
        root = fs.namei("/")
    assert ls(fs, ".", root) == ls(fs, ".")
    assert [line.split()[0] for line in ls(fs, ".", root)] == [".", "..", "README"]


def test_ls_missing_raises():
    with pytest.raises(FileNotFoundError):
        ls(make_fs(), "/nope")


def test_ls_path_too_long():
    assert ls(make_fs(), "/" * 500) == ["ls: path too long"]