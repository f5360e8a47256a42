import pytest

from xvfs.bcache import BufferCache
from xvfs.disk import MemoryDisk
from xvfs.fs import FileSystem
from xvfs.layout import (
    BSIZE,
    DINODE_SIZE,
    DIRENT_SIZE,
    IPB,
    MAXFILE,
    ROOTINO,
    DirEntry,
    DiskInode,
    InodeType,
    SuperBlock,
)
from xvfs.log import Log
from xvfs.mkfs import ImageBuilder, build_image, main


def mount(image):
    disk = MemoryDisk(image, dev=1)
    cache = BufferCache(disk, 60)
    log = Log(cache, 1, 30, 10)
    return FileSystem(cache, log, 1, 50)


def read_file(fs, path):
    with fs.log.transaction():
        ip = fs.namei(path)
        assert ip is not None
        fs.ilock(ip)
        try:
            return fs.readi(ip, 0, ip.size)
        finally:
            fs.iunlockput(ip)


def inode_at(image, sb, inum):
    off = sb.inode_block(inum) * BSIZE + (inum % IPB) * DINODE_SIZE
    return DiskInode.unpack(image[off:off + DINODE_SIZE])


def test_superblock_layout():
    builder = ImageBuilder(fssize=1000, nlog=30, ninodes=200)
    image = builder.finish()
    assert len(image) == 1000 * BSIZE
    sb = SuperBlock.unpack(image[BSIZE:2 * BSIZE])
    assert sb == builder.sb
    assert sb.size == 1000 and sb.ninodes == 200 and sb.nlog == 30
    assert sb.logstart == 2
    assert sb.inodestart == sb.logstart + sb.nlog
    assert sb.bmapstart == sb.inodestart + builder.ninodeblocks
    assert sb.nblocks + builder.nmeta == sb.size


def test_root_directory():
    builder = ImageBuilder()
    image = builder.finish()
    root = inode_at(image, builder.sb, ROOTINO)
    assert root.type == InodeType.DIR
    assert root.nlink == 1
    assert root.size == BSIZE
    block = root.addrs[0] * BSIZE
    first = DirEntry.unpack(image[block:block + DIRENT_SIZE])
    second = DirEntry.unpack(image[block + DIRENT_SIZE:block + 2 * DIRENT_SIZE])
    assert first == DirEntry(ROOTINO, ".")
    assert second == DirEntry(ROOTINO, "..")


def test_files_readable_and_underscore_dropped():
    fs = mount(build_image([("_cat", b"meow"), ("README", b"readme text")]))
    assert read_file(fs, "/cat") == b"meow"
    assert read_file(fs, "/README") == b"readme text"
    with fs.log.transaction():
        assert fs.namei("/_cat") is None


def test_mapping_input():
    fs = mount(build_image({"notes": b"abc"}))
    assert read_file(fs, "/notes") == b"abc"


def test_large_file_uses_indirect_block():
    data = bytes(i % 251 for i in range(20 * BSIZE + 100))
    builder = ImageBuilder()
    inum = builder.add_file("big", data)
    image = builder.finish()
    assert inode_at(image, builder.sb, inum).addrs[-1] != 0
    assert read_file(mount(image), "/big") == data


def test_file_too_large_raises():
    builder = ImageBuilder()
    with pytest.raises(ValueError):
        builder.add_file("huge", bytes(MAXFILE * BSIZE + 1))


def test_slash_in_name_raises():
    builder = ImageBuilder()
    with pytest.raises(ValueError):
        builder.add_file("a/b", b"x")


def test_bitmap_marks_used_blocks():
    builder = ImageBuilder()
    builder.add_file("f", b"z" * 3000)
    image = builder.finish()
    bitmap = image[builder.sb.bmapstart * BSIZE:(builder.sb.bmapstart + 1) * BSIZE]
    used = builder.freeblock

    def bit(i):
        return bool(bitmap[i // 8] & (1 << (i % 8)))

    assert all(bit(i) for i in range(used))
    assert not any(bit(i) for i in range(used, used + 50))


def test_finish_is_stable_and_closes_builder():
    builder = ImageBuilder()
    first = builder.finish()
    assert builder.finish() == first
    with pytest.raises(RuntimeError):
        builder.add_file("late", b"x")


def test_inode_exhaustion_raises():
    builder = ImageBuilder(ninodes=3)
    builder.add_file("a", b"")
    with pytest.raises(ValueError):
        builder.add_file("b", b"")


def test_main_writes_image(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "README").write_bytes(b"from disk")
    assert main(["fs.img", "README"]) == 0
    image = (tmp_path / "fs.img").read_bytes()
    assert len(image) == 1000 * BSIZE
    assert read_file(mount(image), "/README") == b"from disk"
    assert "balloc: first" in capsys.readouterr().out


def test_main_usage(capsys):
    assert main([]) == 1
    assert "Usage: mkfs fs.img files..." in capsys.readouterr().err


def test_main_missing_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert main(["fs.img", "missing"]) == 1