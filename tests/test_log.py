import struct

import pytest

from xvfs.bcache import BufferCache
from xvfs.disk import MemoryDisk
from xvfs.layout import BSIZE, SUPERBLOCK_SIZE, KernelPanic, SuperBlock
from xvfs.log import Log

FSSIZE = 64
LOGSTART = 2


def make_image(nlog=10):
    sb = SuperBlock(
        size=FSSIZE,
        nblocks=FSSIZE - (4 + nlog),
        ninodes=8,
        nlog=nlog,
        logstart=LOGSTART,
        inodestart=LOGSTART + nlog,
        bmapstart=LOGSTART + nlog + 1,
    )
    image = bytearray(FSSIZE * BSIZE)
    image[BSIZE:BSIZE + SUPERBLOCK_SIZE] = sb.pack()
    return image


def make_log(image=None, nlog=10, logsize=30, maxopblocks=3):
    disk = MemoryDisk(image if image is not None else make_image(nlog), dev=1)
    cache = BufferCache(disk, 30)
    return disk, cache, Log(cache, 1, logsize, maxopblocks)


def block_of(disk, blockno):
    return disk.image()[blockno * BSIZE:(blockno + 1) * BSIZE]


def logged_write(cache, log, blockno, fill):
    buf = cache.read(1, blockno)
    buf.data[:] = fill * BSIZE
    log.write(buf)
    cache.release(buf)


def test_transaction_installs_blocks_at_home():
    disk, cache, log = make_log()
    with log.transaction():
        logged_write(cache, log, 40, b"x")
        logged_write(cache, log, 41, b"y")
        assert block_of(disk, 40) == bytes(BSIZE)
    assert block_of(disk, 40) == b"x" * BSIZE
    assert block_of(disk, 41) == b"y" * BSIZE
    assert struct.unpack_from("<i", block_of(disk, LOGSTART))[0] == 0
    assert log.blocks == []
    assert log.outstanding == 0 and not log.committing


def test_repeated_writes_are_absorbed():
    _, cache, log = make_log()
    log.begin_op()
    logged_write(cache, log, 40, b"a")
    logged_write(cache, log, 40, b"b")
    assert log.blocks == [40]
    log.end_op()
    assert log.blocks == []


def test_write_outside_transaction_panics():
    _, cache, log = make_log()
    buf = cache.read(1, 40)
    with pytest.raises(KernelPanic):
        log.write(buf)


def test_transaction_too_big_panics():
    _, cache, log = make_log(nlog=4)
    log.begin_op()
    for blockno in (40, 41, 42):
        logged_write(cache, log, blockno, b"t")
    buf = cache.read(1, 43)
    with pytest.raises(KernelPanic):
        log.write(buf)


def test_header_too_big_panics():
    image = make_image()
    disk = MemoryDisk(image, dev=1)
    with pytest.raises(KernelPanic):
        Log(BufferCache(disk, 30), 1, BSIZE // 4, 3)


def test_recovery_installs_committed_transaction():
    image = make_image()
    struct.pack_into("<ii", image, LOGSTART * BSIZE, 1, 50)
    image[(LOGSTART + 1) * BSIZE:(LOGSTART + 2) * BSIZE] = b"r" * BSIZE
    disk, _, log = make_log(image)
    assert block_of(disk, 50) == b"r" * BSIZE
    assert struct.unpack_from("<i", block_of(disk, LOGSTART))[0] == 0
    assert log.blocks == []


def test_recovery_of_empty_log_changes_nothing():
    image = make_image()
    image[50 * BSIZE:51 * BSIZE] = b"k" * BSIZE
    disk, _, _ = make_log(image)
    assert block_of(disk, 50) == b"k" * BSIZE


def test_transaction_ends_even_on_error():
    disk, cache, log = make_log()
    with pytest.raises(ValueError):
        with log.transaction():
            logged_write(cache, log, 45, b"e")
            raise ValueError("boom")
    assert log.outstanding == 0
    assert not log.committing
    assert block_of(disk, 45) == b"e" * BSIZE


def test_nested_operations_commit_once_last_ends():
    disk, cache, log = make_log()
    log.begin_op()
    log.begin_op()
    logged_write(cache, log, 46, b"n")
    log.end_op()
    assert block_of(disk, 46) == bytes(BSIZE)
    log.end_op()
    assert block_of(disk, 46) == b"n" * BSIZE