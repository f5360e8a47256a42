"""Inodes, directories and path names on top of the buffer cache and log."""

from __future__ import annotations

import errno
import struct
import threading
from dataclasses import dataclass, field

from .layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    DIRENT_SIZE,
    DIRSIZ,
    IPB,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    DirEntry,
    DiskInode,
    InodeType,
    KernelPanic,
    SuperBlock,
)

# Major device number of the console.
CONSOLE = 1

_UINT = struct.Struct("<I")


class _SleepLock:
    """A lock that remembers which thread holds it."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._owner: int | None = None

    def acquire(self) -> None:
        self._lock.acquire()
        self._owner = threading.get_ident()

    def release(self) -> None:
        self._owner = None
        self._lock.release()

    def holding(self) -> bool:
        return self._lock.locked() and self._owner == threading.get_ident()


@dataclass(frozen=True)
class Stat:
    """Metadata about an inode."""

    dev: int
    ino: int
    type: int
    nlink: int
    size: int


def _zero_addrs() -> list[int]:
    return [0] * (NDIRECT + 1)


@dataclass(eq=False)
class Inode:
    """In-memory copy of an inode."""

    dev: int = 0
    inum: int = 0
    ref: int = 0
    valid: bool = False
    type: int = 0
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: list[int] = field(default_factory=_zero_addrs)
    lock: _SleepLock = field(default_factory=_SleepLock, repr=False)


def skipelem(path: str) -> tuple[str, str] | None:
    """Split off the first element of ``path``.

    Returns ``(name, rest)`` where ``rest`` has no leading slashes, or
    ``None`` when there is no element left.
    """
    path = path.lstrip("/")
    if not path:
        return None
    element, _, rest = path.partition("/")
    return element[:DIRSIZ], rest.lstrip("/")


class FileSystem:
    """Inode cache and file-system operations on one device.

    ``devsw`` maps a major device number to an object with ``read(ip, n)``
    and ``write(ip, data)`` methods, used for device inodes.
    """

    def __init__(self, cache, log, dev: int, ninode: int) -> None:
        if ninode < 1:
            raise ValueError("the inode cache needs at least one entry")
        self.cache = cache
        self.log = log
        self.dev = dev
        self.devsw: dict[int, object] = {}
        self._lock = threading.Lock()
        self._inodes = [Inode() for _ in range(ninode)]
        with cache.block(dev, 1) as bp:
            self.sb = SuperBlock.unpack(bp.data)

    # Blocks.

    def _bzero(self, blockno: int) -> None:
        with self.cache.block(self.dev, blockno) as bp:
            bp.data[:] = bytes(BSIZE)
            self.log.write(bp)

    def _claim_bit(self, bp, count: int) -> int | None:
        for bi in range(count):
            mask = 1 << (bi % 8)
            if not bp.data[bi // 8] & mask:
                bp.data[bi // 8] |= mask
                self.log.write(bp)
                return bi
        return None

    def _balloc(self) -> int:
        for base in range(0, self.sb.size, BPB):
            with self.cache.block(self.dev, self.sb.bitmap_block(base)) as bp:
                bi = self._claim_bit(bp, min(BPB, self.sb.size - base))
            if bi is not None:
                self._bzero(base + bi)
                return base + bi
        raise KernelPanic("balloc: out of blocks")

    def _bfree(self, blockno: int) -> None:
        with self.cache.block(self.dev, self.sb.bitmap_block(blockno)) as bp:
            bi = blockno % BPB
            mask = 1 << (bi % 8)
            if not bp.data[bi // 8] & mask:
                raise KernelPanic("freeing free block")
            bp.data[bi // 8] &= ~mask & 0xFF
            self.log.write(bp)

    # Inodes.

    def _dinode_offset(self, inum: int) -> int:
        return (inum % IPB) * DINODE_SIZE

    def ialloc(self, itype) -> Inode:
        """Allocate an inode of the given type; returned unlocked and referenced."""
        for inum in range(1, self.sb.ninodes):
            off = self._dinode_offset(inum)
            with self.cache.block(self.dev, self.sb.inode_block(inum)) as bp:
                dip = DiskInode.unpack(bp.data[off:off + DINODE_SIZE])
                if dip.type == InodeType.FREE:
                    bp.data[off:off + DINODE_SIZE] = DiskInode(type=int(itype)).pack()
                    self.log.write(bp)
                    break
        else:
            raise KernelPanic("ialloc: no inodes")
        return self.iget(inum)

    def iupdate(self, ip: Inode) -> None:
        """Copy a modified in-memory inode to disk."""
        off = self._dinode_offset(ip.inum)
        dip = DiskInode(ip.type, ip.major, ip.minor, ip.nlink, ip.size, list(ip.addrs))
        with self.cache.block(ip.dev, self.sb.inode_block(ip.inum)) as bp:
            bp.data[off:off + DINODE_SIZE] = dip.pack()
            self.log.write(bp)

    def iget(self, inum: int) -> Inode:
        """Find or make the cached inode ``inum``, without locking or reading it."""
        with self._lock:
            empty = None
            for ip in self._inodes:
                if ip.ref > 0 and ip.dev == self.dev and ip.inum == inum:
                    ip.ref += 1
                    return ip
                if empty is None and ip.ref == 0:
                    empty = ip
            if empty is None:
                raise KernelPanic("iget: no inodes")
            empty.dev = self.dev
            empty.inum = inum
            empty.ref = 1
            empty.valid = False
            return empty

    def idup(self, ip: Inode) -> Inode:
        """Add a reference to ``ip`` and return it."""
        with self._lock:
            ip.ref += 1
        return ip

    def ilock(self, ip: Inode) -> None:
        """Lock an inode, reading it from disk if necessary."""
        if ip is None or ip.ref < 1:
            raise KernelPanic("ilock")
        ip.lock.acquire()
        if not ip.valid:
            off = self._dinode_offset(ip.inum)
            with self.cache.block(ip.dev, self.sb.inode_block(ip.inum)) as bp:
                dip = DiskInode.unpack(bp.data[off:off + DINODE_SIZE])
            ip.type = dip.type
            ip.major = dip.major
            ip.minor = dip.minor
            ip.nlink = dip.nlink
            ip.size = dip.size
            ip.addrs = list(dip.addrs)
            ip.valid = True
            if ip.type == InodeType.FREE:
                raise KernelPanic("ilock: no type")

    def iunlock(self, ip: Inode) -> None:
        """Unlock an inode locked by this thread."""
        if ip is None or not ip.lock.holding() or ip.ref < 1:
            raise KernelPanic("iunlock")
        ip.lock.release()

    def iput(self, ip: Inode) -> None:
        """Drop a reference; free the inode on disk if it was the last and unlinked.

        Must run inside a transaction.
        """
        ip.lock.acquire()
        try:
            if ip.valid and ip.nlink == 0:
                with self._lock:
                    refs = ip.ref
                if refs == 1:
                    self._itrunc(ip)
                    ip.type = InodeType.FREE
                    self.iupdate(ip)
                    ip.valid = False
        finally:
            ip.lock.release()
        with self._lock:
            ip.ref -= 1

    def iunlockput(self, ip: Inode) -> None:
        """Unlock, then drop a reference."""
        self.iunlock(ip)
        self.iput(ip)

    def _bmap(self, ip: Inode, bn: int) -> int:
        if bn < NDIRECT:
            if ip.addrs[bn] == 0:
                ip.addrs[bn] = self._balloc()
            return ip.addrs[bn]
        bn -= NDIRECT
        if bn < NINDIRECT:
            if ip.addrs[NDIRECT] == 0:
                ip.addrs[NDIRECT] = self._balloc()
            with self.cache.block(ip.dev, ip.addrs[NDIRECT]) as bp:
                (addr,) = _UINT.unpack_from(bp.data, 4 * bn)
                if addr == 0:
                    addr = self._balloc()
                    _UINT.pack_into(bp.data, 4 * bn, addr)
                    self.log.write(bp)
            return addr
        raise KernelPanic("bmap: out of range")

    def _itrunc(self, ip: Inode) -> None:
        for i, addr in enumerate(ip.addrs[:NDIRECT]):
            if addr:
                self._bfree(addr)
                ip.addrs[i] = 0
        if ip.addrs[NDIRECT]:
            with self.cache.block(ip.dev, ip.addrs[NDIRECT]) as bp:
                entries = struct.unpack_from(f"<{NINDIRECT}I", bp.data)
            for addr in entries:
                if addr:
                    self._bfree(addr)
            self._bfree(ip.addrs[NDIRECT])
            ip.addrs[NDIRECT] = 0
        ip.size = 0
        self.iupdate(ip)

    def stati(self, ip: Inode) -> Stat:
        """Metadata of a locked inode."""
        return Stat(ip.dev, ip.inum, ip.type, ip.nlink, ip.size)

    def _device(self, ip: Inode, op: str):
        handler = getattr(self.devsw.get(ip.major), op, None)
        if handler is None:
            raise OSError(errno.ENODEV, f"no {op} handler for device {ip.major}")
        return handler

    def readi(self, ip: Inode, off: int, n: int) -> bytes:
        """Read up to ``n`` bytes at ``off`` from a locked inode."""
        if ip.type == InodeType.DEV:
            return self._device(ip, "read")(ip, n)
        if off < 0 or n < 0 or off > ip.size:
            raise ValueError(f"cannot read {n} bytes at offset {off}")
        n = min(n, ip.size - off)
        out = bytearray()
        while len(out) < n:
            blockno = self._bmap(ip, off // BSIZE)
            start = off % BSIZE
            m = min(n - len(out), BSIZE - start)
            with self.cache.block(ip.dev, blockno) as bp:
                out += bp.data[start:start + m]
            off += m
        return bytes(out)

    def writei(self, ip: Inode, data: bytes, off: int) -> int:
        """Write ``data`` at ``off`` into a locked inode; returns bytes written."""
        if ip.type == InodeType.DEV:
            return self._device(ip, "write")(ip, data)
        n = len(data)
        if off < 0 or off > ip.size:
            raise ValueError(f"cannot write at offset {off}")
        if off + n > MAXFILE * BSIZE:
            raise ValueError("write would exceed the maximum file size")
        done = 0
        while done < n:
            blockno = self._bmap(ip, off // BSIZE)
            start = off % BSIZE
            m = min(n - done, BSIZE - start)
            with self.cache.block(ip.dev, blockno) as bp:
                bp.data[start:start + m] = data[done:done + m]
                self.log.write(bp)
            done += m
            off += m
        if n > 0 and off > ip.size:
            ip.size = off
            self.iupdate(ip)
        return n

    # Directories.

    def _entries(self, dp: Inode, what: str):
        for off in range(0, dp.size, DIRENT_SIZE):
            raw = self.readi(dp, off, DIRENT_SIZE)
            if len(raw) != DIRENT_SIZE:
                raise KernelPanic(f"{what} read")
            yield off, DirEntry.unpack(raw)

    def dirlookup(self, dp: Inode, name: str) -> tuple[Inode, int] | None:
        """Find ``name`` in a locked directory; returns the inode and entry offset."""
        if dp.type != InodeType.DIR:
            raise KernelPanic("dirlookup not DIR")
        for off, de in self._entries(dp, "dirlookup"):
            if de.inum != 0 and de.name_matches(name):
                return self.iget(de.inum), off
        return None

    def dirlink(self, dp: Inode, name: str, inum: int) -> None:
        """Add the entry (name, inum) to a locked directory."""
        found = self.dirlookup(dp, name)
        if found is not None:
            self.iput(found[0])
            raise FileExistsError(name)
        slot = next(
            (off for off, de in self._entries(dp, "dirlink") if de.inum == 0),
            dp.size,
        )
        if self.writei(dp, DirEntry(inum, name).pack(), slot) != DIRENT_SIZE:
            raise KernelPanic("dirlink")

    # Paths.

    def _namex(self, path: str, parent: bool, cwd: Inode | None):
        if path.startswith("/") or cwd is None:
            ip = self.iget(ROOTINO)
        else:
            ip = self.idup(cwd)
        name = ""
        while (step := skipelem(path)) is not None:
            name, path = step
            self.ilock(ip)
            if ip.type != InodeType.DIR:
                self.iunlockput(ip)
                return None
            if parent and path == "":
                self.iunlock(ip)
                return ip, name
            found = self.dirlookup(ip, name)
            self.iunlockput(ip)
            if found is None:
                return None
            ip = found[0]
        if parent:
            self.iput(ip)
            return None
        return ip, name

    def namei(self, path: str, cwd: Inode | None = None) -> Inode | None:
        """The referenced, unlocked inode for ``path``, or None."""
        result = self._namex(path, False, cwd)
        return None if result is None else result[0]

    def nameiparent(self, path: str, cwd: Inode | None = None) -> tuple[Inode, str] | None:
        """The parent directory of ``path`` and the final element's name, or None."""
        return self._namex(path, True, cwd)