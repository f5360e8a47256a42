"""Buffer cache: cached, lockable copies of disk blocks."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

from .layout import BSIZE, KernelPanic


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


@dataclass(eq=False)
class Buf:
    """A cached disk block."""

    dev: int = 0
    blockno: int = 0
    valid: bool = False
    dirty: bool = False
    refcnt: int = 0
    data: bytearray = field(default_factory=lambda: bytearray(BSIZE))
    lock: _SleepLock = field(default_factory=_SleepLock, repr=False)


class BufferCache:
    """A fixed set of buffers kept in most-recently-used order."""

    def __init__(self, disk, nbuf: int) -> None:
        if nbuf < 1:
            raise ValueError("the cache needs at least one buffer")
        self._disk = disk
        self._lock = threading.Lock()
        # Most recently used first.
        self._lru = [Buf() for _ in range(nbuf)]

    def _get(self, dev: int, blockno: int) -> Buf:
        with self._lock:
            buf = next(
                (b for b in self._lru if b.dev == dev and b.blockno == blockno),
                None,
            )
            if buf is None:
                # A dirty buffer is pinned by the log even when unreferenced.
                buf = next(
                    (b for b in reversed(self._lru) if b.refcnt == 0 and not b.dirty),
                    None,
                )
                if buf is None:
                    raise KernelPanic("bget: no buffers")
                buf.dev = dev
                buf.blockno = blockno
                buf.valid = False
                buf.dirty = False
                buf.refcnt = 0
            buf.refcnt += 1
        buf.lock.acquire()
        return buf

    def read(self, dev: int, blockno: int) -> Buf:
        """Return a locked buffer holding the block's contents."""
        buf = self._get(dev, blockno)
        if not buf.valid:
            self._disk.sync(buf)
        return buf

    def write(self, buf: Buf) -> None:
        """Write a locked buffer's contents to disk."""
        if not buf.lock.holding():
            raise KernelPanic("bwrite")
        buf.dirty = True
        self._disk.sync(buf)

    def release(self, buf: Buf) -> None:
        """Unlock a buffer; once unreferenced it becomes most recently used."""
        if not buf.lock.holding():
            raise KernelPanic("brelse")
        buf.lock.release()
        with self._lock:
            buf.refcnt -= 1
            if buf.refcnt == 0:
                self._lru.remove(buf)
                self._lru.insert(0, buf)

    @contextmanager
    def block(self, dev: int, blockno: int) -> Iterator[Buf]:
        """Read a block and release it when the block ends."""
        buf = self.read(dev, blockno)
        try:
            yield buf
        finally:
            self.release(buf)