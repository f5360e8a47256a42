"""A disk whose blocks live in memory."""

from __future__ import annotations

from .layout import BSIZE, KernelPanic


class MemoryDisk:
    """Stores a whole file-system image in memory, block by block."""

    def __init__(self, image: bytes = b"", dev: int = 1) -> None:
        self._data = bytearray(image)
        self.dev = dev
        self.nblocks = len(self._data) // BSIZE

    def sync(self, buf) -> None:
        """Write a dirty buffer to disk, or read an invalid one from it."""
        if not buf.lock.holding():
            raise KernelPanic("iderw: buf not locked")
        if buf.valid and not buf.dirty:
            raise KernelPanic("iderw: nothing to do")
        if buf.dev != self.dev:
            raise KernelPanic(f"iderw: request not for disk {self.dev}")
        if not 0 <= buf.blockno < self.nblocks:
            raise KernelPanic("iderw: block out of range")

        start = buf.blockno * BSIZE
        if buf.dirty:
            buf.dirty = False
            self._data[start:start + BSIZE] = buf.data
        else:
            buf.data[:] = self._data[start:start + BSIZE]
        buf.valid = True

    def image(self) -> bytes:
        """A copy of the current disk contents."""
        return bytes(self._data)