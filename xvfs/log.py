"""Write-ahead redo log that makes groups of block writes atomic."""

from __future__ import annotations

import struct
import threading
from contextlib import contextmanager
from typing import Iterator

from .layout import BSIZE, KernelPanic, SuperBlock

_INT = struct.Struct("<i")


class Log:
    """Groups file-system operations into transactions committed together.

    The on-disk log is a header block listing block numbers, followed by
    copies of those blocks.  A commit writes the copies, then the header,
    then installs the blocks at their home locations and clears the header.
    """

    def __init__(self, cache, dev: int, logsize: int, maxopblocks: int) -> None:
        if _INT.size * (1 + logsize) >= BSIZE:
            raise KernelPanic("initlog: too big logheader")
        self._cache = cache
        self._cond = threading.Condition()
        self.dev = dev
        self.logsize = logsize
        self.maxopblocks = maxopblocks
        self.outstanding = 0
        self.committing = False
        self.blocks: list[int] = []

        with cache.block(dev, 1) as buf:
            sb = SuperBlock.unpack(buf.data)
        self.start = sb.logstart
        self.size = sb.nlog
        self.recover()

    def _read_head(self) -> None:
        with self._cache.block(self.dev, self.start) as buf:
            (n,) = _INT.unpack_from(buf.data)
            self.blocks = list(struct.unpack_from(f"<{n}i", buf.data, _INT.size))

    def _write_head(self) -> None:
        with self._cache.block(self.dev, self.start) as buf:
            _INT.pack_into(buf.data, 0, len(self.blocks))
            struct.pack_into(f"<{len(self.blocks)}i", buf.data, _INT.size, *self.blocks)
            self._cache.write(buf)

    def _copy_blocks(self, to_log: bool) -> None:
        for tail, blockno in enumerate(self.blocks):
            log_buf = self._cache.read(self.dev, self.start + tail + 1)
            home_buf = self._cache.read(self.dev, blockno)
            try:
                if to_log:
                    log_buf.data[:] = home_buf.data
                    self._cache.write(log_buf)
                else:
                    home_buf.data[:] = log_buf.data
                    self._cache.write(home_buf)
            finally:
                self._cache.release(home_buf)
                self._cache.release(log_buf)

    def _commit(self) -> None:
        if self.blocks:
            self._copy_blocks(to_log=True)
            self._write_head()  # the real commit point
            self._copy_blocks(to_log=False)
            self.blocks = []
            self._write_head()

    def recover(self) -> None:
        """Install any committed transaction found on disk, then clear the log."""
        self._read_head()
        self._copy_blocks(to_log=False)
        self.blocks = []
        self._write_head()

    def begin_op(self) -> None:
        """Start an operation, waiting while the log is committing or short of room."""
        with self._cond:
            while self.committing or (
                len(self.blocks) + (self.outstanding + 1) * self.maxopblocks
                > self.logsize
            ):
                self._cond.wait()
            self.outstanding += 1

    def end_op(self) -> None:
        """End an operation; the last outstanding one commits."""
        do_commit = False
        with self._cond:
            self.outstanding -= 1
            if self.committing:
                raise KernelPanic("log.committing")
            if self.outstanding == 0:
                do_commit = True
                self.committing = True
            else:
                self._cond.notify_all()

        if do_commit:
            try:
                self._commit()
            finally:
                with self._cond:
                    self.committing = False
                    self._cond.notify_all()

    @contextmanager
    def transaction(self) -> Iterator["Log"]:
        """Run the block as one file-system operation."""
        self.begin_op()
        try:
            yield self
        finally:
            self.end_op()

    def write(self, buf) -> None:
        """Record a modified buffer in the current transaction and pin it."""
        if len(self.blocks) >= self.logsize or len(self.blocks) >= self.size - 1:
            raise KernelPanic("too big a transaction")
        if self.outstanding < 1:
            raise KernelPanic("log_write outside of trans")
        with self._cond:
            if buf.blockno not in self.blocks:
                self.blocks.append(buf.blockno)
            buf.dirty = True