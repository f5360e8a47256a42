"""Open-file table: reference-counted handles on pipes and inodes."""

from __future__ import annotations

import enum
import errno
import threading
from dataclasses import dataclass

from .layout import BSIZE, KernelPanic
from .pipe import Pipe


class FileType(enum.Enum):
    """What an open file refers to."""

    NONE = 0
    PIPE = 1
    INODE = 2


@dataclass(eq=False)
class File:
    """An open file."""

    type: FileType = FileType.NONE
    ref: int = 0
    readable: bool = False
    writable: bool = False
    pipe: Pipe | None = None
    ip: object = None
    off: int = 0


class FileTable:
    """A fixed number of open-file slots shared by everyone."""

    def __init__(self, fs, nfile: int, maxopblocks: int) -> None:
        self.fs = fs
        self.maxopblocks = maxopblocks
        # Blocks touched per write chunk: inode, indirect, bitmap and 2 of slop.
        self._chunk = ((maxopblocks - 1 - 1 - 2) // 2) * BSIZE
        if self._chunk <= 0:
            raise ValueError("maxopblocks is too small to write anything")
        self._lock = threading.Lock()
        self._files = [File() for _ in range(nfile)]

    def alloc(self) -> File:
        """Take a free slot; raises OSError(ENFILE) when the table is full."""
        with self._lock:
            f = next((f for f in self._files if f.ref == 0), None)
            if f is None:
                raise OSError(errno.ENFILE, "file table full")
            f.ref = 1
            f.type = FileType.NONE
            f.readable = f.writable = False
            f.pipe = None
            f.ip = None
            f.off = 0
            return f

    def dup(self, f: File) -> File:
        """Add a reference to ``f`` and return it."""
        with self._lock:
            if f.ref < 1:
                raise KernelPanic("filedup")
            f.ref += 1
        return f

    def close(self, f: File) -> None:
        """Drop a reference; the last one releases the pipe end or inode."""
        with self._lock:
            if f.ref < 1:
                raise KernelPanic("fileclose")
            f.ref -= 1
            if f.ref > 0:
                return
            ftype, pipe, ip, writable = f.type, f.pipe, f.ip, f.writable
            f.type = FileType.NONE
            f.pipe = None
            f.ip = None

        if ftype is FileType.PIPE:
            pipe.close(writable)
        elif ftype is FileType.INODE:
            with self.fs.log.transaction():
                self.fs.iput(ip)

    def stat(self, f: File):
        """Metadata of the inode behind ``f``."""
        if f.type is not FileType.INODE:
            raise OSError(errno.EBADF, "not an inode file")
        self.fs.ilock(f.ip)
        try:
            return self.fs.stati(f.ip)
        finally:
            self.fs.iunlock(f.ip)

    def read(self, f: File, n: int) -> bytes:
        """Read up to ``n`` bytes from the file's current offset."""
        if not f.readable:
            raise OSError(errno.EBADF, "file not open for reading")
        if f.type is FileType.PIPE:
            return f.pipe.read(n)
        if f.type is FileType.INODE:
            self.fs.ilock(f.ip)
            try:
                data = self.fs.readi(f.ip, f.off, n)
                f.off += len(data)
            finally:
                self.fs.iunlock(f.ip)
            return data
        raise KernelPanic("fileread")

    def write(self, f: File, data) -> int:
        """Write all of ``data`` at the file's current offset."""
        if not f.writable:
            raise OSError(errno.EBADF, "file not open for writing")
        if f.type is FileType.PIPE:
            return f.pipe.write(data)
        if f.type is FileType.INODE:
            data = bytes(data)
            for start in range(0, len(data), self._chunk):
                chunk = data[start:start + self._chunk]
                with self.fs.log.transaction():
                    self.fs.ilock(f.ip)
                    try:
                        written = self.fs.writei(f.ip, chunk, f.off)
                        f.off += written
                    finally:
                        self.fs.iunlock(f.ip)
                if written != len(chunk):
                    raise KernelPanic("short filewrite")
            return len(data)
        raise KernelPanic("filewrite")

    def pipe_alloc(self) -> tuple[File, File]:
        """Create a pipe; returns its read end and its write end."""
        rf = self.alloc()
        try:
            wf = self.alloc()
        except OSError:
            self.close(rf)
            raise
        p = Pipe()
        rf.type, rf.readable, rf.writable, rf.pipe = FileType.PIPE, True, False, p
        wf.type, wf.readable, wf.writable, wf.pipe = FileType.PIPE, False, True, p
        return rf, wf