"""On-disk file system format: superblock, inodes and directory entries."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass, field

ROOTINO = 1
BSIZE = 512

NDIRECT = 12
NINDIRECT = BSIZE // 4
MAXFILE = NDIRECT + NINDIRECT

DIRSIZ = 14

_SUPERBLOCK = struct.Struct("<7I")
_DINODE = struct.Struct(f"<4hI{NDIRECT + 1}I")
_DIRENT = struct.Struct(f"<H{DIRSIZ}s")

SUPERBLOCK_SIZE = _SUPERBLOCK.size
DINODE_SIZE = _DINODE.size
DIRENT_SIZE = _DIRENT.size

# Inodes per block.
IPB = BSIZE // DINODE_SIZE
# Bitmap bits per block.
BPB = BSIZE * 8


class KernelPanic(RuntimeError):
    """An unrecoverable inconsistency detected by the file system."""


class InodeType(enum.IntEnum):
    """Type of an inode as stored on disk; zero marks a free inode."""

    FREE = 0
    DIR = 1
    FILE = 2
    DEV = 3


def _need(data: bytes, size: int, what: str) -> None:
    if len(data) < size:
        raise ValueError(f"{what} needs {size} bytes, got {len(data)}")


@dataclass
class SuperBlock:
    """Describes the disk layout."""

    size: int
    nblocks: int
    ninodes: int
    nlog: int
    logstart: int
    inodestart: int
    bmapstart: int

    def pack(self) -> bytes:
        return _SUPERBLOCK.pack(
            self.size,
            self.nblocks,
            self.ninodes,
            self.nlog,
            self.logstart,
            self.inodestart,
            self.bmapstart,
        )

    @classmethod
    def unpack(cls, data) -> "SuperBlock":
        _need(data, SUPERBLOCK_SIZE, "superblock")
        return cls(*_SUPERBLOCK.unpack_from(data))

    def inode_block(self, inum: int) -> int:
        """Block holding inode ``inum``."""
        return inum // IPB + self.inodestart

    def bitmap_block(self, blockno: int) -> int:
        """Free-map block holding the bit for ``blockno``."""
        return blockno // BPB + self.bmapstart


def _zero_addrs() -> list[int]:
    return [0] * (NDIRECT + 1)


@dataclass
class DiskInode:
    """On-disk inode structure."""

    type: int = 0
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: list[int] = field(default_factory=_zero_addrs)

    def pack(self) -> bytes:
        if len(self.addrs) != NDIRECT + 1:
            raise ValueError(f"an inode has {NDIRECT + 1} block addresses")
        return _DINODE.pack(
            self.type, self.major, self.minor, self.nlink, self.size, *self.addrs
        )

    @classmethod
    def unpack(cls, data) -> "DiskInode":
        _need(data, DINODE_SIZE, "inode")
        itype, major, minor, nlink, size, *addrs = _DINODE.unpack_from(data)
        return cls(itype, major, minor, nlink, size, list(addrs))


def _encode_name(name: str) -> bytes:
    return name.encode("utf-8")[:DIRSIZ]


@dataclass
class DirEntry:
    """One entry of a directory file."""

    inum: int
    name: str

    def pack(self) -> bytes:
        return _DIRENT.pack(self.inum, _encode_name(self.name))

    @classmethod
    def unpack(cls, data) -> "DirEntry":
        _need(data, DIRENT_SIZE, "directory entry")
        inum, raw = _DIRENT.unpack_from(data)
        return cls(inum, raw.split(b"\0", 1)[0].decode("utf-8", "replace"))

    def name_matches(self, name: str) -> bool:
        """Compare names on their first DIRSIZ bytes only."""
        return _encode_name(name) == _encode_name(self.name)