"""Build a file-system image holding a root directory and some files."""

from __future__ import annotations

import struct
import sys
from collections.abc import Mapping

from .layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    IPB,
    MAXFILE,
    NDIRECT,
    ROOTINO,
    DirEntry,
    DiskInode,
    InodeType,
    SuperBlock,
)

FSSIZE = 1000
LOGSIZE = 30
NINODES = 200

_UINT = struct.Struct("<I")


class ImageBuilder:
    """Lays out an image: boot block, superblock, log, inodes, bitmap, data."""

    def __init__(self, fssize: int = FSSIZE, nlog: int = LOGSIZE,
                 ninodes: int = NINODES) -> None:
        self.nbitmap = fssize // BPB + 1
        self.ninodeblocks = ninodes // IPB + 1
        self.nlog = nlog
        self.nmeta = 2 + nlog + self.ninodeblocks + self.nbitmap
        self.nblocks = fssize - self.nmeta
        if self.nblocks <= 0:
            raise ValueError("image too small for its metadata")
        self.sb = SuperBlock(
            size=fssize,
            nblocks=self.nblocks,
            ninodes=ninodes,
            nlog=nlog,
            logstart=2,
            inodestart=2 + nlog,
            bmapstart=2 + nlog + self.ninodeblocks,
        )
        self._image = bytearray(fssize * BSIZE)
        self._result: bytes | None = None
        self._freeinode = 1
        self.freeblock = self.nmeta

        self._image[BSIZE:BSIZE + len(self.sb.pack())] = self.sb.pack()
        self.rootino = self.ialloc(InodeType.DIR)
        if self.rootino != ROOTINO:
            raise RuntimeError("root inode has the wrong number")
        self.iappend(self.rootino, DirEntry(self.rootino, ".").pack())
        self.iappend(self.rootino, DirEntry(self.rootino, "..").pack())

    def _inode_offset(self, inum: int) -> int:
        return self.sb.inode_block(inum) * BSIZE + (inum % IPB) * DINODE_SIZE

    def _rinode(self, inum: int) -> DiskInode:
        off = self._inode_offset(inum)
        return DiskInode.unpack(self._image[off:off + DINODE_SIZE])

    def _winode(self, inum: int, din: DiskInode) -> None:
        off = self._inode_offset(inum)
        self._image[off:off + DINODE_SIZE] = din.pack()

    def _new_block(self) -> int:
        if self.freeblock >= self.sb.size:
            raise ValueError("image is out of data blocks")
        blockno = self.freeblock
        self.freeblock += 1
        return blockno

    def _check_open(self) -> None:
        if self._result is not None:
            raise RuntimeError("the image is already finished")

    def ialloc(self, itype) -> int:
        """Allocate the next inode with one link; returns its number."""
        self._check_open()
        if self._freeinode >= self.sb.ninodes:
            raise ValueError("image is out of inodes")
        inum = self._freeinode
        self._freeinode += 1
        self._winode(inum, DiskInode(type=int(itype), nlink=1, size=0))
        return inum

    def iappend(self, inum: int, data) -> None:
        """Append ``data`` to the contents of inode ``inum``."""
        self._check_open()
        data = bytes(data)
        din = self._rinode(inum)
        off = din.size
        if off + len(data) > MAXFILE * BSIZE:
            raise ValueError("file exceeds the maximum file size")
        pos = 0
        while pos < len(data):
            fbn = off // BSIZE
            if fbn < NDIRECT:
                if din.addrs[fbn] == 0:
                    din.addrs[fbn] = self._new_block()
                blockno = din.addrs[fbn]
            else:
                if din.addrs[NDIRECT] == 0:
                    din.addrs[NDIRECT] = self._new_block()
                slot = din.addrs[NDIRECT] * BSIZE + 4 * (fbn - NDIRECT)
                (blockno,) = _UINT.unpack_from(self._image, slot)
                if blockno == 0:
                    blockno = self._new_block()
                    _UINT.pack_into(self._image, slot, blockno)
            n1 = min(len(data) - pos, (fbn + 1) * BSIZE - off)
            start = blockno * BSIZE + off - fbn * BSIZE
            self._image[start:start + n1] = data[pos:pos + n1]
            pos += n1
            off += n1
        din.size = off
        self._winode(inum, din)

    def add_file(self, name: str, data) -> int:
        """Add a file to the root directory; a leading '_' is dropped from its name."""
        if "/" in name:
            raise ValueError(f"file name {name!r} contains '/'")
        if name.startswith("_"):
            name = name[1:]
        inum = self.ialloc(InodeType.FILE)
        self.iappend(self.rootino, DirEntry(inum, name).pack())
        self.iappend(inum, data)
        return inum

    def finish(self) -> bytes:
        """Round the root directory up to a whole block, write the bitmap, return the image."""
        if self._result is not None:
            return self._result
        din = self._rinode(self.rootino)
        din.size = (din.size // BSIZE + 1) * BSIZE
        self._winode(self.rootino, din)

        used = self.freeblock
        if used >= BPB:
            raise ValueError("too many blocks in use for one bitmap block")
        bitmap = bytearray(BSIZE)
        for i in range(used):
            bitmap[i // 8] |= 1 << (i % 8)
        start = self.sb.bmapstart * BSIZE
        self._image[start:start + BSIZE] = bitmap

        self._result = bytes(self._image)
        return self._result


def build_image(files, fssize: int = FSSIZE, nlog: int = LOGSIZE,
                ninodes: int = NINODES) -> bytes:
    """Build an image from (name, data) pairs or a name-to-data mapping."""
    builder = ImageBuilder(fssize, nlog, ninodes)
    items = files.items() if isinstance(files, Mapping) else files
    for name, data in items:
        builder.add_file(name, data)
    return builder.finish()


def main(argv=None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("Usage: mkfs fs.img files...", file=sys.stderr)
        return 1
    image_path, names = args[0], args[1:]

    builder = ImageBuilder()
    print(
        f"nmeta {builder.nmeta} (boot, super, log blocks {builder.nlog} "
        f"inode blocks {builder.ninodeblocks}, bitmap blocks {builder.nbitmap}) "
        f"blocks {builder.nblocks} total {builder.sb.size}"
    )
    for name in names:
        if "/" in name:
            print(f"mkfs: {name}: name must not contain '/'", file=sys.stderr)
            return 1
        try:
            with open(name, "rb") as fh:
                data = fh.read()
        except OSError as exc:
            print(f"{name}: {exc.strerror}", file=sys.stderr)
            return 1
        try:
            builder.add_file(name, data)
        except ValueError as exc:
            print(f"mkfs: {name}: {exc}", file=sys.stderr)
            return 1

    try:
        image = builder.finish()
    except ValueError as exc:
        print(f"mkfs: {exc}", file=sys.stderr)
        return 1
    print(f"balloc: first {builder.freeblock} blocks have been allocated")
    print(f"balloc: write bitmap block at sector {builder.sb.bmapstart}")

    try:
        with open(image_path, "wb") as fh:
            fh.write(image)
    except OSError as exc:
        print(f"{image_path}: {exc.strerror}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())