# xvfs

A small Unix-style file system held entirely in memory. The disk is a run of
512-byte blocks laid out as a boot block, a superblock, a write-ahead log,
inode blocks, a free-block bitmap and data blocks. On top of it sit a buffer
cache, a transaction log with crash recovery, inodes with twelve direct
blocks and one singly indirect block, directories, path lookup and an
open-file table with pipes. Alongside are a console line discipline, a PC
keyboard scan-code decoder, a tiny regular-expression `grep`, `printf`-style
formatters and a process table with a lottery scheduler.

## Installing

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Building a disk image

`xvfs-mkfs` writes a fresh image of 1000 blocks (30 log blocks, 200 inodes)
and copies the named files into its root directory. A leading `_` in a file
name is dropped, so `_cat` is stored as `cat`; names containing `/` are
refused.

```
xvfs-mkfs fs.img README _cat _ls
```

From Python, `xvfs.mkfs.build_image(files, fssize, nlog, ninodes)` takes a
mapping or `(name, data)` pairs and returns the image as bytes.
`xvfs.mkfs.ImageBuilder` gives finer control through `ialloc`, `iappend`,
`add_file` and `finish`.

## Using the file system

```python
from xvfs.mkfs import build_image
from xvfs.disk import MemoryDisk
from xvfs.bcache import BufferCache
from xvfs.log import Log
from xvfs.fs import FileSystem

image = build_image({"hello": b"hello world\n"}, 1000, 30, 200)
disk = MemoryDisk(image, 1)
cache = BufferCache(disk, 30)
log = Log(cache, 1, 30, 10)
fs = FileSystem(cache, log, 1, 50)

with log.transaction():
    ip = fs.namei("/hello")
    fs.ilock(ip)
    print(fs.readi(ip, 0, ip.size))   # b'hello world\n'
    fs.iunlockput(ip)
```

- `xvfs.layout` holds the on-disk structures: `SuperBlock`, `DiskInode`,
  `DirEntry` (each with `pack`/`unpack`), `InodeType` and `KernelPanic`,
  which is raised whenever an internal invariant is violated.
- `xvfs.disk.MemoryDisk` keeps the image in memory; `image()` returns its
  current contents.
- `xvfs.bcache.BufferCache` hands out locked buffers with `read`, `write` and
  `release`, or with the `block(dev, blockno)` context manager.
- `xvfs.log.Log` groups changes into transactions. Wrap every change in
  `Log.transaction()` (or `begin_op`/`end_op`); the log commits when the last
  open operation ends, and `recover()` replays a committed transaction found
  on disk (it also runs when a `Log` is created).
- `xvfs.fs.FileSystem` provides `ialloc`, `iget`, `idup`, `ilock`, `iunlock`,
  `iput`, `iunlockput`, `iupdate`, `stati`, `readi`, `writei`, `dirlookup`,
  `dirlink`, `namei` and `nameiparent`. Device inodes are served by objects
  registered in `FileSystem.devsw` under their major number.
- `xvfs.file.FileTable` adds reference-counted open files (`alloc`, `dup`,
  `close`, `stat`, `read`, `write`) and `pipe_alloc`, which returns a read end
  and a write end over an `xvfs.pipe.Pipe` of 512 bytes.
- `xvfs.ls.ls(fs, path, cwd)` returns lines in the form
  `name type inode size`, one for a file or one per directory entry.

## Other pieces

- `xvfs.fmt.user_format` understands `%d %x %p %s %c %%`;
  `xvfs.console.kernel_format` understands `%d %x %p %s %%`. Unknown
  sequences are kept as written.
- `xvfs.console.Console`: `interrupt` feeds typed characters with
  backspace, kill-line (Control-U), end of file (Control-D) and a Control-P
  callback; `read` returns at most one line; `write` and `output` collect
  what is shown.
- `xvfs.kbd.KeyboardDecoder`: `feed` and `decode` turn set-1 scan codes into
  characters, tracking shift, control and caps lock.
- `xvfs.grep`: `match`, `match_here`, `match_star` and `grep` support `^`,
  `.`, `*` and `$`. Lines longer than 1023 bytes, and a last line with no
  newline, are skipped.

```
xvfs-grep 'ab*c' notes.txt
```

- `xvfs.scheduler.ProcessTable`: `userinit`, `fork`, `exit`, `wait`, `kill`,
  `settickets`, `schedule`, `pstat` and `procdump`. `schedule` holds one
  lottery among runnable processes using `LotteryRandom`, a linear
  congruential generator with a fixed default seed, so runs repeat exactly.

## What it does not do

- There are no higher-level file operations such as creating files by path,
  making directories, linking or unlinking; those are built from
  `ialloc`, `dirlink`, `writei` and `iput` by the caller.
- Processes in `ProcessTable` are bookkeeping only: nothing executes, and
  `schedule` simply records a tick for the winner.
- The image is never mounted on the host; it is read and written through
  `MemoryDisk` and can be saved with `MemoryDisk.image()`.