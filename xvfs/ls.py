"""List files and directories."""

from __future__ import annotations

import errno

from .layout import DIRENT_SIZE, DIRSIZ, DirEntry, InodeType

_PATH_BUF = 512


def fmtname(path: str) -> str:
    """The last path element, blank-padded to DIRSIZ characters."""
    name = path.rsplit("/", 1)[-1]
    if len(name) >= DIRSIZ:
        return name
    return name.ljust(DIRSIZ)


def _line(path: str, st) -> str:
    return f"{fmtname(path)} {st.type} {st.ino} {st.size}"


def _stat_path(fs, path: str, cwd):
    ip = fs.namei(path, cwd)
    if ip is None:
        return None
    fs.ilock(ip)
    try:
        return fs.stati(ip)
    finally:
        fs.iunlockput(ip)


def _entry_names(fs, dp, size: int) -> list[str]:
    names = []
    for off in range(0, size, DIRENT_SIZE):
        raw = fs.readi(dp, off, DIRENT_SIZE)
        if len(raw) < DIRENT_SIZE:
            break
        de = DirEntry.unpack(raw)
        if de.inum:
            names.append(de.name)
    return names


def ls(fs, path: str, cwd=None) -> list[str]:
    """Lines describing ``path``: the file itself, or each entry of a directory."""
    lines: list[str] = []
    with fs.log.transaction():
        ip = fs.namei(path, cwd)
        if ip is None:
            raise FileNotFoundError(errno.ENOENT, f"ls: cannot open {path}", path)
        fs.ilock(ip)
        try:
            st = fs.stati(ip)
            names = _entry_names(fs, ip, st.size) if st.type == InodeType.DIR else []
        finally:
            fs.iunlockput(ip)

        if st.type == InodeType.FILE:
            lines.append(_line(path, st))
        elif st.type == InodeType.DIR:
            if len(path) + 1 + DIRSIZ + 1 > _PATH_BUF:
                lines.append("ls: path too long")
            else:
                for name in names:
                    child = f"{path}/{name}"
                    child_st = _stat_path(fs, child, cwd)
                    if child_st is None:
                        lines.append(f"ls: cannot stat {child}")
                    else:
                        lines.append(_line(child, child_st))
    return lines