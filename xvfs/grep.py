"""A simple grep supporting the ^ . * $ operators."""

from __future__ import annotations

import sys
from typing import BinaryIO, Iterator

_BUFSIZE = 1024


def match(regex: str, text: str) -> bool:
    """True if ``regex`` matches anywhere in ``text``."""
    if regex.startswith("^"):
        return match_here(regex[1:], text)
    # The empty tail must be tried too.
    return any(match_here(regex, text[i:]) for i in range(len(text) + 1))


def match_here(regex: str, text: str) -> bool:
    """True if ``regex`` matches at the start of ``text``."""
    while True:
        if not regex:
            return True
        if len(regex) > 1 and regex[1] == "*":
            return match_star(regex[0], regex[2:], text)
        if regex == "$":
            return text == ""
        if text and (regex[0] == "." or regex[0] == text[0]):
            regex, text = regex[1:], text[1:]
            continue
        return False


def match_star(c: str, regex: str, text: str) -> bool:
    """True if ``c*`` followed by ``regex`` matches at the start of ``text``."""
    i = 0
    while True:
        if match_here(regex, text[i:]):
            return True
        if i < len(text) and (text[i] == c or c == "."):
            i += 1
        else:
            return False


def grep(pattern: str, stream: BinaryIO) -> Iterator[bytes]:
    """Yield each newline-terminated line of ``stream`` that matches ``pattern``.

    Lines that do not fit the 1023-byte buffer are dropped, as is a final
    line with no newline.
    """
    regex = pattern.encode("utf-8").decode("latin-1")
    buf = bytearray()
    while True:
        chunk = stream.read(_BUFSIZE - 1 - len(buf))
        if not chunk:
            break
        buf += chunk
        pos = 0
        while (q := buf.find(b"\n", pos)) != -1:
            if match(regex, buf[pos:q].decode("latin-1")):
                yield bytes(buf[pos:q + 1])
            pos = q + 1
        if pos == 0:
            buf.clear()
        else:
            del buf[:pos]


def main(argv=None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("usage: grep pattern [file ...]", file=sys.stderr)
        return 1
    pattern, names = args[0], args[1:]
    out = sys.stdout.buffer
    if not names:
        out.writelines(grep(pattern, sys.stdin.buffer))
        out.flush()
        return 0
    for name in names:
        try:
            fh = open(name, "rb")
        except OSError:
            out.flush()
            print(f"grep: cannot open {name}")
            return 1
        with fh:
            out.writelines(grep(pattern, fh))
    out.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())