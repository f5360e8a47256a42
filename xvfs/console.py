"""Console: line-edited input and byte output."""

from __future__ import annotations

import threading
from typing import Callable, Iterable

from .fmt import LOWER_DIGITS, format_int
from .layout import KernelPanic

INPUT_BUF = 128
BACKSPACE = 0x100


def _ctrl(ch: str) -> int:
    return ord(ch) - ord("@")


def kernel_format(fmt: str, *args) -> str:
    """Format like the kernel printer: understands %d, %x, %p, %s and %%."""
    if fmt is None:
        raise KernelPanic("null fmt")
    pending = list(args)

    def take():
        if not pending:
            raise TypeError(f"not enough arguments for format string {fmt!r}")
        return pending.pop(0)

    out: list[str] = []
    chars = iter(fmt)
    for c in chars:
        if c != "%":
            out.append(c)
            continue
        c = next(chars, None)
        if c is None:
            break
        if c == "d":
            out.append(format_int(take(), 10, True, LOWER_DIGITS))
        elif c in "xp":
            out.append(format_int(take(), 16, False, LOWER_DIGITS))
        elif c == "s":
            s = take()
            out.append("(null)" if s is None else str(s))
        elif c == "%":
            out.append("%")
        else:
            out.append("%" + c)
    return "".join(out)


class Console:
    """Keyboard input with line editing; output is collected as bytes.

    ``procdump`` is called after input containing Control-P is handled.
    """

    def __init__(self, procdump: Callable[[], None] | None = None) -> None:
        self._cond = threading.Condition()
        self._buf = [0] * INPUT_BUF
        self._r = 0  # read index
        self._w = 0  # write index
        self._e = 0  # edit index
        self._out = bytearray()
        self._procdump = procdump

    def _putc(self, c: int) -> None:
        if c == BACKSPACE:
            self._out += b"\b \b"
        else:
            self._out.append(c & 0xFF)

    def interrupt(self, chars: Iterable) -> None:
        """Handle typed characters (a string or integer codes); a negative code ends input."""
        doprocdump = False
        with self._cond:
            for ch in chars:
                c = ord(ch) if isinstance(ch, str) else int(ch)
                if c < 0:
                    break
                if c == _ctrl("P"):
                    doprocdump = True
                elif c == _ctrl("U"):
                    while self._e != self._w and self._buf[(self._e - 1) % INPUT_BUF] != ord("\n"):
                        self._e -= 1
                        self._putc(BACKSPACE)
                elif c in (_ctrl("H"), 0x7F):
                    if self._e != self._w:
                        self._e -= 1
                        self._putc(BACKSPACE)
                elif c != 0 and self._e - self._r < INPUT_BUF:
                    if c == ord("\r"):
                        c = ord("\n")
                    self._buf[self._e % INPUT_BUF] = c
                    self._e += 1
                    self._putc(c)
                    if c in (ord("\n"), _ctrl("D")) or self._e == self._r + INPUT_BUF:
                        self._w = self._e
                        self._cond.notify_all()
        if doprocdump and self._procdump is not None:
            self._procdump()

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes, at most one line, blocking until a line is ready.

        Control-D ends input: a read that got nothing returns an empty result.
        """
        target = n
        out = bytearray()
        with self._cond:
            while n > 0:
                while self._r == self._w:
                    self._cond.wait()
                c = self._buf[self._r % INPUT_BUF]
                self._r += 1
                if c == _ctrl("D"):
                    if n < target:
                        # Keep ^D so the next read returns nothing.
                        self._r -= 1
                    break
                out.append(c & 0xFF)
                n -= 1
                if c == ord("\n"):
                    break
        return bytes(out)

    def write(self, data) -> int:
        """Write bytes (or a string) to the console output."""
        if isinstance(data, str):
            data = data.encode("latin-1")
        with self._cond:
            for byte in bytes(data):
                self._putc(byte)
        return len(data)

    def output(self) -> bytes:
        """Everything written or echoed so far."""
        with self._cond:
            return bytes(self._out)