"""Formatted output in the style of the user-level printf."""

from __future__ import annotations

UPPER_DIGITS = "0123456789ABCDEF"
LOWER_DIGITS = "0123456789abcdef"


def format_int(value: int, base: int = 10, signed: bool = True,
               digits: str = UPPER_DIGITS) -> str:
    """Render a 32-bit integer in ``base``.

    The value is taken as a 32-bit int; when ``signed`` is false a negative
    value shows as its unsigned 32-bit counterpart.
    """
    if not 2 <= base <= len(digits):
        raise ValueError(f"base {base} is not supported with {len(digits)} digits")
    xx = ((int(value) + 2**31) % 2**32) - 2**31
    if signed and xx < 0:
        negative = True
        x = -xx
    else:
        negative = False
        x = xx & 0xFFFFFFFF

    out = []
    while True:
        out.append(digits[x % base])
        x //= base
        if x == 0:
            break
    if negative:
        out.append("-")
    return "".join(reversed(out))


def _take(args: list, fmt: str):
    if not args:
        raise TypeError(f"not enough arguments for format string {fmt!r}")
    return args.pop(0)


def _char(value) -> str:
    if isinstance(value, str):
        return value[:1]
    return chr(int(value) & 0xFF)


def user_format(fmt: str, *args) -> str:
    """Format like the user printf: understands %d, %x, %p, %s, %c and %%.

    An unknown sequence is kept as it is, to draw attention to it.
    """
    pending = list(args)
    out: list[str] = []
    in_percent = False
    for c in fmt:
        if not in_percent:
            if c == "%":
                in_percent = True
            else:
                out.append(c)
            continue
        if c == "d":
            out.append(format_int(_take(pending, fmt), 10, True))
        elif c in "xp":
            out.append(format_int(_take(pending, fmt), 16, False))
        elif c == "s":
            s = _take(pending, fmt)
            out.append("(null)" if s is None else str(s))
        elif c == "c":
            out.append(_char(_take(pending, fmt)))
        elif c == "%":
            out.append("%")
        else:
            out.append("%" + c)
        in_percent = False
    return "".join(out)