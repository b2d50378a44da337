"""Escaping of metadata values on the wire.

Metadata values travel one per line, so the worker escapes the two
characters that would break the line framing:

| literal        | wire          |
|----------------|---------------|
| `\\` (1 char)  | `\\\\` (2)    |
| newline        | `\\n` (2)     |

Because every embedded newline is escaped, the response terminator (an
empty line) can never appear inside a value.
"""

import logging

logger = logging.getLogger(__name__)

BACKSLASH = "\\"
NEWLINE = "\n"


def escape(value: str) -> str:
    """Escape a value for transmission as a single line."""
    return value.replace(BACKSLASH, BACKSLASH * 2).replace(NEWLINE, BACKSLASH + "n")


def unescape(wire: str) -> str:
    """Reverse `escape`.

    Ill-formed escapes never raise: a backslash followed by anything other
    than a backslash or `n` is kept as the two literal characters, and a
    trailing lone backslash is kept as is. Both are logged as warnings.
    """
    if BACKSLASH not in wire:
        return wire

    out = []
    pos = 0
    while pos < len(wire):
        found = wire.find(BACKSLASH, pos)
        if found < 0:
            out.append(wire[pos:])
            break

        out.append(wire[pos:found])
        if found == len(wire) - 1:
            logger.warning("Trailing backslash in escaped value %r", wire)
            out.append(BACKSLASH)
            break

        follower = wire[found + 1]
        if follower == BACKSLASH:
            out.append(BACKSLASH)
        elif follower == "n":
            out.append(NEWLINE)
        else:
            logger.warning("Unknown escape \\%s in value %r", follower, wire)
            out.append(BACKSLASH + follower)
        pos = found + 2

    return "".join(out)
