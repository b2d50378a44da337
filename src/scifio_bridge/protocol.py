"""Wire grammar of the ITKBridgePipes protocol.

## Commands

One line per command, fields separated by tabs, terminated by `\\n`:

```
canRead  <path>
info     <path>
read     <path> (<index> <size>){5}
canWrite <path>
write    <path> <byteOrder> <rank> (<size>){5} (<spacing>){5} <pixelType>
         <components> (<index> <size>){5} <useLUT> [<bits> <length> (<r> <g> <b>){length}]
```

`write` terminates every field with a tab, so its line ends in `\\t\\n`.
Axes beyond the region's rank are padded (index 0, size 1, spacing 1).

## Responses

Free-form text closed by an empty line, i.e. the line terminator twice
(`\\n\\n`, or `\\r\\n\\r\\n` when the worker writes CRLF). `info` bodies are
alternating key and value lines; everything else is read from the first
line. Responses are read one at a time: the first empty line ends a
response and whatever follows it belongs to the next one.
"""

import enum
import math
import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterator, List, Optional, Tuple

if TYPE_CHECKING:
    from scifio_bridge.image import ImageDescriptor, IORegion, LookupTable

# Axes carried by every region on the wire: X, Y, Z, T, C
WIRE_RANK = 5

FIELD_SEPARATOR = "\t"
COMMAND_TERMINATOR = "\n"


class LineTerminator(enum.Enum):
    """Line ending used by the worker's responses"""
    LF = "\n"
    CRLF = "\r\n"

    @property
    def line(self) -> str:
        return self.value

    @property
    def sentinel(self) -> str:
        """The end-of-response marker: an empty line"""
        return self.value * 2

    @property
    def sentinel_bytes(self) -> bytes:
        return self.sentinel.encode("ascii")

    @classmethod
    def native(cls) -> "LineTerminator":
        """Line ending a worker on this platform writes"""
        return cls.CRLF if os.name == "nt" else cls.LF


class Verb(str, enum.Enum):
    """Command verbs understood by the worker"""
    CAN_READ = "canRead"
    INFO = "info"
    READ = "read"
    CAN_WRITE = "canWrite"
    WRITE = "write"


# =========================================================================
# Literal parsing
# =========================================================================

def parse_bool(text: str) -> bool:
    """Parse a boolean literal.

    Accepts `true`/`false` in any case, or an integer where zero is false.

    Raises:
        ValueError: If the text is neither form
    """
    stripped = text.strip()
    lowered = stripped.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    try:
        return int(stripped) != 0
    except ValueError:
        raise ValueError(f"not a boolean literal: {text!r}") from None


def parse_int(text: str) -> int:
    """Parse a base-10 integer, surrounding whitespace allowed."""
    return int(text.strip())


def parse_float(text: str) -> float:
    return float(text.strip())


def format_float(value: float) -> str:
    """Format a float so the worker's parser reads back the same value."""
    value = float(value)
    if math.isfinite(value) and value == int(value) and abs(value) < 1e16:
        return str(int(value))
    return repr(value)


# =========================================================================
# Response tokenizer
# =========================================================================

def split_lines(text: str, terminator: LineTerminator) -> List[str]:
    """Split a response body into lines.

    A trailing partial line (no terminator) is still returned; the empty
    string after a final terminator is not.
    """
    if not text:
        return []
    lines = text.split(terminator.line)
    if lines[-1] == "":
        lines.pop()
    return lines


def first_line(text: str, terminator: LineTerminator) -> str:
    lines = split_lines(text, terminator)
    return lines[0] if lines else ""


def iter_key_value_pairs(text: str, terminator: LineTerminator) -> Iterator[Tuple[str, str]]:
    """Yield (key, raw_value) pairs from an `info` body.

    Blank lines where a key is expected are skipped. A key whose value line
    is blank is dropped, and parsing resumes with the following line as the
    next key. A key on the last line with no value line is dropped too.
    Values are returned still escaped.
    """
    lines = split_lines(text, terminator)
    pos = 0
    while pos < len(lines):
        key = lines[pos]
        pos += 1
        if key == "":
            continue
        if pos >= len(lines):
            return
        value = lines[pos]
        pos += 1
        if value == "":
            continue
        yield key, value


def split_response(buffer: bytes, terminator: LineTerminator) -> Optional[Tuple[bytes, bytes]]:
    """Cut the first complete response off `buffer`.

    Returns:
        (response including its sentinel, remaining bytes), or None while
        no sentinel has arrived
    """
    sentinel = terminator.sentinel_bytes
    end = buffer.find(sentinel)
    if end < 0:
        return None
    end += len(sentinel)
    return bytes(buffer[:end]), bytes(buffer[end:])


# =========================================================================
# Commands
# =========================================================================

@dataclass
class Command:
    """A single command line sent to the worker"""
    verb: Verb
    arguments: List[str] = field(default_factory=list)
    # write: every field, including the last, is followed by a tab
    tab_terminated: bool = False

    def encode(self) -> bytes:
        """Serialize to the bytes written on the worker's stdin"""
        fields = [self.verb.value] + [str(a) for a in self.arguments]
        line = FIELD_SEPARATOR.join(fields)
        if self.tab_terminated:
            line += FIELD_SEPARATOR
        return (line + COMMAND_TERMINATOR).encode("utf-8")

    def __str__(self):
        return self.encode().decode("utf-8").rstrip(COMMAND_TERMINATOR)

    @classmethod
    def can_read(cls, path: str) -> "Command":
        return cls(Verb.CAN_READ, [str(path)])

    @classmethod
    def info(cls, path: str) -> "Command":
        return cls(Verb.INFO, [str(path)])

    @classmethod
    def can_write(cls, path: str) -> "Command":
        return cls(Verb.CAN_WRITE, [str(path)])

    @classmethod
    def read(cls, path: str, region: "IORegion") -> "Command":
        """Create a `read` command for a region, padded to five axes"""
        arguments = [str(path)]
        for index, size in region.padded_pairs():
            arguments.append(str(index))
            arguments.append(str(size))
        return cls(Verb.READ, arguments)

    @classmethod
    def write(
        cls,
        path: str,
        descriptor: "ImageDescriptor",
        region: "IORegion",
        lut: Optional["LookupTable"] = None,
    ) -> "Command":
        """Create a `write` command.

        Args:
            path: Destination file
            descriptor: Byte order, spacing, pixel type and component count
            region: Region being written; its sizes are the image sizes
            lut: Optional lookup table to embed in the file
        """
        arguments = [str(path), descriptor.byte_order.wire_flag, str(region.rank)]

        sizes = list(region.size) + [1] * (WIRE_RANK - region.rank)
        arguments.extend(str(s) for s in sizes)

        spacing = list(descriptor.spacing[:region.rank])
        spacing += [1.0] * (WIRE_RANK - len(spacing))
        arguments.extend(format_float(s) for s in spacing)

        arguments.append(str(int(descriptor.component_type)))
        arguments.append(str(descriptor.components))

        for index, size in region.padded_pairs():
            arguments.append(str(index))
            arguments.append(str(size))

        if lut is None:
            arguments.append("0")
        else:
            arguments.append("1")
            arguments.extend(lut.wire_fields())

        return cls(Verb.WRITE, arguments, tab_terminated=True)
