"""Image model exchanged with the worker.

The worker describes an image through its metadata dictionary. This module
projects that dictionary onto typed values (`ImageDescriptor`) and holds the
region and lookup-table types the `read` and `write` commands are built
from.

Axes are always ordered X, Y, Z, T, C.
"""

import enum
import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np

from scifio_bridge.errors import ProtocolError
from scifio_bridge.metadata import MetadataDictionary
from scifio_bridge.protocol import WIRE_RANK

logger = logging.getLogger(__name__)

AXES = ("X", "Y", "Z", "T", "C")

# Axes whose extents multiply into the number of planes: Z, T, C
PLANE_AXES = (2, 3, 4)


class PixelType(enum.IntEnum):
    """Component type codes as reported by the worker"""
    INT8 = 0
    UINT8 = 1
    INT16 = 2
    UINT16 = 3
    INT32 = 4
    UINT32 = 5
    FLOAT = 6
    DOUBLE = 7

    @classmethod
    def from_code(cls, code: int) -> "PixelType":
        try:
            return cls(code)
        except ValueError:
            raise ProtocolError(f"Unknown pixel type: {code}") from None

    @classmethod
    def from_dtype(cls, dtype) -> "PixelType":
        name = np.dtype(dtype).name
        for pixel_type in cls:
            if pixel_type.dtype.name == name:
                return pixel_type
        raise ValueError(f"no pixel type for dtype {name}")

    @property
    def dtype(self) -> np.dtype:
        return np.dtype(_DTYPES[self])


_DTYPES = {
    PixelType.INT8: np.int8,
    PixelType.UINT8: np.uint8,
    PixelType.INT16: np.int16,
    PixelType.UINT16: np.uint16,
    PixelType.INT32: np.int32,
    PixelType.UINT32: np.uint32,
    PixelType.FLOAT: np.float32,
    PixelType.DOUBLE: np.float64,
}


class ByteOrder(enum.Enum):
    LITTLE = "<"
    BIG = ">"

    @property
    def wire_flag(self) -> str:
        """`write` command flag: 1 for big-endian, 0 for little-endian"""
        return "1" if self is ByteOrder.BIG else "0"

    @classmethod
    def native(cls) -> "ByteOrder":
        return cls.LITTLE if np.little_endian else cls.BIG


class PixelKind(enum.Enum):
    SCALAR = "scalar"
    RGB = "rgb"
    VECTOR = "vector"

    @classmethod
    def from_components(cls, components: int) -> "PixelKind":
        if components == 1:
            return cls.SCALAR
        if components == 3:
            return cls.RGB
        return cls.VECTOR


@dataclass(frozen=True)
class IORegion:
    """Index and size of a region along each axis (rank 1 to 5)"""
    index: Tuple[int, ...]
    size: Tuple[int, ...]

    def __post_init__(self):
        object.__setattr__(self, "index", tuple(int(i) for i in self.index))
        object.__setattr__(self, "size", tuple(int(s) for s in self.size))
        if len(self.index) != len(self.size):
            raise ValueError(
                f"region index has {len(self.index)} axes but size has {len(self.size)}"
            )
        if not 1 <= len(self.size) <= WIRE_RANK:
            raise ValueError(f"region rank must be between 1 and {WIRE_RANK}, got {len(self.size)}")
        if any(i < 0 for i in self.index):
            raise ValueError(f"region index must be non-negative: {self.index}")
        if any(s < 1 for s in self.size):
            raise ValueError(f"region size must be positive: {self.size}")

    @classmethod
    def full(cls, dimensions: Sequence[int]) -> "IORegion":
        return cls(index=(0,) * len(dimensions), size=tuple(dimensions))

    @property
    def rank(self) -> int:
        return len(self.size)

    @property
    def number_of_pixels(self) -> int:
        return math.prod(self.size)

    @property
    def plane_count(self) -> int:
        """Number of XY planes covered by the region"""
        return math.prod(self.size[axis] for axis in PLANE_AXES if axis < self.rank)

    def padded_pairs(self) -> List[Tuple[int, int]]:
        """(index, size) for all five wire axes, missing axes as (0, 1)"""
        pairs = list(zip(self.index, self.size))
        pairs.extend([(0, 1)] * (WIRE_RANK - self.rank))
        return pairs


@dataclass
class ImageDescriptor:
    """Typed image information as reported by `info`"""
    dimensions: Tuple[int, ...]
    component_type: PixelType
    components: int = 1
    spacing: Tuple[float, ...] = (1.0, 1.0, 1.0, 1.0, 1.0)
    byte_order: ByteOrder = field(default_factory=ByteOrder.native)
    interleaved: bool = False

    @property
    def rank(self) -> int:
        return len(self.dimensions)

    @property
    def pixel_kind(self) -> PixelKind:
        return PixelKind.from_components(self.components)

    @property
    def dtype(self) -> np.dtype:
        """Component dtype in the image's byte order"""
        return self.component_type.dtype.newbyteorder(self.byte_order.value)

    @property
    def pixel_size(self) -> int:
        """Bytes per pixel, all components included"""
        return self.component_type.dtype.itemsize * self.components

    def full_region(self) -> IORegion:
        return IORegion.full(self.dimensions)

    @classmethod
    def from_metadata(cls, metadata: MetadataDictionary) -> "ImageDescriptor":
        """Project an `info` dictionary onto a descriptor.

        Raises:
            MissingKeyError: If a required key is absent
            ParseError: If a required value does not parse
            ProtocolError: If the pixel type code is unknown
        """
        interleaved = metadata.get_bool("Interleaved")
        logger.debug("Interleaved ---> %s", interleaved)

        little_endian = metadata.get_bool("LittleEndian")
        byte_order = ByteOrder.LITTLE if little_endian else ByteOrder.BIG
        logger.debug("LittleEndian ---> %s", little_endian)

        component_type = PixelType.from_code(metadata.get_int("PixelType"))
        logger.debug("ComponentType ---> %s", component_type.name)

        dimensions = tuple(metadata.get_int(f"Size{axis}") for axis in AXES)
        logger.debug("Dimensions ---> %s", dimensions)

        components = metadata.get_int("RGBChannelCount")

        spacing = tuple(metadata.get_float(f"PixelsPhysicalSize{axis}") for axis in AXES)
        logger.debug("Spacing ---> %s", spacing)

        return cls(
            dimensions=dimensions,
            component_type=component_type,
            components=components,
            spacing=spacing,
            byte_order=byte_order,
            interleaved=interleaved,
        )


@dataclass
class LookupTable:
    """Color lookup table embedded in a written file"""
    bits: int
    entries: List[Tuple[int, int, int]]

    def __post_init__(self):
        if self.bits == 8:
            low, high = 0, 255
        elif self.bits == 16:
            low, high = -32768, 32767
        else:
            raise ValueError(f"LUT bits must be 8 or 16, got {self.bits}")
        for entry in self.entries:
            if len(entry) != 3:
                raise ValueError(f"LUT entry must be an (r, g, b) triple: {entry}")
            for value in entry:
                if not low <= value <= high:
                    raise ValueError(f"LUT value {value} out of range for {self.bits}-bit table")

    def wire_fields(self) -> List[str]:
        fields = [str(self.bits), str(len(self.entries))]
        for r, g, b in self.entries:
            fields.extend((str(r), str(g), str(b)))
        return fields

    @classmethod
    def from_metadata(cls, metadata: MetadataDictionary) -> Optional["LookupTable"]:
        """Read the table described by `UseLUT`, `LUTBits`, `LUTLength` and
        `LUTR<i>`/`LUTG<i>`/`LUTB<i>`. Returns None when `UseLUT` is absent
        or false.

        Raises:
            MissingKeyError: If a LUT key is absent
            ParseError: If a LUT value is not an integer
            ProtocolError: If the bit depth or an entry is out of range
        """
        if not metadata.get_bool("UseLUT", False):
            return None

        bits = metadata.get_int("LUTBits")
        length = metadata.get_int("LUTLength")
        logger.debug("Found a LUT of length %d and %d bits", length, bits)

        entries = []
        for i in range(length):
            entries.append((
                metadata.get_int(f"LUTR{i}"),
                metadata.get_int(f"LUTG{i}"),
                metadata.get_int(f"LUTB{i}"),
            ))
        try:
            return cls(bits=bits, entries=entries)
        except ValueError as e:
            raise ProtocolError(f"invalid lookup table in metadata: {e}") from e
