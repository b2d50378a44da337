"""Tests for image - descriptor projection, regions and lookup tables"""

import numpy as np
import pytest

from scifio_bridge.errors import MissingKeyError, ParseError, ProtocolError
from scifio_bridge.image import (
    ByteOrder,
    ImageDescriptor,
    IORegion,
    LookupTable,
    PixelKind,
    PixelType,
)
from scifio_bridge.metadata import MetadataDictionary


def reference_metadata(**changes) -> MetadataDictionary:
    values = {
        "SizeX": "100", "SizeY": "50", "SizeZ": "1", "SizeT": "1", "SizeC": "1",
        "PixelType": "1",
        "Interleaved": "true",
        "LittleEndian": "false",
        "RGBChannelCount": "1",
        "PixelsPhysicalSizeX": "1.0",
        "PixelsPhysicalSizeY": "1.0",
        "PixelsPhysicalSizeZ": "1.0",
        "PixelsPhysicalSizeT": "1.0",
        "PixelsPhysicalSizeC": "1.0",
    }
    values.update(changes)
    metadata = MetadataDictionary()
    for key, value in values.items():
        if value is not None:
            metadata.put(key, value)
    return metadata


# TEST060: the reference info dictionary projects onto the expected descriptor
def test_descriptor_from_reference_metadata():
    descriptor = ImageDescriptor.from_metadata(reference_metadata())
    assert list(descriptor.dimensions) == [100, 50, 1, 1, 1]
    assert descriptor.byte_order is ByteOrder.BIG
    assert descriptor.pixel_kind is PixelKind.SCALAR
    assert descriptor.component_type is PixelType.UINT8
    assert descriptor.interleaved is True
    assert descriptor.spacing == (1.0, 1.0, 1.0, 1.0, 1.0)
    assert descriptor.rank == 5


# TEST061: RGBChannelCount selects scalar, rgb or vector pixels
@pytest.mark.parametrize("count,kind", [("1", PixelKind.SCALAR), ("3", PixelKind.RGB), ("4", PixelKind.VECTOR)])
def test_pixel_kind(count, kind):
    descriptor = ImageDescriptor.from_metadata(reference_metadata(RGBChannelCount=count))
    assert descriptor.pixel_kind is kind
    assert descriptor.components == int(count)


# TEST062: a missing PixelType is a MissingKeyError
def test_missing_pixel_type():
    with pytest.raises(MissingKeyError) as exc_info:
        ImageDescriptor.from_metadata(reference_metadata(PixelType=None))
    assert exc_info.value.key == "PixelType"


# TEST063: any other missing required key propagates as MissingKeyError
def test_missing_spacing():
    with pytest.raises(MissingKeyError):
        ImageDescriptor.from_metadata(reference_metadata(PixelsPhysicalSizeC=None))


# TEST064: an unknown pixel type code is a ProtocolError
def test_unknown_pixel_type():
    with pytest.raises(ProtocolError):
        ImageDescriptor.from_metadata(reference_metadata(PixelType="42"))


# TEST065: a malformed size is a ParseError
def test_malformed_size():
    with pytest.raises(ParseError):
        ImageDescriptor.from_metadata(reference_metadata(SizeY="fifty"))


# TEST066: the descriptor dtype follows component type and byte order
def test_descriptor_dtype():
    descriptor = ImageDescriptor.from_metadata(
        reference_metadata(PixelType="3", LittleEndian="true", RGBChannelCount="3")
    )
    assert descriptor.dtype == np.dtype("<u2")
    assert descriptor.pixel_size == 6
    big = ImageDescriptor(dimensions=(2, 2), component_type=PixelType.FLOAT, byte_order=ByteOrder.BIG)
    assert big.dtype == np.dtype(">f4")


# TEST067: pixel types map to and from numpy dtypes
def test_pixel_type_dtypes():
    assert PixelType.INT8.dtype == np.dtype(np.int8)
    assert PixelType.DOUBLE.dtype.itemsize == 8
    assert PixelType.from_dtype(np.uint32) is PixelType.UINT32
    with pytest.raises(ValueError):
        PixelType.from_dtype(np.complex64)


# TEST068: wire byte-order flag is 1 for big-endian
def test_byte_order_flag():
    assert ByteOrder.BIG.wire_flag == "1"
    assert ByteOrder.LITTLE.wire_flag == "0"


# TEST069: region counts pixels and planes along Z, T and C
def test_region_counts():
    region = IORegion(index=(0, 0, 1, 0, 0), size=(64, 64, 2, 3, 2))
    assert region.number_of_pixels == 64 * 64 * 12
    assert region.plane_count == 12
    assert IORegion(index=(0, 0), size=(8, 8)).plane_count == 1


# TEST070: padded_pairs fills missing axes with (0, 1)
def test_region_padding():
    assert IORegion.full((5, 6, 7)).padded_pairs() == [(0, 5), (0, 6), (0, 7), (0, 1), (0, 1)]


# TEST071: invalid regions are rejected
@pytest.mark.parametrize("index,size", [
    ((0,), (1, 2)),
    ((), ()),
    ((0,) * 6, (1,) * 6),
    ((-1, 0), (1, 1)),
    ((0, 0), (0, 1)),
])
def test_invalid_region(index, size):
    with pytest.raises(ValueError):
        IORegion(index=index, size=size)


# TEST072: no lookup table unless UseLUT is true
def test_lut_absent():
    assert LookupTable.from_metadata(reference_metadata()) is None
    assert LookupTable.from_metadata(reference_metadata(UseLUT="false")) is None


# TEST073: lookup table entries are read from LUTR/LUTG/LUTB keys
def test_lut_from_metadata():
    metadata = reference_metadata(
        UseLUT="true", LUTBits="16", LUTLength="2",
        LUTR0="0", LUTG0="1", LUTB0="2",
        LUTR1="-5", LUTG1="300", LUTB1="32767",
    )
    lut = LookupTable.from_metadata(metadata)
    assert lut.bits == 16
    assert lut.entries == [(0, 1, 2), (-5, 300, 32767)]
    assert lut.wire_fields() == ["16", "2", "0", "1", "2", "-5", "300", "32767"]


# TEST074: a missing LUT entry is a MissingKeyError
def test_lut_missing_entry():
    metadata = reference_metadata(UseLUT="1", LUTBits="8", LUTLength="1", LUTR0="1", LUTG0="2")
    with pytest.raises(MissingKeyError):
        LookupTable.from_metadata(metadata)


# TEST075: 8-bit tables reject values outside 0..255 and odd bit depths are refused
def test_lut_validation():
    with pytest.raises(ValueError):
        LookupTable(bits=8, entries=[(0, 0, 256)])
    with pytest.raises(ValueError):
        LookupTable(bits=12, entries=[])


# TEST076: an out-of-range lookup table in the metadata is a ProtocolError
def test_lut_from_metadata_out_of_range():
    metadata = reference_metadata(
        UseLUT="true", LUTBits="8", LUTLength="1", LUTR0="0", LUTG0="0", LUTB0="256"
    )
    with pytest.raises(ProtocolError):
        LookupTable.from_metadata(metadata)
    with pytest.raises(ProtocolError):
        LookupTable.from_metadata(reference_metadata(UseLUT="true", LUTBits="12", LUTLength="0"))
