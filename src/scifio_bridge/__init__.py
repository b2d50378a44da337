"""SCIFIO bridge - image file I/O through an external worker process

This library lets a host read and write scientific image files by handing
all format work to a long-lived SCIFIO worker, spoken to over its stdin,
stdout and stderr with a line-oriented control protocol and raw binary
pixel streams.
"""

from scifio_bridge.errors import (
    BridgeError,
    ConfigurationError,
    SpawnError,
    TransportError,
    WorkerTimeoutError,
    ProtocolError,
    MissingKeyError,
    ParseError,
)

from scifio_bridge.escape import escape, unescape
from scifio_bridge.metadata import MetadataDictionary

from scifio_bridge.protocol import (
    Command,
    LineTerminator,
    Verb,
    parse_bool,
    parse_int,
    split_lines,
    iter_key_value_pairs,
)

from scifio_bridge.image import (
    ByteOrder,
    ImageDescriptor,
    IORegion,
    LookupTable,
    PixelKind,
    PixelType,
)

from scifio_bridge.config import WorkerConfig

from scifio_bridge.process import (
    ProcessSupervisor,
    Source,
    StreamEvent,
    StreamMultiplexer,
    WorkerProcess,
    WorkerState,
    WorkerStatus,
)

from scifio_bridge.session import ProtocolSession
from scifio_bridge.transfer import PlaneTransferEngine
from scifio_bridge.bridge import ImageBridge

__all__ = [
    # Errors
    "BridgeError",
    "ConfigurationError",
    "SpawnError",
    "TransportError",
    "WorkerTimeoutError",
    "ProtocolError",
    "MissingKeyError",
    "ParseError",
    # Wire format
    "escape",
    "unescape",
    "MetadataDictionary",
    "Command",
    "LineTerminator",
    "Verb",
    "parse_bool",
    "parse_int",
    "split_lines",
    "iter_key_value_pairs",
    # Image model
    "ByteOrder",
    "ImageDescriptor",
    "IORegion",
    "LookupTable",
    "PixelKind",
    "PixelType",
    # Process
    "WorkerConfig",
    "ProcessSupervisor",
    "Source",
    "StreamEvent",
    "StreamMultiplexer",
    "WorkerProcess",
    "WorkerState",
    "WorkerStatus",
    # Protocol engine
    "ProtocolSession",
    "PlaneTransferEngine",
    "ImageBridge",
]

__version__ = "0.1.0"
