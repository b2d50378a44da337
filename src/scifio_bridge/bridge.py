"""Image bridge: the object an image-I/O framework holds.

Usage:
```python
from scifio_bridge import ImageBridge, IORegion

with ImageBridge() as bridge:          # reads SCIFIO_PATH / JAVA_HOME
    if bridge.can_read_file("cells.lif"):
        info = bridge.read_image_information("cells.lif")
        pixels = bridge.read("cells.lif")
```

A bridge owns one worker. The worker starts on first use, is replaced after
it dies, and is destroyed by `close()`, `reset()` or garbage collection.
"""

import logging
import weakref
from typing import Optional

import numpy as np

from scifio_bridge.config import WorkerConfig
from scifio_bridge.image import ImageDescriptor, IORegion, LookupTable
from scifio_bridge.metadata import MetadataDictionary
from scifio_bridge.process.supervisor import ProcessSupervisor
from scifio_bridge.session import ProtocolSession
from scifio_bridge.transfer import PlaneTransferEngine

logger = logging.getLogger(__name__)


class ImageBridge:
    """Reads and writes image files through a SCIFIO worker process.

    Args:
        config: Worker launch configuration (from the environment if omitted)
        supervisor: Process supervisor to use instead of one built from `config`
    """

    def __init__(self, config: Optional[WorkerConfig] = None, supervisor=None):
        self.config = config if config is not None else WorkerConfig.from_environment()
        self._supervisor = supervisor if supervisor is not None else ProcessSupervisor(self.config)
        self.session = ProtocolSession(
            self._supervisor, self.config.terminator, self.config.read_timeout
        )
        self.transfer = PlaneTransferEngine(self.session, self.config.chunk_size)

        # Dictionary from the last info response, consulted by write()
        self.metadata = MetadataDictionary()
        self.descriptor: Optional[ImageDescriptor] = None
        # File `descriptor` was read from; read() only reuses it for that file
        self.descriptor_path: Optional[str] = None

        self._finalizer = weakref.finalize(self, self._supervisor.destroy)

    @property
    def supervisor(self):
        return self._supervisor

    def can_read_file(self, path: str) -> bool:
        logger.debug("can_read_file: %s", path)
        return self.session.can_read(str(path))

    def read_image_information(self, path: str) -> ImageDescriptor:
        """Ask the worker about a file and keep its metadata dictionary.

        Raises:
            MissingKeyError: If a required key (e.g. PixelType) is absent
            ParseError: If a required value is malformed
        """
        logger.debug("read_image_information: %s", path)
        metadata = self.session.info(str(path))
        self.metadata = metadata
        self.descriptor = ImageDescriptor.from_metadata(metadata)
        self.descriptor_path = str(path)
        return self.descriptor

    def read(
        self,
        path: str,
        region: Optional[IORegion] = None,
        descriptor: Optional[ImageDescriptor] = None,
        out=None,
    ):
        """Read pixels.

        Args:
            path: Image file
            region: Region to read (the whole image if omitted)
            descriptor: Image description (fetched with `info` if omitted,
                unless the last `read_image_information` was for `path`)
            out: Optional writable buffer to fill in place

        Returns:
            `out` if given, otherwise a flat numpy array of the image dtype
        """
        if descriptor is None:
            if self.descriptor is not None and self.descriptor_path == str(path):
                descriptor = self.descriptor
            else:
                descriptor = self.read_image_information(path)
        if region is None:
            region = descriptor.full_region()

        logger.debug("read: %s region index=%s size=%s", path, region.index, region.size)
        buffer = self.transfer.read(str(path), region, descriptor.pixel_size, out=out)
        if out is not None:
            return out
        return np.frombuffer(buffer, dtype=descriptor.dtype)

    def can_write_file(self, path: str) -> bool:
        logger.debug("can_write_file: %s", path)
        return self.session.can_write(str(path))

    def write(
        self,
        path: str,
        descriptor: ImageDescriptor,
        data,
        region: Optional[IORegion] = None,
    ) -> int:
        """Write pixels.

        A lookup table is embedded when the current metadata dictionary has
        `UseLUT` set.

        Args:
            path: Destination file
            descriptor: Byte order, spacing, pixel type and component count
            data: numpy array or bytes-like object with the region's planes
            region: Region to write (the descriptor's full extent if omitted)

        Returns:
            Number of pixel bytes sent
        """
        if region is None:
            region = descriptor.full_region()
        if isinstance(data, np.ndarray):
            data = np.ascontiguousarray(data)

        lut = LookupTable.from_metadata(self.metadata)
        logger.debug("write: %s region index=%s size=%s", path, region.index, region.size)
        return self.transfer.write(str(path), descriptor, region, data, lut)

    def reset(self) -> None:
        """Destroy the worker; the next operation starts a new one"""
        self.session.discard_worker()

    def close(self) -> None:
        self._finalizer()

    def __enter__(self) -> "ImageBridge":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()
