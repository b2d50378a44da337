"""Plane transfer engine: raw pixel bytes to and from the worker.

## Read

After the `read` command the worker streams exactly
`pixel_size * region.number_of_pixels` bytes on stdout, with no framing.

## Write

```
host                                   worker
 │── write <path> <...> ──────────────────>│
 │<───────────────── <bytesPerPlane>\\n\\n ──│
 │                                         │
 │  for each plane:                        │
 │    for each chunk (<= chunk_size):      │
 │──── chunk bytes ───────────────────────>│
 │<─────────────────────────── ack \\n\\n ──│
 │<─────────────────────── plane ack \\n\\n ─│
```

Every acknowledgement is any terminated message; only the terminator
matters.
"""

import logging
from typing import Optional

from scifio_bridge.image import ImageDescriptor, IORegion, LookupTable
from scifio_bridge.protocol import Command, Verb
from scifio_bridge.session import ProtocolSession

logger = logging.getLogger(__name__)


class PlaneTransferEngine:
    """Chunked binary transfer on top of a protocol session"""

    def __init__(self, session: ProtocolSession, chunk_size: int):
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self.session = session
        self.chunk_size = chunk_size

    def read(self, path: str, region: IORegion, pixel_size: int, out=None):
        """Read a region's pixels.

        Args:
            path: Image file
            region: Region to read
            pixel_size: Bytes per pixel, all components included
            out: Optional writable buffer of at least the region's byte count

        Returns:
            `out` if given, otherwise a new bytearray

        Raises:
            TransportError: If the worker stops before all bytes arrived
            ProtocolError: If the worker sends more bytes than requested
        """
        byte_count = pixel_size * region.number_of_pixels
        destination = out if out is not None else bytearray(byte_count)
        view = memoryview(destination).cast("B")
        if len(view) < byte_count:
            raise ValueError(f"output buffer holds {len(view)} bytes, region needs {byte_count}")

        worker = self.session.send(Command.read(path, region))

        pos = 0
        while pos < byte_count:
            data = self.session.wait_for_payload(worker, Verb.READ)
            end = pos + len(data)
            if end > byte_count:
                self.session.desynchronized(
                    Verb.READ, f"sent {end - byte_count} bytes more than the {byte_count} requested"
                )
            view[pos:end] = data
            pos = end

        logger.debug("read %s: %d bytes", path, byte_count)
        if self.session.diagnostics:
            logger.debug("read error output: %s", self.session.diagnostics)
        return destination

    def write(
        self,
        path: str,
        descriptor: ImageDescriptor,
        region: IORegion,
        data,
        lut: Optional[LookupTable] = None,
    ) -> int:
        """Write a region's pixels.

        Args:
            path: Destination file
            descriptor: Byte order, spacing, pixel type and component count
            region: Region being written
            data: Bytes-like object holding the region's planes back to back
            lut: Optional lookup table

        Returns:
            Number of pixel bytes sent

        Raises:
            TransportError: If the worker stops during the transfer
            ProtocolError: If the worker's plane size does not fit `data`
        """
        view = memoryview(data).cast("B")
        num_planes = region.plane_count

        worker, bytes_per_plane = self.session.begin_write(
            Command.write(path, descriptor, region, lut)
        )
        logger.debug("write %s: %d planes of %d bytes", path, num_planes, bytes_per_plane)

        required = bytes_per_plane * num_planes
        if len(view) < required:
            self.session.desynchronized(
                Verb.WRITE,
                f"expects {num_planes} planes of {bytes_per_plane} bytes "
                f"but only {len(view)} bytes were given",
            )

        self.write_planes(worker, view, bytes_per_plane, num_planes)
        return required

    def write_planes(self, worker, view: memoryview, bytes_per_plane: int, num_planes: int) -> None:
        """Send planes chunk by chunk, waiting for every acknowledgement"""
        pos = 0
        for plane in range(num_planes):
            sent = 0
            while sent < bytes_per_plane:
                size = min(bytes_per_plane - sent, self.chunk_size)
                logger.debug(
                    "Writing %d bytes to plane %d. Bytes sent: %d", size, plane, sent
                )
                self.session.write_payload(worker, view[pos:pos + size], Verb.WRITE)
                pos += size
                sent += size
                self.session.acknowledgement(worker, Verb.WRITE)

            self.session.acknowledgement(worker, Verb.WRITE)
            logger.debug("Plane %d done", plane)
