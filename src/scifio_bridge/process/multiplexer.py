"""Duplex stream multiplexer for the worker's stdout and stderr.

The worker writes protocol data on stdout (payload) and free-form
diagnostics on stderr. Either pipe can fill up and block the worker if the
host only reads the other one, so both are drained continuously by one
reader thread each. The caller sees a single blocking call:

```
stdout ──reader thread──┐
                        ├──> queue ──> wait_for_data() -> StreamEvent | None
stderr ──reader thread──┘
```

Bytes from one source arrive in the order the worker wrote them. There is
no ordering between the two sources beyond what the OS delivered.
"""

import enum
import logging
import queue
import subprocess
import threading
from dataclasses import dataclass
from typing import BinaryIO, Optional

from scifio_bridge.errors import WorkerTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_READ_SIZE = 65_536


class Source(enum.Enum):
    """Which worker output stream produced the data"""
    PAYLOAD = "stdout"
    DIAGNOSTIC = "stderr"


@dataclass
class StreamEvent:
    """Bytes read from one of the worker's output streams"""
    source: Source
    data: bytes


@dataclass
class _ReaderEvent:
    """Internal event from a reader thread."""
    source: Source
    data: Optional[bytes]  # None = end of stream


class StreamMultiplexer:
    """Blocking wait over two output streams.

    Args:
        payload: Worker stdout
        diagnostic: Worker stderr
        process: Object with a `wait()` method; waited on once both streams close
        read_size: Maximum bytes per pipe read
    """

    def __init__(
        self,
        payload: BinaryIO,
        diagnostic: BinaryIO,
        process=None,
        read_size: int = DEFAULT_READ_SIZE,
    ):
        self._process = process
        self._read_size = read_size
        self._events: queue.Queue = queue.Queue()
        self._open = {Source.PAYLOAD, Source.DIAGNOSTIC}
        self._threads = [
            threading.Thread(
                target=self._reader_loop, args=(Source.PAYLOAD, payload),
                name="worker-stdout", daemon=True,
            ),
            threading.Thread(
                target=self._reader_loop, args=(Source.DIAGNOSTIC, diagnostic),
                name="worker-stderr", daemon=True,
            ),
        ]
        for thread in self._threads:
            thread.start()

    @property
    def closed(self) -> bool:
        """True once both streams reported end of file to the caller"""
        return not self._open

    def wait_for_data(self, timeout: Optional[float] = None) -> Optional[StreamEvent]:
        """Block until either stream has data.

        Returns:
            The next chunk of bytes, or None once both streams are closed
            and the process has exited

        Raises:
            WorkerTimeoutError: If nothing arrived, or the process did not
                exit after closing its streams, within `timeout` seconds
        """
        while self._open:
            try:
                event = self._events.get(timeout=timeout)
            except queue.Empty:
                raise WorkerTimeoutError(timeout) from None

            if event.data is None:
                logger.debug("Worker %s closed", event.source.value)
                self._open.discard(event.source)
                continue

            return StreamEvent(source=event.source, data=event.data)

        if self._process is not None:
            try:
                self._process.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                raise WorkerTimeoutError(timeout) from None
        return None

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for the reader threads to see end of file"""
        for thread in self._threads:
            thread.join(timeout)

    def _reader_loop(self, source: Source, stream: BinaryIO) -> None:
        """Reader thread: forward chunks until end of file."""
        read = getattr(stream, "read1", stream.read)
        while True:
            try:
                data = read(self._read_size)
            except (OSError, ValueError) as e:
                # ValueError: the stream was closed under us by teardown
                logger.debug("Worker %s read ended: %s", source.value, e)
                data = b""
            if not data:
                self._events.put(_ReaderEvent(source=source, data=None))
                return
            self._events.put(_ReaderEvent(source=source, data=bytes(data)))
