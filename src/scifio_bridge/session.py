"""Protocol session: the request/response cycle with the worker.

Every exchange has the same shape:

1. make sure a worker is running (spawning one if needed);
2. write one command line to its stdin;
3. collect stdout into the response buffer and stderr into the diagnostic
   buffer until the response buffer holds an empty line;
4. parse the response.

Stdout bytes that arrive after the empty line belong to the next response
(the worker often sends a chunk acknowledgement and a plane acknowledgement
in one write). They are carried over and consumed before the worker is read
again.

If the worker's streams close before the response is complete, the worker
is destroyed and a `TransportError` is raised; the next exchange starts a
fresh worker. No attempt is made to resynchronize a broken stream.
"""

import logging
from typing import List, Optional

from scifio_bridge.errors import ProtocolError, TransportError, WorkerTimeoutError
from scifio_bridge.escape import unescape
from scifio_bridge.metadata import MetadataDictionary
from scifio_bridge.process.multiplexer import Source
from scifio_bridge.protocol import (
    Command,
    LineTerminator,
    Verb,
    first_line,
    iter_key_value_pairs,
    parse_bool,
    parse_int,
    split_response,
)

logger = logging.getLogger(__name__)


class ProtocolSession:
    """Drives command/response exchanges over a supervised worker.

    Args:
        supervisor: Provides `ensure_running()` and `destroy()`
        terminator: Line ending of the worker's responses
        read_timeout: Seconds to wait for worker output, None to block
    """

    def __init__(
        self,
        supervisor,
        terminator: Optional[LineTerminator] = None,
        read_timeout: Optional[float] = None,
    ):
        self._supervisor = supervisor
        self.terminator = terminator if terminator is not None else LineTerminator.native()
        self.read_timeout = read_timeout
        self._diagnostics: List[bytes] = []
        # stdout bytes read past the end of the previous response
        self._pending = b""

    @property
    def diagnostics(self) -> str:
        """Everything the worker wrote to stderr during the current operation"""
        return b"".join(self._diagnostics).decode("utf-8", errors="replace")

    # =====================================================================
    # Low-level exchange
    # =====================================================================

    def send(self, command: Command):
        """Start an operation: ensure a worker and send it `command`.

        Returns:
            The worker the command was sent to
        """
        self._diagnostics = []
        if self._pending:
            logger.warning(
                "Discarding %d unexpected bytes from the worker before %s; restarting it",
                len(self._pending), command.verb.value,
            )
            self.discard_worker()
        worker = self._supervisor.ensure_running()
        logger.debug("%s command: %s", command.verb.value, command)
        self.write_payload(worker, command.encode(), command.verb)
        return worker

    def write_payload(self, worker, data, verb: Verb) -> None:
        """Write raw bytes to the worker, destroying it if the pipe is broken"""
        try:
            worker.write(data)
        except TransportError as e:
            self.fail(verb, e.message)

    def wait_for_payload(self, worker, verb: Verb) -> bytes:
        """Return the next stdout bytes, collecting stderr along the way.

        Raises:
            TransportError: If the worker closed its streams
            WorkerTimeoutError: If no output arrived within `read_timeout`
        """
        if self._pending:
            data, self._pending = self._pending, b""
            return data

        while True:
            try:
                event = worker.wait_for_data(self.read_timeout)
            except WorkerTimeoutError as e:
                self.discard_worker()
                raise WorkerTimeoutError(
                    e.timeout, self.diagnostics, context=f"'ITKBridgePipes {verb.value}'"
                ) from e
            except TransportError as e:
                self.fail(verb, e.message)

            if event is None:
                self.fail(verb, "exited abnormally.")

            if event.source is Source.DIAGNOSTIC:
                self._diagnostics.append(event.data)
                logger.debug("Worker stderr: %s", event.data.decode("utf-8", errors="replace").rstrip())
                continue

            return event.data

    def read_response(self, worker, verb: Verb) -> str:
        """Read one terminated response from the worker's stdout"""
        buffer = b""
        while True:
            buffer += self.wait_for_payload(worker, verb)
            split = split_response(buffer, self.terminator)
            if split is not None:
                break
        response, self._pending = split

        try:
            text = response.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ProtocolError(f"'{verb.value}' response is not UTF-8: {e}", self.diagnostics) from e

        if self._diagnostics:
            logger.debug("%s error output: %s", verb.value, self.diagnostics)
        return text

    def exchange(self, command: Command) -> str:
        """Send a command and return its complete response text"""
        worker = self.send(command)
        return self.read_response(worker, command.verb)

    def discard_worker(self) -> None:
        """Destroy the worker along with any output carried over from it"""
        self._pending = b""
        self._supervisor.destroy()

    def fail(self, verb: Verb, message: str):
        """Tear the worker down and raise a TransportError"""
        self.discard_worker()
        raise TransportError(f"'ITKBridgePipes {verb.value}' {message}", self.diagnostics)

    def desynchronized(self, verb: Verb, message: str):
        """Tear the worker down and raise a ProtocolError.

        Used when the worker is still alive but the byte stream can no longer
        be trusted to line up with the protocol.
        """
        self.discard_worker()
        raise ProtocolError(f"'ITKBridgePipes {verb.value}' {message}", self.diagnostics)

    # =====================================================================
    # Response parsing
    # =====================================================================

    def parse_bool_response(self, text: str, verb: Verb) -> bool:
        line = first_line(text, self.terminator)
        try:
            return parse_bool(line)
        except ValueError:
            raise ProtocolError(
                f"'{verb.value}' expected a boolean, got {line!r}", self.diagnostics
            ) from None

    def parse_int_response(self, text: str, verb: Verb) -> int:
        line = first_line(text, self.terminator)
        try:
            return parse_int(line)
        except ValueError:
            raise ProtocolError(
                f"'{verb.value}' expected an integer, got {line!r}", self.diagnostics
            ) from None

    def parse_metadata(self, text: str) -> MetadataDictionary:
        """Build a dictionary from an `info` body, unescaping values"""
        metadata = MetadataDictionary()
        for key, raw_value in iter_key_value_pairs(text, self.terminator):
            value = unescape(raw_value)
            if metadata.put(key, value):
                logger.debug("Storing metadata: %s ---> %s", key, value)
        return metadata

    # =====================================================================
    # Operations
    # =====================================================================

    def can_read(self, path: str) -> bool:
        text = self.exchange(Command.can_read(path))
        result = self.parse_bool_response(text, Verb.CAN_READ)
        logger.debug("canRead %s ---> %s", path, result)
        return result

    def info(self, path: str) -> MetadataDictionary:
        text = self.exchange(Command.info(path))
        metadata = self.parse_metadata(text)
        logger.debug("info %s ---> %d metadata entries", path, len(metadata))
        return metadata

    def can_write(self, path: str) -> bool:
        text = self.exchange(Command.can_write(path))
        result = self.parse_bool_response(text, Verb.CAN_WRITE)
        logger.debug("canWrite %s ---> %s", path, result)
        return result

    def begin_write(self, command: Command):
        """Send a `write` command and read back the plane size.

        Returns:
            (worker, bytes_per_plane)
        """
        worker = self.send(command)
        text = self.read_response(worker, Verb.WRITE)
        try:
            bytes_per_plane = self.parse_int_response(text, Verb.WRITE)
        except ProtocolError:
            # the worker is now waiting for plane data that will never come
            self.discard_worker()
            raise
        if bytes_per_plane < 0:
            self.desynchronized(Verb.WRITE, f"announced a negative plane size: {bytes_per_plane}")
        return worker, bytes_per_plane

    def acknowledgement(self, worker, verb: Verb) -> str:
        """Wait for one terminated acknowledgement; its content is ignored"""
        return self.read_response(worker, verb)
