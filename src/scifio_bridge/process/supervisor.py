"""Worker process supervision.

A bridge owns at most one worker at a time. The worker's state is always
read from the OS on demand; nothing is cached between calls.

```
NOT_STARTED ──spawn──> RUNNING ──┬──> EXITED_NORMALLY
                                 ├──> EXITED_WITH_ERROR
                                 ├──> CRASHED   (killed by a signal we did not send)
                                 └──> KILLED    (stopped by kill())
```

There is no restart in the middle of an exchange. A dead worker is replaced
lazily, the next time `ensure_running()` is called.
"""

import enum
import logging
import subprocess
from dataclasses import dataclass
from typing import Optional

from scifio_bridge.config import WorkerConfig
from scifio_bridge.errors import SpawnError, TransportError, WorkerTimeoutError
from scifio_bridge.process.multiplexer import Source, StreamEvent, StreamMultiplexer

logger = logging.getLogger(__name__)

# Seconds to wait for reader threads after the pipes have been closed
READER_JOIN_TIMEOUT = 1.0


class WorkerState(enum.Enum):
    NOT_STARTED = "not started"
    RUNNING = "running"
    EXITED_NORMALLY = "exited normally"
    EXITED_WITH_ERROR = "exited with error"
    CRASHED = "crashed"
    KILLED = "killed"


@dataclass(frozen=True)
class WorkerStatus:
    """A snapshot of the worker's run state"""
    state: WorkerState
    exit_code: Optional[int] = None

    def describe(self) -> str:
        if self.state is WorkerState.EXITED_WITH_ERROR:
            return f"exited with return value: {self.exit_code}"
        if self.state is WorkerState.CRASHED:
            return f"crashed with signal {-self.exit_code}"
        return self.state.value


class WorkerProcess:
    """A spawned worker and its three pipes.

    `stdin` is the input pipe, stdout the payload stream and stderr the
    diagnostic stream, the last two read through a `StreamMultiplexer`.
    """

    def __init__(self, process: subprocess.Popen, read_size: int):
        self.process = process
        self.stdin = process.stdin
        self.multiplexer = StreamMultiplexer(
            process.stdout, process.stderr, process=process, read_size=read_size
        )
        self._killed = False

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def status(self) -> WorkerStatus:
        code = self.process.poll()
        if code is None:
            return WorkerStatus(WorkerState.RUNNING)
        if self._killed:
            return WorkerStatus(WorkerState.KILLED, code)
        if code == 0:
            return WorkerStatus(WorkerState.EXITED_NORMALLY, code)
        if code > 0:
            return WorkerStatus(WorkerState.EXITED_WITH_ERROR, code)
        return WorkerStatus(WorkerState.CRASHED, code)

    def is_running(self) -> bool:
        return self.status.state is WorkerState.RUNNING

    def write(self, data) -> None:
        """Write all of `data` to the worker's stdin, looping over partial writes.

        Raises:
            TransportError: If the pipe is closed or broken
        """
        if self.stdin is None or self.stdin.closed:
            raise TransportError("worker input pipe is closed")

        view = memoryview(data).cast("B")
        try:
            while view:
                written = self.stdin.write(view)
                if written is None:
                    written = 0
                view = view[written:]
            self.stdin.flush()
        except (BrokenPipeError, OSError, ValueError) as e:
            raise TransportError(f"failed to write to worker: {e}") from e

    def wait_for_data(self, timeout: Optional[float] = None) -> Optional[StreamEvent]:
        return self.multiplexer.wait_for_data(timeout)

    def drain_diagnostics(self, timeout: float) -> str:
        """Collect what an exited worker left on stderr."""
        chunks = []
        try:
            while True:
                event = self.wait_for_data(timeout)
                if event is None:
                    break
                if event.source is Source.DIAGNOSTIC:
                    chunks.append(event.data)
        except WorkerTimeoutError:
            logger.debug("Worker %d streams still open after %ss", self.pid, timeout)
        return b"".join(chunks).decode("utf-8", errors="replace")

    def terminate(self, kill_timeout: float) -> None:
        """Stop a running worker and wait for it to exit"""
        if not self.is_running():
            return
        logger.debug("Killing worker %d", self.pid)
        self._killed = True
        self.process.terminate()
        try:
            self.process.wait(timeout=kill_timeout)
        except subprocess.TimeoutExpired:
            logger.warning("Worker %d ignored terminate; sending kill", self.pid)
            self.process.kill()
            self.process.wait()

    def close_input(self) -> None:
        if self.stdin is None or self.stdin.closed:
            return
        try:
            self.stdin.close()
        except BrokenPipeError:
            logger.debug("Worker %d input pipe already broken", self.pid)

    def release(self) -> None:
        """Close every pipe and stop the reader threads"""
        self.close_input()
        self.multiplexer.join(READER_JOIN_TIMEOUT)
        for stream in (self.process.stdout, self.process.stderr):
            if stream is not None:
                stream.close()


class ProcessSupervisor:
    """Owns the lifecycle of one worker process."""

    def __init__(self, config: WorkerConfig):
        self.config = config
        self._worker: Optional[WorkerProcess] = None

    @property
    def worker(self) -> Optional[WorkerProcess]:
        return self._worker

    @property
    def status(self) -> WorkerStatus:
        if self._worker is None:
            return WorkerStatus(WorkerState.NOT_STARTED)
        return self._worker.status

    def ensure_running(self) -> WorkerProcess:
        """Return the running worker, spawning a fresh one if needed.

        Raises:
            SpawnError: If the worker cannot be started or is not running
                right after start
        """
        if self._worker is not None:
            if self._worker.is_running():
                return self._worker
            logger.debug("Worker %s; replacing it", self._worker.status.describe())
            self.destroy()

        self._worker = self._spawn()
        return self._worker

    def _spawn(self) -> WorkerProcess:
        command = self.config.command
        logger.debug("Starting worker: %s", " ".join(command))
        try:
            process = subprocess.Popen(
                command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=self.config.env,
                bufsize=0,
            )
        except (OSError, ValueError) as e:
            raise SpawnError(f"failed to start worker {command[0]!r}: {e}") from e

        worker = WorkerProcess(process, self.config.read_size)

        if self.config.startup_grace > 0:
            try:
                process.wait(timeout=self.config.startup_grace)
            except subprocess.TimeoutExpired:
                pass  # still running, which is what we want

        status = worker.status
        if status.state is not WorkerState.RUNNING:
            diagnostics = worker.drain_diagnostics(self.config.kill_timeout)
            worker.release()
            raise SpawnError(f"worker {status.describe()}", diagnostics)

        logger.debug("Worker %d running", worker.pid)
        return worker

    def kill(self) -> None:
        """Stop the worker if running and close its input pipe. Idempotent."""
        if self._worker is None:
            return
        self._worker.terminate(self.config.kill_timeout)
        self._worker.close_input()

    def destroy(self) -> None:
        """Kill the worker and release every OS resource. Idempotent."""
        if self._worker is None:
            return
        self.kill()
        self._worker.release()
        logger.debug("Worker %d destroyed", self._worker.pid)
        self._worker = None
