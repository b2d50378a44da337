"""Worker launch configuration.

The worker is the SCIFIO `ITKBridgePipes` Java program started in its
`waitForInput` mode. `WorkerConfig.from_environment()` locates it the same
way the ITK image IO does:

- `SCIFIO_PATH` (required): directory holding the SCIFIO jar files
- `JAVA_HOME` (optional): Java installation; `java` on the PATH otherwise
- `SCIFIO_MAX_HEAP` (optional): maximum Java heap, `256m` by default

Any other command line can be supplied directly; the bridge treats it as
opaque.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from scifio_bridge.errors import ConfigurationError
from scifio_bridge.protocol import LineTerminator

logger = logging.getLogger(__name__)

WORKER_MAIN_CLASS = "loci.formats.itk.ITKBridgePipes"
WORKER_MODE = "waitForInput"

DEFAULT_MAX_HEAP = "256m"

# Maximum bytes written to the worker before waiting for an acknowledgement
DEFAULT_CHUNK_SIZE = 10_000

# Maximum bytes taken from a worker pipe per read
DEFAULT_READ_SIZE = 65_536

# Seconds between terminate and kill when stopping the worker
DEFAULT_KILL_TIMEOUT = 5.0


@dataclass
class WorkerConfig:
    """How to launch and talk to the worker"""
    command: List[str]
    env: Optional[Dict[str, str]] = None  # None = inherit the host environment
    chunk_size: int = DEFAULT_CHUNK_SIZE
    read_size: int = DEFAULT_READ_SIZE
    terminator: LineTerminator = field(default_factory=LineTerminator.native)
    startup_grace: float = 0.0
    read_timeout: Optional[float] = None  # None = block until the worker answers
    kill_timeout: float = DEFAULT_KILL_TIMEOUT

    def __post_init__(self):
        if not self.command:
            raise ConfigurationError("worker command line is empty")
        if self.chunk_size <= 0:
            raise ConfigurationError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.read_size <= 0:
            raise ConfigurationError(f"read_size must be positive, got {self.read_size}")

    @classmethod
    def from_environment(
        cls, environ: Optional[Mapping[str, str]] = None, **overrides
    ) -> "WorkerConfig":
        """Build the ITKBridgePipes launch line from environment variables.

        Args:
            environ: Variables to read (defaults to os.environ)
            **overrides: Any other WorkerConfig field

        Raises:
            ConfigurationError: If SCIFIO_PATH is not set
        """
        environ = os.environ if environ is None else environ

        scifio_path = environ.get("SCIFIO_PATH", "")
        if not scifio_path:
            raise ConfigurationError(
                "SCIFIO_PATH is not set. This environment variable must point "
                "to the directory containing the SCIFIO JAR files"
            )
        classpath = os.path.join(scifio_path, "*")

        java_home = environ.get("JAVA_HOME", "")
        if java_home:
            java = os.path.join(java_home, "bin", "java")
        else:
            logger.warning("JAVA_HOME not set; assuming Java is on the path")
            java = "java"

        max_heap = environ.get("SCIFIO_MAX_HEAP", "") or DEFAULT_MAX_HEAP

        command = [
            java,
            f"-Xmx{max_heap}",
            "-Djava.awt.headless=true",
            "-cp",
            classpath,
            WORKER_MAIN_CLASS,
            WORKER_MODE,
        ]
        logger.debug("Worker command: %s", " ".join(command))
        return cls(command=command, **overrides)
