"""Error types for the SCIFIO bridge.

Every error carries the diagnostic text the worker wrote to its stderr
during the failed exchange, so callers see the worker's own explanation
alongside the host-side message.

```
BridgeError
├── ConfigurationError   launch parameters cannot be built
├── SpawnError           worker failed to start or reach RUNNING
├── TransportError       pipe closed / worker died mid-exchange
│   └── WorkerTimeoutError
├── ProtocolError        malformed response
├── MissingKeyError      required metadata key absent
└── ParseError           metadata value has the wrong type
```
"""


class BridgeError(Exception):
    """Base error for the bridge"""

    def __init__(self, message: str, diagnostics: str = ""):
        super().__init__(message)
        self.message = message
        self.diagnostics = diagnostics

    def __str__(self):
        if self.diagnostics:
            return f"{self.message}\n{self.diagnostics.rstrip()}"
        return self.message


class ConfigurationError(BridgeError):
    """Worker launch configuration is incomplete"""
    pass


class SpawnError(BridgeError):
    """Worker process failed to start or was not running right after spawn"""
    pass


class TransportError(BridgeError):
    """Worker pipes closed or the process exited during an exchange"""
    pass


class WorkerTimeoutError(TransportError):
    """No data arrived from the worker within the configured timeout"""

    def __init__(self, timeout: float, diagnostics: str = "", context: str = ""):
        message = f"no data from worker after {timeout}s"
        if context:
            message = f"{context} {message}"
        super().__init__(message, diagnostics)
        self.timeout = timeout


class ProtocolError(BridgeError):
    """Worker sent a response that does not follow the protocol"""
    pass


class MissingKeyError(BridgeError):
    """Required metadata key is not in the dictionary"""

    def __init__(self, key: str):
        super().__init__(f"{key} is not in the metadata dictionary")
        self.key = key


class ParseError(BridgeError):
    """Metadata value cannot be parsed as the requested type"""

    def __init__(self, key: str, value: str, type_name: str):
        super().__init__(f"cannot parse {key}={value!r} as {type_name}")
        self.key = key
        self.value = value
        self.type_name = type_name
