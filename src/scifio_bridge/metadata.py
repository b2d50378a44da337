"""Metadata dictionary filled from `info` responses.

Keys are unique and keep insertion order. The worker may report the same
key more than once (e.g. global and per-series metadata); the first value
wins and later ones are logged and dropped.
"""

import logging
from typing import Any, Callable, Dict, ItemsView, Iterator, Optional

from scifio_bridge.errors import MissingKeyError, ParseError
from scifio_bridge.protocol import parse_bool, parse_float, parse_int

logger = logging.getLogger(__name__)

_PARSERS: Dict[type, Callable[[str], Any]] = {
    str: str,
    int: parse_int,
    float: parse_float,
    bool: parse_bool,
}


class MetadataDictionary:
    """Ordered string-to-string mapping with first-write-wins semantics"""

    def __init__(self):
        self._entries: Dict[str, str] = {}

    def put(self, key: str, value: str) -> bool:
        """Store a value unless the key is already present.

        Returns:
            True if stored, False if the key was already defined
        """
        if key in self._entries:
            logger.debug(
                "Metadata %s = %r ignored because the key is already defined", key, value
            )
            return False
        self._entries[key] = value
        return True

    def has_key(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str, value_type: type = str) -> Any:
        """Get a value parsed as `value_type` (str, int, float or bool)

        Raises:
            MissingKeyError: If the key is absent
            ParseError: If the stored string does not parse
        """
        try:
            parser = _PARSERS[value_type]
        except KeyError:
            raise TypeError(f"unsupported metadata type: {value_type!r}") from None

        if key not in self._entries:
            raise MissingKeyError(key)

        raw = self._entries[key]
        try:
            return parser(raw)
        except ValueError:
            raise ParseError(key, raw, value_type.__name__) from None

    def get_str(self, key: str) -> str:
        return self.get(key, str)

    def get_int(self, key: str) -> int:
        return self.get(key, int)

    def get_float(self, key: str) -> float:
        return self.get(key, float)

    def get_bool(self, key: str, default: Optional[bool] = None) -> bool:
        """Get a boolean; with a default, an absent key is not an error"""
        if default is not None and key not in self._entries:
            return default
        return self.get(key, bool)

    def items(self) -> ItemsView[str, str]:
        return self._entries.items()

    def to_dict(self) -> Dict[str, str]:
        return dict(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __repr__(self):
        return f"MetadataDictionary({len(self._entries)} entries)"
