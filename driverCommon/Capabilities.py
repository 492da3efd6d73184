"""
Capabilities.py

Opaque capability descriptor carried from the node configuration file into
the hub registration payload.

A capability is whatever key/value set the hub and the automation layer agree
on (platform, app identifier, device name, ...). This module never interprets
the content: it is stored in parse order and handed back unchanged.
"""

import copy
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping

from common.exceptions import ConfigurationError


class CapabilityDescriptor:
    """Read-only wrapper around one raw capability object."""

    __slots__ = ("_raw",)

    def __init__(self, raw: Mapping[str, Any]):
        # Deep copy so later changes to the parsed document cannot leak in
        self._raw = MappingProxyType(copy.deepcopy(dict(raw)))

    @classmethod
    def from_json(cls, capability: Any) -> "CapabilityDescriptor":
        """
        Builds a descriptor from one element of the "capabilities" array.

        Raises:
            ConfigurationError: If the element is not a JSON object
        """
        if not isinstance(capability, Mapping):
            raise ConfigurationError(
                f"Capability entries must be JSON objects, got {type(capability).__name__}."
            )
        return cls(capability)

    @property
    def raw(self) -> Mapping[str, Any]:
        """Read-only view over a detached copy."""
        return MappingProxyType(self.get_raw_capabilities())

    def get_raw_capabilities(self) -> Dict[str, Any]:
        """Returns a fresh dict with the capability exactly as it was parsed."""
        return copy.deepcopy(dict(self._raw))

    def __getitem__(self, key: str) -> Any:
        return copy.deepcopy(self._raw[key])

    def __contains__(self, key: object) -> bool:
        return key in self._raw

    def __iter__(self) -> Iterator[str]:
        return iter(self._raw)

    def __len__(self) -> int:
        return len(self._raw)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CapabilityDescriptor):
            return NotImplemented
        return dict(self._raw) == dict(other._raw)

    def __hash__(self):
        # Values can be nested dicts/lists, so hash on the key set only
        return hash(frozenset(self._raw))

    def __repr__(self) -> str:
        return f"CapabilityDescriptor({dict(self._raw)!r})"
