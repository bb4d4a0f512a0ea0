"""
This module contains the encode side of the extension type registry.

The encode registry maps an application class to the extension type tag it is
written with and the handler that turns an instance into the ext payload bytes.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Optional, Protocol

from .utils import check_tag

logger = logging.getLogger(__name__)


class PackHandler(Protocol):
    """Pack handler takes an instance of a registered class and returns the ext payload.

    Args:
        value: Instance being packed

    Returns:
        bytes: Payload written after the ext header
    """

    def __call__(self, value: Any) -> bytes: ...


@dataclass(frozen=True)
class EncodeBinding:
    """Tag and pack handler registered for a class."""

    ext_class: type
    tag: int
    pack: PackHandler

    def encode(self, value: Any) -> bytes:
        """Run the pack handler and check it produced bytes."""
        payload = self.pack(value)
        if not isinstance(payload, (bytes, bytearray, memoryview)):
            raise TypeError(
                f"packer for {self.ext_class.__name__} (ext type {self.tag}) "
                f"returned {type(payload).__name__}, expected bytes"
            )
        return bytes(payload)


class EncodeRegistry:
    """Maps classes to their EncodeBinding. Lookup is by exact class."""

    def __init__(self) -> None:
        self._bindings: Dict[type, EncodeBinding] = {}

    def put(self, ext_class: type, tag: int, pack: Callable[[Any], bytes]) -> None:
        """Install or replace the binding for ext_class."""
        tag = check_tag(tag)
        previous = self._bindings.get(ext_class)
        if previous is not None and previous.tag != tag:
            logger.debug(
                f"Rebinding {ext_class.__name__}: ext type {previous.tag} → {tag}"
            )
        self._bindings[ext_class] = EncodeBinding(ext_class=ext_class, tag=tag, pack=pack)

    def lookup(self, ext_class: type) -> Optional[EncodeBinding]:
        """Return the binding for ext_class, or None when it is not registered."""
        return self._bindings.get(ext_class)

    def copy(self) -> "EncodeRegistry":
        """Return a registry with its own storage holding the same bindings.

        Bindings are immutable, so sharing them between copies is safe; only the
        mapping itself needs duplicating.
        """
        duplicate = EncodeRegistry()
        duplicate._bindings = dict(self._bindings)
        return duplicate

    def clear(self) -> None:
        """Drop every binding and the class/handler references they hold."""
        self._bindings.clear()

    def to_dict(self) -> Dict[type, EncodeBinding]:
        """Snapshot of the registry contents."""
        return dict(self._bindings)

    def __len__(self) -> int:
        return len(self._bindings)

    def __contains__(self, ext_class: object) -> bool:
        return ext_class in self._bindings

    def __iter__(self) -> Iterator[EncodeBinding]:
        return iter(list(self._bindings.values()))

    def __repr__(self) -> str:
        entries = ", ".join(
            f"{b.ext_class.__name__}={b.tag}" for b in self._bindings.values()
        )
        return f"EncodeRegistry({entries})"
