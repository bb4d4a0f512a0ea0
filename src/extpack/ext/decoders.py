"""
This module contains the decode side of the extension type registry.

The decode registry maps an extension type tag read from the wire to the handler
that rebuilds a value from the ext payload. Each tag has at most one handler;
registering a tag again replaces the previous handler.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Optional, Protocol

from .utils import check_tag

logger = logging.getLogger(__name__)


class UnpackHandler(Protocol):
    """Unpack handler takes the ext payload and returns the reconstructed value.

    Args:
        data: Payload bytes following the ext header

    Returns:
        Any: Reconstructed value
    """

    def __call__(self, data: bytes) -> Any: ...


@dataclass(frozen=True)
class DecodeBinding:
    """Unpack handler registered for a tag."""

    tag: int
    unpack: UnpackHandler
    ext_class: Optional[type] = None

    def decode(self, data: bytes) -> Any:
        """Run the unpack handler on a payload."""
        return self.unpack(data)


class DecodeRegistry:
    """Maps ext type tags to their DecodeBinding."""

    def __init__(self) -> None:
        self._bindings: Dict[int, DecodeBinding] = {}

    def put(
        self,
        tag: int,
        unpack: Callable[[bytes], Any],
        ext_class: Optional[type] = None,
    ) -> None:
        """Install the handler for tag. An existing handler is replaced silently."""
        tag = check_tag(tag)
        previous = self._bindings.get(tag)
        if previous is not None and previous.ext_class is not ext_class:
            logger.debug(
                f"Ext type {tag} unpacker replaced: "
                f"{getattr(previous.ext_class, '__name__', None)} → "
                f"{getattr(ext_class, '__name__', None)}"
            )
        self._bindings[tag] = DecodeBinding(tag=tag, unpack=unpack, ext_class=ext_class)

    def lookup(self, tag: int) -> Optional[DecodeBinding]:
        """Return the binding for tag, or None when nothing is registered."""
        return self._bindings.get(tag)

    def copy(self) -> "DecodeRegistry":
        """Return a registry with its own storage holding the same bindings."""
        duplicate = DecodeRegistry()
        duplicate._bindings = dict(self._bindings)
        return duplicate

    def clear(self) -> None:
        """Drop every binding."""
        self._bindings.clear()

    def to_dict(self) -> Dict[int, DecodeBinding]:
        """Snapshot of the registry contents."""
        return dict(self._bindings)

    def __len__(self) -> int:
        return len(self._bindings)

    def __contains__(self, tag: object) -> bool:
        return tag in self._bindings

    def __iter__(self) -> Iterator[DecodeBinding]:
        return iter(list(self._bindings.values()))

    def __repr__(self) -> str:
        return f"DecodeRegistry(tags={sorted(self._bindings)})"
