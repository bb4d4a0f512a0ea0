"""
Factory: central configuration object for MessagePack extension types.

A Factory owns one encode registry and one decode registry. Types are registered
on the factory; every Packer/Unpacker it creates gets its own copy of the
registries as they are at that moment, so later registrations only affect
instances created afterwards.
"""

import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from ..codec.backend import Packer, Unpacker
from ..ext.decoders import DecodeRegistry
from ..ext.encoders import EncodeRegistry
from ..ext.utils import (
    DEFAULT_PACKER_METHOD,
    DEFAULT_UNPACKER_METHOD,
    ExtClassError,
    Selector,
    check_ext_class,
    check_tag,
    handler_name,
    resolve_packer,
    resolve_unpacker,
)

logger = logging.getLogger(__name__)

_SELECTORS = ("both", "packer", "unpacker")

_NO_OPTIONS = object()


@dataclass(frozen=True)
class Registration:
    """A type registration request, validated only when it is installed.

    ``simple`` uses the conventional ``to_extension_bytes`` /
    ``from_extension_bytes`` methods of the class; ``explicit`` takes the
    selectors as given, where None means "no handler in that direction".
    """

    tag: int
    ext_class: type
    packer: Selector = DEFAULT_PACKER_METHOD
    unpacker: Selector = DEFAULT_UNPACKER_METHOD

    @classmethod
    def simple(cls, tag: int, ext_class: type) -> "Registration":
        return cls(tag=tag, ext_class=ext_class)

    @classmethod
    def explicit(
        cls,
        tag: int,
        ext_class: type,
        packer: Selector = None,
        unpacker: Selector = None,
    ) -> "Registration":
        return cls(tag=tag, ext_class=ext_class, packer=packer, unpacker=unpacker)

    @classmethod
    def from_options(cls, tag: int, ext_class: type, options: Any) -> "Registration":
        """Build an explicit registration from a ``{"packer": ..., "unpacker": ...}`` mapping."""
        if not isinstance(options, Mapping):
            raise ExtClassError(f"expected Hash but found {type(options).__name__}.")
        return cls.explicit(
            tag,
            ext_class,
            packer=options.get("packer"),
            unpacker=options.get("unpacker"),
        )

    def resolve(
        self,
    ) -> Tuple[int, type, Optional[Callable[[Any], bytes]], Optional[Callable[[bytes], Any]]]:
        """Validate and resolve to (tag, class, pack handler, unpack handler).

        Raises:
            TagRangeError: Tag outside -128..127.
            ExtClassError: ext_class is not a class.
            HandlerResolutionError: A selector cannot be resolved.
        """
        tag = check_tag(self.tag)
        ext_class = check_ext_class(self.ext_class)
        pack = resolve_packer(ext_class, self.packer)
        unpack = resolve_unpacker(ext_class, self.unpacker)
        return tag, ext_class, pack, unpack


class Factory:
    """Creates Packer/Unpacker instances that share a set of registered ext types.

    Registration needs exclusive access (one writer at a time). Creating
    packers/unpackers concurrently is fine; registry copies are taken under the
    same lock as registrations, so a copy never sees half of a registration.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        # Reserved: merged into the options of every new instance.
        self._packer_options: Dict[str, Any] = {}
        self._unpacker_options: Dict[str, Any] = {}
        self._packer_registry = EncodeRegistry()
        self._unpacker_registry = DecodeRegistry()

    @property
    def packer_options(self) -> Dict[str, Any]:
        return dict(self._packer_options)

    @property
    def unpacker_options(self) -> Dict[str, Any]:
        return dict(self._unpacker_options)

    @property
    def packer_registry(self) -> EncodeRegistry:
        """Copy of the current encode registry."""
        with self._lock:
            return self._packer_registry.copy()

    @property
    def unpacker_registry(self) -> DecodeRegistry:
        """Copy of the current decode registry."""
        with self._lock:
            return self._unpacker_registry.copy()

    def packer(self, **options: Any) -> Packer:
        """Create a Packer holding a snapshot of the registered pack handlers.

        Args:
            **options: Forwarded to Packer (and on to msgpack.Packer).

        Returns:
            New Packer, independent from this factory.
        """
        pk = Packer(**{**self._packer_options, **options})
        with self._lock:
            pk.ext_registry = self._packer_registry.copy()
        logger.debug(f"Created packer with {len(pk.ext_registry)} ext type(s)")
        return pk

    def unpacker(self, file_like: Any = None, **options: Any) -> Unpacker:
        """Create an Unpacker holding a snapshot of the registered unpack handlers.

        Args:
            file_like: Optional stream to read from (else use feed()).
            **options: Forwarded to Unpacker (and on to msgpack.Unpacker).

        Returns:
            New Unpacker, independent from this factory.
        """
        uk = Unpacker(file_like, **{**self._unpacker_options, **options})
        with self._lock:
            uk.ext_registry = self._unpacker_registry.copy()
        logger.debug(f"Created unpacker with {len(uk.ext_registry)} ext type(s)")
        return uk

    def register_type(
        self, tag: int, ext_class: type, options: Any = _NO_OPTIONS
    ) -> None:
        """Register ext_class under an extension type tag.

        Two call shapes:

        - ``register_type(tag, cls)``: packs with ``obj.to_extension_bytes()``
          and unpacks with ``cls.from_extension_bytes(data)``.
        - ``register_type(tag, cls, {"packer": ..., "unpacker": ...})``: each
          selector is a callable, a method name, or None/missing to leave that
          direction unregistered.

        Nothing is changed if validation fails.

        Raises:
            TagRangeError: If tag is outside -128..127.
            ExtClassError: If ext_class is not a class or options is not a mapping.
            HandlerResolutionError: If a selector cannot be resolved.
        """
        if options is _NO_OPTIONS:
            registration = Registration.simple(tag, ext_class)
        else:
            registration = Registration.from_options(tag, ext_class, options)
        self.register(registration)

    def register(self, registration: Registration) -> None:
        """Install a prepared Registration. See register_type()."""
        tag, ext_class, pack, unpack = registration.resolve()
        if pack is not None and tag < 0:
            logger.warning(
                f"Ext type {tag} for {ext_class.__name__} is in the reserved (negative) "
                "range; packers will refuse to pack it"
            )

        with self._lock:
            if pack is not None:
                self._packer_registry.put(ext_class, tag, pack)
            if unpack is not None:
                self._unpacker_registry.put(tag, unpack, ext_class)

        logger.debug(
            f"Registered ext type {tag} → {ext_class.__name__} "
            f"(packer: {handler_name(pack)}, unpacker: {handler_name(unpack)})"
        )

    def registered_types(self, selector: str = "both") -> List[Dict[str, Any]]:
        """List registered types as dicts with type, class, packer and unpacker keys.

        Args:
            selector: "packer", "unpacker" or "both".

        Returns:
            Entries sorted by tag. A direction with no handler is None.
        """
        if selector not in _SELECTORS:
            raise ValueError(
                f"selector must be one of {', '.join(_SELECTORS)}, got {selector!r}"
            )

        entries: Dict[Tuple[int, Optional[type]], Dict[str, Any]] = {}
        with self._lock:
            if selector in ("both", "packer"):
                for enc in self._packer_registry:
                    entries[(enc.tag, enc.ext_class)] = {
                        "type": enc.tag,
                        "class": enc.ext_class,
                        "packer": enc.pack,
                        "unpacker": None,
                    }
            if selector in ("both", "unpacker"):
                for dec in self._unpacker_registry:
                    entry = entries.setdefault(
                        (dec.tag, dec.ext_class),
                        {"type": dec.tag, "class": dec.ext_class, "packer": None},
                    )
                    entry["unpacker"] = dec.unpack

        result = sorted(entries.values(), key=lambda e: e["type"])
        if selector == "packer":
            for entry in result:
                del entry["unpacker"]
        elif selector == "unpacker":
            for entry in result:
                del entry["packer"]
        return result

    def type_registered(self, class_or_tag: Union[type, int], selector: str = "both") -> bool:
        """Whether a class or a tag is registered for packing and/or unpacking."""
        if selector not in _SELECTORS:
            raise ValueError(
                f"selector must be one of {', '.join(_SELECTORS)}, got {selector!r}"
            )
        if isinstance(class_or_tag, type):
            key = "class"
        elif isinstance(class_or_tag, int):
            key = "type"
        else:
            raise ExtClassError(
                f"expected Class or Integer but found {type(class_or_tag).__name__}."
            )
        return any(entry[key] == class_or_tag for entry in self.registered_types(selector))

    def dump(self, obj: Any, **options: Any) -> bytes:
        """Pack a single object with a fresh packer."""
        return self.packer(**options).pack(obj)

    def load(self, data: bytes, **options: Any) -> Any:
        """Unpack a single object with a fresh unpacker."""
        return self.unpacker(**options).unpackb(data)
