"""
Packer and Unpacker: thin wrappers around msgpack that dispatch extension types
through a registry slot.

The wire encoding of built-in types (ints, floats, strings, arrays, maps, nil,
bool) and the ext framing are done by msgpack. These classes only decide which
tag and payload an application object becomes, and what a tagged payload turns
back into.

Each instance owns its ``ext_registry``. A Factory overwrites that attribute
wholesale right after construction; the hooks read it on every call, so the
replacement takes effect immediately and nothing else holds on to the old one.
"""

import logging
from typing import Any, Callable, Iterator, Optional

import msgpack

from ..ext.decoders import DecodeRegistry
from ..ext.encoders import EncodeRegistry

logger = logging.getLogger(__name__)

# Unpacker options that only make sense for a streaming unpacker.
_STREAM_ONLY_OPTIONS = ("read_size", "max_buffer_size")

# msgpack decodes this ext type itself and never passes it to ext_hook.
TIMESTAMP_EXT_TAG = -1


def _replace_timestamps(obj: Any, unpack: Callable[[bytes], Any]) -> Any:
    """Rebuild obj with every msgpack.Timestamp passed through unpack.

    Only plain containers are walked; objects made by ext_hook or
    object_hook are left alone.
    """
    if isinstance(obj, msgpack.Timestamp):
        return unpack(obj.to_bytes())
    if type(obj) is list:
        return [_replace_timestamps(item, unpack) for item in obj]
    if type(obj) is tuple:
        return tuple(_replace_timestamps(item, unpack) for item in obj)
    if type(obj) is dict:
        return {
            _replace_timestamps(key, unpack): _replace_timestamps(value, unpack)
            for key, value in obj.items()
        }
    return obj


class Packer:
    """Serializes objects to MessagePack, packing registered classes as ext types.

    Options are forwarded to ``msgpack.Packer`` unchanged. A ``default`` option
    is kept as a fallback for objects whose class is not in ``ext_registry``.

    msgpack packs subclasses of built-in types natively and never consults the
    registry for them unless ``strict_types=True`` is passed.
    """

    def __init__(self, **options: Any) -> None:
        self._fallback_default: Optional[Callable[[Any], Any]] = options.pop("default", None)
        self._options = options
        self.ext_registry = EncodeRegistry()
        self._packer = msgpack.Packer(default=self._default, **options)

    def _default(self, obj: Any) -> Any:
        """msgpack hook for objects it cannot pack natively."""
        binding = self.ext_registry.lookup(type(obj))
        if binding is not None:
            if binding.tag < 0:
                raise ValueError(
                    f"ext type {binding.tag} for {binding.ext_class.__name__} is in the "
                    "reserved (negative) range and cannot be packed"
                )
            return msgpack.ExtType(binding.tag, binding.encode(obj))
        if self._fallback_default is not None:
            return self._fallback_default(obj)
        logger.debug(f"No ext type registered for {type(obj).__name__}")
        raise TypeError(f"can not serialize {type(obj).__name__!r} object")

    def pack(self, obj: Any) -> Optional[bytes]:
        """Pack a single object. Returns the bytes, or None when autoreset is off."""
        return self._packer.pack(obj)

    def bytes(self) -> bytes:
        """Internal buffer contents (only meaningful with autoreset=False)."""
        return self._packer.bytes()

    def reset(self) -> None:
        """Clear the internal buffer."""
        self._packer.reset()

    def __repr__(self) -> str:
        return f"Packer({self.ext_registry!r})"


class Unpacker:
    """Streaming MessagePack deserializer that rebuilds registered ext types.

    Options are forwarded to ``msgpack.Unpacker`` unchanged. An ``ext_hook``
    option is kept as a fallback for tags missing from ``ext_registry``;
    without one, unknown ext values come back as ``msgpack.ExtType``.

    Ext type -1 is decoded by msgpack as ``msgpack.Timestamp``. When the
    registry binds -1, those values are handed to its unpacker (as the
    canonical timestamp payload) once the enclosing object is complete.
    """

    def __init__(self, file_like: Any = None, **options: Any) -> None:
        self._fallback_ext_hook: Optional[Callable[[int, bytes], Any]] = options.pop(
            "ext_hook", None
        )
        self._options = options
        self.ext_registry = DecodeRegistry()
        self._unpacker = msgpack.Unpacker(file_like, ext_hook=self._ext_hook, **options)

    def _ext_hook(self, code: int, data: bytes) -> Any:
        """msgpack hook called for every ext value read."""
        binding = self.ext_registry.lookup(code)
        if binding is not None:
            return binding.decode(data)
        if self._fallback_ext_hook is not None:
            return self._fallback_ext_hook(code, data)
        logger.debug(f"No unpacker registered for ext type {code}")
        return msgpack.ExtType(code, data)

    def _finish(self, obj: Any) -> Any:
        binding = self.ext_registry.lookup(TIMESTAMP_EXT_TAG)
        if binding is None:
            return obj
        return _replace_timestamps(obj, binding.decode)

    def feed(self, data: bytes) -> None:
        """Append bytes to the internal buffer (only when no file_like is set)."""
        self._unpacker.feed(data)

    def unpack(self) -> Any:
        """Unpack the next object. Raises msgpack.OutOfData when buffer runs dry."""
        return self._finish(self._unpacker.unpack())

    def unpackb(self, data: bytes) -> Any:
        """Unpack one complete object from data, independent of the stream buffer."""
        options = {
            key: value
            for key, value in self._options.items()
            if key not in _STREAM_ONLY_OPTIONS
        }
        return self._finish(msgpack.unpackb(data, ext_hook=self._ext_hook, **options))

    def __iter__(self) -> Iterator[Any]:
        return self

    def __next__(self) -> Any:
        return self._finish(next(self._unpacker))

    def tell(self) -> int:
        """Number of bytes consumed so far (the offset of the next object)."""
        return self._unpacker.tell()

    def __repr__(self) -> str:
        return f"Unpacker({self.ext_registry!r})"
