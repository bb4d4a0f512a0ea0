"""
Low-level helpers shared by the encode and decode registries.

Covers the extension type tag range check and the resolution of packer and
unpacker selectors (a callable, a method name, or None) into concrete handlers.

Important: selectors are resolved when a type is registered, not when a value is
packed or unpacked. Only the pack direction defers the actual method call to the
instance being packed.
"""

import logging
import operator
from typing import Any, Callable, Optional, Union

logger = logging.getLogger(__name__)

EXT_TAG_MIN = -128
EXT_TAG_MAX = 127

DEFAULT_PACKER_METHOD = "to_extension_bytes"
DEFAULT_UNPACKER_METHOD = "from_extension_bytes"

Selector = Union[None, str, Callable[..., Any]]


class TagRangeError(ValueError):
    """Raised when an extension type tag does not fit in a signed byte."""


class ExtClassError(TypeError):
    """Raised when a registration argument has the wrong type (class or options)."""


class HandlerResolutionError(LookupError):
    """Raised when a packer/unpacker selector cannot be turned into a callable."""


def check_tag(tag: Any) -> int:
    """
    Validates an extension type tag and returns it as a plain int.

    Tags are signed 8-bit integers, so valid values are -128 to 127.
    Any object implementing __index__ is accepted (int, bool, numpy ints);
    floats and strings are not.

    Args:
        tag: Candidate tag value.

    Returns:
        The tag as int.

    Raises:
        ExtClassError: If tag is not an integer.
        TagRangeError: If tag is outside -128..127.
    """
    try:
        value = operator.index(tag)
    except TypeError as e:
        raise ExtClassError(
            f"expected Integer but found {type(tag).__name__}."
        ) from e
    if not EXT_TAG_MIN <= value <= EXT_TAG_MAX:
        raise TagRangeError(f"integer {value} too big to convert to `signed char'")
    return value


def check_ext_class(ext_class: Any) -> type:
    """Ensures ext_class is a class. Raises ExtClassError otherwise."""
    if not isinstance(ext_class, type):
        raise ExtClassError(
            f"expected Class but found {type(ext_class).__name__}."
        )
    return ext_class


def resolve_packer(ext_class: type, selector: Selector) -> Optional[Callable[[Any], bytes]]:
    """Resolve a pack-direction selector. Returns None if selector is None.

    A method name is bound lazily: the returned handler calls that method on
    whatever instance is being packed, so subclass overrides are honoured.
    """
    if selector is None:
        return None
    if isinstance(selector, str):
        return operator.methodcaller(selector)
    if callable(selector):
        return selector
    raise HandlerResolutionError(
        f"packer for {ext_class.__name__} must be a callable or a method name, "
        f"got {type(selector).__name__}."
    )


def resolve_unpacker(ext_class: type, selector: Selector) -> Optional[Callable[[bytes], Any]]:
    """Resolve an unpack-direction selector. Returns None if selector is None.

    A method name is looked up on the class itself (classmethod or
    staticmethod) right away.
    """
    if selector is None:
        return None
    if isinstance(selector, str):
        handler = getattr(ext_class, selector, None)
        if handler is None or not callable(handler):
            raise HandlerResolutionError(
                f"undefined method `{selector}' for class `{ext_class.__name__}'"
            )
        return handler
    if callable(selector):
        return selector
    raise HandlerResolutionError(
        f"unpacker for {ext_class.__name__} must be a callable or a method name, "
        f"got {type(selector).__name__}."
    )


def handler_name(handler: Optional[Callable[..., Any]]) -> str:
    """Human-readable name of a handler for logs and CLI output."""
    if handler is None:
        return "-"
    return getattr(handler, "__qualname__", None) or repr(handler)
