"""
Ext package: encode/decode registries for MessagePack extension types and the helpers they share.
"""

from .decoders import DecodeBinding, DecodeRegistry
from .encoders import EncodeBinding, EncodeRegistry
from .utils import (
    ExtClassError,
    HandlerResolutionError,
    TagRangeError,
    check_tag,
)

__all__ = [
    "DecodeBinding",
    "DecodeRegistry",
    "EncodeBinding",
    "EncodeRegistry",
    "ExtClassError",
    "HandlerResolutionError",
    "TagRangeError",
    "check_tag",
]
