"""
extpack: MessagePack extension type registry and factory.

Register application classes on a Factory, then create Packer/Unpacker
instances from it. Each instance keeps the registrations that existed when it
was created.
"""

from .codec import Packer, Unpacker
from .ext import (
    DecodeRegistry,
    EncodeRegistry,
    ExtClassError,
    HandlerResolutionError,
    TagRangeError,
)
from .factory import (
    Factory,
    Registration,
    RegistryConfigError,
    load_factory,
    load_registrations,
)

__version__ = "0.1.0"

__all__ = [
    "DecodeRegistry",
    "EncodeRegistry",
    "ExtClassError",
    "Factory",
    "HandlerResolutionError",
    "Packer",
    "Registration",
    "RegistryConfigError",
    "TagRangeError",
    "Unpacker",
    "load_factory",
    "load_registrations",
    "__version__",
]
