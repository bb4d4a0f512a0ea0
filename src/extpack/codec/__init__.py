"""Codec package: msgpack-backed Packer/Unpacker and file stream helpers."""

from .backend import Packer, Unpacker
from .stream import read_objects, write_objects

__all__ = ["Packer", "Unpacker", "read_objects", "write_objects"]
