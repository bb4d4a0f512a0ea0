"""Command-line tools for inspecting MessagePack data."""

from .dump import (
    dump_file,
    format_dump_result,
    serialize_dump_result,
)

__all__ = [
    "dump_file",
    "format_dump_result",
    "serialize_dump_result",
]
