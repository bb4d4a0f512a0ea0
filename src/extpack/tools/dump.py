"""
Dump the contents of a MessagePack stream file.

Every object in the file is decoded with the ext types from an optional
registration config, then printed one per line or written as YAML.
Ext values with no registered unpacker are shown with their tag and raw payload.
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, TypedDict

import aiofiles
import msgpack
import yaml

from ..codec.stream import read_objects
from ..factory.api import Factory
from .cli_common import add_config_arguments, configure_logging, factory_from_args

logger = logging.getLogger(__name__)

FORMAT_VERSION = "1"


class DumpMetaDict(TypedDict):
    """Metadata block of the YAML output."""

    file: str
    objects: int
    ext_types: list[int]
    timestamp: str


class DumpResultDict(TypedDict):
    """Top-level dict structure returned by _result_to_dict."""

    format_version: str
    dump: DumpMetaDict
    objects: list[Any]


@dataclass
class DumpResult:
    """Objects decoded from a stream file."""

    path: str
    objects: list[Any] = field(default_factory=list)
    ext_types: list[int] = field(default_factory=list)


async def dump_file(factory: Factory, path: Path) -> DumpResult:
    """
    Decode every object in a msgpack stream file.

    Args:
        factory: Factory whose registered types are used for decoding.
        path: Stream file.

    Returns:
        DumpResult with the decoded objects and the registered tags used.
    """
    unpacker = factory.unpacker(strict_map_key=False)
    objects = [obj async for obj in read_objects(unpacker, path)]
    return DumpResult(
        path=str(path),
        objects=objects,
        ext_types=sorted(binding.tag for binding in unpacker.ext_registry),
    )


def format_object(obj: Any) -> str:
    """One-line display form of a decoded object."""
    if isinstance(obj, msgpack.ExtType):
        return f"ExtType(code={obj.code}, data={obj.data.hex()})"
    return repr(obj)


def format_dump_result(result: DumpResult) -> str:
    """
    Format dump result as human-readable text.

    Args:
        result: Result from dump_file.

    Returns:
        Formatted string for console output.
    """
    registered = ", ".join(str(t) for t in result.ext_types) or "none"
    lines = [
        f"Dump: {result.path} ({len(result.objects)} objects, registered ext types: {registered})",
        "",
    ]
    if not result.objects:
        lines.append("(no objects)")
        return "\n".join(lines)

    width = len(str(len(result.objects) - 1))
    for index, obj in enumerate(result.objects):
        lines.append(f"{index:>{width}}  {format_object(obj)}")
    return "\n".join(lines)


def _to_plain(obj: Any) -> Any:
    """Convert a decoded object into something yaml.safe_dump accepts."""
    if obj is None or isinstance(obj, (bool, int, float, str)):
        return obj
    if isinstance(obj, (bytes, bytearray)):
        return {"bin": bytes(obj).hex()}
    if isinstance(obj, msgpack.ExtType):
        return {"ext_type": obj.code, "data": obj.data.hex()}
    if isinstance(obj, (list, tuple)):
        return [_to_plain(item) for item in obj]
    if isinstance(obj, dict):
        return {str(_to_plain(key)): _to_plain(value) for key, value in obj.items()}
    return {"class": type(obj).__qualname__, "repr": repr(obj)}


def _result_to_dict(result: DumpResult) -> DumpResultDict:
    """Convert DumpResult to a dict suitable for YAML serialization."""
    return {
        "format_version": FORMAT_VERSION,
        "dump": {
            "file": result.path,
            "objects": len(result.objects),
            "ext_types": list(result.ext_types),
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        },
        "objects": [_to_plain(obj) for obj in result.objects],
    }


def serialize_dump_result(result: DumpResult) -> str:
    """Serialize dump result to a YAML string."""
    return yaml.safe_dump(
        _result_to_dict(result),
        default_flow_style=False,
        allow_unicode=True,
        sort_keys=False,
    )


async def write_dump_result(path: Path, result: DumpResult) -> None:
    """Write dump result to a YAML file."""
    content = serialize_dump_result(result)
    async with aiofiles.open(path, "w", encoding="utf-8") as f:
        await f.write(content)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(
        description="Decode and print the objects stored in a MessagePack stream file."
    )
    add_config_arguments(parser)
    parser.add_argument(
        "-o",
        "--output",
        type=str,
        metavar="FILE",
        help="Write results to file (YAML format)",
    )
    parser.add_argument("file", help="MessagePack stream file to decode")
    return parser.parse_args(argv)


async def _main_async(argv: list[str] | None = None) -> int:
    """Async main logic. Returns exit code."""
    args = _parse_args(argv)
    configure_logging(args)

    factory = factory_from_args(args)
    if factory is None:
        return 1

    path = Path(args.file)
    if not path.exists():
        print(f"Error: {path} does not exist.", file=sys.stderr)
        return 1

    try:
        result = await dump_file(factory, path)
    except ValueError as e:
        logger.error(f"Failed to decode {path}: {e}")
        print(f"Error: could not decode {path}: {e}", file=sys.stderr)
        return 1

    if args.output:
        out_path = Path(args.output)
        await write_dump_result(out_path, result)
        print(f"Wrote dump to {out_path}")
    else:
        print(format_dump_result(result))
    return 0


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    exit_code = asyncio.run(_main_async(argv))
    raise SystemExit(exit_code)
