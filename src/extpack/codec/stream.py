"""
Async helpers for reading and writing streams of packed objects from files.

A msgpack stream is simply packed objects written back to back, so reading
feeds fixed-size chunks into an Unpacker and yields whatever became complete.
"""

import logging
from pathlib import Path
from typing import Any, AsyncIterator, Iterable, Union

import aiofiles

from .backend import Packer, Unpacker

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024


async def read_objects(
    unpacker: Unpacker,
    path: Union[str, Path],
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> AsyncIterator[Any]:
    """
    Yield every object stored in a msgpack stream file.

    Args:
        unpacker: Unpacker created without file_like (bytes are fed to it).
        path: File to read.
        chunk_size: Number of bytes read per chunk.

    Yields:
        Unpacked objects, ext types resolved through the unpacker's registry.

    Raises:
        ValueError: If the file ends in the middle of an object.
    """
    count = 0
    fed = 0
    start = unpacker.tell()
    async with aiofiles.open(path, "rb") as f:
        while True:
            chunk = await f.read(chunk_size)
            if not chunk:
                break
            unpacker.feed(chunk)
            fed += len(chunk)
            for obj in unpacker:
                count += 1
                yield obj

    remaining = fed - (unpacker.tell() - start)
    if remaining:
        raise ValueError(
            f"{path}: truncated stream, {remaining} trailing byte(s) could not be decoded"
        )
    logger.debug(f"Read {count} object(s) from {path}")


async def write_objects(
    packer: Packer,
    path: Union[str, Path],
    objects: Iterable[Any],
) -> int:
    """
    Pack objects and write them back to back to a file.

    Args:
        packer: Packer with autoreset enabled (the default).
        path: File to write (overwritten).
        objects: Objects to pack.

    Returns:
        Number of objects written.
    """
    count = 0
    async with aiofiles.open(path, "wb") as f:
        for obj in objects:
            await f.write(packer.pack(obj))
            count += 1
    logger.debug(f"Wrote {count} object(s) to {path}")
    return count
