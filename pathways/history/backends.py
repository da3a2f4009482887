"""
Byte-addressable key/value backends for conversation history.

A backend only has to support multi-get, multi-set, prefix-enumerated key
listing and multi-delete. Two implementations are provided:

- InMemoryKeyValueStore: a dict, lives as long as the process
- FileKeyValueStore: one file per key under a directory, via aiofiles

Example:
    >>> async with FileKeyValueStore("data/history") as store:
    ...     await store.mset([("conv-1:msg-1", b"{}")])
    ...     keys = [k async for k in store.yield_keys("conv-1:")]
"""

import asyncio
import os
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence
from pathlib import Path
from urllib.parse import quote, unquote

import aiofiles
import aiofiles.os

from pathways.config.logging import get_logger

logger = get_logger(__name__)


class KeyValueStore(ABC):
    """
    Abstract base class for key/value backends.

    Backends are process-wide: one instance is created at startup, shared by
    every conversation, and closed at shutdown.
    """

    async def initialize(self) -> None:
        """Open connections or create storage. No-op by default."""

    async def close(self) -> None:
        """Release resources. No-op by default."""

    @abstractmethod
    async def mget(self, keys: Sequence[str]) -> list[bytes | None]:
        """
        Fetch values for keys.

        Returns:
            One entry per key, in key order; None where the key is absent
        """

    @abstractmethod
    async def mset(self, pairs: Sequence[tuple[str, bytes]]) -> None:
        """Write every (key, value) pair, overwriting existing values."""

    @abstractmethod
    async def mdelete(self, keys: Sequence[str]) -> None:
        """Delete keys. Missing keys are ignored."""

    @abstractmethod
    def yield_keys(self, prefix: str = "") -> AsyncIterator[str]:
        """Iterate over every key starting with prefix."""

    async def __aenter__(self):
        """Async context manager entry - initialize the backend."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit - close the backend."""
        await self.close()
        return False


class InMemoryKeyValueStore(KeyValueStore):
    """Dict-backed store."""

    def __init__(self):
        self._data: dict[str, bytes] = {}

    async def mget(self, keys: Sequence[str]) -> list[bytes | None]:
        return [self._data.get(key) for key in keys]

    async def mset(self, pairs: Sequence[tuple[str, bytes]]) -> None:
        for key, value in pairs:
            self._data[key] = bytes(value)

    async def mdelete(self, keys: Sequence[str]) -> None:
        for key in keys:
            self._data.pop(key, None)

    async def yield_keys(self, prefix: str = "") -> AsyncIterator[str]:
        # Snapshot so concurrent writes don't break iteration
        for key in list(self._data):
            if key.startswith(prefix):
                yield key


class FileKeyValueStore(KeyValueStore):
    """
    Store each key as a file in a single directory.

    Keys are percent-encoded into file names, so any string is a valid key
    and prefix enumeration is a directory listing plus a decode. Writes go to
    a temporary file that is then renamed over the target, so a reader sees
    either the old or the new value, never a partial one.

    Attributes:
        directory: Where the files live
    """

    # Never produced by quote(), so temp files cannot clash with keys
    _TMP_SUFFIX = "%tmp"

    def __init__(self, directory: Path | str):
        self.directory = Path(directory)

    async def initialize(self) -> None:
        logger.info(f"Opening file history store at {self.directory}")
        await asyncio.to_thread(self.directory.mkdir, parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / quote(key, safe="")

    async def mget(self, keys: Sequence[str]) -> list[bytes | None]:
        values: list[bytes | None] = []
        for key in keys:
            try:
                async with aiofiles.open(self._path(key), "rb") as f:
                    values.append(await f.read())
            except FileNotFoundError:
                values.append(None)
        return values

    async def mset(self, pairs: Sequence[tuple[str, bytes]]) -> None:
        for key, value in pairs:
            target = self._path(key)
            tmp = target.with_name(f"{target.name}.{os.getpid()}{self._TMP_SUFFIX}")
            async with aiofiles.open(tmp, "wb") as f:
                await f.write(value)
            await aiofiles.os.replace(tmp, target)

    async def mdelete(self, keys: Sequence[str]) -> None:
        for key in keys:
            try:
                await aiofiles.os.remove(self._path(key))
            except FileNotFoundError:
                pass

    async def yield_keys(self, prefix: str = "") -> AsyncIterator[str]:
        if not self.directory.exists():
            return
        names = await aiofiles.os.listdir(self.directory)
        for name in sorted(names):
            if name.endswith(self._TMP_SUFFIX):
                continue
            key = unquote(name)
            if key.startswith(prefix):
                yield key
