# /cx_connector/services/node_cache.py

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Generic, TypeVar

from cx_connector.utils.metrics import node_cache_operations

# Per-crawl memo of flow and page lookups. Entries are tasks rather than
# values, so a node requested twice (or prefetched and then walked) is
# fetched exactly once. Nothing outlives the crawl.

logger = logging.getLogger(__name__)

T = TypeVar("T")


class NodeCache(Generic[T]):
    def __init__(self, kind: str, fetch_func: Callable[[str], Awaitable[T]]):
        self.kind = kind
        self._fetch = fetch_func
        self._entries: Dict[str, asyncio.Task] = {}

    @property
    def fetched_count(self) -> int:
        """Number of nodes fetched successfully so far."""
        return sum(
            1 for task in self._entries.values()
            if task.done() and not task.cancelled() and task.exception() is None
        )

    def prefetch(self, path: str):
        """Starts fetching a node in the background unless it is already known."""
        if path in self._entries:
            return
        node_cache_operations.labels(kind=self.kind, status="prefetch").inc()
        self._entries[path] = asyncio.ensure_future(self._fetch(path))

    async def get(self, path: str) -> T:
        task = self._entries.get(path)
        if task is None:
            node_cache_operations.labels(kind=self.kind, status="miss").inc()
            task = asyncio.ensure_future(self._fetch(path))
            self._entries[path] = task
        else:
            node_cache_operations.labels(kind=self.kind, status="hit").inc()
        return await task

    async def close(self):
        """Cancels prefetches nobody waited for and collects their outcome."""
        pending = [task for task in self._entries.values() if not task.done()]
        for task in pending:
            task.cancel()
        results = await asyncio.gather(*self._entries.values(), return_exceptions=True)
        for path, result in zip(self._entries.keys(), results):
            if isinstance(result, Exception):
                logger.debug(f"{self.kind} {path} was not fetched: {result}")
