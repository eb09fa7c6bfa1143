"""Per-session memo of source listings."""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Hashable, List, Tuple

from provider.base import Provider
from provider.models import Candidate, Version


class ResolutionCache:
    """Listings of every source, shared by the resolutions of one session.

    Entries are futures inserted before the first suspension point, so
    concurrent resolutions of the same source in the same event loop share a
    single call. Failed calls are forgotten to let a later resolution retry.
    Never persisted.
    """

    def __init__(self) -> None:
        self._tools: Dict[Provider, asyncio.Future] = {}
        self._local: Dict[Provider, asyncio.Future] = {}
        self._versions: Dict[Tuple[Provider, str], asyncio.Future] = {}

    async def tools(self, provider: Provider) -> List[Candidate]:
        return await self._memo(self._tools, provider, provider.list_tools)

    async def local(self, provider: Provider) -> Dict[Candidate, List[Version]]:
        return await self._memo(self._local, provider, provider.list_local)

    async def versions(self, provider: Provider, tool: str) -> List[Version]:
        return await self._memo(self._versions, (provider, tool), lambda: provider.list_versions(tool))

    def clear(self) -> None:
        self._tools.clear()
        self._local.clear()
        self._versions.clear()

    @staticmethod
    async def _memo(table: Dict[Any, asyncio.Future], key: Hashable,
                    factory: Callable[[], Awaitable[Any]]) -> Any:
        future = table.get(key)
        if future is None:
            future = asyncio.ensure_future(factory())
            table[key] = future

            def _drop_failed(done: asyncio.Future) -> None:
                if (done.cancelled() or done.exception() is not None) and table.get(key) is done:
                    del table[key]

            future.add_done_callback(_drop_failed)
        return await asyncio.shield(future)
