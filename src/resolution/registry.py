"""Resolution of a tool/version expression across every configured source.

Sources are ranked once, at construction, by their declared priority then
their name. A resolution queries every candidate source concurrently but
only accepts the first match in rank order, so the same request always
resolves to the same source whatever the network latencies are.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Iterable, List, Optional, Tuple

import aiohttp

from common.errors import NoMatchError, YemError
from common.logging_utils import extra_context, Timer
from provider.base import Provider
from provider.models import MatchedVersion, Version
from resolution.cache import ResolutionCache

logger = logging.getLogger(__name__)

# failures of one source which must not fail a multi-source resolution
SOURCE_ERRORS = (YemError, aiohttp.ClientError, asyncio.TimeoutError, OSError, ValueError)


def match_version(candidate: Version, expression: str, relaxed: bool) -> bool:
    """Exact match on version or identifier, prefix match on version when relaxed."""
    return (
        expression == candidate.version
        or expression == candidate.identifier
        or (relaxed and candidate.version.startswith(expression))
    )


def _log_unconsumed(task: asyncio.Future, provider: Provider) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug("Ignored failure of lower priority source %s: %s", provider.name(), error)


class ProviderRegistry:
    """Ordered set of sources answering tool/version lookups."""

    def __init__(self, providers: Iterable[Provider]):
        self._providers: List[Provider] = sorted(providers, key=lambda p: (p.priority, p.name()))

    @property
    def providers(self) -> List[Provider]:
        return list(self._providers)

    def find_provider(self, name: str) -> Optional[Provider]:
        """Source whose name is ``name``, or whose type name starts with it (case insensitive)."""
        matching = self._filter(name)
        return matching[0] if matching else None

    def _filter(self, hint: Optional[str]) -> List[Provider]:
        if not hint:
            return list(self._providers)
        lower = hint.lower()
        return [
            p for p in self._providers
            if p.name() == hint or p.implementation_name().lower().startswith(lower)
        ]

    async def resolve(self, tool: str, version: str, provider: Optional[str] = None,
                      relaxed: bool = False, allow_remote: bool = True,
                      cache: Optional[ResolutionCache] = None) -> Optional[MatchedVersion]:
        """Find ``tool`` in ``version``.

        Args:
            tool: Tool name, a candidate id of one of the sources.
            version: Version or identifier; a prefix when ``relaxed``.
            provider: Optional source hint.
            relaxed: Accept versions starting with ``version``.
            allow_remote: Fall back on remote listings when nothing local matches.
            cache: Session memo shared by related resolutions.

        Returns:
            The match of the highest ranked source, None when no source matches.
        """
        match, _, _ = await self._resolve(tool, version, provider, relaxed, allow_remote,
                                          cache or ResolutionCache())
        return match

    async def resolve_strict(self, tool: str, version: str, provider: Optional[str] = None,
                             relaxed: bool = False, allow_remote: bool = True,
                             cache: Optional[ResolutionCache] = None) -> MatchedVersion:
        """Like ``resolve`` but raise ``NoMatchError`` listing every known tool and version."""
        cache = cache or ResolutionCache()
        match, queried, errors = await self._resolve(tool, version, provider, relaxed, allow_remote, cache)
        if match is not None:
            return match

        diagnostics = await self.describe(cache)
        if queried and len(errors) == queried:
            diagnostics += "\nErrors:\n" + "\n".join(
                f"- {source.name()}: {error}" for source, error in errors
            )
        raise NoMatchError(tool, version, diagnostics)

    async def _resolve(self, tool: str, version: str, hint: Optional[str], relaxed: bool,
                       allow_remote: bool, cache: ResolutionCache
                       ) -> Tuple[Optional[MatchedVersion], int, List[Tuple[Provider, BaseException]]]:
        providers = self._filter(hint)
        tasks = [
            asyncio.ensure_future(self._find(p, tool, version, relaxed, allow_remote, cache))
            for p in providers
        ]
        errors: List[Tuple[Provider, BaseException]] = []
        with Timer() as t:
            for index, (source, task) in enumerate(zip(providers, tasks)):
                try:
                    match = await task
                except SOURCE_ERRORS as e:
                    logger.debug(
                        "Source %s failed resolving %s@%s: %s",
                        source.name(),
                        tool,
                        version,
                        e,
                        extra=extra_context(event="resolve", component="registry",
                                            action=source.name(), outcome="error"),
                    )
                    errors.append((source, e))
                    continue
                except BaseException:
                    for pending in tasks[index + 1:]:
                        pending.cancel()
                    raise
                if match is None:
                    continue
                for other, pending in zip(providers[index + 1:], tasks[index + 1:]):
                    pending.add_done_callback(lambda done, p=other: _log_unconsumed(done, p))
                logger.debug(
                    "Resolved %s@%s with %s (%s)",
                    tool,
                    version,
                    source.name(),
                    match.version.identifier,
                    extra=extra_context(event="resolve", component="registry", action=source.name(),
                                        outcome="success", duration_ms=t.duration_ms()),
                )
                return match, len(providers), errors
        return None, len(providers), errors

    async def _find(self, source: Provider, tool: str, version: str, relaxed: bool,
                    allow_remote: bool, cache: ResolutionCache) -> Optional[MatchedVersion]:
        candidate = next((c for c in await cache.tools(source) if c.id == tool), None)
        if candidate is None:
            return None

        for local_candidate, versions in (await cache.local(source)).items():
            if local_candidate.id != tool:
                continue
            for installed in versions:
                if match_version(installed, version, relaxed):
                    return MatchedVersion(source, local_candidate, installed)

        if not allow_remote:
            return None
        for available in await cache.versions(source, tool):
            if match_version(available, version, relaxed):
                return MatchedVersion(source, candidate, available)
        return None

    async def describe(self, cache: Optional[ResolutionCache] = None) -> str:
        """Every tool and version known by every source, one block per tool."""
        cache = cache or ResolutionCache()
        blocks = await asyncio.gather(*(self._describe(p, cache) for p in self._providers))
        return "\n".join(sorted(block for source_blocks in blocks for block in source_blocks))

    async def _describe(self, source: Provider, cache: ResolutionCache) -> List[str]:
        try:
            tools = await cache.tools(source)
        except SOURCE_ERRORS as e:
            logger.debug("Can't list tools of %s: %s", source.name(), e)
            return []
        blocks = []
        for candidate in tools:
            try:
                versions = await cache.versions(source, candidate.id)
            except SOURCE_ERRORS as e:
                logger.debug("Can't list versions of %s from %s: %s", candidate.id, source.name(), e)
                versions = []
            lines = [f"- {candidate.id}"] + [f"-- {v.identifier} ({v.version})" for v in versions]
            blocks.append("\n".join(lines))
        return blocks
