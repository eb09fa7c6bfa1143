"""On-disk HTTP response cache for slow listing endpoints.

Entries are JSON files named after the URL-safe base64 of the cache key, so
they survive between process invocations.
"""
from __future__ import annotations

import base64
import json
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from common.http_client import ensure_200
from common.logging_utils import safe_url

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedResponse:
    """Payload of a cache file."""

    headers: Dict[str, str]
    payload: str
    valid_until: float


@dataclass(frozen=True)
class CachedEntry:
    """Result of a lookup: where to save, what was found and whether it is stale."""

    location: Path
    hit: Optional[CachedResponse]
    expired: bool


class HttpCache:
    """Lookup/save of response bodies keyed by request identity."""

    def __init__(self, directory: Optional[str], validity_sec: float):
        """Initialize the cache.

        Args:
            directory: Cache directory; ``None`` or ``"none"`` disables the cache.
            validity_sec: Entry validity; zero or negative disables the cache.
        """
        self._validity = validity_sec
        if not directory or directory == "none" or validity_sec <= 0:
            self._directory: Optional[Path] = None
        else:
            self._directory = Path(directory)
            try:
                self._directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ValueError(
                    f"Can't create HTTP cache directory: '{directory}', adjust http.cache"
                ) from e

    @property
    def enabled(self) -> bool:
        return self._directory is not None

    def lookup(self, key: str) -> Optional[CachedEntry]:
        """Find a cached response.

        Returns:
            None when the cache is disabled, else an entry whose ``hit`` is None on miss.
        """
        if self._directory is None:
            return None
        name = base64.urlsafe_b64encode(key.encode("utf-8")).decode("ascii").rstrip("=")
        location = self._directory / name
        if not location.exists():
            return CachedEntry(location, None, True)
        try:
            data = json.loads(location.read_text(encoding="utf-8"))
            cached = CachedResponse(
                headers=dict(data.get("headers") or {}),
                payload=data.get("payload") or "",
                valid_until=float(data.get("validUntil") or 0),
            )
        except (OSError, ValueError) as e:
            logger.debug("Ignoring unreadable cache entry %s: %s", location, e)
            return CachedEntry(location, None, True)
        return CachedEntry(location, cached, cached.valid_until < time.time())

    def save(self, location: Path, headers: Dict[str, str], body: str) -> None:
        """Persist a response; a failed write never leaves a partial file."""
        data = {
            "headers": {
                k: v for k, v in headers.items() if k.lower() != "content-encoding"
            },
            "payload": body,
            "validUntil": time.time() + self._validity,
        }
        tmp = location.with_name(location.name + ".tmp")
        try:
            tmp.write_text(json.dumps(data), encoding="utf-8")
            os.replace(tmp, location)
        except OSError as e:
            logger.debug("Can't write cache entry %s: %s", location, e)
            for path in (tmp, location):
                try:
                    path.unlink()
                except OSError:
                    pass


async def fetch_text(http, cache: Optional[HttpCache], url: str,
                     headers: Optional[Dict[str, str]] = None) -> str:
    """GET ``url`` through ``cache``, refreshing stale or missing entries.

    Args:
        http: Client exposing ``send``.
        cache: Optional response cache.
        url: Target URL, also the cache key.
        headers: Optional request headers.

    Returns:
        The response body.

    Raises:
        RemoteProtocolError: On a non-2xx answer.
    """
    entry = cache.lookup(url) if cache is not None else None
    if entry is not None and entry.hit is not None and not entry.expired:
        logger.debug("HTTP cache hit for %s", safe_url(url))
        return entry.hit.payload
    response = ensure_200(await http.send(url, headers))
    if entry is not None and cache is not None:
        cache.save(entry.location, response.headers, response.body)
    return response.body
