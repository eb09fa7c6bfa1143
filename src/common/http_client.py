"""Shared async HTTP client injected into every source.

Wraps a lazily started ``aiohttp.ClientSession`` with the timeouts, outbound
proxy, per-host authentication headers and optional concurrency gate read
from the ``http`` configuration.
"""
from __future__ import annotations

import logging
import os
import urllib.parse
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import aiohttp

from constants import Constants
from common.concurrency import ConcurrencyGate, maybe_hold
from common.errors import RemoteProtocolError
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)

ProgressListener = Callable[[str, float], None]


def _noop_progress(name: str, percent: float) -> None:  # pylint: disable=unused-argument
    return None


NOOP_PROGRESS: ProgressListener = _noop_progress


@dataclass
class HttpResponse:
    """Buffered outcome of an exchange.

    ``chain_headers`` holds the headers of every hop of the redirect chain,
    final response last.
    """

    status: int
    url: str
    headers: Dict[str, str]
    body: str = ""
    chain_headers: List[Dict[str, str]] = field(default_factory=list)

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Case-insensitive header lookup on the final response."""
        lower = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lower:
                return value
        return default

    def find_in_chain(self, name: str) -> Optional[str]:
        """First value of ``name`` across the redirect chain."""
        lower = name.lower()
        for headers in self.chain_headers or [self.headers]:
            for key, value in headers.items():
                if key.lower() == lower:
                    return value
        return None


def ensure_200(response: HttpResponse) -> HttpResponse:
    """Raise ``RemoteProtocolError`` unless the response status is 2xx."""
    if response.status < 200 or response.status > 299:
        raise RemoteProtocolError(
            f"Invalid response from {safe_url(response.url)}",
            url=response.url,
            status=response.status,
            body=response.body,
        )
    return response


class HttpClient:
    """Async HTTP client with authentication, proxy and optional request gating."""

    def __init__(
        self,
        *,
        connect_timeout: float = Constants.CONNECT_TIMEOUT_SEC,
        request_timeout: float = Constants.REQUEST_TIMEOUT_SEC,
        max_concurrent_requests: int = 0,
        proxy: Optional[str] = None,
        log: bool = False,
    ):
        """Initialize the client.

        Args:
            connect_timeout: Connection timeout in seconds.
            request_timeout: Total request timeout in seconds.
            max_concurrent_requests: Cap on in-flight requests, 0 disables gating.
            proxy: Outbound proxy URL.
            log: Log each exchange at debug level.
        """
        self._timeout = aiohttp.ClientTimeout(total=request_timeout, connect=connect_timeout)
        self._gate = ConcurrencyGate(max_concurrent_requests) if max_concurrent_requests > 0 else None
        self._proxy = proxy or None
        self._log = log
        self._authentications: Dict[Tuple[str, int], Tuple[str, str]] = {}
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def gate(self) -> Optional[ConcurrencyGate]:
        return self._gate

    async def start(self) -> None:
        """Start the HTTP session."""
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                headers={"User-Agent": Constants.USER_AGENT, "Accept-Encoding": "gzip"},
            )

    async def stop(self) -> None:
        """Stop the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "HttpClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    def register_authentication(self, host: str, port: int, header: str) -> None:
        """Attach a ``Name: value`` header to every request sent to ``host:port``."""
        name, sep, value = header.partition(":")
        if not sep or not name.strip():
            raise ValueError(f"Invalid authentication header, expected 'Name: value': {header!r}")
        self._authentications[(host.lower(), port)] = (name.strip(), value.strip())

    def register_authentication_for(self, base_url: str, header: Optional[str]) -> None:
        """Register ``header`` for the host of ``base_url``, ignoring blank headers."""
        if not header or not header.strip():
            return
        parsed = urllib.parse.urlsplit(base_url)
        port = parsed.port or (443 if parsed.scheme == "https" else 80)
        self.register_authentication(parsed.hostname or "", port, header)

    def _headers_for(self, url: str, headers: Optional[Dict[str, str]]) -> Dict[str, str]:
        merged = dict(headers or {})
        parsed = urllib.parse.urlsplit(url)
        port = parsed.port or (443 if parsed.scheme == "https" else 80)
        auth = self._authentications.get(((parsed.hostname or "").lower(), port))
        if auth is not None:
            merged.setdefault(auth[0], auth[1])
        return merged

    async def send(self, url: str, headers: Optional[Dict[str, str]] = None) -> HttpResponse:
        """GET ``url`` following redirects and buffer the body as text.

        Args:
            url: Target URL.
            headers: Optional request headers.

        Returns:
            HttpResponse: Status, headers and decoded body.
        """
        if self._session is None:
            await self.start()
        safe_target = safe_url(url)
        async with maybe_hold(self._gate):
            with Timer() as t:
                async with self._session.get(
                    url, headers=self._headers_for(url, headers), proxy=self._proxy
                ) as response:
                    body = await response.text(errors="replace")
                    result = HttpResponse(
                        status=response.status,
                        url=str(response.url),
                        headers=dict(response.headers),
                        body=body,
                        chain_headers=[dict(hop.headers) for hop in response.history]
                        + [dict(response.headers)],
                    )
        self._trace("GET", safe_target, result.status, t.duration_ms())
        return result

    async def download_to_file(
        self,
        url: str,
        target: Path,
        progress_listener: ProgressListener = NOOP_PROGRESS,
        headers: Optional[Dict[str, str]] = None,
    ) -> HttpResponse:
        """Stream ``url`` into ``target``, reporting progress when the size is known.

        The body is only written for 2xx answers; other statuses return the
        response with its text body so callers can raise with context.
        """
        if self._session is None:
            await self.start()
        safe_target = safe_url(url)
        name = os.path.basename(urllib.parse.urlsplit(url).path) or str(target.name)
        async with maybe_hold(self._gate):
            with Timer() as t:
                async with self._session.get(
                    url, headers=self._headers_for(url, headers), proxy=self._proxy
                ) as response:
                    chain = [dict(hop.headers) for hop in response.history] + [dict(response.headers)]
                    if response.status < 200 or response.status > 299:
                        body = await response.text(errors="replace")
                        result = HttpResponse(response.status, str(response.url),
                                              dict(response.headers), body, chain)
                    else:
                        total = response.content_length
                        written = 0
                        target.parent.mkdir(parents=True, exist_ok=True)
                        with open(target, "wb") as out:
                            async for chunk in response.content.iter_chunked(Constants.DOWNLOAD_CHUNK_SIZE):
                                out.write(chunk)
                                written += len(chunk)
                                if total:
                                    progress_listener(name, min(1.0, written / total))
                        if total:
                            progress_listener(name, 1.0)
                        result = HttpResponse(response.status, str(response.url),
                                              dict(response.headers), "", chain)
        self._trace("DOWNLOAD", safe_target, result.status, t.duration_ms())
        return result

    def _trace(self, action: str, target: str, status: int, duration_ms: int) -> None:
        if self._log or is_debug_enabled(logger):
            logger.debug(
                "HTTP %s %s -> %s (%sms)",
                action,
                target,
                status,
                duration_ms,
                extra=extra_context(
                    event="http_response",
                    component="http_client",
                    action=action,
                    outcome="success" if 200 <= status <= 299 else "error",
                    status_code=status,
                    duration_ms=duration_ms,
                    target=target,
                ),
            )
