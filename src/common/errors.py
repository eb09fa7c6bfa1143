"""Error taxonomy for resolution and installation."""
from __future__ import annotations

from typing import Optional


class YemError(Exception):
    """Base class of the errors raised by the engine."""


class SourceDisabledError(YemError):
    """An operation needing a source was attempted while it is disabled by configuration."""

    def __init__(self, provider: str, operation: str):
        super().__init__(f"{provider} support not enabled (by configuration), can't {operation}")
        self.provider = provider
        self.operation = operation


class RemoteProtocolError(YemError):
    """A source answered with a non-2xx status or a payload it can't parse."""

    def __init__(self, message: str, *, url: Optional[str] = None,
                 status: Optional[int] = None, body: Optional[str] = None):
        details = message
        if status is not None:
            details = f"{details} (status={status})"
        if body:
            details = f"{details}\n{body}"
        super().__init__(details)
        self.url = url
        self.status = status
        self.body = body


class NoMatchError(YemError):
    """No source, local or remote, matched the requested tool/version."""

    def __init__(self, tool: str, version: str, diagnostics: str):
        super().__init__(
            f"No provider for tool '{tool}' in version '{version}', available tools:\n{diagnostics}"
        )
        self.tool = tool
        self.version = version
        self.diagnostics = diagnostics


class ExtractionError(YemError):
    """An archive could not be unpacked (unknown kind, malformed or unsafe entry, I/O)."""
