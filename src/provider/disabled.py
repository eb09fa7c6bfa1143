"""Wrapper turning a source switched off by configuration into a no-op source."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

from constants import ArchiveKinds
from common.errors import SourceDisabledError
from common.http_client import NOOP_PROGRESS, ProgressListener
from provider.base import Provider
from provider.models import Archive, Candidate, Version

logger = logging.getLogger(__name__)


class DisabledProvider(Provider):
    """Short-circuits every remote operation of ``delegate``.

    Listings are empty so aggregations across sources keep working, local
    lookups still see what was installed before the source got disabled,
    and anything needing the remote side raises ``SourceDisabledError``.
    """

    def __init__(self, delegate: Provider):
        super().__init__(archives=delegate.archives, installer=delegate.installer)
        self.delegate = delegate
        self.priority = delegate.priority

    def name(self) -> str:
        return self.delegate.name()

    def implementation_name(self) -> str:
        return self.delegate.implementation_name()

    async def list_tools(self) -> List[Candidate]:
        return []

    async def list_versions(self, tool: str) -> List[Version]:
        return []

    async def list_local(self) -> Dict[Candidate, List[Version]]:
        return {}

    async def download(self, tool: str, version: str, target: Path,
                       progress_listener: ProgressListener = NOOP_PROGRESS) -> Archive:
        raise SourceDisabledError(self.name(), f"download {tool}@{version}")

    async def install(self, tool: str, version: str,
                      progress_listener: ProgressListener = NOOP_PROGRESS) -> Path:
        installed = self.delegate.resolve(tool, version)
        if installed is None:
            raise SourceDisabledError(self.name(), f"install {tool}@{version}")
        return installed

    def delete(self, tool: str, version: str) -> None:
        if self.delegate.resolve(tool, version) is None:
            return
        raise SourceDisabledError(self.name(), f"delete {tool}@{version}")

    def resolve(self, tool: str, version: str) -> Optional[Path]:
        return self.delegate.resolve(tool, version)

    def exploded_path(self, tool: str, version: str) -> Path:
        return self.delegate.exploded_path(tool, version)

    def archive_path(self, tool: str, version: str) -> Optional[Path]:
        return self.delegate.archive_path(tool, version)

    def archive_kind(self, tool: str, version: str) -> ArchiveKinds:
        return self.delegate.archive_kind(tool, version)

    def __repr__(self) -> str:
        return f"DisabledProvider({self.delegate!r})"
