"""Contract implemented by every distribution source, plus shared local-layout helpers."""
from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

from constants import ArchiveKinds, Constants
from common.http_client import NOOP_PROGRESS, ProgressListener
from installer.archives import Archives
from installer.orchestrator import InstallOrchestrator
from provider.models import Archive, Candidate, Version, version_sort_key

logger = logging.getLogger(__name__)


class Provider(ABC):
    """A distribution source backed by a remote service and a local cache directory.

    Subclasses describe their local layout through ``exploded_path`` and
    ``archive_path``; installation itself is shared and goes through the
    install orchestrator.
    """

    priority: int = 0

    def __init__(self, archives: Optional[Archives] = None,
                 installer: Optional[InstallOrchestrator] = None):
        self.archives = archives or Archives()
        self.installer = installer or InstallOrchestrator(self.archives)

    @abstractmethod
    def name(self) -> str:
        """Stable identity, used as provider hint and in diagnostics."""

    def implementation_name(self) -> str:
        """Name of the concrete source type, matched by provider hints."""
        return type(self).__name__

    @abstractmethod
    async def list_tools(self) -> List[Candidate]:
        """Tools this source can serve."""

    @abstractmethod
    async def list_versions(self, tool: str) -> List[Version]:
        """Remote listing of the versions of ``tool``."""

    @abstractmethod
    async def list_local(self) -> Dict[Candidate, List[Version]]:
        """Installed versions per tool, read from the local directory only."""

    @abstractmethod
    async def download(self, tool: str, version: str, target: Path,
                       progress_listener: ProgressListener = NOOP_PROGRESS) -> Archive:
        """Fetch the distribution archive of ``version`` into ``target``."""

    @abstractmethod
    def exploded_path(self, tool: str, version: str) -> Path:
        """Directory whose presence means the version is fully installed."""

    def archive_path(self, tool: str, version: str) -> Optional[Path]:
        """Where the downloaded archive is kept after install, None to discard it."""
        return None

    def archive_kind(self, tool: str, version: str) -> ArchiveKinds:
        """Kind of the archive found at ``archive_path``."""
        return ArchiveKinds.TAR_GZ

    def install_root(self, tool: str, version: str) -> Path:
        """Directory removed by ``delete``; defaults to the exploded directory."""
        return self.exploded_path(tool, version)

    def post_install(self, tool: str, version: str, exploded: Path) -> None:
        """Hook run once the archive is unpacked, before the install is visible."""

    def resolve(self, tool: str, version: str) -> Optional[Path]:
        """Local lookup of an installed version, no network involved."""
        exploded = self.exploded_path(tool, version)
        if not exploded.is_dir():
            return None
        return self._home(exploded)

    async def install(self, tool: str, version: str,
                      progress_listener: ProgressListener = NOOP_PROGRESS) -> Path:
        """Install ``version`` unless already there and return its home directory."""
        exploded = await self.installer.ensure_installed(self, tool, version, progress_listener)
        return self._home(exploded)

    def delete(self, tool: str, version: str) -> None:
        """Remove the install and its archive, no-op when absent."""
        archive = self.archive_path(tool, version)
        if archive is not None and (archive.exists() or archive.is_symlink()):
            self.archives.delete(archive)
        root = self.install_root(tool, version)
        if root.exists() or root.is_symlink():
            logger.info("Deleting %s@%s from %s (%s)", tool, version, self.name(), root)
            self.archives.delete(root)

    @staticmethod
    def _home(exploded: Path) -> Path:
        mac = exploded / Constants.MAC_HOME
        if mac.is_dir():
            return mac
        return exploded

    @staticmethod
    def _sorted_newest_first(versions: List[Version]) -> List[Version]:
        return sorted(versions, key=lambda v: version_sort_key(v.version), reverse=True)

    @staticmethod
    def _list_dirs(root: Path) -> List[Path]:
        """Sub-directories of ``root``, symbolic links excluded."""
        if not root.is_dir():
            return []
        return sorted(
            child for child in root.iterdir()
            if child.is_dir() and not child.is_symlink()
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name()!r}, priority={self.priority})"


def emoji_metadata(tool: str) -> Dict[str, str]:
    """Decorative metadata for well-known tools."""
    emoji = Constants.TOOL_EMOJIS.get(tool)
    return {"emoji": emoji} if emoji else {}


def expand(path: str) -> Path:
    """Expand ``~`` and environment variables of a configured directory."""
    return Path(os.path.expandvars(os.path.expanduser(path)))
