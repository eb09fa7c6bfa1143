"""Turns a matched version into an installed directory, once, with rollback."""
from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from constants import Constants
from common.concurrency import SingleFlight
from common.http_client import NOOP_PROGRESS, ProgressListener
from common.logging_utils import extra_context, Timer
from installer.archives import Archives
from provider.models import Archive

if TYPE_CHECKING:  # pragma: no cover
    from provider.base import Provider

logger = logging.getLogger(__name__)


class InstallOrchestrator:
    """Idempotent download + extraction of a version into its exploded directory.

    The exploded directory is either absent or fully populated: a failed
    download or extraction removes it before the error propagates, and the
    temporary working directory is always removed.
    """

    def __init__(self, archives: Optional[Archives] = None):
        self.archives = archives or Archives()
        self._flight = SingleFlight()

    async def ensure_installed(self, provider: "Provider", tool: str, version: str,
                               progress_listener: ProgressListener = NOOP_PROGRESS) -> Path:
        """Install ``tool@version`` from ``provider`` unless already there.

        Args:
            provider: Source owning the version.
            tool: Tool name.
            version: Version identifier.
            progress_listener: Download progress callback.

        Returns:
            Path: The exploded directory.
        """
        final = provider.exploded_path(tool, version)
        if final.exists():
            return final
        return await self._flight.run(
            str(final),
            lambda: self._install(provider, tool, version, final, progress_listener),
        )

    async def _install(self, provider: "Provider", tool: str, version: str,
                       final: Path, progress_listener: ProgressListener) -> Path:
        if final.exists():
            return final

        persistent = provider.archive_path(tool, version)
        work = final.with_name(final.name + Constants.TEMPORARY_SUFFIX)
        with Timer() as t:
            try:
                if persistent is not None and persistent.is_file():
                    logger.debug("Reusing archive %s", persistent)
                    archive = Archive(provider.archive_kind(tool, version), persistent)
                    self.archives.unpack(archive, final)
                else:
                    if work.exists():
                        self.archives.delete(work)
                    work.mkdir(parents=True)
                    name = persistent.name if persistent is not None else Constants.DOWNLOADED_ARCHIVE_NAME
                    archive = await provider.download(tool, version, work / name, progress_listener)
                    self.archives.unpack(archive, final)
                    if persistent is not None:
                        persistent.parent.mkdir(parents=True, exist_ok=True)
                        shutil.move(str(archive.location), str(persistent))
                provider.post_install(tool, version, final)
            except BaseException:  # cancellation included
                if final.exists():
                    self.archives.delete(final)
                raise
            finally:
                if work.exists():
                    self.archives.delete(work)

        logger.info(
            "Installed %s@%s from %s",
            tool,
            version,
            provider.name(),
            extra=extra_context(
                event="install",
                component="orchestrator",
                action="install",
                outcome="success",
                duration_ms=t.duration_ms(),
                target=str(final),
            ),
        )
        return final
