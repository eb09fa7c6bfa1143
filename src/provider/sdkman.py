"""SDKMAN candidate catalog source.

Speaks the plain text API used by the ``sdk`` shell client and shares the
``~/.sdkman/candidates`` layout so installs are visible to both tools.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

from constants import Constants, ProviderPriorities
from common import platform_info
from common.concurrency import SingleFlight
from common.errors import RemoteProtocolError
from common.http_cache import HttpCache, fetch_text
from common.http_client import NOOP_PROGRESS, HttpClient, ProgressListener, ensure_200
from provider.base import Provider, emoji_metadata, expand
from provider.models import Archive, Candidate, Version
from settings import SdkManSettings

logger = logging.getLogger(__name__)

SECTION_MARKER = "-" * 80
TABLE_END_MARKER = "=" * 80
ARCHIVE_TYPE_HEADER = "x-sdkman-archivetype"


def detect_platform() -> str:
    """SDKMAN platform name of the current host."""
    os_name = platform_info.os_name()
    if os_name == "windows":
        return "windowsx64"
    if os_name == "mac":
        return "darwinarm64" if platform_info.is_arm() else "darwinx64"
    if os_name == "linux":
        if not platform_info.is_64bits():
            return "linuxarm32hf" if platform_info.is_arm() else "linuxx32"
        return "linuxarm64" if platform_info.is_arm() else "linuxx64"
    return "exotic"


class SdkManProvider(Provider):
    """Tools of the SDKMAN catalog, installed under ``<local>/<tool>/<version>``."""

    priority = ProviderPriorities.CATALOG

    def __init__(self, http: HttpClient, settings: SdkManSettings,
                 cache: Optional[HttpCache] = None, **kwargs):
        super().__init__(**kwargs)
        self.http = http
        self.cache = cache
        self.base = settings.base if settings.base.endswith("/") else settings.base + "/"
        self.local = expand(settings.local)
        platform = settings.platform or "auto"
        self.platform = detect_platform() if platform.lower() == "auto" else platform
        self._flight = SingleFlight()

    def name(self) -> str:
        return "sdkman"

    async def list_tools(self) -> List[Candidate]:
        body = await self._flight.run(
            "list-tools", lambda: fetch_text(self.http, self.cache, f"{self.base}candidates/list")
        )
        return parse_candidates(body)

    async def list_versions(self, tool: str) -> List[Version]:
        url = f"{self.base}candidates/{tool}/{self.platform}/versions/list?current=&installed="
        body = await self._flight.run(
            f"list-versions-{tool}", lambda: fetch_text(self.http, self.cache, url)
        )
        return parse_versions(tool, body)

    async def list_local(self) -> Dict[Candidate, List[Version]]:
        installed: Dict[Candidate, List[Version]] = {}
        for tool_dir in self._list_dirs(self.local):
            name = tool_dir.name
            versions = [
                Version("sdkman", child.name, "", child.name)
                for child in self._list_dirs(tool_dir)
                if child.name != "current" and not child.name.endswith(Constants.TEMPORARY_SUFFIX)
            ]
            installed[Candidate(name, name, "", "", emoji_metadata(name))] = self._sorted_newest_first(versions)
        return installed

    async def download(self, tool: str, version: str, target: Path,
                       progress_listener: ProgressListener = NOOP_PROGRESS) -> Archive:
        url = f"{self.base}broker/download/{tool}/{version}/{self.platform}"
        response = ensure_200(await self.http.download_to_file(url, target, progress_listener))
        return Archive(response.find_in_chain(ARCHIVE_TYPE_HEADER) or "tar.gz", target)

    def exploded_path(self, tool: str, version: str) -> Path:
        return self.local / tool / version


def parse_versions(tool: str, body: str) -> List[Version]:
    """Parse a ``versions/list`` answer.

    Vendor tables (java style) have six ``|`` separated columns; other tools
    use a legacy layout listing bare versions between ``=`` markers.
    """
    lines = body.splitlines()
    start = lines.index(SECTION_MARKER) + 1 if SECTION_MARKER in lines else 0
    table = lines[start:]

    versions: List[Version] = []
    last_vendor = ""
    for line in table:
        if line == TABLE_END_MARKER:
            break
        segments = line.strip().split("|")
        if len(segments) == 6:
            # Vendor | Use | Version | Dist | Status | Identifier
            if segments[0].strip():
                last_vendor = segments[0].strip()
            versions.append(Version(last_vendor, segments[2].strip(), segments[3].strip(), segments[5].strip()))
    if versions:
        return versions

    data = table
    for _ in range(2):
        if TABLE_END_MARKER not in data:
            break
        data = data[data.index(TABLE_END_MARKER) + 1:]
    for line in data:
        if line == TABLE_END_MARKER:
            break
        if not line.strip() or not line.startswith(" "):
            continue
        versions.extend(Version(tool, v, "sdkman", v) for v in line.split() if v)
    return versions


def parse_candidates(body: str) -> List[Candidate]:
    """Parse the ``candidates/list`` catalog.

    Each entry follows a dash marker line: ``Name (version)   homepage``,
    description lines, then ``$ sdk install <tool>``.
    """
    lines = iter(body.splitlines())
    candidates: List[Candidate] = []
    for line in lines:
        if line != SECTION_MARKER:
            continue
        header = next(lines, None)
        if header is None:
            break
        sep1 = header.rfind(" (")
        sep2 = header.find(")", sep1) if sep1 >= 0 else -1
        if sep1 < 0 or sep2 < 0:
            raise RemoteProtocolError(f"Invalid candidate header line: '{header}'")
        link = header.find("h", sep2)

        tool = None
        description: List[str] = []
        for next_line in lines:
            stripped = next_line.strip()
            if stripped.startswith("$ sdk install "):
                tool = stripped[stripped.rfind(" ") + 1:].strip()
                break
            if stripped:
                description.append(stripped)
        if tool is None:
            logger.debug("Skipping catalog entry without install line: %s", header)
            continue
        candidates.append(Candidate(
            tool,
            header[:sep1],
            " ".join(description),
            header[link:].strip() if link > 0 else "",
            emoji_metadata(tool),
        ))
    return candidates
