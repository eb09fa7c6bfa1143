"""Azul Zulu JDK/JRE source, listed from the CDN index or the metadata API."""
from __future__ import annotations

import json
import logging
import urllib.parse
from pathlib import Path
from typing import Dict, List, Optional

from constants import ArchiveKinds, Constants, ProviderPriorities
from common import platform_info
from common.concurrency import SingleFlight
from common.errors import RemoteProtocolError
from common.http_cache import HttpCache, fetch_text
from common.http_client import NOOP_PROGRESS, HttpClient, ProgressListener, ensure_200
from provider.base import Provider, expand
from provider.models import Archive, Candidate, Version
from settings import ZuluSettings

logger = logging.getLogger(__name__)

_LINK_MARKER = '<a href="/zulu/bin/zulu'
_API_OS = {"win": "windows", "macosx": "macos"}


def detect_suffix() -> str:
    """Platform suffix of the Zulu archive names for the current host."""
    os_name = platform_info.os_name()
    if os_name == "windows":
        return "win_x64.zip"
    if os_name == "mac":
        return "macosx_aarch64.tar.gz" if platform_info.is_arm() else "macosx_x64.tar.gz"
    return "linux_aarch64.tar.gz" if platform_info.is_arm() else "linux_x64.tar.gz"


class ZuluCdnProvider(Provider):
    """Java distributions from ``cdn.azul.com``.

    Identifiers look like ``21.32.17-ca-jdk21.0.2`` and the display version is
    what follows the ``-jdk`` (or ``-jre``) marker.
    """

    priority = ProviderPriorities.CDN

    def __init__(self, http: HttpClient, settings: ZuluSettings,
                 cache: Optional[HttpCache] = None, **kwargs):
        super().__init__(**kwargs)
        self.http = http
        self.cache = cache
        self.base = settings.base if settings.base.endswith("/") else settings.base + "/"
        self.api_base = settings.api_base.rstrip("/")
        self.prefer_api = settings.prefer_api
        self.prefer_jre = settings.prefer_jre
        self.local = expand(settings.local)
        platform = settings.platform or "auto"
        self.suffix = detect_suffix() if platform.lower() == "auto" else platform
        self._flight = SingleFlight()
        self._pages = SingleFlight()

    @property
    def _distribution(self) -> str:
        return "jre" if self.prefer_jre else "jdk"

    def name(self) -> str:
        return "zulu"

    def candidate(self) -> Candidate:
        return Candidate("java", "java", "Java JRE or JDK downloaded from Azul CDN.", self.base)

    async def list_tools(self) -> List[Candidate]:
        return [self.candidate()]

    async def list_versions(self, tool: str) -> List[Version]:
        if self.prefer_api:
            return await self._flight.run("list-versions-api", self._list_from_api)
        return await self._flight.run("list-versions", self._list_from_cdn)

    async def _list_from_cdn(self) -> List[Version]:
        return self.parse_versions(await fetch_text(self.http, self.cache, self.base))

    async def _list_from_api(self) -> List[Version]:
        names: List[str] = []
        page = 1
        while True:
            items = await self._pages.run(page, lambda p=page: self._fetch_page(p))
            names.extend(item.get("name", "") for item in items if isinstance(item, dict))
            if len(items) < Constants.ZULU_API_PAGE_SIZE:
                break
            page += 1
        return self._to_versions(names)

    def api_url(self, page: int) -> str:
        platform, _, archive_type = self.suffix.partition(".")
        os_part, _, arch = platform.rpartition("_")
        query = urllib.parse.urlencode({
            "os": _API_OS.get(os_part, os_part),
            "arch": arch,
            "archive_type": archive_type,
            "java_package_type": self._distribution,
            "release_status": "ga",
            "availability_types": "CA",
            "page": page,
            "page_size": Constants.ZULU_API_PAGE_SIZE,
        })
        return f"{self.api_base}/metadata/v1/zulu/packages/?{query}"

    async def _fetch_page(self, page: int) -> List[dict]:
        body = await fetch_text(self.http, self.cache, self.api_url(page), {"Accept": "application/json"})
        try:
            items = json.loads(body)
        except ValueError as e:
            raise RemoteProtocolError(f"Invalid Zulu metadata page {page}: {e}", body=body) from e
        if not isinstance(items, list):
            raise RemoteProtocolError(f"Invalid Zulu metadata page {page}, expected a list", body=body)
        return items

    def parse_versions(self, body: str) -> List[Version]:
        """Versions advertised by the CDN index page."""
        names = []
        for line in body.splitlines():
            start = line.find(_LINK_MARKER)
            if start < 0:
                continue
            start += len('<a href="/zulu/bin/')
            end = line.find('"', start)
            if end > start:
                names.append(line[start:end].strip())
        return self._to_versions(names)

    def _to_versions(self, names: List[str]) -> List[Version]:
        # ex: zulu21.32.17-ca-jdk21.0.2-linux_x64.tar.gz
        marker = f"-{self._distribution}"
        out: List[Version] = []
        for name in names:
            if not name.startswith("zulu") or not name.endswith("-" + self.suffix) or self._distribution not in name:
                continue
            identifier = name[len("zulu"):len(name) - len(self.suffix) - 1]
            start = identifier.rfind(marker)
            if start < 0:
                continue
            version = Version("Azul", identifier[start + len(marker):].strip(), "zulu", identifier)
            if version not in out:
                out.append(version)
        return out

    async def list_local(self) -> Dict[Candidate, List[Version]]:
        marker = f"-{self._distribution}"
        versions = []
        for child in self._list_dirs(self.local):
            if not (child / Constants.DISTRIBUTION_EXPLODED).is_dir():
                continue
            identifier = child.name
            start = identifier.find(marker)
            display = identifier[start + len(marker):] if start > 0 else identifier
            versions.append(Version("Azul", display, "zulu", identifier))
        return {self.candidate(): self._sorted_newest_first(versions)}

    async def download(self, tool: str, version: str, target: Path,
                       progress_listener: ProgressListener = NOOP_PROGRESS) -> Archive:
        url = f"{self.base}zulu{version}-{self.suffix}"
        ensure_200(await self.http.download_to_file(url, target, progress_listener))
        return Archive(self.archive_kind(tool, version), target)

    def archive_kind(self, tool: str, version: str) -> ArchiveKinds:
        return ArchiveKinds.ZIP if self.suffix.endswith(".zip") else ArchiveKinds.TAR_GZ

    def archive_path(self, tool: str, version: str) -> Optional[Path]:
        return self.local / version / f"{version}-{self.suffix}"

    def exploded_path(self, tool: str, version: str) -> Path:
        return self.local / version / Constants.DISTRIBUTION_EXPLODED

    def install_root(self, tool: str, version: str) -> Path:
        return self.local / version
