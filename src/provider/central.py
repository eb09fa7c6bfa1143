"""Maven repository source: one provider per configured GAV."""
from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from constants import ArchiveKinds, Constants, ProviderPriorities
from common.concurrency import SingleFlight
from common.errors import RemoteProtocolError
from common.http_client import NOOP_PROGRESS, HttpClient, ProgressListener, ensure_200
from common.logging_utils import extra_context, safe_url
from provider.base import Provider, emoji_metadata, expand
from provider.models import Archive, Candidate, Version
from settings import CentralSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, order=True)
class Gav:
    """``group:artifact[:type[:classifier]]`` coordinates, type defaulting to ``jar``."""

    group_id: str
    artifact_id: str
    type: str = "jar"
    classifier: str = ""

    @classmethod
    def parse(cls, gav: str) -> "Gav":
        """Parse a GAV string.

        Raises:
            ValueError: When the string does not have 2 to 4 segments.
        """
        segments = gav.strip().split(":")
        if len(segments) == 2:
            return cls(segments[0], segments[1])
        if len(segments) == 3:
            return cls(segments[0], segments[1], segments[2])
        if len(segments) == 4:
            return cls(segments[0], segments[1], segments[2], segments[3])
        raise ValueError(f"Invalid gav: '{gav}'")

    def __str__(self) -> str:
        return ":".join(s for s in (self.group_id, self.artifact_id, self.type, self.classifier) if s)

    def file_name(self, version: str) -> str:
        classifier = f"-{self.classifier}" if self.classifier else ""
        return f"{self.artifact_id}-{version}{classifier}.{self.type}"

    def artifact_path(self) -> str:
        return f"{self.group_id.replace('.', '/')}/{self.artifact_id}"

    def relative_path(self, version: str) -> str:
        return f"{self.artifact_path()}/{version}/{self.file_name(version)}"


class CentralProvider(Provider):
    """Archives published on a Maven repository (``maven-metadata.xml`` listing)."""

    priority = ProviderPriorities.ARTIFACT_REPOSITORY

    def __init__(self, http: HttpClient, settings: CentralSettings, gav: str, **kwargs):
        super().__init__(**kwargs)
        self.http = http
        self.gav = Gav.parse(gav)
        self.base = settings.base if settings.base.endswith("/") else settings.base + "/"
        self.local = expand(settings.local)
        self._flight = SingleFlight()
        http.register_authentication_for(self.base, settings.header)

    def name(self) -> str:
        return f"{self.gav.group_id}:{self.gav.artifact_id}"

    def candidate(self) -> Candidate:
        gav = str(self.gav)
        return Candidate(
            gav,
            self.gav.artifact_id,
            f"{gav} downloaded from central.",
            self.base,
            emoji_metadata(self.gav.artifact_id),
        )

    async def list_tools(self) -> List[Candidate]:
        return [self.candidate()]

    async def list_versions(self, tool: str) -> List[Version]:
        return await self._flight.run(f"list-versions-{tool}", self._fetch_versions)

    async def _fetch_versions(self) -> List[Version]:
        url = f"{self.base}{self.gav.artifact_path()}/maven-metadata.xml"
        response = ensure_200(await self.http.send(url))
        versions = self.parse_versions(response.body)
        logger.debug(
            "Listed %d versions of %s",
            len(versions),
            self.gav,
            extra=extra_context(event="list_versions", component="central",
                                outcome="success", target=safe_url(url)),
        )
        return versions

    def parse_versions(self, body: str) -> List[Version]:
        """Versions of a ``maven-metadata.xml`` document, newest first."""
        try:
            root = ET.fromstring(body)
        except ET.ParseError as e:
            raise RemoteProtocolError(f"Invalid maven-metadata.xml for {self.gav}: {e}") from e
        versions = []
        for element in root.findall("./versioning/versions/version"):
            value = (element.text or "").strip()
            if value:
                versions.append(Version(self.gav.group_id, value, self.gav.artifact_id, value))
        versions.reverse()
        return versions

    async def list_local(self) -> Dict[Candidate, List[Version]]:
        artifact_dir = self.local / self.gav.artifact_path()
        versions = [
            Version(self.gav.group_id, child.name, self.gav.artifact_id, child.name)
            for child in self._list_dirs(artifact_dir)
            if self.exploded_path("", child.name).is_dir()
        ]
        return {self.candidate(): self._sorted_newest_first(versions)}

    async def download(self, tool: str, version: str, target: Path,
                       progress_listener: ProgressListener = NOOP_PROGRESS) -> Archive:
        url = self.base + self.gav.relative_path(version)
        ensure_200(await self.http.download_to_file(url, target, progress_listener))
        return Archive(self.archive_kind(tool, version), target)

    def archive_path(self, tool: str, version: str) -> Optional[Path]:
        return self.local / self.gav.relative_path(version)

    def archive_kind(self, tool: str, version: str) -> ArchiveKinds:
        if self.gav.type.endswith(".zip") or self.gav.type.endswith(".jar") or self.gav.type in ("zip", "jar"):
            return ArchiveKinds.ZIP
        return ArchiveKinds.TAR_GZ

    def exploded_path(self, tool: str, version: str) -> Path:
        archive = self.local / self.gav.relative_path(version)
        return archive.parent / (archive.name + Constants.EXPLODED_SUFFIX)
