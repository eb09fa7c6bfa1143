"""Release API source: minikube binaries published as GitHub release assets."""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from constants import ArchiveKinds, Constants, ProviderPriorities
from common import platform_info
from common.concurrency import SingleFlight
from common.errors import RemoteProtocolError
from common.http_client import NOOP_PROGRESS, HttpClient, ProgressListener, ensure_200
from common.logging_utils import extra_context, safe_url
from provider.base import Provider, emoji_metadata, expand
from provider.models import Archive, Candidate, Version
from settings import GithubSettings

logger = logging.getLogger(__name__)

_RELEASES_PATH = "/repos/kubernetes/minikube/releases"


def detect_asset() -> str:
    """Release asset name for the current host."""
    os_name = {"windows": "windows", "mac": "darwin"}.get(platform_info.os_name(), "linux")
    arch = "arm64" if platform_info.is_arm() else "amd64"
    return f"minikube-{os_name}-{arch}.tar.gz"


class GithubMinikubeProvider(Provider):
    """Minikube releases, installed under ``<local>/minikube/<version>``."""

    priority = ProviderPriorities.RELEASE_API

    def __init__(self, http: HttpClient, settings: GithubSettings,
                 asset_name: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.http = http
        self.base = settings.base.rstrip("/")
        self.local = expand(settings.local)
        self.asset_name = asset_name or detect_asset()
        self._pages = SingleFlight()
        self._releases = SingleFlight()
        http.register_authentication_for(self.base, settings.header)

    def name(self) -> str:
        return "minikube-github"

    def candidate(self) -> Candidate:
        return Candidate(
            "minikube",
            "Minikube",
            "Local development Kubernetes binary.",
            "https://minikube.sigs.k8s.io/docs/",
            emoji_metadata("minikube"),
        )

    async def list_tools(self) -> List[Candidate]:
        return [self.candidate()]

    async def list_versions(self, tool: str) -> List[Version]:
        releases = await self.find_releases()
        versions = []
        for release in releases:
            name = str(release.get("name") or "")
            if name.startswith("v") and self._asset(release) is not None:
                versions.append(Version("Kubernetes", name[1:], "minikube", name[1:]))
        return versions

    async def find_releases(self) -> List[Dict[str, Any]]:
        """Every release, reading pages until a short one."""
        return await self._releases.run("releases", self._fetch_all)

    async def _fetch_all(self) -> List[Dict[str, Any]]:
        releases: List[Dict[str, Any]] = []
        page = 1
        while True:
            items = await self._pages.run(page, lambda p=page: self._fetch_page(p))
            releases.extend(items)
            if len(items) < Constants.GITHUB_PER_PAGE:
                break
            page += 1
        return releases

    async def _fetch_page(self, page: int) -> List[Dict[str, Any]]:
        url = f"{self.base}{_RELEASES_PATH}?per_page={Constants.GITHUB_PER_PAGE}&page={page}"
        response = ensure_200(await self.http.send(url, {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": Constants.GITHUB_API_VERSION,
        }))
        try:
            items = json.loads(response.body)
        except ValueError as e:
            raise RemoteProtocolError(f"Invalid releases page {page}: {e}", url=url, body=response.body) from e
        if not isinstance(items, list):
            raise RemoteProtocolError(f"Invalid releases page {page}, expected a list", url=url)
        logger.debug(
            "Fetched %d releases",
            len(items),
            extra=extra_context(event="list_versions", component="github", action="page",
                                outcome="success", target=safe_url(url)),
        )
        return [item for item in items if isinstance(item, dict)]

    @staticmethod
    def _assets(release: Dict[str, Any]) -> List[Dict[str, Any]]:
        assets = release.get("assets")
        if not isinstance(assets, list):
            return []
        return [asset for asset in assets if isinstance(asset, dict)]

    def _asset(self, release: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        for asset in self._assets(release):
            if asset.get("name") == self.asset_name:
                return asset
        return None

    async def list_local(self) -> Dict[Candidate, List[Version]]:
        versions = [
            Version("Kubernetes", child.name, "minikube", child.name)
            for child in self._list_dirs(self.local / "minikube")
            if (child / Constants.DISTRIBUTION_EXPLODED).is_dir()
        ]
        return {self.candidate(): self._sorted_newest_first(versions)}

    async def download(self, tool: str, version: str, target: Path,
                       progress_listener: ProgressListener = NOOP_PROGRESS) -> Archive:
        releases = await self.find_releases()
        release = next(
            (r for r in releases if r.get("name") in (version, f"v{version}")),
            None,
        )
        if release is None:
            available = "\n".join(f"- {r.get('name')}" for r in releases)
            raise RemoteProtocolError(f"No version '{version}' matched, available:\n{available}")
        asset = self._asset(release)
        if asset is None or not asset.get("browser_download_url"):
            names = "\n".join(f"- {a.get('name')}" for a in self._assets(release))
            raise RemoteProtocolError(f"No matching asset for version '{version}':\n{names}")
        ensure_200(await self.http.download_to_file(asset["browser_download_url"], target, progress_listener))
        return Archive(ArchiveKinds.TAR_GZ, target)

    def archive_path(self, tool: str, version: str) -> Optional[Path]:
        return self.local / "minikube" / version / self.asset_name

    def exploded_path(self, tool: str, version: str) -> Path:
        return self.local / "minikube" / version / Constants.DISTRIBUTION_EXPLODED

    def install_root(self, tool: str, version: str) -> Path:
        return self.local / "minikube" / version

    def post_install(self, tool: str, version: str, exploded: Path) -> None:
        """Rename the platform specific binary to ``minikube`` and make it executable."""
        binary = exploded / self.asset_name[:-len(".tar.gz")]
        if not binary.is_file():
            return
        renamed = binary.with_name("minikube")
        binary.rename(renamed)
        if os.name != "nt":
            renamed.chmod(0o755)
