"""Wiring of configuration, HTTP transport, sources, registry and installer."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from common.http_cache import HttpCache
from common.http_client import NOOP_PROGRESS, HttpClient, ProgressListener
from installer.archives import Archives
from installer.orchestrator import InstallOrchestrator
from provider.base import Provider
from provider.central import CentralProvider, Gav
from provider.disabled import DisabledProvider
from provider.github import GithubMinikubeProvider
from provider.sdkman import SdkManProvider
from provider.zulu import ZuluCdnProvider
from resolution.cache import ResolutionCache
from resolution.registry import ProviderRegistry
from settings import Settings, load_settings

logger = logging.getLogger(__name__)


def create_http_client(settings: Settings) -> HttpClient:
    http = settings.http
    return HttpClient(
        connect_timeout=http.connect_timeout,
        request_timeout=http.request_timeout,
        max_concurrent_requests=http.max_concurrent_requests,
        proxy=http.proxy,
        log=http.log,
    )


def build_providers(settings: Settings, http: HttpClient, cache: Optional[HttpCache] = None,
                    installer: Optional[InstallOrchestrator] = None) -> List[Provider]:
    """Instantiate every source, wrapping the ones disabled by configuration.

    Args:
        settings: Loaded settings.
        http: Shared HTTP client.
        cache: Optional response cache for the slow listings.
        installer: Shared install orchestrator.

    Returns:
        Sources, unordered; the registry ranks them.
    """
    installer = installer or InstallOrchestrator(Archives())
    shared = {"archives": installer.archives, "installer": installer}

    providers: List[Provider] = []
    disabled_artifacts = set(settings.central.disabled)
    for gav in settings.central.gavs:
        central = CentralProvider(http, settings.central, gav, **shared)
        providers.append(_enable(central, Gav.parse(gav).artifact_id not in disabled_artifacts))

    providers.append(_enable(SdkManProvider(http, settings.sdkman, cache, **shared), settings.sdkman.enabled))
    providers.append(_enable(ZuluCdnProvider(http, settings.zulu, cache, **shared), settings.zulu.enabled))
    providers.append(_enable(GithubMinikubeProvider(http, settings.github, **shared), settings.minikube.enabled))
    return providers


def _enable(provider: Provider, enabled: bool) -> Provider:
    if enabled:
        return provider
    logger.debug("Source %s disabled by configuration", provider.name())
    return DisabledProvider(provider)


@dataclass
class Engine:
    """Entry points used by a command layer: resolution and installation."""

    settings: Settings
    http: HttpClient
    registry: ProviderRegistry
    installer: InstallOrchestrator

    async def __aenter__(self) -> "Engine":
        await self.http.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.http.stop()

    async def install(self, tool: str, version: str, provider: Optional[str] = None,
                      relaxed: bool = False, cache: Optional[ResolutionCache] = None,
                      progress_listener: ProgressListener = NOOP_PROGRESS) -> Path:
        """Resolve ``tool@version`` then make sure it is installed.

        Raises:
            NoMatchError: When no source knows the version.
        """
        match = await self.registry.resolve_strict(tool, version, provider, relaxed, True, cache)
        return await match.provider.install(tool, match.version.identifier, progress_listener)


def create_engine(settings: Optional[Settings] = None, config_path: Optional[str] = None) -> Engine:
    """Build an engine from ``settings`` or from the YAML configuration."""
    settings = settings or load_settings(config_path)
    http = create_http_client(settings)
    cache = HttpCache(settings.http.cache, settings.http.cache_validity)
    installer = InstallOrchestrator(Archives())
    registry = ProviderRegistry(build_providers(settings, http, cache, installer))
    return Engine(settings=settings, http=http, registry=registry, installer=installer)
