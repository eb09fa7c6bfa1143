"""Tests for sources disabled by configuration."""

import asyncio

import pytest

from common.errors import SourceDisabledError
from provider.disabled import DisabledProvider
from provider.zulu import ZuluCdnProvider
from settings import ZuluSettings


def _zulu(http_client, tmp_path):
    return ZuluCdnProvider(http_client, ZuluSettings(
        base="https://cdn.example.test/", platform="linux_x64.zip", local=str(tmp_path)
    ))


class TestDisabledProvider:
    """Remote operations are short-circuited."""

    def test_identity_is_delegated(self, http_client, tmp_path):
        delegate = _zulu(http_client, tmp_path)
        disabled = DisabledProvider(delegate)
        assert disabled.name() == "zulu"
        assert disabled.implementation_name() == "ZuluCdnProvider"
        assert disabled.priority == delegate.priority

    def test_listings_are_empty_without_http(self, http_client, tmp_path):
        disabled = DisabledProvider(_zulu(http_client, tmp_path))
        assert asyncio.run(disabled.list_tools()) == []
        assert asyncio.run(disabled.list_versions("java")) == []
        assert asyncio.run(disabled.list_local()) == {}
        assert http_client.calls == []

    def test_download_raises(self, http_client, tmp_path):
        disabled = DisabledProvider(_zulu(http_client, tmp_path))
        with pytest.raises(SourceDisabledError, match="support not enabled"):
            asyncio.run(disabled.download("java", "21.0.2", tmp_path / "a.zip"))

    def test_install_of_missing_version_raises(self, http_client, tmp_path):
        disabled = DisabledProvider(_zulu(http_client, tmp_path))
        with pytest.raises(SourceDisabledError):
            asyncio.run(disabled.install("java", "21.0.2"))
        assert http_client.calls == []

    def test_already_installed_version_still_resolves(self, http_client, tmp_path):
        installed = tmp_path / "21.0.2" / "distribution_exploded"
        installed.mkdir(parents=True)
        disabled = DisabledProvider(_zulu(http_client, tmp_path))
        assert disabled.resolve("java", "21.0.2") == installed
        assert asyncio.run(disabled.install("java", "21.0.2")) == installed

    def test_delete(self, http_client, tmp_path):
        disabled = DisabledProvider(_zulu(http_client, tmp_path))
        disabled.delete("java", "21.0.2")

        (tmp_path / "21.0.2" / "distribution_exploded").mkdir(parents=True)
        with pytest.raises(SourceDisabledError):
            disabled.delete("java", "21.0.2")
        assert (tmp_path / "21.0.2").exists()

