"""Tests for the Maven repository source."""

import asyncio

import pytest

from common.errors import RemoteProtocolError
from constants import ArchiveKinds
from provider.central import CentralProvider, Gav
from provider.models import Version, version_sort_key
from resolution.registry import ProviderRegistry
from settings import CentralSettings

BASE = "https://repo.example.test/2/"
GAV = "org.foo:bar:tar.gz:simple"
ARCHIVE_URL = BASE + "org/foo/bar/1.0.2/bar-1.0.2-simple.tar.gz"

METADATA = """<?xml version="1.0" encoding="UTF-8"?>
<metadata>
  <groupId>org.foo</groupId>
  <artifactId>bar</artifactId>
  <versioning>
    <latest>1.0.25</latest>
    <release>1.0.25</release>
    <versions>
      <version>1.0.0</version>
      <version>1.0.2</version>
      <version>1.0.3</version>
      <version>1.0.10</version>
      <version>1.0.24</version>
      <version>1.0.25</version>
    </versions>
    <lastUpdated>20240108140053</lastUpdated>
  </versioning>
</metadata>
"""


def _provider(http_client, local, header=None):
    settings = CentralSettings(base=BASE, local=str(local), gavs=[GAV], header=header)
    return CentralProvider(http_client, settings, GAV)


class TestGav:
    """Coordinates parsing and layout."""

    def test_defaults_to_jar(self):
        gav = Gav.parse("org.foo:bar")
        assert gav == Gav("org.foo", "bar", "jar", "")
        assert str(gav) == "org.foo:bar:jar"

    def test_full_coordinates(self):
        gav = Gav.parse(GAV)
        assert gav.relative_path("1.0.2") == "org/foo/bar/1.0.2/bar-1.0.2-simple.tar.gz"
        assert str(gav) == GAV

    @pytest.mark.parametrize("value", ["single", "a:b:c:d:e"])
    def test_invalid(self, value):
        with pytest.raises(ValueError, match="Invalid gav"):
            Gav.parse(value)


class TestCentralProvider:
    """Listing, install and removal of a GAV."""

    def test_identity(self, http_client, tmp_path):
        provider = _provider(http_client, tmp_path)
        assert provider.name() == "org.foo:bar"
        tools = asyncio.run(provider.list_tools())
        assert [t.id for t in tools] == [GAV]
        assert tools[0].display_name == "bar"
        assert tools[0].homepage_url == BASE

    def test_list_versions_newest_first(self, http_client, tmp_path):
        http_client.route(BASE + "org/foo/bar/maven-metadata.xml", METADATA)
        versions = asyncio.run(_provider(http_client, tmp_path).list_versions(GAV))
        assert versions == [
            Version("org.foo", v, "bar", v)
            for v in ("1.0.25", "1.0.24", "1.0.10", "1.0.3", "1.0.2", "1.0.0")
        ]

    def test_concurrent_listings_share_one_request(self, http_client, tmp_path):
        http_client.route(BASE + "org/foo/bar/maven-metadata.xml", METADATA)
        http_client.delay = 0.01
        provider = _provider(http_client, tmp_path)

        async def scenario():
            return await asyncio.gather(*(provider.list_versions(GAV) for _ in range(4)))

        results = asyncio.run(scenario())
        assert all(len(r) == 6 for r in results)
        assert len(http_client.urls()) == 1

    def test_invalid_metadata(self, http_client, tmp_path):
        http_client.route(BASE + "org/foo/bar/maven-metadata.xml", "<metadata>")
        with pytest.raises(RemoteProtocolError):
            asyncio.run(_provider(http_client, tmp_path).list_versions(GAV))

    def test_missing_metadata(self, http_client, tmp_path):
        with pytest.raises(RemoteProtocolError) as error:
            asyncio.run(_provider(http_client, tmp_path).list_versions(GAV))
        assert error.value.status == 404

    def test_download(self, http_client, tmp_path):
        http_client.route(ARCHIVE_URL, "you got a tar.gz")
        out = tmp_path / "download.tar.gz"
        archive = asyncio.run(_provider(http_client, tmp_path / "local").download("", "1.0.2", out))
        assert archive.kind == ArchiveKinds.TAR_GZ
        assert archive.location == out
        assert out.read_text() == "you got a tar.gz"

    def test_install_resolve_delete(self, http_client, tmp_path, simple_tar_gz):
        http_client.route(ARCHIVE_URL, simple_tar_gz)
        provider = _provider(http_client, tmp_path / "m2")
        installation = tmp_path / "m2/org/foo/bar/1.0.2/bar-1.0.2-simple.tar.gz_exploded"
        archive = tmp_path / "m2/org/foo/bar/1.0.2/bar-1.0.2-simple.tar.gz"

        assert provider.resolve("", "1.0.2") is None
        assert asyncio.run(provider.install("", "1.0.2")) == installation
        assert (installation / "entry.txt").read_text() == "you got an archive"
        assert archive.is_file()
        assert provider.resolve("", "1.0.2") == installation

        provider.delete("", "1.0.2")
        assert not installation.exists()
        assert not archive.exists()

    def test_existing_archive_is_reused(self, http_client, tmp_path, simple_tar_gz):
        archive = tmp_path / "m2/org/foo/bar/1.0.2/bar-1.0.2-simple.tar.gz"
        archive.parent.mkdir(parents=True)
        archive.write_bytes(simple_tar_gz)
        provider = _provider(http_client, tmp_path / "m2")

        installation = asyncio.run(provider.install("", "1.0.2"))

        assert (installation / "entry.txt").exists()
        assert http_client.calls == []

    def test_list_local(self, http_client, tmp_path, simple_tar_gz):
        http_client.route(ARCHIVE_URL, simple_tar_gz)
        provider = _provider(http_client, tmp_path / "m2")
        asyncio.run(provider.install("", "1.0.2"))
        (tmp_path / "m2/org/foo/bar/1.0.3").mkdir()

        local = asyncio.run(provider.list_local())
        assert list(local.values()) == [[Version("org.foo", "1.0.2", "bar", "1.0.2")]]

    def test_zip_types(self, http_client, tmp_path):
        settings = CentralSettings(base=BASE, local=str(tmp_path))
        assert CentralProvider(http_client, settings, "a:b").archive_kind("", "1") == ArchiveKinds.ZIP
        assert CentralProvider(http_client, settings, "a:b:zip").archive_kind("", "1") == ArchiveKinds.ZIP
        assert CentralProvider(http_client, settings, "a:b:tar.gz").archive_kind("", "1") == ArchiveKinds.TAR_GZ

    def test_registers_authentication(self, http_client, tmp_path):
        _provider(http_client, tmp_path, header="Authorization: Basic Zm9v")
        assert http_client.authentications == {BASE: "Authorization: Basic Zm9v"}


class TestVersionOrdering:
    """Pre-releases rank below the final release."""

    def test_sort_key(self):
        values = ["3.9.6-rc-1", "4.0.0", "3.9.6", "4.0.0-alpha-10", "3.9.10"]
        ordered = sorted(values, key=version_sort_key, reverse=True)
        assert ordered == ["4.0.0", "4.0.0-alpha-10", "3.9.10", "3.9.6", "3.9.6-rc-1"]

    def test_unparsable_versions_follow_their_release_numbers(self):
        values = ["17.0.10.fx", "21-zulu", "17.0.10", "8"]
        ordered = sorted(values, key=version_sort_key, reverse=True)
        assert ordered == ["21-zulu", "17.0.10", "17.0.10.fx", "8"]

    def test_relaxed_local_resolution_prefers_final_release(self, http_client, tmp_path):
        provider = _provider(http_client, tmp_path / "m2")
        for value in ("3.9.6", "3.9.6-rc-1", "4.0.0-alpha-10", "3.9.10"):
            provider.exploded_path("", value).mkdir(parents=True)

        local = asyncio.run(provider.list_local())
        assert [v.version for v in local[provider.candidate()]] == [
            "4.0.0-alpha-10", "3.9.10", "3.9.6", "3.9.6-rc-1",
        ]

        registry = ProviderRegistry([provider])
        match = asyncio.run(registry.resolve(GAV, "3.9.6", relaxed=True, allow_remote=False))
        assert match.version.version == "3.9.6"
        assert http_client.calls == []
