"""Tests for YAML configuration loading."""

import logging
import os

import pytest

from constants import Constants
from settings import Settings, load_settings


class TestLoadSettings:
    """File discovery and parsing."""

    def test_defaults_without_file(self, monkeypatch):
        monkeypatch.delenv(Constants.ENV_CONFIG, raising=False)
        settings = load_settings()
        assert settings.central.gavs == Constants.CENTRAL_GAVS
        assert settings.http.connect_timeout == Constants.CONNECT_TIMEOUT_SEC
        assert settings.http.request_timeout == Constants.REQUEST_TIMEOUT_SEC
        assert settings.zulu.enabled and settings.sdkman.enabled and settings.minikube.enabled

    def test_yaml_file(self, tmp_path):
        config = tmp_path / "yem.yaml"
        config.write_text(
            "http:\n"
            "  connect-timeout: 5\n"
            "  max_concurrent_requests: 4\n"
            "  proxy: http://proxy:3128\n"
            "central:\n"
            "  base: https://nexus.example.test/repository/maven/\n"
            "  gavs:\n"
            "    - org.foo:bar:tar.gz:simple\n"
            "  header: 'Authorization: Basic Zm9v'\n"
            "zulu:\n"
            "  prefer-jre: true\n"
            "  platform: linux_x64.zip\n"
            "minikube:\n"
            "  enabled: false\n",
            encoding="utf-8",
        )
        settings = load_settings(str(config))
        assert settings.http.connect_timeout == 5
        assert settings.http.max_concurrent_requests == 4
        assert settings.http.proxy == "http://proxy:3128"
        assert settings.central.base == "https://nexus.example.test/repository/maven/"
        assert settings.central.gavs == ["org.foo:bar:tar.gz:simple"]
        assert settings.central.header == "Authorization: Basic Zm9v"
        assert settings.zulu.prefer_jre is True
        assert settings.zulu.platform == "linux_x64.zip"
        assert settings.minikube.enabled is False
        assert settings.sdkman.enabled is True

    def test_environment_variable(self, tmp_path, monkeypatch):
        config = tmp_path / "env.yaml"
        config.write_text("sdkman:\n  enabled: false\n", encoding="utf-8")
        monkeypatch.setenv(Constants.ENV_CONFIG, str(config))
        assert load_settings().sdkman.enabled is False

    def test_missing_file_warns(self, tmp_path, caplog):
        with caplog.at_level(logging.WARNING):
            settings = load_settings(str(tmp_path / "missing.yaml"))
        assert settings == Settings()
        assert "Config file not found" in caplog.text

    def test_empty_file(self, tmp_path):
        config = tmp_path / "empty.yaml"
        config.write_text("", encoding="utf-8")
        assert load_settings(str(config)) == Settings()

    def test_invalid_yaml(self, tmp_path):
        config = tmp_path / "broken.yaml"
        config.write_text("http: [unclosed\n", encoding="utf-8")
        with pytest.raises(ValueError, match="Invalid configuration file"):
            load_settings(str(config))

    def test_top_level_must_be_mapping(self, tmp_path):
        config = tmp_path / "list.yaml"
        config.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ValueError):
            load_settings(str(config))


class TestFromDict:
    """Section merging."""

    def test_unknown_keys_are_ignored_with_warning(self, caplog):
        with caplog.at_level(logging.WARNING):
            settings = Settings.from_dict({"nope": {}, "zulu": {"unknown": 1, "enabled": False}})
        assert settings.zulu.enabled is False
        assert "unknown configuration section 'nope'" in caplog.text
        assert "zulu.unknown" in caplog.text

    def test_comma_separated_list(self):
        settings = Settings.from_dict({"central": {"disabled": "bar, baz"}})
        assert settings.central.disabled == ["bar", "baz"]

    def test_section_must_be_mapping(self):
        with pytest.raises(ValueError):
            Settings.from_dict({"http": "fast"})

    def test_sdkman_dir(self, monkeypatch, tmp_path):
        monkeypatch.setenv(Constants.ENV_SDKMAN_DIR, str(tmp_path))
        assert Settings().sdkman.local == os.path.join(str(tmp_path), "candidates")
