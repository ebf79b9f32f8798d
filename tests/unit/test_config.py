"""
Tests for configuration loading and the whitelist file.
"""

from pathlib import Path

import pytest
import yaml

from embedcore.config import BUNDLED_WHITELIST, Config, find_config_file, load_whitelist


@pytest.mark.unit
class TestConfig:
    def test_defaults(self):
        config = Config()

        assert config.providers.enabled is True
        assert config.request.retries == 1
        assert config.cache.fail_on_write_error is True
        assert config.cache.memory_ttl_seconds is None
        assert config.render.aliases == {"block": ["player", "rich"]}
        assert ".png" in config.image_size.extensions

    def test_from_yaml(self, tmp_path: Path):
        path = tmp_path / "embedcore.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "providers": {"enabled": ["youtube.com"]},
                    "request": {"timeout": 3, "retries": 0},
                    "image_size": {"extensions": ["PNG", ".Jpg"]},
                }
            )
        )

        config = Config.from_yaml(path)

        assert config.providers.enabled == ["youtube.com"]
        assert config.request.timeout == 3.0
        assert config.image_size.extensions == [".png", ".jpg"]

    def test_empty_yaml_gives_defaults(self, tmp_path: Path):
        path = tmp_path / "embedcore.yaml"
        path.write_text("")

        assert Config.from_yaml(path).request.retries == 1

    def test_missing_yaml(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            Config.from_yaml(tmp_path / "absent.yaml")

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("EMBEDCORE_REQUEST__TIMEOUT", "2.5")
        monkeypatch.setenv("EMBEDCORE_CACHE__FAIL_ON_WRITE_ERROR", "false")

        config = Config()

        assert config.request.timeout == 2.5
        assert config.cache.fail_on_write_error is False

    def test_find_config_file(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert find_config_file() is None

        (tmp_path / "embedcore.yml").write_text("{}")
        assert find_config_file() == tmp_path / "embedcore.yml"


@pytest.mark.unit
class TestWhitelist:
    def test_bundled_whitelist(self):
        whitelist = load_whitelist()

        assert BUNDLED_WHITELIST.is_file()
        assert whitelist["youtube.com"]["oembed"]["video"] == ["allow", "html5", "autoplay"]
        assert whitelist["twitter.com"]["oembed"]["rich"] == ["allow", "inline"]

    def test_custom_file(self, tmp_path: Path):
        path = tmp_path / "whitelist.yaml"
        path.write_text("domains:\n  example.com:\n    og:\n      video: allow\n")

        assert load_whitelist(path) == {"example.com": {"og": {"video": "allow"}}}

    def test_invalid_file(self, tmp_path: Path):
        path = tmp_path / "whitelist.yaml"
        path.write_text("domains:\n  - example.com\n")

        with pytest.raises(ValueError):
            load_whitelist(path)

    def test_engine_reads_configured_file(self, tmp_path: Path, transport):
        from embedcore.engine import EmbedEngine

        path = tmp_path / "whitelist.yaml"
        path.write_text("domains:\n  example.com:\n    og:\n      video: allow\n")

        engine = EmbedEngine(Config(whitelist_file=path), request=transport)

        assert engine.find_whitelist("example.com") == {"og": {"video": "allow"}}
        assert engine.find_whitelist("youtube.com") is None
