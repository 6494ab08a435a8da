"""Tests for configuration loading."""

from pathlib import Path

import pytest

from tabsense.config import Config


class TestConfig:
    """Tests for Config."""

    def test_defaults(self):
        config = Config()
        assert config.session.stall_timeout == 120.0
        assert config.session.download_timeout == 900.0
        assert config.session.max_retries == 3
        assert config.chunking.chunk_size == 3000
        assert config.chunking.overlap == 200
        assert config.summary.truncation_budget == 8000
        assert config.translation.max_entries == 16
        assert config.ollama.host == "http://localhost:11434"

    def test_load_from_file(self, temp_config: Path):
        config = Config.load(str(temp_config))

        assert config.session.stall_timeout == 60
        assert config.session.max_retries == 5
        # Unspecified values keep their defaults
        assert config.session.download_timeout == 900.0
        assert config.chunking.chunk_size == 1500
        assert config.summary.output_languages == ["en", "fr"]
        assert config.ollama.model == "qwen2.5:1.5b"
        assert config.logging.level == "DEBUG"

    def test_missing_file_uses_defaults(self, tmp_path: Path, monkeypatch):
        if Path("/etc/tabsense/config.yaml").exists():
            pytest.skip("system config present")
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
        assert Config.load() == Config()

    def test_xdg_config(self, tmp_path: Path, monkeypatch):
        (tmp_path / "tabsense").mkdir()
        (tmp_path / "tabsense" / "config.yaml").write_text("chunking:\n  overlap: 50\n")
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))

        assert Config.load().chunking.overlap == 50

    def test_empty_file(self, tmp_path: Path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert Config.load(str(path)) == Config()

    def test_store_path(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path))
        assert Config().store.get_path() == f"{tmp_path}/tabsense/store.json"
