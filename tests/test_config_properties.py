"""
Property-based tests for configuration loading.

**Feature: web-novel-importer, Property 7: Configuration reload consistency**
"""

import json
import os
import tempfile
from pathlib import Path

import pytest
from hypothesis import given, strategies as st

from config import (
    ConfigManager,
    ConfigChangeListener,
    SystemConfig,
    ENV_OVERRIDES,
    ENV_PREFIX
)
from novel_importer.utils.errors import ConfigurationError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep NOVEL_IMPORTER_* variables from the outer environment out of the tests."""
    for suffix in ENV_OVERRIDES:
        monkeypatch.delenv(ENV_PREFIX + suffix, raising=False)


@st.composite
def system_config_strategy(draw):
    """Generate valid system configuration."""
    return {
        "database": {
            "sqlite_path": draw(st.text(min_size=1, max_size=40,
                                        alphabet=st.characters(whitelist_categories=('Lu', 'Ll', 'Nd'),
                                                               whitelist_characters='_-./')))
        },
        "crawler": {
            "request_timeout": draw(st.floats(min_value=0.5, max_value=300.0)),
            "transport_retries": draw(st.integers(min_value=0, max_value=10)),
            "min_request_interval": draw(st.floats(min_value=0.0, max_value=60.0)),
        },
        "concurrency": {
            "max_concurrent_requests": draw(st.integers(min_value=1, max_value=50))
        },
        "connectivity": {
            "enabled": draw(st.booleans()),
            "probe_port": draw(st.integers(min_value=1, max_value=65535)),
        },
        "download": {
            "chapter_retry_limit": draw(st.integers(min_value=0, max_value=10)),
            "retry_delay": draw(st.floats(min_value=0.0, max_value=300.0)),
        },
        "log_level": draw(st.sampled_from(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])),
    }


def _write(path: Path, data, mtime: float = None) -> None:
    path.write_text(json.dumps(data), encoding="utf-8")
    if mtime is not None:
        os.utime(path, (mtime, mtime))


class TestConfigurationReloadConsistency:

    @given(config_data=system_config_strategy())
    def test_loaded_config_reflects_file(self, config_data):
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "config.json"
            _write(config_path, config_data)

            config = ConfigManager(str(config_path), env_file=None).load_config()

            assert config.database.sqlite_path == config_data["database"]["sqlite_path"]
            assert config.crawler.transport_retries == config_data["crawler"]["transport_retries"]
            assert config.concurrency.max_concurrent_requests == \
                config_data["concurrency"]["max_concurrent_requests"]
            assert config.connectivity.enabled == config_data["connectivity"]["enabled"]
            assert config.connectivity.probe_host == "8.8.8.8"
            assert config.download.chapter_retry_limit == config_data["download"]["chapter_retry_limit"]
            assert config.log_level == config_data["log_level"]

    @given(first=system_config_strategy(), second=system_config_strategy())
    def test_reload_picks_up_changes_and_notifies(self, first, second):
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "config.json"
            _write(config_path, first, mtime=1_000_000)

            manager = ConfigManager(str(config_path), env_file=None)
            changes = []

            class Recorder(ConfigChangeListener):
                def on_config_changed(self, old_config, new_config):
                    changes.append((old_config, new_config))

            manager.add_change_listener(Recorder())
            manager.load_config()

            assert manager.reload_if_changed() is False

            _write(config_path, second, mtime=2_000_000)
            assert manager.reload_if_changed() is True

            config = manager.load_config()
            assert config.concurrency.max_concurrent_requests == \
                second["concurrency"]["max_concurrent_requests"]
            assert len(changes) == 1
            assert changes[0][1] is config


class TestConfigurationValidation:

    @pytest.mark.parametrize("config_data", [
        {"concurrency": {"max_concurrent_requests": 0}},
        {"download": {"chapter_retry_limit": -1}},
        {"log_level": "VERBOSE"},
        {"crawler": {"user_agents": []}},
        {"notification": {}},
        {"database": {"sqlite_path": "a.db", "host": "localhost"}},
    ])
    def test_invalid_config_rejected(self, tmp_path, config_data):
        config_path = tmp_path / "config.json"
        _write(config_path, config_data)

        with pytest.raises(ConfigurationError):
            ConfigManager(str(config_path), env_file=None).load_config()

    def test_malformed_json_rejected(self, tmp_path):
        config_path = tmp_path / "config.json"
        config_path.write_text("{not json", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            ConfigManager(str(config_path), env_file=None).load_config()

    def test_missing_file_gives_defaults(self, tmp_path):
        config = ConfigManager(str(tmp_path / "absent.json"), env_file=None).load_config()

        assert config == SystemConfig()
        assert config.download.chapter_retry_limit == 1
        assert config.concurrency.max_concurrent_requests == 5


class TestEnvironmentOverrides:

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        config_path = tmp_path / "config.json"
        _write(config_path, {"concurrency": {"max_concurrent_requests": 3}})
        monkeypatch.setenv("NOVEL_IMPORTER_MAX_CONCURRENT_REQUESTS", "8")
        monkeypatch.setenv("NOVEL_IMPORTER_CONNECTIVITY_ENABLED", "off")
        monkeypatch.setenv("NOVEL_IMPORTER_LOG_LEVEL", "DEBUG")

        config = ConfigManager(str(config_path), env_file=None).load_config()

        assert config.concurrency.max_concurrent_requests == 8
        assert config.connectivity.enabled is False
        assert config.log_level == "DEBUG"

    def test_env_only_configuration(self, tmp_path, monkeypatch):
        monkeypatch.setenv("NOVEL_IMPORTER_DB_PATH", str(tmp_path / "novels.db"))
        monkeypatch.setenv("NOVEL_IMPORTER_RETRY_DELAY", "2.5")

        config = ConfigManager(str(tmp_path / "absent.json"), env_file=None).load_config()

        assert config.database.sqlite_path == str(tmp_path / "novels.db")
        assert config.download.retry_delay == 2.5

    def test_env_file_loaded(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("NOVEL_IMPORTER_CHAPTER_RETRY_LIMIT=4\n", encoding="utf-8")

        try:
            config = ConfigManager(str(tmp_path / "absent.json"), env_file=str(env_file)).load_config()
            assert config.download.chapter_retry_limit == 4
        finally:
            os.environ.pop("NOVEL_IMPORTER_CHAPTER_RETRY_LIMIT", None)

    @pytest.mark.parametrize("name, value", [
        ("NOVEL_IMPORTER_MAX_CONCURRENT_REQUESTS", "many"),
        ("NOVEL_IMPORTER_CONNECTIVITY_ENABLED", "maybe"),
        ("NOVEL_IMPORTER_MAX_CONCURRENT_REQUESTS", "0"),
    ])
    def test_invalid_env_value_rejected(self, tmp_path, monkeypatch, name, value):
        monkeypatch.setenv(name, value)

        with pytest.raises(ConfigurationError):
            ConfigManager(str(tmp_path / "absent.json"), env_file=None).load_config()


class TestConfigurationExport:

    def test_save_and_reload_round_trip(self, tmp_path):
        source = tmp_path / "config.json"
        _write(source, {"download": {"retry_delay": 0.25}, "log_dir": None})
        manager = ConfigManager(str(source), env_file=None)
        manager.load_config()

        target = tmp_path / "saved.json"
        manager.save_config(str(target))

        reloaded = ConfigManager(str(target), env_file=None).load_config()
        assert reloaded == manager.load_config()
        assert reloaded.log_dir is None

    def test_save_without_config_rejected(self, tmp_path):
        with pytest.raises(ConfigurationError):
            ConfigManager(str(tmp_path / "config.json"), env_file=None).save_config()

    def test_export_before_load_is_empty(self, tmp_path):
        assert ConfigManager(str(tmp_path / "config.json"), env_file=None).export_config() == {}
