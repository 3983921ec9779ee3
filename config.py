"""
Configuration management for the web novel importer.
"""

import os
import threading
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field, asdict
from pathlib import Path
import json
import logging
import jsonschema
from jsonschema import validate
from dotenv import load_dotenv

from novel_importer.utils.errors import ConfigurationError


ENV_PREFIX = "NOVEL_IMPORTER_"


@dataclass
class DatabaseConfig:
    """Database configuration settings."""
    sqlite_path: str = "data/novel_importer.db"


@dataclass
class CrawlerConfig:
    """Crawler configuration settings."""
    user_agents: List[str] = field(default_factory=lambda: [
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36",
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36"
    ])
    request_timeout: float = 15.0
    transport_retries: int = 0
    min_request_interval: float = 0.0


@dataclass
class ConcurrencyConfig:
    """Request gate settings."""
    max_concurrent_requests: int = 5


@dataclass
class ConnectivityConfig:
    """Reachability probe settings."""
    enabled: bool = True
    probe_host: str = "8.8.8.8"
    probe_port: int = 53
    probe_timeout: float = 3.0


@dataclass
class DownloadConfig:
    """Download orchestrator settings."""
    chapter_retry_limit: int = 1
    retry_delay: float = 1.0
    sample_content_length: int = 200


@dataclass
class SystemConfig:
    """Main system configuration."""
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    crawler: CrawlerConfig = field(default_factory=CrawlerConfig)
    concurrency: ConcurrencyConfig = field(default_factory=ConcurrencyConfig)
    connectivity: ConnectivityConfig = field(default_factory=ConnectivityConfig)
    download: DownloadConfig = field(default_factory=DownloadConfig)
    log_level: str = "INFO"
    log_dir: Optional[str] = "logs"


# Configuration schema for validation
CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "database": {
            "type": "object",
            "properties": {
                "sqlite_path": {"type": "string", "minLength": 1}
            },
            "additionalProperties": False
        },
        "crawler": {
            "type": "object",
            "properties": {
                "user_agents": {
                    "type": "array",
                    "items": {"type": "string", "minLength": 10},
                    "minItems": 1
                },
                "request_timeout": {"type": "number", "exclusiveMinimum": 0, "maximum": 300},
                "transport_retries": {"type": "integer", "minimum": 0, "maximum": 10},
                "min_request_interval": {"type": "number", "minimum": 0, "maximum": 60.0}
            },
            "additionalProperties": False
        },
        "concurrency": {
            "type": "object",
            "properties": {
                "max_concurrent_requests": {"type": "integer", "minimum": 1, "maximum": 50}
            },
            "additionalProperties": False
        },
        "connectivity": {
            "type": "object",
            "properties": {
                "enabled": {"type": "boolean"},
                "probe_host": {"type": "string", "minLength": 1},
                "probe_port": {"type": "integer", "minimum": 1, "maximum": 65535},
                "probe_timeout": {"type": "number", "exclusiveMinimum": 0, "maximum": 60.0}
            },
            "additionalProperties": False
        },
        "download": {
            "type": "object",
            "properties": {
                "chapter_retry_limit": {"type": "integer", "minimum": 0, "maximum": 10},
                "retry_delay": {"type": "number", "minimum": 0, "maximum": 300.0},
                "sample_content_length": {"type": "integer", "minimum": 1, "maximum": 10000}
            },
            "additionalProperties": False
        },
        "log_level": {
            "type": "string",
            "enum": ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        },
        "log_dir": {"type": ["string", "null"]}
    },
    "additionalProperties": False
}

# Environment variable -> (section, key, type)
ENV_OVERRIDES = {
    "DB_PATH": ("database", "sqlite_path", str),
    "REQUEST_TIMEOUT": ("crawler", "request_timeout", float),
    "TRANSPORT_RETRIES": ("crawler", "transport_retries", int),
    "MIN_REQUEST_INTERVAL": ("crawler", "min_request_interval", float),
    "MAX_CONCURRENT_REQUESTS": ("concurrency", "max_concurrent_requests", int),
    "CONNECTIVITY_ENABLED": ("connectivity", "enabled", bool),
    "PROBE_HOST": ("connectivity", "probe_host", str),
    "PROBE_PORT": ("connectivity", "probe_port", int),
    "CHAPTER_RETRY_LIMIT": ("download", "chapter_retry_limit", int),
    "RETRY_DELAY": ("download", "retry_delay", float),
    "LOG_LEVEL": (None, "log_level", str),
    "LOG_DIR": (None, "log_dir", str),
}

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off"}


def _convert_env_value(name: str, raw: str, value_type: type) -> Any:
    raw = raw.strip()
    if value_type is bool:
        if raw.lower() in TRUE_VALUES:
            return True
        if raw.lower() in FALSE_VALUES:
            return False
        raise ConfigurationError(f"Invalid boolean for {name}: {raw}")
    try:
        return value_type(raw)
    except ValueError as e:
        raise ConfigurationError(f"Invalid value for {name}: {raw}") from e


class ConfigChangeListener:
    """Interface for configuration change listeners."""

    def on_config_changed(self, old_config: SystemConfig, new_config: SystemConfig) -> None:
        """Called when configuration changes."""
        pass


class ConfigManager:
    """Configuration manager with schema validation, environment overrides and change detection."""

    def __init__(self, config_path: str = "config.json", env_file: Optional[str] = ".env"):
        self.config_path = Path(config_path)
        self.env_file = Path(env_file) if env_file else None
        self._config: Optional[SystemConfig] = None
        self._last_modified: Optional[float] = None
        self._lock = threading.RLock()
        self._change_listeners: List[ConfigChangeListener] = []
        self._monitoring_thread: Optional[threading.Thread] = None
        self._stop_monitoring = threading.Event()

    def add_change_listener(self, listener: ConfigChangeListener) -> None:
        """Add a configuration change listener."""
        with self._lock:
            self._change_listeners.append(listener)

    def remove_change_listener(self, listener: ConfigChangeListener) -> None:
        """Remove a configuration change listener."""
        with self._lock:
            if listener in self._change_listeners:
                self._change_listeners.remove(listener)

    def start_monitoring(self, check_interval: float = 1.0) -> None:
        """Start monitoring configuration file for changes."""
        if self._monitoring_thread and self._monitoring_thread.is_alive():
            return

        self._stop_monitoring.clear()
        self._monitoring_thread = threading.Thread(
            target=self._monitor_config_changes,
            args=(check_interval,),
            daemon=True
        )
        self._monitoring_thread.start()
        logging.info("Configuration monitoring started")

    def stop_monitoring(self) -> None:
        """Stop monitoring configuration file for changes."""
        self._stop_monitoring.set()
        if self._monitoring_thread:
            self._monitoring_thread.join(timeout=5.0)
        logging.info("Configuration monitoring stopped")

    def _monitor_config_changes(self, check_interval: float) -> None:
        while not self._stop_monitoring.wait(check_interval):
            try:
                if self.reload_if_changed():
                    logging.info("Configuration automatically reloaded due to file changes")
            except ConfigurationError as e:
                logging.error(f"Error during automatic config reload: {e}")

    def validate_config(self, config_data: Dict[str, Any]) -> None:
        """Validate configuration data against schema."""
        try:
            validate(instance=config_data, schema=CONFIG_SCHEMA)
        except jsonschema.ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed: {e.message}",
                                     {"path": list(e.absolute_path)}) from e

    def load_config(self) -> SystemConfig:
        """Load configuration from file or, without one, from environment variables."""
        with self._lock:
            if self.config_path.exists():
                current_modified = self.config_path.stat().st_mtime
                if self._config is None or current_modified != self._last_modified:
                    self._load_from_file()
                    self._last_modified = current_modified
            elif self._config is None:
                self._load_from_env()

            return self._config or SystemConfig()

    def _load_from_file(self) -> None:
        """Load configuration from JSON file with validation."""
        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                config_data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Failed to read config file {self.config_path}: {e}") from e

        self.validate_config(config_data)

        config = self._dict_to_config(config_data)
        self._override_with_env_vars(config)
        self._replace_config(config)

        logging.info(f"Configuration loaded and validated from {self.config_path}")

    def _load_from_env(self) -> None:
        config = SystemConfig()
        self._override_with_env_vars(config)
        self._replace_config(config)
        logging.info("Configuration loaded from environment variables")

    def _load_env_file(self) -> None:
        if self.env_file is not None and self.env_file.exists():
            load_dotenv(self.env_file, override=False)
            logging.info("Loaded environment variables from .env file")

    def _override_with_env_vars(self, config: SystemConfig) -> None:
        """Apply NOVEL_IMPORTER_* environment variables on top of a configuration."""
        self._load_env_file()

        for suffix, (section, key, value_type) in ENV_OVERRIDES.items():
            name = ENV_PREFIX + suffix
            raw = os.getenv(name)
            if raw is None or raw.strip() == "":
                continue
            value = _convert_env_value(name, raw, value_type)
            target = getattr(config, section) if section else config
            setattr(target, key, value)

        self.validate_config(self._config_to_dict(config))

    def _replace_config(self, config: SystemConfig) -> None:
        old_config = self._config
        self._config = config
        if old_config is not None:
            self._notify_config_changed(old_config, config)

    def _dict_to_config(self, data: Dict[str, Any]) -> SystemConfig:
        """Convert dictionary to SystemConfig object."""
        config = SystemConfig()

        if "database" in data:
            config.database = DatabaseConfig(**data["database"])

        if "crawler" in data:
            config.crawler = CrawlerConfig(**data["crawler"])

        if "concurrency" in data:
            config.concurrency = ConcurrencyConfig(**data["concurrency"])

        if "connectivity" in data:
            config.connectivity = ConnectivityConfig(**data["connectivity"])

        if "download" in data:
            config.download = DownloadConfig(**data["download"])

        config.log_level = data.get("log_level", config.log_level)
        config.log_dir = data.get("log_dir", config.log_dir)

        return config

    @staticmethod
    def _config_to_dict(config: SystemConfig) -> Dict[str, Any]:
        return {
            "database": asdict(config.database),
            "crawler": asdict(config.crawler),
            "concurrency": asdict(config.concurrency),
            "connectivity": asdict(config.connectivity),
            "download": asdict(config.download),
            "log_level": config.log_level,
            "log_dir": config.log_dir
        }

    def _notify_config_changed(self, old_config: SystemConfig, new_config: SystemConfig) -> None:
        """Notify all listeners of configuration changes."""
        for listener in self._change_listeners:
            try:
                listener.on_config_changed(old_config, new_config)
            except Exception as e:
                logging.error(f"Error notifying config change listener: {e}")

    def reload_if_changed(self) -> bool:
        """Check if config file has changed and reload if necessary."""
        with self._lock:
            if not self.config_path.exists():
                return False

            current_modified = self.config_path.stat().st_mtime
            if current_modified != self._last_modified:
                self.load_config()
                return True
            return False

    def export_config(self) -> Dict[str, Any]:
        """Export current configuration as dictionary."""
        with self._lock:
            if not self._config:
                return {}
            return self._config_to_dict(self._config)

    def save_config(self, config_path: Optional[str] = None) -> None:
        """Save current configuration to file."""
        with self._lock:
            if not self._config:
                raise ConfigurationError("No configuration loaded to save")

            save_path = Path(config_path) if config_path else self.config_path
            config_dict = self.export_config()

            self.validate_config(config_dict)

            with open(save_path, 'w', encoding='utf-8') as f:
                json.dump(config_dict, f, indent=2, ensure_ascii=False)

            logging.info(f"Configuration saved to {save_path}")

    def __enter__(self):
        self.start_monitoring()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop_monitoring()


# Global config manager instance
config_manager = ConfigManager()


def get_config() -> SystemConfig:
    """Get the current system configuration."""
    return config_manager.load_config()


def reload_config() -> SystemConfig:
    """Force reload configuration and return updated config."""
    with config_manager._lock:
        config_manager._config = None
        config_manager._last_modified = None
    return config_manager.load_config()
