"""Configuration loading for poisync."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


@dataclass
class NodeConfig:
    name: str = "poisync-device"


@dataclass
class IdentityConfig:
    """Identity of the signed-in user, issued by an external provider."""

    user_id: str | None = None
    token: str | None = None


@dataclass
class StorageConfig:
    db_path: str = "~/.poisync/favorites.db"
    cursor_db_path: str | None = None  # Defaults to db_path


@dataclass
class RemoteConfig:
    base_url: str = "http://localhost:8080"
    timeout_seconds: float = 30.0
    user_agent: str = "poisync/0.1"
    since_param: str = "since"


@dataclass
class SyncConfig:
    """Configuration for the background sync scheduler."""

    enabled: bool = True
    interval_hours: int = 6
    only_wifi: bool = False
    require_battery_not_low: bool = True
    max_retries: int = 3
    retry_backoff_seconds: float = 30.0
    constraint_poll_seconds: float = 30.0
    constraint_timeout_seconds: float = 300.0
    cursor_clock_fallback: bool = True


@dataclass
class DashboardConfig:
    host: str = "127.0.0.1"
    port: int = 8090


@dataclass
class Config:
    node: NodeConfig = field(default_factory=NodeConfig)
    identity: IdentityConfig = field(default_factory=IdentityConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with POISYNC_ prefix."""
    return os.environ.get(f"POISYNC_{key}", default)


def _is_true(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    if name := _get_env("NODE_NAME"):
        config.node.name = name

    # Identity overrides
    if user_id := _get_env("USER_ID"):
        config.identity.user_id = user_id
    if token := _get_env("AUTH_TOKEN"):
        config.identity.token = token

    if db_path := _get_env("DB_PATH"):
        config.storage.db_path = db_path

    # Remote overrides
    if base_url := _get_env("REMOTE_URL"):
        config.remote.base_url = base_url
    if timeout := _get_env("REMOTE_TIMEOUT"):
        config.remote.timeout_seconds = float(timeout)

    # Sync overrides
    if sync_enabled := _get_env("SYNC_ENABLED"):
        config.sync.enabled = _is_true(sync_enabled)
    if interval := _get_env("SYNC_INTERVAL_HOURS"):
        config.sync.interval_hours = int(interval)
    if only_wifi := _get_env("SYNC_ONLY_WIFI"):
        config.sync.only_wifi = _is_true(only_wifi)
    if battery := _get_env("SYNC_REQUIRE_BATTERY_NOT_LOW"):
        config.sync.require_battery_not_low = _is_true(battery)

    if dash_port := _get_env("DASHBOARD_PORT"):
        config.dashboard.port = int(dash_port)

    return config


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, uses default config.

    Returns:
        Loaded Config object.
    """
    config = Config()

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}

            if "node" in data:
                config.node = NodeConfig(
                    name=data["node"].get("name", config.node.name)
                )

            if "identity" in data:
                identity_data = data["identity"]
                config.identity = IdentityConfig(
                    user_id=identity_data.get("user_id"),
                    token=identity_data.get("token"),
                )

            if "storage" in data:
                storage_data = data["storage"]
                config.storage = StorageConfig(
                    db_path=storage_data.get("db_path", config.storage.db_path),
                    cursor_db_path=storage_data.get("cursor_db_path"),
                )

            # Parse remote config
            if "remote" in data:
                remote_data = data["remote"]
                config.remote = RemoteConfig(
                    base_url=remote_data.get("base_url", config.remote.base_url),
                    timeout_seconds=remote_data.get(
                        "timeout_seconds", config.remote.timeout_seconds
                    ),
                    user_agent=remote_data.get("user_agent", config.remote.user_agent),
                    since_param=remote_data.get(
                        "since_param", config.remote.since_param
                    ),
                )

            # Parse sync config
            if "sync" in data:
                sync_data = data["sync"]
                config.sync = SyncConfig(
                    enabled=sync_data.get("enabled", config.sync.enabled),
                    interval_hours=sync_data.get(
                        "interval_hours", config.sync.interval_hours
                    ),
                    only_wifi=sync_data.get("only_wifi", config.sync.only_wifi),
                    require_battery_not_low=sync_data.get(
                        "require_battery_not_low", config.sync.require_battery_not_low
                    ),
                    max_retries=sync_data.get("max_retries", config.sync.max_retries),
                    retry_backoff_seconds=sync_data.get(
                        "retry_backoff_seconds", config.sync.retry_backoff_seconds
                    ),
                    constraint_poll_seconds=sync_data.get(
                        "constraint_poll_seconds", config.sync.constraint_poll_seconds
                    ),
                    constraint_timeout_seconds=sync_data.get(
                        "constraint_timeout_seconds",
                        config.sync.constraint_timeout_seconds,
                    ),
                    cursor_clock_fallback=sync_data.get(
                        "cursor_clock_fallback", config.sync.cursor_clock_fallback
                    ),
                )

            if "dashboard" in data:
                dash_data = data["dashboard"]
                config.dashboard = DashboardConfig(
                    host=dash_data.get("host", config.dashboard.host),
                    port=dash_data.get("port", config.dashboard.port),
                )

    # Apply environment variable overrides
    config = _apply_env_overrides(config)

    if config.storage.cursor_db_path is None:
        config.storage.cursor_db_path = config.storage.db_path

    return config
