# workops_offline/config.py
# Description: Configuration management for the workops offline sync engine.
#
# Imports
import copy
import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, Optional, Tuple, Union
#
# Third-Party Imports
import toml
from loguru import logger
#
# Local Imports
#
#######################################################################################################################
#
# Functions:

# --- Path to the configuration file ---
DEFAULT_CONFIG_PATH = Path.home() / ".config" / "workops_offline" / "config.toml"
CONFIG_PATH_ENV_VAR = "WORKOPS_OFFLINE_CONFIG"
BASE_DATA_DIR = Path.home() / ".local" / "share" / "workops_offline"

PENDING_MERGE_POLICIES = ("overwrite", "skip_pending", "preserve_sync_state")
PULLABLE_ENTITIES = ("customers", "work_orders", "bills", "items", "services", "bank_accounts")


class ConfigurationError(ValueError):
    """Raised when a configuration value cannot be used."""
    pass


CONFIG_TOML_CONTENT = """
# Configuration for the workops offline sync engine.
# Values here are merged over the built-in defaults, so only overrides are required.

[server]
base_url = "http://127.0.0.1:5000"
request_timeout_seconds = 30.0

[database]
offline_db_path = "~/.local/share/workops_offline/workops_offline.db"

[sync]
# Whole-cycle attempts per trigger, and the linear backoff base (base x attempt number).
max_attempts = 3
backoff_base_seconds = 0.5
# Retry the cycle when a record failed to push with a transient error (network, 5xx, 408, 429).
retry_on_record_failures = true
# How a pull treats rows with pending local edits: "overwrite", "skip_pending" or "preserve_sync_state".
pending_merge_policy = "overwrite"
pull_page_size = 200
bulk_pull_limit = 5000
pull_entities = ["customers", "work_orders", "bills", "items", "services", "bank_accounts"]

[connectivity]
health_check_interval_seconds = 15.0
health_check_timeout_seconds = 5.0
initial_online = true

[notifications]
info_duration_ms = 3000
success_duration_ms = 3000
error_duration_ms = 4000
local_save_duration_ms = 2500
session_expired_duration_ms = 5000

[auth]
access_token = ""
auth_wait_timeout_seconds = 10.0

[logging]
log_level = "INFO"
log_filename = "workops_offline.log"
log_max_bytes = 10485760
log_backup_count = 5
"""

try:
    DEFAULT_CONFIG_FROM_TOML: Dict[str, Any] = tomllib.loads(CONFIG_TOML_CONTENT)
except tomllib.TOMLDecodeError as e:
    logger.critical(f"FATAL: Could not parse internal CONFIG_TOML_CONTENT: {e}")
    DEFAULT_CONFIG_FROM_TOML = {}


def deep_merge_dicts(base: Dict, update: Dict) -> Dict:
    """Recursively merges update_dict into base_dict."""
    merged = copy.deepcopy(base)
    for key, value in update.items():
        if isinstance(value, dict) and key in merged and isinstance(merged[key], dict):
            merged[key] = deep_merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def _get_typed_value(data_dict: Dict, key: str, default: Any, target_type: type = str) -> Any:
    """Helper to get value from dict and cast to type, with logging for type errors."""
    value = data_dict.get(key, default)
    if value is None:
        return None
    try:
        if target_type == bool:
            if isinstance(value, bool):
                return value
            return str(value).lower() in ['true', '1', 't', 'y', 'yes']
        if target_type == Path:
            return Path(value).expanduser() if value else default
        return target_type(value)
    except (ValueError, TypeError) as e:
        logger.warning(f"Config key '{key}' has value '{value}' which could not be converted to {target_type}. "
                       f"Using default: '{default}'. Error: {e}")
        return default


def get_config_path(config_path: Optional[Union[str, Path]] = None) -> Path:
    """Explicit path first, then the environment override, then the default location."""
    if config_path:
        return Path(config_path).expanduser()
    env_path = os.environ.get(CONFIG_PATH_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_PATH


# --- Primary Configuration Loading Logic ---
_CONFIG_CACHE: Optional[Dict[str, Any]] = None


def load_settings(config_path: Optional[Union[str, Path]] = None, force_reload: bool = False) -> Dict[str, Any]:
    """
    Loads settings from the TOML config file merged over the built-in defaults.
    If the file doesn't exist, it's created with the default content.
    """
    global _CONFIG_CACHE
    if _CONFIG_CACHE is not None and not force_reload:
        return _CONFIG_CACHE

    path = get_config_path(config_path)
    loaded_config = copy.deepcopy(DEFAULT_CONFIG_FROM_TOML)

    if not path.exists():
        logger.info(f"Config file not found at {path}. Creating with default values.")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                f.write(CONFIG_TOML_CONTENT)
            logger.info(f"Created default config file at {path}")
        except OSError as e:
            logger.error(f"Could not create default config file {path}: {e}. Using internal defaults.")
    else:
        logger.info(f"Attempting to load config from: {path}")
        try:
            with open(path, "rb") as f:
                user_config_from_file = tomllib.load(f)
            loaded_config = deep_merge_dicts(loaded_config, user_config_from_file)
            logger.info(f"Successfully loaded and merged config from {path}")
        except tomllib.TOMLDecodeError as e:
            logger.error(f"Error decoding TOML config file {path}: {e}. Using internal defaults.")

    _CONFIG_CACHE = loaded_config
    logger.debug(f"load_settings returning config with top-level keys: {list(loaded_config.keys())}")
    return _CONFIG_CACHE


def save_settings(settings: Dict[str, Any], config_path: Optional[Union[str, Path]] = None) -> Path:
    """Writes the given settings dict back to the TOML file and refreshes the cache."""
    global _CONFIG_CACHE
    path = get_config_path(config_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        toml.dump(settings, f)
    _CONFIG_CACHE = deep_merge_dicts(DEFAULT_CONFIG_FROM_TOML, settings)
    logger.info(f"Saved config to {path}")
    return path


def get_setting(section: str, key: str, default: Any = None, settings: Optional[Dict[str, Any]] = None) -> Any:
    """Helper to get a specific setting from the loaded configuration."""
    config = settings if settings is not None else load_settings()
    section_data = config.get(section)
    if isinstance(section_data, dict):
        return section_data.get(key, default)
    return default


# --- Typed views ---
@dataclass(frozen=True)
class SyncSettings:
    max_attempts: int = 3
    backoff_base_seconds: float = 0.5
    retry_on_record_failures: bool = True
    pending_merge_policy: str = "overwrite"
    pull_page_size: int = 200
    bulk_pull_limit: int = 5000
    pull_entities: Tuple[str, ...] = PULLABLE_ENTITIES


@dataclass(frozen=True)
class ConnectivitySettings:
    health_check_interval_seconds: float = 15.0
    health_check_timeout_seconds: float = 5.0
    initial_online: bool = True


@dataclass(frozen=True)
class NotificationSettings:
    info_duration_ms: int = 3000
    success_duration_ms: int = 3000
    error_duration_ms: int = 4000
    local_save_duration_ms: int = 2500
    session_expired_duration_ms: int = 5000


def get_sync_settings(settings: Optional[Dict[str, Any]] = None) -> SyncSettings:
    config = settings if settings is not None else load_settings()
    section = config.get("sync", {})
    defaults = SyncSettings()

    max_attempts = _get_typed_value(section, "max_attempts", defaults.max_attempts, int)
    if max_attempts < 1:
        raise ConfigurationError(f"[sync] max_attempts must be >= 1, got {max_attempts}")
    backoff = _get_typed_value(section, "backoff_base_seconds", defaults.backoff_base_seconds, float)
    if backoff < 0:
        raise ConfigurationError(f"[sync] backoff_base_seconds must be >= 0, got {backoff}")
    policy = _get_typed_value(section, "pending_merge_policy", defaults.pending_merge_policy, str)
    if policy not in PENDING_MERGE_POLICIES:
        raise ConfigurationError(f"[sync] pending_merge_policy must be one of {PENDING_MERGE_POLICIES}, got '{policy}'")

    pull_entities = section.get("pull_entities", list(defaults.pull_entities))
    unknown = [name for name in pull_entities if name not in PULLABLE_ENTITIES]
    if unknown:
        raise ConfigurationError(f"[sync] pull_entities contains unknown entities: {unknown}")

    return SyncSettings(
        max_attempts=max_attempts,
        backoff_base_seconds=backoff,
        retry_on_record_failures=_get_typed_value(section, "retry_on_record_failures",
                                                  defaults.retry_on_record_failures, bool),
        pending_merge_policy=policy,
        pull_page_size=_get_typed_value(section, "pull_page_size", defaults.pull_page_size, int),
        bulk_pull_limit=_get_typed_value(section, "bulk_pull_limit", defaults.bulk_pull_limit, int),
        # Pull order is fixed; the config only selects which entities take part.
        pull_entities=tuple(name for name in PULLABLE_ENTITIES if name in pull_entities),
    )


def get_connectivity_settings(settings: Optional[Dict[str, Any]] = None) -> ConnectivitySettings:
    config = settings if settings is not None else load_settings()
    section = config.get("connectivity", {})
    defaults = ConnectivitySettings()
    interval = _get_typed_value(section, "health_check_interval_seconds",
                                defaults.health_check_interval_seconds, float)
    if interval <= 0:
        raise ConfigurationError(f"[connectivity] health_check_interval_seconds must be > 0, got {interval}")
    return ConnectivitySettings(
        health_check_interval_seconds=interval,
        health_check_timeout_seconds=_get_typed_value(section, "health_check_timeout_seconds",
                                                      defaults.health_check_timeout_seconds, float),
        initial_online=_get_typed_value(section, "initial_online", defaults.initial_online, bool),
    )


def get_notification_settings(settings: Optional[Dict[str, Any]] = None) -> NotificationSettings:
    config = settings if settings is not None else load_settings()
    section = config.get("notifications", {})
    defaults = NotificationSettings()
    return NotificationSettings(**{
        field_name: _get_typed_value(section, field_name, getattr(defaults, field_name), int)
        for field_name in NotificationSettings.__dataclass_fields__
    })


# --- Database and Log File Path Getters ---
def get_offline_db_path(settings: Optional[Dict[str, Any]] = None) -> Path:
    default_db_path_str = DEFAULT_CONFIG_FROM_TOML.get("database", {}).get(
        "offline_db_path", str(BASE_DATA_DIR / "workops_offline.db"))
    db_path_str = get_setting("database", "offline_db_path", default_db_path_str, settings=settings)
    if db_path_str == ":memory:":
        return Path(":memory:")
    return Path(db_path_str).expanduser().resolve()


def get_log_file_path(settings: Optional[Dict[str, Any]] = None) -> Path:
    db_path = get_offline_db_path(settings)
    parent_dir = BASE_DATA_DIR if str(db_path) == ":memory:" else db_path.parent
    log_filename = get_setting("logging", "log_filename", "workops_offline.log", settings=settings)
    log_file_path = parent_dir / log_filename
    try:
        log_file_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error(f"Could not create log directory {log_file_path.parent}: {e}")
    return log_file_path

#
# End of workops_offline/config.py
#######################################################################################################################
