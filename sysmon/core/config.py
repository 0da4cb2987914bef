"""Configuration management for sysmon.

This module loads settings from data/config.ini, applies environment
overrides, validates values and hands the rest of the application one frozen
Settings object. Nothing here runs at import time; ``load_settings()`` is
called once by the entry point.

The configuration system follows these principles:
- Single source of truth for all application settings
- Fail-fast on critical configuration errors (API enabled without a token)
- Sensible defaults for optional settings
- Platform-independent path handling using pathlib

Configuration Structure:
    [device]
        name: Human-readable device name (default: hostname)
        interval: Poll interval in seconds

    [collection]
        tool_timeout: Seconds allowed for each external tool
        parallel: Run domain collectors concurrently
        history_size: Samples kept for CPU history
        probe_live: Run the live mobile telemetry probe at startup

    [health]
        cpu_warning / cpu_critical / memory_warning / disk_warning: percent

    [output]
        json_path: Dashboard JSON file
        log_path: Historical log file
        report_path: Default HTML report path

    [api]
        enabled: Enable the REST API (default: False)
        port: API server port (default: 5555)
        auth_token: Bearer token for API authentication

    [mqtt]
        enabled / broker / port / username / password / base_topic

Environment overrides use ``SM_<SECTION>_<KEY>``, e.g. ``SM_API_AUTH_TOKEN``.

Example:
    >>> from sysmon.core.config import load_settings
    >>> settings = load_settings()
    >>> print(f"{settings.device_name} every {settings.interval}s")
"""

import configparser
import logging
import os
import socket
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Tuple

from sysmon.core.assembler import HealthThresholds
from sysmon.utils.formatting import sanitize_topic

logger = logging.getLogger(__name__)


# ----------------------------
# Paths
# ----------------------------

BASE_DIR = Path(__file__).resolve().parent.parent.parent
DATA_DIR = BASE_DIR / "data"
CONFIG_PATH = DATA_DIR / "config.ini"
VERSION_PATH = BASE_DIR / "VERSION"

ENV_PREFIX = "SM_"


# ----------------------------
# Load version
# ----------------------------

try:
    with VERSION_PATH.open("r", encoding="utf-8") as f:
        VERSION = f.read().strip()
except FileNotFoundError:
    VERSION = "0.0.0"  # fallback if VERSION file is missing
    logger.debug(f"VERSION file not found at {VERSION_PATH}, using fallback: {VERSION}")


DEFAULT_CONFIG = """; ==================== SYSMON CONFIG ====================
; Generated on first run. Environment variables SM_<SECTION>_<KEY>
; override any value below.
; ========================================================

[device]
name = {device_name}
interval = 3

[collection]
tool_timeout = 3
parallel = false
history_size = 20
probe_live = true

[health]
cpu_warning = 80
cpu_critical = 95
memory_warning = 90
disk_warning = 90

[output]
json_path = data/system_data.json
log_path = data/monitor.log
report_path = data/system_report.html

[api]
enabled = false
port = 5555
auth_token =

[mqtt]
enabled = false
broker = localhost
port = 1883
username =
password =
base_topic = sysmon/{device_id}
"""


@dataclass(frozen=True)
class Settings:
    """Every configurable value, resolved and validated."""

    device_name: str = "sysmon"
    interval: float = 3.0

    tool_timeout: float = 3.0
    parallel: bool = False
    history_size: int = 20
    probe_live: bool = True

    thresholds: HealthThresholds = field(default_factory=HealthThresholds)

    json_path: Path = DATA_DIR / "system_data.json"
    log_path: Path = DATA_DIR / "monitor.log"
    report_path: Path = DATA_DIR / "system_report.html"

    api_enabled: bool = False
    api_port: int = 5555
    api_auth_token: str = ""

    mqtt_enabled: bool = False
    mqtt_broker: str = "localhost"
    mqtt_port: int = 1883
    mqtt_username: str = ""
    mqtt_password: str = ""
    mqtt_base_topic: str = "sysmon/sysmon"

    @property
    def device_id(self) -> str:
        return sanitize_topic(self.device_name) or "sysmon"


# ----------------------------
# Validation Functions
# ----------------------------


def validate_port(port: str) -> Tuple[bool, str]:
    """
    Validate a TCP port value.

    Returns (is_valid, error_message).
    """
    try:
        port_int = int(port)
    except (TypeError, ValueError):
        return False, f"Port must be a number, got '{port}'"
    if not (1 <= port_int <= 65535):
        return False, f"Port must be between 1-65535, got {port}"
    return True, ""


def validate_thresholds(thresholds: HealthThresholds) -> Tuple[bool, str]:
    """
    Validate health thresholds.

    Every threshold must be a percentage and the CPU warning level must not
    exceed the critical level. Returns (is_valid, error_message).
    """
    for name in ("cpu_warning", "cpu_critical", "memory_warning", "disk_warning"):
        value = getattr(thresholds, name)
        if not (0 <= value <= 100):
            return False, f"{name} must be between 0-100, got {value}"
    if thresholds.cpu_warning > thresholds.cpu_critical:
        return False, (
            f"cpu_warning ({thresholds.cpu_warning}) must not exceed "
            f"cpu_critical ({thresholds.cpu_critical})"
        )
    return True, ""


# ----------------------------
# Loading
# ----------------------------


def create_default_config(config_path: Path) -> None:
    """Write the default config.ini, creating parent directories."""
    device_name = socket.gethostname() or "sysmon"
    device_id = sanitize_topic(device_name) or "sysmon"
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(
        DEFAULT_CONFIG.format(device_name=device_name, device_id=device_id),
        encoding="utf-8",
    )
    logger.info(f"Configuration created at {config_path}")


def apply_env_overrides(config: configparser.ConfigParser) -> None:
    """Copy SM_<SECTION>_<KEY> environment variables into the parser."""
    for name, value in os.environ.items():
        if not name.startswith(ENV_PREFIX):
            continue
        remainder = name[len(ENV_PREFIX):].lower()
        for section in config.sections():
            if remainder.startswith(section + "_"):
                key = remainder[len(section) + 1:]
                config.set(section, key, value)
                logger.debug(f"Config override from environment: [{section}] {key}")
                break


def _resolve_path(value: str) -> Path:
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = BASE_DIR / path
    return path


def read_config(config_path: Path) -> configparser.ConfigParser:
    """
    Read config.ini, creating it with defaults on first run.

    Exits with status 1 when the file exists but cannot be parsed.
    """
    if not config_path.exists():
        try:
            create_default_config(config_path)
        except OSError as e:
            logger.warning(f"Could not write default config to {config_path}: {e}")

    config = configparser.ConfigParser()
    config.read_string(DEFAULT_CONFIG.format(device_name="sysmon", device_id="sysmon"))

    try:
        config.read(config_path, encoding="utf-8")
    except configparser.Error as e:
        logger.error(f"Configuration file is corrupt: {e}")
        logger.error(f"Location: {config_path}")
        sys.exit(1)

    apply_env_overrides(config)
    return config


def load_settings(config_path: Path = CONFIG_PATH) -> Settings:
    """
    Load, validate and freeze the application settings.

    Args:
        config_path: Path to config.ini (created with defaults if missing).

    Returns:
        Settings instance.

    Raises:
        SystemExit: On invalid values or when the API is enabled without an
            auth token.
    """
    config = read_config(Path(config_path))

    try:
        thresholds = HealthThresholds(
            cpu_warning=config.getint("health", "cpu_warning"),
            cpu_critical=config.getint("health", "cpu_critical"),
            memory_warning=config.getint("health", "memory_warning"),
            disk_warning=config.getint("health", "disk_warning"),
        )
        settings = Settings(
            device_name=config.get("device", "name").strip() or "sysmon",
            interval=max(config.getfloat("device", "interval"), 0.5),
            tool_timeout=max(config.getfloat("collection", "tool_timeout"), 0.1),
            parallel=config.getboolean("collection", "parallel"),
            history_size=max(config.getint("collection", "history_size"), 1),
            probe_live=config.getboolean("collection", "probe_live"),
            thresholds=thresholds,
            json_path=_resolve_path(config.get("output", "json_path")),
            log_path=_resolve_path(config.get("output", "log_path")),
            report_path=_resolve_path(config.get("output", "report_path")),
            api_enabled=config.getboolean("api", "enabled"),
            api_port=config.getint("api", "port"),
            api_auth_token=config.get("api", "auth_token").strip(),
            mqtt_enabled=config.getboolean("mqtt", "enabled"),
            mqtt_broker=config.get("mqtt", "broker").strip(),
            mqtt_port=config.getint("mqtt", "port"),
            mqtt_username=config.get("mqtt", "username").strip(),
            mqtt_password=config.get("mqtt", "password"),
            mqtt_base_topic=config.get("mqtt", "base_topic").strip().rstrip("/"),
        )
    except ValueError as e:
        logger.error(f"Invalid configuration value: {e}")
        logger.error(f"Location: {config_path}")
        sys.exit(1)

    for label, port in (("API", settings.api_port), ("MQTT", settings.mqtt_port)):
        valid, error = validate_port(port)
        if not valid:
            logger.error(f"{label} {error}")
            sys.exit(1)

    valid, error = validate_thresholds(settings.thresholds)
    if not valid:
        logger.error(f"Invalid [health] section: {error}")
        sys.exit(1)

    # Enforce API authentication requirement
    if settings.api_enabled and not settings.api_auth_token:
        logger.error("=" * 70)
        logger.error("ERROR: API is enabled but auth_token is NOT configured!")
        logger.error("Please add an auth_token to [api] section in config.ini")
        logger.error(
            'Generate token: python -c "import secrets; print(secrets.token_urlsafe(32))"'
        )
        logger.error("Or disable the API: enabled = false")
        logger.error("=" * 70)
        sys.exit(1)

    if settings.mqtt_enabled and not settings.mqtt_broker:
        logger.error("MQTT is enabled but no broker is configured")
        sys.exit(1)

    return settings
