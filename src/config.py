"""Orchestrator configuration paths and YAML parsing.

Configuration lives in a single YAML plan file:
- /etc/pve-orchestrator/config.yaml (installed default)
- $PVE_ORCHESTRATOR_CONFIG (override)

Log output is appended to /var/log/pve-orchestrator.log unless
$PVE_ORCHESTRATOR_LOG points elsewhere.
"""

import os
from pathlib import Path
from typing import Optional

import yaml

CONFIG_DIR = Path('/etc/pve-orchestrator')
DEFAULT_CONFIG_FILE = CONFIG_DIR / 'config.yaml'
DEFAULT_LOG_FILE = Path('/var/log/pve-orchestrator.log')


class ConfigError(Exception):
    """Configuration error."""


class ConfigMissing(ConfigError):
    """Configuration file does not exist."""


def get_base_dir() -> Path:
    """Get the repository directory."""
    return Path(__file__).parent.parent  # src/ -> repo/


def get_template_dir() -> Path:
    """Get the directory holding config and systemd templates."""
    return get_base_dir() / 'templates'


def get_config_path(override: Optional[str] = None) -> Path:
    """Resolve the plan file location.

    Resolution order:
    1. Explicit override (--config)
    2. $PVE_ORCHESTRATOR_CONFIG environment variable
    3. /etc/pve-orchestrator/config.yaml
    """
    if override:
        return Path(override)
    if env_path := os.environ.get('PVE_ORCHESTRATOR_CONFIG'):
        return Path(env_path)
    return DEFAULT_CONFIG_FILE


def get_log_path(override: Optional[str] = None) -> Path:
    """Resolve the log file location (--log-file > $PVE_ORCHESTRATOR_LOG > default)."""
    if override:
        return Path(override)
    if env_path := os.environ.get('PVE_ORCHESTRATOR_LOG'):
        return Path(env_path)
    return DEFAULT_LOG_FILE


def debug_enabled() -> bool:
    """True when DEBUG=1 is set in the environment."""
    return os.environ.get('DEBUG', '0') == '1'


def parse_yaml(path: Path) -> dict:
    """Parse a YAML file and return its mapping.

    Raises:
        ConfigMissing: If the file does not exist
        ConfigError: If the file is not valid YAML or not a mapping
    """
    if not path.exists():
        raise ConfigMissing(
            f"Configuration file not found: {path}\n"
            f"  Copy the example config and customize it:\n"
            f"  cp {get_template_dir() / 'config.yaml.example'} {path}"
        )
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration {path} must be a YAML object (dict)")
    return data
