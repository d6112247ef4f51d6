"""Runtime configuration: defaults, YAML overrides, environment overrides."""

import logging
import os
from dataclasses import dataclass, field, fields

import yaml

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.digitalocean.com/v2"
DEFAULT_LEDGER_PATH = "~/.remote-compute/resources.json"


@dataclass
class RemoteComputeConfig:
    """Tunable limits and budgets for the compute operations."""

    api_url: str = DEFAULT_API_URL
    api_timeout: float = 60.0
    ledger_path: str = DEFAULT_LEDGER_PATH

    # TTL bounds (minutes)
    default_ttl_minutes: int = 60
    min_ttl_minutes: int = 5
    max_ttl_minutes: int = 180

    # Command timeout bounds (seconds)
    default_exec_timeout: int = 300
    min_exec_timeout: int = 5
    max_exec_timeout: int = 1800
    transfer_timeout: int = 30

    # Per-organization quotas
    max_active_per_org: int = 3
    max_provisions_per_hour: int = 10

    # Droplet status polling (seconds)
    poll_budget: float = 90.0
    poll_initial_delay: float = 3.0
    poll_backoff: float = 1.5
    poll_max_delay: float = 10.0

    # SSH readiness check
    ssh_check_attempts: int = 5
    ssh_check_interval: float = 5.0
    ssh_check_timeout: int = 10

    max_output_bytes: int = 1_048_576

    # organization id -> encrypted credential envelope
    org_credentials: dict = field(default_factory=dict)


def load_config(config_path: str | None = None) -> RemoteComputeConfig:
    """Build a config from defaults, an optional YAML file, then env vars.

    The YAML file may hold the settings at top level or under a
    ``remote_compute`` section.

    Raises:
        FileNotFoundError: if *config_path* is given but missing.
        ValueError: on malformed YAML or unknown keys.
    """
    config = RemoteComputeConfig()

    if config_path:
        path = os.path.expanduser(os.path.expandvars(config_path))
        try:
            with open(path) as f:
                raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Error parsing YAML config '{path}': {e}") from e
        if not isinstance(raw, dict):
            raise ValueError(f"Config '{path}' must be a mapping")
        section = raw.get("remote_compute", raw)
        _apply_overrides(config, section)
        logger.debug(f"Loaded config from {path}")

    api_url = os.environ.get("DIGITALOCEAN_API_URL")
    if api_url:
        config.api_url = api_url
    ledger_path = os.environ.get("REMOTE_COMPUTE_LEDGER")
    if ledger_path:
        config.ledger_path = ledger_path

    return config


def _apply_overrides(config, overrides):
    known = {f.name for f in fields(config)}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise ValueError(f"Unknown config key(s): {', '.join(unknown)}")
    for key, value in overrides.items():
        setattr(config, key, value)
