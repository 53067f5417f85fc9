"""Configuration loading and validation."""

import json
import logging
import os
from dataclasses import dataclass, field

import yaml

from runnervm.provisioning.types import RemoteCommandBatch

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "runnervm.yaml"


class ConfigError(ValueError):
    """Missing or malformed configuration."""


@dataclass
class RunnerConfig:
    """Settings shared by every command."""

    runner_resource_group: str
    key_vault: str
    # Ordered region -> storage account path. Order is placement preference.
    regions: dict[str, str] = field(default_factory=dict)
    public_key_secret: str = ""
    private_key_secret: str = ""
    managed_identity_client_id: str | None = None
    admin_username: str = "azureuser"

    @property
    def candidate_regions(self) -> list[str]:
        return list(self.regions)


def _load_yaml(path):
    try:
        with open(path) as f:
            return yaml.safe_load(f) or {}
    except FileNotFoundError:
        raise ConfigError(f"Config file '{path}' not found.") from None
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing YAML in '{path}': {e}") from e


def _regions_from_env():
    """Region map from $STORAGE_ACCOUNT_PATHS (a JSON object), if set."""
    raw = os.environ.get("STORAGE_ACCOUNT_PATHS", "")
    if not raw:
        return {}
    try:
        regions = json.loads(raw)
    except ValueError as e:
        raise ConfigError(f"STORAGE_ACCOUNT_PATHS is not valid JSON: {e}") from e
    if not isinstance(regions, dict):
        raise ConfigError("STORAGE_ACCOUNT_PATHS must be a JSON object of region -> storage path")
    return regions


def parse_config(raw: dict) -> RunnerConfig:
    """Build a RunnerConfig from a parsed YAML mapping."""
    if not isinstance(raw, dict):
        raise ConfigError("Config must be a mapping.")

    azure = raw.get("azure") or {}
    for key in ("runner_resource_group", "key_vault"):
        if not azure.get(key):
            raise ConfigError(f"Missing '{key}' in 'azure' section.")

    regions = raw.get("regions") or _regions_from_env()
    if not regions:
        raise ConfigError("No regions configured: set 'regions' or $STORAGE_ACCOUNT_PATHS.")

    secrets = raw.get("secrets") or {}
    return RunnerConfig(
        runner_resource_group=azure["runner_resource_group"],
        key_vault=azure["key_vault"],
        regions={str(k): str(v) for k, v in regions.items()},
        public_key_secret=secrets.get("public_key", ""),
        private_key_secret=secrets.get("private_key", ""),
        managed_identity_client_id=azure.get("managed_identity_client_id") or os.environ.get("AZURE_CLIENT_ID"),
        admin_username=azure.get("admin_username", "azureuser"),
    )


def load_config(path: str = DEFAULT_CONFIG_PATH) -> RunnerConfig:
    """Load and validate the runner configuration from YAML."""
    return parse_config(_load_yaml(path))


def load_steps(path: str) -> list[RemoteCommandBatch]:
    """Load remote command batches from a steps YAML file.

    Format::

        steps:
          - name: install
            commands:
              - sudo tdnf install -y git
          - name: build
            commands: [...]
    """
    raw = _load_yaml(path)
    steps = raw.get("steps") if isinstance(raw, dict) else None
    if not steps:
        raise ConfigError(f"No 'steps' in '{path}'.")

    batches = []
    for i, step in enumerate(steps):
        commands = step.get("commands") if isinstance(step, dict) else None
        if not commands or not all(isinstance(c, str) for c in commands):
            raise ConfigError(f"Step {i + 1} in '{path}' needs a non-empty list of string 'commands'.")
        batches.append(RemoteCommandBatch(commands=commands, name=step.get("name", f"step-{i + 1}")))
    return batches
