"""Shared CLI plumbing: config loading, client construction, argument helpers."""

import logging
import os
import sys

from runnervm.config import ConfigError, load_config
from runnervm.provisioning.azure import AzureCliClient
from runnervm.provisioning.errors import InvalidSku
from runnervm.provisioning.keyvault import KeyVaultSecretStore
from runnervm.provisioning.ssh_transport import SshRemoteSession
from runnervm.provisioning.types import ProvisionRequest, VmSku

logger = logging.getLogger(__name__)


def default_ssh_key_path(run_id=None):
    """Ephemeral private key location for one run (e.g. ~/.ssh/azure_key_1234)."""
    run_id = run_id or os.environ.get("GITHUB_RUN_ID", "local")
    return os.path.expanduser(f"~/.ssh/azure_key_{run_id}")


def load_config_or_exit(path):
    try:
        return load_config(path)
    except ConfigError as e:
        logger.error(f"Error: {e}")
        sys.exit(1)


def build_clients(config, ssh_key_path=None, dry_run=False):
    """Construct (client, secrets, session) for *config*."""
    client = AzureCliClient(config.runner_resource_group, dry_run=dry_run)
    secrets = KeyVaultSecretStore(config.key_vault, client_id=config.managed_identity_client_id, dry_run=dry_run)
    session = SshRemoteSession(
        secrets,
        username=config.admin_username,
        key_path=ssh_key_path or default_ssh_key_path(),
        dry_run=dry_run,
    )
    return client, secrets, session


def parse_sku_or_exit(name):
    try:
        return VmSku(name)
    except InvalidSku as e:
        logger.error(f"Error: {e.message}")
        sys.exit(1)


def build_request(args, config):
    """ProvisionRequest from the common provisioning arguments."""
    kwargs = {}
    if args.run_id:
        kwargs["run_id"] = args.run_id
    return ProvisionRequest(
        arch=args.arch,
        sku=parse_sku_or_exit(args.sku),
        os_disk_size_gb=args.os_disk_size,
        resource_group=args.resource_group,
        public_key_ref=config.public_key_secret,
        admin_username=config.admin_username,
        **kwargs,
    )


def write_github_output(path, **values):
    """Append KEY=value lines to a GitHub Actions output file."""
    with open(path, "a") as f:
        for key, value in values.items():
            f.write(f"{key}={value}\n")


def add_config_arg(parser):
    parser.add_argument("--config", default="runnervm.yaml", help="Path to runnervm.yaml (default: runnervm.yaml)")


def add_dry_run_arg(parser):
    parser.add_argument("--dry-run", action="store_true", help="Print commands without executing")


def add_provision_args(parser):
    """Arguments describing the VM to provision."""
    parser.add_argument("--arch", required=True, help="Image architecture (e.g. x86_64)")
    parser.add_argument("--sku", required=True, help="VM size (e.g. Standard_D16s_v5)")
    parser.add_argument("--os-disk-size", type=int, required=True, help="OS disk size in GB")
    parser.add_argument("--resource-group", required=True, help="Resource group to create for this run")
    parser.add_argument("--run-id", default=None, help="Run identifier used in the VM name (default: $GITHUB_RUN_ID)")
    parser.add_argument("--login", action="store_true", help="Run 'az login --identity' first")
