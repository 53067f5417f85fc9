"""exec command: run remote command batches on an already provisioned VM."""

import asyncio
import logging
import sys

from runnervm.commands import add_config_arg, add_dry_run_arg, build_clients, default_ssh_key_path, load_config_or_exit
from runnervm.config import ConfigError, load_steps
from runnervm.pipeline import run_batches
from runnervm.provisioning.cleanup import CleanupGuard
from runnervm.provisioning.errors import ProvisioningError

logger = logging.getLogger(__name__)


async def _exec(args, config, batches):
    client, _secrets, session = build_clients(
        config, ssh_key_path=args.ssh_key or default_ssh_key_path(args.run_id), dry_run=args.dry_run
    )
    # No resource group: only the ephemeral key file is cleaned up here.
    async with CleanupGuard(client, None) as guard:
        if not args.keep_key and not args.dry_run:
            guard.track_credential(session.key_path)
        await run_batches(session, args.address, config.private_key_secret, batches)


def handle_exec(args):
    """CLI handler for 'exec'."""
    config = load_config_or_exit(args.config)
    try:
        batches = load_steps(args.steps)
    except ConfigError as e:
        logger.error(f"Error: {e}")
        sys.exit(1)

    try:
        asyncio.run(_exec(args, config, batches))
    except ProvisioningError as e:
        logger.error(f"Error: {e.reason}")
        sys.exit(1)
    logger.info("Remote steps completed successfully.")


def register_exec_command(subparsers):
    parser = subparsers.add_parser("exec", help="Run remote steps on a provisioned VM over SSH")
    add_config_arg(parser)
    parser.add_argument("--address", required=True, help="VM private IP")
    parser.add_argument("--steps", required=True, help="Steps YAML file")
    parser.add_argument("--run-id", default=None, help="Run identifier the key file is named after (default: $GITHUB_RUN_ID)")
    parser.add_argument("--ssh-key", default=None, help="Local path for the private key (default: ~/.ssh/azure_key_<run id>)")
    parser.add_argument("--keep-key", action="store_true", help="Do not delete the private key file afterwards")
    add_dry_run_arg(parser)
    parser.set_defaults(func=handle_exec)
