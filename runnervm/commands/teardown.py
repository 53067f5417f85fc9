"""Teardown command: delete a run's resource group and its ephemeral SSH key."""

import asyncio
import logging
import sys

from runnervm.commands import add_dry_run_arg, default_ssh_key_path
from runnervm.provisioning.azure import AzureCliClient
from runnervm.provisioning.cleanup import CleanupGuard

logger = logging.getLogger(__name__)


async def _teardown(args):
    # Group deletion needs no runner resource group.
    client = AzureCliClient(runner_resource_group=None, dry_run=args.dry_run)
    guard = CleanupGuard(client, args.resource_group)
    ssh_key = args.ssh_key or default_ssh_key_path(args.run_id)
    if args.dry_run:
        logger.info(f"[dry-run] rm -f {ssh_key} {ssh_key}.pub")
    else:
        guard.track_credential(ssh_key)
    return await guard.release()


def handle_teardown(args):
    """Handle the teardown command."""
    report = asyncio.run(_teardown(args))
    if not report.clean:
        logger.info(f"\nFailed to clean up: {'; '.join(report.errors)}")
        if args.strict:
            sys.exit(1)


def register_teardown_command(subparsers):
    """Register the teardown subcommand."""
    parser = subparsers.add_parser(
        "teardown",
        help="Delete a run's resource group and SSH key (safe to run when they are already gone)",
    )
    parser.add_argument("--resource-group", required=True, help="Resource group to delete")
    parser.add_argument("--run-id", default=None, help="Run identifier the key file is named after (default: $GITHUB_RUN_ID)")
    parser.add_argument(
        "--ssh-key",
        default=None,
        help="Private key file to remove, along with its .pub (default: ~/.ssh/azure_key_<run id>)",
    )
    parser.add_argument("--strict", action="store_true", help="Exit non-zero when cleanup fails")
    add_dry_run_arg(parser)
    parser.set_defaults(func=handle_teardown)
