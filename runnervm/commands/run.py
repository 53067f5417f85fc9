"""run command: provision a VM, run remote steps, always tear down."""

import asyncio
import logging
import sys

from runnervm.commands import (
    add_config_arg,
    add_dry_run_arg,
    add_provision_args,
    build_clients,
    build_request,
    default_ssh_key_path,
    load_config_or_exit,
    write_github_output,
)
from runnervm.config import ConfigError, load_steps
from runnervm.pipeline import run_build
from runnervm.provisioning.sequencer import ProvisioningSequencer
from runnervm.provisioning.ssh import wait_for_ssh
from runnervm.provisioning.types import RunOutcome

logger = logging.getLogger(__name__)


async def _run(args, config, batches):
    ssh_key = args.ssh_key or default_ssh_key_path(args.run_id)
    client, secrets, session = build_clients(config, ssh_key_path=ssh_key, dry_run=args.dry_run)
    if args.login and not await client.login(config.managed_identity_client_id):
        return RunOutcome(False, "az login failed")

    request = build_request(args, config)
    sequencer = ProvisioningSequencer(client, secrets, session=session)

    before_batches = None
    if args.wait_ssh:

        async def before_batches(vm):
            # The key must be on disk before the readiness probe can use it.
            await session.ensure_key(config.private_key_secret)
            return await wait_for_ssh(
                vm.private_address, vm.admin_username, session.key_path, timeout=args.wait_ssh_timeout, dry_run=args.dry_run
            )

    return await run_build(
        sequencer,
        session,
        request,
        config.candidate_regions,
        batches,
        credential_ref=config.private_key_secret,
        key_path=None if args.dry_run else session.key_path,
        before_batches=before_batches,
    )


def handle_run(args):
    """CLI handler for 'run'."""
    config = load_config_or_exit(args.config)
    try:
        batches = load_steps(args.steps)
    except ConfigError as e:
        logger.error(f"Error: {e}")
        sys.exit(1)

    outcome = asyncio.run(_run(args, config, batches))
    if args.github_output:
        write_github_output(args.github_output, SUCCESS=str(outcome.success).lower(), REASON=outcome.reason)
    if not outcome.success:
        sys.exit(1)


def register_run_command(subparsers):
    parser = subparsers.add_parser("run", help="Provision a VM, run remote steps, then tear it down")
    add_config_arg(parser)
    add_provision_args(parser)
    parser.add_argument("--steps", required=True, help="Steps YAML file")
    parser.add_argument("--ssh-key", default=None, help="Local path for the private key (default: ~/.ssh/azure_key_<run id>)")
    parser.add_argument("--wait-ssh", action="store_true", help="Poll SSH until reachable before running steps")
    parser.add_argument("--wait-ssh-timeout", type=int, default=120, help="SSH wait timeout in seconds (default: 120)")
    parser.add_argument("--github-output", default=None, help="Append SUCCESS/REASON to this file (e.g. $GITHUB_OUTPUT)")
    add_dry_run_arg(parser)
    parser.set_defaults(func=handle_run)
