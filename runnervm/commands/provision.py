"""provision command: create the build VM and hand its address to later jobs.

On success the resource group is left running for the build job; a later
``runnervm teardown`` (run unconditionally by the workflow) deletes it. On
failure the sequencer has already requested deletion.
"""

import asyncio
import logging
import sys

from runnervm.commands import (
    add_config_arg,
    add_dry_run_arg,
    add_provision_args,
    build_clients,
    build_request,
    load_config_or_exit,
    write_github_output,
)
from runnervm.provisioning.errors import ProvisioningError
from runnervm.provisioning.sequencer import ProvisioningSequencer

logger = logging.getLogger(__name__)


async def _provision(args, config):
    client, secrets, session = build_clients(config, dry_run=args.dry_run)
    if args.login and not await client.login(config.managed_identity_client_id):
        return None
    request = build_request(args, config)
    sequencer = ProvisioningSequencer(client, secrets, session=session)
    vm, _guard = await sequencer.provision(request, config.candidate_regions)
    return vm


def handle_provision(args):
    """CLI handler for 'provision'."""
    config = load_config_or_exit(args.config)
    try:
        vm = asyncio.run(_provision(args, config))
    except ProvisioningError as e:
        logger.error(f"Error: {e.reason}")
        sys.exit(1)
    if vm is None:
        sys.exit(1)

    logger.info(f"PRIVATE_IP={vm.private_address}")
    logger.info(f"Run 'runnervm teardown --resource-group {vm.resource_group}' when done.")
    if args.github_output:
        write_github_output(args.github_output, PRIVATE_IP=vm.private_address, LOCATION=vm.region)


def register_provision_command(subparsers):
    parser = subparsers.add_parser("provision", help="Provision a build VM and print its private IP")
    add_config_arg(parser)
    add_provision_args(parser)
    parser.add_argument("--github-output", default=None, help="Append PRIVATE_IP=... to this file (e.g. $GITHUB_OUTPUT)")
    add_dry_run_arg(parser)
    parser.set_defaults(func=handle_provision)
