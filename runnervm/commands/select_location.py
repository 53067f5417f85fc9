"""select-location command: report the first region with enough quota for a SKU."""

import asyncio
import logging
import sys

from runnervm.commands import add_config_arg, add_dry_run_arg, load_config_or_exit, parse_sku_or_exit
from runnervm.provisioning.azure import AzureCliClient
from runnervm.provisioning.errors import NoCapacity
from runnervm.provisioning.quota import LocationSelector

logger = logging.getLogger(__name__)


def handle_select_location(args):
    """CLI handler for 'select-location'."""
    config = load_config_or_exit(args.config)
    sku = parse_sku_or_exit(args.sku)
    client = AzureCliClient(config.runner_resource_group, dry_run=args.dry_run)

    try:
        region = asyncio.run(LocationSelector(client).select_location(config.candidate_regions, sku, args.cores))
    except NoCapacity as e:
        logger.error(f"Error: {e.reason}")
        sys.exit(1)

    logger.info(f"location={region}")


def register_select_location_command(subparsers):
    parser = subparsers.add_parser("select-location", help="Find a region with enough vCPU quota for a SKU")
    add_config_arg(parser)
    parser.add_argument("--sku", required=True, help="VM size (e.g. Standard_D16s_v5)")
    parser.add_argument("--cores", type=int, default=None, help="Required cores (default: parsed from the SKU)")
    add_dry_run_arg(parser)
    parser.set_defaults(func=handle_select_location)
