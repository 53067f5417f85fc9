#!/usr/bin/env python3
"""Ephemeral Azure build VMs for CI: CLI entrypoint."""

import argparse

from runnervm.commands.exec import register_exec_command
from runnervm.commands.provision import register_provision_command
from runnervm.commands.run import register_run_command
from runnervm.commands.select_location import register_select_location_command
from runnervm.commands.teardown import register_teardown_command
from runnervm.logging_setup import setup_cli_logging


def main():
    parser = argparse.ArgumentParser(description="Ephemeral Azure build VMs for CI")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    register_select_location_command(subparsers)
    register_provision_command(subparsers)
    register_exec_command(subparsers)
    register_run_command(subparsers)
    register_teardown_command(subparsers)

    args = parser.parse_args()
    setup_cli_logging(verbose=args.verbose)
    args.func(args)


if __name__ == "__main__":
    main()
