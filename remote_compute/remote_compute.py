#!/usr/bin/env python3
"""Ephemeral remote compute: CLI entrypoint."""

import argparse

from remote_compute.commands.provision import register_list_command, register_provision_command
from remote_compute.commands.remote import register_remote_commands
from remote_compute.commands.teardown import register_teardown_command
from remote_compute.logging_setup import setup_cli_logging


def main():
    parser = argparse.ArgumentParser(description="Provision and drive ephemeral DigitalOcean droplets")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    register_provision_command(subparsers)
    register_list_command(subparsers)
    register_remote_commands(subparsers)
    register_teardown_command(subparsers)

    args = parser.parse_args()
    setup_cli_logging(verbose=args.verbose)
    args.func(args)


if __name__ == "__main__":
    main()
