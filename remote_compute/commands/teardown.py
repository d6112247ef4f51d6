"""Teardown command: destroy a droplet and its SSH key, wipe the stored key."""

import logging

from remote_compute.commands import add_common_args, make_context, run_command
from remote_compute.compute import teardown

logger = logging.getLogger(__name__)


async def _handle_teardown(args):
    ctx = make_context(args)
    results = []
    for resource_id in args.resource_ids:
        result = await teardown(ctx, resource_id=resource_id, organization_id=args.org)
        if result.errors:
            logger.warning(f"[{result.name}] cleanup incomplete: {'; '.join(result.errors)}")
        results.append({"resourceId": resource_id, **result.to_dict()})
    return results[0] if len(results) == 1 else results


def handle_teardown(args):
    """Handle the teardown command."""
    run_command(_handle_teardown, args)


def register_teardown_command(subparsers):
    """Register the teardown subcommand."""
    parser = subparsers.add_parser(
        "teardown",
        help="Destroy droplets and wipe their stored SSH keys (safe to repeat)",
    )
    parser.add_argument("resource_ids", nargs="+", help="Resource ID(s) from 'provision'")
    add_common_args(parser)
    parser.set_defaults(func=handle_teardown)
