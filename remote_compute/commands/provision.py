"""Provision and list commands."""

from remote_compute.commands import add_common_args, make_context, run_command
from remote_compute.compute import provision
from remote_compute.presets import DEFAULT_IMAGE, DEFAULT_REGION, DEFAULT_SIZE, SIZE_PRESETS


async def _handle_provision(args):
    ctx = make_context(args)
    result = await provision(
        ctx,
        organization_id=args.org,
        region=args.region,
        size=args.size,
        image=args.image,
        ttl_minutes=args.ttl,
        pipeline_run_id=args.pipeline_run_id,
    )
    return result.to_dict()


def handle_provision(args):
    """Handle the provision command."""
    run_command(_handle_provision, args)


async def _handle_list(args):
    ctx = make_context(args)
    resources = await ctx.ledger.find_many(args.org)
    if not args.all:
        resources = [r for r in resources if r.status != "destroyed"]
    return [
        {
            "resourceId": r.id,
            "name": r.name,
            "status": r.status,
            "dropletId": r.external_id,
            "ip": r.metadata.get("ip"),
            "expiresAt": r.metadata.get("expires_at"),
        }
        for r in resources
    ]


def handle_list(args):
    """Handle the list command."""
    run_command(_handle_list, args)


def register_provision_command(subparsers):
    """Register the provision subcommand."""
    presets = ", ".join(f"{k}={v}" for k, v in SIZE_PRESETS.items())
    parser = subparsers.add_parser("provision", help="Provision an ephemeral droplet")
    add_common_args(parser)
    parser.add_argument("--region", default=DEFAULT_REGION, help=f"Region slug (default: {DEFAULT_REGION})")
    parser.add_argument("--size", default=DEFAULT_SIZE, help=f"Size preset ({presets}) or raw slug (default: {DEFAULT_SIZE})")
    parser.add_argument("--image", default=DEFAULT_IMAGE, help=f"Image slug (default: {DEFAULT_IMAGE})")
    parser.add_argument("--ttl", type=int, default=None, help="TTL in minutes (default: 60)")
    parser.add_argument("--pipeline-run-id", default=None, help="Associated pipeline run ID, used in the droplet name")
    parser.set_defaults(func=handle_provision)


def register_list_command(subparsers):
    """Register the list subcommand."""
    parser = subparsers.add_parser("list", help="List resources owned by an organization")
    add_common_args(parser)
    parser.add_argument("--all", action="store_true", help="Include destroyed resources")
    parser.set_defaults(func=handle_list)
