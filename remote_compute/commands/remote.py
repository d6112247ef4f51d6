"""exec / push / pull commands against a provisioned droplet."""

import sys

from remote_compute.commands import add_common_args, make_context, run_command
from remote_compute.compute import execute, transfer


async def _handle_exec(args):
    ctx = make_context(args)
    result = await execute(
        ctx,
        resource_id=args.resource_id,
        command=args.cmd,
        organization_id=args.org,
        timeout=args.timeout,
        working_dir=args.working_dir,
    )
    return result.to_dict()


def handle_exec(args):
    """Handle the exec command."""
    run_command(_handle_exec, args)


async def _handle_push(args):
    ctx = make_context(args)
    if args.file == "-":
        content = sys.stdin.read()
    else:
        with open(args.file) as f:
            content = f.read()
    result = await transfer(
        ctx,
        resource_id=args.resource_id,
        direction="push",
        content=content,
        remote_path=args.remote_path,
        organization_id=args.org,
    )
    return result.to_dict()


def handle_push(args):
    """Handle the push command."""
    run_command(_handle_push, args)


async def _handle_pull(args):
    ctx = make_context(args)
    result = await transfer(
        ctx,
        resource_id=args.resource_id,
        direction="pull",
        remote_path=args.remote_path,
        organization_id=args.org,
    )
    if args.output:
        mode = "wb" if isinstance(result.content, bytes) else "w"
        with open(args.output, mode) as f:
            f.write(result.content)
        return {"success": result.success, "bytesTransferred": result.bytes_transferred}
    return result.to_dict()


def handle_pull(args):
    """Handle the pull command."""
    run_command(_handle_pull, args)


def register_remote_commands(subparsers):
    """Register the exec, push and pull subcommands."""
    parser = subparsers.add_parser("exec", help="Run a command on a droplet")
    parser.add_argument("resource_id", help="Resource ID from 'provision'")
    parser.add_argument("cmd", help="Shell command to run")
    add_common_args(parser)
    parser.add_argument("--timeout", type=int, default=None, help="Timeout in seconds (5-1800, default: 300)")
    parser.add_argument("--working-dir", default=None, help="Working directory (default: /workspace)")
    parser.set_defaults(func=handle_exec)

    parser = subparsers.add_parser("push", help="Copy a local file to a droplet")
    parser.add_argument("resource_id", help="Resource ID from 'provision'")
    parser.add_argument("file", help="Local file to send, or '-' for stdin")
    parser.add_argument("remote_path", help="Absolute path on the droplet")
    add_common_args(parser)
    parser.set_defaults(func=handle_push)

    parser = subparsers.add_parser("pull", help="Fetch a file from a droplet")
    parser.add_argument("resource_id", help="Resource ID from 'provision'")
    parser.add_argument("remote_path", help="Absolute path on the droplet")
    add_common_args(parser)
    parser.add_argument("-o", "--output", default=None, help="Write content to this file instead of stdout JSON")
    parser.set_defaults(func=handle_pull)
