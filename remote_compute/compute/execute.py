"""Remote command execution and file transfer against a provisioned droplet."""

import logging

from remote_compute.compute.context import ComputeContext, decrypt_private_key, load_active_resource
from remote_compute.errors import InvalidArgumentError, TransferError
from remote_compute.presets import WORKSPACE_DIR
from remote_compute.provisioning.types import ExecResult, TransferResult

logger = logging.getLogger(__name__)

DIRECTIONS = ("push", "pull")


def _clamp_timeout(config, timeout):
    if timeout is None:
        return config.default_exec_timeout
    return max(config.min_exec_timeout, min(int(timeout), config.max_exec_timeout))


async def execute(
    ctx: ComputeContext,
    *,
    resource_id,
    command,
    organization_id,
    timeout=None,
    working_dir=None,
) -> ExecResult:
    """Run *command* on the droplet behind *resource_id*.

    The command runs as root from *working_dir* (default ``/workspace``).
    *timeout* is in seconds and bounds only the SSH session. Exit code,
    stdout and stderr come back verbatim (stdout/stderr capped at 1 MiB).
    """
    resource = await load_active_resource(ctx, resource_id, organization_id)
    if not command or not command.strip():
        raise InvalidArgumentError("command is required")

    timeout = _clamp_timeout(ctx.config, timeout)
    ip = resource.metadata["ip"]
    private_key = decrypt_private_key(ctx, resource)

    logger.info(f"[{resource.name}] $ {command}")
    result = await ctx.transport.run(
        ip,
        private_key,
        command,
        timeout_ms=timeout * 1000,
        working_dir=working_dir or WORKSPACE_DIR,
    )
    logger.info(f"[{resource.name}] exit {result.exit_code} in {result.duration_ms}ms")
    return result


async def transfer(
    ctx: ComputeContext,
    *,
    resource_id,
    direction,
    remote_path,
    organization_id,
    content=None,
) -> TransferResult:
    """Push *content* to, or pull it from, *remote_path* on the droplet.

    Content is passed through as-is; ``bytes_transferred`` is its UTF-8
    byte length (or raw length for bytes). Pulled files come back as str
    when they decode as UTF-8, otherwise as the untouched bytes.
    """
    resource = await load_active_resource(ctx, resource_id, organization_id)
    if direction not in DIRECTIONS:
        raise InvalidArgumentError(f"direction must be 'push' or 'pull' (got {direction!r})")
    if not remote_path:
        raise InvalidArgumentError("remote_path is required")
    if direction == "push" and content is None:
        raise InvalidArgumentError("content is required when direction is 'push'")

    ip = resource.metadata["ip"]
    private_key = decrypt_private_key(ctx, resource)
    timeout = ctx.config.transfer_timeout

    if direction == "push":
        size = len(content.encode() if isinstance(content, str) else content)
        logger.info(f"[{resource.name}] push {size} bytes -> {remote_path}")
        rc, stderr = await ctx.transport.push(ip, private_key, content, remote_path, timeout=timeout)
        if rc != 0:
            raise TransferError(f"Push to {remote_path} failed: {stderr}")
        return TransferResult(success=True, bytes_transferred=size)

    logger.info(f"[{resource.name}] pull {remote_path}")
    rc, raw, stderr = await ctx.transport.pull(ip, private_key, remote_path, timeout=timeout)
    if rc != 0:
        raise TransferError(f"Pull from {remote_path} failed: {stderr}")
    try:
        pulled = raw.decode("utf-8")
    except UnicodeDecodeError:
        pulled = raw
    return TransferResult(success=True, bytes_transferred=len(raw), content=pulled)
