"""Teardown: delete the droplet and SSH key, then wipe secrets from the ledger."""

import logging

from remote_compute.compute.context import ComputeContext, load_owned_resource
from remote_compute.errors import InvalidStateError, RemoteComputeError
from remote_compute.provisioning.cleanup import CleanupReport
from remote_compute.provisioning.digitalocean import delete_droplet, delete_ssh_key
from remote_compute.provisioning.types import (
    SECRET_METADATA_KEYS,
    STATUS_ACTIVE,
    STATUS_DESTROYED,
    STATUS_FAILED,
    STATUS_PROVISIONING,
    TeardownResult,
)

logger = logging.getLogger(__name__)

_TEARDOWN_FROM = (STATUS_PROVISIONING, STATUS_ACTIVE, STATUS_FAILED)


async def teardown(ctx: ComputeContext, *, resource_id, organization_id) -> TeardownResult:
    """Release the cloud resources behind *resource_id*.

    Safe to call repeatedly: a destroyed resource returns success without any
    provider call. Provider deletes are best effort; whatever they return,
    the ledger row ends up ``destroyed`` with its private key removed.
    Failed deletes are reported in ``TeardownResult.errors``.
    """
    resource = await load_owned_resource(ctx, resource_id, organization_id)
    if resource.status == STATUS_DESTROYED:
        logger.info(f"Resource {resource_id} ('{resource.name}') already destroyed.")
        return TeardownResult(success=True, name=resource.name, duration_minutes=0)

    now = ctx.now()
    duration_minutes = round((now - resource.created_at).total_seconds() / 60) if resource.created_at else 0
    droplet_id = resource.external_id
    ssh_key_id = resource.metadata.get("ssh_key_id")

    logger.info(f"Tearing down '{resource.name}' (droplet {droplet_id}, SSH key {ssh_key_id})...")
    report = CleanupReport()
    try:
        token = await ctx.token_resolver.resolve(organization_id)
    except RemoteComputeError as e:
        token = None
        report.skip("resolve provider token", str(e))

    if token is not None:
        if droplet_id:
            await report.attempt(f"delete droplet {droplet_id}", lambda: delete_droplet(ctx.gateway, token, droplet_id))
        if ssh_key_id:
            await report.attempt(f"delete SSH key {ssh_key_id}", lambda: delete_ssh_key(ctx.gateway, token, ssh_key_id))

    metadata = {k: v for k, v in resource.metadata.items() if k not in SECRET_METADATA_KEYS}
    metadata.pop("ssh_key_id", None)
    metadata["destroyed_by"] = "teardown"
    if report.errors:
        metadata["cleanup_errors"] = report.errors

    try:
        await ctx.ledger.update(
            resource_id,
            expected_status=_TEARDOWN_FROM,
            status=STATUS_DESTROYED,
            external_id=None,
            destroyed_at=now,
            metadata=metadata,
        )
    except InvalidStateError:
        current = await ctx.ledger.find_unique(resource_id)
        if current is None or current.status != STATUS_DESTROYED:
            raise
        logger.info(f"Resource {resource_id} was destroyed concurrently.")
        return TeardownResult(success=True, name=current.name, duration_minutes=duration_minutes)

    if report.errors:
        logger.warning(f"Teardown of '{resource.name}' finished with errors: {'; '.join(report.errors)}")
    else:
        logger.info(f"Teardown of '{resource.name}' complete ({duration_minutes} min).")
    return TeardownResult(success=True, name=resource.name, duration_minutes=duration_minutes, errors=report.errors)
