"""Provisioning: keypair -> SSH key -> droplet -> poll -> SSH check -> ledger.

Each step is gated on the previous one. Anything created before a failure is
deleted again before the error reaches the caller; if that deletion itself
fails, the row is left in the ledger as ``failed`` so teardown can retry.
"""

import logging
import re
import uuid
from datetime import timedelta

from remote_compute.compute.context import ComputeContext
from remote_compute.errors import InvalidArgumentError, ProvisioningTimeoutError, QuotaExceededError
from remote_compute.presets import (
    BOOTSTRAP_SCRIPT,
    DEFAULT_IMAGE,
    DEFAULT_REGION,
    DEFAULT_SIZE,
    EPHEMERAL_TAG,
    NAME_PREFIX,
    PROVIDER,
    RESOURCE_TYPE,
    resolve_size_slug,
)
from remote_compute.provisioning.cleanup import CleanupReport
from remote_compute.provisioning.digitalocean import (
    create_droplet,
    delete_droplet,
    delete_ssh_key,
    register_ssh_key,
    wait_for_active,
)
from remote_compute.provisioning.ssh import wait_for_ssh
from remote_compute.provisioning.types import (
    STATUS_ACTIVE,
    STATUS_DESTROYED,
    STATUS_FAILED,
    STATUS_PROVISIONING,
    ProvisionedResource,
    ProvisionResult,
)

logger = logging.getLogger(__name__)


def droplet_name(now, pipeline_run_id=None):
    """Droplet label: ``remote-compute-<run id>`` or ``remote-compute-build-<epoch ms>``."""
    if pipeline_run_id:
        slug = re.sub(r"[^a-zA-Z0-9.-]+", "-", str(pipeline_run_id)).strip("-.").lower()
        if slug:
            return f"{NAME_PREFIX}-{slug}"[:63]
    return f"{NAME_PREFIX}-build-{int(now.timestamp() * 1000)}"


async def enforce_provisioning_limits(ctx: ComputeContext, organization_id):
    """Cap live resources per organization and provisions per trailing hour."""
    config = ctx.config
    active = await ctx.ledger.count(organization_id, statuses=(STATUS_PROVISIONING, STATUS_ACTIVE))
    if active >= config.max_active_per_org:
        raise QuotaExceededError(
            f"Provisioning limit reached ({active}/{config.max_active_per_org} active resources). "
            f"Tear down an existing resource first."
        )
    recent = await ctx.ledger.count(organization_id, created_since=ctx.now() - timedelta(hours=1))
    if recent >= config.max_provisions_per_hour:
        raise QuotaExceededError(
            f"Provisioning rate limit exceeded ({recent}/{config.max_provisions_per_hour} in the last hour)."
        )


async def provision(
    ctx: ComputeContext,
    *,
    organization_id,
    region=DEFAULT_REGION,
    size=DEFAULT_SIZE,
    image=DEFAULT_IMAGE,
    ttl_minutes=None,
    pipeline_run_id=None,
) -> ProvisionResult:
    """Provision an ephemeral droplet for *organization_id*.

    Returns:
        ProvisionResult with the ledger id and connection summary. The
        private key is never part of the result.

    Raises:
        InvalidArgumentError, QuotaExceededError, AuthResolutionError,
        ProviderAPIError, ProvisioningTimeoutError.
    """
    config = ctx.config
    if not organization_id:
        raise InvalidArgumentError("organization_id is required")
    ttl = config.default_ttl_minutes if ttl_minutes is None else ttl_minutes
    if not config.min_ttl_minutes <= ttl <= config.max_ttl_minutes:
        raise InvalidArgumentError(
            f"ttl_minutes must be between {config.min_ttl_minutes} and {config.max_ttl_minutes} (got {ttl})"
        )

    await enforce_provisioning_limits(ctx, organization_id)
    token = await ctx.token_resolver.resolve(organization_id)

    size_slug = resolve_size_slug(size)
    created_at = ctx.now()
    name = droplet_name(created_at, pipeline_run_id)
    key_pair = ctx.keygen()

    logger.info(f"Provisioning droplet '{name}' ({size_slug}, {region}, {image}) for organization {organization_id}")
    ssh_key_id = await register_ssh_key(ctx.gateway, token, name, key_pair.public_key)

    try:
        droplet_id = await create_droplet(
            ctx.gateway,
            token,
            name=name,
            region=region,
            size=size_slug,
            image=image,
            ssh_key_id=ssh_key_id,
            user_data=BOOTSTRAP_SCRIPT,
            tags=[EPHEMERAL_TAG],
        )
    except Exception:
        report = CleanupReport()
        await report.attempt(f"delete SSH key {ssh_key_id}", lambda: delete_ssh_key(ctx.gateway, token, ssh_key_id))
        raise

    resource = ProvisionedResource(
        id=uuid.uuid4().hex,
        organization_id=organization_id,
        provider=PROVIDER,
        resource_type=RESOURCE_TYPE,
        external_id=str(droplet_id),
        name=name,
        status=STATUS_PROVISIONING,
        metadata={
            "ssh_key_id": ssh_key_id,
            "ttl_minutes": ttl,
            "region": region,
            "size": size_slug,
            "pipeline_run_id": pipeline_run_id,
        },
        created_at=created_at,
    )

    try:
        await ctx.ledger.create(resource)

        ip = await wait_for_active(
            ctx.gateway,
            token,
            droplet_id,
            budget=config.poll_budget,
            initial_delay=config.poll_initial_delay,
            backoff=config.poll_backoff,
            max_delay=config.poll_max_delay,
            sleep=ctx.sleep,
        )
        if ip is None:
            raise ProvisioningTimeoutError(f"Droplet did not become active within {config.poll_budget:g} seconds")

        reachable = await wait_for_ssh(
            ctx.transport,
            ip,
            key_pair.private_key,
            attempts=config.ssh_check_attempts,
            interval=config.ssh_check_interval,
            timeout=config.ssh_check_timeout,
            sleep=ctx.sleep,
        )
        if not reachable:
            raise ProvisioningTimeoutError(f"SSH connectivity check failed for {ip} after droplet became active")

        expires_at = created_at + timedelta(minutes=ttl)
        metadata = dict(resource.metadata)
        metadata.update(
            ip=ip,
            private_key=ctx.encryptor.seal(key_pair.private_key),
            expires_at=expires_at.isoformat(),
        )
        await ctx.ledger.update(resource.id, expected_status=STATUS_PROVISIONING, status=STATUS_ACTIVE, metadata=metadata)
    except Exception as e:
        await _rollback(ctx, token, resource, droplet_id, ssh_key_id, e)
        raise

    logger.info(f"Droplet '{name}' ready at {ip} (resource {resource.id}, expires {expires_at.isoformat()})")
    return ProvisionResult(
        resource_id=resource.id,
        droplet_id=droplet_id,
        ip=ip,
        region=region,
        size=size_slug,
        expires_at=expires_at.isoformat(),
    )


async def _rollback(ctx, token, resource, droplet_id, ssh_key_id, error):
    """Delete the droplet and SSH key created for a provision that failed later on."""
    logger.warning(f"Provisioning '{resource.name}' failed ({error}); rolling back droplet {droplet_id} and SSH key {ssh_key_id}")
    report = CleanupReport()
    await report.attempt(f"delete droplet {droplet_id}", lambda: delete_droplet(ctx.gateway, token, droplet_id))
    await report.attempt(f"delete SSH key {ssh_key_id}", lambda: delete_ssh_key(ctx.gateway, token, ssh_key_id))

    metadata = dict(resource.metadata)
    metadata["failure"] = str(error)
    if report.ok:
        changes = dict(status=STATUS_DESTROYED, external_id=None, destroyed_at=ctx.now())
        metadata.pop("ssh_key_id", None)
        metadata["destroyed_by"] = "provision-rollback"
    else:
        changes = dict(status=STATUS_FAILED)
        metadata["cleanup_errors"] = report.errors
        logger.error(
            f"Rollback incomplete for resource {resource.id}: {'; '.join(report.errors)}. "
            f"Droplet {droplet_id} / SSH key {ssh_key_id} may still exist; run teardown on {resource.id}."
        )

    try:
        await ctx.ledger.update(resource.id, metadata=metadata, **changes)
    except Exception as e:
        logger.error(f"Could not record rollback outcome for resource {resource.id}: {e}")
