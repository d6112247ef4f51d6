"""Collaborators shared by the compute operations, plus the access checks."""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from remote_compute.config import RemoteComputeConfig
from remote_compute.credentials import Encryptor, TokenResolver
from remote_compute.errors import AccessDeniedError, ExpiredError, InvalidStateError, NotFoundError
from remote_compute.ledger import JsonFileLedger, Ledger
from remote_compute.provisioning.digitalocean import DigitalOceanGateway
from remote_compute.provisioning.keys import KeyPair, generate_key_pair
from remote_compute.provisioning.ssh_transport import SshTransport
from remote_compute.provisioning.types import STATUS_ACTIVE, ProvisionedResource


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ComputeContext:
    """Everything an operation needs, injected so tests can swap in fakes.

    ``now`` and ``sleep`` drive TTL checks and every poll loop.
    """

    ledger: Ledger
    encryptor: Encryptor
    token_resolver: TokenResolver
    gateway: DigitalOceanGateway
    transport: SshTransport
    config: RemoteComputeConfig = field(default_factory=RemoteComputeConfig)
    now: Callable[[], datetime] = utcnow
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    keygen: Callable[[], KeyPair] = generate_key_pair


def check_owner(resource: ProvisionedResource, organization_id: str) -> None:
    if resource.organization_id != organization_id:
        raise AccessDeniedError("Access denied: resource belongs to a different organization")


async def load_owned_resource(ctx: ComputeContext, resource_id, organization_id) -> ProvisionedResource:
    """Fetch a resource and verify the caller's organization owns it."""
    resource = await ctx.ledger.find_unique(resource_id)
    if resource is None:
        raise NotFoundError(f"Resource {resource_id} not found")
    check_owner(resource, organization_id)
    return resource


async def load_active_resource(ctx: ComputeContext, resource_id, organization_id) -> ProvisionedResource:
    """Fetch a resource that is owned, active and not past its TTL.

    Checks run in order: NotFound, AccessDenied, InvalidState, Expired.
    """
    resource = await load_owned_resource(ctx, resource_id, organization_id)

    if resource.status != STATUS_ACTIVE:
        raise InvalidStateError(f"Resource is {resource.status}, not active")

    expires_at = resource.expires_at
    if expires_at is not None and expires_at <= ctx.now():
        raise ExpiredError(
            f"Resource has expired (TTL reached at {expires_at.isoformat()}). Run teardown to clean up."
        )
    return resource


def decrypt_private_key(ctx: ComputeContext, resource: ProvisionedResource) -> str:
    envelope = resource.metadata.get("private_key")
    if not envelope:
        raise InvalidStateError(f"SSH private key not found for resource {resource.id}")
    try:
        return ctx.encryptor.open(envelope)
    except ValueError as e:
        raise InvalidStateError(f"Failed to decrypt SSH private key for resource {resource.id}") from e


def build_context(config: RemoteComputeConfig, encryptor: Encryptor, ledger: Ledger | None = None) -> ComputeContext:
    """Wire the production collaborators from *config*."""
    return ComputeContext(
        ledger=ledger if ledger is not None else JsonFileLedger(config.ledger_path),
        encryptor=encryptor,
        token_resolver=TokenResolver(encryptor, config.org_credentials),
        gateway=DigitalOceanGateway(config.api_url, timeout=config.api_timeout),
        transport=SshTransport(max_output=config.max_output_bytes),
        config=config,
    )
