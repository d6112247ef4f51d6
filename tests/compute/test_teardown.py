"""Unit tests for the teardown orchestrator."""

from datetime import timedelta

import pytest

from remote_compute.compute import provision, teardown
from remote_compute.errors import AccessDeniedError, NotFoundError, ProvisioningTimeoutError


async def test_teardown_deletes_droplet_and_key_and_wipes_secret(ctx, fake_do, ledger, clock, seed_resource):
    await seed_resource(name="build-7", age=timedelta(minutes=45))

    result = await teardown(ctx, resource_id="res-1", organization_id="org-123")

    assert result.success is True
    assert result.name == "build-7"
    assert result.duration_minutes == 45
    assert result.errors == []
    assert fake_do.count("DELETE", "/droplets/67890") == 1
    assert fake_do.count("DELETE", "/account/keys/12345") == 1

    row = await ledger.find_unique("res-1")
    assert row.status == "destroyed"
    assert row.external_id is None
    assert row.destroyed_at == clock.now()
    assert "private_key" not in row.metadata
    assert "ssh_key_id" not in row.metadata
    assert row.metadata["destroyed_by"] == "teardown"


async def test_teardown_already_destroyed_is_noop(ctx, fake_do, seed_resource):
    await seed_resource(status="destroyed", name="build-old")

    result = await teardown(ctx, resource_id="res-1", organization_id="org-123")

    assert result.success is True
    assert result.name == "build-old"
    assert fake_do.calls == []


async def test_teardown_twice(ctx, fake_do, seed_resource):
    await seed_resource()

    first = await teardown(ctx, resource_id="res-1", organization_id="org-123")
    calls_after_first = len(fake_do.calls)
    second = await teardown(ctx, resource_id="res-1", organization_id="org-123")

    assert first.success and second.success
    assert calls_after_first == 2
    assert len(fake_do.calls) == calls_after_first


async def test_teardown_cross_tenant_is_access_denied(ctx, fake_do, ledger, seed_resource):
    await seed_resource(organization_id="org-DIFFERENT")

    with pytest.raises(AccessDeniedError):
        await teardown(ctx, resource_id="res-1", organization_id="org-123")

    assert fake_do.calls == []
    row = await ledger.find_unique("res-1")
    assert row.status == "active"
    assert "private_key" in row.metadata


async def test_teardown_not_found(ctx):
    with pytest.raises(NotFoundError):
        await teardown(ctx, resource_id="nope", organization_id="org-123")


async def test_teardown_wipes_secret_even_when_droplet_delete_fails(ctx, fake_do, ledger, seed_resource):
    await seed_resource()
    fake_do.overrides[("DELETE", "/droplets/67890")] = (500, {"id": "server_error", "message": "boom"})

    result = await teardown(ctx, resource_id="res-1", organization_id="org-123")

    assert result.success is True
    assert result.errors == ["delete droplet 67890: HTTP 500"]
    assert fake_do.count("DELETE", "/account/keys/12345") == 1

    row = await ledger.find_unique("res-1")
    assert row.status == "destroyed"
    assert "private_key" not in row.metadata
    assert row.metadata["cleanup_errors"] == ["delete droplet 67890: HTTP 500"]


async def test_teardown_treats_404_as_already_gone(ctx, fake_do, seed_resource):
    await seed_resource()
    fake_do.overrides[("DELETE", "/droplets/67890")] = (404, {"id": "not_found"})
    fake_do.overrides[("DELETE", "/account/keys/12345")] = (404, {"id": "not_found"})

    result = await teardown(ctx, resource_id="res-1", organization_id="org-123")

    assert result.errors == []


async def test_teardown_without_token_still_wipes(ctx, fake_do, ledger, seed_resource, monkeypatch):
    await seed_resource()
    monkeypatch.delenv("DIGITALOCEAN_ACCESS_TOKEN")

    result = await teardown(ctx, resource_id="res-1", organization_id="org-123")

    assert result.success is True
    assert len(result.errors) == 1
    assert result.errors[0].startswith("resolve provider token")
    assert fake_do.calls == []
    row = await ledger.find_unique("res-1")
    assert row.status == "destroyed"
    assert "private_key" not in row.metadata


async def test_teardown_allowed_after_expiry(ctx, fake_do, seed_resource):
    await seed_resource(expires_in=timedelta(minutes=-30))

    result = await teardown(ctx, resource_id="res-1", organization_id="org-123")

    assert result.success is True
    assert fake_do.count("DELETE") == 2


async def test_teardown_of_failed_rollback_row(ctx, fake_do, ledger):
    fake_do.droplet_status = "new"
    fake_do.overrides[("DELETE", "/droplets/67890")] = (500, {"id": "server_error"})
    with pytest.raises(ProvisioningTimeoutError):
        await provision(ctx, organization_id="org-123")
    (row,) = await ledger.find_many()
    assert row.status == "failed"

    del fake_do.overrides[("DELETE", "/droplets/67890")]
    result = await teardown(ctx, resource_id=row.id, organization_id="org-123")

    assert result.errors == []
    assert fake_do.count("DELETE", "/droplets/67890") == 2
    assert (await ledger.find_unique(row.id)).status == "destroyed"


async def test_teardown_lost_race_reports_success(ctx, fake_do, ledger, seed_resource):
    await seed_resource(name="racy")
    original_update = ledger.update

    async def racing_update(resource_id, expected_status=None, **changes):
        # Another session destroys the row between our read and our write
        await original_update(resource_id, status="destroyed", metadata={})
        return await original_update(resource_id, expected_status=expected_status, **changes)

    ledger.update = racing_update

    result = await teardown(ctx, resource_id="res-1", organization_id="org-123")

    assert result.success is True
    assert result.name == "racy"
