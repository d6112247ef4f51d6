"""DigitalOcean provider: SSH keys and droplets via the REST API (v2)."""

import asyncio
import json
import logging

import httpx

from remote_compute.config import DEFAULT_API_URL
from remote_compute.errors import ProviderAPIError
from remote_compute.provisioning.types import ApiResponse

logger = logging.getLogger(__name__)


class DigitalOceanGateway:
    """Authenticated JSON client for the DigitalOcean control plane.

    ``call`` never raises for non-2xx responses; callers inspect
    ``ApiResponse.ok`` / ``ApiResponse.status``. Only transport-level
    failures (DNS, connection refused, timeouts) raise ``ProviderAPIError``.

    Args:
        transport: optional ``httpx.AsyncBaseTransport``, used by tests to
            plug in ``httpx.MockTransport``.
    """

    def __init__(self, api_url=DEFAULT_API_URL, timeout=60.0, transport=None):
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def call(self, token, method, path, body=None) -> ApiResponse:
        url = f"{self.api_url}{path}"
        headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
                resp = await client.request(method, url, json=body, headers=headers)
        except httpx.HTTPError as e:
            raise ProviderAPIError(f"{method} {path} failed: {e}") from e

        if resp.status_code == 204 or not resp.content:
            data = {}
        else:
            try:
                data = resp.json()
            except ValueError:
                data = {"raw": resp.text}

        logger.debug(f"{method} {path} -> {resp.status_code}")
        return ApiResponse(ok=resp.is_success, status=resp.status_code, data=data)


def _raise_for(resp, action):
    if not resp.ok:
        raise ProviderAPIError(
            f"Failed to {action} ({resp.status}): {json.dumps(resp.data)}",
            status=resp.status,
            body=resp.data,
        )


# ── SSH keys ──────────────────────────────────────────────────────


async def register_ssh_key(gateway, token, name, public_key):
    """Register a public key with the account.

    POST /account/keys

    Returns:
        The provider-assigned key id.
    """
    resp = await gateway.call(token, "POST", "/account/keys", {"name": name, "public_key": public_key})
    _raise_for(resp, "register SSH key with DigitalOcean")
    key_id = resp.data["ssh_key"]["id"]
    logger.info(f"SSH key registered (id={key_id}).")
    return key_id


async def delete_ssh_key(gateway, token, key_id) -> ApiResponse:
    """DELETE /account/keys/{id}. Returns the raw response; never raises on non-2xx."""
    return await gateway.call(token, "DELETE", f"/account/keys/{key_id}")


# ── Droplets ──────────────────────────────────────────────────────


async def create_droplet(gateway, token, *, name, region, size, image, ssh_key_id, user_data, tags):
    """Create a droplet.

    POST /droplets

    Returns:
        The droplet id.
    """
    body = {
        "name": name,
        "region": region,
        "size": size,
        "image": image,
        "ssh_keys": [ssh_key_id],
        "user_data": user_data,
        "tags": list(tags),
    }
    resp = await gateway.call(token, "POST", "/droplets", body)
    _raise_for(resp, "create droplet")
    droplet_id = resp.data["droplet"]["id"]
    logger.info(f"Droplet created (id={droplet_id}, size={size}, region={region}).")
    return droplet_id


async def delete_droplet(gateway, token, droplet_id) -> ApiResponse:
    """DELETE /droplets/{id}. Returns the raw response; never raises on non-2xx."""
    return await gateway.call(token, "DELETE", f"/droplets/{droplet_id}")


async def get_droplet(gateway, token, droplet_id):
    """GET /droplets/{id}. Returns the droplet dict, or None when unavailable."""
    resp = await gateway.call(token, "GET", f"/droplets/{droplet_id}")
    if not resp.ok:
        logger.warning(f"Droplet {droplet_id} status lookup failed ({resp.status}).")
        return None
    return resp.data.get("droplet")


def public_ipv4(droplet):
    """Return the droplet's public IPv4 address, or None if not yet assigned."""
    networks = (droplet or {}).get("networks") or {}
    for net in networks.get("v4", []):
        if net.get("type") == "public" and net.get("ip_address"):
            return net["ip_address"]
    return None


async def wait_for_active(
    gateway,
    token,
    droplet_id,
    budget=90.0,
    initial_delay=3.0,
    backoff=1.5,
    max_delay=10.0,
    sleep=asyncio.sleep,
):
    """Poll a droplet until it is active with a public IPv4, or the budget runs out.

    Sleeps before each poll, growing the delay by *backoff* up to *max_delay*.
    Elapsed time is the sum of the delays slept.

    Returns:
        The public IP on success, None on timeout.
    """
    elapsed = 0.0
    delay = initial_delay
    status = None
    while elapsed < budget:
        await sleep(delay)
        elapsed += delay

        droplet = await get_droplet(gateway, token, droplet_id)
        if droplet is not None:
            status = droplet.get("status")
            if status == "active":
                ip = public_ipv4(droplet)
                if ip:
                    return ip

        delay = min(delay * backoff, max_delay)

    logger.error(f"Timeout after {budget:g}s waiting for droplet {droplet_id} to become active (last: '{status}')")
    return None
