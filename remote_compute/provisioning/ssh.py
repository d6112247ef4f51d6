"""SSH readiness polling for freshly created droplets."""

import asyncio
import logging

from remote_compute.errors import TransportError

logger = logging.getLogger(__name__)


async def wait_for_ssh(transport, host, private_key, attempts=5, interval=5.0, timeout=10, sleep=asyncio.sleep):
    """Try ``echo ok`` over SSH until it succeeds or *attempts* run out.

    Cloud-init may still be running when the droplet reports active, so
    refused connections are expected on the first tries.

    Returns:
        True if SSH answered, False when every attempt failed.
    """
    for attempt in range(1, attempts + 1):
        try:
            result = await transport.run(host, private_key, "echo ok", timeout_ms=timeout * 1000, connect_timeout=5)
            if result.exit_code == 0 and "ok" in result.stdout:
                logger.info(f"SSH reachable on {host} (attempt {attempt}/{attempts}).")
                return True
            logger.debug(f"SSH attempt {attempt}/{attempts} on {host}: exit {result.exit_code}")
        except (TransportError, OSError) as e:
            logger.debug(f"SSH attempt {attempt}/{attempts} on {host} failed: {e}")

        if attempt < attempts:
            await sleep(interval)

    logger.error(f"SSH connectivity to {host} failed after {attempts} attempts")
    return False
