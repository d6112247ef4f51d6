#!/usr/bin/env python3
"""Soak-test the full droplet lifecycle against the real DigitalOcean API.

Each iteration provisions a small droplet, runs a command, round-trips a file,
then tears everything down. Repeats N times to surface intermittent failures
(slow activation, SSH refusing connections after cloud-init, leaked keys).

Usage:
    ./venv/bin/python scripts/soak_digitalocean.py [--iterations 5] [--size small] [--region nyc3]

Requires:
    DIGITALOCEAN_ACCESS_TOKEN environment variable.
"""

import argparse
import asyncio
import logging
import os
import sys
import time

from remote_compute.compute import build_context, execute, provision, teardown, transfer
from remote_compute.config import load_config
from remote_compute.credentials import InMemoryEncryptor
from remote_compute.errors import RemoteComputeError
from remote_compute.ledger import InMemoryLedger
from remote_compute.logging_setup import setup_cli_logging

ORG_ID = "soak-test"
SAMPLE_CONTENT = "remote-compute soak sample\n"
SAMPLE_PATH = "/workspace/soak-sample.txt"

log = logging.getLogger("soak")


async def run_iteration(ctx, i, args):
    """One provision -> exec -> push/pull -> teardown cycle. Returns (ok, detail)."""
    start = time.monotonic()
    try:
        result = await provision(ctx, organization_id=ORG_ID, region=args.region, size=args.size, ttl_minutes=15)
    except RemoteComputeError as e:
        return False, f"provision: {type(e).__name__}: {e}"
    log.info(f"[{i}] provisioned {result.droplet_id} at {result.ip} in {time.monotonic() - start:.0f}s")

    detail = None
    try:
        exec_result = await execute(ctx, resource_id=result.resource_id, command="uname -a && df -h /", organization_id=ORG_ID)
        if exec_result.exit_code != 0:
            detail = f"exec exit {exec_result.exit_code}: {exec_result.stderr.strip()}"
        else:
            await transfer(
                ctx,
                resource_id=result.resource_id,
                direction="push",
                content=SAMPLE_CONTENT,
                remote_path=SAMPLE_PATH,
                organization_id=ORG_ID,
            )
            pulled = await transfer(ctx, resource_id=result.resource_id, direction="pull", remote_path=SAMPLE_PATH, organization_id=ORG_ID)
            if pulled.content != SAMPLE_CONTENT:
                detail = f"pull returned {pulled.content!r}"
    except RemoteComputeError as e:
        detail = f"{type(e).__name__}: {e}"
    finally:
        down = await teardown(ctx, resource_id=result.resource_id, organization_id=ORG_ID)
        if down.errors:
            detail = (detail + "; " if detail else "") + f"teardown: {'; '.join(down.errors)}"

    return detail is None, detail or f"{time.monotonic() - start:.0f}s"


async def _main(args):
    ctx = build_context(load_config(args.config), InMemoryEncryptor(), ledger=InMemoryLedger())
    ctx.config.max_provisions_per_hour = max(ctx.config.max_provisions_per_hour, args.iterations)

    outcomes = []
    for i in range(1, args.iterations + 1):
        log.info(f"── Iteration {i}/{args.iterations} ──")
        ok, detail = await run_iteration(ctx, i, args)
        outcomes.append(ok)
        if ok:
            log.info(f"[{i}] PASS: {detail}")
        else:
            log.error(f"[{i}] FAIL: {detail}")

    passed = sum(outcomes)
    log.info(f"{passed}/{len(outcomes)} iterations passed")
    return passed == len(outcomes)


def main():
    parser = argparse.ArgumentParser(description="Soak-test droplet provision/exec/teardown")
    parser.add_argument("--iterations", type=int, default=5)
    parser.add_argument("--size", default="small")
    parser.add_argument("--region", default="nyc3")
    parser.add_argument("--config", default=None, help="Optional YAML config file")
    args = parser.parse_args()

    setup_cli_logging()
    if not os.environ.get("DIGITALOCEAN_ACCESS_TOKEN"):
        log.error("DIGITALOCEAN_ACCESS_TOKEN is not set")
        sys.exit(1)
    sys.exit(0 if asyncio.run(_main(args)) else 1)


if __name__ == "__main__":
    main()
