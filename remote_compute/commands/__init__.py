"""Shared plumbing for CLI handlers."""

import asyncio
import json
import logging
import sys

from remote_compute.compute import build_context
from remote_compute.config import load_config
from remote_compute.credentials import AesGcmEncryptor
from remote_compute.errors import RemoteComputeError
from remote_compute.redact import redact_secrets

logger = logging.getLogger(__name__)


def add_common_args(parser):
    """Arguments every compute subcommand accepts."""
    parser.add_argument("--org", required=True, help="Organization ID that owns the resource")
    parser.add_argument("--config", default=None, help="Optional YAML config file")
    parser.add_argument("--ledger", default=None, help="Ledger file path (default: from config)")


def make_context(args):
    """Build a ComputeContext from CLI args. Exits on configuration errors."""
    try:
        config = load_config(args.config)
        encryptor = AesGcmEncryptor.from_env()
    except (OSError, ValueError) as e:
        logger.error(f"Error: {e}")
        sys.exit(1)
    if args.ledger:
        config.ledger_path = args.ledger
    return build_context(config, encryptor)


def run_command(coro_fn, args):
    """Run an async handler, print its redacted JSON result, map typed errors to exit 1."""
    try:
        result = asyncio.run(coro_fn(args))
    except RemoteComputeError as e:
        logger.error(f"{type(e).__name__}: {e}")
        sys.exit(1)
    if result is not None:
        print(redact_secrets(json.dumps(result, indent=2)))
