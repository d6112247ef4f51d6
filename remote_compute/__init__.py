"""Ephemeral DigitalOcean compute: provision, execute, transfer, teardown."""

from remote_compute.compute import ComputeContext, build_context, execute, provision, teardown, transfer

__all__ = [
    "ComputeContext",
    "build_context",
    "provision",
    "execute",
    "transfer",
    "teardown",
]
