"""Compute operations: provision, execute, transfer, teardown."""

from remote_compute.compute.context import ComputeContext, build_context
from remote_compute.compute.execute import execute, transfer
from remote_compute.compute.provision import provision
from remote_compute.compute.teardown import teardown

__all__ = [
    "ComputeContext",
    "build_context",
    "provision",
    "execute",
    "transfer",
    "teardown",
]
