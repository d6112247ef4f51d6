"""Typed failures raised by the remote compute operations."""


class RemoteComputeError(Exception):
    """Base class for every failure surfaced to callers."""


class AuthResolutionError(RemoteComputeError):
    """No provider token could be resolved for the organization."""


class ProviderAPIError(RemoteComputeError):
    """The cloud provider answered with a non-2xx status (or not at all).

    ``status`` is 0 when the request never produced an HTTP response.
    """

    def __init__(self, message, status=0, body=None):
        super().__init__(message)
        self.status = status
        self.body = body


class ProvisioningTimeoutError(RemoteComputeError):
    """The droplet never became active with an IP, or never answered SSH."""


class NotFoundError(RemoteComputeError):
    """No ledger entry exists for the requested resource id."""


class AccessDeniedError(RemoteComputeError):
    """The resource belongs to a different organization."""


class InvalidStateError(RemoteComputeError):
    """The resource is not in a state that allows the operation."""


class ExpiredError(RemoteComputeError):
    """The resource TTL has passed."""


class InvalidArgumentError(RemoteComputeError):
    """A caller-supplied argument is missing or out of range."""


class QuotaExceededError(RemoteComputeError):
    """The organization hit its active-resource or hourly provisioning limit."""


class TransferError(RemoteComputeError):
    """A push or pull over SCP did not complete."""


class TransportError(RemoteComputeError):
    """The local ssh/scp client could not be started or its temp files written."""
