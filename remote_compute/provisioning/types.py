"""Shared data types for the provider gateway, ledger and operations."""

import base64
from dataclasses import dataclass, field
from datetime import datetime

STATUS_PROVISIONING = "provisioning"
STATUS_ACTIVE = "active"
STATUS_DESTROYED = "destroyed"
STATUS_FAILED = "failed"

STATUSES = (STATUS_PROVISIONING, STATUS_ACTIVE, STATUS_DESTROYED, STATUS_FAILED)

# Metadata keys holding secret material or live provider associations.
SECRET_METADATA_KEYS = ("private_key",)


@dataclass
class ApiResponse:
    """Provider response: success flag, HTTP status and decoded JSON body."""

    ok: bool
    status: int
    data: dict = field(default_factory=dict)


@dataclass
class ProvisionedResource:
    """Ledger entry for one provisioned droplet."""

    id: str
    organization_id: str
    provider: str
    resource_type: str
    external_id: str | None
    name: str
    status: str
    metadata: dict = field(default_factory=dict)
    created_at: datetime | None = None
    destroyed_at: datetime | None = None

    @property
    def expires_at(self) -> datetime | None:
        raw = self.metadata.get("expires_at")
        return datetime.fromisoformat(raw) if raw else None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "provider": self.provider,
            "resource_type": self.resource_type,
            "external_id": self.external_id,
            "name": self.name,
            "status": self.status,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "destroyed_at": self.destroyed_at.isoformat() if self.destroyed_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProvisionedResource":
        created_at = data.get("created_at")
        destroyed_at = data.get("destroyed_at")
        return cls(
            id=data["id"],
            organization_id=data["organization_id"],
            provider=data["provider"],
            resource_type=data["resource_type"],
            external_id=data.get("external_id"),
            name=data["name"],
            status=data["status"],
            metadata=dict(data.get("metadata") or {}),
            created_at=datetime.fromisoformat(created_at) if created_at else None,
            destroyed_at=datetime.fromisoformat(destroyed_at) if destroyed_at else None,
        )


@dataclass
class ProvisionResult:
    resource_id: str
    droplet_id: int
    ip: str
    region: str
    size: str
    expires_at: str

    def to_dict(self) -> dict:
        return {
            "resourceId": self.resource_id,
            "dropletId": self.droplet_id,
            "ip": self.ip,
            "region": self.region,
            "size": self.size,
            "expiresAt": self.expires_at,
        }


@dataclass
class ExecResult:
    exit_code: int
    stdout: str
    stderr: str
    duration_ms: int

    def to_dict(self) -> dict:
        return {
            "exitCode": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "durationMs": self.duration_ms,
        }


@dataclass
class TransferResult:
    """Outcome of a push or pull.

    Pulled ``content`` is a str when the file is valid UTF-8 and the raw
    bytes otherwise; ``to_dict`` base64-encodes the latter for JSON.
    """

    success: bool
    bytes_transferred: int
    content: str | bytes | None = None

    def to_dict(self) -> dict:
        result = {"success": self.success, "bytesTransferred": self.bytes_transferred}
        if isinstance(self.content, bytes):
            result["content"] = base64.b64encode(self.content).decode("ascii")
            result["contentEncoding"] = "base64"
        elif self.content is not None:
            result["content"] = self.content
        return result


@dataclass
class TeardownResult:
    success: bool
    name: str
    duration_minutes: int
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "name": self.name,
            "durationMinutes": self.duration_minutes,
            "errors": list(self.errors),
        }
