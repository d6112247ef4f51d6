"""Resource ledger: persisted record of every provisioned droplet.

The ledger is the single source of truth for ownership and lifecycle state.
Status writes can be guarded with ``expected_status`` so a transition only
happens if the row is still in the state the caller read.
"""

import asyncio
import contextlib
import copy
import fcntl
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import fields
from pathlib import Path

from remote_compute.errors import InvalidStateError, NotFoundError
from remote_compute.provisioning.types import STATUS_DESTROYED, STATUSES, ProvisionedResource

logger = logging.getLogger(__name__)

_UPDATABLE = {f.name for f in fields(ProvisionedResource)} - {"id", "organization_id", "created_at"}


class Ledger(ABC):
    """Row store for ProvisionedResource entries, keyed by ``id``."""

    def __init__(self):
        self._lock = asyncio.Lock()

    @abstractmethod
    def _load(self) -> dict[str, dict]: ...

    @abstractmethod
    def _save(self, rows: dict[str, dict]) -> None: ...

    def _exclusive(self):
        """Lock held around each read-modify-write; only the asyncio lock by default."""
        return contextlib.nullcontext()

    async def find_unique(self, resource_id) -> ProvisionedResource | None:
        row = self._load().get(resource_id)
        return ProvisionedResource.from_dict(row) if row else None

    async def create(self, resource: ProvisionedResource) -> ProvisionedResource:
        async with self._lock:
            with self._exclusive():
                rows = self._load()
                if resource.id in rows:
                    raise InvalidStateError(f"Resource {resource.id} already exists")
                rows[resource.id] = resource.to_dict()
                self._save(rows)
        logger.debug(f"Ledger: created {resource.id} ({resource.status})")
        return copy.deepcopy(resource)

    async def update(self, resource_id, expected_status=None, **changes) -> ProvisionedResource:
        """Apply *changes* to a row.

        Args:
            expected_status: a status or tuple of statuses the row must be in
                for the write to happen (compare-and-swap).

        Raises:
            NotFoundError: no such row.
            InvalidStateError: the row is not in *expected_status*, or the
                write would move a destroyed row to another status.
        """
        unknown = set(changes) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update field(s): {', '.join(sorted(unknown))}")
        new_status = changes.get("status")
        if new_status is not None and new_status not in STATUSES:
            raise ValueError(f"Unknown status '{new_status}'")

        async with self._lock:
            with self._exclusive():
                rows = self._load()
                row = rows.get(resource_id)
                if row is None:
                    raise NotFoundError(f"Resource {resource_id} not found")
                current = ProvisionedResource.from_dict(row)

                if expected_status is not None:
                    allowed = (expected_status,) if isinstance(expected_status, str) else tuple(expected_status)
                    if current.status not in allowed:
                        raise InvalidStateError(f"Resource {resource_id} is {current.status}, expected {' or '.join(allowed)}")
                if current.status == STATUS_DESTROYED and new_status not in (None, STATUS_DESTROYED):
                    raise InvalidStateError(f"Resource {resource_id} is destroyed and cannot become {new_status}")

                for key, value in changes.items():
                    setattr(current, key, copy.deepcopy(value))
                rows[resource_id] = current.to_dict()
                self._save(rows)
        return current

    async def count(self, organization_id, statuses=None, created_since=None) -> int:
        return len(await self.find_many(organization_id, statuses=statuses, created_since=created_since))

    async def find_many(self, organization_id=None, statuses=None, created_since=None) -> list[ProvisionedResource]:
        result = []
        for row in self._load().values():
            resource = ProvisionedResource.from_dict(row)
            if organization_id is not None and resource.organization_id != organization_id:
                continue
            if statuses is not None and resource.status not in statuses:
                continue
            if created_since is not None and (resource.created_at is None or resource.created_at < created_since):
                continue
            result.append(resource)
        result.sort(key=lambda r: r.created_at.isoformat() if r.created_at else "")
        return result


class InMemoryLedger(Ledger):
    """Process-local ledger, used in tests and dry runs."""

    def __init__(self):
        super().__init__()
        self._rows: dict[str, dict] = {}

    def _load(self):
        return copy.deepcopy(self._rows)

    def _save(self, rows):
        self._rows = copy.deepcopy(rows)


class JsonFileLedger(Ledger):
    """Ledger persisted as a JSON object ``{id: row}`` in a single file.

    Writes go to a temp file in the same directory and are renamed into place.
    The file is created with 0600 permissions since rows hold encrypted keys.
    Read-modify-write cycles hold an ``flock`` on ``<path>.lock`` so separate
    processes sharing the file still see compare-and-swap semantics.
    """

    def __init__(self, path):
        super().__init__()
        self.path = Path(os.path.expanduser(str(path)))
        self.lock_path = self.path.with_name(self.path.name + ".lock")

    @contextlib.contextmanager
    def _exclusive(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.lock_path, os.O_RDWR | os.O_CREAT, 0o600)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
            yield
        finally:
            os.close(fd)

    def _load(self):
        if not self.path.exists():
            return {}
        text = self.path.read_text()
        return json.loads(text) if text.strip() else {}

    def _save(self, rows):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(rows, f, indent=2, sort_keys=True)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
