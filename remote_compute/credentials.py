"""Credential envelope encryption and provider token resolution."""

import base64
import binascii
import json
import logging
import os
import secrets
from typing import Protocol

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from remote_compute.errors import AuthResolutionError

logger = logging.getLogger(__name__)

ENCRYPTION_KEY_ENV = "CREDENTIAL_ENCRYPTION_KEY"
TOKEN_ENV = "DIGITALOCEAN_ACCESS_TOKEN"
ENVELOPE_VERSION = "v1"

_NONCE_BYTES = 12
_TAG_BYTES = 16


class Encryptor(Protocol):
    """Seals secrets into opaque envelopes and opens them again."""

    def seal(self, plaintext: str) -> dict: ...

    def open(self, envelope: dict) -> str: ...


class AesGcmEncryptor:
    """AES-256-GCM envelope encryption.

    Envelope layout::

        {"__enc": "v1", "iv": <b64>, "tag": <b64>, "data": <b64>}
    """

    def __init__(self, key: bytes):
        if len(key) != 32:
            raise ValueError("Encryption key must be 32 bytes (AES-256)")
        self._aead = AESGCM(key)

    @classmethod
    def from_env(cls, env_var=ENCRYPTION_KEY_ENV):
        """Build from a 64-char hex key in *env_var*."""
        raw = os.environ.get(env_var)
        if not raw:
            raise ValueError(f"{env_var} env var required for credential encryption")
        try:
            key = bytes.fromhex(raw.strip())
        except ValueError as e:
            raise ValueError(f"{env_var} must be 64 hex characters") from e
        return cls(key)

    def seal(self, plaintext: str) -> dict:
        nonce = secrets.token_bytes(_NONCE_BYTES)
        sealed = self._aead.encrypt(nonce, plaintext.encode(), None)
        ciphertext, tag = sealed[:-_TAG_BYTES], sealed[-_TAG_BYTES:]
        return {
            "__enc": ENVELOPE_VERSION,
            "iv": base64.b64encode(nonce).decode(),
            "tag": base64.b64encode(tag).decode(),
            "data": base64.b64encode(ciphertext).decode(),
        }

    def open(self, envelope: dict) -> str:
        if not isinstance(envelope, dict) or envelope.get("__enc") != ENVELOPE_VERSION:
            raise ValueError("Unsupported credential envelope")
        try:
            nonce = base64.b64decode(envelope["iv"])
            tag = base64.b64decode(envelope["tag"])
            ciphertext = base64.b64decode(envelope["data"])
        except (KeyError, binascii.Error) as e:
            raise ValueError("Malformed credential envelope") from e
        try:
            return self._aead.decrypt(nonce, ciphertext + tag, None).decode()
        except InvalidTag as e:
            raise ValueError("Credential envelope failed authentication") from e


class InMemoryEncryptor:
    """Keeps plaintexts in process memory; envelopes only carry a handle.

    Meant for tests and dry runs where no encryption key is configured.
    """

    def __init__(self):
        self._vault = {}

    def seal(self, plaintext: str) -> dict:
        ref = secrets.token_hex(8)
        self._vault[ref] = plaintext
        return {"__enc": "mem", "ref": ref}

    def open(self, envelope: dict) -> str:
        try:
            return self._vault[envelope["ref"]]
        except (KeyError, TypeError) as e:
            raise ValueError("Unknown credential envelope") from e


def seal_json(encryptor, payload: dict) -> dict:
    return encryptor.seal(json.dumps(payload))


def open_json(encryptor, envelope: dict) -> dict:
    return json.loads(encryptor.open(envelope))


class TokenResolver:
    """Resolve the DigitalOcean API token for an organization.

    Looks for an organization-scoped credential first (an envelope holding
    ``{"DIGITALOCEAN_ACCESS_TOKEN": ...}``), then falls back to the
    process-wide ``DIGITALOCEAN_ACCESS_TOKEN`` environment variable.
    """

    def __init__(self, encryptor, org_credentials=None, env_var=TOKEN_ENV):
        self.encryptor = encryptor
        self.org_credentials = org_credentials or {}
        self.env_var = env_var

    async def resolve(self, organization_id: str) -> str:
        envelope = self.org_credentials.get(organization_id)
        if envelope is not None:
            try:
                credentials = open_json(self.encryptor, envelope)
            except ValueError as e:
                raise AuthResolutionError(
                    f"Failed to decrypt DigitalOcean credentials for organization {organization_id}"
                ) from e
            token = credentials.get(TOKEN_ENV)
            if not token:
                raise AuthResolutionError(f"DigitalOcean credentials for organization {organization_id} missing {TOKEN_ENV}")
            return token

        token = os.environ.get(self.env_var)
        if token:
            logger.debug(f"Using process-wide {self.env_var} for organization {organization_id}")
            return token

        raise AuthResolutionError(
            f"No DigitalOcean token found for organization {organization_id}. "
            f"Configure an organization credential or set {self.env_var}."
        )
