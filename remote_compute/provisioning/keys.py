"""Ephemeral SSH keypair generation."""

import secrets
from dataclasses import dataclass

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

KEY_LABEL_PREFIX = "remote-compute-ephemeral"


@dataclass(frozen=True)
class KeyPair:
    """One-shot SSH keypair. ``private_key`` is PEM text and must not be persisted as-is."""

    public_key: str
    private_key: str

    def __repr__(self):
        return f"KeyPair(public_key={self.public_key!r}, private_key=<redacted>)"


def generate_key_pair() -> KeyPair:
    """Generate a fresh Ed25519 keypair.

    Returns:
        KeyPair with the public key in authorized_keys format
        (``ssh-ed25519 AAAA... <label>``) and the private key as an
        OpenSSH PEM block.
    """
    private_key = ed25519.Ed25519PrivateKey.generate()
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.OpenSSH,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_line = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.OpenSSH,
        format=serialization.PublicFormat.OpenSSH,
    )
    label = f"{KEY_LABEL_PREFIX}-{secrets.token_hex(4)}"
    return KeyPair(public_key=f"{public_line.decode()} {label}", private_key=private_pem.decode())
