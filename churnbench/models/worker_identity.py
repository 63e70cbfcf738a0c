from __future__ import annotations

import base64
import binascii
import hashlib

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

ED25519_FLAG = 0x00
TRANSACTION_INTENT = bytes([0, 0, 0])


def _blake2b_256(data: bytes) -> bytes:
    return hashlib.blake2b(data, digest_size=32).digest()


class WorkerIdentity:
    """
    An Ed25519 signing identity and the ledger address derived from it.

    The address is ``0x`` followed by the hex BLAKE2b-256 digest of the
    scheme flag and public key. The portable encoding is the base64 of the
    scheme flag and the 32-byte private seed.
    """

    __slots__ = ("_private_key", "_public_key_bytes", "address")

    def __init__(self, private_key: Ed25519PrivateKey) -> None:
        self._private_key = private_key
        self._public_key_bytes = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        self.address = (
            "0x"
            + _blake2b_256(
                bytes([ED25519_FLAG]) + self._public_key_bytes
            ).hex()
        )

    @classmethod
    def generate(cls) -> WorkerIdentity:
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_base64(cls, encoded: str) -> WorkerIdentity:
        try:
            raw = base64.b64decode(encoded, validate=True)

        except (binascii.Error, ValueError) as err:
            raise ValueError(f"Keypair is not valid base64: {err}") from err

        if len(raw) != 33 or raw[0] != ED25519_FLAG:
            raise ValueError("Keypair must be a flag byte followed by a 32-byte Ed25519 seed")

        return cls(Ed25519PrivateKey.from_private_bytes(raw[1:]))

    def to_base64(self) -> str:
        seed = self._private_key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )

        return base64.b64encode(bytes([ED25519_FLAG]) + seed).decode()

    @property
    def public_key(self) -> bytes:
        return self._public_key_bytes

    def sign_transaction(self, tx_bytes: bytes) -> str:
        digest = _blake2b_256(TRANSACTION_INTENT + tx_bytes)
        signature = self._private_key.sign(digest)

        return base64.b64encode(
            bytes([ED25519_FLAG]) + signature + self._public_key_bytes
        ).decode()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, WorkerIdentity):
            return NotImplemented

        return self.to_base64() == other.to_base64()

    def __hash__(self) -> int:
        return hash(self.address)

    def __repr__(self) -> str:
        return f"WorkerIdentity(address={self.address})"
