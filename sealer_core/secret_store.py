"""
Secret management for sealers.

A secret is the entropy a sealer's ElGamal key material is derived from.
The store keeps entropy encrypted at rest and only hands it out while the
secret is unlocked:

  - AES-256-GCM authenticated encryption (pycryptodome)
  - PBKDF2-HMAC-SHA256 key derivation from a passphrase
  - an "active secret" slot with change notifications for the orchestrator

``SecretSource`` is the narrow interface the orchestrator depends on; any
wallet backend that provides these three coroutines can replace the store.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import os
import uuid
from dataclasses import dataclass
from typing import AsyncIterator, Optional, Protocol

from sealer_core.errors import EntropyUnavailable

log = logging.getLogger("sealer.secrets")

_KDF_ITERATIONS = 600_000


@dataclass(frozen=True)
class ActiveSecret:
    """Handle on a stored secret.  ``label`` doubles as the sealer identity."""
    secret_id: str
    label: str


class SecretSource(Protocol):
    """What the orchestrator needs from secret management."""

    async def get_active_secret(self) -> ActiveSecret: ...

    def active_secrets(self) -> AsyncIterator[ActiveSecret]: ...

    async def retrieve_entropy(self, secret: ActiveSecret) -> bytes: ...

    def is_active(self, secret: ActiveSecret) -> bool: ...


@dataclass
class _StoredSecret:
    handle: ActiveSecret
    ciphertext: bytes
    nonce: bytes
    tag: bytes
    salt: bytes
    iterations: int
    key: Optional[bytes] = None  # set while unlocked


class SecretStore:
    """In-memory secret store with encrypted entropy and an active slot."""

    def __init__(self, kdf_iterations: int = _KDF_ITERATIONS):
        self.kdf_iterations = kdf_iterations
        self._secrets: dict[str, _StoredSecret] = {}
        self._active: Optional[ActiveSecret] = None
        self._version = 0
        self._changed = asyncio.Condition()

    # ---- secret lifecycle ----

    def add_secret(self, label: str, entropy: bytes, passphrase: str) -> ActiveSecret:
        """Encrypt *entropy* under *passphrase* and store it (unlocked)."""
        if not entropy:
            raise ValueError("Entropy must not be empty")
        salt = os.urandom(16)
        key = self._derive_key(passphrase, salt, self.kdf_iterations)
        ciphertext, nonce, tag = self._aes_gcm_encrypt(key, bytes(entropy))
        handle = ActiveSecret(secret_id=uuid.uuid4().hex, label=label)
        self._secrets[handle.secret_id] = _StoredSecret(
            handle=handle,
            ciphertext=ciphertext,
            nonce=nonce,
            tag=tag,
            salt=salt,
            iterations=self.kdf_iterations,
            key=key,
        )
        log.info(f"Stored secret {handle.secret_id[:8]} for sealer {label!r}")
        return handle

    def generate_secret(self, label: str, passphrase: str, strength: int = 256) -> ActiveSecret:
        """Create a secret from fresh random entropy (128/192/256 bits)."""
        if strength not in (128, 192, 256):
            raise ValueError("Strength must be 128/192/256")
        return self.add_secret(label, os.urandom(strength // 8), passphrase)

    def unlock(self, secret: ActiveSecret, passphrase: str) -> None:
        """Derive and verify the key for *secret*.  Raises EntropyUnavailable on a bad passphrase."""
        stored = self._lookup(secret)
        key = self._derive_key(passphrase, stored.salt, stored.iterations)
        try:
            self._aes_gcm_decrypt(key, stored.nonce, stored.ciphertext, stored.tag)
        except ValueError as exc:
            raise EntropyUnavailable(f"Wrong passphrase for secret {secret.label!r}") from exc
        stored.key = key

    def lock(self, secret: ActiveSecret) -> None:
        self._lookup(secret).key = None

    def remove_secret(self, secret: ActiveSecret) -> None:
        self._secrets.pop(secret.secret_id, None)

    @property
    def secrets(self) -> list[ActiveSecret]:
        return [s.handle for s in self._secrets.values()]

    # ---- active secret ----

    async def set_active(self, secret: ActiveSecret) -> None:
        """Select *secret* as the active one and notify waiting consumers."""
        self._lookup(secret)
        async with self._changed:
            self._active = secret
            self._version += 1
            self._changed.notify_all()
        log.debug(f"Active secret is now {secret.label!r}")

    def is_active(self, secret: ActiveSecret) -> bool:
        return self._active is not None and self._active.secret_id == secret.secret_id

    async def get_active_secret(self) -> ActiveSecret:
        """Return the current active secret, waiting until one is selected."""
        async with self._changed:
            await self._changed.wait_for(lambda: self._active is not None)
            return self._active  # type: ignore[return-value]

    async def active_secrets(self) -> AsyncIterator[ActiveSecret]:
        """
        Yield the active secret now and after every change.

        A slow consumer only sees the latest selection; intermediate values
        are skipped.
        """
        seen = -1
        while True:
            async with self._changed:
                await self._changed.wait_for(
                    lambda: self._active is not None and self._version != seen
                )
                seen = self._version
                secret = self._active
            yield secret  # type: ignore[misc]

    # ---- entropy ----

    async def retrieve_entropy(self, secret: ActiveSecret) -> bytes:
        """Decrypt and return the entropy for *secret*."""
        stored = self._secrets.get(secret.secret_id)
        if stored is None:
            raise EntropyUnavailable(f"Unknown secret {secret.label!r}")
        if stored.key is None:
            raise EntropyUnavailable(f"Secret {secret.label!r} is locked")
        try:
            return self._aes_gcm_decrypt(stored.key, stored.nonce, stored.ciphertext, stored.tag)
        except ValueError as exc:
            raise EntropyUnavailable(f"Entropy for {secret.label!r} failed authentication") from exc

    # ---- helpers ----

    def _lookup(self, secret: ActiveSecret) -> _StoredSecret:
        stored = self._secrets.get(secret.secret_id)
        if stored is None:
            raise EntropyUnavailable(f"Unknown secret {secret.label!r}")
        return stored

    @staticmethod
    def _derive_key(passphrase: str, salt: bytes, iterations: int) -> bytes:
        return hashlib.pbkdf2_hmac("sha256", passphrase.encode("utf-8"), salt, iterations)

    @staticmethod
    def _aes_gcm_encrypt(key: bytes, data: bytes) -> tuple[bytes, bytes, bytes]:
        """Encrypt *data* with AES-256-GCM. Returns (ciphertext, nonce, tag)."""
        from Crypto.Cipher import AES
        nonce = os.urandom(12)
        cipher = AES.new(key, AES.MODE_GCM, nonce=nonce)
        ciphertext, tag = cipher.encrypt_and_digest(data)
        return ciphertext, nonce, tag

    @staticmethod
    def _aes_gcm_decrypt(key: bytes, nonce: bytes, ciphertext: bytes, tag: bytes) -> bytes:
        """Decrypt and verify AES-256-GCM ciphertext. Raises ValueError on tamper."""
        from Crypto.Cipher import AES
        cipher = AES.new(key, AES.MODE_GCM, nonce=nonce)
        return cipher.decrypt_and_verify(ciphertext, tag)
