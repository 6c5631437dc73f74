"""
Reference EC-ElGamal primitive for sealers, over secp256k1.

Implements the primitive interface the orchestrator drives:

  - ``setup_from_entropy`` – group order, parameters and a key pair derived
    deterministically from a secret's entropy
  - ``keygen``             – public key share with a Schnorr proof of
    knowledge of the secret key
  - ``decrypt``            – partial decryptions of a ciphertext batch with a
    batch Chaum-Pedersen proof

The blinding value ``r`` used by both proofs is supplied by the caller and
must be fresh for every call.  Points travel as hex-encoded compressed SEC1
strings, scalars as hex strings.

Curve arithmetic uses the ``ecdsa`` package.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Protocol, Union

from ecdsa import SECP256k1, VerifyingKey
from ecdsa.ellipticcurve import INFINITY

from sealer_core.errors import PrimitiveOperationFailed
from sealer_core.shares import Ciphertext, to_batch

log = logging.getLogger("sealer.elgamal")

_SEED_KEY = b"sealer elgamal seed"
_KEYGEN_DOMAIN = b"sealer/keygen/v1"
_DECRYPT_DOMAIN = b"sealer/decrypt/v1"

ORDER = int(SECP256k1.order)


@dataclass(frozen=True)
class ElGamalParams:
    """Public group parameters shared by every sealer."""
    curve: str
    generator: str   # compressed generator point, hex

    def to_dict(self) -> dict:
        return {"curve": self.curve, "generator": self.generator}


class ElGamalPrimitive(Protocol):
    """Capability interface of the ElGamal primitive library."""

    async def initialize(self) -> None: ...

    async def setup_from_entropy(self, entropy: bytes) -> tuple[str, Any, int, Any]: ...

    async def keygen(self, r: int, sealer: str, params: Any, sk: int, pk: Any) -> dict: ...

    async def decrypt(
        self, encryptions: Iterable[Any], sealer: str, r: int, params: Any, sk: int, pk: Any,
    ) -> dict: ...


# ── Point / scalar encoding ─────────────────────────────────────────


def encode_point(point) -> str:
    """Compressed SEC1 encoding of a secp256k1 point, hex."""
    if point == INFINITY:
        raise PrimitiveOperationFailed("Cannot encode the point at infinity")
    vk = VerifyingKey.from_public_point(point, curve=SECP256k1, validate_point=False)
    return vk.to_string("compressed").hex()


def decode_point(data: str):
    """Inverse of :func:`encode_point`."""
    try:
        vk = VerifyingKey.from_string(bytes.fromhex(data), curve=SECP256k1)
    except (ValueError, TypeError, AssertionError) as exc:
        raise PrimitiveOperationFailed(f"Invalid curve point: {data!r}") from exc
    return vk.pubkey.point


def _scalar_hex(value: int) -> str:
    return format(value, "064x")


def _challenge(domain: bytes, *parts: Union[str, bytes]) -> int:
    """Fiat-Shamir challenge: length-prefixed SHA-256 over *parts*, mod n."""
    h = hashlib.sha256(domain)
    for part in parts:
        data = part.encode("utf-8") if isinstance(part, str) else part
        h.update(len(data).to_bytes(4, "big"))
        h.update(data)
    return int.from_bytes(h.digest(), "big") % ORDER


def derive_secret_key(entropy: bytes) -> int:
    """Deterministic non-zero secret key from entropy (HMAC-SHA512, mod n)."""
    if not entropy:
        raise PrimitiveOperationFailed("Entropy must not be empty")
    digest = hmac.new(_SEED_KEY, bytes(entropy), hashlib.sha512).digest()
    return int.from_bytes(digest, "big") % (ORDER - 1) + 1


def encrypt(message: int, pk: str, k: int) -> Ciphertext:
    """
    Exponential ElGamal encryption of a small integer under *pk*.

    ``a = k*G``, ``b = k*pk + m*G``.  *k* must be fresh and secret.
    """
    if not 0 < k < ORDER:
        raise PrimitiveOperationFailed("Encryption randomness out of range")
    g = SECP256k1.generator
    a = g * k
    b = decode_point(pk) * k
    if message % ORDER:
        b = b + g * (message % ORDER)
    return Ciphertext(a=encode_point(a), b=encode_point(b))


# ── Backend ─────────────────────────────────────────────────────────


class ECElGamalBackend:
    """ElGamal primitive over secp256k1 backed by the ``ecdsa`` package."""

    curve_name = "secp256k1"

    def __init__(self):
        self._params: ElGamalParams | None = None

    @property
    def initialized(self) -> bool:
        return self._params is not None

    async def initialize(self) -> None:
        """Build the public parameters once; later calls are no-ops."""
        if self._params is None:
            self._params = ElGamalParams(
                curve=self.curve_name,
                generator=encode_point(SECP256k1.generator),
            )
            log.debug("EC-ElGamal backend initialised")

    async def setup_from_entropy(self, entropy: bytes) -> tuple[str, ElGamalParams, int, str]:
        """Return ``(q, params, sk, pk)`` with ``q`` as a hex string."""
        params = self._require_params()
        sk = derive_secret_key(entropy)
        pk = await asyncio.to_thread(lambda: encode_point(SECP256k1.generator * sk))
        return format(ORDER, "x"), params, sk, pk

    async def keygen(self, r: int, sealer: str, params: ElGamalParams, sk: int, pk: str) -> dict:
        self._check(params, r, sk)
        return await asyncio.to_thread(self._keygen, r, sealer, sk, pk)

    async def decrypt(
        self,
        encryptions: Iterable[Union[Ciphertext, dict]],
        sealer: str,
        r: int,
        params: ElGamalParams,
        sk: int,
        pk: str,
    ) -> dict:
        self._check(params, r, sk)
        try:
            batch = to_batch(encryptions)
        except ValueError as exc:
            raise PrimitiveOperationFailed(str(exc)) from exc
        if not batch:
            raise PrimitiveOperationFailed("Encryption batch is empty")
        return await asyncio.to_thread(self._decrypt, batch, sealer, r, sk, pk)

    # ---- internals ----

    def _require_params(self) -> ElGamalParams:
        if self._params is None:
            raise PrimitiveOperationFailed("Backend not initialised")
        return self._params

    def _check(self, params: ElGamalParams, r: int, sk: int) -> None:
        if params != self._require_params():
            raise PrimitiveOperationFailed("Parameters do not belong to this backend")
        # r is the proof nonce; r == 0 would publish c*sk and so sk itself.
        # The sampler yields 0 with probability 1/q, surfaced as a failed run.
        if not 0 < r < ORDER:
            raise PrimitiveOperationFailed("Blinding value out of range")
        if not 0 < sk < ORDER:
            raise PrimitiveOperationFailed("Secret key out of range")

    @staticmethod
    def _keygen(r: int, sealer: str, sk: int, pk: str) -> dict:
        commitment = encode_point(SECP256k1.generator * r)
        c = _challenge(_KEYGEN_DOMAIN, sealer, pk, commitment)
        s = (r + c * sk) % ORDER
        return {
            "pk": pk,
            "proof": {"challenge": _scalar_hex(c), "response": _scalar_hex(s)},
        }

    @staticmethod
    def _decrypt(batch: list[Ciphertext], sealer: str, r: int, sk: int, pk: str) -> dict:
        points = [decode_point(ct.a) for ct in batch]
        shares = [encode_point(a * sk) for a in points]
        u = encode_point(SECP256k1.generator * r)
        vs = [encode_point(a * r) for a in points]
        c = _challenge(
            _DECRYPT_DOMAIN, sealer, pk, *[ct.a for ct in batch], *shares, u, *vs,
        )
        s = (r + c * sk) % ORDER
        return {
            "decrypted_shares": shares,
            "proof": {"challenge": _scalar_hex(c), "response": _scalar_hex(s)},
        }
