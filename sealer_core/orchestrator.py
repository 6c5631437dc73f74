"""
Threshold ElGamal orchestration for a single sealer.

Every run follows the same strictly sequential setup:

1. **Active secret**: await the currently selected secret.
2. **Entropy**: retrieve the secret's entropy from secret management.
3. **Primitive setup**: initialise the primitive library and derive
   ``(q, params, sk, pk)`` from the entropy.
4. **Blinding value**: sample a fresh ``r`` below ``q``.
5. **Operation**: keygen or partial decryption, tagged with the secret's
   label as sealer identity.

Nothing is cached between runs: key material and ``r`` live in the run's
locals and the result is returned to the caller.  Entropy is copied into a
buffer that is overwritten once setup ends.  The immutable ``bytes`` handed
out by secret management cannot be wiped, only released: the run drops its
reference before calling into the primitive.  A run whose secret stops being
the active one is abandoned with :class:`RunSuperseded` at the next
suspension point.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Iterable, Optional

from sealer_core.elgamal import ElGamalPrimitive
from sealer_core.errors import PrimitiveOperationFailed, RunSuperseded
from sealer_core.sampler import SecureScalarSampler, byte_size_for, parse_group_order
from sealer_core.secret_store import ActiveSecret, SecretSource
from sealer_core.shares import Ciphertext, PartialDecryptionShare, PublicKeyShare

log = logging.getLogger("sealer.orchestrator")

# Sealer identity historically passed to the primitive's decrypt call.
PLACEHOLDER_SEALER = "bob"


@dataclass
class _RunMaterial:
    """Per-run key material.  Never shared between runs."""
    secret: ActiveSecret
    q: int
    byte_size: int
    params: Any
    sk: Any
    pk: Any


class ThresholdCryptoOrchestrator:
    """Coordinates secret management, sampling and the ElGamal primitive."""

    def __init__(
        self,
        secrets: SecretSource,
        primitive: ElGamalPrimitive,
        sampler: Optional[SecureScalarSampler] = None,
        placeholder_sealer: str = PLACEHOLDER_SEALER,
        use_placeholder_sealer: bool = False,
        cancel_superseded: bool = True,
    ):
        self.secrets = secrets
        self.primitive = primitive
        self.sampler = sampler or SecureScalarSampler()
        self.placeholder_sealer = placeholder_sealer
        self.use_placeholder_sealer = use_placeholder_sealer
        self.cancel_superseded = cancel_superseded

    # ---- public operations ----

    async def run_keygen(self, secret: Optional[ActiveSecret] = None) -> PublicKeyShare:
        """Produce this sealer's public key share for the active secret."""
        material = await self._setup(secret)
        r = self._sample(material)
        label = material.secret.label
        raw = await self.primitive.keygen(r, label, material.params, material.sk, material.pk)
        self._ensure_current(material.secret)
        log.info(f"Key share generated for sealer {label!r}", extra={"sealer": label})
        return PublicKeyShare.from_raw(self._as_mapping(raw), sealer=label)

    async def run_partial_decryption(
        self,
        encryptions: Iterable[Ciphertext | dict],
        secret: Optional[ActiveSecret] = None,
    ) -> PartialDecryptionShare:
        """Produce this sealer's partial decryptions for *encryptions*."""
        batch = list(encryptions)
        material = await self._setup(secret)
        r = self._sample(material)
        label = material.secret.label
        internal = self.placeholder_sealer if self.use_placeholder_sealer else label
        raw = await self.primitive.decrypt(
            batch, internal, r, material.params, material.sk, material.pk,
        )
        self._ensure_current(material.secret)
        log.info(
            f"Partial decryption of {len(batch)} ciphertext(s) for sealer {label!r}",
            extra={"sealer": label},
        )
        return PartialDecryptionShare.from_raw(self._as_mapping(raw), sealer=label)

    async def key_shares(self) -> AsyncIterator[PublicKeyShare]:
        """
        Run a fresh keygen for every active-secret notification.

        Runs overtaken by a newer selection are skipped; every other error
        ends the stream.
        """
        async for secret in self.secrets.active_secrets():
            try:
                yield await self.run_keygen(secret)
            except RunSuperseded as exc:
                log.info(str(exc))

    # ---- setup ----

    async def _setup(self, secret: Optional[ActiveSecret]) -> _RunMaterial:
        if secret is None:
            secret = await self.secrets.get_active_secret()
        log.debug(f"Starting run for sealer {secret.label!r}")

        raw = await self.secrets.retrieve_entropy(secret)
        entropy = bytearray(raw)
        del raw
        try:
            self._ensure_current(secret)
            await self.primitive.initialize()
            self._ensure_current(secret)
            q_repr, params, sk, pk = await self.primitive.setup_from_entropy(entropy)
            self._ensure_current(secret)
        finally:
            entropy[:] = bytes(len(entropy))

        try:
            q = parse_group_order(q_repr)
        except (TypeError, ValueError) as exc:
            raise PrimitiveOperationFailed(f"Unparseable group order: {q_repr!r}") from exc
        if q <= 0:
            raise PrimitiveOperationFailed(f"Group order must be positive, got {q_repr!r}")

        return _RunMaterial(
            secret=secret,
            q=q,
            byte_size=byte_size_for(q_repr),
            params=params,
            sk=sk,
            pk=pk,
        )

    def _sample(self, material: _RunMaterial) -> int:
        return self.sampler.sample(material.q, byte_size=material.byte_size)

    def _ensure_current(self, secret: ActiveSecret) -> None:
        if self.cancel_superseded and not self.secrets.is_active(secret):
            raise RunSuperseded(secret.label)

    @staticmethod
    def _as_mapping(raw: Any) -> dict:
        if isinstance(raw, dict):
            return raw
        to_dict = getattr(raw, "to_dict", None)
        if callable(to_dict):
            return to_dict()
        raise PrimitiveOperationFailed(f"Primitive returned {type(raw).__name__}, expected a mapping")
