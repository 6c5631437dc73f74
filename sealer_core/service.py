"""
Sealer service: runs an orchestration and hands that run's result to the
packager.

The share is passed directly from the run to packaging, so two concurrent
calls can never package each other's results.
"""

from __future__ import annotations

import logging
from typing import Iterable

from sealer_core.orchestrator import ThresholdCryptoOrchestrator
from sealer_core.packaging import Interaction, ResultPackager
from sealer_core.shares import Ciphertext, PartialDecryptionShare, PublicKeyShare

log = logging.getLogger("sealer.service")


class SealerService:

    def __init__(self, orchestrator: ThresholdCryptoOrchestrator, packager: ResultPackager):
        self.orchestrator = orchestrator
        self.packager = packager

    async def publish_key_share(self) -> tuple[PublicKeyShare, Interaction]:
        """Generate a key share for the active secret and start its interaction."""
        share = await self.orchestrator.run_keygen()
        interaction = await self.packager.emit_keygen(share)
        return share, interaction

    async def publish_partial_decryption(
        self, encryptions: Iterable[Ciphertext | dict],
    ) -> tuple[PartialDecryptionShare, Interaction]:
        """Partially decrypt *encryptions* and start the interaction carrying the result."""
        share = await self.orchestrator.run_partial_decryption(encryptions)
        interaction = await self.packager.emit_decryption(share)
        return share, interaction
