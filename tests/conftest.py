"""
Shared pytest fixtures for the sealer test suite.
"""

import asyncio

import pytest

from sealer_core.errors import PrimitiveOperationFailed
from sealer_core.orchestrator import ThresholdCryptoOrchestrator
from sealer_core.sampler import SecureScalarSampler
from sealer_core.secret_store import SecretStore

# secp256k1 group order, hex
SECP256K1_ORDER_HEX = "fffffffffffffffffffffffffffffffebaaedce6af48a03bbfd25e8cd0364141"


class CountingSource:
    """Deterministic byte source: every call returns the next counter value."""

    def __init__(self, start: int = 1):
        self.calls: list[int] = []
        self._next = start

    def __call__(self, n: int) -> bytes:
        self.calls.append(n)
        value = self._next
        self._next += 1
        return value.to_bytes(n, "big")


class StubPrimitive:
    """Deterministic stand-in for the ElGamal primitive library."""

    def __init__(self, q: str = "97", fail_on: str = ""):
        self.q = q
        self.fail_on = fail_on
        self.calls: list[tuple] = []
        self.entropy_buffers: list[bytearray] = []
        self.keygen_gate: asyncio.Event | None = None

    def _maybe_fail(self, op: str) -> None:
        if self.fail_on == op:
            raise PrimitiveOperationFailed(f"stub {op} failure")

    async def initialize(self):
        self.calls.append(("initialize",))
        self._maybe_fail("initialize")

    async def setup_from_entropy(self, entropy):
        self.entropy_buffers.append(entropy)
        self.calls.append(("setup", bytes(entropy)))
        self._maybe_fail("setup")
        return self.q, {"stub": True}, "sk-" + bytes(entropy).hex(), "pk-" + bytes(entropy).hex()

    async def keygen(self, r, sealer, params, sk, pk):
        self.calls.append(("keygen", r, sealer, sk))
        if self.keygen_gate is not None:
            await self.keygen_gate.wait()
        self._maybe_fail("keygen")
        return {"pk": pk, "r": r, "sk": sk}

    async def decrypt(self, encryptions, sealer, r, params, sk, pk):
        self.calls.append(("decrypt", sealer, r, len(list(encryptions))))
        self._maybe_fail("decrypt")
        return {"decrypted_shares": ["d0"], "sealer": sealer, "r": r, "sk": sk}

    def ops(self) -> list[str]:
        return [c[0] for c in self.calls]

    def calls_for(self, op: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == op]


@pytest.fixture
def store():
    """Secret store with a cheap KDF for tests."""
    return SecretStore(kdf_iterations=1_000)


@pytest.fixture
def alice(store):
    return store.add_secret("alice", b"\x01" * 32, "alice-pass")


@pytest.fixture
def bob(store):
    return store.add_secret("bob", b"\x02" * 32, "bob-pass")


@pytest.fixture
def source():
    return CountingSource()


@pytest.fixture
def primitive():
    return StubPrimitive()


@pytest.fixture
def orchestrator(store, primitive, source):
    return ThresholdCryptoOrchestrator(store, primitive, sampler=SecureScalarSampler(source=source))
