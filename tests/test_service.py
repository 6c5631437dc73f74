"""
Tests for sealer_core.service: run-then-package flows.
"""

import json

import pytest

from sealer_core.errors import EntropyUnavailable, PrimitiveOperationFailed
from sealer_core.orchestrator import ThresholdCryptoOrchestrator
from sealer_core.packaging import ProtocolTag, ResultPackager
from sealer_core.service import SealerService

from conftest import StubPrimitive


class _RecordingInteraction:
    def __init__(self):
        self.started = []

    async def start_interaction(self, interaction):
        self.started.append(interaction)


@pytest.fixture
def transport():
    return _RecordingInteraction()


@pytest.fixture
def service(orchestrator, transport):
    return SealerService(orchestrator, ResultPackager(transport))


@pytest.mark.asyncio
class TestSealerService:
    async def test_publish_key_share(self, store, alice, service, transport):
        await store.set_active(alice)
        share, interaction = await service.publish_key_share()
        assert transport.started == [interaction]
        assert interaction.protocol is ProtocolTag.KEY_SHARE
        assert json.loads(interaction.envelope.message) == share.to_dict()
        assert share.sealer == "alice"

    async def test_publish_partial_decryption(self, store, alice, service, transport):
        await store.set_active(alice)
        share, interaction = await service.publish_partial_decryption([{"a": "aa", "b": "bb"}])
        assert interaction.protocol is ProtocolTag.DECRYPTION_SHARE
        payload = json.loads(interaction.envelope.message)
        assert payload["sealer"] == "alice"
        assert payload == share.to_dict()

    async def test_each_call_packages_its_own_share(self, store, alice, bob, service, transport):
        await store.set_active(alice)
        a, _ = await service.publish_key_share()
        await store.set_active(bob)
        b, _ = await service.publish_key_share()
        messages = [json.loads(i.envelope.message) for i in transport.started]
        assert [m["sealer"] for m in messages] == ["alice", "bob"]
        assert messages[0]["r"] == a.fields["r"]
        assert messages[1]["r"] == b.fields["r"]

    async def test_nothing_packaged_on_entropy_failure(self, store, alice, service, transport):
        store.lock(alice)
        await store.set_active(alice)
        with pytest.raises(EntropyUnavailable):
            await service.publish_key_share()
        assert transport.started == []

    async def test_nothing_packaged_on_primitive_failure(self, store, alice, transport):
        orch = ThresholdCryptoOrchestrator(store, StubPrimitive(fail_on="decrypt"))
        svc = SealerService(orch, ResultPackager(transport))
        await store.set_active(alice)
        with pytest.raises(PrimitiveOperationFailed):
            await svc.publish_partial_decryption([{"a": "aa", "b": "bb"}])
        assert transport.started == []
