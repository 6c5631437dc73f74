"""
Packaging of sealer results for the interaction / transport layer.

A share is serialised into the ``message`` of a message-sign response,
wrapped into an IAC message carrying a protocol routing tag, and handed to
the interaction service's ``start_interaction`` entry point.  ``publicKey``
and ``signature`` stay empty; the interaction layer fills them.

Routing tags per call site:

    key shares          -> ProtocolTag.KEY_SHARE         ("xtz")
    partial decryptions -> ProtocolTag.DECRYPTION_SHARE  ("eth")
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Protocol

import aiohttp

from sealer_core.errors import TransportFailure
from sealer_core.shares import PartialDecryptionShare, PublicKeyShare

log = logging.getLogger("sealer.packaging")


class InteractionOperationType(str, Enum):
    MESSAGE_SIGN_REQUEST = "message_sign_request"


class IACMessageType(int, Enum):
    MESSAGE_SIGN_REQUEST = 9
    MESSAGE_SIGN_RESPONSE = 10


class ProtocolTag(str, Enum):
    """Routing hint for the receiving party's handler."""
    KEY_SHARE = "xtz"
    DECRYPTION_SHARE = "eth"


@dataclass
class SignedMessageEnvelope:
    """Message-sign response; key and signature are added by the interaction layer."""
    message: str
    public_key: str = ""
    signature: str = ""

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "publicKey": self.public_key,
            "signature": self.signature,
        }


@dataclass
class IACMessage:
    id: int
    type: IACMessageType
    protocol: ProtocolTag
    payload: SignedMessageEnvelope

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": int(self.type),
            "protocol": self.protocol.value,
            "payload": self.payload.to_dict(),
        }


@dataclass
class Interaction:
    """Request handed to the interaction service."""
    operation_type: InteractionOperationType
    envelope: SignedMessageEnvelope
    iac_messages: list[IACMessage] = field(default_factory=list)

    @property
    def protocol(self) -> Optional[ProtocolTag]:
        return self.iac_messages[0].protocol if self.iac_messages else None

    def to_dict(self) -> dict:
        return {
            "operationType": self.operation_type.value,
            "iacMessage": [m.to_dict() for m in self.iac_messages],
            "messageSignResponse": self.envelope.to_dict(),
        }


class InteractionService(Protocol):
    async def start_interaction(self, interaction: Interaction) -> None: ...


def serialize_payload(payload: Any) -> str:
    """Compact JSON of a share, a dict or anything with ``to_dict()``."""
    to_dict = getattr(payload, "to_dict", None)
    if callable(to_dict):
        payload = to_dict()
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def _new_message_id() -> int:
    return int.from_bytes(os.urandom(4), "big")


class ResultPackager:
    """Wraps shares into interactions and forwards them to the interaction service."""

    def __init__(self, interaction: InteractionService):
        self.interaction = interaction

    def build(
        self,
        payload: Any,
        protocol: ProtocolTag,
        operation_type: InteractionOperationType = InteractionOperationType.MESSAGE_SIGN_REQUEST,
    ) -> Interaction:
        operation_type = InteractionOperationType(operation_type)
        envelope = SignedMessageEnvelope(message=serialize_payload(payload))
        iac = IACMessage(
            id=_new_message_id(),
            type=IACMessageType.MESSAGE_SIGN_RESPONSE,
            protocol=ProtocolTag(protocol),
            payload=envelope,
        )
        return Interaction(operation_type=operation_type, envelope=envelope, iac_messages=[iac])

    async def package(
        self,
        payload: Any,
        protocol: ProtocolTag,
        operation_type: InteractionOperationType = InteractionOperationType.MESSAGE_SIGN_REQUEST,
    ) -> Interaction:
        """Build the interaction for *payload* and start it."""
        interaction = self.build(payload, protocol, operation_type)
        await self.interaction.start_interaction(interaction)
        log.debug(f"Started {interaction.operation_type.value} interaction ({interaction.protocol.value})")
        return interaction

    async def emit_keygen(self, share: PublicKeyShare) -> Interaction:
        return await self.package(share, ProtocolTag.KEY_SHARE)

    async def emit_decryption(self, share: PartialDecryptionShare) -> Interaction:
        return await self.package(share, ProtocolTag.DECRYPTION_SHARE)


class RelayInteractionService:
    """Delivers interactions to an HTTP relay as JSON ``POST`` requests."""

    def __init__(self, url: str, timeout: float = 10.0):
        if not url:
            raise ValueError("Relay URL must not be empty")
        self.url = url
        self.timeout = timeout

    async def start_interaction(self, interaction: Interaction) -> None:
        body = interaction.to_dict()
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.url, json=body) as resp:
                    if resp.status >= 300:
                        text = await resp.text()
                        raise TransportFailure(f"Relay rejected interaction: HTTP {resp.status} {text[:200]}")
        except aiohttp.ClientError as exc:
            raise TransportFailure(f"Relay unreachable: {exc}") from exc
        except asyncio.TimeoutError as exc:
            raise TransportFailure(f"Relay timed out after {self.timeout}s") from exc
        log.info(f"Interaction delivered to relay ({interaction.protocol.value if interaction.protocol else '-'})")
