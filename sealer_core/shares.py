"""
Result and input types exchanged between the orchestrator, the ElGamal
primitive and the packaging layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Union


@dataclass(frozen=True)
class Ciphertext:
    """ElGamal ciphertext ``(a, b)`` as hex-encoded compressed curve points."""
    a: str
    b: str

    def to_dict(self) -> dict:
        return {"a": self.a, "b": self.b}

    @classmethod
    def from_any(cls, value: Union[Ciphertext, dict]) -> Ciphertext:
        if isinstance(value, Ciphertext):
            return value
        try:
            return cls(a=value["a"], b=value["b"])
        except (KeyError, TypeError) as exc:
            raise ValueError(f"Malformed ciphertext: {value!r}") from exc


EncryptionBatch = list[Ciphertext]


def to_batch(encryptions: Iterable[Union[Ciphertext, dict]]) -> EncryptionBatch:
    """Normalise a list of ciphertexts or ``{"a", "b"}`` dicts."""
    return [Ciphertext.from_any(e) for e in encryptions]


@dataclass
class _TaggedShare:
    fields: dict[str, Any] = field(default_factory=dict)
    sealer: str = ""

    def to_dict(self) -> dict:
        # sealer always overrides whatever the primitive reported
        return {**self.fields, "sealer": self.sealer}

    @classmethod
    def from_raw(cls, raw: dict, sealer: str):
        return cls(fields=dict(raw), sealer=sealer)


@dataclass
class PublicKeyShare(_TaggedShare):
    """A sealer's public key share from distributed key generation."""

    @property
    def pk(self) -> Any:
        return self.fields.get("pk")


@dataclass
class PartialDecryptionShare(_TaggedShare):
    """A sealer's partial decryptions for one batch of ciphertexts."""

    @property
    def decrypted_shares(self) -> list:
        return list(self.fields.get("decrypted_shares", []))
