"""
Sealer core - client-side orchestration for threshold ElGamal sealers.

Key features:
- Unbiased secure sampling of blinding scalars below the group order
- Per-run key material derived from the active secret's entropy
- Public key shares for distributed key generation
- Partial decryption shares for ciphertext batches
- Transport-ready message-sign envelopes for the interaction layer
"""

__version__ = "0.1.0"
__all__ = [
    "config",
    "elgamal",
    "errors",
    "logging_config",
    "orchestrator",
    "packaging",
    "sampler",
    "secret_store",
    "service",
    "shares",
]
