"""
Exception hierarchy for the sealer core.

Every failure aborts the current orchestration run and is raised to the
caller; nothing here is retried automatically.
"""

from __future__ import annotations


class SealerError(Exception):
    """Base class for all sealer errors."""


class EntropyUnavailable(SealerError):
    """The active secret is missing, locked or cannot be decrypted."""


class SecureRandomSourceFailure(SealerError):
    """The cryptographically secure byte source failed or misbehaved."""


class PrimitiveOperationFailed(SealerError):
    """ElGamal setup, keygen or decrypt failed inside the primitive layer."""


class TransportFailure(SealerError):
    """The interaction transport refused or could not deliver an envelope."""


class RunSuperseded(SealerError):
    """A newer active secret replaced the one this run was started for."""

    def __init__(self, label: str):
        super().__init__(f"Run for sealer {label!r} superseded by a newer active secret")
        self.label = label
