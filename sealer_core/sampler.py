"""
Secure random scalar sampling for ElGamal blinding values.

A scalar ``r`` with ``0 <= r < n`` is drawn from a cryptographically secure
byte source.  The draw length follows the byte length of the group order's
string representation, with a fixed 32-byte fallback when that length is not
a usable native size.

Two reduction strategies are supported:

  - **rejection** – redraw while the raw value falls in the biased tail,
    giving an exactly uniform result (default)
  - **reduce**    – plain ``value % n``; carries a small modulo bias

Usage:
    from sealer_core.sampler import SecureScalarSampler
    r = SecureScalarSampler().sample(q, byte_size=byte_size_for(q_hex))
"""

from __future__ import annotations

import logging
import os
from typing import Callable, Optional, Union

from sealer_core.errors import SecureRandomSourceFailure

log = logging.getLogger("sealer.sampler")

# Largest integer a double represents exactly.  Byte lengths beyond this are
# treated as not convertible to a native size.
MAX_SAFE_INTEGER = 2**53 - 1

# Draw size used when the derived byte length is not representable
# (large elliptic-curve orders).
FALLBACK_BYTE_SIZE = 32

STRATEGIES = ("rejection", "reduce")

RandomSource = Callable[[int], bytes]


def byte_size_for(order: Union[int, str]) -> int:
    """Byte length of the group order's string form, as the primitive returned it."""
    return len(str(order).encode("utf-8"))


def parse_group_order(order: Union[int, str]) -> int:
    """
    Interpret a group order returned by the primitive layer.

    Strings are always read in base 16 (``0x`` prefix optional); ints pass
    through unchanged.
    """
    if isinstance(order, int):
        return order
    text = order.strip().lower()
    if text.startswith("0x"):
        text = text[2:]
    return int(text, 16)


class SecureScalarSampler:
    """Draws uniform scalars below a modulus from a secure byte source."""

    def __init__(
        self,
        source: Optional[RandomSource] = None,
        strategy: str = "rejection",
        fallback_byte_size: int = FALLBACK_BYTE_SIZE,
        max_attempts: int = 64,
    ):
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown sampling strategy: {strategy!r}")
        if fallback_byte_size <= 0:
            raise ValueError("fallback_byte_size must be positive")
        if max_attempts <= 0:
            raise ValueError("max_attempts must be positive")
        self.source: RandomSource = source or os.urandom
        self.strategy = strategy
        self.fallback_byte_size = fallback_byte_size
        self.max_attempts = max_attempts

    def resolve_byte_size(self, byte_size: int) -> int:
        """Return *byte_size*, or the fallback when it is not a native length."""
        if 0 < byte_size <= MAX_SAFE_INTEGER:
            return byte_size
        log.debug(f"Byte size {byte_size} not representable, using {self.fallback_byte_size}")
        return self.fallback_byte_size

    def sample(self, modulus: int, byte_size: Optional[int] = None) -> int:
        """
        Return a secret integer ``r`` with ``0 <= r < modulus``.

        Parameters
        ----------
        modulus : int
            Exclusive upper bound, normally the group order ``q``.
        byte_size : int, optional
            Number of random bytes per draw.  Defaults to the byte length of
            ``str(modulus)``.
        """
        if modulus <= 0:
            raise ValueError("Modulus must be positive")
        if byte_size is None:
            byte_size = byte_size_for(modulus)
        size = self.resolve_byte_size(byte_size)

        if self.strategy == "reduce":
            return self._draw(size) % modulus

        span = 1 << (8 * size)
        if span < modulus:
            raise ValueError(
                f"A {size}-byte draw cannot cover a {modulus.bit_length()}-bit modulus"
            )
        limit = span - (span % modulus)
        for _ in range(self.max_attempts):
            value = self._draw(size)
            if value < limit:
                return value % modulus
        raise SecureRandomSourceFailure(
            f"No unbiased draw after {self.max_attempts} attempts"
        )

    def _draw(self, size: int) -> int:
        try:
            raw = self.source(size)
        except (OSError, NotImplementedError) as exc:
            raise SecureRandomSourceFailure(f"Secure random source failed: {exc}") from exc
        if len(raw) != size:
            raise SecureRandomSourceFailure(
                f"Secure random source returned {len(raw)} bytes, expected {size}"
            )
        return int.from_bytes(raw, "big")
