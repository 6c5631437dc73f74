"""
Test suite for sealer_core.sampler: secure scalar sampling.

Covers:
  - Range bounds over many draws
  - Chi-squared uniformity on a small modulus
  - Byte-size derivation and the 32-byte fallback
  - Rejection vs. reduce strategies
  - Source failures and short reads
  - Group order parsing
"""

import os
import unittest
from collections import Counter

from sealer_core.errors import SecureRandomSourceFailure
from sealer_core.sampler import (
    FALLBACK_BYTE_SIZE,
    MAX_SAFE_INTEGER,
    SecureScalarSampler,
    byte_size_for,
    parse_group_order,
)

from conftest import SECP256K1_ORDER_HEX, CountingSource


class _RecordingSource:
    def __init__(self, fill: int = 0xAB):
        self.sizes: list[int] = []
        self.fill = fill

    def __call__(self, n: int) -> bytes:
        self.sizes.append(n)
        return bytes([self.fill]) * n


class TestBounds(unittest.TestCase):

    def test_small_moduli_stay_in_range(self):
        sampler = SecureScalarSampler()
        for n in (2, 3, 7, 97, 256, 1000):
            for _ in range(10_000):
                r = sampler.sample(n)
                self.assertTrue(0 <= r < n, f"{r} out of range for {n}")

    def test_curve_order_in_range(self):
        q = parse_group_order(SECP256K1_ORDER_HEX)
        sampler = SecureScalarSampler()
        for _ in range(1_000):
            r = sampler.sample(q, byte_size=byte_size_for(SECP256K1_ORDER_HEX))
            self.assertTrue(0 <= r < q)

    def test_reduce_strategy_in_range(self):
        sampler = SecureScalarSampler(strategy="reduce")
        for _ in range(10_000):
            self.assertTrue(0 <= sampler.sample(97) < 97)

    def test_modulus_one(self):
        self.assertEqual(SecureScalarSampler().sample(1), 0)

    def test_non_positive_modulus_rejected(self):
        sampler = SecureScalarSampler()
        with self.assertRaises(ValueError):
            sampler.sample(0)
        with self.assertRaises(ValueError):
            sampler.sample(-5)


class TestUniformity(unittest.TestCase):

    def test_chi_squared_modulus_16(self):
        n, draws = 16, 32_000
        sampler = SecureScalarSampler()
        counts = Counter(sampler.sample(n) for _ in range(draws))
        expected = draws / n
        chi2 = sum((counts.get(i, 0) - expected) ** 2 / expected for i in range(n))
        # 15 degrees of freedom, p = 0.001
        self.assertLess(chi2, 37.70)
        self.assertEqual(set(counts), set(range(n)))


class TestByteSize(unittest.TestCase):

    def test_byte_size_from_string_form(self):
        self.assertEqual(byte_size_for(97), 2)
        self.assertEqual(byte_size_for("97"), 2)
        self.assertEqual(byte_size_for(SECP256K1_ORDER_HEX), 64)

    def test_default_byte_size_is_decimal_length(self):
        src = _RecordingSource(fill=0)
        SecureScalarSampler(source=src).sample(123_456)
        self.assertEqual(src.sizes, [6])

    def test_explicit_byte_size_used(self):
        src = _RecordingSource(fill=0)
        SecureScalarSampler(source=src).sample(97, byte_size=9)
        self.assertEqual(src.sizes, [9])

    def test_fallback_when_not_native(self):
        src = _RecordingSource(fill=0)
        sampler = SecureScalarSampler(source=src)
        sampler.sample(parse_group_order(SECP256K1_ORDER_HEX), byte_size=MAX_SAFE_INTEGER + 1)
        self.assertEqual(src.sizes, [FALLBACK_BYTE_SIZE])
        self.assertEqual(FALLBACK_BYTE_SIZE, 32)

    def test_fallback_for_zero_length(self):
        sampler = SecureScalarSampler()
        self.assertEqual(sampler.resolve_byte_size(0), 32)
        self.assertEqual(sampler.resolve_byte_size(-1), 32)
        self.assertEqual(sampler.resolve_byte_size(MAX_SAFE_INTEGER), MAX_SAFE_INTEGER)

    def test_custom_fallback(self):
        sampler = SecureScalarSampler(fallback_byte_size=48)
        self.assertEqual(sampler.resolve_byte_size(2**60), 48)


class TestStrategies(unittest.TestCase):

    def test_deterministic_draw(self):
        sampler = SecureScalarSampler(source=lambda n: b"\x00" * (n - 1) + b"\x05")
        self.assertEqual(sampler.sample(97), 5)

    def test_reduce_applies_modulo(self):
        sampler = SecureScalarSampler(source=lambda n: b"\xff" * n, strategy="reduce")
        self.assertEqual(sampler.sample(97, byte_size=1), 255 % 97)

    def test_rejection_redraws_biased_tail(self):
        values = iter([b"\xff", b"\xc2", b"\x10"])   # 255, 194 rejected; 16 kept
        sampler = SecureScalarSampler(source=lambda n: next(values))
        self.assertEqual(sampler.sample(97, byte_size=1), 16)

    def test_rejection_gives_up(self):
        src = _RecordingSource(fill=0xFF)
        sampler = SecureScalarSampler(source=src, max_attempts=5)
        with self.assertRaises(SecureRandomSourceFailure):
            sampler.sample(97, byte_size=1)
        self.assertEqual(len(src.sizes), 5)

    def test_rejection_draw_too_small(self):
        with self.assertRaises(ValueError):
            SecureScalarSampler().sample(2**300, byte_size=32)

    def test_reduce_draw_too_small_allowed(self):
        r = SecureScalarSampler(strategy="reduce").sample(2**300, byte_size=32)
        self.assertLess(r, 2**256)

    def test_unknown_strategy(self):
        with self.assertRaises(ValueError):
            SecureScalarSampler(strategy="modulo")

    def test_invalid_limits(self):
        with self.assertRaises(ValueError):
            SecureScalarSampler(fallback_byte_size=0)
        with self.assertRaises(ValueError):
            SecureScalarSampler(max_attempts=0)

    def test_default_source_is_urandom(self):
        self.assertIs(SecureScalarSampler().source, os.urandom)

    def test_counting_source_gives_distinct_values(self):
        q = parse_group_order(SECP256K1_ORDER_HEX)
        sampler = SecureScalarSampler(source=CountingSource())
        values = {sampler.sample(q, byte_size=64) for _ in range(100)}
        self.assertEqual(len(values), 100)


class TestSourceFailures(unittest.TestCase):

    def test_os_error_wrapped(self):
        def broken(n):
            raise OSError("no entropy")
        with self.assertRaises(SecureRandomSourceFailure) as ctx:
            SecureScalarSampler(source=broken).sample(97)
        self.assertIsInstance(ctx.exception.__cause__, OSError)

    def test_not_implemented_wrapped(self):
        def missing(n):
            raise NotImplementedError
        with self.assertRaises(SecureRandomSourceFailure):
            SecureScalarSampler(source=missing).sample(97)

    def test_short_read(self):
        with self.assertRaises(SecureRandomSourceFailure):
            SecureScalarSampler(source=lambda n: b"\x01").sample(97)


class TestParseGroupOrder(unittest.TestCase):

    def test_hex_string(self):
        self.assertEqual(parse_group_order("97"), 0x97)
        self.assertEqual(parse_group_order("0xff"), 255)
        self.assertEqual(parse_group_order(" FF "), 255)

    def test_int_passthrough(self):
        self.assertEqual(parse_group_order(97), 97)

    def test_invalid(self):
        with self.assertRaises(ValueError):
            parse_group_order("xyz")


if __name__ == "__main__":
    unittest.main()
