"""
Tests for the keyed mask generator
"""

import unittest
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from mask_generator import AES_KEY_SIZE, KeyedMaskGenerator, encode_id, normalize_key
from modular_arithmetic import MAX_INT64


class TestMaskGenerator(unittest.TestCase):
    """Determinism and range of the mask PRF"""

    def setUp(self):
        self.generator = KeyedMaskGenerator(b"0123456789abcdef")

    def test_normalize_key(self):
        key = normalize_key(b"short")
        self.assertEqual(len(key), AES_KEY_SIZE)
        self.assertEqual(normalize_key("short"), key)
        self.assertNotEqual(normalize_key(b"other"), key)
        with self.assertRaises(ValueError):
            normalize_key(b"")

    def test_encode_id(self):
        self.assertEqual(encode_id(1), b"\x00" * 15 + b"\x01")
        self.assertEqual(len(encode_id(MAX_INT64)), 16)
        with self.assertRaises(ValueError):
            encode_id(-1)

    def test_deterministic(self):
        other = KeyedMaskGenerator(b"0123456789abcdef")
        for mask_id in (1, 2, 1000, MAX_INT64):
            self.assertEqual(self.generator.mask(mask_id, MAX_INT64),
                             other.mask(mask_id, MAX_INT64))

    def test_matches_single_block_aes(self):
        key = normalize_key(b"0123456789abcdef")
        encryptor = Cipher(algorithms.AES(key), modes.ECB()).encryptor()
        block = encryptor.update(encode_id(42)) + encryptor.finalize()
        self.assertEqual(self.generator.mask(42, MAX_INT64),
                         int.from_bytes(block, "big") % MAX_INT64)

    def test_distinct_ids_and_keys(self):
        masks = self.generator.masks(range(1, 101), MAX_INT64)
        self.assertEqual(len(set(masks)), 100)

        other = KeyedMaskGenerator(b"another key")
        self.assertNotEqual(self.generator.mask(7, MAX_INT64), other.mask(7, MAX_INT64))

    def test_range(self):
        for modulus in (2, 97, MAX_INT64):
            for mask in self.generator.masks(range(1, 50), modulus):
                self.assertGreaterEqual(mask, 0)
                self.assertLess(mask, modulus)

    def test_repr_hides_key(self):
        self.assertNotIn("0123456789abcdef", repr(self.generator))


if __name__ == "__main__":
    unittest.main()
