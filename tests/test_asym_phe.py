"""
Tests for the Paillier and ElGamal baselines

Small moduli keep key generation fast; the homomorphic identities do not
depend on the key size.
"""

import unittest
import os
import sys
import json
import shutil
import tempfile
from unittest import mock

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from asym_phe import (SLOT_BITS, ElGamal, ElGamalCiphertext, Paillier, generate_prime,
                      is_probable_prime)
from key_store import FileKeyStore, InvalidKeyMaterialError
from modular_arithmetic import NoInverseError


class TestPrimes(unittest.TestCase):

    def test_is_probable_prime(self):
        for p in (2, 3, 5, 97, 7919, 9222730058745388403, (1 << 127) - 1):
            self.assertTrue(is_probable_prime(p), p)
        for c in (0, 1, 4, 91, 561, (1 << 63) - 1):
            self.assertFalse(is_probable_prime(c), c)

    def test_composites_past_trial_division(self):
        # 199 * 211 and 211 * 223 have no factor below 200
        for c in (41989, 47053, 1000003 * 1000033):
            self.assertFalse(is_probable_prime(c), c)
        self.assertTrue(is_probable_prime(65537))

    def test_generate_prime(self):
        p = generate_prime(64)
        self.assertEqual(p.bit_length(), 64)
        # top two bits set
        self.assertEqual(p >> 62, 3)
        self.assertTrue(is_probable_prime(p))
        with self.assertRaises(ValueError):
            generate_prime(4)


class AsymTestCase(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.temp_dir = tempfile.mkdtemp()
        cls.store = FileKeyStore()

    @classmethod
    def tearDownClass(cls):
        shutil.rmtree(cls.temp_dir, ignore_errors=True)

    @classmethod
    def paths(cls, name):
        return (os.path.join(cls.temp_dir, f"{name}.pk"), os.path.join(cls.temp_dir, f"{name}.sk"))


class TestPaillier(AsymTestCase):
    """Additive baseline, including packing"""

    @classmethod
    def setUpClass(cls):
        super().setUpClass()
        cls.pk_path, cls.sk_path = cls.paths("paillier")
        cls.paillier = Paillier(2, cls.pk_path, cls.sk_path, key_store=cls.store, key_bits=512)

    def test_round_trip(self):
        for m in (0, 1, -1, 123456789, -987654321, 2**62):
            self.assertEqual(self.paillier.decrypt(self.paillier.encrypt(m)), m)

    def test_encryption_is_randomized(self):
        self.assertNotEqual(self.paillier.encrypt(5), self.paillier.encrypt(5))

    def test_add_and_subtract(self):
        p = self.paillier
        self.assertEqual(p.decrypt(p.add(p.encrypt(5), p.encrypt(10))), 15)
        self.assertEqual(p.decrypt(p.subtract(p.encrypt(5), p.encrypt(10))), -5)
        self.assertEqual(p.decrypt(p.add_plaintext(p.encrypt(5), -8)), -3)

    def test_scalar_multiply_and_negate(self):
        p = self.paillier
        for k in (0, 1, 3, -4):
            self.assertEqual(p.decrypt(p.multiply(p.encrypt(21), k)), 21 * k)
        self.assertEqual(p.decrypt(p.negate(p.encrypt(9))), -9)

    def test_bytes(self):
        c = self.paillier.encrypt(77)
        self.assertEqual(Paillier.from_bytes(Paillier.to_bytes(c)), c)

    def test_modulus_has_requested_size(self):
        self.assertEqual(self.paillier.n.bit_length(), 512)
        self.assertEqual(self.paillier.key_bits, 512)

        pk_path, sk_path = self.paths("odd")
        odd = Paillier(2, pk_path, sk_path, key_store=self.store, key_bits=257)
        self.assertEqual(odd.n.bit_length(), 257)

    def test_stored_key_of_other_size_rejected(self):
        with self.assertRaises(InvalidKeyMaterialError):
            Paillier(2, self.pk_path, self.sk_path, key_store=self.store, key_bits=1024)
        with self.assertRaises(InvalidKeyMaterialError):
            Paillier(2, self.pk_path, key_store=self.store, key_bits=1024, public_only=True)

    def test_default_key_files_per_size(self):
        key_dir = os.path.join(self.temp_dir, "defaults")
        with mock.patch.dict(os.environ, {"PHE_KEY_DIR": key_dir, "PHE_KEY_BACKEND": "file"}):
            small = Paillier(2, key_store=self.store, key_bits=256)
            large = Paillier(2, key_store=self.store, key_bits=264)
            again = Paillier(2, key_store=self.store, key_bits=256)

        self.assertEqual(small.public_key_path, os.path.join(key_dir, "paillier-256.pk"))
        self.assertEqual(large.private_key_path, os.path.join(key_dir, "paillier-264.sk"))
        self.assertEqual((small.key_bits, large.key_bits), (256, 264))
        self.assertEqual(again.n, small.n)

    def test_keys_are_reused(self):
        again = Paillier(2, self.pk_path, self.sk_path, key_store=self.store)
        self.assertEqual(again.n, self.paillier.n)
        self.assertEqual(again.decrypt(self.paillier.encrypt(31)), 31)

    def test_public_only(self):
        server = Paillier(2, self.pk_path, key_store=self.store, public_only=True)
        c = server.add(server.encrypt(2), server.encrypt(3))
        self.assertEqual(self.paillier.decrypt(c), 5)
        with self.assertRaises(InvalidKeyMaterialError):
            server.decrypt(c)

    def test_public_only_requires_public_key(self):
        missing = os.path.join(self.temp_dir, "missing.pk")
        with self.assertRaises(InvalidKeyMaterialError):
            Paillier(2, missing, key_store=self.store, public_only=True)

    def test_malformed_key(self):
        pk_path, sk_path = self.paths("broken")
        self.store.save(json.dumps({'g': '5'}), pk_path)
        self.store.save(json.dumps({'lambda': '1', 'mu': '1'}), sk_path)
        with self.assertRaises(InvalidKeyMaterialError):
            Paillier(2, pk_path, sk_path, key_store=self.store)

    def test_packing(self):
        p = self.paillier
        capacity = p.slot_capacity
        self.assertEqual(capacity, (p.n.bit_length() - 2) // SLOT_BITS)
        self.assertGreaterEqual(capacity, 2)

        m1 = [(-1) ** i * (i + 1) * 1000 for i in range(capacity)]
        m2 = [7 * i - 20 for i in range(capacity)]
        self.assertEqual(p.unpack(p.pack(m1)), m1)

        c = p.encrypt_packed(m1)
        self.assertEqual(p.decrypt_packed(c), m1)
        self.assertEqual(p.decrypt_packed(p.add(c, p.encrypt_packed(m2))),
                         [a + b for a, b in zip(m1, m2)])
        self.assertEqual(p.decrypt_packed(p.add_plaintext_packed(p.encrypt_packed(m1), m2), 2),
                         [m1[0] + m2[0], m1[1] + m2[1]])

    def test_packing_limits(self):
        p = self.paillier
        with self.assertRaises(ValueError):
            p.pack([1] * (p.slot_capacity + 1))
        with self.assertRaises(ValueError):
            p.pack([1 << (SLOT_BITS - 1)])
        self.assertEqual(p.unpack(p.pack([-(1 << (SLOT_BITS - 1))]), 1), [-(1 << (SLOT_BITS - 1))])


class TestElGamal(AsymTestCase):
    """Multiplicative baseline"""

    @classmethod
    def setUpClass(cls):
        super().setUpClass()
        pk_path, sk_path = cls.paths("elgamal")
        cls.elgamal = ElGamal(2, pk_path, sk_path, key_store=cls.store, key_bits=256)

    def test_round_trip(self):
        for m in (1, -1, 6, 10**12, -77):
            self.assertEqual(self.elgamal.decrypt(self.elgamal.encrypt(m)), m)

    def test_multiply(self):
        e = self.elgamal
        self.assertEqual(e.decrypt(e.multiply(e.encrypt(6), e.encrypt(-7))), -42)
        self.assertEqual(e.decrypt(e.multiply_plaintext(e.encrypt(6), 5)), 30)

    def test_divide(self):
        e = self.elgamal
        self.assertEqual(e.decrypt(e.divide(e.encrypt(6), e.encrypt(3))), 2)

    def test_pow_and_inverse(self):
        e = self.elgamal
        self.assertEqual(e.decrypt(e.pow(e.encrypt(3), 4)), 81)
        c = e.multiply(e.inverse(e.encrypt(4)), e.encrypt(8))
        self.assertEqual(e.decrypt(c), 2)
        c = e.multiply(e.pow(e.encrypt(2), -3), e.encrypt(40))
        self.assertEqual(e.decrypt(c), 5)

    def test_zero_has_no_inverse(self):
        e = self.elgamal
        zero = e.encrypt(0)
        self.assertEqual(e.decrypt(zero), 0)
        with self.assertRaises(NoInverseError):
            e.inverse(zero)
        with self.assertRaises(NoInverseError):
            e.divide(e.encrypt(5), zero)

    def test_bytes(self):
        c = self.elgamal.encrypt(12)
        restored = ElGamal.from_bytes(ElGamal.to_bytes(c))
        self.assertEqual(restored, c)
        self.assertIsInstance(restored, ElGamalCiphertext)
        with self.assertRaises(ValueError):
            ElGamal.from_bytes(b"{not json")

    def test_repr(self):
        self.assertTrue(repr(self.elgamal).startswith("<ElGamal modLength="))


if __name__ == "__main__":
    unittest.main()
