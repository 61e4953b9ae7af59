"""
Tests for SymMHE, the multiplicative symmetric scheme
"""

import unittest
import os
import sys
import random
import shutil
import tempfile

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from key_store import FileKeyStore
from mask_ledger import LedgerType
from modular_arithmetic import NoInverseError
from sym_mhe import DEFAULT_GENERATOR, DEFAULT_MODULO, SymMHE


class TestSymMHE(unittest.TestCase):
    """Homomorphic operators, signs and error propagation"""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.key_path = os.path.join(self.temp_dir, "symmhe.sk")
        self.rng = random.Random(77)

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def engine(self, ledger_type=LedgerType.RANGE, neg_divisor=2):
        return SymMHE(ledger_type, neg_divisor, key_path=self.key_path, key_store=FileKeyStore())

    def engines(self):
        for ledger_type in LedgerType:
            yield ledger_type, self.engine(ledger_type)

    def test_parameters(self):
        mhe = self.engine()
        self.assertEqual(mhe.modulo, DEFAULT_MODULO)
        self.assertEqual(mhe.g, DEFAULT_GENERATOR)
        self.assertEqual(mhe.cardinality_modulus, DEFAULT_MODULO - 1)

    def test_round_trip(self):
        mhe = self.engine()
        for m in [0, 1, -1, 6, -3, 10**15] + [self.rng.randrange(-10**9, 10**9) for _ in range(30)]:
            self.assertEqual(mhe.decrypt(mhe.encrypt(m)), m)

    def test_multiply(self):
        for ledger_type, mhe in self.engines():
            with self.subTest(ledger=ledger_type.value):
                c = mhe.multiply(mhe.encrypt(6), mhe.encrypt(-7))
                self.assertEqual(mhe.decrypt(c), -42)

    def test_divide_scenario(self):
        for ledger_type, mhe in self.engines():
            with self.subTest(ledger=ledger_type.value):
                c = mhe.divide(mhe.encrypt(6), mhe.encrypt(3))
                self.assertEqual(mhe.decrypt(c), 2)
                self.assertEqual([card for _, card in c.extract_ids()], [1, -1])

    def test_divide_by_itself(self):
        for ledger_type, mhe in self.engines():
            with self.subTest(ledger=ledger_type.value):
                c = mhe.encrypt(12345)
                c = mhe.divide(c, c)
                self.assertEqual(mhe.decrypt(c), 1)
                self.assertEqual(c.extract_ids(), [])

    def test_divide_keeps_second_operand(self):
        mhe = self.engine()
        c1, c2 = mhe.encrypt(100), mhe.encrypt(4)
        mhe.divide(c1, c2)
        self.assertEqual(mhe.decrypt(c1), 25)
        self.assertEqual(mhe.decrypt(c2), 4)

    def test_multiply_plaintext(self):
        mhe = self.engine()
        c = mhe.multiply_plaintext(mhe.encrypt(9), 11)
        self.assertEqual(mhe.decrypt(c), 99)

    def test_pow(self):
        for ledger_type, mhe in self.engines():
            for e in (0, 1, 2, 5, 13):
                with self.subTest(ledger=ledger_type.value, e=e):
                    c = mhe.pow(mhe.encrypt(3), e)
                    self.assertEqual(mhe.decrypt(c), 3 ** e)

    def test_large_exponent(self):
        # exponents beyond half the group order wrap inside the ledger
        mhe = self.engine()
        e = DEFAULT_MODULO - 2
        c = mhe.pow(mhe.encrypt(5), e)
        self.assertEqual(mhe.decrypt(c) % DEFAULT_MODULO, pow(5, e, DEFAULT_MODULO))

    def test_inverse(self):
        for ledger_type, mhe in self.engines():
            with self.subTest(ledger=ledger_type.value):
                c = mhe.inverse(mhe.encrypt(4))
                c = mhe.multiply(c, mhe.encrypt(8))
                self.assertEqual(mhe.decrypt(c), 2)

    def test_product_of_many(self):
        for ledger_type, mhe in self.engines():
            with self.subTest(ledger=ledger_type.value):
                values = [2, -3, 5, 7, -1, 11]
                ciphertexts = mhe.encrypt_many(values)
                product = ciphertexts[0]
                for c in ciphertexts[1:]:
                    product = mhe.multiply(product, c)
                self.assertEqual(mhe.decrypt(product), 2 * -3 * 5 * 7 * -1 * 11)
                if ledger_type is LedgerType.RANGE:
                    self.assertEqual(product.ledger.run_count(), 1)

    def test_inverse_of_zero_propagates(self):
        mhe = self.engine()
        zero = mhe.encrypt(0)
        with self.assertRaises(NoInverseError):
            mhe.inverse(zero)
        with self.assertRaises(NoInverseError):
            mhe.divide(mhe.encrypt(5), zero)
        # the failed operation left the ciphertext unchanged
        self.assertEqual(len(zero.extract_ids()), 1)

    def test_repr(self):
        self.assertEqual(repr(self.engine()), "<SymMHE>")


if __name__ == "__main__":
    unittest.main()
