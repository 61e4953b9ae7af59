"""
SymAHE: additive symmetric-key PHE.

A ciphertext value is the plaintext plus a keyed mask modulo 2^63 - 1.
Adding ciphertexts adds values and merges ledgers; decryption subtracts
every mask the ledger lists, weighted by its cardinality.

Ciphertext x ciphertext multiplication is not supported.
"""

import logging

from modular_arithmetic import MAX_INT64, mod_mul, mod_sub
from sym_phe import SymCiphertext, SymPHE

log = logging.getLogger(__name__)


class SymAHE(SymPHE):
    """Additive symmetric scheme over the ring Z_(2^63 - 1)."""

    modulo = MAX_INT64
    DEFAULT_KEY_NAME = "symahe.sk"

    @property
    def cardinality_modulus(self) -> int:
        return self.modulo

    def encrypt(self, m: int) -> SymCiphertext:
        mask_id = self.next_id()
        value = m + self.rand_num(mask_id)
        return self.new_ciphertext(value, mask_id)

    def decrypt(self, c: SymCiphertext) -> int:
        m = c.value
        entries = c.extract_ids()
        for mask_id, card in entries:
            m = mod_sub(m, mod_mul(self.rand_num(mask_id), card, self.modulo), self.modulo)
        log.debug(f"Decrypted ciphertext with {len(entries)} mask entries")
        return self.handle_negative(m)

    def add(self, c1: SymCiphertext, c2: SymCiphertext) -> SymCiphertext:
        """Homomorphic addition; the result is `c1`, modified in place."""
        return c1.add(c2, self.modulo)

    def add_plaintext(self, c: SymCiphertext, m: int) -> SymCiphertext:
        return c.add_value(m, self.modulo)

    def subtract(self, c1: SymCiphertext, c2: SymCiphertext) -> SymCiphertext:
        """
        Homomorphic subtraction c1 - c2; the result is `c1`, modified in place.

        `c2` is left untouched, so subtract(c, c) yields an encryption of zero
        with an empty ledger.
        """
        return c1.subtract(c2, self.modulo)

    def multiply(self, c: SymCiphertext, m: int) -> SymCiphertext:
        """Multiply by a plaintext scalar; 0 clears the ledger."""
        return c.multiply_scalar(m, self.modulo)

    def negate(self, c: SymCiphertext) -> SymCiphertext:
        return self.multiply(c, -1)
