"""
SymMHE: multiplicative symmetric-key PHE.

A ciphertext value is the plaintext times g^r modulo a fixed prime p, where
r is the keyed mask of the ciphertext's id. Multiplying ciphertexts
multiplies values and merges ledgers; decryption divides out g^(r * card)
for every ledger entry.

p and g are scheme-wide public constants shared by every key. Ledger
cardinalities are exponents of g and are therefore kept modulo the group
order p - 1.

Ciphertext addition is not supported.
"""

import logging

from modular_arithmetic import mod_inverse, mod_mul, mod_pow
from sym_phe import SymCiphertext, SymPHE

log = logging.getLogger(__name__)

DEFAULT_MODULO = 9222730058745388403
DEFAULT_GENERATOR = 6980122786781000881


class SymMHE(SymPHE):
    """Multiplicative symmetric scheme over Z_p*."""

    modulo = DEFAULT_MODULO
    g = DEFAULT_GENERATOR
    DEFAULT_KEY_NAME = "symmhe.sk"

    @property
    def cardinality_modulus(self) -> int:
        return self.modulo - 1

    def _obfuscator(self, mask_id: int) -> int:
        return mod_pow(self.g, self.rand_num(mask_id), self.modulo)

    def encrypt(self, m: int) -> SymCiphertext:
        mask_id = self.next_id()
        value = mod_mul(m, self._obfuscator(mask_id), self.modulo)
        return self.new_ciphertext(value, mask_id)

    def decrypt(self, c: SymCiphertext) -> int:
        m = c.value
        entries = c.extract_ids()
        for mask_id, card in entries:
            obf = self._obfuscator(mask_id)
            if card >= 0:
                obf = mod_inverse(obf, self.modulo)
            else:
                card = -card
            if card != 1:
                obf = mod_pow(obf, card, self.modulo)
            m = mod_mul(m, obf, self.modulo)
        log.debug(f"Decrypted ciphertext with {len(entries)} mask entries")
        return self.handle_negative(m)

    def multiply(self, c1: SymCiphertext, c2: SymCiphertext) -> SymCiphertext:
        """Homomorphic multiplication; the result is `c1`, modified in place."""
        return c1.multiply(c2, self.modulo)

    def multiply_plaintext(self, c: SymCiphertext, m: int) -> SymCiphertext:
        return c.multiply_value(m, self.modulo)

    def divide(self, c1: SymCiphertext, c2: SymCiphertext) -> SymCiphertext:
        """
        Homomorphic division c1 / c2; the result is `c1`, modified in place.

        Raises:
            NoInverseError: If c2 encrypts a multiple of p
        """
        return self.multiply(c1, self.inverse(c2.copy()))

    def pow(self, c: SymCiphertext, e: int) -> SymCiphertext:
        """
        Raise to a plaintext power; negative exponents invert first.

        Raises:
            NoInverseError: If e < 0 and c encrypts a multiple of p
        """
        return c.pow(e, self.modulo)

    def inverse(self, c: SymCiphertext) -> SymCiphertext:
        return self.pow(c, -1)
