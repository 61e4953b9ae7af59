"""
Strawman comparison scheme

Each plaintext is encrypted on its own with AES-GCM. "Homomorphic"
operations do not compute anything: they build the unevaluated expression
`op(c1,c2)` over the operand ciphertexts, and decryption parses the
expression, decrypts every leaf and evaluates it. Ciphertext size therefore
grows linearly with the number of operations, which is what the benchmark
compares the mask ledger against.
"""

import base64
import binascii
import logging
import os
from typing import Optional, Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from key_store import KeyStore, get_key_store
from phe_config import load_config

log = logging.getLogger(__name__)

NONCE_SIZE = 12
KEY_BYTES = 16
OPERATORS = ("+", "-", "*")


class Strawman:
    """
    AES-GCM scheme with deferred evaluation.

    Args:
        key_path: Location of the AES key in `key_store`
        key_store: Key persistence provider
        allow_key_generation: Generate and save a key when none exists at key_path
    """

    DEFAULT_KEY_NAME = "aes-rnd.sk"

    def __init__(self, key_path: Optional[str] = None,
                 key_store: Optional[KeyStore] = None,
                 allow_key_generation: bool = True):
        if key_path is None or key_store is None:
            config = load_config()
            if key_path is None:
                key_path = config.key_path(self.DEFAULT_KEY_NAME)
            if key_store is None:
                key_store = get_key_store(config.key_backend)
        self.key_path = key_path
        self.key_store = key_store

        key = key_store.load_or_generate(key_path, allow_generation=allow_key_generation,
                                         length=KEY_BYTES)
        if len(key) not in (16, 24, 32):
            raise ValueError(f"AES key must be 16, 24 or 32 bytes, got {len(key)}")
        self._aesgcm = AESGCM(key)
        log.info(f"Strawman initialized with key {key_path}")

    def encrypt(self, m: int) -> str:
        nonce = os.urandom(NONCE_SIZE)
        ciphertext = self._aesgcm.encrypt(nonce, str(m).encode("utf-8"), None)
        return base64.b64encode(nonce + ciphertext).decode("ascii")

    def decrypt_single(self, cipher: str) -> int:
        """
        Decrypt one leaf ciphertext.

        Raises:
            ValueError: If the ciphertext is malformed or fails authentication
        """
        try:
            data = base64.b64decode(cipher, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Malformed strawman ciphertext: {e}") from e
        if len(data) <= NONCE_SIZE:
            raise ValueError("Malformed strawman ciphertext: too short")

        try:
            plaintext = self._aesgcm.decrypt(data[:NONCE_SIZE], data[NONCE_SIZE:], None)
        except InvalidTag:
            raise ValueError("Strawman ciphertext failed authentication") from None
        return int(plaintext.decode("utf-8"))

    @staticmethod
    def compute(op: str, m1: int, m2: int) -> int:
        if op == "+":
            return m1 + m2
        if op == "-":
            return m1 - m2
        if op == "*":
            return m1 * m2
        raise ValueError(f"Invalid op `{op}`")

    @staticmethod
    def _split(expression: str) -> Tuple[str, str, str]:
        """Split 'op(c1,c2)' into (op, c1, c2) at the top-level comma."""
        op = expression[0]
        if len(expression) < 5 or expression[1] != "(" or expression[-1] != ")":
            raise ValueError(f"Malformed strawman expression near {expression[:16]!r}")
        body = expression[2:-1]

        depth = 0
        for index, char in enumerate(body):
            if char == "(":
                depth += 1
            elif char == ")":
                depth -= 1
                if depth < 0:
                    break
            elif char == "," and depth == 0:
                return op, body[:index], body[index + 1:]
        raise ValueError(f"Malformed strawman expression near {expression[:16]!r}")

    def decrypt(self, cipher: str) -> int:
        """Decrypt a leaf ciphertext or evaluate an operation expression."""
        if "(" not in cipher:
            return self.decrypt_single(cipher)

        op, c1, c2 = self._split(cipher)
        return self.compute(op, self.decrypt(c1), self.decrypt(c2))

    @staticmethod
    def hom_op(op: str, c1: str, c2: str) -> str:
        if op not in OPERATORS:
            raise ValueError(f"Invalid op `{op}`")
        return f"{op}({c1},{c2})"

    def add(self, c1: str, c2: str) -> str:
        return self.hom_op("+", c1, c2)

    def sub(self, c1: str, c2: str) -> str:
        return self.hom_op("-", c1, c2)

    def multiply(self, c1: str, c2: str) -> str:
        return self.hom_op("*", c1, c2)

    @staticmethod
    def byte_size(cipher: str) -> int:
        return len(cipher.encode("ascii"))

    def __repr__(self) -> str:
        return "<Strawman AES-GCM>"
