"""
Public-key PHE baselines

Reference schemes the symmetric engines are compared against:

1. Paillier - additively homomorphic, with plaintext packing of several
   signed 95-bit slots into one ciphertext
2. ElGamal - multiplicatively homomorphic over Z_n* for a prime n

Both load their key pair through a KeyStore (JSON documents of decimal
strings) and generate one on first use. A scheme constructed with
`public_only=True` can evaluate but not decrypt, the way an untrusted
server would hold it.
"""

import json
import logging
import math
import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from key_store import InvalidKeyMaterialError, KeyStore, get_key_store
from modular_arithmetic import mod_inverse
from phe_config import load_config

log = logging.getLogger(__name__)

# Width of one packed Paillier slot: a 64-bit value plus 31 bits of headroom
# for sums, stored as a signed two's complement field.
SLOT_BITS = 95
MILLER_RABIN_ROUNDS = 40
# Odd primes below 200 for trial division ahead of Miller-Rabin
SMALL_PRIMES = (
    3, 5, 7, 11, 13, 17, 19, 23, 29, 31, 37, 41, 43, 47, 53, 59, 61, 67, 71, 73, 79, 83,
    89, 97, 101, 103, 107, 109, 113, 127, 131, 137, 139, 149, 151, 157, 163, 167, 173,
    179, 181, 191, 193, 197, 199,
)


def _is_witness(a: int, d: int, r: int, n: int) -> bool:
    """True if `a` proves n composite, where n - 1 = d * 2^r with d odd."""
    x = pow(a, d, n)
    if x == 1 or x == n - 1:
        return False
    for _ in range(r - 1):
        x = x * x % n
        if x == n - 1:
            return False
    return True


def is_probable_prime(n: int, rounds: int = MILLER_RABIN_ROUNDS) -> bool:
    """
    Primality test: trial division by small primes, then `rounds` Miller-Rabin
    rounds with random bases.
    """
    if n < 2:
        return False
    if n % 2 == 0:
        return n == 2
    for p in SMALL_PRIMES:
        if n % p == 0:
            return n == p
    if n < SMALL_PRIMES[-1] ** 2:
        return True

    d, r = n - 1, 0
    while d % 2 == 0:
        d >>= 1
        r += 1
    return not any(_is_witness(secrets.randbelow(n - 3) + 2, d, r, n) for _ in range(rounds))


def generate_prime(bits: int) -> int:
    """
    Generate a random prime of exactly `bits` bits.

    The two most significant bits are set, so the product of two such primes
    has exactly the sum of their sizes.
    """
    if bits < 8:
        raise ValueError(f"Prime size must be at least 8 bits, got {bits}")
    top = 3 << (bits - 2)
    while True:
        candidate = secrets.randbits(bits) | top | 1
        if is_probable_prime(candidate):
            return candidate


def _pow_signed(base: int, exponent: int, modulus: int) -> int:
    """Modular power accepting negative exponents; raises NoInverseError."""
    if exponent < 0:
        base = mod_inverse(base, modulus)
        exponent = -exponent
    return pow(base, exponent, modulus)


def _int_to_bytes(value: int) -> bytes:
    return value.to_bytes(max(1, (value.bit_length() + 7) // 8), "big")


class AsymPHE(ABC):
    """
    Base of the public-key baselines.

    Args:
        neg_divisor: Values >= n / neg_divisor decrypt as negative; 1 disables
        public_key_path: Location of the public key in `key_store`
        private_key_path: Location of the private key in `key_store`
        key_store: Key persistence provider
        key_bits: Modulus size. A key pair of this size is generated when none
                  exists; a stored key of another size is rejected. None
                  generates at the configured size and accepts a stored
                  key of any size
        public_only: Load only the public key; it must already exist

    Raises:
        InvalidKeyMaterialError: If public_only is set and no public key exists,
            or the stored modulus size differs from an explicit key_bits
    """

    DEFAULT_KEY_NAME = ""

    def __init__(self, neg_divisor: Optional[int] = None,
                 public_key_path: Optional[str] = None,
                 private_key_path: Optional[str] = None,
                 key_store: Optional[KeyStore] = None,
                 key_bits: Optional[int] = None,
                 public_only: bool = False):
        config = load_config()
        self.neg_divisor = config.neg_divisor if neg_divisor is None else neg_divisor
        self.key_bits = config.asym_key_bits if key_bits is None else key_bits
        # default key files are per modulus size
        key_name = f"{self.DEFAULT_KEY_NAME}-{self.key_bits}"
        self.public_key_path = public_key_path or config.key_path(f"{key_name}.pk")
        self.private_key_path = None
        if not public_only:
            self.private_key_path = private_key_path or config.key_path(f"{key_name}.sk")
        self.key_store = key_store if key_store is not None else get_key_store(config.key_backend)

        if not self._keys_exist():
            if public_only:
                log.error(f"Public key not found at {self.public_key_path}")
                raise InvalidKeyMaterialError(f"Could not find public key at {self.public_key_path}")
            self.key_gen()

        public = self._load_document(self.public_key_path)
        private = None
        if self.private_key_path is not None:
            private = self._load_document(self.private_key_path)
        self._set_keys(public, private)
        if key_bits is not None and self.key_bits != key_bits:
            log.error(f"Key at {self.public_key_path} has a {self.key_bits}-bit modulus, {key_bits} requested")
            raise InvalidKeyMaterialError(
                f"Key at {self.public_key_path} has a {self.key_bits}-bit modulus, not the requested {key_bits} bits"
            )

        self.setup_negative(self.neg_divisor)
        log.info(f"{self!r} initialized (public only: {public_only})")

    # -- keys --------------------------------------------------------------

    def _keys_exist(self) -> bool:
        if not self.key_store.exists(self.public_key_path):
            return False
        return self.private_key_path is None or self.key_store.exists(self.private_key_path)

    def _save_document(self, document: Dict[str, Any], location: str) -> None:
        self.key_store.save(json.dumps(document), location)

    def _load_document(self, location: str) -> Dict[str, Any]:
        raw = self.key_store.load(location)
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise InvalidKeyMaterialError(f"Key at {location} is not a valid key document: {e}") from e

    def _save_key_pair(self, public: Dict[str, Any], private: Dict[str, Any]) -> None:
        self._save_document(private, self.private_key_path)
        self._save_document(public, self.public_key_path)
        log.info(f"Generated {type(self).__name__} key pair ({self.key_bits} bits)")

    @abstractmethod
    def key_gen(self) -> None:
        """Generate a key pair and persist it."""

    @abstractmethod
    def _set_keys(self, public: Dict[str, Any], private: Optional[Dict[str, Any]]) -> None:
        """Install key parameters loaded from the key store."""

    def _require_private(self) -> None:
        if self.private_key_path is None:
            raise InvalidKeyMaterialError(f"{type(self).__name__} was loaded without a private key")

    # -- signs ---------------------------------------------------------------

    def setup_negative(self, neg_divisor: int) -> None:
        """Set the threshold separating positive from negative plaintexts."""
        if neg_divisor < 1:
            raise ValueError(f"Negativity divisor must be >= 1, got {neg_divisor}")
        self.neg_threshold = None
        if neg_divisor != 1:
            self.neg_threshold = self.n // neg_divisor

    def handle_negative(self, m: int) -> int:
        if self.neg_threshold is not None and m >= self.neg_threshold:
            m -= self.n
        return m

    @abstractmethod
    def encrypt(self, m: int):
        """Encrypt a plaintext integer."""

    @abstractmethod
    def decrypt(self, c) -> int:
        """Decrypt a ciphertext into a signed plaintext integer."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} modLength={self.key_bits}>"


class Paillier(AsymPHE):
    """
    Paillier cryptosystem - additively homomorphic.
    Supports addition of encrypted values and multiplication by plaintext constants.
    """

    DEFAULT_KEY_NAME = "paillier"

    def key_gen(self) -> None:
        # Two primes whose sizes add up to the requested modulus size
        p_bits = self.key_bits // 2
        p = generate_prime(p_bits)
        q = generate_prime(self.key_bits - p_bits)
        while p == q:
            q = generate_prime(self.key_bits - p_bits)

        n = p * q
        n_squared = n * n

        # lambda = lcm(p-1, q-1)
        lambda_n = ((p - 1) * (q - 1)) // math.gcd(p - 1, q - 1)

        # g = n + 1; mu = (L(g^lambda mod n^2))^(-1) mod n, where L(x) = (x - 1) / n
        g = n + 1
        l_value = (pow(g, lambda_n, n_squared) - 1) // n
        mu = mod_inverse(l_value, n)

        self._save_key_pair(
            {'n': str(n), 'g': str(g), 'key_bits': self.key_bits},
            {'lambda': str(lambda_n), 'mu': str(mu)},
        )

    def _set_keys(self, public: Dict[str, Any], private: Optional[Dict[str, Any]]) -> None:
        try:
            self.n = int(public['n'])
            self.g = int(public['g'])
            self.n_squared = self.n * self.n
            self.lambda_n = int(private['lambda']) if private else None
            self.mu = int(private['mu']) if private else None
        except (KeyError, ValueError) as e:
            raise InvalidKeyMaterialError(f"Malformed Paillier key: {e}") from e
        self.key_bits = self.n.bit_length()

    def _random_factor(self) -> int:
        # r^n mod n^2 for a random r in Z_n*
        r = secrets.randbelow(self.n - 1) + 1
        while math.gcd(r, self.n) != 1:
            r = secrets.randbelow(self.n - 1) + 1
        return pow(r, self.n, self.n_squared)

    def _raw_encrypt(self, m: int) -> int:
        gm = pow(self.g, m % self.n, self.n_squared)
        return (gm * self._random_factor()) % self.n_squared

    def _raw_decrypt(self, c: int) -> int:
        self._require_private()
        l_value = (pow(c, self.lambda_n, self.n_squared) - 1) // self.n
        return (l_value * self.mu) % self.n

    def encrypt(self, m: int) -> int:
        return self._raw_encrypt(m)

    def decrypt(self, c: int) -> int:
        return self.handle_negative(self._raw_decrypt(c))

    def add(self, c1: int, c2: int) -> int:
        return (c1 * c2) % self.n_squared

    def add_plaintext(self, c: int, m: int) -> int:
        return (c * pow(self.g, m % self.n, self.n_squared)) % self.n_squared

    def subtract(self, c1: int, c2: int) -> int:
        return self.add(c1, self.negate(c2))

    def multiply(self, c: int, m: int) -> int:
        """Multiply by a plaintext scalar (negative scalars allowed)."""
        return _pow_signed(c, m, self.n_squared)

    def negate(self, c: int) -> int:
        return self.multiply(c, -1)

    # -- packing -----------------------------------------------------------

    @property
    def slot_capacity(self) -> int:
        """Number of signed 95-bit slots one plaintext holds."""
        return (self.n.bit_length() - 2) // SLOT_BITS

    def pack(self, messages: Sequence[int]) -> int:
        """
        Pack signed messages into one plaintext, first message in the lowest slot.

        Raises:
            ValueError: If there are more messages than slots or one does not fit its slot
        """
        if len(messages) > self.slot_capacity:
            raise ValueError(f"Cannot pack {len(messages)} messages, capacity is {self.slot_capacity}")
        bound = 1 << (SLOT_BITS - 1)
        packed = 0
        for i, m in enumerate(messages):
            if not -bound <= m < bound:
                raise ValueError(f"Message {m} does not fit a {SLOT_BITS}-bit slot")
            packed += m << (SLOT_BITS * i)
        return packed

    def unpack(self, packed: int, count: Optional[int] = None) -> List[int]:
        """Split a signed packed plaintext into `count` slots (all slots by default)."""
        if count is None:
            count = self.slot_capacity
        mask = (1 << SLOT_BITS) - 1
        half = 1 << (SLOT_BITS - 1)
        messages = []
        for _ in range(count):
            r = packed & mask
            if r >= half:
                r -= 1 << SLOT_BITS
            messages.append(r)
            packed = (packed - r) >> SLOT_BITS
        return messages

    def encrypt_packed(self, messages: Sequence[int]) -> int:
        return self._raw_encrypt(self.pack(messages))

    def decrypt_packed(self, c: int, count: Optional[int] = None) -> List[int]:
        m = self._raw_decrypt(c)
        if m >= self.n // 2:
            m -= self.n
        return self.unpack(m, count)

    def add_plaintext_packed(self, c: int, messages: Sequence[int]) -> int:
        return self.add_plaintext(c, self.pack(messages))

    @staticmethod
    def to_bytes(c: int) -> bytes:
        return _int_to_bytes(c)

    @staticmethod
    def from_bytes(data: bytes) -> int:
        return int.from_bytes(data, "big")


@dataclass(frozen=True)
class ElGamalCiphertext:
    """ElGamal ciphertext (g^r, m * h^r)."""
    c1: int
    c2: int


class ElGamal(AsymPHE):
    """ElGamal over Z_n* for a prime n - multiplicatively homomorphic."""

    DEFAULT_KEY_NAME = "elgamal"

    def key_gen(self) -> None:
        n = generate_prime(self.key_bits)
        g = secrets.randbelow(n - 3) + 2
        x = secrets.randbelow(n - 3) + 2
        h = pow(g, x, n)
        self._save_key_pair(
            {'n': str(n), 'g': str(g), 'h': str(h), 'key_bits': self.key_bits},
            {'x': str(x)},
        )

    def _set_keys(self, public: Dict[str, Any], private: Optional[Dict[str, Any]]) -> None:
        try:
            self.n = int(public['n'])
            self.g = int(public['g'])
            self.h = int(public['h'])
            self.x = int(private['x']) if private else None
        except (KeyError, ValueError) as e:
            raise InvalidKeyMaterialError(f"Malformed ElGamal key: {e}") from e
        self.key_bits = self.n.bit_length()

    def encrypt(self, m: int) -> ElGamalCiphertext:
        r = secrets.randbelow(self.n - 2) + 1
        c1 = pow(self.g, r, self.n)
        s = pow(self.h, r, self.n)
        return ElGamalCiphertext(c1, (m * s) % self.n)

    def decrypt(self, c: ElGamalCiphertext) -> int:
        """
        Raises:
            NoInverseError: If the shared secret is not invertible (malformed ciphertext)
        """
        self._require_private()
        s = pow(c.c1, self.x, self.n)
        m = (c.c2 * mod_inverse(s, self.n)) % self.n
        return self.handle_negative(m)

    def multiply(self, c1: ElGamalCiphertext, c2: ElGamalCiphertext) -> ElGamalCiphertext:
        return ElGamalCiphertext((c1.c1 * c2.c1) % self.n, (c1.c2 * c2.c2) % self.n)

    def multiply_plaintext(self, c: ElGamalCiphertext, m: int) -> ElGamalCiphertext:
        return ElGamalCiphertext(c.c1, (c.c2 * m) % self.n)

    def divide(self, c1: ElGamalCiphertext, c2: ElGamalCiphertext) -> ElGamalCiphertext:
        """
        Raises:
            NoInverseError: If c2 encrypts zero
        """
        return self.multiply(c1, self.inverse(c2))

    def pow(self, c: ElGamalCiphertext, e: int) -> ElGamalCiphertext:
        """
        Raises:
            NoInverseError: If e < 0 and c encrypts zero
        """
        return ElGamalCiphertext(_pow_signed(c.c1, e, self.n), _pow_signed(c.c2, e, self.n))

    def inverse(self, c: ElGamalCiphertext) -> ElGamalCiphertext:
        return self.pow(c, -1)

    @staticmethod
    def to_bytes(c: ElGamalCiphertext) -> bytes:
        return json.dumps({'c1': str(c.c1), 'c2': str(c.c2)}).encode("utf-8")

    @staticmethod
    def from_bytes(data: bytes) -> ElGamalCiphertext:
        try:
            doc = json.loads(data.decode("utf-8"))
            return ElGamalCiphertext(int(doc['c1']), int(doc['c2']))
        except (UnicodeDecodeError, json.JSONDecodeError, KeyError, ValueError) as e:
            raise ValueError(f"Malformed ElGamal ciphertext: {e}") from e
