"""
Symmetric-key PHE engine

Shared machinery of SymAHE and SymMHE:

- loading (or generating and persisting) the secret key through a KeyStore
- the keyed mask generator derived from that key
- the id counter: strictly increasing, never reused, guarded by a lock
- the negativity threshold that maps the upper part of the ring to
  negative plaintexts
- SymCiphertext, a (value, mask ledger) pair whose operators mutate it in
  place

The concrete schemes decide how masks combine with values.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Union

from key_store import KeyStore, generate_key, get_key_store
from mask_generator import KeyedMaskGenerator
from mask_ledger import LedgerType, MaskEntry, MaskLedger, ledger_class, parse_ledger_type
from modular_arithmetic import (MAX_INT64, mod_add, mod_mul, mod_pow, mod_reduce,
                                mod_sub)
from phe_config import load_config

log = logging.getLogger(__name__)

FIRST_ID = 1
LAST_ID = MAX_INT64

# value of a ciphertext, as a fixed-width implementation stores it
VALUE_BYTES = 8


class IdExhaustionError(Exception):
    """Raised when an engine has no unused mask id left."""
    pass


class SymCiphertext:
    """
    Ciphertext of the symmetric schemes: a ring value plus the ledger of the
    masks folded into it.

    Operators mutate the ciphertext in place and return it. They are not
    thread-safe; copy() a ciphertext before sharing it between threads.
    """

    __slots__ = ("value", "ledger")

    def __init__(self, value: int, ledger: MaskLedger):
        self.value = value
        self.ledger = ledger

    @property
    def size(self) -> int:
        """Number of mask entries in the ledger."""
        return self.ledger.size()

    def extract_ids(self) -> List[MaskEntry]:
        """The (id, cardinality) entries to remove at decryption, sorted by id."""
        return self.ledger.extract()

    def byte_size(self) -> int:
        """Estimated size of the ciphertext in bytes (value plus ledger)."""
        return VALUE_BYTES + self.ledger.byte_size()

    def copy(self) -> "SymCiphertext":
        return SymCiphertext(self.value, self.ledger.copy())

    # -- value-only operations -------------------------------------------

    def add_value(self, m: int, modulo: int) -> "SymCiphertext":
        self.value = mod_add(self.value, m, modulo)
        return self

    def sub_value(self, m: int, modulo: int) -> "SymCiphertext":
        self.value = mod_sub(self.value, m, modulo)
        return self

    def multiply_value(self, m: int, modulo: int) -> "SymCiphertext":
        self.value = mod_mul(self.value, m, modulo)
        return self

    def raise_value(self, e: int, modulo: int) -> "SymCiphertext":
        self.value = mod_pow(self.value, e, modulo)
        return self

    # -- ciphertext operations -------------------------------------------

    def add(self, other: "SymCiphertext", modulo: int) -> "SymCiphertext":
        """Additive combination: values added, ledgers merged."""
        self.add_value(other.value, modulo)
        self.ledger.merge(other.ledger)
        return self

    def subtract(self, other: "SymCiphertext", modulo: int) -> "SymCiphertext":
        """Additive difference; `other` is left untouched."""
        negated = other.ledger.copy().scale(-1)
        self.sub_value(other.value, modulo)
        self.ledger.merge(negated)
        return self

    def multiply_scalar(self, m: int, modulo: int) -> "SymCiphertext":
        """Scalar multiple of an additive ciphertext: value and cardinalities times m."""
        self.multiply_value(m, modulo)
        self.ledger.scale(m)
        return self

    def multiply(self, other: "SymCiphertext", modulo: int) -> "SymCiphertext":
        """Multiplicative combination: values multiplied, ledgers merged."""
        self.multiply_value(other.value, modulo)
        self.ledger.merge(other.ledger)
        return self

    def pow(self, e: int, modulo: int) -> "SymCiphertext":
        """Power of a multiplicative ciphertext: value raised, cardinalities times e."""
        self.raise_value(e, modulo)
        self.ledger.scale(e)
        return self

    def __repr__(self) -> str:
        return f"{type(self).__name__}<value={self.value} ledger={self.ledger!r}>"


class SymPHE(ABC):
    """
    Base of the symmetric-key PHE schemes.

    Arguments left as None take their value from the environment
    configuration (phe_config.load_config).

    Args:
        ledger_type: Ledger realization used by ciphertexts (LedgerType or its name)
        neg_divisor: Values >= modulus / neg_divisor decrypt as negative; 1 disables
        key_path: Location of the secret key in `key_store`
        key_store: Key persistence provider
        allow_key_generation: Generate and save a key when none exists at key_path
        first_id: First mask id handed out by this engine
        last_id: Last mask id this engine may hand out; disjoint
                 [first_id, last_id] ranges let several engines share one key

    Raises:
        InvalidKeyMaterialError: If the key is missing and generation is disabled
        KeyStoreError: If the key cannot be read or persisted
    """

    # set by subclasses
    modulo: int = 0
    DEFAULT_KEY_NAME = ""

    def __init__(self, ledger_type: Union[LedgerType, str, None] = None,
                 neg_divisor: Optional[int] = None,
                 key_path: Optional[str] = None,
                 key_store: Optional[KeyStore] = None,
                 allow_key_generation: bool = True,
                 first_id: int = FIRST_ID,
                 last_id: int = LAST_ID):
        if not FIRST_ID <= first_id <= last_id <= LAST_ID:
            raise ValueError(f"Invalid id range [{first_id}, {last_id}]")

        if None in (ledger_type, neg_divisor, key_path, key_store):
            config = load_config()
            if ledger_type is None:
                ledger_type = config.ledger_type
            if neg_divisor is None:
                neg_divisor = config.neg_divisor
            if key_path is None:
                key_path = config.key_path(self.DEFAULT_KEY_NAME)
            if key_store is None:
                key_store = get_key_store(config.key_backend)

        self.ledger_type = parse_ledger_type(ledger_type)
        self._ledger_class = ledger_class(self.ledger_type)
        self.key_path = key_path
        self.key_store = key_store

        # Without the private key we cannot do anything.
        key = self.key_store.load_or_generate(key_path, allow_generation=allow_key_generation)
        self._mask_generator = KeyedMaskGenerator(key)

        self._id_lock = threading.Lock()
        self._next_id = first_id
        self.last_id = last_id

        self.setup_negative(neg_divisor)
        log.info(f"{type(self).__name__} initialized: ledger={self.ledger_type.value}, "
                 f"neg_divisor={neg_divisor}, key={key_path}")

    def key_gen(self) -> None:
        """
        Replace the secret key with a fresh one and persist it.

        Ciphertexts produced under the previous key can no longer be decrypted.
        """
        key = generate_key()
        self.key_store.save(key, self.key_path)
        self._mask_generator = KeyedMaskGenerator(key)
        log.info(f"{type(self).__name__} generated a new key at {self.key_path}")

    # -- ids, masks and signs --------------------------------------------

    def next_id(self) -> int:
        """
        Allocate the next unused mask id.

        Raises:
            IdExhaustionError: If every id of the engine's range was handed out
        """
        with self._id_lock:
            mask_id = self._next_id
            if mask_id > self.last_id:
                raise IdExhaustionError(f"Mask ids exhausted (last id {self.last_id})")
            self._next_id = mask_id + 1
        if mask_id == self.last_id:
            log.warning(f"{type(self).__name__} handed out its last mask id {mask_id}")
        return mask_id

    @property
    def ids_remaining(self) -> int:
        return self.last_id - self._next_id + 1

    def rand_num(self, mask_id: int, modulo: Optional[int] = None) -> int:
        """Keyed pseudorandom value of a mask id in [0, modulo)."""
        return self._mask_generator.mask(mask_id, self.modulo if modulo is None else modulo)

    def setup_negative(self, neg_divisor: int) -> None:
        """Set the threshold separating positive from negative plaintexts."""
        if neg_divisor < 1:
            raise ValueError(f"Negativity divisor must be >= 1, got {neg_divisor}")
        self.neg_divisor = neg_divisor
        self.neg_threshold = 0
        if neg_divisor != 1:
            self.neg_threshold = self.modulo // neg_divisor

    def handle_negative(self, m: int) -> int:
        """Shift a decrypted residue into the signed plaintext range."""
        if self.neg_threshold != 0 and m >= self.neg_threshold:
            m -= self.modulo
        return m

    def new_ciphertext(self, value: int, mask_id: int) -> SymCiphertext:
        """Wrap a freshly masked value with a singleton ledger."""
        ledger = self._ledger_class.singleton(mask_id, self.cardinality_modulus)
        return SymCiphertext(mod_reduce(value, self.modulo), ledger)

    @property
    @abstractmethod
    def cardinality_modulus(self) -> int:
        """Modulus of the ring that ledger cardinalities live in."""

    # -- scheme interface ------------------------------------------------

    @abstractmethod
    def encrypt(self, m: int) -> SymCiphertext:
        """Encrypt a plaintext integer."""

    @abstractmethod
    def decrypt(self, c: SymCiphertext) -> int:
        """Decrypt a ciphertext into a signed plaintext integer."""

    def encrypt_many(self, messages: Iterable[int]) -> List[SymCiphertext]:
        """Encrypt several plaintexts with consecutive ids."""
        return [self.encrypt(m) for m in messages]

    def __repr__(self) -> str:
        return f"<{type(self).__name__}>"
