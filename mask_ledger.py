"""
Mask Ledger

A ledger records which masks were folded into a ciphertext value and with
what signed weight (cardinality). It is a multiset of (id, cardinality)
pairs supporting three operations:

- merge: multiset union, cardinalities of shared ids are summed and entries
  whose sum is zero disappear (mask cancellation)
- scale: multiply every cardinality by an integer; scaling by zero empties
  the ledger
- extract: expand to the literal (id, cardinality) list, sorted by id

Cardinalities live in the ring of a `cardinality_modulus` and are kept as
symmetric residues in (-m/2, m/2].

Two realizations share this contract: RangeLedger (range_ledger.py) and
ArrayLedger (array_ledger.py). Ledgers of different realizations never mix.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Iterable, Iterator, List, Optional, Tuple

from modular_arithmetic import check_modulus, to_signed

log = logging.getLogger(__name__)

# (id, cardinality)
MaskEntry = Tuple[int, int]

# Accounting sizes used by byte_size(); a cardinality-keyed header and
# 4-byte id deltas, as a fixed-width implementation would store them.
LONG_BYTES = 8
INT_BYTES = 4


class LedgerType(Enum):
    """Available ledger realizations."""
    RANGE = "range"
    ARRAY = "array"


class LedgerTypeMismatchError(TypeError):
    """Raised when two ledgers of different realizations or moduli are combined."""
    pass


class MaskLedger(ABC):
    """Common contract of the ledger realizations."""

    def __init__(self, cardinality_modulus: int):
        self.cardinality_modulus = check_modulus(cardinality_modulus)

    # -- construction -----------------------------------------------------

    @classmethod
    def singleton(cls, mask_id: int, cardinality_modulus: int) -> "MaskLedger":
        """Ledger holding the single entry (mask_id, 1), as produced by encrypt()."""
        ledger = cls(cardinality_modulus)
        ledger._load_entries([(mask_id, 1)])
        return ledger

    @classmethod
    def from_entries(cls, entries: Iterable[MaskEntry], cardinality_modulus: int) -> "MaskLedger":
        """
        Build a ledger from arbitrary (id, cardinality) pairs.

        Repeated ids are summed and zero cardinalities dropped, so the result
        is the same as merging one singleton per pair.
        """
        ledger = cls(cardinality_modulus)
        totals = {}
        for mask_id, card in entries:
            if mask_id < 0:
                raise ValueError(f"Mask id must be non-negative, got {mask_id}")
            totals[mask_id] = totals.get(mask_id, 0) + card
        ledger._load_entries(
            (mask_id, card) for mask_id, card in sorted(totals.items())
        )
        return ledger

    # -- abstract realization hooks --------------------------------------

    @abstractmethod
    def _load_entries(self, entries: Iterable[MaskEntry]) -> None:
        """Replace the contents with entries sorted by id, reducing and dropping zeros."""

    @abstractmethod
    def _merge_same(self, other: "MaskLedger") -> None:
        """Merge a ledger already checked to be of the same realization and modulus."""

    @abstractmethod
    def _scale_nonzero(self, multiplier: int) -> None:
        """Scale by a multiplier already reduced to a non-zero symmetric residue."""

    @abstractmethod
    def clear(self) -> None:
        """Remove every entry."""

    @abstractmethod
    def size(self) -> int:
        """Number of (id, cardinality) entries represented."""

    @abstractmethod
    def run_count(self) -> int:
        """Number of runs physically stored; grows with gaps, not with entries."""

    @abstractmethod
    def iter_entries(self) -> Iterator[MaskEntry]:
        """Yield every entry, sorted by id."""

    @abstractmethod
    def byte_size(self) -> int:
        """Estimated serialized size in bytes."""

    @abstractmethod
    def copy(self) -> "MaskLedger":
        """Independent deep copy."""

    # -- public contract --------------------------------------------------

    def reduce_cardinality(self, card: int) -> int:
        """Canonical signed residue of a cardinality."""
        return to_signed(card, self.cardinality_modulus)

    def merge(self, other: "MaskLedger") -> "MaskLedger":
        """
        Fold another ledger into this one (multiset union with cancellation).

        Args:
            other: Ledger of the same realization and cardinality modulus.
                   It is left untouched.

        Returns:
            self

        Raises:
            LedgerTypeMismatchError: If the realizations or moduli differ
        """
        if type(other) is not type(self):
            raise LedgerTypeMismatchError(
                f"Cannot merge {type(other).__name__} into {type(self).__name__}"
            )
        if other.cardinality_modulus != self.cardinality_modulus:
            raise LedgerTypeMismatchError(
                f"Cardinality modulus mismatch: {self.cardinality_modulus} != {other.cardinality_modulus}"
            )
        if other is self:
            other = other.copy()
        self._merge_same(other)
        return self

    def scale(self, multiplier: int) -> "MaskLedger":
        """
        Multiply every cardinality by `multiplier` modulo the cardinality modulus.

        Returns:
            self
        """
        multiplier = self.reduce_cardinality(multiplier)
        if multiplier == 0:
            self.clear()
        elif multiplier != 1:
            self._scale_nonzero(multiplier)
        return self

    def extract(self) -> List[MaskEntry]:
        """Expand to the literal list of (id, cardinality) pairs, sorted by id."""
        return list(self.iter_entries())

    def is_empty(self) -> bool:
        return self.size() == 0

    def __len__(self) -> int:
        return self.size()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MaskLedger):
            return NotImplemented
        return (self.cardinality_modulus == other.cardinality_modulus
                and self.extract() == other.extract())

    def __repr__(self) -> str:
        return f"<{type(self).__name__} entries={self.size()} runs={self.run_count()}>"


def ledger_class(ledger_type: LedgerType):
    """Return the ledger class implementing a LedgerType."""
    # Imported here: both realizations import this module.
    from array_ledger import ArrayLedger
    from range_ledger import RangeLedger

    if ledger_type == LedgerType.RANGE:
        return RangeLedger
    if ledger_type == LedgerType.ARRAY:
        return ArrayLedger
    raise ValueError(f"Invalid ledger type: {ledger_type!r}")


def parse_ledger_type(value: Optional[str]) -> LedgerType:
    """Parse a ledger type name ('range' or 'array'); None selects RANGE."""
    if value is None:
        return LedgerType.RANGE
    if isinstance(value, LedgerType):
        return value
    try:
        return LedgerType(value.strip().lower())
    except ValueError:
        raise ValueError(f"Invalid ledger type: {value!r} (expected 'range' or 'array')") from None
