"""
Array Ledger

Splits ledger entries by sign into a positive and a negative id list. Each
list is stored as:

    offset      first (smallest) id
    deltas      id differences from the previous id, deltas[0] == 0
    multiplier  default cardinality magnitude of the list
    overrides   list index -> magnitude, only for entries that differ

Example, positive cardinalities {3: 1, 5: 1, 6: 2, 7: 1, 12: 1}:

    offset = 3, deltas = [0, 2, 1, 1, 5], multiplier = 1, overrides = {2: 2}

Merging is an ordered merge over both ledgers: ids found in both operands
get their cardinalities summed and land in the list matching the sign of
the sum, or vanish when it is zero. Scaling by a negative value swaps the
two lists.
"""

import heapq
import logging
from collections import Counter
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from mask_ledger import INT_BYTES, LONG_BYTES, MaskEntry, MaskLedger

log = logging.getLogger(__name__)


class SignedIdList:
    """Delta-encoded ascending id list with one default magnitude and sparse overrides."""

    __slots__ = ("offset", "deltas", "multiplier", "overrides")

    def __init__(self):
        self.offset = 0
        self.deltas: List[int] = []
        self.multiplier = 1
        self.overrides: Dict[int, int] = {}

    @classmethod
    def from_pairs(cls, pairs: List[Tuple[int, int]]) -> "SignedIdList":
        """
        Build from ascending (id, magnitude) pairs.

        The most frequent magnitude becomes the list multiplier so that only
        exceptions are stored in `overrides`.
        """
        result = cls()
        if not pairs:
            return result

        result.multiplier = Counter(mag for _, mag in pairs).most_common(1)[0][0]
        result.offset = pairs[0][0]
        previous = result.offset
        for index, (mask_id, mag) in enumerate(pairs):
            result.deltas.append(mask_id - previous)
            previous = mask_id
            if mag != result.multiplier:
                result.overrides[index] = mag
        return result

    def __iter__(self) -> Iterator[Tuple[int, int]]:
        """Yield (id, magnitude) ascending by id."""
        mask_id = self.offset
        for index, delta in enumerate(self.deltas):
            mask_id += delta
            yield mask_id, self.overrides.get(index, self.multiplier)

    def __len__(self) -> int:
        return len(self.deltas)

    def magnitudes(self) -> Iterator[int]:
        yield self.multiplier
        yield from self.overrides.values()

    def scale_in_place(self, factor: int) -> None:
        self.multiplier *= factor
        for index in self.overrides:
            self.overrides[index] *= factor

    def byte_size(self) -> int:
        # offset, multiplier, size
        size = LONG_BYTES + LONG_BYTES + INT_BYTES
        size += len(self.deltas) * INT_BYTES
        size += len(self.overrides) * (INT_BYTES + LONG_BYTES)
        return size

    def copy(self) -> "SignedIdList":
        clone = SignedIdList()
        clone.offset = self.offset
        clone.deltas = list(self.deltas)
        clone.multiplier = self.multiplier
        clone.overrides = dict(self.overrides)
        return clone

    def __repr__(self) -> str:
        return (f"[siz={len(self.deltas)} ofs={self.offset} ids={self.deltas} "
                f"mult={self.multiplier} card={self.overrides}]")


class ArrayLedger(MaskLedger):
    """Mask ledger holding positive and negative cardinalities in two sorted id lists."""

    def __init__(self, cardinality_modulus: int):
        super().__init__(cardinality_modulus)
        self._pos = SignedIdList()
        self._neg = SignedIdList()

    def _load_entries(self, entries: Iterable[MaskEntry]) -> None:
        pos: List[Tuple[int, int]] = []
        neg: List[Tuple[int, int]] = []
        for mask_id, card in entries:
            card = self.reduce_cardinality(card)
            if card > 0:
                pos.append((mask_id, card))
            elif card < 0:
                neg.append((mask_id, -card))
        self._pos = SignedIdList.from_pairs(pos)
        self._neg = SignedIdList.from_pairs(neg)

    def _merge_same(self, other: "ArrayLedger") -> None:
        if other.is_empty():
            return
        if self.is_empty():
            self._pos = other._pos.copy()
            self._neg = other._neg.copy()
            return

        mine = self.iter_entries()
        theirs = other.iter_entries()
        merged: List[MaskEntry] = []

        a: Optional[MaskEntry] = next(mine, None)
        b: Optional[MaskEntry] = next(theirs, None)
        while a is not None or b is not None:
            if b is None or (a is not None and a[0] < b[0]):
                merged.append(a)
                a = next(mine, None)
            elif a is None or b[0] < a[0]:
                merged.append(b)
                b = next(theirs, None)
            else:
                # same id in both: relocated by _load_entries according to the new sign
                merged.append((a[0], a[1] + b[1]))
                a = next(mine, None)
                b = next(theirs, None)

        self._load_entries(merged)

    def _scale_nonzero(self, multiplier: int) -> None:
        if multiplier < 0:
            self._pos, self._neg = self._neg, self._pos
        factor = abs(multiplier)

        # Fast path: every product stays below half the modulus, so no
        # cardinality changes sign or reduces to zero.
        limit = self.cardinality_modulus // 2
        if all(mag * factor <= limit
               for ids in (self._pos, self._neg) if len(ids)
               for mag in ids.magnitudes()):
            self._pos.scale_in_place(factor)
            self._neg.scale_in_place(factor)
            return

        self._load_entries([(mask_id, card * factor) for mask_id, card in self.iter_entries()])

    def clear(self) -> None:
        self._pos = SignedIdList()
        self._neg = SignedIdList()

    def size(self) -> int:
        return len(self._pos) + len(self._neg)

    def run_count(self) -> int:
        return self.size()

    def iter_entries(self) -> Iterator[MaskEntry]:
        positive = ((mask_id, mag) for mask_id, mag in self._pos)
        negative = ((mask_id, -mag) for mask_id, mag in self._neg)
        return heapq.merge(positive, negative)

    def byte_size(self) -> int:
        return INT_BYTES + self._pos.byte_size() + self._neg.byte_size()

    def copy(self) -> "ArrayLedger":
        clone = ArrayLedger(self.cardinality_modulus)
        clone._pos = self._pos.copy()
        clone._neg = self._neg.copy()
        return clone

    def __repr__(self) -> str:
        return f"<ArrayLedger POS={self._pos!r} NEG={self._neg!r}>"
