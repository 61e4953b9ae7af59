"""
Range Ledger

Groups ledger entries by cardinality. Each group is a run-length encoded,
ascending id list (IdRuns):

    ids = [3, 5, 6, 7, 8, 12]

becomes

    offset = 3, deltas = [2, 7], runs = {0: 3}

The first run starts at `offset`; every later run start is stored as the
difference from the previous run start; `runs` maps a run index (-1 for the
offset run) to the number of consecutive ids following its start. Ids that
continue the last run only bump its counter, so summing consecutively
encrypted ciphertexts keeps a single run no matter how many are folded in.
"""

import heapq
import logging
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from mask_ledger import INT_BYTES, LONG_BYTES, MaskEntry, MaskLedger

log = logging.getLogger(__name__)

# (first id, last id, cardinality), inclusive bounds
Segment = Tuple[int, int, int]


class IdRuns:
    """Run-length encoded ascending list of distinct ids."""

    __slots__ = ("offset", "last_id", "deltas", "runs", "total")

    def __init__(self, first_id: int, extra: int = 0):
        self.offset = first_id
        # start of the last run
        self.last_id = first_id
        self.deltas: List[int] = []
        # run index -> number of consecutive ids after the run start
        self.runs: Dict[int, int] = {}
        self.total = extra + 1
        if extra:
            self.runs[-1] = extra

    def _last_index(self) -> int:
        return len(self.deltas) - 1

    def end(self) -> int:
        """Largest id held."""
        return self.last_id + self.runs.get(self._last_index(), 0)

    def append_run(self, start: int, extra: int = 0) -> None:
        """
        Add the ids start .. start+extra after every id already held.

        Raises:
            ValueError: If start does not come after the current last id
        """
        end = self.end()
        if start <= end:
            raise ValueError(f"Attempted to add id {start} when last id was {end}")

        if start == end + 1:
            index = self._last_index()
            self.runs[index] = self.runs.get(index, 0) + extra + 1
        else:
            self.deltas.append(start - self.last_id)
            self.last_id = start
            if extra:
                self.runs[self._last_index()] = extra
        self.total += extra + 1

    def intervals(self) -> Iterator[Tuple[int, int]]:
        """Yield (run start, extra) for every stored run, ascending."""
        start = self.offset
        yield start, self.runs.get(-1, 0)
        for index, delta in enumerate(self.deltas):
            start += delta
            yield start, self.runs.get(index, 0)

    def __iter__(self) -> Iterator[int]:
        for start, extra in self.intervals():
            yield from range(start, start + extra + 1)

    def __len__(self) -> int:
        return self.total

    @classmethod
    def from_intervals(cls, intervals: Iterable[Tuple[int, int]]) -> Optional["IdRuns"]:
        """Build from ascending (start, extra) pairs, coalescing adjacent runs."""
        result = None
        for start, extra in intervals:
            if result is None:
                result = cls(start, extra)
            else:
                result.append_run(start, extra)
        return result

    def merge(self, other: "IdRuns") -> None:
        """
        Fold a disjoint id list into this one, leaving `other` untouched.

        When every id of `other` comes after this list only the other runs are
        appended; otherwise both run lists are merged in id order.
        """
        if other.offset > self.end():
            for start, extra in other.intervals():
                self.append_run(start, extra)
            return

        merged = IdRuns.from_intervals(heapq.merge(self.intervals(), other.intervals()))
        self.offset = merged.offset
        self.last_id = merged.last_id
        self.deltas = merged.deltas
        self.runs = merged.runs
        self.total = merged.total

    def run_count(self) -> int:
        return len(self.deltas) + 1

    def byte_size(self) -> int:
        # offset, last id, size, total
        size = LONG_BYTES + LONG_BYTES + INT_BYTES + INT_BYTES
        size += len(self.deltas) * INT_BYTES
        size += len(self.runs) * INT_BYTES * 2
        return size

    def copy(self) -> "IdRuns":
        clone = IdRuns.__new__(IdRuns)
        clone.offset = self.offset
        clone.last_id = self.last_id
        clone.deltas = list(self.deltas)
        clone.runs = dict(self.runs)
        clone.total = self.total
        return clone

    def __repr__(self) -> str:
        return f"[size={len(self.deltas)} offset={self.offset} ids={self.deltas} ranges={self.runs}]"


def _overlaps(a: List[Segment], b: List[Segment]) -> bool:
    """True if two ascending, internally disjoint segment lists share an id."""
    i = j = 0
    while i < len(a) and j < len(b):
        if a[i][1] < b[j][0]:
            i += 1
        elif b[j][1] < a[i][0]:
            j += 1
        else:
            return True
    return False


class RangeLedger(MaskLedger):
    """Mask ledger keyed by cardinality, each group holding run-length encoded ids."""

    def __init__(self, cardinality_modulus: int):
        super().__init__(cardinality_modulus)
        self._groups: Dict[int, IdRuns] = {}
        self._size = 0

    def _load_entries(self, entries: Iterable[MaskEntry]) -> None:
        self.clear()
        for mask_id, card in entries:
            card = self.reduce_cardinality(card)
            if card == 0:
                continue
            runs = self._groups.get(card)
            if runs is None:
                self._groups[card] = IdRuns(mask_id)
            else:
                runs.append_run(mask_id)
            self._size += 1

    def _segments(self) -> List[Segment]:
        """Every stored run as (first id, last id, cardinality), ascending by id."""
        def tagged(card: int, runs: IdRuns):
            for start, extra in runs.intervals():
                yield start, start + extra, card

        return list(heapq.merge(*(tagged(card, runs) for card, runs in self._groups.items())))

    def _load_segments(self, segments: Iterable[Segment]) -> None:
        """Rebuild from ascending, disjoint segments; adjacent runs of equal cardinality coalesce."""
        self._groups = {}
        self._size = 0
        for first, last, card in segments:
            runs = self._groups.get(card)
            if runs is None:
                self._groups[card] = IdRuns(first, last - first)
            else:
                runs.append_run(first, last - first)
            self._size += last - first + 1

    def _combine(self, a: List[Segment], b: List[Segment]) -> Iterator[Segment]:
        """
        Sweep two ascending segment lists into disjoint segments, summing
        cardinalities where they overlap and dropping zero sums.
        """
        i = j = 0
        cur_a = a[0] if a else None
        cur_b = b[0] if b else None

        while cur_a is not None and cur_b is not None:
            a_first, a_last, a_card = cur_a
            b_first, b_last, b_card = cur_b

            if a_last < b_first:
                yield cur_a
                i += 1
                cur_a = a[i] if i < len(a) else None
            elif b_last < a_first:
                yield cur_b
                j += 1
                cur_b = b[j] if j < len(b) else None
            elif a_first < b_first:
                yield a_first, b_first - 1, a_card
                cur_a = (b_first, a_last, a_card)
            elif b_first < a_first:
                yield b_first, a_first - 1, b_card
                cur_b = (a_first, b_last, b_card)
            else:
                last = min(a_last, b_last)
                card = self.reduce_cardinality(a_card + b_card)
                if card != 0:
                    yield a_first, last, card
                if a_last > last:
                    cur_a = (last + 1, a_last, a_card)
                else:
                    i += 1
                    cur_a = a[i] if i < len(a) else None
                if b_last > last:
                    cur_b = (last + 1, b_last, b_card)
                else:
                    j += 1
                    cur_b = b[j] if j < len(b) else None

        if cur_a is not None:
            yield cur_a
            yield from a[i + 1:]
        if cur_b is not None:
            yield cur_b
            yield from b[j + 1:]

    def _merge_same(self, other: "RangeLedger") -> None:
        if not other._groups:
            return
        if not self._groups:
            self._groups = {card: runs.copy() for card, runs in other._groups.items()}
            self._size = other._size
            return

        my_first, my_last = self._id_span()
        their_first, their_last = other._id_span()
        if their_first > my_last or their_last < my_first:
            self._merge_groups(other)
            return

        mine = self._segments()
        theirs = other._segments()
        if _overlaps(mine, theirs):
            # shared ids change cardinality group or cancel out
            self._load_segments(list(self._combine(mine, theirs)))
            log.debug(f"Merged overlapping ledgers into {self._size} entries")
            return
        self._merge_groups(other)

    def _id_span(self) -> Tuple[int, int]:
        """Smallest and largest id held; the ledger must not be empty."""
        groups = self._groups.values()
        return min(runs.offset for runs in groups), max(runs.end() for runs in groups)

    def _merge_groups(self, other: "RangeLedger") -> None:
        """Fold in a ledger sharing no id with this one, group by group."""
        for card, runs in other._groups.items():
            own = self._groups.get(card)
            if own is None:
                self._groups[card] = runs.copy()
            else:
                own.merge(runs)
        self._size += other._size

    def _scale_nonzero(self, multiplier: int) -> None:
        scaled: Dict[int, IdRuns] = {}
        for card, runs in self._groups.items():
            new_card = self.reduce_cardinality(card * multiplier)
            if new_card == 0:
                self._size -= runs.total
                continue
            own = scaled.get(new_card)
            if own is None:
                scaled[new_card] = runs
            else:
                # distinct cardinalities collapsed under a non-invertible multiplier
                own.merge(runs)
        self._groups = scaled

    def clear(self) -> None:
        self._groups = {}
        self._size = 0

    def size(self) -> int:
        return self._size

    def run_count(self) -> int:
        return sum(runs.run_count() for runs in self._groups.values())

    def cardinalities(self) -> List[int]:
        """Distinct cardinalities currently held."""
        return sorted(self._groups)

    def iter_entries(self) -> Iterator[MaskEntry]:
        def tagged(card: int, runs: IdRuns):
            for mask_id in runs:
                yield mask_id, card

        return heapq.merge(*(tagged(card, runs) for card, runs in self._groups.items()))

    def byte_size(self) -> int:
        size = INT_BYTES
        for runs in self._groups.values():
            size += LONG_BYTES + runs.byte_size()
        return size

    def copy(self) -> "RangeLedger":
        clone = RangeLedger(self.cardinality_modulus)
        clone._groups = {card: runs.copy() for card, runs in self._groups.items()}
        clone._size = self._size
        return clone
