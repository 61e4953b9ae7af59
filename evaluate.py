"""
Benchmark harness

Compares the symmetric schemes against the public-key baselines:

- sum: selectivity sweep summing random encryptions with SymAHE, the
  strawman and Paillier; reports time and final ciphertext size
- ahe: per-operation average time of SymAHE vs Paillier
- mhe: per-operation average time of SymMHE vs ElGamal
- packed: per-message time of Paillier with packed plaintexts

Times are nanoseconds. Every benchmark returns dataclass rows; the command
line prints them as tab-separated tables:

    python evaluate.py sum --iterations 1000
"""

import argparse
import logging
import random
import sys
import time
from dataclasses import astuple, dataclass, fields
from enum import Enum
from typing import Callable, List, Optional, Sequence

from asym_phe import ElGamal, Paillier
from phe_config import configure_logging, load_config
from strawman import Strawman
from sym_ahe import SymAHE
from sym_mhe import SymMHE

log = logging.getLogger(__name__)

SUM_ITERATIONS = 10_000
# 1 is a warm-up round
SELECTIVITIES = (1, 10, 20, 30, 40, 50, 60, 70, 80, 90, 100)
PLAINTEXT_BOUND = 1_000_000


class AHEOp(Enum):
    ENCRYPT = "encrypt"
    DECRYPT = "decrypt"
    ADD = "add"
    ADD_PLAINTEXT = "add_plaintext"
    SUBTRACT = "subtract"
    MULTIPLY = "multiply"
    NEGATE = "negate"


class MHEOp(Enum):
    ENCRYPT = "encrypt"
    DECRYPT = "decrypt"
    MULTIPLY = "multiply"
    MULTIPLY_PLAINTEXT = "multiply_plaintext"
    DIVIDE = "divide"
    POW = "pow"
    INVERSE = "inverse"


class PackedOp(Enum):
    ENCRYPT = "encrypt"
    DECRYPT = "decrypt"
    ADD = "add"
    ADD_PLAINTEXT = "add_plaintext"


@dataclass
class SumRow:
    count: int
    selectivity: int
    sym_ahe_time: int
    strawman_time: int
    paillier_time: int
    sym_ahe_size: int
    strawman_size: int
    paillier_size: int


@dataclass
class OpTiming:
    op: str
    symmetric_time: float
    asymmetric_time: float


@dataclass
class PackedTiming:
    op: str
    per_message_time: float


def _timed(fn: Callable, *args) -> int:
    start = time.perf_counter_ns()
    fn(*args)
    return time.perf_counter_ns() - start


def time_sum(sym_ahe: SymAHE, strawman: Strawman, paillier: Paillier,
             iterations: int = SUM_ITERATIONS,
             selectivities: Sequence[int] = SELECTIVITIES,
             rng: Optional[random.Random] = None) -> List[SumRow]:
    """
    Sum a random subset of encryptions at every selectivity (percent).

    SymAHE encrypts in every iteration regardless of selection, so the
    summed ids have gaps that grow as selectivity drops.
    """
    rng = rng or random.Random()
    rows = []
    for selectivity in selectivities:
        count = 0
        sym_time = straw_time = paillier_time = 0

        sum_sym = sym_ahe.encrypt(0)
        sum_straw = strawman.encrypt(0)
        sum_paillier = paillier.encrypt(0)

        # Paillier encryption is slow, encrypt once
        c_paillier = paillier.encrypt(100)

        for _ in range(iterations):
            m = rng.randrange(1000)
            c_sym = sym_ahe.encrypt(m)

            if rng.randrange(100) < selectivity:
                count += 1
                c_straw = strawman.encrypt(m)

                start = time.perf_counter_ns()
                sum_sym = sym_ahe.add(sum_sym, c_sym)
                sym_time += time.perf_counter_ns() - start

                start = time.perf_counter_ns()
                sum_straw = strawman.add(sum_straw, c_straw)
                straw_time += time.perf_counter_ns() - start

                start = time.perf_counter_ns()
                sum_paillier = paillier.add(sum_paillier, c_paillier)
                paillier_time += time.perf_counter_ns() - start

        row = SumRow(count, selectivity, sym_time, straw_time, paillier_time,
                     sum_sym.byte_size(), strawman.byte_size(sum_straw),
                     len(Paillier.to_bytes(sum_paillier)))
        log.debug(f"Sum at selectivity {selectivity}%: {row}")
        rows.append(row)
    return rows


def time_ahe_ops(sym_ahe: SymAHE, paillier: Paillier, iterations: int = 20, warmup: int = 2,
                 ops: Sequence[AHEOp] = tuple(AHEOp),
                 rng: Optional[random.Random] = None) -> List[OpTiming]:
    """Average time of every additive operation, SymAHE vs Paillier."""
    rng = rng or random.Random()
    results = []
    for op in ops:
        sym_total = asym_total = 0
        for i in range(iterations + warmup):
            m1 = rng.randrange(PLAINTEXT_BOUND)
            m2 = rng.randrange(PLAINTEXT_BOUND)
            c_sym1, c_sym2 = sym_ahe.encrypt(m1), sym_ahe.encrypt(m2)
            c_pai1, c_pai2 = paillier.encrypt(m1), paillier.encrypt(m2)

            if op is AHEOp.ENCRYPT:
                sym_t = _timed(sym_ahe.encrypt, m1)
                asym_t = _timed(paillier.encrypt, m1)
            elif op is AHEOp.DECRYPT:
                sym_t = _timed(sym_ahe.decrypt, c_sym1)
                asym_t = _timed(paillier.decrypt, c_pai1)
            elif op is AHEOp.ADD:
                sym_t = _timed(sym_ahe.add, c_sym1, c_sym2)
                asym_t = _timed(paillier.add, c_pai1, c_pai2)
            elif op is AHEOp.ADD_PLAINTEXT:
                sym_t = _timed(sym_ahe.add_plaintext, c_sym1, m2)
                asym_t = _timed(paillier.add_plaintext, c_pai1, m2)
            elif op is AHEOp.SUBTRACT:
                sym_t = _timed(sym_ahe.subtract, c_sym1, c_sym2)
                asym_t = _timed(paillier.subtract, c_pai1, c_pai2)
            elif op is AHEOp.MULTIPLY:
                sym_t = _timed(sym_ahe.multiply, c_sym1, m2)
                asym_t = _timed(paillier.multiply, c_pai1, m2)
            else:
                sym_t = _timed(sym_ahe.negate, c_sym1)
                asym_t = _timed(paillier.negate, c_pai1)

            if i >= warmup:
                sym_total += sym_t
                asym_total += asym_t

        results.append(OpTiming(op.value, sym_total / iterations, asym_total / iterations))
        log.info(f"Evaluated {op.name}")
    return results


def time_mhe_ops(sym_mhe: SymMHE, elgamal: ElGamal, iterations: int = 100, warmup: int = 10,
                 ops: Sequence[MHEOp] = tuple(MHEOp),
                 rng: Optional[random.Random] = None) -> List[OpTiming]:
    """Average time of every multiplicative operation, SymMHE vs ElGamal."""
    rng = rng or random.Random()
    results = []
    for op in ops:
        sym_total = asym_total = 0
        for i in range(iterations + warmup):
            # non-zero, so every operand is invertible modulo the prime
            m1 = rng.randrange(1, PLAINTEXT_BOUND)
            m2 = rng.randrange(1, PLAINTEXT_BOUND)
            c_sym1, c_sym2 = sym_mhe.encrypt(m1), sym_mhe.encrypt(m2)
            c_elg1, c_elg2 = elgamal.encrypt(m1), elgamal.encrypt(m2)

            if op is MHEOp.ENCRYPT:
                sym_t = _timed(sym_mhe.encrypt, m1)
                asym_t = _timed(elgamal.encrypt, m1)
            elif op is MHEOp.DECRYPT:
                sym_t = _timed(sym_mhe.decrypt, c_sym1)
                asym_t = _timed(elgamal.decrypt, c_elg1)
            elif op is MHEOp.MULTIPLY:
                sym_t = _timed(sym_mhe.multiply, c_sym1, c_sym2)
                asym_t = _timed(elgamal.multiply, c_elg1, c_elg2)
            elif op is MHEOp.MULTIPLY_PLAINTEXT:
                sym_t = _timed(sym_mhe.multiply_plaintext, c_sym1, m2)
                asym_t = _timed(elgamal.multiply_plaintext, c_elg1, m2)
            elif op is MHEOp.DIVIDE:
                sym_t = _timed(sym_mhe.divide, c_sym1, c_sym2)
                asym_t = _timed(elgamal.divide, c_elg1, c_elg2)
            elif op is MHEOp.POW:
                sym_t = _timed(sym_mhe.pow, c_sym1, m2)
                asym_t = _timed(elgamal.pow, c_elg1, m2)
            else:
                sym_t = _timed(sym_mhe.inverse, c_sym1)
                asym_t = _timed(elgamal.inverse, c_elg1)

            if i >= warmup:
                sym_total += sym_t
                asym_total += asym_t

        results.append(OpTiming(op.value, sym_total / iterations, asym_total / iterations))
        log.info(f"Evaluated {op.name}")
    return results


def time_packed_ops(paillier: Paillier, iterations: int = 100, warmup: int = 10,
                    ops: Sequence[PackedOp] = tuple(PackedOp),
                    rng: Optional[random.Random] = None) -> List[PackedTiming]:
    """Time per packed message of Paillier with every slot filled."""
    rng = rng or random.Random()
    length = paillier.slot_capacity
    if length == 0:
        raise ValueError(f"Paillier modulus of {paillier.key_bits} bits is too small for packing")

    results = []
    for op in ops:
        total = 0
        for i in range(iterations + warmup):
            m1 = [rng.randrange(PLAINTEXT_BOUND) for _ in range(length)]
            m2 = [rng.randrange(PLAINTEXT_BOUND) for _ in range(length)]
            c1 = paillier.encrypt_packed(m1)
            c2 = paillier.encrypt_packed(m2)

            if op is PackedOp.ENCRYPT:
                elapsed = _timed(paillier.encrypt_packed, m1)
            elif op is PackedOp.DECRYPT:
                elapsed = _timed(paillier.decrypt_packed, c1)
            elif op is PackedOp.ADD:
                elapsed = _timed(paillier.add, c1, c2)
            else:
                elapsed = _timed(paillier.add_plaintext_packed, c1, m2)

            if i >= warmup:
                total += elapsed

        results.append(PackedTiming(op.value, total / iterations / length))
        log.info(f"Evaluated packed {op.name}")
    return results


def format_table(rows: Sequence) -> str:
    """Render dataclass rows as a tab-separated table with a header line."""
    if not rows:
        return ""
    lines = ["\t".join(f.name for f in fields(rows[0]))]
    for row in rows:
        lines.append("\t".join(
            f"{value:.0f}" if isinstance(value, float) else str(value) for value in astuple(row)
        ))
    return "\n".join(lines)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Benchmark symmetric vs public-key PHE schemes")
    parser.add_argument("benchmark", choices=["sum", "ahe", "mhe", "packed", "all"],
                        help="Benchmark to run")
    parser.add_argument("-n", "--iterations", type=int, default=None,
                        help="Iterations per measurement (benchmark default if omitted)")
    parser.add_argument("-w", "--warmup", type=int, default=None,
                        help="Warm-up iterations per operation")
    parser.add_argument("--seed", type=int, default=None,
                        help="Seed of the plaintext generator")
    parser.add_argument("--ledger-type", choices=["range", "array"], default=None,
                        help="Mask ledger realization of the symmetric schemes")
    parser.add_argument("--key-bits", type=int, default=None,
                        help="Modulus size of Paillier and ElGamal")
    args = parser.parse_args(argv)

    config = load_config()
    if args.key_bits is not None:
        config.asym_key_bits = args.key_bits
    configure_logging(config)

    rng = random.Random(args.seed)
    ledger_type = args.ledger_type or config.ledger_type
    options = {}
    if args.iterations is not None:
        options["iterations"] = args.iterations

    selected = ["sum", "ahe", "mhe", "packed"] if args.benchmark == "all" else [args.benchmark]
    for name in selected:
        log.info(f"Running {name} benchmark")
        if name == "sum":
            rows = time_sum(SymAHE(ledger_type), Strawman(),
                            Paillier(key_bits=config.asym_key_bits), rng=rng, **options)
        else:
            if args.warmup is not None:
                options["warmup"] = args.warmup
            if name == "ahe":
                rows = time_ahe_ops(SymAHE(ledger_type), Paillier(key_bits=config.asym_key_bits),
                                    rng=rng, **options)
            elif name == "mhe":
                rows = time_mhe_ops(SymMHE(ledger_type), ElGamal(key_bits=config.asym_key_bits),
                                    rng=rng, **options)
            else:
                rows = time_packed_ops(Paillier(key_bits=config.asym_key_bits), rng=rng, **options)
        print(f"\n{name} (nanoseconds)")
        print(format_table(rows))
    return 0


if __name__ == "__main__":
    sys.exit(main())
