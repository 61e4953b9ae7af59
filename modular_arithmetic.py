"""
Modular Arithmetic Kernel

Overflow-free arithmetic over a fixed modulus that fits a signed 64-bit word
(0 < m < 2^63). Every function is pure: results depend only on the arguments.

Two interchangeable multiplication strategies are provided:
- mod_mul: wide multiplication followed by a single reduction
- mod_mul_double_and_add: bit-by-bit accumulation that never holds a value
  larger than 2*m, the way a fixed-width implementation has to do it

Exponentiation is binary square-and-multiply on top of mod_mul and accepts
negative exponents by inverting the base first.
"""

import logging
from typing import Tuple

log = logging.getLogger(__name__)

# Largest positive value of a signed 64-bit word.
MAX_INT64 = (1 << 63) - 1


class NoInverseError(ArithmeticError):
    """Raised when a modular inverse is requested for a value not coprime with the modulus."""
    pass


def check_modulus(modulo: int) -> int:
    """
    Validate that a modulus fits the kernel's word size.

    Args:
        modulo: The modulus to check

    Returns:
        The modulus unchanged

    Raises:
        ValueError: If the modulus is not in the range (0, 2^63)
    """
    if not isinstance(modulo, int) or modulo <= 0 or modulo > MAX_INT64:
        raise ValueError(f"Modulus must be an integer in (0, 2^63), got {modulo!r}")
    return modulo


def mod_reduce(a: int, modulo: int) -> int:
    """Return the canonical representative of a in [0, modulo)."""
    return a % modulo


def mod_add(a: int, b: int, modulo: int) -> int:
    """Add two values modulo `modulo` without leaving the [0, 2*modulo) range."""
    a = mod_reduce(a, modulo)
    b = mod_reduce(b, modulo)
    # a + b >= m, tested without forming the sum
    if a >= modulo - b:
        return a - (modulo - b)
    return a + b


def mod_sub(a: int, b: int, modulo: int) -> int:
    """Subtract b from a modulo `modulo`."""
    return mod_add(a, mod_negate(b, modulo), modulo)


def mod_negate(a: int, modulo: int) -> int:
    """Return -a modulo `modulo`."""
    a = mod_reduce(a, modulo)
    if a == 0:
        return 0
    return modulo - a


def mod_mul(a: int, b: int, modulo: int) -> int:
    """
    Multiply two values modulo `modulo` using a wide product.

    Args:
        a: First factor (any integer)
        b: Second factor (any integer)
        modulo: The modulus

    Returns:
        a * b mod modulo in [0, modulo)
    """
    return (mod_reduce(a, modulo) * mod_reduce(b, modulo)) % modulo


def mod_mul_double_and_add(a: int, b: int, modulo: int) -> int:
    """
    Multiply two values modulo `modulo` by treating `a` as a bit string.

    At every step `b` is doubled modulo m and added into the accumulator when
    the current bit of `a` is set. No intermediate value reaches 2*m, so the
    routine is safe for a fixed 64-bit word.

    Python integers never overflow, so the engines always use mod_mul. This
    routine is kept as a reference that mod_mul is checked against.

    Args:
        a: First factor (any integer)
        b: Second factor (any integer)
        modulo: The modulus

    Returns:
        a * b mod modulo in [0, modulo)
    """
    a = mod_reduce(a, modulo)
    b = mod_reduce(b, modulo)
    if a == 1:
        return b
    if b == 1:
        return a

    res = 0
    while a != 0:
        if a & 1:
            # res + b >= m, without overflow
            if b >= modulo - res:
                res -= modulo
            res += b
        a >>= 1

        # double b, without overflow
        if b >= modulo - b:
            b = b - (modulo - b)
        else:
            b += b
    return res


def egcd(a: int, b: int) -> Tuple[int, int, int]:
    """
    Iterative extended Euclidean algorithm.

    Returns:
        Tuple (g, x, y) with a*x + b*y == g == gcd(a, b) and g >= 0
    """
    old_r, r = a, b
    old_x, x = 1, 0
    old_y, y = 0, 1
    while r != 0:
        q = old_r // r
        old_r, r = r, old_r - q * r
        old_x, x = x, old_x - q * x
        old_y, y = y, old_y - q * y
    if old_r < 0:
        return -old_r, -old_x, -old_y
    return old_r, old_x, old_y


def mod_inverse(a: int, modulo: int) -> int:
    """
    Compute the multiplicative inverse of a modulo `modulo`.

    Args:
        a: Value to invert
        modulo: The modulus

    Returns:
        x in [0, modulo) with a * x == 1 (mod modulo)

    Raises:
        NoInverseError: If gcd(a, modulo) != 1
    """
    a = mod_reduce(a, modulo)
    g, x, _ = egcd(a, modulo)
    if g != 1:
        raise NoInverseError(f"{a} has no inverse modulo {modulo} (gcd={g})")
    return mod_reduce(x, modulo)


def mod_div(a: int, b: int, modulo: int) -> int:
    """Return a / b modulo `modulo`; raises NoInverseError if b is not invertible."""
    return mod_mul(a, mod_inverse(b, modulo), modulo)


def mod_pow(a: int, e: int, modulo: int) -> int:
    """
    Raise a to the power e modulo `modulo` with binary exponentiation.

    Negative exponents are computed as inverse(a) ** |e|.

    Args:
        a: Base
        e: Exponent, may be negative
        modulo: The modulus

    Returns:
        a ** e mod modulo in [0, modulo)

    Raises:
        NoInverseError: If e < 0 and a is not invertible modulo `modulo`
    """
    if e < 0:
        a = mod_inverse(a, modulo)
        e = -e

    a = mod_reduce(a, modulo)
    res = 1 % modulo
    while e > 0:
        if e & 1:
            res = mod_mul(res, a, modulo)
        a = mod_mul(a, a, modulo)
        e >>= 1
    return res


def to_signed(a: int, modulo: int) -> int:
    """
    Map a residue to the symmetric range (-modulo/2, modulo/2].

    Used for ledger cardinalities, whose sign decides how a mask is removed.
    """
    r = mod_reduce(a, modulo)
    if r > modulo // 2:
        r -= modulo
    return r
