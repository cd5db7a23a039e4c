"""
Fixed-point arithmetic helpers.

Complex fixed-point streams are carried as ``complex128`` arrays whose real
and imaginary parts hold integers; the arithmetic below operates on the
``int64`` parts so results are bit-exact.

Rounding convention: every right shift rounds half away from zero
(``round_shift``), which keeps the truncation error symmetric around zero.

Functions
---------
round_shift :
    Arithmetic right shift with symmetric rounding.
scale_shift :
    Signed shift: right (rounded) for positive amounts, left for negative.
saturate :
    Clamps integers to a signed bit width.
wrap :
    Two's complement wrap-around to a signed bit width.
quantize :
    Scales a float array to signed integers of a given width.
split / join :
    Conversion between complex arrays and (real, imag) int64 pairs.
cmul :
    Complex integer multiply followed by a rounded shift.
twos_comp, pack_iq, unpack_iq :
    Packing of complex samples into single bus words.
"""

from typing import Tuple

import numpy as np


def round_shift(x, shift: int):
    """
    Arithmetic right shift with rounding half away from zero.

    Args:
        x: Integer scalar or int64 array.
        shift: Number of bits to drop. Zero returns the input unchanged.

    Returns:
        The shifted value(s), same type as the input.
    """
    if shift <= 0:
        return x
    half = 1 << (shift - 1)
    if isinstance(x, np.ndarray):
        mag = (np.abs(x) + half) >> shift
        return np.where(x < 0, -mag, mag)
    mag = (abs(int(x)) + half) >> shift
    return -mag if x < 0 else mag


def scale_shift(x, shift: int):
    """
    Shifts by ``shift`` bits: right with rounding when positive, left when negative.
    """
    if shift > 0:
        return round_shift(x, shift)
    if shift < 0:
        return x << (-shift)
    return x


def saturate(x, width: int):
    """Clamps values to the signed range of ``width`` bits."""
    hi = (1 << (width - 1)) - 1
    lo = -(1 << (width - 1))
    if isinstance(x, np.ndarray):
        return np.clip(x, lo, hi)
    return max(lo, min(hi, int(x)))


def wrap(x, width: int):
    """Two's complement wrap-around of integers to ``width`` bits."""
    mask = (1 << width) - 1
    offset = 1 << (width - 1)
    return ((x + offset) & mask) - offset


def quantize(x: np.ndarray, width: int) -> np.ndarray:
    """
    Quantizes a float array (real or complex) with full scale 1.0 to ``width`` bits.

    Values are scaled by ``2**(width-1) - 1``, rounded to nearest and saturated.
    Complex input returns a complex array with integer-valued parts.
    """
    full_scale = (1 << (width - 1)) - 1
    x = np.asarray(x)
    if np.iscomplexobj(x):
        re = saturate(np.rint(x.real * full_scale).astype(np.int64), width)
        im = saturate(np.rint(x.imag * full_scale).astype(np.int64), width)
        return join(re, im)
    return saturate(np.rint(x * full_scale).astype(np.int64), width)


def split(x) -> Tuple[np.ndarray, np.ndarray]:
    """Returns the rounded (real, imag) parts of a complex array as int64."""
    x = np.asarray(x)
    return (
        np.rint(x.real).astype(np.int64),
        np.rint(x.imag).astype(np.int64),
    )


def join(re: np.ndarray, im: np.ndarray) -> np.ndarray:
    """Builds a complex128 array from integer parts."""
    return re.astype(np.float64) + 1j * im.astype(np.float64)


def cmul(
    a_re: np.ndarray,
    a_im: np.ndarray,
    b_re: np.ndarray,
    b_im: np.ndarray,
    shift: int,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Complex integer product ``(a * b) >> shift`` with symmetric rounding.
    """
    re = a_re * b_re - a_im * b_im
    im = a_re * b_im + a_im * b_re
    return round_shift(re, shift), round_shift(im, shift)


def max_abs(re: np.ndarray, im: np.ndarray) -> int:
    """Largest magnitude over the real and imaginary parts of a block."""
    if re.size == 0:
        return 0
    return int(max(np.max(np.abs(re)), np.max(np.abs(im))))


def twos_comp(val: int, bits: int) -> int:
    """Interprets the low ``bits`` of ``val`` as a two's complement number."""
    val = int(val) & ((1 << bits) - 1)
    if val & (1 << (bits - 1)):
        val -= 1 << bits
    return val


def pack_iq(samples, width: int) -> np.ndarray:
    """
    Packs complex samples into ``width``-bit bus words.

    The real part occupies the low ``width/2`` bits and the imaginary part the
    upper half, both in two's complement.

    Args:
        samples: Complex array with integer-valued parts.
        width: Total word width in bits (even).

    Returns:
        Array of Python integers (object dtype when ``width`` exceeds 63 bits).
    """
    half = width // 2
    mask = (1 << half) - 1
    re, im = split(samples)
    words = [((int(i) & mask) << half) | (int(r) & mask) for r, i in zip(re, im)]
    dtype = np.int64 if width < 64 else object
    return np.asarray(words, dtype=dtype)


def unpack_iq(words, width: int) -> np.ndarray:
    """
    Inverse of :func:`pack_iq`: splits bus words into complex samples.
    """
    half = width // 2
    re = np.array([twos_comp(int(w), half) for w in words], dtype=np.int64)
    im = np.array([twos_comp(int(w) >> half, half) for w in words], dtype=np.int64)
    return join(re, im)
