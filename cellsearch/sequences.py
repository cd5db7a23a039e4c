"""
NR synchronization sequences.

This module generates the sequences of the SS/PBCH block (3GPP TS 38.211,
section 7.4.2):
- Primary synchronization signal (PSS), one of three m-sequences.
- Secondary synchronization signal (SSS), one of 336 Gold sequences per PSS.
- The 128-point time-domain PSS template and its matched-filter taps.
- Random QPSK symbols used as PBCH filler in synthetic waveforms.
"""

from typing import Optional, Tuple

import numpy as np

from .fixedpoint import quantize

SEQUENCE_LEN = 127
N_ID_2_VALUES = 3
N_ID_1_VALUES = 336


def _m_sequence(taps: Tuple[int, int], init) -> np.ndarray:
    """Binary recursion ``x(i+7) = (x(i+a) + x(i)) mod 2`` over 127 chips."""
    x = np.zeros(SEQUENCE_LEN + 7, dtype=np.int64)
    x[:7] = init
    a, b = taps
    for i in range(SEQUENCE_LEN):
        x[i + 7] = (x[i + a] + x[i + b]) % 2
    return x[:SEQUENCE_LEN]


_PSS_X = _m_sequence((4, 0), [0, 1, 1, 0, 1, 1, 1])
_SSS_X0 = _m_sequence((4, 0), [1, 0, 0, 0, 0, 0, 0])
_SSS_X1 = _m_sequence((1, 0), [1, 0, 0, 0, 0, 0, 0])


def _check_n_id_2(n_id_2: int):
    if n_id_2 not in range(N_ID_2_VALUES):
        raise ValueError(f"N_id_2 must be 0, 1 or 2, got {n_id_2}")


def pss(n_id_2: int) -> np.ndarray:
    """
    Generates the BPSK PSS sequence for one sector identity.

    Args:
        n_id_2: Sector identity (0, 1 or 2).

    Returns:
        Array of 127 values in {-1, +1}.
    """
    _check_n_id_2(n_id_2)
    n = np.arange(SEQUENCE_LEN)
    m = (n + 43 * n_id_2) % SEQUENCE_LEN
    return 1 - 2 * _PSS_X[m]


def sss(n_id_1: int, n_id_2: int) -> np.ndarray:
    """
    Generates the BPSK SSS sequence.

    Args:
        n_id_1: Cell identity group (0..335).
        n_id_2: Sector identity (0, 1 or 2).

    Returns:
        Array of 127 values in {-1, +1}.
    """
    _check_n_id_2(n_id_2)
    if n_id_1 not in range(N_ID_1_VALUES):
        raise ValueError(f"N_id_1 must be in 0..335, got {n_id_1}")
    n = np.arange(SEQUENCE_LEN)
    m0 = 15 * (n_id_1 // 112) + 5 * n_id_2
    m1 = n_id_1 % 112
    return (1 - 2 * _SSS_X0[(n + m0) % SEQUENCE_LEN]) * (
        1 - 2 * _SSS_X1[(n + m1) % SEQUENCE_LEN]
    )


def pss_time_domain(n_id_2: int, length: int = 128) -> np.ndarray:
    """
    Time-domain PSS at the correlation rate (``length`` x 15 kHz).

    The 127 sub-carriers are placed at k = -64..62 around DC and transformed
    with an inverse FFT; no cyclic prefix is included.
    """
    grid = np.zeros(length, dtype=np.complex128)
    start = length // 2 - 64
    grid[start : start + SEQUENCE_LEN] = pss(n_id_2)
    return np.fft.ifft(np.fft.ifftshift(grid))


def pss_taps(n_id_2: int, width: int, length: int = 128) -> np.ndarray:
    """
    Quantized matched-filter coefficients for one PSS hypothesis.

    The template is conjugated, time-reversed and scaled so its largest part
    uses the full signed range of ``width`` bits.

    Args:
        n_id_2: Sector identity.
        width: Bits per real/imaginary part.
        length: Number of taps.

    Returns:
        Complex array of ``length`` integer-valued taps.
    """
    template = np.conj(pss_time_domain(n_id_2, length)[::-1])
    peak = max(np.max(np.abs(template.real)), np.max(np.abs(template.imag)))
    return quantize(template / peak, width)


def identify_sss(symbols: np.ndarray, n_id_2: int) -> Tuple[int, np.ndarray]:
    """
    Finds the cell identity group of a received SSS.

    Args:
        symbols: The 127 received SSS sub-carriers.
        n_id_2: Sector identity from the PSS search.

    Returns:
        Tuple ``(n_id_1, scores)`` with the best hypothesis and the
        correlation magnitude of all 336 hypotheses.
    """
    symbols = np.asarray(symbols)
    if symbols.shape != (SEQUENCE_LEN,):
        raise ValueError(f"Expected {SEQUENCE_LEN} SSS symbols, got {symbols.shape}")
    refs = np.stack([sss(i, n_id_2) for i in range(N_ID_1_VALUES)])
    scores = np.abs(refs @ symbols)
    return int(np.argmax(scores)), scores


def random_qpsk(length: int, seed: Optional[int] = None) -> np.ndarray:
    """Unit-energy random QPSK symbols."""
    rng = np.random.default_rng(seed)
    bits = rng.integers(0, 2, size=(length, 2))
    return ((1 - 2 * bits[:, 0]) + 1j * (1 - 2 * bits[:, 1])) / np.sqrt(2)
