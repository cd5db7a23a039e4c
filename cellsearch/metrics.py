"""
Signal quality metrics for demodulated symbols.

Functions
---------
evm :
    Error Vector Magnitude between received and reference symbols.
peak_error_ratio :
    Largest error magnitude relative to the largest received magnitude.
"""

from typing import Tuple

import numpy as np

from .logger import get_logger

logger = get_logger(__name__)


def evm(rx_symbols: np.ndarray, tx_symbols: np.ndarray) -> Tuple[float, float]:
    """
    Computes Error Vector Magnitude (EVM) between received and reference symbols.

    Both inputs are normalised to unit average power first, so a common gain
    difference does not count as error.

    Parameters
    ----------
    rx_symbols : array_like
        Received symbols.
    tx_symbols : array_like
        Ideal reference symbols, same shape.

    Returns
    -------
    evm_percent : float
        EVM expressed as a percentage.
    evm_db : float
        EVM expressed in decibels (dB).
    """
    rx = np.asarray(rx_symbols, dtype=np.complex128)
    tx = np.asarray(tx_symbols, dtype=np.complex128)
    if rx.shape != tx.shape:
        raise ValueError(f"Shape mismatch: rx {rx.shape} != tx {tx.shape}")

    rx_pwr = np.mean(np.abs(rx) ** 2)
    tx_pwr = np.mean(np.abs(tx) ** 2)
    if tx_pwr < 1e-20 or rx_pwr < 1e-20:
        logger.warning("Symbol power near zero, EVM undefined.")
        return float("inf"), float("inf")

    error = rx / np.sqrt(rx_pwr) - tx / np.sqrt(tx_pwr)
    ratio = float(np.sqrt(np.mean(np.abs(error) ** 2)))
    evm_db = 20.0 * np.log10(ratio) if ratio > 0 else float("-inf")
    return ratio * 100.0, float(evm_db)


def peak_error_ratio(received: np.ndarray, reference: np.ndarray) -> float:
    """
    ``max|received - reference| / max|received|``.

    This is the acceptance metric for fixed-point FFT output against a
    floating-point reference on the same scale.
    """
    received = np.asarray(received)
    reference = np.asarray(reference)
    if received.shape != reference.shape:
        raise ValueError(
            f"Shape mismatch: received {received.shape} != reference {reference.shape}"
        )
    scale = np.max(np.abs(received)) if received.size else 0.0
    if scale == 0:
        return float("inf")
    return float(np.max(np.abs(received - reference)) / scale)
