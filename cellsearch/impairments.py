"""
Impairment models for synthetic test signals.

Currently supported:
- **Additive White Gaussian Noise (AWGN)**: Adds complex noise for a target SNR.
- **Carrier frequency offset**: Rotates the signal by a constant frequency.
"""

from typing import Optional

import numpy as np

from .logger import get_logger

logger = get_logger(__name__)


def add_gaussian_noise(
    samples: np.ndarray, snr_db: float, seed: Optional[int] = None
) -> np.ndarray:
    """
    Adds complex AWGN to a signal to achieve a target SNR.

    The signal power is measured over the non-zero samples, so leading or
    trailing silence does not lower the effective SNR.

    Args:
        samples: Complex baseband samples.
        snr_db: The desired Signal-to-Noise Ratio (SNR) in decibels.
        seed: Random seed for reproducibility.

    Returns:
        The noisy samples.
    """
    logger.info(f"Adding Gaussian noise (SNR target: {snr_db:.2f} dB).")
    samples = np.asarray(samples, dtype=np.complex128)
    active = samples[samples != 0]
    signal_power = np.mean(np.abs(active) ** 2) if active.size else 0.0
    noise_power = signal_power / 10 ** (snr_db / 10)

    rng = np.random.default_rng(seed)
    # Power is split between real and imag
    std = np.sqrt(noise_power / 2)
    noise = rng.normal(0, std, samples.shape) + 1j * rng.normal(0, std, samples.shape)
    return samples + noise


def apply_frequency_offset(
    samples: np.ndarray, offset_hz: float, sample_rate: float
) -> np.ndarray:
    """
    Applies a carrier frequency offset.

    Args:
        samples: Complex baseband samples.
        offset_hz: Frequency offset in Hz.
        sample_rate: Sampling rate in Hz.

    Returns:
        ``samples * exp(j 2 pi offset_hz n / sample_rate)``.
    """
    logger.debug(f"Applying frequency offset of {offset_hz:.1f} Hz.")
    samples = np.asarray(samples, dtype=np.complex128)
    n = np.arange(samples.shape[0])
    return samples * np.exp(2j * np.pi * offset_hz / sample_rate * n)
