"""
Recorded IQ captures.

Loads interleaved IQ recordings (raw files or SigMF recordings) and prepares
them as pipeline input: resampled to the configured raw rate, normalised and
quantized to the input sample width.

Functions
---------
load_capture :
    Reads a raw or SigMF IQ recording.
prepare_capture :
    Resamples, rescales and quantizes a capture for ``CellSearchPipeline``.
"""

import os
from fractions import Fraction
from typing import Optional, Tuple

import numpy as np
import scipy.signal
from sigmf import sigmffile

from .config import PipelineConfig
from .fixedpoint import quantize
from .logger import get_logger

logger = get_logger(__name__)


def _component_dtype(datatype: str) -> np.dtype:
    """Numpy type of one I or Q component of a complex SigMF datatype."""
    info = sigmffile.dtype_info(datatype)
    if not info["is_complex"]:
        raise ValueError(
            f"Unsupported capture datatype '{datatype}': IQ captures need a "
            "complex type such as 'ci16_le' or 'cf32_le'"
        )
    return np.dtype(info["component_dtype"])


def load_capture(
    path: str, datatype: str = "cf32_le", sample_rate: Optional[float] = None
) -> Tuple[np.ndarray, Optional[float]]:
    """
    Reads an interleaved IQ recording.

    SigMF recordings (``.sigmf-data`` / ``.sigmf-meta`` pairs) are opened with
    the ``sigmf`` library and take their datatype and sample rate from the
    metadata; other files are read as raw interleaved samples of ``datatype``.
    Fixed-point recordings keep their integer values in both cases.

    Args:
        path: Data file, or a SigMF base name.
        datatype: SigMF datatype of raw files (e.g. ``"ci16_le"``).
        sample_rate: Sample rate in Hz, used when the recording does not
            carry one.

    Returns:
        Tuple ``(samples, sample_rate)`` with complex128 samples.
    """
    base, ext = os.path.splitext(path)
    meta_path = base + ".sigmf-meta"
    if ext in (".sigmf-data", ".sigmf-meta", "") and os.path.exists(meta_path):
        handle = sigmffile.fromfile(meta_path)
        datatype = handle.get_global_field(sigmffile.SigMFFile.DATATYPE_KEY)
        rate = handle.get_global_field(sigmffile.SigMFFile.SAMPLE_RATE_KEY)
        if rate is not None:
            sample_rate = rate
        logger.info(f"Loading SigMF recording {base} ({datatype}).")
        samples = handle.read_samples(autoscale=False)
        return np.asarray(samples, dtype=np.complex128), sample_rate

    logger.info(f"Loading raw capture {path} ({datatype}).")
    raw = np.fromfile(path, dtype=_component_dtype(datatype))
    if raw.shape[0] % 2:
        raise ValueError(f"Capture {path} holds an odd number of IQ components")
    samples = raw[0::2].astype(np.float64) + 1j * raw[1::2].astype(np.float64)
    return samples, sample_rate


def prepare_capture(
    samples: np.ndarray,
    sample_rate: float,
    config: PipelineConfig,
    amplitude: float = 1.0,
    max_samples: Optional[int] = None,
) -> np.ndarray:
    """
    Converts a capture into pipeline input.

    Args:
        samples: Complex capture samples.
        sample_rate: Capture sample rate in Hz.
        config: Pipeline configuration; the capture is resampled to
            ``config.input_rate`` and quantized to ``IN_DW/2`` bits.
        amplitude: Largest part magnitude relative to full scale.
        max_samples: Truncates the result to this many samples.

    Returns:
        Complex integer-valued samples.
    """
    samples = np.asarray(samples, dtype=np.complex128)
    ratio = Fraction(config.input_rate / sample_rate).limit_denominator(1000)
    if ratio != 1:
        logger.info(
            f"Resampling capture from {sample_rate / 1e6:.3f} to "
            f"{config.input_rate / 1e6:.3f} Msps (x{ratio.numerator}/{ratio.denominator})."
        )
        samples = scipy.signal.resample_poly(samples, ratio.numerator, ratio.denominator)

    if max_samples is not None:
        samples = samples[:max_samples]

    peak = max(np.abs(samples.real).max(), np.abs(samples.imag).max()) if samples.size else 0.0
    if peak == 0:
        logger.warning("Capture is all zeros.")
        return quantize(samples, config.sample_dw)
    return quantize(samples * (amplitude / peak), config.sample_dw)
