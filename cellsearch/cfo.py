"""
Carrier frequency offset estimation from the PSS half correlations.

The two halves of the PSS are half an OFDM symbol apart, so a frequency
offset of ``epsilon`` sub-carrier spacings rotates the late half against the
early half by ``pi * epsilon``. The estimate is converted to the phase
increment of a numerically controlled oscillator (NCO) running at the FFT
rate, which the frame synchronizer uses for derotation.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np

from .config import PipelineConfig
from .fixedpoint import quantize, saturate
from .logger import get_logger
from .peak_detector import Peak
from .stream import ProcessingBlock

logger = get_logger(__name__)


@dataclass(frozen=True)
class CFOEstimate:
    """
    Quantized CFO estimate.

    Attributes:
        phase: Phase of ``conj(early) * late`` in units of ``pi / 2**(atan_dw-1)``.
        epsilon: Offset in sub-carrier spacings.
        increment: NCO phase increment per FFT-rate sample, in LSBs of a
            ``phase_dw``-bit accumulator.
        phase_dw: Accumulator width.
    """

    phase: int
    epsilon: float
    increment: int
    phase_dw: int

    @property
    def radians_per_sample(self) -> float:
        return 2 * np.pi * self.increment / (1 << self.phase_dw)

    def nco(self, offsets: np.ndarray, width: int) -> np.ndarray:
        """
        Quantized derotation factors ``exp(-j * phase_acc)``.

        Args:
            offsets: Sample offsets from the accumulator reset point.
            width: Bits per part of the output.

        Returns:
            Complex array with integer-valued parts.
        """
        modulus = 1 << self.phase_dw
        acc = (np.asarray(offsets, dtype=np.int64) * self.increment) % modulus
        return quantize(np.exp(-2j * np.pi * acc / modulus), width)


class CFOCalculator(ProcessingBlock):
    """
    Converts a peak's half correlations into a :class:`CFOEstimate`.
    """

    def __init__(self, config: PipelineConfig):
        self.atan_dw = config.atan_dw
        self.phase_dw = config.phase_dw
        self.fft_len = config.fft_len
        self.reset()

    def reset(self) -> None:
        self.estimate: Optional[CFOEstimate] = None

    def process(self, peak: Peak) -> CFOEstimate:
        half_scale = 1 << (self.atan_dw - 1)
        prod = np.conj(peak.early) * peak.late
        phase = int(np.round(np.angle(prod) / np.pi * half_scale))
        phase = saturate(phase, self.atan_dw)

        epsilon = phase / half_scale
        increment = int(np.round(epsilon / self.fft_len * (1 << self.phase_dw)))

        self.estimate = CFOEstimate(
            phase=phase, epsilon=epsilon, increment=increment, phase_dw=self.phase_dw
        )
        logger.info(
            f"CFO estimate: {epsilon:+.4f} sub-carrier spacings "
            f"(NCO increment {increment})."
        )
        return self.estimate
