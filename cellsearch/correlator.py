"""
PSS matched-filter correlator bank.

One 128-tap correlator per PSS hypothesis (``N_id_2 = 0..2``) runs on the
correlation-rate stream. Each correlator produces, per input sample:

- the squared magnitude of the full correlation, after a right shift that
  keeps the real and imaginary parts within 31 bits;
- the early-half and late-half partial correlations (taps split at
  ``PSS_LEN/2``), whose phase difference carries the carrier frequency offset.

Arithmetic is exact in integers. ``algo=0`` forms complex products with four
real multiplications, ``algo=1`` with three (Gauss); both give identical
results and only differ in the multiplier count they model.

Classes
-------
CorrelationBlock :
    Correlator outputs for one block of input samples.
CorrelatorBank :
    The three hypothesis correlators behind a single streaming interface.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np

from .config import PipelineConfig
from .fixedpoint import round_shift, split
from .logger import get_logger
from .sequences import N_ID_2_VALUES, pss_taps
from .stream import ProcessingBlock, SampleBlock

logger = get_logger(__name__)

# Width kept per part of the full correlation before squaring
_MAG_PART_DW = 31


@dataclass
class CorrelationBlock:
    """
    Correlator outputs, one column per correlation result.

    Attributes:
        magnitudes: Squared magnitudes, int64 array of shape (3, L).
        early: Early-half partial correlations, complex array (3, L).
        late: Late-half partial correlations, complex array (3, L).
        ticks: Tick at which each result is valid.
        origins: Input tick each result is aligned with.
        index: Correlation-rate sample index (from reset) of each result.
    """

    magnitudes: np.ndarray
    early: np.ndarray
    late: np.ndarray
    ticks: np.ndarray
    origins: np.ndarray
    index: np.ndarray

    def __len__(self) -> int:
        return self.ticks.shape[0]

    @classmethod
    def empty(cls) -> "CorrelationBlock":
        return cls(
            magnitudes=np.zeros((N_ID_2_VALUES, 0), dtype=np.int64),
            early=np.zeros((N_ID_2_VALUES, 0), dtype=np.complex128),
            late=np.zeros((N_ID_2_VALUES, 0), dtype=np.complex128),
            ticks=np.zeros(0, dtype=np.int64),
            origins=np.zeros(0, dtype=np.int64),
            index=np.zeros(0, dtype=np.int64),
        )


class _HypothesisCorrelator:
    """Matched filter for a single PSS hypothesis with read-only taps."""

    def __init__(self, taps: np.ndarray, algo: int):
        h_re, h_im = split(taps)
        h_re.setflags(write=False)
        h_im.setflags(write=False)
        self.h_re = h_re
        self.h_im = h_im
        self.algo = algo
        self.half = taps.shape[0] // 2
        if algo == 1:
            # Pre-combined coefficient sums of the three-multiplier product
            self.h_diff = h_im - h_re
            self.h_sum = h_re + h_im

    def _conv(self, z_re, z_im, sl: slice, start: int, count: int):
        """Valid-mode complex convolution with the taps in ``sl``."""
        h_re = self.h_re[sl]
        h_im = self.h_im[sl]

        def conv(x, h):
            return np.convolve(x, h, mode="valid")[start : start + count]

        if self.algo == 0:
            re = conv(z_re, h_re) - conv(z_im, h_im)
            im = conv(z_re, h_im) + conv(z_im, h_re)
        else:
            k1 = conv(z_re + z_im, h_re)
            k2 = conv(z_re, self.h_diff[sl])
            k3 = conv(z_im, self.h_sum[sl])
            re = k1 - k3
            im = k1 + k2
        return re, im

    def correlate(self, z_re: np.ndarray, z_im: np.ndarray, count: int):
        """
        Correlates the last ``count`` samples of a history-extended block.

        ``z_re`` / ``z_im`` hold ``len(taps) - 1`` samples of history followed
        by ``count`` new samples.

        Returns:
            Tuple ``(early, late)`` of (re, im) int64 pairs.
        """
        half = self.half
        # Taps [0, half) weight the most recent samples (late half)
        late = self._conv(z_re, z_im, slice(0, half), half, count)
        early = self._conv(z_re, z_im, slice(half, None), 0, count)
        return early, late


class CorrelatorBank(ProcessingBlock):
    """
    Three PSS correlators sharing one input stream.

    Parameters
    ----------
    config : PipelineConfig
        Pipeline parameters (``pss_len``, ``tap_dw``, ``algo``, ``mult_reuse``).
    taps : array_like, optional
        Complex coefficient table of shape (3, PSS_LEN). Generated from the
        NR PSS when omitted.
    """

    def __init__(self, config: PipelineConfig, taps: Optional[np.ndarray] = None):
        self.config = config
        length = config.pss_len
        if taps is None:
            taps = np.stack(
                [pss_taps(n, config.coeff_dw, length) for n in range(N_ID_2_VALUES)]
            )
        taps = np.asarray(taps)
        if taps.shape != (N_ID_2_VALUES, length):
            raise ValueError(
                f"PSS taps must have shape ({N_ID_2_VALUES}, {length}), got {taps.shape}"
            )

        self.hypotheses = [_HypothesisCorrelator(t, config.algo) for t in taps]
        self.reuse = config.mult_reuse
        self.mag_shift = max(0, config.sample_dw + config.coeff_dw + 7 - _MAG_PART_DW)

        stages = (length // max(self.reuse, 1)).bit_length() - 1
        if self.reuse == 0:
            # Input register, adder tree, output register
            self.latency = 1 + int(np.ceil(np.log2(length))) + 1
        else:
            self.latency = self.reuse + 2 + stages

        logger.info(
            f"Correlator bank: {N_ID_2_VALUES} x {length} taps, algo={config.algo}, "
            f"mult_reuse={self.reuse}, {self.multipliers} multipliers, "
            f"latency {self.latency} ticks."
        )
        self.reset()

    @property
    def units(self) -> int:
        """Multiply units per hypothesis."""
        length = self.config.pss_len
        return length if self.reuse == 0 else length // self.reuse

    @property
    def multipliers(self) -> int:
        per_product = 4 if self.config.algo == 0 else 3
        return N_ID_2_VALUES * self.units * per_product

    def reset(self) -> None:
        hist = self.config.pss_len - 1
        self._hist_re = np.zeros(hist, dtype=np.int64)
        self._hist_im = np.zeros(hist, dtype=np.int64)
        self._count = 0
        self._last_start = None
        self.overruns = 0

    def _accept(self, ticks: np.ndarray) -> np.ndarray:
        """Selects the inputs that find the multipliers free."""
        if self.reuse <= 1:
            return np.ones(ticks.shape[0], dtype=bool)
        keep = np.zeros(ticks.shape[0], dtype=bool)
        last = self._last_start
        for i, t in enumerate(ticks):
            if last is None or t - last >= self.reuse:
                keep[i] = True
                last = int(t)
        self._last_start = last
        return keep

    def process(self, block: SampleBlock) -> CorrelationBlock:
        n = len(block)
        if n == 0:
            return CorrelationBlock.empty()

        re, im = split(block.values)
        z_re = np.concatenate((self._hist_re, re))
        z_im = np.concatenate((self._hist_im, im))
        hist = self._hist_re.shape[0]
        self._hist_re = z_re[z_re.shape[0] - hist :]
        self._hist_im = z_im[z_im.shape[0] - hist :]

        index = self._count + np.arange(n, dtype=np.int64)
        self._count += n

        keep = self._accept(block.ticks)
        skipped = n - int(np.count_nonzero(keep))
        if skipped:
            self.overruns += skipped
            logger.warning(
                f"Correlator overrun: {skipped} sample(s) arrived less than "
                f"{self.reuse} ticks after the previous result and were skipped."
            )

        mags, early, late = [], [], []
        for hyp in self.hypotheses:
            (e_re, e_im), (l_re, l_im) = hyp.correlate(z_re, z_im, n)
            f_re = round_shift(e_re + l_re, self.mag_shift)
            f_im = round_shift(e_im + l_im, self.mag_shift)
            mags.append((f_re * f_re + f_im * f_im)[keep])
            early.append((e_re + 1j * e_im)[keep])
            late.append((l_re + 1j * l_im)[keep])

        return CorrelationBlock(
            magnitudes=np.stack(mags).astype(np.int64),
            early=np.stack(early),
            late=np.stack(late),
            ticks=block.ticks[keep] + self.latency,
            origins=block.origins[keep],
            index=index[keep],
        )
