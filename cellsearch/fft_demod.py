"""
Fixed-point FFT with dynamic block scaling.

The demodulator transforms each CP-stripped window with a radix-2
decimation-in-frequency FFT on ``OUT_DW/2``-bit integers. Instead of a fixed
scaling schedule, the block is renormalised before the first stage and after
every butterfly stage so the largest part magnitude stays below
``2**(W-3)``; the shifts are accumulated into a block exponent. After bit
reversal, DC-centring and the CP-advance ramp the block is normalised once
more to use the full output width.

The output therefore satisfies, up to rounding::

    data ~ fftshift(DFT(window)) * ramp * 2**-exponent
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from .config import SSS_LEN, PBCH_LEN, PipelineConfig
from .fixedpoint import cmul, join, max_abs, quantize, saturate, scale_shift, split
from .frame_sync import SymbolRole, SymbolWindow
from .logger import get_logger
from .stream import ProcessingBlock

logger = get_logger(__name__)


@dataclass
class FrequencyDomainSymbol:
    """
    DC-centred FFT output of one window.

    Attributes:
        index: Symbol counter of the window.
        data: ``FFT_LEN`` complex integer-valued bins, DC at ``FFT_LEN/2``.
        exponent: Block exponent; ``data * 2**exponent`` restores the scale
            of the input window.
        tick: Tick of bin 0; bin ``b`` is output at ``tick + b``.
        role: SS/PBCH block content, if any.
        sss_start: Offset of the SSS sub-window.
        pbch_start: Offset of the PBCH sub-window.
    """

    index: int
    data: np.ndarray
    exponent: int
    tick: int
    role: Optional[SymbolRole]
    sss_start: int
    pbch_start: int

    @property
    def sss_valid(self) -> bool:
        return self.role is SymbolRole.SSS

    @property
    def pbch_valid(self) -> bool:
        return self.role is SymbolRole.PBCH

    @property
    def sss(self) -> Optional[np.ndarray]:
        """The 127 SSS sub-carriers, when this symbol carries the SSS."""
        if not self.sss_valid:
            return None
        return self.data[self.sss_start : self.sss_start + SSS_LEN]

    @property
    def pbch(self) -> Optional[np.ndarray]:
        """The 240 PBCH sub-carriers, when this symbol carries the PBCH."""
        if not self.pbch_valid:
            return None
        return self.data[self.pbch_start : self.pbch_start + PBCH_LEN]

    def scaled(self) -> np.ndarray:
        """Bins rescaled by the block exponent (float)."""
        return self.data * 2.0**self.exponent

    def flags(self) -> Tuple[np.ndarray, np.ndarray]:
        """Per-bin ``(sss_valid, pbch_valid)`` masks."""
        n = self.data.shape[0]
        sss = np.zeros(n, dtype=bool)
        pbch = np.zeros(n, dtype=bool)
        if self.sss_valid:
            sss[self.sss_start : self.sss_start + SSS_LEN] = True
        if self.pbch_valid:
            pbch[self.pbch_start : self.pbch_start + PBCH_LEN] = True
        return sss, pbch


def _bit_reverse(nbits: int) -> np.ndarray:
    idx = np.arange(1 << nbits)
    rev = np.zeros_like(idx)
    for b in range(nbits):
        rev |= ((idx >> b) & 1) << (nbits - 1 - b)
    return rev


def _normalise(re: np.ndarray, im: np.ndarray, bits: int) -> Tuple[np.ndarray, np.ndarray, int]:
    """
    Shifts a block so its largest part magnitude needs ``bits`` bits.

    Returns the shifted parts and the right-shift amount (negative for a
    left shift). An all-zero block is returned unchanged.
    """
    peak = max_abs(re, im)
    if peak == 0:
        return re, im, 0
    shift = peak.bit_length() - bits
    return scale_shift(re, shift), scale_shift(im, shift), shift


class FFTDemodulator(ProcessingBlock):
    """
    Block-floating-point radix-2 DIF FFT.

    Parameters
    ----------
    config : PipelineConfig
        Uses ``nfft``, ``out_dw`` (working width ``W = OUT_DW/2``) and
        ``tap_dw`` (twiddle width).
    """

    def __init__(self, config: PipelineConfig):
        self.config = config
        self.nfft = config.nfft
        self.size = config.fft_len
        self.width = config.fft_dw
        self.coeff_dw = config.coeff_dw
        # Input buffering, one tick per butterfly stage, bit reversal and output registers
        self.latency = self.size + self.nfft + 2

        k = np.arange(self.size // 2)
        tw = quantize(np.exp(-2j * np.pi * k / self.size), self.coeff_dw)
        self._tw_re, self._tw_im = split(tw)
        self._bitrev = _bit_reverse(self.nfft)

        logger.debug(
            f"FFT: {self.size} points, working width {self.width} bits, "
            f"twiddles {self.coeff_dw} bits, latency {self.latency} ticks."
        )
        self.reset()

    def reset(self) -> None:
        # First tick at which the output port is free again
        self._free_tick = None

    def transform(self, samples: np.ndarray, ramp: np.ndarray) -> Tuple[np.ndarray, int]:
        """
        DC-centred fixed-point FFT of one window.

        Args:
            samples: ``FFT_LEN`` complex integer-valued samples.
            ramp: Complex integer-valued table applied to the DC-centred bins.

        Returns:
            Tuple ``(data, exponent)``.
        """
        guard = self.width - 3
        cshift = self.coeff_dw - 1
        re, im = split(samples)
        re, im, exponent = _normalise(re, im, guard)

        for stage in range(self.nfft):
            span = self.size >> (stage + 1)
            r = re.reshape(-1, 2, span)
            i = im.reshape(-1, 2, span)
            top_re = r[:, 0, :] + r[:, 1, :]
            top_im = i[:, 0, :] + i[:, 1, :]
            d_re = r[:, 0, :] - r[:, 1, :]
            d_im = i[:, 0, :] - i[:, 1, :]

            k = np.arange(span) << stage
            bot_re, bot_im = cmul(d_re, d_im, self._tw_re[k], self._tw_im[k], cshift)

            re = np.stack((top_re, bot_re), axis=1).reshape(self.size)
            im = np.stack((top_im, bot_im), axis=1).reshape(self.size)
            re, im, shift = _normalise(re, im, guard)
            exponent += shift

        re = np.fft.fftshift(re[self._bitrev])
        im = np.fft.fftshift(im[self._bitrev])

        ramp_re, ramp_im = split(ramp)
        re, im = cmul(re, im, ramp_re, ramp_im, cshift)
        re, im, shift = _normalise(re, im, self.width - 1)
        exponent += shift

        re = saturate(re, self.width)
        im = saturate(im, self.width)
        return join(re, im), exponent

    def process(self, windows: List[SymbolWindow]) -> List[FrequencyDomainSymbol]:
        """
        Transforms complete windows.

        Bins leave one per tick: a symbol starts ``latency`` ticks after its
        window, or as soon as the previous symbol's last bin is out if that
        is later.
        """
        cfg = self.config
        symbols = []
        for window in windows:
            data, exponent = self.transform(window.samples, window.ramp)
            tick = window.tick + self.latency
            if self._free_tick is not None and tick < self._free_tick:
                logger.debug(
                    f"Symbol {window.index} waits {self._free_tick - tick} ticks "
                    "for the output port."
                )
                tick = self._free_tick
            self._free_tick = tick + self.size
            symbols.append(
                FrequencyDomainSymbol(
                    index=window.index,
                    data=data,
                    exponent=exponent,
                    tick=tick,
                    role=window.role,
                    sss_start=cfg.sss_start,
                    pbch_start=cfg.pbch_start,
                )
            )
        return symbols
