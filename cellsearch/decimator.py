"""
Cascaded integrator-comb (CIC) decimation.

The decimator is a multiplier-free low-pass filter followed by a downsampler:
``order`` integrators run at the input rate, every ``factor``-th integrator
output is kept, and ``order`` comb stages (differential delay 1) run at the
output rate.

Bit growth
----------
The integrator registers are ``width + order * log2(factor)`` bits wide and
wrap around in two's complement; wrap-around in the integrators is harmless
because the combs difference it away. The comb output is shifted right by the
growth bits (rounding half away from zero, then saturating) which restores
the input width at unity DC gain.
"""

import numpy as np

from .fixedpoint import round_shift, saturate, split, join, wrap
from .logger import get_logger
from .stream import ProcessingBlock, SampleBlock

logger = get_logger(__name__)


class Decimator(ProcessingBlock):
    """
    Fixed-point CIC decimator.

    Args:
        factor: Decimation factor, a power of two (1 passes samples through).
        order: Number of integrator and comb stages.
        width: Width in bits of one part of the input and output samples.
        name: Label used in log messages.
    """

    def __init__(self, factor: int, order: int = 2, width: int = 16, name: str = "cic"):
        if factor < 1 or factor & (factor - 1):
            raise ValueError(f"CIC decimation factor must be a power of two, got {factor}")
        if order < 1:
            raise ValueError(f"CIC order must be positive, got {order}")

        self.factor = factor
        self.order = order
        self.width = width
        self.name = name
        self.growth = order * (factor.bit_length() - 1)
        self.register_width = width + self.growth
        # Delay of the symmetric impulse response, in input samples
        self.group_delay = order * (factor - 1) // 2
        # One register per integrator stage plus the output register
        self.latency = order + 1

        logger.debug(
            f"{name}: factor={factor}, order={order}, width={width}, "
            f"registers={self.register_width} bits, group delay={self.group_delay}"
        )
        self.reset()

    def reset(self) -> None:
        self._integrators = np.zeros((self.order, 2), dtype=np.int64)
        self._combs = np.zeros((self.order, 2), dtype=np.int64)
        self._phase = 0
        self._origin_history = None

    def process(self, block: SampleBlock) -> SampleBlock:
        """
        Filters and downsamples one block.

        Args:
            block: Input samples with their ticks and origins.

        Returns:
            The decimated block. Output ``m`` (counted from reset) is produced
            by input ``m * factor + factor - 1`` and is stamped ``latency``
            ticks after it.
        """
        n = len(block)
        if n == 0:
            return SampleBlock.empty()

        re, im = split(block.values)
        re = saturate(re, self.width)
        im = saturate(im, self.width)

        bits = self.register_width
        for stage in range(self.order):
            re = wrap(self._integrators[stage, 0] + np.cumsum(re), bits)
            im = wrap(self._integrators[stage, 1] + np.cumsum(im), bits)
            self._integrators[stage] = (re[-1], im[-1])

        idx = np.arange(n)
        sel = np.flatnonzero((self._phase + idx + 1) % self.factor == 0)
        self._phase = (self._phase + n) % self.factor

        # Origins: output at input idx is aligned with input idx - group_delay
        gd = self.group_delay
        if self._origin_history is None:
            self._origin_history = block.origins[0] - np.arange(gd, 0, -1, dtype=np.int64)
        history = np.concatenate((self._origin_history, block.origins))
        self._origin_history = history[history.shape[0] - gd :]

        if sel.size == 0:
            return SampleBlock.empty()

        v_re = re[sel]
        v_im = im[sel]
        for stage in range(self.order):
            prev_re = np.concatenate(([self._combs[stage, 0]], v_re[:-1]))
            prev_im = np.concatenate(([self._combs[stage, 1]], v_im[:-1]))
            self._combs[stage] = (v_re[-1], v_im[-1])
            v_re = wrap(v_re - prev_re, bits)
            v_im = wrap(v_im - prev_im, bits)

        out_re = saturate(round_shift(v_re, self.growth), self.width)
        out_im = saturate(round_shift(v_im, self.growth), self.width)

        return SampleBlock(
            values=join(out_re, out_im),
            ticks=block.ticks[sel] + self.latency,
            origins=history[sel],
        )
