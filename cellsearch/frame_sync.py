"""
Symbol timing acquisition and OFDM window extraction.

The frame synchronizer turns the first PSS peak into a symbol boundary on the
FFT-rate stream and from then on cuts one CP-stripped window per OFDM symbol,
derotated by the CFO estimate of that peak.

State machine
-------------
``IDLE``
    After construction or reset.
``SEARCHING``
    From the first processed block until a peak is reported.
``SYNCHRONIZED``
    Boundary and CFO known, first window not yet complete.
``TRACKING``
    Windows are emitted every ``FFT_LEN + CP_LEN`` samples. Only a reset
    leaves this state.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import List, Optional, Sequence

import numpy as np

from .cfo import CFOCalculator, CFOEstimate
from .config import PipelineConfig
from .fixedpoint import cmul, join, quantize, split
from .logger import get_logger
from .peak_detector import Peak
from .stream import ProcessingBlock, SampleBlock

logger = get_logger(__name__)


class SyncState(Enum):
    IDLE = "idle"
    SEARCHING = "searching"
    SYNCHRONIZED = "synchronized"
    TRACKING = "tracking"


class SymbolRole(Enum):
    """Content of an SS/PBCH block symbol following the PSS."""

    PBCH = "pbch"
    SSS = "sss"


# Window index after the PSS -> role (first SS/PBCH block only)
SSB_ROLES = {0: SymbolRole.PBCH, 1: SymbolRole.SSS, 2: SymbolRole.PBCH}


@dataclass
class FrameTimingState:
    """
    Timing state of the synchronizer.

    Attributes:
        symbol_boundary_index: FFT-rate sample index (from reset) where the
            symbol after the PSS starts, CP included.
        boundary_tick: Input tick of that boundary.
        cp_length: Cyclic prefix length at the FFT rate.
        cp_advance: CP samples kept in front of every window.
        locked: Whether a boundary has been acquired.
        symbol_counter: Windows emitted since lock.
    """

    symbol_boundary_index: Optional[int] = None
    boundary_tick: Optional[int] = None
    cp_length: int = 0
    cp_advance: int = 0
    locked: bool = False
    symbol_counter: int = 0


@dataclass
class SymbolWindow:
    """
    One derotated FFT window.

    Attributes:
        index: Symbol counter value (0 for the symbol after the PSS).
        start: FFT-rate sample index of the first window sample.
        samples: ``FFT_LEN`` complex integer-valued samples.
        tick: Tick at which the window is complete.
        role: SS/PBCH block content, if any.
        ramp: CP-advance compensation to apply to the DC-centred FFT output.
    """

    index: int
    start: int
    samples: np.ndarray
    tick: int
    role: Optional[SymbolRole]
    ramp: np.ndarray


def cp_advance_ramp(config: PipelineConfig) -> np.ndarray:
    """
    Phase ramp undoing the shift of a window that starts inside the CP.

    A window taken ``delta = CP_LEN - cp_advance`` samples early sees every
    bin rotated by ``exp(-j 2 pi k delta / FFT_LEN)``; the ramp is indexed by
    the DC-centred bin ``n = k + FFT_LEN/2``.
    """
    n = np.arange(config.fft_len)
    delta = config.cp_len - config.cp_advance
    return np.exp(1j * (2 * np.pi * delta / config.fft_len * n + np.pi * delta))


class FrameSynchronizer(ProcessingBlock):
    """
    Locks to the first PSS peak and slices the FFT-rate stream into windows.

    Parameters
    ----------
    config : PipelineConfig
        Pipeline parameters.
    detector_latency : int
        Ticks from the end of a PSS to its peak report.
    ramp : array_like, optional
        Quantized CP-advance ramp table of length ``FFT_LEN``.
    """

    def __init__(
        self,
        config: PipelineConfig,
        detector_latency: int,
        ramp: Optional[np.ndarray] = None,
    ):
        self.config = config
        self.detector_latency = detector_latency
        if ramp is None:
            ramp = quantize(cp_advance_ramp(config), config.coeff_dw)
        ramp = np.array(ramp, dtype=np.complex128)
        if ramp.shape != (config.fft_len,):
            raise ValueError(
                f"CP-advance ramp must have shape ({config.fft_len},), got {ramp.shape}"
            )
        ramp.setflags(write=False)
        self.ramp = ramp
        self.cfo = CFOCalculator(config)
        # Oldest input tick a future boundary can have, relative to the newest sample
        self._horizon = detector_latency + config.decimation_factor * config.clocks_per_sample
        self.reset()

    def reset(self) -> None:
        self.state = SyncState.IDLE
        self.timing = FrameTimingState(
            cp_length=self.config.cp_len, cp_advance=self.config.cp_advance
        )
        self.n_id_2: Optional[int] = None
        self.peak: Optional[Peak] = None
        self.cfo.reset()
        self._values = np.zeros(0, dtype=np.complex128)
        self._ticks = np.zeros(0, dtype=np.int64)
        self._origins = np.zeros(0, dtype=np.int64)
        self._base = 0
        self._next_start = 0

    @property
    def estimate(self) -> Optional[CFOEstimate]:
        return self.cfo.estimate

    def process(self, block: SampleBlock, peaks: Sequence[Peak] = ()) -> List[SymbolWindow]:
        """
        Consumes FFT-rate samples and the peaks reported alongside them.

        Args:
            block: Output of the first decimator.
            peaks: Peaks reported by the detector for the same input.

        Returns:
            The windows that became complete.
        """
        if self.state is SyncState.IDLE:
            self.state = SyncState.SEARCHING
            logger.debug("Frame synchronizer searching.")

        if len(block):
            self._values = np.concatenate((self._values, block.values))
            self._ticks = np.concatenate((self._ticks, block.ticks))
            self._origins = np.concatenate((self._origins, block.origins))

        if self.state is SyncState.SEARCHING and peaks:
            self._lock(peaks[0])

        windows = []
        if self.state in (SyncState.SYNCHRONIZED, SyncState.TRACKING):
            windows = self._emit()
        self._trim()
        return windows

    def _lock(self, peak: Peak):
        boundary_tick = peak.position - self.detector_latency
        idx = int(np.searchsorted(self._origins, boundary_tick, side="left"))
        if idx == 0 and self._base > 0:
            logger.warning(
                f"Boundary tick {boundary_tick} precedes the sample history; "
                "using the oldest held sample."
            )
        boundary = self._base + idx

        self.peak = peak
        self.n_id_2 = peak.n_id_2
        self.cfo.process(peak)
        self.timing = replace(
            self.timing,
            symbol_boundary_index=boundary,
            boundary_tick=boundary_tick,
            locked=True,
            symbol_counter=0,
        )
        self._next_start = boundary + self.timing.cp_advance
        self.state = SyncState.SYNCHRONIZED
        logger.info(
            f"Synchronized to N_id_2={peak.n_id_2}: boundary at sample {boundary} "
            f"(tick {boundary_tick})."
        )

    def _emit(self) -> List[SymbolWindow]:
        cfg = self.config
        n = cfg.fft_len
        boundary = self.timing.symbol_boundary_index
        windows = []
        while self._next_start + n <= self._base + self._values.shape[0]:
            lo = self._next_start - self._base
            seg_re, seg_im = split(self._values[lo : lo + n])
            offsets = np.arange(self._next_start, self._next_start + n) - boundary
            rot_re, rot_im = split(self.estimate.nco(offsets, cfg.coeff_dw))
            re, im = cmul(seg_re, seg_im, rot_re, rot_im, cfg.coeff_dw - 1)

            s = self.timing.symbol_counter
            windows.append(
                SymbolWindow(
                    index=s,
                    start=self._next_start,
                    samples=join(re, im),
                    tick=max(self.peak.position, int(self._ticks[lo + n - 1])),
                    role=SSB_ROLES.get(s),
                    ramp=self.ramp,
                )
            )
            self.timing.symbol_counter += 1
            self._next_start += cfg.symbol_len
            if self.state is SyncState.SYNCHRONIZED:
                self.state = SyncState.TRACKING
                logger.info("Frame synchronizer tracking.")
        return windows

    def _trim(self):
        if self._values.shape[0] == 0:
            return
        if self.state is SyncState.SEARCHING:
            oldest = self._origins[-1] - self._horizon
            drop = int(np.searchsorted(self._origins, oldest, side="left"))
        else:
            drop = max(0, self._next_start - self._base)
        drop = min(drop, self._values.shape[0])
        if drop:
            self._values = self._values[drop:]
            self._ticks = self._ticks[drop:]
            self._origins = self._origins[drop:]
            self._base += drop
