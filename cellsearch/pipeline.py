"""
The cell search pipeline.

``CellSearchPipeline`` wires the stages together and drives them with one
array element per clock tick::

    raw ──► Decimator ──┬──► PSS Decimator ──► CorrelatorBank ──► PeakDetector
                        │                                             │ peaks
                        └──────────────────────► FrameSynchronizer ◄──┘
                                                        │ windows
                                                        ▼
                                                  FFTDemodulator ──► symbols

Every stage stamps its outputs with clock ticks computed from the input
ticks, so the output of a stream does not depend on how it is split into
calls.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np

from .cfo import CFOEstimate
from .config import PipelineConfig
from .correlator import CorrelatorBank
from .decimator import Decimator
from .fft_demod import FFTDemodulator, FrequencyDomainSymbol
from .frame_sync import FrameSynchronizer, FrameTimingState, SyncState, cp_advance_ramp
from .fixedpoint import quantize
from .logger import get_logger
from .peak_detector import Peak, PeakDetector
from .sequences import N_ID_2_VALUES, pss_taps
from .stream import SampleBlock

logger = get_logger(__name__)


@dataclass
class CoefficientTables:
    """
    Coefficient tables loaded into the pipeline.

    Attributes:
        pss_taps: Matched-filter taps, complex integer-valued, shape (3, PSS_LEN).
        ramp: CP-advance ramp, complex integer-valued, shape (FFT_LEN,).
    """

    pss_taps: np.ndarray
    ramp: np.ndarray

    @classmethod
    def default(cls, config: PipelineConfig) -> "CoefficientTables":
        """Generates the tables from the NR PSS and the configured CP advance."""
        taps = np.stack(
            [pss_taps(n, config.coeff_dw, config.pss_len) for n in range(N_ID_2_VALUES)]
        )
        ramp = quantize(cp_advance_ramp(config), config.coeff_dw)
        return cls(pss_taps=taps, ramp=ramp)

    def validate(self, config: PipelineConfig):
        """
        Raises:
            ValueError: If a table does not match the configured sizes or
                exceeds the coefficient width.
        """
        expected = {
            "pss_taps": (N_ID_2_VALUES, config.pss_len),
            "ramp": (config.fft_len,),
        }
        limit = 1 << (config.coeff_dw - 1)
        for name, shape in expected.items():
            table = np.asarray(getattr(self, name))
            if table.shape != shape:
                raise ValueError(f"{name} must have shape {shape}, got {table.shape}")
            if table.size and max(np.abs(table.real).max(), np.abs(table.imag).max()) > limit:
                raise ValueError(
                    f"{name} exceeds the {config.coeff_dw}-bit coefficient range"
                )


@dataclass
class OutputStream:
    """
    Flattened per-tick view of a pipeline output.

    Only ticks that carry an FFT bin or a peak event are present.
    """

    ticks: np.ndarray
    data: np.ndarray
    symbol_valid: np.ndarray
    sss_valid: np.ndarray
    pbch_valid: np.ndarray
    peak_detected: np.ndarray

    def sss(self) -> np.ndarray:
        return self.data[self.sss_valid]

    def pbch(self) -> np.ndarray:
        return self.data[self.pbch_valid]


@dataclass
class PipelineOutput:
    """Events produced by one or more ``process`` calls."""

    peaks: List[Peak] = field(default_factory=list)
    symbols: List[FrequencyDomainSymbol] = field(default_factory=list)

    @classmethod
    def concatenate(cls, outputs: Sequence["PipelineOutput"]) -> "PipelineOutput":
        merged = cls()
        for out in outputs:
            merged.peaks.extend(out.peaks)
            merged.symbols.extend(out.symbols)
        return merged

    def stream(self) -> OutputStream:
        """Flattens symbols and peaks into tick-ordered arrays."""
        bin_ticks, data, sss, pbch = [], [], [], []
        for sym in self.symbols:
            n = sym.data.shape[0]
            bin_ticks.append(sym.tick + np.arange(n, dtype=np.int64))
            data.append(sym.data)
            s, p = sym.flags()
            sss.append(s)
            pbch.append(p)

        peak_ticks = np.array([p.position for p in self.peaks], dtype=np.int64)
        if bin_ticks:
            bin_ticks = np.concatenate(bin_ticks)
            data = np.concatenate(data)
            sss = np.concatenate(sss)
            pbch = np.concatenate(pbch)
        else:
            bin_ticks = np.zeros(0, dtype=np.int64)
            data = np.zeros(0, dtype=np.complex128)
            sss = pbch = np.zeros(0, dtype=bool)

        ticks = np.union1d(bin_ticks, peak_ticks)
        pos = np.searchsorted(ticks, bin_ticks)
        out_data = np.zeros(ticks.shape[0], dtype=np.complex128)
        out_data[pos] = data
        valid = np.zeros(ticks.shape[0], dtype=bool)
        valid[pos] = True
        out_sss = np.zeros(ticks.shape[0], dtype=bool)
        out_sss[pos] = sss
        out_pbch = np.zeros(ticks.shape[0], dtype=bool)
        out_pbch[pos] = pbch
        return OutputStream(
            ticks=ticks,
            data=out_data,
            symbol_valid=valid,
            sss_valid=out_sss,
            pbch_valid=out_pbch,
            peak_detected=np.isin(ticks, peak_ticks),
        )


@dataclass
class PipelineStatus:
    """Snapshot of the acquisition state."""

    state: SyncState
    locked: bool
    n_id_2: Optional[int]
    cfo: Optional[CFOEstimate]
    timing: FrameTimingState
    peaks: int
    symbols: int
    overruns: int


class CellSearchPipeline:
    """
    Decimation, PSS search, CFO estimation, symbol timing and FFT in one stream.

    Parameters
    ----------
    config : PipelineConfig, optional
        Pipeline parameters. Defaults to ``PipelineConfig()``.
    tables : CoefficientTables, optional
        Coefficient tables; generated from ``config`` when omitted.

    Raises
    ------
    ValueError
        If ``tables`` do not match the configuration.

    Examples
    --------
    >>> pipe = CellSearchPipeline(PipelineConfig(nfft=8))
    >>> out = pipe.process(samples)
    >>> pipe.status.locked
    True
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        tables: Optional[CoefficientTables] = None,
    ):
        if config is None:
            config = PipelineConfig()
        self.config = config
        if tables is None:
            tables = CoefficientTables.default(config)
        tables.validate(config)
        self.tables = tables

        self.decimator = Decimator(
            config.decimation_factor, config.cic_order, config.sample_dw, name="decimator"
        )
        self.pss_decimator = Decimator(
            config.correlation_decimation,
            config.cic_order,
            config.sample_dw,
            name="pss decimator",
        )
        self.correlator = CorrelatorBank(config, tables.pss_taps)
        self.peak_detector = PeakDetector(config)
        self.fft = FFTDemodulator(config)
        self.frame_sync = FrameSynchronizer(config, self.detector_latency, tables.ramp)

        logger.info(
            f"Cell search pipeline: FFT {config.fft_len}, input "
            f"{config.input_rate / 1e6:.2f} Msps, decimation "
            f"{config.decimation_factor} x {config.correlation_decimation}, "
            f"detector latency {self.detector_latency} ticks."
        )
        self.reset()

    # ------------------------------------------------------------------
    # Timing
    # ------------------------------------------------------------------

    @property
    def alignment_offset(self) -> int:
        """Input samples between a correlation-rate grid point and its aligned sample."""
        d1 = self.decimator
        d2 = self.pss_decimator
        return d1.factor * (d2.factor - 1 - d2.group_delay) + (d1.factor - 1 - d1.group_delay)

    @property
    def latencies(self) -> Dict[str, int]:
        return {
            "decimator": self.decimator.latency,
            "pss_decimator": self.pss_decimator.latency,
            "correlator": self.correlator.latency,
            "peak_detector": self.peak_detector.latency,
            "fft": self.fft.latency,
        }

    @property
    def detector_latency(self) -> int:
        """
        Ticks from the end of a grid-aligned PSS to its peak report.

        A PSS whose last sample precedes input index ``p`` is reported at
        tick ``p * clocks_per_sample + detector_latency``.
        """
        cfg = self.config
        lat = self.latencies
        lead = cfg.window_len * cfg.total_decimation - 1 - self.alignment_offset
        return (
            lead * cfg.clocks_per_sample
            + lat["decimator"]
            + lat["pss_decimator"]
            + lat["correlator"]
            + lat["peak_detector"]
        )

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Discards all stage state and restarts the tick counter."""
        for stage in (
            self.decimator,
            self.pss_decimator,
            self.correlator,
            self.peak_detector,
            self.frame_sync,
            self.fft,
        ):
            stage.reset()
        self._tick = 0
        self._peaks = 0
        self._symbols = 0

    def process(self, samples, valid=None) -> PipelineOutput:
        """
        Feeds one array element per clock tick.

        Args:
            samples: Complex integer-valued samples of ``IN_DW/2`` bits per part.
            valid: Optional boolean mask; ticks where it is False carry no sample.

        Returns:
            The peaks and symbols completed by this call.
        """
        block = SampleBlock.from_ticks(samples, self._tick, valid)
        self._tick += np.asarray(samples).shape[0]

        fft_rate = self.decimator(block)
        corr_rate = self.pss_decimator(fft_rate)
        scores = self.correlator(corr_rate)
        peaks = self.peak_detector(scores)
        windows = self.frame_sync.process(fft_rate, peaks)
        symbols = self.fft(windows)

        self._peaks += len(peaks)
        self._symbols += len(symbols)
        return PipelineOutput(peaks=peaks, symbols=symbols)

    def run(self, samples, valid=None, chunk_size: Optional[int] = None) -> PipelineOutput:
        """Processes a whole stream, optionally in chunks of ``chunk_size`` ticks."""
        samples = np.asarray(samples)
        if chunk_size is None:
            return self.process(samples, valid)
        outputs = []
        for start in range(0, samples.shape[0], chunk_size):
            stop = start + chunk_size
            mask = None if valid is None else valid[start:stop]
            outputs.append(self.process(samples[start:stop], mask))
        return PipelineOutput.concatenate(outputs)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    @property
    def timing(self) -> FrameTimingState:
        return self.frame_sync.timing

    @property
    def status(self) -> PipelineStatus:
        sync = self.frame_sync
        return PipelineStatus(
            state=sync.state,
            locked=sync.timing.locked,
            n_id_2=sync.n_id_2,
            cfo=sync.estimate,
            timing=sync.timing,
            peaks=self._peaks,
            symbols=self._symbols,
            overruns=self.correlator.overruns,
        )
