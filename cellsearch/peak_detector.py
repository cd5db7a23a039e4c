"""
Correlation peak detection.

The detector scores every correlation sample with the largest squared
magnitude over the three PSS hypotheses and declares a peak on a local
maximum that clears both an absolute floor and a multiple of the running
noise floor. One peak is reported per detection episode; the detector re-arms
once the score has dropped below the detection level again.
"""

from dataclasses import dataclass
from typing import List

import numpy as np

from .config import PipelineConfig
from .correlator import CorrelationBlock
from .logger import get_logger
from .stream import ProcessingBlock

logger = get_logger(__name__)


@dataclass(frozen=True)
class Peak:
    """
    A detected PSS correlation peak.

    Attributes:
        position: Tick at which the peak is reported.
        sample_index: Correlation-rate sample index of the peak, from reset.
        origin: Input tick the peak sample is aligned with.
        n_id_2: Winning PSS hypothesis.
        magnitude: Squared correlation magnitude at the peak.
        early: Early-half partial correlation of the winning hypothesis.
        late: Late-half partial correlation of the winning hypothesis.
    """

    position: int
    sample_index: int
    origin: int
    n_id_2: int
    magnitude: int
    early: complex
    late: complex


_FIELDS = ("score", "above", "hyp", "ticks", "origins", "index", "early", "late")


class PeakDetector(ProcessingBlock):
    """
    Windowed local-maximum detector on the correlator magnitudes.

    Parameters
    ----------
    config : PipelineConfig
        Uses ``window_len``, ``detection_threshold``, ``detection_factor`` and
        ``noise_floor_shift``.
    """

    # Decision register
    latency = 1

    def __init__(self, config: PipelineConfig):
        self.window = config.window_len
        self.threshold = config.detection_threshold
        self.factor = config.detection_factor
        self.shift = config.noise_floor_shift
        logger.debug(
            f"Peak detector: window={self.window}, threshold={self.threshold}, "
            f"factor={self.factor}, noise floor shift={self.shift}"
        )
        self.reset()

    def reset(self) -> None:
        self._noise_floor = 0
        self._floor_sum = 0
        self._floor_samples = 0
        self._count = 0
        self._next = 0
        self._armed = True
        self._history = None
        self.peaks_detected = 0

    @property
    def noise_floor(self) -> int:
        return self._noise_floor

    def _update_noise_floor(self, mean: np.ndarray) -> np.ndarray:
        """
        Returns the noise floor seen by each sample and advances the average.

        The first ``2**noise_floor_shift`` samples after reset set the floor
        to their running mean; the exponential average takes over from there.
        """
        warmup = 1 << self.shift
        nf = np.empty(mean.shape[0], dtype=np.int64)
        f = self._noise_floor
        for i, m in enumerate(mean):
            nf[i] = f
            if self._floor_samples < warmup:
                self._floor_sum += int(m)
                self._floor_samples += 1
                f = self._floor_sum // self._floor_samples
            else:
                f += (int(m) - f) >> self.shift
        self._noise_floor = f
        return nf

    def process(self, block: CorrelationBlock) -> List[Peak]:
        n = len(block)
        if n == 0:
            return []

        cols = np.arange(n)
        hyp = np.argmax(block.magnitudes, axis=0)
        score = block.magnitudes[hyp, cols]
        mean = block.magnitudes.sum(axis=0) // block.magnitudes.shape[0]
        nf = self._update_noise_floor(mean)

        above = score > self.threshold
        if self.factor > 0:
            # score > factor * nf, without forming the product
            above &= (score - 1) // self.factor >= nf

        new = {
            "score": score,
            "above": above,
            "hyp": hyp,
            "ticks": block.ticks,
            "origins": block.origins,
            "index": block.index,
            "early": block.early[hyp, cols],
            "late": block.late[hyp, cols],
        }
        if self._history is None:
            merged = new
        else:
            merged = {k: np.concatenate((self._history[k], new[k])) for k in _FIELDS}

        w = self.window
        total = self._count + n
        base = total - merged["score"].shape[0]
        peaks = []

        # Candidate j is decided once sample j + w has arrived
        for j in range(self._next, total - w):
            p = j - base
            s = merged["score"][p]
            if not self._armed and not merged["above"][p]:
                self._armed = True
            if j < w or not (self._armed and merged["above"][p]):
                continue
            if s <= merged["score"][p - w : p].max():
                continue
            if s < merged["score"][p + 1 : p + w + 1].max():
                continue

            self._armed = False
            peak = Peak(
                position=int(merged["ticks"][p + w]) + self.latency,
                sample_index=int(merged["index"][p]),
                origin=int(merged["origins"][p]),
                n_id_2=int(merged["hyp"][p]),
                magnitude=int(s),
                early=complex(merged["early"][p]),
                late=complex(merged["late"][p]),
            )
            peaks.append(peak)
            self.peaks_detected += 1
            logger.info(
                f"PSS peak: N_id_2={peak.n_id_2}, magnitude={peak.magnitude}, "
                f"tick {peak.position} (noise floor {self._noise_floor})."
            )

        self._next = max(self._next, total - w)
        self._count = total
        keep = min(2 * w, merged["score"].shape[0])
        self._history = {k: v[v.shape[0] - keep :] for k, v in merged.items()}
        return peaks
