"""
Streaming primitives shared by the pipeline stages.

A stream is modelled as blocks of valid samples stamped with the clock tick
at which each sample becomes valid. Invalid ticks are simply absent from a
block, so every stage handles "not valid" as a skip and never stalls.
"""

import abc
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np


@dataclass
class SampleBlock:
    """
    A block of complex fixed-point samples.

    Attributes:
        values: Complex128 array with integer-valued parts.
        ticks: Clock tick at which each value becomes valid.
        origins: Input tick each value is time-aligned with once the group
            delay of the filters it went through is removed.
    """

    values: np.ndarray
    ticks: np.ndarray
    origins: np.ndarray

    def __len__(self) -> int:
        return self.values.shape[0]

    @classmethod
    def empty(cls) -> "SampleBlock":
        return cls(
            values=np.zeros(0, dtype=np.complex128),
            ticks=np.zeros(0, dtype=np.int64),
            origins=np.zeros(0, dtype=np.int64),
        )

    @classmethod
    def from_ticks(
        cls, samples: np.ndarray, first_tick: int, valid: Optional[np.ndarray] = None
    ) -> "SampleBlock":
        """
        Builds a block from one array element per clock tick.

        Args:
            samples: Complex samples, one per tick.
            first_tick: Tick of ``samples[0]``.
            valid: Optional boolean mask; ticks where it is False carry no sample.
        """
        samples = np.asarray(samples)
        ticks = first_tick + np.arange(samples.shape[0], dtype=np.int64)
        if valid is not None:
            valid = np.asarray(valid, dtype=bool)
            if valid.shape != samples.shape:
                raise ValueError(
                    f"Shape mismatch: samples {samples.shape} != valid {valid.shape}"
                )
            samples = samples[valid]
            ticks = ticks[valid]
        return cls(
            values=samples.astype(np.complex128), ticks=ticks, origins=ticks.copy()
        )


def pace(samples: np.ndarray, clocks_per_sample: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Spreads samples over ``clocks_per_sample`` ticks each.

    The result feeds ``CellSearchPipeline.process`` when the configured
    multiplier reuse needs idle clocks between input samples.

    Args:
        samples: Input samples.
        clocks_per_sample: Ticks per sample (1 returns the input unchanged).

    Returns:
        Tuple ``(ticks, valid)``: the per-tick sample array (zeros on idle
        ticks) and its validity mask.
    """
    samples = np.asarray(samples)
    n = samples.shape[0]
    out = np.zeros(n * clocks_per_sample, dtype=np.complex128)
    out[::clocks_per_sample] = samples
    valid = np.zeros(n * clocks_per_sample, dtype=bool)
    valid[::clocks_per_sample] = True
    return out, valid


class ProcessingBlock(abc.ABC):
    """
    Abstract base class for pipeline stages.

    A stage consumes one block per call, keeps whatever state it needs to
    continue across calls, and reports a fixed latency in clock ticks.
    """

    #: Input-to-output delay in clock ticks.
    latency: int = 0

    @abc.abstractmethod
    def process(self, block):
        """
        Process one input block and return the corresponding output.
        """
        pass

    @abc.abstractmethod
    def reset(self) -> None:
        """
        Discard all internal state, as a synchronous hardware reset would.
        """
        pass

    def __call__(self, block):
        """
        Allows the stage to be called like a function.
        """
        return self.process(block)
