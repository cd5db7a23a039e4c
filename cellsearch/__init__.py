"""
Cellsearch: a bit-accurate model of a 5G NR cell search front end.

This package provides tools for:
- Decimating raw baseband samples with fixed-point CIC filters.
- Detecting the primary synchronization signal (PSS) and its sector identity.
- Estimating the carrier frequency offset from the PSS.
- Acquiring symbol timing and demodulating SSS/PBCH symbols with a
  block-scaled fixed-point FFT.
- Generating synthetic SS/PBCH blocks and preparing recorded captures.
"""

from . import capture, impairments, metrics, sequences, waveforms
from .config import PipelineConfig
from .logger import set_log_level
from .peak_detector import Peak
from .pipeline import (
    CellSearchPipeline,
    CoefficientTables,
    PipelineOutput,
    PipelineStatus,
)
from .stream import pace

__all__ = [
    "CellSearchPipeline",
    "CoefficientTables",
    "Peak",
    "PipelineConfig",
    "PipelineOutput",
    "PipelineStatus",
    "capture",
    "impairments",
    "metrics",
    "pace",
    "sequences",
    "set_log_level",
    "waveforms",
]
