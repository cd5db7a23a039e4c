"""
Synthetic SS/PBCH block waveforms.

Generates a single SS/PBCH block (PSS, PBCH, SSS, PBCH) at the raw input rate
of a pipeline configuration, optionally with carrier frequency offset and
AWGN, quantized to the input sample width.
"""

from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from . import impairments, sequences
from .config import PBCH_LEN, SSS_LEN, SUBCARRIER_SPACING, PipelineConfig
from .fixedpoint import quantize
from .logger import get_logger

logger = get_logger(__name__)

# PBCH sub-carriers on the SSS symbol: k = -120..-73 and 72..119
_SSS_SYMBOL_PBCH = 48


@dataclass
class SSBInfo:
    """
    Ground truth of a generated SS/PBCH block.

    Attributes:
        n_id_1: Cell identity group.
        n_id_2: Sector identity.
        cfo: Injected frequency offset in sub-carrier spacings.
        pss_start: Raw sample index of the PSS cyclic prefix.
        boundary: Raw sample index where the PSS ends and the next symbol
            (CP first) starts.
        fft_size: FFT size at the raw rate.
        cp_len: Cyclic prefix length at the raw rate.
        sss: Transmitted SSS sequence.
        pbch: Transmitted PBCH sub-carriers of symbols 1 and 3.
    """

    n_id_1: int
    n_id_2: int
    cfo: float
    pss_start: int
    boundary: int
    fft_size: int
    cp_len: int
    sss: np.ndarray
    pbch: List[np.ndarray] = field(default_factory=list)

    @property
    def symbol_len(self) -> int:
        return self.fft_size + self.cp_len

    @property
    def cell_id(self) -> int:
        return 3 * self.n_id_1 + self.n_id_2


def _ofdm_symbol(grid: np.ndarray, cp_len: int) -> np.ndarray:
    """Inverse FFT of a DC-centred grid with the cyclic prefix prepended."""
    time = np.fft.ifft(np.fft.ifftshift(grid))
    return np.concatenate((time[time.shape[0] - cp_len :], time))


def generate_ssb(
    config: PipelineConfig,
    n_id_1: int = 0,
    n_id_2: int = 0,
    offset: Optional[int] = None,
    trailing: Optional[int] = None,
    cfo: float = 0.0,
    snr_db: Optional[float] = None,
    amplitude: float = 0.5,
    seed: Optional[int] = None,
):
    """
    Generates one SS/PBCH block at the raw input rate.

    Args:
        config: Pipeline configuration (``base_nfft`` sets the raw rate,
            ``in_dw`` the sample width).
        n_id_1: Cell identity group (0..335).
        n_id_2: Sector identity (0..2).
        offset: Samples of silence before the block. Defaults to one symbol.
            A multiple of ``config.total_decimation`` keeps the PSS on the
            correlation grid.
        trailing: Samples of silence after the block. Defaults to two symbols.
        cfo: Frequency offset in sub-carrier spacings.
        snr_db: AWGN level; no noise when None.
        amplitude: Largest part magnitude of the clean block relative to full scale.
        seed: Random seed for PBCH content and noise.

    Returns:
        Tuple ``(samples, info)``: complex integer-valued samples of
        ``IN_DW/2`` bits per part and the :class:`SSBInfo` ground truth.
    """
    size = 1 << config.base_nfft
    cp_len = 18 * size // 256
    symbol_len = size + cp_len
    offset = symbol_len if offset is None else offset
    trailing = 2 * symbol_len if trailing is None else trailing

    rng = np.random.default_rng(seed)
    c = size // 2
    sss = sequences.sss(n_id_1, n_id_2)
    pbch = [
        sequences.random_qpsk(PBCH_LEN, seed=rng.integers(1 << 31)) for _ in range(2)
    ]
    sss_pbch = sequences.random_qpsk(2 * _SSS_SYMBOL_PBCH, seed=rng.integers(1 << 31))

    grids = np.zeros((4, size), dtype=np.complex128)
    grids[0, c - 64 : c - 64 + SSS_LEN] = sequences.pss(n_id_2)
    grids[1, c - 120 : c + 120] = pbch[0]
    grids[2, c - 64 : c - 64 + SSS_LEN] = sss
    grids[2, c - 120 : c - 72] = sss_pbch[:_SSS_SYMBOL_PBCH]
    grids[2, c + 72 : c + 120] = sss_pbch[_SSS_SYMBOL_PBCH:]
    grids[3, c - 120 : c + 120] = pbch[1]

    block = np.concatenate([_ofdm_symbol(g, cp_len) for g in grids])
    block *= amplitude / max(np.abs(block.real).max(), np.abs(block.imag).max())

    samples = np.concatenate(
        (np.zeros(offset, dtype=np.complex128), block, np.zeros(trailing, dtype=np.complex128))
    )
    if cfo:
        samples = impairments.apply_frequency_offset(
            samples, cfo * SUBCARRIER_SPACING, config.input_rate
        )
    if snr_db is not None:
        samples = impairments.add_gaussian_noise(samples, snr_db, seed=rng.integers(1 << 31))

    info = SSBInfo(
        n_id_1=n_id_1,
        n_id_2=n_id_2,
        cfo=cfo,
        pss_start=offset,
        boundary=offset + symbol_len,
        fft_size=size,
        cp_len=cp_len,
        sss=sss,
        pbch=pbch,
    )
    logger.debug(
        f"Generated SS/PBCH block: cell id {info.cell_id}, {samples.shape[0]} samples "
        f"at {config.input_rate / 1e6:.2f} Msps, CFO {cfo:+.3f} SCS."
    )
    return quantize(samples, config.sample_dw), info
