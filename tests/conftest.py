import numpy as np
import pytest

from cellsearch.config import PipelineConfig
from cellsearch.correlator import CorrelatorBank
from cellsearch.decimator import Decimator
from cellsearch.frame_sync import cp_advance_ramp
from cellsearch.stream import SampleBlock
from cellsearch.waveforms import generate_ssb


def _front_end(config):
    d1 = Decimator(config.decimation_factor, config.cic_order, config.sample_dw)
    d2 = Decimator(config.correlation_decimation, config.cic_order, config.sample_dw)
    return d1, d2


def _calibrate(config, samples, ratio=0.5):
    """Sets the absolute detection floor to a fraction of the largest correlation."""
    reference = config.model_copy(update={"mult_reuse": 0, "clocks_per_sample": 1})
    d1, d2 = _front_end(config)
    scores = CorrelatorBank(reference)(d2(d1(SampleBlock.from_ticks(samples, 0))))
    threshold = int(scores.magnitudes.max() * ratio)
    return config.model_copy(update={"detection_threshold": threshold})


@pytest.fixture
def scenario():
    """
    Factory for (config, samples, info) triples.

    The FFT size defaults to 256 with a raw rate of twice the FFT rate, which
    keeps the streams short. The detection floor is calibrated to half the
    largest correlation magnitude of the generated waveform.
    """

    def make(n_id_1=209, n_id_2=1, cfo=0.0, snr_db=None, seed=1, offset=None, **config_kwargs):
        config_kwargs.setdefault("nfft", 8)
        config_kwargs.setdefault("base_nfft", config_kwargs["nfft"] + 1)
        config = PipelineConfig(**config_kwargs)
        samples, info = generate_ssb(
            config,
            n_id_1=n_id_1,
            n_id_2=n_id_2,
            offset=offset,
            cfo=cfo,
            snr_db=snr_db,
            seed=seed,
        )
        return _calibrate(config, samples), samples, info

    return make


@pytest.fixture
def reference_symbol():
    """
    Floating-point reference of a demodulated symbol.

    The reference reuses the bit-exact FFT-rate samples of a standalone
    decimator, derotates them with the pipeline's quantized CFO and applies
    a float FFT, the CP-advance ramp and the symbol's block exponent.
    """

    def build(pipe, samples, symbol):
        config = pipe.config
        d1, _ = _front_end(config)
        y = d1(SampleBlock.from_ticks(samples, 0)).values

        boundary = pipe.timing.symbol_boundary_index
        start = boundary + symbol.index * config.symbol_len + config.cp_advance
        n = np.arange(start, start + config.fft_len)
        omega = pipe.status.cfo.radians_per_sample
        x = y[start : start + config.fft_len] * np.exp(-1j * omega * (n - boundary))

        spectrum = np.fft.fftshift(np.fft.fft(x)) * cp_advance_ramp(config)
        return spectrum * 2.0 ** (-symbol.exponent)

    return build
