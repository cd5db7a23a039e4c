"""Tests for the block-scaled fixed-point FFT."""

import numpy as np
import pytest

from cellsearch.config import PipelineConfig
from cellsearch.fft_demod import FFTDemodulator, _normalise
from cellsearch.fixedpoint import quantize
from cellsearch.frame_sync import SymbolRole, SymbolWindow, cp_advance_ramp
from cellsearch.metrics import peak_error_ratio


def _window(samples, ramp, role=None, index=0, tick=0):
    return SymbolWindow(index=index, start=0, samples=samples, tick=tick, role=role, ramp=ramp)


def _unit_ramp(cfg):
    return quantize(np.ones(cfg.fft_len, dtype=np.complex128), cfg.coeff_dw)


def _random_samples(n, amplitude=4000, seed=0):
    rng = np.random.default_rng(seed)
    return np.rint(rng.normal(0, amplitude, n)) + 1j * np.rint(rng.normal(0, amplitude, n))


class TestFFTDemodulator:
    @pytest.mark.parametrize("nfft", [8, 9])
    def test_matches_float_fft(self, nfft):
        cfg = PipelineConfig(nfft=nfft)
        fft = FFTDemodulator(cfg)
        x = _random_samples(cfg.fft_len)
        data, exponent = fft.transform(x, _unit_ramp(cfg))

        ref = np.fft.fftshift(np.fft.fft(x)) * 2.0**-exponent
        assert peak_error_ratio(data, ref) < 5e-3

    def test_ramp_applied_after_shift(self):
        cfg = PipelineConfig(nfft=8, half_cp_advance=True)
        fft = FFTDemodulator(cfg)
        x = _random_samples(cfg.fft_len, seed=1)
        ramp = cp_advance_ramp(cfg)
        data, exponent = fft.transform(x, quantize(ramp, cfg.coeff_dw))

        ref = np.fft.fftshift(np.fft.fft(x)) * ramp * 2.0**-exponent
        assert peak_error_ratio(data, ref) < 5e-3

    def test_output_uses_full_width(self):
        cfg = PipelineConfig(nfft=8)
        data, _ = FFTDemodulator(cfg).transform(_random_samples(256, amplitude=10), _unit_ramp(cfg))
        peak = max(np.abs(data.real).max(), np.abs(data.imag).max())
        assert 2 ** (cfg.fft_dw - 2) <= peak < 2 ** (cfg.fft_dw - 1)

    def test_impulse_is_flat(self):
        cfg = PipelineConfig(nfft=8)
        x = np.zeros(256, dtype=np.complex128)
        x[0] = 1000
        data, exponent = FFTDemodulator(cfg).transform(x, _unit_ramp(cfg))
        np.testing.assert_allclose(data * 2.0**exponent, 1000, rtol=1e-3)

    def test_zero_window(self):
        cfg = PipelineConfig(nfft=8)
        data, exponent = FFTDemodulator(cfg).transform(np.zeros(256), _unit_ramp(cfg))
        assert exponent == 0
        assert not np.any(data)

    def test_latency_and_ticks(self):
        cfg = PipelineConfig(nfft=8)
        fft = FFTDemodulator(cfg)
        assert fft.latency == 256 + 8 + 2
        (sym,) = fft.process([_window(_random_samples(256), _unit_ramp(cfg), tick=1000)])
        assert sym.tick == 1000 + fft.latency

    def test_sss_window(self):
        cfg = PipelineConfig(nfft=8)
        fft = FFTDemodulator(cfg)
        (sym,) = fft.process([_window(_random_samples(256), _unit_ramp(cfg), role=SymbolRole.SSS)])
        assert sym.sss_valid and not sym.pbch_valid
        assert sym.sss.shape == (127,)
        np.testing.assert_array_equal(sym.sss, sym.data[64:191])
        assert sym.pbch is None
        sss, pbch = sym.flags()
        assert sss.sum() == 127 and pbch.sum() == 0

    def test_pbch_window(self):
        cfg = PipelineConfig(nfft=9)
        fft = FFTDemodulator(cfg)
        (sym,) = fft.process([_window(_random_samples(512), _unit_ramp(cfg), role=SymbolRole.PBCH)])
        assert sym.pbch.shape == (240,)
        np.testing.assert_array_equal(sym.pbch, sym.data[136:376])
        assert sym.sss is None
        _, pbch = sym.flags()
        assert pbch.sum() == 240

    def test_back_to_back_windows_do_not_overlap(self):
        """Windows completing on the same tick leave the output port in turn."""
        cfg = PipelineConfig(nfft=8)
        fft = FFTDemodulator(cfg)
        ramp = _unit_ramp(cfg)
        windows = [
            _window(_random_samples(256, seed=s), ramp, index=s, tick=1000) for s in range(3)
        ]
        ticks = [sym.tick for sym in fft.process(windows[:2])]
        ticks += [sym.tick for sym in fft.process(windows[2:])]
        first = 1000 + fft.latency
        assert ticks == [first, first + 256, first + 512]

        fft.reset()
        (sym,) = fft.process(windows[:1])
        assert sym.tick == first

    def test_late_window_keeps_its_own_tick(self):
        cfg = PipelineConfig(nfft=8)
        fft = FFTDemodulator(cfg)
        ramp = _unit_ramp(cfg)
        a, b = fft.process(
            [
                _window(_random_samples(256), ramp, index=0, tick=1000),
                _window(_random_samples(256), ramp, index=1, tick=1600),
            ]
        )
        assert (a.tick, b.tick) == (1000 + fft.latency, 1600 + fft.latency)


class TestNormalise:
    def test_small_block_shifted_left(self):
        re = np.array([3, -5], dtype=np.int64)
        im = np.array([0, 1], dtype=np.int64)
        re, im, shift = _normalise(re, im, 6)
        assert shift == -3
        np.testing.assert_array_equal(re, [24, -40])
        np.testing.assert_array_equal(im, [0, 8])

    def test_large_block_rounded_right(self):
        re = np.array([1000, -3], dtype=np.int64)
        im = np.array([6, 0], dtype=np.int64)
        re, im, shift = _normalise(re, im, 8)
        assert shift == 2
        np.testing.assert_array_equal(re, [250, -1])
        np.testing.assert_array_equal(im, [2, 0])

    def test_zero_block(self):
        zeros = np.zeros(4, dtype=np.int64)
        _, _, shift = _normalise(zeros, zeros, 8)
        assert shift == 0
