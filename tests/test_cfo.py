"""Tests for the CFO calculator."""

import numpy as np
import pytest

from cellsearch.cfo import CFOCalculator, CFOEstimate
from cellsearch.config import PipelineConfig
from cellsearch.correlator import CorrelatorBank
from cellsearch.fixedpoint import quantize
from cellsearch.peak_detector import Peak
from cellsearch.sequences import pss_time_domain
from cellsearch.stream import SampleBlock


def _peak(early, late):
    return Peak(
        position=0, sample_index=0, origin=0, n_id_2=0, magnitude=1, early=early, late=late
    )


class TestCFOCalculator:
    def test_quarter_spacing(self):
        cfg = PipelineConfig(nfft=8)
        est = CFOCalculator(cfg).process(_peak(1000 + 0j, 1000 * np.exp(1j * np.pi / 4)))
        assert est.phase == 2**13
        assert est.epsilon == 0.25
        assert est.increment == 2**14
        assert est.radians_per_sample == pytest.approx(2 * np.pi * 0.25 / 256)

    def test_negative_offset(self):
        cfg = PipelineConfig(nfft=9)
        est = CFOCalculator(cfg).process(_peak(1j, 1j * np.exp(-1j * 0.3 * np.pi)))
        assert est.epsilon == pytest.approx(-0.3, abs=1e-4)
        assert est.increment < 0

    def test_reset_clears_estimate(self):
        calc = CFOCalculator(PipelineConfig())
        calc.process(_peak(1 + 0j, 1 + 0j))
        assert calc.estimate is not None
        calc.reset()
        assert calc.estimate is None

    def test_nco_accumulator(self):
        est = CFOEstimate(phase=0, epsilon=0.0, increment=1 << 22, phase_dw=24)
        rot = est.nco(np.arange(4), 16)
        np.testing.assert_array_equal(rot, quantize(np.exp(-0.5j * np.pi * np.arange(4)), 16))

    def test_nco_wraps(self):
        est = CFOEstimate(phase=0, epsilon=0.0, increment=3 << 22, phase_dw=24)
        np.testing.assert_array_equal(est.nco([4], 16), est.nco([0], 16))

    @pytest.mark.parametrize("epsilon", [-0.4, -0.1, 0.15, 0.35])
    def test_estimate_from_correlator_halves(self, epsilon):
        """A frequency-shifted PSS yields its offset through the half correlations."""
        cfg = PipelineConfig(nfft=8, base_nfft=9)
        t = pss_time_domain(0) * np.exp(2j * np.pi * epsilon / 128 * np.arange(128))
        t = t / np.abs(t).max() * 0.5
        x = quantize(np.concatenate((np.zeros(20), t, np.zeros(20))), cfg.sample_dw)
        out = CorrelatorBank(cfg)(SampleBlock.from_ticks(x, 0))
        k = int(np.argmax(out.magnitudes[0]))
        est = CFOCalculator(cfg).process(_peak(out.early[0, k], out.late[0, k]))
        assert est.epsilon == pytest.approx(epsilon, abs=0.05)
