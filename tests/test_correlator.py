"""Tests for the PSS correlator bank."""

import numpy as np
import pytest

from cellsearch.config import PipelineConfig
from cellsearch.correlator import CorrelatorBank
from cellsearch.fixedpoint import quantize
from cellsearch.sequences import pss_time_domain
from cellsearch.stream import SampleBlock


def _config(**kwargs):
    kwargs.setdefault("nfft", 8)
    kwargs.setdefault("base_nfft", 9)
    return PipelineConfig(**kwargs)


def _pss_block(n_id_2, lead=50, tail=60, width=16):
    t = pss_time_domain(n_id_2)
    t = t / max(np.abs(t.real).max(), np.abs(t.imag).max()) * 0.5
    x = np.concatenate((np.zeros(lead), t, np.zeros(tail)))
    return SampleBlock.from_ticks(quantize(x, width), 0)


class TestCorrelatorBank:
    @pytest.mark.parametrize("n_id_2", [0, 1, 2])
    def test_peak_at_last_pss_sample(self, n_id_2):
        bank = CorrelatorBank(_config())
        out = bank(_pss_block(n_id_2, lead=50))
        hyp, idx = np.unravel_index(np.argmax(out.magnitudes), out.magnitudes.shape)
        assert hyp == n_id_2
        assert idx == 50 + 127

    def test_algorithms_identical(self):
        block = _pss_block(1)
        rng = np.random.default_rng(7)
        block.values = block.values + rng.integers(-500, 500, len(block))
        a = CorrelatorBank(_config(algo=0))(block)
        b = CorrelatorBank(_config(algo=1))(block)
        np.testing.assert_array_equal(a.magnitudes, b.magnitudes)
        np.testing.assert_array_equal(a.early, b.early)
        np.testing.assert_array_equal(a.late, b.late)

    def test_halves_sum_to_full(self):
        """Early and late halves add up to the unshifted full correlation."""
        cfg = _config()
        bank = CorrelatorBank(cfg)
        out = bank(_pss_block(0))
        full = out.early[0] + out.late[0]
        shifted = np.abs(full.real) // 2**bank.mag_shift
        assert np.all(shifted < 2**31)
        peak = np.argmax(out.magnitudes[0])
        assert abs(full[peak]) > 10 * abs(full[peak - 3])

    def test_chunking_independent(self):
        block = _pss_block(2)
        whole = CorrelatorBank(_config())(block)
        bank = CorrelatorBank(_config())
        parts = [
            bank(SampleBlock(block.values[i : i + 29], block.ticks[i : i + 29], block.origins[i : i + 29]))
            for i in range(0, len(block), 29)
        ]
        mags = np.concatenate([p.magnitudes for p in parts], axis=1)
        np.testing.assert_array_equal(mags, whole.magnitudes)

    def test_latency_full_parallel(self):
        assert CorrelatorBank(_config()).latency == 9

    def test_latency_non_decreasing_in_reuse(self):
        latencies = [
            CorrelatorBank(_config(mult_reuse=r, clocks_per_sample=8)).latency
            for r in (0, 1, 2, 4, 8, 16, 32)
        ]
        assert latencies == sorted(latencies)
        assert latencies[1] == 1 + 2 + 7
        assert latencies[-1] == 32 + 2 + 2

    def test_multiplier_count(self):
        assert CorrelatorBank(_config()).multipliers == 3 * 128 * 4
        assert CorrelatorBank(_config(algo=1, mult_reuse=4)).multipliers == 3 * 32 * 3

    def test_overrun_skips_results(self):
        """Inputs arriving every tick with reuse 4 only produce every 4th result."""
        bank = CorrelatorBank(_config(mult_reuse=4))
        block = _pss_block(0, lead=0, tail=0)
        out = bank(block)
        assert len(out) == len(block) // 4
        assert bank.overruns == len(block) - len(out)
        np.testing.assert_array_equal(out.index, np.arange(0, len(block), 4))

    def test_ticks_include_latency(self):
        bank = CorrelatorBank(_config())
        block = _pss_block(0)
        out = bank(block)
        np.testing.assert_array_equal(out.ticks, block.ticks + bank.latency)

    def test_taps_shape_checked(self):
        with pytest.raises(ValueError, match="shape"):
            CorrelatorBank(_config(), taps=np.ones((3, 64)))

    def test_reset_clears_history(self):
        bank = CorrelatorBank(_config())
        first = bank(_pss_block(1))
        bank(_pss_block(2))
        bank.reset()
        again = bank(_pss_block(1))
        np.testing.assert_array_equal(first.magnitudes, again.magnitudes)
