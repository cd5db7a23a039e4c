"""Tests for the CIC decimator."""

import numpy as np
import pytest

from cellsearch.decimator import Decimator
from cellsearch.stream import SampleBlock


def _random_block(n, seed=0, width=16):
    rng = np.random.default_rng(seed)
    hi = 1 << (width - 1)
    return SampleBlock.from_ticks(
        rng.integers(-hi, hi, n) + 1j * rng.integers(-hi, hi, n), first_tick=0
    )


class TestDecimator:
    def test_unity_dc_gain(self):
        """A constant input settles to the same constant."""
        dec = Decimator(8, order=2, width=16)
        out = dec(SampleBlock.from_ticks(np.full(256, 1234 - 567j), 0))
        np.testing.assert_array_equal(out.values[2:], 1234 - 567j)

    def test_full_scale_does_not_overflow(self):
        dec = Decimator(16, order=4, width=16)
        out = dec(SampleBlock.from_ticks(np.full(1024, 32767 - 32768j), 0))
        np.testing.assert_array_equal(out.values[4:], 32767 - 32768j)

    def test_output_count_and_ticks(self):
        """Output m comes from input m*D + D - 1 and is stamped latency ticks later."""
        dec = Decimator(4, order=2, width=16)
        out = dec(_random_block(40))
        assert len(out) == 10
        np.testing.assert_array_equal(out.ticks, np.arange(10) * 4 + 3 + dec.latency)
        assert dec.latency == 3

    def test_origins_compensate_group_delay(self):
        """With an even order, output m is aligned with input m*D."""
        dec = Decimator(8, order=2, width=16)
        out = dec(_random_block(80))
        np.testing.assert_array_equal(out.origins, np.arange(10) * 8)

    def test_chunking_independent(self):
        block = _random_block(500, seed=4)
        whole = Decimator(8, order=2, width=16)(block)

        dec = Decimator(8, order=2, width=16)
        parts = []
        for start in range(0, 500, 37):
            sl = slice(start, start + 37)
            parts.append(dec(SampleBlock(block.values[sl], block.ticks[sl], block.origins[sl])))
        values = np.concatenate([p.values for p in parts])
        ticks = np.concatenate([p.ticks for p in parts])
        origins = np.concatenate([p.origins for p in parts])

        np.testing.assert_array_equal(values, whole.values)
        np.testing.assert_array_equal(ticks, whole.ticks)
        np.testing.assert_array_equal(origins, whole.origins)

    def test_reset_restarts_phase(self):
        dec = Decimator(4, order=2, width=16)
        first = dec(_random_block(64, seed=2))
        dec(_random_block(3, seed=5))
        dec.reset()
        again = dec(_random_block(64, seed=2))
        np.testing.assert_array_equal(first.values, again.values)

    def test_factor_one_passes_through(self):
        block = _random_block(20)
        out = Decimator(1, order=2, width=16)(block)
        np.testing.assert_array_equal(out.values, block.values)

    def test_invalid_factor(self):
        with pytest.raises(ValueError, match="power of two"):
            Decimator(6)

    def test_empty_block(self):
        out = Decimator(4)(SampleBlock.empty())
        assert len(out) == 0
