"""Tests for NR synchronization sequence generation."""

import numpy as np
import pytest

from cellsearch import sequences


class TestPSS:
    def test_pss_is_bpsk(self):
        for n_id_2 in range(3):
            seq = sequences.pss(n_id_2)
            assert seq.shape == (127,)
            assert np.all(np.abs(seq) == 1)

    def test_pss_first_chips(self):
        """x(0..6) = 0110111 maps to +1 -1 -1 +1 -1 -1 -1."""
        np.testing.assert_array_equal(sequences.pss(0)[:7], [1, -1, -1, 1, -1, -1, -1])

    def test_pss_cyclic_shift(self):
        """N_id_2 = 1 is the N_id_2 = 0 sequence shifted by 43 chips."""
        np.testing.assert_array_equal(sequences.pss(1), np.roll(sequences.pss(0), -43))

    def test_pss_cross_correlation_low(self):
        auto = np.dot(sequences.pss(0), sequences.pss(0))
        cross = np.abs(np.dot(sequences.pss(0), sequences.pss(2)))
        assert auto == 127
        assert cross < 20

    def test_invalid_n_id_2(self):
        with pytest.raises(ValueError, match="N_id_2"):
            sequences.pss(3)


class TestSSS:
    def test_sss_distinct(self):
        a = sequences.sss(0, 0)
        b = sequences.sss(1, 0)
        assert np.all(np.abs(a) == 1)
        assert np.abs(np.dot(a, b)) < 127

    def test_invalid_n_id_1(self):
        with pytest.raises(ValueError, match="N_id_1"):
            sequences.sss(336, 0)

    def test_identify_sss_noisy(self):
        """The transmitted group is recovered from a noisy, rotated SSS."""
        rng = np.random.default_rng(3)
        rx = sequences.sss(209, 1) * np.exp(1j * 0.7)
        rx = rx + 0.5 * (rng.normal(size=127) + 1j * rng.normal(size=127))
        n_id_1, scores = sequences.identify_sss(rx, 1)
        assert n_id_1 == 209
        assert scores.shape == (336,)

    def test_identify_sss_wrong_length(self):
        with pytest.raises(ValueError):
            sequences.identify_sss(np.ones(100), 0)


class TestTemplate:
    def test_time_domain_spectrum(self):
        """The template carries the PSS on sub-carriers -64..62."""
        t = sequences.pss_time_domain(2)
        grid = np.fft.fftshift(np.fft.fft(t))
        np.testing.assert_allclose(grid[:127].real, sequences.pss(2), atol=1e-9)
        assert abs(grid[127]) < 1e-9

    def test_taps_full_scale(self):
        taps = sequences.pss_taps(0, 16)
        peak = max(np.abs(taps.real).max(), np.abs(taps.imag).max())
        assert peak == 2**15 - 1
        np.testing.assert_array_equal(taps, np.rint(taps.real) + 1j * np.rint(taps.imag))

    def test_taps_are_matched_filter(self):
        """Convolving the template with its taps peaks at the last sample."""
        t = sequences.pss_time_domain(1)
        taps = sequences.pss_taps(1, 16)
        out = np.abs(np.convolve(t, taps))
        assert np.argmax(out) == 127


def test_random_qpsk_unit_energy():
    s = sequences.random_qpsk(1000, seed=0)
    np.testing.assert_allclose(np.abs(s), 1.0)
