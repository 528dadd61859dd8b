from __future__ import annotations

import numpy as np
import pytest

from quadtune.processing import (
    analyze_frequency,
    derive_sample_rate,
    find_spectral_peaks,
    peak_prominence,
    peak_to_peak,
    rms,
    std_dev,
    tracking_error,
)


def _tone(freq_hz: float, n: int = 1024, rate: float = 1000.0, amp: float = 1.0) -> np.ndarray:
    t = np.arange(n) / rate
    return amp * np.sin(2.0 * np.pi * freq_hz * t)


# ---------------------------------------------------------------------------
# Scalar statistics
# ---------------------------------------------------------------------------


class TestStatistics:
    def test_rms_of_sine_is_amplitude_over_root_two(self) -> None:
        assert rms(_tone(50.0, amp=10.0)) == pytest.approx(10.0 / np.sqrt(2.0), rel=1e-2)

    def test_empty_arrays_give_zero(self) -> None:
        empty = np.zeros(0)
        assert rms(empty) == 0.0
        assert std_dev(empty) == 0.0
        assert peak_to_peak(empty) == 0.0

    def test_peak_to_peak(self) -> None:
        assert peak_to_peak(np.array([-3.0, 1.0, 4.0])) == 7.0

    def test_tracking_error_uses_common_length(self) -> None:
        err = tracking_error(np.array([10.0, 20.0, 30.0]), np.array([1.0, 2.0]))
        assert err.tolist() == [9.0, 18.0]


class TestDeriveSampleRate:
    def test_one_khz_timestamps(self) -> None:
        times = np.arange(0, 100_000, 1000, dtype=np.int64)
        assert derive_sample_rate(times) == pytest.approx(1000.0)

    @pytest.mark.parametrize("times", [[], [5], [7, 7, 7]])
    def test_degenerate_timestamps_default_to_one_khz(self, times: list[int]) -> None:
        assert derive_sample_rate(np.array(times, dtype=np.int64)) == 1000.0


# ---------------------------------------------------------------------------
# Spectrum
# ---------------------------------------------------------------------------


class TestAnalyzeFrequency:
    @pytest.mark.smoke
    def test_dominant_frequency_of_pure_tone(self) -> None:
        spectrum = analyze_frequency(_tone(100.0), 1000.0)
        assert spectrum.dominant_frequency == pytest.approx(100.0, abs=1.5)
        assert spectrum.dominant_magnitude > 0.3

    def test_band_energy_places_tone_in_high_band(self) -> None:
        spectrum = analyze_frequency(_tone(250.0), 1000.0)
        assert spectrum.band_energy.high_ratio > 0.9

    def test_short_signal_gives_empty_spectrum(self) -> None:
        spectrum = analyze_frequency(np.array([1.0, 2.0]), 1000.0)
        assert spectrum.frequencies.size == 0
        assert spectrum.dominant_frequency == 0.0

    def test_non_finite_samples_are_zeroed(self) -> None:
        signal = _tone(100.0)
        signal[10] = np.nan
        signal[20] = np.inf
        spectrum = analyze_frequency(signal, 1000.0)
        assert np.all(np.isfinite(spectrum.magnitudes))
        assert spectrum.dominant_frequency == pytest.approx(100.0, abs=1.5)

    def test_constant_signal_has_no_dominant_frequency(self) -> None:
        spectrum = analyze_frequency(np.full(256, 5.0), 1000.0)
        assert spectrum.dominant_frequency == 0.0
        assert spectrum.dominant_magnitude == 0.0

    def test_fft_length_is_capped(self) -> None:
        spectrum = analyze_frequency(_tone(100.0, n=10_000), 1000.0)
        assert spectrum.frequencies.size == 1024


class TestSpectralPeaks:
    def test_two_tones_strongest_first(self) -> None:
        signal = _tone(80.0, amp=2.0) + _tone(220.0, amp=1.0)
        spectrum = analyze_frequency(signal, 1000.0)
        peaks = find_spectral_peaks(spectrum.frequencies, spectrum.magnitudes, top_n=2)
        assert len(peaks) == 2
        assert peaks[0].frequency == pytest.approx(80.0, abs=1.5)
        assert peaks[1].frequency == pytest.approx(220.0, abs=1.5)

    def test_band_limits_are_respected(self) -> None:
        signal = _tone(80.0, amp=2.0) + _tone(220.0, amp=1.0)
        spectrum = analyze_frequency(signal, 1000.0)
        peaks = find_spectral_peaks(
            spectrum.frequencies, spectrum.magnitudes, top_n=1, min_hz=150.0, max_hz=300.0
        )
        assert peaks[0].frequency == pytest.approx(220.0, abs=1.5)

    def test_too_few_bins(self) -> None:
        assert find_spectral_peaks(np.zeros(2), np.zeros(2)) == []


class TestPeakProminence:
    def test_ratio_to_neighbour_mean(self) -> None:
        mags = np.array([0.0, 1.0, 6.0, 3.0, 0.0])
        assert peak_prominence(mags, 2) == pytest.approx(3.0)

    @pytest.mark.parametrize("index", [0, 4])
    def test_edge_bins_default_to_one(self, index: int) -> None:
        assert peak_prominence(np.array([1.0, 2.0, 3.0, 2.0, 1.0]), index) == 1.0

    def test_zero_neighbours_default_to_one(self) -> None:
        assert peak_prominence(np.array([0.0, 5.0, 0.0]), 1) == 1.0
