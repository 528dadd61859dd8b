"""Pure spectral-analysis and signal-statistics functions used by the detectors.

All functions in this module are stateless: they take arrays (and scalar
parameters) and return results without touching any shared mutable state.
"""

from __future__ import annotations

from typing import NamedTuple

import numpy as np

MAX_FFT_N = 2048
DEFAULT_SAMPLE_RATE_HZ = 1000.0

# Band edges aligned with Betaflight noise domains.
LOW_BAND_MAX_HZ = 30.0  # aerodynamic, I-term hunting, frame sway
MID_BAND_MAX_HZ = 150.0  # PID oscillation, propwash, structural resonance


class BandEnergy(NamedTuple):
    low: float
    mid: float
    high: float

    @property
    def total(self) -> float:
        return self.low + self.mid + self.high

    @property
    def high_ratio(self) -> float:
        total = self.total
        return self.high / total if total > 0 else 0.0


class FrequencySpectrum(NamedTuple):
    frequencies: np.ndarray
    magnitudes: np.ndarray
    dominant_frequency: float
    dominant_magnitude: float
    band_energy: BandEnergy


class SpectralPeak(NamedTuple):
    frequency: float
    magnitude: float
    bin_index: int


_EMPTY_SPECTRUM = FrequencySpectrum(
    frequencies=np.zeros(0),
    magnitudes=np.zeros(0),
    dominant_frequency=0.0,
    dominant_magnitude=0.0,
    band_energy=BandEnergy(0.0, 0.0, 0.0),
)


def rms(values: np.ndarray) -> float:
    if values.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(values, dtype=np.float64))))


def std_dev(values: np.ndarray) -> float:
    if values.size == 0:
        return 0.0
    return float(np.std(values, dtype=np.float64))


def tracking_error(setpoint: np.ndarray, gyro: np.ndarray) -> np.ndarray:
    """Per-sample ``setpoint - gyro`` over the common length."""
    n = min(setpoint.size, gyro.size)
    return setpoint[:n] - gyro[:n]


def peak_to_peak(values: np.ndarray) -> float:
    if values.size == 0:
        return 0.0
    return float(np.max(values) - np.min(values))


def derive_sample_rate(times_us: np.ndarray) -> float:
    """Sample rate in Hz from microsecond timestamps, 1 kHz when undeterminable."""
    if times_us.size < 2:
        return DEFAULT_SAMPLE_RATE_HZ
    total = float(times_us[-1] - times_us[0])
    if total <= 0:
        return DEFAULT_SAMPLE_RATE_HZ
    return (times_us.size - 1) / total * 1_000_000.0


def _next_pow2(n: int) -> int:
    return 1 << max(0, (n - 1).bit_length())


def analyze_frequency(signal: np.ndarray, sample_rate_hz: float) -> FrequencySpectrum:
    """Hann-windowed single-sided amplitude spectrum of *signal*.

    Non-finite samples are zeroed; the signal is zero-padded (or truncated) to
    a power of two no larger than :data:`MAX_FFT_N`.  The DC bin is excluded
    when picking the dominant frequency.
    """
    if signal.size < 4 or sample_rate_hz <= 0:
        return _EMPTY_SPECTRUM
    clean = np.where(np.isfinite(signal), signal, 0.0).astype(np.float64)
    fft_n = _next_pow2(min(clean.size, MAX_FFT_N))
    if clean.size >= fft_n:
        block = clean[:fft_n]
    else:
        block = np.pad(clean, (0, fft_n - clean.size))
    block = block - np.mean(block)
    windowed = block * np.hanning(fft_n)

    half = fft_n // 2
    spec = np.abs(np.fft.rfft(windowed))[:half]
    magnitudes = spec / fft_n * 2.0
    frequencies = np.arange(half, dtype=np.float64) * sample_rate_hz / fft_n

    if magnitudes.size > 1:
        dominant_idx = int(np.argmax(magnitudes[1:]) + 1)
        dominant_mag = float(magnitudes[dominant_idx])
    else:
        dominant_idx = 0
        dominant_mag = 0.0
    if dominant_mag <= 0:
        dominant_idx = 0

    energy = np.square(magnitudes)
    band_energy = BandEnergy(
        low=float(np.sum(energy[frequencies < LOW_BAND_MAX_HZ])),
        mid=float(
            np.sum(energy[(frequencies >= LOW_BAND_MAX_HZ) & (frequencies < MID_BAND_MAX_HZ)])
        ),
        high=float(np.sum(energy[frequencies >= MID_BAND_MAX_HZ])),
    )
    return FrequencySpectrum(
        frequencies=frequencies,
        magnitudes=magnitudes,
        dominant_frequency=float(frequencies[dominant_idx]),
        dominant_magnitude=dominant_mag,
        band_energy=band_energy,
    )


def find_spectral_peaks(
    frequencies: np.ndarray,
    magnitudes: np.ndarray,
    *,
    top_n: int = 5,
    min_hz: float = 5.0,
    max_hz: float = float("inf"),
) -> list[SpectralPeak]:
    """Strict local maxima within ``[min_hz, max_hz]``, strongest first."""
    if magnitudes.size < 3:
        return []
    inner = magnitudes[1:-1]
    is_peak = (inner > magnitudes[:-2]) & (inner > magnitudes[2:])
    in_band = (frequencies[1:-1] >= min_hz) & (frequencies[1:-1] <= max_hz)
    idx = np.nonzero(is_peak & in_band)[0] + 1
    # Stable sort keeps lower-frequency peaks first on equal magnitude.
    order = np.argsort(-magnitudes[idx], kind="stable")
    return [
        SpectralPeak(float(frequencies[i]), float(magnitudes[i]), int(i)) for i in idx[order][:top_n]
    ]


def peak_prominence(magnitudes: np.ndarray, bin_index: int) -> float:
    """Ratio of a peak bin to the mean of its two neighbours (1.0 when undefined)."""
    if bin_index <= 0 or bin_index >= magnitudes.size - 1:
        return 1.0
    neighbour_avg = (float(magnitudes[bin_index - 1]) + float(magnitudes[bin_index + 1])) / 2.0
    if neighbour_avg <= 0:
        return 1.0
    return float(magnitudes[bin_index]) / neighbour_avg
