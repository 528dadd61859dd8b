"""Signal processing package.

- :mod:`~quadtune.processing.frames` — columnar numpy view over decoded frames.
- :mod:`~quadtune.processing.spectrum` — pure FFT / signal-statistics functions.
"""

from .frames import FrameArrays
from .spectrum import (
    BandEnergy,
    FrequencySpectrum,
    SpectralPeak,
    analyze_frequency,
    derive_sample_rate,
    find_spectral_peaks,
    peak_prominence,
    peak_to_peak,
    rms,
    std_dev,
    tracking_error,
)

__all__ = [
    "BandEnergy",
    "FrameArrays",
    "FrequencySpectrum",
    "SpectralPeak",
    "analyze_frequency",
    "derive_sample_rate",
    "find_spectral_peaks",
    "peak_prominence",
    "peak_to_peak",
    "rms",
    "std_dev",
    "tracking_error",
]
