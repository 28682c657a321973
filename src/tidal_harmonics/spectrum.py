"""
Residual spectra for confidence-interval estimation.

Provides the built-in power-spectral-density estimator used by the
``linear`` error estimator, averaging of a PSD over the tidal species
bands of t_tide (also applied to raw FFT power for the ``cboot``
surrogates), and the split of complex residual energy into its
counter-clockwise and clockwise rotary parts.

A PSD estimator is any callable ``(residual, dt_hours) -> (freq, psd)``
returning frequencies in cycles per hour and a one-sided density in
units squared per cycle-per-hour.  Missing samples arrive as NaN.
"""
from __future__ import annotations

import logging
from typing import Callable

import numpy as np
from scipy.fft import fft, fftfreq
from scipy.ndimage import uniform_filter1d
from scipy.signal import periodogram

logger = logging.getLogger(__name__)

PSDEstimator = Callable[[np.ndarray, float], tuple[np.ndarray, np.ndarray]]

SPECIES_BANDS = np.array([
    [0.00010, 0.00417],
    [0.03192, 0.04859],
    [0.07218, 0.08884],
    [0.11243, 0.12910],
    [0.15269, 0.16936],
    [0.19295, 0.20961],
    [0.23320, 0.25100],
    [0.27345, 0.29012],
    [0.31370, 0.33037],
    [0.35395, 0.37062],
    [0.39420, 0.41087],
    [0.43445, 0.45112],
    [0.47469, 0.49136],
])
"""Frequency bands (cycles per hour) of the tidal species, long-period first."""

SMOOTHING_BINS = 5


def periodogram_psd(
    residual: np.ndarray,
    dt_hours: float,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Hann-windowed periodogram of a real residual channel.

    Missing samples are set to zero and the density is rescaled by the
    fraction of valid samples.

    Parameters
    ----------
    residual : np.ndarray
        Real residual series, NaN where missing.
    dt_hours : float
        Sample interval in hours.

    Returns
    -------
    freq : np.ndarray
        Cycles per hour.
    psd : np.ndarray
        One-sided density, units squared per cycle-per-hour.
    """
    x = np.asarray(residual, dtype=float)
    finite = np.isfinite(x)
    n_valid = int(finite.sum())
    if n_valid == 0:
        return np.array([0.0]), np.array([0.0])
    x = np.where(finite, x, 0.0)
    freq, psd = periodogram(
        x, fs=1.0 / dt_hours, window='hann', detrend=False,
        return_onesided=True, scaling='density',
    )
    return freq, psd * (x.size / n_valid)


def band_index(frequency: float) -> int:
    """Index of the species band containing *frequency*, or the nearest one."""
    inside = np.nonzero(
        (SPECIES_BANDS[:, 0] <= frequency) & (frequency <= SPECIES_BANDS[:, 1])
    )[0]
    if inside.size:
        return int(inside[0])
    distance = np.minimum(
        np.abs(SPECIES_BANDS[:, 0] - frequency),
        np.abs(SPECIES_BANDS[:, 1] - frequency),
    )
    return int(np.argmin(distance))


def band_averaged_psd(
    freq: np.ndarray,
    psd: np.ndarray,
    frequency: float,
) -> float:
    """
    Mean PSD over the species band of *frequency*.

    Falls back to linear interpolation at *frequency* when the spectrum
    has no bin inside the band (very short records).
    """
    lo, hi = SPECIES_BANDS[band_index(frequency)]
    in_band = (freq >= lo) & (freq <= hi)
    if np.any(in_band):
        return float(np.mean(psd[in_band]))
    return float(np.interp(frequency, freq, psd))


def band_noise_variance(
    residual: np.ndarray,
    dt_hours: float,
    frequencies: np.ndarray,
    estimator: PSDEstimator | None = None,
    logger: logging.Logger | None = None,
) -> np.ndarray:
    """
    Equivalent white-noise variance of a residual channel at each frequency.

    A one-sided density ``P`` corresponds to white noise of variance
    ``P / (2 * dt)``.

    Parameters
    ----------
    residual : np.ndarray
        Real residual channel, NaN where missing.
    dt_hours : float
        Sample interval in hours.
    frequencies : np.ndarray
        Constituent frequencies, cycles per hour.
    estimator : callable, optional
        PSD estimator; defaults to :func:`periodogram_psd`.
    logger : logging.Logger, optional

    Returns
    -------
    np.ndarray
        Variance per frequency.
    """
    _log = logger or logging.getLogger(__name__)
    estimator = estimator or periodogram_psd
    freq, psd = estimator(residual, dt_hours)
    freq = np.asarray(freq, dtype=float)
    psd = np.asarray(psd, dtype=float)
    variance = np.array([
        band_averaged_psd(freq, psd, f) / (2.0 * dt_hours)
        for f in np.atleast_1d(frequencies)
    ])
    _log.debug('Band noise variance: %s', variance)
    return variance


def smoothed_power(power: np.ndarray, freq: np.ndarray) -> np.ndarray:
    """
    Power spectrum averaged over the tidal species bands.

    Bins inside a band take the band mean, positive and negative
    frequencies separately; the remaining bins take a running mean over
    ``SMOOTHING_BINS`` neighbours in frequency order.  The least-squares
    fit leaves notches in the residual spectrum at the fitted lines, and
    the averaging fills them from the surrounding continuum.

    Parameters
    ----------
    power : np.ndarray
        ``|X|**2`` per FFT bin.
    freq : np.ndarray
        Bin frequencies, cycles per hour (``rfftfreq`` or ``fftfreq`` order).

    Returns
    -------
    np.ndarray
        Smoothed power, same order as *power*.
    """
    power = np.asarray(power, dtype=float)
    freq = np.asarray(freq, dtype=float)
    order = np.argsort(freq, kind='stable')
    out = np.empty_like(power)
    out[order] = uniform_filter1d(power[order], SMOOTHING_BINS, mode='nearest')
    for lo, hi in SPECIES_BANDS:
        for side in (freq, -freq):
            in_band = (side >= lo) & (side <= hi)
            if np.any(in_band):
                out[in_band] = power[in_band].mean()
    return out


def rotary_energy(residual: np.ndarray) -> tuple[float, float]:
    """
    Split the mean-square of a complex series into rotary parts.

    Parameters
    ----------
    residual : np.ndarray
        Complex series ``u + iv``; NaN samples count as zero.

    Returns
    -------
    tuple of float
        ``(counter_clockwise, clockwise)`` energy from positive and negative
        frequencies; the zero and Nyquist bins are shared equally.
    """
    z = np.asarray(residual, dtype=complex)
    finite = np.isfinite(z.real) & np.isfinite(z.imag)
    n_valid = int(finite.sum())
    if n_valid == 0:
        return 0.0, 0.0
    z = np.where(finite, z, 0.0)
    n = z.size
    power = np.abs(fft(z)) ** 2 / (n * n_valid)
    freqs = fftfreq(n)
    shared = (freqs == 0) | (np.abs(freqs) == 0.5)
    ccw = float(power[(freqs > 0) & ~shared].sum() + 0.5 * power[shared].sum())
    cw = float(power[(freqs < 0) & ~shared].sum() + 0.5 * power[shared].sum())
    return ccw, cw
