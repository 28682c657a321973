"""
95 % confidence intervals for harmonic constants.

Three estimators are registered by name in :data:`ESTIMATORS`:

- ``linear``  residual noise variance per constituent from the band-averaged
  residual spectrum (or the white residual variance), propagated through
  the least-squares covariance and linearized through the ellipse
  transform.
- ``wboot``   bootstrap with residual ``(u, v)`` pairs resampled with
  replacement (white, cross-correlated noise).
- ``cboot``   bootstrap with colored-noise surrogates: Gaussian series whose
  spectrum is the species-band-smoothed residual spectrum (default) or
  moving blocks of residuals.

Bootstrap trials re-solve through the stored factorization of the fit.
Every trial draws from its own child of ``numpy.random.SeedSequence(seed)``
and trials are processed in fixed-size batches, so results depend on the
seed only and not on the number of worker threads.
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable

import numpy as np
from scipy.fft import fft, fftfreq, ifft, irfft, rfft, rfftfreq

from .ellipse import ellipse_jacobian, rotary_to_ellipse
from .exceptions import InvalidConfigurationError
from .least_squares import FitResult
from .spectrum import PSDEstimator, band_noise_variance, smoothed_power

logger = logging.getLogger(__name__)

CI_METHODS = ('linear', 'wboot', 'cboot')
RESAMPLING_METHODS = ('spectral', 'block')
BATCH_SIZE = 25
Z_95 = 1.96
DEFAULT_BLOCK_HOURS = 24.84
PARAMETERS = ('Lsmaj', 'Lsmin', 'theta', 'g')


@dataclass(frozen=True)
class ConfidenceIntervals:
    """
    95 % half-widths per reported constituent.

    For scalar series ``Lsmaj`` holds the amplitude interval and ``g`` the
    phase interval; ``Lsmin`` and ``theta`` are zero.
    """

    method: str
    Lsmaj: np.ndarray
    Lsmin: np.ndarray
    theta: np.ndarray
    g: np.ndarray
    n_trials: int = 0


def _ellipse_matrix(y: np.ndarray) -> np.ndarray:
    """Ellipse parameters ``(n, 4)`` from stacked rotary coefficients."""
    c = y.reshape(-1, 4)
    params = rotary_to_ellipse(c[:, 0] + 1j * c[:, 1], c[:, 2] + 1j * c[:, 3])
    return np.stack([params[p] for p in PARAMETERS], axis=1)


# ---------------------------------------------------------------------------
# Linear propagation
# ---------------------------------------------------------------------------

def linear_intervals(
    fit: FitResult,
    coefficient_map: np.ndarray,
    frequencies: np.ndarray,
    interval_hours: float,
    white: bool = False,
    psd_estimator: PSDEstimator | None = None,
    logger: logging.Logger | None = None,
    **_ignored,
) -> ConfidenceIntervals:
    """
    Linearized confidence intervals.

    Parameters
    ----------
    fit : FitResult
    coefficient_map : np.ndarray
        Map from fit parameters to reported rotary coefficients (see
        :func:`~tidal_harmonics.least_squares.coefficient_map`).
    frequencies : np.ndarray
        Frequencies of the reported constituents, cycles per hour.
    interval_hours : float
    white : bool
        Use the residual variance (corrected for the fitted degrees of
        freedom) instead of the band-averaged residual spectrum.
    psd_estimator : callable, optional
        Replacement for the built-in periodogram.
    logger : logging.Logger, optional

    Returns
    -------
    ConfidenceIntervals
    """
    _log = logger or logging.getLogger(__name__)
    frequencies = np.atleast_1d(np.asarray(frequencies, dtype=float))
    n_out = frequencies.size

    g_inv = fit.inverse
    b_u = g_inv @ fit.gram_u @ g_inv
    b_v = g_inv @ fit.gram_v @ g_inv

    if white:
        n_rows = fit.design.n_rows
        dof = max(n_rows - fit.n_unknowns, 1)
        scale = n_rows / dof
        var_u = np.full(n_out, fit.residual_variance[0] * scale)
        var_v = np.full(
            n_out, fit.residual_variance[1] * scale if fit.vector else 0.0
        )
    else:
        if fit.vector:
            res_u, res_v = fit.residual.real, fit.residual.imag
        else:
            res_u, res_v = fit.residual, None
        var_u = band_noise_variance(
            res_u, interval_hours, frequencies, psd_estimator, _log
        )
        var_v = (
            band_noise_variance(res_v, interval_hours, frequencies, psd_estimator, _log)
            if res_v is not None else np.zeros(n_out)
        )

    y = coefficient_map @ fit.params
    jac = ellipse_jacobian(y.reshape(-1, 4))
    half = np.zeros((n_out, 4))
    for i in range(n_out):
        rows = coefficient_map[4 * i:4 * i + 4]
        cov_x = var_u[i] * b_u + var_v[i] * b_v
        cov_y = rows @ cov_x @ rows.T
        cov_e = jac[i] @ cov_y @ jac[i].T
        half[i] = Z_95 * np.sqrt(np.clip(np.diag(cov_e), 0.0, None))

    return _intervals('linear', half, fit.vector, 0)


# ---------------------------------------------------------------------------
# Bootstrap resampling
# ---------------------------------------------------------------------------

def _resample_pairs(rng, res_u, res_v, **_ignored):
    idx = rng.integers(0, res_u.size, res_u.size)
    return res_u[idx], (None if res_v is None else res_v[idx])


def _resample_blocks(rng, res_u, res_v, block=1, **_ignored):
    n = res_u.size
    block = int(min(max(block, 1), n))
    n_blocks = -(-n // block)
    starts = rng.integers(0, n - block + 1, n_blocks)
    idx = (starts[:, np.newaxis] + np.arange(block)[np.newaxis, :]).ravel()[:n]
    return res_u[idx], (None if res_v is None else res_v[idx])


def _spectral_amplitude(full: np.ndarray, vector: bool, interval_hours: float):
    """Square root of the band-smoothed FFT power of the residual."""
    n = full.size
    if vector:
        power = np.abs(fft(full)) ** 2
        freq = fftfreq(n, d=interval_hours)
    else:
        power = np.abs(rfft(full)) ** 2
        freq = rfftfreq(n, d=interval_hours)
    return np.sqrt(smoothed_power(power, freq))


def _resample_spectral(rng, res_u, res_v, amplitude=None, valid=None, **_ignored):
    """Gaussian surrogate with the smoothed residual spectrum."""
    n = valid.size
    gain = np.sqrt(n / int(valid.sum()))
    m = amplitude.size
    spectrum = amplitude * (
        rng.standard_normal(m) + 1j * rng.standard_normal(m)
    ) / np.sqrt(2.0)
    spectrum[0] = 0.0
    if res_v is None:
        if n % 2 == 0:
            spectrum[-1] = amplitude[-1] * rng.standard_normal()
        surrogate = irfft(spectrum, n) * gain
        return surrogate[valid], None
    surrogate = ifft(spectrum) * gain
    surrogate = surrogate[valid]
    return surrogate.real.copy(), surrogate.imag.copy()


RESAMPLERS: dict[str, Callable] = {
    'pairs': _resample_pairs,
    'block': _resample_blocks,
    'spectral': _resample_spectral,
}


def _deviations(samples: np.ndarray, point: np.ndarray) -> np.ndarray:
    """Deviations from the point estimate, angles wrapped."""
    dev = samples - point[np.newaxis]
    # theta is defined modulo 180; a half turn also moves g by 180
    half_turns = np.round(dev[..., 2] / 180.0)
    dev[..., 2] -= 180.0 * half_turns
    dev[..., 3] -= 180.0 * half_turns
    dev[..., 3] = np.mod(dev[..., 3] + 180.0, 360.0) - 180.0
    return dev


def bootstrap_intervals(
    fit: FitResult,
    coefficient_map: np.ndarray,
    frequencies: np.ndarray,
    interval_hours: float,
    method: str = 'cboot',
    n_trials: int = 300,
    seed: int | None = None,
    resampling: str = 'spectral',
    block_hours: float | None = None,
    n_jobs: int = 1,
    logger: logging.Logger | None = None,
    **_ignored,
) -> ConfidenceIntervals:
    """
    Bootstrap confidence intervals (``wboot`` or ``cboot``).

    Parameters
    ----------
    fit : FitResult
    coefficient_map : np.ndarray
    frequencies : np.ndarray
        Frequencies of the reported constituents (unused by the resampling
        itself, kept for a uniform estimator signature).
    interval_hours : float
    method : str
        ``'wboot'`` or ``'cboot'``.
    n_trials : int
    seed : int, optional
        Seed of the trial generators.  Identical seeds give identical
        intervals whatever *n_jobs* is.
    resampling : str
        ``cboot`` surrogate type, ``'spectral'`` or ``'block'``.
    block_hours : float, optional
        Block length of ``'block'`` resampling (default one lunar day).
    n_jobs : int
        Worker threads.
    logger : logging.Logger, optional

    Returns
    -------
    ConfidenceIntervals
    """
    _log = logger or logging.getLogger(__name__)
    if method == 'wboot':
        resampler = RESAMPLERS['pairs']
    elif resampling in RESAMPLERS and resampling != 'pairs':
        resampler = RESAMPLERS[resampling]
    else:
        raise InvalidConfigurationError(
            f"Unknown resampling '{resampling}'. Expected one of "
            f"{RESAMPLING_METHODS}."
        )

    res_u, res_v = fit.residual_channels()
    full = np.where(fit.valid, fit.residual, 0.0)
    if not fit.vector:
        full = full.real
    block = int(round((block_hours or DEFAULT_BLOCK_HOURS) / interval_hours))
    extra = {'valid': fit.valid, 'block': block}
    if resampler is _resample_spectral:
        extra['amplitude'] = _spectral_amplitude(full, fit.vector, interval_hours)

    point = _ellipse_matrix(coefficient_map @ fit.params)
    children = np.random.SeedSequence(seed).spawn(n_trials)
    batches = [
        children[i:i + BATCH_SIZE] for i in range(0, n_trials, BATCH_SIZE)
    ]

    def _run_batch(batch) -> np.ndarray:
        out = np.empty((len(batch),) + point.shape)
        for j, child in enumerate(batch):
            rng = np.random.default_rng(child)
            eu, ev = resampler(rng, res_u, res_v, **extra)
            params = fit.resolve(eu, ev)
            out[j] = _ellipse_matrix(coefficient_map @ params)
        return out

    _log.info(
        "Bootstrap '%s' confidence intervals: %d trials in %d batches, "
        '%d worker(s).', method, n_trials, len(batches), n_jobs,
    )
    if n_jobs > 1 and len(batches) > 1:
        with ThreadPoolExecutor(max_workers=n_jobs) as executor:
            results = list(executor.map(_run_batch, batches))
    else:
        results = [_run_batch(batch) for batch in batches]

    samples = np.concatenate(results, axis=0)
    dev = _deviations(samples, point)
    lo, hi = np.percentile(dev, [2.5, 97.5], axis=0)
    half = 0.5 * (hi - lo)
    return _intervals(method, half, fit.vector, n_trials)


def _intervals(
    method: str, half: np.ndarray, vector: bool, n_trials: int,
) -> ConfidenceIntervals:
    half = np.where(np.isfinite(half), half, 0.0)
    if not vector:
        half[:, 1] = 0.0
        half[:, 2] = 0.0
    return ConfidenceIntervals(
        method=method,
        Lsmaj=half[:, 0],
        Lsmin=half[:, 1],
        theta=half[:, 2],
        g=half[:, 3],
        n_trials=n_trials,
    )


ESTIMATORS: dict[str, Callable[..., ConfidenceIntervals]] = {
    'linear': linear_intervals,
    'wboot': bootstrap_intervals,
    'cboot': bootstrap_intervals,
}


def estimate_intervals(
    fit: FitResult,
    coefficient_map: np.ndarray,
    frequencies: np.ndarray,
    interval_hours: float,
    method: str = 'cboot',
    logger: logging.Logger | None = None,
    **kwargs,
) -> ConfidenceIntervals:
    """
    Dispatch to the registered estimator *method*.

    Keyword arguments are forwarded; each estimator ignores the ones it
    does not use.
    """
    try:
        estimator = ESTIMATORS[method]
    except KeyError:
        raise InvalidConfigurationError(
            f"Unknown confidence-interval method '{method}'. Expected one of "
            f"{CI_METHODS}."
        ) from None
    if estimator is bootstrap_intervals:
        kwargs['method'] = method
    return estimator(
        fit, coefficient_map, frequencies, interval_hours,
        logger=logger, **kwargs,
    )
