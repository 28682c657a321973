"""
Tidal current ellipses from rotary coefficients.

A constituent of a complex ``U + iV`` series is the sum of a
counter-clockwise rotating phasor ``a+ = A+ exp(i*alpha)`` and a clockwise
one ``a- = A- exp(i*beta)``.  The ellipse parameters are

    Lsmaj = A+ + A-          semi-major axis
    Lsmin = A+ - A-          semi-minor axis, positive = counter-clockwise
    theta = (alpha + beta)/2 inclination, degrees in [0, 180)
    g     = (beta - alpha)/2 Greenwich phase, degrees in [0, 360)

For a scalar series ``a- = conj(a+)``, so the same formulae give the
amplitude (``Lsmaj``) and phase (``g``) with ``Lsmin = theta = 0``.
"""
from __future__ import annotations

import logging

import numpy as np

logger = logging.getLogger(__name__)


def _normalize(theta: np.ndarray, g: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Map theta to [0, 180), compensating g by 180 per half turn."""
    half_turns = np.floor(theta / 180.0)
    theta = theta - 180.0 * half_turns
    g = np.mod(g + 180.0 * half_turns, 360.0)
    # Rounding can leave theta at exactly 180
    wrap = theta >= 180.0
    theta = np.where(wrap, theta - 180.0, theta)
    g = np.where(wrap, np.mod(g + 180.0, 360.0), g)
    return theta, g


def rotary_to_ellipse(ap, am) -> dict[str, np.ndarray]:
    """
    Convert rotary coefficients to ellipse parameters.

    Parameters
    ----------
    ap, am : array_like of complex
        Positive- and negative-frequency coefficients.

    Returns
    -------
    dict
        ``Lsmaj``, ``Lsmin``, ``theta`` and ``g`` arrays (angles in degrees).
    """
    ap = np.asarray(ap, dtype=complex)
    am = np.asarray(am, dtype=complex)
    a_plus = np.abs(ap)
    a_minus = np.abs(am)
    alpha = np.degrees(np.angle(ap))
    beta = np.degrees(np.angle(am))
    theta, g = _normalize(0.5 * (alpha + beta), 0.5 * (beta - alpha))
    return {
        'Lsmaj': a_plus + a_minus,
        'Lsmin': a_plus - a_minus,
        'theta': theta,
        'g': g,
    }


def ellipse_to_rotary(lsmaj, lsmin, theta, g) -> tuple[np.ndarray, np.ndarray]:
    """Inverse of :func:`rotary_to_ellipse`."""
    lsmaj = np.asarray(lsmaj, dtype=float)
    lsmin = np.asarray(lsmin, dtype=float)
    theta_rad = np.deg2rad(np.asarray(theta, dtype=float))
    g_rad = np.deg2rad(np.asarray(g, dtype=float))
    ap = 0.5 * (lsmaj + lsmin) * np.exp(1j * (theta_rad - g_rad))
    am = 0.5 * (lsmaj - lsmin) * np.exp(1j * (theta_rad + g_rad))
    return ap, am


def scalar_to_rotary(amplitude, phase) -> tuple[np.ndarray, np.ndarray]:
    """Rotary coefficients of a real constituent ``A*cos(V + u - g)``."""
    ap = 0.5 * np.asarray(amplitude, dtype=float) * np.exp(
        -1j * np.deg2rad(np.asarray(phase, dtype=float))
    )
    return ap, np.conj(ap)


def _safe_ratio(num: np.ndarray, den: np.ndarray) -> np.ndarray:
    out = np.zeros(np.broadcast(num, den).shape)
    np.divide(num, den, out=out, where=den > 0)
    return out


def ellipse_jacobian(coefficients: np.ndarray) -> np.ndarray:
    """
    Derivatives of the ellipse parameters with respect to the coefficients.

    Parameters
    ----------
    coefficients : np.ndarray
        Shape ``(n, 4)`` rows of ``[Re a+, Im a+, Re a-, Im a-]``.

    Returns
    -------
    np.ndarray
        Shape ``(n, 4, 4)``: rows ``(Lsmaj, Lsmin, theta, g)`` (angles in
        degrees), columns as in *coefficients*.  Derivatives at a zero
        coefficient are set to zero.
    """
    c = np.atleast_2d(np.asarray(coefficients, dtype=float))
    n = c.shape[0]
    jac = np.zeros((n, 4, 4))
    deg = 180.0 / np.pi
    for cols, sign in ((slice(0, 2), 1.0), (slice(2, 4), -1.0)):
        re = c[:, cols][:, 0]
        im = c[:, cols][:, 1]
        mag = np.hypot(re, im)
        mag2 = mag ** 2
        d_mag = np.stack([_safe_ratio(re, mag), _safe_ratio(im, mag)], axis=1)
        d_ang = deg * np.stack(
            [_safe_ratio(-im, mag2), _safe_ratio(re, mag2)], axis=1
        )
        # Lsmaj = A+ + A-, Lsmin = A+ - A-
        jac[:, 0, cols] = d_mag
        jac[:, 1, cols] = sign * d_mag
        # theta = (alpha + beta)/2, g = (beta - alpha)/2
        jac[:, 2, cols] = 0.5 * d_ang
        jac[:, 3, cols] = -0.5 * sign * d_ang
    return jac


def compute_principal_direction(
    series: np.ndarray,
    logger: logging.Logger | None = None,
) -> float:
    """
    Orientation of the major axis of the velocity covariance ellipse.

    Parameters
    ----------
    series : np.ndarray
        Complex velocity ``u + iv``; samples with a NaN part are ignored.
    logger : logging.Logger, optional
        Logger instance for diagnostic messages.

    Returns
    -------
    float
        Direction in degrees counter-clockwise from east, in [0, 180),
        the same convention as the ellipse inclination.  NaN when fewer
        than two finite samples remain.
    """
    _log = logger or logging.getLogger(__name__)

    z = np.asarray(series, dtype=complex)
    mask = np.isfinite(z.real) & np.isfinite(z.imag)
    if np.sum(mask) < 2:
        return float('nan')

    cov = np.cov(z.real[mask], z.imag[mask])
    _, eigenvectors = np.linalg.eigh(cov)

    # Major axis eigenvector (largest eigenvalue, last column from eigh)
    major_vec = eigenvectors[:, -1]
    direction_deg = np.degrees(np.arctan2(major_vec[1], major_vec[0])) % 180.0

    _log.debug('Principal axis: %.1f deg from east.', direction_deg)
    return float(direction_deg)
