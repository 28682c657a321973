"""
Fundamental astronomical arguments for tidal analysis.

Computes the six Doodson arguments

    tau  mean lunar time
    s    mean longitude of the moon
    h    mean longitude of the sun
    p    longitude of lunar perigee
    N'   negative of the longitude of the lunar ascending node
    p'   longitude of solar perigee (perihelion)

and their rates from the cubic ephemeris polynomials of Seidelmann (1992)
as used by t_tide/UTide.  Angles are returned in cycles reduced modulo 1,
rates in cycles per day.  Time is a continuous day count from the epoch
1899-12-31 12:00 UT; :func:`to_days` converts datetimes to that count.

References
----------
- Seidelmann, P.K. (1992). Explanatory Supplement to the Astronomical
  Almanac.  University Science Books.
- Pawlowicz, R., Beardsley, B. and Lentz, S. (2002). Classical tidal
  harmonic analysis including error estimates in MATLAB using T_TIDE.
  Computers & Geosciences 28, 929-937.
"""
from __future__ import annotations

import datetime
from dataclasses import dataclass

import numpy as np
import pandas as pd

EPOCH = pd.Timestamp('1899-12-31 12:00:00')
"""Origin of the day count used by the astronomical polynomials."""

ARGUMENT_NAMES = ('tau', 's', 'h', 'p', 'Np', 'pp')

# Polynomial coefficients (degrees) in [1, d, D**2, D**3], d in days from
# EPOCH and D = d / 10000.
_POLYNOMIALS = np.array([
    [270.434164, 13.1763965268, -0.0000850, 0.000000039],      # s
    [279.696678, 0.9856473354, 0.00002267, 0.000000000],       # h
    [334.329556, 0.1114040803, -0.0007739, -0.00000026],       # p
    [-259.183275, 0.0529539222, -0.0001557, -0.000000050],     # N'
    [281.220844, 0.0000470684, 0.0000339, 0.000000070],        # p'
]) / 360.0

ARGUMENT_RATES = np.concatenate((
    [1.0 + _POLYNOMIALS[1, 1] - _POLYNOMIALS[0, 1]],
    _POLYNOMIALS[:, 1],
))
"""Linear rates (cycles per day) of the six arguments, used for frequencies."""


@dataclass(frozen=True)
class AstronomicalState:
    """
    Astronomical arguments at one or more instants.

    Attributes
    ----------
    angles : numpy.ndarray
        Shape ``(6,) + shape(days)``, cycles in [0, 1).
    rates : numpy.ndarray
        Same shape, cycles per day.
    days : numpy.ndarray
        The instants, days since :data:`EPOCH`.
    """

    angles: np.ndarray
    rates: np.ndarray
    days: np.ndarray


def to_days(times) -> np.ndarray | float:
    """
    Convert times to days since :data:`EPOCH`.

    Parameters
    ----------
    times : datetime-like, array of datetime-like, or numeric
        ``datetime``, ``numpy.datetime64``, ``pandas.Timestamp`` or
        ``DatetimeIndex`` values.  Numbers are taken to be day counts
        already and are returned unchanged.  Timezone-aware values are
        converted to UTC.

    Returns
    -------
    float or numpy.ndarray
    """
    if isinstance(times, (int, float, np.integer, np.floating)):
        return float(times)
    if isinstance(times, np.ndarray) and np.issubdtype(times.dtype, np.number):
        return times.astype(float)

    scalar = isinstance(
        times, (datetime.datetime, datetime.date, np.datetime64, pd.Timestamp)
    ) or isinstance(times, str)
    index = pd.DatetimeIndex(pd.to_datetime([times] if scalar else times))
    if index.tz is not None:
        index = index.tz_convert('UTC').tz_localize(None)
    days = np.asarray((index - EPOCH) / pd.Timedelta(days=1), dtype=float)
    return float(days[0]) if scalar else days


def from_days(days) -> pd.DatetimeIndex | pd.Timestamp:
    """Inverse of :func:`to_days`."""
    delta = pd.to_timedelta(np.asarray(days, dtype=float), unit='D')
    if np.ndim(days) == 0:
        return EPOCH + delta
    return pd.DatetimeIndex(EPOCH + delta)



def astronomical_arguments(days) -> AstronomicalState:
    """
    Evaluate the six fundamental arguments and their rates.

    Parameters
    ----------
    days : float or array_like
        Days since 1899-12-31 12:00 UT.

    Returns
    -------
    AstronomicalState
        Angles in cycles reduced modulo 1 and rates in cycles per day.
    """
    d = np.asarray(days, dtype=np.float64)
    big_d = d / 10000.0

    # s, h, p, N', p' from the cubic in [1, d, D**2, D**3]
    args = np.stack([np.ones_like(d), d, big_d ** 2, big_d ** 3])
    dargs = np.stack([
        np.zeros_like(d), np.ones_like(d), 2.0e-4 * big_d, 3.0e-4 * big_d ** 2,
    ])
    slow = np.tensordot(_POLYNOMIALS, args, axes=(1, 0))
    dslow = np.tensordot(_POLYNOMIALS, dargs, axes=(1, 0))

    tau = np.mod(d + 0.5, 1.0) + slow[1] - slow[0]
    dtau = 1.0 + dslow[1] - dslow[0]

    angles = np.mod(np.concatenate((tau[np.newaxis], slow)), 1.0)
    rates = np.concatenate((np.asarray(dtau)[np.newaxis], dslow))
    return AstronomicalState(angles=angles, rates=rates, days=d)
