"""
Nodal corrections and constituent phasors.

For every constituent the satellite lines of the catalog are summed into a
complex modulation

    F = 1 + sum_k r_k * exp(2*pi*i * (dp*p + dN*N' + dp'*p' + phase_k))

whose modulus is the amplitude factor ``f`` and whose argument is the phase
correction ``u``.  Shallow-water constituents take ``f = prod f_j**|c_j|``
and ``u = sum c_j*u_j`` over their generators, and the astronomical
argument ``V = sum c_j*V_j``.

Three modes are supported:

- ``nodal``  f, u and V0 evaluated once at the reference time (record
  centre) and V advanced linearly in time.  Appropriate for records
  shorter than the 18.61-year nodal cycle.
- ``full``   f, u and V evaluated at every sample, so the satellite lines
  are carried explicitly in the design columns.  Chosen automatically for
  records spanning a full nodal cycle or more.
- ``none``   f = 1 and u = 0.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from .astronomy import AstronomicalState, astronomical_arguments
from .constituents import ConstituentCatalog, Satellite
from .exceptions import InvalidConfigurationError

logger = logging.getLogger(__name__)

NODAL_PERIOD_YEARS = 18.61
NODAL_PERIOD_HOURS = NODAL_PERIOD_YEARS * 365.25 * 24.0
NODAL_MODES = ('auto', 'nodal', 'full', 'none')

# Latitudes nearer the equator than this are clamped for the diurnal
# satellite ratio, which divides by sin(latitude)
_LAT_MIN_DEG = 5.0


@dataclass(frozen=True)
class NodalFactors:
    """
    Nodal factors of a set of constituents at one reference instant.

    Attributes
    ----------
    names : tuple of str
    frequency : numpy.ndarray
        Cycles per hour.
    f : numpy.ndarray
        Amplitude factors (> 0).
    u : numpy.ndarray
        Phase corrections, degrees.
    v0 : numpy.ndarray
        Astronomical arguments V0, degrees in [0, 360).  Zero when
        Greenwich phases are not requested.
    reference_time : float
        Days since 1899-12-31 12:00 UT.
    mode : str
    """

    names: tuple[str, ...]
    frequency: np.ndarray
    f: np.ndarray
    u: np.ndarray
    v0: np.ndarray
    reference_time: float
    mode: str


def resolve_nodal_mode(
    mode: str,
    record_hours: float,
    has_astronomy: bool = True,
) -> str:
    """
    Resolve ``'auto'`` into a concrete nodal mode.

    Parameters
    ----------
    mode : str
        One of ``'auto'``, ``'nodal'``, ``'full'``, ``'none'``.
    record_hours : float
        Record span in hours.
    has_astronomy : bool
        False when the series has no absolute start time; forces ``'none'``.

    Returns
    -------
    str
    """
    if mode not in NODAL_MODES:
        raise InvalidConfigurationError(
            f"Unknown nodal mode '{mode}'. Expected one of {NODAL_MODES}."
        )
    if not has_astronomy:
        return 'none'
    if mode == 'auto':
        return 'full' if record_hours >= NODAL_PERIOD_HOURS else 'nodal'
    return mode


def _latitude_ratio(sat: Satellite, latitude: float | None) -> float | None:
    """Satellite amplitude ratio at *latitude*; None if it cannot be used."""
    if sat.latitude_factor == 0:
        return sat.ratio
    if latitude is None:
        return None
    lat = float(latitude)
    if abs(lat) < _LAT_MIN_DEG:
        lat = _LAT_MIN_DEG if lat >= 0 else -_LAT_MIN_DEG
    slat = np.sin(np.deg2rad(lat))
    if sat.latitude_factor == 1:
        return sat.ratio * 0.36309 * (1.0 - 5.0 * slat ** 2) / slat
    if sat.latitude_factor == 2:
        return sat.ratio * 2.59808 * slat
    raise InvalidConfigurationError(
        f"Unknown satellite latitude factor {sat.latitude_factor!r}."
    )


def satellite_modulation(
    catalog: ConstituentCatalog,
    names: Sequence[str],
    state: AstronomicalState,
    latitude: float | None = None,
    logger: logging.Logger | None = None,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Evaluate f, u and V for *names* at the instants of *state*.

    Parameters
    ----------
    catalog : ConstituentCatalog
    names : sequence of str
    state : AstronomicalState
        From :func:`~tidal_harmonics.astronomy.astronomical_arguments`.
    latitude : float, optional
        Degrees north.  Satellites with latitude-dependent ratios are
        skipped when omitted.
    logger : logging.Logger, optional

    Returns
    -------
    f : numpy.ndarray
        Shape ``(len(names),) + shape(state.days)``.
    u : numpy.ndarray
        Same shape, cycles.
    v : numpy.ndarray
        Same shape, cycles (not reduced).
    """
    _log = logger or logging.getLogger(__name__)
    shape = (len(names),) + state.days.shape

    astro: dict[str, tuple[np.ndarray, np.ndarray, np.ndarray]] = {}
    skipped = set()
    for name in names:
        for _, base in catalog.shallow_terms(name):
            if base in astro:
                continue
            const = catalog[base]
            v = np.tensordot(
                np.asarray(const.doodson, dtype=float), state.angles, axes=1
            ) + const.semi
            modulation = np.ones(state.days.shape, dtype=complex)
            for sat in const.satellites:
                ratio = _latitude_ratio(sat, latitude)
                if ratio is None:
                    skipped.add(base)
                    continue
                arg = np.tensordot(
                    np.asarray(sat.deldood, dtype=float),
                    state.angles[3:],
                    axes=1,
                ) + sat.phase
                modulation = modulation + ratio * np.exp(2j * np.pi * arg)
            astro[base] = (
                np.abs(modulation),
                np.angle(modulation) / (2.0 * np.pi),
                v,
            )

    if skipped:
        _log.warning(
            'No latitude given: latitude-dependent satellites of %s ignored.',
            ', '.join(sorted(skipped)),
        )

    f = np.ones(shape)
    u = np.zeros(shape)
    v = np.zeros(shape)
    for i, name in enumerate(names):
        for coef, base in catalog.shallow_terms(name):
            fa, ua, va = astro[base]
            f[i] = f[i] * fa ** abs(coef)
            u[i] = u[i] + coef * ua
            v[i] = v[i] + coef * va
    return f, u, v


def nodal_corrections(
    catalog: ConstituentCatalog,
    names: Sequence[str],
    reference_time: float,
    latitude: float | None = None,
    mode: str = 'nodal',
    greenwich: bool = True,
    logger: logging.Logger | None = None,
) -> NodalFactors:
    """
    Nodal factors f, u and the astronomical argument V0 at one instant.

    Parameters
    ----------
    catalog : ConstituentCatalog
    names : sequence of str
    reference_time : float
        Days since 1899-12-31 12:00 UT, normally the record centre.
    latitude : float, optional
        Degrees north, for latitude-dependent satellites.
    mode : str
        ``'nodal'``, ``'full'`` or ``'none'``.  ``'none'`` returns f = 1
        and u = 0.
    greenwich : bool
        When False, V0 is zero and phases are relative to *reference_time*.
    logger : logging.Logger, optional

    Returns
    -------
    NodalFactors
    """
    names = tuple(catalog.resolve(names))
    if mode == 'none' and not greenwich:
        f = np.ones(len(names))
        u = np.zeros(len(names))
        v = np.zeros(len(names))
    else:
        state = astronomical_arguments(reference_time)
        f, u, v = satellite_modulation(catalog, names, state, latitude, logger)
    if mode == 'none':
        f = np.ones_like(f)
        u = np.zeros_like(u)
    if not greenwich:
        v = np.zeros_like(v)
    return NodalFactors(
        names=names,
        frequency=catalog.frequency(names),
        f=f,
        u=u * 360.0,
        v0=np.mod(v, 1.0) * 360.0,
        reference_time=float(reference_time),
        mode=mode,
    )


def constituent_phasors(
    catalog: ConstituentCatalog,
    names: Sequence[str],
    days: np.ndarray,
    reference_time: float,
    mode: str = 'nodal',
    latitude: float | None = None,
    greenwich: bool = True,
    logger: logging.Logger | None = None,
) -> np.ndarray:
    """
    Complex unit-amplitude phasors ``f * exp(i*(V + u))`` per sample.

    Parameters
    ----------
    catalog : ConstituentCatalog
    names : sequence of str
    days : numpy.ndarray
        Sample times, days since 1899-12-31 12:00 UT.
    reference_time : float
        Time at which nodal factors are evaluated in ``'nodal'`` mode, and
        the phase origin when *greenwich* is False.
    mode : str
        ``'nodal'``, ``'full'`` or ``'none'``.
    latitude : float, optional
    greenwich : bool
    logger : logging.Logger, optional

    Returns
    -------
    numpy.ndarray
        Complex array of shape ``(len(days), len(names))``.
    """
    names = tuple(catalog.resolve(names))
    days = np.asarray(days, dtype=float)
    if not names:
        return np.zeros((days.size, 0), dtype=complex)
    freq = catalog.frequency(names)
    elapsed_hours = (days - reference_time) * 24.0

    if mode == 'full':
        state = astronomical_arguments(days)
        f, u, v = satellite_modulation(catalog, names, state, latitude, logger)
        if not greenwich:
            ref_state = astronomical_arguments(reference_time)
            _, _, v_ref = satellite_modulation(catalog, names, ref_state, latitude)
            v = v - v_ref[:, np.newaxis]
        phase = (v + u).T
        amplitude = f.T
    elif mode in ('nodal', 'none'):
        factors = nodal_corrections(
            catalog, names, reference_time, latitude,
            mode=mode, greenwich=greenwich, logger=logger,
        )
        phase = (
            (factors.v0 + factors.u)[np.newaxis, :] / 360.0
            + elapsed_hours[:, np.newaxis] * freq[np.newaxis, :]
        )
        amplitude = np.broadcast_to(factors.f, phase.shape)
    else:
        raise InvalidConfigurationError(
            f"Unknown nodal mode '{mode}'. Expected 'nodal', 'full' or 'none'."
        )
    return amplitude * np.exp(2j * np.pi * phase)
