"""
Tidal prediction from harmonic constants.

Implements the standard prediction formula::

    h = H0 + trend * (t - t_ref) + sum{ f * H * cos[V(t) + u - kappa] }

and, for complex series, its rotary form
``z = sum{ a+ * f * exp(i(V + u)) + a- * f * exp(-i(V + u)) }``.
Nodal factors are recomputed for the centre of the prediction span in the
nodal mode of the analysis.

Two entry points are provided:

* :func:`predict`: predict from a
  :class:`~tidal_harmonics.report.TidalConstituentReport`.
* :func:`predict_from_constants`: predict from plain amplitude/phase
  dictionaries (e.g. CO-OPS accepted harmonic constants).
"""
from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from .astronomy import to_days
from .constituents import ConstituentCatalog, default_catalog
from .ellipse import scalar_to_rotary
from .exceptions import InvalidConfigurationError
from .nodal import constituent_phasors
from .options import PredictionOptions
from .report import TidalConstituentReport

logger = logging.getLogger(__name__)


def _is_numeric(times) -> bool:
    arr = np.asarray(times)
    return np.issubdtype(arr.dtype, np.number) and not np.iscomplexobj(arr)


def _holes(
    hours: np.ndarray,
    report: TidalConstituentReport,
) -> np.ndarray:
    """Mask of targets that fall on samples missing from the analysed record."""
    position = hours / report.interval_hours
    index = np.rint(position)
    on_grid = np.isclose(position, index, rtol=0.0, atol=1e-6)
    inside = (index >= 0) & (index < report.n_samples)
    mask = np.zeros(hours.shape, dtype=bool)
    hit = on_grid & inside
    mask[hit] = ~report.valid[index[hit].astype(int)]
    return mask


def predict(
    times,
    report: TidalConstituentReport,
    options: PredictionOptions | None = None,
    catalog: ConstituentCatalog | None = None,
    logger: logging.Logger | None = None,
    **overrides,
) -> np.ndarray:
    """
    Reconstruct a series at arbitrary times from a constituent report.

    Parameters
    ----------
    times : DatetimeIndex, sequence of datetimes, or array of float
        Target times.  Numbers are hours after the first sample of the
        analysed record.  Order is arbitrary.
    report : TidalConstituentReport
        Output of :func:`~tidal_harmonics.harmonic_analysis.analyze`.
    options : PredictionOptions, optional
    catalog : ConstituentCatalog, optional
        Must contain every constituent of *report*; defaults to the
        built-in catalog.
    logger : logging.Logger, optional
    **overrides
        Fields of :class:`~tidal_harmonics.options.PredictionOptions`.

    Returns
    -------
    np.ndarray
        Real for scalar reports, complex for vector reports, aligned with
        *times*.

    Raises
    ------
    InvalidConfigurationError
        Datetime targets for a report without a start time, unknown
        constituents, or invalid options.
    """
    _log = logger or logging.getLogger(__name__)
    options = options or PredictionOptions()
    if overrides:
        options = options.replace(**overrides)
    catalog = catalog or default_catalog()

    # ------------------------------------------------------------------
    # Target times
    # ------------------------------------------------------------------
    if _is_numeric(times):
        hours = np.atleast_1d(np.asarray(times, dtype=float))
        origin = 0.0 if report.start is None else to_days(report.start)
        days = origin + hours / 24.0
    else:
        if report.start is None:
            raise InvalidConfigurationError(
                'Datetime targets require a report analysed with a start time.'
            )
        days = np.atleast_1d(to_days(pd.DatetimeIndex(pd.to_datetime(times))))
        hours = (days - to_days(report.start)) * 24.0
    if hours.size == 0:
        return np.zeros(0, dtype=complex if report.vector else float)

    # ------------------------------------------------------------------
    # Constituent subset
    # ------------------------------------------------------------------
    threshold = options.synthesis_threshold
    if threshold > 0:
        keep = report.snr > threshold
    else:
        keep = np.ones(len(report.names), dtype=bool)
    names = [n for n, k in zip(report.names, keep) if k]
    _log.info(
        'Predicting %d time steps from %d of %d constituents '
        '(synthesis threshold %.2f).',
        hours.size, len(names), len(report.names), threshold,
    )

    # ------------------------------------------------------------------
    # Nodal factors at the centre of the target span
    # ------------------------------------------------------------------
    has_astronomy = report.start is not None
    mode = options.mode or report.nodal_mode
    greenwich = report.greenwich and has_astronomy
    if not has_astronomy:
        mode = 'none'
    origin = 0.0 if report.start is None else to_days(report.start)
    analysis_reference = origin + report.reference_hours / 24.0
    if greenwich:
        reference = 0.5 * (np.min(days) + np.max(days))
    else:
        reference = analysis_reference
    latitude = options.latitude if options.latitude is not None else report.latitude

    phasors = constituent_phasors(
        catalog, names, days, reference, mode=mode, latitude=latitude,
        greenwich=greenwich, logger=_log,
    )
    ap = report.ap[keep]
    am = report.am[keep]
    tide = phasors @ ap + np.conj(phasors) @ am

    secular = report.mean + report.trend * (hours - report.reference_hours)
    prediction = tide + secular
    if not report.vector:
        prediction = prediction.real

    if threshold < 0:
        prediction = np.asarray(prediction)
        prediction[_holes(hours, report)] = np.nan
    return prediction


def predict_from_constants(
    time: pd.DatetimeIndex,
    amplitudes: dict[str, float],
    phases: dict[str, float],
    mean_level: float,
    latitude: float | None = None,
    catalog: ConstituentCatalog | None = None,
    logger: logging.Logger | None = None,
) -> np.ndarray:
    """
    Generate predictions from amplitude/phase dictionaries.

    Useful when working with CO-OPS accepted harmonic constants retrieved
    via the Tides & Currents API (``product=harcon``) rather than a fresh
    harmonic analysis.

    Parameters
    ----------
    time : pd.DatetimeIndex
        Prediction times (UTC).
    amplitudes : dict
        ``{constituent_name: amplitude}`` in metres (or m/s for currents).
    phases : dict
        ``{constituent_name: phase_lag}`` in degrees (Greenwich epoch).
    mean_level : float
        Mean water level H0 (metres above datum).
    latitude : float, optional
        Station latitude in decimal degrees.
    catalog : ConstituentCatalog, optional
    logger : logging.Logger, optional
        Logger instance.

    Returns
    -------
    np.ndarray
        Predicted tidal heights.

    Raises
    ------
    InvalidConfigurationError
        If no constituent appears in both dictionaries, or a name is not in
        the catalog.
    """
    _log = logger or logging.getLogger(__name__)
    catalog = catalog or default_catalog()

    amp_map = {catalog[n].name: float(v) for n, v in amplitudes.items()}
    phase_map = {catalog[n].name: float(v) for n, v in phases.items()}
    names = sorted(set(amp_map) & set(phase_map), key=lambda n: catalog[n].frequency)
    if not names:
        raise InvalidConfigurationError(
            'No common constituents found in amplitudes and phases.'
        )

    days = np.atleast_1d(to_days(pd.DatetimeIndex(pd.to_datetime(time))))
    if days.size == 0:
        return np.zeros(0)
    ap, am = scalar_to_rotary(
        [amp_map[n] for n in names], [phase_map[n] for n in names]
    )
    reference = 0.5 * (days.min() + days.max())
    phasors = constituent_phasors(
        catalog, names, days, reference, mode='nodal', latitude=latitude,
        greenwich=True, logger=_log,
    )
    _log.info(
        'Generating tidal predictions for %d time steps from %d constants.',
        days.size, len(names),
    )
    return (phasors @ ap + np.conj(phasors) @ am).real + float(mean_level)
