"""
Classical harmonic analysis of scalar and vector tidal series.

:func:`analyze` chains the components of the package:

1. constituent selection by the Rayleigh criterion
   (:mod:`~tidal_harmonics.selection`),
2. nodal corrections and the least-squares fit with inference and secular
   terms (:mod:`~tidal_harmonics.nodal`, :mod:`~tidal_harmonics.least_squares`),
3. prefilter correction and conversion to amplitude/phase or ellipse
   parameters (:mod:`~tidal_harmonics.ellipse`),
4. 95 % confidence intervals (:mod:`~tidal_harmonics.confidence`),
5. reconstruction of the analysed record
   (:mod:`~tidal_harmonics.tidal_prediction`).

References
----------
- Pawlowicz, R., Beardsley, B. and Lentz, S. (2002). Classical tidal
  harmonic analysis including error estimates in MATLAB using T_TIDE.
  Computers & Geosciences 28, 929-937.
- Codiga, D.L. (2011). Unified Tidal Analysis and Prediction Using the
  UTide Matlab Functions.  Technical Report 2011-01, URI-GSO.
- Foreman, M.G.G. (1977). Manual for Tidal Heights Analysis and
  Prediction.  Pacific Marine Science Report 77-10.
"""
from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from .astronomy import to_days
from .confidence import estimate_intervals
from .constituents import ConstituentCatalog, default_catalog
from .ellipse import compute_principal_direction, rotary_to_ellipse
from .exceptions import EmptySeriesError, InvalidConfigurationError
from .least_squares import coefficient_map, fit_harmonics
from .nodal import resolve_nodal_mode
from .options import AnalysisOptions
from .report import (
    AnalysisDiagnostics,
    TidalConstituentReport,
    classify_record,
    compute_snr,
    pe_table,
    percent_energy,
)
from .selection import select_constituents
from .tidal_prediction import predict

logger = logging.getLogger(__name__)

MAX_PREFILTER_CORRECTION = 100.0


def prefilter_gains(
    prefilter,
    frequencies: np.ndarray,
    logger: logging.Logger | None = None,
) -> np.ndarray | None:
    """
    Interpolated prefilter gain at each frequency.

    Real and imaginary parts are interpolated linearly (held constant
    beyond the tabulated range).  Where the correction ``1/|G|`` would
    exceed :data:`MAX_PREFILTER_CORRECTION` the constituent is taken to
    have been removed on purpose and its gain is reset to 1.

    Returns
    -------
    np.ndarray or None
        Complex gains, or None without a prefilter.
    """
    _log = logger or logging.getLogger(__name__)
    if not prefilter:
        return None
    table_freq = np.array([p[0] for p in prefilter], dtype=float)
    table_gain = np.array([p[1] for p in prefilter], dtype=complex)
    gains = (
        np.interp(frequencies, table_freq, table_gain.real)
        + 1j * np.interp(frequencies, table_freq, table_gain.imag)
    )
    magnitude = np.abs(gains)
    skip = magnitude * MAX_PREFILTER_CORRECTION < 1.0
    if np.any(skip):
        _log.warning(
            'Prefilter correction above %.0f skipped at %d constituent(s).',
            MAX_PREFILTER_CORRECTION, int(skip.sum()),
        )
        gains = np.where(skip, 1.0 + 0j, gains)
    return gains


def analyze(
    series,
    interval_hours: float,
    options: AnalysisOptions | None = None,
    catalog: ConstituentCatalog | None = None,
    logger: logging.Logger | None = None,
    **overrides,
) -> tuple[TidalConstituentReport, np.ndarray, AnalysisDiagnostics]:
    """
    Perform harmonic analysis on a water level or current time series.

    Parameters
    ----------
    series : array_like or pd.Series
        Real (water level) or complex (``u + iv`` current) samples at a
        fixed interval, NaN where missing.  A :class:`pandas.Series` with a
        :class:`~pandas.DatetimeIndex` supplies the start time when the
        options do not.
    interval_hours : float
        Sampling interval in hours (e.g. 0.1 for 6-min data).
    options : AnalysisOptions, optional
        Analysis configuration; defaults to ``AnalysisOptions()``.
    catalog : ConstituentCatalog, optional
        Constituent table; defaults to the built-in catalog.
    logger : logging.Logger, optional
        Logger instance for diagnostic messages.
    **overrides
        Fields of :class:`~tidal_harmonics.options.AnalysisOptions`.

    Returns
    -------
    report : TidalConstituentReport
        Harmonic constants with confidence intervals.
    reconstructed : np.ndarray
        Fitted series at the input samples, including the secular terms,
        built from the constituents above the synthesis threshold; NaN
        where the input was missing.
    diagnostics : AnalysisDiagnostics

    Raises
    ------
    InvalidConfigurationError
        Invalid options or unknown constituent names.
    EmptySeriesError
        No finite samples.
    InsufficientDataError
        Record too short or too gappy for the requested fit.
    RankDeficientError
        Selected constituents not resolvable with the actual sampling.
    """
    _log = logger or logging.getLogger(__name__)
    options = options or AnalysisOptions()
    catalog = catalog or default_catalog()

    if isinstance(series, pd.Series):
        if (
            options.start is None
            and 'start' not in overrides
            and isinstance(series.index, pd.DatetimeIndex)
            and len(series)
        ):
            overrides['start'] = series.index[0]
        series = series.to_numpy()
    if overrides:
        options = options.replace(**overrides)

    # ------------------------------------------------------------------
    # Input validation
    # ------------------------------------------------------------------
    if not (interval_hours > 0 and np.isfinite(interval_hours)):
        raise InvalidConfigurationError(
            f"interval_hours must be positive, got {interval_hours!r}."
        )
    values = np.asarray(series)
    if values.ndim != 1:
        raise InvalidConfigurationError(
            f"series must be one-dimensional, got shape {values.shape}."
        )
    if values.size == 0:
        raise EmptySeriesError('series is empty.')

    n = values.size
    record_hours = n * interval_hours
    has_astronomy = options.start is not None
    start_days = to_days(options.start) if has_astronomy else None
    mode = resolve_nodal_mode(options.nodal, record_hours, has_astronomy)
    greenwich = options.greenwich and has_astronomy
    _log.info(
        'Running harmonic analysis: %.1f-day record, %s series, '
        "nodal mode '%s'.",
        record_hours / 24.0, 'vector' if np.iscomplexobj(values) else 'scalar',
        mode,
    )

    # ------------------------------------------------------------------
    # Selection and fit
    # ------------------------------------------------------------------
    selection = select_constituents(
        catalog,
        record_hours=record_hours,
        interval_hours=interval_hours,
        rayleigh=options.rayleigh,
        constituents=options.constituents,
        shallow=options.shallow,
        inference=options.inference,
        logger=_log,
    )
    fit = fit_harmonics(
        values,
        interval_hours,
        selection,
        catalog=catalog,
        start=start_days,
        latitude=options.latitude,
        mode=mode,
        greenwich=greenwich,
        secular=options.secular,
        solver=options.solver,
        logger=_log,
    )

    # ------------------------------------------------------------------
    # Reported coefficients
    # ------------------------------------------------------------------
    names = tuple(sorted(
        selection.names + selection.inferred_names,
        key=lambda name: (catalog[name].frequency, name),
    ))
    frequency = catalog.frequency(names)
    gains = prefilter_gains(options.prefilter, frequency, _log)
    mapping = coefficient_map(fit, selection.inference, names, gains)
    coefficients = (mapping @ fit.params).reshape(-1, 4)
    ap = coefficients[:, 0] + 1j * coefficients[:, 1]
    am = coefficients[:, 2] + 1j * coefficients[:, 3]
    ellipse = rotary_to_ellipse(ap, am)

    ci = estimate_intervals(
        fit,
        mapping,
        frequency,
        interval_hours,
        method=options.conf_int,
        n_trials=options.n_trials,
        seed=options.seed,
        white=options.white,
        psd_estimator=options.psd_estimator,
        resampling=options.resampling,
        block_hours=options.block_hours,
        n_jobs=options.n_jobs,
        logger=_log,
    )

    if fit.vector:
        lsmin, theta = ellipse['Lsmin'], ellipse['theta']
        pe = percent_energy(ellipse['Lsmaj'], lsmin)
    else:
        lsmin = np.zeros(len(names))
        theta = np.zeros(len(names))
        pe = percent_energy(ellipse['Lsmaj'])

    report = TidalConstituentReport(
        names=names,
        frequency=frequency,
        vector=fit.vector,
        ap=ap,
        am=am,
        Lsmaj=ellipse['Lsmaj'],
        Lsmin=lsmin,
        theta=theta,
        g=ellipse['g'],
        Lsmaj_ci=ci.Lsmaj,
        Lsmin_ci=ci.Lsmin,
        theta_ci=ci.theta,
        g_ci=ci.g,
        snr=compute_snr(ellipse['Lsmaj'], ci.Lsmaj),
        pe=pe,
        mean=fit.mean,
        trend=fit.trend,
        reference_hours=fit.reference_hours,
        start=options.start,
        interval_hours=float(interval_hours),
        n_samples=n,
        valid=fit.valid,
        latitude=options.latitude,
        nodal_mode=mode,
        greenwich=greenwich,
        secular=options.secular,
        ci_method=options.conf_int,
        inferred=selection.inferred_names,
    )

    # ------------------------------------------------------------------
    # Reconstruction at the analysed samples
    # ------------------------------------------------------------------
    reconstructed = predict(
        np.arange(n) * interval_hours,
        report,
        catalog=catalog,
        logger=_log,
        latitude=options.latitude,
        synthesis_threshold=options.synthesis_threshold,
    )
    reconstructed = np.asarray(reconstructed)
    reconstructed[~fit.valid] = np.nan

    diagnostics = AnalysisDiagnostics(
        selected=selection.names,
        rejected=dict(selection.rejected),
        inferred=selection.inferred_names,
        nodal_mode=mode,
        solver=fit.solver,
        ci_method=options.conf_int,
        reference_time=report.reference_time,
        record_hours=record_hours,
        record_class=classify_record(record_hours / 24.0),
        n_samples=n,
        n_valid=fit.n_valid,
        n_unknowns=fit.n_unknowns,
        residual_variance=fit.residual_variance,
        rotary_residual_energy=fit.rotary_residual_energy,
        principal_direction=(
            compute_principal_direction(values, logger=_log)
            if fit.vector else None
        ),
        pe_table=pe_table(report),
    )

    _log.info(
        'Harmonic analysis complete. Mean=%s, %d constituents reported '
        "(%s intervals).", report.mean, len(names), options.conf_int,
    )
    return report, reconstructed, diagnostics


harmonic_analysis = analyze
