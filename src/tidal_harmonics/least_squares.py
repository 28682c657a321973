"""
Least-squares harmonic fit with missing data, inference and secular terms.

Each fitted constituent contributes ``a+ * e+ + a- * e-`` to the model,
where ``e+`` is the nodal-corrected phasor ``f * exp(i*(V + u))`` plus the
phasors of the constituents inferred from it (scaled by the inference
factor) and ``e-`` is its negative-frequency counterpart.  For a scalar
series ``a- = conj(a+)`` and the unknowns reduce to the real pair
``(a, b)`` with ``a+ = (a - i*b) / 2``; for a complex ``U + iV`` series
the four real unknowns ``(Re a+, Im a+, Re a-, Im a-)`` are fitted
jointly against the real and imaginary channels.

Missing samples (NaN) are dropped from the design.  Two solvers are
available:

- ``direct``  economic QR decomposition of the full design matrix.
- ``normal``  Cholesky factorization of the normal equations, accumulated
  in row chunks so that the full design is never materialized.

Both keep the inverse Gram matrix and the per-channel Gram matrices so that
error estimators can propagate noise and re-solve for new right-hand sides
without refitting.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np
from scipy import linalg

from .constituents import ConstituentCatalog, default_catalog
from .exceptions import (
    EmptySeriesError,
    InsufficientDataError,
    InvalidConfigurationError,
    RankDeficientError,
)
from .nodal import constituent_phasors
from .selection import ConstituentSelection
from .spectrum import rotary_energy

logger = logging.getLogger(__name__)

SOLVERS = ('auto', 'direct', 'normal')
SECULAR_MODES = ('mean', 'linear')

DIRECT_SOLVER_MAX_ENTRIES = 20_000_000
CHUNK_ROWS = 20_000

_QR_RANK_TOL = 1e-10
_CHOLESKY_RANK_TOL = 1e-7


class DesignMatrix:
    """
    Real design matrix of the fit, generated on demand in row chunks.

    Parameters
    ----------
    e_plus : numpy.ndarray
        Complex ``(n_valid, k)`` positive-frequency columns.
    e_minus : numpy.ndarray or None
        Complex ``(n_valid, k)`` negative-frequency columns (vector fits).
    secular : numpy.ndarray
        Real ``(n_valid, s)`` secular columns (1 for the mean, then tau).
    """

    def __init__(
        self,
        e_plus: np.ndarray,
        e_minus: np.ndarray | None,
        secular: np.ndarray,
    ) -> None:
        self.e_plus = e_plus
        self.e_minus = e_minus
        self.secular = secular
        self.vector = e_minus is not None
        self.n_valid, self.n_constituents = e_plus.shape
        self.n_secular = secular.shape[1]
        per = 4 if self.vector else 2
        factor = 2 if self.vector else 1
        self.n_cols = per * self.n_constituents + factor * self.n_secular
        self.n_rows = factor * self.n_valid

    @property
    def n_entries(self) -> int:
        return self.n_rows * self.n_cols

    def rows(self, start: int, stop: int) -> tuple[np.ndarray, np.ndarray | None]:
        """Return ``(Au, Av)`` for samples ``start:stop``; ``Av`` is None for scalars."""
        ep = self.e_plus[start:stop]
        sec = self.secular[start:stop]
        k = self.n_constituents
        n = ep.shape[0]
        if not self.vector:
            au = np.empty((n, self.n_cols))
            au[:, 0:2 * k:2] = ep.real
            au[:, 1:2 * k:2] = ep.imag
            au[:, 2 * k:] = sec
            return au, None

        em = self.e_minus[start:stop]
        au = np.zeros((n, self.n_cols))
        av = np.zeros((n, self.n_cols))
        au[:, 0:4 * k:4] = ep.real
        au[:, 1:4 * k:4] = -ep.imag
        au[:, 2:4 * k:4] = em.real
        au[:, 3:4 * k:4] = -em.imag
        av[:, 0:4 * k:4] = ep.imag
        av[:, 1:4 * k:4] = ep.real
        av[:, 2:4 * k:4] = em.imag
        av[:, 3:4 * k:4] = em.real
        # (mean_u, mean_v, trend_u, trend_v)
        au[:, 4 * k::2] = sec
        av[:, 4 * k + 1::2] = sec
        return au, av

    def _chunks(self):
        for start in range(0, self.n_valid, CHUNK_ROWS):
            yield start, min(start + CHUNK_ROWS, self.n_valid)

    def dense(self) -> np.ndarray:
        """Full stacked design ``[Au; Av]``."""
        au, av = self.rows(0, self.n_valid)
        return au if av is None else np.vstack((au, av))

    def grams(self) -> tuple[np.ndarray, np.ndarray]:
        """Per-channel Gram matrices ``Au'Au`` and ``Av'Av``."""
        mu = np.zeros((self.n_cols, self.n_cols))
        mv = np.zeros((self.n_cols, self.n_cols))
        for start, stop in self._chunks():
            au, av = self.rows(start, stop)
            mu += au.T @ au
            if av is not None:
                mv += av.T @ av
        return mu, mv

    def rmatvec(self, bu: np.ndarray, bv: np.ndarray | None = None) -> np.ndarray:
        """``A' b`` for channel right-hand sides (valid samples only)."""
        out = np.zeros(self.n_cols)
        for start, stop in self._chunks():
            au, av = self.rows(start, stop)
            out += au.T @ bu[start:stop]
            if av is not None:
                out += av.T @ bv[start:stop]
        return out

    def matvec(self, x: np.ndarray) -> np.ndarray:
        """Model values at the valid samples (complex for vector fits)."""
        out = np.empty(self.n_valid, dtype=complex if self.vector else float)
        for start, stop in self._chunks():
            au, av = self.rows(start, stop)
            if av is None:
                out[start:stop] = au @ x
            else:
                out[start:stop] = au @ x + 1j * (av @ x)
        return out


@dataclass(frozen=True)
class FitResult:
    """
    Outcome of a harmonic fit.

    Attributes
    ----------
    names : tuple of str
        Fitted constituents ordered by frequency.
    frequency : numpy.ndarray
        Cycles per hour.
    vector : bool
        True for complex (``U + iV``) series.
    params : numpy.ndarray
        Real parameter vector.
    ap, am : numpy.ndarray
        Complex rotary coefficients of the fitted constituents.
    mean : float or complex
        Secular mean (value at the reference time when a trend is fitted).
    trend : float or complex
        Secular trend per hour (zero in ``mean`` mode).
    residual : numpy.ndarray
        Observed minus fitted, NaN where the input was missing.
    valid : numpy.ndarray
        Boolean mask of the samples used by the fit.
    residual_variance : tuple of float
        Mean-square residual of the real (and imaginary) channel.
    rotary_residual_energy : tuple of float or None
        ``(counter-clockwise, clockwise)`` residual energy of vector fits.
    design : DesignMatrix
    gram_u, gram_v : numpy.ndarray
        Per-channel Gram matrices.
    inverse : numpy.ndarray
        ``(Au'Au + Av'Av)^-1``.
    solver : str
        Solver actually used.
    reference_hours : float
        Reference time in hours from the first sample.
    trend_scale : float
        Hours per unit of the normalized trend column.
    """

    names: tuple[str, ...]
    frequency: np.ndarray
    vector: bool
    params: np.ndarray
    ap: np.ndarray
    am: np.ndarray
    mean: complex
    trend: complex
    residual: np.ndarray
    valid: np.ndarray
    residual_variance: tuple[float, ...]
    rotary_residual_energy: tuple[float, float] | None
    design: DesignMatrix
    gram_u: np.ndarray
    gram_v: np.ndarray
    inverse: np.ndarray
    solver: str
    reference_hours: float
    trend_scale: float

    @property
    def n_unknowns(self) -> int:
        return self.params.size

    @property
    def n_valid(self) -> int:
        return int(self.valid.sum())

    def residual_channels(self) -> tuple[np.ndarray, np.ndarray | None]:
        """Residuals at the valid samples as ``(u, v)`` real channels."""
        r = self.residual[self.valid]
        if self.vector:
            return r.real.copy(), r.imag.copy()
        return r.astype(float), None

    def resolve(self, eu: np.ndarray, ev: np.ndarray | None = None) -> np.ndarray:
        """
        Parameters fitted to ``model + (eu, ev)`` at the valid samples.

        Uses the stored factorization: ``x* = x + G A' e``.
        """
        return self.params + self.inverse @ self.design.rmatvec(eu, ev)


def _rotary_from_params(
    params: np.ndarray, k: int, vector: bool
) -> tuple[np.ndarray, np.ndarray]:
    if vector:
        block = params[:4 * k].reshape(k, 4)
        ap = block[:, 0] + 1j * block[:, 1]
        am = block[:, 2] + 1j * block[:, 3]
    else:
        block = params[:2 * k].reshape(k, 2)
        ap = (block[:, 0] - 1j * block[:, 1]) / 2.0
        am = np.conj(ap)
    return ap, am


def _solve_direct(design: DesignMatrix, rhs: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    a = design.dense()
    q, r = linalg.qr(a, mode='economic')
    diag = np.abs(np.diag(r))
    if diag.size and diag.min() < _QR_RANK_TOL * diag.max():
        raise RankDeficientError(
            'Design matrix is rank deficient: the selected constituents '
            'cannot be resolved with the available samples.'
        )
    x = linalg.solve_triangular(r, q.T @ rhs)
    r_inv = linalg.solve_triangular(r, np.eye(r.shape[0]))
    return x, r_inv @ r_inv.T


def _solve_normal(
    design: DesignMatrix, gram: np.ndarray, atb: np.ndarray,
) -> tuple[np.ndarray, np.ndarray]:
    try:
        factor = linalg.cho_factor(gram)
    except linalg.LinAlgError as exc:
        raise RankDeficientError(
            'Normal equations are singular: the selected constituents '
            'cannot be resolved with the available samples.'
        ) from exc
    diag = np.abs(np.diag(factor[0]))
    if diag.min() < _CHOLESKY_RANK_TOL * diag.max():
        raise RankDeficientError(
            'Normal equations are ill-conditioned: the selected '
            'constituents cannot be resolved with the available samples.'
        )
    x = linalg.cho_solve(factor, atb)
    inverse = linalg.cho_solve(factor, np.eye(gram.shape[0]))
    return x, inverse


def fit_harmonics(
    series,
    interval_hours: float,
    selection: ConstituentSelection,
    catalog: ConstituentCatalog | None = None,
    start: float | None = None,
    latitude: float | None = None,
    mode: str = 'nodal',
    greenwich: bool = True,
    secular: str = 'mean',
    solver: str = 'auto',
    logger: logging.Logger | None = None,
) -> FitResult:
    """
    Fit the selected constituents and secular terms to a series.

    Parameters
    ----------
    series : array_like
        Real or complex samples at a fixed interval; NaN marks missing
        samples (for complex input a sample is missing when either part is).
    interval_hours : float
        Sampling interval in hours.
    selection : ConstituentSelection
        Constituents to fit and inference rules.
    catalog : ConstituentCatalog, optional
        Defaults to :func:`~tidal_harmonics.constituents.default_catalog`.
    start : float, optional
        Time of the first sample in days since 1899-12-31 12:00 UT.  Without
        it no astronomical arguments are used (nodal mode ``none``, phases
        relative to the record centre).
    latitude : float, optional
        Degrees north, for latitude-dependent satellites.
    mode : str
        Resolved nodal mode: ``'nodal'``, ``'full'`` or ``'none'``.
    greenwich : bool
        Report Greenwich phases (include V0).
    secular : str
        ``'mean'`` or ``'linear'``.
    solver : str
        ``'direct'``, ``'normal'`` or ``'auto'``.
    logger : logging.Logger, optional

    Returns
    -------
    FitResult

    Raises
    ------
    EmptySeriesError
        The series holds no finite samples.
    InsufficientDataError
        Fewer equations than unknowns, or a record shorter than one cycle of
        the lowest fitted frequency.
    RankDeficientError
        The columns of the design are numerically dependent.
    InvalidConfigurationError
        Unknown solver or secular mode, or a non-positive interval.
    """
    _log = logger or logging.getLogger(__name__)
    catalog = catalog or default_catalog()

    if secular not in SECULAR_MODES:
        raise InvalidConfigurationError(
            f"Unknown secular mode '{secular}'. Expected one of {SECULAR_MODES}."
        )
    if solver not in SOLVERS:
        raise InvalidConfigurationError(
            f"Unknown solver '{solver}'. Expected one of {SOLVERS}."
        )
    if not (interval_hours > 0):
        raise InvalidConfigurationError(
            f"interval_hours must be positive, got {interval_hours!r}."
        )

    values = np.asarray(series)
    if values.ndim != 1:
        raise InvalidConfigurationError(
            f"series must be one-dimensional, got shape {values.shape}."
        )
    vector = np.iscomplexobj(values)
    values = values.astype(complex if vector else float)
    n = values.size
    if n == 0:
        raise EmptySeriesError('series is empty.')
    if vector:
        valid = np.isfinite(values.real) & np.isfinite(values.imag)
    else:
        valid = np.isfinite(values)
    n_valid = int(valid.sum())
    if n_valid == 0:
        raise EmptySeriesError('series contains no finite data.')

    # ------------------------------------------------------------------
    # Record-length checks
    # ------------------------------------------------------------------
    names = selection.names
    k = len(names)
    record_hours = n * interval_hours
    if k:
        lowest = float(np.min(selection.frequency))
        if record_hours * lowest < 1.0:
            raise InsufficientDataError(
                f"Record length {record_hours:.2f} h is shorter than one cycle "
                f"of {names[int(np.argmin(selection.frequency))]} "
                f"({1.0 / lowest:.2f} h)."
            )

    n_secular = 2 if secular == 'linear' else 1
    n_unknowns = (4 if vector else 2) * k + (2 if vector else 1) * n_secular
    n_equations = (2 if vector else 1) * n_valid
    if n_equations < n_unknowns:
        raise InsufficientDataError(
            f"{n_valid} valid samples are too few for {n_unknowns} unknowns."
        )

    # ------------------------------------------------------------------
    # Design columns
    # ------------------------------------------------------------------
    t_hours = np.arange(n) * interval_hours
    reference_hours = 0.5 * (n - 1) * interval_hours
    origin = 0.0 if start is None else float(start)
    days = origin + t_hours[valid] / 24.0
    reference_time = origin + reference_hours / 24.0
    if start is None:
        mode, greenwich = 'none', False

    inferred_names = [rule.inferred for rule in selection.inference]
    phasors = constituent_phasors(
        catalog, list(names) + inferred_names, days, reference_time,
        mode=mode, latitude=latitude, greenwich=greenwich, logger=_log,
    )
    e_plus = phasors[:, :k].copy()
    e_minus = np.conj(phasors[:, :k]) if vector else None
    for i, rule in enumerate(selection.inference):
        j = names.index(rule.reference)
        inferred_phasor = phasors[:, k + i]
        e_plus[:, j] += rule.factor_plus * inferred_phasor
        if vector:
            e_minus[:, j] += rule.factor_minus * np.conj(inferred_phasor)

    trend_scale = max(0.5 * record_hours, interval_hours)
    secular_cols = np.ones((n_valid, n_secular))
    if secular == 'linear':
        secular_cols[:, 1] = (t_hours[valid] - reference_hours) / trend_scale
    design = DesignMatrix(e_plus, e_minus, secular_cols)

    if solver == 'auto':
        solver = (
            'direct' if design.n_entries <= DIRECT_SOLVER_MAX_ENTRIES
            else 'normal'
        )
    _log.info(
        'Fitting %d constituents to %d of %d samples (%d unknowns, %s solver, '
        '%s nodal mode).', k, n_valid, n, n_unknowns, solver, mode,
    )

    # ------------------------------------------------------------------
    # Solve
    # ------------------------------------------------------------------
    obs = values[valid]
    bu = obs.real if vector else obs
    bv = obs.imag if vector else None
    gram_u, gram_v = design.grams()
    if solver == 'direct':
        rhs = bu if bv is None else np.concatenate((bu, bv))
        params, inverse = _solve_direct(design, rhs)
    else:
        params, inverse = _solve_normal(
            design, gram_u + gram_v, design.rmatvec(bu, bv)
        )

    ap, am = _rotary_from_params(params, k, vector)
    sec = params[(4 if vector else 2) * k:]
    if vector:
        mean = complex(sec[0], sec[1])
        trend = complex(sec[2], sec[3]) / trend_scale if secular == 'linear' else 0j
    else:
        mean = float(sec[0])
        trend = float(sec[1]) / trend_scale if secular == 'linear' else 0.0

    fitted = design.matvec(params)
    if vector:
        residual = np.full(n, complex(np.nan, np.nan))
    else:
        residual = np.full(n, np.nan)
    residual[valid] = obs - fitted

    if vector:
        variance = (
            float(np.mean(residual[valid].real ** 2)),
            float(np.mean(residual[valid].imag ** 2)),
        )
        rotary = rotary_energy(residual)
    else:
        variance = (float(np.mean(residual[valid] ** 2)),)
        rotary = None

    _log.debug('Residual variance per channel: %s', variance)
    return FitResult(
        names=tuple(names),
        frequency=np.asarray(selection.frequency, dtype=float),
        vector=vector,
        params=params,
        ap=ap,
        am=am,
        mean=mean,
        trend=trend,
        residual=residual,
        valid=valid,
        residual_variance=variance,
        rotary_residual_energy=rotary,
        design=design,
        gram_u=gram_u,
        gram_v=gram_v,
        inverse=inverse,
        solver=solver,
        reference_hours=reference_hours,
        trend_scale=trend_scale,
    )


def coefficient_map(
    fit: FitResult,
    inference: Sequence,
    names: Sequence[str],
    gains: np.ndarray | None = None,
) -> np.ndarray:
    """
    Linear map from fit parameters to reported rotary coefficients.

    Parameters
    ----------
    fit : FitResult
    inference : sequence of InferenceRule
        Rules used for the fit.
    names : sequence of str
        Reported constituents (fitted and inferred), in output order.
    gains : numpy.ndarray, optional
        Complex prefilter gain per reported constituent; coefficients are
        divided by it (``a+ / G``, ``a- / conj(G)``).  Entries of 1 leave the
        coefficient unchanged.

    Returns
    -------
    numpy.ndarray
        Real matrix ``L`` of shape ``(4 * len(names), n_unknowns)`` with
        ``L @ params = [Re a+, Im a+, Re a-, Im a-]`` per constituent.
    """
    k = len(fit.names)
    m = fit.n_unknowns
    rules = {rule.inferred: rule for rule in inference}

    base = np.zeros((4 * k, m))
    for j in range(k):
        rows = slice(4 * j, 4 * j + 4)
        if fit.vector:
            base[rows, 4 * j:4 * j + 4] = np.eye(4)
        else:
            # a+ = (a - ib)/2, a- = conj(a+)
            base[rows, 2 * j:2 * j + 2] = np.array([
                [0.5, 0.0],
                [0.0, -0.5],
                [0.5, 0.0],
                [0.0, 0.5],
            ])

    def _rotation(c: complex) -> np.ndarray:
        return np.array([[c.real, -c.imag], [c.imag, c.real]])

    out = np.zeros((4 * len(names), m))
    for i, name in enumerate(names):
        if name in rules:
            rule = rules[name]
            j = fit.names.index(rule.reference)
            block = base[4 * j:4 * j + 4].copy()
            block[0:2] = _rotation(rule.factor_plus) @ block[0:2]
            # scalar series have a- = conj(a+), whatever the minus parameters
            minus = rule.factor_minus if fit.vector else np.conj(rule.factor_plus)
            block[2:4] = _rotation(minus) @ block[2:4]
        else:
            j = fit.names.index(name)
            block = base[4 * j:4 * j + 4].copy()
        if gains is not None and gains[i] != 1:
            w = 1.0 / complex(gains[i])
            block[0:2] = _rotation(w) @ block[0:2]
            block[2:4] = _rotation(np.conj(w)) @ block[2:4]
        out[4 * i:4 * i + 4] = block
    return out
