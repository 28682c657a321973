"""
Result containers of a harmonic analysis and their tabular export.

:class:`TidalConstituentReport` is the externally visible outcome of
:func:`~tidal_harmonics.harmonic_analysis.analyze` and the input of
:func:`~tidal_harmonics.tidal_prediction.predict`.
:class:`AnalysisDiagnostics` records how the analysis was carried out.
Both are immutable; tables are produced on demand as
:class:`pandas.DataFrame` objects.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


def compute_snr(amplitude, ci) -> np.ndarray:
    """
    Signal-to-noise ratio ``amplitude / ci``.

    A zero-width interval gives ``inf`` for a non-zero amplitude, and a
    zero amplitude gives 0.
    """
    amplitude = np.abs(np.asarray(amplitude, dtype=float))
    ci = np.asarray(ci, dtype=float)
    snr = np.full(np.broadcast(amplitude, ci).shape, np.inf)
    np.divide(amplitude, ci, out=snr, where=ci > 0)
    return np.where(amplitude > 0, snr, 0.0)


def percent_energy(lsmaj, lsmin=None) -> np.ndarray:
    """Percentage of the total tidal energy carried by each constituent."""
    energy = np.asarray(lsmaj, dtype=float) ** 2
    if lsmin is not None:
        energy = energy + np.asarray(lsmin, dtype=float) ** 2
    total = energy.sum()
    if total <= 0:
        return np.zeros_like(energy)
    return 100.0 * energy / total


@dataclass(frozen=True)
class TidalConstituentReport:
    """
    Harmonic constants with 95 % confidence half-widths.

    Scalar series use ``Lsmaj`` as the amplitude and ``g`` as the
    Greenwich phase (also available as :attr:`A` and :attr:`phase`);
    ``Lsmin`` and ``theta`` are then zero.

    Attributes
    ----------
    names : tuple of str
        Reported constituents (fitted and inferred) by increasing frequency.
    frequency : np.ndarray
        Cycles per hour.
    vector : bool
    ap, am : np.ndarray
        Complex rotary coefficients, nodal- and prefilter-corrected.
    Lsmaj, Lsmin, theta, g : np.ndarray
        Ellipse parameters (degrees for angles).
    Lsmaj_ci, Lsmin_ci, theta_ci, g_ci : np.ndarray
        95 % half-widths.
    snr : np.ndarray
        ``Lsmaj / Lsmaj_ci``.
    pe : np.ndarray
        Percent energy.
    mean : float or complex
        Secular mean at the reference time.
    trend : float or complex
        Secular trend per hour.
    reference_hours : float
        Reference time (record centre), hours after the first sample.
    start : pandas.Timestamp or None
        Time of the first sample; None for relative-time analyses.
    interval_hours : float
    n_samples : int
    valid : np.ndarray
        Samples of the analysed record that held data.
    latitude : float or None
    nodal_mode : str
    greenwich : bool
    secular : str
    ci_method : str
    inferred : tuple of str
    """

    names: tuple[str, ...]
    frequency: np.ndarray
    vector: bool
    ap: np.ndarray
    am: np.ndarray
    Lsmaj: np.ndarray
    Lsmin: np.ndarray
    theta: np.ndarray
    g: np.ndarray
    Lsmaj_ci: np.ndarray
    Lsmin_ci: np.ndarray
    theta_ci: np.ndarray
    g_ci: np.ndarray
    snr: np.ndarray
    pe: np.ndarray
    mean: complex
    trend: complex
    reference_hours: float
    start: pd.Timestamp | None
    interval_hours: float
    n_samples: int
    valid: np.ndarray
    latitude: float | None
    nodal_mode: str
    greenwich: bool
    secular: str
    ci_method: str
    inferred: tuple[str, ...] = ()

    # Scalar aliases
    @property
    def A(self) -> np.ndarray:
        return self.Lsmaj

    @property
    def A_ci(self) -> np.ndarray:
        return self.Lsmaj_ci

    @property
    def phase(self) -> np.ndarray:
        return self.g

    @property
    def phase_ci(self) -> np.ndarray:
        return self.g_ci

    @property
    def reference_time(self) -> pd.Timestamp | float:
        """Absolute reference time, or hours after the first sample."""
        if self.start is None:
            return self.reference_hours
        return self.start + pd.Timedelta(hours=self.reference_hours)

    def __len__(self) -> int:
        return len(self.names)

    def index(self, name: str) -> int:
        return self.names.index(name.strip().upper())

    def to_frame(self) -> pd.DataFrame:
        """
        Constituent table.

        Returns
        -------
        pd.DataFrame
            Scalar: ``Name``, ``Frequency``, ``Amplitude``, ``Amplitude_CI``,
            ``Phase``, ``Phase_CI``, ``SNR``, ``PE``.
            Vector: ``Name``, ``Frequency``, ``Lsmaj``, ``Lsmaj_CI``,
            ``Lsmin``, ``Lsmin_CI``, ``theta``, ``theta_CI``, ``g``,
            ``g_CI``, ``SNR``, ``PE``.
        """
        columns = {'Name': list(self.names), 'Frequency': self.frequency}
        if self.vector:
            columns.update({
                'Lsmaj': self.Lsmaj, 'Lsmaj_CI': self.Lsmaj_ci,
                'Lsmin': self.Lsmin, 'Lsmin_CI': self.Lsmin_ci,
                'theta': self.theta, 'theta_CI': self.theta_ci,
                'g': self.g, 'g_CI': self.g_ci,
            })
        else:
            columns.update({
                'Amplitude': self.Lsmaj, 'Amplitude_CI': self.Lsmaj_ci,
                'Phase': self.g, 'Phase_CI': self.g_ci,
            })
        columns.update({'SNR': self.snr, 'PE': self.pe})
        return pd.DataFrame(columns)

    def to_constants(self) -> dict[str, dict[str, float]]:
        """
        Amplitudes and phases as name-keyed dictionaries.

        The format matches the ``amplitudes``/``phases`` mapping accepted
        by :func:`~tidal_harmonics.tidal_prediction.predict_from_constants`.
        """
        return {
            'amplitudes': dict(zip(self.names, map(float, self.Lsmaj))),
            'phases': dict(zip(self.names, map(float, self.g))),
        }


@dataclass(frozen=True)
class AnalysisDiagnostics:
    """
    How an analysis was carried out.

    Attributes
    ----------
    selected : tuple of str
        Fitted constituents.
    rejected : dict
        Constituents dropped by the Rayleigh criterion and the accepted
        constituent that blocked each of them.
    inferred : tuple of str
    nodal_mode : str
    solver : str
    ci_method : str
    reference_time : pandas.Timestamp or float
    record_hours : float
    record_class : str
        ``'short_record'``, ``'standard'`` or ``'long_record_lsq'``.
    n_samples, n_valid, n_unknowns : int
    residual_variance : tuple of float
        Mean-square residual per channel.
    rotary_residual_energy : tuple of float or None
        Counter-clockwise and clockwise residual energy (vector series).
    principal_direction : float or None
        Major axis of the velocity covariance, degrees from east (vector).
    pe_table : pandas.DataFrame
        ``Name``, ``PE``, ``SNR`` sorted by decreasing ``PE``.
    """

    selected: tuple[str, ...]
    rejected: dict[str, str]
    inferred: tuple[str, ...]
    nodal_mode: str
    solver: str
    ci_method: str
    reference_time: pd.Timestamp | float
    record_hours: float
    record_class: str
    n_samples: int
    n_valid: int
    n_unknowns: int
    residual_variance: tuple[float, ...]
    rotary_residual_energy: tuple[float, float] | None = None
    principal_direction: float | None = None
    pe_table: pd.DataFrame = field(default_factory=pd.DataFrame)


def classify_record(duration_days: float) -> str:
    """Return a human-readable label for the record-length class."""
    if duration_days < 20:
        return 'short_record'
    elif duration_days < 180:
        return 'standard'
    else:
        return 'long_record_lsq'


def pe_table(report: TidalConstituentReport) -> pd.DataFrame:
    """Constituents ranked by percent energy."""
    table = pd.DataFrame({
        'Name': list(report.names),
        'PE': report.pe,
        'SNR': report.snr,
    })
    return table.sort_values('PE', ascending=False, kind='stable').reset_index(drop=True)
