"""
Options of :func:`~tidal_harmonics.harmonic_analysis.analyze` and
:func:`~tidal_harmonics.tidal_prediction.predict`.

Options are frozen dataclasses validated on construction.  Call sites may
override single fields with keyword arguments; analysis options can also
be read from an INI file section::

    [analysis]
    start = 2020-01-01 00:00
    latitude = 41.5
    rayleigh = 1.0
    shallow = M4, MS4
    inference = P1 K1 0.331 -7.07; K2 S2 0.272 -1.2
    prefilter = 0.0805 0.95 0.0
    conf_int = cboot
    n_trials = 300
    seed = 42
"""
from __future__ import annotations

import configparser
import dataclasses
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

import numpy as np
import pandas as pd

from .confidence import CI_METHODS, RESAMPLING_METHODS
from .exceptions import InvalidConfigurationError
from .least_squares import SECULAR_MODES, SOLVERS
from .nodal import NODAL_MODES
from .selection import InferenceRule

logger = logging.getLogger(__name__)


def _as_tuple(value) -> tuple:
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(v.strip() for v in value.split(',') if v.strip())
    return tuple(value)


def _check_latitude(latitude) -> float | None:
    if latitude is None:
        return None
    lat = float(latitude)
    if not (-90.0 <= lat <= 90.0):
        raise InvalidConfigurationError(
            f"latitude must be within [-90, 90], got {latitude!r}."
        )
    return lat


def _check_choice(name: str, value: str, choices) -> None:
    if value not in choices:
        raise InvalidConfigurationError(
            f"Unknown {name} '{value}'. Expected one of {tuple(choices)}."
        )


@dataclass(frozen=True)
class AnalysisOptions:
    """
    Configuration of a harmonic analysis.

    Attributes
    ----------
    start : pandas.Timestamp, optional
        Time of the first sample (UTC).  Without it phases are relative to
        the record centre and no nodal corrections are applied.
    latitude : float, optional
        Degrees north, for latitude-dependent satellites.
    constituents : tuple of str, optional
        Explicit constituent list; disables automatic selection.
    rayleigh : float
        Rayleigh criterion of automatic selection.
    shallow : tuple of str
        Shallow-water constituents to include unconditionally.
    inference : tuple of InferenceRule
    prefilter : tuple of (float, complex)
        ``(frequency [cph], gain)`` pairs of the instrument or filter
        response; coefficients are divided by the interpolated gain unless
        the correction exceeds a factor of 100.
    secular : str
        ``'mean'`` or ``'linear'``.
    nodal : str
        ``'auto'``, ``'nodal'``, ``'full'`` or ``'none'``.
    greenwich : bool
        Report Greenwich phase lags.
    solver : str
        ``'auto'``, ``'direct'`` or ``'normal'``.
    conf_int : str
        ``'linear'``, ``'wboot'`` or ``'cboot'``.
    n_trials : int
        Bootstrap trials.
    seed : int, optional
        Bootstrap seed.
    white : bool
        ``linear`` intervals from the white residual variance.
    psd_estimator : callable, optional
        ``(residual, dt_hours) -> (freq_cph, psd)`` for ``linear`` intervals.
    resampling : str
        ``cboot`` surrogates: ``'spectral'`` or ``'block'``.
    block_hours : float, optional
        Block length of ``'block'`` resampling.
    n_jobs : int
        Bootstrap worker threads.
    synthesis_threshold : float
        Minimum SNR of the constituents included in the reconstruction.
    """

    start: Any = None
    latitude: float | None = None
    constituents: tuple[str, ...] | None = None
    rayleigh: float = 1.0
    shallow: tuple[str, ...] = ()
    inference: tuple[InferenceRule, ...] = ()
    prefilter: tuple[tuple[float, complex], ...] = ()
    secular: str = 'mean'
    nodal: str = 'auto'
    greenwich: bool = True
    solver: str = 'auto'
    conf_int: str = 'cboot'
    n_trials: int = 300
    seed: int | None = None
    white: bool = False
    psd_estimator: Callable | None = None
    resampling: str = 'spectral'
    block_hours: float | None = None
    n_jobs: int = 1
    synthesis_threshold: float = 2.0

    def __post_init__(self) -> None:
        _set = object.__setattr__
        if self.start is not None:
            try:
                start = pd.Timestamp(self.start)
            except (TypeError, ValueError) as exc:
                raise InvalidConfigurationError(
                    f"Invalid start time {self.start!r}."
                ) from exc
            if start.tzinfo is not None:
                start = start.tz_convert('UTC').tz_localize(None)
            _set(self, 'start', start)
        _set(self, 'latitude', _check_latitude(self.latitude))
        if self.constituents is not None:
            _set(self, 'constituents', _as_tuple(self.constituents))
        _set(self, 'shallow', _as_tuple(self.shallow))
        _set(self, 'inference', tuple(
            InferenceRule.coerce(rule) for rule in _as_tuple(self.inference)
        ))

        prefilter = []
        for pair in self.prefilter or ():
            freq, gain = pair
            freq, gain = float(freq), complex(gain)
            if not (np.isfinite(freq) and freq >= 0):
                raise InvalidConfigurationError(
                    f"Prefilter frequency must be non-negative, got {freq!r}."
                )
            if not np.isfinite(gain) or gain == 0:
                raise InvalidConfigurationError(
                    f"Prefilter gain must be finite and non-zero, got {gain!r}."
                )
            prefilter.append((freq, gain))
        _set(self, 'prefilter', tuple(sorted(prefilter, key=lambda p: p[0])))

        if not (self.rayleigh >= 0):
            raise InvalidConfigurationError(
                f"rayleigh must be non-negative, got {self.rayleigh!r}."
            )
        _check_choice('secular mode', self.secular, SECULAR_MODES)
        _check_choice('nodal mode', self.nodal, NODAL_MODES)
        _check_choice('solver', self.solver, SOLVERS)
        _check_choice('confidence-interval method', self.conf_int, CI_METHODS)
        _check_choice('resampling', self.resampling, RESAMPLING_METHODS)
        if int(self.n_trials) < 1:
            raise InvalidConfigurationError(
                f"n_trials must be at least 1, got {self.n_trials!r}."
            )
        _set(self, 'n_trials', int(self.n_trials))
        if self.seed is not None:
            _set(self, 'seed', int(self.seed))
        if self.block_hours is not None and not (self.block_hours > 0):
            raise InvalidConfigurationError(
                f"block_hours must be positive, got {self.block_hours!r}."
            )
        if int(self.n_jobs) < 1:
            raise InvalidConfigurationError(
                f"n_jobs must be at least 1, got {self.n_jobs!r}."
            )
        _set(self, 'n_jobs', int(self.n_jobs))
        if self.psd_estimator is not None and not callable(self.psd_estimator):
            raise InvalidConfigurationError('psd_estimator must be callable.')
        _set(self, 'synthesis_threshold', float(self.synthesis_threshold))

    def replace(self, **overrides) -> 'AnalysisOptions':
        """Copy with some fields replaced (validated again)."""
        return _replace(self, overrides)

    @classmethod
    def from_config(
        cls,
        path: str | Path,
        section: str = 'analysis',
        **overrides,
    ) -> 'AnalysisOptions':
        """
        Read options from a section of an INI file.

        Parameters
        ----------
        path : str or Path
            Configuration file.
        section : str
            Section name (default ``"analysis"``).
        **overrides
            Values taking precedence over the file.

        Returns
        -------
        AnalysisOptions

        Raises
        ------
        InvalidConfigurationError
            Missing file or section, unknown keys or unparsable values.
        """
        parser = configparser.ConfigParser()
        if not parser.read(path):
            raise InvalidConfigurationError(f"Cannot read configuration {path}.")
        if not parser.has_section(section):
            raise InvalidConfigurationError(
                f"Section [{section}] not found in {path}."
            )
        values = _parse_section(parser[section], cls)
        values.update(overrides)
        return cls(**values)


@dataclass(frozen=True)
class PredictionOptions:
    """
    Configuration of a prediction.

    Attributes
    ----------
    latitude : float, optional
        Overrides the latitude stored in the report.
    mode : str, optional
        Nodal mode (``'nodal'``, ``'full'`` or ``'none'``); defaults to the
        mode of the analysis.
    synthesis_threshold : float
        ``> 0`` keeps constituents with SNR above it, ``0`` keeps all, and
        ``< 0`` keeps all and puts NaN at the samples missing from the
        analysed record.
    """

    latitude: float | None = None
    mode: str | None = None
    synthesis_threshold: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, 'latitude', _check_latitude(self.latitude))
        if self.mode is not None:
            _check_choice('nodal mode', self.mode, ('nodal', 'full', 'none'))
        object.__setattr__(
            self, 'synthesis_threshold', float(self.synthesis_threshold)
        )

    def replace(self, **overrides) -> 'PredictionOptions':
        """Copy with some fields replaced (validated again)."""
        return _replace(self, overrides)


def _replace(options, overrides: dict):
    names = {f.name for f in dataclasses.fields(options)}
    unknown = sorted(set(overrides) - names)
    if unknown:
        raise InvalidConfigurationError(
            f"Unknown option(s) for {type(options).__name__}: {unknown}."
        )
    return dataclasses.replace(options, **overrides)


# ---------------------------------------------------------------------------
# INI parsing
# ---------------------------------------------------------------------------

_FLOAT_KEYS = {'latitude', 'rayleigh', 'block_hours', 'synthesis_threshold'}
_INT_KEYS = {'n_trials', 'seed', 'n_jobs'}
_BOOL_KEYS = {'greenwich', 'white'}
_LIST_KEYS = {'constituents', 'shallow'}
_STR_KEYS = {'start', 'secular', 'nodal', 'solver', 'conf_int', 'resampling'}


def _parse_inference(text: str) -> tuple[InferenceRule, ...]:
    rules = []
    for item in text.split(';'):
        fields = item.split()
        if not fields:
            continue
        if len(fields) not in (3, 4, 6):
            raise InvalidConfigurationError(
                f"Cannot parse inference rule '{item.strip()}': expected "
                f"'inferred reference ratio [offset [ratio_minus offset_minus]]'."
            )
        rules.append(InferenceRule(
            fields[0], fields[1], *(float(v) for v in fields[2:])
        ))
    return tuple(rules)


def _parse_prefilter(text: str) -> tuple[tuple[float, complex], ...]:
    pairs = []
    for item in text.split(';'):
        fields = item.split()
        if not fields:
            continue
        if len(fields) not in (2, 3):
            raise InvalidConfigurationError(
                f"Cannot parse prefilter entry '{item.strip()}': expected "
                f"'frequency gain_real [gain_imag]'."
            )
        values = [float(v) for v in fields]
        gain = complex(values[1], values[2] if len(values) == 3 else 0.0)
        pairs.append((values[0], gain))
    return tuple(pairs)


def _parse_section(section: configparser.SectionProxy, cls) -> dict:
    allowed = {f.name for f in dataclasses.fields(cls)} - {'psd_estimator'}
    values: dict[str, Any] = {}
    for key in section:
        if key not in allowed:
            raise InvalidConfigurationError(
                f"Unknown option '{key}' in section [{section.name}]."
            )
        raw = section[key].strip()
        try:
            if raw.lower() in ('', 'none'):
                values[key] = None if key in (
                    'start', 'latitude', 'constituents', 'seed', 'block_hours'
                ) else ()
            elif key in _FLOAT_KEYS:
                values[key] = float(raw)
            elif key in _INT_KEYS:
                values[key] = int(raw)
            elif key in _BOOL_KEYS:
                values[key] = section.getboolean(key)
            elif key in _LIST_KEYS:
                values[key] = _as_tuple(raw)
            elif key == 'inference':
                values[key] = _parse_inference(raw)
            elif key == 'prefilter':
                values[key] = _parse_prefilter(raw)
            elif key in _STR_KEYS:
                values[key] = raw
        except ValueError as exc:
            if isinstance(exc, InvalidConfigurationError):
                raise
            raise InvalidConfigurationError(
                f"Invalid value for '{key}' in section [{section.name}]: "
                f"{raw!r}."
            ) from exc
    return values
