"""
Rayleigh-criterion constituent selection and inference rules.

Constituents are accepted greedily in the catalog's priority order; a
candidate is rejected when its frequency lies within ``rayleigh /
record_length`` of a constituent accepted before it.  The mean (Z0,
frequency zero) is always accepted first.  Constituents named explicitly,
requested shallow-water constituents, and the references of inference
rules are forced into the selection; inferred constituents are never
fitted directly.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Sequence

import numpy as np

from .constituents import ConstituentCatalog, normalize_constituent_name
from .exceptions import InvalidConfigurationError

logger = logging.getLogger(__name__)

MEAN_NAME = 'Z0'


@dataclass(frozen=True)
class InferenceRule:
    """
    Tie an unresolvable constituent to a resolved reference.

    The inferred rotary coefficients are
    ``a+_inf = r+ * exp(-i*zeta+) * a+_ref`` and
    ``a-_inf = r- * exp(+i*zeta-) * a-_ref``, so that the inferred
    amplitude is ``r`` times the reference amplitude and its Greenwich
    phase lags the reference by ``zeta`` degrees.

    Attributes
    ----------
    inferred : str
    reference : str
    amplitude_ratio : float
        r+ (for scalar series, the ratio of amplitudes).
    phase_offset : float
        zeta+ in degrees (inferred phase minus reference phase).
    amplitude_ratio_minus : float, optional
        r- for vector series; defaults to ``amplitude_ratio``.  Ignored
        for scalar series.
    phase_offset_minus : float, optional
        zeta- for vector series; defaults to ``phase_offset``.  Ignored
        for scalar series.
    """

    inferred: str
    reference: str
    amplitude_ratio: float
    phase_offset: float = 0.0
    amplitude_ratio_minus: float | None = None
    phase_offset_minus: float | None = None

    @property
    def ratio_minus(self) -> float:
        if self.amplitude_ratio_minus is None:
            return self.amplitude_ratio
        return self.amplitude_ratio_minus

    @property
    def offset_minus(self) -> float:
        if self.phase_offset_minus is None:
            return self.phase_offset
        return self.phase_offset_minus

    @property
    def factor_plus(self) -> complex:
        """Multiplier of the reference's positive-frequency coefficient."""
        return self.amplitude_ratio * np.exp(-1j * np.deg2rad(self.phase_offset))

    @property
    def factor_minus(self) -> complex:
        """Multiplier of the reference's negative-frequency coefficient."""
        return self.ratio_minus * np.exp(1j * np.deg2rad(self.offset_minus))

    @classmethod
    def coerce(cls, rule) -> 'InferenceRule':
        """Build a rule from an instance, a mapping or a tuple."""
        if isinstance(rule, cls):
            return rule
        if isinstance(rule, dict):
            return cls(**rule)
        return cls(*rule)


@dataclass(frozen=True)
class ConstituentSelection:
    """
    Outcome of constituent selection.

    Attributes
    ----------
    names : tuple of str
        Fitted constituents ordered by increasing frequency.
    frequency : numpy.ndarray
        Cycles per hour, aligned with *names*.
    inference : tuple of InferenceRule
        Validated rules with normalized names.
    rejected : dict
        Constituents dropped by the Rayleigh criterion, mapped to the
        accepted constituent that blocked them.
    forced : tuple of str
        Constituents included regardless of the Rayleigh criterion.
    """

    names: tuple[str, ...]
    frequency: np.ndarray
    inference: tuple[InferenceRule, ...] = ()
    rejected: dict[str, str] = field(default_factory=dict)
    forced: tuple[str, ...] = ()

    @property
    def inferred_names(self) -> tuple[str, ...]:
        return tuple(rule.inferred for rule in self.inference)


def validate_inference(
    catalog: ConstituentCatalog,
    rules: Iterable,
) -> tuple[InferenceRule, ...]:
    """
    Normalize and validate inference rules.

    Raises
    ------
    InvalidConfigurationError
        Unknown names, a constituent inferred from itself, duplicated
        inferred constituents, chained rules (a reference that is itself
        inferred) or non-positive amplitude ratios.
    """
    resolved = []
    for raw in rules:
        rule = InferenceRule.coerce(raw)
        inferred = catalog[rule.inferred].name
        reference = catalog[rule.reference].name
        if inferred == reference:
            raise InvalidConfigurationError(
                f"Constituent '{inferred}' cannot be inferred from itself."
            )
        if not (rule.amplitude_ratio > 0 and rule.ratio_minus > 0):
            raise InvalidConfigurationError(
                f"Inference ratio for '{inferred}' must be positive, got "
                f"{rule.amplitude_ratio!r} / {rule.ratio_minus!r}."
            )
        resolved.append(InferenceRule(
            inferred=inferred,
            reference=reference,
            amplitude_ratio=float(rule.amplitude_ratio),
            phase_offset=float(rule.phase_offset),
            amplitude_ratio_minus=(
                None if rule.amplitude_ratio_minus is None
                else float(rule.amplitude_ratio_minus)
            ),
            phase_offset_minus=(
                None if rule.phase_offset_minus is None
                else float(rule.phase_offset_minus)
            ),
        ))

    inferred_names = [r.inferred for r in resolved]
    duplicates = sorted({n for n in inferred_names if inferred_names.count(n) > 1})
    if duplicates:
        raise InvalidConfigurationError(
            f"Constituents inferred more than once: {duplicates}."
        )
    chained = sorted({r.reference for r in resolved if r.reference in inferred_names})
    if chained:
        raise InvalidConfigurationError(
            f"Inference references {chained} are themselves inferred."
        )
    return tuple(resolved)


def select_constituents(
    catalog: ConstituentCatalog,
    record_hours: float,
    interval_hours: float,
    rayleigh: float = 1.0,
    constituents: Sequence[str] | None = None,
    shallow: Sequence[str] = (),
    inference: Sequence = (),
    logger: logging.Logger | None = None,
) -> ConstituentSelection:
    """
    Choose the constituents to fit.

    Parameters
    ----------
    catalog : ConstituentCatalog
    record_hours : float
        Record length in hours (sample count times interval).
    interval_hours : float
        Sampling interval; constituents above the Nyquist frequency are
        not selected automatically.
    rayleigh : float
        Rayleigh criterion; 0 disables the resolution check.
    constituents : sequence of str, optional
        Explicit list.  Overrides automatic selection and is not checked
        against the Rayleigh criterion.
    shallow : sequence of str
        Shallow-water constituents to include unconditionally.
    inference : sequence of InferenceRule
        Rules whose references are forced in and whose inferred
        constituents are removed from the fit.
    logger : logging.Logger, optional

    Returns
    -------
    ConstituentSelection

    Raises
    ------
    InvalidConfigurationError
        Unknown names, invalid rules, or out-of-range parameters.
    """
    _log = logger or logging.getLogger(__name__)

    if not (record_hours > 0):
        raise InvalidConfigurationError(
            f"record_hours must be positive, got {record_hours!r}."
        )
    if not (interval_hours > 0):
        raise InvalidConfigurationError(
            f"interval_hours must be positive, got {interval_hours!r}."
        )
    if not (rayleigh >= 0):
        raise InvalidConfigurationError(
            f"rayleigh must be non-negative, got {rayleigh!r}."
        )

    rules = validate_inference(catalog, inference)
    inferred = {r.inferred for r in rules}
    shallow_names = catalog.resolve(shallow)
    for name in shallow_names:
        if not catalog[name].is_shallow:
            _log.warning("'%s' is not a shallow-water constituent.", name)

    forced: list[str] = []

    def _force(name: str) -> None:
        if name in inferred:
            _log.warning(
                "'%s' is inferred and will not be fitted directly.", name
            )
        elif name not in forced and name != MEAN_NAME:
            forced.append(name)

    if constituents is not None:
        for name in constituents:
            if normalize_constituent_name(name) == MEAN_NAME:
                continue
            _force(catalog[name].name)
    for name in shallow_names:
        _force(name)
    for rule in rules:
        _force(rule.reference)

    accepted = list(forced)
    rejected: dict[str, str] = {}
    if constituents is None:
        resolution = rayleigh / record_hours
        nyquist = 0.5 / interval_hours
        accepted_freq = [0.0] + [catalog[n].frequency for n in accepted]
        accepted_names = [MEAN_NAME] + list(accepted)
        for name in catalog.priority:
            if name in inferred or name in accepted:
                continue
            freq = catalog[name].frequency
            if freq > nyquist:
                continue
            blocking = None
            for other, other_freq in zip(accepted_names, accepted_freq):
                if abs(freq - other_freq) >= resolution:
                    continue
                # The mean is not a catalog entry and generates nothing.
                if other != MEAN_NAME and (
                    other in catalog.generators(name)
                    or name in catalog.generators(other)
                ):
                    continue
                blocking = other
                break
            if blocking is not None:
                rejected[name] = blocking
                continue
            accepted.append(name)
            accepted_names.append(name)
            accepted_freq.append(freq)
    else:
        nyquist = 0.5 / interval_hours
        above = [n for n in accepted if catalog[n].frequency > nyquist]
        if above:
            _log.warning('Constituents above the Nyquist frequency: %s', above)

    names = tuple(sorted(accepted, key=lambda n: (catalog[n].frequency, n)))
    _log.info(
        'Selected %d constituents (%d rejected by Rayleigh criterion, '
        '%d inferred).', len(names), len(rejected), len(rules),
    )
    _log.debug('Selected constituents: %s', ', '.join(names))
    return ConstituentSelection(
        names=names,
        frequency=catalog.frequency(names),
        inference=rules,
        rejected=rejected,
        forced=tuple(forced),
    )
