"""
Tidal constituent catalog: Doodson numbers, satellites and shallow-water rules.

The catalog is the read-only table every other component consults.  Each
astronomical constituent carries its Doodson number on the six fundamental
arguments ``(tau, s, h, p, N', p')``, a phase offset ``semi`` (cycles) and
an optional list of satellite lines used for nodal corrections.
Shallow-water constituents are integer combinations of other entries; the
combinations are resolved into astronomical constituents once, when the
catalog is built, and cycles are rejected there.

Frequencies are derived from the Doodson numbers and the linear rates of
the astronomical arguments (:data:`~tidal_harmonics.astronomy.ARGUMENT_RATES`),
which reproduces the classical speeds, e.g. M2 = 28.9841042 deg/hr.

Satellite amplitude ratios of the built-in table follow the nodal
modulation formulae of Schureman (1958) as tabulated for the OTIS/GOT
corrections.  K1, O1, P1, S2 and K2 carry their Foreman (1977) satellite
sets, including the latitude-dependent lines, so the ``latitude`` option
matters with the built-in table too.  The complete Foreman table can be
loaded with :func:`tidal_harmonics.catalog_sources.load_utide_catalog`.

References
----------
- Schureman, P. (1958). Manual of Harmonic Analysis and Prediction of
  Tides.  Special Publication No. 98, US Coast and Geodetic Survey.
- Foreman, M.G.G. (1977). Manual for Tidal Heights Analysis and
  Prediction.  Pacific Marine Science Report 77-10.
- Zhang et al. (2006). NOAA Technical Report NOS CS 24, Appendix C.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Iterable, Iterator, Sequence

import numpy as np

from .astronomy import ARGUMENT_RATES
from .exceptions import InvalidConfigurationError

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 4


@dataclass(frozen=True)
class Satellite:
    """
    One satellite line of a main constituent.

    ``deldood`` holds the Doodson-number offsets on ``(p, N', p')``,
    ``phase`` the phase correction in cycles and ``ratio`` the amplitude
    relative to the main line.  ``latitude_factor`` is 1 for ratios scaled
    by the diurnal latitude function, 2 for the semidiurnal one, 0 for none.
    """

    deldood: tuple[int, int, int]
    phase: float
    ratio: float
    latitude_factor: int = 0


@dataclass(frozen=True)
class ShallowWaterRule:
    """A shallow-water constituent as ``sum(coefficient * generator)``."""

    name: str
    terms: tuple[tuple[int, str], ...]


@dataclass(frozen=True)
class Constituent:
    """A catalog entry (astronomical or shallow-water)."""

    name: str
    doodson: tuple[int, ...]
    semi: float
    frequency: float
    satellites: tuple[Satellite, ...] = ()
    shallow: tuple[tuple[int, str], ...] = ()
    basis: tuple[tuple[int, str], ...] = field(default=(), compare=False)

    @property
    def is_shallow(self) -> bool:
        return bool(self.shallow)

    @property
    def speed(self) -> float:
        """Angular speed in degrees per hour."""
        return self.frequency * 360.0


# ---------------------------------------------------------------------------
# The 37 NOS standard constituents (Appendix C order of NOS CS 24).
# ---------------------------------------------------------------------------

_SEMIDIURNAL = [
    'M2', 'S2', 'N2', 'K2', '2N2', 'MU2', 'NU2', 'L2', 'T2', 'R2', 'LDA2',
]
_DIURNAL = [
    'K1', 'O1', 'P1', 'Q1', 'J1', 'M1', 'OO1', '2Q1', 'RHO1',
]
_LONG_PERIOD = [
    'MF', 'MM', 'SSA', 'SA', 'MSM', 'MSF',
]
_SHALLOW_WATER = [
    'M4', 'M6', 'M8', 'MS4', 'MN4', 'MK3', 'S4', 'S6', '2MK3', '2SM2', 'MO3',
]

NOS_37_CONSTITUENTS: list[str] = (
    _SEMIDIURNAL + _DIURNAL + _LONG_PERIOD + _SHALLOW_WATER
)
"""List of the 37 NOS standard tidal constituents in Appendix C order."""

# ---------------------------------------------------------------------------
# Alternate spellings accepted wherever a constituent name is expected.
# ---------------------------------------------------------------------------

CONSTITUENT_ALIASES: dict[str, str] = {
    'LAM2': 'LDA2',     # CO-OPS harcon spelling
    'LAMBDA2': 'LDA2',
    'RHO': 'RHO1',
    'NO1': 'M1',
    'SIGMA1': 'SIG1',
    'THETA1': 'THE1',
    'UPSILON1': 'UPS1',
    'BETA1': 'BET1',
    'EPSILON2': 'EPS2',
}
"""Mapping of alternate constituent names to catalog names."""


def normalize_constituent_name(name: str) -> str:
    """
    Normalize a constituent name to the catalog convention.

    Parameters
    ----------
    name : str
        Constituent name in any case, possibly an alias such as ``"LAM2"``.

    Returns
    -------
    str
        Upper-cased catalog name.  Unknown names are returned upper-cased
        and unchanged; lookups report them.
    """
    cleaned = str(name).strip().upper()
    return CONSTITUENT_ALIASES.get(cleaned, cleaned)


def _clean(name: str) -> str:
    return str(name).strip().upper()


# ---------------------------------------------------------------------------
# Built-in table.
#
# Doodson numbers on (tau, s, h, p, N', p'), with N' the negative of the
# longitude of the lunar ascending node.  ``semi`` is the Schureman phase
# offset in cycles (+0.25 for O1-like, -0.25 for K1-like diurnals, 0.5
# for the lines carrying a 180 deg term).
# Satellites: (dp, dN', dp', phase [cycles], amplitude ratio, lat. factor).
# ---------------------------------------------------------------------------

_M2_SATS = ((0, -1, 0, 0.5, 0.0373, 0),)
_M3_SATS = ((0, -1, 0, 0.5, 0.0560, 0),)
_O1_SATS = ((0, -1, 0, 0.0, 0.1886, 0), (0, -2, 0, 0.5, 0.0058, 0))
_K1_SATS = (
    (-2, -1, 0, 0.0, 0.0002, 0),
    (-1, -1, 0, 0.75, 0.0001, 1),
    (-1, 0, 0, 0.75, 0.0007, 1),
    (-1, 1, 0, 0.25, 0.0001, 1),
    (0, -2, 0, 0.0, 0.0001, 0),
    (0, -1, 0, 0.5, 0.0198, 0),
    (0, 1, 0, 0.0, 0.1356, 0),
    (0, 2, 0, 0.5, 0.0029, 0),
    (1, 0, 0, 0.25, 0.0002, 1),
    (1, 1, 0, 0.25, 0.0001, 1),
)
# O1 itself carries the full set; the other O1-like lines share the
# dominant nodal terms only.
_O1_FULL_SATS = (
    (-1, 0, 0, 0.25, 0.0003, 1),
    (0, -2, 0, 0.5, 0.0058, 0),
    (0, -1, 0, 0.0, 0.1886, 0),
    (1, -1, 0, 0.25, 0.0004, 1),
    (1, 0, 0, 0.75, 0.0029, 1),
    (1, 1, 0, 0.25, 0.0004, 1),
    (2, 0, 0, 0.5, 0.0064, 0),
    (2, 1, 0, 0.5, 0.0010, 0),
)
_P1_SATS = (
    (0, -2, 0, 0.0, 0.0008, 0),
    (0, -1, 0, 0.5, 0.0112, 0),
    (0, 0, 2, 0.5, 0.0004, 0),
    (1, 0, 0, 0.75, 0.0004, 1),
    (2, 0, 0, 0.5, 0.0015, 0),
    (2, 1, 0, 0.5, 0.0003, 0),
)
_S2_SATS = (
    (0, 0, 1, 0.0, 0.0022, 0),
    (1, 0, 0, 0.75, 0.0001, 2),
    (2, 0, 0, 0.0, 0.0001, 0),
)
_J1_SATS = ((0, 1, 0, 0.0, 0.1980, 0), (0, -1, 0, 0.5, 0.0290, 0))
_CHI1_SATS = ((0, 1, 0, 0.0, 0.2210, 0),)
_OO1_SATS = ((0, 1, 0, 0.0, 0.6400, 0), (0, 2, 0, 0.0, 0.1340, 0))
_M1_SATS = (
    (0, -1, 0, 0.5, 0.2294, 0),
    (-2, 0, 0, 0.0, 0.3594, 0),
    (-2, -1, 0, 0.0, 0.0664, 0),
)
_MF_SATS = ((0, 1, 0, 0.0, 0.4143, 0), (0, 2, 0, 0.0, 0.0387, 0))
_MM_SATS = ((0, 1, 0, 0.5, 0.0657, 0), (0, -1, 0, 0.5, 0.0657, 0))
_K2_SATS = (
    (-1, 0, 0, 0.75, 0.0024, 2),
    (-1, 1, 0, 0.75, 0.0004, 2),
    (0, 1, 0, 0.0, 0.2980, 0),
    (0, -1, 0, 0.5, 0.0128, 0),
    (0, 2, 0, 0.0, 0.0324, 0),
)
_ETA2_SATS = ((0, 1, 0, 0.0, 0.4410, 0),)

_ASTRONOMICAL_TABLE = [
    # -- Long-period --
    ('SA',   (0, 0, 1, 0, 0, -1),   0.0,  ()),
    ('SSA',  (0, 0, 2, 0, 0, 0),    0.0,  ()),
    ('MSM',  (0, 1, -2, 1, 0, 0),   0.0,  _MM_SATS),
    ('MM',   (0, 1, 0, -1, 0, 0),   0.0,  _MM_SATS),
    ('MSF',  (0, 2, -2, 0, 0, 0),   0.0,  ()),
    ('MF',   (0, 2, 0, 0, 0, 0),    0.0,  _MF_SATS),
    ('MTM',  (0, 3, 0, -1, 0, 0),   0.0,  _MF_SATS),
    # -- Diurnal --
    ('2Q1',  (1, -3, 0, 2, 0, 0),   0.25, _O1_SATS),
    ('SIG1', (1, -3, 2, 0, 0, 0),   0.25, _O1_SATS),
    ('Q1',   (1, -2, 0, 1, 0, 0),   0.25, _O1_SATS),
    ('RHO1', (1, -2, 2, -1, 0, 0),  0.25, _O1_SATS),
    ('O1',   (1, -1, 0, 0, 0, 0),   0.25, _O1_FULL_SATS),
    ('TAU1', (1, -1, 2, 0, 0, 0),  -0.25, ()),
    ('BET1', (1, 0, -2, 1, 0, 0),  -0.25, ()),
    ('M1',   (1, 0, 0, 1, 0, 0),   -0.25, _M1_SATS),
    ('CHI1', (1, 0, 2, -1, 0, 0),  -0.25, _CHI1_SATS),
    ('PI1',  (1, 1, -3, 0, 0, 1),   0.25, ()),
    ('P1',   (1, 1, -2, 0, 0, 0),   0.25, _P1_SATS),
    ('S1',   (1, 1, -1, 0, 0, 0),   0.0,  ()),
    ('K1',   (1, 1, 0, 0, 0, 0),   -0.25, _K1_SATS),
    ('PSI1', (1, 1, 1, 0, 0, -1),  -0.25, ()),
    ('PHI1', (1, 1, 2, 0, 0, 0),   -0.25, _J1_SATS),
    ('THE1', (1, 2, -2, 1, 0, 0),  -0.25, _J1_SATS),
    ('J1',   (1, 2, 0, -1, 0, 0),  -0.25, _J1_SATS),
    ('SO1',  (1, 3, -2, 0, 0, 0),  -0.25, ()),
    ('OO1',  (1, 3, 0, 0, 0, 0),   -0.25, _OO1_SATS),
    ('UPS1', (1, 4, 0, -1, 0, 0),  -0.25, _OO1_SATS),
    # -- Semidiurnal --
    ('EPS2', (2, -3, 2, 1, 0, 0),   0.0,  _M2_SATS),
    ('2N2',  (2, -2, 0, 2, 0, 0),   0.0,  _M2_SATS),
    ('MU2',  (2, -2, 2, 0, 0, 0),   0.0,  _M2_SATS),
    ('N2',   (2, -1, 0, 1, 0, 0),   0.0,  _M2_SATS),
    ('NU2',  (2, -1, 2, -1, 0, 0),  0.0,  _M2_SATS),
    ('M2',   (2, 0, 0, 0, 0, 0),    0.0,  _M2_SATS),
    ('LDA2', (2, 1, -2, 1, 0, 0),   0.5,  _M2_SATS),
    ('L2',   (2, 1, 0, -1, 0, 0),   0.5,  _M2_SATS),
    ('T2',   (2, 2, -3, 0, 0, 1),   0.0,  ()),
    ('S2',   (2, 2, -2, 0, 0, 0),   0.0,  _S2_SATS),
    ('R2',   (2, 2, -1, 0, 0, -1),  0.5,  ()),
    ('K2',   (2, 2, 0, 0, 0, 0),    0.0,  _K2_SATS),
    ('ETA2', (2, 3, 0, -1, 0, 0),   0.0,  _ETA2_SATS),
    # -- Terdiurnal --
    ('M3',   (3, 0, 0, 0, 0, 0),    0.5,  _M3_SATS),
]

_SHALLOW_TABLE = [
    ('2SM2', ((2, 'S2'), (-1, 'M2'))),
    ('MSN2', ((1, 'M2'), (1, 'S2'), (-1, 'N2'))),
    ('MO3',  ((1, 'M2'), (1, 'O1'))),
    ('2MK3', ((2, 'M2'), (-1, 'K1'))),
    ('SO3',  ((1, 'S2'), (1, 'O1'))),
    ('MK3',  ((1, 'M2'), (1, 'K1'))),
    ('SK3',  ((1, 'S2'), (1, 'K1'))),
    ('MN4',  ((1, 'M2'), (1, 'N2'))),
    ('M4',   ((2, 'M2'),)),
    ('SN4',  ((1, 'S2'), (1, 'N2'))),
    ('MS4',  ((1, 'M2'), (1, 'S2'))),
    ('MK4',  ((1, 'M2'), (1, 'K2'))),
    ('S4',   ((2, 'S2'),)),
    ('SK4',  ((1, 'S2'), (1, 'K2'))),
    ('2MK5', ((2, 'M2'), (1, 'K1'))),
    ('2MN6', ((2, 'M2'), (1, 'N2'))),
    ('M6',   ((3, 'M2'),)),
    ('MSN6', ((1, 'M2'), (1, 'S2'), (1, 'N2'))),
    ('2MS6', ((2, 'M2'), (1, 'S2'))),
    ('2MK6', ((2, 'M2'), (1, 'K2'))),
    ('2SM6', ((2, 'S2'), (1, 'M2'))),
    ('MSK6', ((1, 'M2'), (1, 'S2'), (1, 'K2'))),
    ('S6',   ((3, 'S2'),)),
    ('3MK7', ((3, 'M2'), (1, 'K1'))),
    ('M8',   ((4, 'M2'),)),
]

DEFAULT_PRIORITY: tuple[str, ...] = (
    # Principal lines, by equilibrium amplitude
    'M2', 'K1', 'S2', 'O1', 'N2', 'P1', 'K2', 'SA', 'SSA', 'Q1', 'MF', 'MM',
    # Secondary lines
    'NU2', 'L2', '2N2', 'MU2', 'J1', 'M1', 'OO1', 'T2', 'MSF', 'LDA2',
    'RHO1', 'MSM', '2Q1', 'SIG1', 'CHI1', 'PI1', 'PHI1', 'THE1', 'R2',
    'S1', 'PSI1', 'TAU1', 'BET1', 'SO1', 'UPS1', 'EPS2', 'ETA2', 'MTM', 'M3',
    # Shallow-water lines
    'M4', 'MS4', 'MN4', 'M6', 'MK3', 'S4', 'MO3', '2MK3', '2SM2', 'MSN2',
    'SK3', 'SO3', 'MK4', 'SN4', 'SK4', '2MS6', '2MN6', 'MSN6', '2MK6',
    '2SM6', 'MSK6', 'S6', '2MK5', '3MK7', 'M8',
)
"""Order in which automatic selection considers constituents."""


def doodson_frequency(doodson: Sequence[float]) -> float:
    """
    Frequency in cycles per hour of a Doodson-number combination.

    Parameters
    ----------
    doodson : sequence of float
        Coefficients on ``(tau, s, h, p, N', p')``.

    Returns
    -------
    float
        Frequency in cycles per hour.
    """
    return float(np.dot(np.asarray(doodson, dtype=float), ARGUMENT_RATES)) / 24.0


class ConstituentCatalog:
    """
    Immutable, name-indexed table of tidal constituents.

    Parameters
    ----------
    constituents : iterable of Constituent
        Astronomical constituents.  A ``frequency`` of ``None`` or ``nan``
        is computed from the Doodson number.
    shallow : iterable of ShallowWaterRule, optional
        Shallow-water constituents.  Terms may reference astronomical or
        other shallow-water entries.
    priority : sequence of str, optional
        Order used by automatic constituent selection.  Entries missing
        from the catalog are ignored; catalog entries missing from the
        priority list are appended in order of increasing frequency.

    Raises
    ------
    InvalidConfigurationError
        On duplicate or over-long names, non-positive frequencies, and
        shallow-water rules that are self-referential, cyclic or reference
        unknown constituents.
    """

    def __init__(
        self,
        constituents: Iterable[Constituent],
        shallow: Iterable[ShallowWaterRule] = (),
        priority: Sequence[str] | None = None,
    ) -> None:
        entries: dict[str, Constituent] = {}
        for const in constituents:
            name = _clean(const.name)
            self._check_name(name, entries)
            frequency = const.frequency
            if frequency is None or not np.isfinite(frequency):
                frequency = doodson_frequency(const.doodson)
            entries[name] = Constituent(
                name=name,
                doodson=tuple(int(d) for d in const.doodson),
                semi=float(const.semi),
                frequency=float(frequency),
                satellites=tuple(const.satellites),
                basis=((1, name),),
            )

        rules = {}
        for rule in shallow:
            name = _clean(rule.name)
            self._check_name(name, entries)
            if name in rules:
                raise InvalidConfigurationError(
                    f"Duplicate shallow-water constituent '{name}'."
                )
            terms = tuple(
                (int(c), _clean(g)) for c, g in rule.terms
            )
            if not terms:
                raise InvalidConfigurationError(
                    f"Shallow-water constituent '{name}' has no terms."
                )
            rules[name] = terms

        known = set(entries) | set(rules)
        for name, terms in rules.items():
            rules[name] = tuple(
                (c, g if g in known else CONSTITUENT_ALIASES.get(g, g))
                for c, g in terms
            )

        for name in rules:
            self._resolve_shallow(name, rules, entries, stack=())

        for const in entries.values():
            if not const.frequency > 0:
                raise InvalidConfigurationError(
                    f"Constituent '{const.name}' has non-positive frequency "
                    f"{const.frequency!r}."
                )

        self._entries = entries
        self._names = tuple(
            sorted(entries, key=lambda n: (entries[n].frequency, n))
        )
        self._index = {name: i for i, name in enumerate(self._names)}
        self._priority = self._build_priority(priority)

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _check_name(name: str, entries: dict[str, Constituent]) -> None:
        if not name or len(name) > MAX_NAME_LENGTH:
            raise InvalidConfigurationError(
                f"Constituent name '{name}' must have 1 to {MAX_NAME_LENGTH} "
                f"characters."
            )
        if name in entries:
            raise InvalidConfigurationError(
                f"Duplicate constituent name '{name}'."
            )

    def _resolve_shallow(
        self,
        name: str,
        rules: dict[str, tuple[tuple[int, str], ...]],
        entries: dict[str, Constituent],
        stack: tuple[str, ...],
    ) -> Constituent:
        """Depth-first resolution of a shallow-water rule into the basis."""
        if name in entries:
            return entries[name]
        if name in stack:
            cycle = ' -> '.join(stack[stack.index(name):] + (name,))
            raise InvalidConfigurationError(
                f"Cyclic shallow-water definition: {cycle}."
            )

        basis: dict[str, int] = {}
        for coef, generator in rules[name]:
            if generator == name:
                raise InvalidConfigurationError(
                    f"Shallow-water constituent '{name}' references itself."
                )
            if generator not in entries and generator not in rules:
                raise InvalidConfigurationError(
                    f"Shallow-water constituent '{name}' references unknown "
                    f"constituent '{generator}'."
                )
            gen = self._resolve_shallow(
                generator, rules, entries, stack + (name,)
            )
            for sub_coef, sub_name in gen.basis:
                basis[sub_name] = basis.get(sub_name, 0) + coef * sub_coef

        terms = tuple((c, n) for n, c in basis.items() if c != 0)
        doodson = np.zeros(6)
        semi = 0.0
        for coef, astro_name in terms:
            doodson += coef * np.asarray(entries[astro_name].doodson)
            semi += coef * entries[astro_name].semi
        frequency = sum(
            coef * entries[astro_name].frequency for coef, astro_name in terms
        )
        const = Constituent(
            name=name,
            doodson=tuple(int(d) for d in doodson),
            semi=float(semi),
            frequency=float(frequency),
            shallow=rules[name],
            basis=terms,
        )
        entries[name] = const
        return const

    def _build_priority(self, priority: Sequence[str] | None) -> tuple[str, ...]:
        ordered = []
        for name in priority or ():
            name = self._key(name)
            if name in self._entries and name not in ordered:
                ordered.append(name)
        ordered.extend(n for n in self._names if n not in ordered)
        return tuple(ordered)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _key(self, name: str) -> str:
        cleaned = _clean(name)
        if cleaned in self._entries:
            return cleaned
        return CONSTITUENT_ALIASES.get(cleaned, cleaned)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and (
            self._key(name) in self._entries
        )

    def __getitem__(self, name: str) -> Constituent:
        try:
            return self._entries[self._key(name)]
        except KeyError:
            raise InvalidConfigurationError(
                f"Unknown constituent '{name}'."
            ) from None

    def __iter__(self) -> Iterator[Constituent]:
        return (self._entries[n] for n in self._names)

    def __len__(self) -> int:
        return len(self._names)

    def __repr__(self) -> str:
        return f"ConstituentCatalog({len(self)} constituents)"

    @property
    def names(self) -> tuple[str, ...]:
        """Constituent names ordered by increasing frequency."""
        return self._names

    @property
    def priority(self) -> tuple[str, ...]:
        """Order used by automatic selection."""
        return self._priority

    def index(self, name: str) -> int:
        """Position of *name* in :attr:`names`."""
        return self._index[self[name].name]

    def resolve(self, names: Iterable[str]) -> list[str]:
        """Normalize *names*, raising on unknown entries."""
        return [self[n].name for n in names]

    def frequency(self, names: Iterable[str]) -> np.ndarray:
        """Frequencies (cycles per hour) of *names*."""
        return np.array([self[n].frequency for n in names], dtype=float)

    def speed(self, names: Iterable[str]) -> np.ndarray:
        """Angular speeds (degrees per hour) of *names*."""
        return self.frequency(names) * 360.0

    def shallow_terms(self, name: str) -> tuple[tuple[int, str], ...]:
        """
        ``(coefficient, astronomical constituent)`` pairs of *name*.

        Astronomical constituents return ``((1, name),)``.
        """
        return self[name].basis

    def generators(self, name: str) -> frozenset[str]:
        """Astronomical constituents a shallow-water constituent is built from."""
        const = self[name]
        if not const.is_shallow:
            return frozenset()
        return frozenset(n for _, n in const.basis)

    def with_priority(self, priority: Sequence[str]) -> 'ConstituentCatalog':
        """Copy of the catalog with a different selection priority."""
        return self.subset(self._names, priority=priority)

    def subset(
        self,
        names: Iterable[str],
        priority: Sequence[str] | None = None,
    ) -> 'ConstituentCatalog':
        """
        Smaller catalog holding *names* and the generators they need.

        Parameters
        ----------
        names : iterable of str
            Constituents to keep.
        priority : sequence of str, optional
            Selection priority of the new catalog; defaults to the order
            inherited from this catalog.

        Returns
        -------
        ConstituentCatalog
        """
        wanted = set(self.resolve(names))
        for name in list(wanted):
            const = self[name]
            wanted.update(n for _, n in const.basis)
            wanted.update(n for _, n in const.shallow)

        astronomical = [
            c for c in self if c.name in wanted and not c.is_shallow
        ]
        shallow = [
            ShallowWaterRule(c.name, c.shallow)
            for c in self if c.name in wanted and c.is_shallow
        ]
        if priority is None:
            priority = [n for n in self._priority if n in wanted]
        return ConstituentCatalog(astronomical, shallow, priority=priority)


def build_catalog(
    astronomical: Sequence[tuple] = tuple(_ASTRONOMICAL_TABLE),
    shallow: Sequence[tuple] = tuple(_SHALLOW_TABLE),
    priority: Sequence[str] | None = DEFAULT_PRIORITY,
) -> ConstituentCatalog:
    """
    Build a catalog from compact tuples.

    Parameters
    ----------
    astronomical : sequence of tuple
        ``(name, doodson, semi, satellites)`` with satellites given as
        ``(dp, dN', dp', phase, ratio, latitude_factor)`` tuples.
    shallow : sequence of tuple
        ``(name, ((coefficient, generator), ...))``.
    priority : sequence of str, optional
        Automatic selection order.

    Returns
    -------
    ConstituentCatalog
    """
    constituents = [
        Constituent(
            name=name,
            doodson=tuple(doodson),
            semi=semi,
            frequency=float('nan'),
            satellites=tuple(
                Satellite((dp, dn, dps), phase, ratio, latfac)
                for dp, dn, dps, phase, ratio, latfac in sats
            ),
        )
        for name, doodson, semi, sats in astronomical
    ]
    rules = [ShallowWaterRule(name, tuple(terms)) for name, terms in shallow]
    return ConstituentCatalog(constituents, rules, priority=priority)


@lru_cache(maxsize=1)
def default_catalog() -> ConstituentCatalog:
    """
    Process-wide built-in catalog, constructed once on first use.

    Returns
    -------
    ConstituentCatalog
        The shared read-only catalog.
    """
    catalog = build_catalog()
    logger.debug('Built default constituent catalog: %d entries.', len(catalog))
    return catalog
