"""
Loaders building a :class:`~tidal_harmonics.constituents.ConstituentCatalog`
from external constituent tables.

:func:`load_utide_catalog` reads the Foreman (1977) table shipped with UTide
(146 constituents, 162 satellites including the latitude-dependent ones,
shallow-water combinations); :func:`catalog_from_records` builds a catalog
from plain records such as those decoded from JSON.
"""
from __future__ import annotations

import logging
from typing import Iterable, Mapping

import numpy as np

from .constituents import (
    DEFAULT_PRIORITY,
    Constituent,
    ConstituentCatalog,
    Satellite,
    ShallowWaterRule,
)
from .exceptions import InvalidConfigurationError

logger = logging.getLogger(__name__)


def _satellite(raw) -> Satellite:
    if isinstance(raw, Satellite):
        return raw
    if isinstance(raw, Mapping):
        return Satellite(
            deldood=tuple(int(d) for d in raw['deldood']),
            phase=float(raw.get('phase', 0.0)),
            ratio=float(raw['ratio']),
            latitude_factor=int(raw.get('latitude_factor', 0)),
        )
    dp, dn, dps, phase, ratio, *rest = raw
    return Satellite((int(dp), int(dn), int(dps)), float(phase), float(ratio),
                     int(rest[0]) if rest else 0)


def catalog_from_records(
    records: Iterable[Mapping],
    priority=DEFAULT_PRIORITY,
    logger: logging.Logger | None = None,
) -> ConstituentCatalog:
    """
    Build a catalog from plain records.

    Parameters
    ----------
    records : iterable of mapping
        Astronomical records carry ``name``, ``doodson`` (six integers),
        optionally ``semi``, ``frequency`` and ``satellites`` (mappings
        with ``deldood``, ``phase``, ``ratio``, ``latitude_factor`` or
        6-tuples).  Shallow-water records carry ``name`` and ``shallow``:
        a list of ``(coefficient, generator)`` pairs.
    priority : sequence of str, optional
        Automatic selection order.
    logger : logging.Logger, optional

    Returns
    -------
    ConstituentCatalog

    Raises
    ------
    InvalidConfigurationError
        Malformed records or an inconsistent table.
    """
    _log = logger or logging.getLogger(__name__)
    astronomical, shallow = [], []
    for record in records:
        try:
            name = str(record['name'])
            if record.get('shallow'):
                terms = tuple((int(c), str(g)) for c, g in record['shallow'])
                shallow.append(ShallowWaterRule(name, terms))
                continue
            doodson = tuple(int(d) for d in record['doodson'])
            freq = record.get('frequency')
            astronomical.append(Constituent(
                name=name,
                doodson=doodson,
                semi=float(record.get('semi', 0.0)),
                frequency=float('nan') if freq is None else float(freq),
                satellites=tuple(
                    _satellite(s) for s in record.get('satellites', ())
                ),
            ))
        except (KeyError, TypeError, ValueError) as exc:
            if isinstance(exc, InvalidConfigurationError):
                raise
            raise InvalidConfigurationError(
                f"Malformed constituent record {record!r}: {exc}"
            ) from exc
    _log.debug(
        'Catalog records: %d astronomical, %d shallow-water.',
        len(astronomical), len(shallow),
    )
    return ConstituentCatalog(astronomical, shallow, priority=priority)


def load_utide_catalog(
    priority=DEFAULT_PRIORITY,
    logger: logging.Logger | None = None,
) -> ConstituentCatalog:
    """
    Catalog built from the constituent table distributed with UTide.

    Parameters
    ----------
    priority : sequence of str, optional
        Automatic selection order; constituents not listed follow in order
        of increasing frequency.
    logger : logging.Logger, optional

    Returns
    -------
    ConstituentCatalog
    """
    _log = logger or logging.getLogger(__name__)
    from utide._ut_constants import ut_constants

    const = ut_constants['const']
    sat = ut_constants['sat']
    shallow = ut_constants['shallow']

    names = [str(n).strip().upper() for n in const['name']]
    freqs = np.asarray(const['freq'], dtype=float)
    doodson = np.asarray(const['doodson'], dtype=float)
    semi = np.asarray(const['semi'], dtype=float)

    sat_iconst = np.asarray(sat['iconst'], dtype=int).ravel() - 1
    sat_deldood = np.asarray(sat['deldood'], dtype=float).reshape(-1, 3)
    sat_phcorr = np.asarray(sat['phcorr'], dtype=float).ravel()
    sat_amprat = np.asarray(sat['amprat'], dtype=float).ravel()
    sat_ilatfac = np.asarray(sat['ilatfac'], dtype=int).ravel()

    shallow_iconst = np.asarray(shallow['iconst'], dtype=int).ravel() - 1
    shallow_coef = np.asarray(shallow['coef'], dtype=float).ravel()
    shallow_iname = np.asarray(shallow['iname'], dtype=int).ravel() - 1
    shallow_set = set(shallow_iconst.tolist())

    satellites: dict[int, list[Satellite]] = {}
    for i, idx in enumerate(sat_iconst):
        satellites.setdefault(int(idx), []).append(Satellite(
            deldood=tuple(int(round(d)) for d in sat_deldood[i]),
            phase=float(sat_phcorr[i]),
            ratio=float(sat_amprat[i]),
            latitude_factor=int(sat_ilatfac[i]),
        ))

    terms: dict[int, list[tuple[int, str]]] = {}
    for idx, coef, gen in zip(shallow_iconst, shallow_coef, shallow_iname):
        terms.setdefault(int(idx), []).append((int(round(coef)), names[gen]))

    astronomical, rules = [], []
    for i, name in enumerate(names):
        # The mean (Z0) is implicit in every fit
        if freqs[i] == 0:
            continue
        if i in shallow_set:
            rules.append(ShallowWaterRule(name, tuple(terms[i])))
            continue
        astronomical.append(Constituent(
            name=name,
            doodson=tuple(int(round(d)) for d in doodson[i]),
            semi=float(semi[i]),
            frequency=float(freqs[i]),
            satellites=tuple(satellites.get(i, ())),
        ))

    _log.info(
        'Loaded UTide constituent table: %d astronomical, %d shallow-water, '
        '%d satellites.', len(astronomical), len(rules), sat_iconst.size,
    )
    return ConstituentCatalog(astronomical, rules, priority=priority)
