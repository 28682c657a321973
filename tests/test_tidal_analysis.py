"""
Unit tests for the tidal_harmonics package.

Tests cover:
- Catalog: constituent table, aliases, shallow-water rules, external tables
- Astronomy and nodal corrections
- Constituent selection and inference rules
- Least-squares fit, harmonic analysis and confidence intervals
- Tidal ellipses, options, reports and prediction
"""
import logging

import numpy as np
import pandas as pd
import pytest


def _synthetic_series(
    constituents,
    duration_days=30.0,
    interval_hours=1.0,
    mean_level=0.0,
    noise=0.0,
    seed=0,
):
    """
    Sum of ``A * cos(2*pi*f*(t - t_ref) - g)`` terms plus a mean.

    ``t_ref`` is the record centre, so the phases are those reported by an
    analysis without a start time.  Returns ``(series, hours)``.
    """
    from tidal_harmonics.constituents import default_catalog

    catalog = default_catalog()
    n = int(round(duration_days * 24.0 / interval_hours))
    hours = np.arange(n) * interval_hours
    t_ref = 0.5 * (n - 1) * interval_hours
    series = np.full(n, float(mean_level))
    for name, (amp, phase) in constituents.items():
        freq = catalog[name].frequency
        series += amp * np.cos(
            2.0 * np.pi * freq * (hours - t_ref) - np.radians(phase)
        )
    if noise:
        series += np.random.default_rng(seed).normal(0.0, noise, n)
    return series, hours


def _phase_diff(a, b):
    """Signed angular difference in degrees, wrapped to [-180, 180)."""
    return (np.asarray(a) - np.asarray(b) + 180.0) % 360.0 - 180.0


# -----------------------------------------------------------------------
# Constituent catalog tests
# -----------------------------------------------------------------------

class TestConstituents:
    """Tests for constituents.py definitions."""

    def test_nos_37_count(self):
        """NOS_37_CONSTITUENTS must contain exactly 37 entries."""
        from tidal_harmonics.constituents import NOS_37_CONSTITUENTS
        assert len(NOS_37_CONSTITUENTS) == 37

    def test_nos_37_unique(self):
        """All 37 constituent names must be unique."""
        from tidal_harmonics.constituents import NOS_37_CONSTITUENTS
        assert len(set(NOS_37_CONSTITUENTS)) == 37

    def test_catalog_covers_nos_37(self):
        """The built-in catalog must hold every NOS constituent."""
        from tidal_harmonics.constituents import (
            NOS_37_CONSTITUENTS,
            default_catalog,
        )
        catalog = default_catalog()
        missing = [c for c in NOS_37_CONSTITUENTS if c not in catalog]
        assert missing == [], f"Missing constituents: {missing}"

    def test_m2_frequency(self):
        """M2 frequency derived from the Doodson number is 0.0805114007 cph."""
        from tidal_harmonics.constituents import default_catalog
        catalog = default_catalog()
        assert abs(catalog['M2'].frequency - 0.0805114007) < 1e-9
        assert abs(catalog['M2'].speed - 28.9841042) < 1e-6

    def test_k1_and_s2_speeds(self):
        """K1 and S2 speeds match the classical values."""
        from tidal_harmonics.constituents import default_catalog
        catalog = default_catalog()
        assert abs(catalog['K1'].speed - 15.0410686) < 1e-6
        assert abs(catalog['S2'].speed - 30.0) < 1e-9

    def test_semidiurnal_speeds_range(self):
        """Semidiurnal constituents should have speeds near 28-31 deg/hr."""
        from tidal_harmonics.constituents import default_catalog
        catalog = default_catalog()
        semidiurnal = ['M2', 'S2', 'N2', 'K2', '2N2', 'MU2', 'NU2',
                       'L2', 'T2', 'R2', 'LDA2']
        for name in semidiurnal:
            speed = catalog[name].speed
            assert 27.0 < speed < 32.0, (
                f"{name} speed {speed} out of semidiurnal range"
            )

    def test_names_unique_and_frequencies_positive(self):
        """Catalog names are unique and ordered by positive frequency."""
        from tidal_harmonics.constituents import default_catalog
        catalog = default_catalog()
        names = catalog.names
        assert len(set(names)) == len(names) == len(catalog)
        freqs = catalog.frequency(names)
        assert np.all(freqs > 0)
        assert np.all(np.diff(freqs) >= 0)

    def test_aliases(self):
        """Alternate spellings resolve to catalog names."""
        from tidal_harmonics.constituents import (
            default_catalog,
            normalize_constituent_name,
        )
        catalog = default_catalog()
        assert normalize_constituent_name(' lam2 ') == 'LDA2'
        assert catalog['LAM2'].name == 'LDA2'
        assert catalog['rho'].name == 'RHO1'
        assert 'm2' in catalog
        assert 'XX9' not in catalog

    def test_unknown_name_raises(self):
        """Unknown constituent names raise InvalidConfigurationError."""
        from tidal_harmonics.constituents import default_catalog
        from tidal_harmonics.exceptions import InvalidConfigurationError

        with pytest.raises(InvalidConfigurationError, match='Unknown constituent'):
            default_catalog()['XX9']

    def test_shallow_water_resolution(self):
        """Shallow-water constituents resolve to their astronomical basis."""
        from tidal_harmonics.constituents import default_catalog
        catalog = default_catalog()

        assert catalog.shallow_terms('M4') == ((2, 'M2'),)
        assert catalog.generators('MS4') == frozenset({'M2', 'S2'})
        assert catalog.generators('M2') == frozenset()
        assert catalog['M4'].is_shallow
        assert abs(catalog['M4'].frequency - 2 * catalog['M2'].frequency) < 1e-12
        assert abs(
            catalog['2MK3'].frequency
            - (2 * catalog['M2'].frequency - catalog['K1'].frequency)
        ) < 1e-12

    def test_cyclic_shallow_rule_raises(self):
        """Mutually referencing shallow-water rules are rejected."""
        from tidal_harmonics.constituents import build_catalog
        from tidal_harmonics.exceptions import InvalidConfigurationError

        astronomical = [('M2', (2, 0, 0, 0, 0, 0), 0.0, ())]
        shallow = [('AA', ((1, 'BB'),)), ('BB', ((1, 'AA'),))]
        with pytest.raises(InvalidConfigurationError, match='Cyclic'):
            build_catalog(astronomical, shallow, priority=None)

    def test_self_referencing_shallow_rule_raises(self):
        """A shallow-water rule referencing itself is rejected."""
        from tidal_harmonics.constituents import build_catalog
        from tidal_harmonics.exceptions import InvalidConfigurationError

        astronomical = [('M2', (2, 0, 0, 0, 0, 0), 0.0, ())]
        with pytest.raises(InvalidConfigurationError, match='references itself'):
            build_catalog(astronomical, [('AA', ((2, 'AA'),))], priority=None)

    def test_unknown_generator_raises(self):
        """A shallow-water rule referencing an unknown name is rejected."""
        from tidal_harmonics.constituents import build_catalog
        from tidal_harmonics.exceptions import InvalidConfigurationError

        astronomical = [('M2', (2, 0, 0, 0, 0, 0), 0.0, ())]
        with pytest.raises(InvalidConfigurationError, match='unknown'):
            build_catalog(astronomical, [('AA', ((1, 'ZZ9'),))], priority=None)

    def test_invalid_names_raise(self):
        """Over-long and duplicated names are rejected."""
        from tidal_harmonics.constituents import build_catalog
        from tidal_harmonics.exceptions import InvalidConfigurationError

        with pytest.raises(InvalidConfigurationError, match='characters'):
            build_catalog([('ABCDE', (2, 0, 0, 0, 0, 0), 0.0, ())], [])
        with pytest.raises(InvalidConfigurationError, match='Duplicate'):
            build_catalog([
                ('M2', (2, 0, 0, 0, 0, 0), 0.0, ()),
                ('m2', (2, 0, 0, 0, 0, 0), 0.0, ()),
            ], [])

    def test_subset_keeps_generators(self):
        """subset() pulls in the generators of shallow-water constituents."""
        from tidal_harmonics.constituents import default_catalog
        small = default_catalog().subset(['M4', 'K1'])
        assert set(small.names) == {'K1', 'M2', 'M4'}
        assert small.generators('M4') == frozenset({'M2'})

    def test_priority_order(self):
        """Priority starts with the configured table and covers the catalog."""
        from tidal_harmonics.constituents import default_catalog
        catalog = default_catalog()
        assert catalog.priority[:3] == ('M2', 'K1', 'S2')
        assert set(catalog.priority) == set(catalog.names)

        reordered = catalog.with_priority(['S2', 'M2'])
        assert reordered.priority[:2] == ('S2', 'M2')
        assert len(reordered) == len(catalog)


# -----------------------------------------------------------------------
# Catalog source tests
# -----------------------------------------------------------------------

class TestCatalogSources:
    """Tests for catalog_sources.py."""

    def test_catalog_from_records(self):
        """Plain records build a catalog with derived frequencies."""
        from tidal_harmonics.catalog_sources import catalog_from_records

        catalog = catalog_from_records([
            {'name': 'M2', 'doodson': [2, 0, 0, 0, 0, 0],
             'satellites': [(0, -1, 0, 0.5, 0.0373, 0)]},
            {'name': 'M4', 'shallow': [(2, 'M2')]},
        ])
        assert len(catalog) == 2
        assert abs(catalog['M2'].frequency - 0.0805114007) < 1e-9
        assert catalog['M2'].satellites[0].ratio == pytest.approx(0.0373)
        assert catalog['M4'].frequency == pytest.approx(
            2 * catalog['M2'].frequency
        )

    def test_malformed_record_raises(self):
        """A record without a Doodson number or shallow terms is rejected."""
        from tidal_harmonics.catalog_sources import catalog_from_records
        from tidal_harmonics.exceptions import InvalidConfigurationError

        with pytest.raises(InvalidConfigurationError, match='Malformed'):
            catalog_from_records([{'name': 'M2'}])

    def test_utide_catalog(self):
        """The UTide constituent table loads as a full catalog."""
        pytest.importorskip('utide')
        from tidal_harmonics.astronomy import to_days
        from tidal_harmonics.catalog_sources import load_utide_catalog
        from tidal_harmonics.nodal import nodal_corrections

        catalog = load_utide_catalog()
        assert len(catalog) > 100
        assert abs(catalog['M2'].frequency - 0.0805114007) < 1e-8
        assert catalog['M2'].satellites
        assert catalog['M4'].is_shallow
        assert catalog.generators('M4') == frozenset({'M2'})

        factors = nodal_corrections(
            catalog, ['M2', 'K1'], to_days('2020-07-01'), latitude=45.0,
        )
        assert np.all((factors.f > 0.8) & (factors.f < 1.2))


# -----------------------------------------------------------------------
# Astronomical argument tests
# -----------------------------------------------------------------------

class TestAstronomy:
    """Tests for astronomy.py."""

    def test_epoch_is_zero(self):
        """The day count starts at 1899-12-31 12:00 UT."""
        from tidal_harmonics.astronomy import to_days
        assert to_days(pd.Timestamp('1899-12-31 12:00')) == 0.0
        assert to_days('1900-01-01 12:00') == 1.0

    def test_numbers_pass_through(self):
        """Numeric input is already a day count."""
        from tidal_harmonics.astronomy import to_days
        assert to_days(43000.25) == 43000.25
        np.testing.assert_array_equal(
            to_days(np.array([1.0, 2.0])), [1.0, 2.0]
        )

    def test_timezone_converted_to_utc(self):
        """Timezone-aware times are converted to UTC."""
        from tidal_harmonics.astronomy import to_days
        local = pd.Timestamp('2020-01-01 05:00', tz='America/New_York')
        assert to_days(local) == pytest.approx(
            to_days(pd.Timestamp('2020-01-01 10:00')), abs=1e-9
        )

    def test_index_conversion_and_inverse(self):
        """DatetimeIndex values convert to a regular day count and back."""
        from tidal_harmonics.astronomy import from_days, to_days
        times = pd.date_range('2024-01-01', periods=4, freq='D')
        days = to_days(times)
        np.testing.assert_allclose(np.diff(days), 1.0)
        back = from_days(days)
        assert abs(back - times).max() < pd.Timedelta('1ms')

    def test_angles_and_rates(self):
        """Angles are reduced to [0, 1) and rates match the linear terms."""
        from tidal_harmonics.astronomy import (
            ARGUMENT_RATES,
            astronomical_arguments,
        )
        state = astronomical_arguments(np.linspace(0.0, 50000.0, 11))
        assert state.angles.shape == (6, 11)
        assert np.all((state.angles >= 0) & (state.angles < 1))

        at_epoch = astronomical_arguments(0.0)
        np.testing.assert_allclose(at_epoch.rates, ARGUMENT_RATES)
        # Mean lunar day: 0.9661368 cycles per day
        assert abs(ARGUMENT_RATES[0] - 0.9661368) < 1e-7


# -----------------------------------------------------------------------
# Nodal correction tests
# -----------------------------------------------------------------------

class TestNodal:
    """Tests for nodal.py."""

    def test_no_satellites_gives_unit_factors(self):
        """T2 has no satellites: f = 1 and u = 0 exactly."""
        from tidal_harmonics.astronomy import to_days
        from tidal_harmonics.constituents import default_catalog
        from tidal_harmonics.nodal import nodal_corrections

        factors = nodal_corrections(
            default_catalog(), ['T2', 'M2'], to_days('2020-01-01'),
        )
        assert factors.f[0] == 1.0
        assert factors.u[0] == 0.0
        assert 0.95 < factors.f[1] < 1.05
        assert np.all((factors.v0 >= 0) & (factors.v0 < 360))

    def test_mode_none(self):
        """Mode 'none' gives f = 1 and u = 0 for every constituent."""
        from tidal_harmonics.astronomy import to_days
        from tidal_harmonics.constituents import default_catalog
        from tidal_harmonics.nodal import nodal_corrections

        factors = nodal_corrections(
            default_catalog(), ['M2', 'K1', 'O1'], to_days('2020-01-01'),
            mode='none',
        )
        np.testing.assert_array_equal(factors.f, 1.0)
        np.testing.assert_array_equal(factors.u, 0.0)

    def test_relative_phases_drop_v0(self):
        """Without Greenwich phases V0 is zero."""
        from tidal_harmonics.astronomy import to_days
        from tidal_harmonics.constituents import default_catalog
        from tidal_harmonics.nodal import nodal_corrections

        factors = nodal_corrections(
            default_catalog(), ['M2', 'K1'], to_days('2020-01-01'),
            greenwich=False,
        )
        np.testing.assert_array_equal(factors.v0, 0.0)

    def test_shallow_water_factors(self):
        """M4 takes f = f_M2**2 and u = 2*u_M2."""
        from tidal_harmonics.astronomy import to_days
        from tidal_harmonics.constituents import default_catalog
        from tidal_harmonics.nodal import nodal_corrections

        factors = nodal_corrections(
            default_catalog(), ['M2', 'M4'], to_days('2015-06-01'),
        )
        assert factors.f[1] == pytest.approx(factors.f[0] ** 2)
        assert factors.u[1] == pytest.approx(2 * factors.u[0])

    def test_latitude_dependent_satellites(self, caplog):
        """Latitude-dependent satellites are skipped without a latitude."""
        from tidal_harmonics.astronomy import to_days
        from tidal_harmonics.constituents import build_catalog
        from tidal_harmonics.nodal import nodal_corrections

        catalog = build_catalog(
            [('K1', (1, 1, 0, 0, 0, 0), -0.25, ((0, 1, 0, 0.0, 0.1, 1),))],
            [],
            priority=None,
        )
        t = to_days('2020-01-01')

        with caplog.at_level(logging.WARNING):
            without = nodal_corrections(catalog, ['K1'], t, latitude=None)
        assert without.f[0] == 1.0
        assert 'latitude-dependent' in caplog.text

        with_lat = nodal_corrections(catalog, ['K1'], t, latitude=45.0)
        assert with_lat.f[0] != 1.0

    def test_builtin_catalog_depends_on_latitude(self):
        """Built-in K1, O1, P1, S2 and K2 corrections change with latitude."""
        from tidal_harmonics.astronomy import to_days
        from tidal_harmonics.constituents import default_catalog
        from tidal_harmonics.nodal import nodal_corrections

        catalog = default_catalog()
        names = ['K1', 'O1', 'P1', 'S2', 'K2', 'M2']
        t = to_days('2009-11-01')
        without = nodal_corrections(catalog, names, t, latitude=None)
        north = nodal_corrections(catalog, names, t, latitude=45.0)
        tropics = nodal_corrections(catalog, names, t, latitude=10.0)

        changed = np.abs(north.f - without.f) + np.abs(north.u - without.u)
        assert np.all(changed[:5] > 1e-6), changed
        # M2 has no latitude-dependent satellites
        assert changed[5] == 0.0
        assert np.abs(north.f[:5] - tropics.f[:5]).max() > 1e-6
        assert np.all((north.f > 0.7) & (north.f < 1.3))

    def test_resolve_nodal_mode(self):
        """'auto' switches to 'full' at one nodal cycle."""
        from tidal_harmonics.exceptions import InvalidConfigurationError
        from tidal_harmonics.nodal import NODAL_PERIOD_HOURS, resolve_nodal_mode

        assert resolve_nodal_mode('auto', 24 * 30) == 'nodal'
        assert resolve_nodal_mode('auto', NODAL_PERIOD_HOURS) == 'full'
        assert resolve_nodal_mode('nodal', 24 * 30, has_astronomy=False) == 'none'
        with pytest.raises(InvalidConfigurationError, match='nodal mode'):
            resolve_nodal_mode('daily', 24 * 30)

    def test_full_mode_matches_nodal_at_reference(self):
        """Per-sample and reference-time corrections agree at the reference."""
        from tidal_harmonics.astronomy import to_days
        from tidal_harmonics.constituents import default_catalog
        from tidal_harmonics.nodal import constituent_phasors

        catalog = default_catalog()
        ref = to_days('2010-03-15 06:00')
        names = ['M2', 'K1', 'O1', 'M4']
        full = constituent_phasors(catalog, names, [ref], ref, mode='full')
        nodal = constituent_phasors(catalog, names, [ref], ref, mode='nodal')
        assert full.shape == (1, 4)
        np.testing.assert_allclose(full, nodal, atol=1e-10)

    def test_phasor_magnitude_is_f(self):
        """Phasor magnitude equals the amplitude factor."""
        from tidal_harmonics.astronomy import to_days
        from tidal_harmonics.constituents import default_catalog
        from tidal_harmonics.nodal import constituent_phasors, nodal_corrections

        catalog = default_catalog()
        ref = to_days('2021-01-01')
        days = ref + np.arange(48) / 24.0
        phasors = constituent_phasors(catalog, ['M2', 'O1'], days, ref)
        factors = nodal_corrections(catalog, ['M2', 'O1'], ref)
        np.testing.assert_allclose(
            np.abs(phasors), np.broadcast_to(factors.f, (48, 2))
        )


# -----------------------------------------------------------------------
# Constituent selection tests
# -----------------------------------------------------------------------

class TestSelection:
    """Tests for selection.py."""

    def test_rayleigh_rejection(self):
        """Close pairs are rejected in favour of the higher-priority line."""
        from tidal_harmonics.constituents import default_catalog
        from tidal_harmonics.selection import select_constituents

        selection = select_constituents(
            default_catalog(), record_hours=15 * 24.0, interval_hours=1.0,
        )
        assert 'M2' in selection.names
        assert 'K1' in selection.names
        assert selection.rejected['P1'] == 'K1'
        assert selection.rejected['K2'] == 'S2'
        assert np.all(np.diff(selection.frequency) >= 0)

    def test_mean_blocks_low_frequencies(self):
        """Lines within one resolution of zero frequency lose to the mean."""
        from tidal_harmonics.constituents import default_catalog
        from tidal_harmonics.selection import MEAN_NAME, select_constituents

        selection = select_constituents(
            default_catalog(), record_hours=15 * 24.0, interval_hours=1.0,
        )
        assert selection.rejected['SA'] == MEAN_NAME
        assert selection.rejected['SSA'] == MEAN_NAME
        assert selection.rejected['MM'] == MEAN_NAME
        assert MEAN_NAME not in selection.names
        assert np.all(selection.frequency >= 1.0 / (15 * 24.0))

    def test_nyquist_limit(self):
        """Automatic selection skips constituents above the Nyquist frequency."""
        from tidal_harmonics.constituents import default_catalog
        from tidal_harmonics.selection import select_constituents

        selection = select_constituents(
            default_catalog(), record_hours=365 * 24.0, interval_hours=3.0,
            rayleigh=0.0,
        )
        # Nyquist at 3-hour sampling is 1/6 cph: M4 lies below, M6 above
        assert 'M6' not in selection.names
        assert 'M8' not in selection.names
        assert 'M4' in selection.names

    def test_explicit_list_is_forced(self, caplog):
        """Explicit constituents bypass the Rayleigh criterion."""
        from tidal_harmonics.constituents import default_catalog
        from tidal_harmonics.selection import select_constituents

        with caplog.at_level(logging.WARNING):
            selection = select_constituents(
                default_catalog(), record_hours=15 * 24.0, interval_hours=3.0,
                constituents=['K1', 'p1', 'M6'],
            )
        assert selection.names == ('P1', 'K1', 'M6')
        assert selection.rejected == {}
        assert 'Nyquist' in caplog.text

    def test_shallow_names_added(self):
        """Requested shallow-water constituents are included unconditionally."""
        from tidal_harmonics.constituents import default_catalog
        from tidal_harmonics.selection import select_constituents

        selection = select_constituents(
            default_catalog(), record_hours=3 * 24.0, interval_hours=0.1,
            shallow=['MS4'],
        )
        assert 'MS4' in selection.forced
        assert 'MS4' in selection.names

    def test_inference_forces_reference(self):
        """Inference removes the inferred name and forces its reference."""
        from tidal_harmonics.constituents import default_catalog
        from tidal_harmonics.selection import InferenceRule, select_constituents

        selection = select_constituents(
            default_catalog(), record_hours=15 * 24.0, interval_hours=1.0,
            constituents=['M2', 'P1'],
            inference=[InferenceRule('P1', 'K1', 0.331, -7.07)],
        )
        assert 'P1' not in selection.names
        assert 'K1' in selection.names
        assert selection.inferred_names == ('P1',)

    def test_invalid_inference_rules(self):
        """Invalid inference rules raise InvalidConfigurationError."""
        from tidal_harmonics.constituents import default_catalog
        from tidal_harmonics.exceptions import InvalidConfigurationError
        from tidal_harmonics.selection import validate_inference

        catalog = default_catalog()
        with pytest.raises(InvalidConfigurationError, match='from itself'):
            validate_inference(catalog, [('K1', 'K1', 0.5)])
        with pytest.raises(InvalidConfigurationError, match='Unknown constituent'):
            validate_inference(catalog, [('XX9', 'K1', 0.5)])
        with pytest.raises(InvalidConfigurationError, match='must be positive'):
            validate_inference(catalog, [('P1', 'K1', 0.0)])
        with pytest.raises(InvalidConfigurationError, match='more than once'):
            validate_inference(catalog, [('P1', 'K1', 0.3), ('P1', 'O1', 0.3)])
        with pytest.raises(InvalidConfigurationError, match='themselves inferred'):
            validate_inference(catalog, [('P1', 'K1', 0.3), ('K1', 'O1', 1.4)])

    def test_inference_rule_coercion(self):
        """Rules can be given as tuples or mappings."""
        from tidal_harmonics.selection import InferenceRule

        rule = InferenceRule.coerce(('P1', 'K1', 0.331, -7.07))
        assert rule == InferenceRule.coerce({
            'inferred': 'P1', 'reference': 'K1',
            'amplitude_ratio': 0.331, 'phase_offset': -7.07,
        })
        assert rule.ratio_minus == 0.331
        assert abs(rule.factor_plus) == pytest.approx(0.331)


# -----------------------------------------------------------------------
# Harmonic analysis tests
# -----------------------------------------------------------------------

class TestHarmonicAnalysis:
    """Tests for harmonic_analysis.py and least_squares.py."""

    def test_synthetic_recovery_zero_noise(self):
        """A clean M2+K1+S2 signal is recovered to near machine precision."""
        from tidal_harmonics.harmonic_analysis import analyze

        truth = {'M2': (0.5, 45.0), 'K1': (0.2, 120.0), 'S2': (0.15, 300.0)}
        series, _ = _synthetic_series(truth, interval_hours=0.1, mean_level=1.5)

        report, _, _ = analyze(
            series, 0.1, constituents=list(truth), conf_int='linear',
        )

        for name, (amp, phase) in truth.items():
            i = report.index(name)
            assert abs(report.A[i] - amp) < 1e-8, name
            assert abs(_phase_diff(report.phase[i], phase)) < 1e-6, name
        assert abs(report.mean - 1.5) < 1e-8

    def test_one_year_m2_scenario(self):
        """One year of hourly 2*cos(M2) + 5 gives mean 5 and amplitude 2."""
        from tidal_harmonics.constituents import default_catalog
        from tidal_harmonics.harmonic_analysis import analyze

        f_m2 = default_catalog()['M2'].frequency
        hours = np.arange(365 * 24, dtype=float)
        series = 2.0 * np.cos(2.0 * np.pi * f_m2 * hours) + 5.0

        report, _, diagnostics = analyze(
            series, 1.0, secular='mean', conf_int='linear',
        )

        assert abs(report.mean - 5.0) < 1e-6
        assert abs(report.A[report.index('M2')] - 2.0) < 1e-6
        assert len(diagnostics.selected) > 20
        assert diagnostics.record_class == 'long_record_lsq'

    def test_zero_noise_intervals(self):
        """Zero noise gives zero-width intervals under every estimator."""
        from tidal_harmonics.harmonic_analysis import analyze

        truth = {'M2': (1.0, 30.0), 'O1': (0.3, 200.0)}
        series, _ = _synthetic_series(truth, duration_days=20.0)

        for method in ('linear', 'wboot', 'cboot'):
            report, _, _ = analyze(
                series, 1.0, constituents=list(truth), conf_int=method,
                n_trials=50, seed=1,
            )
            assert np.max(report.A_ci) < 1e-8, method
            assert np.max(report.phase_ci) < 1e-6, method
            assert np.all(report.snr > 1e3), method

    def test_reconstruction_and_missing_samples(self):
        """Reconstruction matches the input and keeps its NaN holes."""
        from tidal_harmonics.harmonic_analysis import analyze

        truth = {'M2': (0.8, 10.0), 'K1': (0.4, 250.0)}
        series, _ = _synthetic_series(truth, mean_level=0.3)
        series[100:160] = np.nan

        report, reconstructed, diagnostics = analyze(
            series, 1.0, constituents=list(truth), conf_int='linear',
        )

        assert diagnostics.n_valid == series.size - 60
        assert np.all(np.isnan(reconstructed[100:160]))
        valid = np.isfinite(series)
        np.testing.assert_allclose(reconstructed[valid], series[valid], atol=1e-8)
        assert not report.valid[120]

    def test_secular_trend(self):
        """Linear secular mode recovers the mean at the record centre and the trend."""
        from tidal_harmonics.harmonic_analysis import analyze

        series, hours = _synthetic_series({'M2': (1.0, 0.0)}, mean_level=2.0)
        t_ref = 0.5 * (hours.size - 1)
        series = series + 0.002 * (hours - t_ref)

        report, reconstructed, _ = analyze(
            series, 1.0, constituents=['M2'], secular='linear',
            conf_int='linear',
        )

        assert report.trend == pytest.approx(0.002, rel=1e-8)
        assert report.mean == pytest.approx(2.0, abs=1e-8)
        np.testing.assert_allclose(reconstructed, series, atol=1e-8)

    def test_solvers_agree(self):
        """Direct (QR) and normal-equation (Cholesky) solvers agree."""
        from tidal_harmonics.harmonic_analysis import analyze

        truth = {'M2': (0.5, 45.0), 'K1': (0.2, 120.0), 'O1': (0.1, 80.0)}
        series, _ = _synthetic_series(
            truth, interval_hours=0.5, noise=0.05, seed=3,
        )
        names = ['M2', 'S2', 'K1', 'O1', 'N2']

        direct, _, diag_direct = analyze(
            series, 0.5, constituents=names, conf_int='linear', solver='direct',
        )
        normal, _, diag_normal = analyze(
            series, 0.5, constituents=names, conf_int='linear', solver='normal',
        )

        assert diag_direct.solver == 'direct'
        assert diag_normal.solver == 'normal'
        np.testing.assert_allclose(direct.ap, normal.ap, atol=1e-8)
        np.testing.assert_allclose(direct.A_ci, normal.A_ci, rtol=1e-6)

    def test_auto_solver_uses_direct_for_small_designs(self):
        """The automatic solver picks QR for small designs."""
        from tidal_harmonics.harmonic_analysis import analyze

        series, _ = _synthetic_series({'M2': (1.0, 0.0)})
        _, _, diagnostics = analyze(
            series, 1.0, constituents=['M2'], conf_int='linear',
        )
        assert diagnostics.solver == 'direct'

    def test_inference_recovers_unresolved_constituent(self):
        """P1 inferred from K1 follows the configured ratio and offset."""
        from tidal_harmonics.harmonic_analysis import analyze
        from tidal_harmonics.selection import InferenceRule

        ratio, offset = 0.331, -7.07
        truth = {
            'M2': (1.0, 100.0),
            'K1': (0.3, 40.0),
            'P1': (0.3 * ratio, 40.0 + offset),
        }
        series, _ = _synthetic_series(truth)

        report, _, diagnostics = analyze(
            series, 1.0, constituents=['M2', 'K1'], conf_int='linear',
            inference=[InferenceRule('P1', 'K1', ratio, offset)],
        )

        assert report.names == ('P1', 'K1', 'M2')
        assert report.inferred == ('P1',)
        assert diagnostics.inferred == ('P1',)
        assert 'P1' not in diagnostics.selected
        p1, k1 = report.index('P1'), report.index('K1')
        assert report.A[k1] == pytest.approx(0.3, abs=1e-8)
        assert report.A[p1] == pytest.approx(0.3 * ratio, abs=1e-8)
        assert abs(_phase_diff(report.phase[p1], report.phase[k1]) - offset) < 1e-6

    def test_scalar_inference_ignores_minus_parameters(self):
        """Minus-frequency ratio and offset have no effect on a scalar series."""
        from tidal_harmonics.harmonic_analysis import analyze
        from tidal_harmonics.selection import InferenceRule

        ratio, offset = 1.0 / 3.0, -10.0
        truth = {
            'M2': (1.0, 20.0),
            'K1': (0.3, 75.0),
            'P1': (0.3 * ratio, 75.0 + offset),
        }
        series, _ = _synthetic_series(truth)

        report, _, _ = analyze(
            series, 1.0, constituents=['M2', 'K1'], conf_int='linear',
            inference=[InferenceRule('P1', 'K1', ratio, offset, 0.9, 50.0)],
        )

        p1, k1 = report.index('P1'), report.index('K1')
        np.testing.assert_allclose(
            report.am[p1], np.conj(report.ap[p1]), atol=1e-12
        )
        assert report.A[k1] == pytest.approx(0.3, abs=1e-8)
        assert report.A[p1] == pytest.approx(0.1, abs=1e-8)
        assert abs(_phase_diff(report.phase[p1], report.phase[k1]) - offset) < 1e-6

    def test_unresolved_pair_dropped_without_inference(self):
        """Without inference, automatic selection silently drops P1."""
        from tidal_harmonics.harmonic_analysis import analyze

        series, _ = _synthetic_series(
            {'M2': (1.0, 0.0), 'K1': (0.3, 0.0)}, noise=0.01,
        )
        report, _, diagnostics = analyze(series, 1.0, conf_int='linear')
        assert 'P1' not in report.names
        assert diagnostics.rejected['P1'] == 'K1'

    def test_identical_frequencies_raise(self):
        """Forcing two constituents of identical frequency is rank deficient."""
        from tidal_harmonics.exceptions import RankDeficientError
        from tidal_harmonics.harmonic_analysis import analyze

        series, _ = _synthetic_series({'M2': (1.0, 0.0)})
        with pytest.raises(RankDeficientError, match='rank deficient'):
            analyze(
                series, 1.0, constituents=['M2', 'MO3', '2MK3'],
                conf_int='linear',
            )

    def test_prefilter_correction(self, caplog):
        """Coefficients are divided by the prefilter gain up to a factor of 100."""
        from tidal_harmonics.harmonic_analysis import analyze

        series, _ = _synthetic_series({'M2': (1.0, 0.0)})

        halved, _, _ = analyze(
            series, 1.0, constituents=['M2'], conf_int='linear',
            prefilter=[(0.0, 0.5), (1.0, 0.5)],
        )
        assert halved.A[0] == pytest.approx(2.0, abs=1e-8)

        with caplog.at_level(logging.WARNING):
            removed, _, _ = analyze(
                series, 1.0, constituents=['M2'], conf_int='linear',
                prefilter=[(0.0, 0.001), (1.0, 0.001)],
            )
        assert removed.A[0] == pytest.approx(1.0, abs=1e-8)
        assert 'Prefilter correction' in caplog.text

    def test_vector_ellipse_recovery(self):
        """A complex M2 current recovers all four ellipse parameters."""
        from tidal_harmonics.constituents import default_catalog
        from tidal_harmonics.ellipse import ellipse_to_rotary
        from tidal_harmonics.harmonic_analysis import analyze

        n = 15 * 48
        hours = np.arange(n) * 0.5
        t_ref = 0.5 * (n - 1) * 0.5
        phi = 2 * np.pi * default_catalog()['M2'].frequency * (hours - t_ref)
        ap, am = ellipse_to_rotary(0.8, 0.2, 30.0, 60.0)
        current = ap * np.exp(1j * phi) + am * np.exp(-1j * phi) + (0.1 - 0.05j)

        report, reconstructed, diagnostics = analyze(
            current, 0.5, constituents=['M2'], conf_int='linear',
        )

        assert report.vector
        assert report.Lsmaj[0] == pytest.approx(0.8, abs=1e-8)
        assert report.Lsmin[0] == pytest.approx(0.2, abs=1e-8)
        assert report.theta[0] == pytest.approx(30.0, abs=1e-6)
        assert report.g[0] == pytest.approx(60.0, abs=1e-6)
        assert report.mean == pytest.approx(0.1 - 0.05j, abs=1e-8)
        np.testing.assert_allclose(reconstructed, current, atol=1e-8)
        assert abs(diagnostics.principal_direction - 30.0) < 1.0
        ccw, cw = diagnostics.rotary_residual_energy
        assert ccw < 1e-12 and cw < 1e-12

    def test_vector_bootstrap_intervals(self):
        """Bootstrap intervals of a noisy current are finite and positive."""
        from tidal_harmonics.ellipse import ellipse_to_rotary
        from tidal_harmonics.harmonic_analysis import analyze

        rng = np.random.default_rng(5)
        _, hours = _synthetic_series({'M2': (1.0, 0.0)}, duration_days=20.0)
        ap, am = ellipse_to_rotary(0.5, -0.1, 120.0, 20.0)
        phase = np.exp(1j * 2 * np.pi * 0.0805114007 * hours)
        current = ap * phase + am * np.conj(phase)
        current = current + rng.normal(0, 0.05, hours.size) \
            + 1j * rng.normal(0, 0.05, hours.size)

        report, _, _ = analyze(
            current, 1.0, constituents=['M2', 'K1'], conf_int='cboot',
            n_trials=60, seed=2,
        )
        for values in (report.Lsmaj_ci, report.Lsmin_ci,
                       report.theta_ci, report.g_ci):
            assert np.all(np.isfinite(values))
            assert np.all(values > 0)
        assert report.to_frame().columns[:4].tolist() == [
            'Name', 'Frequency', 'Lsmaj', 'Lsmaj_CI',
        ]

    def test_series_with_datetime_index(self):
        """A pandas Series with a DatetimeIndex supplies the start time."""
        from tidal_harmonics.harmonic_analysis import analyze

        series, _ = _synthetic_series(
            {'M2': (0.5, 45.0), 'K1': (0.2, 120.0)}, interval_hours=0.1,
        )
        index = pd.date_range('2024-01-01', periods=series.size, freq='6min')

        report, _, diagnostics = analyze(
            pd.Series(series, index=index), 0.1, latitude=37.0,
            constituents=['M2', 'K1'], conf_int='linear',
        )

        assert report.start == pd.Timestamp('2024-01-01')
        assert report.nodal_mode == 'nodal'
        assert report.greenwich
        assert diagnostics.reference_time == (
            pd.Timestamp('2024-01-01') + pd.Timedelta(hours=report.reference_hours)
        )

    def test_method_classification(self):
        """Record class reflects record length."""
        from tidal_harmonics.harmonic_analysis import analyze

        series, _ = _synthetic_series({'M2': (1.0, 0.0)}, duration_days=30.0)
        _, _, diagnostics = analyze(
            series, 1.0, constituents=['M2'], conf_int='linear',
        )
        assert diagnostics.record_class == 'standard'

    def test_short_record_raises(self):
        """A record shorter than one cycle of K1 raises InsufficientDataError."""
        from tidal_harmonics.exceptions import InsufficientDataError
        from tidal_harmonics.harmonic_analysis import analyze

        series = np.cos(np.arange(10.0))
        with pytest.raises(InsufficientDataError, match='shorter than one cycle'):
            analyze(series, 1.0, constituents=['M2', 'K1'], conf_int='linear')

    def test_automatic_selection_on_sub_diurnal_record(self):
        """A 20-hour record keeps M2 and drops lines it cannot hold a cycle of."""
        from tidal_harmonics.exceptions import InsufficientDataError
        from tidal_harmonics.harmonic_analysis import analyze

        series, _ = _synthetic_series(
            {'M2': (1.0, 0.0), 'K1': (0.3, 0.0)}, duration_days=20.0 / 24.0,
        )
        assert series.size == 20

        report, _, diagnostics = analyze(series, 1.0, conf_int='linear')
        assert 'M2' in report.names
        assert 'K1' not in report.names
        assert diagnostics.rejected['K1'] == 'Z0'
        assert diagnostics.rejected['SA'] == 'Z0'
        assert np.all(report.frequency * 20.0 >= 1.0)

        # A looser criterion admits diurnal lines longer than the record
        with pytest.raises(InsufficientDataError, match='shorter than one cycle'):
            analyze(series, 1.0, conf_int='linear', rayleigh=0.5)

    def test_too_few_samples_raises(self):
        """Fewer valid samples than unknowns raises InsufficientDataError."""
        from tidal_harmonics.exceptions import InsufficientDataError
        from tidal_harmonics.harmonic_analysis import analyze

        series = np.full(100, np.nan)
        series[[3, 50]] = 1.0
        with pytest.raises(InsufficientDataError, match='too few'):
            analyze(series, 1.0, constituents=['M2'], conf_int='linear')

    def test_empty_data_raises(self):
        """All-NaN values raise EmptySeriesError (a ValueError)."""
        from tidal_harmonics.exceptions import EmptySeriesError
        from tidal_harmonics.harmonic_analysis import analyze

        values = np.full(1000, np.nan)
        with pytest.raises(EmptySeriesError, match='no finite data'):
            analyze(values, 0.1)
        with pytest.raises(ValueError, match='empty'):
            analyze(np.array([]), 0.1)

    def test_invalid_arguments_raise(self):
        """Bad intervals, unknown names and unknown options are rejected."""
        from tidal_harmonics.exceptions import InvalidConfigurationError
        from tidal_harmonics.harmonic_analysis import analyze

        series, _ = _synthetic_series({'M2': (1.0, 0.0)})
        with pytest.raises(InvalidConfigurationError, match='interval_hours'):
            analyze(series, -1.0)
        with pytest.raises(InvalidConfigurationError, match='Unknown constituent'):
            analyze(series, 1.0, constituents=['XX9'])
        with pytest.raises(InvalidConfigurationError, match='Unknown option'):
            analyze(series, 1.0, bogus=1)

    def test_logging(self, caplog):
        """Stage summaries are logged at INFO level."""
        from tidal_harmonics.harmonic_analysis import analyze

        series, _ = _synthetic_series({'M2': (1.0, 0.0)})
        with caplog.at_level(logging.INFO):
            analyze(series, 1.0, constituents=['M2'], conf_int='linear')
        assert 'Running harmonic analysis' in caplog.text
        assert 'Selected 1 constituents' in caplog.text


# -----------------------------------------------------------------------
# Confidence interval tests
# -----------------------------------------------------------------------

class TestConfidenceIntervals:
    """Tests for confidence.py and spectrum.py."""

    @staticmethod
    def _noisy_series(seed=0, duration_days=60.0, noise=0.1):
        return _synthetic_series(
            {'M2': (1.0, 30.0), 'K1': (0.4, 150.0)},
            duration_days=duration_days, noise=noise, seed=seed,
        )[0]

    def test_idempotence(self):
        """Identical inputs and seed give bit-identical reports."""
        from tidal_harmonics.harmonic_analysis import analyze

        series = self._noisy_series()
        first, _, _ = analyze(
            series, 1.0, constituents=['M2', 'K1'], n_trials=40, seed=3,
        )
        second, _, _ = analyze(
            series, 1.0, constituents=['M2', 'K1'], n_trials=40, seed=3,
        )
        np.testing.assert_array_equal(first.ap, second.ap)
        np.testing.assert_array_equal(first.Lsmaj_ci, second.Lsmaj_ci)
        np.testing.assert_array_equal(first.g_ci, second.g_ci)

    def test_worker_count_does_not_change_results(self):
        """Bootstrap intervals depend on the seed only, not on n_jobs."""
        from tidal_harmonics.harmonic_analysis import analyze

        series = self._noisy_series()
        kwargs = dict(constituents=['M2', 'K1'], n_trials=100, seed=11)
        serial, _, _ = analyze(series, 1.0, n_jobs=1, **kwargs)
        threaded, _, _ = analyze(series, 1.0, n_jobs=3, **kwargs)
        np.testing.assert_allclose(serial.A_ci, threaded.A_ci, rtol=1e-12)
        np.testing.assert_allclose(serial.g_ci, threaded.g_ci, rtol=1e-12)

    def test_linear_and_wboot_agree(self):
        """Linear and white-bootstrap intervals agree for white noise."""
        from tidal_harmonics.harmonic_analysis import analyze

        series = self._noisy_series(seed=4)
        linear, _, _ = analyze(
            series, 1.0, constituents=['M2', 'K1'], conf_int='linear',
            white=True,
        )
        wboot, _, _ = analyze(
            series, 1.0, constituents=['M2', 'K1'], conf_int='wboot',
            n_trials=300, seed=4,
        )
        ratio = wboot.A_ci / linear.A_ci
        assert np.all((ratio > 0.7) & (ratio < 1.4)), ratio

    def test_colored_estimators_agree(self):
        """Spectral linear intervals and cboot agree for white noise."""
        from tidal_harmonics.harmonic_analysis import analyze

        series = self._noisy_series(seed=6)
        linear, _, _ = analyze(
            series, 1.0, constituents=['M2', 'K1'], conf_int='linear',
        )
        cboot, _, _ = analyze(
            series, 1.0, constituents=['M2', 'K1'], conf_int='cboot',
            n_trials=300, seed=6,
        )
        white, _, _ = analyze(
            series, 1.0, constituents=['M2', 'K1'], conf_int='linear',
            white=True,
        )
        for other in (cboot, white):
            ratio = other.A_ci / linear.A_ci
            assert np.all((ratio > 0.6) & (ratio < 1.6)), ratio

    def test_block_resampling(self):
        """Moving-block resampling produces finite positive intervals."""
        from tidal_harmonics.harmonic_analysis import analyze

        series = self._noisy_series(seed=8, duration_days=30.0)
        report, _, _ = analyze(
            series, 1.0, constituents=['M2', 'K1'], conf_int='cboot',
            resampling='block', block_hours=12.0, n_trials=80, seed=8,
        )
        assert np.all(np.isfinite(report.A_ci))
        assert np.all(report.A_ci > 0)

    def test_linear_coverage(self):
        """About 95% of linear intervals cover the true amplitude."""
        from tidal_harmonics.harmonic_analysis import analyze

        covered = 0
        for seed in range(20):
            series, _ = _synthetic_series(
                {'M2': (1.0, 0.0)}, duration_days=15.0, noise=0.2, seed=seed,
            )
            report, _, _ = analyze(
                series, 1.0, constituents=['M2', 'K1'], conf_int='linear',
                white=True,
            )
            i = report.index('M2')
            covered += abs(report.A[i] - 1.0) <= report.A_ci[i]
        assert covered >= 15

    def test_wboot_coverage(self):
        """About 95% of white-bootstrap intervals cover the true amplitude."""
        from tidal_harmonics.harmonic_analysis import analyze

        covered = 0
        for seed in range(20):
            series, _ = _synthetic_series(
                {'M2': (1.0, 0.0)}, duration_days=15.0, noise=0.2, seed=seed,
            )
            report, _, _ = analyze(
                series, 1.0, constituents=['M2', 'K1'], conf_int='wboot',
                n_trials=200, seed=100 + seed,
            )
            i = report.index('M2')
            covered += abs(report.A[i] - 1.0) <= report.A_ci[i]
        assert covered >= 15

    def test_cboot_vector_matches_linear(self):
        """Spectral cboot intervals of a noisy current match linear ones."""
        from tidal_harmonics.ellipse import ellipse_to_rotary
        from tidal_harmonics.harmonic_analysis import analyze

        rng = np.random.default_rng(9)
        _, hours = _synthetic_series({'M2': (1.0, 0.0)}, duration_days=60.0)
        ap, am = ellipse_to_rotary(0.6, 0.2, 45.0, 10.0)
        phase = np.exp(1j * 2 * np.pi * 0.0805114007 * hours)
        current = ap * phase + am * np.conj(phase)
        current = current + rng.normal(0, 0.1, hours.size) \
            + 1j * rng.normal(0, 0.1, hours.size)

        linear, _, _ = analyze(
            current, 1.0, constituents=['M2', 'K1'], conf_int='linear',
        )
        cboot, _, _ = analyze(
            current, 1.0, constituents=['M2', 'K1'], conf_int='cboot',
            n_trials=300, seed=9,
        )
        for name in ('Lsmaj_ci', 'Lsmin_ci'):
            ratio = getattr(cboot, name) / getattr(linear, name)
            assert np.all((ratio > 0.6) & (ratio < 1.6)), (name, ratio)

    def test_smoothed_power_fills_fitted_notches(self):
        """Band averaging replaces a zeroed bin with the band level."""
        from scipy.fft import rfftfreq

        from tidal_harmonics.spectrum import smoothed_power

        n = 24 * 60
        freq = rfftfreq(n, d=1.0)
        power = np.ones(freq.size)
        notch = int(np.argmin(np.abs(freq - 0.0805)))
        power[notch] = 0.0
        smooth = smoothed_power(power, freq)
        assert smooth.shape == power.shape
        assert smooth[notch] > 0.9
        # Outside the species bands a running mean is used
        gap = int(np.argmin(np.abs(freq - 0.06)))
        assert smooth[gap] == pytest.approx(1.0)

    def test_custom_psd_estimator(self):
        """An injected PSD estimator drives the linear intervals."""
        from tidal_harmonics.harmonic_analysis import analyze

        series = self._noisy_series(seed=2, duration_days=30.0)

        def flat(residual, dt_hours):
            freq = np.linspace(0.0, 0.5 / dt_hours, 100)
            return freq, np.full(freq.size, 2.0 * 0.1 ** 2 * dt_hours)

        custom, _, _ = analyze(
            series, 1.0, constituents=['M2', 'K1'], conf_int='linear',
            psd_estimator=flat,
        )
        white, _, _ = analyze(
            series, 1.0, constituents=['M2', 'K1'], conf_int='linear',
            white=True,
        )
        ratio = custom.A_ci / white.A_ci
        assert np.all((ratio > 0.8) & (ratio < 1.25)), ratio

    def test_periodogram_white_noise_level(self):
        """The built-in periodogram is unbiased for white noise with gaps."""
        from tidal_harmonics.spectrum import band_noise_variance

        rng = np.random.default_rng(0)
        residual = rng.normal(0.0, 0.3, 24 * 200)
        residual[500:700] = np.nan
        variance = band_noise_variance(residual, 1.0, [0.0805, 0.0418])
        np.testing.assert_allclose(variance, 0.09, rtol=0.3)

    def test_rotary_energy(self):
        """Counter-clockwise and clockwise energy separate by rotation sense."""
        from tidal_harmonics.spectrum import rotary_energy

        t = np.arange(1000)
        ccw, cw = rotary_energy(np.exp(2j * np.pi * 0.1 * t))
        assert ccw == pytest.approx(1.0)
        assert cw == pytest.approx(0.0, abs=1e-12)

    def test_unknown_method_raises(self):
        """Unknown estimator names are rejected."""
        from tidal_harmonics.confidence import ESTIMATORS, estimate_intervals
        from tidal_harmonics.exceptions import InvalidConfigurationError

        assert set(ESTIMATORS) == {'linear', 'wboot', 'cboot'}
        with pytest.raises(InvalidConfigurationError, match='confidence-interval'):
            estimate_intervals(None, None, None, 1.0, method='jackknife')


# -----------------------------------------------------------------------
# Ellipse tests
# -----------------------------------------------------------------------

class TestEllipse:
    """Tests for ellipse.py."""

    def test_counter_clockwise_circle(self):
        """A pure positive-frequency coefficient is a ccw circle."""
        from tidal_harmonics.ellipse import rotary_to_ellipse

        e = rotary_to_ellipse([1.0 + 0j], [0j])
        assert e['Lsmaj'][0] == pytest.approx(1.0)
        assert e['Lsmin'][0] == pytest.approx(1.0)

    def test_clockwise_circle(self):
        """A pure negative-frequency coefficient has a negative minor axis."""
        from tidal_harmonics.ellipse import rotary_to_ellipse

        e = rotary_to_ellipse([0j], [0.5 + 0j])
        assert e['Lsmaj'][0] == pytest.approx(0.5)
        assert e['Lsmin'][0] == pytest.approx(-0.5)

    def test_rectilinear_east_west(self):
        """Equal real coefficients give a line along east."""
        from tidal_harmonics.ellipse import rotary_to_ellipse

        e = rotary_to_ellipse([0.5 + 0j], [0.5 + 0j])
        assert e['Lsmaj'][0] == pytest.approx(1.0)
        assert e['Lsmin'][0] == pytest.approx(0.0)
        assert e['theta'][0] == pytest.approx(0.0)
        assert e['g'][0] == pytest.approx(0.0)

    def test_rectilinear_north_south(self):
        """Equal imaginary coefficients give a line along north."""
        from tidal_harmonics.ellipse import rotary_to_ellipse

        e = rotary_to_ellipse([0.5j], [0.5j])
        assert e['theta'][0] == pytest.approx(90.0)
        assert e['g'][0] == pytest.approx(0.0)

    def test_ranges_and_inverse(self):
        """Angles stay in range and ellipse_to_rotary inverts the conversion."""
        from tidal_harmonics.ellipse import ellipse_to_rotary, rotary_to_ellipse

        rng = np.random.default_rng(1)
        ap = rng.normal(size=50) + 1j * rng.normal(size=50)
        am = rng.normal(size=50) + 1j * rng.normal(size=50)
        e = rotary_to_ellipse(ap, am)
        assert np.all((e['theta'] >= 0) & (e['theta'] < 180))
        assert np.all((e['g'] >= 0) & (e['g'] < 360))
        ap2, am2 = ellipse_to_rotary(e['Lsmaj'], e['Lsmin'], e['theta'], e['g'])
        np.testing.assert_allclose(ap2, ap, atol=1e-12)
        np.testing.assert_allclose(am2, am, atol=1e-12)

    def test_scalar_amplitude_phase(self):
        """Scalar coefficients convert to amplitude and phase."""
        from tidal_harmonics.ellipse import rotary_to_ellipse, scalar_to_rotary

        ap, am = scalar_to_rotary([2.0], [210.0])
        e = rotary_to_ellipse(ap, am)
        assert e['Lsmaj'][0] == pytest.approx(2.0)
        assert e['Lsmin'][0] == pytest.approx(0.0, abs=1e-12)
        assert e['g'][0] == pytest.approx(210.0)

    def test_jacobian_matches_finite_differences(self):
        """The analytic Jacobian matches central differences."""
        from tidal_harmonics.ellipse import ellipse_jacobian, rotary_to_ellipse

        c = np.array([0.3, -0.2, 0.1, 0.25])

        def params(x):
            e = rotary_to_ellipse(x[0] + 1j * x[1], x[2] + 1j * x[3])
            return np.array([e[k] for k in ('Lsmaj', 'Lsmin', 'theta', 'g')])

        step = 1e-7
        numeric = np.empty((4, 4))
        for j in range(4):
            dx = np.zeros(4)
            dx[j] = step
            numeric[:, j] = (params(c + dx) - params(c - dx)) / (2 * step)
        np.testing.assert_allclose(ellipse_jacobian(c)[0], numeric, atol=1e-5)

    def test_principal_direction(self):
        """Synthetic flow along a 30 deg axis recovers ~30 deg."""
        from tidal_harmonics.ellipse import compute_principal_direction

        rng = np.random.default_rng(42)
        n = 1000
        along = rng.normal(0, 1.0, n)
        cross = rng.normal(0, 0.1, n)
        angle = np.radians(30.0)
        u = along * np.cos(angle) - cross * np.sin(angle)
        v = along * np.sin(angle) + cross * np.cos(angle)

        direction = compute_principal_direction(u + 1j * v)
        assert abs(direction - 30.0) < 5.0, (
            f"Principal direction {direction:.1f} deg not near 30 deg"
        )
        assert np.isnan(compute_principal_direction(np.array([1 + 1j])))


# -----------------------------------------------------------------------
# Options tests
# -----------------------------------------------------------------------

class TestOptions:
    """Tests for options.py."""

    def test_defaults(self):
        """Default options use cboot, mean secular and automatic choices."""
        from tidal_harmonics.options import AnalysisOptions

        options = AnalysisOptions()
        assert options.conf_int == 'cboot'
        assert options.secular == 'mean'
        assert options.solver == 'auto'
        assert options.nodal == 'auto'
        assert options.rayleigh == 1.0

    def test_validation(self):
        """Out-of-range values raise InvalidConfigurationError."""
        from tidal_harmonics.exceptions import InvalidConfigurationError
        from tidal_harmonics.options import AnalysisOptions, PredictionOptions

        with pytest.raises(InvalidConfigurationError, match='confidence-interval'):
            AnalysisOptions(conf_int='jackknife')
        with pytest.raises(InvalidConfigurationError, match='latitude'):
            AnalysisOptions(latitude=95.0)
        with pytest.raises(InvalidConfigurationError, match='n_trials'):
            AnalysisOptions(n_trials=0)
        with pytest.raises(InvalidConfigurationError, match='rayleigh'):
            AnalysisOptions(rayleigh=-1.0)
        with pytest.raises(InvalidConfigurationError, match='Prefilter gain'):
            AnalysisOptions(prefilter=[(0.08, 0.0)])
        with pytest.raises(InvalidConfigurationError, match='nodal mode'):
            PredictionOptions(mode='auto')

    def test_normalization(self):
        """Strings, rules and timezone-aware starts are normalized."""
        from tidal_harmonics.options import AnalysisOptions
        from tidal_harmonics.selection import InferenceRule

        options = AnalysisOptions(
            start=pd.Timestamp('2024-01-01 02:00', tz='Etc/GMT-2'),
            constituents='M2, K1',
            inference=[('P1', 'K1', 0.331, -7.07)],
        )
        assert options.start == pd.Timestamp('2024-01-01 00:00')
        assert options.constituents == ('M2', 'K1')
        assert options.inference == (InferenceRule('P1', 'K1', 0.331, -7.07),)

    def test_replace(self):
        """replace() validates again and rejects unknown fields."""
        from tidal_harmonics.exceptions import InvalidConfigurationError
        from tidal_harmonics.options import AnalysisOptions

        options = AnalysisOptions().replace(conf_int='linear', seed=4)
        assert options.conf_int == 'linear'
        assert options.seed == 4
        with pytest.raises(InvalidConfigurationError, match='Unknown option'):
            options.replace(colour='blue')

    def test_from_config(self, tmp_path):
        """Options are read from an INI section."""
        from tidal_harmonics.options import AnalysisOptions
        from tidal_harmonics.selection import InferenceRule

        path = tmp_path / 'analysis.ini'
        path.write_text(
            '[analysis]\n'
            'start = 2024-01-01 00:00\n'
            'latitude = 41.5\n'
            'constituents = M2, K1\n'
            'inference = P1 K1 0.331 -7.07\n'
            'prefilter = 0.0 1.0; 1.0 0.9 0.1\n'
            'conf_int = linear\n'
            'seed = 42\n'
            'greenwich = false\n'
        )

        options = AnalysisOptions.from_config(path, n_jobs=2)

        assert options.start == pd.Timestamp('2024-01-01')
        assert options.latitude == 41.5
        assert options.constituents == ('M2', 'K1')
        assert options.inference == (InferenceRule('P1', 'K1', 0.331, -7.07),)
        assert options.prefilter == ((0.0, 1 + 0j), (1.0, 0.9 + 0.1j))
        assert options.conf_int == 'linear'
        assert options.seed == 42
        assert options.greenwich is False
        assert options.n_jobs == 2

    def test_from_config_errors(self, tmp_path):
        """Missing files, sections and unknown keys are reported."""
        from tidal_harmonics.exceptions import InvalidConfigurationError
        from tidal_harmonics.options import AnalysisOptions

        with pytest.raises(InvalidConfigurationError, match='Cannot read'):
            AnalysisOptions.from_config(tmp_path / 'missing.ini')

        path = tmp_path / 'bad.ini'
        path.write_text('[analysis]\nfoo = 1\n')
        with pytest.raises(InvalidConfigurationError, match="Unknown option 'foo'"):
            AnalysisOptions.from_config(path)
        with pytest.raises(InvalidConfigurationError, match='not found'):
            AnalysisOptions.from_config(path, section='other')

        path.write_text('[analysis]\nn_trials = many\n')
        with pytest.raises(InvalidConfigurationError, match='Invalid value'):
            AnalysisOptions.from_config(path)


# -----------------------------------------------------------------------
# Report tests
# -----------------------------------------------------------------------

class TestReport:
    """Tests for report.py."""

    def test_compute_snr(self):
        """SNR is inf for zero-width intervals and 0 for zero amplitude."""
        from tidal_harmonics.report import compute_snr

        snr = compute_snr([1.0, 0.0, 2.0], [0.5, 0.0, 0.0])
        np.testing.assert_array_equal(snr, [2.0, 0.0, np.inf])

    def test_percent_energy(self):
        """Percent energy sums to 100."""
        from tidal_harmonics.report import percent_energy

        pe = percent_energy([3.0, 4.0])
        np.testing.assert_allclose(pe, [36.0, 64.0])
        np.testing.assert_array_equal(percent_energy([0.0, 0.0]), [0.0, 0.0])

    def test_classify_record(self):
        """Record classes follow record length in days."""
        from tidal_harmonics.report import classify_record

        assert classify_record(10) == 'short_record'
        assert classify_record(30) == 'standard'
        assert classify_record(365) == 'long_record_lsq'

    def test_scalar_table(self):
        """The scalar table has amplitude and phase columns ranked by PE."""
        from tidal_harmonics.harmonic_analysis import analyze

        series, _ = _synthetic_series(
            {'M2': (1.0, 10.0), 'K1': (0.5, 20.0)}, noise=0.01,
        )
        report, _, diagnostics = analyze(
            series, 1.0, constituents=['M2', 'K1'], conf_int='linear',
        )
        df = report.to_frame()
        assert df.columns.tolist() == [
            'Name', 'Frequency', 'Amplitude', 'Amplitude_CI',
            'Phase', 'Phase_CI', 'SNR', 'PE',
        ]
        assert df['Name'].tolist() == ['K1', 'M2']
        assert diagnostics.pe_table['Name'].iloc[0] == 'M2'
        constants = report.to_constants()
        assert constants['amplitudes']['M2'] == pytest.approx(1.0, abs=0.01)


# -----------------------------------------------------------------------
# Tidal prediction tests
# -----------------------------------------------------------------------

class TestTidalPrediction:
    """Tests for tidal_prediction.py."""

    @staticmethod
    def _make_synthetic_and_analyze(duration_days=30, **kwargs):
        """Analyze a 6-min synthetic signal and return (times, original, report)."""
        from tidal_harmonics.harmonic_analysis import analyze

        original, _ = _synthetic_series(
            {'M2': (0.5, 45.0), 'K1': (0.2, 120.0)},
            duration_days=duration_days, interval_hours=0.1, mean_level=1.0,
        )
        times = pd.date_range('2024-01-01', periods=original.size, freq='6min')
        report, _, _ = analyze(
            pd.Series(original, index=times), 0.1, latitude=37.0,
            constituents=['M2', 'K1'], conf_int='linear', **kwargs,
        )
        return times, original, report

    def test_round_trip_relative_time(self):
        """Predicting at the analysed hours reproduces a clean series."""
        from tidal_harmonics.harmonic_analysis import analyze
        from tidal_harmonics.tidal_prediction import predict

        original, hours = _synthetic_series(
            {'M2': (0.5, 45.0), 'S2': (0.2, 80.0), 'K1': (0.3, 10.0)},
            mean_level=0.7,
        )
        report, _, _ = analyze(
            original, 1.0, constituents=['M2', 'S2', 'K1'], conf_int='linear',
        )
        predicted = predict(hours, report)
        np.testing.assert_allclose(predicted, original, atol=1e-8)

    def test_round_trip_datetimes(self):
        """Prediction at the analysed datetimes reproduces the series."""
        from tidal_harmonics.tidal_prediction import predict

        times, original, report = self._make_synthetic_and_analyze()
        predicted = predict(times, report)

        rmse = np.sqrt(np.mean((predicted - original) ** 2))
        assert rmse < 1e-8, f"RMSE {rmse:.2e} exceeds 1e-8"

    def test_round_trip_full_nodal_mode(self):
        """Per-sample nodal corrections are replayed by the prediction."""
        from tidal_harmonics.harmonic_analysis import analyze
        from tidal_harmonics.tidal_prediction import predict

        times, original, report = self._make_synthetic_and_analyze(
            nodal='full',
        )
        assert report.nodal_mode == 'full'

        _, reconstructed, _ = analyze(
            pd.Series(original, index=times), 0.1, latitude=37.0,
            constituents=['M2', 'K1'], conf_int='linear', nodal='full',
        )
        predicted = predict(times, report)
        np.testing.assert_allclose(predicted, reconstructed, atol=1e-8)

        rmse = np.sqrt(np.mean((predicted - original) ** 2))
        assert rmse < 5e-3, f"RMSE {rmse:.2e} exceeds 5e-3"

    def test_unordered_targets(self):
        """Targets may be given in any order."""
        from tidal_harmonics.tidal_prediction import predict

        times, original, report = self._make_synthetic_and_analyze(duration_days=20)
        order = np.random.default_rng(0).permutation(times.size)
        predicted = predict(times[order], report)
        np.testing.assert_allclose(predicted, original[order], atol=1e-8)

    def test_predict_matches_constants(self):
        """predict and predict_from_constants agree for a Greenwich report."""
        from tidal_harmonics.tidal_prediction import (
            predict,
            predict_from_constants,
        )

        times, _, report = self._make_synthetic_and_analyze()
        constants = report.to_constants()
        target = pd.date_range('2024-03-01', periods=480, freq='30min')

        from_report = predict(target, report)
        from_constants = predict_from_constants(
            time=target,
            amplitudes=constants['amplitudes'],
            phases=constants['phases'],
            mean_level=report.mean,
            latitude=37.0,
        )
        np.testing.assert_allclose(from_constants, from_report, atol=1e-10)

    def test_threshold_excludes_constituents(self):
        """A threshold above every SNR leaves only the secular terms."""
        from tidal_harmonics.harmonic_analysis import analyze
        from tidal_harmonics.tidal_prediction import predict

        series, hours = _synthetic_series(
            {'M2': (0.5, 0.0)}, mean_level=2.0, noise=0.05,
        )
        report, _, _ = analyze(
            series, 1.0, constituents=['M2', 'K1'], conf_int='linear',
        )
        predicted = predict(hours, report, synthesis_threshold=1e9)
        np.testing.assert_allclose(predicted, report.mean)

    def test_negative_threshold_keeps_holes(self):
        """A negative threshold puts NaN at samples missing from the record."""
        from tidal_harmonics.harmonic_analysis import analyze
        from tidal_harmonics.tidal_prediction import predict

        series, hours = _synthetic_series({'M2': (0.5, 0.0)})
        series[200:240] = np.nan
        report, _, _ = analyze(
            series, 1.0, constituents=['M2'], conf_int='linear',
        )

        holes = predict(hours, report, synthesis_threshold=-1.0)
        assert np.all(np.isnan(holes[200:240]))
        assert np.all(np.isfinite(np.delete(holes, np.s_[200:240])))
        assert np.all(np.isfinite(predict(hours, report)))

    def test_datetime_targets_need_start(self):
        """Datetime targets require a report with a start time."""
        from tidal_harmonics.exceptions import InvalidConfigurationError
        from tidal_harmonics.harmonic_analysis import analyze
        from tidal_harmonics.tidal_prediction import predict

        series, _ = _synthetic_series({'M2': (0.5, 0.0)})
        report, _, _ = analyze(
            series, 1.0, constituents=['M2'], conf_int='linear',
        )
        with pytest.raises(InvalidConfigurationError, match='start time'):
            predict(pd.date_range('2024-01-01', periods=5, freq='h'), report)

    def test_predict_from_constants_m2(self):
        """predict_from_constants with M2 only produces a tidal signal."""
        from tidal_harmonics.tidal_prediction import predict_from_constants

        times = pd.date_range('2024-01-01', periods=240, freq='6min')  # 1 day

        predicted = predict_from_constants(
            time=times,
            amplitudes={'M2': 0.5},
            phases={'M2': 45.0},
            mean_level=1.0,
            latitude=37.0,
        )

        assert len(predicted) == 240
        assert np.isfinite(predicted).all()
        # Signal should oscillate around mean_level=1.0
        assert abs(np.mean(predicted) - 1.0) < 0.1
        # Amplitude should be roughly 0.5
        assert (np.max(predicted) - np.min(predicted)) / 2.0 > 0.3

    def test_predict_from_constants_empty_raises(self):
        """Empty amplitude/phase dicts raise ValueError."""
        from tidal_harmonics.tidal_prediction import predict_from_constants

        times = pd.date_range('2024-01-01', periods=10, freq='6min')

        with pytest.raises(ValueError, match='No common constituents'):
            predict_from_constants(
                time=times,
                amplitudes={},
                phases={},
                mean_level=0.0,
                latitude=37.0,
            )


# -----------------------------------------------------------------------
# Import tests
# -----------------------------------------------------------------------

class TestImports:
    """Verify the public API imports work correctly."""

    def test_import_analyze(self):
        from tidal_harmonics import analyze, harmonic_analysis
        assert callable(analyze)
        assert harmonic_analysis is analyze

    def test_import_predict(self):
        from tidal_harmonics import predict, predict_from_constants
        assert callable(predict)
        assert callable(predict_from_constants)

    def test_error_taxonomy(self):
        from tidal_harmonics import (
            EmptySeriesError,
            HarmonicAnalysisError,
            InsufficientDataError,
            InvalidConfigurationError,
            RankDeficientError,
        )
        assert issubclass(HarmonicAnalysisError, ValueError)
        assert issubclass(InvalidConfigurationError, HarmonicAnalysisError)
        assert issubclass(RankDeficientError, InsufficientDataError)
        assert issubclass(EmptySeriesError, InsufficientDataError)
