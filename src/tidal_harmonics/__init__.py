"""
Tidal Harmonics Package

Provides functionality for:
- Tidal constituent catalog (Doodson numbers, satellites, shallow-water rules)
- Astronomical arguments and nodal corrections
- Rayleigh-criterion constituent selection and inference
- Least-squares harmonic analysis of scalar and vector (current) series
- Confidence intervals (linearized, white and colored bootstrap)
- Tidal ellipse parameters
- Tidal prediction from harmonic constants
"""

from tidal_harmonics.astronomy import (
    AstronomicalState,
    astronomical_arguments,
    from_days,
    to_days,
)
from tidal_harmonics.catalog_sources import (
    catalog_from_records,
    load_utide_catalog,
)
from tidal_harmonics.confidence import (
    ESTIMATORS,
    ConfidenceIntervals,
    estimate_intervals,
)
from tidal_harmonics.constituents import (
    CONSTITUENT_ALIASES,
    DEFAULT_PRIORITY,
    NOS_37_CONSTITUENTS,
    Constituent,
    ConstituentCatalog,
    Satellite,
    ShallowWaterRule,
    build_catalog,
    default_catalog,
    normalize_constituent_name,
)
from tidal_harmonics.ellipse import (
    compute_principal_direction,
    ellipse_to_rotary,
    rotary_to_ellipse,
)
from tidal_harmonics.exceptions import (
    EmptySeriesError,
    HarmonicAnalysisError,
    InsufficientDataError,
    InvalidConfigurationError,
    RankDeficientError,
)
from tidal_harmonics.harmonic_analysis import analyze, harmonic_analysis
from tidal_harmonics.least_squares import FitResult, fit_harmonics
from tidal_harmonics.nodal import (
    NodalFactors,
    constituent_phasors,
    nodal_corrections,
)
from tidal_harmonics.options import AnalysisOptions, PredictionOptions
from tidal_harmonics.report import AnalysisDiagnostics, TidalConstituentReport
from tidal_harmonics.selection import (
    ConstituentSelection,
    InferenceRule,
    select_constituents,
)
from tidal_harmonics.spectrum import periodogram_psd
from tidal_harmonics.tidal_prediction import predict, predict_from_constants

__all__ = [
    # Constituent definitions
    'NOS_37_CONSTITUENTS',
    'CONSTITUENT_ALIASES',
    'DEFAULT_PRIORITY',
    'Constituent',
    'ConstituentCatalog',
    'Satellite',
    'ShallowWaterRule',
    'build_catalog',
    'default_catalog',
    'normalize_constituent_name',
    'catalog_from_records',
    'load_utide_catalog',
    # Astronomy and nodal corrections
    'AstronomicalState',
    'astronomical_arguments',
    'to_days',
    'from_days',
    'NodalFactors',
    'nodal_corrections',
    'constituent_phasors',
    # Selection
    'ConstituentSelection',
    'InferenceRule',
    'select_constituents',
    # Harmonic analysis
    'AnalysisOptions',
    'analyze',
    'harmonic_analysis',
    'fit_harmonics',
    'FitResult',
    'TidalConstituentReport',
    'AnalysisDiagnostics',
    # Confidence intervals
    'ESTIMATORS',
    'ConfidenceIntervals',
    'estimate_intervals',
    'periodogram_psd',
    # Ellipses
    'rotary_to_ellipse',
    'ellipse_to_rotary',
    'compute_principal_direction',
    # Tidal prediction
    'PredictionOptions',
    'predict',
    'predict_from_constants',
    # Errors
    'HarmonicAnalysisError',
    'InvalidConfigurationError',
    'InsufficientDataError',
    'RankDeficientError',
    'EmptySeriesError',
]
