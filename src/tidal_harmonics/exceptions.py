"""
Error taxonomy for harmonic analysis and prediction.

All errors derive from :class:`ValueError` so that callers written against
plain ``ValueError`` validation keep working.  Every error is raised at the
point of detection and aborts the whole ``analyze``/``predict`` call.
"""
from __future__ import annotations


class HarmonicAnalysisError(ValueError):
    """Base class for all errors raised by this package."""


class InvalidConfigurationError(HarmonicAnalysisError):
    """Contradictory or out-of-range options, or an inconsistent catalog."""


class InsufficientDataError(HarmonicAnalysisError):
    """Too few valid samples, or too short a record, for the requested fit."""


class RankDeficientError(InsufficientDataError):
    """Selected constituents cannot be resolved with the actual sampling."""


class EmptySeriesError(InsufficientDataError):
    """The series holds no usable (finite) samples."""
