"""
Error and warning taxonomy for PharmaTwin.

Fatal conditions are exceptions and abort a request. Everything else is a
warning: it is logged, emitted through ``warnings.warn`` and surfaced to the
caller via quality/confidence flags on the result.
"""


class PharmaTwinError(Exception):
    """Base class for all PharmaTwin errors."""


class VcfParseError(PharmaTwinError, ValueError):
    pass


class FormatError(VcfParseError):
    """The document lacks the ``##fileformat=VCF`` marker before the first data row."""


class EmptyResultError(VcfParseError):
    """The VCF header is valid but no parseable variant rows follow it."""


class GuidelineDataError(PharmaTwinError):
    """The guideline dataset is missing or does not match its schema."""


class PharmaTwinWarning(UserWarning):
    """Base class for non-fatal conditions."""


class UnknownDrugWarning(PharmaTwinWarning):
    """Drug is not in the rule table; an Indeterminate assessment is produced."""


class AmbiguousGenotypeWarning(PharmaTwinWarning):
    """Genotype could not be mapped to a functional impact."""


class SingularModelWarning(PharmaTwinWarning):
    """ka and ke are numerically equal; the closed-form PK solution is singular."""
