"""
Genomic Confidence Index (GCI) and confidence banding.

GCI is computed once per patient profile as the share of curated genes that
returned at least one informative variant. The per-assessment confidence
fraction is GCI/100 with coarse banding applied:

  - raw >= 1.0                    -> ceiling (0.95)
  - band_lower < raw < band_upper -> band_value (0.90)
  - otherwise                     -> raw
"""

from __future__ import annotations

from typing import Iterable, Optional, Union

from pharmatwin.core.config import ConfidenceBandConfig, get_confidence_bands

from .models import GeneActivityRecord, RiskCategory, Severity

SEVERITY_BY_RISK = {
    RiskCategory.TOXIC: Severity.CRITICAL,
    RiskCategory.ADJUST_DOSAGE: Severity.MODERATE,
    RiskCategory.SAFE: Severity.NONE,
    RiskCategory.INDETERMINATE: Severity.LOW,
}

PRESENTATION_UNKNOWN = "Unknown"


def compute_gci(records: Iterable[GeneActivityRecord], curated_gene_count: int) -> int:
    """round(100 * informative_genes / curated_genes), 0 when nothing is curated."""
    if curated_gene_count <= 0:
        return 0
    informative = sum(1 for r in records if r.is_informative)
    return min(100, round(100 * informative / curated_gene_count))


def band_confidence(raw: float, bands: Optional[ConfidenceBandConfig] = None) -> float:
    bands = bands or get_confidence_bands()
    if raw >= 1.0:
        return bands.ceiling
    if bands.band_lower < raw < bands.band_upper:
        return bands.band_value
    return raw


def confidence_from_gci(gci_score: int, bands: Optional[ConfidenceBandConfig] = None) -> float:
    return band_confidence(gci_score / 100.0, bands)


def normalize_risk_label(risk: Union[RiskCategory, str]) -> str:
    """Presentation label: Indeterminate is reported as Unknown."""
    value = risk.value if isinstance(risk, RiskCategory) else str(risk)
    if value == RiskCategory.INDETERMINATE.value:
        return PRESENTATION_UNKNOWN
    return value


def severity_for(risk: Union[RiskCategory, str]) -> Severity:
    label = risk.value if isinstance(risk, RiskCategory) else str(risk)
    if label == PRESENTATION_UNKNOWN:
        return Severity.LOW
    try:
        return SEVERITY_BY_RISK[RiskCategory(label)]
    except ValueError:
        return Severity.LOW
