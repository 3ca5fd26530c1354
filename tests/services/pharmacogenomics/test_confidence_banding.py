"""
Confidence math verification: GCI, banding and severity mapping.
"""

import pytest

from pharmatwin.core.config import ConfidenceBandConfig
from pharmatwin.services.pharmacogenomics.confidence import (
    band_confidence,
    compute_gci,
    confidence_from_gci,
    normalize_risk_label,
    severity_for,
)
from pharmatwin.services.pharmacogenomics.models import (
    GeneActivityRecord,
    RiskCategory,
    Severity,
    VariantObservation,
)


def record(gene, *genotypes):
    observations = tuple(VariantObservation(rsid=f"rs{i}", genotype=gt) for i, gt in enumerate(genotypes))
    return GeneActivityRecord(gene=gene, diplotype="*1/*1", observations=observations)


class TestBandConfidence:
    """Test coarse confidence banding."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            (1.0, 0.95),
            (1.2, 0.95),
            (0.94, 0.90),
            (0.9, 0.90),
            (0.86, 0.90),
            (0.85, 0.85),
            (0.95, 0.95),
            (0.5, 0.5),
            (0.0, 0.0),
        ],
    )
    def test_default_bands(self, raw, expected):
        assert band_confidence(raw) == pytest.approx(expected)

    def test_custom_bands(self):
        bands = ConfidenceBandConfig(ceiling=0.99, band_lower=0.5, band_value=0.75)

        assert band_confidence(1.0, bands) == 0.99
        assert band_confidence(0.6, bands) == 0.75
        assert band_confidence(0.4, bands) == 0.4

    def test_band_upper_is_independent_of_ceiling(self):
        bands = ConfidenceBandConfig(ceiling=0.99)

        assert band_confidence(1.0, bands) == 0.99
        assert band_confidence(0.94, bands) == 0.90
        assert band_confidence(0.97, bands) == 0.97

    def test_from_gci(self):
        assert confidence_from_gci(100) == 0.95
        assert confidence_from_gci(17) == pytest.approx(0.17)


class TestComputeGci:
    """Test the Genomic Confidence Index."""

    def test_all_informative(self):
        records = [record("A", "0/0"), record("B", "0/1")]

        assert compute_gci(records, 2) == 100

    def test_partial(self):
        records = [record("A", "1/1"), record("B"), record("C", "./.")]

        assert compute_gci(records, 6) == 17

    def test_half(self):
        records = [record("A", "0/1"), record("B", "0/0"), record("C"), record("D", "1|0")]

        assert compute_gci(records, 4) == 50

    def test_no_curated_genes(self):
        assert compute_gci([record("A", "0/1")], 0) == 0


class TestSeverity:
    """Test risk -> severity and presentation labels."""

    @pytest.mark.parametrize(
        "risk,expected",
        [
            (RiskCategory.TOXIC, Severity.CRITICAL),
            (RiskCategory.ADJUST_DOSAGE, Severity.MODERATE),
            (RiskCategory.SAFE, Severity.NONE),
            (RiskCategory.INDETERMINATE, Severity.LOW),
            ("Unknown", Severity.LOW),
            ("something else", Severity.LOW),
        ],
    )
    def test_severity_for(self, risk, expected):
        assert severity_for(risk) == expected

    def test_indeterminate_presented_as_unknown(self):
        assert normalize_risk_label(RiskCategory.INDETERMINATE) == "Unknown"
        assert normalize_risk_label("Indeterminate") == "Unknown"

    def test_other_labels_unchanged(self):
        assert normalize_risk_label(RiskCategory.ADJUST_DOSAGE) == "Adjust Dosage"
        assert normalize_risk_label(RiskCategory.SAFE) == "Safe"
