"""
Integration tests for the analysis pipeline.
Tests ordering, fault isolation and the per-drug explanation budget.
"""

import asyncio
import re
import time

import pytest

from pharmatwin.core.config import ExplanationConfig
from pharmatwin.exceptions import EmptyResultError, FormatError
from pharmatwin.services.llm.explanation_service import (
    NOT_REQUESTED_MESSAGE,
    Explanation,
    error_explanation,
)
from pharmatwin.services.pipeline.analysis_pipeline import (
    AnalysisPipeline,
    generate_patient_id,
    normalize_drug_list,
    run_analysis,
)


class SlowExplanationService:
    """Explanation service stand-in that sleeps before answering."""

    def __init__(self, delay, timeout, fail_for=()):
        self.delay = delay
        self.fail_for = set(fail_for)
        self.config = ExplanationConfig(timeout_seconds=timeout)

    async def explain(self, assessment, pk_summary=None, clearance_label=None):
        if assessment.drug in self.fail_for:
            raise RuntimeError("upstream exploded")
        await asyncio.sleep(self.delay)
        return Explanation(
            patient_friendly=f"About {assessment.drug}, per CPIC.",
            clinician_technical=f"{assessment.gene} {assessment.diplotype}, per CPIC.",
            action_required="Discuss with your clinician.",
        )


class TestAnalysisPipeline:
    """Test run_analysis end to end on generated VCFs."""

    def test_clopidogrel_poor_metabolizer(self, make_vcf):
        """
        GIVEN a VCF with CYP2C19 rs4244285 1/1
        WHEN clopidogrel is analyzed
        THEN the report shows *2/*2, PM and a non-Safe risk
        """
        results = asyncio.run(run_analysis(make_vcf(("rs4244285", "1/1")), ["CLOPIDOGREL"]))

        assert len(results) == 1
        report = results[0]
        assert report.drug == "CLOPIDOGREL"
        assert report.pharmacogenomic_profile.primary_gene == "CYP2C19"
        assert report.pharmacogenomic_profile.diplotype == "*2/*2"
        assert report.pharmacogenomic_profile.phenotype == "PM"
        assert report.risk_assessment.risk_label != "Safe"
        assert report.risk_assessment.severity in ("moderate", "critical")
        assert report.clinical_recommendation.dose_adjustment == "Evaluate per guidelines."
        assert report.clinical_recommendation.guideline_source == "CPIC"
        assert [v.model_dump() for v in report.pharmacogenomic_profile.detected_variants] == [
            {"rsid": "rs4244285", "genotype": "1/1", "impact": "Loss_of_function"}
        ]
        assert report.quality_metrics.gci_score == 17
        assert report.risk_assessment.confidence_score == pytest.approx(0.17)
        assert report.pk_simulation.prodrug is True
        assert len(report.pk_simulation.points) == 49

    def test_requested_order_preserved(self, make_vcf):
        drugs = ["WARFARIN", "codeine", "ASPIRIN", "CLOPIDOGREL", "SIMVASTATIN"]

        with pytest.warns(UserWarning):
            results = asyncio.run(run_analysis(make_vcf(("rs3892097", "0/1")), drugs))

        assert [r.drug for r in results] == ["WARFARIN", "CODEINE", "ASPIRIN", "CLOPIDOGREL", "SIMVASTATIN"]

    def test_unknown_drug_reported_as_unknown(self, make_vcf):
        with pytest.warns(UserWarning):
            results = asyncio.run(run_analysis(make_vcf(("rs3892097", "0/1")), ["ASPIRIN"]))

        report = results[0]
        assert report.risk_assessment.risk_label == "Unknown"
        assert report.risk_assessment.severity == "low"
        assert report.pharmacogenomic_profile.phenotype == "Unknown"
        assert report.pk_simulation is not None

    def test_default_drug_list(self, reference_vcf, tables):
        results = asyncio.run(run_analysis(reference_vcf))

        assert [r.drug for r in results] == tables.get_supported_drugs()
        for report in results:
            assert report.risk_assessment.risk_label == "Safe"
            assert report.risk_assessment.severity == "none"
            assert report.risk_assessment.confidence_score == 0.95
            assert report.clinical_recommendation.dose_adjustment == "Standard dosing."
            assert report.quality_metrics.gci_score == 100

    def test_single_patient_id_per_request(self, reference_vcf):
        results = asyncio.run(run_analysis(reference_vcf, ["CODEINE", "WARFARIN"]))

        ids = {r.patient_id for r in results}
        assert len(ids) == 1
        assert re.fullmatch(r"PATIENT_[A-Z0-9]{6}", ids.pop())

    def test_explanation_not_requested(self, reference_vcf):
        report = asyncio.run(run_analysis(reference_vcf, ["WARFARIN"]))[0]

        assert report.llm_generated_explanation.patient_view == NOT_REQUESTED_MESSAGE
        assert "WARFARIN" in report.llm_generated_explanation.twin_analysis

    # ===== Parse errors =====

    def test_missing_marker(self, missing_marker_vcf):
        with pytest.raises(FormatError):
            asyncio.run(run_analysis(missing_marker_vcf, ["CODEINE"]))

    def test_empty_body(self, empty_body_vcf):
        with pytest.raises(EmptyResultError, match="No variant records"):
            asyncio.run(run_analysis(empty_body_vcf, ["CODEINE"]))

    # ===== Fault isolation =====

    def test_failing_drug_does_not_affect_siblings(self, tables, make_vcf, monkeypatch):
        pipeline = AnalysisPipeline(tables)
        original = pipeline.evaluator.evaluate

        def flaky(drug, profile):
            if drug == "CODEINE":
                raise RuntimeError("boom")
            return original(drug, profile)

        monkeypatch.setattr(pipeline.evaluator, "evaluate", flaky)

        results = asyncio.run(pipeline.run(make_vcf(("rs4244285", "1/1")), ["CLOPIDOGREL", "CODEINE", "WARFARIN"]))

        assert [r.drug for r in results] == ["CLOPIDOGREL", "CODEINE", "WARFARIN"]
        failed = results[1]
        assert failed.risk_assessment.risk_label == "Unknown"
        assert failed.pharmacogenomic_profile.primary_gene == "CYP2D6"
        assert failed.pk_simulation is None
        assert failed.quality_metrics.variant_annotation_complete is False
        assert results[0].pharmacogenomic_profile.diplotype == "*2/*2"
        assert results[2].risk_assessment.risk_label == "Safe"

    def test_slow_explanations_fall_back_without_blocking(self, tables, reference_vcf):
        service = SlowExplanationService(delay=5.0, timeout=0.05)
        pipeline = AnalysisPipeline(tables, service)

        started = time.monotonic()
        results = asyncio.run(pipeline.run(reference_vcf, ["CODEINE", "WARFARIN", "SIMVASTATIN"]))
        elapsed = time.monotonic() - started

        assert elapsed < 2.0
        fallback = error_explanation()
        for report in results:
            assert report.llm_generated_explanation.patient_view == fallback.patient_friendly
            assert report.pk_simulation is not None
            assert report.risk_assessment.risk_label == "Safe"

    def test_failing_explanation_isolated(self, tables, reference_vcf):
        service = SlowExplanationService(delay=0.0, timeout=1.0, fail_for={"WARFARIN"})
        pipeline = AnalysisPipeline(tables, service)

        results = asyncio.run(pipeline.run(reference_vcf, ["CODEINE", "WARFARIN"]))

        assert results[0].llm_generated_explanation.patient_view == "About CODEINE, per CPIC."
        assert results[0].clinical_recommendation.action == "Discuss with your clinician."
        assert results[0].llm_generated_explanation.twin_analysis
        assert results[1].llm_generated_explanation.patient_view == error_explanation().patient_friendly
        assert results[1].risk_assessment.risk_label == "Safe"


class TestHelpers:
    """Test request-level helpers."""

    def test_normalize_drug_list(self, tables):
        assert normalize_drug_list([" codeine ", "", "Warfarin"], tables) == ["CODEINE", "WARFARIN"]
        assert normalize_drug_list(None, tables) == tables.get_supported_drugs()
        assert normalize_drug_list(["  "], tables) == tables.get_supported_drugs()

    def test_patient_id_format(self):
        assert re.fullmatch(r"PATIENT_[A-Z0-9]{6}", generate_patient_id())
