"""
Analysis Pipeline - Orchestrates VCF → Profile → Risk → PK twin → LLM → Response.

Parses the document once, builds the patient profile once, then fans out one
task per requested drug. Results come back in the requested order. A failure
in one drug's task, or a slow explanation call, never affects its siblings.
"""
import asyncio
import logging
import random
import string
import time
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from pharmatwin.core.config import get_config
from pharmatwin.exceptions import EmptyResultError
from pharmatwin.schemas.pharma_schema import (
    ClinicalRecommendation,
    DetectedVariantOut,
    DrugReport,
    LLMExplanation,
    PharmacogenomicProfile,
    PKSimulation,
    QualityMetrics,
    RiskAssessment,
)
from pharmatwin.services.llm.explanation_service import (
    Explanation,
    ExplanationService,
    error_explanation,
    not_requested_explanation,
    twin_fallback,
)
from pharmatwin.services.pharmacogenomics.confidence import (
    confidence_from_gci,
    normalize_risk_label,
    severity_for,
)
from pharmatwin.services.pharmacogenomics.diplotype_caller import UNKNOWN_DIPLOTYPE
from pharmatwin.services.pharmacogenomics.guideline_loader import GuidelineDataset, get_guidelines
from pharmatwin.services.pharmacogenomics.models import (
    DrugRiskAssessment,
    Pathway,
    PatientProfile,
    PhenotypeLabel,
    RiskCategory,
)
from pharmatwin.services.pharmacogenomics.phenotype_mapper import normalize_phenotype
from pharmatwin.services.pharmacogenomics.profile import build_patient_profile
from pharmatwin.services.pharmacogenomics.risk_engine import RiskEvaluator
from pharmatwin.services.pk.simulator import PKSeries, PKSimulator
from pharmatwin.services.vcf.parser import VcfDocument, parse_vcf

logger = logging.getLogger(__name__)

EMPTY_RESULT_MESSAGE = (
    "No variant records were detected. The VCF header was found but the file "
    "contains no variant data rows."
)

ADJUSTED_DOSING = "Evaluate per guidelines."
STANDARD_DOSING = "Standard dosing."


def generate_patient_id() -> str:
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=6))
    return f"PATIENT_{suffix}"


def normalize_drug_list(drugs: Optional[Sequence[str]], tables: GuidelineDataset) -> List[str]:
    """Upper-case and strip names; an empty request means every supported drug."""
    names = [d.strip().upper() for d in (drugs or []) if d and d.strip()]
    return names or tables.get_supported_drugs()


class AnalysisPipeline:
    def __init__(
        self,
        tables: Optional[GuidelineDataset] = None,
        explanation_service: Optional[ExplanationService] = None,
    ):
        self.tables = tables or get_guidelines()
        self.evaluator = RiskEvaluator(self.tables)
        self.simulator = PKSimulator(self.tables)
        # None means explanations were not requested
        self.explanation_service = explanation_service

    async def run(self, document: VcfDocument, drugs: Optional[Sequence[str]] = None) -> List[DrugReport]:
        start_time = time.time()

        variants = parse_vcf(document)
        if not variants:
            raise EmptyResultError(EMPTY_RESULT_MESSAGE)

        profile = build_patient_profile(variants, self.tables)
        requested = normalize_drug_list(drugs, self.tables)
        patient_id = generate_patient_id()
        logger.info("Starting analysis for %s: %s", patient_id, ", ".join(requested))

        reports = await asyncio.gather(
            *(self._evaluate_drug(drug, profile, patient_id) for drug in requested)
        )

        logger.info("Pipeline execution time: %.2fs", time.time() - start_time)
        return list(reports)

    async def _evaluate_drug(self, drug: str, profile: PatientProfile, patient_id: str) -> DrugReport:
        try:
            assessment = self.evaluator.evaluate(drug, profile)
            series = self.simulator.simulate(drug, assessment.phenotype)
            simulation = PKSimulation.from_series(series)
            explanation = await self._explain(assessment, series)
            return build_report(assessment, profile, patient_id, explanation, simulation)
        except Exception:
            logger.exception("Evaluation failed for %s; returning an indeterminate record", drug)
            assessment = degraded_assessment(drug, profile, self.tables)
            return build_report(assessment, profile, patient_id, error_explanation(), None)

    async def _explain(self, assessment: DrugRiskAssessment, series: PKSeries) -> Explanation:
        if self.explanation_service is None:
            explanation = not_requested_explanation()
        else:
            timeout = self.explanation_service.config.timeout_seconds
            try:
                explanation = await asyncio.wait_for(
                    self.explanation_service.explain(assessment, series.summary(), series.clearance_label),
                    timeout=timeout,
                )
            except asyncio.TimeoutError:
                logger.warning("Explanation for %s timed out after %.1fs", assessment.drug, timeout)
                explanation = error_explanation()
            except Exception:
                logger.exception("Explanation for %s failed", assessment.drug)
                explanation = error_explanation()

        if not explanation.twin_analysis:
            explanation = explanation.model_copy(
                update={"twin_analysis": twin_fallback(assessment, series.window_hours)}
            )
        return explanation


def degraded_assessment(drug: str, profile: PatientProfile, tables: GuidelineDataset) -> DrugRiskAssessment:
    """Indeterminate stand-in used when a drug's evaluation raised."""
    name = drug.strip().upper()
    definition = tables.get_drug(name)
    mechanism = tables.get_drug_mechanism(name)
    return DrugRiskAssessment(
        drug=name,
        gene=mechanism.gene if mechanism else "Unknown",
        diplotype=UNKNOWN_DIPLOTYPE,
        phenotype=PhenotypeLabel.INDETERMINATE,
        activity_score=None,
        mechanism=definition.mechanism if definition else Pathway.UNKNOWN.value,
        pathway=mechanism.pathway if mechanism else Pathway.UNKNOWN,
        risk=RiskCategory.INDETERMINATE,
        recommendation=tables.risk_recommendations.get(RiskCategory.INDETERMINATE, ""),
        evidence_strength=definition.evidence if definition else "No guideline evidence",
        annotation_complete=False,
        confidence=confidence_from_gci(profile.gci_score),
    )


def build_report(
    assessment: DrugRiskAssessment,
    profile: PatientProfile,
    patient_id: str,
    explanation: Explanation,
    simulation: Optional[PKSimulation],
) -> DrugReport:
    adjusted = assessment.risk in (RiskCategory.TOXIC, RiskCategory.ADJUST_DOSAGE)
    return DrugReport(
        patient_id=patient_id,
        drug=assessment.drug,
        timestamp=datetime.now(timezone.utc).isoformat(),
        risk_assessment=RiskAssessment(
            risk_label=normalize_risk_label(assessment.risk),
            confidence_score=assessment.confidence,
            severity=severity_for(assessment.risk).value,
        ),
        pharmacogenomic_profile=PharmacogenomicProfile(
            primary_gene=assessment.gene,
            diplotype=assessment.diplotype,
            phenotype=normalize_phenotype(assessment.phenotype).value,
            activity_score=assessment.activity_score,
            mechanism=assessment.mechanism,
            detected_variants=[
                DetectedVariantOut(rsid=v.rsid, genotype=v.genotype, impact=v.impact.value)
                for v in assessment.detected_variants
            ],
        ),
        clinical_recommendation=ClinicalRecommendation(
            action=explanation.action_required or assessment.recommendation,
            dose_adjustment=ADJUSTED_DOSING if adjusted else STANDARD_DOSING,
            guideline_source=get_config().guideline_source,
            evidence_strength=assessment.evidence_strength,
        ),
        llm_generated_explanation=LLMExplanation(
            summary=explanation.patient_friendly,
            patient_view=explanation.patient_friendly,
            clinician_view=explanation.clinician_technical,
            twin_analysis=explanation.twin_analysis,
        ),
        quality_metrics=QualityMetrics(
            vcf_parsing_success=profile.variant_count > 0,
            variant_annotation_complete=assessment.annotation_complete,
            gene_coverage=len(profile.genes),
            gci_score=profile.gci_score,
        ),
        pk_simulation=simulation,
    )


async def run_analysis(
    document: VcfDocument,
    drugs: Optional[Sequence[str]] = None,
    *,
    explain: bool = False,
    tables: Optional[GuidelineDataset] = None,
    explanation_service: Optional[ExplanationService] = None,
) -> List[DrugReport]:
    """
    Full pipeline: VCF → parse → profile → per-drug risk + PK twin (+ explanation).

    Raises:
        FormatError: the document lacks the ``##fileformat=VCF`` marker.
        EmptyResultError: the header is valid but no variant rows parsed.
    """
    if explain and explanation_service is None:
        explanation_service = ExplanationService()
    pipeline = AnalysisPipeline(tables, explanation_service if explain else None)
    return await pipeline.run(document, drugs)
