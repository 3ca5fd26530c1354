from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from pharmatwin.services.pk.simulator import PKSeries


class RiskAssessment(BaseModel):
    risk_label: str
    confidence_score: float
    severity: str


class DetectedVariantOut(BaseModel):
    rsid: str
    genotype: str
    impact: str


class PharmacogenomicProfile(BaseModel):
    primary_gene: str
    diplotype: str
    phenotype: str
    activity_score: Optional[float] = None
    mechanism: str
    detected_variants: List[DetectedVariantOut] = Field(default_factory=list)


class ClinicalRecommendation(BaseModel):
    action: str
    dose_adjustment: str
    guideline_source: str = "CPIC"
    evidence_strength: str


class LLMExplanation(BaseModel):
    summary: str
    patient_view: str
    clinician_view: str
    twin_analysis: Optional[str] = None


class QualityMetrics(BaseModel):
    vcf_parsing_success: bool = True
    variant_annotation_complete: bool = True
    gene_coverage: int = 0
    gci_score: int = 0


class PKPoint(BaseModel):
    time: float
    concentration: float
    metabolite: Optional[float] = None


class PKSimulation(BaseModel):
    drug: str
    phenotype: str
    prodrug: bool
    unit: str
    time_window_hours: float
    toxicity_threshold: float
    efficacy_floor: float
    clearance_label: str
    cmax: float
    tmax_hours: float
    points: List[PKPoint]

    @classmethod
    def from_series(cls, series: PKSeries) -> "PKSimulation":
        """Chart-ready payload: times to 2 decimals, concentrations to 4."""
        params = series.model.params
        summary = series.summary()
        points = [
            PKPoint(
                time=round(pt.time_hours, 2),
                concentration=round(pt.concentration, 4),
                metabolite=None if pt.metabolite_concentration is None else round(pt.metabolite_concentration, 4),
            )
            for pt in series
        ]
        return cls(
            drug=series.model.name,
            phenotype=series.phenotype.value,
            prodrug=series.model.prodrug,
            unit=params.unit,
            time_window_hours=series.window_hours,
            toxicity_threshold=params.toxicity_threshold,
            efficacy_floor=params.efficacy_floor,
            clearance_label=series.clearance_label,
            cmax=round(summary.cmax, 4),
            tmax_hours=round(summary.tmax_hours, 2),
            points=points,
        )


class DrugReport(BaseModel):
    patient_id: str
    drug: str
    timestamp: str
    risk_assessment: RiskAssessment
    pharmacogenomic_profile: PharmacogenomicProfile
    clinical_recommendation: ClinicalRecommendation
    llm_generated_explanation: LLMExplanation
    quality_metrics: QualityMetrics
    pk_simulation: Optional[PKSimulation] = None

    @field_validator("timestamp")
    @classmethod
    def validate_timestamp(cls, v):
        try:
            datetime.fromisoformat(v.replace("Z", "+00:00"))
            return v
        except ValueError:
            raise ValueError("Timestamp must be a valid ISO 8601 string")


class AnalysisResponse(BaseModel):
    results: List[DrugReport]


class DrugInfo(BaseModel):
    drug: str
    gene: str
    mechanism: str
    pathway: str
    evidence: str


class DrugCatalogue(BaseModel):
    dataset_version: str
    drugs: List[DrugInfo]
