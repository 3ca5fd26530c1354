"""
Internal data models for the pharmacogenomics service.
These models represent the derived records produced from parsed VCF data:
per-gene activity records, the patient profile and per-drug assessments.
All of them are immutable once constructed.
"""

from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_serializer

# Alternate-allele copies per genotype call. Any other call is unresolved.
ZYGOSITY_COPIES: Dict[str, int] = {"0/0": 0, "0/1": 1, "1/1": 2}


class PhenotypeLabel(str, Enum):
    """Expanded phenotype vocabulary (metabolizer and transporter-function families)."""
    POOR_METABOLIZER = "Poor Metabolizer"
    INTERMEDIATE_METABOLIZER = "Intermediate Metabolizer"
    NORMAL_METABOLIZER = "Normal Metabolizer"
    RAPID_METABOLIZER = "Rapid Metabolizer"
    ULTRARAPID_METABOLIZER = "Ultrarapid Metabolizer"
    POOR_FUNCTION = "Poor Function"
    DECREASED_FUNCTION = "Decreased Function"
    NORMAL_FUNCTION = "Normal Function"
    INCREASED_FUNCTION = "Increased Function"
    INDETERMINATE = "Indeterminate"


class PhenotypeCode(str, Enum):
    """Canonical short codes consumed by presentation layers."""
    PM = "PM"
    IM = "IM"
    NM = "NM"
    RM = "RM"
    URM = "URM"
    NORMAL = "Normal"  # homozygous-reference "Normal Function" only
    UNKNOWN = "Unknown"


class RiskCategory(str, Enum):
    SAFE = "Safe"
    ADJUST_DOSAGE = "Adjust Dosage"
    TOXIC = "Toxic"
    INDETERMINATE = "Indeterminate"


class Severity(str, Enum):
    NONE = "none"
    LOW = "low"
    MODERATE = "moderate"
    CRITICAL = "critical"


class VariantImpact(str, Enum):
    NORMAL_FUNCTION = "Normal_function"
    REDUCED_FUNCTION = "Reduced_function"
    LOSS_OF_FUNCTION = "Loss_of_function"
    NO_FUNCTION = "No_function"
    UNKNOWN = "Unknown"


class Pathway(str, Enum):
    """Direction in which metabolizer status acts on the drug."""
    ACTIVATION = "activation"  # prodrug: enzyme produces the active form
    CLEARANCE = "clearance"  # enzyme/transporter removes the active drug
    UNKNOWN = "unknown"


class VariantObservation(BaseModel):
    """A curated variant seen in the sample, with its raw genotype call."""
    model_config = ConfigDict(frozen=True)

    rsid: str = Field(..., description="dbSNP reference ID")
    genotype: str = Field(..., description="Genotype call, e.g. 0/1")


class GeneActivityRecord(BaseModel):
    """Diplotype call for a single gene."""
    model_config = ConfigDict(frozen=True)

    gene: str = Field(..., description="Gene symbol (e.g., CYP2D6)")
    diplotype: str = Field(..., description="Diplotype (e.g., *1/*4)")
    activity_score: Optional[float] = Field(
        None, description="Sum of allele activity values; None for genes without activity scoring"
    )
    contributing_variants: FrozenSet[str] = Field(
        default_factory=frozenset, description="rsIDs that matched the gene's curated table"
    )
    observations: Tuple[VariantObservation, ...] = Field(
        default=(), description="Matched variants with their genotype calls, in document order"
    )

    @field_serializer("contributing_variants")
    def _serialize_contributing(self, value: FrozenSet[str]):
        return sorted(value)

    @property
    def is_informative(self) -> bool:
        """True when at least one matched variant carries a resolved genotype."""
        return any(obs.genotype in ZYGOSITY_COPIES for obs in self.observations)


class PatientProfile(BaseModel):
    """Aggregate pharmacogenomic profile for one request."""
    model_config = ConfigDict(frozen=True)

    genes: Dict[str, GeneActivityRecord] = Field(default_factory=dict, description="Records keyed by gene")
    gci_score: int = Field(0, ge=0, le=100, description="Genomic Confidence Index (0-100)")
    variant_count: int = Field(0, ge=0, description="Number of parsed variant records")


class DetectedVariant(BaseModel):
    model_config = ConfigDict(frozen=True)

    rsid: str
    genotype: str
    impact: VariantImpact


class DrugRiskAssessment(BaseModel):
    """Complete assessment for a specific drug."""
    model_config = ConfigDict(frozen=True)

    drug: str = Field(..., description="Drug name (upper case)")
    gene: str = Field(..., description="Gene driving the drug's metabolism")
    diplotype: str = Field(..., description="Patient's diplotype for the gene")
    phenotype: PhenotypeLabel = Field(..., description="Phenotype label")
    activity_score: Optional[float] = Field(None, description="Activity score, if the gene uses one")
    mechanism: str = Field(..., description="Pathway tag, e.g. CYP2C19_activation")
    pathway: Pathway = Field(Pathway.UNKNOWN, description="Activation (prodrug) or clearance")
    risk: RiskCategory = Field(..., description="Risk category")
    recommendation: str = Field(..., description="Recommended action")
    evidence_strength: str = Field(..., description="Citation-strength label")
    detected_variants: Tuple[DetectedVariant, ...] = Field(default=(), description="Variants attributed to the gene")
    annotation_complete: bool = Field(True, description="Every attributed variant has a resolved impact")
    confidence: float = Field(0.0, ge=0.0, le=1.0, description="Banded confidence fraction")
