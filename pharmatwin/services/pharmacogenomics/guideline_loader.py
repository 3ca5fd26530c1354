"""
Guideline Data Loader - Runtime singleton for the versioned guideline dataset.

The dataset bundles the four configuration tables the engine consumes:
per-gene curated variant tables, the drug -> gene -> mechanism table, the
phenotype -> risk lookup and the per-drug PK parameters. It is validated
against the schema below on load so that guideline updates are data changes,
never code changes.
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from pharmatwin.core.config import get_config
from pharmatwin.exceptions import GuidelineDataError

from .models import Pathway, PhenotypeLabel, RiskCategory

logger = logging.getLogger(__name__)

SUPPORTED_SCHEMA_VERSIONS = ("1.0",)

FunctionClass = Literal["no", "decreased", "normal", "increased"]

# Lower rank = more deleterious
FUNCTION_RANK: Dict[str, int] = {"no": 0, "decreased": 1, "normal": 2, "increased": 3}


class AlleleDefinition(BaseModel):
    function: FunctionClass
    activity: float = Field(..., ge=0.0)


class VariantDefinition(BaseModel):
    allele: str
    chrom: Optional[str] = None
    pos: Optional[int] = None
    ref: Optional[str] = None
    alt: Optional[str] = None


class ActivityBand(BaseModel):
    max: Optional[float] = Field(None, description="Inclusive upper bound; None = unbounded")
    phenotype: PhenotypeLabel


class GeneDefinition(BaseModel):
    scoring: Literal["activity", "categorical"]
    vocabulary: Literal["metabolizer", "function"]
    reference_allele: str
    alleles: Dict[str, AlleleDefinition]
    variants: Dict[str, VariantDefinition]
    no_function_variants: List[str] = Field(default_factory=list)
    haplotypes: Dict[str, List[str]] = Field(default_factory=dict)
    activity_bands: List[ActivityBand] = Field(default_factory=list)
    function_phenotypes: Dict[str, PhenotypeLabel] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_references(self):
        if self.reference_allele not in self.alleles:
            raise ValueError(f"reference allele {self.reference_allele} is not defined")
        for rsid, definition in self.variants.items():
            if definition.allele not in self.alleles:
                raise ValueError(f"{rsid} maps to undefined allele {definition.allele}")
        unknown = set(self.no_function_variants) - set(self.variants)
        if unknown:
            raise ValueError(f"no-function variants not in the curated table: {sorted(unknown)}")
        for name, members in self.haplotypes.items():
            if name not in self.alleles:
                raise ValueError(f"haplotype {name} is not defined as an allele")
            if len(members) < 2 or any(m not in self.alleles for m in members):
                raise ValueError(f"haplotype {name} needs two or more defined member alleles")
        if self.scoring == "activity" and not self.activity_bands:
            raise ValueError("activity-scored genes need activity_bands")
        if self.scoring == "categorical" and not self.function_phenotypes:
            raise ValueError("categorical genes need function_phenotypes")
        return self


class MechanismDefinition(BaseModel):
    gene: str
    pathway: Pathway

    @field_validator("pathway")
    @classmethod
    def _known_pathway(cls, value: Pathway) -> Pathway:
        if value == Pathway.UNKNOWN:
            raise ValueError("mechanism pathway must be activation or clearance")
        return value


class DrugDefinition(BaseModel):
    mechanism: str
    evidence: str
    risk_overrides: Dict[str, RiskCategory] = Field(default_factory=dict)
    recommendations: Dict[str, str] = Field(default_factory=dict)


class PKParameters(BaseModel):
    dose_mg: float = Field(..., gt=0)
    bioavailability: float = Field(..., gt=0, le=1.0)
    volume_l: float = Field(..., gt=0)
    ka: float = Field(..., gt=0, description="Absorption rate constant (1/h)")
    ke_base: float = Field(..., gt=0, description="Elimination/activation rate for a normal metabolizer (1/h)")
    toxicity_threshold: float = Field(..., ge=0)
    efficacy_floor: float = Field(..., ge=0)
    unit: str = "mg/L"
    half_life_hours: float = Field(..., gt=0)


class MetaboliteParameters(BaseModel):
    ke_fraction: float = Field(..., gt=0)
    weight: float = Field(..., gt=0)


class PKTable(BaseModel):
    default: PKParameters
    prodrug_metabolite: MetaboliteParameters
    modifiers: Dict[Pathway, Dict[str, float]]
    drugs: Dict[str, PKParameters] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_modifiers(self):
        needed = {"poor", "intermediate", "normal", "rapid", "ultrarapid"}
        for pathway in (Pathway.ACTIVATION, Pathway.CLEARANCE):
            missing = needed - set(self.modifiers.get(pathway, {}))
            if missing:
                raise ValueError(f"{pathway.value} modifiers missing {sorted(missing)}")
        return self


class GuidelineDataset(BaseModel):
    schema_version: str
    dataset_version: str
    source: str = ""
    genes: Dict[str, GeneDefinition]
    mechanisms: Dict[str, MechanismDefinition]
    phenotype_risk: Dict[Pathway, Dict[str, RiskCategory]]
    risk_recommendations: Dict[RiskCategory, str]
    drugs: Dict[str, DrugDefinition]
    pk_parameters: PKTable

    @model_validator(mode="after")
    def _check_links(self):
        if self.schema_version not in SUPPORTED_SCHEMA_VERSIONS:
            raise ValueError(f"unsupported schema_version {self.schema_version}")
        for tag, mech in self.mechanisms.items():
            if mech.gene not in self.genes:
                raise ValueError(f"mechanism {tag} references unknown gene {mech.gene}")
        for drug, definition in self.drugs.items():
            if drug != drug.upper():
                raise ValueError(f"drug keys must be upper case: {drug}")
            if definition.mechanism not in self.mechanisms:
                raise ValueError(f"{drug} references unknown mechanism {definition.mechanism}")
        for pathway in (Pathway.ACTIVATION, Pathway.CLEARANCE):
            if pathway not in self.phenotype_risk:
                raise ValueError(f"phenotype_risk has no {pathway.value} table")
        self._check_no_cross_gene_ids()
        return self

    def _check_no_cross_gene_ids(self) -> None:
        owner: Dict[str, str] = {}
        for gene, definition in self.genes.items():
            for rsid in definition.variants:
                if rsid in owner:
                    raise ValueError(f"{rsid} is curated for both {owner[rsid]} and {gene}")
                owner[rsid] = gene

    # ===== Gene Data Access =====

    def get_gene(self, gene: str) -> Optional[GeneDefinition]:
        return self.genes.get(gene)

    def get_supported_genes(self) -> List[str]:
        return list(self.genes.keys())

    # ===== Drug Data Access =====

    def get_drug(self, drug: str) -> Optional[DrugDefinition]:
        return self.drugs.get(drug.strip().upper())

    def get_supported_drugs(self) -> List[str]:
        return list(self.drugs.keys())

    def get_drug_mechanism(self, drug: str) -> Optional[MechanismDefinition]:
        definition = self.get_drug(drug)
        if definition is None:
            return None
        return self.mechanisms[definition.mechanism]

    def get_drug_gene(self, drug: str) -> Optional[str]:
        mechanism = self.get_drug_mechanism(drug)
        return mechanism.gene if mechanism else None

    def get_pathway(self, drug: str) -> Pathway:
        mechanism = self.get_drug_mechanism(drug)
        return mechanism.pathway if mechanism else Pathway.UNKNOWN

    def is_prodrug(self, drug: str) -> bool:
        return self.get_pathway(drug) == Pathway.ACTIVATION

    def get_pk_parameters(self, drug: str) -> Optional[PKParameters]:
        return self.pk_parameters.drugs.get(drug.strip().upper())


def load_guidelines(path: Path) -> GuidelineDataset:
    """Read and validate a guideline dataset file."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except FileNotFoundError as e:
        raise GuidelineDataError(f"Guideline dataset not found at {path}") from e
    except json.JSONDecodeError as e:
        raise GuidelineDataError(f"Guideline dataset at {path} is not valid JSON: {e}") from e

    try:
        dataset = GuidelineDataset.model_validate(raw)
    except ValidationError as e:
        raise GuidelineDataError(f"Guideline dataset at {path} failed validation: {e}") from e

    logger.info(
        "Guideline dataset %s loaded: %d genes, %d drugs",
        dataset.dataset_version, len(dataset.genes), len(dataset.drugs),
    )
    return dataset


# Global singleton instance
_dataset_instance: Optional[GuidelineDataset] = None


def get_guidelines() -> GuidelineDataset:
    """Get the global guideline dataset, loading it on first use."""
    global _dataset_instance
    if _dataset_instance is None:
        _dataset_instance = load_guidelines(get_config().resolved_guideline_path())
    return _dataset_instance


def reload_guidelines() -> GuidelineDataset:
    """Reload the dataset (after a configuration change or a guideline update)."""
    global _dataset_instance
    _dataset_instance = None
    return get_guidelines()
