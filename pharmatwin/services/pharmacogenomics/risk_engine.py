"""
Risk Engine - Evaluates pharmacogenomic risk for a drug against a patient profile.

Each drug maps to one driving gene and a mechanism tag whose pathway
(activation for prodrugs, clearance otherwise) selects the phenotype-risk
table. All tables come from the injected guideline dataset.
"""

import logging
import warnings
from typing import List, Optional, Tuple, Union

from pharmatwin.exceptions import AmbiguousGenotypeWarning, UnknownDrugWarning

from .confidence import confidence_from_gci
from .diplotype_caller import UNKNOWN_DIPLOTYPE
from .guideline_loader import GeneDefinition, GuidelineDataset, get_guidelines
from .models import (
    DetectedVariant,
    DrugRiskAssessment,
    GeneActivityRecord,
    Pathway,
    PatientProfile,
    PhenotypeCode,
    PhenotypeLabel,
    RiskCategory,
    VariantImpact,
)
from .phenotype_mapper import PhenotypeClassifier, normalize_phenotype

logger = logging.getLogger(__name__)

UNKNOWN_GENE = "Unknown"
NO_EVIDENCE = "No guideline evidence"

# Impact of a resolved genotype call; 1/1 depends on the gene's no-function subset
_IMPACT_BY_GENOTYPE = {
    "0/0": VariantImpact.NORMAL_FUNCTION,
    "0/1": VariantImpact.REDUCED_FUNCTION,
}


def variant_impact(definition: GeneDefinition, rsid: str, genotype: str) -> VariantImpact:
    if genotype in _IMPACT_BY_GENOTYPE:
        return _IMPACT_BY_GENOTYPE[genotype]
    if genotype == "1/1":
        if rsid in definition.no_function_variants:
            return VariantImpact.NO_FUNCTION
        return VariantImpact.LOSS_OF_FUNCTION
    return VariantImpact.UNKNOWN


class RiskEvaluator:
    """
    Evaluates risk for drug-gene-phenotype combinations.

    ``evaluate`` is a pure function of (drug, profile): the same inputs always
    produce an identical assessment. Unknown drugs and missing genes degrade to
    an Indeterminate assessment instead of failing.
    """

    def __init__(self, tables: Optional[GuidelineDataset] = None):
        self.tables = tables or get_guidelines()
        self.classifier = PhenotypeClassifier(self.tables)

    def evaluate(self, drug: str, profile: PatientProfile) -> DrugRiskAssessment:
        drug_key = drug.strip().upper()
        confidence = confidence_from_gci(profile.gci_score)

        definition = self.tables.get_drug(drug_key)
        if definition is None:
            return self._unknown_drug_assessment(drug_key, confidence)

        mechanism_tag = definition.mechanism
        mechanism = self.tables.mechanisms[mechanism_tag]
        gene = mechanism.gene

        record = profile.genes.get(gene)
        if record is None:
            logger.warning("Gene %s missing from profile; %s is indeterminate", gene, drug_key)
            phenotype = PhenotypeLabel.INDETERMINATE
            diplotype = UNKNOWN_DIPLOTYPE
            activity = None
        else:
            phenotype = self.classifier.classify(record)
            diplotype = record.diplotype
            activity = record.activity_score

        code = self._lookup_code(normalize_phenotype(phenotype))
        risk = self._phenotype_risk(drug_key, mechanism.pathway, code)
        recommendation = self._recommendation(drug_key, code, risk)

        detected, complete = self._detected_variants(drug_key, record)

        return DrugRiskAssessment(
            drug=drug_key,
            gene=gene,
            diplotype=diplotype,
            phenotype=phenotype,
            activity_score=activity,
            mechanism=mechanism_tag,
            pathway=mechanism.pathway,
            risk=risk,
            recommendation=recommendation,
            evidence_strength=definition.evidence,
            detected_variants=tuple(detected),
            annotation_complete=complete,
            confidence=confidence,
        )

    def risk_for_phenotype(self, drug: str, phenotype: Union[PhenotypeLabel, PhenotypeCode, str]) -> RiskCategory:
        """Risk category for a drug given a phenotype label or code."""
        drug_key = drug.strip().upper()
        if self.tables.get_drug(drug_key) is None:
            return RiskCategory.INDETERMINATE
        code = self._lookup_code(normalize_phenotype(phenotype))
        return self._phenotype_risk(drug_key, self.tables.get_pathway(drug_key), code)

    # ----- lookups -----

    @staticmethod
    def _lookup_code(code: PhenotypeCode) -> PhenotypeCode:
        # The literal "Normal" code is looked up as a normal metabolizer
        return PhenotypeCode.NM if code is PhenotypeCode.NORMAL else code

    def _phenotype_risk(self, drug: str, pathway: Pathway, code: PhenotypeCode) -> RiskCategory:
        if code is PhenotypeCode.UNKNOWN:
            return RiskCategory.INDETERMINATE
        overrides = self.tables.drugs[drug].risk_overrides
        if code.value in overrides:
            return overrides[code.value]
        return self.tables.phenotype_risk[pathway].get(code.value, RiskCategory.INDETERMINATE)

    def _recommendation(self, drug: str, code: PhenotypeCode, risk: RiskCategory) -> str:
        specific = self.tables.drugs[drug].recommendations.get(code.value)
        if specific and risk is not RiskCategory.INDETERMINATE:
            return specific
        return self.tables.risk_recommendations.get(risk, "")

    def _detected_variants(
        self, drug: str, record: Optional[GeneActivityRecord]
    ) -> Tuple[List[DetectedVariant], bool]:
        """Attribute the driving gene's curated observations; flag unresolved calls."""
        if record is None:
            return [], True
        definition = self.tables.get_gene(record.gene)
        if definition is None:
            return [], True

        detected: List[DetectedVariant] = []
        complete = True
        for obs in record.observations:
            if obs.rsid not in definition.variants:
                continue
            impact = variant_impact(definition, obs.rsid, obs.genotype)
            if impact is VariantImpact.UNKNOWN:
                complete = False
                message = f"{drug}: genotype {obs.genotype!r} at {obs.rsid} has no impact mapping; excluded"
                logger.warning(message)
                warnings.warn(message, AmbiguousGenotypeWarning, stacklevel=2)
                continue
            detected.append(DetectedVariant(rsid=obs.rsid, genotype=obs.genotype, impact=impact))
        return detected, complete

    def _unknown_drug_assessment(self, drug: str, confidence: float) -> DrugRiskAssessment:
        message = f"{drug} is not in the drug rule table; returning an indeterminate assessment"
        logger.warning(message)
        warnings.warn(message, UnknownDrugWarning, stacklevel=3)
        return DrugRiskAssessment(
            drug=drug,
            gene=UNKNOWN_GENE,
            diplotype=UNKNOWN_DIPLOTYPE,
            phenotype=PhenotypeLabel.INDETERMINATE,
            activity_score=None,
            mechanism=Pathway.UNKNOWN.value,
            pathway=Pathway.UNKNOWN,
            risk=RiskCategory.INDETERMINATE,
            recommendation=self.tables.risk_recommendations.get(RiskCategory.INDETERMINATE, ""),
            evidence_strength=NO_EVIDENCE,
            detected_variants=(),
            annotation_complete=True,
            confidence=confidence,
        )


def create_risk_evaluator() -> RiskEvaluator:
    """Factory function to create a RiskEvaluator over the global dataset."""
    return RiskEvaluator()
