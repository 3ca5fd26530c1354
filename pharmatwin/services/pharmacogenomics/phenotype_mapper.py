"""
Phenotype Mapper - phenotype determination from a gene activity record.

Activity-scored genes are classified by ordered score bands; categorical genes
map the function classes of their two alleles directly to a label.
"""

import logging
import math
from typing import Optional, Union

from .guideline_loader import GeneDefinition, GuidelineDataset, get_guidelines
from .models import GeneActivityRecord, PhenotypeCode, PhenotypeLabel

logger = logging.getLogger(__name__)

# Long label -> canonical short code
PHENOTYPE_LONG_TO_SHORT = {
    PhenotypeLabel.POOR_METABOLIZER: PhenotypeCode.PM,
    PhenotypeLabel.INTERMEDIATE_METABOLIZER: PhenotypeCode.IM,
    PhenotypeLabel.NORMAL_METABOLIZER: PhenotypeCode.NM,
    PhenotypeLabel.RAPID_METABOLIZER: PhenotypeCode.RM,
    PhenotypeLabel.ULTRARAPID_METABOLIZER: PhenotypeCode.URM,
    PhenotypeLabel.POOR_FUNCTION: PhenotypeCode.PM,
    PhenotypeLabel.DECREASED_FUNCTION: PhenotypeCode.IM,
    PhenotypeLabel.NORMAL_FUNCTION: PhenotypeCode.NORMAL,
    PhenotypeLabel.INCREASED_FUNCTION: PhenotypeCode.RM,
    PhenotypeLabel.INDETERMINATE: PhenotypeCode.UNKNOWN,
}


# Aliases seen in clinical reports that are not part of the label vocabulary
PHENOTYPE_ALIASES = {
    "ultra rapid metabolizer": PhenotypeCode.URM,
    "ultra-rapid metabolizer": PhenotypeCode.URM,
}

# Case-folded label, code or alias -> canonical short code
_CODE_BY_TEXT = {
    **{label.value.lower(): code for label, code in PHENOTYPE_LONG_TO_SHORT.items()},
    **{code.value.lower(): code for code in PhenotypeCode},
    **PHENOTYPE_ALIASES,
}


def normalize_phenotype(label: Union[PhenotypeLabel, str, None]) -> PhenotypeCode:
    """
    Collapse a phenotype label into its canonical short code.

    "Normal Function" stays the literal ``Normal`` rather than ``NM``.
    Codes pass through unchanged and matching ignores case; anything
    unrecognized is ``Unknown``.
    """
    if label is None:
        return PhenotypeCode.UNKNOWN
    value = label.value if isinstance(label, (PhenotypeLabel, PhenotypeCode)) else str(label).strip()
    return _CODE_BY_TEXT.get(value.lower(), PhenotypeCode.UNKNOWN)


class PhenotypeClassifier:
    """Maps a GeneActivityRecord to a phenotype label."""

    def __init__(self, tables: Optional[GuidelineDataset] = None):
        self.tables = tables or get_guidelines()

    def classify(self, record: GeneActivityRecord) -> PhenotypeLabel:
        definition = self.tables.get_gene(record.gene)
        if definition is None:
            return PhenotypeLabel.INDETERMINATE

        if definition.scoring == "activity":
            return self._classify_by_score(definition, record.activity_score)
        return self._classify_by_function(definition, record.diplotype)

    @staticmethod
    def _classify_by_score(definition: GeneDefinition, score: Optional[float]) -> PhenotypeLabel:
        if score is None or math.isnan(score) or score < 0:
            return PhenotypeLabel.INDETERMINATE
        for band in definition.activity_bands:
            if band.max is None or score <= band.max:
                return band.phenotype
        logger.debug("Activity score %s above all bands", score)
        return PhenotypeLabel.INDETERMINATE

    @staticmethod
    def _classify_by_function(definition: GeneDefinition, diplotype: str) -> PhenotypeLabel:
        alleles = diplotype.split("/")
        if len(alleles) != 2 or any(a not in definition.alleles for a in alleles):
            return PhenotypeLabel.INDETERMINATE
        key = "/".join(sorted(definition.alleles[a].function for a in alleles))
        return definition.function_phenotypes.get(key, PhenotypeLabel.INDETERMINATE)
