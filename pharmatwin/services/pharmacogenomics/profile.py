"""Patient profile assembly: one diplotype call per curated gene plus the GCI."""

import logging
from typing import Optional, Sequence

from pharmatwin.services.vcf.parser import Variant

from .confidence import compute_gci
from .diplotype_caller import DiplotypeCaller
from .guideline_loader import GuidelineDataset, get_guidelines
from .models import PatientProfile

logger = logging.getLogger(__name__)


def build_patient_profile(
    variants: Sequence[Variant],
    tables: Optional[GuidelineDataset] = None,
) -> PatientProfile:
    tables = tables or get_guidelines()
    caller = DiplotypeCaller(tables)

    genes = caller.call_all(variants)
    gci = compute_gci(genes.values(), len(tables.genes))

    logger.info(
        "Profile built: %d genes, GCI %d, %d variant records",
        len(genes), gci, len(variants),
    )
    return PatientProfile(genes=genes, gci_score=gci, variant_count=len(variants))
