"""
Diplotype Caller - star allele calling from curated gene-variant tables.

Only variants whose rsID is curated for a gene may influence that gene's call.
Alternate-allele copies are pooled per star allele, multi-SNP haplotypes are
assembled from co-occurring member alleles, and the two most deleterious
copies form the diplotype.
"""

import logging
import re
from typing import Dict, Iterable, List, Optional, Sequence

from pharmatwin.services.vcf.parser import Variant

from .guideline_loader import FUNCTION_RANK, GeneDefinition, GuidelineDataset, get_guidelines
from .models import ZYGOSITY_COPIES, GeneActivityRecord, VariantObservation

logger = logging.getLogger(__name__)

UNKNOWN_DIPLOTYPE = "Unknown/Unknown"


def _natural_key(allele: str):
    """Sort key so that *2 < *10 and *3A < *3B."""
    return [int(tok) if tok.isdigit() else tok for tok in re.split(r"(\d+)", allele)]


def format_diplotype(first: str, second: str, reference: str) -> str:
    """Reference allele first, otherwise natural allele order."""
    pair = sorted((first, second), key=lambda a: (a != reference, _natural_key(a)))
    return f"{pair[0]}/{pair[1]}"


class DiplotypeCaller:
    """Calls one gene's diplotype and activity score from parsed variants."""

    def __init__(self, tables: Optional[GuidelineDataset] = None):
        self.tables = tables or get_guidelines()

    def call(self, gene: str, variants: Sequence[Variant]) -> GeneActivityRecord:
        definition = self.tables.get_gene(gene)
        if definition is None:
            logger.debug("Gene %s has no curated table", gene)
            return GeneActivityRecord(gene=gene, diplotype=UNKNOWN_DIPLOTYPE, activity_score=None)

        observations = self._match(definition, variants)
        contributing = frozenset(obs.rsid for obs in observations)

        copies = self._allele_copies(definition, observations)
        self._absorb_haplotypes(definition, copies)
        pair = self._select_pair(definition, copies)

        diplotype = format_diplotype(pair[0], pair[1], definition.reference_allele)
        activity = None
        if definition.scoring == "activity":
            activity = sum(definition.alleles[a].activity for a in pair)

        return GeneActivityRecord(
            gene=gene,
            diplotype=diplotype,
            activity_score=activity,
            contributing_variants=contributing,
            observations=tuple(observations),
        )

    def call_all(self, variants: Sequence[Variant]) -> Dict[str, GeneActivityRecord]:
        return {gene: self.call(gene, variants) for gene in self.tables.get_supported_genes()}

    @staticmethod
    def _match(definition: GeneDefinition, variants: Iterable[Variant]) -> List[VariantObservation]:
        return [
            VariantObservation(rsid=v.id, genotype=v.genotype)
            for v in variants
            if v.id is not None and v.id in definition.variants
        ]

    @staticmethod
    def _allele_copies(definition: GeneDefinition, observations: Iterable[VariantObservation]) -> Dict[str, int]:
        """Alt copies per star allele: max over the allele's defining rsIDs."""
        copies: Dict[str, int] = {}
        for obs in observations:
            n = ZYGOSITY_COPIES.get(obs.genotype)
            if n is None:
                logger.debug("Unresolved genotype %s at %s ignored", obs.genotype, obs.rsid)
                continue
            allele = definition.variants[obs.rsid].allele
            copies[allele] = max(copies.get(allele, 0), n)
        return copies

    @staticmethod
    def _absorb_haplotypes(definition: GeneDefinition, copies: Dict[str, int]) -> None:
        for haplotype, members in definition.haplotypes.items():
            n = min(copies.get(m, 0) for m in members)
            if n <= 0:
                continue
            for m in members:
                copies[m] -= n
            copies[haplotype] = copies.get(haplotype, 0) + n

    @staticmethod
    def _select_pair(definition: GeneDefinition, copies: Dict[str, int]) -> List[str]:
        def severity(allele: str):
            info = definition.alleles[allele]
            return (FUNCTION_RANK[info.function], info.activity, _natural_key(allele))

        pool: List[str] = []
        for allele, n in copies.items():
            pool.extend([allele] * n)
        pool.sort(key=severity)

        pair = pool[:2]
        while len(pair) < 2:
            pair.append(definition.reference_allele)
        return pair
