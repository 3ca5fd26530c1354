"""
Shared fixtures: the bundled guideline dataset and small VCF builders.
"""

import pytest

from generate_test_vcf import curated_rows, make_empty_body, make_missing_marker, make_reference
from pharmatwin.core.config import reset_config
from pharmatwin.services.pharmacogenomics.guideline_loader import get_guidelines, reload_guidelines
from pharmatwin.services.vcf.parser import Variant

HEADER = "\n".join([
    "##fileformat=VCFv4.2",
    '##FORMAT=<ID=GT,Number=1,Type=String,Description="Genotype">',
    "#CHROM\tPOS\tID\tREF\tALT\tQUAL\tFILTER\tINFO\tFORMAT\tSAMPLE",
])


def vcf_text(*calls):
    """VCF document with one row per (rsid, genotype) pair."""
    rows = [HEADER]
    for i, (rsid, gt) in enumerate(calls, start=1):
        rows.append(f"chr1\t{1000 + i}\t{rsid}\tA\tG\t50\tPASS\t.\tGT:DP\t{gt}:30")
    return "\n".join(rows) + "\n"


def variant(rsid, gt, position=1000):
    return Variant(
        id=rsid,
        chromosome="chr1",
        position=position,
        reference_allele="A",
        alternate_allele="G",
        sample_genotype_field=f"{gt}:30",
    )


@pytest.fixture
def tables():
    return get_guidelines()


@pytest.fixture
def make_vcf():
    return vcf_text


@pytest.fixture
def make_variant():
    return variant


@pytest.fixture
def reference_vcf(tables):
    """Every curated rsID homozygous reference."""
    return make_reference(tables)


@pytest.fixture
def empty_body_vcf():
    return make_empty_body()


@pytest.fixture
def missing_marker_vcf(tables):
    return make_missing_marker(tables)


@pytest.fixture
def curated(tables):
    return curated_rows(tables)


@pytest.fixture
def restore_config():
    """Reset global configuration (and the dataset singleton) after the test."""
    yield
    reset_config()
    reload_guidelines()
