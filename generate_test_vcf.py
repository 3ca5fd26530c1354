"""
generate_test_vcf.py
====================
Development utility to generate synthetic VCF test files.

Usage:
    python generate_test_vcf.py                  # writes test_data/ directory
    python generate_test_vcf.py --out my_dir     # custom output directory

NOT a deployed project asset - this is for local testing only.
Rows are built from the curated rsIDs of the bundled guideline dataset, so
every generated file exercises the diplotype caller.
"""
from __future__ import annotations

import argparse
import random
from pathlib import Path
from typing import Dict, List, Tuple

from pharmatwin.services.pharmacogenomics.guideline_loader import GuidelineDataset, get_guidelines

Row = Tuple[str, int, str, str, str]

ZYGOSITIES = ["0/0", "0/1", "1/1"]

# Unresolved calls, for annotation-complete edge cases
AMBIGUOUS_GENOTYPES = ["./.", "1/0", "0|1", "1/2"]

NOISE_VARIANTS: List[Row] = [
    ("chr1", 925952, "rs2799066", "G", "A"),
    ("chr3", 12393541, "rs145536", "C", "T"),
    ("chr5", 88888888, "rs123456", "A", "G"),
    ("chr7", 42000000, "rs987654", "T", "C"),
    ("chr11", 65400000, "rs111111", "G", "T"),
]


def curated_rows(tables: GuidelineDataset) -> Dict[str, List[Row]]:
    rows: Dict[str, List[Row]] = {}
    for gene, definition in tables.genes.items():
        rows[gene] = [
            (v.chrom or ".", v.pos or 0, rsid, v.ref or "N", v.alt or "N")
            for rsid, v in definition.variants.items()
        ]
    return rows


def _header(patient_id: str, vcf_version: str = "VCFv4.2") -> str:
    return "\n".join([
        f"##fileformat={vcf_version}",
        f"##SAMPLE=<ID={patient_id}>",
        '##FORMAT=<ID=GT,Number=1,Type=String,Description="Genotype">',
        '##FORMAT=<ID=DP,Number=1,Type=Integer,Description="Read depth">',
        f"#CHROM\tPOS\tID\tREF\tALT\tQUAL\tFILTER\tINFO\tFORMAT\t{patient_id}",
    ])


def _row(row: Row, gt: str, depth: int = 30) -> str:
    chrom, pos, rsid, ref, alt = row
    return f"{chrom}\t{pos}\t{rsid}\t{ref}\t{alt}\t100\tPASS\t.\tGT:DP\t{gt}:{depth}"


# ---------------------------------------------------------------------------
# VCF file generators
# ---------------------------------------------------------------------------

def make_random_panel(tables: GuidelineDataset, patient_id: str = "PATIENT_PANEL", seed: int = 42) -> str:
    """Every curated rsID with a random resolved genotype, plus noise rows."""
    rng = random.Random(seed)
    rows = [_header(patient_id)]
    for gene_rows in curated_rows(tables).values():
        for row in gene_rows:
            rows.append(_row(row, rng.choice(ZYGOSITIES)))
    for row in NOISE_VARIANTS:
        rows.append(_row(row, rng.choice(ZYGOSITIES)))
    return "\n".join(rows) + "\n"


def make_reference(tables: GuidelineDataset, patient_id: str = "PATIENT_REFERENCE") -> str:
    """All curated rsIDs homozygous reference: every drug should be Safe."""
    rows = [_header(patient_id)]
    for gene_rows in curated_rows(tables).values():
        rows.extend(_row(row, "0/0") for row in gene_rows)
    return "\n".join(rows) + "\n"


def make_manual_test(tables: GuidelineDataset, patient_id: str = "PATIENT_MANUAL_TEST") -> str:
    """Small hand-crafted VCF used for quick manual inspection."""
    by_id = {row[2]: row for gene_rows in curated_rows(tables).values() for row in gene_rows}
    rows = [_header(patient_id)]
    rows.append(_row(by_id["rs4244285"], "1/1"))   # CYP2C19 *2/*2
    rows.append(_row(by_id["rs3892097"], "0/1"))   # CYP2D6 *1/*4
    rows.append(_row(by_id["rs1800460"], "0/1"))   # TPMT *3B + *3C -> *3A
    rows.append(_row(by_id["rs1142345"], "0/1"))
    rows.append(_row(by_id["rs3918290"], "./."))   # DPYD unresolved
    rows.append(_row(NOISE_VARIANTS[0], "0/1"))
    return "\n".join(rows) + "\n"


def make_single_variant(row: Row, gt: str, patient_id: str = "PATIENT_SINGLE") -> str:
    """One-variant VCF - used for unit-level checks."""
    return _header(patient_id) + "\n" + _row(row, gt) + "\n"


def make_empty_body(patient_id: str = "PATIENT_EMPTY") -> str:
    """VCF with no data rows (edge case)."""
    return _header(patient_id) + "\n"


def make_missing_marker(tables: GuidelineDataset) -> str:
    """Well-formed rows without the ##fileformat marker (edge case)."""
    body = make_reference(tables)
    return "\n".join(line for line in body.splitlines() if not line.startswith("##fileformat")) + "\n"


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def main() -> None:
    parser = argparse.ArgumentParser(description="Generate synthetic pharmacogenomics VCF test files.")
    parser.add_argument("--out", default="test_data", help="Output directory (default: test_data)")
    parser.add_argument("--seed", type=int, default=42, help="Random seed for the panel file")
    args = parser.parse_args()

    tables = get_guidelines()
    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)

    files: Dict[str, str] = {
        "random_panel.vcf": make_random_panel(tables, seed=args.seed),
        "reference.vcf": make_reference(tables),
        "manual_test.vcf": make_manual_test(tables),
        "empty_body.vcf": make_empty_body(),
        "missing_marker.vcf": make_missing_marker(tables),
    }
    # One file per curated rsID per zygosity
    for gene, gene_rows in curated_rows(tables).items():
        for row in gene_rows:
            for label, gt in [("het", "0/1"), ("hom_alt", "1/1"), ("hom_ref", "0/0")]:
                fname = f"single_{gene.lower()}_{row[2]}_{label}.vcf"
                files[fname] = make_single_variant(row, gt, patient_id=f"PT_{gene}_{label.upper()}")
    for gt in AMBIGUOUS_GENOTYPES:
        fname = f"ambiguous_{gt.replace('/', '_').replace('|', 'p').replace('.', 'x')}.vcf"
        files[fname] = make_single_variant(curated_rows(tables)["CYP2D6"][0], gt)

    for fname, content in files.items():
        path = out_dir / fname
        path.write_text(content, encoding="utf-8")
        print(f"  wrote {path}  ({len(content.splitlines())} lines)")

    print(f"\nDone: {len(files)} VCF files written to '{out_dir}/'")


if __name__ == "__main__":
    main()
