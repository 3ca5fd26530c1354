from __future__ import annotations

import gzip
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Union

from pharmatwin.exceptions import FormatError

logger = logging.getLogger(__name__)


# ----------------------------------------------------------------------
# Constants
# ----------------------------------------------------------------------

FORMAT_MARKER = "##fileformat=VCF"

GZIP_MAGIC = b"\x1f\x8b"

# Fixed VCF v4.x column positions, used when no #CHROM row is present
DEFAULT_COLUMNS: Dict[str, int] = {
    "CHROM": 0,
    "POS": 1,
    "ID": 2,
    "REF": 3,
    "ALT": 4,
    "FORMAT": 8,
    "SAMPLE": 9,
}

VcfDocument = Union[str, bytes, Path, Iterable[str]]


@dataclass(frozen=True)
class Variant:
    id: Optional[str]
    chromosome: str
    position: int
    reference_allele: str
    alternate_allele: str
    sample_genotype_field: str

    @property
    def genotype(self) -> str:
        """First colon-delimited token of the sample field, e.g. ``0/1``."""
        return self.sample_genotype_field.split(":", 1)[0].strip()


def parse_vcf(document: VcfDocument) -> List[Variant]:
    """
    Parse a VCF document into variant records, in document order.

    The ``##fileformat=VCF`` marker must appear in a metadata line before the
    first data row; otherwise :class:`FormatError` is raised. A document with a
    valid header and no parseable rows returns an empty list.

    Args:
        document: File text, raw bytes (optionally gzip-compressed), a Path
                  (``.gz`` supported) or an iterable of lines.
    """
    variants = list(iter_vcf_variants(_normalize_to_lines(document)))
    logger.info("Parsed %d variant records", len(variants))
    return variants


def iter_vcf_variants(lines: Iterable[str]) -> Iterator[Variant]:
    """Yield Variant records lazily, enforcing the format marker gate."""
    marker_seen = False
    columns = dict(DEFAULT_COLUMNS)
    skipped = 0

    for raw in lines:
        line = raw.rstrip("\r\n")
        if not line.strip():
            continue
        if line.startswith("##"):
            if line.startswith(FORMAT_MARKER):
                marker_seen = True
            continue
        if line.startswith("#CHROM"):
            columns = _locate_columns(line)
            continue
        if line.startswith("#"):
            continue

        # First data row: the marker must already have been seen
        if not marker_seen:
            raise FormatError(
                f"Missing '{FORMAT_MARKER}' header before the first data row"
            )

        variant = _parse_variant_line(line, columns)
        if variant is None:
            skipped += 1
            continue
        yield variant

    if not marker_seen:
        raise FormatError(f"Missing '{FORMAT_MARKER}' header")

    if skipped:
        logger.warning("Skipped %d malformed VCF rows", skipped)


def _locate_columns(header_line: str) -> Dict[str, int]:
    """
    Map column names from the #CHROM row to indexes.

    The sample column is the one right after FORMAT; when there is no FORMAT
    column the fixed VCF position is assumed.
    """
    names = [c.strip() for c in header_line.lstrip("#").split("\t")]
    index = {name.upper(): i for i, name in enumerate(names)}

    columns = dict(DEFAULT_COLUMNS)
    for key in ("CHROM", "POS", "ID", "REF", "ALT", "FORMAT"):
        if key in index:
            columns[key] = index[key]
    if "FORMAT" in index:
        columns["SAMPLE"] = index["FORMAT"] + 1
    return columns


def _parse_variant_line(line: str, columns: Dict[str, int]) -> Optional[Variant]:
    cols = line.split("\t")
    needed = max(columns.values()) + 1
    if len(cols) < needed:
        # Malformed line -> skip gracefully
        return None

    try:
        pos = int(cols[columns["POS"]])
    except ValueError:
        return None  # bad position like 'BADPOS'

    vid = cols[columns["ID"]].strip()
    return Variant(
        id=None if vid in (".", "") else vid,
        chromosome=cols[columns["CHROM"]].strip(),
        position=pos,
        reference_allele=cols[columns["REF"]].strip(),
        alternate_allele=cols[columns["ALT"]].strip(),
        sample_genotype_field=cols[columns["SAMPLE"]].strip(),
    )


def _normalize_to_lines(content: VcfDocument) -> Iterator[str]:
    if isinstance(content, Path):
        if content.suffix == ".gz":
            with gzip.open(content, "rt", encoding="utf-8", errors="replace") as f:
                yield from f
        else:
            with content.open("r", encoding="utf-8", errors="replace", newline="") as f:
                yield from f
        return
    if isinstance(content, (bytes, bytearray)):
        data = bytes(content)
        if data[:2] == GZIP_MAGIC:
            data = gzip.decompress(data)
        text = data.decode("utf-8", errors="replace")
        yield from text.splitlines(True)
        return
    if isinstance(content, str):
        yield from content.splitlines(True)
        return
    yield from content

