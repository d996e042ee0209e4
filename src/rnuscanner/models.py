from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple

DEL_SYMBOL = "<DEL>"
DEFAULT_ID = "."
DEFAULT_SIGNIFICANCE = "Unknown"
GENOTYPE = "0/1"


@dataclass(frozen=True)
class Region:
    """A labelled target interval.

    Coordinates are 0-based half-open, as in BED.

    Attributes
    ----------
    chrom:
        Contig name as present in the BAM header.
    start:
        0-based inclusive start.
    end:
        0-based exclusive end.
    label:
        Gene or locus name, reported as ``GENE`` in the output.
    """

    chrom: str
    start: int
    end: int
    label: str

    @property
    def samtools_region(self) -> str:
        """1-based inclusive region string for ``samtools mpileup -r``."""
        return f"{self.chrom}:{self.start + 1}-{self.end}"


@dataclass(frozen=True)
class PileupLine:
    """One position of ``samtools mpileup`` output for a single sample."""

    chrom: str
    pos: int  # 1-based
    ref: str  # uppercased
    depth: int
    bases: str


@dataclass(frozen=True)
class AggregatedAllele:
    symbol: str
    depth: int
    fraction: float  # rounded to 3 decimals


@dataclass(frozen=True)
class AnnotationEntry:
    id: str = DEFAULT_ID
    significance: str = DEFAULT_SIGNIFICANCE


@dataclass(frozen=True)
class VariantRecord:
    """A position with at least one observed non-reference allele.

    ``ids``, ``alleles`` and ``significances`` are index-aligned, one entry
    per physical allele.
    """

    chrom: str
    pos: int
    ids: Tuple[str, ...]
    ref: str
    alleles: Tuple[AggregatedAllele, ...]
    gene: str
    significances: Tuple[str, ...]
    ref_depth: int
    total_depth: int

    def __post_init__(self) -> None:
        if not (len(self.ids) == len(self.alleles) == len(self.significances)):
            raise ValueError(
                f"Unaligned allele columns at {self.chrom}:{self.pos}: "
                f"{len(self.ids)} ids, {len(self.alleles)} alleles, {len(self.significances)} significances"
            )
        if self.ref_depth + sum(a.depth for a in self.alleles) != self.total_depth:
            raise ValueError(f"Allele depths do not add up to DP at {self.chrom}:{self.pos}")

    @property
    def symbols(self) -> Tuple[str, ...]:
        return tuple(a.symbol for a in self.alleles)

    @property
    def allele_depths(self) -> Tuple[int, ...]:
        return tuple(a.depth for a in self.alleles)

    @property
    def allele_fractions(self) -> Tuple[float, ...]:
        return tuple(a.fraction for a in self.alleles)


@dataclass(frozen=True)
class SampleReport:
    """All records of one sample, in region-then-position traversal order."""

    sample: str
    records: Tuple[VariantRecord, ...] = field(default_factory=tuple)
