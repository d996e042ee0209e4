from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence

from .annotations import AnnotationLookup
from .models import AggregatedAllele, SampleReport, VariantRecord

logger = logging.getLogger(__name__)


def build_record(
    chrom: str,
    pos: int,
    ref: str,
    aggregated: Sequence[AggregatedAllele],
    ref_depth: int,
    total_depth: int,
    gene: str,
    lookup: AnnotationLookup,
) -> Optional[VariantRecord]:
    """Merge aggregated alleles with known-variant annotations.

    Returns None when ``aggregated`` is empty. ``<DEL>`` is looked up like
    any other allele symbol.
    """
    if not aggregated:
        return None

    ref = ref.upper()
    ids: List[str] = []
    significances: List[str] = []
    for allele in aggregated:
        entry = lookup.resolve(chrom, pos, ref, allele.symbol)
        ids.append(entry.id)
        significances.append(entry.significance)

    return VariantRecord(
        chrom=chrom,
        pos=int(pos),
        ids=tuple(ids),
        ref=ref,
        alleles=tuple(aggregated),
        gene=gene,
        significances=tuple(significances),
        ref_depth=int(ref_depth),
        total_depth=int(total_depth),
    )


class SampleReportAssembler:
    """Collect one sample's records in traversal order."""

    def __init__(self, sample: str) -> None:
        self.sample = sample
        self._records: List[VariantRecord] = []

    def __len__(self) -> int:
        return len(self._records)

    def add(self, record: VariantRecord) -> None:
        self._records.append(record)

    def extend(self, records: Iterable[VariantRecord]) -> None:
        for rec in records:
            self.add(rec)

    def finalize(self) -> Optional[SampleReport]:
        """Return the report, or None when nothing was found."""
        if not self._records:
            logger.debug("No records for sample %s", self.sample)
            return None
        return SampleReport(sample=self.sample, records=tuple(self._records))
