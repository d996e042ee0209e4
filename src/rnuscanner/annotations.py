"""Curated known-variant lookup.

The table is a TSV with a header line and six columns::

    Chromosome  Position  Reference  Alternate  dbSNP  Significance

Rows are keyed by ``(chrom, pos, ref, alt)``. The resulting lookup is
built once per run and shared read-only by every sample worker.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

from .errors import MalformedAnnotationError
from .models import AnnotationEntry
from .utils import open_textmaybe_gzip

logger = logging.getLogger(__name__)

AnnotationKey = Tuple[str, int, str, str]

_DEFAULT_ENTRY = AnnotationEntry()


@dataclass(frozen=True)
class AnnotationLookup:
    """Immutable mapping of known variants to (id, significance)."""

    entries: Mapping[AnnotationKey, AnnotationEntry] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def __len__(self) -> int:
        return len(self.entries)

    def resolve(self, chrom: str, pos: int, ref: str, alt: str) -> AnnotationEntry:
        """Return the entry for a key, or the ``.``/``Unknown`` default."""
        return self.entries.get((chrom, int(pos), ref.upper(), alt.upper()), _DEFAULT_ENTRY)


def load_annotations(path: Optional[str | Path], has_annotation: bool = True) -> AnnotationLookup:
    """Load the known-variant table into an :class:`AnnotationLookup`.

    Parameters
    ----------
    path:
        TSV (optionally gzipped). The first line is a header and is skipped.
    has_annotation:
        If False (or ``path`` is None), an empty lookup is returned and every
        allele resolves to ``id="."``, ``significance="Unknown"``.

    Raises
    ------
    MalformedAnnotationError
        A row has fewer than six fields or a non-integer position.
    """
    if not has_annotation or path is None:
        return AnnotationLookup()

    table: Dict[AnnotationKey, AnnotationEntry] = {}
    duplicates = 0

    with open_textmaybe_gzip(path, "rt") as fh:
        for line_no, line in enumerate(fh, start=1):
            if line_no == 1:
                continue  # header
            if not line.strip():
                continue
            fields = [f.strip() for f in line.rstrip("\r\n").split("\t")]
            if len(fields) < 6:
                raise MalformedAnnotationError(
                    f"expected 6 tab-separated fields, got {len(fields)}", path=path, line_no=line_no
                )
            chrom, pos_s, ref, alt, var_id, significance = fields[:6]
            try:
                pos = int(pos_s)
            except ValueError:
                raise MalformedAnnotationError(
                    f"position must be an integer, got {pos_s!r}", path=path, line_no=line_no
                ) from None

            key = (chrom, pos, ref.upper(), alt.upper())
            if key in table:
                duplicates += 1
                logger.debug("Duplicate annotation for %s (line %d); last one wins", key, line_no)
            table[key] = AnnotationEntry(id=var_id or ".", significance=significance or "Unknown")

    if duplicates:
        logger.warning("%d duplicate annotation keys in %s; later rows override earlier ones", duplicates, path)
    logger.info("Loaded %d known variants from %s", len(table), path)
    return AnnotationLookup(entries=MappingProxyType(table))
