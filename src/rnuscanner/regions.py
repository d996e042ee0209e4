from __future__ import annotations

import logging
from pathlib import Path
from typing import List

from .errors import MalformedRegionError
from .models import Region
from .utils import open_textmaybe_gzip

logger = logging.getLogger(__name__)


def parse_region_line(line: str, *, path: str | Path | None = None, line_no: int | None = None) -> Region:
    """Parse one ``chrom<TAB>start<TAB>end<TAB>label`` line."""
    fields = line.rstrip("\r\n").split("\t")
    if len(fields) < 4:
        raise MalformedRegionError(
            f"expected 4 tab-separated fields (chrom, start, end, label), got {len(fields)}",
            path=path,
            line_no=line_no,
        )

    chrom, start_s, end_s, label = (f.strip() for f in fields[:4])
    try:
        start = int(start_s)
        end = int(end_s)
    except ValueError:
        raise MalformedRegionError(
            f"start/end must be integers, got {start_s!r}/{end_s!r}", path=path, line_no=line_no
        ) from None

    if not chrom:
        raise MalformedRegionError("empty chromosome name", path=path, line_no=line_no)
    if start < 0:
        raise MalformedRegionError(f"negative start {start}", path=path, line_no=line_no)
    if start >= end:
        raise MalformedRegionError(f"start ({start}) must be < end ({end})", path=path, line_no=line_no)
    if not label:
        raise MalformedRegionError("empty gene/locus label", path=path, line_no=line_no)

    return Region(chrom=chrom, start=start, end=end, label=label)


def load_regions(path: str | Path) -> List[Region]:
    """Load target regions from a 4-column BED file (no header).

    Regions are returned in file order. Overlapping regions are kept; each is
    scanned independently. Blank lines are ignored.

    Raises
    ------
    MalformedRegionError
        On the first invalid line. Nothing is scanned when the catalog is bad.
    """
    regions: List[Region] = []
    with open_textmaybe_gzip(path, "rt") as fh:
        for line_no, line in enumerate(fh, start=1):
            if not line.strip():
                continue
            regions.append(parse_region_line(line, path=path, line_no=line_no))

    if not regions:
        logger.warning("No regions found in %s", path)
    else:
        logger.info("Loaded %d regions from %s", len(regions), path)
    return regions
