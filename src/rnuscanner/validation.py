from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Sequence, Set

import pysam

logger = logging.getLogger(__name__)


def sample_name_from_bam(bam_path: str | Path) -> str:
    """Sample name = BAM file name without a trailing ``.bam``."""
    name = Path(bam_path).name
    if name.endswith(".bam"):
        name = name[: -len(".bam")]
    return name


def read_bam_list(path: str | Path) -> List[str]:
    """Read BAM paths, one per line.

    Blank lines are skipped; carriage returns and trailing whitespace are
    stripped (lists edited on Windows are common).
    """
    bams: List[str] = []
    with open(path, "rt", encoding="utf-8") as fh:
        for line in fh:
            p = line.replace("\r", "").rstrip()
            if not p.strip():
                continue
            bams.append(p)

    if not bams:
        raise ValueError(f"No BAM paths found in {path}")

    names = unique_sample_names(bams)
    for b, s in zip(bams, names):
        base = sample_name_from_bam(b)
        if s != base:
            logger.warning("Duplicate sample name '%s' (%s); its outputs are written as '%s'.", base, b, s)
    return bams


def unique_sample_names(bam_paths: Sequence[str | Path]) -> List[str]:
    """Sample names for ``bam_paths`` in input order, made unique.

    The first BAM with a given name keeps it; later ones get ``_2``, ``_3``...
    so that concurrent workers never share an output path.
    """
    taken: Set[str] = set()
    counts: Dict[str, int] = {}
    names: List[str] = []
    for b in bam_paths:
        base = sample_name_from_bam(b)
        name = base
        while name in taken:
            counts[base] = counts.get(base, 1) + 1
            name = f"{base}_{counts[base]}"
        taken.add(name)
        names.append(name)
    return names


def check_bam_index(bam_path: str | Path) -> None:
    """Ensure a BAM has an index; raise ValueError with fix instructions."""
    bam = Path(bam_path)
    bai1 = bam.with_suffix(bam.suffix + ".bai")
    bai2 = bam.with_suffix(".bai")
    csi = bam.with_suffix(bam.suffix + ".csi")
    if bai1.exists() or bai2.exists() or csi.exists():
        return
    raise ValueError(
        "BAM is not indexed. Run: samtools index " + str(bam)
    )


def ensure_faidx(ref_fa: str | Path) -> Path:
    """Ensure the reference FASTA has a .fai index, creating it if missing."""
    ref = Path(ref_fa)
    if not ref.exists():
        raise FileNotFoundError(f"Reference FASTA not found: {ref}")
    fai = ref.with_suffix(ref.suffix + ".fai")
    if not fai.exists():
        logger.info("Creating FASTA index: %s", fai)
        pysam.faidx(str(ref))
    return fai
