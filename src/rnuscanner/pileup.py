"""Pileup generation (samtools mpileup) and line parsing.

Two engines produce identical text:

- ``pysam``: in-process ``pysam.mpileup`` (no samtools binary required).
- ``samtools``: external ``samtools mpileup`` process, with an optional
  per-region timeout.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional

import pysam
from pysam.utils import SamtoolsError

from .errors import MalformedPileupError, PileupSourceError
from .external import ExternalCommandError, ExternalCommandTimeout, ensure_executable_in_path, run_command
from .models import PileupLine, Region

logger = logging.getLogger(__name__)

ENGINES = ("pysam", "samtools")

# pysam runs samtools in-process and redirects the process-wide stdout while
# doing so; concurrent calls would interleave their output.
_PYSAM_LOCK = threading.Lock()


def parse_pileup_line(line: str) -> PileupLine:
    """Parse one single-sample mpileup line.

    Columns: chrom, pos, ref, depth, bases[, quals]. The quality column is
    ignored. A missing bases column is treated as empty (zero depth).
    """
    fields = line.rstrip("\r\n").split("\t")
    if len(fields) < 4:
        raise MalformedPileupError(f"expected at least 4 pileup columns, got {len(fields)}: {line!r}")
    chrom, pos_s, ref, depth_s = fields[:4]
    bases = fields[4] if len(fields) > 4 else ""
    try:
        pos = int(pos_s)
        depth = int(depth_s)
    except ValueError:
        raise MalformedPileupError(f"non-integer position/depth in pileup line: {line!r}") from None
    if depth < 0:
        raise MalformedPileupError(f"negative depth in pileup line: {line!r}")
    if len(ref) != 1:
        raise MalformedPileupError(f"reference must be a single base: {line!r}")
    return PileupLine(chrom=chrom, pos=pos, ref=ref.upper(), depth=depth, bases=bases)


def iter_pileup_lines(text: str) -> Iterator[PileupLine]:
    for line in text.splitlines():
        if not line.strip():
            continue
        yield parse_pileup_line(line)


def build_mpileup_args(
    *,
    bam_path: str | Path,
    ref_fa: str | Path,
    region: Region,
    min_baseq: Optional[int] = None,
    disable_baq: bool = False,
) -> List[str]:
    """Arguments to ``samtools mpileup`` (without the program name)."""
    args = ["-f", str(ref_fa), "-r", region.samtools_region]
    if disable_baq:
        args.append("-B")
    if min_baseq is not None:
        args += ["-Q", str(int(min_baseq))]
    args.append(str(bam_path))
    return args


@dataclass(frozen=True)
class PysamPileupSource:
    """Run mpileup in-process through pysam. Timeouts are not enforceable."""

    ref_fa: str
    min_baseq: Optional[int] = None
    disable_baq: bool = False

    engine = "pysam"

    def fetch(self, bam_path: str | Path, region: Region) -> str:
        args = build_mpileup_args(
            bam_path=bam_path,
            ref_fa=self.ref_fa,
            region=region,
            min_baseq=self.min_baseq,
            disable_baq=self.disable_baq,
        )
        logger.debug("pysam.mpileup %s", " ".join(args))
        try:
            with _PYSAM_LOCK:
                out = pysam.mpileup(*args)
        except SamtoolsError as e:
            raise PileupSourceError(f"mpileup failed for {region.samtools_region} in {bam_path}: {e}") from e
        return out if isinstance(out, str) else out.decode("utf-8", errors="replace")


@dataclass(frozen=True)
class SamtoolsPileupSource:
    """Run ``samtools mpileup`` as a child process, one per region."""

    ref_fa: str
    min_baseq: Optional[int] = None
    disable_baq: bool = False
    timeout: Optional[float] = None
    executable: str = "samtools"

    engine = "samtools"

    def fetch(self, bam_path: str | Path, region: Region) -> str:
        cmd = [self.executable, "mpileup"] + build_mpileup_args(
            bam_path=bam_path,
            ref_fa=self.ref_fa,
            region=region,
            min_baseq=self.min_baseq,
            disable_baq=self.disable_baq,
        )
        try:
            cp = run_command(cmd, check=True, timeout=self.timeout)
        except ExternalCommandTimeout as e:
            raise PileupSourceError(
                f"mpileup timed out after {e.timeout:g}s for {region.samtools_region} in {bam_path}"
            ) from e
        except ExternalCommandError as e:
            raise PileupSourceError(str(e)) from e
        except OSError as e:
            raise PileupSourceError(f"could not run {self.executable}: {e}") from e
        return cp.stdout or ""


def make_pileup_source(
    engine: str,
    *,
    ref_fa: str | Path,
    min_baseq: Optional[int] = None,
    disable_baq: bool = False,
    timeout: Optional[float] = None,
):
    """Create a pileup source for ``engine`` (``pysam`` or ``samtools``)."""
    ref_fa = str(ref_fa)
    if engine == "pysam":
        if timeout is not None:
            logger.warning("--timeout is ignored by the pysam engine; use --engine samtools to enforce it.")
        return PysamPileupSource(ref_fa=ref_fa, min_baseq=min_baseq, disable_baq=disable_baq)
    if engine == "samtools":
        ensure_executable_in_path(
            "samtools",
            hint=(
                "Install samtools (e.g. 'mamba install -c bioconda samtools') "
                "or re-run with --engine pysam."
            ),
        )
        return SamtoolsPileupSource(
            ref_fa=ref_fa, min_baseq=min_baseq, disable_baq=disable_baq, timeout=timeout
        )
    raise ValueError(f"engine must be one of: {', '.join(ENGINES)}")
