"""Per-sample screening: pileup -> decode -> aggregate -> record -> VCF.

Samples are independent units of work and run on a bounded thread pool.
Workers share only the read-only region list and annotation lookup; each
owns its own assembler and counters.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from tqdm import tqdm

from .aggregate import aggregate_alleles
from .annotations import AnnotationLookup
from .decoder import decode_bases
from .errors import InternalConsistencyError, MalformedPileupError, PileupSourceError
from .models import Region, VariantRecord
from .pileup import iter_pileup_lines
from .records import SampleReportAssembler, build_record
from .utils import ensure_outdir, safe_filename
from .validation import check_bam_index, sample_name_from_bam, unique_sample_names
from .vcf import write_vcf

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScreenSettings:
    """Output options shared by all sample workers."""

    vcf_dir: Path
    mpileup_dir: Optional[Path] = None  # keep pileups of regions with records
    bgzip: bool = False
    version: str = ""


def _new_counts() -> Dict[str, int]:
    return {
        "regions_scanned": 0,
        "regions_with_variants": 0,
        "regions_empty": 0,
        "regions_failed": 0,
        "positions_seen": 0,
        "positions_dropped": 0,
        "records": 0,
    }


def screen_pileup(
    text: str,
    region: Region,
    lookup: AnnotationLookup,
    counts: Optional[Dict[str, int]] = None,
) -> List[VariantRecord]:
    """Turn one region's mpileup text into variant records.

    Raises
    ------
    MalformedPileupError
        Any line cannot be parsed or decoded; the caller drops the region.
    """
    if counts is None:
        counts = _new_counts()

    records: List[VariantRecord] = []
    for line in iter_pileup_lines(text):
        counts["positions_seen"] += 1
        tally = decode_bases(line.bases, line.ref)
        try:
            alleles, ref_depth = aggregate_alleles(tally, line.depth)
        except InternalConsistencyError as e:
            counts["positions_dropped"] += 1
            logger.error("Dropping %s:%d (%s): %s", line.chrom, line.pos, region.label, e)
            continue

        rec = build_record(
            line.chrom,
            line.pos,
            line.ref,
            alleles,
            ref_depth,
            line.depth,
            region.label,
            lookup,
        )
        if rec is not None:
            records.append(rec)
    return records


def screen_sample(
    bam_path: str | Path,
    regions: Sequence[Region],
    *,
    source,
    lookup: AnnotationLookup,
    settings: ScreenSettings,
    sample: Optional[str] = None,
) -> Dict[str, Any]:
    """Scan every region of one BAM and write its VCF if anything was found.

    Any failure while fetching or decoding one region's pileup (engine
    errors, timeouts, undecodable lines, I/O errors from a damaged BAM) skips
    that region only. ``sample`` overrides the name derived from the BAM file
    name. Returns a JSON-friendly summary.
    """
    t0 = time.time()
    if sample is None:
        sample = sample_name_from_bam(bam_path)
    counts = _new_counts()
    result: Dict[str, Any] = {
        "sample": sample,
        "bam_path": str(bam_path),
        "status": "no_variants",
        "vcf": None,
        "counts": counts,
        "records_by_gene": {},
        "allele_fractions": [],
    }

    logger.info("Processing sample %s", sample)

    if not Path(bam_path).exists():
        logger.warning("BAM not found for sample %s: %s", sample, bam_path)
        result["status"] = "missing_bam"
        return result
    try:
        check_bam_index(bam_path)
    except ValueError as e:
        logger.warning("Skipping sample %s: %s", sample, e)
        result["status"] = "unindexed_bam"
        return result

    assembler = SampleReportAssembler(sample)
    by_gene: Dict[str, int] = {}

    for region in regions:
        counts["regions_scanned"] += 1
        try:
            text = source.fetch(bam_path, region)
        except PileupSourceError as e:
            counts["regions_failed"] += 1
            logger.warning("Sample %s, region %s (%s): %s", sample, region.label, region.samtools_region, e)
            continue
        except Exception as e:
            counts["regions_failed"] += 1
            logger.warning(
                "Sample %s, region %s (%s): pileup failed, region skipped: %s: %s",
                sample,
                region.label,
                region.samtools_region,
                e.__class__.__name__,
                e,
                exc_info=True,
            )
            continue

        if not text.strip():
            counts["regions_empty"] += 1
            logger.info("No coverage for %s in %s", region.samtools_region, sample)
            continue

        # Position counters only count once the whole region decoded.
        region_counts = {"positions_seen": 0, "positions_dropped": 0}
        try:
            records = screen_pileup(text, region, lookup, region_counts)
        except MalformedPileupError as e:
            counts["regions_failed"] += 1
            logger.warning(
                "Sample %s, region %s (%s): could not decode pileup, region skipped: %s",
                sample,
                region.label,
                region.samtools_region,
                e,
            )
            continue
        except Exception as e:
            counts["regions_failed"] += 1
            logger.warning(
                "Sample %s, region %s (%s): unexpected error, region skipped: %s: %s",
                sample,
                region.label,
                region.samtools_region,
                e.__class__.__name__,
                e,
                exc_info=True,
            )
            continue

        for key, n in region_counts.items():
            counts[key] += n
        if not records:
            continue

        counts["regions_with_variants"] += 1
        assembler.extend(records)
        by_gene[region.label] = by_gene.get(region.label, 0) + len(records)
        if settings.mpileup_dir is not None:
            pileup_path = settings.mpileup_dir / f"{sample}_{safe_filename(region.label)}.mpileup.txt"
            pileup_path.write_text(text, encoding="utf-8")

    report = assembler.finalize()
    if report is None:
        logger.info("No mismatches found in %s", sample)
    else:
        vcf_path = write_vcf(
            report,
            settings.vcf_dir / f"{sample}.vcf",
            version=settings.version,
            bgzip=settings.bgzip,
        )
        counts["records"] = len(report.records)
        result["status"] = "variants"
        result["vcf"] = str(vcf_path)
        result["allele_fractions"] = [f for rec in report.records for f in rec.allele_fractions]
        logger.info("Saved VCF to %s (%d records)", vcf_path, len(report.records))

    result["records_by_gene"] = by_gene
    result["runtime_seconds"] = float(time.time() - t0)
    return result


def screen_samples(
    bam_paths: Sequence[str | Path],
    regions: Sequence[Region],
    *,
    source,
    lookup: AnnotationLookup,
    settings: ScreenSettings,
    threads: int = 1,
    progress: bool = True,
) -> Dict[str, Any]:
    """Screen many samples on a bounded worker pool.

    An unexpected exception in one sample is logged and reported as a failed
    sample; the others continue.
    """
    t0 = time.time()
    ensure_outdir(settings.vcf_dir)
    if settings.mpileup_dir is not None:
        ensure_outdir(settings.mpileup_dir)

    threads = max(1, int(threads))
    names = unique_sample_names(bam_paths)
    results: List[Optional[Dict[str, Any]]] = [None] * len(bam_paths)

    with ThreadPoolExecutor(max_workers=threads) as pool:
        futures = {
            pool.submit(
                screen_sample,
                bam,
                regions,
                source=source,
                lookup=lookup,
                settings=settings,
                sample=names[i],
            ): i
            for i, bam in enumerate(bam_paths)
        }
        it = as_completed(futures)
        if progress:
            it = tqdm(it, total=len(futures), unit="sample", desc="Screening samples")
        for fut in it:
            i = futures[fut]
            try:
                results[i] = fut.result()
            except Exception as e:
                logger.exception("Sample %s failed: %s", names[i], e)
                results[i] = {
                    "sample": names[i],
                    "bam_path": str(bam_paths[i]),
                    "status": "failed",
                    "error": f"{e.__class__.__name__}: {e}",
                    "vcf": None,
                    "counts": _new_counts(),
                    "records_by_gene": {},
                    "allele_fractions": [],
                }

    samples = [r for r in results if r is not None]
    totals = {
        "samples": len(samples),
        "samples_with_variants": sum(1 for r in samples if r["status"] == "variants"),
        "samples_without_variants": sum(1 for r in samples if r["status"] == "no_variants"),
        "samples_failed": sum(1 for r in samples if r["status"] not in ("variants", "no_variants")),
        "records": sum(int(r["counts"]["records"]) for r in samples),
    }
    return {
        "regions": len(regions),
        "annotations": len(lookup),
        "engine": getattr(source, "engine", "custom"),
        "threads": threads,
        "totals": totals,
        "samples": samples,
        "runtime_seconds": float(time.time() - t0),
    }
