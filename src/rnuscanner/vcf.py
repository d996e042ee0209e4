from __future__ import annotations

import logging
from pathlib import Path
from typing import List

import pysam
from jinja2 import Template

from .models import GENOTYPE, SampleReport, VariantRecord

logger = logging.getLogger(__name__)


_VCF_HEADER = Template(
    """##fileformat=VCFv4.2
##INFO=<ID=GENE,Number=1,Type=String,Description="Gene or locus name">
##INFO=<ID=SIGNIFICANCE,Number=.,Type=String,Description="variant significance per ALT allele">
##FORMAT=<ID=GT,Number=1,Type=String,Description="Genotype">
##FORMAT=<ID=AD,Number=R,Type=Integer,Description="Allele depths for ref and alt">
##FORMAT=<ID=DP,Number=1,Type=Integer,Description="Read depth">
##FORMAT=<ID=AF,Number=A,Type=Float,Description="Allele fraction (alt/DP)">
{% for contig in contigs -%}
##contig=<ID={{ contig }}>
{% endfor -%}
##source=RNUscanner {{ version }}
#CHROM	POS	ID	REF	ALT	QUAL	FILTER	INFO	FORMAT	{{ sample }}
"""
)


def format_record(rec: VariantRecord) -> str:
    """Render one record as a tab-separated VCF line (no newline)."""
    info = f"GENE={rec.gene};SIGNIFICANCE={','.join(rec.significances)}"
    ad = ",".join(str(d) for d in (rec.ref_depth,) + rec.allele_depths)
    af = ",".join(f"{f:.3f}" for f in rec.allele_fractions)
    sample_col = f"{GENOTYPE}:{ad}:{rec.total_depth}:{af}"
    return "\t".join(
        [
            rec.chrom,
            str(rec.pos),
            ",".join(rec.ids),
            rec.ref,
            ",".join(rec.symbols),
            ".",
            "PASS",
            info,
            "GT:AD:DP:AF",
            sample_col,
        ]
    )


def render_vcf(report: SampleReport, *, version: str = "") -> str:
    contigs: List[str] = []
    for rec in report.records:
        if rec.chrom not in contigs:
            contigs.append(rec.chrom)
    # jinja2 drops the template's trailing newline
    header = _VCF_HEADER.render(sample=report.sample, contigs=contigs, version=version).rstrip("\n") + "\n"
    body = "".join(format_record(rec) + "\n" for rec in report.records)
    return header + body


def write_vcf(
    report: SampleReport,
    out_path: str | Path,
    *,
    version: str = "",
    bgzip: bool = False,
) -> Path:
    """Write a sample report as VCF.

    Records are written in traversal order (regions in catalog order), which is
    not necessarily coordinate-sorted. With ``bgzip`` the file is compressed
    and tabix-indexed; records are then sorted by (contig order, pos) first,
    as tabix requires.
    """
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)

    if bgzip:
        order = {}
        for rec in report.records:
            order.setdefault(rec.chrom, len(order))
        report = SampleReport(
            sample=report.sample,
            records=tuple(sorted(report.records, key=lambda r: (order[r.chrom], r.pos))),
        )

    out_path.write_text(render_vcf(report, version=version), encoding="utf-8")

    if not bgzip:
        return out_path

    gz_path = out_path.with_name(out_path.name + ".gz")
    pysam.tabix_compress(str(out_path), str(gz_path), force=True)
    pysam.tabix_index(str(gz_path), preset="vcf", force=True)
    out_path.unlink()
    logger.debug("Compressed and indexed %s", gz_path)
    return gz_path
