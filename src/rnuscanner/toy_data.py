from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pysam

from .utils import ensure_outdir, write_json

TOY_CONTIG = "chr1"
TOY_SNV_POS0 = 60
TOY_DEL_POS0 = 80


def _write_fasta(path: Path, contig: str, seq: str) -> None:
    lines = [f">{contig}"]
    for i in range(0, len(seq), 60):
        lines.append(seq[i : i + 60])
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def _mutate_base(base: str) -> str:
    for alt in ["A", "C", "G", "T"]:
        if alt != base:
            return alt
    return "A"


def _make_read(
    name: str,
    start0: int,
    seq: str,
    cigar: Optional[List[Tuple[int, int]]] = None,
    mapq: int = 60,
) -> pysam.AlignedSegment:
    a = pysam.AlignedSegment()
    a.query_name = name
    a.query_sequence = seq
    a.flag = 0
    a.reference_id = 0
    a.reference_start = start0
    a.mapping_quality = mapq
    a.cigartuples = cigar if cigar is not None else [(0, len(seq))]
    a.query_qualities = pysam.qualitystring_to_array("I" * len(seq))
    return a


def _write_bam(path: Path, ref_len: int, reads: List[pysam.AlignedSegment]) -> None:
    header = {
        "HD": {"VN": "1.6", "SO": "coordinate"},
        "SQ": [{"SN": TOY_CONTIG, "LN": ref_len}],
    }
    reads = sorted(reads, key=lambda r: r.reference_start)
    with pysam.AlignmentFile(str(path), "wb", header=header) as bam:
        for r in reads:
            bam.write(r)
    pysam.index(str(path))


def make_toy_data(*, outdir: str | Path, n_reads: int = 10, read_len: int = 50) -> Dict[str, str]:
    """Create a tiny reference, two BAMs, a BED and a known-variant table.

    - ``carrier.bam``: half of the reads carry an SNV at ``TOY_SNV_POS0`` and
      reads 0, 3, 6, 9 carry a 1 bp deletion at ``TOY_DEL_POS0``.
    - ``clean.bam``: reference-only reads over the same interval.
    - ``genes.bed``: one covered region and one region without reads.
    - ``variants.tsv``: annotates the SNV as pathogenic.

    Returns
    -------
    dict
        Paths to the generated files.
    """
    outdir_p = ensure_outdir(outdir)

    ref_seq = ("ACGT" * 50)[:200]
    ref_fa = outdir_p / "toy_ref.fa"
    _write_fasta(ref_fa, TOY_CONTIG, ref_seq)
    pysam.faidx(str(ref_fa))

    snv_ref = ref_seq[TOY_SNV_POS0]
    snv_alt = _mutate_base(snv_ref)

    carrier: List[pysam.AlignedSegment] = []
    clean: List[pysam.AlignedSegment] = []
    for i in range(n_reads):
        start0 = 40 + i
        clean.append(_make_read(f"clean_{i}", start0, ref_seq[start0 : start0 + read_len]))

        if i % 3 == 0:
            rel = TOY_DEL_POS0 - start0
            seq = list(ref_seq[start0:TOY_DEL_POS0] + ref_seq[TOY_DEL_POS0 + 1 : start0 + read_len + 1])
            cigar = [(0, rel), (2, 1), (0, read_len - rel)]
        else:
            seq = list(ref_seq[start0 : start0 + read_len])
            cigar = None
        if i % 2 == 0:
            seq[TOY_SNV_POS0 - start0] = snv_alt
        carrier.append(_make_read(f"carrier_{i}", start0, "".join(seq), cigar=cigar))

    carrier_bam = outdir_p / "carrier.bam"
    clean_bam = outdir_p / "clean.bam"
    _write_bam(carrier_bam, len(ref_seq), carrier)
    _write_bam(clean_bam, len(ref_seq), clean)

    bam_list = outdir_p / "bams.txt"
    bam_list.write_text(f"{carrier_bam}\n{clean_bam}\n", encoding="utf-8")

    gene_list = outdir_p / "genes.bed"
    gene_list.write_text(
        f"{TOY_CONTIG}\t40\t100\tTOYGENE1\n{TOY_CONTIG}\t150\t190\tTOYGENE2\n",
        encoding="utf-8",
    )

    variant_list = outdir_p / "variants.tsv"
    variant_list.write_text(
        "Chromosome\tPosition\tReference\tAlternate\tdbSNP\tSignificance\n"
        f"{TOY_CONTIG}\t{TOY_SNV_POS0 + 1}\t{snv_ref}\t{snv_alt}\trs_toy1\tPathogenic\n",
        encoding="utf-8",
    )

    summary = {
        "ref_fa": str(ref_fa),
        "carrier_bam": str(carrier_bam),
        "clean_bam": str(clean_bam),
        "bam_list": str(bam_list),
        "gene_list": str(gene_list),
        "variant_list": str(variant_list),
        "outdir": str(outdir_p),
    }

    write_json(outdir_p / "toy_summary.json", summary)
    return summary
