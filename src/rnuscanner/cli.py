from __future__ import annotations

import argparse
import datetime as _dt
import json
import logging
import sys
from pathlib import Path
from typing import Dict, Optional

from . import __version__
from .annotations import load_annotations
from .decoder import decode_bases, scan_bases
from .doctor import collect_checks
from .external import ExternalCommandError
from .pileup import ENGINES, make_pileup_source
from .plotting import plot_allele_fraction_hist, plot_records_by_gene, plot_records_per_sample
from .regions import load_regions
from .report import render_report
from .screening import ScreenSettings, screen_samples
from .toy_data import make_toy_data
from .utils import ensure_outdir, write_json
from .validation import ensure_faidx, read_bam_list, unique_sample_names


def _setup_logging(verbosity: int, *, logfile: Optional[Path] = None) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    log_fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(level=level, format=log_fmt, stream=sys.stderr)

    if logfile is not None:
        # The run log always keeps INFO so that per-sample outcomes are recorded.
        file_level = min(level, logging.INFO)
        logfile.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logfile)
        fh.setLevel(file_level)
        fh.setFormatter(logging.Formatter(log_fmt))
        root = logging.getLogger()
        root.addHandler(fh)
        root.setLevel(file_level)
        for h in root.handlers:
            if h is not fh and h.level == logging.NOTSET:
                h.setLevel(level)


def _path_exists(p: str) -> str:
    if not Path(p).exists():
        raise argparse.ArgumentTypeError(f"Path does not exist: {p}")
    return p


def _positive_float(s: str) -> float:
    v = float(s)
    if v <= 0:
        raise argparse.ArgumentTypeError(f"Must be > 0: {s}")
    return v


def _log_path(outdir: Path, name: str) -> Path:
    return outdir / "logs" / name


def _handle_error(err: Exception, *, log_path: Optional[Path] = None) -> int:
    if isinstance(err, ExternalCommandError):
        msg = str(err)
    else:
        msg = f"{err.__class__.__name__}: {err}"

    sys.stderr.write(msg + "\n")
    if log_path is not None:
        sys.stderr.write(f"See log: {log_path}\n")
    return 2


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="rnuscanner",
        description=(
            "RNUScanner: report mismatches between reads and the reference in target regions "
            "(e.g. off-target RNU genes, segmental duplications) as simplified per-sample VCFs."
        ),
    )
    p.add_argument("--version", action="version", version=f"rnuscanner {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # -----------------
    # quickstart
    # -----------------
    sub.add_parser(
        "quickstart",
        help="Print ready-to-run recipes for common scenarios.",
    )

    # -----------------
    # screen
    # -----------------
    s = sub.add_parser(
        "screen",
        help="Scan target regions of each BAM for mismatches and write one VCF per sample.",
    )
    s.add_argument(
        "--gene-list",
        required=True,
        type=_path_exists,
        help="BED file with 4 tab-delimited fields (chromosome, start, end, gene/locus name); no header.",
    )
    s.add_argument(
        "--bam-list",
        required=True,
        type=_path_exists,
        help="Text file with one BAM path per line (sorted, indexed).",
    )
    s.add_argument("--output-dir", required=True, help="Output directory (created if missing).")
    s.add_argument(
        "--reference",
        required=True,
        type=_path_exists,
        help="Reference FASTA used for the BAMs (a .fai index is created if missing).",
    )
    s.add_argument(
        "--variant-list",
        default=None,
        type=_path_exists,
        help=(
            "Optional TSV of known variants with a header and 6 fields: "
            "Chromosome, Position, Reference, Alternate, dbSNP, Significance."
        ),
    )
    s.add_argument("--threads", type=int, default=1, help="Samples processed in parallel.")
    s.add_argument(
        "--engine",
        default="pysam",
        choices=list(ENGINES),
        help="Pileup engine: in-process pysam (default) or an external samtools binary.",
    )
    s.add_argument(
        "--timeout",
        type=_positive_float,
        default=None,
        help="Seconds allowed per (sample, region) pileup; only enforced with --engine samtools.",
    )
    s.add_argument(
        "--min-baseq",
        type=int,
        default=None,
        help="samtools mpileup -Q (default: samtools default, 13).",
    )
    s.add_argument("--no-baq", action="store_true", help="Disable BAQ computation (samtools mpileup -B).")
    s.add_argument(
        "--keep-mpileup",
        action="store_true",
        help="Keep mpileup text of regions with variants in OUTPUT_DIR/mpileup.",
    )
    s.add_argument("--bgzip", action="store_true", help="bgzip and tabix-index each VCF.")
    s.add_argument("--no-report", action="store_true", help="Skip the HTML report and plots.")
    s.add_argument("--no-progress", action="store_true", help="Hide the progress bar.")
    s.add_argument("--dry-run", action="store_true", help="Validate inputs and print planned outputs.")
    s.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    # -----------------
    # decode
    # -----------------
    dc = sub.add_parser(
        "decode",
        help="Decode a single mpileup base string and print the allele tally as JSON.",
    )
    dc.add_argument("--bases", required=True, help="mpileup base column, e.g. '..T,T^]a$'.")
    dc.add_argument("--ref", required=True, help="Reference base at the position.")

    # -----------------
    # make-toy-data
    # -----------------
    t = sub.add_parser(
        "make-toy-data",
        help="Generate a tiny reference, BAMs, BED and variant list for demos/tests.",
    )
    t.add_argument("--outdir", required=True, help="Output directory for toy data.")
    t.add_argument("--dry-run", action="store_true", help="Validate paths without writing files.")

    # -----------------
    # doctor
    # -----------------
    d = sub.add_parser(
        "doctor",
        help="Check the environment (pysam, optional samtools).",
    )
    d.add_argument("--dry-run", action="store_true", help="Print checks without exiting nonzero.")
    d.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    return p


# -----------------
# Command handlers
# -----------------

def cmd_quickstart() -> int:
    lines = [
        "RNUScanner quickstart (copy/paste):",
        "",
        "1) Screen RNU genes in exome BAMs:",
        "   rnuscanner screen \\",
        "     --gene-list rnu_genes.bed \\",
        "     --bam-list bams.txt \\",
        "     --reference GRCh38.fa \\",
        "     --output-dir results/",
        "   Outputs: results/vcf/<sample>.vcf, results/report.html, results/logs/screening.log",
        "",
        "2) Annotate known variants and run 4 samples at a time:",
        "   rnuscanner screen \\",
        "     --gene-list rnu_genes.bed \\",
        "     --bam-list bams.txt \\",
        "     --reference GRCh38.fa \\",
        "     --variant-list known_variants.tsv \\",
        "     --threads 4 \\",
        "     --output-dir results/",
        "",
        "3) Use an external samtools with a per-region timeout:",
        "   rnuscanner screen ... --engine samtools --timeout 120",
        "",
        "Tip: use --dry-run to validate inputs first, or 'rnuscanner make-toy-data' for a demo.",
    ]
    print("\n".join(lines))
    return 0


def cmd_decode(args: argparse.Namespace) -> int:
    try:
        if len(args.ref) != 1:
            raise ValueError("--ref must be a single base")
        out = {
            "ref": args.ref.upper(),
            "observations": scan_bases(args.bases, args.ref),
            "alleles": decode_bases(args.bases, args.ref),
        }
        print(json.dumps(out, indent=2))
        return 0
    except Exception as e:
        return _handle_error(e, log_path=None)


def cmd_make_toy_data(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    if args.dry_run:
        print(f"Would write toy data into: {outdir}")
        return 0

    summary = make_toy_data(outdir=outdir)
    print(json.dumps(summary, indent=2))
    return 0


def _write_plots(outdir: Path, run: Dict[str, object]) -> Dict[str, str]:
    plots_dir = outdir / "plots"
    plots_dir.mkdir(parents=True, exist_ok=True)

    samples = run["samples"]
    per_sample = {s["sample"]: int(s["counts"]["records"]) for s in samples}
    by_gene: Dict[str, int] = {}
    fractions = []
    for s in samples:
        for gene, n in s["records_by_gene"].items():
            by_gene[gene] = by_gene.get(gene, 0) + int(n)
        fractions.extend(s["allele_fractions"])

    per_sample_png = plots_dir / "records_per_sample.png"
    by_gene_png = plots_dir / "records_by_gene.png"
    af_png = plots_dir / "allele_fraction_hist.png"

    plot_records_per_sample(records_per_sample=per_sample, out_png=per_sample_png)
    plot_records_by_gene(records_by_gene=by_gene, out_png=by_gene_png)
    plot_allele_fraction_hist(fractions=fractions, out_png=af_png)

    return {
        "records_per_sample": str(Path("plots") / per_sample_png.name),
        "records_by_gene": str(Path("plots") / by_gene_png.name),
        "allele_fraction_hist": str(Path("plots") / af_png.name),
    }


def cmd_screen(args: argparse.Namespace) -> int:
    outdir = Path(args.output_dir).expanduser().resolve()
    log_path = _log_path(outdir, "screening.log")
    _setup_logging(args.verbose, logfile=None if args.dry_run else log_path)

    logger = logging.getLogger("rnuscanner")
    logger.info("rnuscanner %s", __version__)
    logger.info("Run started at %s", _dt.datetime.now().isoformat(timespec="seconds"))

    try:
        # Fail fast on the cheap inputs before touching any BAM.
        regions = load_regions(args.gene_list)
        lookup = load_annotations(args.variant_list, has_annotation=args.variant_list is not None)
        bam_paths = read_bam_list(args.bam_list)
        if not regions:
            raise ValueError(f"No regions in {args.gene_list}")

        if args.dry_run:
            print("Dry-run: inputs look OK.")
            print(f"Regions: {len(regions)}")
            print(f"Samples: {len(bam_paths)}")
            print(f"Known variants: {len(lookup)}")
            print("Planned outputs:")
            for name in unique_sample_names(bam_paths):
                print(f"  {outdir / 'vcf' / (name + '.vcf')} (if mismatches are found)")
            print(f"  summary.json -> {outdir / 'summary.json'}")
            if not args.no_report:
                print(f"  report.html -> {outdir / 'report.html'}")
            return 0

        outdir = ensure_outdir(outdir)
        ensure_faidx(args.reference)

        source = make_pileup_source(
            args.engine,
            ref_fa=Path(args.reference).expanduser().resolve(),
            min_baseq=args.min_baseq,
            disable_baq=bool(args.no_baq),
            timeout=args.timeout,
        )
        settings = ScreenSettings(
            vcf_dir=outdir / "vcf",
            mpileup_dir=(outdir / "mpileup") if args.keep_mpileup else None,
            bgzip=bool(args.bgzip),
            version=__version__,
        )

        run = screen_samples(
            bam_paths,
            regions,
            source=source,
            lookup=lookup,
            settings=settings,
            threads=int(args.threads),
            progress=not bool(args.no_progress),
        )

        inputs = {
            "gene_list": str(args.gene_list),
            "bam_list": str(args.bam_list),
            "reference": str(args.reference),
            "variant_list": str(args.variant_list) if args.variant_list else None,
        }
        write_json(outdir / "summary.json", {"version": __version__, "inputs": inputs, "run": run})

        if not args.no_report:
            plots = _write_plots(outdir, run)
            report_path = render_report(outdir=outdir, version=__version__, run=run, inputs=inputs, plots=plots)
            logger.info("Report written: %s", report_path)

        totals = run["totals"]
        logger.info(
            "All regions scanned for all BAMs at %s (%d/%d samples with variants, %d records)",
            _dt.datetime.now().isoformat(timespec="seconds"),
            totals["samples_with_variants"],
            totals["samples"],
            totals["records"],
        )
        for s in run["samples"]:
            if s["vcf"]:
                print(s["vcf"])
        return 0
    except Exception as e:
        logger.debug("Run aborted", exc_info=True)
        return _handle_error(e, log_path=None if args.dry_run else log_path)


def cmd_doctor(args: argparse.Namespace) -> int:
    _setup_logging(args.verbose, logfile=None)

    checks = collect_checks()

    lines = []
    ok_all = True
    for name in ["python", "pysam", "samtools"]:
        r = checks[name]
        status = "OK" if r.ok else ("MISSING" if r.required else "OPTIONAL")
        lines.append(f"{name:9s} : {status:8s}  {r.detail}")
        if not r.ok and r.required:
            ok_all = False

    print("\n".join(lines))

    for name in ["samtools"]:
        r = checks[name]
        if not r.ok and r.howto:
            print("\n---")
            print(f"How to install/fix '{name}':")
            print(r.howto)

    if args.dry_run:
        return 0
    return 0 if ok_all else 1


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "quickstart":
        return cmd_quickstart()
    if args.cmd == "screen":
        return cmd_screen(args)
    if args.cmd == "decode":
        return cmd_decode(args)
    if args.cmd == "make-toy-data":
        return cmd_make_toy_data(args)
    if args.cmd == "doctor":
        return cmd_doctor(args)

    parser.error(f"Unknown command: {args.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
