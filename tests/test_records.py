from pathlib import Path

from rnuscanner.aggregate import aggregate_alleles
from rnuscanner.annotations import AnnotationLookup, load_annotations
from rnuscanner.decoder import decode_bases
from rnuscanner.models import AggregatedAllele
from rnuscanner.records import SampleReportAssembler, build_record


def _known_variants(tmp_path: Path) -> Path:
    p = tmp_path / "variants.tsv"
    p.write_text(
        "Chromosome\tPosition\tReference\tAlternate\tdbSNP\tSignificance\n"
        "chr12\t120291839\tT\tTA\trs2499959771\tPathogenic\n"
        "chr12\t120291840\tC\t<DEL>\t.\tLikely_pathogenic\n",
        encoding="utf-8",
    )
    return p


def test_no_alleles_no_record():
    assert build_record("chr1", 10, "A", [], 5, 5, "RNU4-2", AnnotationLookup()) is None


def test_empty_lookup_defaults():
    alleles, ref_depth = aggregate_alleles(decode_bases("..T,Tgg", "A"), 7)
    rec = build_record("chr1", 10, "a", alleles, ref_depth, 7, "RNU4-2", AnnotationLookup())
    assert rec is not None
    assert rec.ref == "A"
    assert rec.ids == (".", ".")
    assert rec.significances == ("Unknown", "Unknown")
    assert rec.symbols == ("T", "G")
    assert rec.allele_depths == (2, 2)
    assert rec.ref_depth == 3
    assert rec.total_depth == 7
    assert rec.gene == "RNU4-2"


def test_known_variant_annotation(tmp_path: Path):
    lookup = load_annotations(_known_variants(tmp_path), has_annotation=True)
    alleles = [
        AggregatedAllele(symbol="G", depth=1, fraction=0.1),
        AggregatedAllele(symbol="TA", depth=3, fraction=0.3),
    ]
    rec = build_record("chr12", 120291839, "T", alleles, 6, 10, "RNU4-2", lookup)
    assert rec is not None
    assert rec.ids == (".", "rs2499959771")
    assert rec.significances == ("Unknown", "Pathogenic")
    assert len(rec.ids) == len(rec.alleles) == len(rec.significances)


def test_deletion_symbol_is_annotated(tmp_path: Path):
    lookup = load_annotations(_known_variants(tmp_path), has_annotation=True)
    alleles, ref_depth = aggregate_alleles(decode_bases("**..", "C"), 4)
    rec = build_record("chr12", 120291840, "C", alleles, ref_depth, 4, "RNU4-2", lookup)
    assert rec is not None
    assert rec.ids == (".",)
    assert rec.significances == ("Likely_pathogenic",)


def test_other_position_not_annotated(tmp_path: Path):
    lookup = load_annotations(_known_variants(tmp_path), has_annotation=True)
    alleles = [AggregatedAllele(symbol="TA", depth=1, fraction=0.5)]
    rec = build_record("chr12", 120291838, "T", alleles, 1, 2, "RNU4-2", lookup)
    assert rec.ids == (".",)
    assert rec.significances == ("Unknown",)


def test_assembler_empty_is_none():
    assert SampleReportAssembler("S1").finalize() is None


def test_assembler_keeps_order():
    lookup = AnnotationLookup()
    recs = []
    for pos in (30, 10, 20):
        alleles, ref_depth = aggregate_alleles({"T": 1}, 2)
        recs.append(build_record("chr1", pos, "A", alleles, ref_depth, 2, "G1", lookup))

    asm = SampleReportAssembler("S1")
    asm.add(recs[0])
    asm.extend(recs[1:])
    assert len(asm) == 3

    report = asm.finalize()
    assert report is not None
    assert report.sample == "S1"
    assert [r.pos for r in report.records] == [30, 10, 20]
