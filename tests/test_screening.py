from pathlib import Path
from typing import Dict, Iterable

import pytest

from rnuscanner import screening
from rnuscanner.annotations import AnnotationLookup, load_annotations
from rnuscanner.errors import MalformedPileupError, PileupSourceError
from rnuscanner.models import Region
from rnuscanner.pileup import build_mpileup_args, parse_pileup_line
from rnuscanner.screening import ScreenSettings, screen_pileup, screen_sample, screen_samples

R1 = Region("chr1", 0, 100, "GENE1")
R2 = Region("chr1", 200, 300, "GENE2")
R3 = Region("chr2", 0, 50, "GENE3")


class FakeSource:
    """Serves canned mpileup text per region label."""

    engine = "fake"

    def __init__(self, pileups: Dict[str, str], fail: Iterable[str] = (), crash: Iterable[str] = ()) -> None:
        self.pileups = pileups
        self.fail = set(fail)
        self.crash = set(crash)

    def fetch(self, bam_path, region):
        if region.label in self.crash:
            raise OSError("truncated BAM block")
        if region.label in self.fail:
            raise PileupSourceError("timed out")
        return self.pileups.get(region.label, "")


def _bam(tmp_path: Path, name: str) -> Path:
    bam = tmp_path / f"{name}.bam"
    bam.write_bytes(b"")
    (tmp_path / f"{name}.bam.bai").write_bytes(b"")
    return bam


def _settings(tmp_path: Path, **kw) -> ScreenSettings:
    return ScreenSettings(vcf_dir=tmp_path / "vcf", **kw)


def test_parse_pileup_line() -> None:
    line = parse_pileup_line("chr1\t10\tg\t5\t..T,T\tIIIII\n")
    assert (line.chrom, line.pos, line.ref, line.depth, line.bases) == ("chr1", 10, "G", 5, "..T,T")
    assert parse_pileup_line("chr1\t11\tA\t0").bases == ""
    with pytest.raises(MalformedPileupError):
        parse_pileup_line("chr1\tx\tA\t1\t.")
    with pytest.raises(MalformedPileupError):
        parse_pileup_line("chr1\t10")


def test_build_mpileup_args() -> None:
    args = build_mpileup_args(bam_path="s.bam", ref_fa="ref.fa", region=R1, min_baseq=0, disable_baq=True)
    assert args == ["-f", "ref.fa", "-r", "chr1:1-100", "-B", "-Q", "0", "s.bam"]


def test_screen_pileup_records() -> None:
    text = (
        "chr1\t10\tA\t4\t....\tIIII\n"
        "chr1\t11\tA\t5\t..T,T\tIIIII\n"
        "chr1\t12\tG\t4\t**..\tIIII\n"
        "chr1\t13\tC\t0\t\t\n"
    )
    recs = screen_pileup(text, R1, AnnotationLookup())
    assert [r.pos for r in recs] == [11, 12]
    assert recs[0].symbols == ("T",)
    assert recs[0].allele_fractions == (0.4,)
    assert recs[0].ref_depth == 3
    assert recs[1].symbols == ("<DEL>",)
    assert recs[1].allele_fractions == (0.5,)
    assert all(r.gene == "GENE1" for r in recs)


def test_screen_pileup_drops_inconsistent_position() -> None:
    counts = {"positions_seen": 0, "positions_dropped": 0}
    text = "chr1\t10\tA\t1\tTT\tII\nchr1\t11\tA\t2\t.T\tII\n"
    recs = screen_pileup(text, R1, AnnotationLookup(), counts)
    assert [r.pos for r in recs] == [11]
    assert counts == {"positions_seen": 2, "positions_dropped": 1}


def test_screen_sample_writes_vcf_in_traversal_order(tmp_path: Path) -> None:
    source = FakeSource(
        {
            "GENE2": "chr1\t250\tC\t3\t.A,\tIII\n",
            "GENE1": "chr1\t20\tT\t2\t.g\tII\nchr1\t21\tT\t2\t..\tII\n",
        }
    )
    res = screen_sample(
        _bam(tmp_path, "S1"),
        [R2, R1, R3],
        source=source,
        lookup=AnnotationLookup(),
        settings=_settings(tmp_path),
    )
    assert res["status"] == "variants"
    assert res["counts"]["records"] == 2
    assert res["counts"]["regions_empty"] == 1
    assert res["records_by_gene"] == {"GENE2": 1, "GENE1": 1}

    lines = [l for l in Path(res["vcf"]).read_text().splitlines() if not l.startswith("#")]
    assert [l.split("\t")[1] for l in lines] == ["250", "20"]


def test_screen_sample_region_failures_are_local(tmp_path: Path) -> None:
    source = FakeSource(
        {
            "GENE1": "chr1\t20\tT\t2\t.+2Z\tII\n",  # truncated indel payload
            "GENE3": "chr2\t5\tA\t2\t.C\tII\n",
        },
        fail=["GENE2"],
    )
    res = screen_sample(
        _bam(tmp_path, "S1"),
        [R1, R2, R3],
        source=source,
        lookup=AnnotationLookup(),
        settings=_settings(tmp_path),
    )
    assert res["status"] == "variants"
    assert res["counts"]["regions_failed"] == 2
    assert res["records_by_gene"] == {"GENE3": 1}


def test_screen_sample_without_variants_writes_nothing(tmp_path: Path) -> None:
    source = FakeSource({"GENE1": "chr1\t20\tT\t2\t.,\tII\n"})
    res = screen_sample(
        _bam(tmp_path, "S1"),
        [R1],
        source=source,
        lookup=AnnotationLookup(),
        settings=_settings(tmp_path),
    )
    assert res["status"] == "no_variants"
    assert res["vcf"] is None
    assert not (tmp_path / "vcf" / "S1.vcf").exists()


def test_screen_sample_missing_bam(tmp_path: Path) -> None:
    res = screen_sample(
        tmp_path / "nope.bam",
        [R1],
        source=FakeSource({}),
        lookup=AnnotationLookup(),
        settings=_settings(tmp_path),
    )
    assert res["status"] == "missing_bam"


def test_keep_mpileup_only_for_regions_with_records(tmp_path: Path) -> None:
    source = FakeSource(
        {
            "GENE1": "chr1\t20\tT\t2\t.g\tII\n",
            "GENE2": "chr1\t250\tC\t2\t..\tII\n",
        }
    )
    mp = tmp_path / "mpileup"
    mp.mkdir()
    screen_sample(
        _bam(tmp_path, "S1"),
        [R1, R2],
        source=source,
        lookup=AnnotationLookup(),
        settings=_settings(tmp_path, mpileup_dir=mp),
    )
    assert (mp / "S1_GENE1.mpileup.txt").exists()
    assert not (mp / "S1_GENE2.mpileup.txt").exists()


def test_screen_sample_unexpected_source_error_is_region_local(tmp_path: Path) -> None:
    source = FakeSource({"GENE1": "chr1\t20\tT\t2\t.g\tII\n"}, crash=["GENE2"])
    res = screen_sample(
        _bam(tmp_path, "S1"),
        [R1, R2],
        source=source,
        lookup=AnnotationLookup(),
        settings=_settings(tmp_path),
    )
    assert res["status"] == "variants"
    assert res["counts"]["regions_failed"] == 1
    assert res["records_by_gene"] == {"GENE1": 1}
    assert Path(res["vcf"]).exists()


def test_screen_sample_non_ascii_indel_length_is_region_local(tmp_path: Path) -> None:
    source = FakeSource({"GENE1": "chr1\t20\tT\t2\t.g\tII\n", "GENE2": "chr1\t250\tC\t2\t.+²A\tII\n"})
    res = screen_sample(
        _bam(tmp_path, "S1"),
        [R1, R2],
        source=source,
        lookup=AnnotationLookup(),
        settings=_settings(tmp_path),
    )
    assert res["status"] == "variants"
    assert res["counts"]["regions_failed"] == 1
    assert res["records_by_gene"] == {"GENE1": 1}


def test_positions_of_discarded_region_are_not_counted(tmp_path: Path) -> None:
    source = FakeSource(
        {
            "GENE1": "chr1\t20\tT\t2\t.g\tII\nchr1\t21\tT\t2\t..\tII\n",
            "GENE2": "chr1\t250\tC\t2\t.a\tII\nchr1\t251\tC\t2\t.X\tII\n",
        }
    )
    res = screen_sample(
        _bam(tmp_path, "S1"),
        [R1, R2],
        source=source,
        lookup=AnnotationLookup(),
        settings=_settings(tmp_path),
    )
    assert res["counts"]["positions_seen"] == 2
    assert res["counts"]["regions_failed"] == 1


def test_overlapping_regions_are_scanned_independently(tmp_path: Path) -> None:
    inner = Region("chr1", 10, 50, "GENE1_core")
    pileup = "chr1\t20\tT\t2\t.g\tII\n"
    source = FakeSource({"GENE1": pileup, "GENE1_core": pileup})
    res = screen_sample(
        _bam(tmp_path, "S1"),
        [R1, inner],
        source=source,
        lookup=AnnotationLookup(),
        settings=_settings(tmp_path),
    )
    assert res["counts"]["records"] == 2
    lines = [l.split("\t") for l in Path(res["vcf"]).read_text().splitlines() if not l.startswith("#")]
    assert [(l[1], l[7]) for l in lines] == [
        ("20", "GENE=GENE1;SIGNIFICANCE=Unknown"),
        ("20", "GENE=GENE1_core;SIGNIFICANCE=Unknown"),
    ]


def test_screen_samples_isolates_failures(tmp_path: Path) -> None:
    tsv = tmp_path / "v.tsv"
    tsv.write_text("h\nchr1\t20\tT\tG\trs9\tPathogenic\n", encoding="utf-8")
    lookup = load_annotations(tsv)

    bams = [_bam(tmp_path, f"S{i}") for i in range(4)]
    source = FakeSource({"GENE1": "chr1\t20\tT\t2\t.g\tII\n"}, crash=["GENE2"])
    run = screen_samples(
        bams,
        [R1, R2],
        source=source,
        lookup=lookup,
        settings=_settings(tmp_path),
        threads=3,
        progress=False,
    )
    assert [s["sample"] for s in run["samples"]] == ["S0", "S1", "S2", "S3"]
    assert all(s["status"] == "variants" for s in run["samples"])
    assert all(s["counts"]["regions_failed"] == 1 for s in run["samples"])
    assert run["totals"]["samples_failed"] == 0
    assert run["totals"]["records"] == 4
    assert run["annotations"] == 1

    text = (tmp_path / "vcf" / "S0.vcf").read_text()
    assert "\trs9\tT\tG\t" in text
    assert "SIGNIFICANCE=Pathogenic" in text


def test_screen_samples_reports_crashed_sample(tmp_path: Path, monkeypatch) -> None:
    real_screen_sample = screening.screen_sample

    def flaky(bam_path, regions, **kw):
        if Path(bam_path).name == "S1.bam":
            raise RuntimeError("boom")
        return real_screen_sample(bam_path, regions, **kw)

    monkeypatch.setattr(screening, "screen_sample", flaky)
    bams = [_bam(tmp_path, f"S{i}") for i in range(3)]
    run = screen_samples(
        bams,
        [R1],
        source=FakeSource({"GENE1": "chr1\t20\tT\t2\t.g\tII\n"}),
        lookup=AnnotationLookup(),
        settings=_settings(tmp_path),
        threads=2,
        progress=False,
    )
    assert [s["status"] for s in run["samples"]] == ["variants", "failed", "variants"]
    assert run["samples"][1]["error"] == "RuntimeError: boom"
    assert run["totals"]["samples_failed"] == 1


def test_duplicate_sample_names_get_distinct_vcfs(tmp_path: Path) -> None:
    (tmp_path / "a").mkdir()
    (tmp_path / "b").mkdir()
    bams = [_bam(tmp_path / "a", "S1"), _bam(tmp_path / "b", "S1")]
    run = screen_samples(
        bams,
        [R1],
        source=FakeSource({"GENE1": "chr1\t20\tT\t2\t.g\tII\n"}),
        lookup=AnnotationLookup(),
        settings=_settings(tmp_path),
        threads=2,
        progress=False,
    )
    assert [s["sample"] for s in run["samples"]] == ["S1", "S1_2"]
    assert (tmp_path / "vcf" / "S1.vcf").exists()
    assert (tmp_path / "vcf" / "S1_2.vcf").exists()
    assert "\tS1_2\n" in (tmp_path / "vcf" / "S1_2.vcf").read_text()
