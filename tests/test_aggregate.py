import pytest

from rnuscanner.aggregate import aggregate_alleles
from rnuscanner.decoder import decode_bases
from rnuscanner.errors import InternalConsistencyError
from rnuscanner.models import AggregatedAllele


def test_single_alt():
    alleles, ref_depth = aggregate_alleles(decode_bases("..T,T", "A"), 5)
    assert alleles == [AggregatedAllele(symbol="T", depth=2, fraction=0.4)]
    assert ref_depth == 3


def test_deletion_allele():
    alleles, ref_depth = aggregate_alleles(decode_bases("**..", "G"), 4)
    assert alleles == [AggregatedAllele(symbol="<DEL>", depth=2, fraction=0.5)]
    assert ref_depth == 2


def test_zero_depth_skips():
    alleles, ref_depth = aggregate_alleles({"T": 1}, 0)
    assert alleles == []
    assert ref_depth == 0


def test_empty_tally_skips():
    alleles, ref_depth = aggregate_alleles({}, 4)
    assert alleles == []
    assert ref_depth == 4


def test_order_and_rounding():
    alleles, ref_depth = aggregate_alleles({"G": 1, "C": 3}, 9)
    assert [a.symbol for a in alleles] == ["G", "C"]
    assert [a.fraction for a in alleles] == [0.111, 0.333]
    assert ref_depth == 5


def test_depths_add_up():
    tally = decode_bases("^].T,c*A$gg", "A")
    depth = 9
    alleles, ref_depth = aggregate_alleles(tally, depth)
    assert ref_depth + sum(a.depth for a in alleles) == depth


def test_overcounted_tally_is_fatal():
    with pytest.raises(InternalConsistencyError):
        aggregate_alleles({"T": 5}, 3)
