from __future__ import annotations

import logging
from typing import List, Mapping, Tuple

from .errors import InternalConsistencyError
from .models import AggregatedAllele

logger = logging.getLogger(__name__)

_FRACTION_DIGITS = 3


def aggregate_alleles(tally: Mapping[str, int], depth: int) -> Tuple[List[AggregatedAllele], int]:
    """Turn a decoded tally into ranked alleles and the implicit reference depth.

    Alleles keep the tally's first-observed order so that ID/ALT/SIGNIFICANCE
    and AD/AF columns stay aligned.

    Returns
    -------
    alleles:
        Empty when ``depth == 0`` or nothing non-reference was observed.
    ref_depth:
        ``depth - sum(allele depths)``.

    Raises
    ------
    InternalConsistencyError
        The tally counts more reads than the depth column reports.
    """
    depth = int(depth)
    if depth <= 0:
        return [], max(depth, 0)

    alleles: List[AggregatedAllele] = []
    for symbol, count in tally.items():
        count = int(count)
        if count <= 0:
            continue
        alleles.append(
            AggregatedAllele(symbol=symbol, depth=count, fraction=round(count / depth, _FRACTION_DIGITS))
        )

    if not alleles:
        return [], depth

    ref_depth = depth - sum(a.depth for a in alleles)
    if ref_depth < 0:
        raise InternalConsistencyError(
            f"allele counts ({sum(a.depth for a in alleles)}) exceed depth ({depth}): "
            + ",".join(f"{a.symbol}={a.depth}" for a in alleles)
        )
    return alleles, ref_depth
