"""Decoder for the samtools mpileup read-base column.

Each read covering a position contributes one observation to the base
string, possibly wrapped in markers::

    ^]A     read start (``^`` + one mapping-quality char), then a base
    .,      match to the reference (forward / reverse strand)
    ACGTN   substitution (lowercase = reverse strand)
    *#      deletion spanning this position (``#`` = reverse strand)
    +2AT    insertion after this position (length, then payload)
    -1c     deletion starting at the next position (length, then payload)
    $       read end
    ><      reference skip (spliced alignment)

The scanner classifies every step explicitly; characters outside this
grammar are a decode error rather than a silent skip.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Dict

from .errors import MalformedPileupError
from .models import DEL_SYMBOL

logger = logging.getLogger(__name__)


class Token(Enum):
    MATCH = "match"
    SUBSTITUTION = "substitution"
    DELETION = "deletion-marker"
    INDEL = "indel-prefix"
    READ_START = "read-start"
    READ_END = "read-end"
    REF_SKIP = "ref-skip"
    UNKNOWN = "unknown"


_TOKEN_BY_CHAR: Dict[str, Token] = {}
for _c in ".,":
    _TOKEN_BY_CHAR[_c] = Token.MATCH
for _c in "ACGTNacgtn":
    _TOKEN_BY_CHAR[_c] = Token.SUBSTITUTION
for _c in "*#":
    _TOKEN_BY_CHAR[_c] = Token.DELETION
for _c in "+-":
    _TOKEN_BY_CHAR[_c] = Token.INDEL
_TOKEN_BY_CHAR["^"] = Token.READ_START
_TOKEN_BY_CHAR["$"] = Token.READ_END
for _c in "<>":
    _TOKEN_BY_CHAR[_c] = Token.REF_SKIP
del _c


def classify(ch: str) -> Token:
    return _TOKEN_BY_CHAR.get(ch, Token.UNKNOWN)


def _consume_indel(bases: str, i: int) -> int:
    """Skip an indel event starting at ``bases[i]`` (``+`` or ``-``).

    Returns the index just past the payload.
    """
    j = i + 1
    n = len(bases)
    while j < n and "0" <= bases[j] <= "9":
        j += 1
    if j == i + 1:
        raise MalformedPileupError("indel marker without a length", bases=bases, offset=i)
    length = int(bases[i + 1 : j])
    end = j + length
    if end > n:
        raise MalformedPileupError(
            f"indel payload truncated (expected {length} chars, found {n - j})", bases=bases, offset=i
        )
    return end


def scan_bases(bases: str, ref: str) -> Dict[str, int]:
    """Scan a pileup base string and count every observation.

    Unlike :func:`decode_bases` the reference symbol is kept, which is handy
    for diagnostics (``rnuscanner decode``).
    """
    ref_sym = ref.upper()
    tally: Dict[str, int] = {}
    i = 0
    n = len(bases)

    while i < n:
        ch = bases[i]
        tok = classify(ch)

        if tok is Token.MATCH:
            tally[ref_sym] = tally.get(ref_sym, 0) + 1
            i += 1
        elif tok is Token.SUBSTITUTION:
            sym = ch.upper()
            tally[sym] = tally.get(sym, 0) + 1
            i += 1
        elif tok is Token.DELETION:
            tally[DEL_SYMBOL] = tally.get(DEL_SYMBOL, 0) + 1
            i += 1
        elif tok is Token.INDEL:
            i = _consume_indel(bases, i)
        elif tok is Token.READ_START:
            # The mapping-quality char may be any printable char, including
            # ones that look like bases or markers.
            if i + 1 >= n:
                raise MalformedPileupError("read-start marker without mapping quality", bases=bases, offset=i)
            i += 2
        elif tok is Token.READ_END or tok is Token.REF_SKIP:
            i += 1
        else:
            raise MalformedPileupError(f"unexpected character {ch!r}", bases=bases, offset=i)

    return tally


def decode_bases(bases: str, ref: str) -> Dict[str, int]:
    """Decode a pileup base string into per-allele counts.

    Parameters
    ----------
    bases:
        The 5th column of ``samtools mpileup`` output.
    ref:
        Reference base at the position (any case).

    Returns
    -------
    dict
        Allele symbol (uppercase base or ``<DEL>``) -> read count, in
        first-observed order. The reference symbol is removed; its count is
        recovered later as ``depth - sum(counts)``.

    Raises
    ------
    MalformedPileupError
        Unrecognized characters, an indel without a length, a truncated
        indel payload, or a read-start marker missing its quality char.
    """
    tally = scan_bases(bases, ref)
    tally.pop(ref.upper(), None)
    return tally
