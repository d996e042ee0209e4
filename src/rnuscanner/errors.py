"""Exception taxonomy for the screening engine.

Loading errors (regions, annotations) abort a run before any sample is
processed. Pileup errors are scoped to one (sample, region) pair and
internal-consistency errors to one position; the orchestrator recovers
from both.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class RNUScannerError(Exception):
    """Base class for all RNUScanner errors."""


class _InputLineError(RNUScannerError, ValueError):
    """Error tied to a line of a tabular input file."""

    def __init__(
        self,
        message: str,
        *,
        path: Optional[str | Path] = None,
        line_no: Optional[int] = None,
    ) -> None:
        self.path = str(path) if path is not None else None
        self.line_no = line_no
        loc = ""
        if self.path is not None:
            loc = f"{self.path}"
            if line_no is not None:
                loc += f":{line_no}"
            loc += ": "
        super().__init__(f"{loc}{message}")


class MalformedRegionError(_InputLineError):
    """A region (BED) line is missing fields or has invalid coordinates."""


class MalformedAnnotationError(_InputLineError):
    """A known-variant table row is missing fields or has an invalid position."""


class MalformedPileupError(RNUScannerError, ValueError):
    """A pileup line or its base-call string cannot be fully consumed."""

    def __init__(self, message: str, *, bases: Optional[str] = None, offset: Optional[int] = None) -> None:
        self.bases = bases
        self.offset = offset
        if bases is not None and offset is not None:
            message = f"{message} (offset {offset} in {bases!r})"
        super().__init__(message)


class InternalConsistencyError(RNUScannerError, RuntimeError):
    """Decoded allele counts exceed the reported depth at a position."""


class PileupSourceError(RNUScannerError, RuntimeError):
    """The external pileup generator failed or timed out for one region."""
