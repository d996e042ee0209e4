"""Environment self-checks.

This module powers the ``rnuscanner doctor`` CLI command.

The default ``pysam`` engine needs nothing beyond the Python dependencies;
the ``samtools`` engine (which supports per-region timeouts) needs a
samtools binary in PATH.
"""

from __future__ import annotations

import logging
import platform
import shutil
from dataclasses import dataclass
from typing import Dict, Optional

import pysam

from .external import run_command

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckResult:
    name: str
    ok: bool
    detail: str
    howto: Optional[str] = None
    required: bool = True


def check_python() -> CheckResult:
    v = platform.python_version()
    return CheckResult(name="python", ok=True, detail=f"Python {v}")


def check_pysam() -> CheckResult:
    return CheckResult(name="pysam", ok=True, detail=f"pysam {pysam.__version__}")


def check_samtools() -> CheckResult:
    howto = (
        "Only needed for --engine samtools.\n"
        "Ubuntu: sudo apt-get install -y samtools\n"
        "Conda/mamba: mamba install -c bioconda samtools"
    )
    p = shutil.which("samtools")
    if p is None:
        return CheckResult(name="samtools", ok=False, detail="not found in PATH", howto=howto, required=False)
    try:
        cp = run_command(["samtools", "--version"], check=True, timeout=30)
        first = (cp.stdout or "").splitlines()[:1]
        detail = f"{p} ({first[0]})" if first else p
        return CheckResult(name="samtools", ok=True, detail=detail, required=False)
    except Exception as e:
        return CheckResult(
            name="samtools",
            ok=False,
            detail=f"samtools present but not usable: {e}",
            howto=howto,
            required=False,
        )


def collect_checks() -> Dict[str, CheckResult]:
    """Run all checks and return a mapping name->result."""
    checks: Dict[str, CheckResult] = {}
    checks["python"] = check_python()
    checks["pysam"] = check_pysam()
    checks["samtools"] = check_samtools()
    return checks
