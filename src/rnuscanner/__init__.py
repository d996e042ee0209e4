"""RNUScanner: mismatch screening of targeted regions from samtools pileups.

Public API is intentionally small; most users should use the CLI:

    rnuscanner screen --gene-list genes.bed --bam-list bams.txt \\
        --reference ref.fa --output-dir results/

"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "1.1.0"
