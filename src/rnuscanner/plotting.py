from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Sequence

import matplotlib.pyplot as plt
import numpy as np

logger = logging.getLogger(__name__)


def plot_records_per_sample(
    *,
    records_per_sample: Dict[str, int],
    out_png: str | Path,
    title: str = "Variant records per sample",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    labels = list(records_per_sample.keys())
    values = [int(records_per_sample[k]) for k in labels]

    plt.figure(figsize=(max(6.0, 0.4 * len(labels)), 4.5))
    plt.bar(range(len(labels)), values)
    plt.ylabel("Records")
    plt.title(title)
    plt.xticks(range(len(labels)), labels, rotation=45, ha="right")
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_records_by_gene(
    *,
    records_by_gene: Dict[str, int],
    out_png: str | Path,
    title: str = "Variant records per region",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    # Largest first
    items = sorted(records_by_gene.items(), key=lambda kv: (-kv[1], kv[0]))
    labels: List[str] = [k for k, _ in items]
    values = [int(v) for _, v in items]

    plt.figure(figsize=(max(6.0, 0.4 * len(labels)), 4.5))
    plt.bar(range(len(labels)), values)
    plt.ylabel("Records (all samples)")
    plt.title(title)
    plt.xticks(range(len(labels)), labels, rotation=45, ha="right")
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_allele_fraction_hist(
    *,
    fractions: Sequence[float],
    out_png: str | Path,
    title: str = "Allele fraction distribution",
    nbins: int = 20,
) -> None:
    """Histogram of ALT allele fractions over all records of all samples.

    Low fractions in duplicated regions (e.g. SMN1/SMN2) usually reflect
    paralogous mismapping rather than true heterozygous calls.
    """
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    bin_edges = np.linspace(0.0, 1.0, nbins + 1)
    counts, _ = np.histogram(np.asarray(fractions, dtype=float), bins=bin_edges)
    widths = np.diff(bin_edges)
    centers = bin_edges[:-1] + widths / 2.0

    plt.figure()
    plt.bar(centers, counts, width=widths, align="center")
    plt.xlabel("Allele fraction (AD/DP)")
    plt.ylabel("Allele count")
    plt.title(title)
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()
