from __future__ import annotations

import datetime as _dt
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Template

logger = logging.getLogger(__name__)


_REPORT_TEMPLATE = Template(
    """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>RNUScanner Report</title>
  <style>
    body { font-family: Arial, Helvetica, sans-serif; margin: 24px; }
    code, pre { background: #f6f8fa; padding: 2px 4px; border-radius: 4px; }
    h1, h2, h3 { margin-top: 1.2em; }
    table { border-collapse: collapse; margin-top: 0.6em; }
    th, td { border: 1px solid #ddd; padding: 8px; }
    th { background: #f2f2f2; text-align: left; }
    .grid { display: grid; grid-template-columns: 1fr 1fr; gap: 16px; }
    .card { border: 1px solid #ddd; border-radius: 8px; padding: 12px; }
    .small { color: #666; font-size: 0.9em; }
    .warn { color: #a15c00; }
    img { max-width: 100%; height: auto; border: 1px solid #eee; border-radius: 6px; }
  </style>
</head>
<body>

<h1>RNUScanner Report</h1>
<p class="small">Generated: {{ generated_at }}</p>

<h2>Run summary</h2>
<div class="grid">
  <div class="card">
    <h3>Inputs</h3>
    <table>
      <tr><th>Regions (BED)</th><td><code>{{ inputs.gene_list }}</code> ({{ run.regions }} regions)</td></tr>
      <tr><th>BAM list</th><td><code>{{ inputs.bam_list }}</code></td></tr>
      <tr><th>Reference</th><td><code>{{ inputs.reference }}</code></td></tr>
      <tr><th>Known variants</th><td>{% if inputs.variant_list %}<code>{{ inputs.variant_list }}</code> ({{ run.annotations }} entries){% else %}none{% endif %}</td></tr>
    </table>
  </div>
  <div class="card">
    <h3>Totals</h3>
    <table>
      <tr><th>Samples</th><td>{{ run.totals.samples }}</td></tr>
      <tr><th>With variants</th><td>{{ run.totals.samples_with_variants }}</td></tr>
      <tr><th>No variants</th><td>{{ run.totals.samples_without_variants }}</td></tr>
      <tr><th>Failed / skipped</th><td>{{ run.totals.samples_failed }}</td></tr>
      <tr><th>Records</th><td>{{ run.totals.records }}</td></tr>
      <tr><th>Pileup engine</th><td><code>{{ run.engine }}</code> ({{ run.threads }} threads)</td></tr>
    </table>
  </div>
</div>

<h2>Samples</h2>
<table>
  <tr>
    <th>Sample</th><th>Status</th><th>Records</th><th>Regions with variants</th>
    <th>Empty regions</th><th>Failed regions</th><th>Dropped positions</th><th>VCF</th>
  </tr>
  {% for s in run.samples %}
  <tr>
    <td>{{ s.sample }}</td>
    <td{% if s.status not in ("variants", "no_variants") %} class="warn"{% endif %}>{{ s.status }}</td>
    <td>{{ s.counts.records }}</td>
    <td>{{ s.counts.regions_with_variants }}</td>
    <td>{{ s.counts.regions_empty }}</td>
    <td>{{ s.counts.regions_failed }}</td>
    <td>{{ s.counts.positions_dropped }}</td>
    <td>{% if s.vcf %}<code>{{ s.vcf }}</code>{% else %}-{% endif %}</td>
  </tr>
  {% endfor %}
</table>

{% if plots %}
<h2>Plots</h2>
<div class="grid">
  <div class="card">
    <h3>Records per sample</h3>
    <img src="{{ plots.records_per_sample }}" alt="records per sample">
  </div>
  <div class="card">
    <h3>Records per region</h3>
    <img src="{{ plots.records_by_gene }}" alt="records per region">
  </div>
</div>
<div class="grid" style="margin-top:16px;">
  <div class="card">
    <h3>Allele fractions</h3>
    <img src="{{ plots.allele_fraction_hist }}" alt="allele fraction histogram">
  </div>
</div>
{% endif %}

<h2>Interpretation notes</h2>
<ul>
  <li>Every mismatch between reads and the reference is reported; there is no genotype model. GT is always <code>0/1</code>.</li>
  <li>Low allele fractions in duplicated regions (e.g. SMN1/SMN2) often reflect paralogous reads rather than real variants.</li>
  <li>Known variants are matched on chromosome, position, reference and alternate allele; anything else is <code>Unknown</code>.</li>
</ul>

<hr>
<p class="small">RNUScanner {{ version }}</p>
</body>
</html>"""
)


def render_report(
    *,
    outdir: str | Path,
    version: str,
    run: Dict[str, Any],
    inputs: Dict[str, Optional[str]],
    plots: Optional[Dict[str, str]] = None,
) -> Path:
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    html = _REPORT_TEMPLATE.render(
        generated_at=_dt.datetime.now().isoformat(timespec="seconds"),
        version=version,
        run=run,
        inputs=inputs,
        plots=plots or {},
    )

    out_path = outdir / "report.html"
    out_path.write_text(html, encoding="utf-8")
    return out_path
