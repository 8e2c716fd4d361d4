"""HTML report generator: a self-contained page with one card per unit."""

from __future__ import annotations

import base64
import html
import logging
from pathlib import Path

from storyshot.models.result import ReconciliationOutcome, RunResult, UnitResult

logger = logging.getLogger(__name__)

_OUTCOME_STYLE = {
    ReconciliationOutcome.COMPARISON_PASSED: ("pass", "#22c55e"),
    ReconciliationOutcome.BASELINE_CREATED: ("created", "#6366f1"),
    ReconciliationOutcome.BASELINE_UPDATED: ("created", "#6366f1"),
    ReconciliationOutcome.COMPARISON_FAILED: ("fail", "#ef4444"),
    ReconciliationOutcome.STORAGE_ERROR: ("error", "#f97316"),
    ReconciliationOutcome.CAPTURE_ERROR: ("error", "#f97316"),
    ReconciliationOutcome.ERROR: ("error", "#f97316"),
}


def _embed_image(path: str | None) -> str:
    """Read an image file and return a base64 data URI, or empty string if unreadable."""
    if not path:
        return ""
    p = Path(path)
    try:
        if not p.exists() or p.stat().st_size == 0:
            return ""
        data = base64.b64encode(p.read_bytes()).decode()
    except OSError as e:
        logger.debug("Could not embed %s: %s", p, e)
        return ""
    return f"data:image/png;base64,{data}"


def _image_item(label: str, path: str | None) -> str:
    data_uri = _embed_image(path)
    if not data_uri:
        return ""
    return f'''
        <div class="screenshot-item">
          <img src="{data_uri}" alt="{label}" onclick="this.classList.toggle('zoomed')"/>
          <div class="screenshot-label">{label}</div>
        </div>'''


def _build_unit_card(r: UnitResult) -> str:
    """Build an HTML card for one (story, browser) unit."""
    css_class, border_color = _OUTCOME_STYLE[r.outcome]
    diff_meta = ""
    if r.diff_pixels is not None:
        diff_meta = f" &middot; {r.diff_pixels} px differ (max {r.max_diff_pixels}, threshold {r.threshold})"

    card = f'''
    <div class="unit-card" data-status="{css_class}">
      <div class="unit-header" style="border-left: 4px solid {border_color};" onclick="this.parentElement.classList.toggle('expanded')">
        <div class="unit-header-left">
          <span class="badge {css_class}">{html.escape(r.outcome.value.replace("_", " "))}</span>
          <strong>{html.escape(r.story_title)} &mdash; {html.escape(r.story_name)}</strong>
          <span class="badge browser">{html.escape(r.browser)}</span>
          <span class="unit-meta">{r.duration_seconds:.1f}s &middot; attempt {r.attempts}{diff_meta}</span>
        </div>
        <span class="expand-arrow">&#9660;</span>
      </div>
      <div class="unit-body">
        <div class="unit-key"><code>{html.escape(r.key)}</code> &middot; story <code>{html.escape(r.story_id)}</code></div>
    '''

    if r.message and not r.passed:
        card += f'<div class="failure-banner">{html.escape(r.message)}</div>'
    elif r.message:
        card += f'<div class="unit-message">{html.escape(r.message)}</div>'

    images = (
        _image_item("Actual", r.actual_path)
        + _image_item("Baseline", r.baseline_path)
        + _image_item("Diff", r.diff_path)
    )
    if images:
        card += f'<div class="screenshots-grid">{images}</div>'

    card += '</div></div>'
    return card


def generate_html_report(run_result: RunResult, output_path: Path) -> None:
    """Generate a self-contained HTML report; failing units are listed first."""
    ordered = sorted(run_result.unit_results, key=lambda r: (r.passed, r.test_name, r.browser))
    cards = "".join(_build_unit_card(r) for r in ordered)
    created = run_result.baselines_created + run_result.baselines_updated
    unit_errors = run_result.storage_errors + run_result.capture_errors + run_result.errors

    report_html = f'''<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>Visual Report &mdash; {html.escape(run_result.run_id)}</title>
<style>
  :root {{ --pass: #22c55e; --fail: #ef4444; --error: #f97316; --bg: #f8fafc; --card: white; --border: #e2e8f0; --text: #1e293b; --muted: #64748b; --accent: #6366f1; }}
  * {{ margin: 0; padding: 0; box-sizing: border-box; }}
  body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; background: var(--bg); color: var(--text); line-height: 1.6; padding: 1.5rem; }}
  .container {{ max-width: 1400px; margin: 0 auto; }}
  h1 {{ font-size: 1.8rem; margin-bottom: 0.3rem; }}
  .meta {{ color: var(--muted); margin-bottom: 1.5rem; font-size: 0.9rem; }}
  .summary {{ display: grid; grid-template-columns: repeat(auto-fit, minmax(130px, 1fr)); gap: 0.8rem; margin-bottom: 1.5rem; }}
  .stat {{ background: var(--card); border-radius: 8px; padding: 1rem; box-shadow: 0 1px 3px rgba(0,0,0,0.08); text-align: center; }}
  .stat .value {{ font-size: 1.8rem; font-weight: 700; }}
  .stat .label {{ font-size: 0.8rem; color: var(--muted); }}
  .stat.pass .value {{ color: var(--pass); }}
  .stat.fail .value {{ color: var(--fail); }}
  .stat.error .value {{ color: var(--error); }}
  .stat.created .value {{ color: var(--accent); }}
  .badge {{ display: inline-block; padding: 0.15rem 0.55rem; border-radius: 9999px; font-size: 0.7rem; font-weight: 600; text-transform: uppercase; white-space: nowrap; }}
  .badge.pass {{ background: #dcfce7; color: #166534; }}
  .badge.fail {{ background: #fecaca; color: #991b1b; }}
  .badge.error {{ background: #fed7aa; color: #9a3412; }}
  .badge.created {{ background: #e0e7ff; color: #3730a3; }}
  .badge.browser {{ background: #f1f5f9; color: #334155; }}
  .unit-card {{ background: var(--card); border-radius: 8px; margin-bottom: 0.6rem; box-shadow: 0 1px 3px rgba(0,0,0,0.08); overflow: hidden; }}
  .unit-header {{ display: flex; justify-content: space-between; align-items: center; padding: 0.7rem 1rem; cursor: pointer; user-select: none; }}
  .unit-header:hover {{ background: #f8fafc; }}
  .unit-header-left {{ display: flex; align-items: center; gap: 0.5rem; flex-wrap: wrap; }}
  .unit-meta {{ font-size: 0.78rem; color: var(--muted); }}
  .expand-arrow {{ color: var(--muted); font-size: 0.7rem; transition: transform 0.2s; }}
  .unit-card.expanded .expand-arrow {{ transform: rotate(180deg); }}
  .unit-body {{ display: none; padding: 0 1rem 1rem 1rem; }}
  .unit-card.expanded .unit-body {{ display: block; }}
  .unit-key {{ font-size: 0.82rem; color: var(--muted); margin-bottom: 0.6rem; }}
  .unit-key code {{ background: #f1f5f9; padding: 0.1rem 0.3rem; border-radius: 3px; }}
  .unit-message {{ font-size: 0.85rem; color: var(--muted); margin-bottom: 0.6rem; }}
  .failure-banner {{ background: #fef2f2; border: 1px solid #fecaca; color: #991b1b; border-radius: 6px; padding: 0.6rem 0.8rem; margin-bottom: 0.8rem; font-size: 0.88rem; }}
  .screenshots-grid {{ display: grid; grid-template-columns: repeat(3, 1fr); gap: 0.6rem; }}
  .screenshot-item {{ text-align: center; }}
  .screenshot-item img {{ width: 100%; border-radius: 6px; border: 1px solid var(--border); cursor: pointer; }}
  .screenshot-item img.zoomed {{ position: fixed; top: 5%; left: 5%; width: 90%; height: 90%; object-fit: contain; z-index: 1000; background: rgba(0,0,0,0.85); border: none; border-radius: 8px; padding: 1rem; }}
  .screenshot-label {{ font-size: 0.75rem; color: var(--muted); margin-top: 0.2rem; }}
  .filter-bar {{ display: flex; gap: 0.5rem; margin-bottom: 1rem; flex-wrap: wrap; }}
  .filter-btn {{ padding: 0.3rem 0.8rem; border-radius: 6px; border: 1px solid var(--border); background: var(--card); cursor: pointer; font-size: 0.82rem; }}
  .filter-btn.active {{ background: var(--accent); color: white; border-color: var(--accent); }}
</style>
</head>
<body>
<div class="container">
  <h1>Visual Regression Report</h1>
  <p class="meta">Run: {html.escape(run_result.run_id)} ({html.escape(run_result.mode)}) &middot; Storybook: {html.escape(run_result.storybook_url)} &middot; Platform: {html.escape(run_result.platform)} &middot; {html.escape(run_result.started_at)} &middot; Duration: {run_result.duration_seconds}s</p>

  <div class="summary">
    <div class="stat"><div class="value">{run_result.total_units}</div><div class="label">Units</div></div>
    <div class="stat pass"><div class="value">{run_result.passed}</div><div class="label">Passed</div></div>
    <div class="stat fail"><div class="value">{run_result.failed}</div><div class="label">Regressions</div></div>
    <div class="stat created"><div class="value">{created}</div><div class="label">Baselines Written</div></div>
    <div class="stat error"><div class="value">{unit_errors}</div><div class="label">Errors</div></div>
  </div>

  <div class="filter-bar">
    <button class="filter-btn active" onclick="filterUnits('all')">All</button>
    <button class="filter-btn" onclick="filterUnits('fail')">Regressions</button>
    <button class="filter-btn" onclick="filterUnits('error')">Errors</button>
    <button class="filter-btn" onclick="filterUnits('pass')">Passed</button>
    <button class="filter-btn" onclick="filterUnits('created')">Baselines</button>
  </div>

  <div id="unit-list">
    {cards}
  </div>
</div>

<script>
function filterUnits(status) {{
  document.querySelectorAll('.filter-btn').forEach(b => b.classList.remove('active'));
  event.target.classList.add('active');
  document.querySelectorAll('.unit-card').forEach(card => {{
    card.style.display = status === 'all' || card.dataset.status === status ? '' : 'none';
  }});
}}
</script>
</body>
</html>'''

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        f.write(report_html)
