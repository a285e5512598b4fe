"""
Sort Harness Report Generator
=============================

Writes the results collected by a ``ReportAggregator`` to disk:

  - JSON (machine-readable, one document per run)
  - Markdown report with per-tier tables and an ASCII speedup chart
  - Speedup bar chart image (matplotlib)

Results from different runs are never merged or compared.
"""

import json
import os
import platform
import sys
from datetime import datetime
from typing import Any, Dict, List, Optional

import psutil

from sortharness.reporting.aggregator import CaseReport, ReportAggregator, geometric_mean
from sortharness.utils.helpers import format_seconds, format_speedup


def _host_info() -> Dict[str, Any]:
    return {
        'python_version': sys.version,
        'platform': sys.platform,
        'machine': platform.machine(),
        'cpu_count': psutil.cpu_count(logical=True),
        'total_memory_mb': round(psutil.virtual_memory().total / (1024 * 1024), 1),
    }


def _case_entry(report: CaseReport) -> Dict[str, Any]:
    case = report.test_case
    speedups = report.speedups
    return {
        'name': case.name,
        'size_label': case.size_label,
        'flags': case.flags,
        'input_path': case.input_path,
        'line_count': case.line_count,
        'passed': report.passed,
        'implementations': [
            {
                'name': r.descriptor.name,
                'command': r.descriptor.command,
                'wall_s': r.wall,
                'user_s': r.user,
                'sys_s': r.sys,
                'peak_mem_mb': r.peak_mem_mb,
                'exit_code': r.capture.exit_code,
                'timed_out': r.capture.timed_out or r.profile.timed_out,
                'speedup': speedups.get(r.descriptor.name),
            }
            for r in report.results
        ],
        'outcomes': [
            {
                'name': o.descriptor.name,
                'equivalent': o.equivalent,
                'protocol': o.protocol.value,
                'strategy': o.strategy.value,
                'reason': o.reason,
                'diff_excerpt': list(o.diff_excerpt),
                'reference_digest': o.reference_digest,
                'candidate_digest': o.candidate_digest,
            }
            for o in report.outcomes
        ],
    }


def save_results(aggregator: ReportAggregator, output_dir: str = "reports") -> str:
    """Save the run's results to a timestamped JSON file and return its path."""
    os.makedirs(output_dir, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filename = os.path.join(output_dir, f"sort_harness_results_{timestamp}.json")

    data = {
        'timestamp': timestamp,
        'host': _host_info(),
        'reference': aggregator.reference_name,
        'summary': {
            'passed': aggregator.summary.passed,
            'failed': aggregator.summary.failed,
            'exit_status': aggregator.summary.exit_status,
        },
        'geomean_speedups': {
            name: geometric_mean(values)
            for name, values in aggregator.candidate_speedups().items()
        },
        'results': [_case_entry(r) for r in aggregator.cases],
    }

    with open(filename, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, default=str)

    print(f"\nResults saved to {filename}")
    return filename


def _ascii_bar_chart(speedups: Dict[str, float], width: int = 40) -> str:
    """Generate an ASCII bar chart of speedups."""
    if not speedups:
        return ""

    lines = []
    max_speedup = max(speedups.values())
    max_name_len = max(len(name) for name in speedups)

    for name, ratio in sorted(speedups.items(), key=lambda kv: kv[1], reverse=True):
        bar_len = int(ratio / max_speedup * width) if max_speedup > 0 else 0
        bar = "█" * bar_len
        lines.append(f"  {name.ljust(max_name_len)}  {bar} {ratio:.2f}x")

    return "\n".join(lines)


def generate_markdown_report(
    aggregator: ReportAggregator,
    output_path: str = "reports/sort_harness_report.md",
) -> str:
    """Generate a Markdown report of every test case and the run summary."""
    directory = os.path.dirname(output_path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    host = _host_info()
    lines = []
    lines.append("# Sort Harness Report")
    lines.append("")
    lines.append(f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    lines.append(f"**Platform:** {host['platform']} ({host['machine']}), "
                 f"{host['cpu_count']} CPUs, {host['total_memory_mb']:.0f} MB")
    lines.append(f"**Reference:** {aggregator.reference_name}")
    lines.append("")

    tiers: Dict[str, List[CaseReport]] = {}
    for r in aggregator.cases:
        tiers.setdefault(r.test_case.size_label, []).append(r)

    lines.append("## Results")
    lines.append("")

    for label, reports in tiers.items():
        lines.append(f"### {label}")
        lines.append("")
        lines.append("| Test | Flags | Implementation | Wall | Peak MB | Speedup | Correct |")
        lines.append("|------|-------|----------------|------|---------|---------|---------|")

        for report in reports:
            case = report.test_case
            verdicts = {o.descriptor.name: o for o in report.outcomes}
            speedups = report.speedups
            if not report.results:
                for o in report.outcomes:
                    mark = "✓" if o.equivalent else f"✗ ({(o.reason or '')[:30]})"
                    lines.append(f"| {case.name} | `{case.flags}` | {o.descriptor.name} | N/A | N/A | N/A | {mark} |")
                continue
            for r in report.results:
                name = r.descriptor.name
                outcome = verdicts.get(name)
                if outcome is None:
                    mark = "reference"
                elif outcome.equivalent:
                    mark = "✓"
                else:
                    mark = f"✗ ({(outcome.reason or '')[:30]})"
                lines.append(
                    f"| {case.name} | `{case.flags}` | {name} | {format_seconds(r.wall)} "
                    f"| {r.peak_mem_mb:.1f} | {speedups[name]:.2f}x | {mark} |"
                )

        lines.append("")

    lines.append("## Summary")
    lines.append("")
    lines.append(f"- **Passed:** {aggregator.summary.passed}")
    lines.append(f"- **Failed:** {aggregator.summary.failed}")

    geomeans = {
        name: geometric_mean(values)
        for name, values in aggregator.candidate_speedups().items()
    }
    if geomeans:
        for name, ratio in geomeans.items():
            lines.append(f"- **{name}:** {format_speedup(ratio)} than {aggregator.reference_name} (geometric mean)")
        lines.append("")
        lines.append("### Speedup Distribution")
        lines.append("")
        lines.append("```")
        lines.append(_ascii_bar_chart(geomeans))
        lines.append("```")
    lines.append("")

    content = "\n".join(lines)
    with open(output_path, 'w', encoding='utf-8') as f:
        f.write(content)

    print(f"Report generated: {output_path}")
    return content


def plot_speedups(aggregator: ReportAggregator, output_path: str) -> Optional[str]:
    """Save a bar chart of per-candidate geometric-mean speedups. Returns None with no candidates."""
    import matplotlib
    matplotlib.use('Agg')
    import matplotlib.pyplot as plt

    geomeans = {
        name: geometric_mean(values)
        for name, values in aggregator.candidate_speedups().items()
    }
    if not geomeans:
        return None

    directory = os.path.dirname(output_path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    names = list(geomeans)
    fig, ax = plt.subplots(figsize=(max(4, 1.5 * len(names)), 4))
    ax.bar(names, [geomeans[n] for n in names], color='#5f87af')
    ax.axhline(1.0, color='gray', linestyle='--', linewidth=1)
    ax.set_ylabel(f"Speedup vs {aggregator.reference_name}")
    ax.set_title("Geometric mean speedup")
    fig.tight_layout()
    fig.savefig(output_path)
    plt.close(fig)

    print(f"Chart saved to {output_path}")
    return output_path
