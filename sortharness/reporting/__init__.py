"""Run summary, console tables and saved reports."""

from sortharness.reporting.aggregator import CaseReport, ReportAggregator, geometric_mean
from sortharness.reporting.report_generator import (
    generate_markdown_report,
    plot_speedups,
    save_results,
)
