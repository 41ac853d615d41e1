"""Findings, aggregation and rendering."""

from .finding import Severity, Location, Finding, Diagnostic, compute_fingerprint
from .aggregator import Report, aggregate, dedupe, sort_findings, summarize
from .render import render_json, render_markdown, render_github, print_report

__all__ = [
    "Severity",
    "Location",
    "Finding",
    "Diagnostic",
    "compute_fingerprint",
    "Report",
    "aggregate",
    "dedupe",
    "sort_findings",
    "summarize",
    "render_json",
    "render_markdown",
    "render_github",
    "print_report",
]
