"""
Report renderers: JSON, Markdown, GitHub annotations and the terminal.
"""

import json
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .aggregator import Report
from .finding import Finding, Severity

SEVERITY_COLORS = {
    "critical": "red",
    "high": "yellow",
    "medium": "blue",
    "low": "cyan",
}

SEVERITY_BADGES = {
    "critical": "![Critical](https://img.shields.io/badge/-Critical-red)",
    "high": "![High](https://img.shields.io/badge/-High-orange)",
    "medium": "![Medium](https://img.shields.io/badge/-Medium-yellow)",
    "low": "![Low](https://img.shields.io/badge/-Low-blue)",
}

GITHUB_LEVELS = {
    "critical": "error",
    "high": "error",
    "medium": "warning",
    "low": "notice",
}


def render_json(report: Report, indent: int = 2) -> str:
    return json.dumps(report.to_dict(), indent=indent, sort_keys=False)


def _where(finding: Finding) -> str:
    loc = finding.location
    if loc.file and loc.line:
        return f"{loc.file}:{loc.line}"
    return loc.file or "-"


def render_markdown(report: Report) -> str:
    """Render a Markdown report with a severity badge per finding."""
    lines = ["# Anchor-Sentinel Security Report", ""]

    lines.append("| Severity | Count |")
    lines.append("|---|---|")
    for severity in Severity:
        lines.append(f"| {severity.label} | {report.count(severity)} |")
    lines.append(f"| **Total** | **{report.summary.get('total', 0)}** |")
    lines.append("")

    if not report.findings:
        lines.append("No findings.")
        lines.append("")

    for finding in report.findings:
        lines.append(f"## {SEVERITY_BADGES[finding.severity.value]} {finding.detector_id}: {finding.title}")
        lines.append("")
        lines.append(f"- **Detector:** {finding.name}")
        lines.append(f"- **Location:** `{finding.location.describe()}` ({_where(finding)})")
        if finding.cwe:
            lines.append(f"- **CWE:** {finding.cwe}")
        if finding.confidence < 1.0:
            lines.append(f"- **Confidence:** {finding.confidence:.1f}")
        lines.append(f"- **Fingerprint:** `{finding.fingerprint}`")
        lines.append("")
        lines.append(finding.message)
        lines.append("")
        if finding.snippet:
            lines.append("```rust")
            lines.append(finding.snippet)
            lines.append("```")
            lines.append("")
        if finding.remediation:
            lines.append(f"**Remediation:** {finding.remediation}")
            lines.append("")

    if report.coverage:
        lines.append("## Coverage")
        lines.append("")
        for note in report.coverage:
            lines.append(f"- {note}")
        lines.append("")

    if report.diagnostics:
        lines.append("## Diagnostics")
        lines.append("")
        for diagnostic in report.diagnostics:
            lines.append(f"- {diagnostic.detector_id}: {diagnostic.message}")
        lines.append("")

    return "\n".join(lines)


def _escape_annotation(text: str) -> str:
    return text.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def render_github(report: Report) -> str:
    """Render GitHub Actions workflow commands (one annotation per finding)."""
    lines = []
    for finding in report.findings:
        level = GITHUB_LEVELS[finding.severity.value]
        loc = finding.location
        props = []
        if loc.file:
            props.append(f"file={loc.file}")
        if loc.line:
            props.append(f"line={loc.line}")
        props.append(f"title={finding.detector_id} {finding.name}".replace(",", "%2C").replace("::", "%3A%3A"))
        message = _escape_annotation(f"{finding.title}: {finding.message}")
        lines.append(f"::{level} {','.join(props)}::{message}")
    for note in report.coverage:
        lines.append(f"::warning ::{_escape_annotation('Degraded coverage: ' + note)}")
    return "\n".join(lines)


def print_report(report: Report, console: Optional[Console] = None, verbose: bool = False) -> None:
    """Print a report to the terminal."""
    console = console or Console()

    table = Table(title="Findings by severity")
    table.add_column("Severity", style="bold")
    table.add_column("Count", justify="right")
    for severity in Severity:
        color = SEVERITY_COLORS[severity.value]
        table.add_row(f"[{color}]{severity.label}[/{color}]", str(report.count(severity)))
    table.add_row("Total", str(report.summary.get("total", 0)))
    console.print(table)
    console.print()

    if not report.findings:
        console.print("[green]✓ No vulnerabilities found[/green]")

    for finding in report.findings:
        color = SEVERITY_COLORS[finding.severity.value]
        body = [
            f"[dim]{finding.location.describe()}  ({_where(finding)})[/dim]",
            "",
            finding.message,
        ]
        if finding.cwe:
            body.append(f"\n[dim]CWE: {finding.cwe}[/dim]")
        if finding.confidence < 1.0:
            body.append(f"[dim]Confidence: {finding.confidence:.1f}[/dim]")
        if verbose and finding.snippet:
            body.append(f"\n{finding.snippet}")
        if finding.remediation:
            body.append(f"\n[green]Fix: {finding.remediation}[/green]")
        console.print(Panel(
            "\n".join(body),
            title=f"[{color}]{finding.severity.value.upper()}[/{color}] {finding.detector_id}: {finding.title}",
            title_align="left",
            border_style=color,
        ))

    if report.coverage:
        console.print(f"\n[yellow]⚠️ {len(report.coverage)} part(s) not fully modeled[/yellow]")
        for note in report.coverage:
            console.print(f"  • {note}")

    if report.diagnostics:
        console.print(f"\n[yellow]⚠️ {len(report.diagnostics)} detector(s) failed[/yellow]")
        for diagnostic in report.diagnostics:
            console.print(f"  • {diagnostic.detector_id}: {diagnostic.message}")
