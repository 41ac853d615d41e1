"""
CLI entry point for Anchor-Sentinel.

Usage:
    anchor-sentinel scan programs/my_program --format markdown --output report.md
    anchor-sentinel scan programs/ --only V001,V004 --generate-poc
    anchor-sentinel diff old_checkout/ new_checkout/
    anchor-sentinel list
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .analysis import ModelBuilder, SourceLoader
from .analysis.models import ProgramModel
from .config import ScanConfig, load_env, parse_ids
from .errors import NoSourcesError, SentinelError
from .report import Finding, Report, Severity, aggregate, print_report, render_github, render_json, render_markdown

console = Console()
logger = logging.getLogger(__name__)

FORMATS = ["terminal", "json", "markdown", "github"]
LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def setup_logging(level: Optional[str]) -> None:
    """Send log records to stderr through rich."""
    level = (level or os.environ.get("SENTINEL_LOG_LEVEL") or "WARNING").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def build_config(args: argparse.Namespace) -> ScanConfig:
    """Environment defaults, overridden by whatever was given on the command line."""
    config = ScanConfig.from_env()
    only = getattr(args, "only", None)
    exclude = getattr(args, "exclude", None)
    severity = getattr(args, "severity", None)
    poc_dir = getattr(args, "poc_dir", None) or getattr(args, "output_dir", None)
    return config.with_overrides(
        selection=parse_ids(only) if only else None,
        exclude=parse_ids(exclude) if exclude else None,
        severity_floor=Severity.parse(severity) if severity else None,
        max_workers=getattr(args, "workers", None),
        generate_poc=True if getattr(args, "generate_poc", False) else None,
        output_dir=poc_dir,
    )


def scan_path(root: str, config: ScanConfig) -> Tuple[ProgramModel, Report]:
    """
    Load, model and analyze one source tree.

    Raises:
        FileNotFoundError: If the root does not exist
        NoSourcesError: If there is nothing to analyze
        ValueError: If the selection names unknown detectors
    """
    from .detectors import run

    sources = SourceLoader().load(root)
    model = ModelBuilder(max_workers=config.max_workers).build(sources)
    result = run(
        model,
        config.selection,
        config.severity_floor,
        exclude=config.exclude,
        max_workers=config.max_workers,
    )
    return model, aggregate(result.findings, model, result.diagnostics)


def _emit(text: str, output: Optional[str]) -> None:
    if output:
        Path(output).write_text(text + "\n", encoding="utf-8")
        console.print(f"[dim]Report written to: {output}[/dim]")
    else:
        sys.stdout.write(text + "\n")


def _write_pocs(model: ProgramModel, findings: Sequence[Finding], config: ScanConfig) -> int:
    from .poc import synthesize_all, write_artifacts

    artifacts, unsupported = synthesize_all(findings, model, max_workers=config.max_workers)
    written = write_artifacts(artifacts, config.output_dir)
    console.print(
        f"[green]✓ {len(artifacts)} POC script(s) written to {config.output_dir}[/green]"
        f" [dim]({len(written)} file(s), {len(unsupported)} finding(s) without a template)[/dim]"
    )
    return len(artifacts)


def run_scan(args: argparse.Namespace) -> int:
    """Scan a source tree and report findings."""
    try:
        config = build_config(args)
        model, report = scan_path(args.path, config)
    except (FileNotFoundError, NoSourcesError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    if args.format == "terminal":
        if args.output:
            _emit(render_json(report), args.output)
        else:
            console.print()
            console.print(Panel(
                f"[bold cyan]{args.path}[/bold cyan]\n\n"
                f"[dim]Files: {len(model.files)}  Programs: {len(model.programs)}[/dim]\n"
                f"[dim]Severity floor: {config.severity_floor.label}[/dim]",
                title="[bold]Anchor-Sentinel Scan[/bold]",
            ))
            print_report(report, console, verbose=args.verbose)
    elif args.format == "json":
        _emit(render_json(report), args.output)
    elif args.format == "markdown":
        _emit(render_markdown(report), args.output)
    else:
        _emit(render_github(report), args.output)

    if config.generate_poc and report.findings:
        _write_pocs(model, report.findings, config)

    return report.exit_code()


def _load_findings(path: str, config: ScanConfig) -> List[Finding]:
    """Findings from a saved JSON report, or from scanning a source tree."""
    p = Path(path)
    if p.is_file() and p.suffix == ".json":
        with open(p, encoding="utf-8") as f:
            data = json.load(f)
        return list(Report.from_dict(data).findings)
    _model, report = scan_path(path, config)
    return list(report.findings)


def run_diff(args: argparse.Namespace) -> int:
    """Compare findings of two snapshots."""
    from .diff import diff

    try:
        config = build_config(args)
        old = _load_findings(args.old, config)
        new = _load_findings(args.new, config)
    except (FileNotFoundError, NoSourcesError, ValueError, KeyError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    result = diff(old, new)

    if args.format == "json":
        _emit(json.dumps(result.to_dict(), indent=2), args.output)
    else:
        table = Table(title="Findings diff")
        table.add_column("Status", style="bold")
        table.add_column("Count", justify="right")
        table.add_row("[red]New[/red]", str(len(result.new)))
        table.add_row("[green]Fixed[/green]", str(len(result.fixed)))
        table.add_row("[dim]Persisted[/dim]", str(len(result.persisted)))
        console.print(table)

        for label, color, findings in (
            ("NEW", "red", result.new_findings),
            ("FIXED", "green", result.fixed_findings),
        ):
            for finding in findings:
                console.print(
                    f"[{color}]{label}[/{color}] {finding.severity.value.upper()} "
                    f"{finding.detector_id}: {finding.title} [dim]{finding.location.describe()}[/dim]"
                )

    # Only regressions affect the exit status
    return aggregate(result.new_findings).exit_code()


def run_poc(args: argparse.Namespace) -> int:
    """Scan a tree and write exploit POCs for its findings."""
    try:
        config = build_config(args).with_overrides(generate_poc=True)
        model, report = scan_path(args.path, config)
    except (FileNotFoundError, NoSourcesError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    if not report.findings:
        console.print("[green]✓ No findings, nothing to generate[/green]")
        return 0

    _write_pocs(model, report.findings, config)
    return 0


def list_detectors(args: argparse.Namespace) -> int:
    """Print the detector catalog."""
    from .detectors import CATALOG
    from .poc import TEMPLATES

    table = Table(title="Detectors")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Severity")
    table.add_column("CWE")
    table.add_column("POC", justify="center")
    for detector in CATALOG:
        table.add_row(
            detector.id,
            detector.name,
            detector.severity.label,
            detector.cwe or "-",
            "✓" if detector.id in TEMPLATES else "",
        )
    console.print(table)
    return 0


def show_model(args: argparse.Namespace) -> int:
    """Print the program model recovered from a tree."""
    try:
        sources = SourceLoader().load(args.path)
        model = ModelBuilder().build(sources)
    except (FileNotFoundError, NoSourcesError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    if args.json:
        sys.stdout.write(json.dumps(model.to_dict(), indent=2) + "\n")
        return 0

    if not model.programs:
        console.print("[yellow]No Anchor program found[/yellow]")
    for program in model.programs:
        console.print(Panel(program.summary(), title=f"[bold]{program.name}[/bold]"))
        table = Table()
        table.add_column("Instruction", style="cyan")
        table.add_column("Context")
        table.add_column("Arguments")
        for ix in program.instructions:
            table.add_row(ix.name, ix.context_name or "-", ", ".join(p.name for p in ix.parameters) or "-")
        console.print(table)
    for note in model.coverage_notes():
        console.print(f"[yellow]⚠️ {note}[/yellow]")
    return 0


def show_version(args: argparse.Namespace) -> int:
    console.print(f"anchor-sentinel {__version__}")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="anchor-sentinel",
        description="Static vulnerability scanner for Solana Anchor programs",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        help="Logging level (default: $SENTINEL_LOG_LEVEL or WARNING)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # scan command
    scan_parser = subparsers.add_parser("scan", help="Scan Anchor program sources")
    scan_parser.add_argument("path", type=str, help="Program directory or .rs file")
    scan_parser.add_argument(
        "--format", "-f",
        choices=FORMATS,
        default="terminal",
        help="Output format (default: terminal)"
    )
    scan_parser.add_argument("--only", type=str, help="Comma-separated detector IDs to run")
    scan_parser.add_argument("--exclude", type=str, help="Comma-separated detector IDs to skip")
    scan_parser.add_argument(
        "--severity", "-s",
        type=str,
        help="Minimum severity to report: critical, high, medium, low"
    )
    scan_parser.add_argument("--generate-poc", action="store_true", help="Write exploit POCs for findings")
    scan_parser.add_argument("--poc-dir", type=str, help="Directory for POC scripts (default: pocs)")
    scan_parser.add_argument("--output", "-o", type=str, help="Write the report to a file")
    scan_parser.add_argument("--workers", "-j", type=int, help="Worker threads for parsing and detectors")
    scan_parser.add_argument("--verbose", "-v", action="store_true", help="Show code snippets")

    # diff command
    diff_parser = subparsers.add_parser("diff", help="Compare findings of two snapshots")
    diff_parser.add_argument("old", type=str, help="Old source tree or saved JSON report")
    diff_parser.add_argument("new", type=str, help="New source tree or saved JSON report")
    diff_parser.add_argument("--format", "-f", choices=["terminal", "json"], default="terminal")
    diff_parser.add_argument("--only", type=str, help="Comma-separated detector IDs to run")
    diff_parser.add_argument("--output", "-o", type=str, help="Write the diff to a file")

    # poc command
    poc_parser = subparsers.add_parser("poc", help="Generate exploit POCs")
    poc_parser.add_argument("path", type=str, help="Program directory or .rs file")
    poc_parser.add_argument("--only", type=str, help="Comma-separated detector IDs")
    poc_parser.add_argument("--output-dir", "-o", type=str, help="Directory for POC scripts (default: pocs)")

    subparsers.add_parser("list", help="List available detectors")

    model_parser = subparsers.add_parser("model", help="Show the recovered program model")
    model_parser.add_argument("path", type=str, help="Program directory or .rs file")
    model_parser.add_argument("--json", action="store_true", help="Print the model as JSON")

    subparsers.add_parser("version", help="Show version")

    return parser


COMMANDS = {
    "scan": run_scan,
    "diff": run_diff,
    "poc": run_poc,
    "list": list_detectors,
    "model": show_model,
    "version": show_version,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    load_env()
    setup_logging(args.log_level)

    handler = COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        return 0

    try:
        return handler(args)
    except SentinelError as e:
        logger.error("%s", e)
        return 1
    except OSError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
