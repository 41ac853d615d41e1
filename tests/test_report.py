"""Tests for the Report Aggregator and renderers."""

import json

from rich.console import Console

from anchor_sentinel.report import (
    Diagnostic,
    Finding,
    Location,
    Report,
    Severity,
    aggregate,
    compute_fingerprint,
    dedupe,
    print_report,
    render_github,
    render_json,
    render_markdown,
)


def make_finding(detector_id, severity, fingerprint, program="vault", instruction="withdraw", **kwargs):
    return Finding(
        detector_id=detector_id,
        code=detector_id,
        name=f"{detector_id} name",
        title=f"{detector_id} title",
        severity=severity,
        location=Location(program=program, instruction=instruction, file="src/lib.rs", line=12),
        message="Something is wrong",
        fingerprint=fingerprint,
        **kwargs
    )


class TestFingerprint:
    def test_formatting_does_not_matter(self):
        a = compute_fingerprint("V003", "fees", "charge", "arithmetic", "add:amount + fee#0")
        b = compute_fingerprint("V003", "fees", "charge", "arithmetic", "add:amount+fee#0")
        assert a == b

    def test_every_field_counts(self):
        base = compute_fingerprint("V003", "fees", "charge", "arithmetic", "add:amount+fee#0")
        assert compute_fingerprint("V003", "fees", "charge", "arithmetic", "add:amount+fee#1") != base
        assert compute_fingerprint("V003", "fees", None, "arithmetic", "add:amount+fee#0") != base
        assert compute_fingerprint("V016", "fees", "charge", "arithmetic", "add:amount+fee#0") != base

    def test_fields_cannot_bleed_into_each_other(self):
        assert compute_fingerprint("V001", "ab", "c", "k", "s") != compute_fingerprint("V001", "a", "bc", "k", "s")


class TestAggregate:
    def test_sorted_by_severity_then_location(self):
        findings = [
            make_finding("V026", Severity.MEDIUM, "a" * 32),
            make_finding("V003", Severity.HIGH, "b" * 32, instruction="zeta"),
            make_finding("V001", Severity.CRITICAL, "c" * 32),
            make_finding("V002", Severity.HIGH, "d" * 32, instruction="alpha"),
        ]
        report = aggregate(findings)
        assert [f.detector_id for f in report.findings] == ["V001", "V002", "V003", "V026"]

    def test_order_of_input_does_not_matter(self):
        findings = [
            make_finding("V003", Severity.HIGH, "b" * 32),
            make_finding("V001", Severity.CRITICAL, "c" * 32),
            make_finding("V018", Severity.LOW, "e" * 32),
        ]
        assert aggregate(findings).findings == aggregate(reversed(findings)).findings

    def test_dedupe_keeps_the_most_severe(self):
        low = make_finding("V018", Severity.LOW, "f" * 32)
        high = make_finding("V010", Severity.HIGH, "f" * 32)
        assert dedupe([low, high]) == [high]
        assert dedupe([high, low]) == [high]

    def test_summary_counts(self):
        report = aggregate([
            make_finding("V001", Severity.CRITICAL, "1" * 32),
            make_finding("V001", Severity.CRITICAL, "1" * 32),
            make_finding("V003", Severity.HIGH, "2" * 32),
        ])
        assert report.summary == {"critical": 1, "high": 1, "medium": 0, "low": 0, "total": 2}

    def test_coverage_notes_come_from_the_model(self, vault_model):
        report = aggregate([], vault_model)
        assert report.coverage == ()
        assert report.files == ("programs/vault/src/lib.rs",)


class TestExitCode:
    def test_critical(self):
        assert aggregate([make_finding("V001", Severity.CRITICAL, "1" * 32)]).exit_code() == 2

    def test_high(self):
        assert aggregate([make_finding("V003", Severity.HIGH, "1" * 32)]).exit_code() == 1

    def test_medium_and_low_pass(self):
        report = aggregate([
            make_finding("V026", Severity.MEDIUM, "1" * 32),
            make_finding("V018", Severity.LOW, "2" * 32),
        ])
        assert report.exit_code() == 0

    def test_empty(self):
        assert aggregate([]).exit_code() == 0


class TestSerialization:
    def test_json_round_trip_keeps_findings(self):
        report = aggregate([
            make_finding("V001", Severity.CRITICAL, "1" * 32, confidence=0.5, cwe="CWE-862"),
            make_finding("V003", Severity.HIGH, "2" * 32, snippet="amount+fee"),
        ], diagnostics=[Diagnostic("X001", "RuntimeError: boom")])

        data = json.loads(render_json(report))
        assert data["tool"] == "anchor-sentinel"
        assert data["summary"]["total"] == 2
        assert data["diagnostics"] == [{"detector": "X001", "message": "RuntimeError: boom"}]

        restored = Report.from_dict(data)
        assert restored.findings == report.findings


class TestRenderers:
    def test_markdown(self):
        report = aggregate([make_finding("V001", Severity.CRITICAL, "1" * 32, confidence=0.5)])
        text = render_markdown(report)
        assert text.startswith("# Anchor-Sentinel Security Report")
        assert "| Critical | 1 |" in text
        assert "V001: V001 title" in text
        assert "**Confidence:** 0.5" in text

    def test_markdown_without_findings(self):
        assert "No findings." in render_markdown(aggregate([]))

    def test_github_annotations(self):
        report = aggregate([
            make_finding("V001", Severity.CRITICAL, "1" * 32),
            make_finding("V026", Severity.MEDIUM, "2" * 32),
        ])
        lines = render_github(report).splitlines()
        assert lines[0].startswith("::error file=src/lib.rs,line=12,title=V001 V001 name::")
        assert lines[1].startswith("::warning ")

    def test_terminal(self):
        console = Console(record=True, width=120)
        print_report(aggregate([make_finding("V001", Severity.CRITICAL, "1" * 32)]), console=console)
        text = console.export_text()
        assert "CRITICAL" in text
        assert "V001 title" in text
