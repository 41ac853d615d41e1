"""
Report Aggregator: deduplicates and orders findings.

Pure functions over finding sequences; rendering lives in render.py.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .. import __version__
from .finding import Diagnostic, Finding, Severity


def dedupe(findings: Iterable[Finding]) -> List[Finding]:
    """
    Drop findings whose fingerprint was already seen.

    When two detectors produce the same fingerprint, the more severe one
    is kept (ties go to the lower detector id).
    """
    best: Dict[str, Finding] = {}
    for finding in findings:
        current = best.get(finding.fingerprint)
        if current is None or (finding.severity.rank, current.detector_id) > (current.severity.rank, finding.detector_id):
            best[finding.fingerprint] = finding
    return list(best.values())


def sort_findings(findings: Iterable[Finding]) -> List[Finding]:
    """Severity descending, then program, instruction, detector id and fingerprint."""
    return sorted(findings, key=lambda f: f.sort_key)


def summarize(findings: Sequence[Finding]) -> Dict[str, int]:
    summary = {severity.value: 0 for severity in Severity}
    for finding in findings:
        summary[finding.severity.value] += 1
    summary["total"] = len(findings)
    return summary


@dataclass(frozen=True)
class Report:
    """Sorted, deduplicated findings with summary counts and coverage notes."""
    findings: Tuple[Finding, ...]
    summary: Dict[str, int]
    coverage: Tuple[str, ...] = ()
    diagnostics: Tuple[Diagnostic, ...] = ()
    files: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def has_findings(self) -> bool:
        return bool(self.findings)

    def count(self, severity: Severity) -> int:
        return self.summary.get(severity.value, 0)

    def exit_code(self) -> int:
        """2 if any critical finding, 1 if any high, else 0."""
        if self.count(Severity.CRITICAL):
            return 2
        if self.count(Severity.HIGH):
            return 1
        return 0

    def to_dict(self) -> Dict:
        return {
            "tool": "anchor-sentinel",
            "version": __version__,
            "summary": dict(self.summary),
            "findings": [f.to_dict() for f in self.findings],
            "coverage": list(self.coverage),
            "diagnostics": [d.to_dict() for d in self.diagnostics],
            "files": list(self.files),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Report":
        return aggregate(Finding.from_dict(f) for f in data.get("findings", []))


def aggregate(
    findings: Iterable[Finding],
    model: Optional[object] = None,
    diagnostics: Iterable[Diagnostic] = (),
) -> Report:
    """
    Build a report from findings.

    Args:
        findings: Findings from one or more detector runs, in any order
        model: The ProgramModel they came from, for coverage notes
        diagnostics: Framework diagnostics to carry along

    Returns:
        Report whose ordering depends only on the findings themselves
    """
    ordered = sort_findings(dedupe(findings))
    coverage: Tuple[str, ...] = ()
    files: Tuple[str, ...] = ()
    if model is not None:
        coverage = tuple(model.coverage_notes())
        files = tuple(model.files)
    return Report(
        findings=tuple(ordered),
        summary=summarize(ordered),
        coverage=coverage,
        diagnostics=tuple(sorted(diagnostics, key=lambda d: (d.detector_id, d.message))),
        files=files,
    )
