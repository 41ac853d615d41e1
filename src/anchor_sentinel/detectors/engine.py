"""
Detector Engine: runs a selection of catalog detectors over one model.

Detectors are evaluated in isolation. A detector that raises is recorded as
a Diagnostic and the rest still run; findings are merged through the
aggregator's dedup and sort so the result never depends on evaluation order.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from ..analysis.models import ProgramModel
from ..report.aggregator import dedupe, sort_findings
from ..report.finding import Diagnostic, Finding, Severity
from .base import Detector, DetectorConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DetectorRun:
    """Findings from one engine run plus any detector failures."""
    findings: Tuple[Finding, ...]
    diagnostics: Tuple[Diagnostic, ...] = ()

    def __iter__(self) -> Iterator[Finding]:
        return iter(self.findings)

    def __len__(self) -> int:
        return len(self.findings)

    @property
    def ids(self) -> List[str]:
        return sorted({f.detector_id for f in self.findings})


def select(
    catalog: Sequence[Detector],
    selection: Union[str, Iterable[str]] = "all",
    exclude: Optional[Iterable[str]] = None,
) -> List[Detector]:
    """
    Resolve a selection against the catalog.

    Args:
        catalog: Available detectors
        selection: "all" or an iterable of detector IDs
        exclude: IDs removed after selection

    Raises:
        ValueError: If any ID is not in the catalog
    """
    known = {d.id: d for d in catalog}
    if isinstance(selection, str):
        if selection.lower() != "all":
            raise ValueError(f"selection must be 'all' or a set of detector IDs, got {selection!r}")
        wanted = list(known)
    else:
        wanted = [s.strip().upper() for s in selection]
    removed = {s.strip().upper() for s in (exclude or ())}

    unknown = sorted((set(wanted) | removed) - set(known))
    if unknown:
        raise ValueError(f"Unknown detector ID(s): {', '.join(unknown)}")

    return [d for d in catalog if d.id in wanted and d.id not in removed]


def _evaluate(detector: Detector, model: ProgramModel, config: DetectorConfig) -> Tuple[List[Finding], Optional[Diagnostic]]:
    try:
        findings = detector.detect(model, config)
    except Exception as e:
        logger.warning("Detector %s failed: %s: %s", detector.id, type(e).__name__, e)
        return [], Diagnostic(detector.id, f"{type(e).__name__}: {e}")
    logger.debug("Detector %s: %d finding(s)", detector.id, len(findings))
    return findings, None


def run(
    model: ProgramModel,
    selection: Union[str, Iterable[str]] = "all",
    severity_floor: Union[Severity, str] = Severity.LOW,
    *,
    exclude: Optional[Iterable[str]] = None,
    max_workers: Optional[int] = None,
    config: Optional[DetectorConfig] = None,
    catalog: Optional[Sequence[Detector]] = None,
) -> DetectorRun:
    """
    Run detectors over a model.

    Args:
        model: Immutable program model
        selection: "all" or detector IDs
        severity_floor: Detectors below this severity are not evaluated
        exclude: Detector IDs to skip
        max_workers: Evaluate detectors on a thread pool when greater than 1
        config: Predicate tunables
        catalog: Detector set to select from (defaults to CATALOG)

    Returns:
        DetectorRun with sorted, deduplicated findings
    """
    if catalog is None:
        from . import CATALOG
        catalog = CATALOG
    floor = Severity.parse(severity_floor)
    config = config or DetectorConfig()

    detectors = [d for d in select(catalog, selection, exclude) if d.severity.at_least(floor)]
    logger.debug("Running %d detector(s) at floor %s", len(detectors), floor.value)

    if max_workers and max_workers > 1 and len(detectors) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            results = list(executor.map(lambda d: _evaluate(d, model, config), detectors))
    else:
        results = [_evaluate(d, model, config) for d in detectors]

    findings: List[Finding] = []
    diagnostics: List[Diagnostic] = []
    for found, diagnostic in results:
        findings.extend(found)
        if diagnostic is not None:
            diagnostics.append(diagnostic)

    return DetectorRun(
        findings=tuple(sort_findings(dedupe(findings))),
        diagnostics=tuple(sorted(diagnostics, key=lambda d: d.detector_id)),
    )
