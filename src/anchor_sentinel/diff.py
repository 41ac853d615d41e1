"""
Diff Engine: compares two finding sets by fingerprint.

Matching is exact set arithmetic over fingerprints. Line numbers, file paths
and message text play no part in deciding whether a finding is new, fixed
or persisted.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping, Tuple

from .report.aggregator import sort_findings
from .report.finding import Finding


def _index(findings: Iterable[Finding]) -> Dict[str, Finding]:
    # First occurrence of a fingerprint wins
    index: Dict[str, Finding] = {}
    for finding in findings:
        index.setdefault(finding.fingerprint, finding)
    return index


@dataclass(frozen=True)
class DiffReport:
    """Partition of two finding sets into new, fixed and persisted."""
    new: FrozenSet[str]
    fixed: FrozenSet[str]
    persisted: FrozenSet[str]
    new_findings: Tuple[Finding, ...] = ()
    fixed_findings: Tuple[Finding, ...] = ()
    pairs: Mapping[str, Tuple[Finding, Finding]] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def has_regressions(self) -> bool:
        return bool(self.new)

    def drifted(self) -> List[Tuple[Finding, Finding]]:
        """Persisted findings whose message or display location moved."""
        moved = []
        for fingerprint in sorted(self.pairs):
            old, new = self.pairs[fingerprint]
            if old.message != new.message or old.location != new.location:
                moved.append((old, new))
        return moved

    def to_dict(self) -> Dict:
        return {
            "summary": {
                "new": len(self.new),
                "fixed": len(self.fixed),
                "persisted": len(self.persisted),
            },
            "new": [f.to_dict() for f in self.new_findings],
            "fixed": [f.to_dict() for f in self.fixed_findings],
            "persisted": sorted(self.persisted),
        }


def diff(old: Iterable[Finding], new: Iterable[Finding]) -> DiffReport:
    """
    Compare findings from an old and a new snapshot.

    Args:
        old: Findings of the earlier snapshot
        new: Findings of the later snapshot

    Returns:
        DiffReport with new = new - old, fixed = old - new and
        persisted = old & new, all by fingerprint
    """
    before = _index(old)
    after = _index(new)

    new_keys = frozenset(after) - frozenset(before)
    fixed_keys = frozenset(before) - frozenset(after)
    persisted = frozenset(before) & frozenset(after)

    return DiffReport(
        new=new_keys,
        fixed=fixed_keys,
        persisted=persisted,
        new_findings=tuple(sort_findings(after[k] for k in new_keys)),
        fixed_findings=tuple(sort_findings(before[k] for k in fixed_keys)),
        pairs=MappingProxyType({k: (before[k], after[k]) for k in sorted(persisted)}),
    )
