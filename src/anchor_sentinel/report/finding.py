"""
Findings and their structural identity.
"""

import hashlib
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Any

from ..parser.normalize import normalize_expression

# ASCII unit separator; never appears in identifiers or normalized code
FIELD_SEPARATOR = "\x1f"


class Severity(str, Enum):
    """Severity levels for findings."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Higher is more severe."""
        return _RANKS[self]

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @classmethod
    def parse(cls, value: Any) -> "Severity":
        """Parse a severity from a name such as `High`, `high` or `HIGH`."""
        if isinstance(value, Severity):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(
                f"Unknown severity '{value}' (expected one of: critical, high, medium, low)"
            ) from None

    def at_least(self, floor: "Severity") -> bool:
        return self.rank >= floor.rank


_RANKS = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
}


@dataclass(frozen=True)
class Location:
    """
    Where a finding points in the program model.

    `program`, `instruction`, `context` and `field` name model entities;
    `file`, `line` and `column` are for display only and never feed the
    fingerprint.
    """
    program: str
    instruction: Optional[str] = None
    context: Optional[str] = None
    field: Optional[str] = None
    site_kind: str = "instruction"
    file: str = ""
    line: int = 0
    column: int = 0

    def describe(self) -> str:
        parts = [self.program]
        if self.instruction:
            parts.append(self.instruction)
        if self.context and self.field:
            parts.append(f"{self.context}.{self.field}")
        elif self.field:
            parts.append(self.field)
        return "::".join(parts)

    def to_dict(self) -> Dict:
        return {
            "program": self.program,
            "instruction": self.instruction,
            "context": self.context,
            "field": self.field,
            "site_kind": self.site_kind,
            "file": self.file,
            "line": self.line,
            "column": self.column,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Location":
        return cls(
            program=data["program"],
            instruction=data.get("instruction"),
            context=data.get("context"),
            field=data.get("field"),
            site_kind=data.get("site_kind", "instruction"),
            file=data.get("file", ""),
            line=data.get("line", 0),
            column=data.get("column", 0),
        )


def compute_fingerprint(
    detector_id: str,
    program: str,
    instruction: Optional[str],
    site_kind: str,
    signature: str,
) -> str:
    """
    Stable identity of a finding.

    The signature is normalized again here, so callers passing raw source
    text still get a formatting-independent fingerprint.

    Returns:
        First 32 hex characters of the SHA-256 digest
    """
    material = FIELD_SEPARATOR.join([
        detector_id,
        program,
        instruction or "",
        site_kind,
        normalize_expression(signature),
    ])
    return hashlib.sha256(material.encode("utf-8")).hexdigest()[:32]


@dataclass(frozen=True)
class Finding:
    """A detected vulnerability."""
    detector_id: str
    code: str
    name: str
    title: str
    severity: Severity
    location: Location
    message: str
    fingerprint: str

    confidence: float = 1.0
    cwe: Optional[str] = None
    remediation: Optional[str] = None
    snippet: Optional[str] = None

    @property
    def sort_key(self):
        return (
            -self.severity.rank,
            self.location.program,
            self.location.instruction or "",
            self.detector_id,
            self.fingerprint,
        )

    def to_dict(self) -> Dict:
        return {
            "id": self.detector_id,
            "code": self.code,
            "name": self.name,
            "title": self.title,
            "severity": self.severity.value,
            "location": self.location.to_dict(),
            "message": self.message,
            "fingerprint": self.fingerprint,
            "confidence": self.confidence,
            "cwe": self.cwe,
            "remediation": self.remediation,
            "snippet": self.snippet,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Finding":
        return cls(
            detector_id=data["id"],
            code=data.get("code", data["id"]),
            name=data.get("name", ""),
            title=data.get("title", ""),
            severity=Severity.parse(data["severity"]),
            location=Location.from_dict(data["location"]),
            message=data.get("message", ""),
            fingerprint=data["fingerprint"],
            confidence=data.get("confidence", 1.0),
            cwe=data.get("cwe"),
            remediation=data.get("remediation"),
            snippet=data.get("snippet"),
        )


@dataclass(frozen=True)
class Diagnostic:
    """A framework-level problem that is not a finding (e.g. a detector that failed)."""
    detector_id: str
    message: str

    def to_dict(self) -> Dict:
        return {"detector": self.detector_id, "message": self.message}
