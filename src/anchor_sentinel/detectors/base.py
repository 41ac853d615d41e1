"""
Detector variant and the helpers shared by detector predicates.

A detector is a value, not a subclass: an id, its intrinsic severity, and a
predicate over the ProgramModel that yields Hits. The engine owns turning
hits into Findings, so fingerprints and location checks are uniform across
the catalog.
"""

from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, List, Optional, Tuple

from ..analysis.models import (
    AccountContext,
    AccountField,
    AccountKind,
    ConstraintKind,
    Instruction,
    Program,
    ProgramModel,
    SourceLocation,
)
from ..errors import DetectorFault
from ..parser.normalize import free_identifiers, parse_type
from ..report.finding import Finding, Location, Severity, compute_fingerprint

AUTHORITY_NAMES = (
    "authority",
    "owner",
    "admin",
    "manager",
    "operator",
    "signer",
    "payer",
    "creator",
    "initializer",
    "controller",
    "governor",
)

PDA_NAMES = ("pda", "vault", "state", "config", "pool", "escrow")

UNKNOWN_NOTE = " The relevant constraint could not be fully modeled, so this is reported at reduced confidence."


@dataclass(frozen=True)
class DetectorConfig:
    """Tunables passed explicitly to every predicate."""
    authority_names: Tuple[str, ...] = AUTHORITY_NAMES
    pda_names: Tuple[str, ...] = PDA_NAMES
    unknown_confidence: float = 0.5


@dataclass(frozen=True)
class Hit:
    """One raw match produced by a predicate."""
    location: Location
    signature: str
    title: str
    message: str
    confidence: float = 1.0
    snippet: Optional[str] = None


Predicate = Callable[[ProgramModel, DetectorConfig], Iterable[Hit]]


@dataclass(frozen=True)
class Detector:
    """A catalog entry: identity, intrinsic severity and structural predicate."""
    id: str
    name: str
    severity: Severity
    cwe: str
    description: str
    remediation: str
    predicate: Predicate

    def detect(self, model: ProgramModel, config: Optional[DetectorConfig] = None) -> List[Finding]:
        """
        Evaluate the predicate and build findings.

        Raises:
            DetectorFault: If a hit points at something not in the model
        """
        config = config or DetectorConfig()
        findings = []
        for hit in self.predicate(model, config):
            location = hit.location
            if model.resolve(location) is None:
                raise DetectorFault(self.id, f"location {location.describe()} does not resolve in the model")
            findings.append(Finding(
                detector_id=self.id,
                code=self.id,
                name=self.name,
                title=hit.title,
                severity=self.severity,
                location=location,
                message=hit.message,
                fingerprint=compute_fingerprint(
                    self.id, location.program, location.instruction, location.site_kind, hit.signature,
                ),
                confidence=hit.confidence,
                cwe=self.cwe,
                remediation=self.remediation,
                snippet=hit.snippet,
            ))
        return findings


# ----------------------------------------------------------------------
# Predicate helpers
# ----------------------------------------------------------------------

def contexts_with_users(program: Program) -> Iterator[Tuple[AccountContext, List[Optional[Instruction]]]]:
    """Each Accounts context with the instructions using it ([None] for an orphan)."""
    for ctx in program.contexts:
        users: List[Optional[Instruction]] = list(program.instructions_using(ctx.name))
        yield ctx, users or [None]


def field_location(
    program: Program,
    ctx: AccountContext,
    f: AccountField,
    instruction: Optional[Instruction] = None,
    site_kind: str = "account_field",
) -> Location:
    return Location(
        program=program.name,
        instruction=instruction.name if instruction is not None else None,
        context=ctx.name,
        field=f.name,
        site_kind=site_kind,
        file=f.location.file,
        line=f.location.line,
        column=f.location.column,
    )


def site_location(
    program: Program,
    instruction: Optional[Instruction],
    site_kind: str,
    at: SourceLocation,
) -> Location:
    return Location(
        program=program.name,
        instruction=instruction.name if instruction is not None else None,
        site_kind=site_kind,
        file=at.file,
        line=at.line,
        column=at.column,
    )


def field_snippet(f: AccountField) -> str:
    raws = [c.raw for c in f.constraints]
    attribute = f"#[account({', '.join(raws)})]\n" if raws else ""
    return f"{attribute}pub {f.name}: {f.type_name},"


def field_uncertain(ctx: AccountContext, f: AccountField) -> bool:
    """Whether a field's checks could not be fully modeled."""
    return bool(f.unknown_constraints) or ctx.degraded or f.kind == AccountKind.UNKNOWN


def unrecognized_account(program: Program, f: AccountField) -> bool:
    """Declared with a type Anchor gives no guarantees for (not a nested Accounts struct)."""
    return f.kind == AccountKind.UNKNOWN and program.context(parse_type(f.type_name).name) is None


def confidence(uncertain: bool, config: DetectorConfig) -> float:
    return config.unknown_confidence if uncertain else 1.0


def has_one_targets(ctx: AccountContext) -> List[str]:
    return [
        c.argument for f in ctx.fields for c in f.constraints
        if c.kind == ConstraintKind.HAS_ONE and c.argument
    ]


def close_targets(ctx: AccountContext) -> List[str]:
    return [
        c.argument for f in ctx.fields for c in f.constraints
        if c.kind == ConstraintKind.CLOSE and c.argument
    ]


def user_amount(instruction: Instruction, expression: str) -> List[str]:
    """Instruction arguments an expression is computed from."""
    params = set(instruction.parameter_names)
    return [name for name in free_identifiers(expression) if name in params]


def guarded_before(instruction: Instruction, names: Iterable[str], position: int) -> bool:
    """Whether a guard ahead of `position` puts an upper bound on any of `names`."""
    names = list(names)
    return any(
        g.position < position and any(g.bounds(n) for n in names)
        for g in instruction.guards
    )
