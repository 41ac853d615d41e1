"""
PDA detectors: seed collisions, bump verification and unverified seeds.
"""

from itertools import combinations
from typing import Iterator, Optional, Tuple

from ..analysis.models import (
    AccountKind,
    ConstraintKind,
    DerivationOrigin,
    PdaDerivation,
    Program,
    ProgramModel,
    Verification,
)
from ..report.finding import Location
from .base import (
    DetectorConfig,
    Hit,
    UNKNOWN_NOTE,
    confidence,
    field_location,
    field_snippet,
    field_uncertain,
    has_one_targets,
    site_location,
)

SKIPPED_KINDS = {AccountKind.SIGNER, AccountKind.PROGRAM, AccountKind.SYSVAR}


def derivation_location(program: Program, derivation: PdaDerivation) -> Optional[Location]:
    """Where a derivation is reported: its field, or the instruction deriving it."""
    if derivation.origin == DerivationOrigin.CONSTRAINT:
        ctx = program.context(derivation.context)
        f = ctx.field(derivation.field) if ctx is not None and derivation.field else None
        if f is None:
            return None
        return field_location(program, ctx, f)
    ix = program.get_instruction(derivation.instruction) if derivation.instruction else None
    if ix is None:
        return None
    return site_location(program, ix, "pda", derivation.location)


def _prefix_collision(short: PdaDerivation, long: PdaDerivation) -> bool:
    """The shorter seed list can produce the same bytes as the longer one."""
    if not all(a.compatible(b) for a, b in zip(short.seeds, long.seeds)):
        return False
    return all(seed.may_be_empty for seed in long.seeds[len(short.seeds):])


def _collides(a: PdaDerivation, b: PdaDerivation) -> bool:
    if len(a.seeds) != len(b.seeds):
        short, long = (a, b) if len(a.seeds) < len(b.seeds) else (b, a)
        return _prefix_collision(short, long)
    if not all(x.compatible(y) for x, y in zip(a.seeds, b.seeds)):
        return False
    return a.init and b.init and a.context != b.context


def _order(a: PdaDerivation, b: PdaDerivation) -> Tuple[PdaDerivation, PdaDerivation]:
    """(other, reported): the longer derivation is reported, else the later site."""
    if len(a.seeds) != len(b.seeds):
        return (a, b) if len(a.seeds) < len(b.seeds) else (b, a)
    return (a, b) if a.site <= b.site else (b, a)


def colliding_pairs(program: Program) -> Iterator[Tuple[PdaDerivation, PdaDerivation]]:
    """Each colliding pair of derivations once, as (other, reported)."""
    derivations = [d for d in program.derivations if d.seeds_known and d.seeds]
    for a, b in combinations(derivations, 2):
        if a.site != b.site and _collides(a, b):
            yield _order(a, b)


def seed_collision(model: ProgramModel, config: DetectorConfig) -> Iterator[Hit]:
    """Two derivations whose seed lists can yield the same address."""
    for program in model.programs:
        for other, reported in colliding_pairs(program):
            location = derivation_location(program, reported)
            if location is None:
                continue
            yield Hit(
                location=location,
                signature="|".join(sorted([other.site, reported.site])),
                title=f"PDA seeds of `{reported.site}` can collide with `{other.site}`",
                message=(
                    f"`{reported.site}` derives from {reported.seed_text} and `{other.site}` from "
                    f"{other.seed_text}. A caller-chosen seed can be empty or crafted so both "
                    f"resolve to the same address, letting one account stand in for the other."
                ),
                confidence=confidence(program.degraded, config),
            )


def missing_bump(model: ProgramModel, config: DetectorConfig) -> Iterator[Hit]:
    """PDAs whose bump is never pinned to the canonical value."""
    for program in model.programs:
        for derivation in program.derivations:
            if derivation.bump_verification == Verification.VERIFIED:
                continue
            location = derivation_location(program, derivation)
            if location is None:
                continue
            uncertain = derivation.bump_verification == Verification.UNKNOWN
            if derivation.origin == DerivationOrigin.CONSTRAINT:
                detail = "declares `seeds` without a `bump` constraint"
            else:
                detail = "derives an address at runtime and never checks the result against the account passed in"
            yield Hit(
                location=location,
                signature=f"bump:{derivation.site}",
                title=f"PDA `{derivation.site}` has no bump verification",
                message=(
                    f"`{derivation.site}` {detail}. A non-canonical bump yields a different valid "
                    f"address for the same seeds {derivation.seed_text}."
                    + (UNKNOWN_NOTE if uncertain else "")
                ),
                confidence=confidence(uncertain, config),
            )


def unverified_seeds(model: ProgramModel, config: DetectorConfig) -> Iterator[Hit]:
    """State-like accounts that should be PDAs but are accepted from any address."""
    for program in model.programs:
        for ctx in program.contexts:
            bound = set(has_one_targets(ctx))
            for f in ctx.fields:
                if f.kind in SKIPPED_KINDS or f.is_pda or f.is_init or f.name in bound:
                    continue
                lowered = f.name.lower()
                if not any(name in lowered for name in config.pda_names):
                    continue
                if any(f.has(kind) for kind in (
                    ConstraintKind.ADDRESS, ConstraintKind.CUSTOM, ConstraintKind.HAS_ONE, ConstraintKind.TOKEN,
                )):
                    continue
                uncertain = field_uncertain(ctx, f)
                yield Hit(
                    location=field_location(program, ctx, f),
                    signature=f"{ctx.name}.{f.name}",
                    title=f"`{f.name}` in `{ctx.name}` is not bound to its seeds",
                    message=(
                        f"`{f.name}` looks like program-owned state but has no `seeds` constraint, "
                        f"address check or has_one binding. Any account of the right type is accepted."
                        + (UNKNOWN_NOTE if uncertain else "")
                    ),
                    confidence=confidence(uncertain, config),
                    snippet=field_snippet(f),
                )
