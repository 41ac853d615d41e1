"""
Access-control detectors: signer checks, owner checks, authority delegation.
"""

from typing import Iterator, List, Optional

from ..analysis.models import (
    AccessKind,
    AccountContext,
    AccountField,
    AccountKind,
    Instruction,
    ProgramModel,
)
from .base import (
    DetectorConfig,
    Hit,
    UNKNOWN_NOTE,
    close_targets,
    confidence,
    contexts_with_users,
    field_location,
    field_snippet,
    field_uncertain,
    has_one_targets,
    site_location,
    unrecognized_account,
)

NON_AUTHORITY_KINDS = {AccountKind.PROGRAM, AccountKind.INTERFACE, AccountKind.SYSVAR}

OWNER_EXEMPT_NAMES = ("system_program", "rent", "clock", "token_program")

DELEGATION_CALLS = {"approve", "approve_checked", "set_authority", "delegate"}
REVOCATION_CALLS = {"revoke", "close_account"}

TRANSFER_CALLS = {"transfer", "transfer_checked", "transfer_lamports"}


def _authority_named(name: str, config: DetectorConfig) -> bool:
    lowered = name.lower()
    return any(pattern in lowered for pattern in config.authority_names)


def _moves_value(ctx: AccountContext, f: AccountField, users: List[Optional[Instruction]]) -> bool:
    """Used as a lamport source/destination, a close target, or passed to a transfer."""
    if f.name in close_targets(ctx):
        return True
    for ix in users:
        if ix is None:
            continue
        if any(a.kind == AccessKind.LAMPORTS for a in ix.accesses_of(f.name)):
            return True
        if any(f.name in cpi.accounts for cpi in ix.cpi_calls):
            return True
        if any(c.name in TRANSFER_CALLS and any(f.name in arg for arg in c.arguments) for c in ix.calls):
            return True
    return False


def _bound_by_key(ctx: AccountContext, f: AccountField) -> bool:
    """Another constraint pins this account's key (has_one, or a key comparison)."""
    if f.name in has_one_targets(ctx):
        return True
    for other in ctx.fields:
        for expr in other.custom_expressions:
            if f.name in expr and "key" in expr:
                return True
    return False


def _mutating(ctx: AccountContext, users: List[Optional[Instruction]]) -> bool:
    if any(f.is_writable for f in ctx.fields):
        return True
    return any(ix is not None and ix.mutates_state for ix in users)


def _signer_checked_in_body(ix: Optional[Instruction], name: str) -> bool:
    if ix is None:
        return False
    return any(g.mentions(name) and "is_signer" in g.expression for g in ix.guards)


def missing_signer(model: ProgramModel, config: DetectorConfig) -> Iterator[Hit]:
    """Authority-like accounts in mutating contexts that are never required to sign."""
    for program in model.programs:
        for ctx, users in contexts_with_users(program):
            if not _mutating(ctx, users):
                continue
            for f in ctx.fields:
                nested = f.kind == AccountKind.UNKNOWN and not unrecognized_account(program, f)
                if f.is_signer or f.kind in NON_AUTHORITY_KINDS or nested:
                    continue
                authority = _authority_named(f.name, config)
                unchecked = f.is_raw or unrecognized_account(program, f)
                raw_mover = unchecked and f.is_writable and _moves_value(ctx, f, users)
                if not (authority or raw_mover):
                    continue
                if _bound_by_key(ctx, f):
                    continue

                uncertain = field_uncertain(ctx, f)
                reason = "is named like an authority" if authority else "is a writable unchecked account that moves value"
                for ix in users:
                    if _signer_checked_in_body(ix, f.name):
                        continue
                    where = f"instruction `{ix.name}`" if ix is not None else f"context `{ctx.name}`"
                    yield Hit(
                        location=field_location(program, ctx, f, ix),
                        signature=f"{ctx.name}.{f.name}",
                        title=f"Account `{f.name}` in `{ctx.name}` is not required to sign",
                        message=(
                            f"The account `{f.name}` {reason} but carries no signer constraint, "
                            f"and no has_one or key constraint binds it. Anyone can pass an arbitrary "
                            f"account here and drive {where}." + (UNKNOWN_NOTE if uncertain else "")
                        ),
                        confidence=confidence(uncertain, config),
                        snippet=field_snippet(f),
                    )


def missing_owner(model: ProgramModel, config: DetectorConfig) -> Iterator[Hit]:
    """Raw AccountInfo/UncheckedAccount used without an owner or address check."""
    for program in model.programs:
        for ctx, users in contexts_with_users(program):
            for f in ctx.fields:
                if not (f.is_raw or unrecognized_account(program, f)) or f.has_owner_check or f.is_pda:
                    continue
                lowered = f.name.lower()
                if any(name in lowered for name in OWNER_EXEMPT_NAMES) or lowered.endswith("program"):
                    continue

                uncertain = field_uncertain(ctx, f)
                for ix in users:
                    used = f.is_writable or (ix is not None and bool(ix.accesses_of(f.name)))
                    if not used:
                        continue
                    yield Hit(
                        location=field_location(program, ctx, f, ix),
                        signature=f"{ctx.name}.{f.name}",
                        title=f"Unchecked account `{f.name}` has no owner check",
                        message=(
                            f"`{f.name}` is declared as `{f.type_name}` and is used without verifying "
                            f"which program owns it. An attacker can supply an account with forged data."
                            + (UNKNOWN_NOTE if uncertain else "")
                        ),
                        confidence=confidence(uncertain, config),
                        snippet=field_snippet(f),
                    )


def weak_delegation(model: ProgramModel, config: DetectorConfig) -> Iterator[Hit]:
    """Authority delegated with no way to take it back."""
    for program in model.programs:
        revocable = any(c.name in REVOCATION_CALLS for ix in program.instructions for c in ix.calls)
        if revocable:
            continue
        for ix in program.instructions:
            for call in ix.calls:
                if call.name not in DELEGATION_CALLS or call.method:
                    continue
                yield Hit(
                    location=site_location(program, ix, "call", call.location),
                    signature=call.signature,
                    title=f"`{call.name}` in `{ix.name}` cannot be revoked",
                    message=(
                        f"`{ix.name}` delegates authority via `{call.callee}`, but the program never "
                        f"calls revoke or close_account. A compromised or stale delegate keeps its power."
                    ),
                    confidence=confidence(ix.degraded, config),
                )
