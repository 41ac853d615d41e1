"""
Account lifecycle detectors: reinitialization, rent exemption and closing.
"""

import re
from typing import Dict, Iterator, List, Tuple

from ..analysis.models import AccountContext, AccountField, ConstraintKind, Instruction, ProgramModel
from .base import (
    DetectorConfig,
    Hit,
    UNKNOWN_NOTE,
    confidence,
    contexts_with_users,
    field_location,
    field_snippet,
    field_uncertain,
    site_location,
)

_INITIALIZED_RE = re.compile(r"initialized|is_initialized|discriminator", re.IGNORECASE)
_DISCRIMINATOR_SPACE_RE = re.compile(r"\b8\b|DISCRIMINATOR")
_NUMBER_RE = re.compile(r"\b\d+\b")

_RENT_RE = re.compile(r"minimum_balance|\brent\b|Rent::", re.IGNORECASE)

CREATE_ACCOUNT_CALLS = {"create_account", "create_account_with_seed"}
CLOSE_CALLS = {"close", "close_account"}


def _checks_initialized(ix: Instruction) -> bool:
    return any(_INITIALIZED_RE.search(g.expression) for g in ix.guards)


def _is_zero_init(f: AccountField) -> bool:
    return any(c.argument == "zero" for c in f.constraints_of(ConstraintKind.INIT))


def reinitialization(model: ProgramModel, config: DetectorConfig) -> Iterator[Hit]:
    """init_if_needed without a state check, and init space missing the discriminator."""
    for program in model.programs:
        for ctx, users in contexts_with_users(program):
            for f in ctx.fields:
                uncertain = field_uncertain(ctx, f)
                if f.has(ConstraintKind.INIT_IF_NEEDED):
                    for ix in users:
                        if ix is not None and _checks_initialized(ix):
                            continue
                        yield Hit(
                            location=field_location(program, ctx, f, ix),
                            signature=f"init_if_needed:{ctx.name}.{f.name}",
                            title=f"`{f.name}` can be reinitialized",
                            message=(
                                f"`{f.name}` uses `init_if_needed` and the handler never checks whether the "
                                f"account was already initialized. Calling it again resets existing state."
                                + (UNKNOWN_NOTE if uncertain else "")
                            ),
                            confidence=confidence(uncertain, config),
                            snippet=field_snippet(f),
                        )

                if f.has(ConstraintKind.INIT) and not _is_zero_init(f):
                    space = f.argument_of(ConstraintKind.SPACE)
                    if space is None or _DISCRIMINATOR_SPACE_RE.search(space):
                        continue
                    symbolic = not _NUMBER_RE.search(space)
                    yield Hit(
                        location=field_location(program, ctx, f),
                        signature=f"space:{ctx.name}.{f.name}",
                        title=f"`{f.name}` space omits the account discriminator",
                        message=(
                            f"`space = {space}` does not reserve the 8-byte discriminator. The account is "
                            f"undersized and its trailing data can be misread after initialization."
                            + (" The size is symbolic, so it may already include the discriminator." if symbolic else "")
                        ),
                        confidence=confidence(uncertain or symbolic, config),
                        snippet=field_snippet(f),
                    )


def rent_exemption(model: ProgramModel, config: DetectorConfig) -> Iterator[Hit]:
    """Manual account creation that never computes the rent-exempt minimum."""
    for program, ix in model.iter_instructions():
        rent_aware = any(_RENT_RE.search(c.callee) for c in ix.calls)
        for call in ix.calls_named(*CREATE_ACCOUNT_CALLS):
            if call.method or rent_aware or any(_RENT_RE.search(arg) for arg in call.arguments):
                continue
            yield Hit(
                location=site_location(program, ix, "call", call.location),
                signature=call.signature,
                title=f"`{call.name}` in `{ix.name}` ignores rent exemption",
                message=(
                    f"`{call.callee}` funds the new account with a lamport amount that is never "
                    f"derived from `Rent::minimum_balance`. The account can fall below the rent-exempt "
                    f"minimum and be garbage collected."
                ),
                confidence=confidence(ix.degraded, config),
            )


def _initialized_types(contexts: Tuple[AccountContext, ...]) -> Dict[str, List[Tuple[AccountContext, AccountField]]]:
    found: Dict[str, List[Tuple[AccountContext, AccountField]]] = {}
    for ctx in contexts:
        for f in ctx.fields:
            if f.is_init and f.inner_type and not (f.is_token_account or f.is_mint):
                found.setdefault(f.inner_type, []).append((ctx, f))
    return found


def missing_close(model: ProgramModel, config: DetectorConfig) -> Iterator[Hit]:
    """Account types the program creates but can never close."""
    for program in model.programs:
        closed = {
            f.inner_type for ctx in program.contexts for f in ctx.fields
            if f.has(ConstraintKind.CLOSE) and f.inner_type
        }
        closes_manually = any(c.name in CLOSE_CALLS for ix in program.instructions for c in ix.calls)
        if closes_manually:
            continue
        for type_name, sites in sorted(_initialized_types(program.contexts).items()):
            if type_name in closed:
                continue
            ctx, f = sites[0]
            yield Hit(
                location=field_location(program, ctx, f),
                signature=type_name,
                title=f"`{type_name}` accounts are never closed",
                message=(
                    f"The program creates `{type_name}` accounts (first in `{ctx.name}.{f.name}`) but no "
                    f"instruction closes them. Rent stays locked and stale accounts stay live."
                ),
                confidence=confidence(field_uncertain(ctx, f), config),
            )
