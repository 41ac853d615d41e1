"""
Arithmetic detectors: overflow, supply changes, transfer amounts, loops and
precision.
"""

import re
from typing import Iterator

from ..analysis.models import ArithmeticOp, Provenance, ProgramModel
from .base import (
    DetectorConfig,
    Hit,
    UNKNOWN_NOTE,
    confidence,
    guarded_before,
    site_location,
    user_amount,
)

SUPPLY_CALLS = {"mint_to", "mint_to_checked", "burn", "burn_checked"}
TRANSFER_CALLS = {"transfer", "transfer_checked"}

_LAMPORTS_RE = re.compile(r"lamports")


def integer_overflow(model: ProgramModel, config: DetectorConfig) -> Iterator[Hit]:
    """Unchecked add/sub/mul on values the caller controls."""
    for program, ix in model.iter_instructions():
        for site in ix.arithmetic:
            if site.checked or site.op == ArithmeticOp.DIV or not site.user_controlled:
                continue
            unguarded = [
                operand for operand in site.operands
                if operand.provenance == Provenance.USER
                and not guarded_before(ix, operand.identifiers, site.position)
            ]
            if not unguarded:
                continue
            operands = ", ".join(f"`{o.expression}`" for o in unguarded)
            yield Hit(
                location=site_location(program, ix, "arithmetic", site.location),
                signature=site.signature,
                title=f"Unchecked {site.op.value} on user input in `{ix.name}`",
                message=(
                    f"`{site.expression}` uses {operands} from instruction arguments without "
                    f"checked arithmetic or a prior bound. A crafted value wraps the result."
                    + (UNKNOWN_NOTE if ix.degraded else "")
                ),
                confidence=confidence(ix.degraded, config),
                snippet=site.expression,
            )


def unchecked_supply(model: ProgramModel, config: DetectorConfig) -> Iterator[Hit]:
    """mint_to / burn driven by a user amount with no bound on it."""
    for program, ix in model.iter_instructions():
        checked_names = {
            name for site in ix.arithmetic if site.checked
            for operand in site.operands for name in operand.identifiers
        }
        for call in ix.calls_named(*SUPPLY_CALLS):
            if call.method or not call.arguments:
                continue
            amounts = user_amount(ix, call.arguments[-1])
            if not amounts:
                continue
            if any(name in checked_names for name in amounts) or guarded_before(ix, amounts, call.position):
                continue
            yield Hit(
                location=site_location(program, ix, "call", call.location),
                signature=call.signature,
                title=f"`{call.name}` amount in `{ix.name}` is unbounded",
                message=(
                    f"`{call.callee}` changes token supply by `{call.arguments[-1]}`, which comes "
                    f"straight from the caller with no supply or cap check."
                ),
                confidence=confidence(ix.degraded, config),
            )


def unchecked_transfer_amount(model: ProgramModel, config: DetectorConfig) -> Iterator[Hit]:
    """Token transfers of a caller-supplied amount that is never validated."""
    for program, ix in model.iter_instructions():
        for call in ix.calls_named(*TRANSFER_CALLS):
            if call.method or not call.arguments:
                continue
            amounts = user_amount(ix, call.arguments[-1])
            if not amounts or guarded_before(ix, amounts, call.position):
                continue
            yield Hit(
                location=site_location(program, ix, "call", call.location),
                signature=call.signature,
                title=f"Transfer amount in `{ix.name}` is not validated",
                message=(
                    f"`{call.callee}` moves `{call.arguments[-1]}` tokens with no upper bound, such as a "
                    f"balance or limit check, before the transfer."
                ),
                confidence=confidence(ix.degraded, config),
            )


def unbounded_loop(model: ProgramModel, config: DetectorConfig) -> Iterator[Hit]:
    for program, ix in model.iter_instructions():
        for loop in ix.loops:
            if loop.bounded:
                continue
            yield Hit(
                location=site_location(program, ix, "loop", loop.location),
                signature=f"loop:{loop.iterable}#{loop.ordinal}",
                title=f"Unbounded loop in `{ix.name}`",
                message=(
                    f"The loop over `{loop.iterable}` has no upper bound. A large input exhausts "
                    f"the compute budget and makes the instruction unusable."
                ),
                confidence=confidence(ix.degraded, config),
            )


def lamports_rounding(model: ProgramModel, config: DetectorConfig) -> Iterator[Hit]:
    """Raw arithmetic directly on lamport balances."""
    for program, ix in model.iter_instructions():
        for site in ix.arithmetic:
            if site.checked or not _LAMPORTS_RE.search(site.expression):
                continue
            yield Hit(
                location=site_location(program, ix, "arithmetic", site.location),
                signature=site.signature,
                title=f"Unchecked lamport arithmetic in `{ix.name}`",
                message=(
                    f"`{site.expression}` adjusts lamports without checked math. Rounding or "
                    f"wrap-around can leak lamports or leave an account below rent exemption."
                ),
                confidence=confidence(ix.degraded, config),
                snippet=site.expression,
            )


def precision_loss(model: ProgramModel, config: DetectorConfig) -> Iterator[Hit]:
    for program, ix in model.iter_instructions():
        for site in ix.arithmetic:
            if not site.div_before_mul:
                continue
            yield Hit(
                location=site_location(program, ix, "arithmetic", site.location),
                signature=site.signature,
                title=f"Division before multiplication in `{ix.name}`",
                message=(
                    f"`{site.expression}` divides before it multiplies, truncating the quotient "
                    f"first. Small amounts round to zero."
                ),
                confidence=confidence(ix.degraded, config),
                snippet=site.expression,
            )
