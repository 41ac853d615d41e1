"""
Token-2022 detectors: fee extensions, permanent delegates and transfer hooks.
"""

import re
from typing import Iterator

from ..analysis.models import AccountKind, Program, ProgramModel
from .base import DetectorConfig, Hit, confidence, field_location, site_location

_FEE_RE = re.compile(
    r"TransferFeeConfig|transfer_fee|calculate_(?:epoch_)?fee|get_extension|StateWithExtensions|"
    r"ExtensionType::TransferFee"
)
_INTERFACE_RE = re.compile(r"token_interface|token_2022")
_HOOK_RE = re.compile(r"spl_transfer_hook_interface|TransferHook")
_LOCK_RE = re.compile(r"lock|reentr|processing|in_progress|busy|entered", re.IGNORECASE)

TRANSFER_CALLS = {"transfer", "transfer_checked"}
INTERFACE_KINDS = {AccountKind.INTERFACE_ACCOUNT, AccountKind.INTERFACE}


def _handles_fees(program: Program) -> bool:
    if any(_FEE_RE.search(s.path) for s in program.symbols):
        return True
    return any(_FEE_RE.search(c.callee) for ix in program.instructions for c in ix.calls)


def _interface_transfers(program: Program):
    for ix in program.instructions:
        for call in ix.calls_named(*TRANSFER_CALLS):
            if not call.method and _INTERFACE_RE.search(call.callee):
                yield ix, call


def token_2022_risk(model: ProgramModel, config: DetectorConfig) -> Iterator[Hit]:
    for program in model.programs:
        if not _handles_fees(program):
            yield from _fee_hits(program, config)

        for symbol in program.symbols:
            if symbol.path == "PermanentDelegate" or symbol.path.endswith("::PermanentDelegate"):
                yield Hit(
                    location=site_location(program, None, "symbol", symbol.location),
                    signature=f"symbol:{symbol.path}",
                    title=f"`{program.name}` relies on a permanent delegate",
                    message=(
                        "The mint can carry a PermanentDelegate extension. Its delegate can move or "
                        "burn tokens from any holder's account at any time."
                    ),
                )
                break

        for ix in program.instructions:
            hooked = "transfer_hook" in ix.name or any(
                _HOOK_RE.search(attr) for attr in ix.attributes
            )
            if not hooked:
                continue
            if any(_LOCK_RE.search(g.expression) for g in ix.guards) or any(_LOCK_RE.search(w.target) for w in ix.writes):
                continue
            yield Hit(
                location=site_location(program, ix, "instruction", ix.location),
                signature=f"hook:{ix.name}",
                title=f"Transfer hook `{ix.name}` has no reentrancy guard",
                message=(
                    f"`{ix.name}` runs inside a Token-2022 transfer and keeps no in-progress flag. "
                    f"A hook that calls back into a transfer can re-enter itself."
                ),
                confidence=confidence(ix.degraded, config),
            )


def _fee_hits(program: Program, config: DetectorConfig) -> Iterator[Hit]:
    covered = set()
    for ix, call in _interface_transfers(program):
        covered.add(ix.context_name)
        yield Hit(
            location=site_location(program, ix, "call", call.location),
            signature=call.signature,
            title=f"Token-2022 transfer in `{ix.name}` ignores transfer fees",
            message=(
                f"`{call.callee}` can move a Token-2022 mint, but the program never reads the "
                f"transfer-fee extension. The recipient gets less than the amount sent and any "
                f"accounting based on that amount drifts."
            ),
            confidence=confidence(ix.degraded, config),
        )

    for ctx in program.contexts:
        if ctx.name in covered:
            continue
        fields = [f for f in ctx.fields if f.kind in INTERFACE_KINDS]
        if not fields:
            continue
        f = fields[0]
        yield Hit(
            location=field_location(program, ctx, f),
            signature=f"interface:{ctx.name}",
            title=f"`{ctx.name}` accepts Token-2022 accounts without fee handling",
            message=(
                f"`{f.name}` is an interface account, so Token-2022 mints with a transfer fee are "
                f"accepted, yet the program never reads the fee extension before using amounts."
            ),
            confidence=confidence(ctx.degraded, config),
        )
