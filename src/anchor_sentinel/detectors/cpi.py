"""
Cross-program invocation detectors.
"""

import re
from typing import Iterator

from ..analysis.models import CpiKind, ProgramModel, Verification
from .base import DetectorConfig, Hit, UNKNOWN_NOTE, confidence, site_location

_LOCK_RE = re.compile(r"lock|reentr|processing|in_progress|busy|entered", re.IGNORECASE)
_NONCE_RE = re.compile(r"nonce|sequence|\bseq\b|counter|\bused\b|processed", re.IGNORECASE)
_VERSION_RE = re.compile(r"version|upgrade_authority", re.IGNORECASE)
_UPGRADEABLE_RE = re.compile(r"bpf_loader_upgradeable|upgradeable|UpgradeableLoaderState")


def unsafe_cpi(model: ProgramModel, config: DetectorConfig) -> Iterator[Hit]:
    """CPIs whose target program is taken on trust."""
    for program, ix in model.iter_instructions():
        for cpi in ix.cpi_calls:
            if cpi.verification == Verification.VERIFIED:
                continue
            uncertain = cpi.verification == Verification.UNKNOWN or ix.degraded
            source = f"account `{cpi.program_account}`" if cpi.program_account else f"`{cpi.program}`"
            yield Hit(
                location=site_location(program, ix, "cpi", cpi.location),
                signature=cpi.signature,
                title=f"Arbitrary program invocation in `{ix.name}`",
                message=(
                    f"`{ix.name}` invokes the program given by {source} without a hardcoded id or "
                    f"an address constraint. An attacker can substitute a malicious program."
                    + (UNKNOWN_NOTE if uncertain else "")
                ),
                confidence=confidence(uncertain, config),
            )


def reentrancy(model: ProgramModel, config: DetectorConfig) -> Iterator[Hit]:
    """Account state written after a CPI with no lock in place."""
    for program, ix in model.iter_instructions():
        if not ix.cpi_calls:
            continue
        locked = any(_LOCK_RE.search(g.expression) for g in ix.guards) or any(
            _LOCK_RE.search(w.target) for w in ix.writes
        )
        if locked:
            continue
        for cpi in ix.cpi_calls:
            after = [w for w in ix.writes if w.position > cpi.position]
            if not after:
                continue
            first = after[0]
            yield Hit(
                location=site_location(program, ix, "cpi", cpi.location),
                signature=f"{cpi.signature}->{first.target}",
                title=f"State written after CPI in `{ix.name}`",
                message=(
                    f"`{ix.name}` updates `{first.target}` after calling `{cpi.program}`. The callee can "
                    f"re-enter before the update lands and observe or act on stale state."
                ),
                confidence=confidence(ix.degraded, config),
            )


def signed_replay(model: ProgramModel, config: DetectorConfig) -> Iterator[Hit]:
    """invoke_signed with nothing that makes each signature single-use."""
    for program, ix in model.iter_instructions():
        signed = [cpi for cpi in ix.cpi_calls if cpi.kind == CpiKind.INVOKE_SIGNED]
        if not signed:
            continue
        tracked = any(_NONCE_RE.search(g.expression) for g in ix.guards) or any(
            _NONCE_RE.search(w.target) for w in ix.writes
        )
        if tracked:
            continue
        for cpi in signed:
            yield Hit(
                location=site_location(program, ix, "cpi", cpi.location),
                signature=cpi.signature,
                title=f"Signed CPI in `{ix.name}` can be replayed",
                message=(
                    f"`{ix.name}` signs for a PDA with `invoke_signed` but tracks no nonce or sequence. "
                    f"The same authorization can be replayed."
                ),
                confidence=confidence(ix.degraded, config),
            )


def upgradeability(model: ProgramModel, config: DetectorConfig) -> Iterator[Hit]:
    """Upgradeable-loader interaction without version or authority validation."""
    for program in model.programs:
        reported = False
        for ix in program.instructions:
            touches = [c for c in ix.calls if _UPGRADEABLE_RE.search(c.callee)]
            if not touches:
                continue
            reported = True
            if any(_VERSION_RE.search(g.expression) for g in ix.guards):
                continue
            call = touches[0]
            yield Hit(
                location=site_location(program, ix, "call", call.location),
                signature=call.signature,
                title=f"`{ix.name}` uses the upgradeable loader without validation",
                message=(
                    f"`{call.callee}` is called without checking a program version or the upgrade "
                    f"authority. A redeployed program can change behavior under existing state."
                ),
                confidence=confidence(ix.degraded, config),
            )
        if reported:
            continue
        symbols = [s for s in program.symbols if _UPGRADEABLE_RE.search(s.path)]
        if symbols:
            symbol = symbols[0]
            yield Hit(
                location=site_location(program, None, "symbol", symbol.location),
                signature=f"symbol:{symbol.path}",
                title=f"`{program.name}` references the upgradeable loader",
                message=(
                    f"`{symbol.path}` is referenced but no instruction validates a version or the "
                    f"upgrade authority before relying on upgradeable state."
                ),
                confidence=config.unknown_confidence,
            )


def error_suppression(model: ProgramModel, config: DetectorConfig) -> Iterator[Hit]:
    """Raw invoke results bubbled up with `?` and no error context."""
    for program, ix in model.iter_instructions():
        for call in ix.calls:
            if call.method or call.name not in ("invoke", "invoke_signed"):
                continue
            if not call.propagates or call.error_mapped:
                continue
            yield Hit(
                location=site_location(program, ix, "call", call.location),
                signature=call.signature,
                title=f"CPI error in `{ix.name}` propagated without context",
                message=(
                    f"`{call.callee}` is propagated with `?` and no `map_err`. Failures surface as a "
                    f"generic program error, which hides which invocation failed."
                ),
                confidence=confidence(ix.degraded, config),
            )
