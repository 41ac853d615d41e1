"""
Detector Framework: the closed catalog of vulnerability detectors.
"""

from typing import Dict, Optional

from ..report.finding import Severity
from .base import Detector, DetectorConfig, Hit, AUTHORITY_NAMES
from .engine import DetectorRun, run, select
from . import access_control, arithmetic, cpi, lifecycle, oracle, pda, token

CATALOG = (
    Detector(
        id="V001",
        name="Missing Signer Check",
        severity=Severity.CRITICAL,
        cwe="CWE-862",
        description="An authority or value-moving account is not required to sign.",
        remediation="Declare the account as `Signer<'info>`, add `#[account(signer)]`, or bind it with `has_one`.",
        predicate=access_control.missing_signer,
    ),
    Detector(
        id="V002",
        name="Missing Owner Check",
        severity=Severity.HIGH,
        cwe="CWE-284",
        description="A raw AccountInfo/UncheckedAccount is trusted without verifying its owner program.",
        remediation="Use a typed `Account<'info, T>`, or add an `owner = <program>` or `address = <key>` constraint.",
        predicate=access_control.missing_owner,
    ),
    Detector(
        id="V003",
        name="Integer Overflow/Underflow",
        severity=Severity.HIGH,
        cwe="CWE-190",
        description="Unchecked arithmetic on instruction arguments.",
        remediation="Use `checked_add`/`checked_sub`/`checked_mul` and return an error on `None`, or bound the input first.",
        predicate=arithmetic.integer_overflow,
    ),
    Detector(
        id="V004",
        name="PDA Seed Collision",
        severity=Severity.HIGH,
        cwe="CWE-330",
        description="Two PDA seed lists can derive the same address.",
        remediation="Give each account type a distinct constant prefix and fixed-length seeds.",
        predicate=pda.seed_collision,
    ),
    Detector(
        id="V005",
        name="Reinitialization",
        severity=Severity.HIGH,
        cwe="CWE-665",
        description="An account can be initialized twice or is allocated without its discriminator.",
        remediation="Prefer `init` over `init_if_needed`, check an `is_initialized` flag, and size accounts as `8 + T::INIT_SPACE`.",
        predicate=lifecycle.reinitialization,
    ),
    Detector(
        id="V006",
        name="Unsafe CPI",
        severity=Severity.CRITICAL,
        cwe="CWE-749",
        description="A cross-program invocation targets a program taken from untrusted input.",
        remediation="Type the program account as `Program<'info, T>` or compare its key to the expected program id before invoking.",
        predicate=cpi.unsafe_cpi,
    ),
    Detector(
        id="V007",
        name="Token-2022 Risk",
        severity=Severity.HIGH,
        cwe="CWE-841",
        description="Token-2022 extensions (transfer fees, permanent delegate, transfer hooks) are not accounted for.",
        remediation="Read the TransferFeeConfig extension and compute the received amount, reject mints with a permanent delegate, and guard hooks against reentry.",
        predicate=token.token_2022_risk,
    ),
    Detector(
        id="V008",
        name="Missing PDA Bump Check",
        severity=Severity.CRITICAL,
        cwe="CWE-330",
        description="A PDA is accepted without verifying the canonical bump.",
        remediation="Add a `bump` (or `bump = state.bump`) constraint, or compare the derived address with the account key.",
        predicate=pda.missing_bump,
    ),
    Detector(
        id="V009",
        name="Reentrancy via CPI",
        severity=Severity.CRITICAL,
        cwe="CWE-841",
        description="Account state is written after a CPI with no reentrancy lock.",
        remediation="Update state before invoking other programs, or hold a lock flag across the call.",
        predicate=cpi.reentrancy,
    ),
    Detector(
        id="V010",
        name="Unchecked Transfer Amount",
        severity=Severity.HIGH,
        cwe="CWE-129",
        description="A caller-supplied transfer amount is never validated.",
        remediation="Require the amount to be non-zero and within the available balance before transferring.",
        predicate=arithmetic.unchecked_transfer_amount,
    ),
    Detector(
        id="V011",
        name="Weak Authority Delegation",
        severity=Severity.HIGH,
        cwe="CWE-269",
        description="Authority is delegated with no way to revoke it.",
        remediation="Provide an instruction that calls `revoke` or resets the authority.",
        predicate=access_control.weak_delegation,
    ),
    Detector(
        id="V012",
        name="Rent Exemption Bypass",
        severity=Severity.MEDIUM,
        cwe="CWE-400",
        description="An account is created without computing the rent-exempt minimum.",
        remediation="Fund new accounts with `Rent::get()?.minimum_balance(space)`.",
        predicate=lifecycle.rent_exemption,
    ),
    Detector(
        id="V013",
        name="Missing Close Account",
        severity=Severity.MEDIUM,
        cwe="CWE-404",
        description="An account type is created but never closed.",
        remediation="Add an instruction with a `close = <destination>` constraint for the account.",
        predicate=lifecycle.missing_close,
    ),
    Detector(
        id="V014",
        name="Oracle Dependency Risk",
        severity=Severity.HIGH,
        cwe="CWE-829",
        description="An oracle price is used without staleness or validity checks.",
        remediation="Use `get_price_no_older_than` and check the confidence interval and sign of the price.",
        predicate=oracle.oracle_dependency,
    ),
    Detector(
        id="V015",
        name="Signed CPI Replay",
        severity=Severity.CRITICAL,
        cwe="CWE-294",
        description="`invoke_signed` is used without nonce or sequence tracking.",
        remediation="Store and increment a nonce in program state and check it before signing.",
        predicate=cpi.signed_replay,
    ),
    Detector(
        id="V016",
        name="Mint/Burn Without Supply Check",
        severity=Severity.HIGH,
        cwe="CWE-190",
        description="Token supply changes by an unbounded caller-supplied amount.",
        remediation="Check the amount against a cap or current supply with checked arithmetic before minting or burning.",
        predicate=arithmetic.unchecked_supply,
    ),
    Detector(
        id="V017",
        name="Upgradeability Gap",
        severity=Severity.MEDIUM,
        cwe="CWE-440",
        description="The upgradeable loader is used without version or upgrade-authority validation.",
        remediation="Verify the program data account's upgrade authority and track a state version.",
        predicate=cpi.upgradeability,
    ),
    Detector(
        id="V018",
        name="Error Suppression",
        severity=Severity.LOW,
        cwe="CWE-755",
        description="A raw CPI error is propagated without context.",
        remediation="Map the error with `map_err` to a program-specific error code.",
        predicate=cpi.error_suppression,
    ),
    Detector(
        id="V019",
        name="Unbounded Loop",
        severity=Severity.HIGH,
        cwe="CWE-834",
        description="A loop iterates over caller-controlled data without an upper bound.",
        remediation="Cap the iteration count with `.take(MAX)` or require the length to be below a limit.",
        predicate=arithmetic.unbounded_loop,
    ),
    Detector(
        id="V021",
        name="Unverified Seeds",
        severity=Severity.CRITICAL,
        cwe="CWE-345",
        description="A state account is not bound to its expected PDA seeds.",
        remediation="Add `seeds = [...]` and `bump` constraints so only the canonical PDA is accepted.",
        predicate=pda.unverified_seeds,
    ),
    Detector(
        id="V022",
        name="Lamports Rounding",
        severity=Severity.MEDIUM,
        cwe="CWE-682",
        description="Lamport balances are adjusted with unchecked arithmetic.",
        remediation="Use checked arithmetic on lamports and verify the rent-exempt minimum afterwards.",
        predicate=arithmetic.lamports_rounding,
    ),
    Detector(
        id="V026",
        name="Precision Loss",
        severity=Severity.MEDIUM,
        cwe="CWE-682",
        description="Division happens before multiplication.",
        remediation="Multiply first, or use a wider intermediate type and divide last.",
        predicate=arithmetic.precision_loss,
    ),
)

_BY_ID: Dict[str, Detector] = {d.id: d for d in CATALOG}


def get_detector(detector_id: str) -> Optional[Detector]:
    return _BY_ID.get(detector_id.strip().upper())


__all__ = [
    "CATALOG",
    "AUTHORITY_NAMES",
    "Detector",
    "DetectorConfig",
    "DetectorRun",
    "Hit",
    "get_detector",
    "run",
    "select",
]
