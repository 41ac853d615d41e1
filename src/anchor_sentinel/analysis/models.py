"""
Data models for program analysis.

These models represent the security-relevant structure of an Anchor program
recovered from its source: instructions, account contexts and their
constraints, and the facts extracted from instruction bodies (arithmetic,
cross-program calls, PDA derivations, guards). Every entity is frozen; once a
ProgramModel is built nothing downstream can change it.
"""

import re
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Any, Tuple, Iterator, Union
from enum import Enum

from ..parser.normalize import free_identifiers, is_balanced, split_top_level


class AccountKind(Enum):
    """Declared type of an account in an Accounts context."""
    ACCOUNT = "account"                    # Account<'info, T>
    ACCOUNT_LOADER = "account_loader"      # AccountLoader<'info, T>
    INTERFACE_ACCOUNT = "interface_account"
    ACCOUNT_INFO = "account_info"
    UNCHECKED = "unchecked"
    SIGNER = "signer"
    PROGRAM = "program"
    INTERFACE = "interface"
    SYSTEM_ACCOUNT = "system_account"
    SYSVAR = "sysvar"
    UNKNOWN = "unknown"


# Kinds whose owner (and discriminator, where applicable) Anchor verifies
TYPED_KINDS = {
    AccountKind.ACCOUNT,
    AccountKind.ACCOUNT_LOADER,
    AccountKind.INTERFACE_ACCOUNT,
    AccountKind.PROGRAM,
    AccountKind.INTERFACE,
    AccountKind.SYSTEM_ACCOUNT,
    AccountKind.SYSVAR,
}

RAW_KINDS = {AccountKind.ACCOUNT_INFO, AccountKind.UNCHECKED}


class ConstraintKind(Enum):
    """Semantic constraint vocabulary shared by all detectors."""
    SIGNER = "signer"
    WRITABLE = "writable"
    OWNER = "owner"
    ADDRESS = "address"
    SEEDS = "seeds"
    BUMP = "bump"
    HAS_ONE = "has_one"
    CLOSE = "close"
    INIT = "init"
    INIT_IF_NEEDED = "init_if_needed"
    RENT_EXEMPT = "rent_exempt"
    PAYER = "payer"
    SPACE = "space"
    REALLOC = "realloc"
    CUSTOM = "constraint"
    TOKEN = "token"
    UNKNOWN = "unknown"


class Verification(Enum):
    """Whether a check could be established from the source."""
    VERIFIED = "verified"
    UNVERIFIED = "unverified"
    UNKNOWN = "unknown"


class Provenance(Enum):
    """Where an operand's value comes from."""
    USER = "user"          # instruction argument (or derived from one)
    CONSTANT = "constant"
    ACCOUNT = "account"    # account state
    LOCAL = "local"
    UNKNOWN = "unknown"


class ArithmeticOp(Enum):
    ADD = "add"
    SUB = "sub"
    MUL = "mul"
    DIV = "div"


class CpiKind(Enum):
    INVOKE = "invoke"
    INVOKE_SIGNED = "invoke_signed"
    CPI_CONTEXT = "cpi_context"


class SeedKind(Enum):
    CONSTANT = "constant"
    ACCOUNT_KEY = "account_key"
    ARGUMENT = "argument"
    EXPRESSION = "expression"


class DerivationOrigin(Enum):
    CONSTRAINT = "constraint"
    RUNTIME = "runtime"


class AccessKind(Enum):
    READ = "read"
    WRITE = "write"
    LAMPORTS = "lamports"
    DATA = "data"
    CPI = "cpi"


class GuardKind(Enum):
    REQUIRE = "require"
    ASSERT = "assert"
    BRANCH = "branch"


class CoverageScope(Enum):
    FILE = "file"
    PROGRAM = "program"
    CONTEXT = "context"
    INSTRUCTION = "instruction"


@dataclass(frozen=True)
class SourceLocation:
    """A position in a source file (1-based)."""
    file: str
    line: int
    column: int = 1

    def __str__(self) -> str:
        return f"{self.file}:{self.line}"

    def to_dict(self) -> Dict:
        return {"file": self.file, "line": self.line, "column": self.column}


@dataclass(frozen=True)
class Constraint:
    """A normalized account constraint."""
    kind: ConstraintKind
    argument: Optional[str] = None  # has_one target, seeds list, owner expr, ...
    raw: str = ""

    def to_dict(self) -> Dict:
        return {"kind": self.kind.value, "argument": self.argument, "raw": self.raw}


@dataclass(frozen=True)
class AccountField:
    """One account in an Accounts context."""
    name: str
    context: str
    kind: AccountKind
    type_name: str
    inner_type: Optional[str]
    constraints: Tuple[Constraint, ...]
    location: SourceLocation
    optional: bool = False
    docs: str = ""

    def has(self, kind: ConstraintKind) -> bool:
        return any(c.kind == kind for c in self.constraints)

    def constraints_of(self, kind: ConstraintKind) -> List[Constraint]:
        return [c for c in self.constraints if c.kind == kind]

    def argument_of(self, kind: ConstraintKind) -> Optional[str]:
        for c in self.constraints:
            if c.kind == kind:
                return c.argument
        return None

    @property
    def is_signer(self) -> bool:
        return self.kind == AccountKind.SIGNER or self.has(ConstraintKind.SIGNER)

    @property
    def is_writable(self) -> bool:
        return (
            self.has(ConstraintKind.WRITABLE)
            or self.is_init
            or self.has(ConstraintKind.CLOSE)
            or self.has(ConstraintKind.REALLOC)
        )

    @property
    def is_init(self) -> bool:
        return self.has(ConstraintKind.INIT) or self.has(ConstraintKind.INIT_IF_NEEDED)

    @property
    def is_pda(self) -> bool:
        return self.has(ConstraintKind.SEEDS)

    @property
    def is_raw(self) -> bool:
        return self.kind in RAW_KINDS

    @property
    def is_token_account(self) -> bool:
        return self.inner_type in ("TokenAccount",) or any(
            c.kind == ConstraintKind.TOKEN and (c.argument or "").startswith(("token::", "associated_token::"))
            for c in self.constraints
        )

    @property
    def is_mint(self) -> bool:
        return self.inner_type == "Mint" or any(
            c.kind == ConstraintKind.TOKEN and (c.argument or "").startswith("mint::")
            for c in self.constraints
        )

    @property
    def has_owner_check(self) -> bool:
        """Owner is verified by type, or by an explicit constraint."""
        if self.kind in TYPED_KINDS:
            return True
        if self.has(ConstraintKind.OWNER) or self.has(ConstraintKind.ADDRESS):
            return True
        for expr in self.custom_expressions:
            if "owner" in expr or "program_id" in expr:
                return True
        return False

    @property
    def custom_expressions(self) -> List[str]:
        return [c.argument or "" for c in self.constraints if c.kind == ConstraintKind.CUSTOM]

    @property
    def unknown_constraints(self) -> List[Constraint]:
        return self.constraints_of(ConstraintKind.UNKNOWN)

    @property
    def role(self) -> str:
        """Short human-readable role used in reports and POCs."""
        if self.is_signer:
            return "signer"
        if self.kind in (AccountKind.PROGRAM, AccountKind.INTERFACE):
            return "program"
        if self.is_mint:
            return "mint"
        if self.is_token_account:
            return "token account"
        if self.is_pda:
            return "pda"
        if self.is_writable:
            return "writable"
        return "readonly"

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "kind": self.kind.value,
            "type": self.type_name,
            "inner_type": self.inner_type,
            "role": self.role,
            "signer": self.is_signer,
            "writable": self.is_writable,
            "constraints": [c.to_dict() for c in self.constraints],
            "location": self.location.to_dict(),
        }


@dataclass(frozen=True)
class Parameter:
    """An instruction parameter (the Context parameter excluded)."""
    name: str
    type: str


@dataclass(frozen=True)
class AccountContext:
    """A #[derive(Accounts)] struct."""
    name: str
    program: str
    fields: Tuple[AccountField, ...]
    location: SourceLocation
    instruction_args: Tuple[Parameter, ...] = ()
    degraded: bool = False

    def field(self, name: str) -> Optional[AccountField]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    @property
    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "fields": [f.to_dict() for f in self.fields],
            "instruction_args": [p.name for p in self.instruction_args],
            "degraded": self.degraded,
            "location": self.location.to_dict(),
        }


@dataclass(frozen=True)
class Operand:
    expression: str
    provenance: Provenance
    identifiers: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ArithmeticSite:
    """An arithmetic operation in an instruction body."""
    op: ArithmeticOp
    expression: str
    operands: Tuple[Operand, ...]
    checked: bool
    location: SourceLocation
    position: int
    ordinal: int = 0
    compound: bool = False
    div_before_mul: bool = False
    method: Optional[str] = None  # checked_add, saturating_sub, ...

    @property
    def user_controlled(self) -> bool:
        return any(o.provenance == Provenance.USER for o in self.operands)

    @property
    def signature(self) -> str:
        return f"{self.op.value}:{self.expression}#{self.ordinal}"


@dataclass(frozen=True)
class CpiInvocation:
    """A cross-program invocation site."""
    kind: CpiKind
    program: str                      # normalized program reference expression
    program_account: Optional[str]    # context field supplying the program, if any
    verification: Verification
    accounts: Tuple[str, ...]
    caller: str
    location: SourceLocation
    position: int
    ordinal: int = 0
    signed: bool = False

    @property
    def raw(self) -> bool:
        return self.kind in (CpiKind.INVOKE, CpiKind.INVOKE_SIGNED)

    @property
    def signature(self) -> str:
        return f"{self.kind.value}:{self.program}#{self.ordinal}"


@dataclass(frozen=True)
class CallSite:
    """Any function or method call in an instruction body."""
    callee: str          # normalized callee path, e.g. token::transfer / x.checked_add
    name: str            # last path segment / method name
    arguments: Tuple[str, ...]
    location: SourceLocation
    position: int
    ordinal: int = 0
    method: bool = False
    receiver: Optional[str] = None
    propagates: bool = False   # directly followed by `?`
    error_mapped: bool = False

    @property
    def signature(self) -> str:
        return f"{self.callee}({','.join(self.arguments)})#{self.ordinal}"


@dataclass(frozen=True)
class Guard:
    """A check that can stop execution (require!, assert!, if .. return Err)."""
    kind: GuardKind
    expression: str
    identifiers: Tuple[str, ...]
    location: SourceLocation
    position: int

    def mentions(self, name: str) -> bool:
        return name in self.identifiers

    def bounds(self, name: str) -> bool:
        """
        Whether getting past this guard caps `name` from above.

        A check such as `amount != 0` mentions a value without bounding it;
        only upper bounds, equality and checked arithmetic count.
        """
        if self.kind == GuardKind.BRANCH:
            # The condition is the failure case: execution continues when it is false
            return any(_caps(clause, name, negate=True) for clause in split_top_level(self.expression, "||"))

        macro, _, rest = self.expression.partition("!")
        macro = macro.rsplit("::", 1)[-1]
        if not (rest.startswith("(") and rest.endswith(")")):
            return False
        args = split_top_level(rest[1:-1])
        if not args:
            return False
        if macro in ("require", "assert"):
            return any(_caps(clause, name) for clause in split_top_level(args[0], "&&"))
        if len(args) < 2:
            return False
        left, right = name in free_identifiers(args[0]), name in free_identifiers(args[1])
        if macro in ("require_gt", "require_gte"):
            return right and not left
        if macro in ("require_eq", "assert_eq"):
            return left != right
        return False


_COMPARISON_RE = re.compile(r"^(.+?)(<=|>=|==|!=|<|>)(.+)$", re.DOTALL)
_NEGATED = {"<": ">=", "<=": ">", ">": "<=", ">=": "<", "==": "!=", "!=": "=="}


def _caps(clause: str, name: str, negate: bool = False) -> bool:
    """Whether a single comparison, once it holds (or fails, if negated), caps `name`."""
    while clause.startswith("(") and clause.endswith(")") and is_balanced(clause[1:-1]):
        clause = clause[1:-1]
    if "checked_" in clause:
        return name in free_identifiers(clause)
    match = _COMPARISON_RE.match(clause)
    if match is None:
        return False
    left, op, right = match.groups()
    if negate:
        op = _NEGATED[op]
    in_left, in_right = name in free_identifiers(left), name in free_identifiers(right)
    if in_left == in_right:
        return False
    if op in ("<", "<="):
        return in_left
    if op in (">", ">="):
        return in_right
    return op == "=="


@dataclass(frozen=True)
class StateWrite:
    """An assignment into account state."""
    target: str
    account: Optional[str]
    location: SourceLocation
    position: int


@dataclass(frozen=True)
class LoopSite:
    iterable: str
    bounded: bool
    location: SourceLocation
    position: int
    ordinal: int = 0


@dataclass(frozen=True)
class AccountAccess:
    """How an instruction touches a context field."""
    account: str
    kind: AccessKind
    location: SourceLocation
    position: int


@dataclass(frozen=True)
class Seed:
    kind: SeedKind
    value: str
    raw: str

    def compatible(self, other: "Seed") -> bool:
        """Two seeds that could produce the same bytes."""
        if self.kind == SeedKind.CONSTANT or other.kind == SeedKind.CONSTANT:
            return self.kind == other.kind and self.value == other.value
        return True

    @property
    def may_be_empty(self) -> bool:
        return self.kind in (SeedKind.ARGUMENT, SeedKind.EXPRESSION)

    def __str__(self) -> str:
        if self.kind == SeedKind.CONSTANT:
            return f'"{self.value}"'
        return self.value


@dataclass(frozen=True)
class PdaDerivation:
    """A program-derived address, declared by constraint or derived at runtime."""
    site: str                    # Context.field or instruction#function
    seeds: Tuple[Seed, ...]
    bump: Optional[str]
    bump_verification: Verification
    origin: DerivationOrigin
    location: SourceLocation
    program: str
    init: bool = False
    context: Optional[str] = None
    field: Optional[str] = None
    instruction: Optional[str] = None
    seeds_known: bool = True

    @property
    def seed_text(self) -> str:
        return "[" + ", ".join(str(s) for s in self.seeds) + "]"


@dataclass(frozen=True)
class Instruction:
    """An instruction handler declared in a #[program] module."""
    name: str
    program: str
    context_name: Optional[str]
    parameters: Tuple[Parameter, ...]
    location: SourceLocation
    arithmetic: Tuple[ArithmeticSite, ...] = ()
    cpi_calls: Tuple[CpiInvocation, ...] = ()
    calls: Tuple[CallSite, ...] = ()
    guards: Tuple[Guard, ...] = ()
    writes: Tuple[StateWrite, ...] = ()
    loops: Tuple[LoopSite, ...] = ()
    accesses: Tuple[AccountAccess, ...] = ()
    derivations: Tuple[PdaDerivation, ...] = ()
    attributes: Tuple[str, ...] = ()
    degraded: bool = False

    @property
    def parameter_names(self) -> List[str]:
        return [p.name for p in self.parameters]

    def parameter(self, name: str) -> Optional[Parameter]:
        for p in self.parameters:
            if p.name == name:
                return p
        return None

    def guards_before(self, position: int) -> List[Guard]:
        return [g for g in self.guards if g.position < position]

    def accesses_of(self, account: str) -> List[AccountAccess]:
        return [a for a in self.accesses if a.account == account]

    def calls_named(self, *names: str) -> List[CallSite]:
        return [c for c in self.calls if c.name in names]

    @property
    def mutates_state(self) -> bool:
        return bool(self.writes or self.cpi_calls) or any(
            a.kind in (AccessKind.WRITE, AccessKind.LAMPORTS, AccessKind.DATA) for a in self.accesses
        )

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "context": self.context_name,
            "parameters": [{"name": p.name, "type": p.type} for p in self.parameters],
            "arithmetic": [
                {"op": a.op.value, "expression": a.expression, "checked": a.checked, "line": a.location.line}
                for a in self.arithmetic
            ],
            "cpi": [
                {"kind": c.kind.value, "program": c.program, "verification": c.verification.value,
                 "line": c.location.line}
                for c in self.cpi_calls
            ],
            "guards": [g.expression for g in self.guards],
            "degraded": self.degraded,
            "location": self.location.to_dict(),
        }


@dataclass(frozen=True)
class StateAccount:
    """A #[account] data struct."""
    name: str
    fields: Tuple[Tuple[str, str], ...]
    location: SourceLocation


@dataclass(frozen=True)
class SymbolRef:
    """A notable path referenced somewhere in a program."""
    path: str
    location: SourceLocation
    instruction: Optional[str] = None


@dataclass(frozen=True)
class Program:
    """One Anchor program (crate) and everything modeled from it."""
    name: str
    program_id: Optional[str]
    file: str
    location: SourceLocation
    instructions: Tuple[Instruction, ...] = ()
    contexts: Tuple[AccountContext, ...] = ()
    state_accounts: Tuple[StateAccount, ...] = ()
    constants: Tuple[Tuple[str, str], ...] = ()
    symbols: Tuple[SymbolRef, ...] = ()
    degraded: bool = False

    def get_instruction(self, name: str) -> Optional[Instruction]:
        for ix in self.instructions:
            if ix.name == name:
                return ix
        return None

    def context(self, name: Optional[str]) -> Optional[AccountContext]:
        if name is None:
            return None
        for ctx in self.contexts:
            if ctx.name == name:
                return ctx
        return None

    def context_of(self, instruction: Instruction) -> Optional[AccountContext]:
        return self.context(instruction.context_name)

    def instructions_using(self, context_name: str) -> List[Instruction]:
        return [ix for ix in self.instructions if ix.context_name == context_name]

    @property
    def derivations(self) -> List[PdaDerivation]:
        """All PDA derivations: context constraints first, then runtime ones."""
        found = []
        for ctx in self.contexts:
            for f in ctx.fields:
                derivation = constraint_derivation(self.name, ctx, f, dict(self.constants))
                if derivation is not None:
                    found.append(derivation)
        for ix in self.instructions:
            found.extend(ix.derivations)
        return found

    def summary(self) -> str:
        return (
            f"Program: {self.name}\n"
            f"  Instructions: {len(self.instructions)}\n"
            f"  Account contexts: {len(self.contexts)}\n"
            f"  State accounts: {len(self.state_accounts)}"
        )

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "program_id": self.program_id,
            "file": self.file,
            "instructions": [ix.to_dict() for ix in self.instructions],
            "contexts": [ctx.to_dict() for ctx in self.contexts],
            "state_accounts": [s.name for s in self.state_accounts],
            "degraded": self.degraded,
        }


@dataclass(frozen=True)
class CoverageMarker:
    """A part of the codebase that could not be fully modeled."""
    scope: CoverageScope
    file: str
    reason: str
    program: Optional[str] = None
    name: Optional[str] = None
    line: Optional[int] = None

    def note(self) -> str:
        where = f"{self.file}:{self.line}" if self.line else self.file
        target = f" {self.name}" if self.name else ""
        return f"{self.scope.value}{target} ({where}): {self.reason}"

    def to_dict(self) -> Dict:
        return {
            "scope": self.scope.value,
            "file": self.file,
            "program": self.program,
            "name": self.name,
            "line": self.line,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class ProgramModel:
    """Root of the model for one analyzed codebase snapshot."""
    programs: Tuple[Program, ...] = ()
    markers: Tuple[CoverageMarker, ...] = ()
    files: Tuple[str, ...] = ()

    def program(self, name: str) -> Optional[Program]:
        for p in self.programs:
            if p.name == name:
                return p
        return None

    def iter_instructions(self) -> Iterator[Tuple[Program, Instruction]]:
        for p in self.programs:
            for ix in p.instructions:
                yield p, ix

    def resolve(self, location: Any) -> Optional[Any]:
        """
        Resolve a finding location to the model entity it points at.

        Returns the most specific entity (field, instruction, context or
        program), or None when any named part does not exist.
        """
        program = self.program(location.program)
        if program is None:
            return None

        entity: Union[Program, Instruction, AccountContext, AccountField] = program
        context = None
        if location.instruction:
            ix = program.get_instruction(location.instruction)
            if ix is None:
                return None
            entity = ix
            context = program.context_of(ix)
        if location.context:
            ctx = program.context(location.context)
            if ctx is None:
                return None
            if context is not None and ctx.name != context.name:
                return None
            context = ctx
            if not location.instruction:
                entity = ctx
        if location.field:
            if context is None or context.field(location.field) is None:
                return None
            entity = context.field(location.field)
        return entity

    def coverage_notes(self) -> List[str]:
        return [m.note() for m in self.markers]

    def to_dict(self) -> Dict:
        return {
            "files": list(self.files),
            "programs": [p.to_dict() for p in self.programs],
            "coverage": [m.to_dict() for m in self.markers],
        }


def constraint_derivation(
    program: str,
    ctx: AccountContext,
    f: AccountField,
    constants: Optional[Dict[str, str]] = None,
) -> Optional[PdaDerivation]:
    """Build the PDA derivation declared by a field's seeds/bump constraints."""
    from .constraints import parse_seed_list

    seeds_arg = f.argument_of(ConstraintKind.SEEDS)
    if seeds_arg is None:
        return None

    arguments = [p.name for p in ctx.instruction_args]
    seeds, known = parse_seed_list(seeds_arg, ctx.field_names, arguments, constants)
    bump_constraints = f.constraints_of(ConstraintKind.BUMP)
    if bump_constraints:
        bump = bump_constraints[0].argument
        verification = Verification.VERIFIED
    elif any(c.kind == ConstraintKind.UNKNOWN for c in f.constraints):
        bump = None
        verification = Verification.UNKNOWN
    else:
        bump = None
        verification = Verification.UNVERIFIED

    return PdaDerivation(
        site=f"{ctx.name}.{f.name}",
        seeds=seeds,
        bump=bump,
        bump_verification=verification,
        origin=DerivationOrigin.CONSTRAINT,
        location=f.location,
        program=program,
        init=f.is_init,
        context=ctx.name,
        field=f.name,
        seeds_known=known,
    )
