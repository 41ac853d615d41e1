"""
Body Fact Extraction: turns an instruction body into analyzable facts.

Walks the syntax tree of a single function in source order and records the
arithmetic sites, cross-program calls, guards, state writes, loops, account
accesses and runtime PDA derivations it contains. Facts carry byte positions
so detectors can reason about "before" and "after" within a body.

Resolution that needs the Accounts context (which may live in another file)
is left pending here and finished when fragments are merged.
"""

import re
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Set, Tuple

from tree_sitter import Node

from ..parser.rust import SyntaxTree, walk, COMMENT_TYPES
from ..parser.normalize import (
    normalize_expression,
    free_identifiers,
    strip_references,
)
from .constraints import parse_seed_list
from .models import (
    AccessKind,
    AccountAccess,
    ArithmeticOp,
    ArithmeticSite,
    CallSite,
    CpiInvocation,
    CpiKind,
    DerivationOrigin,
    Guard,
    GuardKind,
    LoopSite,
    Operand,
    Parameter,
    PdaDerivation,
    Provenance,
    SourceLocation,
    StateWrite,
    Verification,
)

BINARY_OPS = {
    "+": ArithmeticOp.ADD,
    "-": ArithmeticOp.SUB,
    "*": ArithmeticOp.MUL,
    "/": ArithmeticOp.DIV,
}

COMPOUND_OPS = {
    "+=": ArithmeticOp.ADD,
    "-=": ArithmeticOp.SUB,
    "*=": ArithmeticOp.MUL,
    "/=": ArithmeticOp.DIV,
}

_SAFE_METHOD_RE = re.compile(r"^(checked|saturating|wrapping|overflowing)_(add|sub|mul|div|pow)$")
_METHOD_OPS = {
    "add": ArithmeticOp.ADD,
    "sub": ArithmeticOp.SUB,
    "mul": ArithmeticOp.MUL,
    "div": ArithmeticOp.DIV,
    "pow": ArithmeticOp.MUL,
}

RAW_INVOKE_NAMES = {"invoke", "invoke_signed", "invoke_unchecked", "invoke_signed_unchecked"}
CPI_CONTEXT_CONSTRUCTORS = {"CpiContext::new", "CpiContext::new_with_signer"}
INSTRUCTION_CONSTRUCTORS = ("new_with_bytes", "new_with_borsh", "new_with_bincode")

# Instruction builders whose program id is fixed by the library that builds them
KNOWN_BUILDER_MODULES = (
    "system_instruction::",
    "spl_token::instruction::",
    "spl_token_2022::instruction::",
    "spl_associated_token_account::instruction::",
    "token_instruction::",
    "stake::instruction::",
    "vote::instruction::",
    "compute_budget::",
    "memo::",
)

_HARDCODED_PROGRAM_RE = re.compile(
    r"(?:^|::)(?:ID|id\(\))$|^pubkey!|Pubkey::from_str|Pubkey::new_from_array|_PROGRAM_ID$|^crate::ID$"
)

GUARD_MACROS = {
    "require": GuardKind.REQUIRE,
    "require_eq": GuardKind.REQUIRE,
    "require_neq": GuardKind.REQUIRE,
    "require_gt": GuardKind.REQUIRE,
    "require_gte": GuardKind.REQUIRE,
    "require_keys_eq": GuardKind.REQUIRE,
    "require_keys_neq": GuardKind.REQUIRE,
    "assert": GuardKind.ASSERT,
    "assert_eq": GuardKind.ASSERT,
    "assert_ne": GuardKind.ASSERT,
}

_ERROR_EXIT_RE = re.compile(r"\bErr\(|\berr!\(|\berror!\(|\bpanic!\(")

STATE_WRITE_METHODS = {"set_inner", "serialize", "try_serialize", "exit"}
PDA_FUNCTIONS = {"find_program_address", "try_find_program_address", "create_program_address"}

_INT_LITERAL_RE = re.compile(r"^-?\d[\d_]*(?:\.\d+)?(?:[ui](?:8|16|32|64|128|size)|f32|f64)?$")


@dataclass
class FunctionFacts:
    """Facts extracted from one function body, before context resolution."""
    name: str
    parameters: List[Parameter]
    location: SourceLocation
    arithmetic: List[ArithmeticSite] = field(default_factory=list)
    cpi_calls: List[CpiInvocation] = field(default_factory=list)
    calls: List[CallSite] = field(default_factory=list)
    guards: List[Guard] = field(default_factory=list)
    writes: List[StateWrite] = field(default_factory=list)
    loops: List[LoopSite] = field(default_factory=list)
    accesses: List[AccountAccess] = field(default_factory=list)
    derivations: List[PdaDerivation] = field(default_factory=list)
    degraded: bool = False


class FactExtractor:
    """
    Extracts facts from a single function.

    Args:
        syntax: Parsed file
        function: The function_item node
        parameters: User-supplied parameters (Context excluded)
        ctx_param: Name of the Context parameter, if any
        constants: Program const items visible to the body
        self_context: Whether `self.<field>` refers to the Accounts struct
        program: Program name, when known
    """

    def __init__(
        self,
        syntax: SyntaxTree,
        function: Node,
        parameters: List[Parameter],
        ctx_param: Optional[str] = None,
        constants: Optional[Dict[str, str]] = None,
        self_context: bool = False,
        program: str = "",
    ):
        self.syntax = syntax
        self.function = function
        self.parameters = parameters
        self.ctx_param = ctx_param
        self.constants = constants or {}
        self.self_context = self_context
        self.program = program

        self.user: Set[str] = {p.name for p in parameters}
        self.locals: Set[str] = set()
        self.aliases: Dict[str, str] = {}
        self.let_values: Dict[str, Node] = {}
        self._let_of: Dict[int, List[str]] = {}

        prefixes = []
        if ctx_param:
            prefixes.append(re.escape(ctx_param) + r"\.accounts")
        if self_context:
            prefixes.append(r"self")
        self._account_re = re.compile(r"^(?:" + "|".join(prefixes) + r")\.(\w+)") if prefixes else None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _text(self, node: Optional[Node]) -> str:
        return normalize_expression(self.syntax.text(node))

    def _location(self, node: Node) -> SourceLocation:
        return SourceLocation(self.syntax.path, self.syntax.line(node), self.syntax.column(node))

    def _location_at(self, offset: int) -> SourceLocation:
        before = self.syntax.source[:offset]
        line = before.count(b"\n") + 1
        column = offset - (before.rfind(b"\n") + 1) + 1
        return SourceLocation(self.syntax.path, line, column)

    def _args(self, call: Node) -> List[Node]:
        arguments = call.child_by_field_name("arguments")
        if arguments is None:
            return []
        return [n for n in arguments.named_children if n.type not in COMMENT_TYPES and n.type != "attribute_item"]

    def _unwrap(self, node: Node) -> Node:
        """Skip parentheses, references and dereferences."""
        while node.type in ("parenthesized_expression", "reference_expression", "unary_expression", "try_expression"):
            children = [n for n in node.named_children if n.type not in COMMENT_TYPES and n.type != "mutable_specifier"]
            if not children:
                break
            node = children[-1]
        return node

    def account_of(self, text: str) -> Optional[str]:
        """The Accounts field an expression refers to, if any."""
        base = strip_references(text)
        if self._account_re is not None:
            match = self._account_re.match(base)
            if match:
                return match.group(1)
        head = re.match(r"^(\w+)", base)
        if head and head.group(1) in self.aliases:
            return self.aliases[head.group(1)]
        return None

    def provenance(self, text: str) -> Provenance:
        base = strip_references(text).strip("()")
        if _INT_LITERAL_RE.match(base):
            return Provenance.CONSTANT
        names = free_identifiers(base)
        if any(n in self.user for n in names):
            return Provenance.USER
        if self.account_of(base) is not None:
            return Provenance.ACCOUNT
        if names and all(n in self.constants or n.isupper() for n in names):
            return Provenance.CONSTANT
        if any(n in self.locals for n in names):
            return Provenance.LOCAL
        return Provenance.UNKNOWN

    def _operand(self, node: Optional[Node]) -> Operand:
        text = self._text(node)
        return Operand(
            expression=text,
            provenance=self.provenance(text),
            identifiers=tuple(free_identifiers(text)),
        )

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    def extract(self, name: str, location: Optional[SourceLocation] = None) -> FunctionFacts:
        facts = FunctionFacts(
            name=name,
            parameters=list(self.parameters),
            location=location or self._location(self.function),
            degraded=self.function.has_error,
        )
        body = self.function.child_by_field_name("body")
        if body is None:
            return facts

        pending_pdas: List[Tuple[Node, PdaDerivation]] = []

        for node in walk(body):
            kind = node.type
            if kind == "let_declaration":
                self._visit_let(node)
            elif kind == "binary_expression":
                site = self._binary_site(node)
                if site is not None:
                    facts.arithmetic.append(site)
            elif kind == "compound_assignment_expr":
                site = self._compound_site(node)
                if site is not None:
                    facts.arithmetic.append(site)
                self._visit_write(node, facts)
            elif kind == "assignment_expression":
                self._visit_write(node, facts)
            elif kind == "call_expression":
                self._visit_call(node, facts, pending_pdas)
            elif kind == "macro_invocation":
                self._visit_macro(node, facts)
            elif kind == "if_expression":
                self._visit_if(node, facts)
            elif kind == "for_expression":
                value = node.child_by_field_name("value")
                facts.loops.append(LoopSite(
                    iterable=self._text(value),
                    bounded=False,
                    location=self._location(node),
                    position=node.start_byte,
                ))

        facts.loops = [self._resolve_loop(loop, facts.guards) for loop in facts.loops]
        facts.derivations = [self._resolve_pda(call, pda, facts.guards) for call, pda in pending_pdas]
        facts.accesses.extend(self._scan_accesses(body))
        facts.accesses.sort(key=lambda a: (a.position, a.account, a.kind.value))
        return facts

    def _visit_let(self, node: Node) -> None:
        pattern = node.child_by_field_name("pattern")
        value = node.child_by_field_name("value")
        names = [n for n in free_identifiers(self.syntax.text(pattern)) if n not in ("mut", "ref", "Some", "Ok")]
        self.locals.update(names)
        self._let_of[node.id] = names
        if value is None:
            return

        value_text = self._text(value)
        for name in names:
            self.let_values[name] = value

        alias = re.match(r"^(?:&mut|&)?(.*?)(?:\.to_account_info\(\)|\.as_mut\(\)|\.as_ref\(\))?$", value_text)
        if len(names) == 1 and alias:
            account = None
            if self._account_re is not None:
                target = strip_references(alias.group(1))
                match = self._account_re.match(target)
                if match and match.end() == len(target):
                    account = match.group(1)
            if account is not None:
                self.aliases[names[0]] = account

        if any(n in self.user for n in free_identifiers(value_text)):
            self.user.update(names)

    def _binary_site(self, node: Node) -> Optional[ArithmeticSite]:
        operator = node.child_by_field_name("operator")
        op = BINARY_OPS.get(self.syntax.text(operator).strip())
        if op is None:
            return None
        left = node.child_by_field_name("left")
        right = node.child_by_field_name("right")
        if left is None or right is None:
            return None
        if left.type == "string_literal" or right.type == "string_literal":
            return None
        operands = (self._operand(left), self._operand(right))
        return ArithmeticSite(
            op=op,
            expression=self._text(node),
            operands=operands,
            checked=False,
            location=self._location(node),
            position=node.start_byte,
            div_before_mul=op == ArithmeticOp.MUL and self._divides(left, right),
        )

    def _compound_site(self, node: Node) -> Optional[ArithmeticSite]:
        operator = node.child_by_field_name("operator")
        op = COMPOUND_OPS.get(self.syntax.text(operator).strip())
        if op is None:
            return None
        left = node.child_by_field_name("left")
        right = node.child_by_field_name("right")
        return ArithmeticSite(
            op=op,
            expression=self._text(node),
            operands=(self._operand(left), self._operand(right)),
            checked=False,
            location=self._location(node),
            position=node.start_byte,
            compound=True,
            div_before_mul=op == ArithmeticOp.MUL and self._divides(right),
        )

    def _divides(self, *nodes: Optional[Node]) -> bool:
        for node in nodes:
            if node is None:
                continue
            inner = self._unwrap(node)
            if inner.type == "binary_expression":
                operator = inner.child_by_field_name("operator")
                if self.syntax.text(operator).strip() == "/":
                    return True
            text = self._text(inner)
            if re.search(r"\.(?:checked|saturating)_div\(", text):
                return True
        return False

    def _method_site(self, node: Node, function: Node) -> Optional[ArithmeticSite]:
        method = self.syntax.field_text(function, "field")
        match = _SAFE_METHOD_RE.match(method)
        if not match:
            return None
        op = _METHOD_OPS[match.group(2)]
        receiver = function.child_by_field_name("value")
        args = self._args(node)
        operands = [self._operand(receiver)]
        if args:
            operands.append(self._operand(args[0]))
        div_before_mul = op == ArithmeticOp.MUL and (
            self._divides(receiver) or (bool(args) and self._divides(args[0]))
        )
        return ArithmeticSite(
            op=op,
            expression=self._text(node),
            operands=tuple(operands),
            checked=True,
            location=self._location(node),
            position=node.start_byte,
            div_before_mul=div_before_mul,
            method=method,
        )

    def _visit_call(self, node: Node, facts: FunctionFacts, pending_pdas: List) -> None:
        function = node.child_by_field_name("function")
        if function is None:
            return
        args = self._args(node)
        arg_texts = tuple(self._text(a) for a in args)
        is_method = function.type == "field_expression"

        if is_method:
            name = self.syntax.field_text(function, "field")
            receiver = self._text(function.child_by_field_name("value"))
            callee = f"{receiver}.{name}"
            site = self._method_site(node, function)
            if site is not None:
                facts.arithmetic.append(site)
        else:
            callee = self._text(function)
            callee = re.sub(r"::<.*>$", "", callee)
            name = callee.rsplit("::", 1)[-1]
            receiver = None

        propagates, mapped = self._error_handling(node)
        facts.calls.append(CallSite(
            callee=callee,
            name=name,
            arguments=arg_texts,
            location=self._location(node),
            position=node.start_byte,
            method=is_method,
            receiver=receiver,
            propagates=propagates,
            error_mapped=mapped,
        ))

        if is_method and name in STATE_WRITE_METHODS:
            account = self.account_of(receiver)
            if account is not None:
                facts.writes.append(StateWrite(
                    target=receiver, account=account,
                    location=self._location(node), position=node.start_byte,
                ))

        if not is_method and name in RAW_INVOKE_NAMES and args:
            facts.cpi_calls.append(self._raw_cpi(node, name, args))
        elif not is_method and callee in CPI_CONTEXT_CONSTRUCTORS and args:
            facts.cpi_calls.append(self._context_cpi(node, callee, args))
        elif not is_method and name in PDA_FUNCTIONS and args:
            pending_pdas.append((node, self._runtime_pda(node, name, args)))

    def _error_handling(self, node: Node) -> Tuple[bool, bool]:
        """Whether a call result is propagated with `?`, and whether its error is mapped first."""
        parent = node.parent
        if parent is None:
            return False, False
        if parent.type == "try_expression":
            return True, False
        if parent.type == "field_expression":
            method = self.syntax.field_text(parent, "field")
            call = parent.parent
            if method in ("map_err", "or_else", "context", "ok_or", "ok_or_else") and call is not None \
                    and call.type == "call_expression":
                outer = call.parent
                return outer is not None and outer.type == "try_expression", True
        return False, False

    def _accounts_in(self, nodes: List[Node]) -> Tuple[str, ...]:
        found: List[str] = []
        for node in nodes:
            for candidate in walk(node):
                if candidate.type not in ("field_expression", "identifier"):
                    continue
                account = self.account_of(self._text(candidate))
                if account is not None and account not in found:
                    found.append(account)
        return tuple(found)

    def _program_reference(self, expression: str) -> Tuple[str, Optional[str], Verification]:
        """Classify a program id expression: (normalized expr, context field, verification)."""
        expr = strip_references(expression)
        account = self.account_of(expr)
        if account is not None:
            # resolved against the Accounts context during merge
            return expr, account, Verification.UNKNOWN
        if _HARDCODED_PROGRAM_RE.search(expr):
            return expr, None, Verification.VERIFIED
        names = free_identifiers(expr)
        if any(n in self.user for n in names):
            return expr, None, Verification.UNVERIFIED
        if names and all(n in self.constants for n in names):
            return expr, None, Verification.VERIFIED
        return expr, None, Verification.UNKNOWN

    def _instruction_program(self, node: Node) -> Tuple[str, Optional[str], Verification]:
        """Find the program an `Instruction` value targets."""
        target = self._unwrap(node)
        if target.type == "identifier":
            value = self.let_values.get(self.syntax.text(target))
            if value is None:
                return self._text(target), None, Verification.UNKNOWN
            target = self._unwrap(value)

        if target.type == "struct_expression":
            body = target.child_by_field_name("body")
            for child in (body.named_children if body is not None else []):
                if child.type == "field_initializer" and self.syntax.field_text(child, "field") == "program_id":
                    return self._program_reference(self._text(child.child_by_field_name("value")))
                if child.type == "shorthand_field_initializer" and self.syntax.text(child).strip() == "program_id":
                    return self._program_reference("program_id")
            return self._text(target), None, Verification.UNKNOWN

        if target.type == "call_expression":
            function = self._text(target.child_by_field_name("function"))
            if function.endswith(INSTRUCTION_CONSTRUCTORS):
                args = self._args(target)
                if args:
                    return self._program_reference(self._text(args[0]))
            if any(module in function for module in KNOWN_BUILDER_MODULES):
                return function, None, Verification.VERIFIED
            return function, None, Verification.UNKNOWN

        return self._text(target), None, Verification.UNKNOWN

    def _raw_cpi(self, node: Node, name: str, args: List[Node]) -> CpiInvocation:
        program, account, verification = self._instruction_program(args[0])
        return CpiInvocation(
            kind=CpiKind.INVOKE_SIGNED if "signed" in name else CpiKind.INVOKE,
            signed="signed" in name,
            program=program,
            program_account=account,
            verification=verification,
            accounts=self._accounts_in(args[1:2]),
            caller="",
            location=self._location(node),
            position=node.start_byte,
        )

    def _context_cpi(self, node: Node, callee: str, args: List[Node]) -> CpiInvocation:
        program, account, verification = self._program_reference(self._text(args[0]))
        return CpiInvocation(
            kind=CpiKind.CPI_CONTEXT,
            signed=callee.endswith("new_with_signer"),
            program=program,
            program_account=account,
            verification=verification,
            accounts=self._accounts_in(args[1:2]),
            caller="",
            location=self._location(node),
            position=node.start_byte,
        )

    def _runtime_pda(self, node: Node, name: str, args: List[Node]) -> PdaDerivation:
        fields = sorted(set(self.aliases.values()) | set(self.aliases))
        if self._account_re is not None:
            fields.extend(self._accounts_in([self.function]))
        seeds, known = parse_seed_list(self._text(args[0]), fields, sorted(self.user), self.constants)
        bump = None
        if name == "create_program_address":
            for seed in seeds:
                if "bump" in seed.value:
                    bump = seed.value
        return PdaDerivation(
            site=f"{name}({self._text(args[0])})",
            seeds=seeds,
            bump=bump,
            bump_verification=Verification.UNVERIFIED,
            origin=DerivationOrigin.RUNTIME,
            location=self._location(node),
            program=self.program,
            seeds_known=known,
        )

    def _resolve_pda(self, node: Node, pda: PdaDerivation, guards: List[Guard]) -> PdaDerivation:
        declaration = node.parent
        while declaration is not None and declaration.type not in ("let_declaration", "block"):
            declaration = declaration.parent
        names = self._let_of.get(declaration.id, []) if declaration is not None else []
        verified = any(g.position > node.start_byte and any(g.mentions(n) for n in names) for g in guards)
        return replace(pda, bump_verification=Verification.VERIFIED if verified else Verification.UNVERIFIED)

    def _visit_macro(self, node: Node, facts: FunctionFacts) -> None:
        macro = self.syntax.field_text(node, "macro")
        name = macro.rsplit("::", 1)[-1]
        kind = GUARD_MACROS.get(name)
        if kind is None:
            return
        text = self._text(node)
        inner = text[len(macro) + 1:] if text.startswith(macro + "!") else text
        facts.guards.append(Guard(
            kind=kind,
            expression=text,
            identifiers=tuple(free_identifiers(inner)) + tuple(re.findall(r"\.(\w+)", inner)),
            location=self._location(node),
            position=node.start_byte,
        ))

    def _visit_if(self, node: Node, facts: FunctionFacts) -> None:
        consequence = node.child_by_field_name("consequence")
        if consequence is None or not _ERROR_EXIT_RE.search(self.syntax.text(consequence)):
            return
        condition = self._text(node.child_by_field_name("condition"))
        facts.guards.append(Guard(
            kind=GuardKind.BRANCH,
            expression=condition,
            identifiers=tuple(free_identifiers(condition)) + tuple(re.findall(r"\.(\w+)", condition)),
            location=self._location(node),
            position=node.start_byte,
        ))

    def _visit_write(self, node: Node, facts: FunctionFacts) -> None:
        left = self._text(node.child_by_field_name("left"))
        account = self.account_of(left)
        if account is None:
            return
        facts.writes.append(StateWrite(
            target=left,
            account=account,
            location=self._location(node),
            position=node.start_byte,
        ))
        facts.accesses.append(AccountAccess(
            account=account,
            kind=AccessKind.LAMPORTS if "lamports" in left else AccessKind.WRITE,
            location=self._location(node),
            position=node.start_byte,
        ))

    def _resolve_loop(self, loop: LoopSite, guards: List[Guard]) -> LoopSite:
        iterable = loop.iterable
        if ".take(" in iterable:
            return replace(loop, bounded=True)
        if ".iter" not in iterable and ".." in iterable:
            names = free_identifiers(re.sub(r"\.\.=?", " ", iterable))
            unbounded = [n for n in names if n in self.user]
            bounded = not unbounded or any(
                g.position < loop.position and any(g.bounds(n) for n in unbounded) for g in guards
            )
            return replace(loop, bounded=bounded)
        receiver = strip_references(re.split(r"\.(?:iter|iter_mut|into_iter)\(", iterable)[0])
        last = receiver.rsplit(".", 1)[-1]
        bounded = any(
            g.position < loop.position and "len" in g.expression and last in g.expression
            for g in guards
        )
        return replace(loop, bounded=bounded)

    def _scan_accesses(self, body: Node) -> List[AccountAccess]:
        """Find every reference to an Accounts field in the body text."""
        source = self.syntax.source
        start = body.start_byte
        text = source[start:body.end_byte]
        patterns = []
        if self.ctx_param:
            patterns.append((rb"(?<![\w.])" + re.escape(self.ctx_param.encode()) + rb"\.accounts\.(\w+)", False))
        if self.self_context:
            patterns.append((rb"(?<![\w.])self\.(\w+)", False))
        if self.aliases:
            names = b"|".join(re.escape(a.encode()) for a in sorted(self.aliases))
            patterns.append((rb"(?<![\w.])(" + names + rb")\b", True))
        if not patterns:
            return []

        chain = rb"((?:\s*\.\s*\w+(?:\(\))?)*)"
        accesses = []
        for pattern, is_alias in patterns:
            for match in re.finditer(pattern + chain, text):
                name = match.group(1).decode()
                account = self.aliases[name] if is_alias else name
                suffix = match.group(2)
                if b"lamports" in suffix:
                    kind = AccessKind.LAMPORTS
                elif b"data" in suffix:
                    kind = AccessKind.DATA
                else:
                    kind = AccessKind.READ
                offset = start + match.start()
                accesses.append(AccountAccess(
                    account=account,
                    kind=kind,
                    location=self._location_at(offset),
                    position=offset,
                ))
        return accesses


def context_parameter(syntax: SyntaxTree, function: Node) -> Tuple[Optional[str], Optional[str], List[Parameter]]:
    """
    Split a function's parameters into the Context parameter and user arguments.

    Returns:
        Tuple of (context parameter name, raw Context type text, user parameters)
    """
    parameters = function.child_by_field_name("parameters")
    ctx_name = None
    ctx_type = None
    user: List[Parameter] = []
    if parameters is None:
        return ctx_name, ctx_type, user

    for param in parameters.named_children:
        if param.type != "parameter":
            continue
        pattern = normalize_expression(syntax.field_text(param, "pattern"))
        type_text = normalize_expression(syntax.field_text(param, "type"))
        pattern = re.sub(r"^mut ", "", pattern)
        if re.match(r"^(?:[\w:]*::)?Context\b", type_text) and ctx_name is None:
            ctx_name = pattern
            ctx_type = type_text
            continue
        user.append(Parameter(name=pattern, type=type_text))
    return ctx_name, ctx_type, user
