"""
Program Model Builder: turns parsed sources into a ProgramModel.

Each source file is reduced to a ModelFragment on its own (optionally on a
worker pool). Fragments are merged per crate only after every file has
finished, in path order, so the resulting model never depends on which
worker completed first.

A file that cannot be parsed contributes a coverage marker and nothing
else. A construct that cannot be normalized is kept with unknown state and
a marker; the rest of the file is still modeled.
"""

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from pathlib import PurePath
from typing import Dict, Iterable, List, Optional, Tuple

from tree_sitter import Node

from ..errors import ModelError, NoSourcesError, ParseError
from ..parser.rust import SyntaxTree, parse_source, walk, Attribute
from ..parser.normalize import normalize_expression, parse_type, split_top_level
from .constraints import parse_constraints, recover_constraints
from .facts import FactExtractor, FunctionFacts, context_parameter
from .models import (
    AccountContext,
    AccountField,
    AccountKind,
    ConstraintKind,
    CoverageMarker,
    CoverageScope,
    CpiInvocation,
    Guard,
    GuardKind,
    Instruction,
    Parameter,
    Program,
    ProgramModel,
    SourceLocation,
    StateAccount,
    SymbolRef,
    Verification,
)
from .source_loader import SourceFile

logger = logging.getLogger(__name__)

KIND_BY_TYPE = {
    "Account": AccountKind.ACCOUNT,
    "AccountLoader": AccountKind.ACCOUNT_LOADER,
    "InterfaceAccount": AccountKind.INTERFACE_ACCOUNT,
    "AccountInfo": AccountKind.ACCOUNT_INFO,
    "UncheckedAccount": AccountKind.UNCHECKED,
    "Signer": AccountKind.SIGNER,
    "Program": AccountKind.PROGRAM,
    "Interface": AccountKind.INTERFACE,
    "SystemAccount": AccountKind.SYSTEM_ACCOUNT,
    "Sysvar": AccountKind.SYSVAR,
}

# Paths worth remembering at program level
NOTABLE_SYMBOLS = re.compile(
    r"ExtensionType::\w+|PermanentDelegate|TransferFeeConfig|TransferHook\w*|transfer_fee\w*|"
    r"calculate_(?:epoch_)?fee|get_extension\w*|StateWithExtensions\w*|spl_transfer_hook_interface(?:::\w+)*|"
    r"bpf_loader_upgradeable(?:::\w+)*|UpgradeableLoaderState|token_2022(?:::\w+)?|token_interface(?:::\w+)?|"
    r"spl_token_2022"
)

_PARAM_RE = re.compile(r"^(?:mut\s+)?(\w+)\s*:\s*(.+)$", re.DOTALL)
_DECLARE_ID_RE = re.compile(r'"([1-9A-HJ-NP-Za-km-z]{32,44})"')

# Keeps merged handler positions after the instruction's own body
HANDLER_OFFSET = 1 << 32


def crate_root(path: str) -> str:
    """The path prefix before the last `src` component, else the parent directory."""
    parts = PurePath(path).parts
    if "src" in parts[:-1]:
        index = len(parts) - 1 - list(reversed(parts[:-1])).index("src") - 1
        return str(PurePath(*parts[:index])) if index > 0 else "."
    parent = str(PurePath(path).parent)
    return parent or "."


@dataclass
class InstructionDecl:
    name: str
    context_name: Optional[str]
    facts: FunctionFacts
    attributes: Tuple[str, ...]
    degraded: bool = False


@dataclass
class ProgramDecl:
    name: str
    file: str
    location: SourceLocation
    instructions: List[InstructionDecl] = field(default_factory=list)
    degraded: bool = False


@dataclass
class HandlerDecl:
    """A function outside the #[program] module that works on an Accounts struct."""
    context_name: str
    facts: FunctionFacts


@dataclass
class ModelFragment:
    """Everything one source file contributes to the model."""
    path: str
    crate: str
    package: Optional[str] = None
    programs: List[ProgramDecl] = field(default_factory=list)
    contexts: List[AccountContext] = field(default_factory=list)
    state_accounts: List[StateAccount] = field(default_factory=list)
    constants: Dict[str, str] = field(default_factory=dict)
    program_id: Optional[str] = None
    handlers: List[HandlerDecl] = field(default_factory=list)
    symbols: List[SymbolRef] = field(default_factory=list)
    markers: List[CoverageMarker] = field(default_factory=list)


class FragmentBuilder:
    """Builds the ModelFragment for a single parsed file."""

    def __init__(self, syntax: SyntaxTree, fragment: ModelFragment):
        self.syntax = syntax
        self.fragment = fragment
        self._entities: Dict[int, Tuple[CoverageScope, str]] = {}
        self._skip: set = set()

    def _location(self, node: Node) -> SourceLocation:
        return SourceLocation(self.syntax.path, self.syntax.line(node), self.syntax.column(node))

    def _marker(self, scope: CoverageScope, name: Optional[str], reason: str, line: Optional[int]) -> None:
        marker = CoverageMarker(scope=scope, file=self.syntax.path, reason=reason, name=name, line=line)
        self.fragment.markers.append(marker)
        logger.warning("Degraded coverage: %s", marker.note())

    def _skipped(self, node: Node) -> bool:
        return self._inside(node, self._skip)

    def run(self) -> ModelFragment:
        root = self.syntax.root

        for node in walk(root):
            if node.type == "mod_item" and any(
                a.name == "cfg" and "test" in a.arguments for a in self.syntax.attributes_of(node)
            ):
                self._skip.add(node.id)

        self._collect_constants(root)
        self._collect_declare_id(root)

        program_mods = []
        for node in walk(root):
            if self._skipped(node):
                continue
            if node.type == "struct_item":
                self._visit_struct(node)
            elif node.type == "mod_item":
                if any(a.name == "program" for a in self.syntax.attributes_of(node)):
                    program_mods.append(node)

        for mod in program_mods:
            self._visit_program(mod)

        program_ids = {m.id for m in program_mods}
        for node in walk(root):
            if node.type != "function_item" or self._skipped(node):
                continue
            if self._inside(node, program_ids):
                continue
            impl = self._enclosing_impl(node)
            if impl is not None:
                self._visit_impl_method(node, impl)
            else:
                self._visit_free_function(node)

        self._collect_symbols()
        self._record_errors()
        return self.fragment

    def _inside(self, node: Node, ids: set) -> bool:
        parent = node.parent
        while parent is not None:
            if parent.id in ids:
                return True
            parent = parent.parent
        return False

    def _enclosing_impl(self, node: Node) -> Optional[Node]:
        parent = node.parent
        if parent is not None and parent.type == "declaration_list":
            grandparent = parent.parent
            if grandparent is not None and grandparent.type == "impl_item":
                return grandparent
        return None

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def _collect_constants(self, root: Node) -> None:
        for node in walk(root):
            if node.type in ("const_item", "static_item"):
                name = self.syntax.field_text(node, "name")
                value = node.child_by_field_name("value")
                if name and value is not None:
                    self.fragment.constants[name] = normalize_expression(self.syntax.text(value))

    def _collect_declare_id(self, root: Node) -> None:
        for node in walk(root):
            if node.type == "macro_invocation" and self.syntax.field_text(node, "macro").endswith("declare_id"):
                match = _DECLARE_ID_RE.search(self.syntax.text(node))
                if match:
                    self.fragment.program_id = match.group(1)
                    return

    def _visit_struct(self, node: Node) -> None:
        attributes = self.syntax.attributes_of(node)
        derives = [
            part.rsplit("::", 1)[-1]
            for a in attributes if a.name == "derive"
            for part in split_top_level(a.arguments)
        ]
        if "Accounts" in derives:
            self.fragment.contexts.append(self._context(node, attributes))
        elif any(a.name == "account" and a.path in ("account", "anchor_lang::account") for a in attributes):
            self.fragment.state_accounts.append(self._state_account(node))

    def _context(self, node: Node, attributes: List[Attribute]) -> AccountContext:
        name = self.syntax.field_text(node, "name")
        self._entities[node.id] = (CoverageScope.CONTEXT, name)

        instruction_args: List[Parameter] = []
        for attribute in attributes:
            if attribute.name == "instruction":
                for part in split_top_level(attribute.arguments):
                    match = _PARAM_RE.match(part)
                    if match:
                        instruction_args.append(Parameter(match.group(1), normalize_expression(match.group(2))))

        fields: List[AccountField] = []
        degraded = False
        body = node.child_by_field_name("body")
        for declaration in (body.named_children if body is not None else []):
            if declaration.type != "field_declaration":
                continue
            field_name = self.syntax.field_text(declaration, "name")
            account_args = [
                a.arguments for a in self.syntax.attributes_of(declaration)
                if a.name == "account" and a.arguments
            ]
            text = ", ".join(account_args)
            try:
                constraints = parse_constraints(text, name, field_name)
            except ModelError as e:
                constraints = recover_constraints(text, name, field_name)
                degraded = True
                self._marker(CoverageScope.CONTEXT, name, f"field {field_name}: {e.reason}",
                             self.syntax.line(declaration))

            info = parse_type(self.syntax.field_text(declaration, "type"))
            kind = KIND_BY_TYPE.get(info.name, AccountKind.UNKNOWN)
            inner = parse_type(info.inner).name if info.inner and kind != AccountKind.UNKNOWN else None
            fields.append(AccountField(
                name=field_name,
                context=name,
                kind=kind,
                type_name=info.raw,
                inner_type=inner,
                constraints=constraints,
                location=self._location(declaration),
                optional=info.optional,
                docs=self.syntax.doc_comment(declaration),
            ))

        return AccountContext(
            name=name,
            program="",
            fields=tuple(fields),
            location=self._location(node),
            instruction_args=tuple(instruction_args),
            degraded=degraded or node.has_error,
        )

    def _state_account(self, node: Node) -> StateAccount:
        fields = []
        body = node.child_by_field_name("body")
        for declaration in (body.named_children if body is not None else []):
            if declaration.type == "field_declaration":
                fields.append((
                    self.syntax.field_text(declaration, "name"),
                    normalize_expression(self.syntax.field_text(declaration, "type")),
                ))
        return StateAccount(
            name=self.syntax.field_text(node, "name"),
            fields=tuple(fields),
            location=self._location(node),
        )

    def _visit_program(self, mod: Node) -> None:
        name = self.syntax.field_text(mod, "name")
        self._entities[mod.id] = (CoverageScope.PROGRAM, name)
        decl = ProgramDecl(name=name, file=self.syntax.path, location=self._location(mod))

        body = mod.child_by_field_name("body")
        for node in (body.named_children if body is not None else []):
            if node.type != "function_item":
                continue
            instruction = self._instruction(node, name)
            if instruction is not None:
                decl.instructions.append(instruction)

        self.fragment.programs.append(decl)

    def _context_name(self, ctx_type: str, owner: str) -> str:
        info = parse_type(ctx_type)
        if not info.arguments:
            raise ModelError("instruction", owner, f"`{ctx_type}` does not name an Accounts struct")
        return parse_type(info.inner).name

    def _instruction(self, node: Node, program: str) -> Optional[InstructionDecl]:
        name = self.syntax.field_text(node, "name")
        ctx_param, ctx_type, parameters = context_parameter(self.syntax, node)
        if ctx_type is None:
            # helper function, not an instruction handler
            return None

        self._entities[node.id] = (CoverageScope.INSTRUCTION, name)
        degraded = False
        context_name = None
        try:
            context_name = self._context_name(ctx_type, name)
        except ModelError as e:
            degraded = True
            self._marker(CoverageScope.INSTRUCTION, name, e.reason, self.syntax.line(node))

        extractor = FactExtractor(
            self.syntax, node, parameters, ctx_param,
            constants=self.fragment.constants, program=program,
        )
        facts = extractor.extract(name)

        attributes = self.syntax.attributes_of(node)
        for attribute in attributes:
            if attribute.name == "access_control":
                expression = normalize_expression(attribute.arguments)
                facts.guards.insert(0, Guard(
                    kind=GuardKind.REQUIRE,
                    expression=f"access_control({expression})",
                    identifiers=tuple(re.findall(r"\w+", expression)),
                    location=SourceLocation(self.syntax.path, attribute.line, 1),
                    position=-1,
                ))

        return InstructionDecl(
            name=name,
            context_name=context_name,
            facts=facts,
            attributes=tuple(a.raw for a in attributes),
            degraded=degraded or facts.degraded,
        )

    def _visit_free_function(self, node: Node) -> None:
        ctx_param, ctx_type, parameters = context_parameter(self.syntax, node)
        if ctx_type is None:
            return
        name = self.syntax.field_text(node, "name")
        try:
            context_name = self._context_name(ctx_type, name)
        except ModelError as e:
            self._marker(CoverageScope.INSTRUCTION, name, e.reason, self.syntax.line(node))
            return
        self._entities[node.id] = (CoverageScope.INSTRUCTION, name)
        facts = FactExtractor(self.syntax, node, parameters, ctx_param, constants=self.fragment.constants).extract(name)
        self.fragment.handlers.append(HandlerDecl(context_name=context_name, facts=facts))

    def _visit_impl_method(self, node: Node, impl: Node) -> None:
        parameters = node.child_by_field_name("parameters")
        if parameters is None or not any(p.type == "self_parameter" for p in parameters.named_children):
            return
        target = parse_type(self.syntax.field_text(impl, "type")).name
        name = self.syntax.field_text(node, "name")
        ctx_param, _, user = context_parameter(self.syntax, node)
        self._entities[node.id] = (CoverageScope.INSTRUCTION, f"{target}::{name}")
        facts = FactExtractor(
            self.syntax, node, user, ctx_param,
            constants=self.fragment.constants, self_context=True,
        ).extract(f"{target}::{name}")
        self.fragment.handlers.append(HandlerDecl(context_name=target, facts=facts))

    def _collect_symbols(self) -> None:
        for number, line in enumerate(self.syntax.source.decode("utf-8", errors="replace").splitlines(), start=1):
            if line.lstrip().startswith("//"):
                continue
            for match in NOTABLE_SYMBOLS.finditer(line):
                self.fragment.symbols.append(SymbolRef(
                    path=match.group(0),
                    location=SourceLocation(self.syntax.path, number, match.start() + 1),
                ))

    def _record_errors(self) -> None:
        seen = set()
        for error in self.syntax.error_nodes():
            node = error
            target = None
            while node is not None:
                if node.id in self._entities:
                    target = self._entities[node.id]
                    break
                node = node.parent
            scope, name = target if target is not None else (CoverageScope.FILE, None)
            if (scope, name) in seen:
                continue
            seen.add((scope, name))
            line = self.syntax.line(error)
            self._marker(scope, name, f"syntax error near line {line}", line)

            if scope == CoverageScope.PROGRAM:
                for decl in self.fragment.programs:
                    if decl.name == name:
                        decl.degraded = True


def build_fragment(source: SourceFile) -> ModelFragment:
    """Parse one source file and reduce it to a fragment."""
    fragment = ModelFragment(path=source.path, crate=crate_root(source.path), package=source.package)
    if source.error is not None or source.text is None:
        reason = source.error or "file could not be read"
        fragment.markers.append(CoverageMarker(scope=CoverageScope.FILE, file=source.path, reason=reason))
        logger.warning("Skipping %s: %s", source.path, reason)
        return fragment

    try:
        syntax = parse_source(source.text, source.path)
    except ParseError as e:
        fragment.markers.append(CoverageMarker(scope=CoverageScope.FILE, file=source.path, reason=e.reason))
        logger.warning("Skipping %s: %s", source.path, e.reason)
        return fragment

    logger.debug("Modeling %s", source.path)
    return FragmentBuilder(syntax, fragment).run()


def _number(items: Iterable, key) -> List:
    """Assign ordinals among items sharing the same identity, in position order."""
    counts: Dict = {}
    numbered = []
    for item in sorted(items, key=lambda i: i.position):
        k = key(item)
        numbered.append(replace(item, ordinal=counts.get(k, 0)))
        counts[k] = counts.get(k, 0) + 1
    return numbered


def _shift(items: Iterable, offset: int) -> List:
    return [replace(i, position=i.position + offset) for i in items]


def resolve_cpi(
    cpi: CpiInvocation,
    context: Optional[AccountContext],
    guards: List[Guard],
    caller: str,
) -> CpiInvocation:
    """Settle whether a context-supplied CPI program is checked."""
    if cpi.program_account is None:
        return replace(cpi, caller=caller)

    name = cpi.program_account
    f = context.field(name) if context is not None else None
    if f is None:
        verification = Verification.UNKNOWN
    elif f.kind in (AccountKind.PROGRAM, AccountKind.INTERFACE) or f.has(ConstraintKind.ADDRESS):
        verification = Verification.VERIFIED
    elif any(re.search(r"key|ID|id\(\)|program_id", expr) for expr in f.custom_expressions):
        verification = Verification.VERIFIED
    elif any(
        name in expr and re.search(r"key|ID", expr)
        for other in context.fields for expr in other.custom_expressions
    ):
        verification = Verification.VERIFIED
    elif any(
        g.position < cpi.position and g.mentions(name) and re.search(r"key|ID|id\(\)", g.expression)
        for g in guards
    ):
        verification = Verification.VERIFIED
    elif f.unknown_constraints or context.degraded:
        verification = Verification.UNKNOWN
    else:
        verification = Verification.UNVERIFIED

    return replace(cpi, verification=verification, caller=caller)


def merge(fragments: List[ModelFragment], files: Optional[List[str]] = None) -> ProgramModel:
    """
    Merge fragments into a ProgramModel.

    Fragments are grouped by crate and processed in path order.
    """
    fragments = sorted(fragments, key=lambda f: f.path)
    crates: Dict[str, List[ModelFragment]] = {}
    for fragment in fragments:
        crates.setdefault(fragment.crate, []).append(fragment)

    programs: List[Program] = []
    markers: List[CoverageMarker] = []

    for crate in sorted(crates):
        members = crates[crate]
        built, crate_markers = _merge_crate(crate, members)
        programs.extend(built)
        markers.extend(crate_markers)

    markers.sort(key=lambda m: (m.file, m.line or 0, m.scope.value, m.name or ""))
    return ProgramModel(
        programs=tuple(sorted(programs, key=lambda p: (p.name, p.file))),
        markers=tuple(markers),
        files=tuple(sorted(files if files is not None else [f.path for f in fragments])),
    )


def _merge_crate(crate: str, members: List[ModelFragment]) -> Tuple[List[Program], List[CoverageMarker]]:
    contexts: Dict[str, AccountContext] = {}
    constants: Dict[str, str] = {}
    handlers: Dict[str, List[HandlerDecl]] = {}
    decls: List[ProgramDecl] = []
    state_accounts: List[StateAccount] = []
    symbols: List[SymbolRef] = []
    program_id = None
    pending_markers: List[CoverageMarker] = []

    for fragment in members:
        for ctx in fragment.contexts:
            contexts.setdefault(ctx.name, ctx)
        for name, value in fragment.constants.items():
            constants.setdefault(name, value)
        for handler in fragment.handlers:
            handlers.setdefault(handler.context_name, []).append(handler)
        decls.extend(fragment.programs)
        state_accounts.extend(fragment.state_accounts)
        symbols.extend(fragment.symbols)
        program_id = program_id or fragment.program_id
        pending_markers.extend(fragment.markers)

    if not decls and contexts:
        first = min(contexts.values(), key=lambda c: (c.location.file, c.location.line))
        packages = sorted({m.package for m in members if m.package})
        name = packages[0] if packages else (PurePath(crate).name or "program")
        decls.append(ProgramDecl(name=name, file=first.location.file, location=first.location, degraded=True))
        marker = CoverageMarker(
            scope=CoverageScope.PROGRAM, file=first.location.file, program=name, name=name,
            reason="no #[program] module found; accounts contexts analyzed without instructions",
        )
        pending_markers.append(marker)
        logger.warning("Degraded coverage: %s", marker.note())

    for ctx in sorted(contexts.values(), key=lambda c: c.name):
        for f in ctx.fields:
            # A field typed as another Accounts struct is a nested context, not an account
            if f.kind != AccountKind.UNKNOWN or parse_type(f.type_name).name in contexts:
                continue
            marker = CoverageMarker(
                scope=CoverageScope.CONTEXT, file=f.location.file, name=ctx.name, line=f.location.line,
                reason=f"field {f.name}: unrecognized account type `{f.type_name}`",
            )
            pending_markers.append(marker)
            logger.warning("Degraded coverage: %s", marker.note())

    programs = []
    markers: List[CoverageMarker] = []
    owner = decls[0].name if decls else None

    for decl in decls:
        instructions = []
        for ix_decl in decl.instructions:
            instruction, missing = _build_instruction(decl.name, ix_decl, contexts, handlers)
            instructions.append(instruction)
            if missing:
                marker = CoverageMarker(
                    scope=CoverageScope.INSTRUCTION, file=ix_decl.facts.location.file,
                    program=decl.name, name=ix_decl.name, line=ix_decl.facts.location.line,
                    reason=f"accounts struct {ix_decl.context_name} not found",
                )
                markers.append(marker)
                logger.warning("Degraded coverage: %s", marker.note())

        programs.append(Program(
            name=decl.name,
            program_id=program_id,
            file=decl.file,
            location=decl.location,
            instructions=tuple(instructions),
            contexts=tuple(replace(c, program=decl.name) for c in sorted(contexts.values(), key=lambda c: c.name)),
            state_accounts=tuple(sorted(state_accounts, key=lambda s: s.name)),
            constants=tuple(sorted(constants.items())),
            symbols=tuple(sorted(symbols, key=lambda s: (s.location.file, s.location.line, s.location.column))),
            degraded=decl.degraded,
        ))

    for marker in pending_markers:
        if marker.scope == CoverageScope.FILE or marker.program is not None:
            markers.append(marker)
        else:
            markers.append(replace(marker, program=owner))
    return programs, markers


def _build_instruction(
    program: str,
    decl: InstructionDecl,
    contexts: Dict[str, AccountContext],
    handlers: Dict[str, List[HandlerDecl]],
) -> Tuple[Instruction, bool]:
    context = contexts.get(decl.context_name) if decl.context_name else None
    missing = decl.context_name is not None and context is None

    parts = [decl.facts] + [h.facts for h in handlers.get(decl.context_name or "", [])]
    arithmetic, cpis, calls, guards, writes, loops, accesses, derivations = [], [], [], [], [], [], [], []
    degraded = decl.degraded or missing

    for index, facts in enumerate(parts):
        offset = index * HANDLER_OFFSET
        arithmetic.extend(_shift(facts.arithmetic, offset))
        cpis.extend(_shift(facts.cpi_calls, offset))
        calls.extend(_shift(facts.calls, offset))
        guards.extend(_shift(facts.guards, offset))
        writes.extend(_shift(facts.writes, offset))
        loops.extend(_shift(facts.loops, offset))
        accesses.extend(_shift(facts.accesses, offset))
        derivations.extend(
            replace(d, instruction=decl.name, site=f"{decl.name}:{d.site}", program=program, context=decl.context_name)
            for d in facts.derivations
        )
        degraded = degraded or facts.degraded

    guards.sort(key=lambda g: g.position)
    cpis = [resolve_cpi(c, context, guards, decl.name) for c in cpis]

    instruction = Instruction(
        name=decl.name,
        program=program,
        context_name=decl.context_name,
        parameters=tuple(decl.facts.parameters),
        location=decl.facts.location,
        arithmetic=tuple(_number(arithmetic, lambda a: (a.op, a.expression))),
        cpi_calls=tuple(_number(cpis, lambda c: (c.kind, c.program))),
        calls=tuple(_number(calls, lambda c: (c.callee, c.arguments))),
        guards=tuple(guards),
        writes=tuple(sorted(writes, key=lambda w: w.position)),
        loops=tuple(_number(loops, lambda l: l.iterable)),
        accesses=tuple(sorted(accesses, key=lambda a: (a.position, a.account, a.kind.value))),
        derivations=tuple(sorted(derivations, key=lambda d: d.site)),
        attributes=decl.attributes,
        degraded=degraded,
    )
    return instruction, missing


class ModelBuilder:
    """
    Builds a ProgramModel from source files.

    Args:
        max_workers: Parse files on a thread pool of this size (1 = inline)
    """

    def __init__(self, max_workers: Optional[int] = 1):
        self.max_workers = max_workers

    def build(self, sources: List[SourceFile]) -> ProgramModel:
        """
        Build the model for a set of sources.

        Raises:
            NoSourcesError: If no sources were supplied
        """
        if not sources:
            raise NoSourcesError("<no sources>")

        if self.max_workers and self.max_workers > 1 and len(sources) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                fragments = list(executor.map(build_fragment, sources))
        else:
            fragments = [build_fragment(source) for source in sources]

        model = merge(fragments, files=[s.path for s in sources])
        logger.debug(
            "Built model: %d program(s), %d coverage marker(s)",
            len(model.programs), len(model.markers),
        )
        return model


def build_model(text: str, path: str = "lib.rs") -> ProgramModel:
    """Build a model from a single in-memory source file."""
    return ModelBuilder().build([SourceFile.from_text(text, path)])
