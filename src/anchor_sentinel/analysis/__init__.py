"""
Analysis module for modeling Anchor programs from source.
"""

from .models import (
    AccountKind,
    ConstraintKind,
    Verification,
    Provenance,
    ArithmeticOp,
    CpiKind,
    SeedKind,
    DerivationOrigin,
    AccessKind,
    GuardKind,
    CoverageScope,
    SourceLocation,
    Constraint,
    AccountField,
    AccountContext,
    Parameter,
    Operand,
    ArithmeticSite,
    CpiInvocation,
    CallSite,
    Guard,
    StateWrite,
    LoopSite,
    AccountAccess,
    Seed,
    PdaDerivation,
    Instruction,
    StateAccount,
    SymbolRef,
    Program,
    CoverageMarker,
    ProgramModel,
)
from .constraints import parse_constraints, normalize_constraint, parse_seed_list
from .source_loader import SourceLoader, SourceFile
from .builder import ModelBuilder, ModelFragment, build_fragment, build_model, merge, crate_root

__all__ = [
    "AccountKind",
    "ConstraintKind",
    "Verification",
    "Provenance",
    "ArithmeticOp",
    "CpiKind",
    "SeedKind",
    "DerivationOrigin",
    "AccessKind",
    "GuardKind",
    "CoverageScope",
    "SourceLocation",
    "Constraint",
    "AccountField",
    "AccountContext",
    "Parameter",
    "Operand",
    "ArithmeticSite",
    "CpiInvocation",
    "CallSite",
    "Guard",
    "StateWrite",
    "LoopSite",
    "AccountAccess",
    "Seed",
    "PdaDerivation",
    "Instruction",
    "StateAccount",
    "SymbolRef",
    "Program",
    "CoverageMarker",
    "ProgramModel",
    "parse_constraints",
    "normalize_constraint",
    "parse_seed_list",
    "SourceLoader",
    "SourceFile",
    "ModelBuilder",
    "ModelFragment",
    "build_fragment",
    "build_model",
    "merge",
    "crate_root",
]
