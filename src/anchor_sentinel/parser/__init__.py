"""Rust source parsing for Anchor programs."""

from .rust import (
    RUST_LANGUAGE,
    Attribute,
    SyntaxTree,
    parse_source,
    walk,
)
from .normalize import (
    TypeInfo,
    normalize_expression,
    split_top_level,
    is_balanced,
    identifiers_in,
    strip_references,
    string_literal_value,
    parse_type,
    split_constraints,
    free_identifiers,
)

__all__ = [
    "RUST_LANGUAGE",
    "Attribute",
    "SyntaxTree",
    "parse_source",
    "walk",
    "TypeInfo",
    "normalize_expression",
    "split_top_level",
    "is_balanced",
    "identifiers_in",
    "strip_references",
    "string_literal_value",
    "parse_type",
    "split_constraints",
    "free_identifiers",
]
