"""
Constraint normalization.

Maps the surface syntax of Anchor `#[account(...)]` attributes onto the fixed
Constraint vocabulary. Anything that is not recognized is kept as an
UNKNOWN constraint, never dropped, so detectors can tell "unverified" apart
from "absent".
"""

import re
from typing import Dict, List, Optional, Tuple

from ..errors import ModelError
from ..parser.normalize import (
    normalize_expression,
    split_constraints,
    split_top_level,
    string_literal_value,
    identifiers_in,
    is_balanced,
    strip_references,
)
from .models import Constraint, ConstraintKind, Seed, SeedKind

_KEY_VALUE_RE = re.compile(r"^([A-Za-z_][\w:]*)\s*=(?![=>])\s*(.*)$", re.DOTALL)

# Flag constraints (no value)
FLAG_CONSTRAINTS = {
    "mut": ConstraintKind.WRITABLE,
    "signer": ConstraintKind.SIGNER,
    "init": ConstraintKind.INIT,
    "init_if_needed": ConstraintKind.INIT_IF_NEEDED,
    "zero": ConstraintKind.INIT,
    "bump": ConstraintKind.BUMP,
    "executable": ConstraintKind.CUSTOM,
    "rent_exempt": ConstraintKind.RENT_EXEMPT,
}

# key = value constraints
VALUE_CONSTRAINTS = {
    "has_one": ConstraintKind.HAS_ONE,
    "owner": ConstraintKind.OWNER,
    "address": ConstraintKind.ADDRESS,
    "seeds": ConstraintKind.SEEDS,
    "bump": ConstraintKind.BUMP,
    "close": ConstraintKind.CLOSE,
    "payer": ConstraintKind.PAYER,
    "space": ConstraintKind.SPACE,
    "constraint": ConstraintKind.CUSTOM,
    "rent_exempt": ConstraintKind.RENT_EXEMPT,
    "realloc": ConstraintKind.REALLOC,
    "realloc::payer": ConstraintKind.REALLOC,
    "realloc::zero": ConstraintKind.REALLOC,
}

TOKEN_NAMESPACES = ("token::", "mint::", "associated_token::", "extensions::")

# Values that must name something; an empty value cannot be normalized
REQUIRES_VALUE = {
    ConstraintKind.HAS_ONE,
    ConstraintKind.OWNER,
    ConstraintKind.ADDRESS,
    ConstraintKind.SEEDS,
    ConstraintKind.CLOSE,
    ConstraintKind.PAYER,
    ConstraintKind.SPACE,
    ConstraintKind.CUSTOM,
}

_AS_BYTES_SUFFIXES = (".as_ref()", ".as_bytes()", ".to_le_bytes()", ".to_be_bytes()", ".as_slice()")
_KEY_RE = re.compile(r"^(?:ctx\.accounts\.|self\.)?(\w+)(?:\.to_account_info\(\))?\.key(?:\(\))?$")


def _strip_error_code(value: str) -> str:
    """Drop a trailing `@ ErrorCode::X` custom error clause."""
    parts = split_top_level(value, "@")
    return parts[0] if parts else ""


def normalize_constraint(item: str, context: str = "", field: str = "") -> Constraint:
    """
    Normalize a single constraint item.

    Args:
        item: Raw item text, e.g. `has_one = authority @ ErrorCode::Auth`
        context: Owning Accounts struct (for error messages)
        field: Owning field (for error messages)

    Returns:
        Constraint in the fixed vocabulary

    Raises:
        ModelError: If a recognized constraint is malformed
    """
    raw = item.strip()
    where = f"{context}.{field}" if field else context

    flag = _strip_error_code(raw)
    if flag in FLAG_CONSTRAINTS:
        kind = FLAG_CONSTRAINTS[flag]
        argument = flag if flag in ("executable", "zero") else None
        return Constraint(kind=kind, argument=argument, raw=raw)

    match = _KEY_VALUE_RE.match(raw)
    if not match:
        return Constraint(kind=ConstraintKind.UNKNOWN, argument=None, raw=raw)

    key, value = match.group(1), match.group(2).strip()

    if key.startswith(TOKEN_NAMESPACES):
        if not value:
            raise ModelError("context", where, f"`{key}` has no value")
        return Constraint(kind=ConstraintKind.TOKEN, argument=f"{key}={normalize_expression(value)}", raw=raw)

    if key == "seeds::program":
        return Constraint(kind=ConstraintKind.CUSTOM, argument=f"seeds::program={normalize_expression(value)}", raw=raw)

    kind = VALUE_CONSTRAINTS.get(key)
    if kind is None:
        return Constraint(kind=ConstraintKind.UNKNOWN, argument=normalize_expression(value) or None, raw=raw)

    value = _strip_error_code(value)
    if not is_balanced(value):
        raise ModelError("context", where, f"`{key}` value has unbalanced brackets")
    if kind in REQUIRES_VALUE and not value:
        raise ModelError("context", where, f"`{key}` has an empty value")

    argument = normalize_expression(value)

    if kind == ConstraintKind.SEEDS:
        if not (argument.startswith("[") and argument.endswith("]")):
            raise ModelError("context", where, f"seeds must be a list literal, got `{argument}`")
    elif kind == ConstraintKind.HAS_ONE:
        if not re.match(r"^[A-Za-z_]\w*$", argument):
            raise ModelError("context", where, f"has_one target `{argument}` is not a field name")
    elif kind == ConstraintKind.REALLOC and key != "realloc":
        argument = f"{key}={argument}"

    return Constraint(kind=kind, argument=argument, raw=raw)


def parse_constraints(text: str, context: str = "", field: str = "") -> Tuple[Constraint, ...]:
    """
    Normalize the full argument list of an `#[account(...)]` attribute.

    Raises:
        ModelError: On the first malformed item
    """
    return tuple(normalize_constraint(item, context, field) for item in split_constraints(text))


def recover_constraints(text: str, context: str = "", field: str = "") -> Tuple[Constraint, ...]:
    """Like parse_constraints, but malformed items become UNKNOWN instead of raising."""
    constraints = []
    for item in split_constraints(text):
        try:
            constraints.append(normalize_constraint(item, context, field))
        except ModelError:
            constraints.append(Constraint(kind=ConstraintKind.UNKNOWN, argument=None, raw=item.strip()))
    return tuple(constraints)


def _strip_byte_suffixes(text: str) -> str:
    changed = True
    while changed:
        changed = False
        for suffix in _AS_BYTES_SUFFIXES:
            if text.endswith(suffix):
                text = text[: -len(suffix)]
                changed = True
    return text


def classify_seed(
    raw: str,
    fields: List[str],
    arguments: List[str],
    constants: Optional[Dict[str, str]] = None,
) -> Seed:
    """
    Classify one seed expression.

    Args:
        raw: Seed expression as written
        fields: Account field names visible to the derivation
        arguments: Names of user-supplied arguments
        constants: Program `const` items (name -> value expression)
    """
    constants = constants or {}
    text = strip_references(normalize_expression(raw))
    base = _strip_byte_suffixes(text)

    literal = string_literal_value(base)
    if literal is not None:
        return Seed(kind=SeedKind.CONSTANT, value=literal, raw=text)

    name = base.rsplit("::", 1)[-1]
    if name in constants:
        value = constants[name]
        literal = string_literal_value(strip_references(value))
        return Seed(kind=SeedKind.CONSTANT, value=literal if literal is not None else value, raw=text)

    key_match = _KEY_RE.match(base)
    if key_match and key_match.group(1) in fields:
        return Seed(kind=SeedKind.ACCOUNT_KEY, value=key_match.group(1), raw=text)

    if re.match(r"^[A-Za-z_]\w*$", base) and base in arguments:
        return Seed(kind=SeedKind.ARGUMENT, value=base, raw=text)

    if re.match(r"^\d+(?:u8)?$", base) or re.match(r"^\[\d+(?:u8)?\]$", base):
        return Seed(kind=SeedKind.CONSTANT, value=base, raw=text)

    if any(ident in arguments for ident in identifiers_in(base)):
        return Seed(kind=SeedKind.ARGUMENT, value=base, raw=text)

    return Seed(kind=SeedKind.EXPRESSION, value=base, raw=text)


def parse_seed_list(
    text: str,
    fields: List[str],
    arguments: List[str],
    constants: Optional[Dict[str, str]] = None,
) -> Tuple[Tuple[Seed, ...], bool]:
    """
    Parse a seeds list such as `[b"pool", mint.key().as_ref()]`.

    Returns:
        Tuple of (seeds, known). `known` is False when the text is not a
        list literal and the seeds could not be enumerated.
    """
    body = strip_references(normalize_expression(text))
    if not (body.startswith("[") and body.endswith("]")):
        return (), False
    items = split_top_level(body[1:-1])
    return tuple(classify_seed(item, fields, arguments, constants) for item in items), True
