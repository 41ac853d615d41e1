"""
Text normalization for Rust expressions and types.

Everything that feeds a finding fingerprint goes through
``normalize_expression`` so that re-indenting or re-wrapping a file never
changes a finding's identity.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

_STRING_RE = re.compile(r'b?"(?:\\.|[^"\\])*"', re.DOTALL)
_LINE_COMMENT_RE = re.compile(r"//[^\n]*")
_BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)
_PUNCT_SPACE_RE = re.compile(r"\s*([^\w\s])\s*")
_TRAILING_COMMA_RE = re.compile(r",([\)\]\}>])")
_IDENT_RE = re.compile(r"\b[A-Za-z_][A-Za-z0-9_]*\b")
_TYPE_RE = re.compile(r"^([A-Za-z_][\w:]*)\s*(?:<(.*)>)?$", re.DOTALL)

OPEN = "([{"
CLOSE = ")]}"


def _split_strings(text: str) -> List[Tuple[str, bool]]:
    """Split text into (segment, is_string_literal) pieces."""
    pieces = []
    last = 0
    for match in _STRING_RE.finditer(text):
        if match.start() > last:
            pieces.append((text[last:match.start()], False))
        pieces.append((match.group(0), True))
        last = match.end()
    if last < len(text):
        pieces.append((text[last:], False))
    return pieces


def normalize_expression(text: str) -> str:
    """
    Canonical, whitespace-insensitive rendering of an expression.

    Comments are dropped, whitespace next to punctuation is removed, runs of
    whitespace between words collapse to one space, and trailing commas
    before a closing delimiter are removed. String literals are kept verbatim.
    """
    out = []
    for segment, is_string in _split_strings(text):
        if is_string:
            out.append(segment)
            continue
        segment = _BLOCK_COMMENT_RE.sub(" ", segment)
        segment = _LINE_COMMENT_RE.sub(" ", segment)
        segment = " ".join(segment.split())
        segment = _PUNCT_SPACE_RE.sub(r"\1", segment)
        out.append(segment)
    normalized = "".join(out).strip()
    return _TRAILING_COMMA_RE.sub(r"\1", normalized)


def split_top_level(text: str, separator: str = ",", angle: bool = False) -> List[str]:
    """
    Split on a separator that is not nested inside brackets or strings.

    Args:
        text: Text to split
        separator: Separator text, e.g. "," or "&&"
        angle: Also treat `<`/`>` as nesting (for type argument lists)

    Returns:
        Stripped, non-empty parts
    """
    parts = []
    depth = 0
    start = 0
    i = 0
    in_string = False
    escaped = False

    while i < len(text):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch in OPEN or (angle and ch == "<"):
            depth += 1
        elif ch in CLOSE or (angle and ch == ">"):
            depth -= 1
        elif depth == 0 and text.startswith(separator, i):
            part = text[start:i].strip()
            if part:
                parts.append(part)
            i += len(separator)
            start = i
            continue
        i += 1

    part = text[start:].strip()
    if part:
        parts.append(part)
    return parts


def is_balanced(text: str) -> bool:
    """Check bracket balance, ignoring string literal contents."""
    stack = []
    for segment, is_string in _split_strings(text):
        if is_string:
            continue
        for ch in segment:
            if ch in OPEN:
                stack.append(OPEN.index(ch))
            elif ch in CLOSE:
                if not stack or stack.pop() != CLOSE.index(ch):
                    return False
    return not stack


def identifiers_in(text: str) -> List[str]:
    """Identifiers mentioned in an expression, string literals excluded."""
    names = []
    for segment, is_string in _split_strings(text):
        if not is_string:
            names.extend(_IDENT_RE.findall(segment))
    return names


def strip_references(text: str) -> str:
    """Drop leading `&`, `&mut` and `*` from an expression."""
    text = text.strip()
    while True:
        if text.startswith("&mut "):
            text = text[5:].lstrip()
        elif text.startswith("&") or text.startswith("*"):
            text = text[1:].lstrip()
        else:
            return text


def string_literal_value(text: str) -> Optional[str]:
    """Return the contents of a (byte) string literal, or None."""
    text = text.strip()
    match = re.match(r'^b?"((?:\\.|[^"\\])*)"$', text, re.DOTALL)
    if match:
        return match.group(1)
    return None


@dataclass(frozen=True)
class TypeInfo:
    """A Rust type reduced to its outer name and generic arguments."""
    name: str
    path: str
    arguments: Tuple[str, ...]
    optional: bool
    boxed: bool
    raw: str

    @property
    def inner(self) -> Optional[str]:
        return self.arguments[-1] if self.arguments else None


def parse_type(text: str) -> TypeInfo:
    """
    Parse a type such as `Box<Account<'info, Vault>>`.

    `Box` and `Option` wrappers are unwrapped (and recorded), lifetimes are
    dropped from the argument list.
    """
    raw = normalize_expression(text)
    current = raw
    optional = False
    boxed = False

    while True:
        match = _TYPE_RE.match(current)
        if not match:
            return TypeInfo(name=current, path=current, arguments=(), optional=optional, boxed=boxed, raw=raw)

        path = match.group(1)
        name = path.rsplit("::", 1)[-1]
        arguments = tuple(
            arg for arg in split_top_level(match.group(2) or "", angle=True)
            if not arg.startswith("'")
        )

        if name in ("Box", "Option") and arguments:
            optional = optional or name == "Option"
            boxed = boxed or name == "Box"
            current = arguments[-1]
            continue

        return TypeInfo(name=name, path=path, arguments=arguments, optional=optional, boxed=boxed, raw=raw)


def split_constraints(text: str) -> List[str]:
    """Split `#[account(...)]` arguments into individual constraint items."""
    return split_top_level(text, ",")


_FREE_IDENT_RE = re.compile(r"(?<![\w.:'])([A-Za-z_][A-Za-z0-9_]*)\b(?!\s*(?:::|!(?!=)))")


def free_identifiers(text: str) -> List[str]:
    """
    Identifiers that name variables rather than fields, methods or paths.

    `vault.amount` yields only `vault`; `Foo::bar` and `msg!` yield nothing.
    """
    names = []
    for segment, is_string in _split_strings(text):
        if not is_string:
            names.extend(_FREE_IDENT_RE.findall(segment))
    return names
