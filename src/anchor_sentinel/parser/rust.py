"""
Rust Source Parser: tree-sitter front end for Anchor programs.

Wraps the tree-sitter Rust grammar and exposes the small set of helpers the
model builder needs (node text, 1-based positions, attribute and doc-comment
lookup). Macro attributes such as ``#[account(...)]`` are read from their
text, which keeps the front end independent of how a grammar release shapes
attribute nodes.
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterator, List, Optional, Union

import tree_sitter_rust as tsrust
from tree_sitter import Language, Node, Parser

from ..errors import ParseError

logger = logging.getLogger(__name__)

RUST_LANGUAGE = Language(tsrust.language())

# Top-level nodes that count as a successfully recovered item
ITEM_TYPES = {
    "struct_item",
    "function_item",
    "mod_item",
    "use_declaration",
    "const_item",
    "static_item",
    "enum_item",
    "impl_item",
    "trait_item",
    "type_item",
    "macro_invocation",
    "macro_definition",
    "attribute_item",
    "inner_attribute_item",
    "extern_crate_declaration",
}

COMMENT_TYPES = {"line_comment", "block_comment"}

_ATTRIBUTE_RE = re.compile(r"^#!?\[\s*([A-Za-z_][\w:]*)\s*(.*?)\s*\]$", re.DOTALL)


@dataclass(frozen=True)
class Attribute:
    """A macro attribute attached to an item, field or parameter."""
    path: str
    arguments: str
    raw: str
    line: int

    @property
    def name(self) -> str:
        return self.path.rsplit("::", 1)[-1]


class SyntaxTree:
    """
    A parsed Rust source file.

    Keeps the original bytes so node text is sliced exactly as written.
    """

    def __init__(self, path: str, source: bytes, tree):
        self.path = path
        self.source = source
        self.tree = tree

    @property
    def root(self) -> Node:
        return self.tree.root_node

    @property
    def has_error(self) -> bool:
        return self.root.has_error

    def text(self, node: Optional[Node]) -> str:
        if node is None:
            return ""
        return self.source[node.start_byte:node.end_byte].decode("utf-8", errors="replace")

    def line(self, node: Node) -> int:
        return node.start_point[0] + 1

    def column(self, node: Node) -> int:
        return node.start_point[1] + 1

    def field(self, node: Node, name: str) -> Optional[Node]:
        return node.child_by_field_name(name)

    def field_text(self, node: Node, name: str) -> str:
        return self.text(node.child_by_field_name(name))

    def attributes_of(self, node: Node) -> List[Attribute]:
        """
        Collect the attributes written directly above a node.

        Attributes are siblings that precede the node in its parent; the walk
        stops at the first sibling that is neither an attribute nor a comment.
        """
        attributes = []
        for sibling in self._leading_siblings(node):
            if sibling.type == "attribute_item":
                attribute = self.parse_attribute(sibling)
                if attribute is not None:
                    attributes.append(attribute)
        return attributes

    def doc_comment(self, node: Node) -> str:
        """Return the `///` doc comment lines written above a node."""
        lines = []
        for sibling in self._leading_siblings(node):
            if sibling.type == "line_comment":
                text = self.text(sibling).strip()
                if text.startswith("///"):
                    lines.append(text[3:].strip())
        return "\n".join(lines)

    def parse_attribute(self, node: Node) -> Optional[Attribute]:
        raw = self.text(node).strip()
        match = _ATTRIBUTE_RE.match(raw)
        if not match:
            return None
        path, rest = match.group(1), match.group(2)
        arguments = ""
        if rest.startswith("(") and rest.endswith(")"):
            arguments = rest[1:-1].strip()
        elif rest.startswith("="):
            arguments = rest[1:].strip()
        return Attribute(path=path, arguments=arguments, raw=raw, line=self.line(node))

    def error_nodes(self, node: Optional[Node] = None) -> List[Node]:
        """Find ERROR and MISSING nodes below a node (default: the whole file)."""
        start = node if node is not None else self.root
        if not start.has_error:
            return []
        return [n for n in walk(start) if n.type == "ERROR" or n.is_missing]

    def _leading_siblings(self, node: Node) -> List[Node]:
        collected = []
        sibling = node.prev_sibling
        while sibling is not None and sibling.type in COMMENT_TYPES | {"attribute_item"}:
            collected.append(sibling)
            sibling = sibling.prev_sibling
        collected.reverse()
        return collected


def parse_source(text: Union[str, bytes], path: str) -> SyntaxTree:
    """
    Parse Rust source text.

    Args:
        text: Source contents (str or UTF-8 bytes)
        path: Path used for locations and error messages

    Returns:
        SyntaxTree for the file

    Raises:
        ParseError: If the bytes are not UTF-8, or nothing in the file could
            be recovered as a well-formed top-level item
    """
    if isinstance(text, bytes):
        try:
            text.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ParseError(path, f"not valid UTF-8 ({e.reason} at byte {e.start})")
        source = text
    else:
        source = text.encode("utf-8")

    # Parsers are not shared: one per call keeps parallel builds independent
    parser = Parser(RUST_LANGUAGE)
    tree = parser.parse(source)
    syntax = SyntaxTree(path, source, tree)

    if syntax.has_error:
        recovered = [
            child for child in syntax.root.named_children
            if child.type in ITEM_TYPES and not child.has_error
        ]
        if not recovered:
            raise ParseError(path, "no item could be recovered from the syntax tree")
        logger.debug("%s: parsed with %d error region(s)", path, len(syntax.error_nodes()))

    return syntax


def walk(node: Node) -> Iterator[Node]:
    """Pre-order traversal of a subtree (named and anonymous nodes)."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))
