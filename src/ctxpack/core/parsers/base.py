"""
Base classes for language-specific AST parsers.

Provides the abstract interface and common utilities for all language parsers.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

logger = logging.getLogger(__name__)

_CONSTANT_NAME = re.compile(r"^_?[A-Z][A-Z0-9_]*$")


def is_constant_name(name: str) -> bool:
    """True for UPPER_CASE names such as MAX_RETRIES."""
    return bool(_CONSTANT_NAME.match(name))


@dataclass
class ASTNode:
    """AST node information representing a declaration."""

    node_type: str  # 'function', 'class', 'method', 'interface', 'constant'
    name: str
    start_line: int  # Start line number (1-based)
    end_line: int  # End line number (1-based, inclusive)
    content: str
    parent_name: Optional[str] = None  # Enclosing class (only for 'method' type)
    docstring: Optional[str] = None
    exported: bool = False  # JS/TS 'export' modifier; Python export status is resolved later
    is_constructor: bool = False
    definition_line: int = 0  # Line of the def/signature itself, after decorators and doc comments


@dataclass
class ParsedFile:
    """
    Declarations and module-level facts extracted from one file.

    Attributes:
        nodes: Declarations in source order; methods follow their class
        imports: Local binding name -> imported module or source
        explicit_exports: Names listed in __all__ or export { ... } clauses,
            None when the file has no such list
        loose_spans: 1-based line spans of top-level statements that declare
            nothing (script code, registrations, entry-point guards); imports,
            comments, docstrings and export lists are not included
    """

    language: str
    nodes: list[ASTNode] = field(default_factory=list)
    imports: dict[str, str] = field(default_factory=dict)
    explicit_exports: Optional[list[str]] = None
    loose_spans: list[tuple[int, int]] = field(default_factory=list)

    @property
    def top_level_nodes(self) -> list[ASTNode]:
        return [n for n in self.nodes if n.parent_name is None]

    def methods_of(self, class_name: str) -> list[ASTNode]:
        return [n for n in self.nodes if n.parent_name == class_name]


class LanguageParser(ABC):
    """
    Abstract base class for language-specific parsers.

    Each language parser implements the strategy pattern to handle
    language-specific AST traversal and node extraction.
    """

    @property
    @abstractmethod
    def language_id(self) -> str:
        """Return the language identifier (e.g., 'python', 'typescript')."""
        pass

    @abstractmethod
    def extract(self, root_node: Any, source: bytes) -> ParsedFile:
        """
        Extract declarations, imports and exports from the parsed tree.

        Args:
            root_node: Tree-sitter root node
            source: UTF-8 encoded source the tree was parsed from

        Returns:
            ParsedFile for the tree.
        """
        pass

    # Common utility methods

    def get_node_content(self, node: Any, source: bytes) -> str:
        """Extract the source text for a node."""
        return source[node.start_byte:node.end_byte].decode("utf-8", errors="replace")

    def get_line_numbers(self, node: Any) -> tuple[int, int]:
        """Get 1-based start and end line numbers for a node."""
        start_line = node.start_point[0] + 1
        end_line = node.end_point[0] + 1
        # A node ending at column 0 ends on the previous line
        if node.end_point[1] == 0 and end_line > start_line:
            end_line -= 1
        return start_line, end_line

    def is_bare_string(self, node: Any) -> bool:
        """True for a statement that is only a string literal (docstring, directive)."""
        return (
            node.type == "expression_statement"
            and len(node.named_children) == 1
            and node.named_children[0].type == "string"
        )

    def field_text(self, node: Any, field_name: str, source: bytes) -> Optional[str]:
        child = node.child_by_field_name(field_name)
        if child is None:
            return None
        return self.get_node_content(child, source)

    def make_node(
        self,
        node_type: str,
        name: str,
        node: Any,
        source: bytes,
        start_node: Any = None,
        **extra: Any,
    ) -> ASTNode:
        """
        Build an ASTNode spanning ``start_node`` (defaults to ``node``) to ``node``.

        Content always starts at the beginning of the first line so that
        indentation is kept intact.
        """
        start_node = start_node if start_node is not None else node
        start_line, _ = self.get_line_numbers(start_node)
        _, end_line = self.get_line_numbers(node)
        line_start = source.rfind(b"\n", 0, start_node.start_byte) + 1
        content = source[line_start:node.end_byte].decode("utf-8", errors="replace")
        return ASTNode(
            node_type=node_type,
            name=name,
            start_line=start_line,
            end_line=end_line,
            content=content,
            **extra,
        )
