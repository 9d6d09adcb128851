"""
AST Parser - Tree-sitter based code structure parsing.

This module provides AST parsing capabilities for extracting declarations,
imports and exports from source code using Tree-sitter.

Uses the Strategy pattern to delegate language-specific parsing to dedicated parsers.
"""

import importlib
import logging
from typing import Any

import tree_sitter

from ctxpack.core.errors import SourceParseError
from ctxpack.core.parsers.base import ASTNode, LanguageParser, ParsedFile
from ctxpack.core.parsers.ecmascript_parser import EcmaScriptParser
from ctxpack.core.parsers.python_parser import PythonParser

logger = logging.getLogger(__name__)

__all__ = ["ASTNode", "ParsedFile", "TreeSitterParser", "SUPPORTED_LANGUAGES"]


# Supported languages: (grammar module, language function)
SUPPORTED_LANGUAGES = {
    "python": ("tree_sitter_python", "language"),
    "javascript": ("tree_sitter_javascript", "language"),
    "typescript": ("tree_sitter_typescript", "language_typescript"),
    "tsx": ("tree_sitter_typescript", "language_tsx"),
}


class TreeSitterParser:
    """
    Tree-sitter based AST parser.

    Grammars are loaded lazily on first use. Instances are cheap but not
    shareable across processes; each chunking worker builds its own.
    """

    def __init__(self):
        self._parsers: dict[str, tree_sitter.Parser] = {}
        self._language_parsers: dict[str, LanguageParser] = {
            "python": PythonParser(),
            "javascript": EcmaScriptParser("javascript"),
            "typescript": EcmaScriptParser("typescript"),
            "tsx": EcmaScriptParser("tsx"),
        }

    def supports_language(self, language: str) -> bool:
        return language in SUPPORTED_LANGUAGES

    def _get_parser(self, language: str) -> tree_sitter.Parser:
        parser = self._parsers.get(language)
        if parser is not None:
            return parser

        if language not in SUPPORTED_LANGUAGES:
            raise ValueError(f"Language '{language}' is not supported")

        module_name, function_name = SUPPORTED_LANGUAGES[language]
        module = importlib.import_module(module_name)
        lang_obj: Any = getattr(module, function_name)()
        if not isinstance(lang_obj, tree_sitter.Language):
            lang_obj = tree_sitter.Language(lang_obj)

        parser = tree_sitter.Parser(lang_obj)
        self._parsers[language] = parser
        logger.debug(f"Loaded Tree-sitter parser for '{language}'")
        return parser

    def parse_tree(
        self, content: str, language: str, file_path: str = "<memory>"
    ) -> tree_sitter.Tree:
        """
        Parse content into a syntax tree.

        Raises:
            SourceParseError: If the tree contains syntax errors
        """
        tree = self._get_parser(language).parse(content.encode("utf-8"))
        if tree.root_node.has_error:
            line = _first_error_line(tree.root_node)
            raise SourceParseError(file_path, f"syntax error near line {line}")
        return tree

    def parse(self, content: str, language: str, file_path: str = "<memory>") -> ParsedFile:
        """
        Parse content and extract its declarations, imports and exports.

        Raises:
            SourceParseError: If the tree contains syntax errors
        """
        tree = self.parse_tree(content, language, file_path)
        return self.extract(tree, content, language)

    def extract(self, tree: tree_sitter.Tree, content: str, language: str) -> ParsedFile:
        """Extract declarations from a tree already produced by ``parse_tree``."""
        return self._language_parsers[language].extract(tree.root_node, content.encode("utf-8"))


def _first_error_line(node: Any) -> int:
    """1-based line of the first ERROR or missing node below ``node``."""
    if node.type == "ERROR" or node.is_missing:
        return node.start_point[0] + 1
    for child in node.children:
        if child.has_error:
            return _first_error_line(child)
    return node.start_point[0] + 1
