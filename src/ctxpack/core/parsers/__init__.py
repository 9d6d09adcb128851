"""
Language-specific AST parsers.

This package contains strategy implementations for parsing different
programming languages using Tree-sitter.
"""

from ctxpack.core.parsers.base import ASTNode, LanguageParser, ParsedFile, is_constant_name
from ctxpack.core.parsers.ecmascript_parser import EcmaScriptParser
from ctxpack.core.parsers.python_parser import PythonParser

__all__ = [
    "LanguageParser",
    "ASTNode",
    "ParsedFile",
    "PythonParser",
    "EcmaScriptParser",
    "is_constant_name",
]
