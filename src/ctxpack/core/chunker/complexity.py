"""
Cyclomatic complexity from Tree-sitter syntax trees.

McCabe V(G) = decision points + 1. Decision points are the branching nodes
of the grammar: conditionals, loops, exception handlers, match/switch cases,
conditional expressions and short-circuiting boolean operators.
"""

from bisect import bisect_left, bisect_right
from typing import Any, Sequence

from ctxpack.core.lexer import is_python

PYTHON_DECISION_NODES = frozenset({
    "if_statement",
    "elif_clause",
    "for_statement",
    "while_statement",
    "except_clause",
    "except_group_clause",
    "case_clause",
    "boolean_operator",
    "conditional_expression",
    # Comprehension loops and filters
    "for_in_clause",
    "if_clause",
})

ECMASCRIPT_DECISION_NODES = frozenset({
    "if_statement",
    "for_statement",
    "for_in_statement",
    "while_statement",
    "do_statement",
    "switch_case",
    "catch_clause",
    "ternary_expression",
})

_SHORT_CIRCUIT_OPERATORS = frozenset({"&&", "||", "??"})


def _is_decision(node: Any, python: bool) -> bool:
    if python:
        return node.type in PYTHON_DECISION_NODES
    if node.type == "binary_expression":
        operator = node.child_by_field_name("operator")
        return operator is not None and operator.type in _SHORT_CIRCUIT_OPERATORS
    return node.type in ECMASCRIPT_DECISION_NODES


def decision_lines(root: Any, language: str) -> list[int]:
    """Sorted 1-based start lines of every decision point below ``root``."""
    python = is_python(language)
    lines = []
    stack = [root]
    while stack:
        node = stack.pop()
        if _is_decision(node, python):
            lines.append(node.start_point[0] + 1)
        stack.extend(node.children)
    lines.sort()
    return lines


def complexity_between(lines: Sequence[int], start_line: int, end_line: int) -> int:
    """Complexity of the line range given the file's sorted decision lines."""
    return 1 + bisect_right(lines, end_line) - bisect_left(lines, start_line)


def cyclomatic_complexity(root: Any, language: str) -> int:
    """Return the cyclomatic complexity of a syntax (sub)tree (at least 1)."""
    return 1 + len(decision_lines(root, language))
