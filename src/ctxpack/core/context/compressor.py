"""
Content-reducing transformations applied to assembled code sections.

Levels are cumulative:

- LIGHT strips non-essential comments
- MEDIUM also normalizes whitespace outside string literals
- AGGRESSIVE also shortens function-local identifiers using the syntax tree

Every step is checked against the token count of its input; a step that
does not shrink the text is discarded, so compression never expands content.
"""

import itertools
import logging
import re
import string
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional

from ctxpack.core.ast_parser import TreeSitterParser
from ctxpack.core.errors import SourceParseError
from ctxpack.core.lexer import CODE, COMMENT, split_segments
from ctxpack.core.source_files import CODE_LANGUAGES
from ctxpack.core.tokenizer import TokenizerInterface, get_default_tokenizer

from .models import CompressionLevel, ContextSection, OptimizedContext, SectionKind

logger = logging.getLogger(__name__)

_KEEP_COMMENT = re.compile(
    r"""^(
        \#!                                   # shebang
      | \#.*coding[:=]                        # encoding declaration
      | \#\s*(type|noqa|pragma|pylint|fmt|mypy)\b
      | /\*\*|/\*!|///                        # doc comments
      | //\s*@ts-|/[/*]\s*eslint
      | (\#|//)\s*Context:                    # split-part context prefix
      | .*\b(TODO|FIXME|XXX|HACK)\b
    )""",
    re.VERBOSE | re.DOTALL,
)

# Marks the position of a removed comment until lines are rebuilt
_REMOVED = "\x00"
# An inline block comment between two words still separates them
_JOINED_WORDS = re.compile(r"(?<=[\w$])\x00(?=[\w$])")

_TRAILING_WS = re.compile(r"[ \t]+(?=\n|$)")
_BLANK_LINE = re.compile(r"\n[ \t]*(?=\n)")
_INNER_WS = re.compile(r"(?<=\S)[ \t]{2,}")
_LEADING_WS = re.compile(r"(?:(?<=\n)|^)[ \t]+")
_WORD = re.compile(r"[A-Za-z_$][A-Za-z0-9_$]*")

_PY_FUNCTION_SCOPES = frozenset({"function_definition", "lambda"})
_PY_CLASS_SCOPES = frozenset({"class_definition"})
_JS_FUNCTION_SCOPES = frozenset({
    "function_declaration",
    "generator_function_declaration",
    "function_expression",
    "function",
    "generator_function",
    "arrow_function",
    "method_definition",
})
_JS_CLASS_SCOPES = frozenset({"class_declaration", "abstract_class_declaration", "class"})
_PY_BINDINGS = frozenset({"assignment", "augmented_assignment", "for_statement", "named_expression",
                          "as_pattern", "except_clause"})
_JS_BINDINGS = frozenset({"variable_declarator", "for_in_statement"})
_PY_PARAMETERS = frozenset({"parameters", "lambda_parameters"})
_JS_PARAMETERS = frozenset({"formal_parameters"})
_PY_OPAQUE = frozenset({"string", "global_statement", "nonlocal_statement", "import_statement",
                        "import_from_statement", "future_import_statement"})
_JS_OPAQUE = frozenset({"string", "template_string", "jsx_element", "jsx_self_closing_element",
                        "jsx_opening_element", "jsx_closing_element", "jsx_attribute",
                        "import_statement"})
_JS_SHORTHAND = frozenset({"shorthand_property_identifier", "shorthand_property_identifier_pattern"})
_PY_PATTERNS = frozenset({"pattern_list", "tuple_pattern", "list_pattern", "expression_list",
                          "tuple", "list", "list_splat_pattern", "parenthesized_expression"})
_DYNAMIC_SCOPE_NAMES = frozenset({"locals", "vars", "eval", "exec"})


def _descendants(node) -> Iterator:
    """Pre-order walk over ``node`` and everything below it."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        for child in reversed(current.children):
            stack.append(child)


@dataclass(eq=False)
class _Scope:
    """A function, lambda or class body and the names it owns directly."""

    node: Any
    function: bool
    identifiers: list = field(default_factory=list)
    bindings: list = field(default_factory=list)
    bound: set = field(default_factory=set)


def _short_names(taken: set[str]) -> Iterator[str]:
    """a, b, ... z, a0, b0, ... skipping anything already used in the fragment."""
    letters = string.ascii_lowercase
    for name in letters:
        if name not in taken:
            yield name
    for n in itertools.count():
        for letter in letters:
            name = f"{letter}{n}"
            if name not in taken:
                yield name


class ContextCompressor:
    """
    Compresses the code sections of an assembled context.

    Task, summary and structure sections are never modified.
    """

    def __init__(
        self,
        tokenizer: Optional[TokenizerInterface] = None,
        parser: Optional[TreeSitterParser] = None,
    ):
        self._tokenizer = tokenizer or get_default_tokenizer()
        self._parser = parser or TreeSitterParser()

    def compress(self, context: OptimizedContext, level: CompressionLevel) -> OptimizedContext:
        """Return a new context with every code section compressed to ``level``."""
        level = CompressionLevel.parse(level)
        if level == CompressionLevel.NONE:
            return context
        sections = [self.compress_section(section, level) for section in context.sections]
        return OptimizedContext.from_sections(
            sections,
            budget=context.budget,
            included_chunks=context.included_chunks,
            excluded_chunks=context.excluded_chunks,
            compression_level=max(context.compression_level, level),
        )

    def compress_section(self, section: ContextSection, level: CompressionLevel) -> ContextSection:
        if section.kind != SectionKind.CODE or level == CompressionLevel.NONE:
            return section
        content = self.compress_text(section.content, section.language, level)
        if content == section.content:
            return section
        compressed = section.with_content(self._tokenizer, content)
        if compressed.token_count >= section.token_count:
            return section
        return compressed

    def compress_text(self, text: str, language: str, level: CompressionLevel) -> str:
        """Apply every transformation up to ``level`` to a code fragment."""
        if language not in CODE_LANGUAGES:
            # Only trailing whitespace is safe to touch in data and prose files
            if level >= CompressionLevel.MEDIUM:
                return self._keep_shorter(text, _TRAILING_WS.sub("", text))
            return text

        result = text
        if level >= CompressionLevel.LIGHT:
            result = self._keep_shorter(result, self.strip_comments(result, language))
        if level >= CompressionLevel.MEDIUM:
            result = self._keep_shorter(result, self.normalize_whitespace(result, language))
        if level >= CompressionLevel.AGGRESSIVE:
            result = self._keep_shorter(result, self.shorten_locals(result, language))
        return result

    def _keep_shorter(self, before: str, after: str) -> str:
        if after == before:
            return before
        if self._tokenizer.count_tokens(after) <= self._tokenizer.count_tokens(before):
            return after
        return before

    # ------------------------------------------------------------------
    # LIGHT
    # ------------------------------------------------------------------

    def strip_comments(self, text: str, language: str) -> str:
        """Remove comments except doc comments, markers and pragmas."""
        pieces = []
        removed_any = False
        for segment in split_segments(text, language):
            if segment.kind == COMMENT and not _KEEP_COMMENT.match(segment.text):
                pieces.append(_REMOVED)
                removed_any = True
            else:
                pieces.append(segment.text)
        if not removed_any:
            return text

        lines = []
        for line in "".join(pieces).split("\n"):
            if _REMOVED not in line:
                lines.append(line)
                continue
            stripped = _JOINED_WORDS.sub(" ", line).replace(_REMOVED, "")
            if not stripped.strip():
                # The line held nothing but the comment
                continue
            lines.append(stripped.rstrip() if line.rstrip().endswith(_REMOVED) else stripped)
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # MEDIUM
    # ------------------------------------------------------------------

    def normalize_whitespace(self, text: str, language: str) -> str:
        """
        Drop blank lines, trailing whitespace and internal whitespace runs.

        Brace languages are also dedented; Python indentation is kept.
        String literals are left byte-for-byte intact.
        """
        dedent = language != "python"
        pieces = []
        for index, segment in enumerate(split_segments(text, language)):
            if segment.kind != CODE:
                pieces.append(segment.text)
                continue
            code = _TRAILING_WS.sub("", segment.text)
            code = _BLANK_LINE.sub("", code)
            code = _INNER_WS.sub(" ", code)
            if dedent:
                code = _LEADING_WS.sub("", code) if index == 0 else re.sub(r"(?<=\n)[ \t]+", "", code)
            pieces.append(code)
        return "".join(pieces).strip("\n")

    # ------------------------------------------------------------------
    # AGGRESSIVE
    # ------------------------------------------------------------------

    def shorten_locals(self, text: str, language: str) -> str:
        """
        Rename function-local variables to short names.

        Each function is renamed on its own. A name is only shortened in the
        function that binds it, and never when any scope reads it without
        binding it there (closures, globals, comprehension variables).
        Class bodies are never renamed since their names become attributes.
        Parameters, attributes, keyword-argument names, names that appear in
        strings or imports, and global/nonlocal names keep their spelling.
        Fragments that do not parse are returned unchanged.
        """
        if language not in CODE_LANGUAGES:
            return text

        for prefix, suffix in self._wrappers(text, language):
            source = f"{prefix}{text}{suffix}".encode("utf-8")
            try:
                tree = self._parser.parse_tree(source.decode("utf-8"), language)
            except SourceParseError:
                continue
            edits = self._rename_edits(tree.root_node, source, language, text)
            if not edits:
                return text
            offset = len(prefix.encode("utf-8"))
            body = text.encode("utf-8")
            out = []
            cursor = 0
            for start, end, name in sorted(edits):
                out.append(body[cursor:start - offset])
                out.append(name.encode("utf-8"))
                cursor = end - offset
            out.append(body[cursor:])
            return b"".join(out).decode("utf-8")

        logger.debug("Skipping identifier shortening: fragment does not parse")
        return text

    def _wrappers(self, text: str, language: str) -> list[tuple[str, str]]:
        """Prefix/suffix pairs that turn a member fragment into a parseable file."""
        if language == "python":
            first = next((line for line in text.split("\n") if line.strip()), "")
            if first[:1] in (" ", "\t"):
                return [("class _:\n", "")]
            return [("", "")]
        return [("", ""), ("class _ {\n", "\n}")]

    def _rename_edits(self, root, source: bytes, language: str, text: str) -> list[tuple[int, int, str]]:
        python = language == "python"

        def text_of(node) -> str:
            return source[node.start_byte:node.end_byte].decode("utf-8")

        scopes = self._scopes(root, python)
        # Names read in a scope without being bound there resolve outward;
        # renaming them anywhere would rewire the lookup
        forbidden = self._protected_names(root, text_of, python)
        for scope in scopes:
            scope.bound = self._bound_names(scope, text_of, python)
            reads = {text_of(n) for n in scope.identifiers if not self._is_member_name(n)}
            forbidden |= reads - scope.bound

        taken = set(_WORD.findall(text))
        edits = []
        for scope in scopes:
            if scope.function:
                edits.extend(self._rename_scope(scope, text_of, forbidden, taken))
        return edits

    def _scopes(self, root, python: bool) -> list[_Scope]:
        """Split the tree into scopes, each owning the identifiers directly inside it."""
        functions = _PY_FUNCTION_SCOPES if python else _JS_FUNCTION_SCOPES
        classes = _PY_CLASS_SCOPES if python else _JS_CLASS_SCOPES
        bindings = _PY_BINDINGS if python else _JS_BINDINGS

        module = _Scope(root, function=False)
        scopes = [module]
        stack = [(root, module)]
        while stack:
            node, scope = stack.pop()
            if node.type == "identifier":
                scope.identifiers.append(node)
                continue
            if node.type in bindings:
                scope.bindings.append(node)
            owner = scope
            name = None
            if node.type in functions or node.type in classes:
                owner = _Scope(node, function=node.type in functions)
                scopes.append(owner)
                # The declared name is bound in the enclosing scope
                name = node.child_by_field_name("name")
            for child in reversed(node.children):
                stack.append((child, scope if name is not None and child == name else owner))
        return scopes

    def _rename_scope(self, scope: _Scope, text_of, forbidden: set[str], taken: set[str]) -> list[tuple[int, int, str]]:
        if any(
            n.type == "identifier" and text_of(n) in _DYNAMIC_SCOPE_NAMES
            for n in _descendants(scope.node)
        ):
            return []

        renamable = {
            name for name in scope.bound - forbidden
            if not (name.startswith("__") and name.endswith("__"))
        }
        if not renamable:
            return []

        # Allocate names in order of first appearance so output is deterministic
        mapping: dict[str, str] = {}
        names = _short_names(taken)
        candidate = None
        for node in scope.identifiers:
            name = text_of(node)
            if name not in renamable or name in mapping:
                continue
            if candidate is None:
                candidate = next(names)
            if len(candidate) < len(name):
                mapping[name] = candidate
                candidate = None

        edits = []
        for node in scope.identifiers:
            new_name = mapping.get(text_of(node))
            if new_name is None or self._is_member_name(node):
                continue
            edits.append((node.start_byte, node.end_byte, new_name))
        return edits

    def _is_member_name(self, node) -> bool:
        """True for occurrences that name a member or keyword rather than a variable."""
        parent = node.parent
        if parent is None:
            return False
        if parent.type == "attribute":
            return parent.child_by_field_name("attribute") == node
        if parent.type == "keyword_argument":
            return parent.child_by_field_name("name") == node
        return False

    def _bound_names(self, scope: _Scope, text_of, python: bool) -> set[str]:
        names: set[str] = set()

        def collect(target) -> None:
            if target is None:
                return
            if target.type == "identifier":
                names.add(text_of(target))
            elif target.type in _PY_PATTERNS or target.type == "as_pattern_target":
                for child in target.children:
                    collect(child)

        for node in scope.bindings:
            if not python:
                target = node.child_by_field_name("name" if node.type == "variable_declarator" else "left")
                if target is None:
                    continue
                if target.type == "identifier":
                    names.add(text_of(target))
                elif target.type == "array_pattern":
                    names.update(text_of(c) for c in target.children if c.type == "identifier")
            elif node.type in ("assignment", "augmented_assignment", "for_statement"):
                collect(node.child_by_field_name("left"))
            elif node.type == "named_expression":
                collect(node.child_by_field_name("name"))
            elif node.type == "as_pattern":
                collect(node.child_by_field_name("alias"))
            elif node.type == "except_clause":
                children = node.children
                for previous, child in zip(children, children[1:]):
                    if previous.type == "as":
                        collect(child)
        return names

    def _protected_names(self, root, text_of, python: bool) -> set[str]:
        """Names that must keep their spelling anywhere in the fragment."""
        parameters = _PY_PARAMETERS if python else _JS_PARAMETERS
        opaque = _PY_OPAQUE if python else _JS_OPAQUE
        protected: set[str] = set()
        for node in _descendants(root):
            if node.type in parameters or node.type in opaque:
                protected.update(
                    text_of(n) for n in _descendants(node)
                    if n.type == "identifier" or n.type in _JS_SHORTHAND
                )
            elif node.type in _JS_SHORTHAND:
                protected.add(text_of(node))
            elif node.type == "arrow_function":
                parameter = node.child_by_field_name("parameter")
                if parameter is not None:
                    protected.add(text_of(parameter))
            elif node.type == "catch_clause":
                parameter = node.child_by_field_name("parameter")
                if parameter is not None:
                    protected.update(text_of(n) for n in _descendants(parameter) if n.type == "identifier")
        return protected
