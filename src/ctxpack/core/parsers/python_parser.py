"""
Python language parser.

Extracts functions, classes, methods, interface-like classes, type aliases and
significant constants from Python code using Tree-sitter, along with the
module's imports and its ``__all__`` list.
"""

import re
from typing import Any, Optional

from ctxpack.core.parsers.base import ASTNode, LanguageParser, ParsedFile, is_constant_name

# Base classes that make a class an interface-like declaration
INTERFACE_BASES = frozenset(
    {"Protocol", "TypedDict", "Enum", "IntEnum", "StrEnum", "Flag", "IntFlag", "NamedTuple"}
)

_STRING_LITERAL = re.compile(r"^[rRbBuUfF]*('''|\"\"\"|'|\")(.*)\1$", re.DOTALL)

# Top-level statements that never form a loose module chunk
_NOT_LOOSE = frozenset({"import_statement", "import_from_statement", "future_import_statement", "comment"})


class PythonParser(LanguageParser):
    """Parser for Python source code."""

    @property
    def language_id(self) -> str:
        return "python"

    def extract(self, root_node: Any, source: bytes) -> ParsedFile:
        parsed = ParsedFile(language=self.language_id)
        for child in root_node.named_children:
            declared = len(parsed.nodes)
            self._visit_top_level(child, source, parsed)
            if len(parsed.nodes) == declared and self._is_loose(child, source):
                parsed.loose_spans.append(self.get_line_numbers(child))
        self._collect_imports(root_node, source, parsed.imports)
        return parsed

    def _is_loose(self, node: Any, source: bytes) -> bool:
        if node.type in _NOT_LOOSE or self.is_bare_string(node):
            return False
        if node.type == "expression_statement" and node.named_children:
            expr = node.named_children[0]
            if expr.type in ("assignment", "augmented_assignment"):
                return self.field_text(expr, "left", source) != "__all__"
        return True

    def _visit_top_level(self, node: Any, source: bytes, parsed: ParsedFile) -> None:
        definition = node
        if node.type == "decorated_definition":
            definition = node.child_by_field_name("definition")
            if definition is None:
                return

        if definition.type == "function_definition":
            name = self.field_text(definition, "name", source)
            if name:
                parsed.nodes.append(
                    self.make_node(
                        "function",
                        name,
                        node,
                        source,
                        docstring=self._extract_docstring(definition, source),
                    )
                )
        elif definition.type == "class_definition":
            self._extract_class(node, definition, source, parsed)
        elif node.type == "expression_statement":
            self._extract_assignment(node, source, parsed)
        elif node.type == "type_alias_statement":
            left = self.field_text(node, "left", source)
            if left:
                name = left.split("[", 1)[0].strip()
                parsed.nodes.append(self.make_node("interface", name, node, source))

    def _extract_class(
        self, outer: Any, definition: Any, source: bytes, parsed: ParsedFile
    ) -> None:
        name = self.field_text(definition, "name", source)
        if not name:
            return

        node_type = "interface" if self._has_interface_base(definition, source) else "class"
        parsed.nodes.append(
            self.make_node(
                node_type,
                name,
                outer,
                source,
                docstring=self._extract_docstring(definition, source),
            )
        )

        body = definition.child_by_field_name("body")
        if body is None:
            return
        for member in body.named_children:
            method = member
            if member.type == "decorated_definition":
                method = member.child_by_field_name("definition")
            if method is None or method.type != "function_definition":
                continue
            method_name = self.field_text(method, "name", source)
            if not method_name:
                continue
            parsed.nodes.append(
                self.make_node(
                    "method",
                    method_name,
                    member,
                    source,
                    parent_name=name,
                    docstring=self._extract_docstring(method, source),
                    is_constructor=method_name == "__init__",
                    definition_line=method.start_point[0] + 1,
                )
            )

    def _has_interface_base(self, definition: Any, source: bytes) -> bool:
        superclasses = definition.child_by_field_name("superclasses")
        if superclasses is None:
            return False
        for base in superclasses.named_children:
            if base.type == "keyword_argument":
                continue
            base_name = self.get_node_content(base, source).split("[", 1)[0]
            if base_name.rsplit(".", 1)[-1].strip() in INTERFACE_BASES:
                return True
        return False

    def _extract_assignment(self, node: Any, source: bytes, parsed: ParsedFile) -> None:
        if not node.named_children:
            return
        expr = node.named_children[0]
        if expr.type not in ("assignment", "augmented_assignment"):
            return
        left = expr.child_by_field_name("left")
        if left is None or left.type != "identifier":
            return
        name = self.get_node_content(left, source)

        if name == "__all__":
            right = expr.child_by_field_name("right")
            names = self._string_items(right, source) if right is not None else []
            if expr.type == "augmented_assignment" and parsed.explicit_exports is not None:
                parsed.explicit_exports.extend(names)
            else:
                parsed.explicit_exports = names
            return

        if expr.type != "assignment":
            return
        annotation = self.field_text(expr, "type", source)
        if annotation and annotation.rsplit(".", 1)[-1] == "TypeAlias":
            parsed.nodes.append(self.make_node("interface", name, node, source))
        elif is_constant_name(name):
            parsed.nodes.append(self.make_node("constant", name, node, source))

    def _string_items(self, node: Any, source: bytes) -> list[str]:
        if node.type not in ("list", "tuple"):
            return []
        names = []
        for item in node.named_children:
            if item.type != "string":
                continue
            match = _STRING_LITERAL.match(self.get_node_content(item, source))
            if match:
                names.append(match.group(2))
        return names

    def _extract_docstring(self, definition: Any, source: bytes) -> Optional[str]:
        body = definition.child_by_field_name("body")
        if body is None or not body.named_children:
            return None
        first = body.named_children[0]
        if first.type != "expression_statement" or not first.named_children:
            return None
        literal = first.named_children[0]
        if literal.type != "string":
            return None
        match = _STRING_LITERAL.match(self.get_node_content(literal, source))
        return match.group(2).strip() if match else None

    def _collect_imports(self, node: Any, source: bytes, imports: dict[str, str]) -> None:
        if node.type == "import_statement":
            for name_node in node.children_by_field_name("name"):
                self._add_import(name_node, None, source, imports)
            return
        if node.type == "import_from_statement":
            module = self.field_text(node, "module_name", source) or ""
            for name_node in node.children_by_field_name("name"):
                self._add_import(name_node, module, source, imports)
            return
        for child in node.named_children:
            self._collect_imports(child, source, imports)

    def _add_import(
        self, name_node: Any, module: Optional[str], source: bytes, imports: dict[str, str]
    ) -> None:
        if name_node.type == "aliased_import":
            target = self.field_text(name_node, "name", source) or ""
            local = self.field_text(name_node, "alias", source) or target
        else:
            target = self.get_node_content(name_node, source)
            # 'import a.b' binds 'a'
            local = target if module is not None else target.split(".", 1)[0]

        if module is None:
            imports[local] = target
        else:
            imports[local] = f"{module}.{target}" if not module.endswith(".") else module + target
