"""
JavaScript/TypeScript language parser.

Extracts functions (declarations and function-valued bindings), classes,
methods, TypeScript interfaces, type aliases and enums, and UPPER_CASE
constants from JS/TS/TSX code using Tree-sitter. Anonymous default exports
are declared under the name "default". Adjacent JSDoc comments are attached
to the declaration they document.
"""

from typing import Any, Optional

from ctxpack.core.parsers.base import LanguageParser, ParsedFile, is_constant_name

_CLASS_TYPES = ("class_declaration", "abstract_class_declaration")
_FUNCTION_TYPES = ("function_declaration", "generator_function_declaration")
_INTERFACE_TYPES = ("interface_declaration", "type_alias_declaration", "enum_declaration")
_FUNCTION_VALUES = ("arrow_function", "function_expression", "function", "generator_function")


class EcmaScriptParser(LanguageParser):
    """Parser for JavaScript, TypeScript and TSX source code."""

    def __init__(self, language_id: str = "javascript"):
        self._language_id = language_id

    @property
    def language_id(self) -> str:
        return self._language_id

    def extract(self, root_node: Any, source: bytes) -> ParsedFile:
        parsed = ParsedFile(language=self.language_id)
        for child in root_node.named_children:
            if child.type == "import_statement":
                self._extract_import(child, source, parsed.imports)
                continue
            if child.type == "comment" or self.is_bare_string(child):
                continue
            declared = len(parsed.nodes)
            if child.type == "export_statement":
                if not self._extract_export(child, source, parsed):
                    continue
            else:
                self._extract_declaration(child, child, source, parsed, exported=False)
            if len(parsed.nodes) == declared:
                parsed.loose_spans.append(self.get_line_numbers(child))

        if parsed.explicit_exports:
            wanted = set(parsed.explicit_exports)
            for node in parsed.top_level_nodes:
                if node.name in wanted:
                    node.exported = True
        return parsed

    def _extract_export(self, node: Any, source: bytes, parsed: ParsedFile) -> bool:
        """Record an export statement; False when it only lists or re-exports names."""
        declaration = node.child_by_field_name("declaration")
        if declaration is not None:
            self._extract_declaration(declaration, node, source, parsed, exported=True)
            return True

        value = node.child_by_field_name("value")
        if value is not None:
            self._extract_default(value, node, source, parsed)
            return True

        # Re-exports ('export { a } from "./x"') declare nothing locally
        if node.child_by_field_name("source") is not None:
            return False
        for child in node.named_children:
            if child.type != "export_clause":
                continue
            if parsed.explicit_exports is None:
                parsed.explicit_exports = []
            for specifier in child.named_children:
                if specifier.type == "export_specifier":
                    local = self.field_text(specifier, "name", source)
                    if local:
                        parsed.explicit_exports.append(local)
        return False

    def _extract_default(self, value: Any, outer: Any, source: bytes, parsed: ParsedFile) -> None:
        """'export default function () {}' and 'export default class {}' declare 'default'."""
        doc_node = self._jsdoc_for(outer, source)
        docstring = self._jsdoc_text(doc_node, source) if doc_node is not None else None
        name = self.field_text(value, "name", source) or "default"
        if value.type in _FUNCTION_VALUES:
            parsed.nodes.append(
                self.make_node(
                    "function", name, outer, source, doc_node, docstring=docstring, exported=True
                )
            )
        elif value.type == "class":
            self._extract_class(value, outer, doc_node, docstring, source, parsed, True, name=name)

    def _extract_declaration(
        self, node: Any, outer: Any, source: bytes, parsed: ParsedFile, exported: bool
    ) -> None:
        doc_node = self._jsdoc_for(outer, source)
        docstring = self._jsdoc_text(doc_node, source) if doc_node is not None else None

        if node.type in _FUNCTION_TYPES:
            name = self.field_text(node, "name", source)
            if name:
                parsed.nodes.append(
                    self.make_node(
                        "function", name, outer, source, doc_node,
                        docstring=docstring, exported=exported,
                    )
                )
        elif node.type in _CLASS_TYPES:
            self._extract_class(node, outer, doc_node, docstring, source, parsed, exported)
        elif node.type in _INTERFACE_TYPES:
            name = self.field_text(node, "name", source)
            if name:
                parsed.nodes.append(
                    self.make_node(
                        "interface", name, outer, source, doc_node,
                        docstring=docstring, exported=exported,
                    )
                )
        elif node.type in ("lexical_declaration", "variable_declaration"):
            self._extract_binding(node, outer, doc_node, docstring, source, parsed, exported)

    def _extract_binding(
        self,
        node: Any,
        outer: Any,
        doc_node: Any,
        docstring: Optional[str],
        source: bytes,
        parsed: ParsedFile,
        exported: bool,
    ) -> None:
        is_const = self.get_node_content(node, source).startswith("const")
        for declarator in node.named_children:
            if declarator.type != "variable_declarator":
                continue
            name_node = declarator.child_by_field_name("name")
            if name_node is None or name_node.type != "identifier":
                continue
            name = self.get_node_content(name_node, source)
            value = declarator.child_by_field_name("value")
            if value is not None and value.type in _FUNCTION_VALUES:
                node_type = "function"
            elif is_const and is_constant_name(name):
                node_type = "constant"
            else:
                continue
            parsed.nodes.append(
                self.make_node(
                    node_type, name, outer, source, doc_node,
                    docstring=docstring, exported=exported,
                )
            )
            # One declaration statement yields one node
            return

    def _extract_class(
        self,
        node: Any,
        outer: Any,
        doc_node: Any,
        docstring: Optional[str],
        source: bytes,
        parsed: ParsedFile,
        exported: bool,
        name: Optional[str] = None,
    ) -> None:
        name = name or self.field_text(node, "name", source)
        if not name:
            return
        parsed.nodes.append(
            self.make_node(
                "class", name, outer, source, doc_node, docstring=docstring, exported=exported
            )
        )

        body = node.child_by_field_name("body")
        if body is None:
            return
        for member in body.named_children:
            if member.type not in ("method_definition", "abstract_method_signature"):
                continue
            method_name = self.field_text(member, "name", source)
            if not method_name:
                continue
            member_doc = self._jsdoc_for(member, source)
            parsed.nodes.append(
                self.make_node(
                    "method",
                    method_name,
                    member,
                    source,
                    member_doc,
                    parent_name=name,
                    docstring=self._jsdoc_text(member_doc, source) if member_doc else None,
                    is_constructor=method_name == "constructor",
                    definition_line=member.start_point[0] + 1,
                )
            )

    def _jsdoc_for(self, node: Any, source: bytes) -> Any:
        """Return the /** */ comment directly above ``node``, if any."""
        previous = node.prev_named_sibling
        if previous is None or previous.type != "comment":
            return None
        if previous.end_point[0] + 1 < node.start_point[0]:
            return None
        if not self.get_node_content(previous, source).startswith("/**"):
            return None
        return previous

    def _jsdoc_text(self, comment: Any, source: bytes) -> str:
        text = self.get_node_content(comment, source)
        lines = []
        for line in text[3:-2].splitlines():
            line = line.strip()
            if line.startswith("*"):
                line = line[1:].strip()
            if line:
                lines.append(line)
        return "\n".join(lines)

    def _extract_import(self, node: Any, source: bytes, imports: dict[str, str]) -> None:
        source_text = (self.field_text(node, "source", source) or "").strip("'\"`")
        for clause in node.named_children:
            if clause.type != "import_clause":
                continue
            for binding in clause.named_children:
                if binding.type == "identifier":
                    imports[self.get_node_content(binding, source)] = source_text
                elif binding.type == "namespace_import":
                    for ident in binding.named_children:
                        if ident.type == "identifier":
                            imports[self.get_node_content(ident, source)] = source_text
                elif binding.type == "named_imports":
                    for specifier in binding.named_children:
                        if specifier.type != "import_specifier":
                            continue
                        target = self.field_text(specifier, "name", source)
                        local = self.field_text(specifier, "alias", source) or target
                        if local:
                            imports[local] = f"{source_text}:{target}"
