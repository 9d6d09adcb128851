"""
Main Chunker implementation.

Splits source files into semantically bounded chunks on declaration
boundaries from Tree-sitter, with statement-boundary splitting for oversized
declarations, module chunks for top-level code outside any declaration, and
whole-file chunks for modules without declarations, config files and
documentation.
"""

import fnmatch
import logging
from pathlib import PurePosixPath
from typing import Optional

from ctxpack.core.ast_parser import TreeSitterParser
from ctxpack.core.lexer import identifiers, is_python
from ctxpack.core.parsers.base import ASTNode, ParsedFile
from ctxpack.core.source_files import CODE_LANGUAGES, CONFIG_LANGUAGES, DOC_LANGUAGES, SourceFile
from ctxpack.core.tokenizer import TokenizerInterface

from .complexity import complexity_between, decision_lines
from .interfaces import ChunkerConfig, ChunkerInterface
from .models import ChunkingResult, ChunkKind, CodeChunk, content_hash, make_chunk_id
from .smart_splitter import SmartChunkSplitter

logger = logging.getLogger(__name__)

TEST_FILE_PATTERNS = ("test_*.py", "*_test.py", "conftest.py", "*.test.*", "*.spec.*")

# Identity of chunks holding top-level code outside any declaration
MODULE_CHUNK_NAME = "<module>"


def is_test_file(path: str) -> bool:
    """True if the path follows a test file naming convention."""
    posix = PurePosixPath(path)
    if "__tests__" in posix.parts:
        return True
    return any(fnmatch.fnmatch(posix.name, pattern) for pattern in TEST_FILE_PATTERNS)


class _ChunkFactory:
    """Builds chunks for one file, assigning occurrence ordinals to repeated names."""

    def __init__(
        self,
        file: SourceFile,
        tokenizer: TokenizerInterface,
        imports: dict[str, str],
        decisions: Optional[list[int]] = None,
    ):
        self._file = file
        self._tokenizer = tokenizer
        self._imports = imports
        # Sorted lines of the file's decision points
        self._decisions = decisions or []
        self._ordinals: dict[tuple[ChunkKind, str], int] = {}
        self.chunks: list[CodeChunk] = []

    def make(
        self,
        kind: ChunkKind,
        content: str,
        start_line: int,
        end_line: int,
        name: str = "",
        parent_name: Optional[str] = None,
        exports: Optional[list[str]] = None,
        metadata: Optional[dict] = None,
        id_name: Optional[str] = None,
    ) -> None:
        if not content.strip():
            return
        token_count = self._tokenizer.count_tokens(content)

        if id_name is None:
            id_name = f"{parent_name}.{name}" if parent_name else name
        key = (kind, id_name)
        ordinal = self._ordinals.get(key, 0)
        self._ordinals[key] = ordinal + 1

        language = self._file.language
        code = language in CODE_LANGUAGES
        self.chunks.append(
            CodeChunk(
                chunk_id=make_chunk_id(self._file.path, kind, id_name, ordinal),
                kind=kind,
                file_path=self._file.path,
                start_line=start_line,
                end_line=end_line,
                content=content,
                language=language,
                token_count=token_count,
                name=name,
                parent_name=parent_name,
                dependencies=self._dependencies(content) if code else [],
                exports=list(exports or []),
                complexity=complexity_between(self._decisions, start_line, end_line) if code else 1,
                modified_time=self._file.modified_time,
                coverage=self._file.coverage_ratio(start_line, end_line),
                metadata=dict(metadata or {}),
            )
        )

    def _dependencies(self, content: str) -> list[str]:
        """Imported symbols that the content actually references."""
        if not self._imports:
            return []
        used = identifiers(content, self._file.language)
        symbols = set()
        for local, target in self._imports.items():
            if local not in used:
                continue
            if ":" in target:
                symbols.add(target.rsplit(":", 1)[-1])
            elif is_python(self._file.language):
                symbols.add(target.rsplit(".", 1)[-1])
            else:
                symbols.add(local)
        return sorted(symbols)


class Chunker(ChunkerInterface):
    """
    Concrete implementation of ChunkerInterface.

    Provides:
    - Declaration-level chunks (function, class, interface, constant)
    - Class splitting into a summary chunk plus one chunk per method when the
      class exceeds ``class_split_tokens``
    - Statement-boundary splitting of anything above ``max_tokens``
    - Module chunks for top-level statements no declaration covers
    - Whole-file chunks for modules without declarations, config and docs
    - Dependency, export, complexity and coverage metadata per chunk
    """

    def __init__(
        self,
        tokenizer: TokenizerInterface,
        max_tokens: int = 1024,
        class_split_tokens: int = 512,
        parser: Optional[TreeSitterParser] = None,
        smart_splitter: Optional[SmartChunkSplitter] = None,
    ):
        """
        Args:
            tokenizer: Tokenizer for token counting
            max_tokens: Maximum tokens per chunk
            class_split_tokens: Classes above this size are split per method
            parser: Tree-sitter parser (a new one if None)
            smart_splitter: Splitter for oversized fragments
        """
        self._tokenizer = tokenizer
        self._max_tokens = max_tokens
        self._class_split_tokens = class_split_tokens
        self._parser = parser or TreeSitterParser()
        self._smart_splitter = smart_splitter or SmartChunkSplitter(tokenizer)

    def get_config(self) -> ChunkerConfig:
        return ChunkerConfig(
            max_tokens=self._max_tokens,
            class_split_tokens=self._class_split_tokens,
        )

    def chunk(self, file: SourceFile) -> ChunkingResult:
        result = ChunkingResult(
            file_path=file.path,
            language=file.language,
            file_hash=content_hash(file.content),
        )
        if not file.content.strip():
            return result

        test_file = is_test_file(file.path)

        if file.language in CODE_LANGUAGES:
            tree = self._parser.parse_tree(file.content, file.language, file.path)
            parsed = self._parser.extract(tree, file.content, file.language)
            decisions = decision_lines(tree.root_node, file.language)
            factory = _ChunkFactory(file, self._tokenizer, parsed.imports, decisions)
            if parsed.top_level_nodes:
                self._chunk_declarations(factory, file, parsed, test_file)
                self._chunk_loose_statements(factory, file, parsed, test_file)
            else:
                module_kind = ChunkKind.TEST if test_file else ChunkKind.MODULE
                self._chunk_whole_file(
                    factory, file, module_kind, exports=parsed.explicit_exports or []
                )
        elif file.language in CONFIG_LANGUAGES:
            factory = _ChunkFactory(file, self._tokenizer, {})
            self._chunk_whole_file(factory, file, ChunkKind.CONFIG)
        else:
            factory = _ChunkFactory(file, self._tokenizer, {})
            metadata = {"doc": True} if file.language in DOC_LANGUAGES else {}
            self._chunk_whole_file(factory, file, ChunkKind.MODULE, metadata=metadata)

        result.chunks = factory.chunks
        logger.debug(f"Chunked {file.path} into {len(result.chunks)} chunks")
        return result

    def _chunk_declarations(
        self,
        factory: _ChunkFactory,
        file: SourceFile,
        parsed: ParsedFile,
        test_file: bool,
    ) -> None:
        for node in parsed.top_level_nodes:
            kind = self._kind_for(node, test_file)
            exports = self._exports_for(node, parsed)

            if node.node_type == "class":
                methods = [
                    m
                    for m in parsed.methods_of(node.name)
                    if node.start_line <= m.start_line and m.end_line <= node.end_line
                ]
                if methods and self._tokenizer.count_tokens(node.content) > self._class_split_tokens:
                    self._chunk_split_class(factory, file, node, methods, kind, exports, test_file)
                    continue

            self._emit(
                factory,
                file,
                kind,
                node.content,
                node.start_line,
                node.end_line,
                node.name,
                None,
                exports,
                {"docstring": node.docstring} if node.docstring else {},
                self._context_prefix(file.language, node.node_type, node.name),
            )

    def _chunk_split_class(
        self,
        factory: _ChunkFactory,
        file: SourceFile,
        node: ASTNode,
        methods: list[ASTNode],
        kind: ChunkKind,
        exports: list[str],
        test_file: bool,
    ) -> None:
        lines = node.content.split("\n")
        dropped: set[int] = set()
        stubs: dict[int, str] = {}
        split_methods = [m for m in methods if not m.is_constructor]

        for method in split_methods:
            first = method.start_line - node.start_line
            last = method.end_line - node.start_line
            signature_idx = (method.definition_line or method.start_line) - node.start_line
            dropped.update(range(first, last + 1))
            stub = lines[signature_idx].rstrip()
            stubs[first] = stub + (" ... }" if stub.endswith("{") else " ...")

        summary_lines = []
        for idx, line in enumerate(lines):
            if idx in stubs:
                summary_lines.append(stubs[idx])
            elif idx not in dropped:
                summary_lines.append(line)

        self._emit(
            factory,
            file,
            kind,
            "\n".join(summary_lines),
            node.start_line,
            node.end_line,
            node.name,
            None,
            exports,
            {"class_summary": True, "methods": [m.name for m in split_methods]},
            self._context_prefix(file.language, "class", node.name),
        )

        for method in split_methods:
            method_kind = self._kind_for(method, test_file)
            self._emit(
                factory,
                file,
                method_kind,
                method.content,
                method.start_line,
                method.end_line,
                method.name,
                node.name,
                [],
                {"method": True},
                self._context_prefix(file.language, "method", node.name),
            )

    def _chunk_loose_statements(
        self,
        factory: _ChunkFactory,
        file: SourceFile,
        parsed: ParsedFile,
        test_file: bool,
    ) -> None:
        """One module chunk per run of top-level code that no declaration covers."""
        covered: set[int] = set()
        for node in parsed.top_level_nodes:
            covered.update(range(node.start_line, node.end_line + 1))

        runs: list[list[int]] = []
        for start, end in parsed.loose_spans:
            span = [line for line in range(start, end + 1) if line not in covered]
            if not span:
                continue
            if runs and not covered.intersection(range(runs[-1][1] + 1, span[0])):
                runs[-1][1] = span[-1]
            else:
                runs.append([span[0], span[-1]])

        lines = file.content.split("\n")
        kind = ChunkKind.TEST if test_file else ChunkKind.MODULE
        for start, end in runs:
            self._emit(
                factory,
                file,
                kind,
                "\n".join(lines[start - 1:end]),
                start,
                end,
                "",
                None,
                [],
                {"top_level": True},
                "",
                id_name=MODULE_CHUNK_NAME,
            )

    def _chunk_whole_file(
        self,
        factory: _ChunkFactory,
        file: SourceFile,
        kind: ChunkKind,
        exports: Optional[list[str]] = None,
        metadata: Optional[dict] = None,
    ) -> None:
        content = file.content.rstrip("\n")
        end_line = content.count("\n") + 1
        self._emit(
            factory, file, kind, content, 1, end_line, "", None, exports or [], metadata or {}, ""
        )

    def _emit(
        self,
        factory: _ChunkFactory,
        file: SourceFile,
        kind: ChunkKind,
        content: str,
        start_line: int,
        end_line: int,
        name: str,
        parent_name: Optional[str],
        exports: list[str],
        metadata: dict,
        context_prefix: str,
        id_name: Optional[str] = None,
    ) -> None:
        if self._tokenizer.count_tokens(content) <= self._max_tokens:
            factory.make(
                kind, content, start_line, end_line, name, parent_name, exports, metadata, id_name
            )
            return

        parts = self._smart_splitter.split(content, start_line, self._max_tokens, context_prefix)
        if len(parts) == 1:
            part = parts[0]
            factory.make(
                kind, part.content, part.start_line, part.end_line,
                name, parent_name, exports, metadata, id_name,
            )
            return

        qualified_name = id_name or (f"{parent_name}.{name}" if parent_name else name)
        for i, part in enumerate(parts):
            part_metadata = dict(metadata, is_partial=True, part_index=i, total_parts=len(parts))
            factory.make(
                kind,
                part.content,
                part.start_line,
                part.end_line,
                name,
                parent_name,
                exports if i == 0 else [],
                part_metadata,
                id_name=f"{qualified_name}#part{i}",
            )
        logger.debug(f"Split {file.path}:{qualified_name or '<module>'} into {len(parts)} parts")

    def _kind_for(self, node: ASTNode, test_file: bool) -> ChunkKind:
        if node.node_type == "interface":
            return ChunkKind.INTERFACE
        if node.node_type == "constant":
            return ChunkKind.CONSTANT
        if node.node_type == "class":
            if test_file or node.name.startswith("Test"):
                return ChunkKind.TEST
            return ChunkKind.CLASS
        if (
            test_file
            or node.name.startswith("test")
            or (node.parent_name or "").startswith("Test")
        ):
            return ChunkKind.TEST
        return ChunkKind.FUNCTION

    def _exports_for(self, node: ASTNode, parsed: ParsedFile) -> list[str]:
        if node.parent_name is not None:
            return []
        if is_python(parsed.language):
            if parsed.explicit_exports is not None:
                return [node.name] if node.name in parsed.explicit_exports else []
            return [] if node.name.startswith("_") else [node.name]
        return [node.name] if node.exported else []

    def _context_prefix(self, language: str, node_type: str, name: str) -> str:
        marker = "#" if is_python(language) else "//"
        if node_type == "method":
            return f"{marker} Context: class {name}\n"
        if node_type == "function":
            return f"{marker} Context: function {name}\n"
        if node_type in ("class", "interface"):
            return f"{marker} Context: {node_type} {name}\n"
        return ""


def create_chunker(
    tokenizer: Optional[TokenizerInterface] = None,
    max_tokens: int = 1024,
    class_split_tokens: int = 512,
) -> Chunker:
    """
    Factory function to create a Chunker instance.

    Args:
        tokenizer: Tokenizer instance (uses default if None)
        max_tokens: Maximum tokens per chunk
        class_split_tokens: Token size above which classes are split per method

    Returns:
        Configured Chunker instance
    """
    if tokenizer is None:
        from ctxpack.core.tokenizer import get_default_tokenizer

        tokenizer = get_default_tokenizer()

    return Chunker(
        tokenizer=tokenizer,
        max_tokens=max_tokens,
        class_split_tokens=class_split_tokens,
    )
