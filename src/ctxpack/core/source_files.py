"""
Source file model and directory scanning.

The pipeline consumes a stream of SourceFile objects; SourceScanner produces
that stream from a directory for the CLI, with extension filtering and
gitignore-style ignore patterns.
"""

import logging
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Iterator, Optional

import pathspec

logger = logging.getLogger(__name__)

EXTENSION_TO_LANGUAGE: dict[str, str] = {
    ".py": "python",
    ".pyi": "python",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".ts": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".tsx": "tsx",
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".toml": "toml",
    ".ini": "ini",
    ".cfg": "ini",
    ".md": "markdown",
    ".rst": "restructuredtext",
}

# Languages chunked structurally with tree-sitter
CODE_LANGUAGES = frozenset({"python", "javascript", "typescript", "tsx"})
# Languages chunked as a single config chunk
CONFIG_LANGUAGES = frozenset({"json", "yaml", "toml", "ini"})
# Languages chunked as documentation
DOC_LANGUAGES = frozenset({"markdown", "restructuredtext"})

_MAX_FILE_BYTES = 10 * 1024 * 1024


def detect_language(path: str | Path) -> str:
    """
    Detect the language identifier from a file path.

    Returns:
        Language identifier or 'unknown' if not recognized
    """
    suffix = PurePosixPath(str(path).replace("\\", "/")).suffix.lower()
    return EXTENSION_TO_LANGUAGE.get(suffix, "unknown")


@dataclass(frozen=True)
class SourceFile:
    """
    One source file handed to the chunker.

    Attributes:
        path: Repository-relative path using forward slashes
        content: File content
        language: Language identifier (see EXTENSION_TO_LANGUAGE)
        modified_time: Modification timestamp (Unix epoch)
        covered_lines: 1-based line numbers covered by tests, if known
    """

    path: str
    content: str
    language: str = ""
    modified_time: float = 0.0
    covered_lines: Optional[frozenset[int]] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", self.path.replace("\\", "/"))
        if not self.language:
            object.__setattr__(self, "language", detect_language(self.path))
        if self.covered_lines is not None and not isinstance(self.covered_lines, frozenset):
            object.__setattr__(self, "covered_lines", frozenset(self.covered_lines))

    def coverage_ratio(self, start_line: int, end_line: int) -> float:
        """Fraction of lines in the inclusive range that are covered."""
        if not self.covered_lines or end_line < start_line:
            return 0.0
        total = end_line - start_line + 1
        covered = sum(1 for line in range(start_line, end_line + 1) if line in self.covered_lines)
        return covered / total


class SourceScanner:
    """
    Recursive directory scanner.

    Provides:
    - File extension filtering
    - Gitignore-style pattern matching (using pathspec library)
    - Graceful handling of unreadable files
    """

    def __init__(
        self,
        extensions: Optional[set[str]] = None,
        ignore_patterns: Optional[list[str]] = None,
    ):
        """
        Args:
            extensions: File extensions to include (e.g., {'.py', '.ts'}).
                       If None, every extension with a known language is included.
            ignore_patterns: Gitignore-style patterns to exclude.
        """
        self._extensions = {ext.lower() for ext in (extensions or EXTENSION_TO_LANGUAGE)}
        self._ignore_patterns: list[str] = list(ignore_patterns or [])
        self._pathspec: Optional[pathspec.PathSpec] = None
        self._update_pathspec()

    def _update_pathspec(self) -> None:
        """Update the pathspec matcher from current ignore patterns."""
        if self._ignore_patterns:
            self._pathspec = pathspec.PathSpec.from_lines(
                pathspec.patterns.GitWildMatchPattern, self._ignore_patterns
            )
        else:
            self._pathspec = None

    def _load_gitignore(self, root_path: Path) -> None:
        gitignore_path = root_path / ".gitignore"
        if not gitignore_path.exists():
            return

        try:
            lines = gitignore_path.read_text(encoding="utf-8").splitlines()
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Failed to read .gitignore: {e}")
            return

        existing = set(self._ignore_patterns)
        for line in lines:
            line = line.strip()
            if line and not line.startswith("#") and line not in existing:
                self._ignore_patterns.append(line)
                existing.add(line)
        self._update_pathspec()

    def _should_ignore(self, rel_path: str, is_dir: bool) -> bool:
        if self._pathspec is None:
            return False
        if is_dir:
            return self._pathspec.match_file(rel_path) or self._pathspec.match_file(rel_path + "/")
        return self._pathspec.match_file(rel_path)

    def scan(self, root_path: Path | str) -> Iterator[SourceFile]:
        """
        Recursively scan a directory and yield SourceFile objects.

        Paths are relative to ``root_path``. Entries are visited in sorted
        order so repeated scans yield files in the same order.
        """
        root_path = Path(root_path).resolve()
        if not root_path.is_dir():
            logger.error(f"Root path is not a directory: {root_path}")
            return

        self._load_gitignore(root_path)
        yield from self._scan_directory(root_path, root_path, set())

    def _scan_directory(
        self, current_path: Path, root_path: Path, visited: set[Path]
    ) -> Iterator[SourceFile]:
        try:
            real_path = current_path.resolve()
            if real_path in visited:
                logger.debug(f"Skipping recursive cycle: {current_path} -> {real_path}")
                return
            visited.add(real_path)
            entries = sorted(current_path.iterdir(), key=lambda p: (not p.is_dir(), p.name))
        except OSError as e:
            logger.warning(f"Error accessing directory: {current_path} - {e}")
            return

        for entry in entries:
            rel_path = entry.relative_to(root_path).as_posix()
            if self._should_ignore(rel_path, entry.is_dir()):
                logger.debug(f"Ignoring: {rel_path}")
                continue

            if entry.is_dir():
                yield from self._scan_directory(entry, root_path, visited)
            elif entry.is_file() and entry.suffix.lower() in self._extensions:
                source = self._read_file(entry, rel_path)
                if source is not None:
                    yield source

        visited.remove(real_path)

    def _read_file(self, file_path: Path, rel_path: str) -> Optional[SourceFile]:
        try:
            stat = file_path.stat()
            if stat.st_size > _MAX_FILE_BYTES:
                logger.warning(f"Skipping large file ({stat.st_size} bytes): {file_path}")
                return None
            content = file_path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            logger.warning(f"Failed to decode file as UTF-8: {file_path} - {e}")
            return None
        except OSError as e:
            logger.warning(f"Error reading file: {file_path} - {e}")
            return None

        return SourceFile(
            path=rel_path,
            content=content,
            language=detect_language(rel_path),
            modified_time=stat.st_mtime,
        )
