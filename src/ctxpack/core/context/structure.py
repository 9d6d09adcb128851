"""
Repository structure overview.

Renders the repository file list as an indented tree, the lowest-priority
section of an assembled context.
"""

from pathlib import PurePosixPath
from typing import Iterable


def build_structure_overview(file_paths: Iterable[str]) -> str:
    """
    Render file paths as an indented tree, directories first.

    Example:
        src/
          app/
            main.py
          util.py
        README.md
    """
    tree: dict = {}
    for path in sorted(set(file_paths)):
        parts = PurePosixPath(path.replace("\\", "/")).parts
        node = tree
        for part in parts[:-1]:
            node = node.setdefault(part + "/", {})
        if parts:
            node.setdefault(parts[-1], None)

    lines: list[str] = []
    _render(tree, 0, lines)
    return "\n".join(lines)


def _render(node: dict, depth: int, lines: list[str]) -> None:
    directories = sorted(name for name, child in node.items() if child is not None)
    files = sorted(name for name, child in node.items() if child is None)
    indent = "  " * depth
    for name in directories:
        lines.append(f"{indent}{name}")
        _render(node[name], depth + 1, lines)
    for name in files:
        lines.append(f"{indent}{name}")
