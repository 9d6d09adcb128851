"""Shared builders for context pipeline tests."""

import asyncio
from typing import Iterable, Optional

from hypothesis import strategies as st

from ctxpack.core.chunker import ChunkKind, CodeChunk, create_chunker, make_chunk_id
from ctxpack.core.context import ScoredChunk
from ctxpack.core.source_files import SourceFile
from ctxpack.core.tokenizer import get_default_tokenizer
from ctxpack.infrastructure import ChunkIndex, InMemoryVectorStore, LocalEmbeddingClient
from ctxpack.services import IndexingService

DIMENSION = 64


def run(coro):
    return asyncio.run(coro)


def make_chunk(
    name: str,
    content: Optional[str] = None,
    file_path: str = "src/app.py",
    kind: ChunkKind = ChunkKind.FUNCTION,
    start_line: int = 1,
    dependencies: Iterable[str] = (),
    exports: Optional[Iterable[str]] = None,
    complexity: int = 1,
    modified_time: float = 0.0,
    language: str = "python",
    metadata: Optional[dict] = None,
) -> CodeChunk:
    if content is None:
        content = f"def {name}(value):\n    return value + 1"
    end_line = start_line + content.count("\n")
    return CodeChunk(
        chunk_id=make_chunk_id(file_path, kind, name),
        kind=kind,
        file_path=file_path,
        start_line=start_line,
        end_line=end_line,
        content=content,
        language=language,
        token_count=max(1, get_default_tokenizer().count_tokens(content)),
        name=name,
        dependencies=list(dependencies),
        exports=[name] if exports is None else list(exports),
        complexity=complexity,
        modified_time=modified_time,
        metadata=dict(metadata or {}),
    )


def scored(chunk: CodeChunk, score: float) -> ScoredChunk:
    return ScoredChunk(chunk=chunk, score=score)


def ranked(items: Iterable[ScoredChunk]) -> list[ScoredChunk]:
    return sorted(items, key=lambda s: s.sort_key)


def function_body(name: str, statements: int) -> str:
    """A syntactically valid Python function of roughly ``statements`` lines."""
    lines = [f"def {name}(items, factor):", f'    """Process items for {name}."""', "    total = 0"]
    for i in range(statements):
        lines.append(f"    total += items[{i % 7}] * factor  # step {i}")
    lines.append("    return total")
    return "\n".join(lines)


SAMPLE_REPO = {
    "src/billing/models.py": (
        "from typing import Protocol\n"
        "\n"
        "\n"
        "class Invoice(Protocol):\n"
        "    \"\"\"An invoice that can be totalled.\"\"\"\n"
        "\n"
        "    def lines(self) -> list: ...\n"
        "\n"
        "\n"
        "TAX_RATE = 0.2\n"
    ),
    "src/billing/totals.py": (
        "from billing.models import Invoice, TAX_RATE\n"
        "\n"
        "\n"
        "def compute_total(invoice: Invoice) -> float:\n"
        "    \"\"\"Sum invoice lines and apply tax.\"\"\"\n"
        "    subtotal = 0.0\n"
        "    for line in invoice.lines():\n"
        "        if line.amount > 0:\n"
        "            subtotal += line.amount\n"
        "    return subtotal * (1 + TAX_RATE)\n"
        "\n"
        "\n"
        "def format_total(value: float) -> str:\n"
        "    return f\"{value:.2f}\"\n"
    ),
    "src/billing/report.py": (
        "from billing.totals import compute_total, format_total\n"
        "\n"
        "\n"
        "def render_report(invoices) -> str:\n"
        "    rows = [format_total(compute_total(inv)) for inv in invoices]\n"
        "    return \"\\n\".join(rows)\n"
    ),
    "src/web/handlers.js": (
        "import { renderPage } from './views';\n"
        "\n"
        "export function handleRequest(request) {\n"
        "  if (!request.user) {\n"
        "    return renderPage('login');\n"
        "  }\n"
        "  return renderPage('home', request.user);\n"
        "}\n"
    ),
    "tests/test_totals.py": (
        "from billing.totals import compute_total\n"
        "\n"
        "\n"
        "def test_compute_total_empty():\n"
        "    assert compute_total(EmptyInvoice()) == 0\n"
    ),
    "config/settings.yaml": "billing:\n  currency: EUR\n  rounding: 2\n",
}


def sample_files(repo: Optional[dict] = None, modified_time: float = 1_700_000_000.0) -> list[SourceFile]:
    files = repo if repo is not None else SAMPLE_REPO
    return [
        SourceFile(path=path, content=content, modified_time=modified_time + i)
        for i, (path, content) in enumerate(sorted(files.items()))
    ]


def make_index(retained_generations: int = 4) -> ChunkIndex:
    return ChunkIndex(InMemoryVectorStore(vector_size=DIMENSION), retained_generations=retained_generations)


def make_indexing_service(index: Optional[ChunkIndex] = None, embedding_client=None) -> IndexingService:
    return IndexingService(
        index or make_index(),
        embedding_client or LocalEmbeddingClient(dimension=DIMENSION),
        chunker=create_chunker(max_tokens=512, class_split_tokens=256),
    )


# Strategy for identifiers that never collide with Python keywords
identifier = st.from_regex(r"fn_[a-z]{1,8}", fullmatch=True)

score_value = st.floats(min_value=0.0, max_value=1.0, allow_nan=False)


@st.composite
def scored_chunks(draw, min_size: int = 1, max_size: int = 12):
    """Distinct ranked chunks with random sizes and scores."""
    names = draw(st.lists(identifier, min_size=min_size, max_size=max_size, unique=True))
    items = []
    for name in names:
        statements = draw(st.integers(min_value=1, max_value=30))
        chunk = make_chunk(name, content=function_body(name, statements), file_path=f"src/{name}.py")
        items.append(scored(chunk, draw(score_value)))
    return ranked(items)
