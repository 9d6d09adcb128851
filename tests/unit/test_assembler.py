"""
Tests for bounded-context packing.
"""

import pytest

from ctxpack.core.chunker import ChunkKind
from ctxpack.core.context import (
    ChunkSummarizer,
    ContextAssembler,
    ContextSection,
    SectionKind,
    SectionPriority,
    TransformationTask,
    order_sections,
)
from ctxpack.core.errors import BudgetExceededAfterCompression
from ctxpack.core.tokenizer import get_default_tokenizer
from tests.support.context_builders import function_body, make_chunk, ranked, scored

FILE_PATHS = ["src/billing/totals.py", "src/billing/report.py", "src/web/app.py"]


@pytest.fixture
def assembler():
    return ContextAssembler(get_default_tokenizer())


def _code_sections(context):
    return [s for s in context.sections if s.chunk_id is not None]


def test_rename_task_includes_definition_and_call_sites_in_full(assembler):
    definition = make_chunk("computeTotal", file_path="src/billing/totals.py")
    call_sites = [
        make_chunk("renderReport", content="def renderReport(x):\n    return computeTotal(x)", file_path="src/billing/report.py"),
        make_chunk("handle", content="def handle(x):\n    return computeTotal(x) * 2", file_path="src/web/app.py"),
    ]
    task = TransformationTask("rename function computeTotal used in 3 files")

    context = assembler.assemble(
        ranked([scored(definition, 0.95)] + [scored(c, 0.6) for c in call_sites]),
        task,
        budget=5000,
        file_paths=FILE_PATHS,
    )

    code = _code_sections(context)
    assert context.included_chunks == 3
    assert context.excluded_chunks == 0
    assert not any(s.summarized for s in code)
    assert code[0].chunk_id == definition.chunk_id
    assert code[0].priority == SectionPriority.PRIMARY
    assert context.sections[0].kind == SectionKind.TASK
    assert context.sections[-1].kind == SectionKind.STRUCTURE
    assert context.total_tokens <= 5000


def test_oversized_mandatory_chunk_is_summarized(assembler):
    big = make_chunk("compute_total", content=function_body("compute_total", 40))
    assert big.token_count > 400

    context = assembler.assemble(
        [scored(big, 0.95)], TransformationTask("Speed up compute_total"), budget=200
    )

    section = context.section_for(big.chunk_id)
    assert section is not None
    assert section.summarized
    assert section.kind == SectionKind.SUMMARY
    assert context.total_tokens <= 200
    assert context.summarized_chunk_ids == [big.chunk_id]


def _helpers(count):
    return [scored(make_chunk(f"helper_{i}", file_path="src/billing/helpers.py"), 0.5) for i in range(count)]


def test_mandatory_chunk_that_fits_stays_full_ahead_of_helpers(assembler):
    tokenizer = get_default_tokenizer()
    big = scored(make_chunk("compute_total", content=function_body("compute_total", 40)), 0.95)
    task = TransformationTask("Speed up compute_total")
    task_tokens = ContextSection.create(tokenizer, SectionKind.TASK, SectionPriority.PRIMARY, task.description).token_count
    full = ContextSection.for_chunk(tokenizer, big, SectionPriority.PRIMARY)
    budget = task_tokens + full.token_count + 300

    context = assembler.assemble(ranked([big] + _helpers(40)), task, budget=budget)

    section = context.section_for(big.chunk_id)
    assert section is not None
    assert not section.summarized
    assert context.included_chunks > 1
    assert context.total_tokens <= budget


def test_helpers_wait_until_mandatory_chunks_are_in_full(assembler):
    tokenizer = get_default_tokenizer()
    big = scored(make_chunk("compute_total", content=function_body("compute_total", 40)), 0.95)
    task = TransformationTask("Speed up compute_total")
    task_tokens = ContextSection.create(tokenizer, SectionKind.TASK, SectionPriority.PRIMARY, task.description).token_count
    summary = ContextSection.for_chunk(
        tokenizer,
        big,
        SectionPriority.PRIMARY,
        content=ChunkSummarizer(tokenizer).summarize(big.chunk),
        summarized=True,
    )
    budget = task_tokens + summary.token_count + 150

    context = assembler.assemble(ranked([big] + _helpers(40)), task, budget=budget)

    assert context.chunk_ids == [big.chunk_id]
    assert context.section_for(big.chunk_id).summarized


def test_low_relevance_candidates_leave_only_task_and_structure(assembler):
    chunks = [scored(make_chunk(f"fn_{i}"), 0.1 * i) for i in range(3)]

    context = assembler.assemble(
        ranked(chunks), TransformationTask("Document the module"), budget=2000, file_paths=FILE_PATHS
    )

    assert context.included_chunks == 0
    assert context.excluded_chunks == 3
    assert [s.kind for s in context.sections] == [SectionKind.TASK, SectionKind.STRUCTURE]


def test_referenced_interface_is_pulled_in_below_threshold(assembler):
    mandatory = make_chunk(
        "compute_total",
        content="def compute_total(invoice: Invoice) -> float:\n    return invoice.total",
        dependencies=["Invoice"],
    )
    interface = make_chunk(
        "Invoice",
        content="class Invoice(Protocol):\n    total: float",
        kind=ChunkKind.INTERFACE,
        file_path="src/billing/models.py",
    )
    items = ranked([scored(mandatory, 0.95), scored(interface, 0.05)])
    task = TransformationTask("Tidy compute_total")

    with_types = assembler.assemble(items, task, budget=2000)
    without_types = assembler.assemble(items, task, budget=2000, include_types=False)

    section = with_types.section_for(interface.chunk_id)
    assert section is not None
    assert section.priority == SectionPriority.TYPE
    assert without_types.section_for(interface.chunk_id) is None


def test_fill_stops_at_first_chunk_that_does_not_fit(assembler):
    tokenizer = get_default_tokenizer()
    small = scored(make_chunk("small_fn"), 0.8)
    large = scored(make_chunk("large_fn", content=function_body("large_fn", 80)), 0.7)
    tail = scored(make_chunk("tail_fn"), 0.6)
    task = TransformationTask("Optimize")

    def cheapest(item):
        full = ContextSection.for_chunk(tokenizer, item, SectionPriority.CONTEXT)
        summary = ContextSection.for_chunk(
            tokenizer,
            item,
            SectionPriority.CONTEXT,
            content=ChunkSummarizer(tokenizer).summarize(item.chunk),
            summarized=True,
        )
        return min(full.token_count, summary.token_count)

    task_tokens = ContextSection.create(tokenizer, SectionKind.TASK, SectionPriority.PRIMARY, "Optimize").token_count
    # The tail would fit on its own, but only after the larger chunk before it
    assert cheapest(large) > cheapest(tail)
    budget = task_tokens + cheapest(small) + cheapest(tail)

    context = assembler.assemble(ranked([small, large, tail]), task, budget=budget)

    assert context.chunk_ids == [small.chunk_id]


def test_mandatory_content_that_cannot_fit_raises_with_partial_context(assembler):
    tokenizer = get_default_tokenizer()
    task = TransformationTask("Fix")
    task_tokens = ContextSection.create(tokenizer, SectionKind.TASK, SectionPriority.PRIMARY, "Fix").token_count
    big = make_chunk("compute_total", content=function_body("compute_total", 20))

    with pytest.raises(BudgetExceededAfterCompression) as exc_info:
        assembler.assemble([scored(big, 0.99)], task, budget=task_tokens + 2)

    error = exc_info.value
    assert error.unplaced_chunk_ids == [big.chunk_id]
    assert error.partial_context is not None
    assert error.partial_context.total_tokens <= task_tokens + 2
    assert error.reason_code.value == "CTX_3001"


def test_task_larger_than_budget_raises(assembler):
    with pytest.raises(BudgetExceededAfterCompression):
        assembler.assemble([], TransformationTask("word " * 200), budget=20)


def test_structure_overview_is_truncated_to_remaining_budget(assembler):
    tokenizer = get_default_tokenizer()
    paths = [f"pkg/module_{i}/file_{i}.py" for i in range(400)]
    task = TransformationTask("Describe the layout")

    context = assembler.assemble([], task, budget=120, file_paths=paths)

    structure = context.sections[-1]
    assert structure.kind == SectionKind.STRUCTURE
    assert context.total_tokens <= 120
    assert tokenizer.count_tokens(structure.content) < tokenizer.count_tokens("\n".join(paths))


def test_order_sections_groups_then_score_then_complexity():
    tokenizer = get_default_tokenizer()

    def section(name, priority, score, complexity):
        chunk = make_chunk(name, complexity=complexity)
        return ContextSection.for_chunk(tokenizer, scored(chunk, score), priority)

    task = ContextSection.create(tokenizer, SectionKind.TASK, SectionPriority.PRIMARY, "Task")
    structure = ContextSection.create(tokenizer, SectionKind.STRUCTURE, SectionPriority.CONTEXT, "src/")
    sections = [
        structure,
        section("ctx_low", SectionPriority.CONTEXT, 0.4, 1),
        section("type_a", SectionPriority.TYPE, 0.2, 1),
        section("primary_simple", SectionPriority.PRIMARY, 0.95, 1),
        section("primary_complex", SectionPriority.PRIMARY, 0.95, 9),
        task,
    ]

    ordered = order_sections(sections)

    assert ordered[0] is task
    assert ordered[-1] is structure
    names = [s.content.split("(")[0].removeprefix("def ") for s in ordered[1:-1]]
    assert names == ["primary_complex", "primary_simple", "type_a", "ctx_low"]
