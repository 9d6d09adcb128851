"""
Bounded-context packing.

The assembler decides which ranked chunks enter the context and in which
form (full content or summary) so that the rendered total never exceeds the
token budget.

Packing runs in three phases:

1. Reservation: the task, mandatory chunks and referenced types reserve
   their cheapest form.
2. Mandatory upgrade: mandatory summaries are replaced by full content, in
   score order, while the budget allows. Remaining chunks above the minimum
   threshold are only considered once every mandatory chunk is in full; they
   reserve their cheapest form until one does not fit.
3. Upgrade: the remaining summaries are replaced by full content, in
   selection order, while the budget allows.

The room left for lower-priority chunks is zero until the budget covers
every mandatory chunk in full and grows with the budget after that, so a
larger budget can never drop a chunk that a smaller one included.
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from ctxpack.core.errors import BudgetExceededAfterCompression
from ctxpack.core.tokenizer import TokenizerInterface, get_default_tokenizer

from .compressor import ContextCompressor
from .models import (
    TYPE_KINDS,
    CompressionLevel,
    ContextSection,
    OptimizedContext,
    ScoredChunk,
    SectionKind,
    SectionPriority,
    TransformationTask,
)
from .structure import build_structure_overview
from .summarizer import ChunkSummarizer

logger = logging.getLogger(__name__)

_WORD = re.compile(r"[A-Za-z_$][A-Za-z0-9_$]*")

DEFAULT_MANDATORY_THRESHOLD = 0.9
DEFAULT_MINIMUM_THRESHOLD = 0.3


def _section_group(section: ContextSection) -> int:
    if section.kind == SectionKind.TASK:
        return 0
    if section.kind == SectionKind.STRUCTURE:
        return 4
    return 1 + section.priority.rank


def order_sections(sections: Iterable[ContextSection]) -> list[ContextSection]:
    """
    Final section order: task, primary code, types, supporting context,
    structure overview; within a group by score desc, complexity desc,
    chunk id.
    """
    return sorted(
        sections,
        key=lambda s: (_section_group(s), -s.score, -s.complexity, s.chunk_id or ""),
    )


@dataclass
class _Choice:
    """A chunk selected for the context and the form it currently takes."""

    scored: ScoredChunk
    priority: SectionPriority
    full: ContextSection
    summary: ContextSection
    current: ContextSection

    @property
    def chunk_id(self) -> str:
        return self.scored.chunk_id


class ContextAssembler:
    """
    Packs ranked chunks into a token budget.

    Example:
        assembler = ContextAssembler(tokenizer)
        context = assembler.assemble(ranked, task, budget=6000, file_paths=paths)
        assert context.total_tokens <= 6000
    """

    def __init__(
        self,
        tokenizer: Optional[TokenizerInterface] = None,
        summarizer: Optional[ChunkSummarizer] = None,
        compressor: Optional[ContextCompressor] = None,
        mandatory_threshold: float = DEFAULT_MANDATORY_THRESHOLD,
        minimum_threshold: float = DEFAULT_MINIMUM_THRESHOLD,
    ):
        self._tokenizer = tokenizer or get_default_tokenizer()
        self._summarizer = summarizer or ChunkSummarizer(self._tokenizer)
        self._compressor = compressor or ContextCompressor(self._tokenizer)
        self._mandatory_threshold = mandatory_threshold
        self._minimum_threshold = minimum_threshold

    def assemble(
        self,
        ranked: Sequence[ScoredChunk],
        task: TransformationTask,
        budget: int,
        file_paths: Iterable[str] = (),
        include_types: bool = True,
    ) -> OptimizedContext:
        """
        Pack ``ranked`` chunks into ``budget`` tokens.

        Args:
            ranked: Scored chunks in descending score order
            task: The transformation task; its description is always included
            budget: Token budget for the whole context
            file_paths: Repository file list for the structure overview
            include_types: Pull in interface chunks referenced by mandatory code

        Returns:
            OptimizedContext with sections in final order

        Raises:
            BudgetExceededAfterCompression: If the task description, a
                mandatory chunk or a referenced type cannot be placed even
                summarized and after compressing the other code sections
        """
        task_section = ContextSection.create(
            self._tokenizer, SectionKind.TASK, SectionPriority.PRIMARY, task.description
        )
        if task_section.token_count > budget:
            raise BudgetExceededAfterCompression(
                f"Task description needs {task_section.token_count} tokens, "
                f"above the budget of {budget}",
                partial_context=OptimizedContext.from_sections([], budget, 0, len(ranked)),
            )

        state = _PackingState(budget - task_section.token_count)
        unplaced: list[str] = []

        mandatory = [s for s in ranked if s.score >= self._mandatory_threshold]
        for scored in mandatory:
            if not self._place_required(state, scored, SectionPriority.PRIMARY):
                unplaced.append(scored.chunk_id)

        if include_types:
            for scored in self._referenced_types(ranked, state):
                if not self._place_required(state, scored, SectionPriority.TYPE):
                    unplaced.append(scored.chunk_id)

        if unplaced:
            partial = self._finish(task_section, state, budget, len(ranked), [])
            logger.warning(
                f"Could not place {len(unplaced)} required chunk(s) within {budget} tokens",
                extra={"unplaced": unplaced},
            )
            raise BudgetExceededAfterCompression(
                f"{len(unplaced)} required chunk(s) do not fit in {budget} tokens "
                "even summarized and compressed",
                partial_context=partial,
                unplaced_chunk_ids=unplaced,
            )

        # Mandatory chunks take their full form before lower-priority chunks get any room
        self._upgrade(state, SectionPriority.PRIMARY)
        summarized = [
            c.chunk_id for c in state.choices
            if c.priority == SectionPriority.PRIMARY and c.current.summarized
        ]
        if summarized:
            logger.info(
                f"{len(summarized)} mandatory chunk(s) included as summaries within {budget} tokens",
                extra={"summarized": summarized},
            )

        # A squeezed reservation leaves no room that later budgets could rely on
        if not state.squeezed and not summarized:
            for scored in ranked:
                if scored.chunk_id in state.chosen_ids or scored.score < self._minimum_threshold:
                    continue
                priority = (
                    SectionPriority.TYPE if scored.chunk.kind in TYPE_KINDS else SectionPriority.CONTEXT
                )
                choice = self._make_choice(scored, priority)
                if choice.current.token_count > state.remaining:
                    break
                state.add(choice)

        self._upgrade(state)
        return self._finish(task_section, state, budget, len(ranked), file_paths)

    def _make_choice(self, scored: ScoredChunk, priority: SectionPriority) -> _Choice:
        full = ContextSection.for_chunk(self._tokenizer, scored, priority)
        summary = ContextSection.for_chunk(
            self._tokenizer,
            scored,
            priority,
            content=self._summarizer.summarize(scored.chunk),
            summarized=True,
        )
        current = summary if summary.token_count < full.token_count else full
        return _Choice(scored=scored, priority=priority, full=full, summary=summary, current=current)

    def _place_required(self, state: "_PackingState", scored: ScoredChunk, priority: SectionPriority) -> bool:
        """Reserve a chunk that must not be dropped; reclaim space if needed."""
        choice = self._make_choice(scored, priority)
        for attempt in range(2):
            if choice.current.token_count <= state.remaining:
                state.add(choice)
                return True
            squeezed = self._shrink_summary(choice.summary, state.remaining)
            if squeezed is not None:
                choice.current = squeezed
                state.squeezed = True
                state.add(choice)
                return True
            if attempt == 0 and not self._reclaim(state):
                break
        return False

    def _shrink_summary(self, summary: ContextSection, available: int) -> Optional[ContextSection]:
        """Drop trailing summary lines until the section fits; None if nothing fits."""
        lines = summary.content.split("\n")
        while lines:
            candidate = summary.with_content(self._tokenizer, "\n".join(lines))
            if candidate.token_count <= available:
                return candidate
            lines.pop()
        return None

    def _reclaim(self, state: "_PackingState") -> bool:
        """Compress reserved full-content sections aggressively. True if space was freed."""
        freed = 0
        for choice in state.choices:
            if choice.current is not choice.full:
                continue
            compressed = self._compressor.compress_section(choice.full, CompressionLevel.AGGRESSIVE)
            if compressed.token_count < choice.full.token_count:
                freed += choice.full.token_count - compressed.token_count
                choice.full = compressed
                choice.current = compressed
        state.compressed = True
        state.squeezed = True
        if freed:
            state.recount()
            logger.info(f"Reclaimed {freed} tokens by compressing included code")
        return freed > 0

    def _referenced_types(self, ranked: Sequence[ScoredChunk], state: "_PackingState") -> list[ScoredChunk]:
        """Interface chunks whose declared names the chosen code refers to."""
        referenced: set[str] = set()
        for choice in state.choices:
            chunk = choice.scored.chunk
            referenced.update(chunk.dependencies)
            referenced.update(_WORD.findall(chunk.content))

        types = []
        for scored in ranked:
            chunk = scored.chunk
            if chunk.kind not in TYPE_KINDS or chunk.chunk_id in state.chosen_ids:
                continue
            if chunk.symbols & referenced:
                types.append(scored)
        return types

    def _upgrade(self, state: "_PackingState", priority: Optional[SectionPriority] = None) -> None:
        for choice in state.choices:
            if choice.current is choice.full or (priority is not None and choice.priority != priority):
                continue
            full = choice.full
            if state.compressed:
                full = self._compressor.compress_section(full, CompressionLevel.AGGRESSIVE)
            extra = full.token_count - choice.current.token_count
            if extra <= state.remaining:
                choice.current = full
                state.remaining -= extra

    def _finish(
        self,
        task_section: ContextSection,
        state: "_PackingState",
        budget: int,
        candidate_count: int,
        file_paths: Iterable[str],
    ) -> OptimizedContext:
        sections = [task_section] + [choice.current for choice in state.choices]
        structure = self._structure_section(file_paths, state.remaining)
        if structure is not None:
            sections.append(structure)

        included = len(state.choices)
        return OptimizedContext.from_sections(
            order_sections(sections),
            budget=budget,
            included_chunks=included,
            excluded_chunks=candidate_count - included,
            compression_level=CompressionLevel.AGGRESSIVE if state.compressed else CompressionLevel.NONE,
        )

    def _structure_section(self, file_paths: Iterable[str], available: int) -> Optional[ContextSection]:
        if available <= 0:
            return None
        overview = build_structure_overview(file_paths)
        if not overview:
            return None

        overview = self._tokenizer.truncate_to_tokens(overview, available)
        lines = overview.split("\n") if overview else []
        while lines:
            section = ContextSection.create(
                self._tokenizer, SectionKind.STRUCTURE, SectionPriority.CONTEXT, "\n".join(lines)
            )
            if section.token_count <= available:
                return section
            lines.pop()
        return None


class _PackingState:
    """Chosen chunks and the budget left after their current forms."""

    def __init__(self, available: int):
        self.available = available
        self.remaining = available
        self.choices: list[_Choice] = []
        self.chosen_ids: set[str] = set()
        # A required chunk was summarized below its cheapest form or code was compressed
        self.squeezed = False
        self.compressed = False

    def add(self, choice: _Choice) -> None:
        self.choices.append(choice)
        self.chosen_ids.add(choice.chunk_id)
        self.remaining -= choice.current.token_count

    def recount(self) -> None:
        self.remaining = self.available - sum(c.current.token_count for c in self.choices)
