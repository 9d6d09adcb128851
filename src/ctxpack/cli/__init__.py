"""
CLI for ctxpack.

Provides commands to chunk a file, index a directory and assemble the
budgeted context for a transformation task.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
)
from rich.syntax import Syntax
from rich.table import Table

from ctxpack.core.config import CtxpackConfig, load_config
from ctxpack.core.context import CompressionLevel, TransformationTask
from ctxpack.core.errors import ContextPipelineError
from ctxpack.core.source_files import SourceFile
from ctxpack.services import IndexingResult, ServicesContainer, create_services

# Initialize Rich Console
console = Console()

app = typer.Typer(
    name="ctxpack",
    help="Context budgeting for code transformation prompts",
    add_completion=False,
)

_config_option = typer.Option(None, "--config", "-c", help="Configuration file (.yaml or .json)")


def _load(config_path: Optional[Path]) -> CtxpackConfig:
    load_dotenv()
    config = load_config(config_path)
    logging.basicConfig(level=config.logging.level.upper(), format=config.logging.format)
    return config


def _fail(message: str) -> None:
    console.print(f"[bold red]Error:[/bold red] {message}")
    raise typer.Exit(1)


async def _index(services: ServicesContainer, path: Path, progress: Progress) -> IndexingResult:
    task = progress.add_task("Scanning...", total=None)

    def update_progress(current: int, total: int, message: str) -> None:
        progress.update(task, completed=current, total=total, description=message)

    services.indexing_service.progress_callback = update_progress
    try:
        return await services.indexing_service.index_directory(path)
    finally:
        services.indexing_service.progress_callback = None


def _progress() -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
        transient=True,
    )


def _print_index_summary(result: IndexingResult) -> None:
    summary = Table.grid(padding=1)
    summary.add_column(style="bold")
    summary.add_column()
    summary.add_row("Total Files:", str(result.total_files))
    summary.add_row("Total Chunks:", str(result.total_chunks))
    summary.add_row("Embedded Chunks:", str(result.embedded_chunks))
    summary.add_row("Generation:", str(result.generation))
    summary.add_row("Duration:", f"{result.duration_seconds:.2f}s")
    if result.failed_files:
        summary.add_row("Failed Files:", f"[red]{len(result.failed_files)}[/red]")

    console.print(
        Panel(
            summary,
            title="[bold green]Indexing Complete[/bold green]",
            border_style="green",
            expand=False,
        )
    )

    if result.failed_files:
        console.print("\n[bold red]Failed Files:[/bold red]")
        failed = list(result.failed_files.items())
        for path, reason in failed[:5]:
            console.print(f"  - {path}: {reason}")
        if len(failed) > 5:
            console.print(f"  ... and {len(failed) - 5} more")


@app.command()
def chunk(
    file: Path = typer.Argument(..., help="Source file to chunk"),
    config_path: Optional[Path] = _config_option,
):
    """Show the chunks a source file is split into."""
    if not file.is_file():
        _fail(f"Not a file: {file}")

    try:
        config = _load(config_path)
        services = create_services(config=config)
        stat = file.stat()
        source = SourceFile(
            path=file.as_posix(),
            content=file.read_text(encoding="utf-8"),
            modified_time=stat.st_mtime,
        )
        result = services.indexing_service.chunk_file(source)
    except (ContextPipelineError, OSError, UnicodeDecodeError) as e:
        _fail(str(e))

    table = Table(title=f"{result.file_path} ({result.language})")
    table.add_column("Kind", style="cyan")
    table.add_column("Name", style="bold")
    table.add_column("Lines", justify="right")
    table.add_column("Tokens", justify="right")
    table.add_column("Complexity", justify="right")
    table.add_column("Exports")
    for item in result.chunks:
        table.add_row(
            item.kind.value,
            item.qualified_name or "-",
            f"{item.start_line}-{item.end_line}",
            str(item.token_count),
            str(item.complexity),
            ", ".join(item.exports),
        )
    console.print(table)


@app.command()
def index(
    path: Path = typer.Argument(..., help="Directory to index"),
    workers: Optional[int] = typer.Option(
        None, "--workers", "-w", help="Number of parallel workers"
    ),
    config_path: Optional[Path] = _config_option,
):
    """Chunk and embed a directory, reporting what changed."""
    if not path.is_dir():
        _fail(f"Not a directory: {path}")

    console.print(f"[bold blue]Indexing[/bold blue] {path}...")
    try:
        config = _load(config_path)
        if workers is not None:
            config.indexing.max_workers = workers
        services = create_services(config=config)

        async def run() -> IndexingResult:
            try:
                with _progress() as progress:
                    return await _index(services, path, progress)
            finally:
                await services.close()

        result = asyncio.run(run())
    except ContextPipelineError as e:
        _fail(f"[{e.reason_code.value}] {e.message}")

    _print_index_summary(result)


@app.command()
def context(
    path: Path = typer.Argument(..., help="Repository directory"),
    task: str = typer.Argument(..., help="Transformation task description"),
    budget: Optional[int] = typer.Option(
        None, "--budget", "-b", help="Token budget for the assembled context"
    ),
    target_file: Optional[list[str]] = typer.Option(
        None, "--target-file", "-f", help="File the task targets (repeatable)"
    ),
    target_symbol: Optional[list[str]] = typer.Option(
        None, "--target-symbol", "-s", help="Symbol the task targets (repeatable)"
    ),
    referenced_type: Optional[list[str]] = typer.Option(
        None, "--type", "-t", help="Type the task refers to (repeatable)"
    ),
    compression: Optional[str] = typer.Option(
        None, "--compression", help="Compression level: none, light, medium or aggressive"
    ),
    show_report: bool = typer.Option(False, "--report", "-r", help="Show the retrieval report"),
    config_path: Optional[Path] = _config_option,
):
    """Index a repository and print the budgeted context for a task."""
    if not path.is_dir():
        _fail(f"Not a directory: {path}")

    try:
        config = _load(config_path)
        overrides = {}
        if budget is not None:
            overrides["max_context_tokens"] = budget + config.context.reserved_response_tokens
        if compression is not None:
            overrides["compression_level"] = CompressionLevel.parse(compression)
        context_config = config.context.with_overrides(**overrides)
        services = create_services(config=config)
        transformation = TransformationTask(
            description=task,
            target_files=tuple(target_file or ()),
            target_symbols=tuple(target_symbol or ()),
            referenced_types=tuple(referenced_type or ()),
        )

        async def run():
            try:
                with _progress() as progress:
                    await _index(services, path, progress)
                return await services.retrieval_service.prepare(transformation, context_config)
            finally:
                await services.close()

        outcome = asyncio.run(run())
    except ValueError as e:
        _fail(str(e))
    except ContextPipelineError as e:
        _fail(f"[{e.reason_code.value}] {e.message}")

    if not outcome.ok:
        console.print(
            f"[bold red]Context assembly failed[/bold red] "
            f"[{outcome.reason_code.value}]: {outcome.message}"
        )
        if outcome.unplaced_chunk_ids:
            console.print("Unplaced chunks:")
            for chunk_id in outcome.unplaced_chunk_ids:
                console.print(f"  - {chunk_id}")
        raise typer.Exit(2)

    optimized = outcome.context
    console.print(Syntax(optimized.text, "markdown", word_wrap=True))
    console.print(
        f"\n[dim]{optimized.total_tokens}/{optimized.budget} tokens, "
        f"{optimized.included_chunks} chunk(s) included, "
        f"{optimized.excluded_chunks} excluded[/dim]"
    )

    if show_report and outcome.report is not None:
        report = outcome.report
        table = Table(title="Top Scores")
        table.add_column("Score", justify="right", style="green")
        table.add_column("File")
        table.add_column("Name", style="bold")
        for entry in report.top_scores:
            table.add_row(f"{entry.score:.3f}", entry.file_path, entry.name or "-")
        console.print(table)
        if report.unresolved_references:
            console.print("[yellow]Unresolved references:[/yellow]")
            for ref in report.unresolved_references:
                console.print(f"  - {ref.reference_type}: {ref.reference}")


def main():
    app()


if __name__ == "__main__":
    main()
