"""
Command-Line Interface for semse.

One command per pipeline stage, plus `query` and `serve`. Every batch
command logs each file's outcome and a final tally; per-file failures do
not change the exit status, fatal errors exit with status 1.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from .config import settings
from .core.errors import SemseError
from .embeddings.embedder import Embedder
from .llm.client import CompletionClient
from .pipeline.queue import run_stage
from .pipeline.stages import (
    EmbeddingStage,
    ExportStage,
    ImportStage,
    KeyingStage,
    StructuringStage,
)
from .search.engine import SearchEngine
from .storage.store import open_store

logger = logging.getLogger("semse.cli")

app = typer.Typer(help="Semantic search over text documents, backed by Redis.")

Force = Annotated[bool, typer.Option("--force", "-f", help="Overwrite existing documents.")]
Simulate = Annotated[bool, typer.Option("--simulate", "-s", help="Simulate, don't actually do anything.")]
Dest = Annotated[
    Optional[Path],
    typer.Option("--dest", "-d", help="Destination folder. Defaults to the source folder."),
]
Limit = Annotated[Optional[int], typer.Option("--limit", min=1, help="Process at most this many files.")]
Prefix = Annotated[str, typer.Option("--prefix", "-p", help="Key prefix.")]
Index = Annotated[str, typer.Option("--index", "-i", help="Index name.")]
Folder = Annotated[Path, typer.Argument(help="Source folder.")]


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
):
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )


def _run(coro) -> None:
    """Run a command coroutine; fatal errors end the process with status 1."""
    try:
        asyncio.run(coro)
    except SemseError as e:
        logger.error("Failed: %s", e)
        raise typer.Exit(code=1)


@app.command()
def txt2json(folder: Folder, dest: Dest = None, force: Force = False, simulate: Simulate = False, limit: Limit = None):
    """Parse text files into datasets."""
    async def _main():
        stage = StructuringStage(
            CompletionClient(), folder, dest or folder, force=force, simulate=simulate
        )
        await run_stage(stage, folder, limit=limit, concurrency=settings.pipeline_concurrency)

    _run(_main())


@app.command(name="add-embeddings")
def add_embeddings(folder: Folder, dest: Dest = None, force: Force = False, simulate: Simulate = False, limit: Limit = None):
    """
    Add embeddings to datasets. Sources are either keyed datasets
    ({"key", "value"}) or plain objects containing a "title" and a "body".
    """
    async def _main():
        stage = EmbeddingStage(Embedder(), folder, dest or folder, force=force, simulate=simulate)
        await run_stage(stage, folder, limit=limit, concurrency=settings.pipeline_concurrency)

    _run(_main())


@app.command()
def json2redis(
    folder: Folder,
    prefix: Prefix = settings.document_prefix,
    dest: Dest = None,
    force: Force = False,
    simulate: Simulate = False,
    flatten: Annotated[bool, typer.Option("--flatten", help="Name output files after their key.")] = False,
    limit: Limit = None,
):
    """Turn validated datasets into keyed datasets ({key, value}) with new keys."""
    async def _main():
        stage = KeyingStage(
            prefix,
            folder,
            dest or folder,
            flatten=flatten,
            dimensions=settings.dimensions,
            force=force,
            simulate=simulate,
        )
        await run_stage(stage, folder, limit=limit)

    _run(_main())


@app.command(name="import-redis")
def import_redis(
    folder: Folder,
    prefix: Prefix = settings.document_prefix,
    index: Index = settings.document_index,
    force: Force = False,
    simulate: Simulate = False,
    limit: Limit = None,
):
    """Import keyed datasets into redis, creating the index if needed."""
    async def _main():
        async with open_store(settings) as store:
            stage = ImportStage(store, index, prefix, folder, force=force, simulate=simulate)
            await run_stage(stage, folder, limit=limit)

    _run(_main())


@app.command(name="export-redis")
def export_redis(
    dest: Annotated[Path, typer.Argument(help="Destination folder.")],
    prefix: Prefix = settings.document_prefix,
    force: Force = False,
    limit: Limit = None,
):
    """Export every document under a prefix into keyed datasets."""
    async def _main():
        async with open_store(settings) as store:
            tally = await ExportStage(store, prefix, dest, force=force).run(limit=limit)
            logger.info(tally.summary(ExportStage.verb))

    _run(_main())


@app.command()
def query(
    text: Annotated[str, typer.Argument(help="Query text.")],
    count: Annotated[int, typer.Option("--count", "-n", help="Number of results.")] = 5,
    start: Annotated[int, typer.Option("--start", help="Number of results to skip.")] = 0,
):
    """Run a semantic search against the index."""
    async def _main():
        async with open_store(settings) as store:
            engine = SearchEngine(store, Embedder(), settings.document_index, settings.document_prefix)
            results = await engine.search(text, size=count, offset=start)
        if not results:
            typer.echo("No matches.")
        for rank, result in enumerate(results, start=start + 1):
            date = result.date.isoformat() if result.date else "-"
            typer.echo(f"{rank:>3}. [{result.score:.4f}] {result.title} ({date}) {result.id}")

    _run(_main())


@app.command()
def serve(
    host: Annotated[Optional[str], typer.Option(help="Bind address.")] = None,
    port: Annotated[Optional[int], typer.Option(help="Bind port.")] = None,
):
    """Start the query server."""
    import uvicorn

    uvicorn.run(
        "semse.main:app",
        host=host or settings.hostname,
        port=port or settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    app()
