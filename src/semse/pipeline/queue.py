"""
Async queue driving a pipeline stage over a folder tree.

The walker produces one job per file into a bounded queue; a fixed number
of workers (one by default) consume jobs. With a single worker, files are
fully processed one at a time, in walker order, so external service rate
limits and per-file accounting stay simple. A higher concurrency must be
derived from the external service's rate limit.
"""
import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .stages import FileStage
from .walker import BatchTally, walk

logger = logging.getLogger("semse.queue")


@dataclass
class FileJob:
    """One file to run through a stage."""
    root: Path
    relative_path: Path


class StageQueue:
    """Bounded producer/consumer queue for one stage run."""

    def __init__(self, stage: FileStage, concurrency: int = 1):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.stage = stage
        self.concurrency = concurrency
        self._queue: asyncio.Queue[FileJob] = asyncio.Queue(maxsize=concurrency)

    async def _enqueue(self, root: Path, relative_path: Path, tally: BatchTally) -> None:
        await self._queue.put(FileJob(root=root, relative_path=relative_path))

    async def _worker(self, tally: BatchTally) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self.stage(job.root, job.relative_path, tally)
            finally:
                self._queue.task_done()

    async def run(self, root: Path, limit: Optional[int] = None) -> BatchTally:
        """
        Walk `root` and process every file. Returns the batch tally.

        Raises TraversalError if `root` cannot be listed.
        """
        tally = BatchTally()
        workers = [
            asyncio.create_task(self._worker(tally))
            for _ in range(self.concurrency)
        ]
        try:
            await walk(root, self._enqueue, tally, limit=limit)
            await self._queue.join()
        finally:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
        return tally


async def run_stage(
    stage: FileStage,
    root: Path,
    limit: Optional[int] = None,
    concurrency: int = 1,
) -> BatchTally:
    """
    Prepare `stage`, run it over every file below `root` and log the tally.

    Errors from `prepare()` (e.g. the store is unreachable) and from listing
    `root` propagate; per-file errors never do.
    """
    await stage.prepare()
    tally = await StageQueue(stage, concurrency=concurrency).run(Path(root), limit=limit)
    logger.info(tally.summary(stage.verb))
    return tally
