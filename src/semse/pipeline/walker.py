"""
Directory Walker

Recursively enumerates a folder tree and drives an async per-file operation,
strictly one file at a time. The walker has no business logic: it never
looks at outcomes and never stops because a single file failed. Success,
skip and failure accounting is done by the operation through the shared
`BatchTally`.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Optional

from ..core.errors import TraversalError

logger = logging.getLogger("semse.walker")


@dataclass
class BatchTally:
    """Outcome counters shared by every file of one batch."""

    succeeded: int = 0
    skipped: int = 0
    failed: int = 0

    def record(self, outcome: str) -> None:
        """Count one outcome: "succeeded", "skipped" or "failed"."""
        if outcome == "succeeded":
            self.succeeded += 1
        elif outcome == "skipped":
            self.skipped += 1
        else:
            self.failed += 1

    @property
    def total(self) -> int:
        return self.succeeded + self.skipped + self.failed

    def summary(self, verb: str = "processed") -> str:
        return (
            f"Finished: {self.succeeded} documents {verb}, "
            f"{self.skipped} skipped, {self.failed} failed."
        )


FileOperation = Callable[[Path, Path, BatchTally], Awaitable[None]]


def _list_dir(folder: Path) -> list[os.DirEntry]:
    with os.scandir(folder) as it:
        return sorted(it, key=lambda entry: entry.name)


async def walk(
    root: Path | str,
    operation: FileOperation,
    tally: Optional[BatchTally] = None,
    limit: Optional[int] = None,
) -> BatchTally:
    """
    Visit every regular file below `root`, depth-first, in name order.
    Symlinked folders are not descended into.

    Parameters
    ----------
    root : Path | str
        Folder to traverse.
    operation : FileOperation
        Awaited as `operation(root, relative_path, tally)` once per file.
    tally : Optional[BatchTally]
        Accumulator handed to every call. A fresh one is created if omitted.
    limit : Optional[int]
        Maximum number of files to visit in this run.

    Returns
    -------
    BatchTally
        The accumulator after the walk.

    Raises
    ------
    TraversalError
        If `root` cannot be listed.
    """
    root = Path(root)
    tally = tally if tally is not None else BatchTally()

    try:
        entries = _list_dir(root)
    except OSError as exc:
        raise TraversalError(f"Cannot list folder '{root}': {exc.strerror or exc}") from exc

    visited = 0
    # (relative folder, entries not yet visited), innermost last
    stack = [(Path("."), iter(entries))]

    while stack:
        if limit is not None and visited >= limit:
            logger.info("File limit of %d reached, stopping walk.", limit)
            break

        rel_folder, pending = stack[-1]
        entry = next(pending, None)
        if entry is None:
            stack.pop()
            continue

        rel_path = rel_folder / entry.name

        if entry.is_dir(follow_symlinks=False):
            try:
                stack.append((rel_path, iter(_list_dir(root / rel_path))))
            except OSError as exc:
                logger.error("%s: cannot list folder: %s", rel_path, exc)
                tally.failed += 1
            continue

        if not entry.is_file():
            continue

        visited += 1
        await operation(root, rel_path, tally)

    return tally
