"""
Tests for the directory walker and the stage queue.
"""

from pathlib import Path

import pytest

from semse.core.errors import TraversalError
from semse.pipeline.queue import StageQueue
from semse.pipeline.walker import BatchTally, walk


@pytest.fixture
def tree(tmp_path):
    """
    root/
      b.txt
      a.txt
      sub/
        z.txt
        deeper/
          c.txt
      empty/
    """
    (tmp_path / "sub" / "deeper").mkdir(parents=True)
    (tmp_path / "empty").mkdir()
    for rel in ["b.txt", "a.txt", "sub/z.txt", "sub/deeper/c.txt"]:
        (tmp_path / rel).write_text(rel)
    return tmp_path


class Recorder:
    def __init__(self, fail_on=None):
        self.calls = []
        self.fail_on = fail_on

    async def __call__(self, root: Path, relative_path: Path, tally: BatchTally) -> None:
        self.calls.append(relative_path.as_posix())
        if relative_path.as_posix() == self.fail_on:
            tally.failed += 1
        else:
            tally.succeeded += 1


@pytest.mark.asyncio
async def test_visits_every_file_depth_first_in_name_order(tree):
    recorder = Recorder()
    tally = await walk(tree, recorder)

    assert recorder.calls == ["a.txt", "b.txt", "sub/deeper/c.txt", "sub/z.txt"]
    assert tally.succeeded == 4


@pytest.mark.asyncio
async def test_passes_shared_accumulator(tree):
    tally = BatchTally(skipped=2)
    result = await walk(tree, Recorder(fail_on="b.txt"), tally)

    assert result is tally
    assert (tally.succeeded, tally.skipped, tally.failed) == (3, 2, 1)
    assert tally.total == 6


@pytest.mark.asyncio
async def test_limit_caps_visited_files(tree):
    recorder = Recorder()
    await walk(tree, recorder, limit=3)

    assert recorder.calls == ["a.txt", "b.txt", "sub/deeper/c.txt"]


@pytest.mark.asyncio
async def test_missing_root_raises_traversal_error(tmp_path):
    with pytest.raises(TraversalError):
        await walk(tmp_path / "missing", Recorder())


@pytest.mark.asyncio
async def test_root_that_is_a_file_raises_traversal_error(tmp_path):
    path = tmp_path / "file.txt"
    path.write_text("x")
    with pytest.raises(TraversalError):
        await walk(path, Recorder())


@pytest.mark.asyncio
async def test_symlinked_folders_are_not_followed(tree):
    (tree / "sub" / "loop").symlink_to(tree, target_is_directory=True)
    recorder = Recorder()

    tally = await walk(tree, recorder)

    assert recorder.calls == ["a.txt", "b.txt", "sub/deeper/c.txt", "sub/z.txt"]
    assert tally.total == 4


@pytest.mark.asyncio
async def test_stage_queue_processes_files_in_walker_order(tree):
    recorder = Recorder(fail_on="sub/z.txt")
    tally = await StageQueue(recorder).run(tree)

    assert recorder.calls == ["a.txt", "b.txt", "sub/deeper/c.txt", "sub/z.txt"]
    assert (tally.succeeded, tally.failed) == (3, 1)


@pytest.mark.asyncio
async def test_stage_queue_propagates_traversal_error(tmp_path):
    with pytest.raises(TraversalError):
        await StageQueue(Recorder()).run(tmp_path / "missing")


def test_tally_summary():
    tally = BatchTally(succeeded=4, skipped=0, failed=1)
    assert tally.summary("converted") == (
        "Finished: 4 documents converted, 0 skipped, 1 failed."
    )
