"""
Shared fixtures.

External services and the Redis client are always mocked; no test talks to
the network.
"""

import json
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from semse.embeddings.embedder import Embedder
from semse.llm.client import CompletionClient

DIMENSIONS = 4


def write_json(path: Path, payload) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def read_json(path: Path):
    return json.loads(path.read_text(encoding="utf-8"))


@pytest.fixture
def mock_embedder():
    mock = AsyncMock(spec=Embedder)
    mock.embed_one.return_value = [0.1, 0.2, 0.3, 0.4]
    return mock


@pytest.fixture
def mock_completion():
    mock = AsyncMock(spec=CompletionClient)
    mock.complete.return_value = json.dumps(
        {"title": "A title", "date": "2024-02-28T08:57:26.009Z"}
    )
    return mock


@pytest.fixture
def sample_record():
    return {
        "title": "Redis vector search",
        "body": "Redis can index vectors with a FLAT algorithm.",
        "date": "2024-02-28T08:57:26.009Z",
    }
