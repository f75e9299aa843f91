"""
API Models

Pydantic models used for request/response validation on the query server.
Input range checks (empty query, non-positive count) are left to the search
engine so that the HTTP surface and the library report them identically.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class QueryRequest(BaseModel):
    """
    Semantic search request.
    """
    query: str = ""
    start: int = Field(default=0, description="Number of ranked matches to skip.")
    count: int = Field(default=5, description="Maximum number of matches to return.")

    model_config = ConfigDict(extra="forbid")


class HealthResponse(BaseModel):
    status: Literal["ok", "degraded"]
    index: str

    model_config = ConfigDict(extra="forbid")
