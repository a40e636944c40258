"""Schemas for the MCP tools: input contracts and the JSON documents they return."""

from typing import Any, Literal

from pydantic import BaseModel, Field


class SearchInput(BaseModel):
    """Arguments for the search tool."""

    query: str = Field(..., min_length=1, description="Free-text question or search query.")


class FetchInput(BaseModel):
    """Arguments for the fetch tool."""

    reference: str = Field(..., min_length=1, description="Reference of a search result (from search).")


class AnswerInput(BaseModel):
    """Arguments for the answer tool. Without style/min_words Perplexity picks the length."""

    query: str = Field(..., min_length=1, description="Question to send to Perplexity.")
    style: Literal["short", "medium", "long"] | None = Field(
        None, description="Length hint: short (~60 words), medium (~160), long (~300)."
    )
    min_words: int | None = Field(None, gt=0, description="Minimum target word count; raises the style floor.")


class SearchResult(BaseModel):
    """One search hit. Derived from the query alone; never stored."""

    reference: str
    title: str
    url: str


class SearchResponse(BaseModel):
    results: list[SearchResult]


class FetchedDocument(BaseModel):
    """Full answer text for the query a reference denotes."""

    reference: str
    title: str
    text: str
    url: str
    metadata: dict[str, Any] = Field(default_factory=dict)
