"""Pydantic models for citations attached to generated responses."""

from pydantic import BaseModel, ConfigDict


class Citation(BaseModel):
    """A numbered reference ([N]) from a generated response to a source snippet.

    Citations are immutable once created. Field values are deliberately not
    constrained here: structural rules are checked by CitationValidator so that
    a misbehaving generator is reported as a contract violation.
    """

    model_config = ConfigDict(frozen=True)

    index: int
    source: str | None = None
    snippet: str | None = None
    file: str | None = None
    page: int | None = None
    relevance: float | None = None


class CitationValidationOptions(BaseModel):
    require_source: bool = True
    require_snippet: bool = True
    require_file: bool = False
    min_relevance: float = 0.0


class CitationExpectations(BaseModel):
    """Expectations checked by CitationValidator.verify_citation_response()."""

    min_citations: int = 1
    max_citations: int = 10
    required_sources: list[str] = []
    min_quality: float = 0.3
    query: str | None = None


class CitationStatistics(BaseModel):
    total_citations: int
    unique_sources: int
    source_distribution: dict[str, int]
    avg_relevance: float
