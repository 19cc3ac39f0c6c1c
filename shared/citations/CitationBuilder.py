from collections import Counter

from shared.models.citation import Citation, CitationStatistics
from shared.models.vectorstore import SearchResult


def build_citations(results: list[SearchResult]) -> list[Citation]:
    """Number search results [1..N] as citations, in result order.

    Args:
        results (list[SearchResult]): Ranked search results.

    Returns:
        list[Citation]: One citation per result; source and file are the filename.
    """
    return [
        Citation(
            index=i,
            source=result.filename,
            snippet=result.snippet,
            file=result.filename,
            relevance=result.score,
        )
        for i, result in enumerate(results, start=1)
    ]


def compute_statistics(citations: list[Citation]) -> CitationStatistics:
    """Summarise a set of citations per source.

    Citations without relevance do not count towards the average.
    """
    distribution = Counter(citation.source or "unknown" for citation in citations)
    relevances = [citation.relevance for citation in citations if citation.relevance is not None]
    return CitationStatistics(
        total_citations=len(citations),
        unique_sources=len(distribution),
        source_distribution=dict(distribution),
        avg_relevance=round(sum(relevances) / len(relevances), 4) if relevances else 0.0,
    )
