import pytest

from shared.citations.CitationBuilder import build_citations, compute_statistics
from shared.citations.CitationValidator import CitationValidator
from shared.models.citation import Citation
from shared.models.vectorstore import SearchResult


def test_build_citations_numbers_results_in_order():
    results = [
        SearchResult(file_id="file-1", filename="a.md", snippet="Alpha passage about search.", score=0.9),
        SearchResult(file_id="file-2", filename="b.md", snippet="Beta passage about search.", score=0.4),
    ]
    citations = build_citations(results)

    assert [c.index for c in citations] == [1, 2]
    assert citations[0].source == "a.md"
    assert citations[0].file == "a.md"
    assert citations[1].relevance == 0.4
    CitationValidator().verify_citation_response("Alpha [1] and beta [2].", citations)


def test_compute_statistics():
    citations = [
        Citation(index=1, source="Paper A", relevance=0.8),
        Citation(index=2, source="Paper A", relevance=0.6),
        Citation(index=3, source="Paper B"),
        Citation(index=4, source=None, relevance=1.0),
    ]
    stats = compute_statistics(citations)

    assert stats.total_citations == 4
    assert stats.unique_sources == 3
    assert stats.source_distribution == {"Paper A": 2, "Paper B": 1, "unknown": 1}
    assert stats.avg_relevance == pytest.approx(0.8)


def test_compute_statistics_empty():
    stats = compute_statistics([])
    assert stats.total_citations == 0
    assert stats.avg_relevance == 0.0
