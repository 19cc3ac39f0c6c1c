"""Deterministic keyword relevance scoring for the in-memory vector store.

Stands in for embedding similarity. The score of a file for a query is

    score = 0.7 * coverage + 0.3 * density

coverage  share of query tokens found in the content. A token counts 1.0 when it
          is a content token or a substring of the content; otherwise, for
          tokens of 4+ characters, the difflib similarity ratio of the closest
          content token when that ratio reaches FUZZY_CUTOFF ("lerning" finds
          "learning" with ~0.93).
density   share of the distinct content tokens that were matched, so that short
          documents about the query outrank long documents that mention it once.

Tokens are lowercase alphanumeric runs longer than two characters.
"""

import difflib
import re

from shared.models.vectorstore import FileRecord, SearchResult

_TOKEN_PATTERN = re.compile(r"[a-z0-9]+")
MIN_TOKEN_LENGTH = 3
FUZZY_MIN_TOKEN_LENGTH = 4
FUZZY_CUTOFF = 0.8
COVERAGE_WEIGHT = 0.7
DENSITY_WEIGHT = 0.3
SNIPPET_LENGTH = 160


def tokenize(text: str) -> list[str]:
    """Lowercase alphanumeric tokens longer than two characters, in order of appearance."""
    return [token for token in _TOKEN_PATTERN.findall(text.lower()) if len(token) >= MIN_TOKEN_LENGTH]


class KeywordSearchEngine:
    def __init__(self, fuzzy_cutoff: float = FUZZY_CUTOFF):
        self.fuzzy_cutoff = fuzzy_cutoff

    def score(self, query_tokens: list[str], content: str) -> tuple[float, int | None]:
        """Score one document against already tokenized query terms.

        Args:
            query_tokens (list[str]): Distinct query tokens.
            content (str): The document text.

        Returns:
            tuple[float, int | None]: The score in [0, 1] and the position of the
            first match in the content (None when nothing matched).
        """
        if not query_tokens:
            return 0.0, None

        content_lower = content.lower()
        content_tokens = sorted(set(tokenize(content)))
        content_token_set = set(content_tokens)

        credits = 0.0
        matched: set[str] = set()
        positions: list[int] = []
        for token in query_tokens:
            if token in content_token_set:
                credits += 1.0
                matched.add(token)
                positions.append(content_lower.find(token))
            elif token in content_lower:
                credits += 1.0
                matched.update(t for t in content_tokens if token in t)
                positions.append(content_lower.find(token))
            elif len(token) >= FUZZY_MIN_TOKEN_LENGTH:
                close = difflib.get_close_matches(token, content_tokens, n=1, cutoff=self.fuzzy_cutoff)
                if close:
                    credits += difflib.SequenceMatcher(None, token, close[0]).ratio()
                    matched.add(close[0])
                    positions.append(content_lower.find(close[0]))

        if credits == 0:
            return 0.0, None

        coverage = credits / len(query_tokens)
        density = len(matched) / len(content_tokens) if content_tokens else 0.0
        score = min(1.0, COVERAGE_WEIGHT * coverage + DENSITY_WEIGHT * density)
        first_match = min((p for p in positions if p >= 0), default=None)
        return round(score, 4), first_match

    def search(self, records: list[FileRecord], query: str, limit: int, threshold: float) -> list[SearchResult]:
        """Rank records against a query.

        Records are expected in upload order; the sort is stable, so equal scores
        keep that order.

        Args:
            records (list[FileRecord]): Snapshot of completed records.
            query (str): Free-text query.
            limit (int): Maximum number of results.
            threshold (float): Minimum score; records without any match are always dropped.

        Returns:
            list[SearchResult]: Results ordered by descending score.
        """
        query_tokens = list(dict.fromkeys(tokenize(query)))
        scored: list[tuple[float, SearchResult]] = []
        for record in records:
            score, position = self.score(query_tokens, record.content)
            if score <= 0 or score < threshold:
                continue
            scored.append((
                score,
                SearchResult(
                    file_id=record.id,
                    filename=record.filename,
                    snippet=self.make_snippet(record.content, position),
                    score=score,
                ),
            ))

        scored.sort(key=lambda item: item[0], reverse=True)
        return [result for _, result in scored[:limit]]

    @staticmethod
    def make_snippet(content: str, position: int | None) -> str:
        """Excerpt of up to SNIPPET_LENGTH characters centred on ``position``; "..." marks cut edges."""
        text = content.strip()
        if len(text) <= SNIPPET_LENGTH:
            return text
        offset = len(content) - len(content.lstrip())
        centre = (position - offset) if position is not None else 0
        start = max(0, min(centre - SNIPPET_LENGTH // 2, len(text) - SNIPPET_LENGTH))
        end = start + SNIPPET_LENGTH
        snippet = text[start:end].strip()
        return f"{'...' if start > 0 else ''}{snippet}{'...' if end < len(text) else ''}"
