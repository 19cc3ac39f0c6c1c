"""Contract checks for citations attached to generated responses.

Every check raises CitationContractError (an AssertionError) on violation, so
the checks can be used directly inside tests as well as by a response
generator that wants to verify its output before returning it.
"""

import logging

from shared.citations.CitationExtractor import extract_citations
from shared.clients.vectorstore.exceptions import CitationContractError
from shared.logging.logging_setup import get_logger
from shared.models.citation import Citation, CitationExpectations, CitationValidationOptions

MIN_SNIPPET_LENGTH = 10


def _query_tokens(query: str) -> list[str]:
    return [token for token in query.lower().split() if len(token) > 2]


class CitationValidator:
    def __init__(self, logger: logging.Logger | None = None):
        self.logging = logger or get_logger()

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def validate_citation(self, citation: Citation, options: CitationValidationOptions | None = None) -> None:
        """Check the structure of a single citation.

        Args:
            citation (Citation): The citation to check.
            options (CitationValidationOptions | None): Which fields are required.

        Raises:
            CitationContractError: If the citation is malformed.
        """
        options = options or CitationValidationOptions()

        if isinstance(citation.index, bool) or not isinstance(citation.index, int) or citation.index <= 0:
            raise CitationContractError(f"Citation index must be a positive integer, got {citation.index!r}.")

        if options.require_source and not (isinstance(citation.source, str) and citation.source):
            raise CitationContractError(f"Citation [{citation.index}] has no source.")

        if options.require_snippet:
            if not (isinstance(citation.snippet, str) and citation.snippet):
                raise CitationContractError(f"Citation [{citation.index}] has no snippet.")
            if len(citation.snippet) <= MIN_SNIPPET_LENGTH:
                raise CitationContractError(
                    f"Citation [{citation.index}] snippet must be longer than {MIN_SNIPPET_LENGTH} characters."
                )

        if options.require_file and not citation.file:
            raise CitationContractError(f"Citation [{citation.index}] has no file.")

        if citation.relevance is not None and not options.min_relevance <= citation.relevance <= 1:
            raise CitationContractError(
                f"Citation [{citation.index}] relevance {citation.relevance} is outside [{options.min_relevance}, 1]."
            )

    def validate_citation_references(self, text: str, citations: list[Citation]) -> list[int]:
        """Check that every [N] marker in the text refers to a provided citation.

        Citations that are provided but never referenced are orphaned. They are
        logged as a warning, not treated as a violation.

        Returns:
            list[int]: Indices of orphaned citations.

        Raises:
            CitationContractError: If the text references an index that was not provided.
        """
        referenced = extract_citations(text)
        provided = {citation.index for citation in citations}

        missing = [index for index in referenced if index not in provided]
        if missing:
            raise CitationContractError(
                f"Response references citation(s) {missing} that were not provided (provided: {sorted(provided)})."
            )

        referenced_set = set(referenced)
        orphaned = [citation.index for citation in citations if citation.index not in referenced_set]
        if orphaned:
            self.logging.warning("Found %d orphaned citation(s): %s", len(orphaned), orphaned)
        return orphaned

    def validate_citation_consistency(self, turns: list[list[Citation]], allow_new_citations: bool = True) -> None:
        """Check that citations repeated across conversation turns stay the same.

        Citations are keyed by (source, file). A key that recurs must match its
        first appearance, and a source that reappears with a different file is
        a conflict.

        Args:
            turns (list[list[Citation]]): Citations per turn, in conversation order.
            allow_new_citations (bool): Whether turns after the first may introduce new keys.

        Raises:
            CitationContractError: On the first inconsistency found.
        """
        seen: dict[tuple[str | None, str], Citation] = {}
        files_by_source: dict[str | None, str] = {}

        for turn_index, turn in enumerate(turns):
            for citation in turn:
                key = (citation.source, citation.file or "unknown")
                existing = seen.get(key)

                if existing is not None:
                    if citation.source != existing.source or (citation.file and citation.file != existing.file):
                        raise CitationContractError(
                            f"Citation {key} in turn {turn_index} does not match its first appearance."
                        )
                    continue

                known_file = files_by_source.get(citation.source)
                if citation.file and known_file and known_file != citation.file:
                    raise CitationContractError(
                        f"Source '{citation.source}' cited with file '{citation.file}' in turn {turn_index}, "
                        f"previously cited with '{known_file}'."
                    )
                if not allow_new_citations and turn_index > 0:
                    raise CitationContractError(f"New citation introduced in turn {turn_index}: {key}")

                seen[key] = citation
                if citation.file:
                    files_by_source.setdefault(citation.source, citation.file)

    ##########################################
    ############### SCORING ##################
    ##########################################

    def assess_citation_quality(self, citation: Citation, query: str) -> float:
        """Score how well a citation supports a query.

        Base 0.2, plus up to 0.4 for query tokens found in the snippet and up to
        0.2 for tokens found in the source, plus 0.1 for a snippet over 50 and
        another 0.1 over 100 characters, plus 0.05 each for file and page.

        Returns:
            float: Quality score in [0, 1].
        """
        tokens = _query_tokens(query)
        snippet = (citation.snippet or "").lower()
        source = (citation.source or "").lower()

        score = 0.2
        if tokens:
            score += sum(1 for token in tokens if token in snippet) / len(tokens) * 0.4
            score += sum(1 for token in tokens if token in source) / len(tokens) * 0.2
        if len(snippet) > 50:
            score += 0.1
        if len(snippet) > 100:
            score += 0.1
        if citation.file:
            score += 0.05
        if citation.page:
            score += 0.05
        return min(1.0, score)

    def verify_citation_response(
        self,
        response: str,
        citations: list[Citation],
        expectations: CitationExpectations | None = None,
    ) -> None:
        """Run the full citation contract against a generated response.

        Checks the citation count bounds, the structure of every citation, the
        references in the text, the required sources and, when a query is
        given, the minimum quality of every citation.

        Raises:
            CitationContractError: On the first violated expectation.
        """
        expectations = expectations or CitationExpectations()

        if len(citations) < expectations.min_citations:
            raise CitationContractError(
                f"Expected at least {expectations.min_citations} citation(s), got {len(citations)}."
            )
        if len(citations) > expectations.max_citations:
            raise CitationContractError(
                f"Expected at most {expectations.max_citations} citation(s), got {len(citations)}."
            )

        for citation in citations:
            self.validate_citation(citation)

        self.validate_citation_references(response, citations)

        sources = {citation.source for citation in citations}
        for source in expectations.required_sources:
            if source not in sources:
                raise CitationContractError(f"Required source '{source}' is not cited.")

        if expectations.query:
            for citation in citations:
                quality = self.assess_citation_quality(citation, expectations.query)
                if quality < expectations.min_quality:
                    raise CitationContractError(
                        f"Citation [{citation.index}] quality {quality:.2f} is below {expectations.min_quality}."
                    )
        self.logging.debug("Citation response passed with %d citation(s).", len(citations))


_default_validator = CitationValidator()


def validate_citation(citation: Citation, options: CitationValidationOptions | None = None) -> None:
    _default_validator.validate_citation(citation, options)


def validate_citation_references(text: str, citations: list[Citation]) -> list[int]:
    return _default_validator.validate_citation_references(text, citations)


def validate_citation_consistency(turns: list[list[Citation]], allow_new_citations: bool = True) -> None:
    _default_validator.validate_citation_consistency(turns, allow_new_citations=allow_new_citations)


def assess_citation_quality(citation: Citation, query: str) -> float:
    return _default_validator.assess_citation_quality(citation, query)


def verify_citation_response(
    response: str,
    citations: list[Citation],
    expectations: CitationExpectations | None = None,
) -> None:
    _default_validator.verify_citation_response(response, citations, expectations)
