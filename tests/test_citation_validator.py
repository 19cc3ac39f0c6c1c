import logging

import pytest

from shared.citations.CitationValidator import (
    CitationValidator,
    assess_citation_quality,
    validate_citation_consistency,
    validate_citation_references,
    verify_citation_response,
)
from shared.clients.vectorstore.exceptions import CitationContractError
from shared.models.citation import Citation, CitationExpectations, CitationValidationOptions

SNIPPET = "Transformers replaced recurrent networks for most language tasks after 2017."


def make_citation(index: int = 1, **overrides) -> Citation:
    values = {"index": index, "source": f"Source {index}", "snippet": SNIPPET, "file": f"doc-{index}.pdf"}
    values.update(overrides)
    return Citation(**values)


@pytest.fixture
def validator() -> CitationValidator:
    return CitationValidator(logger=logging.getLogger("tests.citations"))


class TestValidateCitation:
    def test_valid_citation_passes(self, validator):
        validator.validate_citation(make_citation(relevance=0.8))

    @pytest.mark.parametrize("index", [0, -3])
    def test_index_must_be_positive(self, validator, index):
        with pytest.raises(CitationContractError):
            validator.validate_citation(make_citation(index=index))

    def test_source_required_by_default(self, validator):
        with pytest.raises(CitationContractError, match="no source"):
            validator.validate_citation(make_citation(source=None))

    def test_source_check_can_be_disabled(self, validator):
        validator.validate_citation(make_citation(source=None), CitationValidationOptions(require_source=False))

    def test_snippet_must_be_longer_than_ten_characters(self, validator):
        with pytest.raises(CitationContractError, match="longer than 10"):
            validator.validate_citation(make_citation(snippet="too short"))
        with pytest.raises(CitationContractError):
            validator.validate_citation(make_citation(snippet="exactly 10"))
        validator.validate_citation(make_citation(snippet="eleven char"))

    def test_snippet_check_can_be_disabled(self, validator):
        validator.validate_citation(make_citation(snippet=None), CitationValidationOptions(require_snippet=False))

    def test_file_only_required_on_request(self, validator):
        validator.validate_citation(make_citation(file=None))
        with pytest.raises(CitationContractError, match="no file"):
            validator.validate_citation(make_citation(file=None), CitationValidationOptions(require_file=True))

    def test_relevance_bounds(self, validator):
        with pytest.raises(CitationContractError):
            validator.validate_citation(make_citation(relevance=1.2))
        with pytest.raises(CitationContractError):
            validator.validate_citation(make_citation(relevance=0.4), CitationValidationOptions(min_relevance=0.5))
        validator.validate_citation(make_citation(relevance=0.5), CitationValidationOptions(min_relevance=0.5))

    def test_contract_error_is_an_assertion(self, validator):
        with pytest.raises(AssertionError):
            validator.validate_citation(make_citation(index=0))


class TestValidateCitationReferences:
    def test_round_trip_never_raises(self, validator):
        citations = [make_citation(i) for i in (1, 2, 3, 7)]
        text = " ".join(f"Claim {c.index} [{c.index}]." for c in citations)
        assert validator.validate_citation_references(text, citations) == []

    def test_missing_reference_fails(self, validator):
        with pytest.raises(CitationContractError, match=r"\[4\]"):
            validator.validate_citation_references("See [1] and [4].", [make_citation(1)])

    def test_orphaned_citations_are_warned_not_raised(self, validator, caplog):
        citations = [make_citation(1), make_citation(2), make_citation(3)]
        with caplog.at_level(logging.WARNING, logger="tests.citations"):
            orphaned = validator.validate_citation_references("Only [2] is used.", citations)

        assert orphaned == [1, 3]
        assert "orphaned" in caplog.text

    def test_module_function_uses_default_validator(self):
        assert validate_citation_references("[1]", [make_citation(1)]) == []

    def test_default_validator_logs_through_app_logger(self, caplog):
        with caplog.at_level(logging.WARNING, logger="vectorstore_bridge"):
            orphaned = validate_citation_references("Only [1].", [make_citation(1), make_citation(2)])

        assert orphaned == [2]
        assert [r.name for r in caplog.records] == ["vectorstore_bridge"]


class TestValidateCitationConsistency:
    def test_repeated_key_across_turns_passes(self, validator):
        paper_a = Citation(index=1, source="Paper A", snippet=SNIPPET, file="a.pdf")
        turns = [
            [paper_a],
            [Citation(index=1, source="Paper A", snippet=SNIPPET, file="a.pdf"), make_citation(2)],
            [Citation(index=3, source="Paper A", snippet="Another passage of paper A.", file="a.pdf")],
        ]
        validator.validate_citation_consistency(turns)

    def test_same_source_with_other_file_fails(self, validator):
        turns = [
            [Citation(index=1, source="Paper A", snippet=SNIPPET, file="a.pdf")],
            [Citation(index=1, source="Paper A", snippet=SNIPPET, file="a-revised.pdf")],
            [],
        ]
        with pytest.raises(CitationContractError, match="a-revised.pdf"):
            validator.validate_citation_consistency(turns)

    def test_new_citations_rejected_when_disallowed(self, validator):
        turns = [[make_citation(1)], [make_citation(1), make_citation(2)]]
        validator.validate_citation_consistency(turns, allow_new_citations=True)
        with pytest.raises(CitationContractError, match="turn 1"):
            validate_citation_consistency(turns, allow_new_citations=False)

    def test_first_turn_may_introduce_anything(self, validator):
        validator.validate_citation_consistency([[make_citation(1), make_citation(2)]], allow_new_citations=False)


class TestAssessCitationQuality:
    QUERY = "neural networks deep learning transformer"

    def test_more_query_tokens_score_higher(self, validator):
        rich = Citation(index=1, source="Survey", snippet="neural networks, deep learning and the transformer")
        poor = Citation(index=2, source="Survey", snippet="AI is cool")
        assert validator.assess_citation_quality(rich, self.QUERY) > validator.assess_citation_quality(poor, self.QUERY)

    def test_formula(self, validator):
        citation = Citation(index=1, source="Unrelated", snippet="x" * 120, file="f.pdf", page=4)
        # base 0.2 + length 0.1 + 0.1 + file 0.05 + page 0.05
        assert validator.assess_citation_quality(citation, self.QUERY) == pytest.approx(0.5)

    def test_full_overlap_is_capped(self, validator):
        snippet = "neural networks deep learning transformer " * 4
        citation = Citation(index=1, source=self.QUERY, snippet=snippet, file="f.pdf", page=1)
        assert validator.assess_citation_quality(citation, self.QUERY) == 1.0

    def test_query_without_long_tokens(self):
        citation = Citation(index=1, source="Paper", snippet="a short one")
        assert assess_citation_quality(citation, "is a an") == pytest.approx(0.2)


class TestVerifyCitationResponse:
    def test_valid_response_passes(self, validator):
        citations = [make_citation(1), make_citation(2)]
        validator.verify_citation_response(
            "Transformers won [1], mostly for language [2].",
            citations,
            CitationExpectations(required_sources=["Source 1"], query="transformers language tasks"),
        )

    def test_count_bounds(self, validator):
        with pytest.raises(CitationContractError, match="at least 1"):
            validator.verify_citation_response("No citations.", [])
        citations = [make_citation(i) for i in range(1, 4)]
        with pytest.raises(CitationContractError, match="at most 2"):
            validator.verify_citation_response("[1][2][3]", citations, CitationExpectations(max_citations=2))

    def test_required_source_missing(self, validator):
        with pytest.raises(CitationContractError, match="Paper Z"):
            verify_citation_response("[1]", [make_citation(1)], CitationExpectations(required_sources=["Paper Z"]))

    def test_low_quality_fails_when_query_given(self, validator):
        citation = Citation(index=1, source="Misc", snippet="Completely unrelated text.")
        with pytest.raises(CitationContractError, match="quality"):
            validator.verify_citation_response(
                "[1]", [citation], CitationExpectations(query="quantum chromodynamics", min_quality=0.3)
            )

    def test_reference_to_unknown_citation_fails(self, validator):
        with pytest.raises(CitationContractError):
            validator.verify_citation_response("[1] and [5]", [make_citation(1)])
