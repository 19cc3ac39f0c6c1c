import re

# [N] markers; the sign is never part of the match, so "[-1]" does not match
CITATION_PATTERN = re.compile(r"\[(\d+)\]")


def extract_citations(text: str | None) -> list[int]:
    """Extract citation indices from generated text.

    Only strictly positive integers count. Markers like "[a]", "[0]" or "[-1]"
    are ignored rather than reported, validation happens in CitationValidator.

    Args:
        text (str | None): The generated response.

    Returns:
        list[int]: Distinct indices in order of first appearance.
    """
    if not text:
        return []
    indices = (int(match) for match in CITATION_PATTERN.findall(text))
    return list(dict.fromkeys(index for index in indices if index > 0))
