"""Citation formatting for Pulse AI answers.

The model cites articles with bracketed numbers (``[1]``, ``[2]``…).
``format_citations()`` swaps each marker that matches a returned source for a
``{{cite:N}}`` placeholder the UI renders as a link, and leaves unmatched
markers as plain text.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field

from pulse.models import Citation, SourceRef

PLACEHOLDER = "{{{{cite:{}}}}}"

_MARKER_RE = re.compile(r"\[(\d+)\]")


@dataclass
class FormattedAnswer:
    """Answer text with resolved citation placeholders."""

    text: str
    citations: dict[int, Citation] = field(default_factory=dict)


def placeholder(index: int) -> str:
    """Return the placeholder token for citation *index*.

    Examples:
        >>> placeholder(3)
        '{{cite:3}}'
    """
    return PLACEHOLDER.format(index)


def _source_index(sources: Sequence[SourceRef]) -> dict[int, SourceRef]:
    """Map citation number → source; entries without an index use their position."""
    lookup: dict[int, SourceRef] = {}
    for position, source in enumerate(sources, start=1):
        number = source.index if source.index is not None else position
        lookup.setdefault(number, source)
    return lookup


def format_citations(text: str, sources: Sequence[SourceRef]) -> FormattedAnswer:
    """Rewrite resolvable ``[n]`` markers in *text*.

    Args:
        text: Final answer text from the model.
        sources: Source list returned with the answer.

    Returns:
        A ``FormattedAnswer`` whose ``citations`` holds one entry per cited
        number that matched a source.
    """
    lookup = _source_index(sources)
    citations: dict[int, Citation] = {}

    def _replace(match: re.Match[str]) -> str:
        number = int(match.group(1))
        source = lookup.get(number)
        if source is None:
            return match.group(0)
        citations.setdefault(
            number, Citation(index=number, title=source.title, url=source.url)
        )
        return placeholder(number)

    return FormattedAnswer(text=_MARKER_RE.sub(_replace, text), citations=citations)
