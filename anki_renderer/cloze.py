"""Cloze deletion handling for field values.

Cloze markers live inside field *values* rather than in the template
structure, so they are discovered again every time a field is rendered. The
helpers in this module are pure and only inspect the text passed to them.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

_CLOZE_PATTERN = re.compile(r"\{\{c(\d+)::([^}]*?)(?:::([^}]*?))?\}\}")
_MAX_ORDINAL = 2**32 - 1

_ACTIVE_TEMPLATE = '<span class="cloze">{}</span>'


@dataclass(frozen=True)
class ClozeDeletion:
    """A single ``{{cN::text::hint}}`` marker found in a field value."""

    ordinal: int
    text: str
    hint: str | None = None


def find_cloze_deletions(text: str) -> list[ClozeDeletion]:
    """Extract cloze deletions from *text*.

    Parameters
    ----------
    text:
        Field value that may contain cloze deletion markers.

    Returns
    -------
    list of ClozeDeletion
        Markers in document order. Several markers may share an ordinal.

    Examples
    --------
    >>> find_cloze_deletions("{{c1::heart}} pumps {{c2::blood::fluid}}")
    [ClozeDeletion(ordinal=1, text='heart', hint=None), ClozeDeletion(ordinal=2, text='blood', hint='fluid')]
    >>> find_cloze_deletions("No clozes here")
    []
    """

    if not text:
        return []
    return [
        ClozeDeletion(
            ordinal=_parse_ordinal(match.group(1)),
            text=match.group(2),
            hint=match.group(3),
        )
        for match in _CLOZE_PATTERN.finditer(text)
    ]


def render_cloze(text: str, active_ordinal: int, is_question: bool) -> str:
    """Replace the cloze markers in *text* for one generated card.

    Parameters
    ----------
    text:
        Field value containing cloze markers.
    active_ordinal:
        Ordinal of the card being rendered. Markers with this ordinal are
        hidden on the question side and highlighted on the answer side.
    is_question:
        ``True`` when rendering the question (front) side.

    Returns
    -------
    str
        *text* with every marker replaced. Inactive markers are always shown
        as their plain text.

    Examples
    --------
    >>> render_cloze("{{c1::Paris}} is in {{c2::France}}", 1, True)
    '<span class="cloze">[...]</span> is in France'
    >>> render_cloze("{{c1::Paris::city}}", 1, True)
    '<span class="cloze">[city]</span>'
    >>> render_cloze("{{c1::Paris::city}}", 1, False)
    '<span class="cloze">Paris</span>'
    """

    def replacement(match: re.Match[str]) -> str:
        ordinal_raw, content, hint = match.groups()
        if _parse_ordinal(ordinal_raw) != active_ordinal:
            return content
        if not is_question:
            return _ACTIVE_TEMPLATE.format(content)
        if hint is not None:
            return _ACTIVE_TEMPLATE.format(f"[{hint}]")
        return _ACTIVE_TEMPLATE.format("[...]")

    return _CLOZE_PATTERN.sub(replacement, text)


def count_cloze_ordinals(text: str) -> int:
    """Return the number of cards the cloze markers in *text* generate.

    The count is the highest ordinal present, so ``c1`` and ``c3`` alone
    still report three cards.

    Examples
    --------
    >>> count_cloze_ordinals("{{c1::a}} {{c2::b}} {{c3::c}} {{c1::d}}")
    3
    >>> count_cloze_ordinals("plain")
    0
    """

    return max((deletion.ordinal for deletion in find_cloze_deletions(text)), default=0)


def _parse_ordinal(raw: str) -> int:
    """Return *raw* as an unsigned 32-bit ordinal, or ``0`` when it is not one."""

    if not raw.isascii() or not raw.isdigit():
        return 0
    value = int(raw)
    if value > _MAX_ORDINAL:
        return 0
    return value


__all__ = [
    "ClozeDeletion",
    "count_cloze_ordinals",
    "find_cloze_deletions",
    "render_cloze",
]
