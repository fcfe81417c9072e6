"""Rendering of a complete card: question side followed by answer side."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from .template import ClozeContext, NodeTree, parse_template, render_nodes

FRONT_SIDE_FIELD = "FrontSide"


@dataclass(frozen=True)
class RenderedCard:
    """HTML for both sides of a rendered card."""

    question: str
    answer: str


def render_card(
    front: str,
    back: str,
    fields: Mapping[str, str],
    card_ordinal: int = 0,
) -> RenderedCard:
    """Render the *front* and *back* templates of a card.

    Parameters
    ----------
    front:
        Template for the question side.
    back:
        Template for the answer side. ``{{FrontSide}}`` resolves to the
        rendered question.
    fields:
        Note field values.
    card_ordinal:
        1-based cloze ordinal. ``0`` renders a regular card where the
        ``cloze`` filter leaves values untouched.

    Returns
    -------
    RenderedCard
        The rendered question and answer.

    Raises
    ------
    ParseError
        When either template is malformed.
    ValueError
        When *card_ordinal* is negative.

    Examples
    --------
    >>> card = render_card("<b>{{Front}}</b>", "{{FrontSide}}<hr>{{Back}}", {"Front": "Q", "Back": "A"})
    >>> card.question
    '<b>Q</b>'
    >>> card.answer
    '<b>Q</b><hr>A'
    """

    return render_card_nodes(parse_template(front), parse_template(back), fields, card_ordinal)


def render_card_nodes(
    front_nodes: NodeTree,
    back_nodes: NodeTree,
    fields: Mapping[str, str],
    card_ordinal: int = 0,
) -> RenderedCard:
    """Render already parsed card templates; see :func:`render_card`."""

    if card_ordinal < 0:
        raise ValueError(f"Card ordinal must not be negative, got {card_ordinal}")

    question_context = answer_context = None
    if card_ordinal > 0:
        question_context = ClozeContext(card_ordinal=card_ordinal, is_question=True)
        answer_context = ClozeContext(card_ordinal=card_ordinal, is_question=False)

    question = render_nodes(front_nodes, fields, question_context)
    back_fields: dict[str, str] = dict(fields)
    back_fields[FRONT_SIDE_FIELD] = question
    answer = render_nodes(back_nodes, back_fields, answer_context)
    return RenderedCard(question=question, answer=answer)


__all__ = ["FRONT_SIDE_FIELD", "RenderedCard", "render_card", "render_card_nodes"]
