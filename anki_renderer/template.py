"""Parsing and rendering of card templates.

A template is parsed once into a tuple of immutable nodes which can then be
rendered any number of times against different field mappings. Parsing is
the only step that can fail; rendering degrades missing fields, unknown
filters and a missing cloze context to empty or unchanged output.

The grammar understood here is::

    {{#Name}} ... {{/Name}}     block shown when Name is non-empty
    {{^Name}} ... {{/Name}}     block shown when Name is empty
    {{filter:...:Name}}         field value passed through filters
    anything else               literal text

A block ends at the first ``{{/Name}}`` following its opening tag, so a block
cannot contain another block for the same field.
"""
from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from typing import Mapping

from .cloze import count_cloze_ordinals, render_cloze
from .filters import apply_filter

_TAG_OPEN = "{{"
_TAG_CLOSE = "}}"
_CLOZE_FILTER = "cloze"

# Candidate names only; the characters are checked by _is_name.
_CONDITIONAL_OPEN_PATTERN = re.compile(r"\{\{([#^])([^{}:]+)\}\}")
_FIELD_PATTERN = re.compile(r"\{\{((?:[^{}:]+:)*)([^{}:]+)\}\}")

# Letters, numbers and the combining marks that attach to letters.
_NAME_CATEGORIES = ("L", "N", "Mn", "Mc")
_FIELD_NAME_EXTRA = "_ "
_FILTER_NAME_EXTRA = "_-"


class ParseError(ValueError):
    """Raised when a template string is not valid template syntax."""

    def __init__(self, message: str, *, position: int = 0, remaining: str = ""):
        super().__init__(message)
        self.position = position
        self.remaining = remaining


@dataclass(frozen=True)
class Text:
    """Literal text copied to the output unchanged."""

    content: str


@dataclass(frozen=True)
class Field:
    """Substitution of a field value.

    ``filters`` keeps the order in which they were written, outermost first;
    the renderer applies them from the last to the first.
    """

    name: str
    filters: tuple[str, ...] = ()


@dataclass(frozen=True)
class Conditional:
    """Block rendered depending on whether ``field`` has a value."""

    field: str
    children: tuple["TemplateNode", ...] = ()
    negated: bool = False


TemplateNode = Text | Field | Conditional
NodeTree = tuple[TemplateNode, ...]


@dataclass(frozen=True)
class ClozeContext:
    """Card ordinal and side used by the ``cloze`` filter for one render."""

    card_ordinal: int
    is_question: bool


def parse_template(template: str) -> NodeTree:
    """Parse *template* into a tree of nodes.

    Parameters
    ----------
    template:
        Template source such as ``"{{Front}}<hr>{{#Extra}}{{Extra}}{{/Extra}}"``.

    Returns
    -------
    tuple of TemplateNode
        Top-level nodes in document order.

    Raises
    ------
    ParseError
        When a tag is unterminated, a block is never closed, or some input is
        not valid template syntax.

    Examples
    --------
    >>> parse_template("Hi {{text:Name}}")
    (Text(content='Hi '), Field(name='Name', filters=('text',)))
    >>> parse_template("{{^Extra}}none{{/Extra}}")
    (Conditional(field='Extra', children=(Text(content='none'),), negated=True),)
    """

    return _parse_nodes(template, 0, len(template))


def _parse_nodes(source: str, start: int, end: int) -> NodeTree:
    """Parse ``source[start:end]`` completely into nodes."""

    nodes = []
    index = start
    while index < end:
        node, index = _parse_node(source, index, end)
        nodes.append(node)
    return tuple(nodes)


def _parse_node(source: str, index: int, end: int) -> tuple[TemplateNode, int]:
    """Parse the single node starting at *index* and return it with the next index."""

    match = _CONDITIONAL_OPEN_PATTERN.match(source, index, end)
    if match and _is_name(match.group(2), _FIELD_NAME_EXTRA):
        marker, raw_name = match.groups()
        close_tag = f"{_TAG_OPEN}/{raw_name}{_TAG_CLOSE}"
        close_index = source.find(close_tag, match.end(), end)
        if close_index != -1:
            children = _parse_nodes(source, match.end(), close_index)
            node = Conditional(
                field=raw_name.strip(),
                children=children,
                negated=marker == "^",
            )
            return node, close_index + len(close_tag)

    match = _FIELD_PATTERN.match(source, index, end)
    if match:
        filter_chain, raw_name = match.groups()
        filters = tuple(part for part in filter_chain.split(":") if part)
        if _is_name(raw_name, _FIELD_NAME_EXTRA) and all(
            _is_name(name, _FILTER_NAME_EXTRA) for name in filters
        ):
            return Field(name=raw_name.strip(), filters=filters), match.end()

    text_end = source.find(_TAG_OPEN, index, end)
    if text_end == -1:
        text_end = end
    if text_end > index:
        return Text(source[index:text_end]), text_end

    raise _describe_failure(source, index, end)


def _is_name(candidate: str, extra: str) -> bool:
    """Return whether every character of *candidate* may appear in a name.

    Examples
    --------
    >>> _is_name("हिंदी", _FIELD_NAME_EXTRA)
    True
    >>> _is_name("a.b", _FIELD_NAME_EXTRA)
    False
    """

    return all(
        char in extra or unicodedata.category(char).startswith(_NAME_CATEGORIES)
        for char in candidate
    )


def _describe_failure(source: str, index: int, end: int) -> ParseError:
    """Build a :class:`ParseError` explaining why the tag at *index* is invalid."""

    remaining = source[index:end]
    close_index = source.find(_TAG_CLOSE, index + len(_TAG_OPEN), end)
    if close_index == -1:
        message = f"Unterminated tag at position {index}: {remaining!r}"
    else:
        tag = source[index : close_index + len(_TAG_CLOSE)]
        match = _CONDITIONAL_OPEN_PATTERN.fullmatch(tag)
        if match and _is_name(match.group(2), _FIELD_NAME_EXTRA):
            close_tag = f"{_TAG_OPEN}/{match.group(2)}{_TAG_CLOSE}"
            message = f"Block {tag!r} at position {index} is never closed with {close_tag!r}"
        else:
            message = f"Unrecognised tag {tag!r} at position {index}"
    return ParseError(message, position=index, remaining=remaining)


def render_nodes(
    nodes: NodeTree,
    fields: Mapping[str, str],
    cloze_context: ClozeContext | None = None,
) -> str:
    """Render parsed *nodes* against *fields*.

    Parameters
    ----------
    nodes:
        Tree returned by :func:`parse_template`. It is only read.
    fields:
        Mapping of field names to their values. Missing names render as
        empty strings.
    cloze_context:
        Card ordinal and side consumed by the ``cloze`` filter. Without it
        the ``cloze`` filter leaves the value unchanged.

    Returns
    -------
    str
        The rendered HTML.

    Examples
    --------
    >>> tree = parse_template("{{#Back}}A: {{Back}}{{/Back}}")
    >>> render_nodes(tree, {"Back": "4"})
    'A: 4'
    >>> render_nodes(tree, {})
    ''
    """

    output = []
    for node in nodes:
        if isinstance(node, Text):
            output.append(node.content)
        elif isinstance(node, Field):
            output.append(_render_field(node, fields, cloze_context))
        elif isinstance(node, Conditional):
            has_value = bool(fields.get(node.field, ""))
            if has_value != node.negated:
                output.append(render_nodes(node.children, fields, cloze_context))
    return "".join(output)


def _render_field(
    node: Field,
    fields: Mapping[str, str],
    cloze_context: ClozeContext | None,
) -> str:
    """Resolve a field node and run its filters from innermost to outermost."""

    value = fields.get(node.name, "")
    for name in reversed(node.filters):
        if name == _CLOZE_FILTER:
            if cloze_context is not None:
                value = render_cloze(value, cloze_context.card_ordinal, cloze_context.is_question)
        else:
            value = apply_filter(name, value)
    return value


def render(template: str, fields: Mapping[str, str]) -> str:
    """Parse and render *template* without a cloze context.

    Examples
    --------
    >>> render("Hello {{Name}}!", {"Name": "World"})
    'Hello World!'
    """

    return render_nodes(parse_template(template), fields)


def render_with_cloze(
    template: str,
    fields: Mapping[str, str],
    card_ordinal: int,
    is_question: bool,
) -> str:
    """Parse and render *template* for one side of a cloze card.

    Examples
    --------
    >>> render_with_cloze("{{cloze:Text}}", {"Text": "{{c1::Paris}} is nice"}, 1, False)
    '<span class="cloze">Paris</span> is nice'
    """

    context = ClozeContext(card_ordinal=card_ordinal, is_question=is_question)
    return render_nodes(parse_template(template), fields, context)


def count_cloze_cards(field_text: str) -> int:
    """Return how many cards the cloze markers in *field_text* generate."""

    return count_cloze_ordinals(field_text)


__all__ = [
    "ClozeContext",
    "Conditional",
    "Field",
    "NodeTree",
    "ParseError",
    "TemplateNode",
    "Text",
    "count_cloze_cards",
    "parse_template",
    "render",
    "render_nodes",
    "render_with_cloze",
]
