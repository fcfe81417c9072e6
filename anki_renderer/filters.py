"""Named text transforms applied to field values.

Every filter is a pure ``str -> str`` function. Lookups go through
:func:`apply_filter`, which passes content through unchanged for names it
does not know. ``cloze`` is not registered here; the renderer applies it with
the card ordinal and side of the current render.
"""
from __future__ import annotations

import hashlib
import html
import re
from types import MappingProxyType
from typing import Callable, Mapping

_HTML_TAG_PATTERN = re.compile(r"<[^>]+>")
_RUBY_PATTERN = re.compile(r"<ruby>([^<]*)<rt>([^<]*)</rt></ruby>")
# Code points of the Han script: radicals, ideographs, every extension block
# and both compatibility blocks.
_CJK_IDEOGRAPH = (
    r"[\u2e80-\u2e99\u2e9b-\u2ef3\u2f00-\u2fd5\u3005\u3007\u3021-\u3029"
    r"\u3038-\u303b\u3400-\u4dbf\u4e00-\u9fff\uf900-\ufa6d\ufa70-\ufad9"
    r"\U00016fe2\U00016fe3\U00016ff0\U00016ff1\U00020000-\U0002a6df"
    r"\U0002a700-\U0002ee5d\U0002f800-\U0002fa1d\U00030000-\U000323af]"
)
_BRACKET_RUBY_PATTERN = re.compile(rf"({_CJK_IDEOGRAPH}+)\[([^\]]+)\]")
_LINE_BREAKS = ("<br>", "<br/>", "<br />", "</br>")

_HINT_TEMPLATE = (
    '<a class="hint" href="#" onclick="this.style.display=\'none\';'
    "document.getElementById('hint{id}').style.display='block';return false;\">"
    'Show Hint</a><div id="hint{id}" class="hint" style="display:none">{content}</div>'
)
_TYPE_TEMPLATE = '<input type="text" id="typeans" class="type-answer" data-expected="{}"/>'


def filter_text(content: str) -> str:
    """Strip HTML from *content*, turning line-break tags into newlines.

    Examples
    --------
    >>> filter_text("<b>Bold</b> text<br/>next")
    'Bold text\\nnext'
    """

    for tag in _LINE_BREAKS:
        content = content.replace(tag, "\n")
    return _HTML_TAG_PATTERN.sub("", content)


def filter_hint(content: str) -> str:
    """Wrap *content* in a hidden container revealed by a "Show Hint" link.

    The container identifier is derived from a hash of *content* so identical
    hints always share the same id.
    """

    if not content:
        return ""
    return _HINT_TEMPLATE.format(id=_hint_id(content), content=content)


def filter_type(content: str) -> str:
    """Return a type-in answer box expecting *content*.

    Examples
    --------
    >>> filter_type('a & "b"')
    '<input type="text" id="typeans" class="type-answer" data-expected="a &amp; &quot;b&quot;"/>'
    """

    return _TYPE_TEMPLATE.format(html.escape(content, quote=True))


def filter_furigana(content: str) -> str:
    """Convert ``漢字[かんじ]`` shorthand into ``<ruby>`` markup.

    Existing ``<ruby>`` elements are left as they are.

    Examples
    --------
    >>> filter_furigana("漢字[かんじ]")
    '<ruby>漢字<rt>かんじ</rt></ruby>'
    """

    return _BRACKET_RUBY_PATTERN.sub(r"<ruby>\1<rt>\2</rt></ruby>", content)


def filter_kanji(content: str) -> str:
    """Keep only the base text of ruby annotations.

    Examples
    --------
    >>> filter_kanji("<ruby>漢字<rt>かんじ</rt></ruby> and 日本[にほん]")
    '漢字 and 日本'
    """

    content = _RUBY_PATTERN.sub(r"\1", content)
    return _BRACKET_RUBY_PATTERN.sub(r"\1", content)


def filter_kana(content: str) -> str:
    """Keep only the readings of ruby annotations.

    Examples
    --------
    >>> filter_kana("<ruby>漢字<rt>かんじ</rt></ruby> and 日本[にほん]")
    'かんじ and にほん'
    """

    content = _RUBY_PATTERN.sub(r"\2", content)
    return _BRACKET_RUBY_PATTERN.sub(r"\2", content)


_REGISTRY: dict[str, Callable[[str], str]] = {
    "text": filter_text,
    "hint": filter_hint,
    "type": filter_type,
    "furigana": filter_furigana,
    "kanji": filter_kanji,
    "kana": filter_kana,
}

FILTERS: Mapping[str, Callable[[str], str]] = MappingProxyType(_REGISTRY)


def apply_filter(name: str, content: str) -> str:
    """Apply the filter called *name* to *content*.

    Parameters
    ----------
    name:
        Filter identifier as written in the template, e.g. ``"text"``.
    content:
        Current field value.

    Returns
    -------
    str
        The transformed value, or *content* unchanged when *name* is not a
        known filter.

    Examples
    --------
    >>> apply_filter("text", "<b>Bold</b>")
    'Bold'
    >>> apply_filter("tts", "unchanged")
    'unchanged'
    """

    transform = _REGISTRY.get(name)
    if transform is None:
        return content
    return transform(content)


def _hint_id(content: str) -> int:
    """Return a stable 64-bit identifier for *content*."""

    digest = hashlib.blake2b(content.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "little")


__all__ = [
    "FILTERS",
    "apply_filter",
    "filter_furigana",
    "filter_hint",
    "filter_kana",
    "filter_kanji",
    "filter_text",
    "filter_type",
]
