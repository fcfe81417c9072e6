"""Flask application factory for the Anki card renderer.

The module exposes :func:`create_app` which is used both by ``app.py`` and the
test-suite to instantiate a configured Flask application serving the template
renderer over HTTP. The rendering functions themselves live in
:mod:`anki_renderer.template`, :mod:`anki_renderer.cloze` and
:mod:`anki_renderer.card` and are re-exported here.
"""
from __future__ import annotations

import json
import os
import threading
from dataclasses import dataclass, field

from flask import Flask, abort, jsonify, render_template, request
from werkzeug.exceptions import HTTPException

from .card import RenderedCard, render_card, render_card_nodes
from .cloze import find_cloze_deletions
from .filters import FILTERS
from .template import (
    ClozeContext,
    NodeTree,
    ParseError,
    count_cloze_cards,
    parse_template,
    render,
    render_nodes,
    render_with_cloze,
)

__version__ = "0.1.0"

_DEFAULT_TEMPLATE_CACHE_SIZE = 256
_PREVIEW_SIDES = {"question", "answer"}


class FieldDecodeError(ValueError):
    """Raised when a field mapping supplied by a client cannot be used."""


@dataclass
class _AppState:
    """Holds the parsed-template cache of the running application."""

    cache_size: int
    templates: dict[str, NodeTree] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock)

    def parse(self, template: str) -> tuple[NodeTree, bool]:
        """Return the tree for *template* and whether it came from the cache."""

        with self.lock:
            cached = self.templates.get(template)
        if cached is not None:
            return cached, True

        tree = parse_template(template)
        if self.cache_size > 0:
            with self.lock:
                while len(self.templates) >= self.cache_size:
                    self.templates.pop(next(iter(self.templates)))
                self.templates[template] = tree
        return tree, False


def create_app(*, template_cache_size: int | None = None) -> Flask:
    """Create and configure the Flask application.

    Parameters
    ----------
    template_cache_size:
        Maximum number of parsed templates kept in memory. When ``None`` the
        ``ANKI_RENDERER_TEMPLATE_CACHE`` environment variable is consulted,
        falling back to 256. ``0`` disables caching.

    Returns
    -------
    flask.Flask
        A ready-to-use Flask application with JSON rendering endpoints under
        ``/api`` and an HTML ``/preview`` page.

    Examples
    --------
    >>> from anki_renderer import create_app
    >>> client = create_app().test_client()
    >>> client.get('/health').status_code
    200
    """

    app = Flask(__name__, template_folder="templates")
    if template_cache_size is None:
        template_cache_size = int(
            os.environ.get("ANKI_RENDERER_TEMPLATE_CACHE", str(_DEFAULT_TEMPLATE_CACHE_SIZE))
        )
    if template_cache_size < 0:
        raise ValueError(f"Template cache size must not be negative, got {template_cache_size}")
    app.config["TEMPLATE_CACHE_SIZE"] = template_cache_size
    app.logger.info("Template cache size: %s", template_cache_size)

    state = _AppState(cache_size=template_cache_size)

    def load_template(template: str) -> NodeTree:
        try:
            tree, from_cache = state.parse(template)
        except ParseError as exc:
            app.logger.warning("Rejected template at position %s: %s", exc.position, exc)
            raise

        if from_cache:
            app.logger.debug("Loaded template from cache (%d nodes)", len(tree))
        else:
            app.logger.info("Parsed template (%d nodes)", len(tree))
        return tree

    @app.errorhandler(400)
    def bad_request(exc: HTTPException):
        """Report client errors as JSON so API callers can surface them."""
        return jsonify({"error": exc.description}), 400

    @app.route("/health")
    def health():
        """Lightweight health check used by monitoring and dev tooling."""
        return jsonify({"status": "ok"})

    @app.route("/api/version")
    def version():
        """Return the renderer version."""
        return jsonify({"version": __version__})

    @app.route("/api/filters")
    def filters():
        """List the filter names the renderer understands."""
        return jsonify({"filters": sorted(FILTERS) + ["cloze"]})

    @app.route("/api/render", methods=["POST"])
    def render_endpoint():
        """Render a single template without cloze context.

        Request Body
        ------------
        JSON with:
            - template: str - Template source
            - fields: object | str - Field values, or their JSON encoding

        Returns
        -------
        flask.Response
            JSON payload ``{"html": ...}``.
        """
        data = _request_payload()
        template = _require_string(data, "template")
        fields = _fields_or_abort(data.get("fields"), app)
        tree = _tree_or_abort(load_template, template)
        return jsonify({"html": render_nodes(tree, fields)})

    @app.route("/api/render/cloze", methods=["POST"])
    def render_cloze_endpoint():
        """Render one side of a cloze card.

        Request Body
        ------------
        JSON with:
            - template: str - Template source, typically ``{{cloze:Text}}``
            - fields: object | str - Field values
            - card_ordinal: int - 1-based ordinal of the active cloze
            - is_question: bool - ``true`` for the front side (default ``false``)

        Returns
        -------
        flask.Response
            JSON payload ``{"html": ...}``.
        """
        data = _request_payload()
        template = _require_string(data, "template")
        fields = _fields_or_abort(data.get("fields"), app)
        card_ordinal = _parse_card_ordinal(data.get("card_ordinal"), minimum=1)
        is_question = data.get("is_question", False)
        if not isinstance(is_question, bool):
            abort(400, description="is_question must be a boolean")

        tree = _tree_or_abort(load_template, template)
        context = ClozeContext(card_ordinal=card_ordinal, is_question=is_question)
        return jsonify({"html": render_nodes(tree, fields, context)})

    @app.route("/api/render/card", methods=["POST"])
    def render_card_endpoint():
        """Render both sides of a card.

        Request Body
        ------------
        JSON with:
            - front: str - Question template
            - back: str - Answer template, may reference ``{{FrontSide}}``
            - fields: object | str - Field values
            - card_ordinal: int - Cloze ordinal, ``0`` or absent for regular cards

        Returns
        -------
        flask.Response
            JSON payload with ``question`` and ``answer`` HTML.
        """
        data = _request_payload()
        front = _require_string(data, "front")
        back = _require_string(data, "back")
        fields = _fields_or_abort(data.get("fields"), app)
        card_ordinal = _parse_card_ordinal(data.get("card_ordinal", 0), minimum=0)

        front_tree = _tree_or_abort(load_template, front)
        back_tree = _tree_or_abort(load_template, back)
        card = render_card_nodes(front_tree, back_tree, fields, card_ordinal)
        return jsonify({"question": card.question, "answer": card.answer})

    @app.route("/api/cloze/count", methods=["POST"])
    def cloze_count():
        """Return how many cards a cloze field generates and its deletions.

        Request Body
        ------------
        JSON with:
            - text: str - Field content containing ``{{cN::...}}`` markers

        Returns
        -------
        flask.Response
            JSON payload with ``count`` and a ``clozes`` list.
        """
        data = _request_payload()
        text = _require_string(data, "text")
        clozes = [
            {"num": deletion.ordinal, "content": deletion.text, "hint": deletion.hint}
            for deletion in find_cloze_deletions(text)
        ]
        return jsonify({"count": count_cloze_cards(text), "clozes": clozes})

    @app.route("/preview")
    def preview():
        """Render one side of a card as a standalone HTML page.

        Query parameters mirror the attributes of the card preview widget:
        ``template-front``, ``template-back``, ``fields`` (JSON object),
        ``side`` (``question`` or ``answer``) and ``card-ordinal``.
        """
        side = request.args.get("side", "question")
        if side not in _PREVIEW_SIDES:
            side = "question"
        card_ordinal = _lenient_ordinal(request.args.get("card-ordinal"))

        try:
            fields = _decode_fields(request.args.get("fields") or "{}")
            front_tree = load_template(request.args.get("template-front", ""))
            back_tree = load_template(request.args.get("template-back", ""))
            card = render_card_nodes(front_tree, back_tree, fields, card_ordinal)
        except (FieldDecodeError, ParseError) as exc:
            app.logger.warning("Preview failed: %s", exc)
            return render_template("preview.html", error=str(exc), side=side), 400

        content = card.answer if side == "answer" else card.question
        return render_template("preview.html", content=content, side=side)

    return app


__all__ = [
    "ClozeContext",
    "FieldDecodeError",
    "ParseError",
    "RenderedCard",
    "count_cloze_cards",
    "create_app",
    "parse_template",
    "render",
    "render_card",
    "render_nodes",
    "render_with_cloze",
]


def _request_payload() -> dict:
    """Return the JSON object sent with the current request or abort with 400."""

    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        abort(400, description="Request body must be a JSON object")
    return data


def _require_string(data: dict, key: str) -> str:
    """Return ``data[key]`` when it is a string, otherwise abort with 400."""

    value = data.get(key)
    if not isinstance(value, str):
        abort(400, description=f"{key} is required and must be a string")
    return value


def _tree_or_abort(loader, template: str) -> NodeTree:
    """Parse *template* through *loader*, turning parse failures into a 400."""

    try:
        return loader(template)
    except ParseError as exc:
        abort(400, description=f"Template error: {exc}")


def _fields_or_abort(raw: object, app: Flask) -> dict[str, str]:
    """Decode the ``fields`` member of a request, aborting with 400 when invalid."""

    try:
        return _decode_fields(raw)
    except FieldDecodeError as exc:
        app.logger.warning("Rejected field mapping: %s", exc)
        abort(400, description=str(exc))


def _decode_fields(raw: object) -> dict[str, str]:
    """Return a field mapping from *raw* request data.

    Parameters
    ----------
    raw:
        ``None``, a mapping, or a JSON string encoding a mapping.

    Returns
    -------
    dict[str, str]
        Copy of the mapping. ``None`` yields an empty mapping.

    Raises
    ------
    FieldDecodeError
        When *raw* is not valid JSON, not an object, or holds non-string
        values.

    Examples
    --------
    >>> _decode_fields('{"Front": "Q"}')
    {'Front': 'Q'}
    >>> _decode_fields(None)
    {}
    """

    if raw is None:
        return {}
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise FieldDecodeError(f"Invalid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise FieldDecodeError("Fields must be a JSON object")

    fields: dict[str, str] = {}
    for name, value in raw.items():
        if not isinstance(value, str):
            raise FieldDecodeError(
                f"Field {name!r} must be a string, got {type(value).__name__}"
            )
        fields[str(name)] = value
    return fields


def _parse_card_ordinal(raw: object, *, minimum: int) -> int:
    """Return *raw* as a card ordinal of at least *minimum* or abort with 400."""

    if isinstance(raw, bool) or not isinstance(raw, int):
        abort(400, description="card_ordinal must be an integer")
    if raw < minimum:
        abort(400, description=f"card_ordinal must be at least {minimum}")
    return raw


def _lenient_ordinal(raw: str | None) -> int:
    """Return the ordinal from a query string value, ``0`` when unusable.

    Examples
    --------
    >>> _lenient_ordinal("2")
    2
    >>> _lenient_ordinal("abc")
    0
    """

    if not raw:
        return 0
    try:
        value = int(raw)
    except ValueError:
        return 0
    return max(value, 0)
