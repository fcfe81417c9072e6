"""Utilities to verify the Anki card renderer serves rendered cards."""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

# Ensure the repository root is on sys.path when executed as a script.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from anki_renderer import create_app


SAMPLE_CARDS = [
    {
        "front": "{{Front}}",
        "back": "{{FrontSide}}<hr id=answer>{{Back}}",
        "fields": {"Front": "What is 2 + 2?", "Back": "4"},
    },
    {
        "front": "{{cloze:Text}}",
        "back": "{{cloze:Text}}{{#Extra}}<br>{{Extra}}{{/Extra}}",
        "fields": {"Text": "{{c1::Paris}} is the capital of {{c2::France}}", "Extra": ""},
        "card_ordinal": 1,
    },
    {
        "front": "{{furigana:Reading}}",
        "back": "{{FrontSide}}<hr>{{hint:text:Meaning}}",
        "fields": {"Reading": "日本語[にほんご]", "Meaning": "<b>Japanese</b>"},
    },
]


def parse_args() -> argparse.Namespace:
    """Parse command line arguments for the smoke test script.

    Returns
    -------
    argparse.Namespace
        Namespace containing the optional ``cards`` argument.

    Examples
    --------
    >>> parse_args().cards is None  # doctest: +SKIP
    True
    """
    parser = argparse.ArgumentParser(
        description=(
            "Run a basic smoke test against the Flask application using the bundled"
            " sample cards or a user-provided JSON file."
        )
    )
    parser.add_argument(
        "cards",
        nargs="?",
        default=None,
        help=(
            "Path to a JSON file holding a list of cards, each with 'front', 'back',"
            " 'fields' and an optional 'card_ordinal'. Defaults to built-in samples."
        ),
    )
    return parser.parse_args()


def load_cards(path: Path) -> list[dict]:
    """Read the list of card definitions stored at *path*."""

    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"Expected a JSON list of cards in {path}")
    return data


def main() -> int:
    """Execute the smoke test.

    Returns
    -------
    int
        Exit status code that mirrors the health of the application.

    Examples
    --------
    >>> main()  # doctest: +SKIP
    0
    """
    args = parse_args()
    if args.cards is None:
        cards = SAMPLE_CARDS
    else:
        cards_path = Path(args.cards).expanduser()
        if not cards_path.exists():
            print(f"Card file not found: {cards_path}", file=sys.stderr)
            return 1
        try:
            cards = load_cards(cards_path)
        except ValueError as exc:
            print(f"Card file is invalid: {exc}", file=sys.stderr)
            return 1

    if not cards:
        print("The card file did not contain any cards.", file=sys.stderr)
        return 1

    app = create_app()

    with app.test_client() as client:
        responses = {
            "health": client.get("/health"),
            "version": client.get("/api/version"),
        }

        for index, card in enumerate(cards):
            payload = {
                "front": card.get("front", ""),
                "back": card.get("back", ""),
                "fields": card.get("fields", {}),
                "card_ordinal": card.get("card_ordinal", 0),
            }
            response = client.post("/api/render/card", json=payload)
            responses[f"card_{index}"] = response
            if response.status_code == 200:
                rendered = response.get_json(silent=True) or {}
                print(f"card_{index} question: {rendered.get('question', '')}")

            if payload["card_ordinal"] and isinstance(payload["fields"], dict):
                for name, value in payload["fields"].items():
                    count = client.post("/api/cloze/count", json={"text": value})
                    responses[f"card_{index}_cloze_{name}"] = count

    for name, resp in responses.items():
        print(f"{name} status: {resp.status_code}")

    failures = [name for name, resp in responses.items() if resp.status_code != 200]

    if not failures:
        return 0

    for name in failures:
        print(f"Endpoint {name!r} failed the smoke test.", file=sys.stderr)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
