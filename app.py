"""Entrypoint for running the Anki card renderer web server."""
from __future__ import annotations

import os

from anki_renderer import create_app


def _optional_int(raw: str | None) -> int | None:
    return int(raw) if raw else None


# Configuration from environment variables
TEMPLATE_CACHE_SIZE = _optional_int(os.environ.get("ANKI_RENDERER_TEMPLATE_CACHE"))
HOST = os.environ.get("ANKI_RENDERER_HOST", "0.0.0.0")
PORT = int(os.environ.get("ANKI_RENDERER_PORT", "5000"))
DEBUG = os.environ.get("ANKI_RENDERER_DEV") == "1"

# Create the Flask application
app = create_app(template_cache_size=TEMPLATE_CACHE_SIZE)

if __name__ == "__main__":
    app.run(host=HOST, port=PORT, debug=DEBUG)
