"""chatstream CLI bootstrap."""

from __future__ import annotations

from chatstream.cli import app

if __name__ == "__main__":
    app()
