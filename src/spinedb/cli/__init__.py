"""spinedb command-line interface (``spinedb`` console script)."""

from spinedb.cli.app import app

__all__ = ["app"]
