"""
CLI layer for docsafe.

Terminal transport only: argument parsing, coloured output and tables.
All behaviour lives in :mod:`docsafe.core` and :mod:`docsafe.recovery`.

Entry point::

    docsafe --help
"""

from docsafe.cli.app import app

__all__ = ["app"]
