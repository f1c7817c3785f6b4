"""
CLI layer for linkspine.

Terminal transport only: argument parsing, settings, and rendering of run
reports.  The work itself lives in ``linkspine.reconcile`` and
``linkspine.windows``.

Entry point::

    linkspine --help
"""

from linkspine.cli.app import app

__all__ = ["app"]
