"""Mini README: Core package initializer for the HOA portal.

This module exposes convenience imports so the CLI, the web interface and
tests can reach shared helpers without knowing the module layout. The
ledger, exporter and backend packages are imported explicitly by callers
to keep start-up free of optional network clients.
"""

from .logging_utils import get_logger

__all__ = ["get_logger"]
