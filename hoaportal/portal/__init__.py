"""Mini README: Portal workflows shared by the web app and the CLI.

Exports the service that authenticates callers, guards admin operations
and drives the ledger and exporter against the configured backend.
"""

from .service import PaymentReceipt, PortalContext, PortalService

__all__ = ["PaymentReceipt", "PortalContext", "PortalService"]
