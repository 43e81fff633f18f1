"""Mini README: FastAPI-powered HOA portal.

Structure:
    * create_application - application factory wiring routes to the
      portal service built from the configured backend.
    * _bearer_token - extracts ``Authorization: Bearer`` tokens.

Members sign in, browse balances, payment history and the financial
summary. Admin routes edit fees, record payments, export the workbook and
create accounts. Every ``PortalError`` is rendered as
``{"error": {"code", "message"}}`` with the error's HTTP status.
Handlers that reach the backend are plain functions so FastAPI runs them in
its threadpool; blocking store calls never stall the event loop.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, FastAPI, Form, Header, Request
from fastapi.responses import JSONResponse, Response

from ..backend import REGISTRY, AuthProvider, RecordStore
from ..configuration import get_settings
from ..errors import AuthFailure, PortalError, error_response
from ..export import MemberWorkbookExporter
from ..finance import monthly_total
from ..logging_utils import get_logger
from ..portal import PortalContext, PortalService

LOGGER = get_logger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthFailure("Authorization header must use the Bearer scheme")
    return token.strip()


def create_application(
    store: Optional[RecordStore] = None,
    auth: Optional[AuthProvider] = None,
) -> FastAPI:
    """Create the FastAPI application with routes and dependencies."""

    settings = get_settings()
    if store is None or auth is None:
        backend = REGISTRY.create(settings.backend, settings)
        store = store or backend.store
        auth = auth or backend.auth
    exporter = MemberWorkbookExporter(
        sheet_name=settings.export_sheet_name, filename=settings.export_filename
    )
    service = PortalService(store, auth, exporter=exporter)

    app = FastAPI(title="HOA Portal", version="0.1.0")
    app.state.service = service

    @app.exception_handler(PortalError)
    async def portal_error_handler(request: Request, error: PortalError) -> JSONResponse:
        LOGGER.debug("%s %s -> %s", request.method, request.url.path, error.code)
        return JSONResponse(error_response(error), status_code=error.http_status)

    def current_context(
        authorization: Optional[str] = Header(None),  # noqa: B008
    ) -> PortalContext:
        return service.resolve_context(_bearer_token(authorization))

    @app.get("/health")
    async def health() -> JSONResponse:
        """Report the active backend."""

        return JSONResponse({"status": "ok", **store.metadata()})

    @app.post("/login")
    def login(email: str = Form(...), password: str = Form(...)) -> JSONResponse:
        """Exchange credentials for a bearer token."""

        context = service.sign_in(email, password)
        return JSONResponse(
            {
                "access_token": context.access_token,
                "email": context.user.email,
                "role": "admin" if context.is_admin else "member",
            }
        )

    @app.post("/logout")
    def logout(context: PortalContext = Depends(current_context)) -> JSONResponse:
        """Revoke the caller's bearer token."""

        service.sign_out(context)
        return JSONResponse({"status": "signed_out"})

    @app.get("/members")
    def members(context: PortalContext = Depends(current_context)) -> JSONResponse:
        """List members with their derived monthly totals."""

        listed = service.list_members(context)
        selected = service.default_member(listed)
        return JSONResponse(
            {
                "is_admin": context.is_admin,
                "selected_member_id": selected.id if selected else None,
                "members": [
                    {**member.as_row(), "monthlyTotal": monthly_total(member)}
                    for member in listed
                ],
            }
        )

    @app.get("/members/{member_id}/payments")
    def payments(
        member_id: str, context: PortalContext = Depends(current_context)
    ) -> JSONResponse:
        """Return the member's payment history, newest first."""

        history = service.payment_history(context, member_id)
        return JSONResponse(
            {
                "member_id": member_id,
                "payments": [
                    {"amount": payment.amount, "paid_at": payment.paid_at.isoformat()}
                    for payment in history
                ],
            }
        )

    @app.get("/summary")
    def summary(context: PortalContext = Depends(current_context)) -> JSONResponse:
        """Aggregate figures for the financial summary tab."""

        return JSONResponse(service.financial_summary(context))

    @app.post("/members/{member_id}/fees")
    def update_fee(
        member_id: str,
        field: str = Form(...),
        value: str = Form(...),
        context: PortalContext = Depends(current_context),
    ) -> JSONResponse:
        """Edit one fee field on a member record."""

        member = service.update_fee(context, member_id, field, value)
        return JSONResponse({"member": member.as_row()})

    @app.post("/members/{member_id}/payments")
    def add_payment(
        member_id: str,
        amount: str = Form(...),
        context: PortalContext = Depends(current_context),
    ) -> JSONResponse:
        """Record a payment against a member's balance."""

        receipt = service.add_payment(context, member_id, amount)
        return JSONResponse(receipt.as_dict(), status_code=201)

    @app.get("/export.xlsx")
    def export_workbook(context: PortalContext = Depends(current_context)) -> Response:
        """Download every member as a spreadsheet."""

        content = service.export_workbook(context)
        return Response(
            content=content,
            media_type=XLSX_MEDIA_TYPE,
            headers={"Content-Disposition": f'attachment; filename="{exporter.filename}"'},
        )

    @app.post("/admin/users")
    def create_user(
        email: str = Form(...),
        password: str = Form(...),
        name: str = Form(...),
        role: str = Form("member"),
        context: PortalContext = Depends(current_context),
    ) -> JSONResponse:
        """Provision a member or admin account."""

        member = service.create_user(context, email, password, name, role)
        return JSONResponse(
            {"member": member.as_row(), "role": role.strip().lower()}, status_code=201
        )

    return app

