"""Mini README: Entry point CLI for the HOA portal.

This script exposes a Typer CLI that starts the FastAPI application, writes
the members workbook and provisions accounts from the command line. All
commands read the backend selection and credentials from ``HOAPORTAL_*``
environment variables.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
import uvicorn

from hoaportal.backend import REGISTRY
from hoaportal.configuration import get_settings
from hoaportal.errors import PortalError
from hoaportal.export import MemberWorkbookExporter
from hoaportal.logging_utils import configure_root_logger
from hoaportal.portal import PortalContext, PortalService

cli = typer.Typer(help="Run and administer the HOA portal.")


def _service() -> PortalService:
    settings = get_settings()
    configure_root_logger(settings.log_level)
    backend = REGISTRY.create(settings.backend, settings)
    exporter = MemberWorkbookExporter(
        sheet_name=settings.export_sheet_name, filename=settings.export_filename
    )
    return PortalService(backend.store, backend.auth, exporter=exporter)


@cli.command()
def run(
    host: str = typer.Option(None, help="Host interface to bind."),
    port: int = typer.Option(None, help="Port to listen on."),
    production: bool = typer.Option(
        False, help="Use production server settings (disable auto-reload)."
    ),
) -> None:
    """Start the FastAPI application using uvicorn."""

    settings = get_settings()
    effective_host = host or settings.interface_host
    effective_port = port or settings.interface_port
    configure_root_logger(settings.log_level)

    # 0.0.0.0 is not a navigable address; point people at localhost instead.
    browser_host = "127.0.0.1" if effective_host in {"0.0.0.0", "::"} else effective_host
    typer.echo(
        f"Starting HOA portal ({settings.backend} backend) on {effective_host}:{effective_port}.\n"
        f"Open your browser at http://{browser_host}:{effective_port}/docs"
    )
    uvicorn.run(
        "hoaportal.interface.web_app:create_application",
        host=effective_host,
        port=effective_port,
        factory=True,
        reload=not production,
    )


@cli.command()
def export(
    destination: Optional[Path] = typer.Option(
        None, help="File or directory for the workbook (defaults to the export directory)."
    ),
) -> None:
    """Write every member to an Excel workbook."""

    settings = get_settings()
    service = _service()
    try:
        rows = service.export_rows(PortalContext.operator())
    except PortalError as error:
        typer.echo(f"Export failed: {error.message}", err=True)
        raise typer.Exit(code=1) from error
    written = service.exporter.write(rows, destination or settings.export_directory)
    typer.echo(f"Wrote {len(rows)} members to {written}")


@cli.command("create-user")
def create_user(
    email: str = typer.Option(..., help="Login email for the new account."),
    name: str = typer.Option(..., help="Display name for the member record."),
    password: str = typer.Option(
        ..., prompt=True, hide_input=True, help="Temporary password."
    ),
    role: str = typer.Option("member", help="Either 'member' or 'admin'."),
) -> None:
    """Provision a member or admin account."""

    service = _service()
    try:
        member = service.create_user(PortalContext.operator(), email, password, name, role)
    except PortalError as error:
        typer.echo(error.message, err=True)
        raise typer.Exit(code=1) from error
    typer.echo(f"User created successfully! Member id {member.id}")


if __name__ == "__main__":
    cli()
