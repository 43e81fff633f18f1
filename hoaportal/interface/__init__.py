"""Mini README: Interactive interfaces (web/CLI) for the HOA portal.

Exports the FastAPI application factory that serves the member and admin
portal. The Typer CLI in ``main_portal.py`` launches it through uvicorn.
"""

from .web_app import create_application

__all__ = ["create_application"]
