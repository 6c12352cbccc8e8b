"""
FastAPI dependencies shared by the routers.
Services are created once in app.main.create_app and kept on app.state.
"""

import re
from pathlib import Path

from fastapi import Header, HTTPException, Request, status

from app.services.seed_loader import SeedLoader
from app.services.workspace_service import WorkspaceService

SESSION_HEADER = "X-Workspace-Session"
DEFAULT_SESSION_ID = "default"

_SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def get_session_id(
    x_workspace_session: str | None = Header(default=None, alias=SESSION_HEADER),
) -> str:
    """Workspace session from the request header, "default" when absent."""
    if not x_workspace_session:
        return DEFAULT_SESSION_ID
    if not _SESSION_ID_PATTERN.match(x_workspace_session):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{SESSION_HEADER} must be 1-64 letters, digits, '-' or '_'",
        )
    return x_workspace_session


def get_workspace_service(request: Request) -> WorkspaceService:
    return request.app.state.workspace_service


def get_seed_loader(request: Request) -> SeedLoader:
    return request.app.state.seed_loader


def get_pdf_base_path(request: Request) -> Path:
    return request.app.state.pdf_base_path
