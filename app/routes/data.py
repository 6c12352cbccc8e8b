"""
Seed Data & PDF Routes
Serves the raw seed document and streams PDF files from the PDF directory.
"""

from pathlib import Path
from urllib.parse import quote

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse, StreamingResponse

from app.dependencies import get_pdf_base_path, get_seed_loader
from app.infrastructure.observability.logging import get_logger
from app.services.seed_loader import SeedLoader, SeedLoadError

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["data"])

PDF_CHUNK_SIZE = 64 * 1024


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message})


@router.get("/data")
async def get_seed_data(seed_loader: SeedLoader = Depends(get_seed_loader)):
    """Return the seed document exactly as stored on disk."""
    try:
        return seed_loader.read_payload()
    except SeedLoadError as e:
        logger.error("Failed to read seed data file", path=str(e.path), reason=e.reason)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to load data file")


def resolve_pdf_path(base_path: Path, relative_path: str) -> Path | None:
    """Absolute path of ``relative_path`` under ``base_path``, or None if it escapes."""
    candidate = (base_path / relative_path).resolve()
    return candidate if candidate.is_relative_to(base_path) else None


def _iter_file(handle, chunk_size: int = PDF_CHUNK_SIZE):
    try:
        while chunk := handle.read(chunk_size):
            yield chunk
    finally:
        handle.close()


@router.get("/pdfs", include_in_schema=False)
@router.get("/pdfs/{pdf_path:path}")
async def get_pdf(pdf_path: str = "", base_path: Path = Depends(get_pdf_base_path)):
    if not pdf_path:
        return _error(status.HTTP_400_BAD_REQUEST, "Missing PDF path")
    if not pdf_path.lower().endswith(".pdf"):
        return _error(status.HTTP_400_BAD_REQUEST, "Only PDF files can be served")

    resolved = resolve_pdf_path(base_path, pdf_path)
    if resolved is None:
        logger.warning("Rejected PDF path outside base directory", pdf_path=pdf_path)
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid PDF path")
    if not resolved.is_file():
        return _error(status.HTTP_404_NOT_FOUND, "PDF not found")

    try:
        handle = resolved.open("rb")
    except OSError as e:
        logger.error("Failed to open PDF", pdf_path=pdf_path, error=str(e))
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to read PDF")

    return StreamingResponse(
        _iter_file(handle),
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{quote(resolved.name)}"'},
    )
