"""
Document Attachment Tracker
Attaches uploaded PDFs to a mail group and keeps the group's task id in step
with its document list.
"""

import asyncio
import random
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass

from app.infrastructure.observability.logging import get_logger
from app.models.domain.mail_domain import Document, MailGroup, WorkspaceState
from app.services.pdf_cache import PdfBlobCache
from app.services.workspace_errors import (
    DocumentNotFoundError,
    MailGroupNotFoundError,
    WorkspaceValidationError,
)
from app.utils.id_helpers import build_task_id

logger = get_logger(__name__)

PDF_CONTENT_TYPE = "application/pdf"
EPHEMERAL_URL_PREFIX = "blob:"


@dataclass(slots=True)
class UploadedPdf:
    """A file received from the client."""

    file_name: str
    data: bytes
    content_type: str | None = None
    last_modified: int | None = None  # epoch milliseconds

    @property
    def size(self) -> int:
        return len(self.data)


def is_pdf(upload: UploadedPdf) -> bool:
    """Accept by declared content type or by .pdf suffix."""
    if (upload.content_type or "").lower() == PDF_CONTENT_TYPE:
        return True
    return upload.file_name.lower().endswith(".pdf")


def format_file_size(size_bytes: int) -> str:
    return f"{size_bytes / (1024 * 1024):.1f} MB"


def refresh_task_id(group: MailGroup, rebuild: bool = False) -> None:
    """
    Empty document list -> empty task id; otherwise keep (or rebuild) the
    task id derived from the group's org pair.
    """
    if not group.documents:
        group.task_id = ""
    elif rebuild or not group.task_id:
        group.task_id = build_task_id(group.sender_org_id, group.recipient_org_id)


class DocumentAttachmentTracker:
    """Turns uploads into Documents and manages their cache entries."""

    def __init__(
        self,
        cache: PdfBlobCache,
        clock: Callable[[], float] = time.time,
        rng: random.Random | None = None,
    ):
        self.cache = cache
        self.clock = clock
        self.rng = rng or random.Random()
        # Bytes behind the fallback URLs, by cache key, for uploads the cache could not take
        self.object_urls: dict[str, bytes] = {}

    def _editable_group(self, state: WorkspaceState, group_id: str) -> MailGroup:
        group = state.find_group(group_id)
        if group is None:
            raise MailGroupNotFoundError(group_id)
        if group.is_dispatched:
            raise WorkspaceValidationError(
                f"Mail group '{group_id}' was already dispatched and can no longer be edited."
            )
        return group

    async def build_document(self, upload: UploadedPdf, index: int, now_ms: int) -> Document:
        base_id = f"{upload.file_name}-{now_ms}-{index}"
        last_modified = upload.last_modified if upload.last_modified is not None else now_ms
        cache_key = f"{base_id}-{last_modified}"

        try:
            file_url = await self.cache.store(cache_key, upload.data, PDF_CONTENT_TYPE)
        except Exception as e:
            logger.warning(
                "Failed to cache uploaded PDF, falling back to object URL",
                file_name=upload.file_name,
                error=str(e),
            )
            file_url = f"{EPHEMERAL_URL_PREFIX}outmail/{uuid.uuid4()}"
            self.object_urls[cache_key] = upload.data

        return Document(
            id=base_id,
            name=upload.file_name,
            display_name=upload.file_name,
            pages=self.rng.randint(50, 249),
            size=format_file_size(upload.size),
            file_name=upload.file_name,
            file_url=file_url,
            reference_key=upload.file_name,
            source="upload",
            cache_key=cache_key,
        )

    async def attach(
        self, state: WorkspaceState, group_id: str, files: list[UploadedPdf]
    ) -> list[Document]:
        """
        Append the PDF files among ``files`` to the group, in request order.

        Non-PDF files are ignored. Returns the new documents.
        """
        group = self._editable_group(state, group_id)
        accepted = [upload for upload in files if is_pdf(upload)]
        if len(accepted) != len(files):
            logger.info("Ignored non-PDF uploads", group_id=group_id, ignored=len(files) - len(accepted))
        if not accepted:
            return []

        now_ms = int(self.clock() * 1000)
        # gather preserves argument order regardless of completion order
        new_documents = await asyncio.gather(
            *(self.build_document(upload, index, now_ms) for index, upload in enumerate(accepted))
        )

        group.documents.extend(new_documents)
        refresh_task_id(group)
        self._register_uploaded_files(state, new_documents)

        logger.info(
            "Documents attached",
            group_id=group_id,
            added=len(new_documents),
            total=len(group.documents),
            task_id=group.task_id,
        )
        return list(new_documents)

    async def detach(self, state: WorkspaceState, group_id: str, document_id: str) -> Document:
        """Remove one document, evicting its cache entry and any fallback URL."""
        group = self._editable_group(state, group_id)
        document = next((doc for doc in group.documents if doc.id == document_id), None)
        if document is None:
            raise DocumentNotFoundError(group_id, document_id)

        if document.cache_key:
            await self.cache.remove(document.cache_key)
            self.object_urls.pop(document.cache_key, None)

        group.documents = [doc for doc in group.documents if doc.id != document_id]
        refresh_task_id(group)

        logger.info(
            "Document detached",
            group_id=group_id,
            document_id=document_id,
            remaining=len(group.documents),
        )
        return document

    def release(self, groups: list[MailGroup]) -> int:
        """Drop the fallback bytes held for the documents of ``groups``."""
        released = 0
        for group in groups:
            for document in group.documents:
                if self.object_urls.pop(document.cache_key, None) is not None:
                    released += 1
        if released:
            logger.info("Released fallback document URLs", released=released)
        return released

    @staticmethod
    def _register_uploaded_files(state: WorkspaceState, documents: list[Document]) -> None:
        known = {doc.reference for doc in state.uploaded_files}
        for document in documents:
            reference = document.reference
            if reference and reference in known:
                continue
            known.add(reference)
            state.uploaded_files.append(document.model_copy())
