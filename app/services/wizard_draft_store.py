"""
Wizard Draft Store
Persists the in-progress wizard (job details, mail groups, validation state)
and the mail detail hand-off snapshot in the session store.

Documents are stored without their embedded data URL whenever the PDF cache
can supply it again on restore.
"""

import json
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from app.infrastructure.observability.logging import get_logger
from app.models.domain.mail_domain import (
    Document,
    Enterprise,
    MailGroup,
    MailGroupFilters,
    Organization,
    ValidationState,
    WizardJobData,
    WorkspaceState,
)
from app.services.kv_store import SessionStore
from app.services.pdf_cache import PdfBlobCache
from app.utils.id_helpers import build_task_id

logger = get_logger(__name__)

WIZARD_JOB_KEY = "outmail:wizard:job"
WIZARD_GROUPS_KEY = "outmail:wizard:groups"
WIZARD_VALIDATION_KEY = "outmail:wizard:validation"
WIZARD_META_KEY = "outmail:wizard:meta"

MAIL_DETAILS_KEY = "outmail:selected-mail-group"
MAIL_DETAILS_ENTERPRISES_KEY = f"{MAIL_DETAILS_KEY}:enterprises"
MAIL_DETAILS_ORGS_KEY = f"{MAIL_DETAILS_KEY}:organizations"
MAIL_DETAILS_DOCUMENTS_KEY = f"{MAIL_DETAILS_KEY}:documents"
MAIL_DETAILS_RETURN_PATH_KEY = f"{MAIL_DETAILS_KEY}:return-path"

WIZARD_KEYS = (WIZARD_JOB_KEY, WIZARD_GROUPS_KEY, WIZARD_VALIDATION_KEY, WIZARD_META_KEY)
MAIL_DETAIL_KEYS = (
    MAIL_DETAILS_KEY,
    MAIL_DETAILS_ENTERPRISES_KEY,
    MAIL_DETAILS_ORGS_KEY,
    MAIL_DETAILS_DOCUMENTS_KEY,
    MAIL_DETAILS_RETURN_PATH_KEY,
)


@dataclass(slots=True)
class WizardDraft:
    """What was restored from the session store; None means not stored."""

    job_data: WizardJobData | None = None
    mail_groups: list[MailGroup] | None = None
    validation: ValidationState | None = None
    wizard_step: int | None = None
    filters: MailGroupFilters | None = None
    uploaded_files: list[Document] | None = None
    organizations: list[Organization] | None = None


@dataclass(slots=True)
class MailDetailSnapshot:
    group: MailGroup | None = None
    enterprises: list[Enterprise] = field(default_factory=list)
    organizations: list[Organization] = field(default_factory=list)
    documents: list[Document] = field(default_factory=list)
    return_path: str | None = None


def restore_job_data(raw: dict[str, Any]) -> WizardJobData:
    """Accept both the list selections and the older single-id fields."""
    raw = dict(raw)
    for plural, singular in (
        ("senderOrganizationIds", "senderOrganizationId"),
        ("recipientOrganizationIds", "recipientOrganizationId"),
    ):
        values = raw.get(plural)
        if not isinstance(values, list):
            values = [raw[singular]] if raw.get(singular) else []
        raw[plural] = list(dict.fromkeys(value for value in values if value))
        raw.pop(singular, None)
    return WizardJobData.model_validate(raw)


class WizardDraftStore:
    """Session-scoped persistence for one workspace session."""

    def __init__(self, session: SessionStore, cache: PdfBlobCache):
        self.session = session
        self.cache = cache

    async def serialize_document(self, document: Document) -> dict:
        serialized = document.model_copy()
        if serialized.cache_key:
            if await self.cache.get(serialized.cache_key):
                serialized.file_url = None
        elif serialized.file_url and serialized.file_url.startswith("blob:"):
            serialized.file_url = None
        return serialized.to_storage()

    async def revive_document(self, document: Document) -> Document:
        revived = document.model_copy()
        if revived.cache_key:
            cached = await self.cache.get(revived.cache_key)
            if cached:
                revived.file_url = cached
        elif revived.file_url and revived.file_url.startswith("data:"):
            revived.cache_key = revived.id
            await self.cache.hydrate(revived.cache_key, revived.file_url)
        return revived

    async def serialize_group(self, group: MailGroup) -> dict:
        payload = group.to_storage()
        payload["documents"] = [await self.serialize_document(doc) for doc in group.documents]
        return payload

    async def revive_group(self, group: MailGroup) -> MailGroup:
        group.documents = [await self.revive_document(doc) for doc in group.documents]
        if group.documents:
            group.task_id = group.task_id or build_task_id(group.sender_org_id, group.recipient_org_id)
        else:
            group.task_id = ""
        return group

    async def _read_json(self, key: str) -> Any:
        raw = await self.session.get(key)
        return json.loads(raw) if raw else None

    async def _write_json(self, key: str, value: Any) -> None:
        await self.session.set(key, json.dumps(value))

    async def load(self) -> WizardDraft:
        draft = WizardDraft()
        try:
            raw_job = await self._read_json(WIZARD_JOB_KEY)
            if isinstance(raw_job, dict):
                draft.job_data = restore_job_data(raw_job)

            raw_groups = await self._read_json(WIZARD_GROUPS_KEY)
            if isinstance(raw_groups, list):
                draft.mail_groups = [
                    await self.revive_group(MailGroup.model_validate(entry)) for entry in raw_groups
                ]

            raw_validation = await self._read_json(WIZARD_VALIDATION_KEY)
            if isinstance(raw_validation, dict):
                draft.validation = ValidationState.model_validate(raw_validation)

            raw_meta = await self._read_json(WIZARD_META_KEY)
            if isinstance(raw_meta, dict):
                draft.wizard_step = raw_meta.get("wizardStep")
                if isinstance(raw_meta.get("filters"), dict):
                    draft.filters = MailGroupFilters.model_validate(raw_meta["filters"])
                if isinstance(raw_meta.get("uploadedFiles"), list):
                    draft.uploaded_files = [
                        await self.revive_document(Document.model_validate(entry))
                        for entry in raw_meta["uploadedFiles"]
                    ]
                if isinstance(raw_meta.get("organizations"), list):
                    draft.organizations = [
                        Organization.model_validate(entry) for entry in raw_meta["organizations"]
                    ]
        except (json.JSONDecodeError, ValidationError, TypeError) as e:
            logger.warning("Failed to restore wizard draft state", error=str(e))
            return WizardDraft()
        return draft

    async def save(self, state: WorkspaceState) -> None:
        """Write the wizard draft of ``state``; failures are logged, not raised."""
        try:
            await self._write_json(WIZARD_JOB_KEY, state.job_data.to_storage())
            await self._write_json(
                WIZARD_GROUPS_KEY, [await self.serialize_group(group) for group in state.mail_groups]
            )
            await self._write_json(WIZARD_VALIDATION_KEY, state.validation.to_storage())
            await self._write_json(
                WIZARD_META_KEY,
                {
                    "wizardStep": state.wizard_step,
                    "filters": state.filters.to_storage(),
                    "uploadedFiles": [await self.serialize_document(doc) for doc in state.uploaded_files],
                    "organizations": [org.to_storage() for org in state.organizations],
                },
            )
        except Exception as e:
            logger.warning("Failed to persist wizard draft", session_id=self.session.session_id, error=str(e))

    async def clear(self) -> None:
        """Drop the wizard draft and the mail detail hand-off keys."""
        for key in (*WIZARD_KEYS, *MAIL_DETAIL_KEYS):
            try:
                await self.session.delete(key)
            except Exception as e:
                logger.warning("Failed to clear session key", key=key, error=str(e))

    async def save_mail_detail(
        self,
        group: MailGroup,
        enterprises: list[Enterprise],
        organizations: list[Organization],
        return_path: str | None = None,
    ) -> None:
        try:
            if return_path:
                await self.session.set(MAIL_DETAILS_RETURN_PATH_KEY, return_path)
            await self._write_json(MAIL_DETAILS_KEY, await self.serialize_group(group))
            await self._write_json(MAIL_DETAILS_ENTERPRISES_KEY, [ent.to_storage() for ent in enterprises])
            await self._write_json(MAIL_DETAILS_ORGS_KEY, [org.to_storage() for org in organizations])
            await self._write_json(
                MAIL_DETAILS_DOCUMENTS_KEY, [await self.serialize_document(doc) for doc in group.documents]
            )
        except Exception as e:
            logger.warning("Failed to persist mail group for detail view", group_id=group.id, error=str(e))

    async def load_mail_detail(self) -> MailDetailSnapshot:
        snapshot = MailDetailSnapshot()
        try:
            raw_group = await self._read_json(MAIL_DETAILS_KEY)
            if isinstance(raw_group, dict) and raw_group.get("id"):
                snapshot.group = await self.revive_group(MailGroup.model_validate(raw_group))
            snapshot.enterprises = [
                Enterprise.model_validate(entry)
                for entry in await self._read_json(MAIL_DETAILS_ENTERPRISES_KEY) or []
            ]
            snapshot.organizations = [
                Organization.model_validate(entry) for entry in await self._read_json(MAIL_DETAILS_ORGS_KEY) or []
            ]
            snapshot.documents = [
                await self.revive_document(Document.model_validate(entry))
                for entry in await self._read_json(MAIL_DETAILS_DOCUMENTS_KEY) or []
            ]
            snapshot.return_path = await self.session.get(MAIL_DETAILS_RETURN_PATH_KEY)
        except (json.JSONDecodeError, ValidationError, TypeError) as e:
            logger.warning("Failed to hydrate mail data from detail storage", error=str(e))
            return MailDetailSnapshot()
        return snapshot
