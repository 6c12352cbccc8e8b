"""
Workspace API Routes
HTTP endpoints for the outbound mail wizard. Every call is scoped to the
workspace session named by the X-Workspace-Session header.
"""

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile

from app.dependencies import get_session_id, get_workspace_service
from app.infrastructure.observability.logging import get_logger
from app.models.api.workspace_request import (
    DeliveryTypeRequest,
    FixExceptionRequest,
    GoBackRequest,
    JobDetailsRequest,
    MailDetailRequest,
    MailOptionToggleRequest,
    OrganizationChangeRequest,
    ParticipantUpdateRequest,
    Role,
    RoleRequest,
    SendModeRequest,
)
from app.models.api.workspace_response import (
    AdvanceStepResponse,
    DispatchResponse,
    MailDetailResponse,
    MailGroupListResponse,
    WizardSummaryResponse,
    WorkspaceResponse,
)
from app.models.domain.mail_domain import MailGroup, MailGroupFilters, Organization
from app.services.document_tracker import UploadedPdf
from app.services.job_dispatch_service import DispatchResult
from app.services.workspace_service import WorkspaceService

logger = get_logger(__name__)

router = APIRouter(prefix="/api/workspace", tags=["workspace"])


def _dispatch_response(result: DispatchResult) -> DispatchResponse:
    return DispatchResponse(
        job=result.job,
        redirect_to=result.redirect_to,
        dispatched_groups=result.dispatched_groups,
        timeline=result.timeline,
    )


@router.get("", response_model=WorkspaceResponse)
async def get_workspace(
    session_id: str = Depends(get_session_id),
    service: WorkspaceService = Depends(get_workspace_service),
):
    """Current wizard state for the session."""
    return WorkspaceResponse.from_state(await service.get_state(session_id))


@router.delete("", response_model=WorkspaceResponse)
async def reset_workspace(
    session_id: str = Depends(get_session_id),
    service: WorkspaceService = Depends(get_workspace_service),
):
    """Discard the session's wizard draft."""
    return WorkspaceResponse.from_state(await service.reset(session_id))


@router.patch("/job", response_model=WorkspaceResponse)
async def update_job_details(
    request: JobDetailsRequest,
    session_id: str = Depends(get_session_id),
    service: WorkspaceService = Depends(get_workspace_service),
):
    """Update job details; changing the org selections rebuilds the mail groups."""
    state = await service.update_job_details(session_id, request.model_dump(exclude_none=True))
    return WorkspaceResponse.from_state(state)


@router.post("/steps/next", response_model=AdvanceStepResponse, response_model_exclude_none=True)
async def advance_step(
    session_id: str = Depends(get_session_id),
    service: WorkspaceService = Depends(get_workspace_service),
):
    result = await service.advance_step(session_id)
    if isinstance(result, DispatchResult):
        return AdvanceStepResponse(dispatch=_dispatch_response(result))
    return AdvanceStepResponse(state=WorkspaceResponse.from_state(result))


@router.post("/steps/back", response_model=WorkspaceResponse)
async def go_back(
    request: GoBackRequest,
    session_id: str = Depends(get_session_id),
    service: WorkspaceService = Depends(get_workspace_service),
):
    return WorkspaceResponse.from_state(await service.go_back(session_id, request.step))


@router.put("/groups/{group_id}/organization", response_model=WorkspaceResponse)
async def change_organization(
    group_id: str,
    request: OrganizationChangeRequest,
    session_id: str = Depends(get_session_id),
    service: WorkspaceService = Depends(get_workspace_service),
):
    state = await service.change_organization(session_id, group_id, request.role, request.organization_id)
    return WorkspaceResponse.from_state(state)


@router.patch("/groups/{group_id}/participant", response_model=WorkspaceResponse)
async def update_participant(
    group_id: str,
    request: ParticipantUpdateRequest,
    session_id: str = Depends(get_session_id),
    service: WorkspaceService = Depends(get_workspace_service),
):
    state = await service.update_participant(session_id, group_id, request.role, request.changes())
    return WorkspaceResponse.from_state(state)


@router.post("/groups/{group_id}/swap", response_model=WorkspaceResponse)
async def swap_participants(
    group_id: str,
    session_id: str = Depends(get_session_id),
    service: WorkspaceService = Depends(get_workspace_service),
):
    return WorkspaceResponse.from_state(await service.swap_participants(session_id, group_id))


@router.post("/groups/{group_id}/options/toggle", response_model=WorkspaceResponse)
async def toggle_mail_option(
    group_id: str,
    request: MailOptionToggleRequest,
    session_id: str = Depends(get_session_id),
    service: WorkspaceService = Depends(get_workspace_service),
):
    return WorkspaceResponse.from_state(await service.toggle_mail_option(session_id, group_id, request.option))


@router.put("/groups/{group_id}/delivery-type", response_model=WorkspaceResponse)
async def set_delivery_type(
    group_id: str,
    request: DeliveryTypeRequest,
    session_id: str = Depends(get_session_id),
    service: WorkspaceService = Depends(get_workspace_service),
):
    state = await service.set_delivery_type(session_id, group_id, request.delivery_type)
    return WorkspaceResponse.from_state(state)


@router.put("/groups/{group_id}/send-mode", response_model=WorkspaceResponse)
async def set_send_mode(
    group_id: str,
    request: SendModeRequest,
    session_id: str = Depends(get_session_id),
    service: WorkspaceService = Depends(get_workspace_service),
):
    return WorkspaceResponse.from_state(await service.set_send_mode(session_id, group_id, request.send_mode))


def _participant_organization(state, group_id: str, role: str) -> Organization:
    group = state.find_group(group_id)
    participant = group.sender if role == "sender" else group.recipient
    return state.find_organization(participant.organization_id)


@router.post("/groups/{group_id}/save-address", response_model=Organization)
async def save_address_to_organization(
    group_id: str,
    request: RoleRequest,
    session_id: str = Depends(get_session_id),
    service: WorkspaceService = Depends(get_workspace_service),
):
    """Store the participant's address on its organization and return the organization."""
    state = await service.save_address_to_organization(session_id, group_id, request.role)
    return _participant_organization(state, group_id, request.role)


@router.post("/groups/{group_id}/addresses", response_model=Organization)
async def add_address(
    group_id: str,
    request: RoleRequest,
    session_id: str = Depends(get_session_id),
    service: WorkspaceService = Depends(get_workspace_service),
):
    """Add a blank address to the participant's organization and select it."""
    state = await service.add_address(session_id, group_id, request.role)
    return _participant_organization(state, group_id, request.role)


@router.delete("/groups/{group_id}/addresses/{address_id}", response_model=Organization)
async def remove_address(
    group_id: str,
    address_id: str,
    role: Role = Query(...),
    session_id: str = Depends(get_session_id),
    service: WorkspaceService = Depends(get_workspace_service),
):
    state = await service.remove_address(session_id, group_id, role, address_id)
    return _participant_organization(state, group_id, role)


@router.post("/groups/{group_id}/documents", response_model=WorkspaceResponse)
async def upload_documents(
    group_id: str,
    files: list[UploadFile] = File(...),
    last_modified: list[int] | None = Form(default=None, alias="lastModified"),
    session_id: str = Depends(get_session_id),
    service: WorkspaceService = Depends(get_workspace_service),
):
    """
    Attach uploaded PDFs to a mail group; non-PDF files are ignored.

    ``lastModified`` values (epoch milliseconds) pair with ``files`` by position.
    """
    last_modified = last_modified or []
    uploads = [
        UploadedPdf(
            file_name=upload.filename or "document.pdf",
            data=await upload.read(),
            content_type=upload.content_type,
            last_modified=last_modified[index] if index < len(last_modified) else None,
        )
        for index, upload in enumerate(files)
    ]
    logger.info("Document upload received", group_id=group_id, files=len(uploads))
    return WorkspaceResponse.from_state(await service.attach_documents(session_id, group_id, uploads))


@router.delete("/groups/{group_id}/documents/{document_id}", response_model=WorkspaceResponse)
async def detach_document(
    group_id: str,
    document_id: str,
    session_id: str = Depends(get_session_id),
    service: WorkspaceService = Depends(get_workspace_service),
):
    return WorkspaceResponse.from_state(await service.detach_document(session_id, group_id, document_id))


@router.post("/validation", response_model=WorkspaceResponse)
async def run_validation(
    session_id: str = Depends(get_session_id),
    service: WorkspaceService = Depends(get_workspace_service),
):
    """Run the address validation over the current mail tasks."""
    return WorkspaceResponse.from_state(await service.run_validation(session_id))


@router.post("/validation/exceptions/{group_id}/fix", response_model=WorkspaceResponse)
async def fix_exception(
    group_id: str,
    request: FixExceptionRequest,
    session_id: str = Depends(get_session_id),
    service: WorkspaceService = Depends(get_workspace_service),
):
    return WorkspaceResponse.from_state(await service.fix_exception(session_id, group_id, request.address))


@router.post("/validation/exceptions/{group_id}/skip", response_model=WorkspaceResponse)
async def skip_exception(
    group_id: str,
    session_id: str = Depends(get_session_id),
    service: WorkspaceService = Depends(get_workspace_service),
):
    return WorkspaceResponse.from_state(await service.skip_exception(session_id, group_id))


@router.post("/dispatch", response_model=DispatchResponse)
async def dispatch_job(
    session_id: str = Depends(get_session_id),
    service: WorkspaceService = Depends(get_workspace_service),
):
    """Dispatch every mail task as a new job."""
    return _dispatch_response(await service.dispatch(session_id))


@router.post("/search", response_model=MailGroupListResponse)
async def search_mail_groups(
    filters: MailGroupFilters,
    session_id: str = Depends(get_session_id),
    service: WorkspaceService = Depends(get_workspace_service),
):
    groups = await service.search(session_id, filters)
    return MailGroupListResponse(groups=groups, total=len(groups))


@router.get("/summary", response_model=WizardSummaryResponse)
async def get_summary(
    session_id: str = Depends(get_session_id),
    service: WorkspaceService = Depends(get_workspace_service),
):
    return await service.summary(session_id)


@router.post("/groups/{group_id}/detail", response_model=MailGroup)
async def open_mail_detail(
    group_id: str,
    request: MailDetailRequest,
    session_id: str = Depends(get_session_id),
    service: WorkspaceService = Depends(get_workspace_service),
):
    """Store the group (with its enterprises and organizations) for the detail view."""
    return await service.open_mail_detail(session_id, group_id, request.return_path)


@router.get("/detail", response_model=MailDetailResponse)
async def get_mail_detail(
    session_id: str = Depends(get_session_id),
    service: WorkspaceService = Depends(get_workspace_service),
):
    snapshot = await service.load_mail_detail(session_id)
    return MailDetailResponse(
        group=snapshot.group,
        enterprises=snapshot.enterprises,
        organizations=snapshot.organizations,
        documents=snapshot.documents,
        return_path=snapshot.return_path,
    )
