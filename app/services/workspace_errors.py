"""Exceptions raised by the workspace services and mapped to HTTP responses in app.main."""


class WorkspaceError(Exception):
    """Base exception for workspace operations."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class WorkspaceValidationError(WorkspaceError):
    """A user-facing precondition failed; no state was changed."""

    pass


class MailGroupNotFoundError(WorkspaceError):
    def __init__(self, group_id: str):
        super().__init__(f"Mail group '{group_id}' not found")
        self.group_id = group_id


class DocumentNotFoundError(WorkspaceError):
    def __init__(self, group_id: str, document_id: str):
        super().__init__(f"Document '{document_id}' not found in mail group '{group_id}'")
        self.group_id = group_id
        self.document_id = document_id


class JobNotFoundError(WorkspaceError):
    def __init__(self, job_id: str):
        super().__init__(f"Job '{job_id}' not found")
        self.job_id = job_id
