"""
FHIR server error kinds.

Each error knows the HTTP status and the OperationOutcome issue code it maps
to, and keeps the identifier/version the caller asked for.
"""

from typing import Optional


class FHIRServerError(Exception):
    status_code = 500
    issue_code = "exception"

    def __init__(self, diagnostics: str, resource_id: Optional[str] = None, version_id: Optional[str] = None):
        super().__init__(diagnostics)
        self.diagnostics = diagnostics
        self.resource_id = resource_id
        self.version_id = version_id


class ResourceNotFoundError(FHIRServerError):
    """Unknown resource, unknown version of a known resource, or unparseable id."""
    status_code = 404
    issue_code = "not-found"


class InvalidRequestError(FHIRServerError):
    status_code = 400
    issue_code = "invalid"


class UnprocessableEntityError(FHIRServerError):
    status_code = 422
    issue_code = "processing"
