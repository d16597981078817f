"""
Pipeline-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere.  Services never build HTTP
responses themselves.

Usage:
    from rfp_pipeline.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="RfpRequest", resource_id=42)
    raise ValidationError("leadId is required", field="leadId")

Taxonomy → HTTP:
    PermissionDenied  403   (rfp_pipeline.services.permission)
    ValidationError   400   malformed or incomplete payload, first failure only
    ConflictError     409   well-formed request, wrong state / duplicate
    NotFoundError     404
    CollaboratorError 502   downstream document persistence failed; retry-safe
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "RfpRequest", "Lead").
        resource_id: The key that was looked up. Included in the message.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when a request payload fails a validation rule.

    Only the first failing rule is reported.  ``field`` names the offending
    input (``leadId``, ``products[0].productSpec``, …) so clients can
    highlight it.

    Args:
        message: Human-readable explanation of what failed.
        field: Qualified name of the offending input, if any.
        details: Optional extra structured payload.
    """

    def __init__(self, message: str, field: str | None = None, details: dict | None = None) -> None:
        self.field = field
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when a well-formed request cannot be applied in the current state.

    Covers duplicate side effects (a second quotation for the same RFP) and
    business-state preconditions.  These are normal-course events, not faults.

    Args:
        message: Human-readable explanation.
        resource: Model name, when the conflict is about one record.
        field: The field whose value conflicts, if any.
    """

    def __init__(self, message: str, resource: str | None = None, field: str | None = None) -> None:
        self.resource = resource
        self.field = field
        super().__init__(message)


class CollaboratorError(Exception):
    """Raised when a downstream document (quotation, work order, snapshot)
    could not be persisted.

    The caller's transaction has been rolled back when this propagates, so
    the RFP is still in its prior status and the request can be retried.
    """

    def __init__(self, collaborator: str, message: str) -> None:
        self.collaborator = collaborator
        super().__init__(f"{collaborator}: {message}")
