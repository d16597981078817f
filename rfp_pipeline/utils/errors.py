"""JSON error bodies shared by every RFP endpoint.

Each body carries a human message plus a stable machine code the UI can
branch on, e.g.::

    {"error": "leadId is required", "code": "ERR_VALIDATION_REQUIRED", "field": "leadId"}

    return api_error(E.CONFLICT_STATE, "Cannot 'approve' RFP #4 (status=rejected)")
"""

from __future__ import annotations

from flask import jsonify


class E:
    """Machine-readable error codes."""

    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    UNAUTHORIZED = "ERR_UNAUTHORIZED"
    FORBIDDEN = "ERR_FORBIDDEN"
    NOT_FOUND = "ERR_NOT_FOUND"
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"
    INTERNAL = "ERR_INTERNAL"
    # Lead / sales-order / quotation store misbehaved underneath us
    COLLABORATOR = "ERR_COLLABORATOR"


STATUS_BY_CODE: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.UNAUTHORIZED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFLICT_STATE: 409,
    E.INTERNAL: 500,
    E.COLLABORATOR: 502,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    field: str | None = None,
    details: dict | None = None,
):
    """Build ``(response, status)`` for ``code``.

    ``field`` names the offending input (``products[0].productSpec``) and is
    omitted when empty, as is ``details``. Unknown codes answer 400.
    """
    body: dict = {"error": message, "code": code}
    if field:
        body["field"] = field
    if details:
        body["details"] = details
    return jsonify(body), status or STATUS_BY_CODE.get(code, 400)
