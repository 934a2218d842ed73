from __future__ import annotations

from typing import Any

from fundnotify.apps.api.response import API_VERSION, ErrorEnvelope


def _envelope(code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    error: dict[str, Any] = {"code": code, "message": message}
    if details:
        error["details"] = details
    return {"error": error, "meta": {"request_id": "req_example", "api_version": API_VERSION}}


# status -> (description, {example name: envelope}); mirrors the handlers in apps/api/errors.py.
_ERROR_EXAMPLES: dict[int, tuple[str, dict[str, dict[str, Any]]]] = {
    400: (
        "Unknown role in the gateway role header",
        {"invalid_role": _envelope("AUTH_INVALID_ROLE", "Unsupported role: root")},
    ),
    401: (
        "Gateway identity headers missing",
        {
            "missing_tenant": _envelope("AUTH_UNAUTHORIZED", "X-Tenant-Id header is required"),
            "missing_user": _envelope("AUTH_UNAUTHORIZED", "X-User-Id header is required"),
        },
    ),
    403: (
        "Role below the route minimum",
        {"forbidden": _envelope("AUTH_FORBIDDEN", "Insufficient role for this operation")},
    ),
    404: (
        "Notification missing, in another tenant, or owned by another user",
        {"not_found": _envelope("NOT_FOUND", "Notification not found")},
    ),
    409: (
        "Transition not allowed from the current status",
        {
            "invalid_transition": _envelope(
                "INVALID_TRANSITION", "Cannot cancel a sent notification", {"status": "sent"}
            )
        },
    ),
    422: (
        "Request or notification payload rejected",
        {
            "bulk_element": _envelope(
                "NOTIFICATION_VALIDATION_ERROR",
                "Invalid notification[2]",
                {
                    "index": 2,
                    "errors": [{"type": "enum", "loc": ["channel"], "msg": "Input should be 'portal', 'email' or 'sms'"}],
                },
            ),
            "request": _envelope(
                "REQUEST_VALIDATION_ERROR",
                "Validation error",
                {"errors": [{"type": "missing", "loc": ["body", "title"], "msg": "Field required"}]},
            ),
        },
    ),
    500: (
        "Unexpected server error",
        {"internal": _envelope("INTERNAL_ERROR", "Internal server error")},
    ),
    503: (
        "Notification store unavailable; safe to retry",
        {"store": _envelope("SERVICE_UNAVAILABLE", "Database error while listing notifications")},
    ),
}


def error_responses(*status_codes: int) -> dict[int | str, dict[str, Any]]:
    """Build a FastAPI ``responses`` mapping for the given error statuses."""
    responses: dict[int | str, dict[str, Any]] = {}
    for status_code in status_codes:
        description, examples = _ERROR_EXAMPLES[status_code]
        responses[status_code] = {
            "model": ErrorEnvelope,
            "description": description,
            "content": {
                "application/json": {
                    "examples": {name: {"value": value} for name, value in examples.items()},
                }
            },
        }
    return responses


IDENTITY_ERROR_RESPONSES = error_responses(400, 401, 403)
NOTIFICATION_ERROR_RESPONSES = {**IDENTITY_ERROR_RESPONSES, **error_responses(404, 409, 422, 503)}
SETTINGS_ERROR_RESPONSES = {**IDENTITY_ERROR_RESPONSES, **error_responses(422, 503)}
