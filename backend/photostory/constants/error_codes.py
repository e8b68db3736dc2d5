"""Error codes dictionary for the render API.

This is the single source of truth for all error codes, their retryability,
and suggested recovery actions. Used by exception handlers and the render
worker to decide whether a failure is worth another attempt.
"""

from typing import Any, TypedDict


class ErrorCodeSpec(TypedDict, total=False):
    """Specification for an error code."""

    retryable: bool
    suggested_action: str
    suggested_endpoint: str
    suggested_fix: str
    parameters: dict[str, Any]


# Error codes dictionary - single source of truth
ERROR_CODES: dict[str, ErrorCodeSpec] = {
    # ==========================================================================
    # Resource errors
    # ==========================================================================
    "PROJECT_NOT_FOUND": {
        "retryable": False,
        "suggested_fix": "Check the projectId; the project may have been deleted",
    },
    "JOB_NOT_FOUND": {
        "retryable": False,
        "suggested_action": "list_jobs",
        "suggested_endpoint": "GET /api/render?projectId={project_id}",
    },
    "THEME_NOT_FOUND": {
        "retryable": False,
    },
    # ==========================================================================
    # Validation errors (not retryable, fix input)
    # ==========================================================================
    "VALIDATION_ERROR": {
        "retryable": False,
    },
    "INVALID_TIMELINE": {
        "retryable": False,
        "suggested_fix": "Clips in a track must be non-overlapping, time-ordered and non-empty",
    },
    "NO_PHOTOS": {
        "retryable": False,
        "suggested_fix": "Add at least one photo to the project before rendering",
    },
    "JOB_ALREADY_COMPLETED": {
        "retryable": False,
        "suggested_fix": "Completed jobs cannot be cancelled",
    },
    # ==========================================================================
    # Conflict errors
    # ==========================================================================
    "RENDER_IN_PROGRESS": {
        "retryable": False,
        "suggested_action": "poll_existing_job",
        "suggested_endpoint": "GET /api/render/{job_id}",
    },
    # ==========================================================================
    # Render failures
    # ==========================================================================
    "RENDER_FAILED": {
        "retryable": False,
    },
    "ENCODER_FAILED": {
        "retryable": False,
    },
    "ASSET_CORRUPT": {
        "retryable": False,
        "suggested_fix": "Re-upload the asset",
    },
    "JOB_CANCELLED": {
        "retryable": False,
    },
    # ==========================================================================
    # Transient infrastructure errors (retry with backoff)
    # ==========================================================================
    "TRANSIENT_INFRA_ERROR": {
        "retryable": True,
        "suggested_action": "retry_with_backoff",
        "parameters": {"delay_ms": 5000, "max_retries": 3},
    },
    "STORAGE_UNAVAILABLE": {
        "retryable": True,
        "suggested_action": "retry_with_backoff",
        "parameters": {"delay_ms": 5000, "max_retries": 3},
    },
    "ASSET_FETCH_FAILED": {
        "retryable": True,
        "suggested_action": "retry_with_backoff",
        "parameters": {"delay_ms": 5000, "max_retries": 3},
    },
    # ==========================================================================
    # Request / system errors
    # ==========================================================================
    "BAD_REQUEST": {
        "retryable": False,
    },
    "UNAUTHORIZED": {
        "retryable": False,
    },
    "NOT_FOUND": {
        "retryable": False,
    },
    "INTERNAL_ERROR": {
        "retryable": True,
        "suggested_action": "retry_with_backoff",
        "parameters": {"delay_ms": 1000, "max_retries": 3},
    },
}


def get_error_spec(code: str) -> ErrorCodeSpec:
    """Get error specification by code.

    Args:
        code: The error code

    Returns:
        ErrorCodeSpec with retryable flag and suggested actions
    """
    return ERROR_CODES.get(code, {"retryable": False})


def is_retryable(code: str) -> bool:
    """Check if an error code is retryable."""
    spec = get_error_spec(code)
    return spec.get("retryable", False)
