"""Custom exceptions for the photostory render backend.

Every failure the render system knows about falls into one of four families:

- ValidationError: malformed timeline or settings, rejected synchronously.
- TransientInfraError: network/storage hiccups, retried with backoff.
- RenderError: corrupt asset, encoder failure; terminal, never retried.
- ConflictError: a render job is already active for the project.

The exceptions carry machine-readable error codes so API handlers and the
worker share one vocabulary.
"""

from photostory.constants.error_codes import get_error_spec
from photostory.schemas.envelope import ErrorInfo, ErrorLocation, SuggestedAction


class PhotoStoryError(Exception):
    """Base exception for all photostory application errors."""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
        location: ErrorLocation | None = None,
        suggested_fix: str | None = None,
    ):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.location = location
        self.suggested_fix = suggested_fix
        super().__init__(self.message)

    @property
    def retryable(self) -> bool:
        return get_error_spec(self.code).get("retryable", False)

    def to_error_info(self) -> ErrorInfo:
        """Convert exception to ErrorInfo for API response."""
        spec = get_error_spec(self.code)

        suggested_actions: list[SuggestedAction] = []
        if "suggested_action" in spec:
            suggested_actions.append(
                SuggestedAction(
                    action=spec["suggested_action"],
                    endpoint=spec.get("suggested_endpoint"),
                    parameters=spec.get("parameters", {}),
                )
            )

        return ErrorInfo(
            code=self.code,
            message=self.message,
            location=self.location,
            retryable=spec.get("retryable", False),
            suggested_fix=self.suggested_fix or spec.get("suggested_fix"),
            suggested_actions=suggested_actions,
        )


# =============================================================================
# Resource Not Found Errors (404)
# =============================================================================


class ResourceNotFoundError(PhotoStoryError):
    """Base class for resource not found errors."""

    code = "NOT_FOUND"
    status_code = 404


class ProjectNotFoundError(ResourceNotFoundError):
    """Project not found."""

    code = "PROJECT_NOT_FOUND"
    message = "Project not found"

    def __init__(self, project_id: str | None = None):
        message = f"Project not found: {project_id}" if project_id else self.message
        location = ErrorLocation(project_id=str(project_id)) if project_id else None
        super().__init__(message, location=location)


class JobNotFoundError(ResourceNotFoundError):
    """Render job not found."""

    code = "JOB_NOT_FOUND"
    message = "Render job not found"

    def __init__(self, job_id: str | None = None):
        message = f"Render job not found: {job_id}" if job_id else self.message
        location = ErrorLocation(job_id=str(job_id)) if job_id else None
        super().__init__(message, location=location)


class ThemeNotFoundError(ResourceNotFoundError):
    """Theme not found in the catalog."""

    code = "THEME_NOT_FOUND"
    message = "Theme not found"

    def __init__(self, theme_id: str | None = None):
        message = f"Theme not found: {theme_id}" if theme_id else self.message
        super().__init__(message)


# =============================================================================
# Validation Errors (400)
# =============================================================================


class ValidationError(PhotoStoryError):
    """Malformed timeline or settings. No job is created."""

    code = "VALIDATION_ERROR"
    status_code = 400


class InvalidTimelineError(ValidationError):
    """Timeline violates a structural invariant."""

    code = "INVALID_TIMELINE"
    message = "Invalid timeline"

    def __init__(
        self,
        message: str | None = None,
        *,
        clip_id: str | None = None,
        track_index: int | None = None,
    ):
        location = None
        if clip_id is not None or track_index is not None:
            location = ErrorLocation(clip_id=clip_id, track_index=track_index)
        super().__init__(message, location=location)


class NoPhotosError(ValidationError):
    """Project has nothing to render."""

    code = "NO_PHOTOS"
    message = "Project has no photos"


class JobAlreadyCompletedError(ValidationError):
    """A completed job cannot be cancelled."""

    code = "JOB_ALREADY_COMPLETED"
    message = "Cannot cancel completed job"


# =============================================================================
# Conflict Errors (409)
# =============================================================================


class ConflictError(PhotoStoryError):
    """A render job is already active for the project."""

    code = "RENDER_IN_PROGRESS"
    status_code = 409
    message = "A render job is already in progress for this project"

    def __init__(self, job_id: str, message: str | None = None):
        self.job_id = str(job_id)
        super().__init__(message, location=ErrorLocation(job_id=self.job_id))

    def to_error_info(self) -> ErrorInfo:
        info = super().to_error_info()
        info.job_id = self.job_id
        return info


# =============================================================================
# Render Errors (terminal, never retried)
# =============================================================================


class RenderError(PhotoStoryError):
    """Deterministic render failure. The message is stored verbatim on the job."""

    code = "RENDER_FAILED"
    status_code = 500
    message = "Render failed"


class EncoderError(RenderError):
    """Video encoder exited abnormally or rejected its configuration."""

    code = "ENCODER_FAILED"
    message = "Encoder failed"


class CorruptAssetError(RenderError):
    """Asset could not be decoded."""

    code = "ASSET_CORRUPT"
    message = "Asset could not be decoded"

    def __init__(self, resource_id: str | None = None, detail: str | None = None):
        message = self.message
        if resource_id:
            message = f"Asset could not be decoded: {resource_id}"
            if detail:
                message += f" ({detail})"
        super().__init__(message)


class JobCancelledError(PhotoStoryError):
    """Raised inside the pipeline when the job was cancelled between frames."""

    code = "JOB_CANCELLED"
    status_code = 409
    message = "cancelled"


# =============================================================================
# Transient Infrastructure Errors (503, retried)
# =============================================================================


class TransientInfraError(PhotoStoryError):
    """Network/storage hiccup. Retried with exponential backoff."""

    code = "TRANSIENT_INFRA_ERROR"
    status_code = 503
    message = "Temporary infrastructure failure"


class StorageUnavailableError(TransientInfraError):
    """Durable storage could not be reached."""

    code = "STORAGE_UNAVAILABLE"
    message = "Storage is temporarily unavailable"


class AssetFetchError(TransientInfraError):
    """Asset download failed for a reason worth retrying."""

    code = "ASSET_FETCH_FAILED"
    message = "Asset download failed"
