import hmac
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, Request, status

from photostory.config import get_settings
from photostory.services.job_service import JobService
from photostory.services.project_service import ProjectService
from photostory.worker.channels import INTERNAL_KEY_HEADER


def get_job_service(request: Request) -> JobService:
    return request.app.state.job_service


def get_project_service(request: Request) -> ProjectService:
    return request.app.state.project_service


async def verify_internal_key(
    x_internal_key: Annotated[Optional[str], Header(alias=INTERNAL_KEY_HEADER)] = None,
) -> None:
    """Shared-secret check for the worker -> status store channel."""
    expected = get_settings().internal_api_key
    if not x_internal_key or not hmac.compare_digest(x_internal_key.encode(), expected.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid internal API key",
        )


Jobs = Annotated[JobService, Depends(get_job_service)]
Projects = Annotated[ProjectService, Depends(get_project_service)]
InternalAuth = Depends(verify_internal_key)
