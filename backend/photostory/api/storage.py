"""Local storage file serving for development."""

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import FileResponse

from photostory.services.storage_service import LocalStorageService, content_type_for

router = APIRouter()


@router.get("/files/{storage_key:path}")
async def get_file(storage_key: str, request: Request):
    """Serve rendered outputs from local storage."""
    storage = request.app.state.storage
    if not isinstance(storage, LocalStorageService):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Local storage not enabled",
        )

    try:
        file_path = storage.get_file_path(storage_key)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    if not file_path.is_file():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="File not found",
        )

    return FileResponse(
        path=str(file_path),
        media_type=content_type_for(file_path.suffix.lower().lstrip(".")),
        filename=file_path.name,
    )
