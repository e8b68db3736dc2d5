import logging

from fastapi import APIRouter, HTTPException, status

from photostory.api.deps import Projects
from photostory.schemas.project import ProjectDocument

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{project_id}", response_model=ProjectDocument)
async def get_project(project_id: str, projects: Projects) -> ProjectDocument:
    return await projects.get_document(project_id)


@router.put("/{project_id}", response_model=ProjectDocument)
async def save_project(project_id: str, document: ProjectDocument, projects: Projects) -> ProjectDocument:
    """Create or replace a project document. The render status is kept as is."""
    if document.id != project_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Project id mismatch: {document.id} != {project_id}",
        )
    saved = await projects.save_document(document, keep_status=True)
    logger.info(f"[PROJECT] Saved {project_id} ({len(document.photos)} photos)")
    return saved
