"""Project access for the render backend.

The render pipeline never edits a project; it reads the document and
reports back through ``set_status``. ProjectService is also the sink the
job service calls on job transitions.
"""

import logging
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from photostory.exceptions import ProjectNotFoundError
from photostory.models.project import Project
from photostory.schemas.project import ProjectDocument, ProjectStatus

logger = logging.getLogger(__name__)


class ProjectStatusSink(Protocol):
    async def set_status(self, project_id: str, status: ProjectStatus, output_url: str | None = None) -> None: ...


async def load_project(session: AsyncSession, project_id: str) -> Project:
    project = await session.get(Project, project_id)
    if project is None:
        raise ProjectNotFoundError(project_id)
    return project


class ProjectService:
    """Database-backed project reads plus the status sink."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def get_document(self, project_id: str) -> ProjectDocument:
        async with self.session_maker() as session:
            project = await load_project(session, project_id)
            return project.to_document()

    async def save_document(self, document: ProjectDocument, *, keep_status: bool = False) -> ProjectDocument:
        """Insert or replace a project document.

        With keep_status an existing project keeps the status the render
        system gave it.
        """
        async with self.session_maker() as session:
            project = await session.get(Project, document.id)
            if project is None:
                project = Project.from_document(document)
                session.add(project)
            else:
                project.title = document.title
                project.theme_id = document.theme_id
                if not keep_status:
                    project.status = document.status
                project.document = document.model_dump(mode="json", by_alias=True)
            await session.commit()
            return project.to_document()

    async def set_status(self, project_id: str, status: ProjectStatus, output_url: str | None = None) -> None:
        async with self.session_maker() as session:
            project = await load_project(session, project_id)
            project.status = status
            if output_url is not None:
                project.output_url = output_url
            await session.commit()
        logger.info(f"[PROJECT] {project_id} -> {status}" + (f" ({output_url})" if output_url else ""))
