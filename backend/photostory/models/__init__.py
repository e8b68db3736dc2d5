from photostory.models.base import Base
from photostory.models.project import Project
from photostory.models.render_job import RenderJob

__all__ = [
    "Base",
    "Project",
    "RenderJob",
]
