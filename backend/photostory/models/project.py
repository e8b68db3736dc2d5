from typing import Any

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from photostory.models.base import Base, JSONType, TimestampMixin
from photostory.schemas.project import ProjectDocument


class Project(Base, TimestampMixin):
    """Project aggregate row.

    The document column holds the full ProjectDocument; the render pipeline
    only ever writes ``status`` and ``output_url``.
    """

    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), default="")
    theme_id: Mapped[str] = mapped_column(String(100), default="default")

    # Status: draft, editing, processing, completed, failed
    status: Mapped[str] = mapped_column(String(50), default="draft")
    output_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    document: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)

    # Relationships
    render_jobs: Mapped[list["RenderJob"]] = relationship(  # noqa: F821
        "RenderJob", back_populates="project", cascade="all, delete-orphan"
    )

    @classmethod
    def from_document(cls, document: ProjectDocument) -> "Project":
        return cls(
            id=document.id,
            title=document.title,
            theme_id=document.theme_id,
            status=document.status,
            document=document.model_dump(mode="json", by_alias=True),
        )

    def to_document(self) -> ProjectDocument:
        data = dict(self.document or {})
        data.update({"id": self.id, "title": self.title, "themeId": self.theme_id, "status": self.status})
        return ProjectDocument.model_validate(data)

    def __repr__(self) -> str:
        return f"<Project {self.id} ({self.status})>"
