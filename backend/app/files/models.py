"""SQLAlchemy model for stored project files plus Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel
from sqlalchemy import DateTime, ForeignKey, Integer, LargeBinary, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.session import Base
from app.files.content import ContentEncoding


class ProjectFile(Base):
    """
    Latest content of one path in one project. id follows insertion order;
    version starts at 1 and grows by one per replacement. Deleting removes the row.
    """

    __tablename__ = "files"
    __table_args__ = (UniqueConstraint("project_id", "path", name="uq_file_project_path"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    path: Mapped[str] = mapped_column(String(2048), nullable=False)
    content: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    encoding: Mapped[str] = mapped_column(String(8), nullable=False, default=ContentEncoding.UTF8.value)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)  # SHA-256 hex
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


# Pydantic schemas for API
class FileUpload(BaseModel):
    """Body for PUT /files."""

    path: str
    content: str
    encoding: ContentEncoding = ContentEncoding.UTF8


class FileContent(BaseModel):
    path: str
    content: str
    encoding: ContentEncoding
    version: int


class FileWritten(BaseModel):
    path: str
    version: int
    size: int
    hash: str


class FileEntry(BaseModel):
    """One row of a file listing. hash lets clients skip unchanged downloads."""

    path: str
    size: int
    version: int
    hash: str
