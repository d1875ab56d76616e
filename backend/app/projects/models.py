"""Project and permission grant models plus Pydantic schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.session import Base
from app.projects.levels import PermissionLevel


def _level_column() -> Enum:
    # Store the wire values ("read-write"), not the member names
    return Enum(
        PermissionLevel,
        name="permission_level",
        native_enum=False,
        values_callable=lambda levels: [level.value for level in levels],
    )


class Project(Base):
    """A shared project. Names are unique per owner, not globally."""

    __tablename__ = "projects"
    __table_args__ = (UniqueConstraint("name", "owner_email", name="uq_project_name_owner"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    owner_email: Mapped[str] = mapped_column(
        String(255), ForeignKey("users.email", ondelete="CASCADE"), nullable=False, index=True
    )
    # Set on first share-link request, stable afterwards
    link_id: Mapped[Optional[str]] = mapped_column(String(64), unique=True, nullable=True)
    public_access: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    public_permission: Mapped[PermissionLevel] = mapped_column(
        _level_column(), default=PermissionLevel.READ, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class PermissionGrant(Base):
    """Per-user permission on a project. Never stored for the project owner."""

    __tablename__ = "permission_grants"

    project_id: Mapped[int] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True
    )
    user_email: Mapped[str] = mapped_column(
        String(255), ForeignKey("users.email", ondelete="CASCADE"), primary_key=True
    )
    permission: Mapped[PermissionLevel] = mapped_column(_level_column(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


# Pydantic schemas for API
class ProjectCreate(BaseModel):
    """Body for POST /api/projects."""

    name: str = Field(min_length=1, max_length=255)


class LinkRequest(BaseModel):
    """Body for POST /api/projects/link."""

    model_config = ConfigDict(populate_by_name=True)

    project_name: str = Field(alias="projectName", min_length=1, max_length=255)


class LinkResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    link: str
    link_id: str = Field(alias="linkId")
    project_name: str = Field(alias="projectName")


class ProjectSummary(BaseModel):
    """Project as returned by API. role is set in per-user listings."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    owner: str
    link_id: Optional[str] = Field(default=None, alias="linkId")
    public_access: bool = Field(alias="publicAccess")
    public_permission: PermissionLevel = Field(alias="publicPermission")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    role: Optional[str] = None

    @classmethod
    def of(cls, project: Project, role: Optional[str] = None) -> "ProjectSummary":
        return cls(
            name=project.name,
            owner=project.owner_email,
            link_id=project.link_id,
            public_access=project.public_access,
            public_permission=project.public_permission,
            created_at=project.created_at,
            role=role,
        )


class PermissionTarget(BaseModel):
    """Body for PUT /permissions: email null sets the public policy."""

    email: Optional[EmailStr] = None
    permission: PermissionLevel


class GrantView(BaseModel):
    email: str
    permission: PermissionLevel


class PermissionsView(BaseModel):
    """Response for GET /permissions."""

    model_config = ConfigDict(populate_by_name=True)

    public_access: bool = Field(alias="publicAccess")
    public_permission: PermissionLevel = Field(alias="publicPermission")
    grants: List[GrantView] = []
