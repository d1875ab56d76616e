"""Project routes: listing, creation, share links and permission management."""

import logging
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.db.session import get_db
from app.limiter import limiter
from app.projects import directory
from app.projects.models import (
    LinkRequest,
    LinkResponse,
    PermissionTarget,
    PermissionsView,
    ProjectCreate,
    ProjectSummary,
)
from app.users.models import User

router = APIRouter(prefix="/api/projects", tags=["projects"])
# Registered after every other /api/projects router so /link/{link_id} never shadows
# routes of a project that happens to be named "link"
link_router = APIRouter(prefix="/api/projects", tags=["projects"])
log = logging.getLogger(__name__)

OwnerParam = Annotated[Optional[str], Query(description="Owner email when names are ambiguous")]


@router.get("", response_model=List[ProjectSummary])
@limiter.limit("60/minute")
async def list_my_projects(
    request: Request,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[AsyncSession, Depends(get_db)],
) -> List[ProjectSummary]:
    """Projects the caller owns or has been granted, with the caller's role."""
    listing = await directory.list_for_user(session, current_user.email)
    log.debug("list_projects user=%s count=%d", current_user.email, len(listing))
    return [ProjectSummary.of(project, role) for project, role in listing]


@router.post("", response_model=ProjectSummary, status_code=status.HTTP_201_CREATED)
@limiter.limit("60/minute")
async def create_project(
    request: Request,
    body: ProjectCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[AsyncSession, Depends(get_db)],
) -> ProjectSummary:
    project = await directory.create_project(session, body.name, current_user.email)
    return ProjectSummary.of(project, "owner")


@router.post("/link", response_model=LinkResponse)
@limiter.limit("60/minute")
async def create_or_get_project_link(
    request: Request,
    body: LinkRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[AsyncSession, Depends(get_db)],
) -> LinkResponse:
    """Create the caller's project if needed and return its stable share link."""
    await directory.get_or_create_project(session, body.project_name, current_user.email)
    project = await directory.generate_link(session, body.project_name, current_user.email)
    return LinkResponse(
        link=directory.share_url(project.link_id),
        link_id=project.link_id,
        project_name=project.name,
    )


@router.get("/{name}/permissions", response_model=PermissionsView)
@limiter.limit("60/minute")
async def get_permissions(
    request: Request,
    name: str,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[AsyncSession, Depends(get_db)],
    owner: OwnerParam = None,
) -> PermissionsView:
    project = await directory.resolve_project(session, name, current_user.email, owner)
    return await directory.get_permissions(session, project, current_user.email)


@router.put("/{name}/permissions", response_model=PermissionsView)
@limiter.limit("60/minute")
async def set_permissions(
    request: Request,
    name: str,
    body: PermissionTarget,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[AsyncSession, Depends(get_db)],
    owner: OwnerParam = None,
) -> PermissionsView:
    """
    Owner only. {"email": null, "permission": ...} sets the public policy;
    with an email, grants (or replaces) that user's permission.
    """
    project = await directory.resolve_project(session, name, current_user.email, owner)
    await directory.set_permissions(
        session, project, current_user.email, body.email, body.permission
    )
    return await directory.get_permissions(session, project, current_user.email)


@router.delete("/{name}/permissions", response_model=PermissionsView)
@limiter.limit("60/minute")
async def revoke_permission(
    request: Request,
    name: str,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[AsyncSession, Depends(get_db)],
    email: Annotated[Optional[str], Query()] = None,
    owner: OwnerParam = None,
) -> PermissionsView:
    """Owner only. Remove a user's grant, or disable public access when no email is given."""
    project = await directory.resolve_project(session, name, current_user.email, owner)
    await directory.revoke_permission(session, project, current_user.email, email)
    return await directory.get_permissions(session, project, current_user.email)


@link_router.get("/link/{link_id}", response_model=ProjectSummary)
@limiter.limit("60/minute")
async def resolve_link(
    request: Request,
    link_id: str,
    session: Annotated[AsyncSession, Depends(get_db)],
) -> ProjectSummary:
    """Look up a shared project by link id. No token required; file access still is."""
    project = await directory.resolve_link(session, link_id)
    return ProjectSummary.of(project)
