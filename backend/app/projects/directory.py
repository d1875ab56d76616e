"""
Project directory: projects, share links and per-user permission grants.

Project names are unique per owner only, so every name-addressed lookup goes
through resolve_project, which picks the project the actor most plausibly
means (their own, then one shared with them, then a public one).
"""

import logging
import uuid
from typing import List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.errors import Conflict, Forbidden, InvalidRequest, NotFound
from app.projects.levels import PermissionLevel
from app.projects.models import PermissionGrant, PermissionsView, GrantView, Project
from app.users.service import get_user_by_email, normalize_email

log = logging.getLogger(__name__)

MAX_NAME_LENGTH = 255


def validate_name(name: str) -> str:
    """Return the trimmed project name or raise InvalidRequest."""
    name = (name or "").strip()
    if not name:
        raise InvalidRequest("Project name is required")
    if len(name) > MAX_NAME_LENGTH:
        raise InvalidRequest(f"Project name longer than {MAX_NAME_LENGTH} characters")
    if "/" in name or "\\" in name or any(ord(c) < 32 for c in name):
        raise InvalidRequest(f"Invalid project name: {name!r}")
    return name


def share_url(link_id: str) -> str:
    """Public URL for a link id."""
    return f"{get_settings().share_link_base_url.rstrip('/')}/{link_id}"


async def get_owned_project(session: AsyncSession, name: str, owner: str) -> Optional[Project]:
    result = await session.execute(
        select(Project).where(Project.name == name, Project.owner_email == normalize_email(owner))
    )
    return result.scalar_one_or_none()


async def create_project(session: AsyncSession, name: str, owner: str) -> Project:
    """Create a private project with no link. Raises Conflict if owner already has one by that name."""
    name = validate_name(name)
    if await get_owned_project(session, name, owner):
        raise Conflict(f"Project already exists: {name}")
    project = Project(
        name=name,
        owner_email=owner,
        public_access=False,
        public_permission=PermissionLevel.READ,
    )
    session.add(project)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise Conflict(f"Project already exists: {name}")
    await session.refresh(project)
    log.info("Created project=%s owner=%s", name, owner)
    return project


async def get_or_create_project(session: AsyncSession, name: str, owner: str) -> Project:
    """Return owner's project by name, creating it if missing. Safe against a concurrent create."""
    name = validate_name(name)
    project = await get_owned_project(session, name, owner)
    if project:
        return project
    try:
        return await create_project(session, name, owner)
    except Conflict:
        project = await get_owned_project(session, name, owner)
        if project is None:
            raise
        return project


async def generate_link(session: AsyncSession, name: str, owner: str) -> Project:
    """
    Assign a link id to owner's project on first call; later calls return the same id.
    Raises NotFound if the owner has no such project.
    """
    project = await get_owned_project(session, validate_name(name), owner)
    if project is None:
        raise NotFound(f"Project not found: {name}")
    if project.link_id:
        return project
    # Conditional update: a concurrent caller that already set the link wins
    await session.execute(
        update(Project)
        .where(Project.id == project.id, Project.link_id.is_(None))
        .values(link_id=str(uuid.uuid4()))
    )
    await session.commit()
    await session.refresh(project)
    log.info("Share link for project=%s owner=%s link_id=%s", project.name, owner, project.link_id)
    return project


async def resolve_link(session: AsyncSession, link_id: str) -> Project:
    """Return the project a link id points at; NotFound if unknown."""
    result = await session.execute(select(Project).where(Project.link_id == link_id))
    project = result.scalar_one_or_none()
    if project is None:
        raise NotFound("Link not found")
    return project


async def resolve_project(
    session: AsyncSession, name: str, actor: str, owner: Optional[str] = None
) -> Project:
    """
    Find the project a name refers to for this actor.
    Order: explicit owner; the actor's own; oldest shared with the actor; oldest public;
    oldest of any owner (authorization then rejects it). NotFound if no project has the name.
    """
    if owner:
        project = await get_owned_project(session, name, owner)
        if project is None:
            raise NotFound(f"Project not found: {name}")
        return project
    project = await get_owned_project(session, name, actor)
    if project:
        return project
    candidates = [
        select(Project)
        .join(PermissionGrant, PermissionGrant.project_id == Project.id)
        .where(Project.name == name, PermissionGrant.user_email == actor),
        select(Project).where(Project.name == name, Project.public_access.is_(True)),
        select(Project).where(Project.name == name),
    ]
    for query in candidates:
        result = await session.execute(query.order_by(Project.id).limit(1))
        project = result.scalar_one_or_none()
        if project:
            return project
    raise NotFound(f"Project not found: {name}")


def require_owner(project: Project, actor: str) -> None:
    if project.owner_email != actor:
        log.warning("Non-owner %s tried to manage project=%s", actor, project.name)
        raise Forbidden("Only the project owner can manage permissions")


async def set_permissions(
    session: AsyncSession,
    project: Project,
    actor: str,
    email: Optional[str],
    permission: PermissionLevel,
) -> None:
    """
    Owner only. email None turns on public access at the given level;
    otherwise create or replace the grant for that user.
    """
    require_owner(project, actor)
    permission = PermissionLevel(permission)
    if email is None:
        project.public_access = True
        project.public_permission = permission
        await session.commit()
        log.info("Public %s on project=%s owner=%s", permission.value, project.name, actor)
        return
    user = await get_user_by_email(session, email)
    if user is None:
        raise NotFound(f"User not found: {normalize_email(email)}")
    grantee = user.email
    if grantee == project.owner_email:
        raise InvalidRequest("The owner already has full access")
    grant = await session.get(PermissionGrant, (project.id, grantee))
    if grant:
        grant.permission = permission
    else:
        session.add(PermissionGrant(project_id=project.id, user_email=grantee, permission=permission))
    try:
        await session.commit()
    except IntegrityError:
        # Same grant created concurrently: overwrite it
        await session.rollback()
        await session.refresh(project)
        await session.execute(
            update(PermissionGrant)
            .where(PermissionGrant.project_id == project.id, PermissionGrant.user_email == grantee)
            .values(permission=permission)
        )
        await session.commit()
    log.info("Granted %s on project=%s to %s", permission.value, project.name, grantee)


async def revoke_permission(
    session: AsyncSession, project: Project, actor: str, email: Optional[str]
) -> None:
    """Owner only. Remove a user's grant (NotFound if none), or disable public access when email is None."""
    require_owner(project, actor)
    if email is None:
        project.public_access = False
        await session.commit()
        log.info("Public access disabled on project=%s", project.name)
        return
    email = normalize_email(email)
    grant = await session.get(PermissionGrant, (project.id, email))
    if grant is None:
        raise NotFound(f"No permission for {email}")
    await session.delete(grant)
    await session.commit()
    log.info("Revoked permission on project=%s from %s", project.name, email)


async def get_permissions(session: AsyncSession, project: Project, actor: str) -> PermissionsView:
    """Owner only: public policy plus every grant."""
    require_owner(project, actor)
    result = await session.execute(
        select(PermissionGrant)
        .where(PermissionGrant.project_id == project.id)
        .order_by(PermissionGrant.user_email)
    )
    grants = [GrantView(email=g.user_email, permission=g.permission) for g in result.scalars()]
    return PermissionsView(
        public_access=project.public_access,
        public_permission=project.public_permission,
        grants=grants,
    )


async def list_for_user(session: AsyncSession, email: str) -> List[Tuple[Project, str]]:
    """Projects the user owns or holds a grant on, each with the user's role."""
    owned = await session.execute(
        select(Project).where(Project.owner_email == email).order_by(Project.id)
    )
    listing: List[Tuple[Project, str]] = [(p, "owner") for p in owned.scalars()]
    seen = {p.id for p, _ in listing}
    shared = await session.execute(
        select(Project, PermissionGrant.permission)
        .join(PermissionGrant, PermissionGrant.project_id == Project.id)
        .where(PermissionGrant.user_email == email)
        .order_by(Project.id)
    )
    for project, level in shared.all():
        if project.id not in seen:
            seen.add(project.id)
            listing.append((project, PermissionLevel(level).value))
    return listing
