"""File API routes: put, get, delete and list within a project."""

import logging
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.db.session import get_db
from app.files import store
from app.files.content import ContentEncoding, encode_content
from app.files.models import FileContent, FileEntry, FileUpload, FileWritten
from app.limiter import limiter
from app.projects.directory import resolve_project
from app.users.models import User

router = APIRouter(prefix="/api/projects/{name}/files", tags=["files"])
log = logging.getLogger(__name__)

PathParam = Annotated[str, Query(min_length=1, description="File path relative to the project root")]
OwnerParam = Annotated[Optional[str], Query(description="Owner email when names are ambiguous")]


@router.put("", response_model=FileWritten)
@limiter.limit("600/minute")  # Bulk sync uploads a whole workspace file by file
async def put_file(
    request: Request,
    name: str,
    body: FileUpload,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[AsyncSession, Depends(get_db)],
    owner: OwnerParam = None,
) -> FileWritten:
    """Create or replace a file. Body: {path, content, encoding}; encoding is utf8 or base64."""
    project = await resolve_project(session, name, current_user.email, owner)
    row = await store.put_file(
        session, project, current_user.email, body.path, body.content, body.encoding
    )
    return FileWritten(path=row.path, version=row.version, size=len(row.content), hash=row.content_hash)


@router.get("", response_model=FileContent)
@limiter.limit("600/minute")
async def get_file(
    request: Request,
    name: str,
    path: PathParam,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[AsyncSession, Depends(get_db)],
    owner: OwnerParam = None,
) -> FileContent:
    project = await resolve_project(session, name, current_user.email, owner)
    row = await store.get_file(session, project, current_user.email, path)
    encoding = ContentEncoding(row.encoding)
    return FileContent(
        path=row.path,
        content=encode_content(row.content, encoding),
        encoding=encoding,
        version=row.version,
    )


@router.delete("", status_code=status.HTTP_200_OK)
@limiter.limit("600/minute")
async def delete_file(
    request: Request,
    name: str,
    path: PathParam,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[AsyncSession, Depends(get_db)],
    owner: OwnerParam = None,
) -> dict:
    project = await resolve_project(session, name, current_user.email, owner)
    deleted = await store.delete_file(session, project, current_user.email, path)
    return {"deleted": True, "path": deleted}


@router.get("/all", response_model=List[FileEntry])
@limiter.limit("60/minute")
async def list_files(
    request: Request,
    name: str,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[AsyncSession, Depends(get_db)],
    owner: OwnerParam = None,
) -> List[FileEntry]:
    """All files of the project (path, size, version, hash) in creation order."""
    project = await resolve_project(session, name, current_user.email, owner)
    entries = await store.list_files(session, project, current_user.email)
    log.info("list_files project=%s user=%s count=%d", name, current_user.email, len(entries))
    return entries
