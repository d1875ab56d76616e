"""
File store: versioned content per (project, path), gated by the permission engine.

put and delete take a per-key lock, commit, then hand the change to the sync
notifier before releasing the lock, so events for one path leave in commit order.
The version bump is done in SQL and stays exact even without the lock.
"""

import logging
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.errors import Internal, NotFound, TooLarge
from app.files.content import ContentEncoding, compute_hash, decode_content, encode_content
from app.files.locks import KeyedLock
from app.files.models import FileEntry, ProjectFile
from app.files.paths import normalize_path
from app.projects.levels import Operation
from app.projects.models import Project
from app.projects.permissions import require_access
from app.sync.notifier import FileDeleted, FileUpdated, get_notifier

log = logging.getLogger(__name__)

_write_locks = KeyedLock()


async def _find(session: AsyncSession, project_id: int, path: str) -> Optional[ProjectFile]:
    result = await session.execute(
        select(ProjectFile).where(ProjectFile.project_id == project_id, ProjectFile.path == path)
    )
    return result.scalar_one_or_none()


async def put_file(
    session: AsyncSession,
    project: Project,
    actor: str,
    path: str,
    content: str,
    encoding: ContentEncoding = ContentEncoding.UTF8,
) -> ProjectFile:
    """
    Create or replace a file. New files get version 1; each replacement adds 1.
    Raises Forbidden without write access, InvalidRequest for a bad path or
    content, TooLarge above max_file_bytes.
    """
    await require_access(session, project, actor, Operation.WRITE)
    path = normalize_path(path)
    encoding = ContentEncoding(encoding)
    raw = decode_content(content, encoding)
    limit = get_settings().max_file_bytes
    if len(raw) > limit:
        log.warning("put_file rejected path=%s size=%d limit=%d", path, len(raw), limit)
        raise TooLarge(f"File is {len(raw)} bytes; limit is {limit}")
    # Commit and rollback expire the project; keep what the event needs
    project_id, project_name, owner = project.id, project.name, project.owner_email
    content_hash = compute_hash(raw)

    async with _write_locks.hold((project_id, path)):
        row = await _find(session, project_id, path)
        if row is None:
            row = ProjectFile(
                project_id=project_id,
                path=path,
                content=raw,
                encoding=encoding.value,
                content_hash=content_hash,
                version=1,
            )
            session.add(row)
            try:
                await session.commit()
            except IntegrityError:
                # Created by another process between the lookup and the insert
                await session.rollback()
                row = await _find(session, project_id, path)
                if row is None:
                    raise Internal(f"File vanished during concurrent create: {path}")
                await _replace(session, row, raw, encoding, content_hash)
        else:
            await _replace(session, row, raw, encoding, content_hash)
        await session.refresh(row)
        get_notifier().publish(
            project_id,
            FileUpdated(
                project_name=project_name,
                owner=owner,
                path=path,
                content=encode_content(raw, encoding),
                encoding=encoding.value,
                version=row.version,
            ),
        )
    log.info(
        "put_file project=%s owner=%s path=%s size=%d version=%d by=%s",
        project_name, owner, path, len(raw), row.version, actor,
    )
    return row


async def _replace(
    session: AsyncSession, row: ProjectFile, raw: bytes, encoding: ContentEncoding, content_hash: str
) -> None:
    row.content = raw
    row.encoding = encoding.value
    row.content_hash = content_hash
    row.version = ProjectFile.version + 1
    await session.commit()


async def get_file(session: AsyncSession, project: Project, actor: str, path: str) -> ProjectFile:
    """Return the stored file; NotFound if the path has no file."""
    await require_access(session, project, actor, Operation.READ)
    path = normalize_path(path)
    row = await _find(session, project.id, path)
    if row is None:
        raise NotFound(f"File not found: {path}")
    # Identity map may hold a copy from before another session's update
    await session.refresh(row)
    return row


async def delete_file(session: AsyncSession, project: Project, actor: str, path: str) -> str:
    """Remove the file and notify the room; NotFound if absent. Returns the normalized path."""
    await require_access(session, project, actor, Operation.WRITE)
    path = normalize_path(path)
    project_id, project_name, owner = project.id, project.name, project.owner_email
    async with _write_locks.hold((project_id, path)):
        row = await _find(session, project_id, path)
        if row is None:
            raise NotFound(f"File not found: {path}")
        await session.delete(row)
        await session.commit()
        get_notifier().publish(project_id, FileDeleted(project_name=project_name, owner=owner, path=path))
    log.info("delete_file project=%s owner=%s path=%s by=%s", project_name, owner, path, actor)
    return path


async def list_files(session: AsyncSession, project: Project, actor: str) -> List[FileEntry]:
    """All files of the project in insertion order, without content."""
    await require_access(session, project, actor, Operation.READ)
    result = await session.execute(
        select(
            ProjectFile.path,
            func.length(ProjectFile.content),
            ProjectFile.version,
            ProjectFile.content_hash,
        )
        .where(ProjectFile.project_id == project.id)
        .order_by(ProjectFile.id)
    )
    return [
        FileEntry(path=path, size=size or 0, version=version, hash=content_hash)
        for path, size, version, content_hash in result.all()
    ]
