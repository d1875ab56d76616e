"""
Live channel: WebSocket endpoint that pushes file events to joined projects.

Protocol (JSON text frames):
  client -> {"type": "auth", "token": <access token>}   must be the first frame
  server -> {"type": "authenticated", "email": ...}
  client -> {"type": "join", "projectName": ..., "owner": optional}
  server -> {"type": "joined", "projectName": ..., "owner": ...}
  client -> {"type": "leave", "projectName": ..., "owner": optional}
  server -> {"type": "left", "projectName": ..., "owner": ...}
  server -> {"type": "file-updated", ...} / {"type": "file-deleted", ...}
  server -> {"type": "error", "status": <http status>, "detail": ...}
A missing or invalid auth frame closes the socket with code 4401.
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.auth.dependencies import user_from_token
from app.config import get_settings
from app.db.session import get_session
from app.errors import InvalidRequest, NotFound, ShareLinkError, Unauthenticated
from app.projects.directory import resolve_project
from app.projects.levels import Operation
from app.projects.permissions import require_access
from app.sync.notifier import Subscriber, get_notifier

router = APIRouter(tags=["sync"])
log = logging.getLogger(__name__)

AUTH_FAILED_CLOSE_CODE = 4401


def _error(exc: ShareLinkError) -> dict:
    return {"type": "error", "status": exc.status_code, "detail": exc.detail}


async def _authenticate(websocket: WebSocket) -> Optional[str]:
    """Read the auth frame; return the user's email or close the socket and return None."""
    timeout = get_settings().ws_auth_timeout_seconds
    try:
        frame = await asyncio.wait_for(websocket.receive_json(), timeout=timeout)
    except WebSocketDisconnect:
        return None
    except (asyncio.TimeoutError, ValueError):
        frame = None
    token = frame.get("token") if isinstance(frame, dict) and frame.get("type") == "auth" else None
    try:
        if token is None:
            raise Unauthenticated("First message must be {\"type\": \"auth\", \"token\": ...}")
        async with get_session() as session:
            user = await user_from_token(session, token)
    except Unauthenticated as e:
        log.warning("Live channel auth failed: %s", e.detail)
        await websocket.send_json(_error(e))
        await websocket.close(code=AUTH_FAILED_CLOSE_CODE)
        return None
    return user.email


async def _pump(websocket: WebSocket, subscriber: Subscriber) -> None:
    """Drain the subscriber's outbox into the socket until closed."""
    while True:
        message = await subscriber.next_message()
        if message is None:
            return
        try:
            await websocket.send_json(message)
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            log.debug("Send to %r failed, stopping: %s", subscriber, e)
            return


async def _handle(message: dict, subscriber: Subscriber) -> None:
    notifier = get_notifier()
    kind = message.get("type")
    if kind not in ("join", "leave"):
        raise InvalidRequest(f"Unknown message type: {kind!r}")
    name = message.get("projectName")
    if not isinstance(name, str) or not name:
        raise InvalidRequest("projectName is required")
    owner = message.get("owner")
    if owner is not None and (not isinstance(owner, str) or not owner.strip()):
        raise InvalidRequest("owner must be an email")
    async with get_session() as session:
        project = await resolve_project(session, name, subscriber.user_email, owner)
        if kind == "join":
            await require_access(session, project, subscriber.user_email, Operation.READ)
    reply = {"projectName": project.name, "owner": project.owner_email}
    if kind == "join":
        notifier.subscribe(project.id, subscriber)
        log.info("user=%s joined project=%s owner=%s", subscriber.user_email, project.name, project.owner_email)
        subscriber.reply({"type": "joined", **reply})
    else:
        if not notifier.unsubscribe(project.id, subscriber):
            raise NotFound(f"Not joined: {name}")
        subscriber.reply({"type": "left", **reply})


@router.websocket("/ws")
async def live_channel(websocket: WebSocket) -> None:
    await websocket.accept()
    email = await _authenticate(websocket)
    if email is None:
        return
    subscriber = Subscriber(email)
    subscriber.reply({"type": "authenticated", "email": email})
    pump = asyncio.create_task(_pump(websocket, subscriber))
    try:
        while True:
            try:
                message = await websocket.receive_json()
            except ValueError:
                subscriber.reply(_error(InvalidRequest("Messages must be JSON objects")))
                continue
            try:
                if not isinstance(message, dict):
                    raise InvalidRequest("Messages must be JSON objects")
                await _handle(message, subscriber)
            except ShareLinkError as e:
                subscriber.reply(_error(e))
    except WebSocketDisconnect:
        log.debug("Live channel closed for user=%s", email)
    finally:
        get_notifier().disconnect(subscriber)
        subscriber.close()
        await pump
