"""Live channel listener: receives file events over the backend WebSocket.

Runs in its own thread on the websockets sync client. After every (re)connect
it authenticates, re-joins the rooms it was asked to join, and hands file
events to the callback. Connection failures are retried with exponential
backoff until stop() is called.
"""

import json
import logging
import threading
from typing import Callable, Dict, Optional, Tuple

from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI
from websockets.sync.client import connect

log = logging.getLogger(__name__)

EVENT_TYPES = ("file-updated", "file-deleted")
AUTH_TIMEOUT_SECONDS = 10.0


class AuthenticationFailed(Exception):
    """The server rejected the auth frame."""


def ws_url_from_base(base_url: str) -> str:
    """http(s)://host[:port] -> ws(s)://host[:port]/ws"""
    base = base_url.rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base[len("https://"):]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://"):]
    return base + "/ws"


class LiveChannel:
    def __init__(
        self,
        base_url: str,
        token_provider: Callable[[], Optional[str]],
        on_event: Callable[[dict], None],
        connect_factory: Callable = connect,
        backoff_initial: float = 1.0,
        backoff_max: float = 30.0,
    ) -> None:
        self.url = ws_url_from_base(base_url)
        self._token_provider = token_provider
        self._on_event = on_event
        self._connect = connect_factory
        self._backoff_initial = backoff_initial
        self._backoff_max = backoff_max
        # Insertion-ordered set of (project name, owner)
        self._rooms: Dict[Tuple[str, Optional[str]], None] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._ws = None
        self._thread: Optional[threading.Thread] = None

    @property
    def rooms(self):
        with self._lock:
            return list(self._rooms)

    def _send(self, message: dict) -> None:
        ws = self._ws
        if ws is None:
            return
        try:
            ws.send(json.dumps(message))
        except ConnectionClosed as e:
            log.debug("Send skipped, connection closed: %s", e)

    def join(self, project_name: str, owner: Optional[str] = None) -> None:
        """Subscribe to a project; remembered across reconnects."""
        with self._lock:
            self._rooms[(project_name, owner)] = None
        self._send(_room_message("join", project_name, owner))

    def leave(self, project_name: str, owner: Optional[str] = None) -> None:
        with self._lock:
            self._rooms.pop((project_name, owner), None)
        self._send(_room_message("leave", project_name, owner))

    def _dispatch(self, message: dict) -> None:
        kind = message.get("type")
        if kind in EVENT_TYPES:
            try:
                self._on_event(message)
            except (OSError, ValueError) as e:
                log.error("Applying %s for %s failed: %s", kind, message.get("path"), e)
        elif kind in ("joined", "left"):
            log.info("%s project %s (owner %s)", kind.capitalize(), message.get("projectName"), message.get("owner"))
        elif kind == "error":
            log.warning("Live channel error %s: %s", message.get("status"), message.get("detail"))
        else:
            log.debug("Ignoring message type %r", kind)

    def _session(self) -> None:
        """One connection lifetime: auth, re-join, then read until closed."""
        token = self._token_provider()
        if not token:
            raise AuthenticationFailed("No access token")
        with self._connect(self.url) as ws:
            ws.send(json.dumps({"type": "auth", "token": token}))
            reply = json.loads(ws.recv(timeout=AUTH_TIMEOUT_SECONDS))
            if reply.get("type") != "authenticated":
                raise AuthenticationFailed(reply.get("detail") or "rejected")
            log.info("Live channel connected to %s as %s", self.url, reply.get("email"))
            self._ws = ws
            try:
                for name, owner in self.rooms:
                    ws.send(json.dumps(_room_message("join", name, owner)))
                for raw in ws:
                    try:
                        message = json.loads(raw)
                    except ValueError:
                        log.warning("Ignoring non-JSON frame")
                        continue
                    if isinstance(message, dict):
                        self._dispatch(message)
            finally:
                self._ws = None

    def run(self) -> None:
        """Connect and reconnect until stop() is called."""
        delay = self._backoff_initial
        while not self._stop.is_set():
            try:
                self._session()
                delay = self._backoff_initial
            except AuthenticationFailed as e:
                log.warning("Live channel authentication failed: %s", e)
            except (ConnectionClosed, InvalidHandshake, InvalidURI, OSError, TimeoutError, ValueError) as e:
                log.warning("Live channel disconnected: %s", e)
            if self._stop.is_set():
                break
            log.info("Reconnecting live channel in %.1fs", delay)
            if self._stop.wait(delay):
                break
            delay = min(delay * 2, self._backoff_max)

    def start(self) -> threading.Thread:
        """Run in a daemon thread."""
        self._thread = threading.Thread(target=self.run, name="sharelink-live", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        ws = self._ws
        if ws is not None:
            ws.close()
        if self._thread is not None:
            self._thread.join(timeout)


def _room_message(kind: str, project_name: str, owner: Optional[str]) -> dict:
    message = {"type": kind, "projectName": project_name}
    if owner:
        message["owner"] = owner
    return message
