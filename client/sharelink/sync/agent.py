"""Workspace sync agent: upload, download, push local changes, apply remote events.

Each bulk operation works file by file. A failing file is logged and recorded
in the BatchResult and never aborts its siblings, so a partial sync can simply
be retried.

The agent keeps a snapshot (path -> SHA-256 of content) of the state it last
agreed on with the server. push_local_changes diffs the workspace against it,
and apply_event updates it so a change received from the server is not pushed
back as a local edit.
"""

import base64
import fnmatch
import hashlib
import json
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import httpx

from sharelink.api.client import ShareLinkAPI
from sharelink.config import (
    get_config_path,
    get_exclude_patterns,
    get_max_upload_bytes,
    get_poll_interval,
)

log = logging.getLogger(__name__)

# Backend allows 600 file requests per minute; a handful of workers stays well below
SYNC_MAX_WORKERS = 4

PLACEHOLDER_README = "# {name}\n\nThis project was shared with ShareLink.\n"


@dataclass
class BatchResult:
    """Outcome of a bulk operation: per-path success, failure reason, or skip reason."""

    succeeded: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    skipped: Dict[str, str] = field(default_factory=dict)
    # Set when any request was rejected with 401 (access token expired)
    unauthorized: bool = False

    @property
    def ok(self) -> bool:
        return not self.failed

    def summary(self) -> str:
        return f"{len(self.succeeded)} ok, {len(self.failed)} failed, {len(self.skipped)} skipped"


def matches_pattern(path: str, pattern: str) -> bool:
    """
    'dir/**' matches everything under a directory named dir at any depth;
    a pattern without '/' matches the basename ('*.log'); anything else is
    matched against the whole path.
    """
    if pattern.endswith("/**"):
        prefix = pattern[:-3].strip("/")
        return f"/{path}/".find(f"/{prefix}/") != -1 and path != prefix
    if "/" not in pattern:
        return fnmatch.fnmatchcase(path.rsplit("/", 1)[-1], pattern)
    return fnmatch.fnmatchcase(path, pattern)


def is_excluded(path: str, patterns: Iterable[str]) -> bool:
    return any(matches_pattern(path, p) for p in patterns)


def content_hash(raw: bytes) -> str:
    return hashlib.sha256(raw).hexdigest()


def read_content(file_path: Path) -> Tuple[str, str, bytes]:
    """Read a file for upload. Returns (content, encoding, raw); non-UTF-8 files go as base64."""
    raw = file_path.read_bytes()
    try:
        return raw.decode("utf-8"), "utf8", raw
    except UnicodeDecodeError:
        return base64.b64encode(raw).decode("ascii"), "base64", raw


def decode_remote(content: str, encoding: str) -> bytes:
    if encoding == "base64":
        return base64.b64decode(content)
    return content.encode("utf-8")


def safe_relative_parts(path: str) -> List[str]:
    """Split a server path into segments; ValueError if it would leave the workspace."""
    parts = [p for p in path.replace("\\", "/").split("/") if p]
    if not parts or any(p in (".", "..") for p in parts):
        raise ValueError(f"Unsafe path: {path!r}")
    return parts


def default_state_path(project_name: str, owner: Optional[str], root: Path) -> Path:
    """Per-workspace snapshot file in the config dir."""
    key = content_hash(f"{owner or ''}|{project_name}|{root.resolve()}".encode("utf-8"))[:16]
    d = get_config_path().parent / "state"
    d.mkdir(parents=True, exist_ok=True)
    return d / f"{key}.json"


class SyncAgent:
    """Keeps one local workspace folder in sync with one shared project."""

    def __init__(
        self,
        api: ShareLinkAPI,
        project_name: str,
        root: Path,
        owner: Optional[str] = None,
        exclude_patterns: Optional[List[str]] = None,
        max_upload_bytes: Optional[int] = None,
        max_workers: int = SYNC_MAX_WORKERS,
        state_path: Optional[Path] = None,
    ) -> None:
        self.api = api
        self.project_name = project_name
        self.root = Path(root)
        self.owner = owner
        self.exclude_patterns = (
            list(exclude_patterns) if exclude_patterns is not None else get_exclude_patterns()
        )
        self.max_upload_bytes = max_upload_bytes or get_max_upload_bytes()
        self.max_workers = max_workers
        self._state_path = state_path or default_state_path(project_name, owner, self.root)
        self._lock = threading.Lock()
        self._snapshot: Dict[str, str] = self._load_state()

    # --- Snapshot persistence ---

    def _load_state(self) -> Dict[str, str]:
        if not self._state_path.exists():
            return {}
        try:
            data = json.loads(self._state_path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            log.warning("Ignoring unreadable sync state %s: %s", self._state_path, e)
            return {}
        files = data.get("files") if isinstance(data, dict) else None
        return dict(files) if isinstance(files, dict) else {}

    def _save_state(self) -> None:
        with self._lock:
            snapshot = dict(self._snapshot)
        self._state_path.parent.mkdir(parents=True, exist_ok=True)
        self._state_path.write_text(
            json.dumps({"project": self.project_name, "owner": self.owner, "files": snapshot}, indent=2),
            encoding="utf-8",
        )

    @property
    def snapshot(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._snapshot)

    def _remember(self, path: str, digest: Optional[str]) -> None:
        with self._lock:
            if digest is None:
                self._snapshot.pop(path, None)
            else:
                self._snapshot[path] = digest

    # --- Local workspace ---

    def _target(self, path: str) -> Path:
        return self.root.joinpath(*safe_relative_parts(path))

    def list_local(self) -> List[str]:
        """Relative paths (forward slashes) of all non-excluded files under root."""
        out: List[str] = []
        if not self.root.exists():
            return out
        for f in sorted(self.root.rglob("*")):
            try:
                if not f.is_file():
                    continue
                rel = f.relative_to(self.root).as_posix()
            except (OSError, ValueError):
                continue
            if not is_excluded(rel, self.exclude_patterns):
                out.append(rel)
        return out

    def scan(self) -> Dict[str, str]:
        """Current workspace state: path -> content hash."""
        state: Dict[str, str] = {}
        for rel in self.list_local():
            try:
                state[rel] = content_hash(self._target(rel).read_bytes())
            except OSError as e:
                log.warning("Cannot read %s: %s", rel, e)
        return state

    def _run_batch(
        self, paths: List[str], action: Callable[[str], Optional[str]], verb: str
    ) -> BatchResult:
        """Run action per path in a thread pool. action returns a skip reason or None."""
        result = BatchResult()
        if not paths:
            return result
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = {pool.submit(action, path): path for path in paths}
            for future in as_completed(futures):
                path = futures[future]
                try:
                    skip_reason = future.result()
                except (httpx.HTTPError, OSError, ValueError, RuntimeError) as e:
                    log.error("%s %s failed: %s", verb, path, e)
                    if isinstance(e, httpx.HTTPStatusError) and e.response.status_code == 401:
                        result.unauthorized = True
                    result.failed[path] = str(e)
                    continue
                if skip_reason:
                    log.info("%s %s skipped: %s", verb, path, skip_reason)
                    result.skipped[path] = skip_reason
                else:
                    result.succeeded.append(path)
        result.succeeded.sort()
        self._save_state()
        log.info("%s %s: %s", verb, self.project_name, result.summary())
        return result

    # --- Operations ---

    def _upload_one(self, path: str) -> Optional[str]:
        file_path = self._target(path)
        size = file_path.stat().st_size
        if size > self.max_upload_bytes:
            return f"larger than {self.max_upload_bytes} bytes"
        content, encoding, raw = read_content(file_path)
        self.api.upload_file(self.project_name, path, content, encoding, owner=self.owner)
        self._remember(path, content_hash(raw))
        return None

    def upload_project(self) -> BatchResult:
        """Upload every non-excluded file of the workspace."""
        return self._run_batch(self.list_local(), self._upload_one, "Upload")

    def _download_entry(self, entry: dict) -> Optional[str]:
        path = entry["path"]
        target = self._target(path)
        if is_excluded(path, self.exclude_patterns):
            return "excluded"
        remote_hash = entry.get("hash")
        if remote_hash and target.is_file() and content_hash(target.read_bytes()) == remote_hash:
            self._remember(path, remote_hash)
            return "unchanged"
        data = self.api.download_file(self.project_name, path, owner=self.owner)
        raw = decode_remote(data["content"], data.get("encoding", "utf8"))
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(raw)
        self._remember(path, content_hash(raw))
        return None

    def download_project(self) -> BatchResult:
        """Fetch every remote file into the workspace. Listing errors propagate."""
        entries = self.api.list_files(self.project_name, owner=self.owner)
        self.root.mkdir(parents=True, exist_ok=True)
        if not entries:
            readme = self.root / "README.md"
            if not readme.exists():
                readme.write_text(PLACEHOLDER_README.format(name=self.project_name), encoding="utf-8")
                log.info("Project %s is empty; created README.md", self.project_name)
            return BatchResult()
        by_path = {e["path"]: e for e in entries}
        return self._run_batch(
            list(by_path), lambda p: self._download_entry(by_path[p]), "Download"
        )

    def _delete_one(self, path: str) -> Optional[str]:
        self.api.delete_file(self.project_name, path, owner=self.owner)
        self._remember(path, None)
        return None

    def push_local_changes(self) -> BatchResult:
        """Upload new and modified files, delete files removed since the last snapshot."""
        current = self.scan()
        known = self.snapshot
        changed = sorted(p for p, digest in current.items() if known.get(p) != digest)
        removed = sorted(p for p in known if p not in current)
        if not changed and not removed:
            return BatchResult()
        log.info("Local changes in %s: %d changed, %d removed", self.root, len(changed), len(removed))
        result = self._run_batch(changed, self._upload_one, "Upload")
        deleted = self._run_batch(removed, self._delete_one, "Delete")
        result.succeeded = sorted(result.succeeded + deleted.succeeded)
        result.failed.update(deleted.failed)
        result.skipped.update(deleted.skipped)
        result.unauthorized = result.unauthorized or deleted.unauthorized
        return result

    def apply_event(self, message: dict) -> bool:
        """Apply a live-channel event to disk. Returns False if it is not for this workspace."""
        if message.get("projectName") != self.project_name:
            return False
        if self.owner and message.get("owner") not in (None, self.owner):
            return False
        path = message.get("path") or ""
        kind = message.get("type")
        try:
            target = self._target(path)
        except ValueError as e:
            log.warning("Ignoring %s event: %s", kind, e)
            return False
        if is_excluded(path, self.exclude_patterns):
            return False
        if kind == "file-updated":
            raw = decode_remote(message.get("content", ""), message.get("encoding", "utf8"))
            digest = content_hash(raw)
            if self.snapshot.get(path) == digest:
                # Our own upload coming back; the disk may already hold a newer edit
                log.debug("Ignoring echo of %s (version %s)", path, message.get("version"))
                return False
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(raw)
            self._remember(path, digest)
            log.info("Updated %s from server (version %s)", path, message.get("version"))
        elif kind == "file-deleted":
            target.unlink(missing_ok=True)
            self._remember(path, None)
            log.info("Deleted %s (removed on server)", path)
        else:
            return False
        self._save_state()
        return True

    def watch(
        self,
        stop_event: threading.Event,
        interval: Optional[float] = None,
        refresh_token: Optional[Callable[[], Optional[str]]] = None,
    ) -> None:
        """
        Poll the workspace and push local changes until stop_event is set.
        When a push is rejected with 401, refresh_token is asked for a new access
        token and the push is retried once in the same cycle.
        """
        interval = interval or get_poll_interval()
        log.info("Watching %s every %.1fs", self.root, interval)
        while not stop_event.wait(interval):
            try:
                result = self.push_local_changes()
            except httpx.HTTPError as e:
                log.warning("Push failed, retrying next cycle: %s", e)
                continue
            if result.unauthorized and refresh_token is not None:
                log.warning("Push got 401, attempting token refresh")
                token = refresh_token()
                if token:
                    self.api.set_access_token(token)
                    try:
                        result = self.push_local_changes()
                    except httpx.HTTPError as e:
                        log.warning("Push failed after token refresh: %s", e)
                        continue
            if result.failed:
                log.warning("Push left %d files unsynced: %s", len(result.failed), sorted(result.failed))
