"""HTTP client for the ShareLink backend API."""

import logging
import time
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlparse

import httpx

from sharelink.config import get_base_url

log = logging.getLogger(__name__)

RETRY_STATUSES = (429, 502, 503)


def extract_link_id(link_or_id: str) -> str:
    """Accept a full share URL or a bare link id; return the link id."""
    value = (link_or_id or "").strip()
    if "://" in value:
        value = urlparse(value).path
    return value.rstrip("/").rsplit("/", 1)[-1]


class ShareLinkAPI:
    """
    Client for the ShareLink backend: auth, projects, permissions and files.
    The access token lives on the instance; nothing is kept in module state.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        access_token: Optional[str] = None,
    ) -> None:
        self._base_url = (base_url or get_base_url()).rstrip("/")
        self._access_token = access_token
        log.debug("API client base_url=%s", self._base_url)

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token

    def _headers(self) -> Dict[str, str]:
        out = {"Accept": "application/json"}
        if self._access_token:
            out["Authorization"] = f"Bearer {self._access_token}"
        return out

    def _project_url(self, project_name: str, suffix: str = "") -> str:
        return f"{self._base_url}/api/projects/{quote(project_name, safe='')}{suffix}"

    @staticmethod
    def _owner_params(owner: Optional[str]) -> Dict[str, str]:
        return {"owner": owner} if owner else {}

    def set_access_token(self, token: Optional[str]) -> None:
        """Set or clear the access token."""
        self._access_token = token

    # --- Auth ---

    def authenticate(self, email: str, password: str) -> Dict[str, Any]:
        """POST /api/auth/authenticate: log in, or register when the email is new."""
        with httpx.Client(timeout=30.0) as client:
            r = client.post(
                f"{self._base_url}/api/auth/authenticate",
                json={"email": email, "password": password},
            )
            r.raise_for_status()
            data = r.json()
            self._access_token = data["access_token"]
            return data

    def refresh(self, refresh_token: str) -> Dict[str, Any]:
        """POST /api/auth/refresh. Returns new token pair."""
        with httpx.Client(timeout=30.0) as client:
            r = client.post(
                f"{self._base_url}/api/auth/refresh",
                json={"refresh_token": refresh_token},
            )
            r.raise_for_status()
            data = r.json()
            self._access_token = data["access_token"]
            return data

    def me(self) -> Dict[str, Any]:
        """GET /api/users/me. Requires auth."""
        with httpx.Client(timeout=30.0) as client:
            r = client.get(f"{self._base_url}/api/users/me", headers=self._headers())
            r.raise_for_status()
            return r.json()

    # --- Projects ---

    def list_projects(self) -> List[Dict[str, Any]]:
        """GET /api/projects: projects owned or shared with the caller, with role."""
        with httpx.Client(timeout=30.0) as client:
            r = client.get(f"{self._base_url}/api/projects", headers=self._headers())
            r.raise_for_status()
            return r.json()

    def create_project_link(self, project_name: str) -> Dict[str, Any]:
        """POST /api/projects/link. Returns {link, linkId, projectName}."""
        with httpx.Client(timeout=30.0) as client:
            r = client.post(
                f"{self._base_url}/api/projects/link",
                json={"projectName": project_name},
                headers=self._headers(),
            )
            r.raise_for_status()
            return r.json()

    def resolve_link(self, link_or_id: str) -> Dict[str, Any]:
        """GET /api/projects/link/{linkId}. Accepts a full share URL too."""
        link_id = extract_link_id(link_or_id)
        with httpx.Client(timeout=30.0) as client:
            r = client.get(
                f"{self._base_url}/api/projects/link/{quote(link_id, safe='')}",
                headers=self._headers(),
            )
            r.raise_for_status()
            return r.json()

    def get_permissions(self, project_name: str, owner: Optional[str] = None) -> Dict[str, Any]:
        with httpx.Client(timeout=30.0) as client:
            r = client.get(
                self._project_url(project_name, "/permissions"),
                params=self._owner_params(owner),
                headers=self._headers(),
            )
            r.raise_for_status()
            return r.json()

    def set_permissions(
        self,
        project_name: str,
        permission: str,
        email: Optional[str] = None,
        owner: Optional[str] = None,
    ) -> Dict[str, Any]:
        """PUT /permissions. email None sets the public policy."""
        with httpx.Client(timeout=30.0) as client:
            r = client.put(
                self._project_url(project_name, "/permissions"),
                params=self._owner_params(owner),
                json={"email": email, "permission": permission},
                headers=self._headers(),
            )
            r.raise_for_status()
            return r.json()

    def revoke_permission(
        self, project_name: str, email: Optional[str] = None, owner: Optional[str] = None
    ) -> Dict[str, Any]:
        """DELETE /permissions. Without email, turns public access off."""
        params = self._owner_params(owner)
        if email:
            params["email"] = email
        with httpx.Client(timeout=30.0) as client:
            r = client.delete(
                self._project_url(project_name, "/permissions"),
                params=params,
                headers=self._headers(),
            )
            r.raise_for_status()
            return r.json()

    # --- Files ---

    def list_files(self, project_name: str, owner: Optional[str] = None) -> List[Dict[str, Any]]:
        """GET /files/all. Returns [{path, size, version, hash}, ...]."""
        with httpx.Client(timeout=60.0) as client:
            r = client.get(
                self._project_url(project_name, "/files/all"),
                params=self._owner_params(owner),
                headers=self._headers(),
            )
            r.raise_for_status()
            data = r.json()
            log.debug("list_files project=%s returned %d items", project_name, len(data))
            return data

    def upload_file(
        self,
        project_name: str,
        path: str,
        content: str,
        encoding: str = "utf8",
        owner: Optional[str] = None,
    ) -> Dict[str, Any]:
        """PUT /files with {path, content, encoding}. Retries on 429/502/503 and on timeout."""
        log.debug("upload_file project=%s path=%s encoding=%s", project_name, path, encoding)
        max_attempts = 5
        for attempt in range(max_attempts):
            try:
                with httpx.Client(timeout=120.0) as client:
                    r = client.put(
                        self._project_url(project_name, "/files"),
                        params=self._owner_params(owner),
                        json={"path": path, "content": content, "encoding": encoding},
                        headers=self._headers(),
                    )
                    if r.status_code in RETRY_STATUSES and attempt < max_attempts - 1:
                        delay = self._retry_delay(r, attempt)
                        log.warning(
                            "Upload %s: %s %s, retry in %ds (attempt %d/%d)",
                            path, r.status_code, r.reason_phrase, delay, attempt + 1, max_attempts,
                        )
                        time.sleep(delay)
                        continue
                    r.raise_for_status()
                    return r.json()
            except httpx.TimeoutException:
                if attempt < max_attempts - 1:
                    delay = 10 * (attempt + 1)
                    log.warning(
                        "Upload %s: timeout, retry in %ds (attempt %d/%d)",
                        path, delay, attempt + 1, max_attempts,
                    )
                    time.sleep(delay)
                    continue
                raise
        raise RuntimeError(f"Upload {path}: retries exhausted")

    @staticmethod
    def _retry_delay(response: httpx.Response, attempt: int) -> int:
        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            if retry_after and retry_after.isdigit():
                return min(65, int(retry_after))
            return 65
        return 2 * (2 ** attempt)

    def download_file(
        self, project_name: str, path: str, owner: Optional[str] = None
    ) -> Dict[str, Any]:
        """GET /files?path=... Returns {path, content, encoding, version}. Retries on 429."""
        log.debug("download_file project=%s path=%s", project_name, path)
        max_attempts = 5
        for attempt in range(max_attempts):
            with httpx.Client(timeout=60.0) as client:
                r = client.get(
                    self._project_url(project_name, "/files"),
                    params={"path": path, **self._owner_params(owner)},
                    headers=self._headers(),
                )
                if r.status_code == 429 and attempt < max_attempts - 1:
                    delay = self._retry_delay(r, attempt)
                    log.warning(
                        "Download %s: 429 Too Many Requests, retry in %ds (attempt %d/%d)",
                        path, delay, attempt + 1, max_attempts,
                    )
                    time.sleep(delay)
                    continue
                r.raise_for_status()
                return r.json()
        raise RuntimeError(f"Download {path}: retries exhausted")

    def delete_file(self, project_name: str, path: str, owner: Optional[str] = None) -> None:
        """DELETE /files?path=... Treats 404 as success (file already gone)."""
        log.debug("delete_file project=%s path=%s", project_name, path)
        with httpx.Client(timeout=30.0) as client:
            r = client.delete(
                self._project_url(project_name, "/files"),
                params={"path": path, **self._owner_params(owner)},
                headers=self._headers(),
            )
            if r.status_code == 404:
                log.debug("delete_file path=%s: already gone (404)", path)
                return
            r.raise_for_status()
