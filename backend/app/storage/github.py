"""Remote storage on a GitHub repository through the contents API."""
from __future__ import annotations

import base64
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from app.storage.base import FileLocator, RemoteStorageError, StorageBackend, StoredFile, UploadResult


def _error_details(r: httpx.Response) -> str:
    try:
        data = r.json()
    except ValueError:
        return (r.text or "")[:300]
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return str(data)[:300]


class GitHubContentsBackend(StorageBackend):
    """
    Stores files as commits in `{owner}/{repo}` on `branch`.

    Upload: PUT /repos/{owner}/{repo}/contents/{path} with base64 content.
    Delete: DELETE on the same path; the blob sha returned at upload time is
    required by the API as an optimistic-concurrency token.
    """

    name = "github"

    def __init__(
        self,
        token: Optional[str],
        owner: str,
        repo: str,
        branch: str = "main",
        api_url: str = "https://api.github.com",
        raw_url: str = "https://raw.githubusercontent.com",
        path_prefix: str = "public/uploads",
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.token = token
        self.owner = owner
        self.repo = repo
        self.branch = branch
        self.api_url = api_url.rstrip("/")
        self.raw_url = raw_url.rstrip("/")
        self.path_prefix = path_prefix.strip("/")
        self.timeout = timeout
        self._transport = transport

    def _contents_url(self, path: str) -> str:
        return f"{self.api_url}/repos/{self.owner}/{self.repo}/contents/{quote(path, safe='/')}"

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"token {self.token}",
            "Accept": "application/vnd.github+json",
            "Content-Type": "application/json",
        }

    def _request(self, method: str, path: str, payload: Dict[str, Any]) -> httpx.Response:
        if not self.token:
            raise RemoteStorageError("GitHub token not configured")
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                return client.request(method, self._contents_url(path), json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            raise RemoteStorageError(f"GitHub request failed ({type(e).__name__})", details=str(e)) from e

    def repo_path(self, directory: str, file_name: str) -> str:
        parts = [p for p in (self.path_prefix, directory, file_name) if p]
        return "/".join(parts)

    def upload(self, item: StoredFile) -> UploadResult:
        path = self.repo_path(item.directory, item.file_name)
        payload = {
            "message": f"Add {item.original_name} to {item.directory}",
            "content": base64.b64encode(item.content).decode("ascii"),
            "branch": self.branch,
        }
        r = self._request("PUT", path, payload)
        if r.status_code >= 400:
            raise RemoteStorageError(
                f"Failed to upload to GitHub (HTTP {r.status_code})",
                status_code=r.status_code,
                details=_error_details(r),
            )
        content = (r.json() or {}).get("content") or {}
        sha = content.get("sha")
        if not sha:
            raise RemoteStorageError("GitHub response did not include a content sha", status_code=r.status_code)
        return UploadResult(
            file_name=item.file_name,
            file_path=path,
            file_url=f"{self.raw_url}/{self.owner}/{self.repo}/{self.branch}/{quote(path, safe='/')}",
            backend=self.name,
            file_size=len(item.content),
            file_type=item.content_type or None,
            github_sha=sha,
            github_url=content.get("html_url"),
        )

    def can_delete(self, locator: FileLocator) -> bool:
        return bool(locator.file_path and locator.sha)

    def delete(self, locator: FileLocator) -> None:
        if not self.can_delete(locator):
            raise RemoteStorageError("File path and SHA required")
        path = str(locator.file_path).lstrip("/")
        payload = {"message": f"Delete {path}", "sha": locator.sha, "branch": self.branch}
        r = self._request("DELETE", path, payload)
        if r.status_code >= 400:
            raise RemoteStorageError(
                f"Failed to delete from GitHub (HTTP {r.status_code})",
                status_code=r.status_code,
                details=_error_details(r),
            )
