"""
services/github_contents.py
---------------------------
Thin async wrapper over the GitHub "repository contents" REST API:
 - read a file (decoded content + sha)
 - create / update a file (base64 body, optional sha for conditional update)
 - delete a file (used to compensate a half-finished submission)
"""

import base64
import time
from dataclasses import dataclass
from typing import Optional

import httpx
import structlog

from core.config import Settings
from metrics.metrics import get_metrics

logger = structlog.get_logger(__name__)


@dataclass
class RemoteFile:
    path: str
    sha: str
    content: bytes

    def text(self) -> str:
        return self.content.decode("utf-8")


class GitHubContentsClient:
    """Async client for one repository/branch of the GitHub contents API."""

    def __init__(
        self,
        token: str,
        repo: str,
        branch: str = "main",
        api_url: str = "https://api.github.com",
        timeout: float = 20.0,
        session: Optional[httpx.AsyncClient] = None,
    ):
        self.repo = repo
        self.branch = branch
        self.api_url = api_url.rstrip("/")
        self.headers = {
            "Authorization": f"token {token}",
            "Accept": "application/vnd.github.v3+json",
            "Content-Type": "application/json",
        }
        # A shared session belongs to the app; only close the one we opened.
        self._owns_session = session is None
        self.session = session or httpx.AsyncClient(timeout=timeout)
        self.metrics = get_metrics()

    @classmethod
    def from_settings(cls, settings: Settings, session: Optional[httpx.AsyncClient] = None) -> "GitHubContentsClient":
        return cls(
            token=settings.github_token,
            repo=settings.github_repo,
            branch=settings.github_branch,
            api_url=settings.github_api_url,
            timeout=settings.github_timeout,
            session=session,
        )

    def url_for(self, path: str) -> str:
        return f"{self.api_url}/repos/{self.repo}/contents/{path}"

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        start = time.perf_counter()
        res = await self.session.request(method, self.url_for(path), headers=self.headers, **kwargs)
        self.metrics.observe_github_request(method, res.status_code, time.perf_counter() - start)
        logger.debug("github_request", method=method, path=path, status_code=res.status_code)
        return res

    # ----------------------------------------------------------------
    #  Read
    # ----------------------------------------------------------------
    async def get_file(self, path: str) -> Optional[RemoteFile]:
        """Fetch a file; returns None when it cannot be read."""
        res = await self._request("GET", path, params={"ref": self.branch})
        if not res.is_success:
            if res.status_code != 404:
                logger.warning("github_read_failed", path=path, status_code=res.status_code, body=res.text)
            return None

        payload = res.json()
        # GitHub wraps the base64 body at 60 columns; b64decode drops the newlines.
        content = base64.b64decode(payload.get("content") or "")
        return RemoteFile(path=path, sha=payload["sha"], content=content)

    # ----------------------------------------------------------------
    #  Write
    # ----------------------------------------------------------------
    async def put_file(self, path: str, content: bytes, message: str, sha: Optional[str] = None) -> httpx.Response:
        """Create or update a file. Pass the current sha to update conditionally."""
        body = {
            "message": message,
            "content": base64.b64encode(content).decode("ascii"),
            "branch": self.branch,
        }
        if sha:
            body["sha"] = sha
        return await self._request("PUT", path, json=body)

    async def delete_file(self, path: str, sha: str, message: str) -> httpx.Response:
        body = {"message": message, "sha": sha, "branch": self.branch}
        return await self._request("DELETE", path, json=body)

    async def close(self):
        if self._owns_session:
            await self.session.aclose()
