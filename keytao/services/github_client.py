"""
GitHub client - the REST calls dictionary sync needs, over httpx.
"""

import base64
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
import jwt

from keytao.config.settings import GithubSettings, get_settings
from keytao.core.exceptions import GithubApiError, GithubNotConfiguredError

logger = logging.getLogger(__name__)

# Refresh installation tokens this long before GitHub expires them
TOKEN_REFRESH_MARGIN_SECONDS = 60


@dataclass
class FileCommit:
    path: str
    content: str


def generate_branch_name(now: datetime) -> str:
    return f"update-dict-{now.strftime('%Y-%m-%d')}"


class GithubClient:
    """
    Client for the upstream dictionary repository.

    Authenticates as a GitHub App installation when app credentials are
    configured, otherwise with a personal access token.
    """

    def __init__(
        self,
        settings: Optional[GithubSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings().github
        if not (self.settings.has_app_credentials or self.settings.token):
            raise GithubNotConfiguredError()
        self.owner = self.settings.owner
        self.repo = self.settings.repo
        self.base_branch = self.settings.base_branch
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._installation_token: Optional[str] = None
        self._installation_token_expires: float = 0.0

    async def __aenter__(self) -> "GithubClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.settings.api_url,
                timeout=self.settings.timeout_seconds,
                transport=self._transport,
                headers={
                    "Accept": "application/vnd.github+json",
                    "X-GitHub-Api-Version": "2022-11-28",
                },
            )
        return self._client

    # Authentication

    def _app_jwt(self) -> str:
        now = int(time.time())
        payload = {"iat": now - 60, "exp": now + 540, "iss": str(self.settings.app_id)}
        return jwt.encode(payload, self.settings.app_private_key, algorithm="RS256")

    async def _auth_headers(self) -> Dict[str, str]:
        if not self.settings.has_app_credentials:
            return {"Authorization": f"Bearer {self.settings.token}"}

        if self._installation_token and time.time() < self._installation_token_expires:
            return {"Authorization": f"Bearer {self._installation_token}"}

        response = await self._get_client().post(
            f"/app/installations/{self.settings.app_installation_id}/access_tokens",
            headers={"Authorization": f"Bearer {self._app_jwt()}"},
        )
        if response.status_code != 201:
            raise GithubApiError("installation token", response.status_code, self._error_message(response))
        data = response.json()
        self._installation_token = data["token"]
        expires_at = data.get("expires_at")
        if expires_at:
            expires = datetime.fromisoformat(expires_at.replace("Z", "+00:00")).timestamp()
        else:
            expires = time.time() + 3600
        self._installation_token_expires = expires - TOKEN_REFRESH_MARGIN_SECONDS
        logger.info("Obtained GitHub App installation token")
        return {"Authorization": f"Bearer {self._installation_token}"}

    # Transport

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            return response.json().get("message", response.text)
        except ValueError:
            return response.text

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        allow_404: bool = False,
        **kwargs: Any,
    ) -> Optional[httpx.Response]:
        headers = await self._auth_headers()
        try:
            response = await self._get_client().request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise GithubApiError(operation, None, str(e)) from e

        if allow_404 and response.status_code == 404:
            return None
        if response.status_code >= 400:
            message = self._error_message(response)
            logger.warning(
                f"GitHub {operation} returned {response.status_code}: {message}",
                extra={"operation": operation, "status_code": response.status_code},
            )
            raise GithubApiError(operation, response.status_code, message)
        return response

    @property
    def _repo_path(self) -> str:
        return f"/repos/{self.owner}/{self.repo}"

    # Branches

    async def get_branch_sha(self, branch: str) -> str:
        response = await self._request("GET", f"{self._repo_path}/branches/{branch}", "get branch")
        return response.json()["commit"]["sha"]

    async def branch_exists(self, branch: str) -> bool:
        response = await self._request(
            "GET", f"{self._repo_path}/branches/{branch}", "get branch", allow_404=True
        )
        return response is not None

    async def create_branch(self, branch: str, from_branch: Optional[str] = None) -> None:
        sha = await self.get_branch_sha(from_branch or self.base_branch)
        await self._request(
            "POST",
            f"{self._repo_path}/git/refs",
            "create branch",
            json={"ref": f"refs/heads/{branch}", "sha": sha},
        )
        logger.info(f"Created branch {branch} at {sha[:7]}")

    async def get_or_create_branch(self, branch: str) -> str:
        if not await self.branch_exists(branch):
            await self.create_branch(branch)
        return branch

    # Contents

    async def _get_contents(self, ref: str, path: str) -> Optional[Dict[str, Any]]:
        response = await self._request(
            "GET",
            f"{self._repo_path}/contents/{path}",
            "get contents",
            allow_404=True,
            params={"ref": ref},
        )
        if response is None:
            return None
        data = response.json()
        # A directory listing is not a file
        return data if isinstance(data, dict) else None

    async def get_file_sha(self, ref: str, path: str) -> Optional[str]:
        data = await self._get_contents(ref, path)
        return data.get("sha") if data else None

    async def get_file_content(self, ref: str, path: str) -> Optional[str]:
        """
        Read a file at a ref.

        Returns:
            Decoded text, or None if the file (or ref) does not exist
        """
        data = await self._get_contents(ref, path)
        if not data or not data.get("content"):
            return None
        return base64.b64decode(data["content"]).decode("utf-8")

    async def commit_file(self, branch: str, file: FileCommit, message: str) -> None:
        """Create or update one file on a branch."""
        payload: Dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(file.content.encode("utf-8")).decode("ascii"),
            "branch": branch,
        }
        sha = await self.get_file_sha(branch, file.path)
        if sha:
            payload["sha"] = sha
        await self._request("PUT", f"{self._repo_path}/contents/{file.path}", "commit file", json=payload)
        logger.debug(f"Committed {file.path} to {branch}")

    async def commit_files(self, branch: str, files: List[FileCommit], message: str) -> None:
        for file in files:
            await self.commit_file(branch, file, message)

    # Pull requests

    async def create_pull_request(self, branch: str, title: str, body: str) -> Dict[str, Any]:
        response = await self._request(
            "POST",
            f"{self._repo_path}/pulls",
            "create pull request",
            json={"title": title, "body": body, "head": branch, "base": self.base_branch},
        )
        data = response.json()
        logger.info(f"Opened pull request #{data['number']} from {branch}")
        return {"number": data["number"], "html_url": data["html_url"], "branch": branch}
