"""
GitHub App client used by the gates.

One client per processed envelope: it mints an installation token on first
use and keeps it for its lifetime.
"""

import base64
from typing import Any, Dict, List, Optional

import httpx

from gates.core.config import Settings
from gates.core.exceptions import (
    AbuseDetectedError,
    GitHubApiError,
    GraphQLQueryError,
    RateLimitExceededError,
    SecondaryRateLimitExceededError,
)
from gates.core.logging import get_logger
from gates.integrations.github.auth import ACCEPT, create_app_jwt, get_access_token
from gates.integrations.github.retry import RetryTransport
from gates.schemas.github import GitHubFile, WorkflowRun

logger = get_logger(__name__)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.text


def raise_for_github_error(response: httpx.Response) -> None:
    """
    Turn an error response into the matching gates exception.

    Raises:
        SecondaryRateLimitExceededError: 429, or a secondary rate limit message.
        AbuseDetectedError: Abuse detection message.
        RateLimitExceededError: Primary rate limit exhausted.
        GitHubApiError: Any other status >= 400.
    """
    if response.status_code < 400:
        return

    message = _error_message(response)
    lowered = message.lower()
    headers = response.headers

    if response.status_code == 429 or "secondary rate limit" in lowered:
        raise SecondaryRateLimitExceededError(response.status_code, message, headers)
    if "abuse" in lowered:
        raise AbuseDetectedError(response.status_code, message, headers)
    if (
        response.status_code == 403 and headers.get("X-RateLimit-Remaining") == "0"
    ) or "rate limit exceeded" in lowered:
        raise RateLimitExceededError(response.status_code, message, headers)

    raise GitHubApiError(response.status_code, message)


class GitHubAppClient:
    """Client for the GitHub REST and GraphQL APIs, authenticated as an App installation."""

    def __init__(
        self,
        installation_id: int,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize GitHub client.

        Args:
            installation_id: Installation the webhook was delivered for.
            settings: Process settings (credentials, API url, retries).
            transport: Inner transport, mostly for tests. Always wrapped in
                the retry transport.
        """
        self.installation_id = installation_id
        self.settings = settings
        self.base_url = settings.GITHUB_API_URL.rstrip("/")
        self._installation_token: Optional[str] = None
        self._http = httpx.AsyncClient(
            transport=RetryTransport(
                transport,
                max_retries=settings.GATES_HTTP_MAX_RETRIES,
                sleep_base=settings.GATES_HTTP_RETRY_SLEEP_BASE,
            ),
            headers={"Accept": ACCEPT, "User-Agent": f"Gates-{installation_id}"},
            timeout=30.0,
        )

    async def __aenter__(self) -> "GitHubAppClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def get_installation_token(self) -> str:
        if self._installation_token is None:
            self._installation_token = await get_access_token(
                self.installation_id, self.settings, self._http
            )
        return self._installation_token

    async def _request(
        self,
        method: str,
        url: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        as_app: bool = False,
    ) -> httpx.Response:
        if as_app:
            token = create_app_jwt(self.settings.GHAPP_ID, self.settings.GHAPP_PEMCERTIFICATE)
        else:
            token = await self.get_installation_token()

        response = await self._http.request(
            method, url, json=json, headers={"Authorization": f"Bearer {token}"}
        )
        raise_for_github_error(response)
        return response

    # ------------------------------------------------------------------
    # Configuration files
    # ------------------------------------------------------------------
    async def get_file(self, owner: str, repo: str, path: str) -> GitHubFile:
        """
        Get a file from the default branch of a repository.

        Raises:
            GitHubApiError: The file doesn't exist or ``path`` is a directory.
        """
        response = await self._request("GET", f"{self.base_url}/repos/{owner}/{repo}/contents/{path}")
        data = response.json()
        if not isinstance(data, dict) or data.get("type", "file") != "file":
            raise GitHubApiError(response.status_code, f"{path} is not a file")

        content = data.get("content") or ""
        if data.get("encoding", "base64") == "base64":
            content = base64.b64decode(content).decode("utf-8")

        return GitHubFile(
            name=data["name"],
            path=data["path"],
            sha=data["sha"],
            size=data.get("size", len(content)),
            content=content,
            html_url=data.get("html_url"),
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    async def graphql(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        """
        Run a GraphQL query.

        Raises:
            GraphQLQueryError: The response carries an ``errors`` array.
        """
        response = await self._request(
            "POST", f"{self.base_url}/graphql", json={"query": query, "variables": variables}
        )
        data = response.json()

        errors = data.get("errors") if isinstance(data, dict) else None
        if errors:
            messages: List[str] = [
                str(error.get("message", error)) if isinstance(error, dict) else str(error)
                for error in errors
            ]
            raise GraphQLQueryError("API call failed with errors", messages)
        return data

    async def get_workflow_run(self, owner: str, repo: str, run_id: int) -> WorkflowRun:
        response = await self._request(
            "GET", f"{self.base_url}/repos/{owner}/{repo}/actions/runs/{run_id}"
        )
        return WorkflowRun.model_validate(response.json())

    # ------------------------------------------------------------------
    # Deployment protection rule decisions
    # ------------------------------------------------------------------
    async def approve(self, callback_url: str, environment: str, comment: Optional[str] = None) -> int:
        logger.info("Approve %s %s %s", environment, callback_url, comment)
        return await self._set_approval_decision(callback_url, "approved", environment, comment)

    async def reject(self, callback_url: str, environment: str, comment: Optional[str] = None) -> int:
        logger.info("Reject %s %s %s", environment, callback_url, comment)
        return await self._set_approval_decision(callback_url, "rejected", environment, comment)

    async def report_update(self, callback_url: str, environment: str, comment: str) -> int:
        logger.info("Reporting update %s %s with comment: %s", environment, callback_url, comment)
        response = await self._request(
            "POST", callback_url, json={"environment_name": environment, "comment": comment}
        )
        return response.status_code

    async def _set_approval_decision(
        self, callback_url: str, state: str, environment: str, comment: Optional[str]
    ) -> int:
        payload = {"state": state, "environment_name": environment, "comment": comment or ""}
        response = await self._request("POST", callback_url, json=payload)
        return response.status_code

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------
    async def get_app(self) -> Dict[str, Any]:
        """The authenticated GitHub App (JWT authentication)."""
        response = await self._request("GET", f"{self.base_url}/app", as_app=True)
        return response.json()

    async def get_rate_limit(self) -> Dict[str, Any]:
        response = await self._request("GET", f"{self.base_url}/rate_limit")
        return response.json()
