"""
Deployment protection rule webhook payload.

Only the fields the gates read are declared. Everything else GitHub sends is
kept (``extra="allow"``) so the payload survives the trip through the work
queue untouched.
"""

from typing import Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict


class _Payload(BaseModel):
    model_config = ConfigDict(extra="allow")


class Owner(_Payload):
    login: str


class Repository(_Payload):
    name: str
    full_name: str
    owner: Owner


class Installation(_Payload):
    id: int


class Deployment(_Payload):
    id: Optional[int] = None
    sha: Optional[str] = None
    environment: Optional[str] = None


class DeploymentProtectionRuleWebHook(_Payload):
    """Body of a ``deployment_protection_rule`` event."""

    action: str
    environment: str
    event: Optional[str] = None
    deployment_callback_url: str
    deployment: Optional[Deployment] = None
    repository: Repository
    installation: Installation

    @property
    def run_id(self) -> int:
        return get_run_id(self.deployment_callback_url)


def get_run_id(callback_url: Optional[str]) -> int:
    """
    Extract the workflow run id from a deployment callback url.

    The payload has no run id field, the callback url embeds it:
    https://api.github.com/repos/<owner>/<repo>/actions/runs/<run_id>/deployment_protection_rule
    """
    if callback_url is None:
        raise ValueError("callback_url is required")
    if not callback_url.strip():
        raise ValueError("callback_url cannot be empty")

    segments = urlparse(callback_url).path.split("/")
    if len(segments) < 7 or not segments[6].isdigit():
        raise ValueError(f"No run id in callback url {callback_url}")
    return int(segments[6])
