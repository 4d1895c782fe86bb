"""
DTOs for the GitHub REST resources the gates read.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class Repo(BaseModel):
    """A repository reference parsed from ``owner/name``."""

    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @classmethod
    def from_full_name(cls, full_name: str) -> "Repo":
        owner, _, name = full_name.partition("/")
        if not owner or not name:
            raise ValueError(f"Repository must be in format owner/repository: {full_name}")
        return cls(owner=owner, name=name)


class GitHubFile(BaseModel):
    """A file fetched through the contents API, already decoded."""

    model_config = ConfigDict(extra="ignore")

    name: str
    path: str
    sha: str
    size: int
    content: str
    html_url: Optional[str] = None


class WorkflowRun(BaseModel):
    """The part of a workflow run the issues gate needs."""

    model_config = ConfigDict(extra="ignore")

    id: int
    created_at: datetime
