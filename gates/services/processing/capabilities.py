"""
External capabilities the processing pipeline consumes.

``GitHubAppClient`` implements every GitHub facing protocol; tests provide
in-memory fakes.
"""

from datetime import datetime
from typing import Any, Dict, Optional, Protocol

from gates.schemas.envelope import ProcessingEnvelope
from gates.schemas.github import GitHubFile, WorkflowRun


class ConfigSource(Protocol):
    async def get_file(self, owner: str, repo: str, path: str) -> GitHubFile: ...


class QueryClient(Protocol):
    async def graphql(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]: ...


class RunLookup(Protocol):
    async def get_workflow_run(self, owner: str, repo: str, run_id: int) -> WorkflowRun: ...


class DecisionClient(Protocol):
    async def approve(
        self, callback_url: str, environment: str, comment: Optional[str] = None
    ) -> int: ...

    async def reject(
        self, callback_url: str, environment: str, comment: Optional[str] = None
    ) -> int: ...

    async def report_update(self, callback_url: str, environment: str, comment: str) -> int: ...


class GitHubCapabilities(ConfigSource, QueryClient, RunLookup, DecisionClient, Protocol):
    """Everything a gate needs from GitHub."""


class WorkQueue(Protocol):
    async def enqueue(
        self,
        queue_name: str,
        envelope: ProcessingEnvelope,
        not_before: Optional[datetime] = None,
    ) -> None: ...
