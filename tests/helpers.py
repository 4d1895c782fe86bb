"""In-memory GitHub and work queue fakes, webhook payload builders."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from gates.schemas.envelope import ProcessingEnvelope
from gates.schemas.github import GitHubFile, WorkflowRun
from gates.schemas.webhook import DeploymentProtectionRuleWebHook

CALLBACK_URL = "https://api.github.com/repos/octo/app/actions/runs/4493385896/deployment_protection_rule"


def make_payload(environment: str = "production", **overrides) -> Dict[str, Any]:
    payload = {
        "action": "requested",
        "environment": environment,
        "event": "push",
        "deployment_callback_url": CALLBACK_URL,
        "repository": {"name": "app", "full_name": "octo/app", "owner": {"login": "octo"}},
        "installation": {"id": 42},
    }
    payload.update(overrides)
    return payload


def make_envelope(**fields) -> ProcessingEnvelope:
    environment = fields.pop("environment", "production")
    fields.setdefault("id", "delivery-1")
    fields.setdefault("remaining_tries", 10)
    return ProcessingEnvelope(
        webhook_payload=DeploymentProtectionRuleWebHook.model_validate(make_payload(environment)),
        **fields,
    )


class FakeGitHub:
    """Records every call. Responses and errors are set per test."""

    def __init__(self, config: Optional[str] = None, html_url: str = "https://github.com/octo/app/blob/main/cfg"):
        self.config = config
        self.html_url = html_url
        self.file_error: Optional[Exception] = None
        self.graphql_responses: List[Any] = []
        self.workflow_created_at = datetime(2023, 1, 2, 10, 0, tzinfo=timezone.utc)
        self.decision_error: Optional[Exception] = None
        self.comment_error: Optional[Exception] = None

        self.files: List[tuple] = []
        self.queries: List[tuple] = []
        self.runs: List[tuple] = []
        self.approvals: List[Optional[str]] = []
        self.rejections: List[Optional[str]] = []
        self.comments: List[str] = []

    async def get_file(self, owner, repo, path):
        self.files.append((owner, repo, path))
        if self.file_error is not None:
            raise self.file_error
        return GitHubFile(
            name=path.rsplit("/", 1)[-1],
            path=path,
            sha="abc123",
            size=len(self.config or ""),
            content=self.config or "",
            html_url=self.html_url,
        )

    async def graphql(self, query, variables):
        self.queries.append((query, variables))
        response = self.graphql_responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def get_workflow_run(self, owner, repo, run_id):
        self.runs.append((owner, repo, run_id))
        return WorkflowRun(id=run_id, created_at=self.workflow_created_at)

    async def approve(self, callback_url, environment, comment=None):
        self.approvals.append(comment)
        if self.decision_error is not None:
            raise self.decision_error
        return 204

    async def reject(self, callback_url, environment, comment=None):
        self.rejections.append(comment)
        if self.decision_error is not None:
            raise self.decision_error
        return 204

    async def report_update(self, callback_url, environment, comment):
        self.comments.append(comment)
        if self.comment_error is not None:
            raise self.comment_error
        return 204

    @property
    def decisions(self) -> int:
        return len(self.approvals) + len(self.rejections)


class FakeQueue:
    def __init__(self):
        self.items: List[tuple] = []

    async def enqueue(self, queue_name, envelope, not_before=None):
        self.items.append((queue_name, envelope, not_before))


