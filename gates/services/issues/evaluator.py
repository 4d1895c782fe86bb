"""
Issues gate rules: issue count and search count thresholds.

The issues check runs first, it is the cheapest on the GraphQL rate limit.
A check over its threshold rejects the deployment and stops the evaluation.
"""

from datetime import datetime
from typing import Any, Dict, Optional, Protocol
from urllib.parse import quote

from gates.core.exceptions import GraphQLQueryError, RejectError
from gates.core.logging import get_logger
from gates.schemas.github import Repo
from gates.schemas.graphql import (
    ISSUES_COUNT_QUERY,
    SEARCH_COUNT_QUERY,
    IssuesCountResult,
    SearchCountResult,
    decode_result,
)
from gates.services.issues.models import (
    NO_MILESTONE,
    IssueGateIssues,
    IssueGateSearch,
    IssuesConfiguration,
)
from gates.services.processing.capabilities import QueryClient, RunLookup

logger = get_logger(__name__)


class IssuesClient(QueryClient, RunLookup, Protocol):
    """What the evaluator needs from GitHub."""


def pluralize(text: str, count: int) -> str:
    return text if count == 1 else f"{text}s"


def to_iso(moment: datetime) -> str:
    """ISO-8601 as GitHub expects it (``Z`` suffix for UTC)."""
    return moment.isoformat().replace("+00:00", "Z")


def build_issues_variables(
    issues: IssueGateIssues, repo: Repo, since: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Variables of ``ISSUES_COUNT_QUERY``.

    Unset filters are left out so the query defaults apply. The milestone
    filter is the exception: ``NONE`` is sent as null, which GitHub reads as
    "no milestone".
    """
    variables: Dict[str, Any] = {"owner": repo.owner, "repo": repo.name, "limit": 0}

    optional = {
        "states": issues.state,
        "assignee": issues.assignee,
        "author": issues.author,
        "mention": issues.mention,
        "labels": issues.labels,
        "since": to_iso(since) if since is not None else None,
    }
    variables.update({key: value for key, value in optional.items() if value is not None})

    if issues.milestone is not None:
        variables["milestone"] = None if issues.milestone == NO_MILESTONE else issues.milestone

    return variables


def build_search_query(search: IssueGateSearch, created_before: Optional[datetime] = None) -> str:
    query = search.query or ""
    if search.only_created_before_workflow_created and created_before is not None:
        query += f" created:<{to_iso(created_before)}"
    return query


def _report_line(kind: str, count: int, threshold: int) -> str:
    comparison = "equal to" if count == threshold else "below"
    return (
        f"- **{kind}** found **{count}** {pluralize('issue', count)} which is "
        f"{comparison} threshold of **{threshold}**.\n"
    )


def _reject_with_errors(query_type: str, error: GraphQLQueryError) -> RejectError:
    bullets = "".join(f"- {message}\n" for message in error.errors)
    return RejectError(
        f"Sorry, I have to reject this. {query_type} query execution failed with "
        f"{pluralize('error', len(error.errors))}:\n{bullets}"
    )


class IssueGateRulesEvaluator:
    """Evaluates the rule of an environment against GitHub issue counts."""

    def __init__(self, client: IssuesClient, configuration: IssuesConfiguration):
        self._client = client
        self._configuration = configuration

    async def validate_rules(self, environment: str, repository: Repo, run_id: int) -> str:
        """
        Run the checks of the rule matching ``environment``.

        Returns:
            A markdown report with one line per check.

        Raises:
            RejectError: No rule, a threshold exceeded or a failed query.
        """
        rule = self._configuration.get_rule(environment)
        if rule is None:
            raise RejectError(f"No rule found for {environment} environment")

        workflow_created_at = None
        if rule.needs_workflow_created_at:
            run = await self._client.get_workflow_run(repository.owner, repository.name, run_id)
            workflow_created_at = run.created_at

        report = ""
        if rule.issues is not None:
            report += await self.execute_issues_query(rule.issues, repository, workflow_created_at)
        if rule.search is not None:
            report += await self.execute_search_query(rule.search, workflow_created_at)
        return report

    async def execute_issues_query(
        self,
        issues: IssueGateIssues,
        repository: Repo,
        workflow_created_at: Optional[datetime] = None,
    ) -> str:
        repo = Repo.from_full_name(issues.repo) if issues.repo is not None else repository
        variables = build_issues_variables(issues, repo, workflow_created_at)
        logger.debug("Counting issues in %s with %s", repo.full_name, variables)

        try:
            response = await self._client.graphql(ISSUES_COUNT_QUERY, variables)
        except GraphQLQueryError as e:
            raise _reject_with_errors(IssuesCountResult.query_name, e) from e

        result = decode_result(IssuesCountResult, response)
        count = result.total
        if issues.only_created_before_workflow_created:
            count -= result.created_after

        if count > issues.max_allowed:
            if issues.message and issues.message.strip():
                raise RejectError(issues.message)
            raise RejectError(
                f"You have **{count}** {pluralize('issue', count)}, this exceeds maximum "
                f"number **{issues.max_allowed}** in configured query."
            )

        return _report_line(IssuesCountResult.query_name, count, issues.max_allowed)

    async def execute_search_query(
        self, search: IssueGateSearch, workflow_created_at: Optional[datetime] = None
    ) -> str:
        query = build_search_query(search, workflow_created_at)
        logger.debug("Searching issues with %s", query)

        try:
            response = await self._client.graphql(
                SEARCH_COUNT_QUERY, {"limit": 0, "query": query, "type": "ISSUE"}
            )
        except GraphQLQueryError as e:
            raise _reject_with_errors(SearchCountResult.query_name, e) from e

        count = decode_result(SearchCountResult, response).issue_count

        if count > search.max_allowed:
            if search.message:
                raise RejectError(search.message)
            raise RejectError(
                f"You have **{count}** {pluralize('issue', count)}, this exceeds maximum "
                f"number **{search.max_allowed}** in configured "
                f"[search](/search?q={quote(query, safe='')})"
            )

        return _report_line(SearchCountResult.query_name, count, search.max_allowed)
