"""
Typed results of the GraphQL queries issued by the issues gate.

Each query decodes its response once into its own model. A missing field
raises ``GraphQLMissingFieldError`` naming the query.
"""

from typing import Any, ClassVar, Dict, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from gates.core.exceptions import GraphQLMissingFieldError

ISSUES_COUNT_QUERY = """query($owner: String!, $repo: String!, $limit: Int, $states: [IssueState!] = OPEN, $assignee: String, $author: String, $mention: String, $milestone: String, $labels: [String!], $since: DateTime) {
    repository(owner: $owner, name: $repo) {
        before: issues(first: $limit, states: $states, filterBy: { assignee: $assignee, createdBy: $author, mentioned: $mention, milestoneNumber: $milestone, labels: $labels }) {
            totalCount
        }
        after: issues(first: $limit, states: $states, filterBy: { since: $since, assignee: $assignee, createdBy: $author, mentioned: $mention, milestoneNumber: $milestone, labels: $labels }) {
            totalCount
        }
    }
}"""

SEARCH_COUNT_QUERY = (
    "query($type: SearchType!, $limit: Int, $query: String!) "
    "{ search(type: $type, first: $limit, query: $query) { issueCount } }"
)


class _Result(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class _TotalCount(_Result):
    total_count: int = Field(alias="totalCount")


class _IssuesRepository(_Result):
    before: _TotalCount
    after: _TotalCount


class _IssuesData(_Result):
    repository: _IssuesRepository


class IssuesCountResult(_Result):
    """Response of ``ISSUES_COUNT_QUERY``."""

    query_name: ClassVar[str] = "Issues"
    data: _IssuesData

    @property
    def total(self) -> int:
        return self.data.repository.before.total_count

    @property
    def created_after(self) -> int:
        return self.data.repository.after.total_count


class _SearchCount(_Result):
    issue_count: int = Field(alias="issueCount")


class _SearchData(_Result):
    search: _SearchCount


class SearchCountResult(_Result):
    """Response of ``SEARCH_COUNT_QUERY``."""

    query_name: ClassVar[str] = "Search"
    data: _SearchData

    @property
    def issue_count(self) -> int:
        return self.data.search.issue_count


ResultT = TypeVar("ResultT", IssuesCountResult, SearchCountResult)


def decode_result(model: Type[ResultT], response: Dict[str, Any]) -> ResultT:
    """Decode a raw GraphQL response into its typed result."""
    try:
        return model.model_validate(response)
    except ValidationError as e:
        missing = ", ".join(
            ".".join(str(part) for part in error["loc"]) for error in e.errors()
        )
        raise GraphQLMissingFieldError(model.query_name, missing) from e
