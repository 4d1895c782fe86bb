"""
Exception taxonomy of the gates service.

Only the rate limit family is allowed to cross the evaluation/application
boundary of the processing pipeline; everything else is turned into a
decision where it is raised.
"""

from typing import List, Mapping, Optional


class GatesError(Exception):
    """Base class for all gates errors."""


class RejectError(GatesError):
    """A business rule failed. The deployment is rejected with this message."""


class FatalError(GatesError):
    """Unrecoverable condition. Processing stops without a decision or requeue."""


class ConfigParseError(GatesError):
    """The gate configuration file is not valid YAML or does not fit the schema."""


class GraphQLQueryError(GatesError):
    """The GraphQL response carried an ``errors`` array."""

    def __init__(self, message: str, errors: List[str]):
        super().__init__(message)
        self.errors = errors


class GraphQLMissingFieldError(GatesError):
    """The GraphQL response lacked a field the query asked for."""

    def __init__(self, query_name: str, detail: str):
        super().__init__(f"{query_name} response is missing expected data: {detail}")
        self.query_name = query_name


class GitHubApiError(GatesError):
    """A GitHub API call failed with a non rate limit status."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(GitHubApiError):
    """Base for the rate limit family. Carries the response headers."""

    def __init__(
        self,
        status_code: int,
        message: str,
        headers: Optional[Mapping[str, str]] = None,
    ):
        super().__init__(status_code, message)
        self.headers = headers or {}


class RateLimitExceededError(RateLimitError):
    """Primary rate limit exhausted."""


class AbuseDetectedError(RateLimitError):
    """GitHub abuse detection mechanism triggered."""


class SecondaryRateLimitExceededError(RateLimitError):
    """Secondary rate limit triggered."""
