"""
Issues gate configuration (``.github/issues-gate.yml``).

Example::

    Rules:
      # Leave empty so the rule applies to any environment
      - Environment:
        Search:
          MaxAllowed: 5
          Query: 'is:open is:issue label:bug'
          Message: 'Too many open bugs' # Optional message

      - Environment: production
        Issues:
          MaxAllowed: 3
          State: OPEN
          Milestone: NONE
          Labels:
            - bug
            - show-stopper
"""

import re
from typing import List, Optional

from pydantic import field_validator

from gates.services.policy.base import GatesConfiguration, GatesRule, PolicyModel

REPO_PATTERN = re.compile(r"[a-zA-Z0-9]+(-[a-zA-Z0-9]+)*\/[a-zA-Z0-9-_]+$")

# Milestone value selecting issues without a milestone
NO_MILESTONE = "NONE"


def _blank(value: Optional[str]) -> bool:
    return value is not None and not value.strip()


class IssueGateSearch(PolicyModel):
    """Count the results of a free text issue search."""

    max_allowed: int = 0
    query: Optional[str] = None
    message: Optional[str] = None
    only_created_before_workflow_created: bool = False

    def validation_errors(self) -> List[str]:
        errors = []
        if self.max_allowed < 0:
            errors.append("MaxAllowed must be equal or greater than 0")
        if self.query is None or not self.query.strip():
            errors.append("Query must be specified")
        if _blank(self.message):
            errors.append("When Message is specified it cannot be empty")
        return errors


class IssueGateIssues(PolicyModel):
    """
    Count the issues of a repository matching a set of filters.

    Attributes:
        repo: ``owner/name`` of the repository to count in. Defaults to the
            repository requesting the deployment.
        milestone: Absent means any milestone, ``*`` any milestone set,
            ``NONE`` issues without a milestone, otherwise a milestone number.
    """

    max_allowed: int = 0
    repo: Optional[str] = None
    state: Optional[str] = None
    assignee: Optional[str] = None
    author: Optional[str] = None
    mention: Optional[str] = None
    milestone: Optional[str] = None
    labels: Optional[List[str]] = None
    message: Optional[str] = None
    only_created_before_workflow_created: bool = False

    @field_validator("milestone", mode="before")
    @classmethod
    def _milestone_number(cls, value):
        # Milestone: 3
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    def validation_errors(self) -> List[str]:
        errors = []
        if self.max_allowed < 0:
            errors.append("MaxAllowed must be equal or greater than 0")

        if self.repo is not None:
            if not self.repo.strip():
                errors.append("If Repo is specified it cannot be empty")
            elif not REPO_PATTERN.search(self.repo):
                errors.append("Repo must be in format owner/repository")

        for label, value in (
            ("State", self.state),
            ("Assignee", self.assignee),
            ("Author", self.author),
            ("Mention", self.mention),
            ("Milestone", self.milestone),
        ):
            if _blank(value):
                errors.append(f"If {label} is specified it cannot be empty")

        if _blank(self.message):
            errors.append("When Message is specified it cannot be empty")
        return errors


class IssueGateRule(GatesRule):
    search: Optional[IssueGateSearch] = None
    issues: Optional[IssueGateIssues] = None

    @property
    def needs_workflow_created_at(self) -> bool:
        return bool(
            (self.search and self.search.only_created_before_workflow_created)
            or (self.issues and self.issues.only_created_before_workflow_created)
        )


class IssuesConfiguration(GatesConfiguration[IssueGateRule]):
    def validate_rules(self) -> List[str]:
        errors: List[str] = []

        if not self.rules:
            errors.append("Rules is mandatory")
            return errors

        for rule in self.rules:
            if rule.search is None and rule.issues is None:
                errors.append(
                    f"Rules for Environment: {self.environment_label(rule.environment)} "
                    "has no Search or Rules element"
                )
                continue
            if rule.search is not None:
                errors.extend(rule.search.validation_errors())
            if rule.issues is not None:
                errors.extend(rule.issues.validation_errors())

        return errors
