"""
Base model shared by the gate configuration files.

Configuration files use PascalCase keys (``Rules``, ``Environment``,
``WaitMinutes``). They are deserialized straight into the typed gate
configuration; there is no intermediate representation.
"""

from typing import ClassVar, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_pascal

from gates.core.exceptions import ConfigParseError
from gates.services.policy.loader import load_yaml


class PolicyModel(BaseModel):
    """Base for every model read from a gate configuration file."""

    model_config = ConfigDict(
        alias_generator=to_pascal,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )


class GatesRule(PolicyModel):
    """
    Fields every gate rule has.

    Attributes:
        environment: Environment the rule applies to. Empty means any
            environment without a rule of its own.
        wait_minutes: Minutes to wait before the rule is evaluated at all.
    """

    environment: Optional[str] = None
    wait_minutes: int = 0


RuleT = TypeVar("RuleT", bound=GatesRule)


class GatesConfiguration(PolicyModel, Generic[RuleT]):
    """
    A gate configuration file: a version and an ordered list of rules.
    """

    ANY_ENVIRONMENT: ClassVar[str] = "ANY"

    version: int = 0
    rules: Optional[List[RuleT]] = None

    @classmethod
    def load(cls, content: str):
        """
        Build the configuration from YAML text.

        Raises:
            ConfigParseError: Invalid YAML or content not matching the schema.
        """
        document = load_yaml(content)
        try:
            return cls.model_validate(document)
        except ValidationError as e:
            raise ConfigParseError(str(e)) from e

    def get_rule(self, environment: Optional[str]) -> Optional[RuleT]:
        """
        Find the rule for an environment (case insensitive).

        Falls back to the rule without an environment when no rule names it.
        """
        if not self.rules:
            return None

        wanted = (environment or "").lower()
        for rule in self.rules:
            if rule.environment and rule.environment.lower() == wanted:
                return rule

        for rule in self.rules:
            if not rule.environment:
                return rule
        return None

    def validate_rules(self) -> List[str]:
        """Semantic validation. Returns human readable errors, empty when valid."""
        return []

    @staticmethod
    def generate_markdown_error_list(errors: Optional[List[str]]) -> str:
        if not errors:
            return ""
        return "".join(f"- {error}\n" for error in errors) + "\n"

    @classmethod
    def environment_label(cls, environment: Optional[str]) -> str:
        return environment if environment and environment.strip() else cls.ANY_ENVIRONMENT
