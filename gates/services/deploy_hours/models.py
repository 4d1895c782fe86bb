"""
Deploy hours gate configuration (``.github/deployhours-gate.yml``).

Example::

    # Are we currently in a code freeze? This will reject any deployment
    Lockout: false

    # Only needed to override the default (Monday to Friday)
    DeployDays: ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday"]

    Rules:
      # Leave environment empty so the rule applies to any environment
      - Environment:
        # Times are defined in UTC
        DeploySlots:
          - Start: "08:00"
            End: "12:10"
          - Start: "14:00"
            End: "15:30"
"""

from datetime import datetime, time
from enum import Enum
from typing import List, Optional

from pydantic import Field, field_validator

from gates.services.policy.base import GatesConfiguration, GatesRule, PolicyModel

_TIME_FORMATS = ("%H:%M:%S", "%H:%M")


class DayOfWeek(str, Enum):
    """Week days, in ``datetime.weekday()`` order."""

    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"
    SUNDAY = "Sunday"

    @classmethod
    def of(cls, moment: datetime) -> "DayOfWeek":
        return list(cls)[moment.weekday()]


DEFAULT_DEPLOY_DAYS = (
    DayOfWeek.MONDAY,
    DayOfWeek.TUESDAY,
    DayOfWeek.WEDNESDAY,
    DayOfWeek.THURSDAY,
    DayOfWeek.FRIDAY,
)


class DeploySlot(PolicyModel):
    """A UTC time of day interval. Both ends are inclusive."""

    start: Optional[time] = None
    end: Optional[time] = None

    @field_validator("start", "end", mode="before")
    @classmethod
    def _parse_time(cls, value):
        if isinstance(value, str):
            for fmt in _TIME_FORMATS:
                try:
                    return datetime.strptime(value.strip(), fmt).time()
                except ValueError:
                    continue
            raise ValueError(f"'{value}' is not a time of day (HH:MM or HH:MM:SS)")
        return value

    def validation_errors(self) -> List[str]:
        errors = []
        if self.start is None:
            errors.append("Start is required")
        if self.end is None:
            errors.append("End is required")
        if self.start is not None and self.end is not None and self.start > self.end:
            errors.append("End should be greater than Start")
        return errors


class DeployHoursRule(GatesRule):
    deploy_slots: Optional[List[DeploySlot]] = None


class DeployHoursConfiguration(GatesConfiguration[DeployHoursRule]):
    """
    Attributes:
        lockout: When true every deployment is rejected.
        deploy_days: Days on which deploy slots are open.
    """

    lockout: bool = False
    deploy_days: List[DayOfWeek] = Field(default_factory=lambda: list(DEFAULT_DEPLOY_DAYS))

    def validate_rules(self) -> List[str]:
        errors: List[str] = []

        if not self.deploy_days:
            errors.append("If DeployDays is defined it cannot be empty")

        if not self.rules:
            errors.append("Rules is mandatory")
            return errors

        for rule in self.rules:
            if not rule.deploy_slots:
                errors.append(
                    "DeployHours element is mandatory "
                    f"(environment: {self.environment_label(rule.environment)})"
                )
                continue
            for slot in rule.deploy_slots:
                errors.extend(slot.validation_errors())

        return errors
