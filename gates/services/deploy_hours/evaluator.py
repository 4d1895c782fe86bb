"""
Deploy hours rules: lockout, deploy window membership and next window start.

All instants are treated as UTC; no time zone conversion happens here.
"""

from datetime import date, datetime, time, timedelta
from typing import List, Optional

from gates.core.exceptions import RejectError
from gates.services.deploy_hours.models import (
    DayOfWeek,
    DeployHoursConfiguration,
    DeployHoursRule,
    DeploySlot,
)

DAYS_PER_WEEK = 7


class DeployHoursRulesEvaluator:
    """Evaluates a loaded deploy hours configuration. Never mutates it."""

    def __init__(self, config: DeployHoursConfiguration):
        self._config = config

    def in_lockout(self) -> bool:
        return self._config.lockout

    def is_deploy_day(self, current: datetime) -> bool:
        return DayOfWeek.of(current) in self._config.deploy_days

    def is_deploy_hour(self, current: datetime, environment: Optional[str]) -> bool:
        """
        Check if ``current`` falls inside one of the environment's deploy slots.

        Slots without a start are ignored, slots without an end never match.

        Raises:
            RejectError: No rule matches the environment.
        """
        rule = self._get_rule_or_raise(environment)

        if not self.is_deploy_day(current):
            return False

        time_of_day = current.time()
        for slot in _sorted_slots(rule):
            if slot.end is not None and slot.start <= time_of_day <= slot.end:
                return True
        return False

    def next_deploy_hour(self, current: datetime, environment: Optional[str]) -> datetime:
        """
        Find the first instant at or after ``current`` inside a deploy slot.

        Returns ``current`` itself when it is already inside a slot.

        Raises:
            RejectError: No rule matches, no slot has a start, or the
                configuration can never open a window.
        """
        rule = self._get_rule_or_raise(environment)
        starts = [slot.start for slot in _sorted_slots(rule)]

        if not starts:
            raise RejectError(
                "No deploy slot with a valid start time found for "
                f"{environment or 'Any Environment'} environment"
            )
        if not self._config.deploy_days or not any(
            slot.end is not None for slot in _sorted_slots(rule)
        ):
            raise RejectError(
                f"No deploy window can ever open for {environment or 'Any Environment'} environment"
            )

        first_start = starts[0]
        candidate = current
        # Each step either reaches a later slot start on the same day or
        # moves to the next day, so a window is found within this bound.
        for _ in range((len(starts) + 1) * (DAYS_PER_WEEK + 1)):
            if self.is_deploy_hour(candidate, environment):
                return candidate

            if not self.is_deploy_day(candidate):
                candidate = _at(candidate, candidate.date() + timedelta(days=1), first_start)
                continue

            time_of_day = candidate.time()
            later = [start for start in starts if start > time_of_day]
            if later:
                candidate = _at(candidate, candidate.date(), later[0])
            else:
                candidate = _at(candidate, candidate.date() + timedelta(days=1), first_start)

        raise RejectError(
            f"No deploy window can ever open for {environment or 'Any Environment'} environment"
        )

    def _get_rule_or_raise(self, environment: Optional[str]) -> DeployHoursRule:
        rule = self._config.get_rule(environment)
        if rule is None:
            raise RejectError(f"No rule found for {environment or 'Any Environment'} environment")
        return rule


def _sorted_slots(rule: DeployHoursRule) -> List[DeploySlot]:
    """Slots with a start, ordered by start. Config authors may list them in any order."""
    return sorted(
        (slot for slot in rule.deploy_slots or [] if slot.start is not None),
        key=lambda slot: slot.start,
    )


def _at(reference: datetime, day: date, at: time) -> datetime:
    return datetime.combine(day, at, tzinfo=reference.tzinfo)
