"""
Processing envelope: the unit of work placed on a gate queue.

The envelope is the only state that survives between processing attempts.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from gates.schemas.webhook import DeploymentProtectionRuleWebHook


class OutcomeState(str, Enum):
    """Decision of a gate."""

    APPROVED = "approved"
    REJECTED = "rejected"


class GateOutcome(BaseModel):
    """
    Decision taken by the rule evaluation phase.

    Attributes:
        state: Approved or rejected.
        comment: Optional markdown comment sent with the decision.
        schedule: When set on an approval, the decision is applied once the
            envelope is delivered again at (or after) this instant.
    """

    model_config = ConfigDict(frozen=True)

    state: OutcomeState
    comment: Optional[str] = None
    schedule: Optional[datetime] = None


class ProcessingEnvelope(BaseModel):
    """
    Message carried by the work queue.

    Attributes:
        id: GitHub delivery id of the webhook that created the envelope.
        try_number: Incremented on every requeue attempt, dropped ones included.
        remaining_tries: Requeue budget. No requeue happens once it reaches 1.
        delayed: The per-rule ``WaitMinutes`` delay has already been applied.
        outcome: Decision taken on an earlier attempt, replayed instead of
            evaluating the rules again.
        webhook_payload: The webhook body as received.
    """

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    try_number: int = 0
    remaining_tries: Optional[int] = None
    delayed: bool = False
    outcome: Optional[GateOutcome] = None
    webhook_payload: DeploymentProtectionRuleWebHook

    @property
    def exhausted(self) -> bool:
        """No requeue budget left."""
        return self.remaining_tries is not None and self.remaining_tries <= 1

    def next_revision(self, outcome: Optional[GateOutcome]) -> "ProcessingEnvelope":
        """The envelope to put back on the queue: one more try, one less in the budget."""
        remaining = self.remaining_tries - 1 if self.remaining_tries is not None else None
        return self.model_copy(
            update={
                "try_number": self.try_number + 1,
                "remaining_tries": remaining,
                "outcome": outcome,
            }
        )

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str | bytes) -> "ProcessingEnvelope":
        return cls.model_validate_json(data)
