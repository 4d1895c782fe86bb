"""
State of one processing attempt of an envelope.

A ``GateRun`` tracks the outcome of a deployment request through
``no outcome -> decided (approved | rejected) -> applied`` and owns the
requeue protocol of its envelope.
"""

from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from gates.core.config import Settings
from gates.core.exceptions import FatalError, RateLimitError
from gates.core.logging import get_logger
from gates.integrations.github.rate_limit import get_rate_limit_reset, get_resource
from gates.schemas.envelope import GateOutcome, OutcomeState, ProcessingEnvelope
from gates.schemas.github import Repo
from gates.schemas.webhook import DeploymentProtectionRuleWebHook
from gates.services.policy.base import GatesConfiguration
from gates.services.processing.capabilities import GitHubCapabilities, WorkQueue

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class GateRun:
    """
    One attempt at processing an envelope for a gate.

    Attributes:
        outcome: Decision of this attempt, ``None`` until one is taken.
        applied: The decision was sent to GitHub (best effort).
        requeued: The envelope was put back on the queue during this attempt.
        configuration: Gate configuration, loaded by the pipeline.
    """

    def __init__(
        self,
        gate_name: str,
        queue_name: str,
        envelope: ProcessingEnvelope,
        github: GitHubCapabilities,
        queue: WorkQueue,
        settings: Settings,
        now: Clock = utc_now,
    ):
        self.gate_name = gate_name
        self.queue_name = queue_name
        self.envelope = envelope
        self.github = github
        self.queue = queue
        self.settings = settings
        self.now = now

        self.outcome: Optional[GateOutcome] = None
        self.applied = False
        self.requeued = False
        self.configuration: Optional[GatesConfiguration] = None

    @property
    def payload(self) -> DeploymentProtectionRuleWebHook:
        return self.envelope.webhook_payload

    @property
    def environment(self) -> str:
        return self.payload.environment

    @property
    def repository(self) -> Repo:
        return Repo.from_full_name(self.payload.repository.full_name)

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------
    async def approve(
        self, comment: Optional[str] = None, schedule: Optional[datetime] = None
    ) -> None:
        """
        Approve the deployment.

        With a ``schedule`` the approval is not sent now: the envelope goes
        back on the queue carrying the outcome and is applied on delivery.
        """
        if schedule is not None:
            self.outcome = GateOutcome(
                state=OutcomeState.APPROVED, comment=comment, schedule=schedule
            )
            logger.info("Approval of %s scheduled for %s", self.environment, schedule)
            await self.enqueue(schedule)
            return

        await self.apply_outcome(GateOutcome(state=OutcomeState.APPROVED, comment=comment))

    async def reject(self, comment: Optional[str] = None) -> None:
        await self.apply_outcome(GateOutcome(state=OutcomeState.REJECTED, comment=comment))

    async def apply_outcome(self, outcome: GateOutcome) -> None:
        """
        Send a decision to GitHub.

        Rate limit errors propagate so the envelope can be requeued with the
        outcome attached. Any other failure is logged and ignored.
        """
        self.outcome = outcome

        if outcome.state is OutcomeState.APPROVED:
            send = self.github.approve
        elif outcome.state is OutcomeState.REJECTED:
            send = self.github.reject
        else:
            raise FatalError(f"This shouldn't happen. Unknown outcome {outcome.state}")

        await self._best_effort(
            send, outcome.comment, f"{outcome.state.value} {self.payload.deployment_callback_url}"
        )
        self.applied = True

    async def add_comment(self, comment: str) -> None:
        """Post a status comment on the deployment protection rule."""
        await self._best_effort(
            self.github.report_update,
            comment,
            f"comment on {self.payload.deployment_callback_url}",
        )

    async def _best_effort(
        self,
        call: Callable[[str, str, Optional[str]], Awaitable[int]],
        comment: Optional[str],
        description: str,
    ) -> None:
        try:
            await call(self.payload.deployment_callback_url, self.environment, comment)
        except RateLimitError:
            raise
        except Exception as e:
            logger.error(
                "Error sending %s: %s. Ignored (%s)",
                description,
                e,
                type(e).__name__,
                exc_info=True,
            )

    # ------------------------------------------------------------------
    # Requeue protocol
    # ------------------------------------------------------------------
    async def enqueue(self, not_before: datetime) -> bool:
        """
        Put the envelope back on the gate queue, carrying the outcome.

        Returns:
            False when the envelope ran out of tries and was dropped.
        """
        if self.envelope.exhausted:
            self.envelope = self.envelope.model_copy(
                update={"try_number": self.envelope.try_number + 1}
            )
            logger.warning(
                "Dropping %s envelope %s after %d tries, no tries left",
                self.gate_name,
                self.envelope.id,
                self.envelope.try_number,
            )
            return False

        self.envelope = self.envelope.next_revision(self.outcome or self.envelope.outcome)
        logger.info(
            "Enqueuing %s envelope %s for %s (try %d, %s tries left)",
            self.gate_name,
            self.envelope.id,
            not_before.isoformat(),
            self.envelope.try_number,
            self.envelope.remaining_tries,
        )
        await self.queue.enqueue(self.queue_name, self.envelope, not_before)
        self.requeued = True
        return True

    async def try_apply_delay(self) -> bool:
        """
        Defer the first evaluation by the rule's ``WaitMinutes``.

        Returns:
            True if processing was deferred and evaluation must not run now.
        """
        if self.envelope.delayed or self.configuration is None:
            return False

        rule = self.configuration.get_rule(self.environment)
        if rule is None or rule.wait_minutes <= 0:
            return False

        self.envelope = self.envelope.model_copy(update={"delayed": True})
        await self.enqueue(self.now() + timedelta(minutes=rule.wait_minutes))
        return True

    async def handle_rate_limiting(self, label: str, error: RateLimitError) -> None:
        """Park the envelope until the rate limit resets."""
        resource = get_resource(error.headers)
        logger.info(
            "Handling rate limit %s %s for %s", label, type(error).__name__, resource
        )

        if self.requeued:
            logger.warning(
                "Envelope %s was already requeued in this attempt, not requeuing again",
                self.envelope.id,
            )
            return

        retry_at = get_rate_limit_reset(
            error.headers,
            fallback_seconds=self.settings.GATES_RATE_LIMIT_DEFAULT_DELAY_SECONDS,
            now=self.now(),
        )
        outcome = self.outcome or self.envelope.outcome
        if outcome is not None and outcome.schedule is not None and outcome.schedule > retry_at:
            retry_at = outcome.schedule

        await self.enqueue(retry_at)
