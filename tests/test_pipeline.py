from datetime import datetime, timedelta, timezone

import pytest

from gates.core.exceptions import (
    FatalError,
    GitHubApiError,
    RateLimitExceededError,
    RejectError,
    SecondaryRateLimitExceededError,
)
from gates.schemas.envelope import GateOutcome, OutcomeState
from gates.services.deploy_hours.gate import DEPLOY_HOURS_GATE
from gates.services.deploy_hours.models import DeployHoursConfiguration
from gates.services.issues.gate import ISSUES_GATE
from gates.services.processing.pipeline import GateDefinition, process_envelope
from gates.services.processing.run import GateRun

from helpers import FakeGitHub, make_envelope

MONDAY_LUNCH = datetime(2023, 1, 2, 12, 37, tzinfo=timezone.utc)

DEPLOY_HOURS = """
Rules:
  - Environment:
    DeploySlots:
      - Start: "09:00"
        End: "12:00"
      - Start: "13:00"
        End: "17:00"
"""


def clock(moment=MONDAY_LUNCH):
    return lambda: moment


class RecordingGate:
    """Gate whose evaluation step is scripted by the test."""

    def __init__(self, action=None):
        self.calls = 0
        self.action = action

    async def evaluate(self, run: GateRun) -> None:
        self.calls += 1
        if self.action is not None:
            await self.action(run)

    def definition(self) -> GateDefinition:
        return GateDefinition(
            name="Test Gate",
            queue_name="test-process",
            config_path=".github/deployhours-gate.yml",
            configuration_type=DeployHoursConfiguration,
            evaluate=self.evaluate,
        )


async def run(envelope, gate, github, queue, settings, now=MONDAY_LUNCH):
    return await process_envelope(
        envelope, gate, github=github, queue=queue, settings=settings, now=clock(now)
    )


# ---------------------------------------------------------------------------
# Outcome replay
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_envelope_with_outcome_is_only_applied(github, queue, settings):
    gate = RecordingGate()
    envelope = make_envelope(outcome=GateOutcome(state=OutcomeState.APPROVED, comment="ok"))

    await run(envelope, gate.definition(), github, queue, settings)

    assert gate.calls == 0
    assert github.files == []
    assert github.approvals == ["ok"]
    assert github.rejections == []
    assert queue.items == []


@pytest.mark.asyncio
async def test_replayed_rejection(github, queue, settings):
    envelope = make_envelope(outcome=GateOutcome(state=OutcomeState.REJECTED, comment="no"))

    await run(envelope, DEPLOY_HOURS_GATE, github, queue, settings)

    assert github.rejections == ["no"]
    assert github.decisions == 1


@pytest.mark.asyncio
async def test_missing_remaining_tries_gets_the_budget(github, queue, settings):
    github.config = DEPLOY_HOURS
    envelope = make_envelope(remaining_tries=None)

    result = await run(envelope, DEPLOY_HOURS_GATE, github, queue, settings)

    assert result.envelope.remaining_tries == settings.GATES_MAX_TRIES - 1


# ---------------------------------------------------------------------------
# Deploy hours gate end to end
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_inside_deploy_hours_approves(github, queue, settings):
    github.config = DEPLOY_HOURS

    result = await run(make_envelope(), DEPLOY_HOURS_GATE, github, queue, settings, now=MONDAY_LUNCH.replace(hour=10))

    assert github.approvals == [None]
    assert queue.items == []
    assert result.outcome.state is OutcomeState.APPROVED


@pytest.mark.asyncio
async def test_outside_deploy_hours_schedules_the_approval(github, queue, settings):
    github.config = DEPLOY_HOURS

    result = await run(make_envelope(), DEPLOY_HOURS_GATE, github, queue, settings)

    next_slot = datetime(2023, 1, 2, 13, 0, tzinfo=timezone.utc)
    assert github.approvals == []
    assert github.comments == [
        "Deploy requested outside deploy hours. Will be automatically approved on next "
        "deploy block on **Monday, 02 January 2023 13:00 UTC**."
    ]

    [(queue_name, envelope, not_before)] = queue.items
    assert queue_name == "deployhours-process"
    assert not_before == next_slot
    assert envelope.outcome == GateOutcome(state=OutcomeState.APPROVED, schedule=next_slot)
    assert envelope.try_number == 1
    assert envelope.remaining_tries == 9
    assert result.requeued


@pytest.mark.asyncio
async def test_scheduled_approval_is_applied_on_delivery(github, queue, settings):
    github.config = DEPLOY_HOURS
    await run(make_envelope(), DEPLOY_HOURS_GATE, github, queue, settings)
    _, requeued, _ = queue.items[0]

    replay_github = FakeGitHub()
    await run(requeued, DEPLOY_HOURS_GATE, replay_github, queue, settings, now=MONDAY_LUNCH.replace(hour=13))

    assert replay_github.files == []
    assert replay_github.approvals == [None]
    assert len(queue.items) == 1


@pytest.mark.asyncio
async def test_lockout_rejects(github, queue, settings):
    github.config = "Lockout: true\n" + DEPLOY_HOURS

    await run(make_envelope(), DEPLOY_HOURS_GATE, github, queue, settings)

    assert github.rejections == ["You can't deploy. We are in Lockout mode."]
    assert github.approvals == []


@pytest.mark.asyncio
async def test_rate_limited_comment_does_not_requeue_twice(github, queue, settings):
    github.config = DEPLOY_HOURS
    github.comment_error = SecondaryRateLimitExceededError(403, "slow down", {"Retry-After": "60"})

    await run(make_envelope(), DEPLOY_HOURS_GATE, github, queue, settings)

    assert len(queue.items) == 1
    assert queue.items[0][1].outcome.schedule == datetime(2023, 1, 2, 13, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_missing_config_file_rejects(github, queue, settings):
    github.file_error = GitHubApiError(404, "Not Found")

    await run(make_envelope(), DEPLOY_HOURS_GATE, github, queue, settings)

    assert github.rejections == [
        "Sorry I'm rejecting this. I can't proceed, couldn't retrieve the config file "
        ".github/deployhours-gate.yml. Error: Not Found"
    ]


@pytest.mark.asyncio
async def test_unparsable_config_rejects(github, queue, settings):
    github.config = "Rules: [unclosed"

    await run(make_envelope(), DEPLOY_HOURS_GATE, github, queue, settings)

    [comment] = github.rejections
    assert comment.startswith(
        "Sorry I'm rejecting this. The .github/deployhours-gate.yml file doesn't seem to be valid. "
        "Check if the YAML file is valid and it respect the configuration format. Error: "
    )


@pytest.mark.asyncio
async def test_invalid_config_lists_the_errors(github, queue, settings):
    github.config = "DeployDays: []\n"

    await run(make_envelope(), DEPLOY_HOURS_GATE, github, queue, settings)

    assert github.rejections == [
        "Config file [.github/deployhours-gate.yml](https://github.com/octo/app/blob/main/cfg) "
        "is not valid:\n- If DeployDays is defined it cannot be empty\n- Rules is mandatory\n\n"
    ]


@pytest.mark.asyncio
async def test_rate_limited_config_download_requeues(github, queue, settings):
    github.file_error = RateLimitExceededError(403, "rate limit exceeded", {"Retry-After": "90"})

    await run(make_envelope(), DEPLOY_HOURS_GATE, github, queue, settings)

    assert github.decisions == 0
    [(_, envelope, not_before)] = queue.items
    assert not_before == MONDAY_LUNCH + timedelta(seconds=90)
    assert envelope.outcome is None


# ---------------------------------------------------------------------------
# Evaluation errors
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_completing_without_decision_approves(github, queue, settings):
    github.config = DEPLOY_HOURS
    gate = RecordingGate()

    await run(make_envelope(), gate.definition(), github, queue, settings)

    assert gate.calls == 1
    assert github.approvals == [None]


@pytest.mark.asyncio
async def test_reject_error_rejects_with_its_message(github, queue, settings):
    github.config = DEPLOY_HOURS

    async def deny(_run):
        raise RejectError("Nope")

    await run(make_envelope(), RecordingGate(deny).definition(), github, queue, settings)

    assert github.rejections == ["Nope"]


@pytest.mark.asyncio
async def test_unexpected_error_rejects_with_raw_message(github, queue, settings):
    github.config = DEPLOY_HOURS

    async def explode(_run):
        raise KeyError("boom")

    await run(make_envelope(), RecordingGate(explode).definition(), github, queue, settings)

    assert github.rejections == ["'boom'"]


@pytest.mark.asyncio
async def test_error_after_decision_does_not_decide_again(github, queue, settings):
    github.config = DEPLOY_HOURS

    async def approve_then_fail(gate_run):
        await gate_run.approve("fine")
        raise RejectError("too late")

    await run(make_envelope(), RecordingGate(approve_then_fail).definition(), github, queue, settings)

    assert github.approvals == ["fine"]
    assert github.rejections == []


@pytest.mark.asyncio
async def test_fatal_error_drops_without_decision(github, queue, settings):
    github.config = DEPLOY_HOURS

    async def fatal(_run):
        raise FatalError("Can't get installation token")

    result = await run(make_envelope(), RecordingGate(fatal).definition(), github, queue, settings)

    assert github.decisions == 0
    assert queue.items == []
    assert result.outcome is None


@pytest.mark.asyncio
async def test_decision_errors_are_swallowed(github, queue, settings):
    github.config = DEPLOY_HOURS
    github.decision_error = GitHubApiError(500, "Server Error")

    result = await run(make_envelope(), RecordingGate().definition(), github, queue, settings)

    assert github.approvals == [None]
    assert result.applied
    assert queue.items == []


# ---------------------------------------------------------------------------
# Rate limits and requeue budget
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_rate_limited_decision_requeues_with_outcome(github, queue, settings):
    github.config = DEPLOY_HOURS
    reset = MONDAY_LUNCH + timedelta(minutes=10)
    github.decision_error = RateLimitExceededError(
        403, "rate limit exceeded", {"X-RateLimit-Reset": str(int(reset.timestamp()))}
    )

    async def deny(_run):
        raise RejectError("Nope")

    await run(make_envelope(), RecordingGate(deny).definition(), github, queue, settings)

    [(queue_name, envelope, not_before)] = queue.items
    assert queue_name == "test-process"
    assert not_before == reset
    assert envelope.outcome == GateOutcome(state=OutcomeState.REJECTED, comment="Nope")
    assert (envelope.try_number, envelope.remaining_tries) == (1, 9)


@pytest.mark.asyncio
async def test_rate_limit_without_headers_uses_default_delay(github, queue, settings):
    github.decision_error = RateLimitExceededError(403, "rate limit exceeded")
    envelope = make_envelope(outcome=GateOutcome(state=OutcomeState.APPROVED))

    await run(envelope, DEPLOY_HOURS_GATE, github, queue, settings)

    [(_, requeued, not_before)] = queue.items
    assert not_before == MONDAY_LUNCH + timedelta(seconds=30)
    assert requeued.outcome == envelope.outcome


@pytest.mark.asyncio
async def test_rate_limit_never_requeues_before_the_schedule(github, queue, settings):
    schedule = MONDAY_LUNCH + timedelta(hours=2)
    github.decision_error = RateLimitExceededError(403, "rate limit exceeded", {"Retry-After": "5"})
    envelope = make_envelope(outcome=GateOutcome(state=OutcomeState.APPROVED, schedule=schedule))

    await run(envelope, DEPLOY_HOURS_GATE, github, queue, settings)

    assert queue.items[0][2] == schedule


@pytest.mark.asyncio
async def test_exhausted_envelope_is_not_requeued(github, queue, settings):
    github.decision_error = RateLimitExceededError(403, "rate limit exceeded")
    envelope = make_envelope(
        remaining_tries=1, try_number=9, outcome=GateOutcome(state=OutcomeState.APPROVED)
    )

    result = await run(envelope, DEPLOY_HOURS_GATE, github, queue, settings)

    assert queue.items == []
    assert result.envelope.try_number == 10


@pytest.mark.asyncio
async def test_enqueue_with_one_try_left_is_skipped(github, queue, settings):
    gate_run = GateRun("Test Gate", "test-process", make_envelope(remaining_tries=1), github, queue, settings)

    assert await gate_run.enqueue(MONDAY_LUNCH) is False
    assert queue.items == []


@pytest.mark.asyncio
@pytest.mark.parametrize("remaining", [0, -1])
async def test_rate_limited_replay_without_budget_stops(github, queue, settings, remaining):
    github.decision_error = RateLimitExceededError(403, "rate limit exceeded")
    envelope = make_envelope(remaining_tries=remaining, outcome=GateOutcome(state=OutcomeState.APPROVED))

    for _ in range(3):
        await run(envelope, DEPLOY_HOURS_GATE, github, queue, settings)

    assert queue.items == []


# ---------------------------------------------------------------------------
# WaitMinutes
# ---------------------------------------------------------------------------


WAIT_FIVE = """
Rules:
  - WaitMinutes: 5
    DeploySlots:
      - Start: "09:00"
        End: "17:00"
"""


@pytest.mark.asyncio
async def test_wait_minutes_defers_the_first_evaluation(github, queue, settings):
    github.config = WAIT_FIVE
    gate = RecordingGate()

    await run(make_envelope(), gate.definition(), github, queue, settings)

    assert gate.calls == 0
    assert github.decisions == 0
    [(_, envelope, not_before)] = queue.items
    assert not_before == MONDAY_LUNCH + timedelta(minutes=5)
    assert envelope.delayed is True
    assert envelope.outcome is None


@pytest.mark.asyncio
async def test_delayed_envelope_is_evaluated(github, queue, settings):
    github.config = WAIT_FIVE
    gate = RecordingGate()

    await run(make_envelope(delayed=True), gate.definition(), github, queue, settings)

    assert gate.calls == 1
    assert github.approvals == [None]
    assert queue.items == []


# ---------------------------------------------------------------------------
# Issues gate end to end
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_issues_gate_approves_with_report(github, queue, settings):
    github.config = "Rules:\n  - Search:\n      MaxAllowed: 2\n      Query: is:open\n"
    github.graphql_responses = [{"data": {"search": {"issueCount": 2}}}]

    await run(make_envelope(), ISSUES_GATE, github, queue, settings)

    assert github.files == [("octo", "app", ".github/issues-gate.yml")]
    assert github.approvals == [
        "- **Search** found **2** issues which is equal to threshold of **2**.\n"
    ]


@pytest.mark.asyncio
async def test_issues_gate_rejects_over_threshold(github, queue, settings):
    github.config = "Rules:\n  - Issues:\n      MaxAllowed: 2\n"
    github.graphql_responses = [
        {"data": {"repository": {"before": {"totalCount": 3}, "after": {"totalCount": 3}}}}
    ]

    await run(make_envelope(), ISSUES_GATE, github, queue, settings)

    assert github.rejections == [
        "You have **3** issues, this exceeds maximum number **2** in configured query."
    ]


@pytest.mark.asyncio
async def test_issues_gate_rate_limited_query_requeues(github, queue, settings):
    github.config = "Rules:\n  - Search:\n      Query: is:open\n"
    github.graphql_responses = [SecondaryRateLimitExceededError(403, "secondary rate limit", {})]

    await run(make_envelope(), ISSUES_GATE, github, queue, settings)

    assert github.decisions == 0
    [(queue_name, envelope, _)] = queue.items
    assert queue_name == "issues-process"
    assert envelope.outcome is None
