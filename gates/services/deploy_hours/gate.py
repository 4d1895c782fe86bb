"""
Deploy hours gate: approves deployments inside deploy slots, schedules the
approval of the others for the next slot.
"""

from gates.core.exceptions import RejectError
from gates.services.deploy_hours.evaluator import DeployHoursRulesEvaluator
from gates.services.deploy_hours.models import DeployHoursConfiguration
from gates.services.processing.pipeline import GateDefinition
from gates.services.processing.run import GateRun

QUEUE_NAME = "deployhours-process"
CONFIG_PATH = ".github/deployhours-gate.yml"

LOCKOUT_MESSAGE = "You can't deploy. We are in Lockout mode."
DELAY_APPROVAL_MESSAGE = (
    "Deploy requested outside deploy hours. "
    "Will be automatically approved on next deploy block on **{when} UTC**."
)


def format_approval_time(moment) -> str:
    """e.g. ``Monday, 16 January 2023 14:00``"""
    return moment.strftime("%A, %d %B %Y %H:%M")


async def evaluate_deploy_hours(run: GateRun) -> None:
    evaluator = DeployHoursRulesEvaluator(run.configuration)

    if evaluator.in_lockout():
        raise RejectError(LOCKOUT_MESSAGE)

    now = run.now()
    if evaluator.is_deploy_hour(now, run.environment):
        await run.approve()
        return

    approval_time = evaluator.next_deploy_hour(now, run.environment)

    # Schedule the approval before commenting so a rate limited comment
    # cannot lose it
    await run.approve(schedule=approval_time)
    await run.add_comment(DELAY_APPROVAL_MESSAGE.format(when=format_approval_time(approval_time)))


DEPLOY_HOURS_GATE = GateDefinition(
    name="Deploy Hours Gate",
    queue_name=QUEUE_NAME,
    config_path=CONFIG_PATH,
    configuration_type=DeployHoursConfiguration,
    evaluate=evaluate_deploy_hours,
)
