"""
Issues gate: approves a deployment while issue counts stay under thresholds.
"""

from gates.services.issues.evaluator import IssueGateRulesEvaluator
from gates.services.issues.models import IssuesConfiguration
from gates.services.processing.pipeline import GateDefinition
from gates.services.processing.run import GateRun

QUEUE_NAME = "issues-process"
CONFIG_PATH = ".github/issues-gate.yml"


async def evaluate_issues(run: GateRun) -> None:
    # A failed check raises RejectError, the pipeline rejects with its message
    evaluator = IssueGateRulesEvaluator(run.github, run.configuration)
    report = await evaluator.validate_rules(run.environment, run.repository, run.payload.run_id)

    await run.approve(report or None)


ISSUES_GATE = GateDefinition(
    name="Issues Gate",
    queue_name=QUEUE_NAME,
    config_path=CONFIG_PATH,
    configuration_type=IssuesConfiguration,
    evaluate=evaluate_issues,
)
