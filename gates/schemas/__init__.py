"""
Schema and DTO package.
"""

from gates.schemas.envelope import GateOutcome, OutcomeState, ProcessingEnvelope
from gates.schemas.webhook import DeploymentProtectionRuleWebHook

__all__ = [
    "DeploymentProtectionRuleWebHook",
    "GateOutcome",
    "OutcomeState",
    "ProcessingEnvelope",
]
