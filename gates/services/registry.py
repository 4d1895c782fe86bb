"""
Gates known to the service, by the name used in urls and ``GATES_ENABLED``.
"""

from typing import Dict

from gates.services.deploy_hours.gate import DEPLOY_HOURS_GATE
from gates.services.issues.gate import ISSUES_GATE
from gates.services.processing.pipeline import GateDefinition

GATES: Dict[str, GateDefinition] = {
    "deployhours": DEPLOY_HOURS_GATE,
    "issues": ISSUES_GATE,
}


def get_gate(name: str) -> GateDefinition:
    """
    Raises:
        KeyError: Unknown gate.
    """
    return GATES[name.lower()]
