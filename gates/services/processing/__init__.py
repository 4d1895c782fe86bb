"""
Processing pipeline shared by the gates.
"""

from gates.services.processing.pipeline import (
    GateDefinition,
    load_configuration,
    process_envelope,
)
from gates.services.processing.run import GateRun

__all__ = [
    "GateDefinition",
    "GateRun",
    "load_configuration",
    "process_envelope",
]
