"""
Gate configuration files: YAML loading and the shared rule model.
"""

from gates.services.policy.loader import load_yaml
from gates.services.policy.base import GatesConfiguration, GatesRule, PolicyModel

__all__ = [
    "load_yaml",
    "GatesConfiguration",
    "GatesRule",
    "PolicyModel",
]
