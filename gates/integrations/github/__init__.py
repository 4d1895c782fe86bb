"""
GitHub integration package.
"""

from gates.integrations.github.auth import get_access_token
from gates.integrations.github.client import GitHubAppClient

__all__ = [
    "get_access_token",
    "GitHubAppClient",
]
