"""
GitHub App authentication utilities.
"""

import time
from typing import Optional

import httpx
import jwt

from gates.core.config import Settings
from gates.core.exceptions import FatalError
from gates.core.logging import get_logger

logger = get_logger(__name__)

ACCEPT = "application/vnd.github+json"


def create_app_jwt(app_id: Optional[str], private_key: Optional[str], now: Optional[float] = None) -> str:
    """Sign the JWT identifying the GitHub App itself (valid 10 minutes)."""
    if not app_id:
        raise ValueError("GHAPP_ID is not configured")
    if not private_key:
        raise ValueError("GHAPP_PEMCERTIFICATE is not configured")

    issued = int(now if now is not None else time.time())
    payload = {
        # Backdated to tolerate clock drift with GitHub
        "iat": issued - 60,
        "exp": issued + (10 * 60),
        "iss": app_id,
    }
    return jwt.encode(payload, private_key, algorithm="RS256")


async def get_access_token(
    installation_id: int, settings: Settings, client: httpx.AsyncClient
) -> str:
    """
    Exchanges the App JWT for an installation token.

    Raises:
        FatalError: The token cannot be minted. Nothing can be done for the
            current envelope without it.
    """
    try:
        app_jwt = create_app_jwt(settings.GHAPP_ID, settings.GHAPP_PEMCERTIFICATE)
        resp = await client.post(
            f"{settings.GITHUB_API_URL}/app/installations/{installation_id}/access_tokens",
            headers={"Authorization": f"Bearer {app_jwt}", "Accept": ACCEPT},
        )
        resp.raise_for_status()
        return resp.json()["token"]
    except Exception as e:
        logger.error("Fatal. Can't get installation token. %s (%s)", e, type(e).__name__)
        raise FatalError(f"Can't get installation token. {e}. Validate settings.") from e
