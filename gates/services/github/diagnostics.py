"""Self check of the GitHub App settings, served by ``GET /github/validate``."""

import platform
from typing import Any, Callable, Dict, Optional

from gates.core.config import Settings
from gates.core.logging import get_logger
from gates.integrations.github import GitHubAppClient

logger = get_logger(__name__)

SETTING_NAMES = ("GHAPP_ID", "GITHUB_API_URL", "GATES_ENABLED")
SECRET_NAMES = ("GHAPP_PEMCERTIFICATE", "GHAPP_WEBHOOKSECRET", "VALKEY_URL")
MASK = "*****"


def settings_report(settings: Settings) -> Dict[str, Dict[str, Any]]:
    """Which settings are present. Secret values are masked."""
    report = {}
    for name in SETTING_NAMES + SECRET_NAMES:
        value = getattr(settings, name)
        report[name] = {
            "present": bool(value),
            "value": MASK if name in SECRET_NAMES else value,
            "length": len(value) if value else 0,
        }
    return report


async def _installation_report(client: GitHubAppClient) -> Dict[str, Any]:
    try:
        await client.get_installation_token()
    except Exception as e:
        return {
            "token": f"Couldn't generate an installation token: {e}",
            "rate_limits": None,
        }

    try:
        resources = (await client.get_rate_limit()).get("resources", {})
        rate_limits = {
            kind: {
                "limit": resources.get(kind, {}).get("limit"),
                "remaining": resources.get(kind, {}).get("remaining"),
            }
            for kind in ("core", "search")
        }
    except Exception as e:
        rate_limits = f"Failed to get rate limit data. Check installation id: {e}"

    return {"token": "Installation token generated successfully", "rate_limits": rate_limits}


async def validate_settings(
    settings: Settings,
    install_id: Optional[int] = None,
    client_factory: Callable[[int, Settings], GitHubAppClient] = GitHubAppClient,
) -> Dict[str, Any]:
    """
    Report on the service configuration.

    Args:
        settings: Process settings.
        install_id: When given, an installation token is minted and the
            installation rate limits are read.
    """
    logger.info("Validate Settings")
    report: Dict[str, Any] = {
        "settings": settings_report(settings),
        "python": {
            "version": platform.python_version(),
            "implementation": platform.python_implementation(),
            "os": platform.platform(),
        },
    }

    async with client_factory(install_id or 0, settings) as client:
        try:
            app = await client.get_app()
            report["app"] = {
                "name": app.get("name"),
                "description": app.get("description"),
                "html_url": app.get("html_url"),
                "external_url": app.get("external_url"),
                "events": app.get("events", []),
                "owner": (app.get("owner") or {}).get("login"),
            }
        except Exception as e:
            report["app"] = f"Could not get app info {e}"

        if install_id:
            report["installation"] = await _installation_report(client)
        else:
            report["installation"] = (
                "Skipped. Provide an install_id query string parameter to validate "
                "the installation token and get its rate limits."
            )

    return report
