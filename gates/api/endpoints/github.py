from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from gates.core.config import Settings, get_settings
from gates.core.valkey_queue import ValkeyWorkQueue
from gates.dependencies.queue import get_work_queue
from gates.services.github.diagnostics import validate_settings
from gates.services.github.webhook_service import handle_github_webhook
from gates.services.registry import get_gate

router = APIRouter()


@router.post("/{gate_name}/webhook")
async def github_webhook(
    gate_name: str,
    request: Request,
    x_github_event: Optional[str] = Header(None),
    x_github_delivery: Optional[str] = Header(None),
    x_hub_signature_256: Optional[str] = Header(None),
    queue: ValkeyWorkQueue = Depends(get_work_queue),
    settings: Settings = Depends(get_settings),
):
    """
    Receive a GitHub webhook for a gate.

    Args:
        gate_name: Gate the GitHub App delivers to (deployhours, issues).
        request: The incoming HTTP request.
        x_github_event: The GitHub event type (e.g. 'deployment_protection_rule').
        x_github_delivery: Unique id of the delivery.
        x_hub_signature_256: HMAC signature of the body.
    """
    try:
        gate = get_gate(gate_name)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown gate {gate_name}")

    raw_body = await request.body()
    return await handle_github_webhook(
        gate,
        x_github_event,
        x_github_delivery,
        raw_body,
        x_hub_signature_256,
        queue=queue,
        settings=settings,
    )


@router.get("/validate")
async def validate(install_id: Optional[int] = None, settings: Settings = Depends(get_settings)):
    """Check the GitHub App settings and, with an installation id, the installation access."""
    return await validate_settings(settings, install_id)
