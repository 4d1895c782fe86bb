"""GitHub webhook handling: signature check, payload parsing and event routing."""

import json
from typing import Optional

from fastapi import HTTPException
from pydantic import ValidationError

from gates.core.config import Settings
from gates.core.logging import get_logger
from gates.schemas.envelope import ProcessingEnvelope
from gates.schemas.webhook import DeploymentProtectionRuleWebHook
from gates.services.github.security import verify_signature
from gates.services.processing.capabilities import WorkQueue
from gates.services.processing.pipeline import GateDefinition

logger = get_logger(__name__)

DEPLOYMENT_PROTECTION_RULE_EVENT = "deployment_protection_rule"


def _installation_id(payload: dict) -> Optional[int]:
    return (payload.get("installation") or {}).get("id")


def _log_installation_event(payload: dict) -> dict:
    logger.info("Installation:%s %s", payload.get("action"), _installation_id(payload))
    return {"message": "OK"}


def _log_installation_repositories_event(event_type: str, payload: dict) -> dict:
    action = payload.get("action")
    if action == "added":
        repositories = payload.get("repositories_added") or []
    elif action == "removed":
        repositories = payload.get("repositories_removed") or []
    else:
        logger.info("%s ignored for %s", action, event_type)
        return {"message": "Ignored"}

    names = ",".join(repo.get("full_name", "") for repo in repositories)
    logger.info("Install Repos %s %s: %s", _installation_id(payload), action, names)
    return {"message": "OK"}


async def _enqueue_deployment_protection_rule(
    gate: GateDefinition,
    delivery_id: Optional[str],
    payload: dict,
    queue: WorkQueue,
    settings: Settings,
) -> dict:
    try:
        webhook = DeploymentProtectionRuleWebHook.model_validate(payload)
    except ValidationError as e:
        logger.error("Invalid %s payload: %s", DEPLOYMENT_PROTECTION_RULE_EVENT, e)
        raise HTTPException(status_code=400, detail="Invalid deployment_protection_rule payload") from e

    if webhook.action != "requested":
        logger.info("%s action %s ignored", DEPLOYMENT_PROTECTION_RULE_EVENT, webhook.action)
        return {"message": "OK"}

    envelope = ProcessingEnvelope(
        id=delivery_id,
        try_number=0,
        remaining_tries=settings.GATES_MAX_TRIES,
        webhook_payload=webhook,
    )
    await queue.enqueue(gate.queue_name, envelope)
    logger.info("%s processed. Message enqueued on %s", DEPLOYMENT_PROTECTION_RULE_EVENT, gate.queue_name)
    return {"message": "Enqueued", "queue": gate.queue_name}


async def handle_github_webhook(
    gate: GateDefinition,
    event_type: Optional[str],
    delivery_id: Optional[str],
    raw_body: bytes,
    signature_header: Optional[str],
    *,
    queue: WorkQueue,
    settings: Settings,
) -> dict:
    """
    Process a GitHub webhook delivered to a gate.

    - Verifies the HMAC SHA-256 signature when a webhook secret is configured.
    - deployment_protection_rule (requested): enqueues a processing envelope.
    - installation / installation_repositories: logged.
    - Other events: ignored.

    Args:
        gate: Gate the webhook was delivered to.
        event_type: The X-GitHub-Event header value.
        delivery_id: The X-GitHub-Delivery header value, becomes the envelope id.
        raw_body: The raw body bytes for signature verification.
        signature_header: The X-Hub-Signature-256 header.

    Returns:
        A dict to be returned as the JSON response.

    Raises:
        HTTPException: 400 on a missing event, a bad signature or an invalid body.
    """
    logger.info("EventReceiver Begin: [%s] %s", event_type, delivery_id)

    if not event_type or not event_type.strip():
        logger.error("Missing Event")
        raise HTTPException(status_code=400, detail="Missing Event")

    if not verify_signature(raw_body, settings.GHAPP_WEBHOOKSECRET, signature_header):
        logger.error("Failed HMAC validation.")
        raise HTTPException(status_code=400, detail="Invalid signature")

    try:
        payload = json.loads(raw_body)
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=400, detail="Invalid JSON body") from e
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    if event_type == DEPLOYMENT_PROTECTION_RULE_EVENT:
        return await _enqueue_deployment_protection_rule(
            gate, delivery_id, payload, queue, settings
        )
    if event_type == "installation_repositories":
        return _log_installation_repositories_event(event_type, payload)
    if event_type == "installation":
        return _log_installation_event(payload)

    logger.info("GitHub webhook received: %s", event_type)
    return {"message": "Ignored", "event": event_type}
