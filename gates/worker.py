"""
Background tasks consuming the gate queues.

One task per enabled gate polls its queue and runs every due envelope
through the processing pipeline, one at a time.
"""

import asyncio
from typing import Callable, Optional

from pydantic import ValidationError

from gates.core.config import Settings
from gates.core.logging import get_logger
from gates.core.valkey_queue import ValkeyWorkQueue
from gates.integrations.github import GitHubAppClient
from gates.schemas.envelope import ProcessingEnvelope
from gates.services.processing.pipeline import GateDefinition, process_envelope
from gates.services.processing.run import Clock, GateRun, utc_now

logger = get_logger(__name__)

ClientFactory = Callable[[int, Settings], GitHubAppClient]


async def process_message(
    raw: str,
    gate: GateDefinition,
    *,
    queue: ValkeyWorkQueue,
    settings: Settings,
    client_factory: ClientFactory = GitHubAppClient,
    now: Clock = utc_now,
) -> Optional[GateRun]:
    """
    Decode a queued message and process it with a fresh GitHub client.

    Undecodable messages are logged and dropped.
    """
    try:
        envelope = ProcessingEnvelope.from_json(raw)
    except ValidationError as e:
        logger.error("Dropping undecodable message from %s: %s", gate.queue_name, e)
        return None

    async with client_factory(envelope.webhook_payload.installation.id, settings) as github:
        return await process_envelope(
            envelope, gate, github=github, queue=queue, settings=settings, now=now
        )


async def gate_worker_task(
    gate: GateDefinition,
    queue: ValkeyWorkQueue,
    settings: Settings,
    client_factory: ClientFactory = GitHubAppClient,
):
    """
    Background task that:
    1. Leases due envelopes from the gate queue
    2. Processes them one by one and acknowledges each once processed
    3. Sleeps GATES_WORKER_POLL_SECONDS when the queue has nothing due
    """
    logger.info("%s worker started on %s", gate.name, gate.queue_name)

    while True:
        try:
            raw = await queue.claim_due(
                gate.queue_name, visibility_seconds=settings.GATES_QUEUE_VISIBILITY_SECONDS
            )
            if raw is None:
                await asyncio.sleep(settings.GATES_WORKER_POLL_SECONDS)
                continue

            # Unacknowledged messages come back once their lease expires
            await process_message(
                raw, gate, queue=queue, settings=settings, client_factory=client_factory
            )
            await queue.ack(gate.queue_name, raw)
        except asyncio.CancelledError:
            logger.info("%s worker cancelled", gate.name)
            break
        except Exception as e:
            logger.error("Unexpected error in %s worker: %s", gate.name, e, exc_info=True)
            await asyncio.sleep(settings.GATES_WORKER_POLL_SECONDS)

    logger.info("%s worker stopped", gate.name)
