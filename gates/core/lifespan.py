import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI

from gates.core.config import get_settings
from gates.core.logging import get_logger, setup_logging
from gates.core.valkey_queue import ValkeyWorkQueue, close_valkey, get_valkey_client
from gates.services.registry import get_gate
from gates.worker import gate_worker_task

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """
    Lifespan function for the FastAPI application.
    Handles startup and shutdown events for application services.
    """
    settings = get_settings()

    # 1. Configure logging
    setup_logging(settings.LOG_LEVEL)

    # 2. Start one worker per enabled gate
    queue = ValkeyWorkQueue(await get_valkey_client(settings))
    workers = []
    for name in settings.enabled_gates:
        try:
            gate = get_gate(name)
        except KeyError:
            logger.warning("Unknown gate %s in GATES_ENABLED, skipped", name)
            continue
        workers.append(asyncio.create_task(gate_worker_task(gate, queue, settings)))

    yield

    # 3. Stop workers
    for task in workers:
        task.cancel()
    for task in workers:
        try:
            await task
        except asyncio.CancelledError:
            pass

    # 4. Close Valkey/Redis Connection
    await close_valkey()
