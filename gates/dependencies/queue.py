"""
Gates Work Queue Dependencies
"""

from gates.core.config import get_settings
from gates.core.valkey_queue import ValkeyWorkQueue, get_valkey_client


async def get_work_queue() -> ValkeyWorkQueue:
    """Get the work queue on the shared Valkey client"""
    return ValkeyWorkQueue(await get_valkey_client(get_settings()))
