from typing import Awaitable, Callable, Optional
from models.payment import ItemType
from services.provisioners import all_provisioners, get_provisioner
import asyncio
import logging

logger = logging.getLogger(__name__)


def delay_for_attempt(attempt: int, interval_ms: int) -> float:
    """Seconds to wait after the given 1-based attempt (fixed interval)"""
    if attempt < 1:
        raise ValueError("attempt is 1-based")
    return interval_ms / 1000


async def poll_for_entitlement(
    lookup: Callable[[], bool],
    max_attempts: int,
    interval_ms: int,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> bool:
    """Call lookup until it reports True or max_attempts is reached.

    The lookup is read-only; a failing lookup counts as "not there yet".
    """
    for attempt in range(1, max_attempts + 1):
        try:
            if lookup():
                logger.info(f"Entitlement verified on attempt {attempt}/{max_attempts}")
                return True
        except Exception as e:
            logger.warning(f"Entitlement lookup failed on attempt {attempt}/{max_attempts}: {e}")

        if attempt < max_attempts:
            await sleep(delay_for_attempt(attempt, interval_ms))

    logger.info(f"Entitlement not verified after {max_attempts} attempts, still processing")
    return False


def entitlement_lookup(item_id: str, authorization_id: str, user_id: str,
                       item_type: Optional[ItemType] = None) -> Callable[[], bool]:
    provisioners = [get_provisioner(item_type)] if item_type else all_provisioners()

    def lookup() -> bool:
        for provisioner in provisioners:
            row = provisioner.find(item_id, authorization_id)
            if row is None:
                continue
            owner = row.get("userId") or row.get("buyerId") or row.get("soldTo")
            if owner == user_id:
                return True
            logger.warning(f"Entitlement {item_id}/{authorization_id} belongs to another user")
        return False

    return lookup
