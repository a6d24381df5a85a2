"""Domain events — published to Redis Pub/Sub after the DB commit.

Redis carries nothing else here: balances and pool state live in PostgreSQL.
Consumers (WebSocket fan-out, notifications) live outside this service.
Callers MUST only publish once the write is committed; a failed publish is
logged and never undoes the write.
"""

import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import redis.asyncio as aioredis

from config.settings import settings
from src.rz_common.datetime_utils import utc_now

logger = logging.getLogger(__name__)

BALANCE_CHANGED = "balance_changed"
POSITION_OPENED = "position_opened"
POSITION_CASHED_OUT = "position_cashed_out"
MARKET_SETTLED = "market_settled"
POOL_SETTLED = "pool_settled"
POOL_REFUNDED = "pool_refunded"
LIMIT_ORDERS_EXECUTED = "limit_orders_executed"
RECONCILIATION_COMPLETED = "reconciliation_completed"

EventPublisher = Callable[[str, dict[str, Any]], Awaitable[None]]

_bus: aioredis.Redis | None = None


def event_bus() -> aioredis.Redis:
    global _bus  # noqa: PLW0603
    if _bus is None:
        _bus = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    return _bus


async def close_event_bus() -> None:
    global _bus  # noqa: PLW0603
    if _bus is not None:
        await _bus.aclose()
        _bus = None


def encode_event(event_type: str, payload: dict[str, Any]) -> str:
    return json.dumps(
        {"type": event_type, "emitted_at": utc_now().isoformat(), **payload},
        default=str,
    )


async def publish_event(event_type: str, payload: dict[str, Any]) -> None:
    try:
        await event_bus().publish(settings.EVENTS_CHANNEL, encode_event(event_type, payload))
    except Exception:
        logger.warning("Failed to publish %s event", event_type, exc_info=True)
