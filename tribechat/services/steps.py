"""Helpers that give every storage call the same failure semantics.

``bounded`` is the terminal path: a timeout or a driver error becomes
``StorageFailure`` and propagates. ``best_effort`` is the only place an error
is swallowed; it logs and hands back a ``StepResult`` instead.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Optional

from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from tribechat.exceptions import ChatError, StorageFailure

logger = logging.getLogger(__name__)


@dataclass
class StepResult:
    step: str
    ok: bool
    value: Any = None
    error: Optional[BaseException] = None


async def bounded(awaitable: Awaitable, timeout: float, what: str):
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError as exc:
        raise StorageFailure(f"{what} timed out after {timeout}s") from exc
    except (SQLAlchemyError, RedisError, OSError) as exc:
        raise StorageFailure(f"{what} failed: {exc}") from exc


async def best_effort(step: str, awaitable: Awaitable, room_id: str = "") -> StepResult:
    try:
        value = await awaitable
    except (ChatError, SQLAlchemyError, RedisError, OSError, asyncio.TimeoutError) as exc:
        logger.warning("Best-effort step %r failed for room %s: %s", step, room_id, exc)
        return StepResult(step=step, ok=False, error=exc)
    return StepResult(step=step, ok=True, value=value)
