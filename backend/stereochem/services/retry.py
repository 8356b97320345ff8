import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar
from stereochem.errors import RateLimited

logger = logging.getLogger(__name__)

T = TypeVar("T")

def backoff_delay(attempt: int, base_delay: float, growth: float, jitter: float = 0.0,
                  rng: Optional[random.Random] = None) -> float:
    """Delay before retry number `attempt` (0-based): base * growth**attempt + U[0, jitter)."""
    delay = base_delay * (growth ** attempt)
    if jitter > 0:
        delay += (rng or random).random() * jitter
    return delay

async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    retries: int = 3,
    base_delay: float = 2.0,
    growth: float = 2.5,
    jitter: float = 1.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    rng: Optional[random.Random] = None,
) -> T:
    """
    Calls `fn` and retries it only while it raises `RateLimited`, at most
    `retries` extra times. Any other error propagates from the first attempt.
    When the budget is spent the last `RateLimited` is re-raised.
    """
    attempt = 0
    while True:
        try:
            return await fn()
        except RateLimited:
            if attempt >= retries:
                raise
            delay = backoff_delay(attempt, base_delay, growth, jitter, rng)
            logger.info("Quota limit reached. Retrying in %.2fs (attempt %d/%d)...", delay, attempt + 1, retries)
            await sleep(delay)
            attempt += 1
