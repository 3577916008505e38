"""
User API Backend — Rate Limiter
================================

What:  Per-caller request counter with a cool-down block once the quota for a
       window is used up.
How:   Counter records live in a CounterStore (shared across workers when
       SQL-backed). Each check reads the record for prefix:identifier[:route],
       prunes timestamps older than the window and either records the request
       or transitions the key to blocked.
Who:   `RateLimitStage` runs it just before the business handler.

Algorithm (now = integer epoch seconds):
    1. window_start = now - duration
    2. No record, or record.expires_at < now → store [now], allow
    3. blocked and blocked_until > now → reject, retry_after = blocked_until - now
       (stored requests untouched)
    4. Prune to timestamps > window_start; if count >= points → store
       blocked=True, blocked_until = now + block_duration, empty request set,
       reject with retry_after = block_duration
    5. Otherwise append now, store with blocked=False, allow

    A block stores an empty request set, so the first request after
    blocked_until starts a fresh window with a single entry.

Failure policy (fail-open):
    Any failure while checking (store unreachable, bad record) is logged at
    ERROR and the request is ALLOWED. The limiter never takes the API down.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from app.exceptions import TooManyRequestsError
from app.middleware.pipeline import Handler, Request, RequestContext, Response, Stage
from app.services.counter_store import CounterRecord, CounterStore, SqlCounterStore

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "rl"
DEFAULT_RETENTION_BUFFER = 3600


@dataclass
class RateLimitConfig:
    """
    Limits for one limiter instance.

    Attributes:
        points:          Max requests per window (> 0)
        duration:        Window length in seconds (> 0)
        key_prefix:      Namespaces this limiter's keys in a shared store
        block_duration:  Cool-down after the quota is exceeded; defaults to
                         `duration` and may not be shorter than it
    """

    points: int
    duration: int
    key_prefix: str = DEFAULT_KEY_PREFIX
    block_duration: Optional[int] = None

    def __post_init__(self) -> None:
        if self.points <= 0:
            raise ValueError(f"points must be a positive integer, got {self.points}")
        if self.duration <= 0:
            raise ValueError(f"duration must be a positive integer, got {self.duration}")
        if not self.key_prefix:
            self.key_prefix = DEFAULT_KEY_PREFIX
        if self.block_duration is None:
            self.block_duration = self.duration
        if self.block_duration < self.duration:
            raise ValueError(
                f"block_duration ({self.block_duration}s) must be at least duration ({self.duration}s)"
            )


@dataclass
class RateLimitDecision:
    allowed: bool
    retry_after: Optional[int] = None
    remaining: Optional[int] = None


class RateLimiter:
    """
    Fixed-window request counter with an explicit block state.

    Args:
        config:            Limits and key prefix
        store:             Where counter records are read and written
        retention_buffer:  Seconds added to every record's expiry
    """

    def __init__(
        self,
        config: RateLimitConfig,
        store: CounterStore,
        retention_buffer: int = DEFAULT_RETENTION_BUFFER,
    ):
        self.config = config
        self.store = store
        self.retention_buffer = retention_buffer

    @staticmethod
    def identifier_for(request: Request) -> str:
        """Authenticated subject if present, else source address, else 'unknown'."""
        if request.subject:
            return f"user:{request.subject}"
        return f"ip:{request.source_ip or 'unknown'}"

    def key_for(self, identifier: str, route: Optional[str] = None) -> str:
        key = f"{self.config.key_prefix}:{identifier}"
        segment = (route or "").strip("/").replace("/", ":")
        if segment:
            key += ":" + segment
        return key

    async def check_limit(
        self,
        identifier: str,
        route: Optional[str] = None,
        now: Optional[int] = None,
    ) -> RateLimitDecision:
        """
        Decide whether one more request under (identifier, route) is allowed.

        Returns:
            RateLimitDecision(allowed=True, remaining=...) or
            RateLimitDecision(allowed=False, retry_after=seconds)
        """
        key = self.key_for(identifier, route)
        now = int(time.time()) if now is None else int(now)

        try:
            return await self._check(key, identifier, route, now)
        except Exception as exc:
            logger.error(
                "Rate limiting check failed, allowing request: %s",
                exc,
                exc_info=exc,
                extra={"rate_limit_key": key},
            )
            return RateLimitDecision(allowed=True)

    async def _check(
        self, key: str, identifier: str, route: Optional[str], now: int
    ) -> RateLimitDecision:
        config = self.config
        window_start = now - config.duration

        record = await self.store.get(key)

        if record is None or record.expires_at < now:
            await self.store.put(self._active_record(key, [now], now, created_at=now))
            return RateLimitDecision(allowed=True, remaining=config.points - 1)

        if record.blocked and record.blocked_until is not None and record.blocked_until > now:
            retry_after = record.blocked_until - now
            logger.warning(
                "Rate limit exceeded - blocked for %ds",
                retry_after,
                extra={"identifier": identifier, "route": route, "blocked_until": record.blocked_until},
            )
            return RateLimitDecision(allowed=False, retry_after=retry_after)

        in_window = sorted(ts for ts in record.requests if ts > window_start)

        if len(in_window) >= config.points:
            blocked_until = now + config.block_duration
            await self.store.put(
                CounterRecord(
                    key=key,
                    requests=[],
                    blocked=True,
                    blocked_until=blocked_until,
                    expires_at=blocked_until + self.retention_buffer,
                    created_at=record.created_at or now,
                    updated_at=now,
                )
            )
            logger.warning(
                "Rate limit exceeded: %d requests in %ds window (limit %d)",
                len(in_window),
                config.duration,
                config.points,
                extra={"identifier": identifier, "route": route},
            )
            return RateLimitDecision(allowed=False, retry_after=config.block_duration)

        in_window.append(now)
        await self.store.put(
            self._active_record(key, in_window, now, created_at=record.created_at or now)
        )
        return RateLimitDecision(allowed=True, remaining=config.points - len(in_window))

    def _active_record(self, key: str, requests, now: int, created_at: int) -> CounterRecord:
        return CounterRecord(
            key=key,
            requests=list(requests),
            blocked=False,
            blocked_until=None,
            expires_at=now + self.config.duration + self.retention_buffer,
            created_at=created_at,
            updated_at=now,
        )

    async def enforce(self, request: Request, route: Optional[str] = None) -> RateLimitDecision:
        """Check the request's caller and raise TooManyRequestsError on rejection."""
        decision = await self.check_limit(self.identifier_for(request), route)
        if not decision.allowed:
            raise TooManyRequestsError(retry_after=decision.retry_after or self.config.block_duration)
        return decision


class RateLimitStage(Stage):
    """
    Pipeline stage running a RateLimiter before the business handler.

    Args:
        limiter:    The limiter to consult
        per_route:  Count each path separately (True) or all paths together
    """

    def __init__(self, limiter: RateLimiter, per_route: bool = True):
        self.limiter = limiter
        self.per_route = per_route

    async def handle(self, request: Request, ctx: RequestContext, call_next: Handler) -> Response:
        await self.limiter.enforce(request, request.path if self.per_route else None)
        ctx.mark("rate_limit_checked")
        return await call_next(request, ctx)


# ── Predefined limiters ───────────────────────────────────────────────────
# Distinct prefixes keep their counters apart in one shared store.

def default_limiter(store: CounterStore) -> RateLimiter:
    """Lenient general-purpose limit: 100 requests per minute."""
    return RateLimiter(RateLimitConfig(points=100, duration=60), store)


def strict_limiter(store: CounterStore) -> RateLimiter:
    """10 requests per minute, 5 minute block."""
    return RateLimiter(RateLimitConfig(points=10, duration=60, block_duration=300, key_prefix="strict"), store)


def auth_limiter(store: CounterStore) -> RateLimiter:
    """Authentication attempts: 5 per 5 minutes, 15 minute block."""
    return RateLimiter(RateLimitConfig(points=5, duration=300, block_duration=900, key_prefix="auth"), store)


def limiter_from_settings(config, store: Optional[CounterStore] = None) -> Optional[RateLimiter]:
    """The limiter described by RATE_LIMIT_* settings, or None when disabled."""
    if not config.rate_limit_enabled:
        return None
    return RateLimiter(
        RateLimitConfig(
            points=config.rate_limit_points,
            duration=config.rate_limit_duration,
            key_prefix=config.rate_limit_key_prefix,
            block_duration=config.rate_limit_block_duration,
        ),
        store or SqlCounterStore(),
        retention_buffer=config.rate_limit_retention_buffer,
    )
