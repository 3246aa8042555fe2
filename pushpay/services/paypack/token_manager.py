"""Cached Paypack bearer token with single-flight refresh.

Overlapping callers that find the cache empty or stale share one in-flight
authenticate call and all observe its token or its failure. Reads of a valid
cached token never take the lock.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from pushpay.common.errors import AuthError, PushPayError
from pushpay.common.logging import logger
from pushpay.common.metrics import token_refresh_total
from pushpay.services.paypack.schemas import AuthResponse


@dataclass(frozen=True)
class CachedToken:
    """One issued access token.

    `expires_at` is the provider's wall-clock expiry, kept for logs.
    `valid_until` is the same instant on the monotonic clock, captured at
    refresh time, and is what validity checks use.
    """

    value: str
    expires_at: datetime
    valid_until: float

    def is_usable(self, now: float, skew: float) -> bool:
        return now < self.valid_until - skew


class TokenManager:
    """Owns the token cache; construct once per process and share it."""

    def __init__(
        self,
        authenticate: Callable[[], Awaitable[AuthResponse]],
        skew_seconds: float = 60.0,
        refresh_timeout_seconds: float = 45.0,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        self._authenticate = authenticate
        self._skew = skew_seconds
        self._refresh_timeout = refresh_timeout_seconds
        self._clock = clock
        self._wall_clock = wall_clock
        self._token: CachedToken | None = None
        self._inflight: asyncio.Task | None = None
        self._lock = asyncio.Lock()

    @property
    def cached(self) -> CachedToken | None:
        return self._token

    def invalidate(self) -> None:
        self._token = None

    def _usable_token(self) -> str | None:
        token = self._token
        if token is not None and token.is_usable(self._clock(), self._skew):
            return token.value
        return None

    async def get_valid_token(self) -> str:
        """Return a usable access token, refreshing at most once per cycle."""

        value = self._usable_token()
        if value is not None:
            return value

        async with self._lock:
            value = self._usable_token()
            if value is not None:
                return value
            if self._inflight is None:
                logger.info("paypack_token_refresh_started")
                self._inflight = asyncio.create_task(self._refresh())
            else:
                logger.debug("paypack_token_refresh_joined")
            inflight = self._inflight

        # Shielded so a waiter giving up does not cancel the shared refresh.
        return await asyncio.shield(inflight)

    async def _refresh(self) -> str:
        try:
            try:
                auth = await asyncio.wait_for(self._authenticate(), timeout=self._refresh_timeout)
            except asyncio.TimeoutError as exc:
                raise AuthError("Paypack authentication timed out.") from exc
            except PushPayError:
                raise
            except Exception as exc:
                raise AuthError("An unexpected error occurred during authentication.") from exc
            if not auth.access:
                raise AuthError("Authentication response did not include an access token.")

            remaining = auth.expires - self._wall_clock()
            self._token = CachedToken(
                value=auth.access,
                expires_at=datetime.fromtimestamp(auth.expires, tz=timezone.utc),
                valid_until=self._clock() + remaining,
            )
            token_refresh_total.labels(outcome="success").inc()
            logger.info("paypack_token_cached expires_at=%s", self._token.expires_at.isoformat())
            return auth.access
        except BaseException as exc:
            self._token = None
            token_refresh_total.labels(outcome="failure").inc()
            logger.error("paypack_token_refresh_failed error=%s", exc)
            if isinstance(exc, PushPayError) and not isinstance(exc, AuthError):
                raise AuthError(exc.message, details=exc.details) from exc
            raise
        finally:
            self._inflight = None
