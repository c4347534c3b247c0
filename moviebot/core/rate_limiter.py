"""Global and per-user rate limiter over minute, hour and day windows."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional
import logging

from utils.clock import Clock, DAY, HOUR, MINUTE, in_window, next_reset, oldest_in_window, seconds_until_expiry, system_clock
from storage.state_store import InMemoryStateStore, UserStateStore

logger = logging.getLogger(__name__)


@dataclass
class RateWindowState:
    request_timestamps: List[float] = field(default_factory=list)
    daily_count: int = 0
    last_reset: float = 0.0


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    reason: Optional[str] = None
    scope: Optional[str] = None
    window: Optional[str] = None
    retry_after: Optional[int] = None
    reset_at: Optional[datetime] = None


ALLOWED = RateLimitResult(allowed=True)


@dataclass(frozen=True)
class UsageSnapshot:
    daily: int
    hourly: int
    minute: int
    global_daily: int


class RateLimiter:
    def __init__(
        self,
        global_per_minute: int = 12,
        global_per_day: int = 180,
        user_per_minute: int = 5,
        user_per_hour: int = 20,
        user_per_day: int = 50,
        clock: Clock = system_clock,
        store: Optional[UserStateStore[RateWindowState]] = None,
    ):
        self.global_per_minute = global_per_minute
        self.global_per_day = global_per_day
        self.user_per_minute = user_per_minute
        self.user_per_hour = user_per_hour
        self.user_per_day = user_per_day
        self._clock = clock
        self._global = RateWindowState(last_reset=clock())
        self._users: UserStateStore[RateWindowState] = store if store is not None else InMemoryStateStore()

    @property
    def global_state(self) -> RateWindowState:
        return self._global

    def user_state(self, user_id: int) -> Optional[RateWindowState]:
        return self._users.get(user_id)

    def _new_state(self) -> RateWindowState:
        return RateWindowState(last_reset=self._clock())

    def _reset_daily_counters(self, now: float) -> None:
        for state in [self._global, *self._users.values()]:
            if now - state.last_reset >= DAY:
                state.daily_count = 0
                state.last_reset = now

    def check_global(self) -> RateLimitResult:
        now = self._clock()
        self._reset_daily_counters(now)
        state = self._global

        if state.daily_count >= self.global_per_day:
            reset_at = next_reset(state.last_reset)
            return RateLimitResult(
                allowed=False,
                reason=(
                    f"Global daily limit reached ({self.global_per_day} requests/day). "
                    f"Resets at {reset_at.strftime('%H:%M:%S')}."
                ),
                scope="global",
                window="day",
                reset_at=reset_at,
            )

        state.request_timestamps = in_window(state.request_timestamps, MINUTE, now)
        if len(state.request_timestamps) >= self.global_per_minute:
            wait = seconds_until_expiry(min(state.request_timestamps), MINUTE, now)
            return RateLimitResult(
                allowed=False,
                reason=f"Global rate limit exceeded. Please try again in {wait} seconds.",
                scope="global",
                window="minute",
                retry_after=wait,
            )

        return ALLOWED

    def check_user(self, user_id: int) -> RateLimitResult:
        now = self._clock()
        self._reset_daily_counters(now)
        state = self._users.get_or_create(user_id, self._new_state)

        if state.daily_count >= self.user_per_day:
            reset_at = next_reset(state.last_reset)
            return RateLimitResult(
                allowed=False,
                reason=(
                    f"You've reached your daily limit ({self.user_per_day} requests/day). "
                    f"Resets at {reset_at.strftime('%H:%M:%S')}."
                ),
                scope="user",
                window="day",
                reset_at=reset_at,
            )

        state.request_timestamps = in_window(state.request_timestamps, HOUR, now)
        if len(state.request_timestamps) >= self.user_per_hour:
            wait = seconds_until_expiry(min(state.request_timestamps), HOUR, now)
            wait_minutes = -(-wait // 60)
            return RateLimitResult(
                allowed=False,
                reason=(
                    f"You've reached your hourly limit ({self.user_per_hour} requests/hour). "
                    f"Try again in {wait_minutes} minutes."
                ),
                scope="user",
                window="hour",
                retry_after=wait,
            )

        in_minute = in_window(state.request_timestamps, MINUTE, now)
        if len(in_minute) >= self.user_per_minute:
            wait = seconds_until_expiry(oldest_in_window(in_minute, MINUTE, now), MINUTE, now)
            return RateLimitResult(
                allowed=False,
                reason=f"You're sending requests too quickly. Wait {wait} seconds.",
                scope="user",
                window="minute",
                retry_after=wait,
            )

        return ALLOWED

    def record(self, user_id: int) -> float:
        """Commit one request against both scopes and return its timestamp.

        Only call this once both checks passed and the gated call is about
        to be made. Pass the returned timestamp to ``rollback`` if the call
        fails.
        """
        now = self._clock()
        self._global.request_timestamps.append(now)
        self._global.daily_count += 1

        state = self._users.get_or_create(user_id, self._new_state)
        state.request_timestamps.append(now)
        state.daily_count += 1
        return now

    def rollback(self, user_id: int, timestamp: Optional[float] = None) -> None:
        """Undo a ``record`` for a user so failed calls are free.

        With ``timestamp`` the matching entry is removed, so overlapping
        calls from other users keep their own entries in the global window.
        Without it the newest entry is removed.
        """
        state = self._users.get(user_id)
        if state is None or (not state.request_timestamps and state.daily_count == 0):
            logger.warning(f"Rollback for user {user_id} with nothing recorded, ignoring")
            return

        for scope in (state, self._global):
            self._drop_timestamp(scope.request_timestamps, timestamp)
            scope.daily_count = max(scope.daily_count - 1, 0)

    @staticmethod
    def _drop_timestamp(timestamps: List[float], timestamp: Optional[float]) -> None:
        if not timestamps:
            return
        if timestamp is None:
            timestamps.pop()
            return
        # Search from the end so the newest matching entry goes first
        for i in range(len(timestamps) - 1, -1, -1):
            if timestamps[i] == timestamp:
                del timestamps[i]
                return

    def usage(self, user_id: int) -> Optional[UsageSnapshot]:
        state = self._users.get(user_id)
        if state is None:
            return None
        now = self._clock()
        daily = 0 if now - state.last_reset >= DAY else state.daily_count
        global_daily = 0 if now - self._global.last_reset >= DAY else self._global.daily_count
        return UsageSnapshot(
            daily=daily,
            hourly=len(in_window(state.request_timestamps, HOUR, now)),
            minute=len(in_window(state.request_timestamps, MINUTE, now)),
            global_daily=global_daily,
        )
