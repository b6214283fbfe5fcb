"""
Per-user rate limiting.

Two policies exist and a deployment picks exactly one:

  - CooldownPolicy: one request of any kind per window, tracked through the
    single `lastAccess` timestamp.
  - SlidingWindowPolicy: at most N rate-limited operations within the
    trailing window, tracked through the bounded `attempts` history.

A blocked request is never recorded. A passing request is always recorded,
and if that write fails the request does not run.
"""

import math
from datetime import datetime, timedelta
from typing import Any, Callable, FrozenSet, Optional, Tuple

from speakeasy.errors import PersistFailure, RateLimited, SpeakeasyError
from speakeasy.logger import get_logger
from speakeasy.models import USER_FIELD, Attempt, UserRecord, format_timestamp, utcnow
from speakeasy.state import PipelineState
from speakeasy.store import StoreClient

logger = get_logger("rate_limit")


def _wait_seconds(window: timedelta, since: timedelta) -> int:
    return max(1, math.ceil((window - since).total_seconds()))


class CooldownPolicy:
    def __init__(self, window_seconds: int):
        self.window = timedelta(seconds=window_seconds)

    def applies_to(self, operation: str) -> bool:
        return True

    def check(self, user: UserRecord, operation: str, now: datetime) -> None:
        if user.last_access is None:
            return
        since = now - user.last_access
        if since < self.window:
            wait = _wait_seconds(self.window, since)
            raise RateLimited(
                wait,
                "Requests to this service are limited to one every "
                f"{int(self.window.total_seconds())} seconds. Please wait {wait} seconds.",
            )

    def record(self, user: UserRecord, operation: str, now: datetime) -> Tuple[str, Any]:
        return f"{USER_FIELD}.lastAccess", format_timestamp(now)

    def describe(self) -> str:
        return f"You are limited to 1 request every {int(self.window.total_seconds())} seconds."


class SlidingWindowPolicy:
    def __init__(
        self,
        window_seconds: int,
        max_attempts: int,
        operations: FrozenSet[str],
        history_cap: int,
    ):
        if max_attempts > history_cap:
            raise ValueError(
                f"max_attempts ({max_attempts}) cannot exceed the attempt history cap ({history_cap})"
            )
        self.window = timedelta(seconds=window_seconds)
        self.max_attempts = max_attempts
        self.operations = frozenset(operations)
        self.history_cap = history_cap

    def applies_to(self, operation: str) -> bool:
        return operation in self.operations

    def check(self, user: UserRecord, operation: str, now: datetime) -> None:
        recent = sorted(
            (
                a
                for a in user.attempts
                if a.operation in self.operations and now - a.at < self.window
            ),
            key=lambda a: a.at,
            reverse=True,
        )
        if len(recent) < self.max_attempts:
            return
        # A slot frees up once the max_attempts-th most recent attempt ages out.
        since = now - recent[self.max_attempts - 1].at
        wait = _wait_seconds(self.window, since)
        raise RateLimited(
            wait,
            f"Requests to this service are limited to {self.max_attempts} every "
            f"{int(self.window.total_seconds())} seconds. Please wait {wait} seconds.",
        )

    def record(self, user: UserRecord, operation: str, now: datetime) -> Tuple[str, Any]:
        history = [Attempt(at=now, operation=operation)] + list(user.attempts)
        return f"{USER_FIELD}.attempts", [a.to_item() for a in history[: self.history_cap]]

    def describe(self) -> str:
        ops = ", ".join(sorted(self.operations))
        return (
            f"You are limited to {self.max_attempts} of ({ops}) "
            f"every {int(self.window.total_seconds())} seconds."
        )


def build_policy(config):
    if config.rate_limit_policy == "sliding":
        return SlidingWindowPolicy(
            window_seconds=config.rate_limit_window_seconds,
            max_attempts=config.rate_limit_max_attempts,
            operations=config.rate_limited_operations,
            history_cap=config.attempt_history_cap,
        )
    return CooldownPolicy(window_seconds=config.rate_limit_window_seconds)


class RateLimitStage:
    name = "rate_limit"

    def __init__(
        self,
        store: StoreClient,
        users_table: str,
        policy,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._store = store
        self._users_table = users_table
        self._policy = policy
        self._clock = clock or utcnow

    def __call__(self, state: PipelineState) -> PipelineState:
        user = state.user
        operation = state.command.operation
        if not self._policy.applies_to(operation):
            return state

        now = self._clock()
        if user.rate_limit_disabled:
            logger.debug("rate_limit.bypassed", extra={"user_id": user.user_id})
        else:
            self._policy.check(user, operation, now)

        field_path, value = self._policy.record(user, operation, now)
        try:
            self._store.update(self._users_table, user.user_id, field_path, value)
        except SpeakeasyError as e:
            raise PersistFailure(detail=f"recording attempt failed: {e.detail or e}") from e

        return state
