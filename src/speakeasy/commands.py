"""
Command parsing, help text, and the dispatch stage.

Dispatch is the last pipeline stage. It turns the parsed command into an
iterator of replies; every reply except the second half of a paired unlock
is computed before the stage returns.
"""

import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Callable, Iterator, List, Optional

from speakeasy.catalog import Catalog, Door
from speakeasy.errors import (
    HELP_HINT,
    CapacityExceeded,
    NoActivePass,
    NoArgument,
    PassExpired,
    PersistFailure,
    SpeakeasyError,
    UnknownCommand,
    UnknownDoor,
)
from speakeasy.lock_api import LockApiClient
from speakeasy.logger import get_logger
from speakeasy.models import (
    USER_FIELD,
    PassState,
    UserRecord,
    count_active_passes,
    format_timestamp,
    utcnow,
)
from speakeasy.state import Checkout, Command, Invalid, PipelineState, Status, Unlock
from speakeasy.store import StoreClient

logger = get_logger("commands")

UNLOCK_VERBS = ("unlock", "open")
NOT_UNDERSTOOD = f"I didn't catch that... {HELP_HINT}"


def is_help(text: str) -> bool:
    tokens = (text or "").split()
    return bool(tokens) and tokens[0] == "help"


def parse_command(text: str, catalog: Catalog, passes_enabled: bool = False) -> Command:
    tokens = (text or "").split()
    if not tokens:
        return Invalid("", UnknownCommand(NOT_UNDERSTOOD, detail="empty command text"))

    verb = tokens[0]
    if verb == "status":
        return Status()
    if verb == "checkout" and passes_enabled:
        return Checkout()
    if verb in UNLOCK_VERBS:
        if len(tokens) < 2:
            return Invalid(verb, NoArgument(detail="unlock without a door key"))
        doors = catalog.resolve(tokens[1])
        if not doors:
            return Invalid(verb, UnknownDoor(detail=f"unknown door key '{tokens[1]}'"))
        return Unlock(verb=verb, door_key=tokens[1], doors=tuple(doors))

    return Invalid(verb, UnknownCommand(detail=f"unknown verb '{verb}'"))


def help_text(
    catalog: Catalog, rate_limit_note: str, passes_enabled: bool = False, pass_hours: int = 24
) -> str:
    lines = [
        "```",
        "Control access to the SpeakEasy.",
        "  /speakeasy help",
        "   display this text",
        "  /speakeasy status",
        "   checks the status of our connection",
        "   with the SpeakEasy",
    ]
    if passes_enabled:
        lines += [
            "  /speakeasy checkout",
            f"   check out a {pass_hours} hour access pass",
        ]
    lines += [
        "  /speakeasy unlock {door}",
        "   unlock a specific door",
        "Doors",
    ]
    for door in catalog.doors:
        lines.append(f"  - {door.key}")
        lines.append(f"  {door.name}")
    for key, members in catalog.compound.items():
        lines.append(f"  - {key}")
        lines.append(f"  {' then '.join(members)}")
    lines.append("```")

    return (
        "\n".join(lines)
        + "\n\n"
        + "Generally, I'd recommend running `/speakeasy status` before making a trip to the "
        + "SpeakEasy of your choice. If the status check comes back operational then you "
        + "should be good to go.\n\n"
        + rate_limit_note
        + "\n\n"
        + "It is totally possible that this thing would just... not work. That being said, "
        + "it should be as available as the KISI app itself is."
    )


def _plural(n: int, unit: str) -> str:
    return f"{n} {unit}" if n == 1 else f"{n} {unit}s"


def relative_time(target: datetime, now: datetime) -> str:
    """
    "in 5 hours" / "2 days ago" / "just now", using the largest whole unit.
    """
    seconds = int((target - now).total_seconds())
    if seconds == 0:
        return "just now"
    future = seconds > 0
    seconds = abs(seconds)

    if seconds >= 86400:
        span = _plural(seconds // 86400, "day")
    elif seconds >= 3600:
        span = _plural(seconds // 3600, "hour")
    elif seconds >= 60:
        span = _plural(seconds // 60, "minute")
    else:
        span = _plural(seconds, "second")

    return f"in {span}" if future else f"{span} ago"


def pass_summary(user: UserRecord, now: datetime) -> str:
    state = user.pass_state(now)
    if state is PassState.ACTIVE:
        return f"Your pass is active and expires {relative_time(user.pass_expires_at, now)}."
    if state is PassState.EXPIRED:
        return f"Your pass expired {relative_time(user.pass_expires_at, now)}."
    return "You have never checked out a pass."


class DispatchStage:
    name = "dispatch"

    def __init__(
        self,
        store: StoreClient,
        lock_api: LockApiClient,
        users_table: str,
        catalog: Catalog,
        passes_enabled: bool = False,
        pass_capacity: int = 8,
        pass_duration: timedelta = timedelta(hours=24),
        compound_delay: float = 10.0,
        clock: Optional[Callable[[], datetime]] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self._store = store
        self._lock_api = lock_api
        self._users_table = users_table
        self._catalog = catalog
        self._passes_enabled = passes_enabled
        self._pass_capacity = pass_capacity
        self._pass_duration = pass_duration
        self._compound_delay = compound_delay
        self._clock = clock or utcnow
        self._sleep = sleep or time.sleep

    def __call__(self, state: PipelineState) -> PipelineState:
        command = state.command
        if isinstance(command, Status):
            replies = iter([self._status(state)])
        elif isinstance(command, Checkout):
            replies = iter([self._checkout(state)])
        elif isinstance(command, Unlock):
            replies = self._unlock(state, command)
        elif isinstance(command, Invalid):
            raise command.failure
        else:
            raise TypeError(f"Unhandled command variant: {command!r}")
        return state.evolve(replies=replies)

    # status

    def _door_status(self, door: Door, headers) -> str:
        try:
            message = self._lock_api.peek(door.lock_id, headers)
        except SpeakeasyError as e:
            logger.warning(
                "commands.peek_failed",
                extra={"door": door.key, "error_code": e.code, "detail": e.detail},
            )
            return f"{door.label}:\n Warning: could not reach this lock."
        return f"{door.label}:\n {message}"

    def _status(self, state: PipelineState) -> str:
        doors = self._catalog.doors
        headers = state.session_headers
        # map() yields in input order whatever order the peeks finish in.
        with ThreadPoolExecutor(max_workers=max(1, len(doors))) as pool:
            lines = list(pool.map(lambda d: self._door_status(d, headers), doors))

        message = (
            "I'm reading the lock statuses as follows\n"
            "```\n" + "\n".join(lines) + "\n```\n"
            "If any of those look off, its possible your phone could still work to "
            "unlock it, but not guaranteed."
        )

        if self._passes_enabled:
            now = self._clock()
            active = count_active_passes(self._store.scan(self._users_table), now)
            message += (
                f"\n\nActive passes: {active}/{self._pass_capacity}\n"
                + pass_summary(state.user, now)
            )
        return message

    # checkout

    def _checkout(self, state: PipelineState) -> str:
        user = state.user
        now = self._clock()

        # Count-then-write is not atomic: concurrent checkouts can both see
        # a free slot and over-issue by the number of racing requests.
        active = count_active_passes(self._store.scan(self._users_table), now)
        if active >= self._pass_capacity:
            raise CapacityExceeded(detail=f"active={active} capacity={self._pass_capacity}")

        expires_at = now + self._pass_duration
        try:
            self._store.update(
                self._users_table,
                user.user_id,
                f"{USER_FIELD}.passExpiresAt",
                format_timestamp(expires_at),
            )
        except SpeakeasyError as e:
            raise PersistFailure(
                "I couldn't save your pass. Please try again.",
                detail=f"writing passExpiresAt failed: {e.detail or e}",
            ) from e

        if user.pass_state(now) is not PassState.ACTIVE:
            active += 1

        logger.info(
            "commands.pass_issued",
            extra={"user_id": user.user_id, "expires_at": format_timestamp(expires_at)},
        )
        return (
            f"Pass checked out. It expires {relative_time(expires_at, now)}. "
            f"({active}/{self._pass_capacity} passes active)"
        )

    # unlock

    def _require_pass(self, user: UserRecord) -> None:
        state = user.pass_state(self._clock())
        if state is PassState.NEVER:
            raise NoActivePass(detail=f"user {user.user_id} has no pass")
        if state is PassState.EXPIRED:
            raise PassExpired(detail=f"user {user.user_id} pass expired at {user.pass_expires_at}")

    def _unlock_one(self, door: Door, headers) -> str:
        message = self._lock_api.unlock(door.lock_id, headers)
        logger.info("commands.unlocked", extra={"door": door.key, "lock_message": message})
        return f"{door.label}: {message}"

    def _unlock(self, state: PipelineState, command: Unlock) -> Iterator[str]:
        if self._passes_enabled:
            self._require_pass(state.user)

        headers = state.session_headers
        if len(command.doors) == 1:
            door = command.doors[0]
            try:
                return iter([self._unlock_one(door, headers)])
            except SpeakeasyError as e:
                raise type(e)(f"{door.label}: {e.user_message}", detail=e.detail) from e

        return self._unlock_sequence(list(command.doors), headers)

    def _unlock_sequence(self, doors: List[Door], headers) -> Iterator[str]:
        """
        Unlock doors in order with a settling delay between them. Each door
        reports on its own; one failing does not stop the next.
        """
        for i, door in enumerate(doors):
            if i:
                self._sleep(self._compound_delay)
            try:
                yield self._unlock_one(door, headers)
            except SpeakeasyError as e:
                logger.error(
                    "commands.unlock_failed",
                    extra={"door": door.key, "error_code": e.code, "detail": e.detail},
                )
                yield f"{door.label}: I couldn't unlock this door. {e.user_message}"
