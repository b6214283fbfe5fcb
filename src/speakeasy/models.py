"""
Typed views over the raw DynamoDB items the pipeline reads.

Items arrive as loosely-shaped dicts; everything downstream works with these
dataclasses so that each optional field is handled explicitly.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

USER_FIELD = "speakeasy"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 string into an aware UTC datetime. None if unparseable.
    """
    if not isinstance(value, str) or not value:
        return None
    raw = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds")


class PassState(enum.Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    NEVER = "never"


@dataclass(frozen=True)
class Attempt:
    at: datetime
    operation: str

    def to_item(self) -> Dict[str, str]:
        return {"at": format_timestamp(self.at), "op": self.operation}


@dataclass(frozen=True)
class UserRecord:
    user_id: str
    enabled: bool
    rate_limit_disabled: bool = False
    attempts: List[Attempt] = field(default_factory=list)
    last_access: Optional[datetime] = None
    pass_expires_at: Optional[datetime] = None

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "UserRecord":
        # A user without a speakeasy map has never been enabled.
        data = item.get(USER_FIELD)
        if not isinstance(data, dict):
            data = {}

        attempts = []
        for raw in data.get("attempts") or []:
            if not isinstance(raw, dict):
                continue
            at = parse_timestamp(raw.get("at"))
            if at is None:
                continue
            attempts.append(Attempt(at=at, operation=str(raw.get("op", ""))))

        return cls(
            user_id=str(item["id"]),
            enabled=data.get("enabled") is True,
            rate_limit_disabled=data.get("rateLimitDisabled") is True,
            attempts=attempts,
            last_access=parse_timestamp(data.get("lastAccess")),
            pass_expires_at=parse_timestamp(data.get("passExpiresAt")),
        )

    def pass_state(self, now: datetime) -> PassState:
        if self.pass_expires_at is None:
            return PassState.NEVER
        if self.pass_expires_at > now:
            return PassState.ACTIVE
        return PassState.EXPIRED


def count_active_passes(items: List[Dict[str, Any]], now: datetime) -> int:
    """
    Count users whose pass expires in the future. Items without an id are ignored.
    """
    return sum(
        1
        for item in items
        if "id" in item and UserRecord.from_item(item).pass_state(now) is PassState.ACTIVE
    )
