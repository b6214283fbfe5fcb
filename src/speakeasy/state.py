"""
Request-scoped values that flow through the pipeline.

The command variants are a closed set: every parsed command is exactly one
of Status, Checkout, Unlock or Invalid.
"""

from dataclasses import dataclass, field, replace
from typing import Dict, Iterator, Optional, Tuple, Union

from speakeasy.catalog import Door
from speakeasy.errors import SpeakeasyError
from speakeasy.models import UserRecord


@dataclass(frozen=True)
class CommandRequest:
    text: str
    user_id: str
    token: str
    response_url: Optional[str] = None


@dataclass(frozen=True)
class Status:
    operation = "status"
    needs_lock_api = True


@dataclass(frozen=True)
class Checkout:
    operation = "checkout"
    needs_lock_api = False


@dataclass(frozen=True)
class Unlock:
    verb: str
    door_key: str
    doors: Tuple[Door, ...]
    needs_lock_api = True

    @property
    def operation(self) -> str:
        return self.verb


@dataclass(frozen=True)
class Invalid:
    """
    A command that will be rejected at dispatch. It carries the failure so
    the earlier stages can run unchanged.
    """

    operation: str
    failure: SpeakeasyError
    needs_lock_api = False


Command = Union[Status, Checkout, Unlock, Invalid]


@dataclass(frozen=True)
class PipelineState:
    request: CommandRequest
    command: Command
    user: Optional[UserRecord] = None
    session_headers: Optional[Dict[str, str]] = None
    replies: Iterator[str] = field(default_factory=lambda: iter(()))

    def evolve(self, **changes) -> "PipelineState":
        return replace(self, **changes)
