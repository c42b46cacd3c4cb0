"""Shared transaction vocabulary: states, types, timers and random identifiers."""

from __future__ import annotations

import secrets
import string
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .key import TransactionKey

TO_TAG_LEN = 8
BRANCH_LEN = 12
CNONCE_LEN = 8
CALL_ID_LEN = 22

BRANCH_MAGIC_COOKIE = "z9hG4bK"
DEFAULT_CALL_ID_DOMAIN = "example.com"

_ALPHANUMERIC = string.ascii_letters + string.digits


class TransactionState(str, Enum):
    """States of the client and server transaction state machines."""

    NOTHING = "Nothing"
    CALLING = "Calling"
    TRYING = "Trying"
    PROCEEDING = "Proceeding"
    COMPLETED = "Completed"
    CONFIRMED = "Confirmed"
    TERMINATED = "Terminated"

    def __str__(self) -> str:
        return self.value


class TransactionType(str, Enum):
    """The four kinds of SIP transaction."""

    CLIENT_INVITE = "ClientInvite"
    CLIENT_NON_INVITE = "ClientNonInvite"
    SERVER_INVITE = "ServerInvite"
    SERVER_NON_INVITE = "ServerNonInvite"

    @property
    def is_client(self) -> bool:
        return self in (TransactionType.CLIENT_INVITE, TransactionType.CLIENT_NON_INVITE)

    @property
    def is_server(self) -> bool:
        return not self.is_client

    def __str__(self) -> str:
        return self.value


class TimerKind(str, Enum):
    """Transaction timers; A and G carry the interval they were started with."""

    A = "TimerA"
    B = "TimerB"
    C = "TimerC"
    D = "TimerD"
    K = "TimerK"
    G = "TimerG"
    CLEANUP = "TimerCleanup"

    @property
    def has_duration(self) -> bool:
        return self in (TimerKind.A, TimerKind.G)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class TransactionTimer:
    """A fired or scheduled timer for one transaction.

    ``duration`` is in seconds and is present exactly for timers A and G.
    """

    kind: TimerKind
    key: TransactionKey
    duration: float | None = None

    def __post_init__(self) -> None:
        if self.kind.has_duration and self.duration is None:
            raise ValueError(f"{self.kind} requires a duration")
        if not self.kind.has_duration and self.duration is not None:
            raise ValueError(f"{self.kind} takes no duration")

    def __str__(self) -> str:
        if self.duration is not None:
            return f"{self.kind}: {self.key} {int(self.duration * 1000)}"
        return f"{self.kind}: {self.key}"


def random_text(count: int) -> str:
    """Return ``count`` random ASCII letters and digits."""
    return "".join(secrets.choice(_ALPHANUMERIC) for _ in range(count))


def make_via_branch() -> tuple[str, str]:
    """Return a fresh Via ``branch`` parameter carrying the RFC 3261 magic cookie."""
    return ("branch", f"{BRANCH_MAGIC_COOKIE}{random_text(BRANCH_LEN)}")


def make_call_id(domain: str | None = None) -> str:
    """Return a new Call-ID of the form ``<random>@<domain>``."""
    return f"{random_text(CALL_ID_LEN)}@{domain or DEFAULT_CALL_ID_DOMAIN}"


def make_tag() -> str:
    """Return a new From/To tag."""
    return random_text(TO_TAG_LEN)