"""Transaction core: state machine, timers and the event queue."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Protocol, Union

from .common import TimerKind, TransactionState, TransactionTimer, TransactionType
from .key import TransactionKey
from .message import MessageFactory
from .sip import Request, Response, SipError
from .timer import Timer

logger = logging.getLogger(__name__)

Message = Union[Request, Response]

State = TransactionState

_ALLOWED = frozenset(
    {
        (State.NOTHING, State.CALLING),
        (State.NOTHING, State.TRYING),
        (State.NOTHING, State.PROCEEDING),
        (State.NOTHING, State.TERMINATED),
        (State.CALLING, State.TRYING),
        (State.CALLING, State.PROCEEDING),
        (State.CALLING, State.COMPLETED),
        (State.CALLING, State.TERMINATED),
        (State.TRYING, State.TRYING),
        (State.TRYING, State.PROCEEDING),
        (State.TRYING, State.COMPLETED),
        (State.TRYING, State.CONFIRMED),
        (State.TRYING, State.TERMINATED),
        (State.PROCEEDING, State.COMPLETED),
        (State.PROCEEDING, State.CONFIRMED),
        (State.PROCEEDING, State.TERMINATED),
        (State.COMPLETED, State.CONFIRMED),
        (State.COMPLETED, State.TERMINATED),
        (State.CONFIRMED, State.TERMINATED),
    }
)


def can_transition(current: TransactionState, target: TransactionState) -> bool:
    """Whether the state machine allows moving from ``current`` to ``target``."""
    return (current, target) in _ALLOWED


class _Connection(Protocol):
    def is_reliable(self) -> bool: ...

    async def send(self, message: Message, destination: Any = None) -> None: ...


class TransactionError(Exception):
    """An operation that is not valid for a transaction in its current state."""

    def __init__(self, message: str, key: TransactionKey | None = None) -> None:
        super().__init__(message)
        self.key = key


@dataclass
class TransactionOptions:
    """Timer values in seconds, and an optional message inspector.

    The inspector, if set, has ``before_send(message)`` and
    ``after_received(message)``, each returning the message to use.
    """

    t1: float = 0.5
    t4: float = 5.0
    t1x64: float = 32.0
    timerc: float = 180.0
    inspector: Any = None


@dataclass(frozen=True)
class TransactionEvent:
    """Something a transaction must react to."""

    class Kind(Enum):
        RECEIVED = "received"
        TIMER = "timer"
        RESPOND = "respond"
        TERMINATE = "terminate"

    kind: TransactionEvent.Kind
    message: Optional[Message] = None
    connection: Any = None
    timer: Optional[TransactionTimer] = None
    key: Optional[TransactionKey] = None

    @classmethod
    def received(cls, message: Message, connection: Any = None) -> TransactionEvent:
        return cls(cls.Kind.RECEIVED, message=message, connection=connection)

    @classmethod
    def timer_fired(cls, timer: TransactionTimer) -> TransactionEvent:
        return cls(cls.Kind.TIMER, timer=timer)

    @classmethod
    def respond(cls, response: Response) -> TransactionEvent:
        return cls(cls.Kind.RESPOND, message=response)

    @classmethod
    def terminate(cls, key: TransactionKey) -> TransactionEvent:
        return cls(cls.Kind.TERMINATE, key=key)


class Transaction:
    """State shared by client and server transactions.

    Timer ids of running timers live in ``active_timers``; when the
    transaction terminates, the message the endpoint should keep for
    retransmissions is left in ``finished_message``.
    """

    def __init__(
        self,
        transaction_type: TransactionType,
        key: TransactionKey,
        original: Request,
        factory: MessageFactory,
        timers: Timer[TransactionTimer],
        options: TransactionOptions | None = None,
        connection: _Connection | None = None,
    ) -> None:
        self.transaction_type = transaction_type
        self.key = key
        self.original = original
        self.factory = factory
        self.timers = timers
        self.options = options or TransactionOptions()
        self.connection = connection
        self.destination: Any = None
        self.state = State.TRYING if transaction_type.is_server else State.NOTHING
        self.last_response: Response | None = None
        self.last_ack: Request | None = None
        self.active_timers: dict[TimerKind, int] = {}
        self.finished_message: Message | None = None
        self._events: asyncio.Queue[TransactionEvent] = asyncio.Queue()
        self._cleaned_up = False
        logger.debug("transaction %s created in state %s", key, self.state)

    def is_terminated(self) -> bool:
        return self.state is State.TERMINATED

    def post(self, event: TransactionEvent) -> None:
        """Queue an event for ``receive`` to handle."""
        self._events.put_nowait(event)

    async def receive(self) -> Message | None:
        """Handle queued events until a message for the user arrives.

        Returns None once the transaction has been terminated.
        """
        while True:
            event = await self._events.get()
            kind = event.kind
            if kind is TransactionEvent.Kind.RECEIVED:
                if isinstance(event.message, Request):
                    result = await self.on_received_request(event.message, event.connection)
                else:
                    result = await self.on_received_response(event.message, event.connection)
                if result is not None:
                    inspector = self.options.inspector
                    return inspector.after_received(result) if inspector else result
            elif kind is TransactionEvent.Kind.TIMER:
                await self._quietly(self.on_timer(event.timer))
            elif kind is TransactionEvent.Kind.RESPOND:
                await self._quietly(self._on_respond(event.message))
            else:
                logger.info("transaction %s received terminate event", event.key)
                return None

    async def _quietly(self, action: Any) -> None:
        try:
            await action
        except (TransactionError, SipError, OSError) as exc:
            logger.debug("transaction %s: %s", self.key, exc)

    async def _on_respond(self, response: Response) -> None:
        raise TransactionError("respond is only valid for server transactions", self.key)

    async def on_received_request(
        self, request: Request, connection: _Connection | None
    ) -> Message | None:
        """Requests are not accepted here; server transactions override this."""
        return None

    async def on_received_response(
        self, response: Response, connection: _Connection | None
    ) -> Message | None:
        """Responses are not accepted here; client transactions override this."""
        return None

    async def on_timer(self, timer: TransactionTimer) -> None:
        """Timers D and K end a completed transaction; K also ends a confirmed one."""
        if self.state is State.COMPLETED and timer.kind in (TimerKind.D, TimerKind.K):
            self.transition(State.TERMINATED)
        elif self.state is State.CONFIRMED and timer.kind is TimerKind.K:
            self.transition(State.TERMINATED)

    def transition(self, state: TransactionState) -> TransactionState:
        """Enter ``state``, starting and stopping the timers it needs."""
        if self.state is state:
            return state
        opts = self.options
        if state is State.CALLING:
            connection = self._require_connection()
            if self.transaction_type.is_client:
                if not connection.is_reliable():
                    self._start_timer(TimerKind.A, opts.t1, with_duration=True)
                self._start_timer(TimerKind.B, opts.t1x64)
        elif state in (State.TRYING, State.PROCEEDING):
            self._cancel_timer(TimerKind.A)
            if self.transaction_type is TransactionType.CLIENT_INVITE:
                self._cancel_timer(TimerKind.B)
                if TimerKind.C not in self.active_timers:
                    self._start_timer(TimerKind.C, opts.timerc)
        elif state is State.COMPLETED:
            for kind in (TimerKind.A, TimerKind.B, TimerKind.C):
                self._cancel_timer(kind)
            if self.transaction_type is TransactionType.SERVER_INVITE:
                connection = self._require_connection()
                if not connection.is_reliable():
                    self._start_timer(TimerKind.G, opts.t1, with_duration=True)
                logger.info("transaction %s completed, waiting for ACK", self.key)
                self._start_timer(TimerKind.K, opts.t4)
            self._start_timer(TimerKind.D, opts.t1x64)
        elif state is State.CONFIRMED:
            self._cancel_all_timers()
            self._start_timer(TimerKind.K, opts.t4)
        elif state is State.TERMINATED:
            self.finished_message = self.cleanup()
            self.post(TransactionEvent.terminate(self.key))
        logger.debug("transaction %s: %s -> %s", self.key, self.state, state)
        self.state = state
        return state

    def cleanup(self) -> Message | None:
        """Stop all timers and return the message to keep after the transaction.

        That is the ACK of a client INVITE transaction or the final response
        of a server non-INVITE one. Only the first call does anything.
        """
        if self._cleaned_up:
            return None
        self._cleaned_up = True
        self._cancel_all_timers()

        if self.transaction_type is TransactionType.CLIENT_INVITE:
            if (
                self.state in (State.PROCEEDING, State.TRYING)
                and self.last_ack is None
                and self.last_response is not None
            ):
                try:
                    self.last_ack = self.factory.make_ack(self.last_response, self.original.uri)
                except SipError:
                    pass
            ack, self.last_ack = self.last_ack, None
            return ack
        if self.transaction_type is TransactionType.SERVER_NON_INVITE:
            response, self.last_response = self.last_response, None
            return response
        return None

    def _check_transition(self, target: TransactionState) -> None:
        if not can_transition(self.state, target):
            raise TransactionError(
                f"invalid state transition from {self.state} to {target}", self.key
            )

    def _require_connection(self) -> _Connection:
        if self.connection is None:
            raise TransactionError("no connection found", self.key)
        return self.connection

    def _outgoing(self, message: Message) -> Message:
        inspector = self.options.inspector
        return inspector.before_send(message) if inspector else message

    async def _send(self, connection: _Connection, message: Message) -> None:
        await connection.send(self._outgoing(message), self.destination)

    def _inform_tu_response(self, response: Response) -> None:
        self.post(TransactionEvent.received(response))

    def _start_timer(self, kind: TimerKind, delay: float, with_duration: bool = False) -> int:
        timer = TransactionTimer(kind, self.key, delay if with_duration else None)
        task_id = self.timers.timeout(delay, timer)
        self.active_timers[kind] = task_id
        return task_id

    def _cancel_timer(self, kind: TimerKind) -> None:
        task_id = self.active_timers.pop(kind, None)
        if task_id is not None:
            self.timers.cancel(task_id)

    def _cancel_all_timers(self) -> None:
        for kind in list(self.active_timers):
            self._cancel_timer(kind)