"""Client transactions: sending a request and following its responses."""

from __future__ import annotations

import logging

from .base import (
    Message,
    Transaction,
    TransactionError,
    TransactionOptions,
    _Connection,
    can_transition,
)
from .common import TimerKind, TransactionState, TransactionTimer, TransactionType
from .ext import remote_uri
from .key import TransactionKey
from .message import MessageFactory
from .sip import Method, NameAddr, Request, Response, SipError, StatusKind, Uri, status_kind
from .timer import Timer

logger = logging.getLogger(__name__)

State = TransactionState

_TRYING = 100
_REQUEST_TIMEOUT = 408


def _destination_from_request(request: Request) -> Uri:
    """The first Route URI of ``request``, or its request URI if it has none."""
    for value in request.header_values("Route"):
        try:
            return NameAddr.parse(value.split(",", 1)[0]).uri
        except SipError:
            continue
    return request.uri


def _destination_parts(destination: object) -> tuple[str | None, str | None]:
    if isinstance(destination, Uri):
        transport = next(
            (v for n, v in destination.params if n.lower() == "transport" and v), None
        )
        return destination.host_with_port, transport
    return None, None


class ClientTransaction(Transaction):
    """A transaction created for a request this side sends."""

    def __init__(
        self,
        key: TransactionKey,
        original: Request,
        factory: MessageFactory,
        timers: Timer[TransactionTimer],
        options: TransactionOptions | None = None,
        connection: _Connection | None = None,
    ) -> None:
        if original.method is Method.INVITE:
            transaction_type = TransactionType.CLIENT_INVITE
        else:
            transaction_type = TransactionType.CLIENT_NON_INVITE
        super().__init__(transaction_type, key, original, factory, timers, options, connection)

    async def send(self) -> None:
        """Send the original request and enter the Calling state."""
        connection = self._require_connection()
        self.original.set_header("Content-Length", len(self.original.body))
        await self._send(connection, self.original)
        self.transition(State.CALLING)

    async def send_cancel(self, cancel: Request) -> None:
        """Send a CANCEL for a pending INVITE and enter the Completed state."""
        if self.transaction_type is not TransactionType.CLIENT_INVITE:
            raise TransactionError(
                "send_cancel is only valid for client invite transactions", self.key
            )
        if self.state not in (State.CALLING, State.TRYING, State.PROCEEDING):
            raise TransactionError(f"invalid state for sending CANCEL {self.state}", self.key)
        if self.connection is not None:
            await self._send(self.connection, cancel)
        self.transition(State.COMPLETED)

    async def send_ack(self, connection: _Connection | None = None) -> None:
        """Send the ACK for the final response and terminate the transaction."""
        if self.transaction_type is not TransactionType.CLIENT_INVITE:
            raise TransactionError(
                "send_ack is only valid for client invite transactions", self.key
            )
        if self.state is not State.COMPLETED:
            raise TransactionError(f"invalid state for sending ACK {self.state}", self.key)

        ack: Message | None = self.last_ack
        if ack is None:
            if self.last_response is None:
                raise TransactionError("no last response found to send ACK", self.key)
            host_with_port, transport = _destination_parts(self.destination)
            try:
                request_uri = remote_uri(self.last_response, host_with_port, transport)
            except SipError:
                request_uri = self.original.uri
            ack = self.factory.make_ack(self.last_response, request_uri)

        ack = self._outgoing(ack)
        if isinstance(ack, Request):
            if (
                self.last_response is not None
                and status_kind(self.last_response.status_code) is StatusKind.SUCCESSFUL
            ):
                self.destination = _destination_from_request(ack)
            self.last_ack = ack
        if connection is not None:
            await connection.send(ack, self.destination)
        self.transition(State.TERMINATED)

    async def on_received_response(
        self, response: Response, connection: _Connection | None
    ) -> Message | None:
        """Advance on a response; duplicates and impossible ones are dropped."""
        if status_kind(response.status_code) is StatusKind.PROVISIONAL:
            new_state = State.TRYING if response.status_code == _TRYING else State.PROCEEDING
        elif self.transaction_type is TransactionType.CLIENT_INVITE:
            new_state = State.COMPLETED
        else:
            new_state = State.TERMINATED

        if not can_transition(self.state, new_state) or self.state is new_state:
            return None

        self.last_response = response
        try:
            self.transition(new_state)
        except TransactionError as exc:
            logger.debug("transaction %s: %s", self.key, exc)
        try:
            await self.send_ack(connection)
        except (TransactionError, SipError, OSError) as exc:
            logger.debug("transaction %s: no ACK sent: %s", self.key, exc)
        return response

    async def on_timer(self, timer: TransactionTimer) -> None:
        """Timer A retransmits, timers B and C report a 408 to the user."""
        if self.state in (State.CALLING, State.TRYING):
            if timer.kind is TimerKind.A:
                if self.connection is not None:
                    await self._send(self.connection, self.original)
                duration = min((timer.duration or self.options.t1) * 2, self.options.t1x64)
                self._start_timer(TimerKind.A, duration, with_duration=True)
            elif timer.kind is TimerKind.B:
                self._inform_tu_response(
                    self.factory.make_response(self.original, _REQUEST_TIMEOUT)
                )
            return
        if self.state is State.PROCEEDING:
            if timer.kind is TimerKind.C:
                self._inform_tu_response(
                    self.factory.make_response(self.original, _REQUEST_TIMEOUT)
                )
            return
        await super().on_timer(timer)