"""Server transactions: answering a received request and waiting for its ACK."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from .base import (
    Message,
    Transaction,
    TransactionError,
    TransactionOptions,
    _Connection,
)
from .common import TimerKind, TransactionState, TransactionTimer, TransactionType, make_tag
from .key import TransactionKey
from .message import MessageFactory
from .sip import Header, Method, NameAddr, Request, Response, SipError, StatusKind, status_kind
from .timer import Timer

logger = logging.getLogger(__name__)

State = TransactionState

_TRYING = 100
_OK = 200
_CALL_TRANSACTION_DOES_NOT_EXIST = 481


class ServerTransaction(Transaction):
    """A transaction created for a request received from a peer."""

    def __init__(
        self,
        key: TransactionKey,
        original: Request,
        factory: MessageFactory,
        timers: Timer[TransactionTimer],
        options: TransactionOptions | None = None,
        connection: _Connection | None = None,
    ) -> None:
        if original.method in (Method.INVITE, Method.ACK):
            transaction_type = TransactionType.SERVER_INVITE
        else:
            transaction_type = TransactionType.SERVER_NON_INVITE
        super().__init__(transaction_type, key, original, factory, timers, options, connection)

    async def respond(self, response: Response) -> None:
        """Send ``response`` and move to the state its status code implies."""
        if status_kind(response.status_code) is StatusKind.PROVISIONAL:
            new_state = State.TRYING if response.status_code == _TRYING else State.PROCEEDING
        elif self.transaction_type is TransactionType.SERVER_INVITE:
            new_state = State.COMPLETED
        else:
            new_state = State.TERMINATED
        self._check_transition(new_state)
        connection = self._require_connection()

        outgoing = self._outgoing(response)
        logger.debug("transaction %s responding with %s", self.key, outgoing.status_code
                     if isinstance(outgoing, Response) else outgoing)
        if isinstance(outgoing, Response):
            self.last_response = outgoing
        await connection.send(outgoing, self.destination)
        self.transition(new_state)

    async def reply_with(
        self,
        status_code: int,
        headers: Iterable[Header] | None = None,
        body: bytes | None = None,
    ) -> None:
        """Build a response to the original request and send it.

        A final response gets a To tag if the request had none.
        """
        if status_kind(status_code) is not StatusKind.PROVISIONAL:
            to_value = self.original.header("To")
            if to_value is None:
                raise SipError("missing To header")
            to = NameAddr.parse(to_value)
            if to.tag is None:
                self.original.set_header("To", str(to.with_tag(make_tag())))
        response = self.factory.make_response(self.original, status_code, body)
        response.headers.extend(headers or ())
        await self.respond(response)

    async def reply(self, status_code: int) -> None:
        """Reply with a bare status code."""
        await self.reply_with(status_code)

    async def send_trying(self) -> None:
        """Send ``100 Trying``."""
        await self.respond(self.factory.make_response(self.original, _TRYING))

    async def _on_respond(self, response: Response) -> None:
        await self.respond(response)

    async def _answer(self, request: Request, status_code: int) -> None:
        if self.connection is None:
            return
        response = self.factory.make_response(request, status_code)
        try:
            await self.connection.send(self._outgoing(response), self.destination)
        except OSError as exc:
            logger.debug("transaction %s: %s", self.key, exc)

    async def on_received_request(
        self, request: Request, connection: _Connection | None
    ) -> Message | None:
        """Handle CANCEL, ACK and retransmissions of the original request."""
        if self.connection is None and connection is not None:
            self.connection = connection

        if request.method is Method.CANCEL:
            if self.state in (State.PROCEEDING, State.TRYING, State.COMPLETED):
                await self._answer(request, _OK)
                return request
            await self._answer(request, _CALL_TRANSACTION_DOES_NOT_EXIST)
            return None

        if self.state in (State.TRYING, State.PROCEEDING):
            if self.last_response is not None:
                try:
                    await self.respond(self.last_response)
                except (TransactionError, SipError, OSError) as exc:
                    logger.debug("transaction %s: %s", self.key, exc)
        elif self.state in (State.COMPLETED, State.CONFIRMED):
            if request.method is Method.ACK:
                try:
                    self.transition(State.CONFIRMED)
                except TransactionError as exc:
                    logger.debug("transaction %s: %s", self.key, exc)
                return request
        return None

    async def on_timer(self, timer: TransactionTimer) -> None:
        """Timer G resends the final response and restarts with a doubled interval."""
        if self.state is State.COMPLETED and timer.kind is TimerKind.G:
            if self.last_response is not None and self.connection is not None:
                await self._send(self.connection, self.last_response)
            duration = min((timer.duration or self.options.t1) * 2, self.options.t1x64)
            self._start_timer(TimerKind.G, duration, with_duration=True)
            return
        await super().on_timer(timer)