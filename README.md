# siptx

A SIP transaction layer for asyncio applications. It matches messages to
transactions, builds the responses and ACKs a transaction needs, and runs
the RFC 3261 client and server state machines with their retransmission
and timeout timers.

## Modules

- `siptx.sip`: the message model. It has `Request`, `Response`, `Uri`,
  `Via`, `NameAddr`, `CSeq`, `Header`, the `Method` enum, `status_kind`
  and `StatusKind`, and `parse_message` for wire text. Parse failures
  raise `SipError`.
- `siptx.ext`: header helpers. It has `extract_uri_from_contact`,
  `remote_uri`, `reason_phrase`, `content_type`,
  `header_value_case_insensitive`, `header_tokens_case_insensitive`,
  `header_contains_token`, `parse_rseq_header`, `parse_rack_header`,
  `push_front` and `pop_first`.
- `siptx.timer`: `Timer`, a deadline-ordered queue. Deadlines are
  `time.monotonic()` seconds. It offers `timeout`, `timeout_at`, `cancel`,
  `poll`, `next_deadline` and an awaitable `wait_for_ready`.
- `siptx.common`: the `TransactionState`, `TransactionType` and `TimerKind`
  enums and `TransactionTimer`. It also has `random_text`,
  `make_via_branch`, `make_call_id` and `make_tag`.
- `siptx.key`: `TransactionKey` and `TransactionRole`.
- `siptx.message`: `MessageFactory`, which provides `make_request`,
  `make_response` and `make_ack`.
- `siptx.base`: `Transaction`, `TransactionEvent`, `TransactionOptions`,
  `TransactionError` and `can_transition`.
- `siptx.client` and `siptx.server`: `ClientTransaction` and
  `ServerTransaction`.

## Example

```python
import asyncio

from siptx.key import TransactionKey, TransactionRole
from siptx.message import MessageFactory
from siptx.server import ServerTransaction
from siptx.sip import Request
from siptx.timer import Timer

RAW = (
    "REGISTER sip:example.com SIP/2.0\r\n"
    "Via: SIP/2.0/UDP client.example.com:5060;branch=z9hG4bKabc\r\n"
    "From: <sip:alice@example.com>;tag=1234\r\n"
    "To: <sip:alice@example.com>\r\n"
    "Call-ID: call-1@example.com\r\n"
    "CSeq: 1 REGISTER\r\n"
    "Content-Length: 0\r\n\r\n"
)


class Recorder:
    """A connection that keeps what it is asked to send."""

    def __init__(self):
        self.sent = []

    def is_reliable(self):
        return True

    async def send(self, message, destination=None):
        self.sent.append(message)


async def main():
    request = Request.parse(RAW)
    key = TransactionKey.from_request(request, TransactionRole.SERVER)
    print(key)  # s.REGISTER_1_call-1@example.com_1234_z9hG4bKabc

    connection = Recorder()
    tx = ServerTransaction(
        key, request, MessageFactory(user_agent="demo"), Timer(), connection=connection
    )
    await tx.send_trying()
    await tx.reply(200)
    print(tx.state, [m.status_code for m in connection.sent])  # Terminated [100, 200]


asyncio.run(main())
```

## Driving transactions

A transaction is built from several parts:

- a connection object with an async `send(message, destination)` method
  and an `is_reliable()` method;
- a `MessageFactory`;
- a `Timer` that all transactions share;
- optionally, `TransactionOptions`, which holds `t1`, `t4`, `t1x64` and
  `timerc` in seconds, and an optional inspector with `before_send` and
  `after_received`.

Use `Transaction.post` to pass the transaction its events:

- `TransactionEvent.received(message, connection)` for incoming messages;
- `TransactionEvent.timer_fired(timer)` for timers that have fired;
- `TransactionEvent.respond(response)` for responses to send.

`await transaction.receive()` handles these events. It returns the next
message the transaction user should see, or `None` once the transaction
has terminated. After termination, `finished_message` holds one message:

- for a client INVITE transaction, its ACK;
- for a server non-INVITE transaction, its final response.

## What it does not do

- There is no transport layer. The package opens no UDP, TCP, TLS or
  WebSocket sockets, and it does not resolve DNS.
- `ClientTransaction.send` needs the connection to be given up front.
- There is no endpoint. The caller has to:
  - route incoming messages to transactions by `TransactionKey`;
  - await `Timer.wait_for_ready`;
  - post each fired `TransactionTimer` to its transaction.
- There is no dialog or registration layer, and there is no command-line
  program.

## Tests

The tests use pytest and pytest-asyncio, which the `test` extra installs.