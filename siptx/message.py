"""Building requests, responses and ACKs with the mandatory SIP headers."""

from __future__ import annotations

from dataclasses import dataclass

from .common import make_call_id, make_via_branch
from .sip import (
    CSeq,
    Header,
    Method,
    NameAddr,
    Request,
    Response,
    SipError,
    StatusKind,
    Uri,
    Via,
    status_kind,
)

DEFAULT_USER_AGENT = "siptx"
MAX_FORWARDS = 70

_COMPACT = {"v": "via", "f": "from", "t": "to", "i": "call-id", "l": "content-length"}
_RESPONSE_HEADERS = frozenset({"via", "call-id", "from", "to", "cseq"})
_ACK_HEADERS = _RESPONSE_HEADERS | {"route"}


def _name(header: Header) -> str:
    lowered = header.name.strip().lower()
    return _COMPACT.get(lowered, lowered)


@dataclass
class MessageFactory:
    """Creates outgoing messages for one endpoint identity."""

    user_agent: str = DEFAULT_USER_AGENT
    callid_suffix: str | None = None

    def make_request(
        self,
        method: Method,
        request_uri: Uri,
        via: Via,
        from_: NameAddr,
        to: NameAddr,
        seq: int,
    ) -> Request:
        """Return a request carrying Via, Call-ID, From, To, CSeq, Max-Forwards and User-Agent."""
        method = Method(method)
        headers = [
            Header("Via", str(via)),
            Header("Call-ID", make_call_id(self.callid_suffix)),
            Header("From", str(from_)),
            Header("To", str(to)),
            Header("CSeq", str(CSeq(seq, method))),
            Header("Max-Forwards", str(MAX_FORWARDS)),
            Header("User-Agent", self.user_agent),
        ]
        return Request(method=method, uri=request_uri, headers=headers)

    def make_response(
        self, request: Request, status_code: int, body: bytes | None = None
    ) -> Response:
        """Return a response that copies the transaction headers of ``request``."""
        payload = bytes(body) if body else b""
        headers = [h for h in request.headers if _name(h) in _RESPONSE_HEADERS]
        headers.append(Header("Content-Length", str(len(payload))))
        response = Response(
            headers=headers,
            body=payload,
            version=request.version,
            status_code=int(status_code),
        )
        response.set_header("User-Agent", self.user_agent)
        return response

    def make_ack(self, response: Response, request_uri: Uri) -> Request:
        """Return the ACK for an INVITE final response.

        For a 2xx response the top Via gets a fresh branch, since that ACK
        is a transaction of its own. The route set is the response's
        Record-Route list in reverse order.
        """
        headers = list(response.headers)
        if status_kind(response.status_code) is StatusKind.SUCCESSFUL:
            for position, header in enumerate(headers):
                if _name(header) != "via":
                    continue
                try:
                    via = Via.parse(header.value)
                except SipError:
                    break
                via.params = [make_via_branch()]
                headers[position] = Header(header.name, str(via))
                break

        routes = [
            Header("Route", h.value) for h in response.headers if _name(h) == "record-route"
        ]
        headers.extend(reversed(routes))
        headers = [h for h in headers if _name(h) in _ACK_HEADERS]
        headers.append(Header("Max-Forwards", str(MAX_FORWARDS)))

        for position, header in enumerate(headers):
            if _name(header) != "cseq":
                continue
            try:
                cseq = CSeq.parse(header.value)
            except SipError:
                continue
            headers[position] = Header(header.name, str(CSeq(cseq.seq, Method.ACK)))

        headers.append(Header("Content-Length", "0"))
        ack = Request(method=Method.ACK, uri=request_uri, headers=headers)
        ack.set_header("User-Agent", self.user_agent)
        return ack