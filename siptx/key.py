"""Transaction keys identifying client and server transactions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .sip import CSeq, Method, NameAddr, Request, Response, SipError, SipMessage, Via


class TransactionRole(str, Enum):
    """Which side of a transaction the key belongs to."""

    CLIENT = "c"
    SERVER = "s"

    def __str__(self) -> str:
        return self.value


def _required(message: SipMessage, name: str) -> str:
    value = message.header(name)
    if value is None:
        raise SipError(f"missing {name} header")
    return value


def _top_via(message: SipMessage) -> Via:
    return Via.parse(_required(message, "Via").split(",", 1)[0])


def _from_tag(message: SipMessage) -> str:
    tag = NameAddr.parse(_required(message, "From")).tag
    if not tag:
        raise SipError("from tags missing")
    return tag


@dataclass(frozen=True)
class TransactionKey:
    """An opaque string that matches messages to their transaction."""

    value: str

    def __str__(self) -> str:
        return self.value

    @classmethod
    def from_request(cls, request: Request, role: TransactionRole) -> TransactionKey:
        """Key for a request; on the server side ACK and CANCEL map to INVITE."""
        via = _top_via(request)
        method = request.method
        if role is TransactionRole.SERVER and method in (Method.ACK, Method.CANCEL):
            method = Method.INVITE
        from_tag = _from_tag(request)
        call_id = _required(request, "Call-ID")
        cseq = CSeq.parse(_required(request, "CSeq")).seq
        return cls.build_key(role, via, method, cseq, from_tag, call_id)

    @classmethod
    def from_response(cls, response: Response, role: TransactionRole) -> TransactionKey:
        """Key for a response; the method comes from its CSeq."""
        via = _top_via(response)
        cseq = CSeq.parse(_required(response, "CSeq"))
        from_tag = _from_tag(response)
        call_id = _required(response, "Call-ID")
        return cls.build_key(role, via, cseq.method, cseq.seq, from_tag, call_id)

    @classmethod
    def build_key(
        cls,
        role: TransactionRole,
        via: Via,
        method: Method,
        cseq: int,
        from_tag: str,
        call_id: str,
    ) -> TransactionKey:
        """Build a key from its parts; without a branch the sent-by address is used."""
        base = f"{role}.{method}_{cseq}_{call_id}_{from_tag}"
        branch = via.branch
        if branch is not None:
            return cls(f"{base}_{branch}")
        return cls(f"{base}_{via.host_with_port}.2543")