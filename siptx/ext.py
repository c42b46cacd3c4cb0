"""Helpers over SIP headers: contact URIs, token lists, RSeq/RAck and friends."""

from __future__ import annotations

import re
from collections.abc import Iterable

from .sip import Header, Method, Response, SipError, Uri


def _drop_udp_transport(uri: Uri) -> Uri:
    uri.params = [
        (name, value)
        for name, value in uri.params
        if not (name.lower() == "transport" and (value or "").lower() == "udp")
    ]
    return uri


def extract_uri_from_contact(line: str) -> Uri:
    """Return the URI of a Contact value, tolerating unusual parameters."""
    text = line.strip()
    if not text:
        raise SipError("empty contact header")

    opening = text.find("<")
    if opening >= 0:
        closing = text.find(">", opening)
        if closing >= 0:
            return _drop_udp_transport(Uri.parse(text[opening + 1 : closing].strip()))
    else:
        try:
            return Uri.parse(text.split(";", 1)[0])
        except SipError:
            pass
    return _drop_udp_transport(Uri.parse(text))


def header_value_case_insensitive(headers: Iterable[Header], name: str) -> str | None:
    """Return the first value of the header named ``name``, ignoring case."""
    wanted = name.lower()
    for header in headers:
        if header.name.strip().lower() == wanted:
            return header.value.strip()
    return None


def header_tokens_case_insensitive(headers: Iterable[Header], name: str) -> list[str]:
    """Split the header's value on commas into non-empty trimmed tokens."""
    value = header_value_case_insensitive(headers, name)
    if value is None:
        return []
    return [token.strip() for token in value.split(",") if token.strip()]


def header_contains_token(headers: Iterable[Header], name: str, token: str) -> bool:
    wanted = token.lower()
    return any(t.lower() == wanted for t in header_tokens_case_insensitive(headers, name))


def _parse_u32(token: str) -> int | None:
    if not re.fullmatch(r"\+?\d+", token):
        return None
    value = int(token)
    return value if value <= 0xFFFFFFFF else None


def parse_rseq_header(headers: Iterable[Header]) -> int | None:
    value = header_value_case_insensitive(headers, "RSeq")
    if not value or not value.split():
        return None
    return _parse_u32(value.split()[0])


def parse_rack_header(headers: Iterable[Header]) -> tuple[int, int, Method] | None:
    """Return (rseq, cseq, method) from an RAck header, or None if absent or invalid."""
    value = header_value_case_insensitive(headers, "RAck")
    if value is None:
        return None
    items = value.split()
    if len(items) < 3:
        return None
    rseq, cseq = _parse_u32(items[0]), _parse_u32(items[1])
    if rseq is None or cseq is None:
        return None
    try:
        method = Method(items[2])
    except ValueError:
        return None
    return rseq, cseq, method


def reason_phrase(response: Response) -> str | None:
    """Return the first Reason or Error-Info value of a response."""
    for header in response.headers:
        if header.name.strip().lower() in ("reason", "error-info"):
            return header.value
    return None


def content_type(response: Response) -> str | None:
    return response.header("Content-Type")


def remote_uri(
    response: Response, host_with_port: str | None = None, transport: str | None = None
) -> Uri:
    """Return the target URI for requests following ``response``.

    The URI comes from the Contact header. When the contact carries the
    ``ob`` parameter its parameters are dropped and, if given, the host
    and transport of the actual destination are used instead.
    """
    contact = response.header("Contact")
    if contact is None:
        raise SipError("missing Contact header")
    uri = extract_uri_from_contact(contact)
    if any(name.lower() == "ob" for name, _ in uri.params):
        uri.params = []
        if host_with_port is not None:
            destination = Uri.parse(f"sip:{host_with_port}")
            uri.host, uri.port = destination.host, destination.port
            if transport:
                uri.params.append(("transport", str(transport).lower()))
    return uri


def push_front(headers: list[Header], header: Header) -> None:
    headers.insert(0, header)


def pop_first(headers: list[Header], name: str) -> Header | None:
    """Remove and return the first header named ``name``, ignoring case."""
    wanted = name.lower()
    for position, header in enumerate(headers):
        if header.name.strip().lower() == wanted:
            return headers.pop(position)
    return None