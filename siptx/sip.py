"""SIP message model: URIs, common headers, requests and responses."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from enum import Enum

Param = tuple[str, "str | None"]


class SipError(ValueError):
    """Raised when SIP text cannot be parsed or a required part is missing."""


class Method(str, Enum):
    """SIP request methods."""

    ACK = "ACK"
    BYE = "BYE"
    CANCEL = "CANCEL"
    INFO = "INFO"
    INVITE = "INVITE"
    MESSAGE = "MESSAGE"
    NOTIFY = "NOTIFY"
    OPTIONS = "OPTIONS"
    PRACK = "PRACK"
    PUBLISH = "PUBLISH"
    REFER = "REFER"
    REGISTER = "REGISTER"
    SUBSCRIBE = "SUBSCRIBE"
    UPDATE = "UPDATE"

    def __str__(self) -> str:
        return self.value


class StatusKind(Enum):
    """Classes of SIP response status codes."""

    PROVISIONAL = "provisional"
    SUCCESSFUL = "successful"
    REDIRECTION = "redirection"
    REQUEST_FAILURE = "request_failure"
    SERVER_FAILURE = "server_failure"
    GLOBAL_FAILURE = "global_failure"
    OTHER = "other"


_KIND_BY_CLASS = {
    1: StatusKind.PROVISIONAL,
    2: StatusKind.SUCCESSFUL,
    3: StatusKind.REDIRECTION,
    4: StatusKind.REQUEST_FAILURE,
    5: StatusKind.SERVER_FAILURE,
    6: StatusKind.GLOBAL_FAILURE,
}


def status_kind(code: int) -> StatusKind:
    """Return the class a status code belongs to."""
    if 100 <= code <= 699:
        return _KIND_BY_CLASS[code // 100]
    return StatusKind.OTHER


_REASONS = {
    100: "Trying",
    180: "Ringing",
    181: "Call Is Being Forwarded",
    182: "Queued",
    183: "Session Progress",
    200: "OK",
    202: "Accepted",
    300: "Multiple Choices",
    301: "Moved Permanently",
    302: "Moved Temporarily",
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    407: "Proxy Authentication Required",
    408: "Request Timeout",
    480: "Temporarily Unavailable",
    481: "Call/Transaction Does Not Exist",
    486: "Busy Here",
    487: "Request Terminated",
    488: "Not Acceptable Here",
    491: "Request Pending",
    500: "Server Internal Error",
    501: "Not Implemented",
    503: "Service Unavailable",
    504: "Server Time-out",
    600: "Busy Everywhere",
    603: "Decline",
    604: "Does Not Exist Anywhere",
    606: "Not Acceptable",
}

_COMPACT = {
    "v": "via",
    "f": "from",
    "t": "to",
    "i": "call-id",
    "m": "contact",
    "l": "content-length",
    "c": "content-type",
    "k": "supported",
    "s": "subject",
    "e": "content-encoding",
    "o": "event",
    "r": "refer-to",
}


def _canonical(name: str) -> str:
    lowered = name.strip().lower()
    return _COMPACT.get(lowered, lowered)


def _split_unquoted(text: str, sep: str) -> list[str]:
    parts, current, quoted = [], [], False
    for char in text:
        if char == '"':
            quoted = not quoted
        if char == sep and not quoted:
            parts.append("".join(current))
            current = []
        else:
            current.append(char)
    parts.append("".join(current))
    return parts


def _parse_params(text: str) -> list[Param]:
    params: list[Param] = []
    for part in _split_unquoted(text, ";"):
        part = part.strip()
        if not part:
            continue
        name, eq, value = part.partition("=")
        if not name.strip():
            continue
        params.append((name.strip(), value.strip() if eq else None))
    return params


def _format_params(params: list[Param]) -> str:
    return "".join(f";{n}" if v is None else f";{n}={v}" for n, v in params)


def _param(params: list[Param], name: str) -> str | None:
    for key, value in params:
        if key.lower() == name.lower():
            return value
    return None


def _split_host_port(text: str) -> tuple[str, int | None]:
    text = text.strip()
    if text.startswith("["):
        end = text.find("]")
        if end < 0:
            raise SipError(f"invalid host: {text!r}")
        host, rest = text[: end + 1], text[end + 1 :]
        if rest and not rest.startswith(":"):
            raise SipError(f"invalid host: {text!r}")
        port_text = rest[1:] if rest else None
    else:
        host, colon, port_text = text.partition(":")
        if not colon:
            port_text = None
    if not host or any(c.isspace() for c in host):
        raise SipError(f"invalid host: {text!r}")
    if port_text is None:
        return host, None
    if not port_text.isdigit() or int(port_text) > 65535:
        raise SipError(f"invalid port: {text!r}")
    return host, int(port_text)


def _format_host_port(host: str, port: int | None) -> str:
    return host if port is None else f"{host}:{port}"


@dataclass
class Uri:
    """A SIP URI such as ``sip:alice@example.com:5060;transport=tcp``."""

    host: str
    scheme: str = "sip"
    user: str | None = None
    password: str | None = None
    port: int | None = None
    params: list[Param] = field(default_factory=list)
    headers: list[tuple[str, str]] = field(default_factory=list)

    @classmethod
    def parse(cls, text: str) -> Uri:
        match = re.match(r"\s*([A-Za-z][A-Za-z0-9+.\-]*):(.*?)\s*$", text, re.S)
        if not match:
            raise SipError(f"invalid uri: {text!r}")
        scheme, rest = match.group(1).lower(), match.group(2)
        rest, _, header_text = rest.partition("?")
        address, _, param_text = rest.partition(";")
        userinfo, at, hostport = address.rpartition("@")
        user = password = None
        if at:
            user, colon, pw = userinfo.partition(":")
            password = pw if colon else None
            if not user:
                raise SipError(f"invalid uri user: {text!r}")
        host, port = _split_host_port(hostport)
        headers = []
        for item in header_text.split("&") if header_text else []:
            name, _, value = item.partition("=")
            headers.append((name, value))
        return cls(
            host=host,
            scheme=scheme,
            user=user,
            password=password,
            port=port,
            params=_parse_params(param_text),
            headers=headers,
        )

    @property
    def host_with_port(self) -> str:
        return _format_host_port(self.host, self.port)

    def __str__(self) -> str:
        userinfo = ""
        if self.user is not None:
            userinfo = self.user
            if self.password is not None:
                userinfo += f":{self.password}"
            userinfo += "@"
        text = f"{self.scheme}:{userinfo}{self.host_with_port}{_format_params(self.params)}"
        if self.headers:
            text += "?" + "&".join(f"{n}={v}" for n, v in self.headers)
        return text


@dataclass(frozen=True)
class Header:
    """A raw header line: a name and its unparsed value."""

    name: str
    value: str

    def __str__(self) -> str:
        return f"{self.name}: {self.value}"


@dataclass
class Via:
    """A single Via header value."""

    transport: str
    host: str
    port: int | None = None
    params: list[Param] = field(default_factory=list)
    protocol: str = "SIP/2.0"

    @classmethod
    def parse(cls, text: str) -> Via:
        match = re.match(
            r"\s*([^/\s]+)\s*/\s*([^/\s]+)\s*/\s*([^\s;]+)\s+([^;]+)(.*)$", text, re.S
        )
        if not match:
            raise SipError(f"invalid via: {text!r}")
        name, version, transport, sent_by, rest = match.groups()
        host, port = _split_host_port(sent_by)
        return cls(
            transport=transport.upper(),
            host=host,
            port=port,
            params=_parse_params(rest),
            protocol=f"{name}/{version}",
        )

    @property
    def branch(self) -> str | None:
        return _param(self.params, "branch")

    @property
    def host_with_port(self) -> str:
        return _format_host_port(self.host, self.port)

    def __str__(self) -> str:
        return (
            f"{self.protocol}/{self.transport} {self.host_with_port}"
            f"{_format_params(self.params)}"
        )


@dataclass
class NameAddr:
    """A From, To, Contact or Route value: display name, URI and parameters."""

    uri: Uri
    display_name: str | None = None
    params: list[Param] = field(default_factory=list)

    @classmethod
    def parse(cls, text: str) -> NameAddr:
        text = text.strip()
        if not text:
            raise SipError("empty address")
        opening = text.find("<")
        if opening >= 0:
            closing = text.find(">", opening)
            if closing < 0:
                raise SipError(f"unterminated address: {text!r}")
            return cls(
                uri=Uri.parse(text[opening + 1 : closing]),
                display_name=text[:opening].strip() or None,
                params=_parse_params(text[closing + 1 :]),
            )
        head, _, rest = text.partition(";")
        return cls(uri=Uri.parse(head), params=_parse_params(rest))

    @property
    def tag(self) -> str | None:
        return _param(self.params, "tag")

    def with_tag(self, tag: str) -> NameAddr:
        """Return a copy whose tag parameter is ``tag``."""
        params = [(n, v) for n, v in self.params if n.lower() != "tag"]
        params.append(("tag", tag))
        return replace(self, params=params)

    def __str__(self) -> str:
        prefix = f"{self.display_name} " if self.display_name else ""
        return f"{prefix}<{self.uri}>{_format_params(self.params)}"


@dataclass(frozen=True)
class CSeq:
    """A CSeq value: sequence number and method."""

    seq: int
    method: Method

    @classmethod
    def parse(cls, text: str) -> CSeq:
        match = re.fullmatch(r"\s*(\d+)\s+(\S+)\s*", text)
        if not match or int(match.group(1)) > 0xFFFFFFFF:
            raise SipError(f"invalid cseq: {text!r}")
        try:
            method = Method(match.group(2))
        except ValueError as exc:
            raise SipError(f"unknown method in cseq: {text!r}") from exc
        return cls(int(match.group(1)), method)

    def __str__(self) -> str:
        return f"{self.seq} {self.method}"


@dataclass
class SipMessage:
    """Headers and body shared by requests and responses."""

    headers: list[Header] = field(default_factory=list)
    body: bytes = b""
    version: str = "SIP/2.0"

    def header(self, name: str) -> str | None:
        """Return the first value of the named header, or None."""
        values = self.header_values(name)
        return values[0] if values else None

    def header_values(self, name: str) -> list[str]:
        wanted = _canonical(name)
        return [h.value for h in self.headers if _canonical(h.name) == wanted]

    def set_header(self, name: str, value: object) -> None:
        """Drop every header of this name and append a single new one."""
        wanted = _canonical(name)
        self.headers = [h for h in self.headers if _canonical(h.name) != wanted]
        self.headers.append(Header(name, str(value)))

    def _start_line(self) -> str:
        raise NotImplementedError

    def encode(self) -> bytes:
        lines = [self._start_line(), *(str(h) for h in self.headers)]
        return ("\r\n".join(lines) + "\r\n\r\n").encode("utf-8") + self.body


@dataclass(kw_only=True)
class Request(SipMessage):
    """A SIP request."""

    method: Method
    uri: Uri

    @classmethod
    def parse(cls, data: bytes | str) -> Request:
        message = parse_message(data)
        if not isinstance(message, Request):
            raise SipError("not a request")
        return message

    def _start_line(self) -> str:
        return f"{self.method} {self.uri} {self.version}"


@dataclass(kw_only=True)
class Response(SipMessage):
    """A SIP response."""

    status_code: int
    reason: str = ""

    def __post_init__(self) -> None:
        if not self.reason:
            self.reason = _REASONS.get(self.status_code, "")

    @classmethod
    def parse(cls, data: bytes | str) -> Response:
        message = parse_message(data)
        if not isinstance(message, Response):
            raise SipError("not a response")
        return message

    def _start_line(self) -> str:
        return f"{self.version} {self.status_code} {self.reason}".rstrip()


def _split_head(data: bytes) -> tuple[bytes, bytes]:
    for separator in (b"\r\n\r\n", b"\n\n"):
        head, found, body = data.partition(separator)
        if found:
            return head, body
    return data, b""


def _parse_headers(lines: list[str]) -> list[Header]:
    headers: list[Header] = []
    for line in lines:
        if not line.strip():
            continue
        if line[0] in " \t":
            if not headers:
                raise SipError("continuation line without header")
            last = headers[-1]
            headers[-1] = Header(last.name, f"{last.value} {line.strip()}")
            continue
        name, colon, value = line.partition(":")
        if not colon or not name.strip():
            raise SipError(f"invalid header line: {line!r}")
        headers.append(Header(name.strip(), value.strip()))
    return headers


def parse_message(data: bytes | str) -> Request | Response:
    """Parse a request or a response from its wire form."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    head, body = _split_head(data)
    try:
        text = head.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise SipError("message head is not valid UTF-8") from exc
    lines = text.replace("\r\n", "\n").split("\n")
    while lines and not lines[0].strip():
        lines.pop(0)
    if not lines:
        raise SipError("empty message")
    start, headers = lines[0].strip(), _parse_headers(lines[1:])

    for header in headers:
        if _canonical(header.name) == "content-length":
            if not header.value.isdigit():
                raise SipError(f"invalid Content-Length: {header.value!r}")
            body = body[: int(header.value)]
            break

    if start.startswith("SIP/"):
        version, _, rest = start.partition(" ")
        code_text, _, reason = rest.partition(" ")
        if not code_text.isdigit():
            raise SipError(f"invalid status line: {start!r}")
        return Response(
            headers=headers,
            body=body,
            version=version,
            status_code=int(code_text),
            reason=reason.strip(),
        )

    parts = start.split()
    if len(parts) != 3 or not parts[2].startswith("SIP/"):
        raise SipError(f"invalid request line: {start!r}")
    try:
        method = Method(parts[0])
    except ValueError as exc:
        raise SipError(f"unknown method: {parts[0]!r}") from exc
    return Request(
        headers=headers,
        body=body,
        version=parts[2],
        method=method,
        uri=Uri.parse(parts[1]),
    )