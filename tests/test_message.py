from siptx.ext import remote_uri
from siptx.message import MessageFactory
from siptx.sip import CSeq, Header, Method, NameAddr, Request, Response, Uri, Via

RESPONSE_WITH_ROUTES = (
    "SIP/2.0 200 OK\r\n"
    "Via: SIP/2.0/TCP uac.example.com:5060;branch=z9hG4bK1\r\n"
    "Record-Route: <sip:proxy1.example.com:5060;transport=tcp;lr>\r\n"
    "Record-Route: <sip:proxy2.example.com:5070;transport=tcp;lr>\r\n"
    "From: <sip:alice@example.com>;tag=from-tag\r\n"
    "To: <sip:bob@example.com>;tag=to-tag\r\n"
    "Call-ID: callid@example.com\r\n"
    "CSeq: 1 INVITE\r\n"
    "Contact: <sip:uas@192.0.2.55:5080;transport=tcp>\r\n"
    "Content-Length: 0\r\n\r\n"
)

RESPONSE_WITH_OB = (
    "SIP/2.0 200 OK\r\n"
    "Via: SIP/2.0/TCP uac.example.com:5060;branch=z9hG4bK1;rport=15060;received=1.2.3.4;\r\n"
    "From: <sip:alice@example.com>;tag=from-tag\r\n"
    "To: <sip:bob@example.com>;tag=to-tag\r\n"
    "Call-ID: callid@example.com\r\n"
    "CSeq: 1 INVITE\r\n"
    "Contact: <sip:uas@192.0.2.55:5080;ob>\r\n"
    "Content-Length: 0\r\n\r\n"
)


def make_request():
    return Request(
        method=Method.REGISTER,
        uri=Uri.parse("sip:example.com"),
        headers=[
            Header("Via", "SIP/2.0/UDP example.com:5060;branch=z9hG4bKnashds"),
            Header("CSeq", "1 REGISTER"),
            Header("From", "Alice <sip:alice@example.com>;tag=1928301774"),
            Header("To", "Alice <sip:alice@example.com>"),
            Header("Call-ID", "a84b4c76e66710@example.com"),
            Header("Max-Forwards", "70"),
            Header("Contact", "<sip:alice@192.0.2.1>"),
        ],
    )


def test_make_request_headers_in_order():
    factory = MessageFactory(user_agent="siptx-test", callid_suffix="calls.example.com")
    request = factory.make_request(
        Method.INVITE,
        Uri.parse("sip:bob@example.com"),
        Via.parse("SIP/2.0/UDP 192.0.2.1:5060;branch=z9hG4bKabc"),
        NameAddr.parse("<sip:alice@example.com>;tag=alice-tag"),
        NameAddr.parse("<sip:bob@example.com>"),
        7,
    )
    assert [h.name for h in request.headers] == [
        "Via",
        "Call-ID",
        "From",
        "To",
        "CSeq",
        "Max-Forwards",
        "User-Agent",
    ]
    assert request.method is Method.INVITE
    assert request.header("CSeq") == "7 INVITE"
    assert request.header("Max-Forwards") == "70"
    assert request.header("User-Agent") == "siptx-test"
    assert request.header("Call-ID").endswith("@calls.example.com")
    assert NameAddr.parse(request.header("From")).tag == "alice-tag"


def test_make_response_keeps_transaction_headers_only():
    factory = MessageFactory(user_agent="siptx-test")
    response = factory.make_response(make_request(), 200, b"hello")
    names = [h.name for h in response.headers]
    assert names == ["Via", "CSeq", "From", "To", "Call-ID", "Content-Length", "User-Agent"]
    assert response.header("Content-Length") == "5"
    assert response.body == b"hello"
    assert response.status_code == 200
    assert response.reason == "OK"


def test_make_response_without_body_has_zero_length():
    response = MessageFactory().make_response(make_request(), 404)
    assert response.header("Content-Length") == "0"
    assert response.body == b""
    assert response.header("Max-Forwards") is None


def test_make_ack_uses_contact_and_reversed_route_order():
    factory = MessageFactory()
    response = Response.parse(RESPONSE_WITH_ROUTES)
    request_uri = remote_uri(response)
    ack = factory.make_ack(response, request_uri)

    assert ack.uri == Uri.parse("sip:uas@192.0.2.55:5080;transport=tcp")
    assert ack.header("Content-Length") == "0"
    assert ack.header_values("Route") == [
        "<sip:proxy2.example.com:5070;transport=tcp;lr>",
        "<sip:proxy1.example.com:5060;transport=tcp;lr>",
    ]
    assert ack.header_values("Record-Route") == []
    assert ack.header_values("Contact") == []


def test_make_ack_uses_contact_with_ob():
    factory = MessageFactory()
    response = Response.parse(RESPONSE_WITH_OB)
    request_uri = Uri(host="1.2.3.4", port=15060, params=[("transport", "tcp")])
    ack = factory.make_ack(response, request_uri)
    assert ack.uri == Uri.parse("sip:1.2.3.4:15060;transport=tcp")


def test_make_ack_for_2xx_gets_new_branch():
    ack = MessageFactory().make_ack(
        Response.parse(RESPONSE_WITH_OB), Uri.parse("sip:uas@192.0.2.55:5080")
    )
    via = Via.parse(ack.header("Via"))
    assert len(via.params) == 1
    assert via.branch.startswith("z9hG4bK")
    assert via.branch != "z9hG4bK1"
    assert len(via.branch) == len("z9hG4bK") + 12
    assert via.host_with_port == "uac.example.com:5060"


def test_make_ack_for_failure_keeps_via():
    raw = RESPONSE_WITH_ROUTES.replace("200 OK", "486 Busy Here")
    ack = MessageFactory().make_ack(Response.parse(raw), Uri.parse("sip:bob@example.com"))
    assert ack.header("Via") == "SIP/2.0/TCP uac.example.com:5060;branch=z9hG4bK1"


def test_make_ack_rewrites_cseq_and_adds_fixed_headers():
    factory = MessageFactory(user_agent="siptx-test")
    ack = factory.make_ack(Response.parse(RESPONSE_WITH_ROUTES), Uri.parse("sip:b@example.com"))
    assert ack.method is Method.ACK
    assert CSeq.parse(ack.header("CSeq")) == CSeq(1, Method.ACK)
    assert ack.header("Max-Forwards") == "70"
    assert ack.header("User-Agent") == "siptx-test"
    assert ack.body == b""
    assert ack.encode().startswith(b"ACK sip:b@example.com SIP/2.0\r\n")