import copy

import pytest

from siptx.key import TransactionKey, TransactionRole
from siptx.sip import Header, Method, Request, Response, SipError, Uri, Via

CALL_ID = "call-1@example.com"


def register_request():
    return Request(
        method=Method.REGISTER,
        uri=Uri.parse("sips:example.com"),
        headers=[
            Header("Via", "SIP/2.0/TLS sip.example.com:5061;branch=z9hG4bKnashd92"),
            Header("CSeq", "2 REGISTER"),
            Header("From", "Bob <sips:bob@example.com>;tag=ja743ks76zlflH"),
            Header("Call-ID", CALL_ID),
        ],
    )


def create_test_request(method, branch):
    return Request(
        method=method,
        uri=Uri.parse("sip:test.example.com:5060"),
        headers=[
            Header("Via", f"SIP/2.0/UDP test.example.com:5060;branch={branch}"),
            Header("CSeq", f"1 {method}"),
            Header("From", "Alice <sip:alice@example.com>;tag=1928301774"),
            Header("To", "Bob <sip:bob@example.com>"),
            Header("Call-ID", "a84b4c76e66710@example.com"),
            Header("Max-Forwards", "70"),
        ],
    )


def test_client_request_key():
    key = TransactionKey.from_request(register_request(), TransactionRole.CLIENT)
    assert key == TransactionKey(
        f"c.REGISTER_2_{CALL_ID}_ja743ks76zlflH_z9hG4bKnashd92"
    )


def test_server_response_key():
    response = Response(
        status_code=200,
        headers=[
            Header("Via", "SIP/2.0/TLS client.sip.example.com:5061;branch=z9hG4bKnashd92"),
            Header("CSeq", "2 REGISTER"),
            Header("From", "Bob <sips:bob@example.com>;tag=ja743ks76zlflH"),
            Header("Call-ID", CALL_ID),
        ],
    )
    key = TransactionKey.from_response(response, TransactionRole.SERVER)
    assert str(key) == f"s.REGISTER_2_{CALL_ID}_ja743ks76zlflH_z9hG4bKnashd92"


def test_server_ack_maps_to_invite():
    ack = copy.deepcopy(register_request())
    ack.method = Method.ACK
    ack.set_header("CSeq", "2 ACK")
    key = TransactionKey.from_request(ack, TransactionRole.SERVER)
    assert key.value == f"s.INVITE_2_{CALL_ID}_ja743ks76zlflH_z9hG4bKnashd92"


def test_client_ack_keeps_method():
    ack = copy.deepcopy(register_request())
    ack.method = Method.ACK
    key = TransactionKey.from_request(ack, TransactionRole.CLIENT)
    assert key.value.startswith("c.ACK_2_")


def test_transaction_key_generation():
    invite = create_test_request(Method.INVITE, "z9hG4bKnashds")
    client_key = TransactionKey.from_request(invite, TransactionRole.CLIENT)
    server_key = TransactionKey.from_request(invite, TransactionRole.SERVER)
    assert client_key != server_key
    assert client_key == TransactionKey.from_request(invite, TransactionRole.CLIENT)
    assert hash(client_key) == hash(TransactionKey.from_request(invite, TransactionRole.CLIENT))


def test_build_key_without_branch():
    via = Via.parse("SIP/2.0/UDP host.example.com:5070")
    key = TransactionKey.build_key(
        TransactionRole.CLIENT, via, Method.OPTIONS, 7, "tag1", CALL_ID
    )
    assert key.value == f"c.OPTIONS_7_{CALL_ID}_tag1_host.example.com:5070.2543"


def test_missing_from_tag():
    request = create_test_request(Method.INVITE, "z9hG4bKx")
    request.set_header("From", "Alice <sip:alice@example.com>")
    with pytest.raises(SipError, match="from tags missing"):
        TransactionKey.from_request(request, TransactionRole.CLIENT)


def test_missing_via():
    request = create_test_request(Method.INVITE, "z9hG4bKx")
    request.headers = [h for h in request.headers if h.name != "Via"]
    with pytest.raises(SipError):
        TransactionKey.from_request(request, TransactionRole.CLIENT)


@pytest.mark.parametrize(
    "role,prefix",
    [(TransactionRole.CLIENT, "c"), (TransactionRole.SERVER, "s")],
)
def test_role_prefixes_key(role, prefix):
    via = Via.parse("SIP/2.0/UDP host.example.com:5070;branch=z9hG4bKabc")
    key = TransactionKey.build_key(role, via, Method.OPTIONS, 1, "tag1", CALL_ID)
    assert str(role) == prefix
    assert key.value == f"{prefix}.OPTIONS_1_{CALL_ID}_tag1_z9hG4bKabc"