"""
Tests for response assembly and serialisation.
"""

from sqrlauth.encoding import b64url_decode_text, b64url_encode_text
from sqrlauth.response import (
    ResponseBuilder,
    SqrlAuthResponse,
    build_ask,
    decode_response,
    flags_of,
    parse_response_text,
)
from sqrlauth.tif import TifSet, TransactionInformationFlag as Tif


def test_builder_sets_required_fields() -> None:
    r = ResponseBuilder("1", "/sqrl").build("NUT123", None, [Tif.ID_MATCH, Tif.IP_MATCHED])
    assert r.ver == "1"
    assert r.nut == "NUT123"
    assert r.tif == 0x05
    assert r.qry == "/sqrl?nut=NUT123"
    assert r.suk is None


def test_builder_accepts_tif_set_and_suk() -> None:
    r = ResponseBuilder("1", "https://example.com/sqrl").build("N", "SUKVALUE", TifSet([Tif.CLIENT_FAILURE]))
    assert r.tif == 0x80
    assert r.suk == "SUKVALUE"
    assert r.qry == "https://example.com/sqrl?nut=N"


def test_builder_same_flag_twice_is_idempotent() -> None:
    b = ResponseBuilder("1", "/sqrl")
    assert b.build("N", None, [Tif.ID_MATCH, Tif.ID_MATCH]).tif == b.build("N", None, [Tif.ID_MATCH]).tif


def test_to_text_minimal() -> None:
    r = SqrlAuthResponse(ver="1", nut="abc", tif=5, qry="/sqrl?nut=abc")
    assert r.to_text() == "ver=1\r\nnut=abc\r\ntif=5\r\nqry=/sqrl?nut=abc"
    assert str(r) == r.to_text()


def test_to_text_field_order_with_optionals() -> None:
    r = SqrlAuthResponse(
        ver="1",
        nut="abc",
        tif=0,
        qry="/sqrl?nut=abc",
        ask="ASK",
        suk="SUK",
        url="https://example.com/",
        additional_data={"sin": "0", "can": "x"},
    )
    keys = [line.split("=", 1)[0] for line in r.to_text().split("\r\n")]
    assert keys == ["ver", "nut", "tif", "qry", "url", "suk", "ask", "sin", "can"]


def test_absent_optionals_are_omitted() -> None:
    r = SqrlAuthResponse(ver="1", nut="abc", qry="q", suk="S", additional_data={"x": None})
    assert r.to_text() == "ver=1\r\nnut=abc\r\ntif=0\r\nqry=q\r\nsuk=S"


def test_encoded_text_is_unpadded_base64url_of_text() -> None:
    r = SqrlAuthResponse(ver="1", nut="abc", tif=1, qry="/sqrl?nut=abc")
    enc = r.to_encoded_text()
    assert "=" not in enc
    assert b64url_decode_text(enc) == r.to_text()
    assert decode_response(enc) == {"ver": "1", "nut": "abc", "tif": "1", "qry": "/sqrl?nut=abc"}


def test_ask_encodes_each_part_separately() -> None:
    ask = build_ask("Proceed?", "Yes", "No")
    parts = ask.split("~")
    assert parts == [b64url_encode_text("Proceed?"), b64url_encode_text("Yes"), b64url_encode_text("No")]
    assert [b64url_decode_text(p) for p in parts] == ["Proceed?", "Yes", "No"]


def test_with_ask_returns_copy() -> None:
    r = SqrlAuthResponse(ver="1", nut="abc", qry="q")
    r2 = r.with_ask("m", "b1", "b2")
    assert r.ask is None
    assert r2.ask == build_ask("m", "b1", "b2")
    assert parse_response_text(r2.to_text())["ask"] == r2.ask


def test_flags_of() -> None:
    r = SqrlAuthResponse(ver="1", nut="n", qry="q", tif=0x21)
    assert r.has_flag(Tif.TRANSIENT_ERROR)
    assert flags_of(r) == [Tif.ID_MATCH, Tif.TRANSIENT_ERROR]
