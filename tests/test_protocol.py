"""Tests for the stream frame codec."""

import gzip

import orjson
import pytest

from hotcoin_client.errors import (
    DecompressionError,
    HotcoinProtocolError,
    MalformedFrameError,
)
from hotcoin_client.protocol import FrameDecoder
from hotcoin_client.signature import SignatureEngine


@pytest.fixture
def codec():
    return FrameDecoder()


class TestDecode:
    def test_text_data_frame(self, codec):
        frame = codec.decode(
            '{"ch":"market.btcusdt.detail","ts":1700000000000,"tick":{"close":1.5}}'
        )
        assert frame.channel == "market.btcusdt.detail"
        assert frame.ts == 1700000000000
        assert frame.payload == {"close": 1.5}
        assert frame.ping is None

    def test_plain_bytes(self, codec):
        frame = codec.decode(b'{"ping":42}')
        assert frame.ping == 42

    def test_gzip_bytes(self, codec):
        data = gzip.compress(b'{"ch":"orders.btcusdt","data":[{"id":1}]}')
        frame = codec.decode(data)
        assert frame.ch == "orders.btcusdt"
        assert frame.payload == [{"id": 1}]

    def test_payload_prefers_tick(self, codec):
        frame = codec.decode('{"tick":{"a":1},"data":{"b":2}}')
        assert frame.payload == {"a": 1}

    def test_control_fields(self, codec):
        frame = codec.decode(
            '{"op":"auth","err-code":2002,"err-msg":"invalid signature","ts":1}'
        )
        assert frame.op == "auth"
        assert frame.err_code == 2002
        assert frame.err_msg == "invalid signature"

    def test_subbed_fields(self, codec):
        frame = codec.decode('{"id":"sub_1","status":"ok","subbed":"market.btcusdt.detail"}')
        assert frame.id == "sub_1"
        assert frame.status == "ok"
        assert frame.subbed == "market.btcusdt.detail"

    def test_raw_kept(self, codec):
        frame = codec.decode('{"ch":"x","extra":true}')
        assert frame.raw == {"ch": "x", "extra": True}

    def test_invalid_json(self, codec):
        with pytest.raises(MalformedFrameError):
            codec.decode(b"not json")

    def test_not_an_object(self, codec):
        with pytest.raises(MalformedFrameError):
            codec.decode("[1, 2]")

    @pytest.mark.parametrize(
        "message",
        [
            '{"ping":"abc"}',
            '{"ping":true}',
            '{"ts":1.5}',
            '{"ch":5}',
            '{"op":{"x":1}}',
        ],
    )
    def test_wrong_field_type(self, codec, message):
        with pytest.raises(MalformedFrameError):
            codec.decode(message)

    def test_corrupt_gzip(self, codec):
        with pytest.raises(DecompressionError):
            codec.decode(b"\x1f\x8bgarbage")

    def test_oversize_frame(self):
        codec = FrameDecoder(max_message_size=10)
        with pytest.raises(HotcoinProtocolError):
            codec.decode('{"ch":"aaaaaaaaaaaa"}')

    def test_oversize_after_decompression(self):
        codec = FrameDecoder(max_message_size=64)
        data = gzip.compress(b'{"ch":"' + b"a" * 200 + b'"}')
        with pytest.raises(MalformedFrameError):
            codec.decode(data)


class TestEncode:
    def test_subscribe(self, codec):
        msg = orjson.loads(codec.encode_subscribe("market.btcusdt.detail"))
        assert msg["sub"] == "market.btcusdt.detail"
        assert msg["id"].startswith("sub_")

    def test_unsubscribe(self, codec):
        msg = orjson.loads(codec.encode_unsubscribe("market.btcusdt.detail"))
        assert msg["unsub"] == "market.btcusdt.detail"
        assert msg["id"].startswith("unsub_")

    def test_ping_pong(self, codec):
        assert codec.encode_ping(5) == '{"ping":5}'
        assert codec.encode_pong(123456) == '{"pong":123456}'

    def test_ping_defaults_to_now(self, codec):
        msg = orjson.loads(codec.encode_ping())
        assert msg["ping"] > 1_600_000_000_000

    def test_auth_frame(self, codec):
        signed = SignatureEngine("secret").sign(
            "GET", "h.com", "/api/v1/perpetual/notification", {"AccessKeyId": "key"}
        )
        msg = orjson.loads(codec.encode_auth(signed))
        assert msg == {
            "op": "auth",
            "type": "api",
            "AccessKeyId": "key",
            "SignatureMethod": "HmacSHA256",
            "SignatureVersion": "2",
            "Timestamp": signed.query_params["Timestamp"],
            "Signature": signed.signature,
        }

    def test_request_ids_strictly_increase(self, codec):
        ids = [int(codec.next_request_id("sub").split("_")[1]) for _ in range(100)]
        assert ids == sorted(ids)
        assert len(set(ids)) == len(ids)
