import io
import sys

import pytest

from asyncpatterns.wire import Data


def test_round_trip():
    message = Data(7, 7, "Hello, server! 7")
    assert Data.deserialize(message.serialize()) == message


def test_layout_is_native_order_with_length_prefix():
    message = Data(4000, 300, "héllo")
    raw = message.serialize()
    text = "héllo".encode("utf-8")
    assert int.from_bytes(raw[0:4], sys.byteorder) == 4000
    assert int.from_bytes(raw[4:6], sys.byteorder) == 300
    assert int.from_bytes(raw[6:10], sys.byteorder) == len(text)
    assert raw[10:] == text


def test_empty_string_size():
    assert len(Data(0, 0, "").serialize()) == 10


def test_stream_is_advanced_past_each_message():
    first = Data(1, 2, "one")
    second = Data(3, 4, "two")
    stream = io.BytesIO(first.serialize() + second.serialize())
    assert Data.deserialize(stream) == first
    assert Data.deserialize(stream) == second
    assert stream.read() == b""


def test_extreme_values_round_trip():
    message = Data(2**32 - 1, 2**16 - 1, "x" * 2000)
    assert Data.deserialize(message.serialize()) == message


@pytest.mark.parametrize("cut", [0, 3, 6, 9])
def test_truncated_header_raises(cut):
    raw = Data(1, 2, "abc").serialize()
    with pytest.raises(EOFError):
        Data.deserialize(raw[:cut])


def test_truncated_body_raises():
    raw = Data(1, 2, "abcdef").serialize()
    with pytest.raises(EOFError):
        Data.deserialize(raw[:-1])


def test_invalid_utf8_raises():
    raw = bytearray(Data(1, 2, "ab").serialize())
    raw[-2:] = b"\xff\xfe"
    with pytest.raises(ValueError, match="Invalid UTF-8"):
        Data.deserialize(bytes(raw))


@pytest.mark.parametrize("message", [Data(-1, 0, ""), Data(2**32, 0, ""), Data(0, 2**16, "")])
def test_out_of_range_fields_rejected(message):
    with pytest.raises(ValueError):
        message.serialize()