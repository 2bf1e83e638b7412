"""Tests for reqchain.params.encode_params.

Tests cover:
- Each supported shape and its exact textual form
- Stream passthrough (same object back)
- Unsupported shapes resolve to no body instead of raising
"""

import io

import httpx
import pytest

from reqchain.params import encode_params


def _read(value) -> bytes:
    stream = encode_params(value)
    assert stream is not None
    return stream.read()


class TestEncodeSupportedShapes:
    """Each supported shape encodes to its documented form."""

    def test_string_is_utf8_bytes(self) -> None:
        assert _read("a=1&b=two") == b"a=1&b=two"

    def test_unicode_string(self) -> None:
        assert _read("név=é") == "név=é".encode("utf-8")

    def test_bytes_pass_through(self) -> None:
        assert _read(b"\x00\x01raw") == b"\x00\x01raw"

    def test_bytearray_pass_through(self) -> None:
        assert _read(bytearray(b"abc")) == b"abc"

    def test_string_list_joined_with_ampersand(self) -> None:
        assert _read(["a=1", "b=2", "c=3"]) == b"a=1&b=2&c=3"

    def test_string_list_not_escaped(self) -> None:
        """Items are sent as given; callers pre-escape."""
        assert _read(["q=a b", "x=%20"]) == b"q=a b&x=%20"

    def test_string_list_trims_stray_separators(self) -> None:
        assert _read(["&a=1", "b=2&"]) == b"a=1&b=2"

    def test_empty_string_list(self) -> None:
        assert _read([]) == b""

    def test_mapping_form_encoded(self) -> None:
        body = _read({"a": "1", "b": "2"}).decode()
        assert sorted(body.split("&")) == ["a=1", "b=2"]

    def test_mapping_each_pair_once(self) -> None:
        body = _read({"b": "2", "a": "1", "c": "3"}).decode()
        assert len(body.split("&")) == 3

    def test_mapping_values_percent_escaped(self) -> None:
        assert _read({"q": "a b&c=d"}) == b"q=a+b%26c%3Dd"

    def test_mapping_list_values_repeat_key(self) -> None:
        assert _read({"tag": ["a", "b c"], "id": "7"}) == b"id=7&tag=a&tag=b+c"

    def test_mapping_tuple_values_keep_order(self) -> None:
        assert _read({"tag": ("z", "a")}) == b"tag=z&tag=a"

    def test_mapping_empty_list_value_drops_key(self) -> None:
        assert _read({"tag": [], "id": "7"}) == b"id=7"

    def test_query_params_use_own_encoding(self) -> None:
        params = httpx.QueryParams([("tag", "x"), ("tag", "y z")])
        assert _read(params) == b"tag=x&tag=y+z"


class TestEncodeStreams:
    """Readable objects are handed back untouched."""

    def test_bytes_stream_is_same_object(self) -> None:
        stream = io.BytesIO(b"payload")
        assert encode_params(stream) is stream

    def test_text_stream_is_same_object(self) -> None:
        stream = io.StringIO("payload")
        assert encode_params(stream) is stream

    def test_stream_not_consumed(self) -> None:
        stream = io.BytesIO(b"payload")
        encode_params(stream)
        assert stream.read() == b"payload"


class TestEncodeUnsupported:
    """Unsupported shapes encode to None rather than raising."""

    @pytest.mark.parametrize(
        "value",
        [
            None,
            42,
            3.5,
            object(),
            [1, 2],
            ("a", 1),
            {"a", "b"},
            {"n": 1},
            {"tag": ["a", 2]},
            {"nested": {"a": "b"}},
            {1: "a"},
        ],
        ids=[
            "none",
            "int",
            "float",
            "object",
            "int-list",
            "mixed-tuple",
            "set",
            "mapping-int-value",
            "mapping-mixed-list",
            "mapping-nested",
            "mapping-int-key",
        ],
    )
    def test_returns_none(self, value) -> None:
        assert encode_params(value) is None
