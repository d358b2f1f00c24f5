#!/usr/bin/env python3
"""Unit tests for JSON message framing between hub and devices."""
import asyncio

import pytest

from klipsync.protocol import (
    KIND_PUBLISH,
    ProtocolError,
    decode_message,
    encode_message,
    encode_netstring,
    read_message,
)


def make_reader(data: bytes) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    reader.feed_data(data)
    reader.feed_eof()
    return reader


@pytest.mark.asyncio
async def test_message_is_netstring_framed_json() -> None:
    data = encode_message(KIND_PUBLISH, scope="clipboard", event="add-clip", payload={"text": "é"})
    message = await read_message(make_reader(data))
    assert message == {
        "kind": "publish",
        "scope": "clipboard",
        "event": "add-clip",
        "payload": {"text": "é"},
    }


@pytest.mark.asyncio
async def test_goodbye_reads_as_none() -> None:
    assert await read_message(make_reader(b"0:,")) is None


def test_decode_rejects_non_json() -> None:
    with pytest.raises(ProtocolError, match="Undecodable"):
        decode_message(b"\xff\xfe")


def test_decode_rejects_missing_kind() -> None:
    with pytest.raises(ProtocolError, match="kind"):
        decode_message(b'{"scope": "clipboard"}')
    with pytest.raises(ProtocolError):
        decode_message(b"[1, 2]")


def test_encode_rejects_oversized_message(monkeypatch: pytest.MonkeyPatch) -> None:
    from klipsync import protocol

    monkeypatch.setattr(protocol, "MAX_CONTENT_SIZE", 32)
    with pytest.raises(ProtocolError, match="exceeds limit"):
        encode_message(KIND_PUBLISH, payload={"text": "x" * 64})


@pytest.mark.asyncio
async def test_read_message_propagates_framing_errors() -> None:
    with pytest.raises(ProtocolError):
        await read_message(make_reader(encode_netstring(b"not json")))
