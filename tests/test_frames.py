import pytest

from sahayak.transport.errors import ProtocolError
from sahayak.transport.frames import (
    AgentReply,
    UserEcho,
    decode_inbound,
    handshake_frame,
    message_frame,
)


def test_outbound_frames():
    assert handshake_frame("Asha", "Hindi") == {"name": "Asha", "language": "Hindi"}
    assert message_frame("Hello") == {"user": "Hello"}


def test_bot_reply():
    assert decode_inbound('{"bot": "Hi there!"}') == (AgentReply("Hi there!"),)


def test_echo_and_reply_in_one_frame_keep_echo_first():
    items = decode_inbound('{"bot": "Hi!", "user": "Hello"}')
    assert items == (UserEcho("Hello"), AgentReply("Hi!"))


def test_bytes_frame():
    assert decode_inbound(b'{"bot": "ok"}') == (AgentReply("ok"),)


@pytest.mark.parametrize("raw", ["{}", '{"status": "typing"}', '{"bot": ""}'])
def test_frames_without_text_decode_to_nothing(raw):
    assert decode_inbound(raw) == ()


@pytest.mark.parametrize(
    "raw",
    ["not json", "[1, 2]", '"bot"', '{"bot": 42}', '{"user": ["a"]}', b"\xff\xfe"],
)
def test_malformed_frames_raise_protocol_error(raw):
    with pytest.raises(ProtocolError):
        decode_inbound(raw)


def test_protocol_error_preview_is_bounded():
    with pytest.raises(ProtocolError) as excinfo:
        decode_inbound("x" * 500)
    assert len(excinfo.value.payload_preview) < 200
