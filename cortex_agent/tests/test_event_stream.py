import pytest

from cortex_agent.domain.exceptions import TransportError
from cortex_agent.providers.event_stream import StreamEvent, iter_events


def test_frames_split_across_chunks():
    chunks = [b'data: {"a"', b": 1}\n", b"\ndata: [DO", b"NE]\n\n"]
    events = list(iter_events(chunks))
    assert [e.data for e in events] == ['{"a": 1}', "[DONE]"]
    assert events[-1].is_terminal


def test_multibyte_character_split_between_chunks():
    raw = 'data: {"text": "héllo 世界"}\n\ndata: [DONE]\n\n'.encode("utf-8")
    # 在 "é" 的两个字节之间切开
    cut = raw.index("é".encode("utf-8")) + 1
    events = list(iter_events([raw[:cut], raw[cut:]]))
    assert events[0].data == '{"text": "héllo 世界"}'


def test_crlf_delimiters_and_fields():
    raw = b"event: message\r\nid: 7\r\ndata: x\r\n\r\ndata: [DONE]\r\n\r\n"
    events = list(iter_events([raw]))
    assert events[0] == StreamEvent(data="x", event="message", id="7")
    assert events[1].is_terminal


def test_comments_and_empty_frames_are_skipped():
    raw = b": keep-alive\n\n: another\n\ndata: one\n\ndata: [DONE]\n\n"
    assert [e.data for e in iter_events([raw])] == ["one", "[DONE]"]


def test_multiline_data_is_joined():
    raw = b"data: first\ndata: second\n\ndata: [DONE]\n\n"
    events = list(iter_events([raw]))
    assert events[0].data == "first\nsecond"


def test_bare_json_line_is_taken_as_data():
    raw = b'{"delta": {"content": []}}\n\ndata: [DONE]\n\n'
    events = list(iter_events([raw]))
    assert events[0].data == '{"delta": {"content": []}}'


def test_stops_reading_after_terminal_marker():
    def chunks():
        yield b"data: a\n\ndata: [DONE]\n\ndata: ignored\n\n"
        raise AssertionError("stream read past the terminal marker")

    events = list(iter_events(chunks()))
    assert [e.data for e in events] == ["a", "[DONE]"]


def test_trailing_terminal_without_blank_line_is_flushed():
    events = list(iter_events([b"data: a\n\n", b"data: [DONE]"]))
    assert events[-1].is_terminal


def test_eof_before_terminal_raises_transport_error():
    received = []
    with pytest.raises(TransportError) as exc_info:
        for event in iter_events([b"data: a\n\n", b"data: b\n\n"]):
            received.append(event.data)
    assert received == ["a", "b"]
    assert exc_info.value.message == "Failed to communicate with agent API"


def test_empty_stream_raises_transport_error():
    with pytest.raises(TransportError):
        list(iter_events([]))


def test_newline_delimited_json_lines():
    chunks = [
        b'{"delta": {"content": [{"type": "text", "text": "a"}]}}\n',
        b'{"delta": {"content": [{"type": "text", "text": "b"}]}}\n',
        b"[DONE]\n",
    ]
    events = list(iter_events(chunks))
    assert len(events) == 3
    assert events[0].data == '{"delta": {"content": [{"type": "text", "text": "a"}]}}'
    assert events[1].data == '{"delta": {"content": [{"type": "text", "text": "b"}]}}'
    assert events[2].is_terminal


def test_json_lines_are_yielded_before_eof():
    def chunks():
        yield b'{"n": 1}\n{"n": 2}\n'
        yield b"[DONE]\n"
        raise AssertionError("stream read past the terminal marker")

    events = iter_events(chunks())
    assert next(events).data == '{"n": 1}'
    assert next(events).data == '{"n": 2}'
    assert next(events).is_terminal


def test_crlf_split_between_chunks():
    events = list(iter_events([b"data: x\r", b"\n\r\n", b"data: [DONE]\r\n\r\n"]))
    assert [e.data for e in events] == ["x", "[DONE]"]
