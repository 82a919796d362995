import httpx
import pytest

from cortex_agent.domain.exceptions import RemoteError, TransportError, ValidationError
from cortex_agent.providers.agent_client import CortexAgentClient
from cortex_agent.providers.base import AgentRequest


class SettingsStub:
    snowflake_url = "https://acct.snowflakecomputing.com"
    agent_run_path = "/api/v2/cortex/agent:run"
    http_timeout = 1.0
    stream_read_timeout = None


def _request():
    return AgentRequest(headers={"Authorization": "Bearer tok"}, body={"model": "m", "messages": []})


def _patch_stream(monkeypatch, status_code, chunks=(), body=None, captured=None):
    closed = []

    class FakeResponse:
        def __init__(self):
            self.status_code = status_code

        def iter_bytes(self):
            for chunk in chunks:
                yield chunk

        def read(self):
            return b""

        def json(self):
            if body is None:
                raise ValueError("not json")
            return body

    class StreamContext:
        def __enter__(self):
            return FakeResponse()

        def __exit__(self, *args):
            closed.append("response")
            return False

    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            closed.append("client")
            return False

        def post(self, *a, **kw):
            raise AssertionError("post should not be called for agent turns")

        def stream(self, method, url, json=None, headers=None, **_):
            if captured is not None:
                captured.update(method=method, url=url, body=json, headers=headers)
            return StreamContext()

    monkeypatch.setattr("httpx.Client", Client)
    return closed


def test_open_stream_yields_events(monkeypatch):
    captured = {}
    closed = _patch_stream(
        monkeypatch,
        200,
        chunks=[b'data: {"delta": {"content": []}}\n\n', b"data: [DONE]\n\n"],
        captured=captured,
    )
    stream = CortexAgentClient(SettingsStub()).open_stream(_request())
    events = list(stream.events())
    stream.close()

    assert captured["method"] == "POST"
    assert captured["url"] == "https://acct.snowflakecomputing.com/api/v2/cortex/agent:run"
    assert captured["headers"]["Authorization"] == "Bearer tok"
    assert events[-1].is_terminal
    assert closed == ["response", "client"]


def test_open_stream_error_body_message(monkeypatch):
    closed = _patch_stream(monkeypatch, 400, body={"code": "399504", "message": "Invalid semantic model"})
    with pytest.raises(RemoteError) as exc_info:
        CortexAgentClient(SettingsStub()).open_stream(_request())
    assert exc_info.value.code == "399504"
    assert exc_info.value.message == "Invalid semantic model"
    assert exc_info.value.http_status == 400
    assert closed == ["response", "client"]


def test_open_stream_error_without_body(monkeypatch):
    _patch_stream(monkeypatch, 500)
    with pytest.raises(RemoteError) as exc_info:
        CortexAgentClient(SettingsStub()).open_stream(_request())
    assert exc_info.value.message == "HTTP error! status: 500"

    with pytest.raises(RemoteError) as exc_info:
        CortexAgentClient(SettingsStub()).open_stream(_request(), fallback_message="Analytics processing failed")
    assert exc_info.value.message == "Analytics processing failed"


def test_open_stream_connection_failure(monkeypatch):
    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def stream(self, *a, **kw):
            raise httpx.ConnectError("connection refused")

    monkeypatch.setattr("httpx.Client", Client)
    with pytest.raises(TransportError) as exc_info:
        CortexAgentClient(SettingsStub()).open_stream(_request())
    assert exc_info.value.message == "Failed to communicate with agent API"


def test_stream_closed_early_raises(monkeypatch):
    _patch_stream(monkeypatch, 200, chunks=[b'data: {"delta": {"content": []}}\n\n'])
    stream = CortexAgentClient(SettingsStub()).open_stream(_request())
    with pytest.raises(TransportError):
        list(stream.events())
    stream.close()


def test_missing_url():
    cfg = SettingsStub()
    cfg.snowflake_url = ""
    with pytest.raises(ValidationError):
        CortexAgentClient(cfg).open_stream(_request())
