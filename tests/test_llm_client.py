"""
Brief: Tests for dnsprompt.llm_client model fallback and status mapping.

Inputs:
  - None directly; uses FakeSession from conftest in place of requests.Session.

Outputs:
  - None
"""

import pytest
import requests

import dnsprompt.llm_client as llm_client_mod
from dnsprompt.llm_client import (
    BadRequestError,
    EmptyPromptError,
    InvalidConfigurationError,
    LLMClient,
    MalformedResponseError,
    ModelAttemptError,
    NetworkFailureError,
    NoChoicesError,
    NotFoundOrPolicyRestrictedError,
    RateLimitedError,
    SamplingParams,
    UnauthorizedError,
    UnexpectedStatusError,
    UpstreamServerError,
)

from conftest import FakeResponse, FakeSession, ok_response


def _client(session, models=("m1",), **kw):
    return LLMClient("sk-test", list(models), "Be brief.", session=session, **kw)


def test_construction_validates_key_and_models():
    with pytest.raises(InvalidConfigurationError, match="API key cannot be empty"):
        LLMClient("", ["m"], "sys")
    with pytest.raises(InvalidConfigurationError, match="Models list cannot be empty"):
        LLMClient("key", [], "sys")


def test_construction_keeps_order_and_defaults():
    client = LLMClient("key", ["model1", "model2", "model3"], "sys")
    assert client.models == ("model1", "model2", "model3")
    assert client.system_prompt == "sys"
    assert client.api_url == llm_client_mod.OPENROUTER_URL
    assert client.timeout == 30.0


def test_empty_prompt_makes_no_request():
    session = FakeSession({})
    client = _client(session)
    with pytest.raises(EmptyPromptError):
        client.query("")
    assert session.calls == []


def test_success_returns_first_choice_and_sends_expected_request():
    session = FakeSession(
        {
            "m1": FakeResponse(
                200,
                {
                    "choices": [
                        {"message": {"content": "first"}},
                        {"message": {"content": "second"}},
                    ]
                },
            )
        }
    )
    client = _client(session, api_url="http://127.0.0.1:9/v1/chat")
    assert client.query("what is rust") == "first"

    url, body, headers, timeout = session.calls[0]
    assert url == "http://127.0.0.1:9/v1/chat"
    assert headers["Authorization"] == "Bearer sk-test"
    assert headers["Content-Type"] == "application/json"
    assert timeout == 30.0
    assert body == {
        "model": "m1",
        "messages": [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "what is rust"},
        ],
    }


def test_fallback_after_rate_limit():
    """
    Brief: A 429 from the first model falls through to the second exactly once.

    Inputs:
      - models [m1, m2]; m1 -> 429, m2 -> "X"

    Outputs:
      - None
    """
    session = FakeSession({"m1": FakeResponse(429), "m2": ok_response("X")})
    client = _client(session, models=("m1", "m2"))
    assert client.query("prompt") == "X"
    assert session.models_called == ["m1", "m2"]


def test_success_stops_the_chain():
    session = FakeSession({"m1": ok_response("A"), "m2": ok_response("B")})
    client = _client(session, models=("m1", "m2"))
    assert client.query("prompt") == "A"
    assert session.models_called == ["m1"]


def test_all_failing_raises_last_error():
    session = FakeSession(
        {
            "m1": FakeResponse(429),
            "m2": FakeResponse(404),
            "m3": FakeResponse(500),
        }
    )
    client = _client(session, models=("m1", "m2", "m3"))
    with pytest.raises(UpstreamServerError) as excinfo:
        client.query("prompt")
    assert excinfo.value.model == "m3"
    assert excinfo.value.status == 500
    assert session.models_called == ["m1", "m2", "m3"]


@pytest.mark.parametrize(
    "status,exc_cls,fragment",
    [
        (429, RateLimitedError, "Rate limit"),
        (404, NotFoundOrPolicyRestrictedError, "not found"),
        (401, UnauthorizedError, "Unauthorized"),
        (500, UpstreamServerError, "server error"),
        (400, BadRequestError, "bad body"),
        (503, UnexpectedStatusError, "503"),
    ],
)
def test_status_mapping(status, exc_cls, fragment):
    session = FakeSession({"m1": FakeResponse(status, text="bad body")})
    with pytest.raises(exc_cls, match=fragment) as excinfo:
        _client(session).query("p")
    assert isinstance(excinfo.value, ModelAttemptError)
    assert excinfo.value.status == status


def test_bad_request_and_unexpected_capture_body():
    session = FakeSession({"m1": FakeResponse(418, text="teapot")})
    with pytest.raises(UnexpectedStatusError) as excinfo:
        _client(session).query("p")
    assert excinfo.value.body == "teapot"


def test_network_failure_is_recoverable():
    session = FakeSession(
        {
            "m1": requests.ConnectionError("connection refused"),
            "m2": ok_response("ok"),
        }
    )
    assert _client(session, models=("m1", "m2")).query("p") == "ok"


def test_timeout_maps_to_network_failure():
    session = FakeSession({"m1": requests.Timeout("timed out")})
    with pytest.raises(NetworkFailureError):
        _client(session).query("p")


def test_no_choices():
    session = FakeSession({"m1": FakeResponse(200, {"choices": []})})
    with pytest.raises(NoChoicesError):
        _client(session).query("p")


@pytest.mark.parametrize(
    "resp",
    [
        FakeResponse(200, json_exc=ValueError("not json")),
        FakeResponse(200, {"unexpected": True}),
        FakeResponse(200, {"choices": [{"no_message": 1}]}),
        FakeResponse(200, {"choices": [{"message": {"content": None}}]}),
        FakeResponse(200, ["not", "a", "dict"]),
    ],
)
def test_malformed_bodies(resp):
    session = FakeSession({"m1": resp})
    with pytest.raises(MalformedResponseError):
        _client(session).query("p")


def test_sampling_params_included_only_when_set():
    sampling = SamplingParams(temperature=0.2, max_tokens=128, top_k=40)
    session = FakeSession({"m1": ok_response("ok")})
    _client(session, sampling=sampling).query("p")
    body = session.calls[0][1]
    assert body["temperature"] == 0.2
    assert body["max_tokens"] == 128
    assert body["top_k"] == 40
    assert "top_p" not in body
    assert "presence_penalty" not in body


def test_with_api_url_returns_retargeted_copy():
    session = FakeSession({"m1": ok_response("ok")})
    client = _client(session).with_api_url("http://mock.local/chat")
    client.query("p")
    assert session.calls[0][0] == "http://mock.local/chat"


def test_default_session_uses_requests(monkeypatch):
    """
    Brief: Without an injected session the client posts via requests.Session.

    Inputs:
      - monkeypatch: replace requests.Session in the module namespace

    Outputs:
      - None
    """
    created = []

    class _Session(FakeSession):
        def __init__(self):
            super().__init__({"m1": ok_response("hi")})
            created.append(self)

    monkeypatch.setattr(llm_client_mod.requests, "Session", _Session)
    client = LLMClient("k", ["m1"], "sys")
    assert client.query("p") == "hi"
    assert len(created) == 1
