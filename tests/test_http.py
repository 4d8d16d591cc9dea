import json
from typing import Any

from fakes import FakeBackend, make_message, text_part, tool_part
from fastapi.testclient import TestClient

from opencode_bridge import BridgeConfig, BridgeService, create_bridge_app
from opencode_bridge.config import SessionFallbackPolicy
from opencode_bridge.errors import BackendUnavailableError


async def _no_sleep(_seconds: float) -> None:
    return None


def _build_client(backend: FakeBackend, **config: Any) -> TestClient:
    service = BridgeService(
        BridgeConfig(stream_delay_s=0, poll_interval_s=0, **config),
        client=backend,
        poll_sleep=_no_sleep,
        stream_sleep=_no_sleep,
    )
    return TestClient(create_bridge_app(service, include_docs=False))


def _chat_payload(content: str = "list files", **extra: Any) -> dict[str, Any]:
    return {"model": "gpt-4", "messages": [{"role": "user", "content": content}], **extra}


def _script_tool_turn(backend: FakeBackend) -> None:
    running = make_message("msg-1", tool_part("bash", "running", input={"command": "ls"}))
    done = make_message(
        "msg-1",
        tool_part("bash", "completed", input={"command": "ls"}, output="ok"),
        text_part("Done."),
    )
    backend.script_turn([running, running, done])


def test_chat_completion_returns_rendered_turn() -> None:
    backend = FakeBackend()
    _script_tool_turn(backend)
    with _build_client(backend) as client:
        response = client.post("/v1/chat/completions", json=_chat_payload(user="alice"))

    assert response.status_code == 200
    body = response.json()
    assert body["object"] == "chat.completion"
    assert body["id"].startswith("chatcmpl-")
    assert body["model"] == "gpt-4"
    content = body["choices"][0]["message"]["content"]
    assert body["choices"][0]["finish_reason"] == "stop"
    assert content.index("Status: Completed") < content.index("ok") < content.index("Done.")
    usage = body["usage"]
    assert usage["total_tokens"] == usage["prompt_tokens"] + usage["completion_tokens"]
    assert backend.fetches == 2
    session_id, prompt, model = backend.prompts[0]
    assert prompt == "[user]: list files\n"
    assert (model.provider_id, model.model_id) == ("opencode", "grok-code")


def test_same_user_reuses_session() -> None:
    backend = FakeBackend()
    backend.script_turn([make_message("msg-1", text_part("one"))])
    backend.script_turn([make_message("msg-2", text_part("two"))])
    with _build_client(backend) as client:
        client.post("/v1/chat/completions", json=_chat_payload(user="alice"))
        second = client.post("/v1/chat/completions", json=_chat_payload(user="alice"))

    assert second.json()["choices"][0]["message"]["content"] == "[user]: list files\n\n\ntwo\n\n"
    assert backend.create_calls == 1
    assert backend.prompts[0][0] == backend.prompts[1][0]


def test_streaming_chat_completion() -> None:
    backend = FakeBackend()
    _script_tool_turn(backend)
    events: list[Any] = []
    with _build_client(backend, chunk_size=10) as client:
        with client.stream("POST", "/v1/chat/completions", json=_chat_payload(stream=True)) as response:
            assert response.status_code == 200
            assert response.headers["content-type"].startswith("text/event-stream")
            assert response.headers["cache-control"] == "no-cache"
            for line in response.iter_lines():
                if line.startswith("data: "):
                    body = line[len("data: ") :]
                    events.append(body if body == "[DONE]" else json.loads(body))

    assert events[0]["choices"][0]["delta"] == {"role": "assistant"}
    assert events[-1] == "[DONE]"
    assert events[-2]["choices"][0]["finish_reason"] == "stop"
    deltas = [event["choices"][0]["delta"].get("content", "") for event in events[1:-2]]
    assert all(0 < len(delta) <= 10 for delta in deltas)
    text = "".join(deltas)
    assert "Status: Completed" in text and text.endswith("Done.\n\n")


def test_streaming_backend_failure_emits_error_frame() -> None:
    backend = FakeBackend()
    backend.send_error = BackendUnavailableError("connection refused")
    events: list[Any] = []
    with _build_client(backend) as client:
        with client.stream("POST", "/v1/chat/completions", json=_chat_payload(stream=True)) as response:
            assert response.status_code == 200
            for line in response.iter_lines():
                if line.startswith("data: "):
                    body = line[len("data: ") :]
                    events.append(body if body == "[DONE]" else json.loads(body))

    assert events[1]["error"]["type"] == "backend_unavailable"
    assert events[-1] == "[DONE]"


def test_backend_failure_maps_to_openai_error_body() -> None:
    backend = FakeBackend()
    backend.create_error = BackendUnavailableError("connection refused")
    with _build_client(backend, session_fallback=SessionFallbackPolicy.RAISE) as client:
        response = client.post("/v1/chat/completions", json=_chat_payload())

    assert response.status_code == 502
    error = response.json()["error"]
    assert error["type"] == "backend_unavailable"
    assert "connection refused" in error["message"]


def test_invalid_request_is_rejected_before_backend_work() -> None:
    backend = FakeBackend()
    with _build_client(backend) as client:
        missing_messages = client.post("/v1/chat/completions", json={"model": "gpt-4", "messages": []})
        bad_model = client.post("/v1/chat/completions", json={**_chat_payload(), "model": "anthropic/"})
        not_json = client.post(
            "/v1/chat/completions",
            content=b"{nope",
            headers={"content-type": "application/json"},
        )

    for response in (missing_messages, bad_model, not_json):
        assert response.status_code == 400
        assert response.json()["error"]["type"] == "invalid_request_error"
    assert bad_model.json()["error"]["param"] == "model"
    assert backend.create_calls == 0
    assert backend.prompts == []


def test_models_and_health() -> None:
    backend = FakeBackend()
    with _build_client(backend) as client:
        models = client.get("/v1/models").json()
        health = client.get("/v1/health").json()
        root_health = client.get("/health").json()

    ids = [card["id"] for card in models["data"]]
    assert models["object"] == "list"
    assert "anthropic/claude-sonnet-4" in ids
    assert "gpt-4" in ids
    assert health == {"status": "healthy", "service": "OpenAI API Bridge for OpenCode"}
    assert root_health == health
