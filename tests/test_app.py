"""Test the HTTP surface over the pipeline and session manager."""

from fastapi.testclient import TestClient

from audioguide.app import create_app
from audioguide.gemini_client import GroundingUpdate, TextDelta
from audioguide.models import Citation
from audioguide.prompt_loader import load_welcome_message
from audioguide.session_manager import SEND_UNAVAILABLE_MESSAGE
from conftest import FakeAssistant, FakeCatalog, make_settings


def make_client(settings=None, assistant=None, catalog=None):
    app = create_app(
        settings=settings or make_settings(),
        assistant=assistant or FakeAssistant(),
        catalog=catalog or FakeCatalog(),
    )
    return TestClient(app)


def test_startup_runs_pipeline_to_ready():
    settings = make_settings()
    with make_client(settings=settings) as client:
        status = client.get("/api/status").json()
        assert status["state"] == "ready"
        assert status["ready"] is True
        assert status["message"] == "AudioGuide is ready."

        messages = client.get("/api/messages").json()
        assert len(messages) == 1
        assert messages[0]["role"] == "assistant"
        assert messages[0]["text"] == load_welcome_message(settings.prompts_dir)


def test_initialize_after_ready_adds_nothing():
    catalog = FakeCatalog()
    with make_client(catalog=catalog) as client:
        response = client.post("/api/initialize")
        assert response.status_code == 200
        assert response.json()["state"] == "ready"
        assert len(client.get("/api/messages").json()) == 1
        assert catalog.calls == [25]


def test_chat_returns_user_and_rendered_reply():
    assistant = FakeAssistant(
        fragments=[
            TextDelta("Try the **Planar 3**.\n"),
            TextDelta("- PRODUCT_LINK[planar-3|Rega Planar 3]"),
            GroundingUpdate([Citation(url="https://review.test/planar", title="Review")]),
        ]
    )
    with make_client(assistant=assistant) as client:
        response = client.post("/api/chat", json={"message": "Which turntable?"})

    assert response.status_code == 200
    user, reply = response.json()["messages"]
    assert user["role"] == "user"
    assert user["html"] == "Which turntable?"
    assert reply["role"] == "assistant"
    assert reply["is_streaming"] is False
    assert reply["html"] == (
        "Try the <strong>Planar 3</strong>.<ul><li>"
        '<a href="https://hifisti.myshopify.com/products/planar-3" target="_blank" '
        'rel="noopener noreferrer">Rega Planar 3</a></li></ul>'
    )
    assert 'href="https://review.test/planar"' in reply["citations_html"]
    assert assistant.sent == ["Which turntable?"]


def test_blank_chat_message_rejected():
    assistant = FakeAssistant()
    with make_client(assistant=assistant) as client:
        response = client.post("/api/chat", json={"message": "   "})
    assert response.status_code == 422
    assert assistant.sent == []


def test_blocked_without_assistant_key():
    assistant = FakeAssistant()
    catalog = FakeCatalog()
    with make_client(settings=make_settings(gemini_api_key=""), assistant=assistant, catalog=catalog) as client:
        status = client.get("/api/status").json()
        assert status["state"] == "blocked"
        assert status["reason"] == "credential missing"
        assert status["ready"] is False
        startup = client.get("/api/messages").json()
        assert [(m["role"], m["text"]) for m in startup] == [("system", status["message"])]

        messages = client.post("/api/chat", json={"message": "hello"}).json()["messages"]

    assert [m["role"] for m in messages] == ["system"]
    assert messages[0]["text"] == SEND_UNAVAILABLE_MESSAGE
    assert messages[0]["is_error"] is True
    assert catalog.calls == []
    assert assistant.sent == []
