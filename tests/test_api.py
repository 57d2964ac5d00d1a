import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from langchain_core.language_models import FakeListChatModel

from checkmate.api.main import app
from checkmate.api.v1 import endpoints
from checkmate.core.config import Config, config
from checkmate.core.errors import ExtractionError, OrchestrationError
from checkmate.core.history import InvestigationHistory
from checkmate.services.classifier.agent import InvestigationTypeClassifier
from checkmate.services.extraction.agent import ContentExtractor
from checkmate.services.fact_checker.agent import ClaimVerificationAgent
from checkmate.services.investigation.router import AgentRouter
from checkmate.services.orchestrator import InvestigationPipeline
from checkmate.services.preview import PreviewService
from checkmate.services.search.tools import WebSearchTool
from checkmate.services.spans.agent import SpanAnalyzer

from fakes import FakeAsyncRedis, FakeTavilyClient, ScriptedChatModel, StubTools, final_message

API = config.API_PREFIX
client = TestClient(app)

FINAL = {
    "truthfulnessScore": 20,
    "verdict": "false",
    "summary": "The Eiffel Tower is in Paris.",
    "reasoning": "Every reference source places it on the Champ de Mars.",
    "evidence": [],
    "sources": [],
}


@pytest.fixture(autouse=True)
def clear_overrides():
    yield
    app.dependency_overrides.clear()


def _frames(response):
    return [json.loads(line[len("data: "):]) for line in response.text.split("\n\n") if line.startswith("data: ")]


def _fake_pipeline(settings):
    return InvestigationPipeline(
        settings,
        extractor=ContentExtractor(settings),
        classifier=InvestigationTypeClassifier(settings, llm=FakeListChatModel(
            responses=['{"investigation_type": "claim-verification"}']
        )),
        router=AgentRouter(settings, tools=StubTools(), llm=ScriptedChatModel([final_message(FINAL)])),
    )


def test_health_check():
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "operational"
    assert data["version"] == config.VERSION


def test_empty_messages_is_rejected_without_any_work():
    pipeline = MagicMock()
    pipeline.prepare = AsyncMock()
    app.dependency_overrides[endpoints.get_pipeline] = lambda: pipeline

    response = client.post(f"{API}/investigate", json={"messages": []})

    assert response.status_code == 400
    assert response.json() == {"error": "Messages array is required"}
    pipeline.prepare.assert_not_called()


def test_last_message_must_come_from_user():
    pipeline = MagicMock()
    pipeline.prepare = AsyncMock()
    app.dependency_overrides[endpoints.get_pipeline] = lambda: pipeline

    response = client.post(f"{API}/investigate", json={"messages": [
        {"role": "user", "content": "Is the Eiffel Tower in Berlin?"},
        {"role": "assistant", "content": "Let me check."},
    ]})

    assert response.status_code == 400
    assert response.json() == {"error": "Last message must be from user"}
    pipeline.prepare.assert_not_called()


def test_investigate_streams_events(settings):
    app.dependency_overrides[endpoints.get_pipeline] = lambda: _fake_pipeline(settings)

    response = client.post(f"{API}/investigate", json={"messages": [
        {"role": "user", "content": "Hi"},
        {"role": "assistant", "content": "Hello! Send me something to check."},
        {"role": "user", "parts": [{"type": "text", "text": "The Eiffel Tower is in Berlin."}]},
    ]})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    frames = _frames(response)
    assert [f["type"] for f in frames] == ["sources", "investigation-type", "result"]
    assert frames[1]["investigationType"] == "claim-verification"
    assert frames[-1]["result"]["verdict"] == "false"
    assert frames[-1]["result"]["truthfulnessScore"] == 20


def test_investigate_accepts_direct_content(settings):
    app.dependency_overrides[endpoints.get_pipeline] = lambda: _fake_pipeline(settings)
    response = client.post(f"{API}/investigate", json={"content": "The Eiffel Tower is in Berlin."})
    assert response.status_code == 200
    assert _frames(response)[-1]["type"] == "result"


def test_investigate_reports_total_extraction_failure(settings):
    app.dependency_overrides[endpoints.get_pipeline] = lambda: _fake_pipeline(settings)
    response = client.post(f"{API}/investigate", json={"messages": [
        {"role": "user", "content": "https://x.com/nasa/status/1790000000000000001"},
    ]})
    assert response.status_code == 400
    assert response.json()["error"].startswith("No content could be extracted")


def test_analyze_text_returns_valid_spans():
    text = "Unemployment fell to 3.5% in 2019."
    spans = [
        {"start": 0, "end": len(text), "type": "fact", "shortExplanation": "Statistic", "confidence": 0.9},
        {"start": 5, "end": 500, "type": "bias", "shortExplanation": "Out of range", "confidence": 0.5},
    ]
    analyzer = SpanAnalyzer(Config(), llm=FakeListChatModel(responses=[json.dumps({"spans": spans})]))
    app.dependency_overrides[endpoints.get_span_analyzer] = lambda: analyzer

    response = client.post(f"{API}/analyze-text", json={"text": text})

    assert response.status_code == 200
    data = response.json()
    assert data["text"] == text
    assert [(s["start"], s["end"]) for s in data["spans"]] == [(0, len(text))]


def test_analyze_text_requires_text():
    response = client.post(f"{API}/analyze-text", json={"text": 42})
    assert response.status_code == 400
    assert response.json() == {"error": "Request body must include a text string."}


def test_verify_claim_contradicted():
    settings = Config(TAVILY_API_KEY="tvly-test")
    search = WebSearchTool(settings, client=FakeTavilyClient(results=[
        {"title": "Eiffel Tower - Wikipedia", "url": "https://en.wikipedia.org/wiki/Eiffel_Tower",
         "content": "The Eiffel Tower is a wrought-iron lattice tower on the Champ de Mars in Paris, France."},
    ]))
    llm = FakeListChatModel(responses=[json.dumps({
        "verdict": "contradicted",
        "confidence": 0.96,
        "explanation": "It is in Paris.",
        "evidence": [{"quote": "on the Champ de Mars in Paris", "sourceTitle": "Wikipedia"}],
        "sources": [{"title": "Eiffel Tower - Wikipedia", "url": "https://en.wikipedia.org/wiki/Eiffel_Tower"}],
    })])
    app.dependency_overrides[endpoints.get_claim_verifier] = lambda: ClaimVerificationAgent(settings, search=search, llm=llm)

    response = client.post(f"{API}/verify-claim", json={"claim": "The Eiffel Tower is in Berlin."})

    assert response.status_code == 200
    data = response.json()
    assert data["verdict"] == "contradicted"
    assert len(data["sources"]) >= 1
    assert data["evidence"][0]["sourceTitle"] == "Wikipedia"


def test_verify_claim_requires_claim():
    response = client.post(f"{API}/verify-claim", json={"context": "no claim"})
    assert response.status_code == 400
    assert response.json() == {"error": "Request body must include a claim string."}


def _preview_service(settings, twitter):
    return PreviewService(settings, extractor=ContentExtractor(settings, twitter=twitter))


def test_preview_tweet(settings):
    twitter = AsyncMock()
    twitter.fetch_tweet.return_value = ("We have liftoff!", {"username": "nasa", "likes": 10})
    app.dependency_overrides[endpoints.get_preview_service] = lambda: _preview_service(settings, twitter)

    response = client.post(f"{API}/preview", json={"url": "https://twitter.com/nasa/status/1790000000000000001"})

    assert response.status_code == 200
    assert response.json() == {
        "type": "twitter",
        "url": "https://x.com/i/status/1790000000000000001",
        "content": "We have liftoff!",
        "metadata": {"username": "nasa", "likes": 10},
    }


@pytest.mark.parametrize("body,status,error", [
    ({}, 400, "URL is required"),
    ({"url": "https://example.com/article"}, 400,
     "Unsupported URL type. Only Twitter/X and TikTok links can be previewed."),
])
def test_preview_validation(settings, body, status, error):
    app.dependency_overrides[endpoints.get_preview_service] = lambda: _preview_service(settings, AsyncMock())
    response = client.post(f"{API}/preview", json=body)
    assert response.status_code == status
    assert response.json() == {"error": error}


def test_preview_scrape_failure_is_a_server_error(settings):
    twitter = AsyncMock()
    twitter.fetch_tweet.side_effect = ExtractionError("Tweet not found or could not be accessed")
    app.dependency_overrides[endpoints.get_preview_service] = lambda: _preview_service(settings, twitter)

    response = client.post(f"{API}/preview", json={"url": "https://x.com/nasa/status/1"})

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to scrape Twitter: Tweet not found or could not be accessed"}


def test_investigation_history_crud():
    store = InvestigationHistory(client=FakeAsyncRedis())
    app.dependency_overrides[endpoints.get_history] = lambda: store

    saved = client.post(f"{API}/investigations", json={
        "userQuery": "Is the Eiffel Tower in Berlin?",
        "results": {"verdict": "false"},
        "timestamp": 1700000000.0,
    })
    assert saved.status_code == 200
    record_id = saved.json()["id"]

    listed = client.get(f"{API}/investigations").json()
    assert [r["id"] for r in listed] == [record_id]
    assert listed[0]["userQuery"] == "Is the Eiffel Tower in Berlin?"

    assert client.get(f"{API}/investigations/{record_id}").json()["results"] == {"verdict": "false"}
    assert client.delete(f"{API}/investigations/{record_id}").json() == {"deleted": True, "id": record_id}

    missing = client.get(f"{API}/investigations/{record_id}")
    assert missing.status_code == 404
    assert missing.json() == {"error": "Investigation not found"}


def test_invalid_body_is_a_400():
    response = client.post(f"{API}/investigations", json={"results": {}})
    assert response.status_code == 400
    assert "error" in response.json()


def test_investigation_budget_comes_from_the_pipeline_settings():
    pipeline = MagicMock()
    pipeline.settings = Config(MAX_DURATION_SECONDS=7)
    pipeline.prepare = AsyncMock(side_effect=OrchestrationError("Investigation timed out: exceeded the 7 second limit."))
    app.dependency_overrides[endpoints.get_pipeline] = lambda: pipeline

    response = client.post(f"{API}/investigate", json={"content": "The Eiffel Tower is in Berlin."})

    assert response.status_code == 500
    assert response.json() == {"error": "Investigation timed out: exceeded the 7 second limit."}
    assert pipeline.prepare.call_args.kwargs["deadline"].seconds == 7
