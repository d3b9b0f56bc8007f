from fastapi.testclient import TestClient

from screenplay_agent.api.main import create_app
from screenplay_agent.oracle.contract import AuditCorrection, OracleVerdict
from screenplay_agent.types import ElementType


class StubOracle:
    name = "stub"

    async def classify_one(self, line, context):
        return OracleVerdict(element_type=ElementType.ACTION, confidence=0.9)

    async def audit_batch(self, lines):
        return [
            AuditCorrection(
                index=line.index,
                current_type=line.current_type,
                suggested_type=ElementType.SCENE_HEADING_2,
                confidence="high",
                confidence_score=0.8,
            )
            for line in lines
            if line.current_type is ElementType.ACTION
        ]


def test_health_without_oracle(monkeypatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("OLLAMA_BASE_URL", raising=False)
    client = TestClient(create_app())

    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.json() == {
        "status": "ok",
        "oracle_configured": False,
        "oracle_mode": "none",
        "session_count": 0,
    }


def test_ollama_oracle_is_selected_from_environment(monkeypatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.setenv("OLLAMA_BASE_URL", "http://localhost:11434")
    client = TestClient(create_app())

    assert client.get("/health").json()["oracle_mode"] == "ollama"


def test_session_classify_carries_context_between_calls() -> None:
    client = TestClient(create_app(oracle=StubOracle()))

    cue = client.post("/sessions/doc-1/classify", json={"text": "أحمد:"})
    assert cue.status_code == 200
    assert cue.json()["items"][0]["element_type"] == "character"
    assert cue.json()["context"]["in_dialogue"] is True
    assert cue.json()["context"]["previous_type"] == "character"

    line = client.post("/sessions/doc-1/classify", json={"text": "لا أعرف."})
    assert line.json()["items"][0]["element_type"] == "dialogue"

    other = client.post("/sessions/doc-2/classify", json={"text": "لا أعرف."})
    assert other.json()["context"]["last_character"] is None
    assert client.get("/health").json()["session_count"] == 2


def test_batch_and_metrics_endpoints() -> None:
    client = TestClient(create_app(oracle=StubOracle()))

    resp = client.post(
        "/sessions/doc-1/classify/batch",
        json={"lines": ["مشهد 1", "يدخل أحمد إلى الغرفة."], "flavor": "paste"},
    )
    assert resp.status_code == 200
    assert [item["element_type"] for item in resp.json()["items"]] == [
        "scene-heading-1",
        "spacer",
        "action",
    ]

    metrics = client.get("/sessions/doc-1/metrics")
    assert metrics.status_code == 200
    assert metrics.json()["total_classifications"] == 2
    assert "cache" in metrics.json()

    assert client.post("/sessions/doc-1/classify/batch", json={"lines": []}).status_code == 422


def test_audit_endpoint_returns_corrections() -> None:
    client = TestClient(create_app(oracle=StubOracle()))

    resp = client.post(
        "/sessions/doc-1/audit",
        json={
            "lines": [
                {"index": 0, "text": "مشهد 1", "current_type": "scene-heading-1"},
                {"index": 1, "text": "ليل - داخلي", "current_type": "action"},
            ]
        },
    )

    assert resp.status_code == 200
    items = resp.json()["items"]
    assert len(items) == 1
    assert items[0]["index"] == 1
    assert items[0]["suggested_type"] == "scene-heading-2"


def test_unknown_sessions_return_404() -> None:
    client = TestClient(create_app(oracle=StubOracle()))

    assert client.get("/sessions/missing/metrics").status_code == 404
    assert client.delete("/sessions/missing").status_code == 404

    client.post("/sessions/doc-1/classify", json={"text": "مشهد 1"})
    assert client.delete("/sessions/doc-1").json() == {"deleted": "doc-1"}
    assert client.get("/sessions/doc-1/metrics").status_code == 404
