"""HTTP tests for the parallel-universe routes, with the model replaced by a script."""
import pytest
from fastapi.testclient import TestClient

from conftest import FakeTransport, variant
from multiverse_lab.main import app
from multiverse_lab.models.layout import copy_layout, copy_zone
from multiverse_lab.routes.universes import get_adapter
from multiverse_lab.services.agent_adapter import AgentAdapter


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def script():
    """Install a scripted model behind the routes and hand back its transport."""
    def install(*responses):
        transport = FakeTransport(*responses)
        app.dependency_overrides[get_adapter] = lambda: AgentAdapter(transport=transport, backoff=0, timeout=5)
        return transport
    return install


def _lab_variant(base, equipment, name):
    layout = copy_layout(base)
    layout.zones[0] = copy_zone(layout.zones[0], equipment=equipment)
    return variant(layout, name)


def _universe_payload(layout, label, area):
    data = layout.to_dict()
    data["zones"][0]["area"] = area
    data["zones"][0]["equipment"] = [label.lower()]
    return {"label": label, "layout": data}


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_models(self, client):
        body = client.get("/parallel-universes/models").json()
        assert body["default"] == "claude-sonnet"
        assert "claude-sonnet" in {m["key"] for m in body["models"]}


class TestGenerate:
    def test_generate_returns_universes_with_metrics(self, client, script, base_layout):
        transport = script(
            _lab_variant(base_layout, ["sequencer"], "Genomics"),
            _lab_variant(base_layout, ["centrifuge"], "Bio prep"),
        )
        resp = client.post("/parallel-universes/generate", json={
            "currentLayout": base_layout.to_dict(),
            "decisionPoint": {"description": "lab equipment choice", "kind": "equipment", "zoneIds": ["lab"]},
            "constraints": [{"kind": "area_ceiling", "name": "total area <= 70", "maxArea": 70}],
            "count": 2,
        })
        assert resp.status_code == 200
        universes = resp.json()["universes"]
        assert [u["label"] for u in universes] == ["Genomics", "Bio prep"]
        assert all(u["valid"] for u in universes)
        assert universes[0]["metrics"]["usedArea"] == 60.0
        assert universes[0]["layout"]["provenance"] == "universe:0"
        assert transport.calls == 2

    def test_decision_point_as_plain_text(self, client, script, base_layout):
        script(_lab_variant(base_layout, ["sequencer"], "Genomics"))
        resp = client.post("/parallel-universes/generate", json={
            "currentLayout": base_layout.to_dict(),
            "decisionPoint": "what goes in the lab",
            "count": 1,
        })
        assert resp.status_code == 200
        assert resp.json()["universes"][0]["layout"]["metadata"]["decisionPoint"] == "what goes in the lab"

    def test_unknown_constraint_kind(self, client, script, base_layout):
        transport = script("unused")
        resp = client.post("/parallel-universes/generate", json={
            "currentLayout": base_layout.to_dict(),
            "decisionPoint": "anything",
            "constraints": [{"kind": "feng_shui"}],
        })
        assert resp.status_code == 422
        assert "feng_shui" in resp.json()["error"]
        assert transport.calls == 0

    def test_malformed_body(self, client, script):
        script("unused")
        resp = client.post("/parallel-universes/generate", json={"decisionPoint": "anything"})
        assert resp.status_code == 422
        assert resp.json()["error"].startswith("Invalid request payload")

    def test_adapter_exhausted(self, client, script, base_layout):
        script("sorry, no layout today")
        resp = client.post("/parallel-universes/generate", json={
            "currentLayout": base_layout.to_dict(),
            "decisionPoint": "anything",
            "count": 1,
        })
        assert resp.status_code == 502
        body = resp.json()
        assert body["lastResponse"] == "sorry, no layout today"
        assert body["attempts"] == 3

    def test_unknown_model(self, client, base_layout):
        app.dependency_overrides[get_adapter] = lambda: AgentAdapter(backoff=0)
        resp = client.post("/parallel-universes/generate", json={
            "currentLayout": base_layout.to_dict(),
            "decisionPoint": "anything",
            "modelKey": "no-such-model",
        })
        assert resp.status_code == 400
        assert "no-such-model" in resp.json()["error"]


class TestFuse:
    def test_single_universe_is_rejected(self, client, script, base_layout):
        script("unused")
        resp = client.post("/parallel-universes/fuse", json={
            "universes": [{"label": "only", "layout": base_layout.to_dict()}],
            "fusionStrategy": "best-of-each",
        })
        assert resp.status_code == 400
        assert "error" in resp.json()

    def test_weighted_merge(self, client, script, base_layout):
        script("unused")
        resp = client.post("/parallel-universes/fuse", json={
            "universes": [
                _universe_payload(base_layout, "X", 10),
                _universe_payload(base_layout, "Y", 14),
            ],
            "fusionStrategy": "weighted-merge",
        })
        assert resp.status_code == 200
        body = resp.json()
        lab = body["layout"]["zones"][0]
        assert (lab["area"], lab["equipment"]) == (12.0, ["x", "y"])
        assert body["layout"]["provenance"] == "fusion:weighted-merge"
        assert body["metrics"]["usedArea"] == 32.0

    def test_conservative_overlap_reports_unresolved(self, client, script, base_layout):
        script("unused")
        resp = client.post("/parallel-universes/fuse", json={
            "universes": [
                _universe_payload(base_layout, "X", 40),
                _universe_payload(base_layout, "Y", 40),
            ],
            "fusionStrategy": "conservative-overlap",
        })
        body = resp.json()
        assert resp.status_code == 200
        assert body["layout"]["zones"][0]["needsResolution"] is True
        assert list(body["layout"]["metadata"]["unresolved"]) == ["lab"]

    def test_generative_strategy(self, client, script, base_layout):
        transport = script(variant(base_layout, "Hybrid"))
        resp = client.post("/parallel-universes/fuse", json={
            "universes": [
                _universe_payload(base_layout, "X", 40),
                _universe_payload(base_layout, "Y", 40),
            ],
            "fusionStrategy": "innovative",
        })
        assert resp.status_code == 200
        assert resp.json()["layout"]["provenance"] == "fusion:innovative"
        assert transport.calls == 1

    def test_unknown_strategy(self, client, script, base_layout):
        script("unused")
        resp = client.post("/parallel-universes/fuse", json={
            "universes": [{"layout": base_layout.to_dict()}, {"layout": base_layout.to_dict()}],
            "fusionStrategy": "coin-flip",
        })
        assert resp.status_code == 422
        assert "error" in resp.json()
