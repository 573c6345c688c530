"""Tests for API endpoints."""

from __future__ import annotations

import json

import numpy as np
from fastapi.testclient import TestClient

from polyreg.main import app
from polyreg.utils.geometry import polygon_features


client = TestClient(app)

SQUARES_AND_RECTANGLES = {
    "lengths": [
        [0.25, 0.25, 0.25, 0.25],
        [0.40, 0.10, 0.40, 0.10],
        [0.25, 0.25, 0.25, 0.25],
        [0.10, 0.40, 0.10, 0.40],
    ],
    "angles": [[0.25, 0.25, 0.25, 0.25]] * 4,
    "n_clusters": 2,
    "n_iter": 60,
    "burn": 30,
    "seed": 1,
}


def _events(body: str) -> list[tuple[str, dict]]:
    events = []
    for block in body.strip().split("\n\n"):
        lines = block.split("\n")
        name = lines[0].removeprefix("event: ")
        data = json.loads(lines[1].removeprefix("data: "))
        events.append((name, data))
    return events


def test_health():
    response = client.get("/api/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["steps_registered"] == 6


def test_cluster():
    response = client.post("/api/cluster", json=SQUARES_AND_RECTANGLES)
    assert response.status_code == 200
    data = response.json()
    assert len(data["cluster"]) == 4
    assert set(data["cluster"]) <= {1, 2}
    assert data["cluster"][0] == data["cluster"][2]
    assert data["cluster"][1] == data["cluster"][3]
    assert data["n_samples"] == 30
    assert len(data["s_trace"]) == 30
    assert set(data["diagnostics"]) == {"ess_loglik", "rhat_loglik", "shift_match_rate"}
    assert data["processing_time_ms"] > 0


def test_cluster_with_options():
    payload = dict(SQUARES_AND_RECTANGLES, options={"init": "kmeans", "template_update": "sample"})
    response = client.post("/api/cluster", json=payload)
    assert response.status_code == 200


def test_cluster_bad_configuration():
    payload = dict(SQUARES_AND_RECTANGLES, n_clusters=0)
    response = client.post("/api/cluster", json=payload)
    assert response.status_code == 422
    assert response.json()["parameter"] == "n_clusters"


def test_cluster_unknown_option():
    payload = dict(SQUARES_AND_RECTANGLES, options={"bogus": 1})
    response = client.post("/api/cluster", json=payload)
    assert response.status_code == 422
    assert response.json()["parameter"] == "options"


def test_cluster_iteration_limit():
    payload = dict(SQUARES_AND_RECTANGLES, n_iter=10_000_000)
    response = client.post("/api/cluster", json=payload)
    assert response.status_code == 422
    assert response.json()["parameter"] == "n_iter"


def test_cluster_stream():
    response = client.post("/api/cluster/stream", json=SQUARES_AND_RECTANGLES)
    assert response.status_code == 200
    events = _events(response.text)
    names = [name for name, _ in events]
    assert names[-2:] == ["result", "done"]
    progress = [data for name, data in events if name == "progress"]
    assert progress[-1]["iteration"] == 60
    result = events[-2][1]
    assert result["n_samples"] == 30


def test_cluster_stream_reports_configuration_error():
    payload = dict(SQUARES_AND_RECTANGLES, burn=60)
    response = client.post("/api/cluster/stream", json=payload)
    events = _events(response.text)
    assert events == [("error", events[0][1])]
    assert events[0][1]["parameter"] == "burn"


def test_reconstruct():
    response = client.post("/api/reconstruct", json={"angles": [0.25] * 4, "lengths": [0.25] * 4})
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "unique"
    assert len(data["polygons"]) == 1
    assert len(data["polygons"][0]) == 4


def test_reconstruct_failure_is_not_an_error():
    response = client.post("/api/reconstruct", json={"angles": [0.3] * 4, "lengths": [0.25] * 4})
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "unreconstructible"
    assert data["polygons"] == []
    assert data["reason"]


def test_reconstruct_malformed():
    response = client.post("/api/reconstruct", json={"angles": [0.5, 0.5], "lengths": [0.5, 0.5]})
    assert response.status_code == 422
    assert response.json()["parameter"] == "angles"


def test_reconstruct_batch():
    response = client.post(
        "/api/reconstruct/batch",
        json={
            "angles": [[0.25] * 4, [0.3] * 4],
            "lengths": [[0.25] * 4, [0.25] * 4],
        },
    )
    assert response.status_code == 200
    data = response.json()
    assert [r["status"] for r in data["results"]] == ["unique", "unreconstructible"]
    assert data["failed"] == 1


def test_reconstruct_tolerances(convex_pentagon):
    lengths, angles = polygon_features(convex_pentagon)
    payload = {
        "angles": np.round(angles, 4).tolist(),
        "lengths": np.round(lengths, 4).tolist(),
        "closure_tol": 1e-2,
    }
    strict = client.post("/api/reconstruct", json=payload)
    assert strict.status_code == 200
    data = strict.json()
    assert data["status"] == "unreconstructible"
    assert "angle_tol" in data["reason"]
    assert data["pruned_turning"] > 0

    loose = client.post("/api/reconstruct", json=dict(payload, angle_tol=1e-2, feature_tol=1e-2, prune_slack=1e-6))
    assert loose.status_code == 200
    assert loose.json()["status"] == "unique"
