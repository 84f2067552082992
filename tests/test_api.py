import pytest
from fastapi.testclient import TestClient

from studyseries.main import create_app
from studyseries.services import ServiceConfig
from studyseries.storage import InMemorySeriesRepository

from conftest import TABLE_ITEM_ID, flashcard_payload


@pytest.fixture
def client(catalog) -> TestClient:
    app = create_app(repository=InMemorySeriesRepository(), catalog=catalog, config=ServiceConfig())
    return TestClient(app)


def _create_series(client: TestClient, title: str = "Bio", kind: str = "flashcard") -> str:
    response = client.post("/v1/series", json={"title": title, "kind": kind})
    assert response.status_code == 201
    return response.json()["seriesId"]


def _start(client: TestClient, series_id: str, item_ids) -> dict:
    return client.post(f"/v1/series/{series_id}/sessions", json={"itemIds": item_ids})


def test_series_lifecycle_over_http(client) -> None:
    series_id = _create_series(client)
    started = _start(client, series_id, [1, 2])
    assert started.status_code == 201
    session_id = started.json()["sessionId"]
    assert started.json()["itemCount"] == 2

    recorded = client.post(
        f"/v1/series/{series_id}/sessions/{session_id}/interactions",
        json={"itemId": 1, **flashcard_payload("Wrong")},
    )
    assert recorded.status_code == 200
    assert recorded.json()["interaction"]["result"] == "Wrong"

    session = client.get(f"/v1/series/{series_id}/sessions/{session_id}").json()
    assert session["items"][0]["interaction"]["timeSpent"] == 20
    assert session["items"][1]["interaction"] is None

    completed = client.put(f"/v1/series/{series_id}/sessions/{session_id}/complete")
    assert completed.json()["status"] == "completed"
    again = client.put(f"/v1/series/{series_id}/sessions/{session_id}/complete")
    assert again.json()["completedAt"] == completed.json()["completedAt"]

    recipe = client.post(f"/v1/series/{series_id}/recipe", json={"result": ["Wrong"]})
    assert recipe.json()["total"] == 1
    assert recipe.json()["data"][0]["itemId"] == 1

    series = client.get(f"/v1/series/{series_id}").json()
    assert series["completedSessions"] == 1


def test_second_active_session_returns_conflict(client) -> None:
    series_id = _create_series(client)
    _start(client, series_id, [1, 2, 3])

    response = _start(client, series_id, [4, 5])

    assert response.status_code == 409
    assert response.json() == {
        "success": False,
        "error": "conflict",
        "message": f"An active session already exists for series {series_id}",
    }


def test_validation_errors_return_400(client) -> None:
    assert client.post("/v1/series", json={"title": "   "}).status_code == 400
    assert client.post("/v1/series", json={"title": "x" * 201}).status_code == 400
    assert client.post("/v1/series", json={"title": "Bio", "kind": "essay"}).status_code == 400

    series_id = _create_series(client)
    assert _start(client, series_id, []).status_code == 400
    body = _start(client, series_id, [1, 999]).json()
    assert body["error"] == "validation_error"

    session_id = _start(client, series_id, [1]).json()["sessionId"]
    response = client.post(
        f"/v1/series/{series_id}/sessions/{session_id}/interactions",
        json={"itemId": 1, "difficulty": "Easy", "confidence": "High", "timeSpent": -1, "result": "Right"},
    )
    assert response.status_code == 400
    assert client.get("/v1/series", params={"limit": 0}).status_code == 400


def test_unknown_resources_return_404(client) -> None:
    assert client.get("/v1/series/missing").status_code == 404
    series_id = _create_series(client)
    response = client.get(f"/v1/series/{series_id}/sessions/7")
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


def test_delete_only_session_deletes_series(client) -> None:
    series_id = _create_series(client)
    session_id = _start(client, series_id, [1, 2]).json()["sessionId"]

    response = client.delete(f"/v1/series/{series_id}/sessions/{session_id}")

    assert response.json() == {"seriesDeleted": True, "remainingSessions": 0}
    assert client.get(f"/v1/series/{series_id}").status_code == 404


def test_edit_session_over_http(client) -> None:
    series_id = _create_series(client)
    session_id = _start(client, series_id, [1, 2]).json()["sessionId"]

    response = client.put(f"/v1/series/{series_id}/sessions/{session_id}", json={"itemIds": [1, 2, 3]})

    assert response.status_code == 200
    assert response.json()["generatedFrom"] == session_id
    assert response.json()["sessionId"] != session_id
    assert response.json()["itemCount"] == 3


def test_listing_and_filter_options(client) -> None:
    bio = _create_series(client, "Cell biology")
    _start(client, bio, [1])
    _create_series(client, "Chemistry")

    listing = client.get("/v1/series", params={"subject": "Biology", "limit": 5}).json()
    assert [series["seriesId"] for series in listing["data"]] == [bio]
    assert listing["pagination"]["total"] == 1
    assert listing["filters"]["subject"] == "Biology"

    options = client.get("/v1/series/filter-options").json()
    assert "Biology" in options["subjects"]


def test_table_interaction_over_http(client) -> None:
    series_id = _create_series(client, "Heart", kind="table")
    session_id = _start(client, series_id, [TABLE_ITEM_ID]).json()["sessionId"]

    response = client.post(
        f"/v1/series/{series_id}/sessions/{session_id}/interactions",
        json={
            "itemId": TABLE_ITEM_ID,
            "userGrid": [
                [{"text": "Organ", "isFixed": True}, {"text": "Function", "isFixed": True}],
                ["Heart", "Pumps blood"],
            ],
            "difficulty": "Easy",
            "confidenceWhileSolving": "High",
            "timeSpent": 40,
        },
    )

    interaction = response.json()["interaction"]
    assert interaction["isCorrect"] is True
    assert interaction["placementResults"]["accuracy"] == 100
    assert interaction["userGrid"][0][0]["isFixed"] is True

    stats = client.get(f"/v1/series/{series_id}/sessions/{session_id}/stats").json()
    assert stats["tables"]["perfectTables"] == 1


def test_validate_placement_endpoint(client) -> None:
    response = client.post(
        "/v1/placement/validate",
        json={
            "userGrid": [["B", "A"]],
            "referenceTable": {
                "cells": [{"row": 0, "col": 0, "text": "A"}, {"row": 0, "col": 1, "text": "B"}]
            },
        },
    )
    body = response.json()
    assert body["accuracy"] == 0
    assert body["totalCells"] == 2
    assert body["wrongPlacements"][0]["placedAt"] == {"row": 0, "column": 0}
    assert body["wrongPlacements"][0]["correctPosition"] == {"row": 0, "column": 1}


def test_repair_endpoint_reports_nothing_for_clean_data(client) -> None:
    series_id = _create_series(client)
    _start(client, series_id, [1])
    assert client.post("/v1/maintenance/repair-active-sessions").json() == {}
    response = client.post("/v1/maintenance/repair-active-sessions", params={"seriesId": "missing"})
    assert response.status_code == 404


def test_table_layout_endpoint(client) -> None:
    response = client.get(f"/v1/table-items/{TABLE_ITEM_ID}/layout", params={"seed": 5})

    body = response.json()
    assert response.status_code == 200
    assert body["initialGrid"][0][1] == {"text": "Function", "isFixed": True}
    assert body["palette"] == client.get(
        f"/v1/table-items/{TABLE_ITEM_ID}/layout", params={"seed": 5}
    ).json()["palette"]
    assert client.get("/v1/table-items/1/layout").status_code == 404
