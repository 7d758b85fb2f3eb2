"""
tests/test_api_routes.py — FastAPI Route Integration Tests
============================================================
Drives the points and honors endpoints through the FastAPI TestClient
against the seeded SQLite database.

These tests verify:
- Organization header handling
- Error taxonomy → HTTP status mapping
- Response shapes of the write and read endpoints
"""

from __future__ import annotations

from datetime import date

import pytest
from fastapi.testclient import TestClient

from pointkeeper.api.deps import get_config, get_engine
from pointkeeper.config import PointkeeperConfig

from conftest import EAGLES, ORG_ID, record_attendance

HEADERS = {"X-Organization-Id": str(ORG_ID), "X-Actor-Id": "admin-1"}


@pytest.fixture
def client(engine):
    """TestClient whose engine dependency points at the seeded SQLite DB."""
    from pointkeeper.api.main import app

    app.dependency_overrides[get_engine] = lambda: engine
    app.dependency_overrides[get_config] = lambda: PointkeeperConfig(max_batch_size=5)
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


# ===========================================================================
# Health + headers
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestOrganizationHeader:
    def test_missing_header_is_400(self, client):
        resp = client.get("/api/points-data")
        assert resp.status_code == 400

    def test_non_numeric_header_is_422(self, client):
        resp = client.get("/api/points-data", headers={"X-Organization-Id": "abc"})
        assert resp.status_code == 422


# ===========================================================================
# Points
# ===========================================================================
class TestUpdatePoints:
    def test_group_update(self, client, engine):
        record_attendance(engine, date(2024, 1, 10), {1: "present", 2: "absent", 3: "present"})
        resp = client.post("/api/update-points", headers=HEADERS, json=[
            {"type": "group", "id": EAGLES, "points": 5, "date": "2024-01-10"},
        ])
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        [update] = body["data"]["updates"]
        assert update["skippedParticipants"] == [2]
        assert update["memberIds"] == [1, 2, 3]

    def test_not_an_array_is_400(self, client):
        resp = client.post("/api/update-points", headers=HEADERS,
                           json={"type": "group", "id": EAGLES, "points": 5})
        assert resp.status_code == 400
        assert resp.json() == {"success": False, "message": "Updates must be an array"}

    def test_batch_bound_from_config(self, client):
        updates = [{"type": "participant", "id": 1, "points": 1}] * 6
        resp = client.post("/api/update-points", headers=HEADERS, json=updates)
        assert resp.status_code == 400

    def test_attendance_points(self, client):
        resp = client.post("/api/attendance-points", headers=HEADERS, json=[
            {"participantId": 2, "date": "2024-01-10",
             "previousStatus": "absent", "status": "present"},
        ])
        assert resp.status_code == 200
        [update] = resp.json()["data"]["pointUpdates"]
        assert update["points"] == 1
        totals = client.get("/api/points-totals", headers=HEADERS,
                            params={"participant_id": 2}).json()
        assert totals["total_points"] == 1

    def test_attendance_points_bad_status_is_400(self, client):
        resp = client.post("/api/attendance-points", headers=HEADERS, json=[
            {"participant_id": 2, "date": "2024-01-10", "status": "gone"},
        ])
        assert resp.status_code == 400

    def test_unknown_target_is_404(self, client):
        resp = client.post("/api/update-points", headers=HEADERS, json=[
            {"type": "participant", "id": 999, "points": 1},
        ])
        assert resp.status_code == 404
        assert resp.json()["success"] is False


class TestPointReads:
    def _seed(self, client):
        client.post("/api/update-points", headers=HEADERS, json=[
            {"type": "group", "id": EAGLES, "points": 5},
            {"type": "participant", "id": 4, "points": 2},
        ])

    def test_leaderboard_individuals(self, client):
        self._seed(client)
        resp = client.get("/api/points-leaderboard", headers=HEADERS, params={"limit": 2})
        assert resp.status_code == 200
        body = resp.json()
        assert body["type"] == "individuals"
        assert [r["total_points"] for r in body["data"]] == [5, 5]

    def test_leaderboard_groups(self, client):
        self._seed(client)
        resp = client.get("/api/points-leaderboard", headers=HEADERS, params={"type": "groups"})
        assert resp.json()["data"][0]["id"] == EAGLES

    def test_leaderboard_bad_type(self, client):
        resp = client.get("/api/points-leaderboard", headers=HEADERS, params={"type": "teams"})
        assert resp.status_code == 422

    def test_points_data(self, client):
        self._seed(client)
        body = client.get("/api/points-data", headers=HEADERS).json()
        assert {g["name"] for g in body["groups"]} == {"Eagles", "Hawks"}
        assert len(body["participants"]) == 5

    def test_report(self, client):
        self._seed(client)
        body = client.get("/api/points-report", headers=HEADERS).json()
        assert {r["id"]: r["total_points"] for r in body["data"]}[4] == 2

    def test_group_detail(self, client):
        self._seed(client)
        resp = client.get(f"/api/groups/{EAGLES}/points", headers=HEADERS)
        assert resp.json()["data"]["group_points"] == 5

    def test_group_detail_unknown(self, client):
        resp = client.get("/api/groups/999/points", headers=HEADERS)
        assert resp.status_code == 404

    def test_totals(self, client):
        self._seed(client)
        resp = client.get("/api/points-totals", headers=HEADERS, params={"participant_id": 4})
        assert resp.json()["total_points"] == 2

    def test_totals_needs_one_target(self, client):
        resp = client.get("/api/points-totals", headers=HEADERS)
        assert resp.status_code == 400


# ===========================================================================
# Honors
# ===========================================================================
class TestHonorEndpoints:
    def test_award_single_object(self, client):
        resp = client.post("/api/award-honor", headers=HEADERS,
                           json={"participantId": 2, "date": "2024-03-05", "reason": "Kind"})
        assert resp.status_code == 200
        [result] = resp.json()["results"]
        assert result["action"] == "awarded"
        assert result["points"] == 5

    def test_award_list_is_idempotent(self, client):
        payload = [{"participant_id": 1, "date": "2024-03-05"}]
        client.post("/api/award-honor", headers=HEADERS, json=payload)
        resp = client.post("/api/award-honor", headers=HEADERS, json=payload)
        assert resp.json()["results"][0]["action"] == "already_awarded"

    def test_award_missing_date(self, client):
        resp = client.post("/api/award-honor", headers=HEADERS, json={"participant_id": 1})
        assert resp.status_code == 400

    def test_list_update_delete(self, client):
        client.post("/api/award-honor", headers=HEADERS,
                    json={"participant_id": 1, "date": "2024-03-05"})
        listing = client.get("/api/honors", headers=HEADERS,
                             params={"date": "2024-03-05"}).json()["data"]
        [honor] = listing["honors"]

        resp = client.patch(f"/api/honors/{honor['id']}", headers=HEADERS,
                            json={"date": "2024-03-07"})
        assert resp.status_code == 200
        assert resp.json()["data"]["pointsRedated"] == 1

        resp = client.delete(f"/api/honors/{honor['id']}", headers=HEADERS)
        assert resp.status_code == 200
        assert resp.json()["data"]["pointsValue"] == 5
        totals = client.get("/api/points-totals", headers=HEADERS,
                            params={"participant_id": 1}).json()
        assert totals["total_points"] == 0

    def test_update_conflict_is_409(self, client):
        for day in ("2024-03-05", "2024-03-06"):
            client.post("/api/award-honor", headers=HEADERS,
                        json={"participant_id": 1, "date": day})
        honors = client.get("/api/honors", headers=HEADERS).json()["data"]["honors"]
        older = next(h for h in honors if h["date"] == "2024-03-05")
        resp = client.patch(f"/api/honors/{older['id']}", headers=HEADERS,
                            json={"date": "2024-03-06"})
        assert resp.status_code == 409

    def test_update_reason_too_long_is_400(self, client):
        client.post("/api/award-honor", headers=HEADERS,
                    json={"participant_id": 1, "date": "2024-03-05", "reason": "Kind"})
        [honor] = client.get("/api/honors", headers=HEADERS).json()["data"]["honors"]
        resp = client.patch(f"/api/honors/{honor['id']}", headers=HEADERS,
                            json={"reason": "x" * 1001})
        assert resp.status_code == 400
        body = resp.json()
        assert body["success"] is False
        assert "at most" in body["message"]
        [honor] = client.get("/api/honors", headers=HEADERS).json()["data"]["honors"]
        assert honor["reason"] == "Kind"

    def test_delete_unknown_is_404(self, client):
        assert client.delete("/api/honors/404", headers=HEADERS).status_code == 404

    def test_history_and_recent(self, client):
        client.post("/api/award-honor", headers=HEADERS, json=[
            {"participant_id": 1, "date": "2024-03-05"},
            {"participant_id": 2, "date": "2024-03-09"},
        ])
        history = client.get("/api/honors-history", headers=HEADERS,
                             params={"start_date": "2024-03-06"}).json()
        assert [h["participant_id"] for h in history["data"]] == [2]
        recent = client.get("/api/recent-honors", headers=HEADERS).json()["data"]
        assert [h["date"] for h in recent] == ["2024-03-09", "2024-03-05"]


class TestPointRulesEndpoints:
    def test_get_defaults(self, client):
        body = client.get("/api/point-rules", headers=HEADERS).json()
        assert body["data"]["honors"]["award"] == 5

    def test_put_then_award(self, client):
        resp = client.put("/api/point-rules", headers=HEADERS, json={"honors": {"award": 3}})
        assert resp.status_code == 200
        resp = client.post("/api/award-honor", headers=HEADERS,
                           json={"participant_id": 1, "date": "2024-03-05"})
        assert resp.json()["results"][0]["points"] == 3

    def test_put_invalid(self, client):
        resp = client.put("/api/point-rules", headers=HEADERS, json={"honors": {"award": "x"}})
        assert resp.status_code == 400
