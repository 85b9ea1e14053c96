"""Tests for the FastAPI web backend."""

import tempfile
from pathlib import Path

from fastapi.testclient import TestClient

from modguard.config import Settings
from modguard.container import build_services
from web.backend.app.main import create_app

MOD = {"X-Actor-Id": "mod1", "X-Actor-Role": "moderator"}
ADMIN = {"X-Actor-Id": "admin1", "X-Actor-Role": "admin"}
ROOT = {"X-Actor-Id": "root", "X-Actor-Role": "super_admin"}
USER = {"X-Actor-Id": "user9", "X-Actor-Role": "user"}


def _client(tmpdir: str):
    services = build_services(Settings(data_dir=Path(tmpdir)))
    return TestClient(create_app(services)), services


def _flag(client, content_id="b1", headers=MOD, **overrides):
    body = {"content_type": "brand", "content_id": content_id, "user_id": "author1", "reason": "Spam"}
    body.update(overrides)
    return client.post("/api/moderation/flag", json=body, headers=headers)


def test_root_and_health():
    with tempfile.TemporaryDirectory() as tmpdir:
        client, _ = _client(tmpdir)
        with client:
            assert client.get("/").json()["name"] == "modguard API"
            assert client.get("/health").json() == {"status": "healthy"}
            report = client.get("/api/system/health")
            assert report.status_code == 200
            assert report.json()["overall"] == "healthy"
            assert set(report.json()["services"]) == {"audit", "moderation", "analytics", "config", "notification"}


def test_actor_headers_are_required():
    with tempfile.TemporaryDirectory() as tmpdir:
        client, _ = _client(tmpdir)
        with client:
            assert client.get("/api/moderation/queue").status_code == 401
            bad_role = client.get("/api/moderation/queue", headers={"X-Actor-Id": "x", "X-Actor-Role": "root"})
            assert bad_role.status_code == 400
            assert client.get("/api/moderation/queue", headers=USER).status_code == 403


def test_flag_and_list():
    with tempfile.TemporaryDirectory() as tmpdir:
        client, _ = _client(tmpdir)
        with client:
            created = _flag(client, risk_score=65)
            assert created.status_code == 201
            body = created.json()
            assert body["success"]
            assert body["audit_id"]
            assert body["item"]["status"] == "pending"
            assert body["item"]["priority"] == 4

            listing = client.get("/api/moderation/queue", params={"status": "pending"}, headers=MOD)
            assert listing.status_code == 200
            assert listing.json()["total"] == 1

            item_id = body["item"]["id"]
            assert client.get(f"/api/moderation/queue/{item_id}", headers=MOD).json()["id"] == item_id
            assert client.get("/api/moderation/queue/nope", headers=MOD).status_code == 404

            history = client.get("/api/moderation/content/brand/b1/history", headers=MOD)
            assert [i["id"] for i in history.json()] == [item_id]


def test_flag_validation():
    with tempfile.TemporaryDirectory() as tmpdir:
        client, _ = _client(tmpdir)
        with client:
            assert _flag(client, priority=9).status_code == 422
            assert _flag(client, reason="   ").status_code == 422
            assert client.get("/api/moderation/queue", params={"sort_by": "flag_reason"}, headers=MOD).status_code == 422


def test_moderation_flow_and_errors():
    with tempfile.TemporaryDirectory() as tmpdir:
        client, services = _client(tmpdir)
        with client:
            item_id = _flag(client).json()["item"]["id"]

            denied = client.post(f"/api/moderation/queue/{item_id}/moderate", json={"status": "approved"}, headers=USER)
            assert denied.status_code == 403
            assert denied.json()["detail"]["audit_id"]

            escalated = client.post(
                f"/api/moderation/queue/{item_id}/escalate", json={"reason": "Legal"}, headers=MOD
            )
            assert escalated.json()["item"]["status"] == "escalated"

            refused = client.post(f"/api/moderation/queue/{item_id}/moderate", json={"status": "rejected"}, headers=MOD)
            assert refused.status_code == 403

            decided = client.post(
                f"/api/moderation/queue/{item_id}/moderate", json={"status": "rejected", "notes": "Confirmed"}, headers=ADMIN
            )
            assert decided.status_code == 200
            assert decided.json()["item"]["moderator_id"] == "admin1"

            conflict = client.post(f"/api/moderation/queue/{item_id}/moderate", json={"status": "approved"}, headers=ADMIN)
            assert conflict.status_code == 409

            missing = client.post("/api/moderation/queue/nope/moderate", json={"status": "approved"}, headers=MOD)
            assert missing.status_code == 404

            stats = client.get("/api/moderation/queue/stats", headers=MOD).json()
            assert stats["rejected_count"] == 1


def test_bulk_moderation():
    with tempfile.TemporaryDirectory() as tmpdir:
        client, _ = _client(tmpdir)
        with client:
            ids = [_flag(client, content_id=f"b{i}").json()["item"]["id"] for i in range(3)]
            response = client.post(
                "/api/moderation/bulk",
                json={"queue_ids": ids + ["missing"], "status": "approved", "batch_size": 2},
                headers=MOD,
            )
            assert response.status_code == 200
            body = response.json()
            assert body["successful"] == 3
            assert body["failed"] == 1
            assert body["chunks"] == [2, 2]
            assert body["warnings"] == ["1 out of 4 items failed to process"]
            assert body["results"][3]["error"] == "The requested item could not be found."


def test_audit_endpoints_need_admin():
    with tempfile.TemporaryDirectory() as tmpdir:
        client, _ = _client(tmpdir)
        with client:
            _flag(client)
            assert client.get("/api/audit", headers=MOD).status_code == 403

            listing = client.get("/api/audit", params={"action_type": "flag_content"}, headers=ADMIN)
            assert listing.status_code == 200
            entry = listing.json()["entries"][0]
            assert entry["actor_id"] == "mod1"
            assert entry["success"] is True

            assert client.get(f"/api/audit/{entry['id']}", headers=ADMIN).json()["id"] == entry["id"]
            assert client.get("/api/audit/incomplete", headers=ADMIN).json() == []

            exported = client.get("/api/audit/export", params={"format": "csv"}, headers=ADMIN)
            assert exported.headers["content-type"].startswith("text/csv")
            assert "flag_content" in exported.text


def test_analysis_endpoints():
    with tempfile.TemporaryDirectory() as tmpdir:
        client, services = _client(tmpdir)
        with client:
            scored = client.post(
                "/api/analysis/analyze",
                json={"content_type": "cv", "title": "Engineer", "content_data": {"summary": "what the hell"}},
                headers=USER,
            )
            assert scored.status_code == 200
            assert scored.json()["risk_factors"][0]["type"] == "profanity"

            services.content.add_brand(
                "u1", "Acme", tagline="fuck this shit, damn crap",
                description="Buy now! Click here! Free money! Guaranteed!", brand_id="b1",
            )
            flagged = client.post(
                "/api/analysis/autoflag", json={"content_type": "brand", "content_id": "b1", "user_id": "u1"}, headers=MOD
            )
            assert flagged.status_code == 200
            assert flagged.json()["flagged"]
            assert flagged.json()["moderation_queue_id"]

            missing = client.post(
                "/api/analysis/autoflag", json={"content_type": "cv", "content_id": "x", "user_id": "u1"}, headers=MOD
            )
            assert missing.status_code == 404

            stats = client.get("/api/analysis/autoflag/stats", params={"days": 1}, headers=MOD)
            assert stats.json()["total_flagged"] == 1


def test_config_endpoints():
    with tempfile.TemporaryDirectory() as tmpdir:
        client, services = _client(tmpdir)
        with client:
            assert client.get("/api/system/config", headers=ADMIN).status_code == 403
            assert client.patch("/api/system/config", json={"batch_size": 5}, headers=ADMIN).status_code == 403

            updated = client.patch("/api/system/config", json={"batch_size": 5}, headers=ROOT)
            assert updated.status_code == 200
            assert updated.json()["batch_size"] == 5
            assert services.settings.batch_size == 5

            invalid = client.patch("/api/system/config", json={"batch_size": 0}, headers=ROOT)
            assert invalid.status_code == 422

            audit = client.get("/api/audit", params={"action_type": "update_config"}, headers=ROOT).json()
            assert audit["count"] == 3
