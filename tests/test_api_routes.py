"""
tests/test_api_routes.py — FastAPI Route Integration Tests
============================================================
Public, activity-ingestion and admin routes through the FastAPI
TestClient, backed by the in-memory economy context.

These tests verify:
- Auth guards on admin and ingestion endpoints
- Domain errors mapped to HTTP status codes
- Basic response structure of public endpoints
"""

from __future__ import annotations

import jwt
import pytest

from mypts.api.deps import JWT_ALGORITHM, JWT_SECRET


@pytest.fixture
def non_admin_token():
    return jwt.encode(
        {"sub": "67890", "username": "RegularUser", "is_admin": False},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


# ===========================================================================
# Health endpoint
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


# ===========================================================================
# Auth guards
# ===========================================================================
class TestAdminAuthGuards:
    """Admin endpoints must return 401/403 for missing/invalid/non-admin tokens."""

    ADMIN_GET_ENDPOINTS = [
        "/api/admin/rules",
        "/api/admin/hub/verify",
        "/api/admin/hub/logs",
    ]

    ADMIN_POST_ENDPOINTS = [
        "/api/admin/credit",
        "/api/admin/debit",
        "/api/admin/leaderboard/rebuild",
        "/api/admin/reconciliation",
    ]

    @pytest.mark.parametrize("endpoint", ADMIN_GET_ENDPOINTS)
    def test_get_without_token_returns_401(self, client, endpoint):
        assert client.get(endpoint).status_code == 401

    @pytest.mark.parametrize("endpoint", ADMIN_POST_ENDPOINTS)
    def test_post_without_token_returns_401(self, client, endpoint):
        assert client.post(endpoint, json={}).status_code == 401

    @pytest.mark.parametrize("endpoint", ADMIN_GET_ENDPOINTS)
    def test_non_admin_returns_403(self, client, non_admin_token, endpoint):
        assert client.get(endpoint, headers=_auth(non_admin_token)).status_code == 403

    def test_garbage_token_returns_401(self, client):
        resp = client.get("/api/admin/rules", headers=_auth("not-a-jwt"))
        assert resp.status_code == 401

    def test_service_token_is_not_admin(self, client, service_token):
        resp = client.get("/api/admin/rules", headers=_auth(service_token))
        assert resp.status_code == 403


# ===========================================================================
# Activity ingestion
# ===========================================================================
class TestTrackActivity:
    def test_requires_service_token(self, client, non_admin_token):
        body = {"profile_id": "p1", "activity_type": "platform_join"}
        assert client.post("/api/activities/track", json=body).status_code == 401
        resp = client.post(
            "/api/activities/track", json=body, headers=_auth(non_admin_token)
        )
        assert resp.status_code == 403

    def test_join_then_daily_limit(self, client, service_token):
        body = {"profile_id": "p1", "activity_type": "platform_join"}
        first = client.post("/api/activities/track", json=body, headers=_auth(service_token))
        assert first.status_code == 200
        assert first.json()["awarded"] is True
        assert first.json()["points_earned"] == 100

        second = client.post("/api/activities/track", json=body, headers=_auth(service_token))
        assert second.status_code == 200
        assert second.json()["reason"] == "DAILY_LIMIT"

    def test_reported_by_recorded(self, client, service_token):
        body = {"profile_id": "p1", "activity_type": "referral", "metadata": {"ref": "abc"}}
        client.post("/api/activities/track", json=body, headers=_auth(service_token))
        activities = client.get("/api/profiles/p1/activities").json()["activities"]
        assert activities[0]["metadata"]["reported_by"] == "referral-service"
        assert activities[0]["metadata"]["ref"] == "abc"

    def test_empty_profile_rejected(self, client, service_token):
        body = {"profile_id": "", "activity_type": "platform_join"}
        resp = client.post("/api/activities/track", json=body, headers=_auth(service_token))
        assert resp.status_code == 422


# ===========================================================================
# Admin ledger
# ===========================================================================
class TestAdminLedger:
    def test_credit_then_debit(self, client, admin_token):
        resp = client.post(
            "/api/admin/credit",
            json={"profile_id": "p2", "amount": 500, "description": "bonus"},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 201
        data = resp.json()
        assert data["type"] == "adjustment"
        assert data["metadata"]["admin_id"] == "99999"

        resp = client.post(
            "/api/admin/debit",
            json={"profile_id": "p2", "amount": 200, "type": "spend"},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 201
        assert resp.json()["resulting_balance"] == 300

    def test_overdraw_is_409(self, client, admin_token):
        client.post(
            "/api/admin/credit",
            json={"profile_id": "p2", "amount": 5},
            headers=_auth(admin_token),
        )
        resp = client.post(
            "/api/admin/debit",
            json={"profile_id": "p2", "amount": 6},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 409
        assert resp.json()["error"] == "InsufficientBalance"

    def test_debit_without_account_is_404(self, client, admin_token):
        resp = client.post(
            "/api/admin/debit",
            json={"profile_id": "nobody", "amount": 1},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 404
        assert resp.json()["error"] == "NotFound"

    def test_bad_amount_is_422(self, client, admin_token):
        resp = client.post(
            "/api/admin/credit",
            json={"profile_id": "p2", "amount": 0},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 422

    def test_reverse(self, client, admin_token):
        txn = client.post(
            "/api/admin/credit",
            json={"profile_id": "p3", "amount": 80},
            headers=_auth(admin_token),
        ).json()
        resp = client.post(
            f"/api/admin/transactions/{txn['id']}/reverse",
            json={"reason": "test"},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 201
        assert resp.json()["reverses_transaction_id"] == txn["id"]
        assert client.get("/api/profiles/p3/balance").json()["balance"] == 0

    def test_reverse_unknown_is_404(self, client, admin_token):
        resp = client.post(
            "/api/admin/transactions/4242/reverse",
            json={"reason": "test"},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 404


# ===========================================================================
# Admin hub
# ===========================================================================
class TestAdminHub:
    def test_issue_and_verify(self, client, admin_token):
        resp = client.post(
            "/api/admin/hub/issue",
            json={"amount": 1_000, "reason": "launch"},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 200
        assert resp.json()["total_supply"] == 1_000_001_000

        report = client.get("/api/admin/hub/verify", headers=_auth(admin_token)).json()
        assert report["consistent"] is True

        logs = client.get(
            "/api/admin/hub/logs", params={"action": "ISSUE"}, headers=_auth(admin_token)
        ).json()["logs"]
        assert logs[0]["amount"] == 1_000
        assert logs[0]["admin_id"] == "99999"

    def test_burn_beyond_reserve_is_503(self, client, admin_token):
        resp = client.post(
            "/api/admin/hub/burn",
            json={"amount": 2_000_000_000, "reason": "oops"},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 503

    def test_reprice(self, client, admin_token):
        resp = client.put(
            "/api/admin/hub/value",
            json={"value_per_mypt": 0.05, "reason": "market review"},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 200
        assert resp.json()["value_per_mypt"] == pytest.approx(0.05)

        logs = client.get(
            "/api/admin/hub/logs", params={"action": "UPDATE_VALUE"}, headers=_auth(admin_token)
        ).json()["logs"]
        assert logs[0]["admin_id"] == "99999"

        client.post(
            "/api/admin/credit",
            json={"profile_id": "p8", "amount": 1_000},
            headers=_auth(admin_token),
        )
        assert client.get("/api/profiles/p8/balance").json()["value"] == pytest.approx(50.0)

    @pytest.mark.parametrize("value", [0, -1])
    def test_reprice_rejects_non_positive(self, client, admin_token, value):
        resp = client.put(
            "/api/admin/hub/value",
            json={"value_per_mypt": value, "reason": "oops"},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 422
        assert client.get("/api/hub").json()["value_per_mypt"] == pytest.approx(0.024)

    def test_reprice_requires_admin(self, client, non_admin_token):
        body = {"value_per_mypt": 0.05, "reason": "market review"}
        assert client.put("/api/admin/hub/value", json=body).status_code == 401
        resp = client.put("/api/admin/hub/value", json=body, headers=_auth(non_admin_token))
        assert resp.status_code == 403


# ===========================================================================
# Admin badges, rules, leaderboard, reconciliation
# ===========================================================================
class TestAdminCatalogue:
    def test_badge_create_and_award(self, client, admin_token):
        resp = client.post(
            "/api/admin/badges",
            json={"name": "Founder", "category": "Platform Usage",
                  "requirements": {"type": "manual"}},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 201
        badge_id = resp.json()["id"]

        resp = client.post(
            f"/api/admin/badges/{badge_id}/award",
            json={"profile_id": "p4"},
            headers=_auth(admin_token),
        )
        assert resp.json()["is_completed"] is True

        badges = client.get("/api/profiles/p4/badges", params={"completed_only": True}).json()
        assert [b["name"] for b in badges["badges"]] == ["Founder"]

    def test_badge_patch_and_delete(self, client, admin_token):
        badge_id = client.post(
            "/api/admin/badges",
            json={"name": "Early Bird", "category": "Platform Usage",
                  "requirements": {"type": "manual"}},
            headers=_auth(admin_token),
        ).json()["id"]

        resp = client.patch(
            f"/api/admin/badges/{badge_id}",
            json={"description": "Signed up before launch"},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 200
        assert resp.json()["description"] == "Signed up before launch"
        assert resp.json()["name"] == "Early Bird"

        resp = client.patch(
            f"/api/admin/badges/{badge_id}",
            json={"name": "First Steps"},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 422

        resp = client.delete(f"/api/admin/badges/{badge_id}", headers=_auth(admin_token))
        assert resp.status_code == 204
        assert client.get(f"/api/badges/{badge_id}").status_code == 404

    def test_held_badge_cannot_be_deleted(self, client, admin_token):
        badge_id = client.post(
            "/api/admin/badges",
            json={"name": "Keeper", "category": "Platform Usage",
                  "requirements": {"type": "manual"}},
            headers=_auth(admin_token),
        ).json()["id"]
        client.post(
            f"/api/admin/badges/{badge_id}/award",
            json={"profile_id": "p9"},
            headers=_auth(admin_token),
        )
        resp = client.delete(f"/api/admin/badges/{badge_id}", headers=_auth(admin_token))
        assert resp.status_code == 422
        assert client.get(f"/api/badges/{badge_id}").status_code == 200

    def test_badge_routes_require_admin(self, client, non_admin_token):
        assert client.delete("/api/admin/badges/1").status_code == 401
        resp = client.patch(
            "/api/admin/badges/1", json={"description": "x"}, headers=_auth(non_admin_token)
        )
        assert resp.status_code == 403

    def test_rule_create_and_patch(self, client, admin_token):
        resp = client.post(
            "/api/admin/rules",
            json={"activity_type": "webinar", "points_rewarded": 40},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 201

        resp = client.patch(
            "/api/admin/rules/webinar",
            json={"is_enabled": False},
            headers=_auth(admin_token),
        )
        assert resp.json()["is_enabled"] is False
        public = {r["activity_type"] for r in client.get("/api/rules").json()["rules"]}
        assert "webinar" not in public

    def test_rebuild_and_public_leaderboard(self, client, admin_token):
        for pid, amount in (("a", 30), ("b", 60)):
            client.post(
                "/api/admin/credit",
                json={"profile_id": pid, "amount": amount},
                headers=_auth(admin_token),
            )
        resp = client.post("/api/admin/leaderboard/rebuild", headers=_auth(admin_token))
        assert resp.json() == {"ranked": 2}

        entries = client.get("/api/leaderboard").json()["entries"]
        assert [e["profile_id"] for e in entries] == ["b", "a"]
        rank = client.get("/api/profiles/a/rank").json()
        assert rank["entry"]["rank"] == 2

    def test_reconciliation_dry_run(self, client, admin_token):
        resp = client.post(
            "/api/admin/reconciliation",
            json={"dry_run": True},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "dry_run"


# ===========================================================================
# Public reads
# ===========================================================================
class TestPublicReads:
    def test_unknown_account_404(self, client):
        resp = client.get("/api/profiles/nobody/account")
        assert resp.status_code == 404
        assert resp.json()["error"] == "NotFound"

    def test_balance_has_value(self, client, admin_token):
        client.post(
            "/api/admin/credit",
            json={"profile_id": "p5", "amount": 1_000},
            headers=_auth(admin_token),
        )
        data = client.get("/api/profiles/p5/balance").json()
        assert data["balance"] == 1_000
        assert data["value"] == pytest.approx(24.0)

    def test_milestone_and_stats(self, client):
        milestone = client.get("/api/profiles/p6/milestone").json()
        assert milestone["current_level"] == "Starter"
        stats = client.get("/api/profiles/p6/activities/stats").json()
        assert stats["total_activities"] == 0
        assert len(stats["daily"]) == 7

    def test_unranked_profile_404(self, client):
        assert client.get("/api/profiles/p7/rank").status_code == 404

    def test_unknown_milestone_filter_422(self, client):
        assert client.get("/api/leaderboard/milestone/Overlord").status_code == 422

    def test_badges_and_hub(self, client):
        names = {b["name"] for b in client.get("/api/badges").json()["badges"]}
        assert "First Steps" in names
        assert client.get("/api/hub").json()["reserve_supply"] == 1_000_000_000

    def test_badge_detail(self, client):
        badge = client.get("/api/badges").json()["badges"][0]
        resp = client.get(f"/api/badges/{badge['id']}")
        assert resp.status_code == 200
        assert resp.json()["name"] == badge["name"]
        assert client.get("/api/badges/4242").status_code == 404
