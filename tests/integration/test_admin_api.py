"""Admin tournament endpoints over HTTP."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy import update

from tgl.db.models import Tournament
from tgl.tournaments.ledger_service import record_gift

pytestmark = pytest.mark.asyncio

BASE = "/api/v1/admin/tournaments"


@pytest_asyncio.fixture
async def admin(make_user):
    return await make_user("root", is_admin=True)


def _create_payload(**overrides) -> dict:
    start = datetime.now(timezone.utc) + timedelta(days=1)
    payload = {
        "name": "Autumn Cup",
        "type": "gift_receiver",
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(days=7)).isoformat(),
        "registration_deadline": start.isoformat(),
        "minimum_gift_value": 500,
        "reward_tiers": [
            {"threshold_amount": 1000, "duration_months": 1},
            {"threshold_amount": 5000, "duration_months": 6},
        ],
    }
    payload.update(overrides)
    return payload


class TestAccess:
    async def test_non_admin_forbidden(self, client, make_user, auth_headers):
        user = await make_user()
        resp = await client.get(BASE, headers=auth_headers(user))
        assert resp.status_code == 403
        assert resp.json()["detail"] == "Admin access required"

    async def test_admin_sees_private(self, client, admin, auth_headers, make_tournament):
        await make_tournament(name="Secret", is_public=False)
        resp = await client.get(BASE, headers=auth_headers(admin))
        assert resp.status_code == 200
        assert [t["name"] for t in resp.json()["tournaments"]] == ["Secret"]


class TestManage:
    async def test_create(self, client, admin, auth_headers):
        resp = await client.post(BASE, json=_create_payload(), headers=auth_headers(admin))

        assert resp.status_code == 201
        body = resp.json()
        assert body["status"] == "upcoming"
        assert body["minimum_gift_value_dollars"] == "5.00"
        assert body["reward_tiers"][1] == {"threshold_amount": 5000, "duration_months": 6}
        assert body["reward_metric"] == "ranking"

    async def test_create_rejects_bad_tiers(self, client, admin, auth_headers):
        payload = _create_payload(
            reward_tiers=[
                {"threshold_amount": 5000, "duration_months": 1},
                {"threshold_amount": 1000, "duration_months": 6},
            ]
        )
        resp = await client.post(BASE, json=payload, headers=auth_headers(admin))
        assert resp.status_code == 400
        assert resp.json()["code"] == "invalid_reward_tiers"

    async def test_create_rejects_bad_window(self, client, admin, auth_headers):
        payload = _create_payload()
        payload["end_date"] = payload["start_date"]
        resp = await client.post(BASE, json=payload, headers=auth_headers(admin))
        assert resp.status_code == 400
        assert resp.json()["code"] == "invalid_tournament_window"

    async def test_update(self, client, admin, auth_headers, make_tournament):
        tournament = await make_tournament(status="upcoming", description="old")

        resp = await client.put(
            f"{BASE}/{tournament.id}",
            json={"name": "Renamed", "description": None, "reward_metric": "max_sent_received"},
            headers=auth_headers(admin),
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["name"] == "Renamed"
        assert body["description"] is None
        assert body["reward_metric"] == "max_sent_received"
        assert body["type"] == "combined"

    async def test_update_scoring_rules_of_running_tournament(
        self, client, admin, auth_headers, make_tournament
    ):
        tournament = await make_tournament(status="active")

        resp = await client.put(
            f"{BASE}/{tournament.id}",
            json={"type": "gift_sender"},
            headers=auth_headers(admin),
        )

        assert resp.status_code == 409
        assert resp.json()["code"] == "tournament_locked"

    async def test_status_transition(self, client, admin, auth_headers, make_tournament):
        tournament = await make_tournament(status="upcoming")

        resp = await client.patch(
            f"{BASE}/{tournament.id}/status", json={"status": "active"}, headers=auth_headers(admin)
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "active"

        resp = await client.patch(
            f"{BASE}/{tournament.id}/status", json={"status": "upcoming"}, headers=auth_headers(admin)
        )
        assert resp.status_code == 409
        assert resp.json()["code"] == "invalid_status_transition"

    async def test_delete(self, client, admin, auth_headers, make_tournament):
        active = await make_tournament()
        finished = await make_tournament(status="completed")

        resp = await client.delete(f"{BASE}/{active.id}", headers=auth_headers(admin))
        assert resp.status_code == 409
        assert resp.json()["code"] == "tournament_locked"

        resp = await client.delete(f"{BASE}/{finished.id}", headers=auth_headers(admin))
        assert resp.status_code == 204

        resp = await client.get(f"/api/v1/tournaments/{finished.id}")
        assert resp.status_code == 404


class TestInspect:
    async def _play(self, db_session, make_tournament, make_user, make_gift, enroll):
        tournament = await make_tournament(type="gift_receiver")
        alice = await make_user("alice", display_name="Alice")
        bob = await make_user("bob")
        await enroll(tournament, alice)
        await enroll(tournament, bob)
        gift = await make_gift(price=100)
        await record_gift(db_session, tournament.id, alice.id, bob.id, gift.id)
        await record_gift(db_session, tournament.id, alice.id, bob.id, gift.id, quantity=2)
        return tournament, alice, bob

    async def test_participants(
        self, client, db_session, admin, auth_headers, make_tournament, make_user, make_gift, enroll
    ):
        tournament, alice, bob = await self._play(db_session, make_tournament, make_user, make_gift, enroll)

        resp = await client.get(f"{BASE}/{tournament.id}/participants", headers=auth_headers(admin))

        assert resp.status_code == 200
        rows = resp.json()
        assert [(r["username"], r["display_name"]) for r in rows] == [("alice", "Alice"), ("bob", None)]
        assert rows[0]["total_gift_value_sent"] == 300
        assert rows[1]["total_gift_value_received"] == 300
        assert rows[1]["status"] == "active"

    async def test_gifts_newest_first(
        self, client, db_session, admin, auth_headers, make_tournament, make_user, make_gift, enroll
    ):
        tournament, _, _ = await self._play(db_session, make_tournament, make_user, make_gift, enroll)

        resp = await client.get(f"{BASE}/{tournament.id}/gifts", headers=auth_headers(admin))

        data = resp.json()
        assert data["total"] == 2
        assert [g["quantity"] for g in data["gifts"]] == [2, 1]

    async def test_stats(
        self, client, db_session, admin, auth_headers, make_tournament, make_user, make_gift, enroll
    ):
        tournament, _, _ = await self._play(db_session, make_tournament, make_user, make_gift, enroll)

        resp = await client.get(f"{BASE}/{tournament.id}/stats", headers=auth_headers(admin))

        data = resp.json()
        assert data["tournament"]["total_gifts_count"] == 2
        assert data["tournament"]["total_gifts_value"] == 300
        assert data["rewards_issued"] == 0
        assert data["audit"]["consistent"] is True

    async def test_stats_report_drift(
        self, client, db_session, admin, auth_headers, make_tournament, make_user, make_gift, enroll
    ):
        tournament, _, _ = await self._play(db_session, make_tournament, make_user, make_gift, enroll)
        await db_session.execute(
            update(Tournament).where(Tournament.id == tournament.id).values(total_gifts_count=7)
        )
        await db_session.commit()

        resp = await client.get(f"{BASE}/{tournament.id}/stats", headers=auth_headers(admin))

        audit = resp.json()["audit"]
        assert audit["consistent"] is False
        assert audit["drift"]["total_gifts_count"] == 5

    async def test_check_badges_then_stats(
        self, client, db_session, admin, auth_headers, make_tournament, make_user, make_gift, enroll
    ):
        tournament, _, bob = await self._play(db_session, make_tournament, make_user, make_gift, enroll)

        resp = await client.post(f"{BASE}/check-badges", headers=auth_headers(admin))
        assert resp.status_code == 200
        assert resp.json() == {"rewards_issued": 1}

        resp = await client.post(f"{BASE}/check-badges", headers=auth_headers(admin))
        assert resp.json() == {"rewards_issued": 0}

        resp = await client.get(f"{BASE}/badge-stats", headers=auth_headers(admin))
        stats = resp.json()
        assert stats["total_rewards"] == 1
        assert stats["by_duration"] == {"2-months": 1}
        recent = stats["recent"][0]
        assert recent["username"] == "bob"
        assert recent["user_id"] == bob.id
        assert recent["tournament_id"] == tournament.id
        assert recent["trigger_amount_dollars"] == "3.00"

    async def test_unknown_tournament(self, client, admin, auth_headers):
        resp = await client.get(f"{BASE}/404/participants", headers=auth_headers(admin))
        assert resp.status_code == 404


class TestVerificationLapse:
    async def test_check_expired(self, client, db_session, admin, auth_headers, make_user):
        now = datetime.now(timezone.utc)
        lapsed = await make_user(is_verified=True, verification_expires_at=now - timedelta(hours=1))
        current = await make_user(is_verified=True, verification_expires_at=now + timedelta(days=3))

        resp = await client.post(f"{BASE}/check-expired", headers=auth_headers(admin))
        assert resp.status_code == 200
        assert resp.json() == {"expired_users": 1, "user_ids": [lapsed.id]}

        await db_session.refresh(lapsed)
        await db_session.refresh(current)
        assert lapsed.is_verified is False
        assert current.is_verified is True

        resp = await client.post(f"{BASE}/check-expired", headers=auth_headers(admin))
        assert resp.json() == {"expired_users": 0, "user_ids": []}

    async def test_check_expired_requires_admin(self, client, make_user, auth_headers):
        user = await make_user()
        resp = await client.post(f"{BASE}/check-expired", headers=auth_headers(user))
        assert resp.status_code == 403
