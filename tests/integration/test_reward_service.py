"""Reward evaluator: tier selection, idempotency, expiry updates, notifications."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy import select

from tgl.database import get_session_factory
from tgl.db.models import TournamentParticipant, User, VerificationBadgeReward
from tgl.tournaments import reward_service
from tgl.tournaments.ledger_service import record_gift
from tgl.tournaments.reward_service import evaluate, get_badge_statistics, trigger_reward_evaluation
from tgl.tournaments.verification_service import add_months

pytestmark = pytest.mark.asyncio

NOW = datetime(2026, 4, 1, 12, 0, tzinfo=timezone.utc)


async def _rewards(db, user_id) -> list[VerificationBadgeReward]:
    result = await db.execute(
        select(VerificationBadgeReward)
        .where(VerificationBadgeReward.user_id == user_id)
        .order_by(VerificationBadgeReward.id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


@pytest_asyncio.fixture
async def receiver_cup(db_session, make_tournament, make_user, make_gift, enroll):
    """gift_receiver tournament with tiers 100/200/1200 and a 50-value gift."""
    tournament = await make_tournament(type="gift_receiver", minimum_gift_value=10)
    alice = await make_user("alice")
    bob = await make_user("bob")
    await enroll(tournament, alice)
    await enroll(tournament, bob)
    gift = await make_gift(price=50)
    return tournament, alice, bob, gift


class TestTierProgression:
    async def test_two_small_gifts_then_second_tier(self, db_session, receiver_cup):
        tournament, alice, bob, gift = receiver_cup

        await record_gift(db_session, tournament.id, alice.id, bob.id, gift.id)
        assert await evaluate(db_session, None, bob.id, tournament.id, now=NOW) is None

        await record_gift(db_session, tournament.id, alice.id, bob.id, gift.id)
        assert await evaluate(db_session, None, bob.id, tournament.id, now=NOW) == 1
        assert await evaluate(db_session, None, bob.id, tournament.id, now=NOW) is None

        await record_gift(db_session, tournament.id, alice.id, bob.id, gift.id, 2)
        assert await evaluate(db_session, None, bob.id, tournament.id, now=NOW) == 2

        rewards = await _rewards(db_session, bob.id)
        assert [r.badge_duration for r in rewards] == [1, 2]
        assert [r.trigger_amount for r in rewards] == [100, 200]
        assert all(r.was_applied for r in rewards)
        assert all(r.reward_type == "tournament_gifts" for r in rewards)

    async def test_crossing_two_tiers_at_once_issues_only_the_highest(self, db_session, receiver_cup):
        tournament, alice, bob, gift = receiver_cup

        await record_gift(db_session, tournament.id, alice.id, bob.id, gift.id, 4)
        assert await evaluate(db_session, None, bob.id, tournament.id, now=NOW) == 2

        rewards = await _rewards(db_session, bob.id)
        assert [r.badge_duration for r in rewards] == [2]

    async def test_sender_does_not_qualify_in_receiver_tournament(self, db_session, receiver_cup):
        tournament, alice, bob, gift = receiver_cup
        await record_gift(db_session, tournament.id, alice.id, bob.id, gift.id, 10)
        assert await evaluate(db_session, None, alice.id, tournament.id, now=NOW) is None

    async def test_max_sent_received_metric(self, db_session, make_tournament, make_user, make_gift, enroll):
        tournament = await make_tournament(type="gift_receiver", reward_metric="max_sent_received")
        alice = await make_user("alice")
        bob = await make_user("bob")
        await enroll(tournament, alice)
        await enroll(tournament, bob)
        gift = await make_gift(price=200)

        await record_gift(db_session, tournament.id, alice.id, bob.id, gift.id)
        assert await evaluate(db_session, None, alice.id, tournament.id, now=NOW) == 2

    async def test_non_participant_gets_nothing(self, db_session, receiver_cup, make_user):
        tournament, *_ = receiver_cup
        outsider = await make_user("outsider")
        assert await evaluate(db_session, None, outsider.id, tournament.id, now=NOW) is None

    async def test_participant_flags_set(self, db_session, receiver_cup):
        tournament, alice, bob, gift = receiver_cup
        await record_gift(db_session, tournament.id, alice.id, bob.id, gift.id, 2)
        await evaluate(db_session, None, bob.id, tournament.id, now=NOW)

        result = await db_session.execute(
            select(TournamentParticipant)
            .where(
                TournamentParticipant.tournament_id == tournament.id,
                TournamentParticipant.user_id == bob.id,
            )
            .execution_options(populate_existing=True)
        )
        participant = result.scalar_one()
        assert participant.has_earned_verification_badge is True
        assert participant.verification_badge_duration == 1
        assert participant.verification_badge_earned_at == NOW


class TestIdempotency:
    async def test_repeated_evaluation_issues_once(self, db_session, receiver_cup):
        tournament, alice, bob, gift = receiver_cup
        await record_gift(db_session, tournament.id, alice.id, bob.id, gift.id, 2)

        results = [await evaluate(db_session, None, bob.id, tournament.id, now=NOW) for _ in range(5)]
        assert results == [1, None, None, None, None]
        assert len(await _rewards(db_session, bob.id)) == 1

    async def test_lost_race_is_rejected_by_unique_constraint(self, db_session, receiver_cup, monkeypatch):
        """Both evaluations get past the idempotency check; storage keeps one reward."""
        tournament, alice, bob, gift = receiver_cup
        await record_gift(db_session, tournament.id, alice.id, bob.id, gift.id, 2)
        monkeypatch.setattr(
            reward_service, "get_highest_awarded_duration", AsyncMock(return_value=None)
        )

        assert await evaluate(db_session, None, bob.id, tournament.id, now=NOW) == 1
        expiry_after_first = (await db_session.get(User, bob.id, populate_existing=True)).verification_expires_at

        assert await evaluate(db_session, None, bob.id, tournament.id, now=NOW) is None

        assert len(await _rewards(db_session, bob.id)) == 1
        user = await db_session.get(User, bob.id, populate_existing=True)
        assert user.verification_expires_at == expiry_after_first

    async def test_parallel_evaluations_issue_one_reward(self, db_session, receiver_cup):
        tournament, alice, bob, gift = receiver_cup
        await record_gift(db_session, tournament.id, alice.id, bob.id, gift.id, 2)
        session_factory = get_session_factory()

        async def run() -> int | None:
            async with session_factory() as session:
                return await evaluate(session, None, bob.id, tournament.id, now=NOW)

        results = await asyncio.gather(*(run() for _ in range(8)))

        assert results.count(1) == 1
        assert results.count(None) == 7
        assert len(await _rewards(db_session, bob.id)) == 1
        user = await db_session.get(User, bob.id, populate_existing=True)
        assert user.verification_expires_at == add_months(NOW, 1)


class TestVerificationUpdate:
    async def test_unverified_user_starts_now(self, db_session, receiver_cup):
        tournament, alice, bob, gift = receiver_cup
        await record_gift(db_session, tournament.id, alice.id, bob.id, gift.id, 2)
        await evaluate(db_session, None, bob.id, tournament.id, now=NOW)

        user = await db_session.get(User, bob.id, populate_existing=True)
        assert user.is_verified is True
        assert user.verified_at == NOW
        assert user.verification_expires_at == add_months(NOW, 1)
        assert user.verified_by is None
        assert user.verification_method == "tournament_reward"

        reward = (await _rewards(db_session, bob.id))[0]
        assert reward.old_verification_expires_at is None
        assert reward.new_verification_expires_at == add_months(NOW, 1)

    async def test_valid_verification_is_extended(
        self, db_session, make_tournament, make_user, make_gift, enroll
    ):
        tournament = await make_tournament(type="gift_receiver")
        alice = await make_user("alice")
        verified_since = NOW - timedelta(days=100)
        current_expiry = NOW + timedelta(days=10)
        bob = await make_user(
            "bob", is_verified=True, verified_at=verified_since, verification_expires_at=current_expiry
        )
        await enroll(tournament, alice)
        await enroll(tournament, bob)
        gift = await make_gift(price=100)

        await record_gift(db_session, tournament.id, alice.id, bob.id, gift.id)
        await evaluate(db_session, None, bob.id, tournament.id, now=NOW)

        user = await db_session.get(User, bob.id, populate_existing=True)
        assert user.verification_expires_at == add_months(current_expiry, 1)
        assert user.verified_at == verified_since

        reward = (await _rewards(db_session, bob.id))[0]
        assert reward.old_verification_expires_at == current_expiry

    async def test_rewards_stack_additively(self, db_session, receiver_cup):
        tournament, alice, bob, gift = receiver_cup
        await record_gift(db_session, tournament.id, alice.id, bob.id, gift.id, 2)
        await evaluate(db_session, None, bob.id, tournament.id, now=NOW)
        await record_gift(db_session, tournament.id, alice.id, bob.id, gift.id, 2)
        await evaluate(db_session, None, bob.id, tournament.id, now=NOW)

        user = await db_session.get(User, bob.id, populate_existing=True)
        assert user.verification_expires_at == add_months(add_months(NOW, 1), 2)


class TestNotifications:
    async def test_reward_publishes_notification(self, db_session, receiver_cup):
        tournament, alice, bob, gift = receiver_cup
        redis = AsyncMock()
        await record_gift(db_session, tournament.id, alice.id, bob.id, gift.id, 2)

        await evaluate(db_session, redis, bob.id, tournament.id, now=NOW)

        redis.publish.assert_awaited_once()
        payload = json.loads(redis.publish.await_args.args[1])
        assert payload == {
            "user_id": bob.id,
            "type": "tournament-reward",
            "badge_type": "1-month-verification",
            "tournament_id": tournament.id,
            "duration_months": 1,
        }

    async def test_notification_failure_keeps_reward(self, db_session, receiver_cup):
        tournament, alice, bob, gift = receiver_cup
        redis = AsyncMock()
        redis.publish.side_effect = ConnectionError("redis down")
        await record_gift(db_session, tournament.id, alice.id, bob.id, gift.id, 2)

        assert await evaluate(db_session, redis, bob.id, tournament.id, now=NOW) == 1
        assert len(await _rewards(db_session, bob.id)) == 1

    async def test_no_notification_without_reward(self, db_session, receiver_cup):
        tournament, alice, bob, gift = receiver_cup
        redis = AsyncMock()
        await record_gift(db_session, tournament.id, alice.id, bob.id, gift.id)
        await evaluate(db_session, redis, bob.id, tournament.id, now=NOW)
        redis.publish.assert_not_awaited()


class TestBackgroundTrigger:
    async def test_evaluates_both_sides(self, db_session, make_tournament, make_user, make_gift, enroll):
        tournament = await make_tournament(type="combined")
        alice = await make_user("alice")
        bob = await make_user("bob")
        await enroll(tournament, alice)
        await enroll(tournament, bob)
        gift = await make_gift(price=100)
        await record_gift(db_session, tournament.id, alice.id, bob.id, gift.id)

        await trigger_reward_evaluation(tournament.id, [alice.id, bob.id])

        assert len(await _rewards(db_session, alice.id)) == 1
        assert len(await _rewards(db_session, bob.id)) == 1

    async def test_failure_is_logged_not_raised(self, db_session, receiver_cup, monkeypatch):
        tournament, alice, bob, _ = receiver_cup
        monkeypatch.setattr(reward_service, "evaluate", AsyncMock(side_effect=RuntimeError("boom")))
        await trigger_reward_evaluation(tournament.id, [alice.id, bob.id])


class TestBadgeStatistics:
    async def test_counts_and_recent(self, db_session, receiver_cup):
        tournament, alice, bob, gift = receiver_cup
        await record_gift(db_session, tournament.id, alice.id, bob.id, gift.id, 2)
        await evaluate(db_session, None, bob.id, tournament.id, now=NOW)
        await record_gift(db_session, tournament.id, alice.id, bob.id, gift.id, 2)
        await evaluate(db_session, None, bob.id, tournament.id, now=NOW + timedelta(hours=1))

        stats = await get_badge_statistics(db_session)

        assert stats["total_rewards"] == 2
        assert stats["by_duration"] == {"1-month": 1, "2-months": 1}
        assert [r["badge_duration"] for r in stats["recent"]] == [2, 1]
        assert stats["recent"][0]["username"] == "bob"
        assert stats["recent"][0]["trigger_amount_dollars"] == "2.00"

    async def test_empty(self, db_session):
        stats = await get_badge_statistics(db_session)
        assert stats == {"total_rewards": 0, "by_duration": {}, "recent": []}
