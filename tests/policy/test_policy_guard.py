"""Tests for the policy guard and its Redis rule cache."""

import json
from datetime import date
from unittest.mock import AsyncMock

import pytest

from tradeup_engine.errors import InputValidationError
from tradeup_engine.policy import (
    DEFAULT_ALLOW_CODE,
    DEFAULT_ALLOW_REASON,
    DEFAULT_POLICY_RULES,
    PolicyGuard,
    PolicyRuleCache,
    policy_code,
)
from tradeup_engine.storage.repos import AuditEventRepository, PolicyRuleRepository


@pytest.fixture
def mock_redis() -> AsyncMock:
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock()
    redis.delete = AsyncMock()
    return redis


class TestPolicyCode:
    def test_normalizes_both_parts(self) -> None:
        assert policy_code("OfferUp", "auto-message") == "POLICY_OFFERUP_AUTO_MESSAGE"
        assert policy_code("etsy", "off_platform_transaction") == (
            "POLICY_ETSY_OFF_PLATFORM_TRANSACTION"
        )


class TestPolicyGuardEvaluate:
    @pytest.mark.asyncio
    async def test_default_allow(self, async_session, actor) -> None:
        result = await PolicyGuard().evaluate(
            async_session, platform="eBay", action="list_item", actor_user_id=actor
        )

        decision = result.value
        assert decision.allowed is True
        assert decision.reason == DEFAULT_ALLOW_REASON
        assert decision.policy_code == DEFAULT_ALLOW_CODE
        assert result.event.event_type == "policy.decision"
        assert result.event.entity_id == "ebay:list_item"
        assert result.event.payload == {
            "actorUserId": actor,
            "allowed": True,
            "reason": DEFAULT_ALLOW_REASON,
            "policyCode": DEFAULT_ALLOW_CODE,
        }

    @pytest.mark.asyncio
    async def test_seeded_deny_rule(self, async_session, actor) -> None:
        guard = PolicyGuard()
        await guard.seed_default_rules(async_session, actor_user_id=actor)

        result = await guard.evaluate(
            async_session,
            platform="etsy",
            action="off_platform_transaction",
            actor_user_id=actor,
        )

        assert result.value.allowed is False
        assert result.value.policy_code == "POLICY_ETSY_OFF_PLATFORM_TRANSACTION"
        assert result.value.reason.startswith("Etsy policy disallows")
        assert result.event.payload["allowed"] is False

    @pytest.mark.asyncio
    async def test_every_decision_is_audited(self, async_session, actor) -> None:
        guard = PolicyGuard()
        await guard.seed_default_rules(async_session, actor_user_id=actor)

        await guard.evaluate(
            async_session, platform="craigslist", action="automated_posting", actor_user_id=actor
        )
        await guard.evaluate(
            async_session, platform="craigslist", action="manual_posting", actor_user_id=actor
        )

        assert await AuditEventRepository(async_session).count(event_type="policy.decision") == 2

    @pytest.mark.asyncio
    async def test_blank_platform_rejected(self, async_session, actor) -> None:
        with pytest.raises(InputValidationError):
            await PolicyGuard().evaluate(
                async_session, platform="  ", action="list_item", actor_user_id=actor
            )


class TestPolicyGuardUpsert:
    @pytest.mark.asyncio
    async def test_upsert_replaces_rule(self, async_session, actor) -> None:
        guard = PolicyGuard()
        await guard.upsert_rule(
            async_session,
            platform="OfferUp",
            action="automated_messaging",
            allowed=False,
            reason="Not allowed",
            actor_user_id=actor,
        )

        result = await guard.upsert_rule(
            async_session,
            platform="offerup",
            action="automated_messaging",
            allowed=True,
            reason="Approved by partner agreement",
            actor_user_id=actor,
            reviewed_on=date(2026, 10, 1),
        )

        assert result.value.allowed is True
        assert result.value.last_reviewed_at == date(2026, 10, 1)
        assert result.event.event_type == "critical.policy_rule_upsert"
        stored = await PolicyRuleRepository(async_session).get("offerup", "automated_messaging")
        assert stored.reason == "Approved by partner agreement"

        decision = await guard.evaluate(
            async_session, platform="offerup", action="automated_messaging", actor_user_id=actor
        )
        assert decision.value.allowed is True
        assert decision.value.policy_code == "POLICY_OFFERUP_AUTOMATED_MESSAGING"

    @pytest.mark.asyncio
    async def test_seed_defaults(self, async_session, actor) -> None:
        seeded = await PolicyGuard().seed_default_rules(async_session, actor_user_id=actor)

        assert len(seeded) == len(DEFAULT_POLICY_RULES)
        assert all(rule.allowed is False for rule in seeded)
        assert all(rule.last_reviewed_at is not None for rule in seeded)

    @pytest.mark.asyncio
    async def test_allowed_must_be_boolean(self, async_session, actor) -> None:
        with pytest.raises(InputValidationError, match="allowed must be a boolean"):
            await PolicyGuard().upsert_rule(
                async_session,
                platform="ebay",
                action="autonomous_checkout",
                allowed="no",
                reason="x",
                actor_user_id=actor,
            )


class TestPolicyRuleCache:
    @pytest.mark.asyncio
    async def test_miss_is_cached(self, async_session, actor, mock_redis: AsyncMock) -> None:
        guard = PolicyGuard(cache=PolicyRuleCache(mock_redis, ttl_seconds=60))

        await guard.evaluate(async_session, platform="ebay", action="list_item", actor_user_id=actor)

        mock_redis.set.assert_awaited_once()
        args, kwargs = mock_redis.set.call_args
        assert args[0] == "policy_rule:ebay:list_item"
        assert json.loads(args[1]) == {"rule": None}
        assert kwargs["ex"] == 60

    @pytest.mark.asyncio
    async def test_hit_skips_database(self, async_session, actor, mock_redis: AsyncMock) -> None:
        mock_redis.get.return_value = json.dumps(
            {
                "rule": {
                    "platform": "ebay",
                    "action": "list_item",
                    "allowed": False,
                    "reason": "Cached deny",
                    "last_reviewed_at": "2026-10-01",
                }
            }
        ).encode()
        guard = PolicyGuard(cache=PolicyRuleCache(mock_redis))

        result = await guard.evaluate(
            async_session, platform="ebay", action="list_item", actor_user_id=actor
        )

        assert result.value.allowed is False
        assert result.value.reason == "Cached deny"
        mock_redis.set.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_upsert_invalidates(self, async_session, actor, mock_redis: AsyncMock) -> None:
        guard = PolicyGuard(cache=PolicyRuleCache(mock_redis))

        await guard.upsert_rule(
            async_session,
            platform="ebay",
            action="list_item",
            allowed=False,
            reason="Paused",
            actor_user_id=actor,
        )

        mock_redis.delete.assert_awaited_once_with("policy_rule:ebay:list_item")

    @pytest.mark.asyncio
    async def test_invalidates_again_after_commit(
        self, async_session, actor, mock_redis: AsyncMock
    ) -> None:
        guard = PolicyGuard(cache=PolicyRuleCache(mock_redis))
        await guard.upsert_rule(
            async_session,
            platform="ebay",
            action="list_item",
            allowed=False,
            reason="Paused",
            actor_user_id=actor,
        )
        # Another reader caches the pre-upsert rule before the commit.
        await PolicyRuleCache(mock_redis).put("ebay", "list_item", None)
        assert mock_redis.delete.await_count == 1

        await async_session.commit()
        await guard.wait_for_invalidations()

        assert mock_redis.delete.await_count == 2
        mock_redis.delete.assert_awaited_with("policy_rule:ebay:list_item")

    @pytest.mark.asyncio
    async def test_rollback_skips_post_commit_invalidation(
        self, async_session, actor, mock_redis: AsyncMock
    ) -> None:
        guard = PolicyGuard(cache=PolicyRuleCache(mock_redis))
        await guard.upsert_rule(
            async_session,
            platform="ebay",
            action="list_item",
            allowed=False,
            reason="Paused",
            actor_user_id=actor,
        )

        await async_session.rollback()
        await guard.wait_for_invalidations()

        assert mock_redis.delete.await_count == 1

    @pytest.mark.asyncio
    async def test_redis_failure_falls_back(self, async_session, actor, mock_redis: AsyncMock) -> None:
        mock_redis.get.side_effect = ConnectionError("redis down")
        mock_redis.set.side_effect = ConnectionError("redis down")
        guard = PolicyGuard(cache=PolicyRuleCache(mock_redis))
        await guard.seed_default_rules(async_session, actor_user_id=actor)

        result = await guard.evaluate(
            async_session, platform="ebay", action="autonomous_checkout", actor_user_id=actor
        )

        assert result.value.allowed is False
