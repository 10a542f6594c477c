"""Policy guard for outbound marketplace actions.

Every evaluation is written to the audit log, allowed or not, before the
decision is returned. Rules can be served from an optional Redis cache which
is invalidated whenever a rule is upserted, once during the write and again
after the surrounding transaction commits.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import event

from tradeup_engine.audit import Audited, write_audit_event
from tradeup_engine.errors import InputValidationError
from tradeup_engine.intake.normalizer import normalize_text
from tradeup_engine.policy.defaults import DEFAULT_POLICY_RULES
from tradeup_engine.storage.repos import PolicyRuleDTO, PolicyRuleRepository

if TYPE_CHECKING:
    from redis.asyncio import Redis
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

DEFAULT_ALLOW_CODE = "POLICY_DEFAULT_ALLOW"
DEFAULT_ALLOW_REASON = "No explicit deny rule found"
DEFAULT_POLICY_CACHE_TTL = 300  # 5 minutes

_NON_ALNUM = re.compile(r"[^A-Z0-9]")


@dataclass(frozen=True)
class PolicyDecision:
    """Outcome of evaluating one platform/action pair."""

    platform: str
    action: str
    allowed: bool
    reason: str
    policy_code: str


def policy_code(platform: str, action: str) -> str:
    """Machine-readable code for a rule-backed decision."""
    return (
        f"POLICY_{_NON_ALNUM.sub('_', platform.upper())}_{_NON_ALNUM.sub('_', action.upper())}"
    )


class PolicyRuleCache:
    """Redis read-through cache for policy rule lookups.

    Absent rules are cached too, so default-allow decisions do not hit the
    database on every evaluation.
    """

    def __init__(self, redis: Redis, *, ttl_seconds: int = DEFAULT_POLICY_CACHE_TTL) -> None:
        self._redis = redis
        self._ttl = ttl_seconds
        self._prefix = "policy_rule:"

    def _key(self, platform: str, action: str) -> str:
        return f"{self._prefix}{platform}:{action}"

    async def get(self, platform: str, action: str) -> tuple[bool, PolicyRuleDTO | None]:
        """Return ``(hit, rule)``; ``rule`` is None on a cached miss."""
        try:
            cached = await self._redis.get(self._key(platform, action))
            if cached is None:
                return False, None
            data = json.loads(cached if isinstance(cached, str) else cached.decode())
            if data.get("rule") is None:
                return True, None
            rule = data["rule"]
            reviewed = rule.get("last_reviewed_at")
            return True, PolicyRuleDTO(
                platform=rule["platform"],
                action=rule["action"],
                allowed=bool(rule["allowed"]),
                reason=rule["reason"],
                last_reviewed_at=date.fromisoformat(reviewed) if reviewed else None,
            )
        except Exception as e:
            logger.warning("Failed to read cached policy rule %s:%s: %s", platform, action, e)
            return False, None

    async def put(self, platform: str, action: str, rule: PolicyRuleDTO | None) -> None:
        payload: dict[str, object] = {"rule": None}
        if rule is not None:
            payload["rule"] = {
                "platform": rule.platform,
                "action": rule.action,
                "allowed": rule.allowed,
                "reason": rule.reason,
                "last_reviewed_at": (
                    rule.last_reviewed_at.isoformat() if rule.last_reviewed_at else None
                ),
            }
        try:
            await self._redis.set(self._key(platform, action), json.dumps(payload), ex=self._ttl)
        except Exception as e:
            logger.warning("Failed to cache policy rule %s:%s: %s", platform, action, e)

    async def invalidate(self, platform: str, action: str) -> None:
        try:
            await self._redis.delete(self._key(platform, action))
        except Exception as e:
            logger.warning("Failed to invalidate policy rule %s:%s: %s", platform, action, e)


class PolicyGuard:
    """Evaluates outbound actions against allow/deny rules."""

    def __init__(self, *, cache: PolicyRuleCache | None = None) -> None:
        self._cache = cache
        self._pending_invalidations: set[asyncio.Task[None]] = set()

    def _invalidate_after_commit(self, session: AsyncSession, platform: str, action: str) -> None:
        # A concurrent evaluate may re-cache the old rule before this commit lands.
        cache = self._cache
        if cache is None:
            return
        loop = asyncio.get_running_loop()

        def on_commit(_session: object) -> None:
            task = loop.create_task(cache.invalidate(platform, action))
            self._pending_invalidations.add(task)
            task.add_done_callback(self._pending_invalidations.discard)

        event.listen(session.sync_session, "after_commit", on_commit, once=True)

    async def wait_for_invalidations(self) -> None:
        """Wait for cache invalidations scheduled by committed upserts."""
        if self._pending_invalidations:
            await asyncio.gather(*self._pending_invalidations)

    async def _lookup(self, session: AsyncSession, platform: str, action: str) -> PolicyRuleDTO | None:
        if self._cache is not None:
            hit, rule = await self._cache.get(platform, action)
            if hit:
                return rule
        rule = await PolicyRuleRepository(session).get(platform, action)
        if self._cache is not None:
            await self._cache.put(platform, action, rule)
        return rule

    async def evaluate(
        self,
        session: AsyncSession,
        *,
        platform: str,
        action: str,
        actor_user_id: str,
    ) -> Audited[PolicyDecision]:
        """Decide whether an outbound action is allowed.

        Args:
            session: Transactional session; the decision event is written here.
            platform: Marketplace name.
            action: Action to perform on that marketplace.
            actor_user_id: User requesting the action.

        Returns:
            The decision and its ``policy.decision`` audit event.

        Raises:
            InputValidationError: If platform or action is blank.
            AuditWriteError: If the decision could not be recorded.
        """
        normalized_platform = normalize_text(platform)
        normalized_action = normalize_text(action)
        if not normalized_platform or not normalized_action:
            raise InputValidationError("platform and action are required")

        rule = await self._lookup(session, normalized_platform, normalized_action)
        if rule is None:
            decision = PolicyDecision(
                platform=normalized_platform,
                action=normalized_action,
                allowed=True,
                reason=DEFAULT_ALLOW_REASON,
                policy_code=DEFAULT_ALLOW_CODE,
            )
        else:
            decision = PolicyDecision(
                platform=normalized_platform,
                action=normalized_action,
                allowed=rule.allowed,
                reason=rule.reason,
                policy_code=policy_code(normalized_platform, normalized_action),
            )

        audit_event = await write_audit_event(
            session,
            event_type="policy.decision",
            entity_type="policy_rule",
            entity_id=f"{normalized_platform}:{normalized_action}",
            payload={
                "actorUserId": actor_user_id,
                "allowed": decision.allowed,
                "reason": decision.reason,
                "policyCode": decision.policy_code,
            },
        )
        if not decision.allowed:
            logger.info(
                "Denied %s on %s for %s (%s)",
                normalized_action,
                normalized_platform,
                actor_user_id,
                decision.policy_code,
            )
        return Audited(decision, audit_event)

    async def upsert_rule(
        self,
        session: AsyncSession,
        *,
        platform: str,
        action: str,
        allowed: bool,
        reason: str,
        actor_user_id: str,
        reviewed_on: date | None = None,
    ) -> Audited[PolicyRuleDTO]:
        """Create or replace the rule for a platform/action pair.

        Raises:
            InputValidationError: If any field is missing or ``allowed`` is
                not a boolean.
        """
        normalized_platform = normalize_text(platform)
        normalized_action = normalize_text(action)
        if not normalized_platform or not normalized_action:
            raise InputValidationError("platform and action are required")
        if not isinstance(allowed, bool):
            raise InputValidationError("allowed must be a boolean")
        if not isinstance(reason, str) or not reason.strip():
            raise InputValidationError("reason is required")

        saved = await PolicyRuleRepository(session).upsert(
            PolicyRuleDTO(
                platform=normalized_platform,
                action=normalized_action,
                allowed=allowed,
                reason=reason.strip(),
                last_reviewed_at=reviewed_on or datetime.now(UTC).date(),
            )
        )
        if self._cache is not None:
            await self._cache.invalidate(normalized_platform, normalized_action)
            self._invalidate_after_commit(session, normalized_platform, normalized_action)

        audit_event = await write_audit_event(
            session,
            event_type="critical.policy_rule_upsert",
            entity_type="policy_rule",
            entity_id=f"{normalized_platform}:{normalized_action}",
            payload={"actorUserId": actor_user_id, "allowed": allowed},
        )
        logger.warning(
            "Policy rule %s:%s set to allowed=%s by %s",
            normalized_platform,
            normalized_action,
            allowed,
            actor_user_id,
        )
        return Audited(saved, audit_event)

    async def seed_default_rules(self, session: AsyncSession, *, actor_user_id: str) -> list[PolicyRuleDTO]:
        """Upsert the baseline deny rules for the supported marketplaces."""
        today = datetime.now(UTC).date()
        seeded = []
        for rule in DEFAULT_POLICY_RULES:
            result = await self.upsert_rule(
                session,
                platform=rule.platform,
                action=rule.action,
                allowed=rule.allowed,
                reason=rule.reason,
                actor_user_id=actor_user_id,
                reviewed_on=today,
            )
            seeded.append(result.value)
        logger.info("Seeded %d default policy rules", len(seeded))
        return seeded
