"""Policy guard - allow/deny rules for outbound marketplace actions."""

from tradeup_engine.policy.defaults import DEFAULT_POLICY_RULES
from tradeup_engine.policy.guard import (
    DEFAULT_ALLOW_CODE,
    DEFAULT_ALLOW_REASON,
    PolicyDecision,
    PolicyGuard,
    PolicyRuleCache,
    policy_code,
)

__all__ = [
    "DEFAULT_ALLOW_CODE",
    "DEFAULT_ALLOW_REASON",
    "DEFAULT_POLICY_RULES",
    "PolicyDecision",
    "PolicyGuard",
    "PolicyRuleCache",
    "policy_code",
]
