"""Baseline marketplace policy rules loaded by ``PolicyGuard.seed_default_rules``."""

from __future__ import annotations

from tradeup_engine.storage.repos import PolicyRuleDTO

DEFAULT_POLICY_RULES: tuple[PolicyRuleDTO, ...] = (
    PolicyRuleDTO(
        platform="etsy",
        action="off_platform_transaction",
        allowed=False,
        reason="Etsy policy disallows off-platform transaction completion for Etsy-originated sales.",
    ),
    PolicyRuleDTO(
        platform="ebay",
        action="autonomous_checkout",
        allowed=False,
        reason="Autonomous end-to-end checkout should remain human-approved unless explicitly permitted.",
    ),
    PolicyRuleDTO(
        platform="craigslist",
        action="automated_posting",
        allowed=False,
        reason="Automated posting or scraping-style activity is disallowed.",
    ),
    PolicyRuleDTO(
        platform="offerup",
        action="automated_messaging",
        allowed=False,
        reason="Automated messaging and transaction automation is disallowed.",
    ),
)
