"""Opportunity intake normalization and dedupe fingerprinting."""

from __future__ import annotations

import hashlib
import math
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from tradeup_engine.errors import InputValidationError
from tradeup_engine.payloads import ScalarMapping

NORMALIZATION_VERSION = 1
DEFAULT_TITLE = "untitled"
INTAKE_REQUIRED_MESSAGE = "source, category, location, and positive price are required"

_CENTS = Decimal("0.01")


def normalize_text(value: object) -> str:
    """Trim, lowercase and collapse internal whitespace.

    Non-string input normalizes to the empty string.
    """
    if not isinstance(value, str):
        return ""
    return " ".join(value.split()).lower()


def round_usd(value: float | Decimal) -> Decimal:
    """Round a currency amount half-up to cents."""
    return Decimal(str(value)).quantize(_CENTS, rounding=ROUND_HALF_UP)


def compute_dedupe_key(
    source: str, category: str, location: str, title: str, price_usd: Decimal
) -> str:
    """SHA-256 hex fingerprint over the normalized identity fields."""
    raw = f"{source}|{category}|{location}|{title.lower()}|{price_usd:.2f}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class NormalizedIntake:
    """Canonical form of an intake submission."""

    source: str
    category: str
    location: str
    title: str
    price_usd: Decimal
    dedupe_key: str
    seller_rep_score: float | None = None
    expires_at: datetime | None = None

    @property
    def payload(self) -> ScalarMapping:
        """Immutable snapshot stored with the opportunity."""
        return {
            "source": self.source,
            "category": self.category,
            "location": self.location,
            "title": self.title,
            "price_usd": float(self.price_usd),
            "normalization_version": NORMALIZATION_VERSION,
        }


def _parse_price(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        return None
    price = float(value)
    if not math.isfinite(price) or price <= 0:
        return None
    return price


def _parse_seller_rep(value: Any) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise InputValidationError("seller_rep_score must be a number between 0 and 5")
    score = float(value)
    if not math.isfinite(score) or score < 0 or score > 5:
        raise InputValidationError("seller_rep_score must be a number between 0 and 5")
    return score


def _parse_expires_at(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError as e:
            raise InputValidationError("expires_at must be an ISO-8601 timestamp") from e
    if not isinstance(value, datetime):
        raise InputValidationError("expires_at must be an ISO-8601 timestamp")
    # Stored as UTC; SQLite drops the offset on write.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def normalize_intake(raw: Mapping[str, Any]) -> NormalizedIntake:
    """Normalize a raw intake mapping.

    Args:
        raw: Mapping with ``source``, ``category``, ``location``, ``title``,
            ``price_usd`` and optionally ``seller_rep_score`` / ``expires_at``.

    Returns:
        The normalized intake including its dedupe fingerprint.

    Raises:
        InputValidationError: If any required field is missing or the price
            is not a finite positive number.
    """
    source = normalize_text(raw.get("source"))
    category = normalize_text(raw.get("category"))
    location = normalize_text(raw.get("location"))
    price = _parse_price(raw.get("price_usd"))

    if not source or not category or not location or price is None:
        raise InputValidationError(INTAKE_REQUIRED_MESSAGE)

    raw_title = raw.get("title")
    title = raw_title.strip() if isinstance(raw_title, str) and raw_title.strip() else DEFAULT_TITLE

    price_usd = round_usd(price)
    return NormalizedIntake(
        source=source,
        category=category,
        location=location,
        title=title,
        price_usd=price_usd,
        dedupe_key=compute_dedupe_key(source, category, location, title, price_usd),
        seller_rep_score=_parse_seller_rep(raw.get("seller_rep_score")),
        expires_at=_parse_expires_at(raw.get("expires_at")),
    )
