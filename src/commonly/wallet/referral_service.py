"""Referral links for events and their aggregate stats.

Codes are derived, not random: an HMAC of (user, event) keyed by the
referral secret, so the same pair always maps to the same code.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from urllib.parse import quote

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from commonly.config import get_settings
from commonly.db.models import Referral
from commonly.timestamps import utcnow
from commonly.wallet.service import round_money

logger = structlog.get_logger()

CODE_LENGTH = 10

PERIOD_DAYS = {"week": 7, "month": 30, "year": 365, "all": None}

SHARE_PLATFORMS = ("facebook", "twitter", "linkedin")


@dataclass(frozen=True)
class ReferralResult:
    code: str | None = None
    referral_id: str | None = None
    created: bool = False
    error: str | None = None


@dataclass(frozen=True)
class ReferralStats:
    period: str
    total_referrals: int
    click_count: int
    conversion_count: int
    total_earnings: Decimal
    conversion_rate: float


def generate_referral_code(user_id: str, event_id: str, secret: str | None = None) -> str:
    """Deterministic 10-character base32 code for a (user, event) pair."""
    key = (secret or get_settings().referral_secret).encode()
    digest = hmac.new(key, f"{user_id}:{event_id}".encode(), hashlib.sha256).digest()
    return base64.b32encode(digest).decode().rstrip("=")[:CODE_LENGTH]


def referral_url(code: str) -> str:
    return f"{get_settings().referral_base_url.rstrip('/')}/{code}"


def share_url(platform: str, code: str, title: str) -> str:
    """Social share link for a referral.

    Raises:
        ValueError: If the platform is not supported.
    """
    link = quote(referral_url(code), safe="")
    if platform == "facebook":
        return f"https://www.facebook.com/sharer/sharer.php?u={link}"
    if platform == "twitter":
        text = quote(f"Check out this event: {title}", safe="")
        return f"https://twitter.com/intent/tweet?url={link}&text={text}"
    if platform == "linkedin":
        return f"https://www.linkedin.com/sharing/share-offsite/?url={link}"
    msg = f"Unsupported platform: {platform}. Must be one of {list(SHARE_PLATFORMS)}"
    raise ValueError(msg)


async def _find_referral(db: AsyncSession, user_id: str, event_id: str) -> Referral | None:
    result = await db.execute(
        select(Referral).where(Referral.user_id == user_id, Referral.event_id == event_id)
    )
    return result.scalar_one_or_none()


async def create_referral_link(db: AsyncSession, user_id: str, event_id: str) -> ReferralResult:
    """Create the user's referral for an event, or return the existing one."""
    if not user_id or not event_id:
        return ReferralResult(error="user_id and event_id are required")

    try:
        existing = await _find_referral(db, user_id, event_id)
        if existing is not None:
            return ReferralResult(code=existing.code, referral_id=existing.id, created=False)

        referral = Referral(
            user_id=user_id,
            event_id=event_id,
            code=generate_referral_code(user_id, event_id),
            created_at=utcnow(),
            earnings=Decimal("0.00"),
            click_count=0,
            conversion_count=0,
        )
        db.add(referral)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            winner = await _find_referral(db, user_id, event_id)
            if winner is None:
                raise
            return ReferralResult(code=winner.code, referral_id=winner.id, created=False)
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("referral_create_failed", user_id=user_id, event_id=event_id, error=str(exc))
        return ReferralResult(error=str(exc))

    logger.info("referral_created", user_id=user_id, event_id=event_id, code=referral.code)
    return ReferralResult(code=referral.code, referral_id=referral.id, created=True)


async def get_user_referrals(db: AsyncSession, user_id: str) -> list[Referral]:
    result = await db.execute(
        select(Referral).where(Referral.user_id == user_id).order_by(Referral.created_at.desc())
    )
    return list(result.scalars().all())


async def get_referral_stats(db: AsyncSession, user_id: str, period: str = "month") -> ReferralStats:
    """Aggregate clicks, conversions and earnings over referrals created in ``period``.

    Raises:
        ValueError: If the period is not week, month, year or all.
    """
    if period not in PERIOD_DAYS:
        msg = f"Invalid period: {period}. Must be one of {list(PERIOD_DAYS)}"
        raise ValueError(msg)

    query = select(
        func.count(Referral.id),
        func.coalesce(func.sum(Referral.click_count), 0),
        func.coalesce(func.sum(Referral.conversion_count), 0),
        func.coalesce(func.sum(Referral.earnings), 0),
    ).where(Referral.user_id == user_id)
    days = PERIOD_DAYS[period]
    if days is not None:
        query = query.where(Referral.created_at >= utcnow() - timedelta(days=days))

    row = (await db.execute(query)).one()
    total, clicks, conversions, earnings = row
    clicks, conversions = int(clicks), int(conversions)
    return ReferralStats(
        period=period,
        total_referrals=int(total),
        click_count=clicks,
        conversion_count=conversions,
        total_earnings=round_money(earnings),
        conversion_rate=round(conversions / clicks * 100, 2) if clicks else 0.0,
    )
