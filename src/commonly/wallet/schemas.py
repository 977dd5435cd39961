"""Pydantic schemas for wallet and referral endpoints."""

from __future__ import annotations

from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field


class WalletResponse(BaseModel):
    user_id: str
    total_earnings: Decimal
    available_balance: Decimal
    pending_balance: Decimal
    platform_credits: Decimal
    has_payout_method: bool
    stripe_connect_id: str | None = None
    updated_at: int | None = None


class WalletEnvelope(BaseModel):
    """``wallet`` is null until the user has earned something."""

    wallet: WalletResponse | None = None


class TransactionResponse(BaseModel):
    id: str
    type: str
    amount: Decimal
    status: str
    description: str | None = None
    created_at: int
    updated_at: int | None = None


class TransactionListResponse(BaseModel):
    transactions: list[TransactionResponse]
    total: int
    page: int
    page_size: int


class WithdrawalRequest(BaseModel):
    amount: Decimal


class WithdrawalResponse(BaseModel):
    success: bool
    message: str
    transaction_id: str | None = None


class CreateReferralRequest(BaseModel):
    event_id: str = Field(..., min_length=1, max_length=128)


class ReferralResponse(BaseModel):
    id: str
    event_id: str
    code: str
    url: str
    created_at: int
    earnings: Decimal
    click_count: int
    conversion_count: int


class CreateReferralResponse(BaseModel):
    referral_id: str
    code: str
    url: str
    created: bool
    share_urls: dict[str, str]


class ReferralListResponse(BaseModel):
    referrals: list[ReferralResponse]


class ReferralStatsResponse(BaseModel):
    period: Literal["week", "month", "year", "all"]
    total_referrals: int
    click_count: int
    conversion_count: int
    total_earnings: Decimal
    conversion_rate: float
