"""Wallet and referral API endpoints."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from commonly.auth.dependencies import get_current_user
from commonly.database import get_session
from commonly.db.models import Referral, Transaction, User, Wallet
from commonly.timestamps import from_epoch_ms, to_epoch_ms
from commonly.wallet.referral_service import (
    SHARE_PLATFORMS,
    create_referral_link,
    get_referral_stats,
    get_user_referrals,
    referral_url,
    share_url,
)
from commonly.wallet.schemas import (
    CreateReferralRequest,
    CreateReferralResponse,
    ReferralListResponse,
    ReferralResponse,
    ReferralStatsResponse,
    TransactionListResponse,
    TransactionResponse,
    WalletEnvelope,
    WalletResponse,
    WithdrawalRequest,
    WithdrawalResponse,
)
from commonly.wallet.service import (
    TransactionFilters,
    get_user_transactions,
    get_user_wallet,
    initiate_withdrawal,
)

router = APIRouter(prefix="/api/v1", tags=["Wallet"])


def _wallet_response(wallet: Wallet) -> WalletResponse:
    return WalletResponse(
        user_id=wallet.user_id,
        total_earnings=wallet.total_earnings,
        available_balance=wallet.available_balance,
        pending_balance=wallet.pending_balance,
        platform_credits=wallet.platform_credits,
        has_payout_method=wallet.has_payout_method,
        stripe_connect_id=wallet.stripe_connect_id,
        updated_at=to_epoch_ms(wallet.updated_at),
    )


def _transaction_response(tx: Transaction) -> TransactionResponse:
    return TransactionResponse(
        id=tx.id,
        type=tx.type,
        amount=tx.amount,
        status=tx.status,
        description=tx.description,
        created_at=to_epoch_ms(tx.created_at),
        updated_at=to_epoch_ms(tx.updated_at),
    )


def _referral_response(referral: Referral) -> ReferralResponse:
    return ReferralResponse(
        id=referral.id,
        event_id=referral.event_id,
        code=referral.code,
        url=referral_url(referral.code),
        created_at=to_epoch_ms(referral.created_at),
        earnings=referral.earnings,
        click_count=referral.click_count,
        conversion_count=referral.conversion_count,
    )


@router.get("/wallet", response_model=WalletEnvelope)
async def read_wallet(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """The user's balances; ``wallet`` is null before the first earning."""
    wallet = await get_user_wallet(db, user.uid)
    return WalletEnvelope(wallet=_wallet_response(wallet) if wallet else None)


@router.get("/wallet/transactions", response_model=TransactionListResponse)
async def list_transactions(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    type: str | None = Query(None),  # noqa: A002
    status: str | None = Query(None),
    start_date: int | None = Query(None, description="Epoch ms, inclusive"),
    end_date: int | None = Query(None, description="Epoch ms, inclusive"),
    search: str | None = Query(None, max_length=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Transaction history, newest first, with optional filters."""
    filters = TransactionFilters(
        type=type,
        status=status,
        start_date=from_epoch_ms(start_date),
        end_date=from_epoch_ms(end_date),
        search=search,
    )
    result = await get_user_transactions(db, user.uid, page, page_size, filters)
    if result.error is not None:
        raise HTTPException(status_code=503, detail="Wallet storage unavailable")
    return TransactionListResponse(
        transactions=[_transaction_response(tx) for tx in result.transactions],
        total=result.total,
        page=page,
        page_size=page_size,
    )


@router.post("/wallet/withdrawals", response_model=WithdrawalResponse)
async def request_withdrawal(
    body: WithdrawalRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Request a payout. A refused withdrawal is reported in the body, not as an HTTP error."""
    result = await initiate_withdrawal(db, user.uid, body.amount)
    return WithdrawalResponse(
        success=result.success,
        message=result.message,
        transaction_id=result.transaction_id,
    )


@router.get("/referrals", response_model=ReferralListResponse)
async def list_referrals(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    referrals = await get_user_referrals(db, user.uid)
    return ReferralListResponse(referrals=[_referral_response(r) for r in referrals])


@router.post("/referrals", response_model=CreateReferralResponse)
async def create_referral(
    body: CreateReferralRequest,
    title: str = Query("", max_length=200, description="Event title for share text"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Create (or return) the user's referral link for an event."""
    result = await create_referral_link(db, user.uid, body.event_id)
    if result.error is not None:
        raise HTTPException(status_code=503, detail="Referral could not be created")
    return CreateReferralResponse(
        referral_id=result.referral_id,
        code=result.code,
        url=referral_url(result.code),
        created=result.created,
        share_urls={platform: share_url(platform, result.code, title) for platform in SHARE_PLATFORMS},
    )


@router.get("/referrals/stats", response_model=ReferralStatsResponse)
async def referral_stats(
    period: Literal["week", "month", "year", "all"] = Query("month"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    stats = await get_referral_stats(db, user.uid, period)
    return ReferralStatsResponse(
        period=stats.period,
        total_referrals=stats.total_referrals,
        click_count=stats.click_count,
        conversion_count=stats.conversion_count,
        total_earnings=stats.total_earnings,
        conversion_rate=stats.conversion_rate,
    )
