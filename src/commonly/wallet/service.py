"""Wallet reads and withdrawal initiation.

Crediting earnings and settling pending balances happen in the payments
backend. This service reads the ledger and moves funds from available to
pending when a user asks to withdraw.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from commonly.config import get_settings
from commonly.db.models import Transaction, Wallet
from commonly.timestamps import utcnow

logger = structlog.get_logger()

CENT = Decimal("0.01")

TRANSACTION_TYPES = {"deposit", "withdrawal", "payment", "refund", "referral"}
TRANSACTION_STATUSES = {"pending", "completed", "failed"}


def round_money(value: Decimal | int | float | str) -> Decimal:
    """Quantize to cents, rounding half up."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class TransactionFilters:
    type: str | None = None
    status: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    search: str | None = None


@dataclass(frozen=True)
class TransactionPage:
    transactions: list[Transaction] = field(default_factory=list)
    total: int = 0
    error: str | None = None


@dataclass(frozen=True)
class WithdrawalResult:
    success: bool
    message: str
    transaction_id: str | None = None


async def get_user_wallet(db: AsyncSession, user_id: str) -> Wallet | None:
    """The user's wallet, or None before the first earning created one."""
    result = await db.execute(select(Wallet).where(Wallet.user_id == user_id))
    return result.scalar_one_or_none()


async def get_user_transactions(
    db: AsyncSession,
    user_id: str,
    page: int = 1,
    page_size: int = 10,
    filters: TransactionFilters | None = None,
) -> TransactionPage:
    """Filtered transaction history, newest first.

    ``total`` counts every transaction matching the filters, not just the
    returned page.
    """
    filters = filters or TransactionFilters()
    conditions = [Transaction.user_id == user_id]
    if filters.type:
        conditions.append(Transaction.type == filters.type)
    if filters.status:
        conditions.append(Transaction.status == filters.status)
    if filters.start_date is not None:
        conditions.append(Transaction.created_at >= filters.start_date)
    if filters.end_date is not None:
        conditions.append(Transaction.created_at <= filters.end_date)
    if filters.search and filters.search.strip():
        term = filters.search.strip()
        conditions.append(
            or_(
                Transaction.description.icontains(term, autoescape=True),
                Transaction.id.icontains(term, autoescape=True),
            )
        )

    try:
        total_result = await db.execute(select(func.count()).select_from(Transaction).where(*conditions))
        total = total_result.scalar_one()

        result = await db.execute(
            select(Transaction)
            .where(*conditions)
            .order_by(Transaction.created_at.desc(), Transaction.id.desc())
            .offset((max(page, 1) - 1) * page_size)
            .limit(page_size)
        )
        return TransactionPage(transactions=list(result.scalars().all()), total=total)
    except SQLAlchemyError as exc:
        logger.error("transaction_query_failed", user_id=user_id, error=str(exc))
        return TransactionPage(error=str(exc))


async def initiate_withdrawal(
    db: AsyncSession,
    user_id: str,
    amount: Decimal | int | float | str,
) -> WithdrawalResult:
    """Move ``amount`` from available to pending and record the request.

    Nothing is written when the amount is invalid, the wallet is missing, or
    the available balance does not cover it.
    """
    try:
        amount = round_money(amount)
    except (InvalidOperation, ValueError):
        return WithdrawalResult(success=False, message="Invalid amount")

    minimum = round_money(get_settings().withdrawal_minimum)
    if amount <= 0:
        return WithdrawalResult(success=False, message="Amount must be greater than zero")
    if amount < minimum:
        return WithdrawalResult(success=False, message=f"Minimum withdrawal is {minimum}")

    try:
        result = await db.execute(select(Wallet).where(Wallet.user_id == user_id).with_for_update())
        wallet = result.scalar_one_or_none()
        if wallet is None:
            await db.rollback()
            return WithdrawalResult(success=False, message="Wallet not found")
        if amount > wallet.available_balance:
            await db.rollback()
            return WithdrawalResult(success=False, message="Insufficient balance")

        now = utcnow()
        wallet.available_balance = round_money(wallet.available_balance - amount)
        wallet.pending_balance = round_money(wallet.pending_balance + amount)
        wallet.updated_at = now

        transaction = Transaction(
            user_id=user_id,
            type="withdrawal",
            amount=amount,
            status="pending",
            description=f"Withdrawal of ${amount}",
            created_at=now,
        )
        db.add(transaction)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("withdrawal_failed", user_id=user_id, amount=str(amount), error=str(exc))
        return WithdrawalResult(success=False, message="Withdrawal could not be processed")

    logger.info("withdrawal_initiated", user_id=user_id, amount=str(amount), transaction_id=transaction.id)
    return WithdrawalResult(success=True, message="Withdrawal initiated", transaction_id=transaction.id)
