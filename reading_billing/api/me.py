from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from reading_billing.api.dependencies.auth import get_current_user, get_db, require_roles
from reading_billing.api.dependencies.rate_limit import rate_limited
from reading_billing.core.config import get_settings
from reading_billing.core.exceptions import AppException
from reading_billing.db.models.auth import User
from reading_billing.db.models.enums import Role
from reading_billing.db.models.ledger import Transaction
from reading_billing.schemas.me import (
    AddFundsRequest,
    AddFundsResponse,
    BalanceResponse,
    MeResponse,
    TransactionPageResponse,
    TransactionResponse,
)
from reading_billing.services.funding import create_topup
from reading_billing.services.ledger import get_or_create_client_balance, list_transactions
from reading_billing.services.payment_gateway import PaymentGateway, get_payment_gateway

router = APIRouter(tags=["me"])


def transaction_response(entry: Transaction) -> TransactionResponse:
    return TransactionResponse(
        id=entry.id,
        type=entry.type.value,
        status=entry.status.value,
        amount=entry.amount,
        platform_fee=entry.platform_fee,
        currency=entry.currency,
        session_id=entry.session_id,
        gift_id=entry.gift_id,
        refund_of_id=entry.refund_of_id,
        external_reference=entry.external_reference,
        description=entry.description,
        failure_reason=entry.failure_reason,
        created_at=entry.created_at,
    )


@router.get("/me", response_model=MeResponse)
def me(current_user: User = Depends(get_current_user)) -> MeResponse:
    return MeResponse(user_id=current_user.id, email=current_user.email, role=current_user.role.value)


@router.get("/me/balance", response_model=BalanceResponse)
def my_balance(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> BalanceResponse:
    balance = get_or_create_client_balance(db, user_id=current_user.id)
    db.commit()
    return BalanceResponse(
        balance=balance.balance,
        pending_charges=balance.pending_charges,
        available=balance.balance - balance.pending_charges,
        total_spent=balance.total_spent,
        currency=get_settings().currency,
    )


@router.get("/me/transactions", response_model=TransactionPageResponse)
def my_transactions(
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TransactionPageResponse:
    total, entries = list_transactions(db, user_id=current_user.id, page=page, page_size=page_size)
    return TransactionPageResponse(
        page=page,
        page_size=page_size,
        total=total,
        items=[transaction_response(entry) for entry in entries],
    )


@router.post("/me/funds", response_model=AddFundsResponse, status_code=status.HTTP_201_CREATED)
def add_funds(
    payload: AddFundsRequest,
    current_user: User = Depends(require_roles(Role.CLIENT)),
    _: User = Depends(rate_limited("add_funds")),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> AddFundsResponse:
    try:
        result = create_topup(
            db,
            user=current_user,
            amount=payload.amount,
            gateway=gateway,
            payment_method_id=payload.payment_method_id,
        )
    except AppException:
        db.rollback()
        raise
    db.commit()
    return AddFundsResponse(
        transaction_id=result.transaction_id,
        payment_intent_id=result.payment_intent_id,
        client_secret=result.client_secret,
        amount=result.amount,
        status=result.status.value,
    )
