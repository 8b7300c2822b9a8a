"""Credit ledger API router."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from avatar_chat.dependencies import CurrentUser, get_current_user, get_ledger_client
from avatar_chat.schemas.credit_schema import (
    CreditBalance,
    CreditCheckResponse,
    CreditPackageResponse,
    CreditTransactionListResponse,
    CreditUsageStats,
    PurchaseRequest,
    SubscriptionTierResponse,
    UpdateTierRequest,
)
from avatar_chat.schemas.response_schema import (
    ApiResponse,
    error_responses,
    success_response,
)
from avatar_chat.services.ledger_service import CreditLedgerClient

router = APIRouter(prefix="/api/v1/credits", tags=["credits"])

LedgerDep = Annotated[CreditLedgerClient, Depends(get_ledger_client)]
CurrentUserDep = Annotated[CurrentUser, Depends(get_current_user)]


@router.get(
    "/balance",
    response_model=ApiResponse[CreditBalance],
    responses=error_responses(503),
)
async def get_balance(ledger: LedgerDep, user: CurrentUserDep) -> dict:
    """Current credit balance of the user."""
    return success_response(await ledger.get_balance(user.id))


@router.get(
    "/check",
    response_model=ApiResponse[CreditCheckResponse],
    responses=error_responses(503),
)
async def check_credits(
    ledger: LedgerDep,
    user: CurrentUserDep,
    required: int = Query(default=1, ge=1),
) -> dict:
    """Whether the balance covers ``required`` credits. Advisory only."""
    sufficient = await ledger.has_sufficient_credits(user.id, required)
    return success_response(
        CreditCheckResponse(required=required, sufficient=sufficient)
    )


@router.get("/transactions", response_model=ApiResponse[CreditTransactionListResponse])
async def list_transactions(
    ledger: LedgerDep,
    user: CurrentUserDep,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> dict:
    """Ledger entries of the user, newest first."""
    transactions = await ledger.get_transactions(user.id, limit=limit, offset=offset)
    return success_response(
        CreditTransactionListResponse(
            transactions=transactions, limit=limit, offset=offset
        )
    )


@router.get("/packages", response_model=ApiResponse[list[CreditPackageResponse]])
async def list_packages(ledger: LedgerDep, user: CurrentUserDep) -> dict:
    """Purchasable credit packages."""
    return success_response(await ledger.list_packages())


@router.post(
    "/purchase",
    response_model=ApiResponse[CreditBalance],
    responses=error_responses(404, 503),
)
async def purchase(
    body: PurchaseRequest,
    ledger: LedgerDep,
    user: CurrentUserDep,
) -> dict:
    """Credit a verified store purchase to the user."""
    result = await ledger.purchase_package(
        user.id, body.package_id, body.transaction_id
    )
    return success_response(result.unwrap(), message="Credits added")


@router.get(
    "/tiers",
    response_model=ApiResponse[list[SubscriptionTierResponse]],
    responses=error_responses(503),
)
async def list_tiers(ledger: LedgerDep, user: CurrentUserDep) -> dict:
    """Subscription tier catalogue."""
    return success_response(await ledger.list_tiers())


@router.put(
    "/subscription",
    response_model=ApiResponse[CreditBalance],
    responses=error_responses(404, 503),
)
async def update_subscription(
    body: UpdateTierRequest,
    ledger: LedgerDep,
    user: CurrentUserDep,
) -> dict:
    """Move the user to another subscription tier."""
    result = await ledger.update_subscription_tier(user.id, body.tier_id)
    return success_response(result.unwrap(), message="Subscription updated")


@router.get(
    "/usage",
    response_model=ApiResponse[CreditUsageStats],
    responses=error_responses(503),
)
async def usage_stats(
    ledger: LedgerDep,
    user: CurrentUserDep,
    days_back: int = Query(default=30, ge=1, le=365),
) -> dict:
    """Per-message usage aggregates over a look-back window."""
    return success_response(await ledger.get_usage_stats(user.id, days_back))
