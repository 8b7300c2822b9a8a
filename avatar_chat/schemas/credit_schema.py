"""Credit ledger, subscription tier, usage and cost estimate schemas."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

TransactionType = Literal["granted", "purchase", "usage", "subscription"]


class CostBreakdown(BaseModel):
    """Per-component surcharges making up a cost estimate."""

    model_config = ConfigDict(frozen=True)

    base: float
    length: float
    image: float
    context: float


class CostEstimate(BaseModel):
    """Advisory credit price of a prospective message."""

    model_config = ConfigDict(frozen=True)

    total_cost: int
    breakdown: CostBreakdown


class CostEstimateRequest(BaseModel):
    """Shape of the message being composed."""

    message_length: int = Field(..., ge=0)
    has_images: bool = False
    context_size: int = Field(default=0, ge=0)


class CreditBalance(BaseModel):
    """Read-only mirror of a user's ledger account."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    user_id: str
    current_balance: int
    total_earned: int
    total_spent: int
    total_purchased: int
    subscription_tier_id: str | None = None


class CreditTransactionResponse(BaseModel):
    """Single ledger audit entry."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    user_id: str
    transaction_type: str
    amount: int
    balance_before: int
    balance_after: int
    source_type: str
    source_id: str | None = None
    description: str | None = None
    created_at: datetime


class CreditTransactionListResponse(BaseModel):
    """Page of ledger entries, newest first."""

    model_config = ConfigDict(frozen=True)

    transactions: list[CreditTransactionResponse]
    limit: int
    offset: int


class CreditPackageResponse(BaseModel):
    """Purchasable credit bundle."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    name: str
    description: str | None = None
    credits: int
    bonus_credits: int
    total_credits: int
    price_cents: int


class PurchaseRequest(BaseModel):
    """Store-verified purchase to be credited to the ledger."""

    package_id: str = Field(..., min_length=1, max_length=64)
    transaction_id: str = Field(..., min_length=1, max_length=64)


class CreditCheckResponse(BaseModel):
    """Advisory answer to "can I afford this?"."""

    model_config = ConfigDict(frozen=True)

    required: int
    sufficient: bool


class SubscriptionTierResponse(BaseModel):
    """Subscription plan as shown in the catalogue."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    name: str
    description: str | None = None
    monthly_credits: int
    max_rollover: int
    price_cents: int
    features: dict[str, Any] = Field(default_factory=dict)
    sort_order: int


class UpdateTierRequest(BaseModel):
    """Move the account to another subscription tier."""

    tier_id: str = Field(..., min_length=1, max_length=64)


class DailyUsage(BaseModel):
    """Usage totals for one UTC day."""

    model_config = ConfigDict(frozen=True)

    date: str
    credits: int
    messages: int


class AvatarUsage(BaseModel):
    """Usage totals for one avatar."""

    model_config = ConfigDict(frozen=True)

    avatar_id: str
    credits: int
    messages: int


class CreditUsageStats(BaseModel):
    """Per-message usage aggregates over a look-back window."""

    model_config = ConfigDict(frozen=True)

    total_messages: int = 0
    total_credits_used: int = 0
    average_credits_per_message: float = 0.0
    total_api_cost_cents: int = 0
    most_used_avatar: str = ""
    most_used_provider: str = ""
    usage_by_day: list[DailyUsage] = Field(default_factory=list)
    usage_by_avatar: list[AvatarUsage] = Field(default_factory=list)
