"""Credit billing configuration."""

from pydantic import BaseModel


class BillingConfig(BaseModel, frozen=True):
    """Credit ledger settings."""

    initial_user_credits: int
    default_tier_id: str
    charge_lock_seconds: int
