from typing import Literal, Optional

from pydantic import BaseModel

PlanTier = Literal["free", "gold", "platinum"]

# Maps a plan limit to the usage counter that tracks it.
USAGE_COUNTERS = {
    "invoices": "invoices_created",
    "customers": "customers_added",
    "staff": "staff_seats_occupied",
    "ai_tokens": "ai_tokens_used",
}


class PlanLimits(BaseModel):
    invoices: int  # -1 for unlimited
    customers: int
    staff: int
    ai_tokens: int


class PlanFeatures(BaseModel):
    ai_insights: bool = False
    custom_branding: bool = False
    priority_support: bool = False
    whatsapp_integration: bool = False


class Plan(BaseModel):
    id: PlanTier
    name: str
    description: str = ""
    price_monthly: float = 0
    price_yearly: float = 0
    limits: PlanLimits
    features: PlanFeatures = PlanFeatures()


class ShopUsage(BaseModel):
    shop_id: str
    period_start: str
    invoices_created: int = 0
    customers_added: int = 0
    staff_seats_occupied: int = 0
    ai_tokens_used: int = 0
    storage_bytes: int = 0
    updated_at: Optional[str] = None


class UsageCheck(BaseModel):
    allowed: bool
    limit: int
    used: int


DEFAULT_FREE_PLAN = Plan(
    id="free",
    name="Starter",
    description="For small shops",
    limits=PlanLimits(invoices=50, customers=100, staff=1, ai_tokens=5000),
)
