from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

EarningType = Literal["flat", "percentage"]


class LoyaltySettings(BaseModel):
    """Per-shop loyalty programme configuration."""

    shop_id: str
    is_enabled: bool = False

    earning_type: EarningType = "flat"
    flat_points_ratio: Optional[float] = Field(
        default=None, ge=0, description="Points per currency unit, e.g. 0.01 = 1 point per 100"
    )
    percentage_back: Optional[float] = Field(
        default=None, ge=0, le=100, description="Percentage of the invoice amount returned as points"
    )

    redemption_enabled: bool = True
    redemption_conversion_rate: float = Field(default=1.0, ge=0)
    max_redemption_percentage: Optional[float] = Field(default=None, ge=0, le=100)
    min_points_required: Optional[int] = Field(default=None, ge=0)
    allowed_categories: Optional[List[str]] = None

    points_validity_days: Optional[int] = Field(default=None, ge=1)

    earn_on_discounted_items: bool = True
    earn_on_full_payment_only: bool = False
    excluded_categories: Optional[List[str]] = None

    updated_at: Optional[str] = None

    def missing_earning_rate(self) -> Optional[str]:
        """Wire name of the rate the earning type needs but lacks, if any."""

        if self.earning_type == "flat" and self.flat_points_ratio is None:
            return "flatPointsRatio"
        if self.earning_type == "percentage" and self.percentage_back is None:
            return "percentageBack"
        return None


class LoyaltySettingsUpdate(BaseModel):
    """Partial update accepted by the settings endpoint (camelCase on the wire)."""

    model_config = ConfigDict(populate_by_name=True, allow_inf_nan=False)

    is_enabled: Optional[bool] = Field(default=None, alias="isEnabled")
    earning_type: Optional[EarningType] = Field(default=None, alias="earningType")
    flat_points_ratio: Optional[float] = Field(default=None, ge=0, alias="flatPointsRatio")
    percentage_back: Optional[float] = Field(default=None, ge=0, le=100, alias="percentageBack")
    redemption_enabled: Optional[bool] = Field(default=None, alias="redemptionEnabled")
    redemption_conversion_rate: Optional[float] = Field(
        default=None, ge=0, alias="redemptionConversionRate"
    )
    max_redemption_percentage: Optional[float] = Field(
        default=None, ge=0, le=100, alias="maxRedemptionPercentage"
    )
    min_points_required: Optional[int] = Field(default=None, ge=0, alias="minPointsRequired")
    points_validity_days: Optional[int] = Field(default=None, ge=1, alias="pointsValidityDays")
    earn_on_discounted_items: Optional[bool] = Field(default=None, alias="earnOnDiscountedItems")
    earn_on_full_payment_only: Optional[bool] = Field(
        default=None, alias="earnOnFullPaymentOnly"
    )


class LoyaltyLedgerEntry(BaseModel):
    id: Optional[str] = None
    customer_id: str
    shop_id: str
    invoice_id: Optional[str] = None
    points_change: int
    reason: str
    created_at: Optional[str] = None


class LoyaltyOutcome(BaseModel):
    """Which branch the loyalty adjustment took for one invoice."""

    status: Literal["applied", "corrected", "skipped"]
    reason: str
    points_earned: int = 0
    points_requested: int = 0
    points_redeemed: int = 0
    balance_before: Optional[int] = None
    balance_after: Optional[int] = None
