from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

InvoiceStatus = Literal["paid", "due"]
LoyaltyStatus = Literal["applied", "corrected", "skipped", "failed", "not_applicable"]


class InvoiceItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True, allow_inf_nan=False)

    id: Optional[str] = None  # sent by the billing form, ignored by the database
    description: str = Field(..., min_length=1)
    purity: str
    hsn_code: Optional[str] = Field(default=None, alias="hsnCode")
    gross_weight: float = Field(..., ge=0, alias="grossWeight")
    net_weight: float = Field(..., ge=0, alias="netWeight")
    rate: float = Field(..., ge=0)
    making: float = Field(..., ge=0)
    stone_amount: float = Field(default=0.0, ge=0, alias="stoneAmount")


class CreateInvoiceRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, allow_inf_nan=False)

    shop_id: UUID = Field(..., alias="shopId")
    customer_id: Optional[UUID] = Field(default=None, alias="customerId")
    customer_name: str = Field(..., min_length=1, alias="customerName")
    customer_phone: Optional[str] = Field(default=None, alias="customerPhone")
    customer_email: Optional[EmailStr] = Field(default=None, alias="customerEmail")
    customer_address: Optional[str] = Field(default=None, alias="customerAddress")
    customer_state: Optional[str] = Field(default=None, alias="customerState")
    customer_pincode: Optional[str] = Field(default=None, alias="customerPincode")
    invoice_number: Optional[str] = Field(
        default=None, min_length=1, max_length=50, alias="invoiceNumber"
    )
    items: List[InvoiceItem] = Field(..., min_length=1)
    discount: float = Field(default=0.0, ge=0)
    notes: Optional[str] = Field(default=None, max_length=1000)
    status: InvoiceStatus = "due"
    loyalty_points_redeemed: Optional[int] = Field(
        default=None, ge=0, alias="loyaltyPointsRedeemed"
    )
    # Accepted for compatibility with older clients; points are always
    # recomputed from the stored grand total.
    loyalty_points_earned: Optional[int] = Field(
        default=None, ge=0, alias="loyaltyPointsEarned"
    )

    @field_validator("customer_email", mode="before")
    @classmethod
    def _blank_email_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("customer_phone", mode="before")
    @classmethod
    def _strip_phone(cls, value):
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value


class CreateInvoiceResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    invoice_id: str = Field(..., alias="invoiceId")
    invoice_number: str = Field(..., alias="invoiceNumber")
    grand_total: float = Field(..., alias="grandTotal")
    message: str
    customer_id: Optional[str] = Field(default=None, alias="customerId")
    loyalty_status: LoyaltyStatus = Field(
        default="not_applicable", alias="loyaltyStatus"
    )
    loyalty_points_earned: int = Field(default=0, alias="loyaltyPointsEarned")
    loyalty_points_requested: int = Field(default=0, alias="loyaltyPointsRequested")
    loyalty_points_redeemed: int = Field(default=0, alias="loyaltyPointsRedeemed")


class PersistedInvoice(BaseModel):
    """Result of the atomic invoice-creation procedure."""

    invoice_id: str
    invoice_number: str
    grand_total: float
