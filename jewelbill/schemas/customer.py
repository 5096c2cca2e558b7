from typing import Optional

from pydantic import BaseModel


class CustomerSnapshot(BaseModel):
    """Billing details copied into an invoice at creation time."""

    name: str
    phone: Optional[str] = None
    address: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    email: Optional[str] = None


class CustomerRecord(BaseModel):
    id: str
    shop_id: str
    user_id: Optional[str] = None
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    loyalty_points: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
