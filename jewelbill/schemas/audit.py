from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

AuditAction = Literal["CREATE", "UPDATE", "DELETE", "READ"]


class AuditLogEntry(BaseModel):
    shop_id: str
    user_id: str
    action: AuditAction
    entity_type: str
    entity_id: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    ip_address: str = "unknown"
    user_agent: str = "unknown"
    created_at: Optional[str] = None
