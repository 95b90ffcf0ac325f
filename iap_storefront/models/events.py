"""State change events delivered to purchase state observers."""

from typing import Optional

from pydantic import BaseModel, Field

from .purchase import PurchaseState


class StateChangeEvent(BaseModel):
    """A single applied purchase state transition."""

    sequence: int = Field(..., description="Store-wide monotonically increasing sequence number")
    product_id: str = Field(..., description="Product ID")
    old_state: PurchaseState = Field(..., description="State before the transition")
    new_state: PurchaseState = Field(..., description="State after the transition")
    reason: Optional[str] = Field(None, description="Reason for the transition")
    timestamp_millis: int = Field(..., description="When the transition was applied (Unix millis)")

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "sequence": 3,
                "product_id": "com.rarcher.rcflowers4u.nonconsumable.flowers.large",
                "old_state": "in_progress",
                "new_state": "purchased",
                "reason": "entitlement verified",
                "timestamp_millis": 1700000000000,
            }
        }
