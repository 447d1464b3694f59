from pydantic import BaseModel, Field, model_validator
from typing import Optional, Literal


class PaymentEvent(BaseModel):
    """Payment provider callback, one per captured or declined payment"""
    type: Literal["payment.succeeded", "payment.failed"]
    draft_id: str = Field(..., min_length=1, max_length=36)
    payment_intent_id: Optional[str] = Field(None, max_length=255)
    # Captured amount, checked against the draft total when present
    amount_minor: Optional[int] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    upstream_order_id: Optional[str] = Field(None, min_length=1, max_length=255)
    booking_reference: Optional[str] = Field(None, max_length=32)
    failure_reason: Optional[str] = Field(None, max_length=2000)

    @model_validator(mode='after')
    def validate_event(self):
        if self.type == "payment.succeeded" and not self.upstream_order_id:
            raise ValueError("upstream_order_id is required for payment.succeeded")
        if (self.amount_minor is None) != (self.currency is None):
            raise ValueError("amount_minor and currency must be sent together")
        return self


class PaymentWebhookResult(BaseModel):
    status: Literal["processed", "duplicate"]
    booking_id: str
    booking_status: str
    link_token: Optional[str] = None
    confirmation_sent: bool = False
    notification_error: Optional[str] = None
