from fastapi import APIRouter, Depends, Request

from ..schemas.payment import PaymentEvent, PaymentWebhookResult
from ..services.payment_pipeline import PaymentPipeline
from ..utils.dependencies import get_payment_pipeline, verify_webhook_secret
from ..utils.rate_limiter import limiter, get_rate_limit

router = APIRouter(prefix="/api/payments", tags=["Payments"])


@router.post(
    "/webhook",
    response_model=PaymentWebhookResult,
    dependencies=[Depends(verify_webhook_secret)],
)
@limiter.limit(get_rate_limit("webhook"))
def payment_webhook(
    request: Request,
    event: PaymentEvent,
    pipeline: PaymentPipeline = Depends(get_payment_pipeline),
):
    """
    Payment provider callback. Replays are answered with status "duplicate"
    and cause no second booking, link or e-mail.
    """
    return pipeline.handle(event)
