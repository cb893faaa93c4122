"""
MakoPay webhook endpoint.

The raw request body is verified against the X-Signature and X-Timestamp
headers before it is parsed, so the bytes that were signed are exactly the
bytes that are checked.
"""

from fastapi import APIRouter, Header, HTTPException, Request, status

from makoexpress.api.deps import DatabaseSession, Gateway
from makoexpress.core.logging import get_logger
from makoexpress.schemas.payments import WebhookAckResponse
from makoexpress.services.payments.makopay_client import GatewayConfigurationError
from makoexpress.services.payments.service import (
    PaymentService,
    PaymentValidationError,
    WebhookSignatureError,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/makopay", response_model=WebhookAckResponse, summary="MakoPay transaction callback")
async def makopay_webhook(
    request: Request,
    db: DatabaseSession,
    gateway: Gateway,
    x_signature: str = Header(""),
    x_timestamp: str = Header(""),
) -> WebhookAckResponse:
    """
    Raises:
        HTTPException: 401 on a bad signature, 400 on a malformed payload,
            503 if no signing secret is configured
    """
    payload = (await request.body()).decode("utf-8", errors="replace")
    try:
        result = await PaymentService(db, gateway).handle_webhook(x_signature, payload, x_timestamp)
    except WebhookSignatureError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e)) from e
    except PaymentValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except GatewayConfigurationError as e:
        logger.error("Webhook received but MakoPay is not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payment service unavailable",
        ) from e

    return WebhookAckResponse(
        transaction_id=result.transaction_id,
        status=result.status,
        matched=result.matched,
    )
