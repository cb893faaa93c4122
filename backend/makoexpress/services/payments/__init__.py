"""
Payments package: MakoPay gateway client, customer charges and driver
settlement payouts.
"""

from makoexpress.services.payments.makopay_client import (
    GatewayConfigurationError,
    GatewayResponse,
    MakoPayClient,
    MakoPayConfig,
    TransactionStatus,
    close_makopay_client,
    get_makopay_client,
)
from makoexpress.services.payments.service import (
    ChargeResult,
    PaymentService,
    PaymentServiceError,
    PaymentValidationError,
    WebhookResult,
    WebhookSignatureError,
)
from makoexpress.services.payments.settlement import (
    PayoutStateError,
    SettlementNotFoundError,
    SettlementService,
    SettlementServiceError,
)

__all__ = [
    "ChargeResult",
    "GatewayConfigurationError",
    "GatewayResponse",
    "MakoPayClient",
    "MakoPayConfig",
    "PaymentService",
    "PaymentServiceError",
    "PaymentValidationError",
    "PayoutStateError",
    "SettlementNotFoundError",
    "SettlementService",
    "SettlementServiceError",
    "TransactionStatus",
    "WebhookResult",
    "WebhookSignatureError",
    "close_makopay_client",
    "get_makopay_client",
]
