"""
MakoPay API client with request signing and retry logic.

This module wraps the MakoPay mobile-money gateway: customer payments, driver
transfers, transaction status polling and webhook signature verification.
Every outbound request is signed with HMAC-SHA256 over
``timestamp + json_payload``. Network and protocol failures never raise out of
the client; they are normalised into a failed GatewayResponse so callers can
treat a gateway outage as an ordinary outcome.
"""

import asyncio
import enum
import hashlib
import hmac
import json
import time
from decimal import Decimal
from typing import Any, Optional, Union

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

from makoexpress.core.config import Settings, get_settings
from makoexpress.core.logging import get_logger, log_performance

logger = get_logger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 502, 503, 504})
UNAVAILABLE_MESSAGE = "Payment service temporarily unavailable"


class GatewayConfigurationError(Exception):
    """Raised when the gateway is used without API credentials."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class GatewayResponse(BaseModel):
    """
    Normalised gateway outcome.

    Unknown or missing statuses are coerced to failed at the boundary so the
    rest of the system only ever sees the three known states.
    """

    success: bool
    transaction_id: str = ""
    status: TransactionStatus = TransactionStatus.FAILED
    message: str = ""
    data: Optional[dict[str, Any]] = None

    @field_validator("status", mode="before")
    @classmethod
    def coerce_status(cls, v: Any) -> TransactionStatus:
        if isinstance(v, TransactionStatus):
            return v
        try:
            return TransactionStatus(str(v).lower())
        except ValueError:
            return TransactionStatus.FAILED

    @field_validator("transaction_id", mode="before")
    @classmethod
    def coerce_transaction_id(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @classmethod
    def failure(cls, message: str, transaction_id: str = "") -> "GatewayResponse":
        return cls(
            success=False,
            transaction_id=transaction_id,
            status=TransactionStatus.FAILED,
            message=message,
        )


class MakoPayConfig(BaseModel):
    """
    Immutable gateway configuration.

    Built once at startup and handed to the client, so business logic never
    reads credentials from the environment.
    """

    model_config = ConfigDict(frozen=True)

    api_key: Optional[str] = None
    secret_key: Optional[str] = None
    merchant_id: str = ""
    base_url: str = "https://api.makopay.ml"
    currency: str = "XOF"
    webhook_url: Optional[str] = None
    timeout_seconds: float = Field(default=10.0, gt=0)
    max_retries: int = Field(default=2, ge=0)
    initial_backoff: float = Field(default=0.5, ge=0)
    max_backoff: float = Field(default=8.0, ge=0)

    @classmethod
    def from_settings(cls, settings: Settings) -> "MakoPayConfig":
        return cls(
            api_key=settings.makopay_api_key,
            secret_key=settings.makopay_secret_key,
            merchant_id=settings.makopay_merchant_id,
            base_url=settings.makopay_base_url.rstrip("/"),
            currency=settings.currency,
            webhook_url=f"{settings.app_url.rstrip('/')}{settings.api_v1_prefix}/webhooks/makopay",
            timeout_seconds=settings.makopay_timeout_seconds,
            max_retries=settings.makopay_max_retries,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.secret_key)


def _json_amount(amount: Union[Decimal, int, float]) -> Union[int, float]:
    value = Decimal(str(amount))
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def sign_payload(secret_key: str, payload: str, timestamp: str) -> str:
    """HMAC-SHA256 hex digest of ``timestamp + payload``."""
    message = f"{timestamp}{payload}".encode("utf-8")
    return hmac.new(secret_key.encode("utf-8"), message, hashlib.sha256).hexdigest()


class MakoPayClient:
    """
    Async MakoPay API client.

    Transient transport failures (connection refused, connect timeout) and
    429/502/503/504 responses are retried with exponential backoff. Transfers
    carry a reference unique per driver and order, so a retried transfer
    cannot pay twice.

    Example:
        >>> client = MakoPayClient(MakoPayConfig.from_settings(get_settings()))
        >>> result = await client.transfer_to_driver(driver_id, Decimal("3500"), "+22370000000", order_id)
        >>> result.status
        <TransactionStatus.PENDING: 'pending'>
    """

    def __init__(
        self,
        config: MakoPayConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None

        logger.info(
            "MakoPay client initialized",
            base_url=config.base_url,
            configured=config.is_configured,
            max_retries=config.max_retries,
        )

    async def __aenter__(self) -> "MakoPayClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    def _get_http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=httpx.Timeout(self.config.timeout_seconds),
                transport=self._transport,
            )
        return self._http

    def _ensure_configured(self, operation: str) -> None:
        if not self.config.is_configured:
            logger.error("MakoPay credentials missing", operation=operation)
            raise GatewayConfigurationError(
                "MakoPay configuration missing. Configure the API key and secret key.",
                operation=operation,
            )

    def _calculate_backoff(self, attempt: int) -> float:
        return min(self.config.initial_backoff * (2**attempt), self.config.max_backoff)

    def _should_retry(self, attempt: int) -> bool:
        return attempt < self.config.max_retries

    def _headers(self, payload: str) -> dict[str, str]:
        timestamp = str(int(time.time() * 1000))
        return {
            "Content-Type": "application/json",
            "X-API-Key": self.config.api_key or "",
            "X-Merchant-ID": self.config.merchant_id,
            "X-Timestamp": timestamp,
            "X-Signature": sign_payload(self.config.secret_key or "", payload, timestamp),
        }

    async def _send(self, method: str, path: str, payload: str) -> httpx.Response:
        """Send one signed request, retrying transient failures."""
        http = self._get_http()
        attempt = 0
        while True:
            try:
                response = await http.request(
                    method,
                    path,
                    content=payload.encode("utf-8") if payload else None,
                    headers=self._headers(payload),
                )
            except (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout) as e:
                if not self._should_retry(attempt):
                    raise
                backoff = self._calculate_backoff(attempt)
                logger.warning(
                    "MakoPay connection error, retrying",
                    path=path,
                    attempt=attempt,
                    backoff_seconds=backoff,
                    error=str(e),
                )
            else:
                if response.status_code not in RETRYABLE_STATUS_CODES or not self._should_retry(attempt):
                    return response
                backoff = self._calculate_backoff(attempt)
                logger.warning(
                    "MakoPay transient response, retrying",
                    path=path,
                    status_code=response.status_code,
                    attempt=attempt,
                    backoff_seconds=backoff,
                )
            await asyncio.sleep(backoff)
            attempt += 1

    async def _request(
        self,
        method: str,
        path: str,
        data: Optional[dict[str, Any]],
        default_message: str,
        fallback_transaction_id: str = "",
    ) -> GatewayResponse:
        payload = json.dumps(data, separators=(",", ":")) if data is not None else ""

        try:
            with log_performance(logger, "makopay_request", method=method, path=path):
                response = await self._send(method, path, payload)
        except httpx.HTTPError as e:
            logger.error(
                "MakoPay request failed",
                method=method,
                path=path,
                error=str(e),
                error_type=type(e).__name__,
            )
            return GatewayResponse.failure(UNAVAILABLE_MESSAGE, fallback_transaction_id)

        try:
            body = response.json()
        except ValueError:
            logger.error(
                "MakoPay returned a malformed body",
                path=path,
                status_code=response.status_code,
            )
            return GatewayResponse.failure(UNAVAILABLE_MESSAGE, fallback_transaction_id)

        if not isinstance(body, dict):
            logger.error("MakoPay returned a non-object body", path=path)
            return GatewayResponse.failure(UNAVAILABLE_MESSAGE, fallback_transaction_id)

        if not response.is_success:
            logger.warning(
                "MakoPay rejected request",
                path=path,
                status_code=response.status_code,
                gateway_message=body.get("message"),
            )
            return GatewayResponse(
                success=False,
                transaction_id=body.get("transaction_id") or fallback_transaction_id,
                status=TransactionStatus.FAILED,
                message=body.get("message") or f"Gateway error (HTTP {response.status_code})",
                data=body,
            )

        return GatewayResponse(
            success=True,
            transaction_id=body.get("transaction_id") or fallback_transaction_id,
            status=body.get("status") or TransactionStatus.FAILED,
            message=body.get("message") or default_message,
            data=body,
        )

    async def process_payment(
        self,
        amount: Union[Decimal, int],
        customer_phone: str,
        order_id: str,
        description: str,
        currency: Optional[str] = None,
    ) -> GatewayResponse:
        """
        Charge a customer's mobile-money account.

        Raises:
            GatewayConfigurationError: If credentials are missing
        """
        self._ensure_configured("process_payment")
        data = {
            "amount": _json_amount(amount),
            "currency": currency or self.config.currency,
            "customer_phone": customer_phone,
            "order_id": order_id,
            "description": description,
            "webhook_url": self.config.webhook_url,
            "merchant_id": self.config.merchant_id,
        }
        result = await self._request("POST", "/v1/payments", data, "Transaction processed")
        logger.info(
            "MakoPay payment requested",
            order_id=order_id,
            success=result.success,
            status=result.status.value,
            transaction_id=result.transaction_id,
        )
        return result

    async def transfer_money(
        self,
        amount: Union[Decimal, int],
        recipient_phone: str,
        reference: str,
        description: str,
        currency: Optional[str] = None,
    ) -> GatewayResponse:
        """
        Transfer money from the merchant wallet.

        Raises:
            GatewayConfigurationError: If credentials are missing
        """
        self._ensure_configured("transfer_money")
        data = {
            "amount": _json_amount(amount),
            "currency": currency or self.config.currency,
            "recipient_phone": recipient_phone,
            "reference": reference,
            "description": description,
            "merchant_id": self.config.merchant_id,
        }
        result = await self._request("POST", "/v1/transfers", data, "Transaction processed")
        logger.info(
            "MakoPay transfer requested",
            reference=reference,
            success=result.success,
            status=result.status.value,
            transaction_id=result.transaction_id,
        )
        return result

    async def process_order_payment(
        self, order_id: str, amount: Union[Decimal, int], customer_phone: str
    ) -> GatewayResponse:
        return await self.process_payment(
            amount=amount,
            customer_phone=customer_phone,
            order_id=order_id,
            description=f"MAKOEXPRESS order payment #{order_id}",
        )

    async def transfer_to_driver(
        self,
        driver_id: str,
        amount: Union[Decimal, int],
        driver_phone: str,
        order_id: str,
    ) -> GatewayResponse:
        """Pay a driver's earnings for one order."""
        return await self.transfer_money(
            amount=amount,
            recipient_phone=driver_phone,
            reference=f"DRIVER_{driver_id}_{order_id}",
            description=f"MAKOEXPRESS driver payout - Order #{order_id}",
        )

    async def check_transaction_status(self, transaction_id: str) -> GatewayResponse:
        """
        Poll the status of a previously initiated transaction.

        Raises:
            GatewayConfigurationError: If credentials are missing
        """
        self._ensure_configured("check_transaction_status")
        return await self._request(
            "GET",
            f"/v1/transactions/{transaction_id}",
            None,
            "Status retrieved",
            fallback_transaction_id=transaction_id,
        )

    def validate_webhook(self, signature: str, payload: str, timestamp: str) -> bool:
        """
        Verify an inbound webhook signature in constant time.

        Raises:
            GatewayConfigurationError: If the signing secret is missing
        """
        if not self.config.secret_key:
            raise GatewayConfigurationError(
                "MakoPay secret key missing; webhooks cannot be verified",
                operation="validate_webhook",
            )
        if not signature or not timestamp:
            return False

        expected = sign_payload(self.config.secret_key, payload, timestamp)
        return hmac.compare_digest(
            signature.strip().lower().encode("utf-8"),
            expected.encode("utf-8"),
        )


_client: Optional[MakoPayClient] = None


def get_makopay_client() -> MakoPayClient:
    """
    Get or create the application MakoPay client.

    Returns:
        MakoPayClient configured from application settings
    """
    global _client
    if _client is None:
        _client = MakoPayClient(MakoPayConfig.from_settings(get_settings()))
    return _client


async def close_makopay_client() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
