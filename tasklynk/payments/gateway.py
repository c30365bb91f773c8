"""Payment gateway clients.

Two providers are supported:
1. Safaricom Daraja (M-Pesa STK push) for mobile money
2. Paystack for card payments

Both speak the ``GatewayClient`` protocol: submit a charge, then ask for its
status. Transport failures and provider rejections surface as GatewayError.
"""

import base64
import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional, Protocol

import httpx

from tasklynk.errors import GatewayError
from tasklynk.payments.models import PaymentMethod, PaymentOutcome

logger = logging.getLogger(__name__)

MPESA_BASE_URLS = {
    "sandbox": "https://sandbox.safaricom.co.ke",
    "production": "https://api.safaricom.co.ke",
}
PAYSTACK_BASE_URL = "https://api.paystack.co"

# Daraja reports an in-flight STK push as an error with this code
MPESA_PROCESSING_CODES = {"500.001.1001"}

# Daraja timestamps are in East Africa Time
EAT = timezone(timedelta(hours=3))

_PHONE_PATTERN = re.compile(r"^254\d{9}$")


@dataclass
class ChargeRequest:
    """Gateway acknowledgement of a submitted charge."""

    provider_reference: str
    checkout_url: Optional[str] = None  # card flows redirect the payer here
    message: Optional[str] = None


@dataclass
class ChargeStatus:
    """Gateway view of a charge."""

    outcome: PaymentOutcome
    receipt_id: Optional[str] = None
    detail: Optional[str] = None


class GatewayClient(Protocol):
    """Protocol for payment gateway clients."""

    async def initiate_charge(
        self,
        method: PaymentMethod,
        payer_reference: str,
        amount: Decimal,
        metadata: Dict[str, Any],
    ) -> ChargeRequest:
        """Submit a charge. Raises GatewayError if the provider refuses it."""
        ...

    async def fetch_status(
        self, provider_reference: str, method: Optional[PaymentMethod] = None
    ) -> ChargeStatus:
        """Ask the provider for the current state of a charge."""
        ...


async def _send(
    request: httpx.Request,
    timeout: float,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.Response:
    """Send one request to a gateway, mapping transport errors to GatewayError."""
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            return await client.send(request)
    except httpx.HTTPError as e:
        logger.warning(f"Gateway request failed | url={request.url} | error={e}")
        raise GatewayError(f"Gateway unreachable: {e}") from e


def _json(response: httpx.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        raise GatewayError(
            f"Gateway returned invalid JSON (HTTP {response.status_code})",
            status_code=response.status_code,
        ) from None
    return data if isinstance(data, dict) else {}


# =============================================================================
# M-Pesa (Daraja)
# =============================================================================


def format_phone_number(phone: str) -> str:
    """Normalise a Kenyan phone number to ``2547XXXXXXXX``.

    Raises:
        ValueError: the result is not a 12-digit 254 number
    """
    cleaned = re.sub(r"[\s\-]", "", phone or "")
    if cleaned.startswith("+"):
        cleaned = cleaned[1:]
    if cleaned.startswith("0"):
        cleaned = "254" + cleaned[1:]
    if not cleaned.startswith("254"):
        cleaned = "254" + cleaned
    if not _PHONE_PATTERN.match(cleaned):
        raise ValueError(f"Invalid phone number: {phone}")
    return cleaned


def generate_password(shortcode: str, passkey: str, timestamp: str) -> str:
    """STK password: base64(shortcode + passkey + timestamp)."""
    return base64.b64encode(f"{shortcode}{passkey}{timestamp}".encode()).decode()


def daraja_timestamp(now: Optional[datetime] = None) -> str:
    """Timestamp in the ``YYYYMMDDHHmmss`` form Daraja expects."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(EAT).strftime("%Y%m%d%H%M%S")


class MpesaGateway:
    """M-Pesa STK push client."""

    def __init__(
        self,
        consumer_key: str,
        consumer_secret: str,
        shortcode: str,
        passkey: str,
        callback_url: str,
        environment: str = "sandbox",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if environment not in MPESA_BASE_URLS:
            raise ValueError(f"Unknown M-Pesa environment: {environment}")
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.shortcode = shortcode
        self.passkey = passkey
        self.callback_url = callback_url
        self.base_url = MPESA_BASE_URLS[environment]
        self.timeout = timeout
        self._transport = transport
        self._token: Optional[str] = None
        self._token_expires_at = 0.0

    async def _access_token(self) -> str:
        """OAuth client-credentials token, cached until shortly before expiry."""
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        credentials = base64.b64encode(
            f"{self.consumer_key}:{self.consumer_secret}".encode()
        ).decode()
        request = httpx.Request(
            "GET",
            f"{self.base_url}/oauth/v1/generate",
            params={"grant_type": "client_credentials"},
            headers={"Authorization": f"Basic {credentials}"},
        )
        response = await _send(request, self.timeout, self._transport)
        if response.status_code != 200:
            raise GatewayError("M-Pesa authentication failed", status_code=response.status_code)

        data = _json(response)
        token = data.get("access_token")
        if not token:
            raise GatewayError("M-Pesa authentication returned no token")
        expires_in = int(data.get("expires_in") or 3599)
        self._token = token
        self._token_expires_at = time.monotonic() + max(expires_in - 60, 0)
        return token

    async def _post(self, path: str, body: Dict[str, Any]) -> httpx.Response:
        token = await self._access_token()
        request = httpx.Request(
            "POST",
            f"{self.base_url}{path}",
            json=body,
            headers={"Authorization": f"Bearer {token}"},
        )
        return await _send(request, self.timeout, self._transport)

    def _credentials(self) -> Dict[str, str]:
        timestamp = daraja_timestamp()
        return {
            "BusinessShortCode": self.shortcode,
            "Password": generate_password(self.shortcode, self.passkey, timestamp),
            "Timestamp": timestamp,
        }

    async def initiate_charge(
        self,
        method: PaymentMethod,
        payer_reference: str,
        amount: Decimal,
        metadata: Dict[str, Any],
    ) -> ChargeRequest:
        """Send an STK push prompt to the payer's phone."""
        phone = format_phone_number(payer_reference)
        body = {
            **self._credentials(),
            "TransactionType": "CustomerPayBillOnline",
            "Amount": int(Decimal(amount).quantize(Decimal("1"), rounding=ROUND_HALF_UP)),
            "PartyA": phone,
            "PartyB": self.shortcode,
            "PhoneNumber": phone,
            "CallBackURL": self.callback_url,
            "AccountReference": str(metadata.get("account_reference", "TaskLynk"))[:12],
            "TransactionDesc": str(metadata.get("description", "Order payment"))[:13],
        }
        response = await self._post("/mpesa/stkpush/v1/processrequest", body)
        data = _json(response)

        if response.status_code != 200 or str(data.get("ResponseCode")) != "0":
            message = data.get("errorMessage") or data.get("ResponseDescription") or "STK push failed"
            logger.warning(
                f"STK push rejected | status={response.status_code} | message={message}"
            )
            raise GatewayError(message, status_code=response.status_code)

        checkout_id = data.get("CheckoutRequestID")
        if not checkout_id:
            raise GatewayError("STK push response missing CheckoutRequestID")
        logger.info(f"STK push sent | checkout={checkout_id} | phone=***{phone[-4:]}")
        return ChargeRequest(
            provider_reference=checkout_id,
            message=data.get("CustomerMessage"),
        )

    async def fetch_status(
        self, provider_reference: str, method: Optional[PaymentMethod] = None
    ) -> ChargeStatus:
        """Query an STK push. ResultCode 0 is success; any other code is final."""
        body = {**self._credentials(), "CheckoutRequestID": provider_reference}
        response = await self._post("/mpesa/stkpushquery/v1/query", body)
        data = _json(response)

        if str(data.get("errorCode")) in MPESA_PROCESSING_CODES:
            return ChargeStatus(outcome=PaymentOutcome.PENDING, detail=data.get("errorMessage"))
        if response.status_code != 200 or "ResultCode" not in data:
            raise GatewayError(
                data.get("errorMessage") or "STK query failed", status_code=response.status_code
            )

        detail = data.get("ResultDesc")
        if str(data["ResultCode"]) == "0":
            return ChargeStatus(outcome=PaymentOutcome.CONFIRMED, detail=detail)
        return ChargeStatus(outcome=PaymentOutcome.FAILED, detail=detail)


# =============================================================================
# Paystack
# =============================================================================

PAYSTACK_FAILED_STATUSES = {"failed", "abandoned", "reversed"}


class PaystackGateway:
    """Paystack card payment client."""

    def __init__(
        self,
        secret_key: str,
        callback_url: Optional[str] = None,
        currency: str = "KES",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.secret_key = secret_key
        self.callback_url = callback_url
        self.currency = currency
        self.timeout = timeout
        self._transport = transport

    def _request(self, method: str, path: str, **kwargs) -> httpx.Request:
        return httpx.Request(
            method,
            f"{PAYSTACK_BASE_URL}{path}",
            headers={"Authorization": f"Bearer {self.secret_key}"},
            **kwargs,
        )

    async def initiate_charge(
        self,
        method: PaymentMethod,
        payer_reference: str,
        amount: Decimal,
        metadata: Dict[str, Any],
    ) -> ChargeRequest:
        """Initialise a transaction. Amount is sent in minor units."""
        body: Dict[str, Any] = {
            "email": payer_reference,
            "amount": int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)),
            "currency": self.currency,
            "metadata": metadata,
        }
        if self.callback_url:
            body["callback_url"] = self.callback_url

        response = await _send(
            self._request("POST", "/transaction/initialize", json=body),
            self.timeout,
            self._transport,
        )
        data = _json(response)
        if response.status_code != 200 or not data.get("status"):
            message = data.get("message") or "Transaction initialisation failed"
            raise GatewayError(message, status_code=response.status_code)

        payload = data.get("data") or {}
        reference = payload.get("reference") if isinstance(payload, dict) else None
        if not reference:
            raise GatewayError("Paystack response missing reference")
        logger.info(f"Paystack transaction initialised | reference={reference}")
        return ChargeRequest(
            provider_reference=str(reference),
            checkout_url=payload.get("authorization_url"),
            message=data.get("message"),
        )

    async def fetch_status(
        self, provider_reference: str, method: Optional[PaymentMethod] = None
    ) -> ChargeStatus:
        """Verify a transaction by reference."""
        response = await _send(
            self._request("GET", f"/transaction/verify/{provider_reference}"),
            self.timeout,
            self._transport,
        )
        data = _json(response)
        if response.status_code != 200 or not data.get("status"):
            raise GatewayError(
                data.get("message") or "Transaction verification failed",
                status_code=response.status_code,
            )

        payload = data.get("data") or {}
        status = str(payload.get("status", "")).lower()
        if status == "success":
            receipt = payload.get("receipt_number") or payload.get("id")
            return ChargeStatus(
                outcome=PaymentOutcome.CONFIRMED,
                receipt_id=str(receipt) if receipt is not None else None,
                detail=payload.get("gateway_response"),
            )
        if status in PAYSTACK_FAILED_STATUSES:
            return ChargeStatus(outcome=PaymentOutcome.FAILED, detail=payload.get("gateway_response"))
        return ChargeStatus(outcome=PaymentOutcome.PENDING, detail=status or None)


# =============================================================================
# Routing
# =============================================================================


class GatewayRouter:
    """Dispatches to the gateway configured for each payment method."""

    def __init__(self, gateways: Dict[PaymentMethod, GatewayClient]):
        self._gateways = dict(gateways)

    def _for(self, method: Optional[PaymentMethod]) -> GatewayClient:
        try:
            return self._gateways[PaymentMethod(method)]
        except (KeyError, ValueError):
            raise GatewayError(f"No gateway configured for payment method: {method}") from None

    def supports(self, method: PaymentMethod) -> bool:
        return PaymentMethod(method) in self._gateways

    async def initiate_charge(
        self,
        method: PaymentMethod,
        payer_reference: str,
        amount: Decimal,
        metadata: Dict[str, Any],
    ) -> ChargeRequest:
        return await self._for(method).initiate_charge(method, payer_reference, amount, metadata)

    async def fetch_status(
        self, provider_reference: str, method: Optional[PaymentMethod] = None
    ) -> ChargeStatus:
        return await self._for(method).fetch_status(provider_reference, method)


def build_gateway_router(settings) -> GatewayRouter:
    """Gateways for every provider with credentials in settings."""
    gateways: Dict[PaymentMethod, GatewayClient] = {}
    if settings.mpesa_consumer_key and settings.mpesa_consumer_secret:
        gateways[PaymentMethod.MOBILE_MONEY] = MpesaGateway(
            consumer_key=settings.mpesa_consumer_key,
            consumer_secret=settings.mpesa_consumer_secret,
            shortcode=settings.mpesa_shortcode or "",
            passkey=settings.mpesa_passkey or "",
            callback_url=settings.mpesa_callback_url or "",
            environment=settings.mpesa_environment,
            timeout=settings.gateway_timeout_seconds,
        )
    if settings.paystack_secret_key:
        gateways[PaymentMethod.CARD] = PaystackGateway(
            secret_key=settings.paystack_secret_key,
            callback_url=settings.paystack_callback_url,
            timeout=settings.gateway_timeout_seconds,
        )
    return GatewayRouter(gateways)
