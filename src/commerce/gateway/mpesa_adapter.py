"""M-Pesa (Safaricom Daraja) STK push adapter.

``initiate_charge`` authenticates with the OAuth client-credentials flow and
sends a ``CustomerPayBillOnline`` STK push to the payer's phone.  Daraja
answers with a ``CheckoutRequestID``, which is the correlation id its
callback carries back under ``Body.stkCallback``.

Daraja does not sign callbacks.  When ``MPESA_CALLBACK_TOKEN`` is set the
callback URL is issued with ``?token=<value>`` and callbacks presenting any
other token are refused.
"""

import base64
import hmac
import os
import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from zoneinfo import ZoneInfo

import requests
import structlog

from commerce.gateway.port import (
    CallbackNotVerified,
    ChargeInitiation,
    ChargeRequest,
    GatewayRejected,
    GatewayUnavailable,
    PaymentGateway,
    ProviderCallback,
    malformed,
)

logger = structlog.get_logger(__name__)

SANDBOX_URL = "https://sandbox.safaricom.co.ke"
PRODUCTION_URL = "https://api.safaricom.co.ke"
NAIROBI = ZoneInfo("Africa/Nairobi")


def normalize_msisdn(phone: str | None) -> str:
    """Return a phone number in Daraja's ``2547XXXXXXXX`` form."""
    digits = re.sub(r"\D", "", phone or "")
    if digits.startswith("0") and len(digits) == 10:
        digits = "254" + digits[1:]
    elif len(digits) == 9 and digits[0] in "71":
        digits = "254" + digits
    if not re.fullmatch(r"254[17]\d{8}", digits):
        raise GatewayRejected(f"Invalid M-Pesa phone number: {phone!r}")
    return digits


def to_minor_units(value) -> int:
    try:
        return int(Decimal(str(value)) * 100)
    except (InvalidOperation, ValueError):
        raise malformed(f"Amount {value!r} is not a number") from None


class MpesaGateway(PaymentGateway):
    name = "mpesa"

    def __init__(
        self,
        consumer_key: str,
        consumer_secret: str,
        shortcode: str,
        passkey: str,
        base_url: str = SANDBOX_URL,
        callback_token: str | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.shortcode = shortcode
        self.passkey = passkey
        self.base_url = base_url.rstrip("/")
        self.callback_token = callback_token
        self.session = session or requests.Session()

    @classmethod
    def from_env(cls) -> "MpesaGateway":
        env = os.environ.get("MPESA_ENV", "sandbox")
        return cls(
            consumer_key=os.environ.get("MPESA_CONSUMER_KEY", ""),
            consumer_secret=os.environ.get("MPESA_CONSUMER_SECRET", ""),
            shortcode=os.environ.get("MPESA_SHORTCODE", ""),
            passkey=os.environ.get("MPESA_PASSKEY", ""),
            base_url=PRODUCTION_URL if env == "production" else SANDBOX_URL,
            callback_token=os.environ.get("MPESA_CALLBACK_TOKEN") or None,
        )

    # -------------------------------------------------------------------
    # Outbound
    # -------------------------------------------------------------------
    def _request(self, method, path, timeout, **kwargs) -> dict:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=timeout, **kwargs)
        except (requests.Timeout, requests.ConnectionError) as exc:
            raise GatewayUnavailable(f"M-Pesa unreachable: {exc}") from exc
        except requests.RequestException as exc:
            raise GatewayUnavailable(f"M-Pesa request failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError:
            body = {"text": response.text}

        if response.status_code >= 500:
            raise GatewayUnavailable(f"M-Pesa returned HTTP {response.status_code}", raw=body)
        if response.status_code >= 400:
            message = body.get("errorMessage") or f"HTTP {response.status_code}"
            raise GatewayRejected(f"M-Pesa refused the request: {message}", raw=body)
        return body

    def access_token(self, timeout: float) -> str:
        credentials = base64.b64encode(f"{self.consumer_key}:{self.consumer_secret}".encode()).decode()
        body = self._request(
            "GET",
            "/oauth/v1/generate",
            timeout,
            params={"grant_type": "client_credentials"},
            headers={"Authorization": f"Basic {credentials}"},
        )
        token = body.get("access_token")
        if not token:
            raise GatewayRejected("M-Pesa did not issue an access token", raw=body)
        return token

    def callback_url(self, base_url: str | None) -> str | None:
        if not base_url or not self.callback_token:
            return base_url
        separator = "&" if "?" in base_url else "?"
        return f"{base_url}{separator}token={self.callback_token}"

    def initiate_charge(self, request: ChargeRequest, timeout: float) -> ChargeInitiation:
        if request.amount % 100:
            raise GatewayRejected("M-Pesa only collects whole shillings")
        phone = normalize_msisdn(request.payer_ref)

        token = self.access_token(timeout)
        timestamp = datetime.now(NAIROBI).strftime("%Y%m%d%H%M%S")
        password = base64.b64encode(f"{self.shortcode}{self.passkey}{timestamp}".encode()).decode()
        payload = {
            "BusinessShortCode": self.shortcode,
            "Password": password,
            "Timestamp": timestamp,
            "TransactionType": "CustomerPayBillOnline",
            "Amount": request.amount // 100,
            "PartyA": phone,
            "PartyB": self.shortcode,
            "PhoneNumber": phone,
            "CallBackURL": self.callback_url(request.callback_url),
            "AccountReference": request.reference[:12],
            "TransactionDesc": f"Payment for {request.reference}"[:13],
        }
        body = self._request(
            "POST",
            "/mpesa/stkpush/v1/processrequest",
            timeout,
            json=payload,
            headers={"Authorization": f"Bearer {token}"},
        )

        if str(body.get("ResponseCode")) != "0" or not body.get("CheckoutRequestID"):
            raise GatewayRejected(body.get("ResponseDescription") or "STK push not accepted", raw=body)

        logger.info(
            "mpesa_stk_push_accepted",
            checkout_request_id=body["CheckoutRequestID"],
            merchant_request_id=body.get("MerchantRequestID"),
        )
        return ChargeInitiation(correlation_id=body["CheckoutRequestID"], raw=body)

    # -------------------------------------------------------------------
    # Inbound
    # -------------------------------------------------------------------
    def parse_callback(self, payload: dict, signature: str | None) -> ProviderCallback:
        if self.callback_token and not hmac.compare_digest(signature or "", self.callback_token):
            raise CallbackNotVerified("Invalid M-Pesa callback token")

        try:
            callback = payload["Body"]["stkCallback"]
            correlation_id = callback["CheckoutRequestID"]
            result_code = str(callback["ResultCode"])
        except (KeyError, TypeError):
            raise malformed("Expected Body.stkCallback with CheckoutRequestID and ResultCode") from None

        items = (callback.get("CallbackMetadata") or {}).get("Item") or []
        metadata = {item.get("Name"): item.get("Value") for item in items if isinstance(item, dict)}
        amount = metadata.get("Amount")

        return ProviderCallback(
            correlation_id=str(correlation_id),
            succeeded=result_code == "0",
            amount=to_minor_units(amount) if amount is not None else None,
            receipt_id=metadata.get("MpesaReceiptNumber"),
            result_code=result_code,
            result_description=callback.get("ResultDesc"),
            raw=payload,
        )
