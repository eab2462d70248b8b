"""
Fonepay merchant client

Usage:
    from fonepay_client import create_client

    client = create_client(
        merchant_code="MERCHANT123",
        secret_key="your-secret-key",
        base_url="https://dev-clientapi.fonepay.com/api/merchantRequest",
    )

    payment = client.initiate_payment({
        "amount": 1000,
        "prn": "PRN123",
        "return_url": "https://your-site.com/verify",
        "remarks1": "Payment for Order #123",
    })
    # redirect the customer to payment["url"]

    # in the return_url handler, with the parsed query parameters:
    if client.verify_response(query_params):
        ...
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import pytz

import config
import payment_gateway
from payment_gateway import ConfigurationError


class FonepayClient:
    """Binds merchant credentials to request signing and response verification"""

    def __init__(self,
                 merchant_code: str,
                 secret_key: str,
                 base_url: str,
                 timezone: str | None = None):
        """
        Initialize Fonepay client

        Args:
            merchant_code: Merchant code (PID) issued by Fonepay
            secret_key: Shared secret used for the DV signature
            base_url: Fonepay merchant request endpoint (dev or live)
            timezone: Timezone name for the DT field, host local time if None

        Raises:
            ConfigurationError: if any credential is empty or the timezone is unknown
        """
        if not merchant_code:
            raise ConfigurationError("Fonepay merchantCode is required")
        if not secret_key:
            raise ConfigurationError("Fonepay secretKey is required")
        if not base_url:
            raise ConfigurationError("Fonepay baseUrl is required")

        self.merchant_code = merchant_code
        self.secret_key = secret_key
        self.base_url = base_url
        self.timezone = timezone
        try:
            self.tz = pytz.timezone(timezone) if timezone else None
        except pytz.UnknownTimeZoneError as e:
            raise ConfigurationError(f"Fonepay timezone {timezone!r} is unknown") from e

    def __repr__(self) -> str:
        return f"FonepayClient(merchant_code={self.merchant_code!r}, base_url={self.base_url!r})"

    def build_request_fields(self, params: Mapping[str, Any]) -> dict[str, str]:
        """Signed request fields, for integrations that POST a form instead of redirecting"""
        return payment_gateway.build_request_fields(
            self.merchant_code, self.secret_key, params, tz=self.tz
        )

    def initiate_payment(self, params: Mapping[str, Any]) -> dict[str, Any]:
        """
        Build the redirect URL for a payment

        Args:
            params: amount, prn, return_url, remarks1, optional remarks2 and currency

        Returns:
            {"url": <Fonepay redirect URL>, "success": True}
        """
        return payment_gateway.initiate_payment(
            self.merchant_code,
            self.secret_key,
            self.base_url,
            params,
            tz=self.tz,
        )

    def verify_response(self, response: Mapping[str, Any]) -> bool:
        """True if the Fonepay callback is successful and not tampered with"""
        return payment_gateway.verify_response(response, self.secret_key)


def create_client(merchant_code: str | None = None,
                  secret_key: str | None = None,
                  base_url: str | None = None,
                  timezone: str | None = None) -> FonepayClient:
    """Create a client, filling unset values from the environment configuration"""
    return FonepayClient(
        merchant_code=merchant_code or config.FONEPAY_MERCHANT_CODE,
        secret_key=secret_key or config.FONEPAY_SECRET_KEY,
        base_url=base_url or config.FONEPAY_BASE_URL,
        timezone=timezone or config.FONEPAY_TIMEZONE,
    )
