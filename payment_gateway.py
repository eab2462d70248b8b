"""Request signing and callback verification for the Fonepay gateway.

Fonepay (Nepal) accepts a payment by redirecting the customer to its merchant
request endpoint with ten query parameters. The last of them, ``DV`` (data
verification), is an HMAC-SHA-512 over the other nine:

1. Take ``PID, MD, PRN, AMT, CRN, DT, R1, R2, RU`` in exactly this order.
2. Join their values with ``,`` (no URL encoding at this stage).
3. HMAC-SHA-512 the result with the merchant secret and hex encode it.

After payment Fonepay redirects back to ``RU`` with ``PRN, PID, PS, RC, UID,
BC, INI, P_AMT, R_AMT`` and its own ``DV`` computed the same way over those
fields in that order. :func:`verify_response` recomputes it and compares the
raw digests in constant time.

The field orders are part of the protocol and live in explicit tuples; they
must never be sorted or derived from mapping iteration.
"""

from __future__ import annotations

import binascii
import hmac
import logging
import math
import re
from collections.abc import Mapping
from decimal import Decimal
from typing import Any
from urllib.parse import urlencode, urlsplit, urlunsplit

from fonepay_utils import canonical_string, generate_date, generate_hmac_sha512

logger = logging.getLogger(__name__)

FONEPAY_DEV_URL = "https://dev-clientapi.fonepay.com/api/merchantRequest"
FONEPAY_LIVE_URL = "https://clientapi.fonepay.com/api/merchantRequest"

PAYMENT_MODE = "P"
RESPONSE_CODE_SUCCESSFUL = "successful"
DEFAULT_CURRENCY = "NPR"
DEFAULT_REMARKS = "N/A"
SIGNATURE_FIELD = "DV"
DIGEST_SIZE = 64
AMOUNT_PATTERN = re.compile(r"(0|[1-9][0-9]*)(\.[0-9]+)?")

REQUEST_SIGNATURE_ORDER = ("PID", "MD", "PRN", "AMT", "CRN", "DT", "R1", "R2", "RU")
REQUEST_FIELD_ORDER = REQUEST_SIGNATURE_ORDER + (SIGNATURE_FIELD,)

RESPONSE_SIGNATURE_ORDER = (
    "PRN",
    "PID",
    "PS",
    "RC",
    "UID",
    "BC",
    "INI",
    "P_AMT",
    "R_AMT",
)
RESPONSE_FIELD_ORDER = RESPONSE_SIGNATURE_ORDER + (SIGNATURE_FIELD,)


class FonepayError(Exception):
    """Base exception for the Fonepay adapter."""


class ConfigurationError(FonepayError, ValueError):
    """Merchant credentials or endpoint are missing or unusable."""


class RequestValidationError(FonepayError, ValueError):
    """A payment parameter is missing or malformed."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field


class SigningError(FonepayError, RuntimeError):
    """The HMAC primitive could not produce a signature."""


def _require_text(params: Mapping[str, Any], name: str) -> str:
    value = params.get(name)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise RequestValidationError(name, f"{name} is required")
    if not isinstance(value, str):
        raise RequestValidationError(name, f"{name} must be a string")
    return value


def _optional_text(params: Mapping[str, Any], name: str, default: str) -> str:
    value = params.get(name)
    if value is None or value == "":
        return default
    if not isinstance(value, str):
        raise RequestValidationError(name, f"{name} must be a string")
    return value


def _validate_url(url: str, field: str) -> str:
    try:
        parts = urlsplit(url)
    except ValueError:
        raise RequestValidationError(field, f"{field} is not a valid URL") from None
    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise RequestValidationError(field, f"{field} must be an absolute http(s) URL")
    return url


def _format_amount(amount: Any) -> str:
    """Return ``amount`` as the plain decimal string that goes into ``AMT``.

    Integral floats lose their ``.0`` so that ``100.0`` signs the same as ``100``.
    Other floats and ``Decimal`` values are written in fixed point, never with
    an exponent. Strings must already be plain decimals such as ``"99.50"``.
    """
    if isinstance(amount, bool):
        raise RequestValidationError("amount", "amount must be numeric")
    if isinstance(amount, str):
        text = amount.strip()
        if not AMOUNT_PATTERN.fullmatch(text):
            raise RequestValidationError("amount", "amount must be a plain decimal number")
        value = Decimal(text)
    elif isinstance(amount, (int, float, Decimal)):
        if isinstance(amount, float):
            if not math.isfinite(amount):
                raise RequestValidationError("amount", "amount must be a finite number")
            value = Decimal(repr(amount))
        else:
            value = Decimal(amount)
        if not value.is_finite():
            raise RequestValidationError("amount", "amount must be a finite number")
        if isinstance(amount, int):
            text = str(amount)
        elif isinstance(amount, float) and amount.is_integer():
            text = str(int(amount))
        else:
            text = format(value, "f")
    else:
        raise RequestValidationError("amount", "amount must be numeric")

    if value <= 0:
        raise RequestValidationError("amount", "amount must be greater than zero")
    return text


def build_request_fields(
    merchant_code: str, secret_key: str, params: Mapping[str, Any], tz=None
) -> dict[str, str]:
    """Return the signed Fonepay request fields for ``params``.

    Parameters
    ----------
    merchant_code, secret_key:
        Credentials issued by Fonepay.
    params:
        ``amount``, ``prn``, ``return_url`` and ``remarks1`` are required;
        ``remarks2`` defaults to ``"N/A"`` and ``currency`` to ``"NPR"``.
    tz:
        Timezone for the ``DT`` stamp (name or pytz timezone); host local time
        when omitted.

    Raises
    ------
    ConfigurationError
        ``merchant_code`` or ``secret_key`` is empty.
    RequestValidationError
        A parameter is missing or malformed; ``err.field`` names it.
    SigningError
        The HMAC could not be computed.
    """
    if not merchant_code:
        raise ConfigurationError("Fonepay merchant code is required")
    if not secret_key:
        raise ConfigurationError("Fonepay secret key is required")
    if not isinstance(params, Mapping):
        raise RequestValidationError("params", "payment parameters must be a mapping")

    prn = _require_text(params, "prn")
    return_url = _require_text(params, "return_url")
    remarks1 = _require_text(params, "remarks1")
    if params.get("amount") is None or params.get("amount") == "":
        raise RequestValidationError("amount", "amount is required")
    remarks2 = _optional_text(params, "remarks2", DEFAULT_REMARKS)
    currency = _optional_text(params, "currency", DEFAULT_CURRENCY)

    _validate_url(return_url, "return_url")
    amount = _format_amount(params["amount"])

    fields = {
        "PID": merchant_code,
        "MD": PAYMENT_MODE,
        "PRN": prn,
        "AMT": amount,
        "CRN": currency,
        "DT": generate_date(tz),
        "R1": remarks1,
        "R2": remarks2,
        "RU": return_url,
    }

    signature = generate_hmac_sha512(
        canonical_string(fields, REQUEST_SIGNATURE_ORDER), secret_key
    )
    if not signature:
        raise SigningError("Failed to generate HMAC-SHA-512 hash for request parameters")
    fields[SIGNATURE_FIELD] = signature
    return fields


def build_payment_url(base_url: str, fields: Mapping[str, Any]) -> str:
    """Append the non-empty ``fields`` to ``base_url`` as query parameters."""
    if not base_url:
        raise ConfigurationError("Fonepay base URL is required")
    try:
        parts = urlsplit(base_url)
    except ValueError:
        raise ConfigurationError("Fonepay base URL is not a valid URL") from None
    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise ConfigurationError("Fonepay base URL must be an absolute http(s) URL")

    pairs = [
        (key, str(fields[key]))
        for key in REQUEST_FIELD_ORDER
        if fields.get(key) not in (None, "")
    ]
    query = urlencode(pairs)
    if parts.query:
        query = f"{parts.query}&{query}" if query else parts.query
    return urlunsplit(parts._replace(query=query))


def initiate_payment(
    merchant_code: str,
    secret_key: str,
    base_url: str,
    params: Mapping[str, Any],
    tz=None,
) -> dict[str, Any]:
    """Return ``{"url": ..., "success": True}`` for redirecting to Fonepay."""
    try:
        if not base_url:
            raise ConfigurationError("Fonepay base URL is required")
        fields = build_request_fields(merchant_code, secret_key, params, tz=tz)
        url = build_payment_url(base_url, fields)
    except FonepayError as e:
        logger.error("Error initiating Fonepay payment: %s", e)
        raise
    logger.info("Fonepay payment initiated for PRN %s", fields["PRN"])
    return {"url": url, "success": True}


def _decode_digest(value: Any) -> bytes | None:
    try:
        raw = binascii.unhexlify(value)
    except (binascii.Error, TypeError, ValueError):
        return None
    if len(raw) != DIGEST_SIZE:
        return None
    return raw


def verify_response(response: Mapping[str, Any], secret_key: str) -> bool:
    """Return ``True`` only for a successful, untampered Fonepay response.

    Every failure (non-successful ``RC``, missing field, bad encoding,
    mismatch, unexpected error) collapses to ``False``.
    """
    try:
        if response.get("RC") != RESPONSE_CODE_SUCCESSFUL:
            return False
        if any(response.get(key) is None for key in RESPONSE_FIELD_ORDER):
            logger.warning("Fonepay response is missing signed fields")
            return False

        calculated = generate_hmac_sha512(
            canonical_string(response, RESPONSE_SIGNATURE_ORDER), secret_key
        )
        if not calculated:
            return False

        calculated_dv = _decode_digest(calculated)
        fonepay_dv = _decode_digest(response.get(SIGNATURE_FIELD))
        if calculated_dv is None or fonepay_dv is None:
            logger.warning("Fonepay response carries a malformed DV")
            return False

        valid = hmac.compare_digest(calculated_dv, fonepay_dv)
        if not valid:
            logger.warning("Fonepay DV mismatch for PRN %s", response.get("PRN"))
        return valid
    except Exception as e:
        logger.error("Error verifying Fonepay response: %s", e)
        return False


__all__ = [
    "ConfigurationError",
    "DEFAULT_CURRENCY",
    "DEFAULT_REMARKS",
    "FONEPAY_DEV_URL",
    "FONEPAY_LIVE_URL",
    "FonepayError",
    "PAYMENT_MODE",
    "REQUEST_FIELD_ORDER",
    "REQUEST_SIGNATURE_ORDER",
    "RESPONSE_CODE_SUCCESSFUL",
    "RESPONSE_FIELD_ORDER",
    "RESPONSE_SIGNATURE_ORDER",
    "RequestValidationError",
    "SIGNATURE_FIELD",
    "SigningError",
    "build_payment_url",
    "build_request_fields",
    "initiate_payment",
    "verify_response",
]
