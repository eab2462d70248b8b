import datetime
import hashlib
import hmac
import logging
import uuid

import pytz

logger = logging.getLogger(__name__)

DATE_FORMAT = "%m/%d/%Y"
SEPARATOR = ","


def generate_hmac_sha512(message, secret_key):
    """Return the lowercase hex HMAC-SHA-512 of ``message`` or ``None`` on failure."""
    if not isinstance(message, str) or not message:
        logger.error("HMAC-SHA-512 refused: message is empty")
        return None
    if not isinstance(secret_key, str) or not secret_key:
        logger.error("HMAC-SHA-512 refused: secret key is empty")
        return None
    try:
        mac = hmac.new(
            secret_key.encode("utf-8"), message.encode("utf-8"), hashlib.sha512
        )
        return mac.hexdigest()
    except (TypeError, ValueError) as e:
        logger.error("Exception while hashing using HMAC-SHA-512: %s", e)
        return None


def generate_date(tz=None, now=None) -> str:
    """Return the ``MM/DD/YYYY`` stamp of the current instant.

    ``tz`` is a timezone name or a pytz timezone; ``None`` uses host local time.
    ``now`` overrides the clock and is meant for tests only.
    """
    if isinstance(tz, str):
        tz = pytz.timezone(tz)
    if now is None:
        now = datetime.datetime.now(tz) if tz is not None else datetime.datetime.now()
    elif tz is not None and now.tzinfo is not None:
        now = now.astimezone(tz)
    return now.strftime(DATE_FORMAT)


def canonical_string(fields, order) -> str:
    # Raises KeyError for a missing field.
    return SEPARATOR.join(str(fields[key]) for key in order)


def make_prn() -> str:
    """Return a unique PRN (product reference number)."""
    return uuid.uuid4().hex


__all__ = [
    "DATE_FORMAT",
    "SEPARATOR",
    "canonical_string",
    "generate_date",
    "generate_hmac_sha512",
    "make_prn",
]
