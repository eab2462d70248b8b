import os

from dotenv import load_dotenv

from payment_gateway import FONEPAY_DEV_URL, FONEPAY_LIVE_URL

load_dotenv()

FONEPAY_MERCHANT_CODE = os.getenv("FONEPAY_MERCHANT_CODE")
FONEPAY_SECRET_KEY = os.getenv("FONEPAY_SECRET_KEY")
FONEPAY_LIVE = os.getenv("FONEPAY_LIVE", "0") == "1"
FONEPAY_BASE_URL = os.getenv("FONEPAY_BASE_URL") or (
    FONEPAY_LIVE_URL if FONEPAY_LIVE else FONEPAY_DEV_URL
)
FONEPAY_TIMEZONE = os.getenv("FONEPAY_TIMEZONE", "Asia/Kathmandu")
