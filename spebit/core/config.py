# spebit/core/config.py
import os
from decimal import Decimal
from dotenv import load_dotenv

load_dotenv()

# Public origin of the web client, used to build referral and reset links
APP_ORIGIN = os.getenv("APP_ORIGIN", "http://localhost:5173").rstrip("/")

# Payment screenshots
STORAGE_ROOT = os.getenv("STORAGE_ROOT", "storage/payment-screenshots")
STORAGE_PUBLIC_URL = os.getenv("STORAGE_PUBLIC_URL", "/storage").rstrip("/")

# Referral program
REFERRAL_CODE_PREFIX = os.getenv("REFERRAL_CODE_PREFIX", "SPB")
REFERRAL_REWARD_AMOUNT = Decimal(os.getenv("REFERRAL_REWARD_AMOUNT", "166"))  # $2 in INR

# Buy flow
PROCESSING_WAIT_SECONDS = float(os.getenv("PROCESSING_WAIT_SECONDS", "120"))

# Price monitor, percent change that triggers an alert
PRICE_ALERT_THRESHOLD = Decimal(os.getenv("PRICE_ALERT_THRESHOLD", "5"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
