import logging
import os
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./marketplace.db")

# Identity provider (issues the bearer tokens; we only resolve them to a profile)
AUTH_PROVIDER_URL = os.getenv("AUTH_PROVIDER_URL", "")
AUTH_PROVIDER_ANON_KEY = os.getenv("AUTH_PROVIDER_ANON_KEY")

# Flutterwave Configuration
FLUTTERWAVE_SECRET_KEY = os.getenv("FLUTTERWAVE_SECRET_KEY")
# Shared secret Flutterwave echoes in the verif-hash header of webhooks
FLUTTERWAVE_SECRET_HASH = os.getenv("FLUTTERWAVE_SECRET_HASH")
FLUTTERWAVE_BASE_URL = os.getenv("FLUTTERWAVE_BASE_URL", "https://api.flutterwave.com/v3")
GATEWAY_TIMEOUT_SECONDS = float(os.getenv("GATEWAY_TIMEOUT_SECONDS", "30"))

if not FLUTTERWAVE_SECRET_KEY:
    logger.warning(
        "FLUTTERWAVE_SECRET_KEY is not set. Payment calls will fail until set in your environment."
    )

# Public app URL used to build gateway redirect and callback URLs
APP_URL = os.getenv("APP_URL", "http://localhost:3000").rstrip("/")

# Public base URL of this API; Flutterwave posts transfer callbacks here
API_URL = os.getenv("API_URL", "http://localhost:8000").rstrip("/")

CURRENCY = "NGN"

# Platform cut of every booking (fixed)
COMMISSION_RATE = 0.15

# Gateway-reported charge may differ from the booking amount by this many Naira
PAYMENT_AMOUNT_TOLERANCE = 10

# Bank codes transfers and account resolution are enabled for in this environment.
# Sandbox accounts only support Access Bank (044).
ALLOWED_BANK_CODES = [
    code.strip() for code in os.getenv("ALLOWED_BANK_CODES", "044").split(",") if code.strip()
]

# How long a booking request stays actionable before it reads as expired
BOOKING_REQUEST_TTL_HOURS = int(os.getenv("BOOKING_REQUEST_TTL_HOURS", "24"))

# Reject proposed amounts outside the job's posted budget range
ENFORCE_BUDGET_BOUNDS = os.getenv("ENFORCE_BUDGET_BOUNDS", "true").lower() == "true"

# CORS origins for the web frontend
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", f"{APP_URL},http://localhost:5173").split(",")
    if origin.strip()
]
