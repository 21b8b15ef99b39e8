import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv(override=False)

# Application environment
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
DEBUG = ENVIRONMENT == "development"
TESTING = os.getenv("TESTING", "false").lower() == "true"

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Application settings
APP_NAME = "peakboo Coins API"
APP_VERSION = "1.0.0"
PLATFORM_NAME = os.getenv("PLATFORM_NAME", "snapreme")

# Public web app, used to build checkout/onboarding redirect URLs
APP_URL = os.getenv("APP_URL", "http://localhost:5173").rstrip("/")

# Database settings
DATABASE_URL = os.getenv("DATABASE_URL")
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "10"))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "20"))
DB_POOL_RECYCLE_SECONDS = int(os.getenv("DB_POOL_RECYCLE_SECONDS", "300"))
SLOW_DB_QUERY_THRESHOLD_MS = float(os.getenv("SLOW_DB_QUERY_THRESHOLD_MS", "200"))

# Stripe settings
STRIPE_API_KEY = os.getenv("STRIPE_API_KEY", "")
STRIPE_PUBLISHABLE_KEY = os.getenv("STRIPE_PUBLISHABLE_KEY", "")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")
STRIPE_API_VERSION = os.getenv("STRIPE_API_VERSION", "")
STRIPE_TIMEOUT_SECONDS = int(os.getenv("STRIPE_TIMEOUT_SECONDS", "15"))  # bounded wait on every gateway call
STRIPE_MAX_WORKERS = int(os.getenv("STRIPE_MAX_WORKERS", "5"))
PAYMENTS_DEFAULT_CURRENCY = os.getenv("PAYMENTS_DEFAULT_CURRENCY", "usd")

# Descope settings
DESCOPE_PROJECT_ID = os.getenv("DESCOPE_PROJECT_ID", "")
DESCOPE_JWT_LEEWAY = int(os.getenv("DESCOPE_JWT_LEEWAY", "60"))  # default 60 seconds for JWT clock-skew tolerance
DESCOPE_JWT_LEEWAY_FALLBACK = int(os.getenv("DESCOPE_JWT_LEEWAY_FALLBACK", "120"))  # fallback 120 seconds for severe clock-skew

# Pay-per-message settings
PPM_MAX_MESSAGE_LENGTH = int(os.getenv("PPM_MAX_MESSAGE_LENGTH", "2000"))  # Maximum message length in characters
PPM_MESSAGE_HISTORY_LIMIT = int(os.getenv("PPM_MESSAGE_HISTORY_LIMIT", "100"))
