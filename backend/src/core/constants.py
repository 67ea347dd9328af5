"""Application constants and configuration values."""

from core.config import FRONTEND_URL

# Database field lengths
MAX_STRING_LENGTH = 255
MAX_NOTES_LENGTH = 1000
MAX_REASON_LENGTH = 500

# Database connection settings
DB_POOL_RECYCLE_SECONDS = 300  # 5 minutes

# CORS origins for development and production
_CORS_ORIGINS_RAW = [
    "http://localhost:3000",      # Patient portal (Next.js dev server)
    "http://localhost:3001",      # Admin portal (Next.js dev server)
    FRONTEND_URL,
]

# Filter out None values and empty strings to avoid CORS errors
CORS_ORIGINS = [origin for origin in _CORS_ORIGINS_RAW if origin and origin.strip()]

# Minutes in a day; minute-of-day values are 0..1439
MINUTES_PER_DAY = 24 * 60

# Confirmation numbers: base36 timestamp prefix + random suffix
CONFIRMATION_NUMBER_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
CONFIRMATION_NUMBER_SUFFIX_LENGTH = 4

# Notification dispatch
NOTIFICATION_TIMEOUT_SECONDS = 5

# Payment gateway
PAYMENT_GATEWAY_TIMEOUT_SECONDS = 15
PAYMENT_METHOD_ONLINE = "razorpay"
