"""
Application configuration using python-dotenv.

This module loads environment variables from .env file into os.environ
for use throughout the application.
"""

import os
import pathlib
from decimal import Decimal
from dotenv import load_dotenv


# Determine if we're running in a test environment
# Don't load .env file during testing to ensure predictable test behavior
is_testing = os.getenv("PYTEST_VERSION") is not None or any("pytest" in str(frame) for frame in __import__('inspect').stack(0))

# Load .env file into os.environ (only outside of testing)
if not is_testing:
    # Try multiple possible locations for .env file
    possible_paths = [
        pathlib.Path(__file__).parent.parent.parent / ".env",  # backend/.env (when run from backend/src)
        pathlib.Path(__file__).parent.parent.parent.parent / ".env",  # .env (when run from src)
        pathlib.Path.cwd() / ".env",  # .env in current directory
        pathlib.Path.cwd().parent / ".env",  # .env in parent directory
    ]

    for env_path in possible_paths:
        if env_path.exists():
            load_dotenv(env_path)
            break


def _get_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# Configuration constants with defaults
# These match the environment variables defined in .env.example
def get_database_url():
    """Get the database URL from environment."""
    return os.getenv(
        "DATABASE_URL",
        "postgresql://localhost/clinic_scheduling_dev"
    )

DATABASE_URL = get_database_url()
API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# Clinic wall clock (minutes east of UTC, IST by default)
CLINIC_UTC_OFFSET_MINUTES = int(os.getenv("CLINIC_UTC_OFFSET_MINUTES", "330"))

# Scheduling policy
SLOT_STEP_MINUTES = int(os.getenv("SLOT_STEP_MINUTES", "30"))
DEFAULT_MAX_RESCHEDULES = int(os.getenv("DEFAULT_MAX_RESCHEDULES", "2"))
MAX_BOOKING_WINDOW_DAYS = int(os.getenv("MAX_BOOKING_WINDOW_DAYS", "30"))
CANCELLATION_REFUND_HOURS = int(os.getenv("CANCELLATION_REFUND_HOURS", "24"))

# Payment configuration (amounts in INR)
APPOINTMENT_RESERVATION_FEE = Decimal(os.getenv("APPOINTMENT_RESERVATION_FEE", "500"))
GST_TAX_RATE = Decimal(os.getenv("GST_TAX_RATE", "0.18"))
CONVENIENCE_FEE = Decimal(os.getenv("CONVENIENCE_FEE", "0"))
ENABLE_SERVICE_PAYMENT_ONLINE = _get_bool("ENABLE_SERVICE_PAYMENT_ONLINE")
PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "INR")

# Payment gateway
RAZORPAY_BASE_URL = os.getenv("RAZORPAY_BASE_URL", "https://api.razorpay.com/v1")
RAZORPAY_KEY_ID = os.getenv("RAZORPAY_KEY_ID", "")
RAZORPAY_KEY_SECRET = os.getenv("RAZORPAY_KEY_SECRET", "")

# Repository round trips
REPOSITORY_TIMEOUT_SECONDS = float(os.getenv("REPOSITORY_TIMEOUT_SECONDS", "5"))
REPOSITORY_MAX_RETRIES = int(os.getenv("REPOSITORY_MAX_RETRIES", "3"))
REPOSITORY_RETRY_BACKOFF_SECONDS = float(os.getenv("REPOSITORY_RETRY_BACKOFF_SECONDS", "0.1"))

# Notification dispatch (empty disables outbound notifications)
NOTIFICATION_WEBHOOK_URL = os.getenv("NOTIFICATION_WEBHOOK_URL", "")

# Authentication
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
JWT_ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("JWT_ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
