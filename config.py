"""
Runtime configuration for the Volunteer Platform API.

All values come from environment variables (a local .env file is loaded
first). Validation limits and status vocabularies live here too so the
schemas and services share one source.
"""
import os

from dotenv import load_dotenv

load_dotenv()

# ===== Environment =====
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
IS_PRODUCTION = ENVIRONMENT == "production"
PORT = int(os.getenv("PORT", 8000))
API_PREFIX = "/api"
CLIENT_URL = os.getenv("CLIENT_URL", "http://localhost:5173")

# ===== Database =====
DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "volunteer_platform")

# ===== Security / Auth =====
SECRET_KEY = os.getenv("JWT_SECRET", "dev-secret-change-me")
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24 * 7))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", 10))

# ===== Payments =====
PAYMENT_SUCCESS_RATE = float(os.getenv("PAYMENT_SUCCESS_RATE", 0.95))
PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "INR")
PAYMENT_MOCK_KEY = os.getenv("PAYMENT_MOCK_KEY", "MOCK_RAZORPAY_KEY")
PENDING_DONATION_TTL_MINUTES = int(os.getenv("PENDING_DONATION_TTL_MINUTES", 30))

# ===== Rate limiting =====
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
RATE_LIMIT_STORAGE_URI = os.getenv("RATE_LIMIT_STORAGE_URI", "memory://")
# every /api route, per client address
RATE_LIMIT_DEFAULT = os.getenv("RATE_LIMIT_DEFAULT", "100 per 15 minutes")
# /api/auth/*, replaces the default there
RATE_LIMIT_AUTH = os.getenv("RATE_LIMIT_AUTH", "10 per 15 minutes")

# ===== Logging =====
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "json" if IS_PRODUCTION else "text")

# ===== Validation limits =====
PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 128
NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 100
DONATION_MIN_AMOUNT = 1
DONATION_MAX_AMOUNT = 1_000_000
EVENT_TITLE_MIN_LENGTH = 3
EVENT_TITLE_MAX_LENGTH = 200
EVENT_DESCRIPTION_MAX_LENGTH = 2000
NGO_DESCRIPTION_MAX_LENGTH = 1000
DEFAULT_MAX_VOLUNTEERS = 50

EMAIL_REGEX = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"
PHONE_REGEX = r"^[6-9]\d{9}$"

# ===== Vocabularies =====
ROLE_VOLUNTEER = "volunteer"
ROLE_NGO = "ngo"
ROLE_ADMIN = "admin"
USER_ROLES = (ROLE_VOLUNTEER, ROLE_NGO, ROLE_ADMIN)

NGO_PENDING = "pending"
NGO_APPROVED = "approved"
NGO_REJECTED = "rejected"
NGO_STATUSES = (NGO_PENDING, NGO_APPROVED, NGO_REJECTED)

PAYMENT_PENDING = "pending"
PAYMENT_COMPLETED = "completed"
PAYMENT_FAILED = "failed"
PAYMENT_STATUSES = (PAYMENT_PENDING, PAYMENT_COMPLETED, PAYMENT_FAILED)
