"""
Runtime configuration for the store API.

Every value comes from the environment with a development default. Modules
read these as ``config.NAME`` at call time so they can be patched in tests.
"""
import os

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

# Auth
SECRET_KEY = os.getenv("SECRET_KEY", "supersecretkey")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24 * 7))
BCRYPT_SALT_ROUNDS = int(os.getenv("BCRYPT_SALT_ROUNDS", 12))
COOKIE_NAME = "admin_token"
COOKIE_SECURE = ENVIRONMENT == "production"

# Razorpay
RAZORPAY_KEY_ID = os.getenv("RAZORPAY_KEY_ID", "")
RAZORPAY_KEY_SECRET = os.getenv("RAZORPAY_KEY_SECRET", "")
RAZORPAY_API_URL = os.getenv("RAZORPAY_API_URL", "https://api.razorpay.com/v1")
CURRENCY = os.getenv("CURRENCY", "INR")
GATEWAY_TIMEOUT = float(os.getenv("GATEWAY_TIMEOUT", 15))

# Store defaults
DEFAULT_COUNTRY = os.getenv("DEFAULT_COUNTRY", "India")
DEFAULT_SIZES = [6, 7, 8, 9, 10, 11]

# Seed
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@swathoops.com")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin123")
