import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv(override=False)

# Application environment
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
DEBUG = ENVIRONMENT == "development"
TESTING = os.getenv("TESTING", "false").lower() == "true"

# Database settings
DATABASE_URL = os.getenv("DATABASE_URL")

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
APP_LOG_PATH = os.getenv("APP_LOG_PATH", "")

# Application settings
APP_NAME = "NULEX API"
APP_VERSION = "1.0.0"
BASE_URL = os.getenv("BASE_URL", "http://localhost:8000")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# Korapay settings
KORAPAY_SECRET_KEY = os.getenv("KORAPAY_SECRET_KEY", "")
KORAPAY_BASE_URL = os.getenv("KORAPAY_BASE_URL", "https://api.korapay.com/merchant/api/v1")
KORAPAY_TIMEOUT_SECONDS = float(os.getenv("KORAPAY_TIMEOUT_SECONDS", "30"))
KORAPAY_CURRENCY = os.getenv("KORAPAY_CURRENCY", "NGN")

# Auth settings (tokens are issued elsewhere, only verified here)
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
