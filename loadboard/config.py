from dotenv import load_dotenv
import os
import secrets

# Load environment variables from .env file
load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./truckflow.db")

# Signing key for bearer tokens. Tokens issued with a generated key do not
# survive a restart.
SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_urlsafe(32)
ALGORITHM = "HS256"

BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

# Accept the caller's bare numeric id in the Authorization header
ALLOW_ID_HEADER = _flag("ALLOW_ID_HEADER", "true")

SENTRY_DSN = os.getenv("DSN")

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

POLL_INTERVAL = float(os.getenv("POLL_INTERVAL", "3"))

PUSH_TIMEOUT = float(os.getenv("PUSH_TIMEOUT", "5"))
