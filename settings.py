import os

from dotenv import load_dotenv

# Values come from the environment, optionally seeded from a local .env file
load_dotenv()

APP_ENV = os.getenv("APP_ENV", "development")
IS_PRODUCTION = APP_ENV == "production"
PORT = int(os.getenv("PORT", 8000))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGIN", "http://localhost:3000,http://localhost:5173").split(",")
    if origin.strip()
]

# Firebase service account
FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID")
FIREBASE_CLIENT_EMAIL = os.getenv("FIREBASE_CLIENT_EMAIL")
FIREBASE_PRIVATE_KEY = os.getenv("FIREBASE_PRIVATE_KEY")
FIREBASE_COOKIE_NAME = os.getenv("FIREBASE_COOKIE_NAME", "firebase_token")

# CSRF tokens
CSRF_SECRET = os.getenv("CSRF_SECRET", "supersecretkey")
CSRF_ALGORITHM = "HS256"
CSRF_TOKEN_EXPIRE_MINUTES = int(os.getenv("CSRF_TOKEN_EXPIRE_MINUTES", 60))

# Rate limiting
RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", 15 * 60))
RATE_LIMIT_MAX = int(os.getenv("RATE_LIMIT_MAX", 100 if IS_PRODUCTION else 500))

# Routing service
OSRM_BASE_URL = os.getenv("OSRM_BASE_URL", "https://router.project-osrm.org")
OSRM_PROFILE = os.getenv("OSRM_PROFILE", "foot")
OSRM_TIMEOUT = int(os.getenv("OSRM_TIMEOUT", 10))

FRONTEND_DIST = os.getenv("FRONTEND_DIST", os.path.join("frontend", "dist"))


def firebase_credentials_missing():
    """Names of the Firebase service-account variables that are not set."""
    required = {
        "FIREBASE_PROJECT_ID": FIREBASE_PROJECT_ID,
        "FIREBASE_CLIENT_EMAIL": FIREBASE_CLIENT_EMAIL,
        "FIREBASE_PRIVATE_KEY": FIREBASE_PRIVATE_KEY,
    }
    return [name for name, value in required.items() if not value]
