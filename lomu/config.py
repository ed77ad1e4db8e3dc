import os
from functools import lru_cache
from pathlib import Path as _Path
from typing import List

from dotenv import load_dotenv as _load_dotenv
from pydantic import BaseModel, Field

# Load .env early; variables already exported win
_load_dotenv(dotenv_path=_Path(__file__).resolve().parent.parent / ".env", override=False)


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def _env_csv(name: str) -> List[str]:
    raw = os.getenv(name, "")
    return [part.strip() for part in raw.split(",") if part.strip()]


class Settings(BaseModel):
    # Support multiple common env var names for Mongo connection string
    mongo_uri: str = Field(
        default_factory=lambda: (
            os.getenv("MONGO_URI")
            or os.getenv("MONGODB_URI")
            or os.getenv("MONGO_URL")
            or ""
        )
    )
    mongo_db: str = Field(default_factory=lambda: os.getenv("MONGO_DB_NAME", "lomu"))
    # Optional: provide a non-SRV fallback URI (e.g., mongodb://127.0.0.1:27017)
    mongo_alt_uri: str = Field(default_factory=lambda: os.getenv("MONGO_ALT_URI", ""))
    # Optional: force direct connection (applies to non-SRV URIs)
    mongo_direct: bool = Field(default_factory=lambda: _env_flag("MONGO_DIRECT"))
    mongo_selection_timeout_ms: int = Field(default_factory=lambda: int(os.getenv("MONGO_SERVER_SELECTION_TIMEOUT_MS", "3000")))
    mongo_connect_timeout_ms: int = Field(default_factory=lambda: int(os.getenv("MONGO_CONNECT_TIMEOUT_MS", "3000")))
    mongo_socket_timeout_ms: int = Field(default_factory=lambda: int(os.getenv("MONGO_SOCKET_TIMEOUT_MS", "5000")))

    cors_origins: List[str] = Field(
        default_factory=lambda: _env_csv("CORS_ORIGINS") or ["http://localhost:8081", "http://localhost:19006"]
    )
    port: int = Field(default_factory=lambda: int(os.getenv("PORT", "3001")))
    slow_request_ms: int = Field(default_factory=lambda: int(os.getenv("SLOW_REQUEST_MS", "800")))

    # Auth
    jwt_secret: str = Field(default_factory=lambda: os.getenv("JWT_SECRET", ""))
    auth_token_ttl: int = Field(default_factory=lambda: int(os.getenv("AUTH_TOKEN_TTL", "3600")))
    reset_token_ttl: int = Field(default_factory=lambda: int(os.getenv("RESET_TOKEN_TTL", "600")))
    bcrypt_rounds: int = Field(default_factory=lambda: max(10, int(os.getenv("BCRYPT_ROUNDS", "10"))))
    auth_rate_limit_window: int = Field(default_factory=lambda: int(os.getenv("AUTH_RATE_LIMIT_WINDOW", "60")))
    auth_rate_limit_max: int = Field(default_factory=lambda: int(os.getenv("AUTH_RATE_LIMIT_MAX", "10")))
    admin_usernames: List[str] = Field(default_factory=lambda: [u.lower() for u in _env_csv("ADMIN_USERNAMES")])
    frontend_url: str = Field(default_factory=lambda: os.getenv("FRONTEND_URL", "http://localhost:8081"))

    # Matching
    explore_page_size: int = Field(default_factory=lambda: int(os.getenv("EXPLORE_PAGE_SIZE", "20")))
    explore_max_distance_m: int = Field(default_factory=lambda: int(os.getenv("EXPLORE_MAX_DISTANCE_M", "50000")))
    # Run the two-document match write inside a MongoDB transaction (replica set required)
    match_transactions: bool = Field(default_factory=lambda: _env_flag("MATCH_TRANSACTIONS"))

    # Media storage
    cloudinary_profile_folder: str = Field(default_factory=lambda: os.getenv("CLOUDINARY_PROFILE_FOLDER", "dating_app"))
    cloudinary_photos_folder: str = Field(default_factory=lambda: os.getenv("CLOUDINARY_PHOTOS_FOLDER", "dating_app/post_photos"))
    max_photo_bytes: int = Field(default_factory=lambda: int(os.getenv("MAX_PHOTO_BYTES", str(5 * 1024 * 1024))))
    storage_timeout: float = Field(default_factory=lambda: float(os.getenv("STORAGE_TIMEOUT", "20")))
    photo_limit: int = 18
    photos_per_upload: int = 5

    # Geocoding
    geocoder_url: str = Field(
        default_factory=lambda: os.getenv("GEOCODER_URL", "https://nominatim.openstreetmap.org/reverse")
    )
    geocoder_user_agent: str = Field(default_factory=lambda: os.getenv("GEOCODER_USER_AGENT", "lomu/1.0"))
    geocoder_timeout: float = Field(default_factory=lambda: float(os.getenv("GEOCODER_TIMEOUT", "10")))
    geocoder_cache_ttl: int = Field(default_factory=lambda: int(os.getenv("GEOCODER_CACHE_TTL", "86400")))
    geocoder_cache_max: int = Field(default_factory=lambda: int(os.getenv("GEOCODER_CACHE_MAX", "5000")))
    geocoder_min_interval: float = Field(default_factory=lambda: float(os.getenv("GEOCODER_MIN_INTERVAL", "1.0")))
    location_rate_limit_max: int = Field(default_factory=lambda: int(os.getenv("LOCATION_RATE_LIMIT_MAX", "3")))
    # Redis (shared geocoder cache across processes)
    redis_url: str = Field(default_factory=lambda: os.getenv("REDIS_URL", ""))
    redis_prefix: str = Field(default_factory=lambda: os.getenv("REDIS_PREFIX", "lomu"))

    # Email
    smtp_host: str = Field(default_factory=lambda: os.getenv("SMTP_HOST", ""))
    smtp_port: int = Field(default_factory=lambda: int(os.getenv("SMTP_PORT", "587")))
    smtp_username: str = Field(default_factory=lambda: os.getenv("SMTP_USERNAME", os.getenv("EMAIL_USER", "")))
    smtp_password: str = Field(default_factory=lambda: os.getenv("SMTP_PASSWORD", os.getenv("EMAIL_PASS", "")))
    mail_from: str = Field(default_factory=lambda: os.getenv("MAIL_FROM", os.getenv("EMAIL_USER", "")))
    mail_from_name: str = Field(default_factory=lambda: os.getenv("MAIL_FROM_NAME", "Lomu Dating"))
    smtp_timeout: float = Field(default_factory=lambda: float(os.getenv("SMTP_TIMEOUT", "10")))

    # M-Pesa (Daraja)
    mpesa_consumer_key: str = Field(default_factory=lambda: os.getenv("MPESA_CONSUMER_KEY", ""))
    mpesa_consumer_secret: str = Field(default_factory=lambda: os.getenv("MPESA_CONSUMER_SECRET", ""))
    mpesa_auth_url: str = Field(
        default_factory=lambda: os.getenv(
            "MPESA_AUTH_URL",
            "https://sandbox.safaricom.co.ke/oauth/v1/generate?grant_type=client_credentials",
        )
    )
    mpesa_stkpush_url: str = Field(
        default_factory=lambda: os.getenv(
            "MPESA_STKPUSH_URL",
            "https://sandbox.safaricom.co.ke/mpesa/stkpush/v1/processrequest",
        )
    )
    mpesa_shortcode: str = Field(default_factory=lambda: os.getenv("MPESA_BUSINESS_SHORTCODE", ""))
    mpesa_passkey: str = Field(default_factory=lambda: os.getenv("MPESA_PASSKEY", ""))
    mpesa_callback_url: str = Field(default_factory=lambda: os.getenv("MPESA_CALLBACK_URL", ""))
    mpesa_timeout: float = Field(default_factory=lambda: float(os.getenv("MPESA_TIMEOUT", "15")))


@lru_cache()
def get_settings() -> Settings:
    return Settings()
