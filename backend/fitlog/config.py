"""Configuration - Settings read from the environment."""

import os
from dataclasses import dataclass, field


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in {"1", "true", "yes"}


@dataclass
class AppConfig:
    """Runtime configuration for the FitLog server.

    Attributes:
        storage: Backend name, "memory" or "firestore"
        firestore_project: GCP project ID (None for default)
        firestore_database: Firestore database name
        session_ttl_hours: Session lifetime from login
        bcrypt_rounds: bcrypt cost factor for new password hashes
        cookie_secure: Mark the session cookie Secure (HTTPS only)
        cors_origins: Origins allowed to call the API with credentials
        host: Bind address
        port: Bind port
    """

    storage: str = "memory"
    firestore_project: str | None = None
    firestore_database: str | None = "fitlog"
    session_ttl_hours: float = 24
    bcrypt_rounds: int = 10
    cookie_secure: bool = False
    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:3000"])
    host: str = "0.0.0.0"
    port: int = 3000

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Build configuration from environment variables."""
        origins = os.environ.get("FITLOG_CORS_ORIGINS", "http://localhost:3000")
        return cls(
            storage=os.environ.get("FITLOG_STORAGE", "memory").strip().lower(),
            firestore_project=os.environ.get("FIRESTORE_PROJECT") or None,
            firestore_database=os.environ.get("FIRESTORE_DATABASE", "fitlog"),
            session_ttl_hours=float(os.environ.get("FITLOG_SESSION_TTL_HOURS", 24)),
            bcrypt_rounds=int(os.environ.get("FITLOG_BCRYPT_ROUNDS", 10)),
            cookie_secure=_env_flag("FITLOG_COOKIE_SECURE"),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            host=os.environ.get("HOST", "0.0.0.0"),
            port=int(os.environ.get("PORT", 3000)),
        )
