from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

# Signing key used when JWT_SECRET is unset. Tokens signed with it can be
# forged by anyone who has read this file, so startup logs a warning.
INSECURE_DEFAULT_JWT_SECRET = "change-me-insecure-dev-secret"


@dataclass
class Settings:
    """Centralized application settings.

    This keeps environment-variable handling in one place so other modules can
    depend on strongly-typed attributes instead of calling os.getenv
    directly.
    """

    # Session token signing. Tokens are HS256 JWTs valid for a fixed window.
    jwt_secret: str = os.getenv("JWT_SECRET") or INSECURE_DEFAULT_JWT_SECRET
    jwt_algorithm: str = "HS256"
    jwt_expiration_days: int = int(os.getenv("JWT_EXPIRATION_DAYS", "7"))

    # bcrypt cost factor for password hashes.
    bcrypt_rounds: int = int(os.getenv("BCRYPT_ROUNDS", "10"))

    # Reserved accounts resolved before the account store is consulted.
    super_admin_email: str = os.getenv("SUPER_ADMIN_EMAIL", "admin@thinkabc.com")
    super_admin_password: str = os.getenv("SUPER_ADMIN_PASSWORD", "ThinkABC2024!")
    demo_email: str = os.getenv("DEMO_EMAIL", "demo@thinkabc.com")
    demo_password: str = os.getenv("DEMO_PASSWORD", "demo123")

    # Call analysis providers. A provider only takes part in the fallback
    # chain when its API key is set; with neither key set every text analysis
    # is served by the offline heuristic.
    gemini_api_key: Optional[str] = os.getenv("GEMINI_API_KEY")
    gemini_model: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
    gemini_api_base: str = os.getenv("GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta")
    openai_api_key: Optional[str] = os.getenv("OPENAI_API_KEY")
    openai_model: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    # Upper bound for a single provider call, in seconds. Expiry counts as a
    # retryable failure.
    analysis_provider_timeout_seconds: float = float(os.getenv("ANALYSIS_PROVIDER_TIMEOUT_SECONDS", "30"))
    # When true, /analysis/call requires a bearer token.
    analysis_require_auth: bool = os.getenv("ANALYSIS_REQUIRE_AUTH", "false").lower() == "true"
    # Maximum size of the base64 audio payload accepted by /analysis/call.
    max_audio_base64_bytes: int = int(os.getenv("MAX_AUDIO_BASE64_BYTES", str(3 * 1024 * 1024)))

    # Optional database configuration for the SQL-backed account store.
    # Without it accounts live in process memory and are lost on restart.
    database_url: Optional[str] = os.getenv("DATABASE_URL")
    use_sql_repos: bool = os.getenv("USE_SQL_REPOS", "false").lower() == "true"

    # CORS configuration: comma-separated origins (e.g. "https://app.example.com,https://admin.example.com").
    cors_allow_origins: str = os.getenv("CORS_ALLOW_ORIGINS", "http://localhost:3000")

    @property
    def uses_insecure_jwt_secret(self) -> bool:
        return self.jwt_secret == INSECURE_DEFAULT_JWT_SECRET


settings = Settings()
