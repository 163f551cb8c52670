"""Environment-driven configuration with Pydantic v2."""

from typing import List, Literal, Optional
from pathlib import Path
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings driven entirely by environment variables."""

    app_name: str = Field(default="NomNom")

    # Server Configuration
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3010, ge=1024, le=65535)
    debug: bool = Field(default=False)
    workers: int = Field(default=1, ge=1, le=16)
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    # Proxies whose X-Forwarded-For uvicorn trusts for request.client
    forwarded_allow_ips: str = Field(default="127.0.0.1")
    api_gateway_key: Optional[str] = Field(default=None)

    # Authentication
    jwt_secret_key: str = Field(min_length=32)
    jwt_algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(default=60, ge=5)
    refresh_token_expire_days: int = Field(default=7, ge=1)
    session_lock_ttl: int = Field(default=10, ge=1, le=60)
    email_token_ttl: int = Field(default=900, ge=60)
    app_url: str = Field(default="http://localhost:3000")

    # Database Configuration
    database_url: str = Field(default="sqlite+aiosqlite:///./data/accounts.db")
    database_echo: bool = Field(default=False)
    database_pool_size: int = Field(default=20, ge=5, le=100)
    database_max_overflow: int = Field(default=30, ge=10, le=100)

    # Key-value store (Redis)
    redis_host: str = Field(default="localhost")
    redis_port: int = Field(default=6379, ge=1, le=65535)
    redis_password: Optional[str] = Field(default=None)
    redis_db: int = Field(default=0, ge=0, le=15)
    redis_socket_timeout: float = Field(default=2.0, gt=0, le=30)
    redis_connect_timeout: float = Field(default=2.0, gt=0, le=30)
    redis_max_retries: int = Field(default=3, ge=0, le=10)

    # Cache-aside
    cache_ttl: int = Field(default=3600, ge=60)
    cache_lock_ttl: int = Field(default=10, ge=1, le=120)
    cache_lock_backoff_ms: int = Field(default=50, ge=1, le=5000)
    address_cache_ttl: int = Field(default=300, ge=10)

    # Phone verification
    otp_ttl: int = Field(default=600, ge=60)
    otp_max_issuances: int = Field(default=3, ge=1)
    otp_issue_window: int = Field(default=900, ge=60)
    otp_block_duration: int = Field(default=3600, ge=60)
    otp_max_verify_attempts: int = Field(default=5, ge=1)
    otp_lock_ttl: int = Field(default=10, ge=1, le=60)
    default_country_code: str = Field(default="1")

    # SMS (Twilio)
    twilio_account_sid: Optional[str] = Field(default=None)
    twilio_auth_token: Optional[str] = Field(default=None)
    twilio_phone_number: Optional[str] = Field(default=None)

    # Email (SMTP)
    smtp_host: Optional[str] = Field(default=None)
    smtp_port: int = Field(default=587, ge=1, le=65535)
    smtp_username: Optional[str] = Field(default=None)
    smtp_password: Optional[str] = Field(default=None)
    smtp_use_tls: bool = Field(default=True)
    email_from: str = Field(default="no-reply@localhost")

    # Google Maps / Places
    google_maps_api_key: Optional[str] = Field(default=None)
    maps_timeout: int = Field(default=10, ge=5, le=60)
    places_country: str = Field(default="us")
    places_language: str = Field(default="en")

    # Logging
    log_level: str = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="json")
    log_file: Optional[str] = Field(default=None)

    # Rate Limiting
    rate_limit_enabled: bool = Field(default=True)
    rate_limit_window: int = Field(default=60, ge=1)
    rate_limit_search: int = Field(default=10, ge=1)
    rate_limit_details: int = Field(default=20, ge=1)
    rate_limit_addresses: int = Field(default=10, ge=1)
    rate_limit_email_auth: int = Field(default=5, ge=1)
    rate_limit_email_auth_window: int = Field(default=900, ge=60)

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        """Ensure database directory exists for SQLite."""
        if v and v.startswith("sqlite"):
            if ":///" in v:
                db_path = v.split("///")[1]
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        return v

    @field_validator("default_country_code")
    @classmethod
    def validate_country_code(cls, v):
        v = v.lstrip("+")
        if not v.isdigit():
            raise ValueError("default_country_code must be digits")
        return v

    @model_validator(mode="after")
    def validate_otp_block(self):
        # A block shorter than the window would expire while the count still stands
        if self.otp_block_duration <= self.otp_issue_window:
            raise ValueError("otp_block_duration must be longer than otp_issue_window")
        return self

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.debug

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return not self.debug

    @property
    def cache_lock_backoff(self) -> float:
        return self.cache_lock_backoff_ms / 1000

    @property
    def twilio_enabled(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token and self.twilio_phone_number)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
        "env_parse_none_str": "none",
    }
