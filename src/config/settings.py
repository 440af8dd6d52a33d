"""
Application configuration using Pydantic settings.

Configuration is loaded from environment variables with sensible defaults.
Using Pydantic's BaseSettings means we get:
- Type validation at startup (fail fast if config is wrong)
- Documentation of what's required vs optional
- Easy testing with different configurations

Mock mode enables local development without a real B2 bucket.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..core.storage.models import BucketRef, Credentials, StorageOptions


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    For lists (like api_keys), use comma-separated values in env.
    """

    # API Configuration
    api_title: str = "B2 Image Host API"
    api_keys: str = Field(
        default="dev-key-1,dev-key-2",
        description="Comma-separated API keys. Using a list enables key rotation without downtime."
    )

    # B2 Configuration
    b2_application_key_id: str = Field(
        default="",
        description="B2 application key ID (or account ID)"
    )
    b2_application_key: str = Field(
        default="",
        description="B2 application key (secret)"
    )
    b2_bucket_id: str = Field(
        default="",
        description="ID of the bucket uploads go to"
    )
    b2_bucket_name: str = Field(
        default="",
        description="Name of the bucket, used in public download URLs"
    )
    b2_custom_domain: Optional[str] = Field(
        default=None,
        description="Custom domain for file URLs (e.g. https://cdn.example.com)"
    )
    b2_path_prefix: str = Field(
        default="",
        description="Path prefix for uploaded files (e.g. images/2024)"
    )
    b2_api_base_url: str = Field(
        default="https://api.backblazeb2.com",
        description="Host serving b2_authorize_account"
    )
    b2_control_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout for authorize/lease/list/delete calls"
    )
    b2_upload_timeout_seconds: float = Field(
        default=120.0,
        description="Timeout for a payload upload"
    )
    b2_mock_mode: bool = Field(
        default=False,
        description="Use an in-memory B2 emulator. Enables local dev without a bucket."
    )

    # Application Behavior
    max_upload_size_mb: int = Field(
        default=20,
        description="Maximum total upload size in MB per request."
    )
    list_page_size: int = Field(
        default=100,
        description="Files returned by the bucket listing endpoint (single page)."
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins. Use * for development only."
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def api_keys_list(self) -> list[str]:
        """Parse comma-separated API keys into a list."""
        return [key.strip() for key in self.api_keys.split(",") if key.strip()]

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    def storage_options(self) -> StorageOptions:
        """
        Build the storage backend configuration.

        In mock mode blank fields get placeholder values so the emulator
        can be used without any B2 account.
        """
        if self.b2_mock_mode:
            return StorageOptions(
                credentials=Credentials(
                    key_id=self.b2_application_key_id or "mock-key-id",
                    key=self.b2_application_key or "mock-key",
                ),
                bucket=BucketRef(
                    bucket_id=self.b2_bucket_id or "mock-bucket-id",
                    bucket_name=self.b2_bucket_name or "mock-bucket",
                ),
                custom_domain=self.b2_custom_domain or None,
                path_prefix=self.b2_path_prefix,
            )

        return StorageOptions(
            credentials=Credentials(
                key_id=self.b2_application_key_id,
                key=self.b2_application_key,
            ),
            bucket=BucketRef(
                bucket_id=self.b2_bucket_id,
                bucket_name=self.b2_bucket_name,
            ),
            custom_domain=self.b2_custom_domain or None,
            path_prefix=self.b2_path_prefix,
        )

    def validate_required_fields(self) -> list[str]:
        """
        Validate that required fields are set based on mock mode settings.

        Returns list of missing required fields.
        This is separate from Pydantic validation because requirements
        depend on whether we're in mock mode.
        """
        if self.b2_mock_mode:
            return []

        missing = []
        if not self.b2_application_key_id:
            missing.append("B2_APPLICATION_KEY_ID")
        if not self.b2_application_key:
            missing.append("B2_APPLICATION_KEY")
        if not self.b2_bucket_id:
            missing.append("B2_BUCKET_ID")
        if not self.b2_bucket_name:
            missing.append("B2_BUCKET_NAME")
        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Using lru_cache means we only load settings once per process.
    This is safe because settings don't change during runtime.
    For tests, you can call get_settings.cache_clear() to reset.
    """
    return Settings()
