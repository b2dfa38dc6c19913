from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ALLOWED_MIME_TYPES = [
    "application/pdf",
    "image/jpeg",
    "image/png",
    "image/gif",
    "application/xml",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
]

MAX_SIGNED_REFERENCE_TTL_SECONDS = 300


class Settings(BaseSettings):
    """Server configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    db_host: str = "host.docker.internal"
    db_port: int = 5432
    db_database: str = "papierkraken"
    db_username: str = "papierkraken"
    db_password: str = "secret"

    server_host: str = "0.0.0.0"
    server_port: int = 5000

    max_upload_bytes: int = 50 * 1024 * 1024
    allowed_mime_types: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_MIME_TYPES)
    )
    staging_dir: str = "/tmp/papierkraken-uploads"

    storage_bucket: str = "papierkraken-docs-eu"
    storage_region: str = "eu-central-1"
    storage_endpoint_url: str | None = None
    storage_prefix: str = "users/dev"
    storage_kms_key_id: str = ""
    signed_reference_ttl_seconds: int = Field(
        default=MAX_SIGNED_REFERENCE_TTL_SECONDS,
        gt=0,
        le=MAX_SIGNED_REFERENCE_TTL_SECONDS,
    )

    pdf_engine: str = "pdfplumber"
    ocr_provider: str = "openai"

    classification_provider: str = "openai"
    classification_max_text_chars: int = 12000

    classification_openai_api_key: str = ""
    classification_openai_model_name: str = "gpt-4o"
    classification_openai_timeout_seconds: int = 30
    classification_openai_temperature: float = 0.0

    classification_azure_api_key: str = ""
    classification_azure_endpoint: str = ""
    classification_azure_deployment_name: str = "gpt-4o"
    classification_azure_api_version: str = "2023-12-01-preview"
    classification_azure_timeout_seconds: int = 30

    classification_openai_compatible_api_key: str = ""
    classification_openai_compatible_model_name: str = ""
    classification_openai_compatible_base_url: str = ""
    classification_openai_compatible_timeout_seconds: int = 30

    ocr_max_tokens: int = 1000

    jwt_secret: str = "papierkraken-secret-key"
    jwt_algorithm: str = "HS256"

    recovery_poll_interval_seconds: int = 30
    recovery_stale_after_seconds: int = 600
    max_recovery_attempts: int = 3


class ClientSettings(BaseSettings):
    """Offline upload client configuration, read from CLIENT_* variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="CLIENT_", extra="ignore"
    )

    log_level: str = "INFO"

    api_base_url: str = "http://localhost:5000"
    api_token: str = ""

    queue_db_path: str = "./data/offline_queue.db"
    synced_retention_days: int = 7

    health_check_interval_seconds: float = 15.0
    health_check_timeout_seconds: float = 5.0

    upload_timeout_seconds: float = 120.0
    upload_chunk_bytes: int = 64 * 1024

    max_upload_bytes: int = 50 * 1024 * 1024
    allowed_mime_types: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_MIME_TYPES)
    )
