"""
Configuration models for novascribe.

Handles document store connection settings, synchronization tuning, and
global application settings.
"""

from pathlib import Path
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreSettings(BaseModel):
    """Document store (Qdrant) connection and reliability configuration"""
    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True
    )

    # Connection settings: url for a server, location for embedded mode (":memory:" or a path)
    url: Optional[str] = "http://localhost:6333"
    location: Optional[str] = None
    api_key: Optional[str] = None
    collection_name: str = "novascribe-documents"

    # Reliability settings
    timeout: float = Field(default=30.0, gt=0.0, le=300.0)
    max_retries: int = Field(default=3, ge=0, le=10)
    retry_initial_delay: float = Field(default=0.5, ge=0.0)
    retry_backoff_factor: float = Field(default=2.0, ge=1.0)
    retry_max_delay: float = Field(default=10.0, ge=0.0)

    # Backend limits
    max_document_bytes: int = Field(default=1024 * 1024, ge=1024)
    max_batch_size: int = Field(default=500, ge=1, le=10000)
    scroll_page_size: int = Field(default=256, ge=1, le=10000)

    # Live queries
    poll_interval: float = Field(default=2.0, gt=0.0)

    @field_validator('url')
    @classmethod
    def validate_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate Qdrant URL format"""
        if v is None or v == "":
            return None
        if not v.startswith(('http://', 'https://')):
            raise ValueError('Qdrant URL must start with http:// or https://')
        return v.rstrip('/')

    @model_validator(mode='after')
    def validate_target(self) -> 'StoreSettings':
        if not self.url and not self.location:
            raise ValueError('Either url or location must be configured')
        return self

    @property
    def is_embedded(self) -> bool:
        """True when the store runs in-process rather than against a server"""
        return self.location is not None

    @classmethod
    def in_memory(cls, **overrides) -> 'StoreSettings':
        """Embedded, non-persistent store settings"""
        return cls(url=None, location=":memory:", **overrides)


class SyncSettings(BaseModel):
    """Auto-save and synchronization tuning"""
    model_config = ConfigDict(validate_assignment=True)

    debounce_ms: int = Field(default=1500, ge=0, le=60000)
    max_inline_image_bytes: int = Field(default=950 * 1024, ge=1)
    batch_delete_limit: int = Field(default=500, ge=1, le=10000)
    default_snapshot_note: str = "Automatic snapshot"

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000.0


class AppConfig(BaseModel):
    """Validated application configuration assembled by the configuration loader"""
    model_config = ConfigDict(validate_assignment=True)

    store: StoreSettings = Field(default_factory=StoreSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    owner_id: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization"""
        return self.model_dump(mode="json")


class GlobalSettings(BaseSettings):
    """Global application settings with environment variable support"""
    model_config = SettingsConfigDict(
        env_prefix="NOVASCRIBE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Default configurations
    default_qdrant_url: str = "http://localhost:6333"
    default_owner_id: Optional[str] = None

    # Global directories
    global_config_dir: Path = Field(
        default_factory=lambda: Path.home() / ".novascribe"
    )

    # Logging
    log_level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    log_to_file: bool = False

    @property
    def config_file(self) -> Path:
        """Default JSON configuration file path"""
        return self.global_config_dir / "config.json"

    def get_log_file(self) -> Optional[Path]:
        """Get log file path if logging to file is enabled"""
        if not self.log_to_file:
            return None
        log_dir = self.global_config_dir / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)
        return log_dir / "novascribe.log"
