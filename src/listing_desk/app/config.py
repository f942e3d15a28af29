"""Application configuration via Pydantic Settings."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

# Resolve .env from the project root regardless of CWD
_ENV_FILE = Path(__file__).resolve().parents[3] / ".env"


class Settings(BaseSettings):
    """Central configuration loaded from environment variables / .env file."""

    # REST backend
    api_base_url: str = "http://localhost/backend/api"
    api_token: str = ""

    # Endpoint paths (relative to api_base_url)
    add_property_path: str = "/seller/properties/add.php"
    update_property_path: str = "/seller/properties/update.php"
    moderate_and_upload_path: str = "/images/moderate-and-upload.php"
    inquiries_path: str = "/seller/inquiries/list.php"
    update_inquiry_path: str = "/seller/inquiries/update.php"
    get_buyer_path: str = "/seller/buyers/get.php"

    # None disables the HTTP timeout entirely (the console never set one)
    request_timeout_seconds: float | None = None

    # Media limits
    property_image_limit: int = 10
    project_image_limit: int = 20
    max_image_bytes: int = 5 * 1024 * 1024
    max_video_bytes: int = 50 * 1024 * 1024
    max_brochure_bytes: int = 10 * 1024 * 1024

    # Moderation workflow
    auto_advance_delay_seconds: float = 1.0
    validation_concurrency: int | None = None

    # Listings older than this may only edit title and price fields
    restricted_edit_after_hours: int = 24

    # Local realtime chat store
    database_url: str = "sqlite+aiosqlite:///./listing_desk.db"

    # General
    debug: bool = True
    log_level: str = "WARNING"

    model_config = {"env_file": str(_ENV_FILE), "env_file_encoding": "utf-8", "extra": "ignore"}

    def endpoint(self, path: str) -> str:
        """Join a configured endpoint path onto the API base URL."""
        return f"{self.api_base_url.rstrip('/')}/{path.lstrip('/')}"


@lru_cache
def get_settings() -> Settings:
    """Return cached Settings instance."""
    return Settings()
