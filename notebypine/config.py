"""
Configuration module for NoteByPine.
Loads environment variables and provides centralized config access.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings

# ============================================================
# Centralized Data Paths
# ============================================================
# Feedback, audit and export output lives under <project>/out/ so it can be
# wiped without touching PocketBase.
PROJECT_ROOT = Path(__file__).parent.parent
DATA_DIR = PROJECT_ROOT / "out"

# Known placeholder credentials that should never reach production
DEFAULT_JWT_SECRETS = ("change-me-to-a-random-secret-key", "default-secret")
DEFAULT_ADMIN_PASSWORDS = ("admin123456",)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Uses pydantic-settings for validation and type coercion.
    """

    # ============================================================
    # PocketBase
    # ============================================================
    pocketbase_url: str = "http://127.0.0.1:8090"
    pocketbase_admin_email: str = "admin@example.com"
    pocketbase_admin_password: str = "admin123456"
    pocketbase_timeout: float = 15.0

    # ============================================================
    # JWT Authentication (admin API)
    # ============================================================
    jwt_secret_key: str = "change-me-to-a-random-secret-key"
    jwt_algorithm: str = "HS256"
    jwt_expiration_hours: int = 24

    # ============================================================
    # Server Configuration
    # ============================================================
    host: str = "0.0.0.0"
    port: int = 3000
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"

    # ============================================================
    # CORS Configuration
    # ============================================================
    # Comma-separated origins, added to the Vite/preview defaults.
    cors_origins: str = "http://localhost:5173,http://127.0.0.1:5173,http://localhost:8080"

    # ============================================================
    # MCP / Code Mode
    # ============================================================
    routing_config_path: str = "mcp.routing.json"
    tool_rate_limit: int = 100          # tool calls per client per window
    tool_rate_window_seconds: int = 60
    export_page_size: int = 200

    # Where feedback, audits and exports are written. Defaults to DATA_DIR.
    data_dir: Optional[str] = None

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse the comma-separated CORS origins into a list."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def data_path(self) -> Path:
        """Resolved output directory for file-based agent state."""
        return Path(self.data_dir) if self.data_dir else DATA_DIR

    @property
    def uses_default_secrets(self) -> bool:
        return (
            self.jwt_secret_key in DEFAULT_JWT_SECRETS
            or self.pocketbase_admin_password in DEFAULT_ADMIN_PASSWORDS
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reloading env vars on every call.
    """
    return Settings()
