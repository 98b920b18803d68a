from pathlib import Path
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_DIR = Path(__file__).resolve().parents[2]


class Settings(BaseSettings):
    """Server configuration loaded from ``NOTES_*`` environment variables."""

    model_config = SettingsConfigDict(env_prefix="NOTES_", env_file=".env", extra="ignore")

    host: str = "127.0.0.1"
    port: int = 2092
    data_dir: Path = PROJECT_DIR / "data"
    db_filename: str = "notes.db"
    # Probed before the default web/dist locations
    widget_dir: Optional[Path] = None
    # Answer POSTs with a single JSON body instead of an SSE stream
    json_response: bool = False
    dns_rebinding_protection: bool = True
    allowed_hosts: List[str] = ["127.0.0.1:*", "localhost:*", "[::1]:*"]
    allowed_origins: List[str] = ["http://127.0.0.1:*", "http://localhost:*", "http://[::1]:*"]
    max_body_bytes: int = 5 * 1024 * 1024
    log_level: str = "INFO"

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_filename
