"""
Configuration management for Action Board.
"""

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Application
    app_name: str = Field(default="Action Board")
    debug: bool = Field(default=False)
    environment: str = Field(default="development")

    # API
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)
    api_workers: int = Field(default=1)

    # Database
    database_url: str = Field(default="sqlite:///./action_board.db")

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    # Change fan-out
    refresh_window_ms: int = Field(
        default=1000,
        ge=0,
        description="Minimum interval between two refreshes of the same refresh key.",
    )

    # Boards and routing
    default_board_id: Optional[str] = Field(
        default=None,
        description="Board used when a routing rule has no target board and no board defaults to the rule's team.",
    )
    default_columns: str = Field(
        default="Backlog,In Progress,Done",
        description="Comma-separated column names created with a new board when none are supplied.",
    )

    def default_column_names(self) -> List[str]:
        """Parse DEFAULT_COLUMNS into a list of names, skipping blanks."""
        names = [name.strip() for name in self.default_columns.split(",")]
        return [name for name in names if name]


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings."""
    return settings
