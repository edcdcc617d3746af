"""
Configuration for apimacro.

Values come from APIMACRO_* environment variables, optionally loaded from a
.env file in the working directory.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _default_storage_path() -> str:
    return str(Path.home() / ".apimacro" / "macros.db")


@dataclass
class Config:
    """Application configuration"""

    # Macro store
    storage_path: str = ""

    # API issued against during playback
    base_url: str = ""
    api_token: str = ""
    timeout: float = 30.0

    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Config":
        """
        Build configuration from the environment.

        Args:
            env_file: .env file to load first (default: search from cwd).
                      Variables already set in the environment win.
        """
        load_dotenv(env_file)

        return cls(
            storage_path=os.getenv("APIMACRO_STORAGE_PATH") or _default_storage_path(),
            base_url=os.getenv("APIMACRO_BASE_URL", ""),
            api_token=os.getenv("APIMACRO_API_TOKEN", ""),
            timeout=float(os.getenv("APIMACRO_TIMEOUT", "30")),
            log_level=os.getenv("APIMACRO_LOG_LEVEL", "INFO").upper(),
        )

    def validate(self) -> List[str]:
        """
        Validate configuration

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if not self.storage_path:
            errors.append("APIMACRO_STORAGE_PATH is empty")

        if self.base_url and not self.base_url.startswith(("http://", "https://")):
            errors.append(f"APIMACRO_BASE_URL must start with http:// or https:// (got {self.base_url})")

        if self.timeout <= 0:
            errors.append(f"APIMACRO_TIMEOUT must be positive (got {self.timeout})")

        if self.log_level not in LOG_LEVELS:
            errors.append(f"APIMACRO_LOG_LEVEL must be one of {', '.join(LOG_LEVELS)} (got {self.log_level})")

        return errors
