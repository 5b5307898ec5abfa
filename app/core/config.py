from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

from utils.exceptions import ConfigurationError

load_dotenv()

DEFAULT_REPO = "VBHC-UHY/whitesalary-plugins"


class Settings(BaseSettings):
    """Submission service configuration with environment variable support"""
    app_name: str = "WhiteSalary Plugin Submission"

    # GitHub contents API
    github_token: Optional[str] = None
    github_repo: str = DEFAULT_REPO
    github_branch: str = "main"
    github_api_url: str = "https://api.github.com"
    raw_base_url: str = "https://raw.githubusercontent.com"
    github_timeout: float = 20.0
    index_path: str = "plugins.json"

    # Submission pipeline
    submit_write_order: Literal["strict", "legacy"] = "strict"
    submit_rollback: bool = True
    index_max_retries: int = 3
    index_retry_wait: float = 0.5

    # Rate limiting
    submit_rate_limit: str = "10/minute"
    rate_limit_enabled: bool = True

    log_level: str = "INFO"
    log_json: bool = True

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }

    def validate_required_vars(self):
        """Raise if a setting needed for talking to GitHub is missing"""
        if not self.github_token:
            raise ConfigurationError("GitHub Token 未配置")
        if not self.github_repo:
            raise ConfigurationError("GitHub 仓库未配置")


def get_settings() -> Settings:
    """FastAPI dependency; re-reads the environment on every call."""
    return Settings()


settings = Settings()
