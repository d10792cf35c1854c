"""
Configuration management for BuilderGraph

Loads settings from:
1. config/config.yaml (optional overlay)
2. Environment variables (BUILDERGRAPH_*) and .env
3. Default values
"""

from pathlib import Path
from typing import Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Load environment variables
load_dotenv()


class BuilderGraphConfig(BaseSettings):
    """Central configuration for the publishing service.

    Only the process bootstrap (API lifespan, CLI) reads this object.
    Components take explicit constructor arguments so they can be built
    in tests without touching the environment.
    """

    model_config = SettingsConfigDict(
        env_prefix="BUILDERGRAPH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Persistence ---
    database_url: str = Field(default="sqlite:///./data/buildergraph.db")

    # --- Ledger node ---
    ledger_api_url: str = Field(default="http://localhost:9200/api/dkg")
    ledger_explorer_base: str = Field(default="https://dkg.origintrail.io")
    ledger_request_timeout: float = 30.0
    ledger_max_attempts: int = Field(default=3, ge=1)
    ledger_retry_delay: float = 1.0
    publish_privacy: Literal["public", "private"] = "public"
    publish_priority: int = 50
    profile_epochs: int = Field(default=6, ge=1)
    project_epochs: int = Field(default=6, ge=1)
    endorsement_epochs: int = Field(default=2, ge=1)

    # --- Confirmation polling ---
    confirmation_timeout: float = Field(default=300.0, gt=0)
    poll_initial_delay: float = 2.0
    poll_max_delay: float = 10.0
    poll_max_attempts: int = Field(default=60, ge=1)
    shutdown_grace_period: float = 10.0

    # --- LLM (repository narrative analysis) ---
    llm_provider: Literal["groq", "openai", "deepseek", "ollama"] = "groq"
    llm_api_key: str = Field(default="")
    llm_base_url: str = Field(default="")
    llm_model: str = Field(default="")
    llm_timeout: int = 60
    llm_max_tokens: int = 2000
    llm_temperature: float = 0.7

    # --- API ---
    api_host: str = "0.0.0.0"
    api_port: int = 3001
    cors_origins: str = "http://localhost:5173"

    # --- Logging ---
    log_level: str = Field(default="INFO")
    log_file: Optional[Path] = None

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def publish_options(self) -> dict:
        """Default ``publishOptions`` block sent with every asset."""
        return {
            "privacy": self.publish_privacy,
            "priority": self.publish_priority,
            "maxAttempts": self.ledger_max_attempts,
        }

    @property
    def epochs_by_entity(self) -> dict[str, int]:
        return {
            "profile": self.profile_epochs,
            "project": self.project_epochs,
            "endorsement": self.endorsement_epochs,
        }

    @classmethod
    def from_yaml(cls, yaml_path: str | Path = "config/config.yaml") -> "BuilderGraphConfig":
        """Load configuration from YAML file, falling back to env/defaults."""
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            return cls()

        with open(yaml_path) as f:
            config_data = yaml.safe_load(f) or {}

        return cls(**config_data)


# Global configuration instance
_config: Optional[BuilderGraphConfig] = None


def get_config() -> BuilderGraphConfig:
    """Get or create global configuration instance"""
    global _config
    if _config is None:
        _config = BuilderGraphConfig.from_yaml()
    return _config


def reload_config(yaml_path: Optional[str | Path] = None) -> BuilderGraphConfig:
    """Reload configuration from file"""
    global _config
    _config = BuilderGraphConfig.from_yaml(yaml_path) if yaml_path else BuilderGraphConfig.from_yaml()
    return _config
