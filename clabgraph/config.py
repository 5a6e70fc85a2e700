"""Compiler configuration."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Compiler settings loaded from environment variables."""

    # Container naming
    default_prefix: str = "clab"  # Used when the topology has no `prefix` key

    # Annotation side-file
    annotations_suffix: str = ".annotations.json"
    annotations_cache_ttl: float = 2.0  # seconds
    annotations_indent: int = 2

    # View mode
    view_cache_enabled: bool = True

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    class Config:
        env_prefix = "CLABGRAPH_"


settings = Settings()
