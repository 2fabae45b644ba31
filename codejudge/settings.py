import os
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class Settings(BaseModel):
    """Judge settings loaded from a TOML file.

    The file is named by the ``CODEJUDGE_CONFIG`` environment variable and
    defaults to ``config.toml`` in the working directory. A missing file
    leaves every field at its default.

    Usage:
        Settings()                                  # config.toml if present
        Settings(config_path='config.test.toml')    # explicit file
    """

    model_config = ConfigDict(extra='forbid')

    def __init__(self, config_path: Optional[str] = None, **overrides) -> None:
        path = config_path or os.getenv('CODEJUDGE_CONFIG', 'config.toml')
        data = {}
        if Path(path).is_file():
            with open(path, 'rb') as f:
                data = tomllib.load(f)
        data |= overrides
        super().__init__(**data)

    LOG_LEVEL: str = 'INFO'

    # 'docker' runs submissions locally, 'judge0' delegates to a remote service
    RUNNER: Literal['docker', 'judge0'] = 'docker'

    DEFAULT_MEMORY_LIMIT_MB: int = Field(default=256, gt=0)
    DEFAULT_TIME_LIMIT_SECONDS: float = Field(default=1.0, gt=0)

    # Sandbox container settings
    COMPILE_TIMEOUT_SECONDS: int = Field(default=10, gt=0)
    SANDBOX_TMPFS_SIZE: str = '100m'
    SANDBOX_PIDS_LIMIT: int = Field(default=64, gt=0)
    SANDBOX_GRACE_SECONDS: int = Field(default=5, ge=0)
    OUTPUT_LIMIT_BYTES: int = Field(default=1024 * 1024, gt=0)
    WORKSPACE_ROOT: Optional[str] = None

    # Per-language image overrides, keyed by language id ('c', 'cpp', ...)
    RUNTIME_IMAGES: Dict[str, str] = Field(default_factory=dict)

    JUDGE0_API_URL: str = 'https://judge0-ce.p.rapidapi.com'
    JUDGE0_API_KEY: Optional[str] = None
    JUDGE0_MAX_POLL_ATTEMPTS: int = Field(default=30, gt=0)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
