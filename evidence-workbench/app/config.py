from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    auto_delete_empty_groups: bool = True
    confirm_nonempty_delete: bool = True
    log_level: str = "INFO"

    model_config = {
        "env_prefix": "WORKBENCH_",
        "env_file": BASE_DIR / ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    return Settings()
