import os
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

BASE_DIR = Path(__file__).resolve().parent.parent

IS_TEST_MODE = os.getenv("ENV") == "test"


class Settings(BaseSettings):
    # Identity of the simulated bot
    bot_id: int = 1234567890
    bot_token: str = "1234567890:TEST_TOKEN"
    bot_first_name: str = "TestBot"
    bot_username: str = "test_bot"

    # Initial simulated time (unix seconds); wall clock when unset
    start_time: int | None = None

    # Print every API call through the rich console
    trace_api: bool = False

    long_poll_max_timeout: int = 50
    file_base_url: str = "https://api.telegram.org/file/bot"

    class Config:
        env_prefix = "TGSIM_"
        env_file = BASE_DIR / (".env.test" if IS_TEST_MODE else ".env")
        case_sensitive = False
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    return Settings()
