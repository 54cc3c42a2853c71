from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///data/watchstatus.db"
    database_echo: bool = False
    transaction_timeout_seconds: float = 30.0
    next_unwatched_show_limit: int = 6
    next_unwatched_episode_limit: int = 2
    log_level: str = "INFO"

    class Config:
        env_prefix = "WATCHSTATUS_"


settings = Settings()
