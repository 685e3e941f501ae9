from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Vertesia
    vertesia_api_base: str = "https://api.vertesia.io/api/v1"
    vertesia_auth_url: str = "https://api.vertesia.io/api/v1/auth/api-key"
    vertesia_api_key: str = ""
    vertesia_environment_id: str = ""
    interaction_name: str = "DocumentChat"
    model: str = "publishers/anthropic/models/claude-sonnet-4"
    max_iterations: int = 100
    request_timeout_seconds: float = 30.0

    # Auth
    token_lifetime_seconds: float = 3500.0  # ~58 min when the service omits expiry
    token_skew_seconds: float = 60.0

    # Research jobs
    poll_interval_seconds: float = 5.0
    max_poll_attempts: int = 120  # 10 min at 5s
    demo_job_delay_seconds: float = 8.0

    # Chat
    demo_chat_delay_seconds: float = 1.5
    chat_history_limit: int = 20
    chat_prompt_turns: int = 9

    # Persistence
    state_file: str = ".cache/marketlens/state.json"

    # App
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_dir: str = "logs"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @field_validator("token_skew_seconds")
    @classmethod
    def _skew_at_least_a_minute(cls, value: float) -> float:
        if value < 60:
            raise ValueError("token_skew_seconds must be >= 60")
        return value

    @property
    def live_mode(self) -> bool:
        return bool(self.vertesia_api_key.strip() and self.vertesia_environment_id.strip())


settings = Settings()
