from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "postgresql+asyncpg://localhost:5432/journey"
    default_tz: str = "UTC"
    journey_api_key: str | None = None
    log_level: str = "INFO"

    # Personalization: "always" = live plan wins for every protein/calorie task,
    # "flag" = only when the condition sets use_user_target.
    journey_live_target_policy: str = "always"

    journey_progress_cache_ttl_seconds: int = 300

    # Hard defaults when neither the live plan nor the task carries a target
    journey_default_protein_g: float = 120.0
    journey_default_calories_deficit: float = 2000.0
    journey_default_calories_surplus: float = 2500.0
    journey_default_calories_balanced: float = 2200.0

    # Tolerance band (± kcal) around the daily calorie target for weekly tasks
    journey_weekly_buffer_kcal: float = 100.0
    journey_balanced_buffer_kcal: float = 200.0

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
