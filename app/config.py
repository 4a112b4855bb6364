from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Progress storage settings
    PROGRESS_DATA_DIR: str = "data"

    # =================================================================
    # MERGE JOB SETTINGS - Folds queued samples into committed progress
    # =================================================================
    MERGE_INTERVAL_SECONDS: float = 60.0
    MERGE_SCHEDULER_ENABLED: bool = True

    # Reset wipes both collections; None means "allowed outside production"
    ALLOW_RESET_ENDPOINT: bool | None = None

    # HTTP settings
    CORS_ALLOWED_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]
    TRUST_X_FORWARDED_FOR: bool = False
    TRUSTED_PROXY_IPS: list[str] = []

    # Demo video served to the player
    SAMPLE_VIDEO_ID: str = "yt-abc123"
    SAMPLE_VIDEO_URL: str = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
    SAMPLE_VIDEO_TITLE: str = "Sample Video"
    SAMPLE_VIDEO_DURATION: float = 212.0

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def reset_allowed(self) -> bool:
        """Whether the destructive reset endpoint is exposed."""
        if self.ALLOW_RESET_ENDPOINT is not None:
            return self.ALLOW_RESET_ENDPOINT
        return self.environment != "production"

    def data_dir(self) -> Path:
        """Resolve the progress data directory."""
        path = Path(self.PROGRESS_DATA_DIR)
        if path.is_absolute():
            return path
        return Path.cwd() / path

    def get_merge_job_config(self) -> dict:
        """
        Get merge job configuration.
        Adjust environment-specific settings based on self.environment.
        """
        config = {
            "interval_seconds": self.MERGE_INTERVAL_SECONDS,
            "enabled": self.MERGE_SCHEDULER_ENABLED,
        }

        if self.environment == "development":
            # Faster feedback locally
            config["interval_seconds"] = min(self.MERGE_INTERVAL_SECONDS, 30.0)

        return config


settings = Settings()
