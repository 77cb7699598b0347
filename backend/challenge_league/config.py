from __future__ import annotations
import os
from pydantic import BaseModel

class Settings(BaseModel):
    environment: str = os.getenv("ENVIRONMENT", "dev")
    app_name: str = os.getenv("APP_NAME", "challenge-league-api")
    app_display_name: str = os.getenv("APP_DISPLAY_NAME", "Challenge League")
    app_version: str = os.getenv("APP_VERSION", "0.1.0")
    git_sha: str = os.getenv("GIT_SHA", "dev")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    cors_origins: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
    database_url: str = os.getenv("DATABASE_URL", "postgresql+asyncpg://postgres:postgres@db:5432/challenge_league_dev")
    redis_url: str = os.getenv("REDIS_URL", "redis://redis:6379/0")
    s3_endpoint: str = os.getenv("S3_ENDPOINT", "http://minio:9000")
    s3_access_key: str = os.getenv("S3_ACCESS_KEY", "minioadmin")
    s3_secret_key: str = os.getenv("S3_SECRET_KEY", "minioadmin")
    s3_bucket_uploads: str = os.getenv("S3_BUCKET_UPLOADS", "challenge-league-uploads-dev")
    max_upload_bytes: int = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

    # Background work
    task_queue_enabled: bool = os.getenv("TASK_QUEUE_ENABLED", "1") == "1"
    lazy_queue_on_read: bool = os.getenv("LAZY_QUEUE_ON_READ", "1") == "1"
    cron_secret: str = os.getenv("CRON_SECRET", "dev-cron-secret")

    # Auth
    jwt_secret: str = os.getenv("JWT_SECRET", "dev-secret-change-me")
    access_ttl_min: int = int(os.getenv("ACCESS_TTL_MIN", "15"))
    refresh_ttl_min: int = int(os.getenv("REFRESH_TTL_MIN", "10080"))  # 7d

    # League defaults (per-league values live on the league row)
    default_submission_days: int = int(os.getenv("DEFAULT_SUBMISSION_DAYS", "7"))
    default_voting_days: int = int(os.getenv("DEFAULT_VOTING_DAYS", "2"))
    default_votes_per_player: int = int(os.getenv("DEFAULT_VOTES_PER_PLAYER", "3"))

settings = Settings()
