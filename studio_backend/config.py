from functools import lru_cache
import os
from pydantic import BaseModel, Field


class Settings(BaseModel):
    env: str = Field(default="dev", alias="ENV")
    timezone: str = Field(default="Europe/Berlin", alias="TIMEZONE")

    database_url: str = Field(default="", alias="DATABASE_URL")
    postgres_db: str = Field(default="studio", alias="POSTGRES_DB")
    postgres_user: str = Field(default="studio", alias="POSTGRES_USER")
    postgres_password: str = Field(default="studio", alias="POSTGRES_PASSWORD")
    postgres_host: str = Field(default="localhost", alias="POSTGRES_HOST")
    postgres_port: int = Field(default=5432, alias="POSTGRES_PORT")

    jwt_secret: str = Field(default="secret", alias="JWT_SECRET")
    jwt_expire_min: int = Field(default=43200, alias="JWT_EXPIRE_MIN")

    default_manager_email: str = Field(default="manager@studio.local", alias="DEFAULT_MANAGER_EMAIL")
    default_manager_password: str = Field(default="manager123", alias="DEFAULT_MANAGER_PASSWORD")

    scheduler_enabled: bool = Field(default=True, alias="SCHEDULER_ENABLED")
    sweep_interval_minutes: int = Field(default=5, alias="SWEEP_INTERVAL_MINUTES")

    allowed_topup_sizes: str = Field(default="10,20", alias="ALLOWED_TOPUP_SIZES")
    default_cancellation_advance_hours: int = Field(
        default=48, alias="DEFAULT_CANCELLATION_ADVANCE_HOURS"
    )

    notification_webhook_url: str = Field(default="", alias="NOTIFICATION_WEBHOOK_URL")

    class Config:
        populate_by_name = True

    @property
    def sqlalchemy_url(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+psycopg2://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def topup_sizes(self) -> set[int]:
        return {int(part) for part in self.allowed_topup_sizes.split(",") if part.strip()}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings(**os.environ)
