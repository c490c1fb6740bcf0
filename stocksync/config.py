from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "StockSync"
    DATABASE_URL: str = "sqlite:///./stocksync.db"
    LOG_LEVEL: str = "INFO"

    # Auth
    SECRET_KEY: str = "stocksync-dev-secret-change-me"
    ACCESS_TOKEN_EXPIRE_HOURS: int = 24
    REQUIRE_AUTH: bool = False
    DEFAULT_USERNAME: str = "demo"
    DEFAULT_PASSWORD: str = "demo"
    # Roles that receive low-stock alerts (comma-separated)
    SUPERVISOR_ROLES: str = "manager,supervisor,admin"

    # Stock movements: "clamp" floors OUT at zero, "reject" refuses overdraws
    OVERDRAW_POLICY: str = "clamp"
    MOVEMENT_MAX_RETRIES: int = Field(default=3, ge=1)

    # Real-time rooms
    DEFAULT_ROOM: str = "all"
    ALERT_ROOM: str = "managers"

    # Dashboard origin allowed by CORS
    FRONTEND_URL: str = "http://localhost:5173"

    model_config = {"env_file": ".env"}

    @property
    def supervisor_roles(self) -> set[str]:
        return {r.strip() for r in self.SUPERVISOR_ROLES.split(",") if r.strip()}


settings = Settings()
