from pydantic_settings import BaseSettings, SettingsConfigDict
class Settings(BaseSettings):
    APP_ENV: str = "dev"
    APP_SECRET: str
    DB_URL: str
    DB_ECHO: bool = False
    JWT_ISS: str = "barpos"
    JWT_EXP_MIN: int = 12*60
    BUSINESS_TZ: str = "UTC"
    LOG_LEVEL: str = "INFO"
    # order creation is refused while no shift is open
    REQUIRE_OPEN_SHIFT: bool = True
    # guest-identity heuristic for unnamed / location-named orders (off unless confirmed)
    GUEST_AUTO_ASSIGN: bool = False
    DEFAULT_GUEST_NAME: str = "Гость"
    GUEST_PLACEHOLDER_NAMES: list[str] = ["стол", "бар", "улица", "гость"]
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
settings = Settings()
