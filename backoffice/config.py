from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "Back Office"
    DATABASE_URL: str = "sqlite:///./backoffice.db"
    LOG_LEVEL: str = "INFO"

    # Auth
    SECRET_KEY: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_HOURS: int = 72
    DEFAULT_ADMIN_USERNAME: str = "admin"
    DEFAULT_ADMIN_PASSWORD: str = "admin"

    # Seed values for the business settings row (only used when it is first created)
    COMPANY_NAME: str = "Fräulein Franken"
    COMPANY_COUNTRY: str = "Deutschland"
    INVOICE_PREFIX: str = "FF"
    DEFAULT_DUE_DAYS: int = 14
    DEFAULT_VAT_RATE: float = 19.0

    model_config = {"env_file": ".env"}


settings = Settings()
