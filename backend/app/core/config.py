from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    PROJECT_NAME: str = "Contract Lifecycle Service"
    DATABASE_URL: str = "sqlite:///./contracts.db"
    LOG_LEVEL: str = "INFO"

    SUPPLIER_NAME: str = "SulAmerica"
    SUPPLIER_URL: str = "https://canalvenda-internet-develop.executivoslab.com.br/services/canalvenda"
    SUPPLIER_USERNAME: str = ""
    SUPPLIER_PASSWORD: str = ""
    SUPPLIER_PRODUCT_CODE: str = "10124"
    SUPPLIER_SALES_CHANNEL: str = "SITE"
    SUPPLIER_INVOICE_PERIOD: str | None = None
    SUPPLIER_TIMEOUT_SECONDS: float = 30.0
    SUPPLIER_CONNECT_RETRIES: int = 0
    SUPPLIER_PERMISSION_ID: str = "6"

    DEFAULT_PLAN_CODE: str = "1"
    DEFAULT_PREMIUM: str = "3.96"

    ADMIN_USER_IDS: list[int] = []

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@lru_cache
def get_settings() -> "Settings":
    return Settings()


settings = get_settings()
