from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env")

    APP_NAME: str = "STOCKROOM"
    DATABASE_URL: str = "sqlite+pysqlite:///./stockroom.db"
    DEFAULT_WAREHOUSE_CODE: str = "WH-MAIN"
    DEFAULT_WAREHOUSE_NAME: str = "Main Warehouse"
    DEFAULT_OUTLET_CODE: str = "OUT-MAIN"
    DEFAULT_OUTLET_NAME: str = "Main Outlet"
    LEDGER_MAX_RETRIES: int = 3
    HOLD_TTL_MINUTES: int = 1440
    HOLD_REAPER_ENABLED: bool = False
    HOLD_REAPER_INTERVAL_SEC: int = 60
    HOLD_REAPER_ACTOR: str = "system:hold-reaper"
    TRANSFER_NUMBER_PREFIX: str = "TR"
    SKU_PREFIX: str = "TN"
    LIST_MAX_PAGE_SIZE: int = 200
    LOG_LEVEL: str = "INFO"
    SLOW_REQUEST_MS: int = 1000
    METRICS_ENABLED: bool = True


settings = Settings()
