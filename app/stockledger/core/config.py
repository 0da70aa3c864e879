from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env")

    APP_NAME: str = "STOCK-LEDGER"
    DATABASE_URL: str = "sqlite+pysqlite:///./stockledger.db"
    LOG_LEVEL: str = "INFO"
    LEDGER_MAX_RETRIES: int = 3
    LEDGER_LOCK_TIMEOUT_MS: int = 5000
    OUT_MOVEMENT_DEFAULT_SIDE: str = "on_shelf"
    EXPIRING_SOON_DAYS: int = 30
    BULK_TRANSFER_MAX_ITEMS: int = 500
    BULK_TRANSFER_DEFAULT_REASON: str = "Bulk Stock Transfer"
    MOVEMENT_NUMBER_PREFIX: str = "BATCHMOV"
    LOCATION_CODE_PREFIX: str = "LOC"
    DEFAULT_LOCATION_CAPACITY: int = 100
    MOVEMENTS_DEFAULT_PAGE_SIZE: int = 20
    MOVEMENTS_MAX_PAGE_SIZE: int = 200
    METRICS_ENABLED: bool = True
    OPS_ENABLE_INTEGRITY_SCAN: bool = True

settings = Settings()
