from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "Stock Ledger"
    DATABASE_URL: str = "sqlite:///./stockledger.db"

    LOG_LEVEL: str = "INFO"

    # Location offered when the ledger has none yet
    DEFAULT_LOCATION: str = "Main Office"

    # 0 disables the low-stock check
    LOW_STOCK_THRESHOLD: int = 5

    # Reference number prefix for receipts created by transfer approval
    TRANSFER_REF_PREFIX: str = "TRF"

    # Webhook: list of callback URLs for approval events (comma-separated)
    WEBHOOK_URLS: str = ""

    model_config = {"env_file": ".env"}


settings = Settings()
