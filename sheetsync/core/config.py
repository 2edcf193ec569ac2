from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./sheetsync.db"
    debug: bool = True
    date_default_dayfirst: bool = False
    log_level: str = "INFO"
    upload_max_file_size_mb: int = 10

    # ERPNext credentials. Values set here win over the ones stored through
    # the settings endpoint.
    erpnext_base_url: str = ""
    erpnext_api_key: str = ""
    erpnext_api_secret: str = ""
    erpnext_timeout_seconds: int = 30  # connect + read timeout per call

    # Auto-fix controls
    auto_fix_enabled: bool = True
    auto_fix_max_retries: int = 3
    batch_stall_timeout_minutes: int = 60

    model_config = ConfigDict(env_file=".env", extra="ignore")


settings = Settings()
