# mihomerge/core/config.py

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    API_KEY: str = ""
    USE_API_KEY: bool = True
    DATA_DIR: str = "./data"
    CACHE_DIR: str = "./data/cache/subscriptions"
    TEMPLATE_PATH: str = "template.yaml"
    BASE_CONFIG_PATH: Optional[str] = None
    OUTPUT_PATH: str = "./data/output/config.yaml"
    SUBSCRIPTION_UA: str = "clash-verge/v2.4.2"
    FETCH_TIMEOUT: float = 30.0
    FETCH_VERIFY_TLS: bool = True
    ALLOW_ALTERNATE_DECODING: bool = False
    DEV_RULES: bool = True
    DEV_RULES_VIA: str = "Proxy"
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

settings = Settings()
