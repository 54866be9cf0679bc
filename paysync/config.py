from typing import Literal

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    env: str = "development"
    log_level: str = "INFO"

    database_url: str = "sqlite+aiosqlite:///./paysync.db"

    razorpay_key_id: SecretStr
    razorpay_key_secret: SecretStr
    razorpay_webhook_secret: SecretStr
    razorpay_api_base: str = "https://api.razorpay.com/v1"
    gateway_timeout: float = 10.0
    default_currency: str = "INR"

    jwt_access_secret: SecretStr

    subscription_plan: str = "PRO"
    # extend: renew from the current expiry while it is still in the future
    # reset: always renew from now
    subscription_renewal: Literal["extend", "reset"] = "extend"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


settings = Settings()
