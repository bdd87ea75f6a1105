"""
QR Payments Configuration Module

Loads environment variables for backend configuration.
"""
from pydantic_settings import BaseSettings
from typing import Literal


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Notes:
    - Merchant identity fields feed the EMV QR payload (tags 26, 52, 58, 59, 60)
    - The webhook secret is optional; when empty, gateway callbacks are not signed
    - Demo mode enables the simulated gateway endpoint
    """

    # Demo Configuration
    demo_mode: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Merchant / QRPH payload
    default_currency: str = "PHP"
    default_merchant_id: str = "MERCHANT001"
    merchant_name: str = "Your Business Name"
    merchant_city: str = "Manila"
    country_code: str = "PH"
    merchant_category_code: str = "5999"  # Miscellaneous retail

    # Gateway callbacks (HMAC-SHA256)
    gateway_webhook_secret: str = ""

    # Background expiry sweep
    expiry_sweep_enabled: bool = False
    expiry_sweep_interval_seconds: int = 60

    # History pagination
    history_max_limit: int = 500

    # Database
    database_path: str = "./qrpay.db"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
