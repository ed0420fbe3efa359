"""
Configuration management with environment variables
"""

from typing import List, Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "allow"
    }

    # Application
    ENVIRONMENT: str = "development"
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000"

    # Simulation backend (fork-capable transaction simulator)
    SIMULATION_API_BASE: str = "https://simulate.yearn.network"
    SIMULATION_NETWORK_ID: int = 1
    SIMULATION_GAS_LIMIT: int = 8_000_000
    SIMULATION_REQUEST_TIMEOUT: int = 60  # Transport timeout only, seconds

    # Chain access
    ETHEREUM_RPC_URL: str = "http://localhost:8545"
    ORACLE_ADDRESS: str = "0x83d95e0D5f402511dB06817Aff3f9eA88224B030"
    WETH_ADDRESS: str = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"

    # Zapper route provider
    ZAPPER_API_BASE: str = "https://api.zapper.fi/v1"
    ZAPPER_API_KEY: str = ""

    # Pickle partner pricing
    PICKLE_API_URL: str = "https://stkpowy01i.execute-api.us-west-1.amazonaws.com/prod/protocol/pools"
    PICKLE_JARS: str = "0xCeD67a187b923F0E5ebcc77C7f2F7da20099e378"  # yvboost-eth
    PICKLE_PRICE_TTL_SECONDS: int = 3600

    # Failure notifications
    TELEGRAM_BOT_ID: Optional[str] = None
    TELEGRAM_CHAT_ID: Optional[str] = None

    # Logging
    LOG_LEVEL: str = "INFO"

    @property
    def pickle_jars(self) -> List[str]:
        return [jar.strip() for jar in self.PICKLE_JARS.split(",") if jar.strip()]


# Global settings instance
settings = Settings()
