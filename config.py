from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import List

class Settings(BaseSettings):
    # MongoDB Configuration
    mongo_url: str = "mongodb://localhost:27017"
    db_name: str = "optiledger"

    # Application Configuration
    environment: str = "development"
    cors_origins: List[str] = ["*"]

    # Display
    currency_symbol: str = "₹"
    currency_grouping: str = "indian"  # indian (12,34,567.89) or western (1,234,567.89)

    # Lens defaults
    default_lens_axis: int = 90

    class Config:
        env_file = ".env"
        case_sensitive = False

@lru_cache()
def get_settings():
    return Settings()
