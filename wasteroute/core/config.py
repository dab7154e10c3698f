from typing import List, Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "WasteRoute API"
    environment: Literal["development", "production"] = "development"
    log_level: str = "INFO"

    # memory | mongo
    storage: Literal["memory", "mongo"] = "memory"
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "wasteroute"
    # multi-document transactions need a replica set; a standalone mongod
    # gets the compensating rollback instead
    mongo_transactions: bool = False

    jwt_secret: str = "dev"
    jwt_alg: str = "HS256"
    access_ttl_min: int = 60 * 24

    # none | nominatim
    geocoder: Literal["none", "nominatim"] = "none"
    geocode_timeout_s: float = 12.0
    admin_contact: str = "mailto:admin@example.com"

    admin_email: Optional[str] = None
    admin_password: Optional[str] = None

    cors_origins: List[str] = ["*"]

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
