from pydantic_settings import BaseSettings
from typing import List

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./dev.db"
    APP_HOST: str = "127.0.0.1"
    APP_PORT: int = 8000
    FRONTEND_ORIGINS: List[str] = ["http://localhost:3000"]
    LOG_LEVEL: str = "INFO"

    # bearer tokens are issued elsewhere; we only verify them
    JWT_SECRET: str = "change-this-secret"
    JWT_ALGORITHM: str = "HS256"

    CART_SESSION_COOKIE: str = "sessionId"
    CART_MAX_LINE_QUANTITY: int = 99

    # database monitor
    MONITOR_INTERVAL_SECONDS: int = 60
    MIN_PRODUCTS_THRESHOLD: int = 10
    MIN_CATEGORIES_THRESHOLD: int = 2
    ALERT_COOLDOWN_SECONDS: int = 300
    SUDDEN_DROP_THRESHOLD: int = 10
    STABLE_LOG_INTERVAL_SECONDS: int = 600
    MONITOR_LOG_FILE: str = "./logs/database-monitor.log"
    MONITOR_LOG_MAX_BYTES: int = 10 * 1024 * 1024
    ALERT_FILE: str = "./logs/database-alert.json"
    EMERGENCY_BACKUP_DIR: str = "./backups/emergency"

    # JSON mirror of the catalogue; 0 disables the periodic sync in the API
    JSON_BACKUP_DIR: str = "./json-backups/realtime"
    JSON_BACKUP_SYNC_SECONDS: int = 0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

settings = Settings()
