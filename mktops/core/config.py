import os
from functools import lru_cache
from pathlib import Path
from typing import List

from dotenv import load_dotenv

load_dotenv()


def _split_csv(value: str | None, default: List[str]) -> List[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings:
    def __init__(self) -> None:
        base_dir = Path(__file__).resolve().parent.parent.parent
        self.APP_NAME: str = os.getenv("APP_NAME", "Marketing Ops API")
        self.SECRET_KEY: str = os.getenv("SECRET_KEY", "dev-secret-change-me")
        self.ACCESS_TOKEN_EXPIRE_HOURS: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_HOURS", "8"))
        self.ALGORITHM: str = os.getenv("ALGORITHM", "HS256")
        self.SQLALCHEMY_DATABASE_URI: str = os.getenv(
            "SQLALCHEMY_DATABASE_URI",
            f"sqlite:///{(base_dir / 'mktops.db').as_posix()}",
        )
        self.ENV: str = os.getenv("ENV", "development")
        self.APP_TIMEZONE: str = os.getenv("APP_TIMEZONE", "America/Sao_Paulo")
        self.AUTOSAVE_DEBOUNCE_MS: int = int(os.getenv("AUTOSAVE_DEBOUNCE_MS", "600"))
        self.ADMIN_ROLES: List[str] = [
            role.lower()
            for role in _split_csv(os.getenv("ADMIN_ROLES"), ["admin", "administrador", "master"])
        ]
        self.STORAGE_BUCKET: str | None = os.getenv("STORAGE_BUCKET")
        self.ASSETS_BUCKET: str = os.getenv("ASSETS_BUCKET", "app-assets")
        self.SEED_ADMIN_EMAIL: str = os.getenv("SEED_ADMIN_EMAIL", "admin@mktops.local")
        self.SEED_ADMIN_PASSWORD: str = os.getenv("SEED_ADMIN_PASSWORD", "admin123")

        default_cors = [
            "http://localhost",
            "http://localhost:3000",
            "http://localhost:5173",
            "http://localhost:8080",
            "http://127.0.0.1",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:5173",
            "http://127.0.0.1:8080",
        ]
        self.BACKEND_CORS_ORIGINS: List[str] = _split_csv(
            os.getenv("BACKEND_CORS_ORIGINS"), default_cors
        )

    def missing(self) -> list[str]:
        """Nomes das configuracoes obrigatorias que estao vazias."""
        required = {
            "SQLALCHEMY_DATABASE_URI": self.SQLALCHEMY_DATABASE_URI,
            "SECRET_KEY": self.SECRET_KEY,
        }
        return [name for name, value in required.items() if not value]


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
