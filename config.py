"""
Runtime configuration

Read once from the environment (and a local .env file) when the app is built.
"""

import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from dotenv import load_dotenv


class ConfigError(RuntimeError):
    pass


@dataclass(frozen=True)
class Settings:
    database_url: str
    jwt_secret: str
    database_name: str = "shop"
    port: int = 3000
    public_dir: str = "public"
    log_level: str = "INFO"
    token_ttl: timedelta = timedelta(hours=1)

    @property
    def user_image_dir(self) -> str:
        return os.path.join(self.public_dir, "user")

    @property
    def product_image_dir(self) -> str:
        return os.path.join(self.public_dir, "img")

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "Settings":
        load_dotenv(dotenv_path)
        database_url = os.getenv("MONGODB_URI") or os.getenv("DATABASE_URL")
        if not database_url:
            raise ConfigError("MONGODB_URI is not set")
        jwt_secret = os.getenv("JWT_SECRET")
        if not jwt_secret:
            raise ConfigError("JWT_SECRET is not set")
        return cls(
            database_url=database_url,
            jwt_secret=jwt_secret,
            database_name=os.getenv("DATABASE_NAME", "shop"),
            port=int(os.getenv("PORT", 3000)),
            public_dir=os.getenv("PUBLIC_DIR", "public"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
