"""
Order Service — 設定

すべての設定は環境変数から起動時に一度だけ読み込む。
必須の値が欠けていれば ConfigError で即座に起動を止める。
"""

import os
from collections.abc import Mapping
from typing import Literal

from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.engine import URL

from .errors import ConfigError

SSLMode = Literal["disable", "allow", "prefer", "require", "verify-ca", "verify-full"]

# 環境変数名 → フィールド名
_ENV_FIELDS = {
    "DB_HOST": "db_host",
    "DB_PORT": "db_port",
    "DB_NAME": "db_name",
    "DB_USER": "db_user",
    "DB_PASSWORD": "db_password",
    "DB_SSLMODE": "db_sslmode",
    "DB_POOL_MAX_CONNECTIONS": "db_pool_max_connections",
    "SHIPPING_SERVICE_URL": "shipping_service_url",
    "CART_SERVICE_URL": "cart_service_url",
    "SHIPPING_TIMEOUT_SECONDS": "shipping_timeout_seconds",
    "CART_TIMEOUT_SECONDS": "cart_timeout_seconds",
    "AUTH_USER_HEADER": "auth_user_header",
    "LOG_LEVEL": "log_level",
}

_REQUIRED = (
    "DB_HOST",
    "DB_NAME",
    "DB_USER",
    "DB_PASSWORD",
    "SHIPPING_SERVICE_URL",
    "CART_SERVICE_URL",
)


class Settings(BaseModel):
    db_host: str
    db_port: int = Field(default=5432, gt=0, lt=65536)
    db_name: str
    db_user: str
    db_password: str
    db_sslmode: SSLMode = "disable"
    db_pool_max_connections: int = Field(default=25, ge=1)

    shipping_service_url: str
    cart_service_url: str
    shipping_timeout_seconds: float = Field(default=5.0, gt=0)
    cart_timeout_seconds: float = Field(default=3.0, gt=0)

    auth_user_header: str = "X-User-ID"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """環境変数から設定を作る。空文字列は未設定として扱う。"""
        if environ is None:
            environ = os.environ

        values = {
            field: environ[name]
            for name, field in _ENV_FIELDS.items()
            if environ.get(name, "") != ""
        }

        missing = [name for name in _REQUIRED if _ENV_FIELDS[name] not in values]
        if missing:
            raise ConfigError(
                [f"{name} environment variable is required" for name in missing]
            )

        try:
            return cls(**values)
        except ValidationError as e:
            env_names = {field: name for name, field in _ENV_FIELDS.items()}
            raise ConfigError(
                [
                    f"{env_names.get(str(err['loc'][0]), err['loc'][0])}: {err['msg']}"
                    for err in e.errors()
                ]
            ) from e

    def database_url(self) -> URL:
        """asyncpg 用の接続 URL。認証情報は URL.create がエスケープする。"""
        return URL.create(
            "postgresql+asyncpg",
            username=self.db_user,
            password=self.db_password,
            host=self.db_host,
            port=self.db_port,
            database=self.db_name,
        )
