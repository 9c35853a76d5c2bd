"""
Order Service — データベース接続

本番環境では PostgreSQL の前段にトランザクションモードのコネクションプーラー
(PgBouncer / PgCat) が入る。プーラーは同じセッションの連続した呼び出しを
別の物理コネクションに振り分けることがあるため、サーバー側のプリペアド
ステートメントに依存してはいけない。

そのため asyncpg のステートメントキャッシュを無効化し、
プリペアドステートメントには毎回一意な名前を付ける。
"""

import logging
from uuid import uuid4

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import Settings

logger = logging.getLogger(__name__)


def _statement_name() -> str:
    return f"__asyncpg_{uuid4()}__"


def engine_options(settings: Settings) -> dict:
    """create_async_engine に渡すキーワード引数"""
    return {
        "echo": False,
        "pool_size": settings.db_pool_max_connections,
        "max_overflow": 0,
        "pool_pre_ping": True,
        "connect_args": {
            "ssl": settings.db_sslmode,
            "statement_cache_size": 0,
            "prepared_statement_cache_size": 0,
            "prepared_statement_name_func": _statement_name,
        },
    }


def create_engine(settings: Settings) -> AsyncEngine:
    return create_async_engine(settings.database_url(), **engine_options(settings))


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def connect(settings: Settings) -> AsyncEngine:
    """エンジンを作成し、疎通確認してから返す。失敗したらエンジンを破棄して例外を送出する。"""
    engine = create_engine(settings)
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception:
        await engine.dispose()
        raise

    logger.info(
        "Connected to PostgreSQL at %s:%s/%s (pool size %d)",
        settings.db_host,
        settings.db_port,
        settings.db_name,
        settings.db_pool_max_connections,
    )
    return engine
