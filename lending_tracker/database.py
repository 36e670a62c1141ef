from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy import Column, DateTime, func
from .config import settings

DATABASE_URL = settings.sqlalchemy_database_url

# 非同期エンジンの作成（接続は最初の利用時に確立される）
engine = create_async_engine(DATABASE_URL, echo=settings.database_echo, future=True)

# 非同期セッションファクトリ
AsyncSessionLocal = sessionmaker(
    bind=engine, class_=AsyncSession, expire_on_commit=False
)

Base = declarative_base()

class BaseDatabase(Base):
    __abstract__ = True
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


async def init_models() -> None:
    """
    全てのテーブルを作成します。既存のテーブルはそのまま残ります。
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    """
    コネクションプールを閉じ、データベースとの接続をすべて解放します。
    """
    await engine.dispose()
