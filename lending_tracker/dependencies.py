from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession
from . import database


async def get_db() -> AsyncIterator[AsyncSession]:
    """
    データベースセッションを取得するための依存関係。

    Yields:
        AsyncSession: リクエスト単位の非同期データベースセッション。
    """
    async with database.AsyncSessionLocal() as db:
        yield db
