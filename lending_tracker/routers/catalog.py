import logging
import re
from typing import Any, List, Type

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from .. import schemas, crud
from ..dependencies import get_db
from ..auth import require_role
from ..exceptions import InvalidId

logger = logging.getLogger(__name__)

any_user = require_role(schemas.Role.user, schemas.Role.admin)
admin_only = require_role(schemas.Role.admin)


def parse_id(raw_id: str) -> int:
    """
    パスパラメータのIDを整数に変換します。

    Raises
    ------
    InvalidId
        正の整数として解釈できない、または範囲外の場合。
    """
    if not re.fullmatch(r"[1-9][0-9]*", raw_id):
        raise InvalidId("Invalid ID format")
    return crud.check_id(int(raw_id))


def build_catalog_router(
        item_type: schemas.ItemType,
        prefix: str,
        create_schema: Type[BaseModel],
        update_schema: Type[BaseModel],
        out_schema: Type[BaseModel],
        ) -> APIRouter:
    """
    ボードゲーム・書籍で共通のCRUDエンドポイントを持つルーターを作成します。

    一覧と詳細の取得は認証不要、作成は認証済みユーザー、
    更新と削除は管理者のみが実行できます。

    Parameters
    ----------
    item_type : schemas.ItemType
        ルーターが扱うアイテムの種別。
    prefix : str
        ルーターのパスプレフィックス（例: "/boardgames"）。
    create_schema : Type[BaseModel]
        作成時のリクエストボディのモデル。
    update_schema : Type[BaseModel]
        更新時のリクエストボディのモデル。
    out_schema : Type[BaseModel]
        レスポンスのモデル。

    Returns
    -------
    APIRouter
        作成されたルーター。
    """
    router = APIRouter(prefix=prefix, tags=[prefix.strip("/")])

    @router.get("", response_model=List[out_schema])
    async def read_items(db: AsyncSession = Depends(get_db)) -> List[Any]:
        return await crud.get_catalog_items(db, item_type)

    @router.post("", response_model=out_schema, status_code=status.HTTP_201_CREATED)
    async def create_item(
        item: create_schema,
        db: AsyncSession = Depends(get_db),
        current_user: schemas.TokenData = Depends(any_user)
    ) -> Any:
        return await crud.create_catalog_item(db, item_type, item.model_dump())

    @router.get("/{item_id}", response_model=out_schema)
    async def read_item(item_id: str, db: AsyncSession = Depends(get_db)) -> Any:
        return await crud.get_catalog_item(db, item_type, parse_id(item_id))

    @router.put("/{item_id}", response_model=out_schema)
    async def update_item(
        item_id: str,
        item: update_schema,
        db: AsyncSession = Depends(get_db),
        current_user: schemas.TokenData = Depends(admin_only)
    ) -> Any:
        return await crud.update_catalog_item(
            db, item_type, parse_id(item_id), item.model_dump(exclude_unset=True)
        )

    @router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT, response_class=Response)
    async def delete_item(
        item_id: str,
        db: AsyncSession = Depends(get_db),
        current_user: schemas.TokenData = Depends(admin_only)
    ) -> Response:
        await crud.delete_catalog_item(db, item_type, parse_id(item_id))
        logger.info(f"ユーザー '{current_user.username}' が {prefix}/{item_id} を削除しました。")
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return router


boardgames_router = build_catalog_router(
    schemas.ItemType.board_game,
    "/boardgames",
    schemas.BoardGameCreate,
    schemas.BoardGameUpdate,
    schemas.BoardGame,
)

books_router = build_catalog_router(
    schemas.ItemType.book,
    "/books",
    schemas.BookCreate,
    schemas.BookUpdate,
    schemas.Book,
)
