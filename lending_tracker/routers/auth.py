# auth_router.py

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from .. import schemas, auth
from ..dependencies import get_db

# 認証用のルーターを設定
router = APIRouter(
    prefix="/auth",
    tags=["auth"],
)


@router.post("/register", response_model=schemas.UserEnvelope, status_code=status.HTTP_201_CREATED)
async def register(
        credentials: schemas.UserCredentials,
        db: AsyncSession = Depends(get_db)
        ) -> schemas.UserEnvelope:
    """
    新しいユーザーを登録します。

    最初に登録されたユーザーは管理者になり、以降は一般ユーザーになります。
    レスポンスにパスワードハッシュは含まれません。

    Args:
        credentials (schemas.UserCredentials): ユーザー名とパスワード。
        db (AsyncSession): データベースセッション。

    Returns:
        schemas.UserEnvelope: 登録されたユーザー。
    """
    user = await auth.register_user(db, credentials.username, credentials.password)
    return schemas.UserEnvelope(user=schemas.User.model_validate(user))


@router.post("/login", response_model=schemas.LoginResponse)
async def login(
        credentials: schemas.UserCredentials,
        db: AsyncSession = Depends(get_db)
        ) -> schemas.LoginResponse:
    """
    ユーザーの認証情報を受け取り、1時間有効なアクセストークンを発行します。

    Args:
        credentials (schemas.UserCredentials): ユーザー名とパスワード。
        db (AsyncSession): データベースセッション。

    Returns:
        schemas.LoginResponse: アクセストークンとユーザー情報。
    """
    token, user = await auth.login_user(db, credentials.username, credentials.password)
    return schemas.LoginResponse(token=token, user=schemas.User.model_validate(user))
