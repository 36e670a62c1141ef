import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Collection, Dict, List, Optional, Tuple

from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from .config import settings
from . import schemas, crud, models
from .exceptions import (
    DuplicateError,
    Forbidden,
    InvalidCredentials,
    InvalidToken,
    Unauthenticated,
    ValidationError,
)

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

bearer_scheme = HTTPBearer(auto_error=False)

MIN_PASSWORD_LENGTH = 6


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    プレーンテキストのパスワードがハッシュ化されたパスワードと一致するかを検証します。

    Parameters
    ----------
    plain_password : str
        検証対象のプレーンテキストパスワード。
    hashed_password : str
        比較対象となるハッシュ化されたパスワード。

    Returns
    -------
    bool
        パスワードが一致する場合はTrue、そうでない場合はFalse。
    """
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """
    プレーンテキストのパスワードをソルト付きでハッシュ化します。

    Parameters
    ----------
    password : str
        ハッシュ化対象のプレーンテキストパスワード。

    Returns
    -------
    str
        ハッシュ化されたパスワード。
    """
    return pwd_context.hash(password)


def create_jwt_token(
        data: Dict[str, Any],
        secret_key: str,
        algorithm: str,
        expires_delta: Optional[timedelta] = None
        ) -> str:
    """
    指定されたデータと有効期限を持つJSON Web Token (JWT) を作成します。

    Parameters
    ----------
    data : Dict[str, Any]
        トークンに含めるペイロードデータ。
    secret_key : str
        トークンの署名に使用するシークレットキー。
    algorithm : str
        トークンのエンコーディングに使用するアルゴリズム。
    expires_delta : Optional[timedelta], optional
        トークンの有効期限を設定する時間差。指定しない場合は1時間後に設定されます。

    Returns
    -------
    str
        エンコードされたJWT。
    """
    to_encode = data.copy()
    if expires_delta is None:
        expires_delta = timedelta(hours=1)
    to_encode.update({"exp": datetime.now(timezone.utc) + expires_delta})
    return jwt.encode(to_encode, secret_key, algorithm=algorithm)


def create_access_token(user: models.User, expires_delta: Optional[timedelta] = None) -> str:
    """
    ユーザーID、ユーザー名、ロールを含むアクセストークンを作成します。

    Parameters
    ----------
    user : models.User
        トークンを発行するユーザー。
    expires_delta : Optional[timedelta], optional
        トークンの有効期限を設定する時間差。指定しない場合は設定ファイルの値が使用されます。

    Returns
    -------
    str
        エンコードされたアクセストークン。
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.access_token_expire_minutes)
    return create_jwt_token(
        {"userId": user.id, "username": user.username, "role": user.role},
        secret_key=settings.secret_key,
        algorithm=settings.algorithm,
        expires_delta=expires_delta
    )


def decode_token(token: str, secret_key: str, algorithms: List[str]) -> Dict:
    """
    JWTをデコードし、そのペイロードを返します。署名と有効期限も検証されます。

    Parameters
    ----------
    token : str
        デコード対象のJWT。
    secret_key : str
        トークンのデコードに使用するシークレットキー。
    algorithms : List[str]
        デコードに許可されるアルゴリズムのリスト。

    Returns
    -------
    Dict
        デコードされたトークンのペイロード。
    """
    return jwt.decode(token, secret_key, algorithms=algorithms)


def _require_credentials(username: Optional[str], password: Optional[str]) -> Tuple[str, str]:
    username = username.strip() if username else username
    if not username or not password:
        raise ValidationError("Username and password are required")
    return username, password


async def register_user(db: AsyncSession, username: Optional[str], password: Optional[str]) -> models.User:
    """
    新しいユーザーを登録します。

    ユーザーが一人も存在しない状態での最初の登録のみ管理者 (admin) となり、
    以降の登録はすべて一般ユーザー (user) になります。

    Parameters
    ----------
    db : AsyncSession
        データベースセッション。
    username : Optional[str]
        登録するユーザー名。
    password : Optional[str]
        プレーンテキストのパスワード。6文字以上。

    Returns
    -------
    models.User
        作成されたユーザーオブジェクト。

    Raises
    ------
    ValidationError
        ユーザー名・パスワードが欠けている、またはパスワードが短すぎる場合。
    DuplicateError
        ユーザー名が既に使用されている場合。
    """
    username, password = _require_credentials(username, password)
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")

    if await crud.get_user_by_username(db, username):
        raise DuplicateError("Username already taken")

    role = schemas.Role.admin if await crud.count_users(db) == 0 else schemas.Role.user
    user = await crud.create_user(db, username, get_password_hash(password), role=role)
    logger.info(f"ユーザー '{username}' を {role.value} として登録しました。")
    return user


async def authenticate_user(db: AsyncSession, username: str, password: str) -> Optional[models.User]:
    """
    ユーザー名とパスワードを用いてユーザーを認証します。

    Parameters
    ----------
    db : AsyncSession
        ユーザーを取得するためのデータベースセッション。
    username : str
        認証を試みるユーザーのユーザー名。
    password : str
        ユーザーが提供したプレーンテキストパスワード。

    Returns
    -------
    Optional[models.User]
        認証に成功した場合はユーザーオブジェクトを返し、失敗した場合はNoneを返します。
    """
    user = await crud.get_user_by_username(db, username)
    if not user or not verify_password(password, user.password_hash):
        return None
    return user


async def login_user(
        db: AsyncSession,
        username: Optional[str],
        password: Optional[str]
        ) -> Tuple[str, models.User]:
    """
    認証情報を検証し、アクセストークンを発行します。

    ユーザーが存在しない場合もパスワードが誤っている場合も、
    同一のメッセージで失敗させます。

    Returns
    -------
    Tuple[str, models.User]
        アクセストークンと認証されたユーザー。

    Raises
    ------
    ValidationError
        ユーザー名・パスワードが欠けている場合。
    InvalidCredentials
        認証に失敗した場合。
    """
    username, password = _require_credentials(username, password)
    logger.info(f"ユーザー '{username}' のログイン試行中。")
    user = await authenticate_user(db, username, password)
    if user is None:
        logger.warning(f"認証失敗: ユーザー '{username}' の資格情報が不正です。")
        raise InvalidCredentials("Invalid credentials")
    logger.info(f"ユーザー '{username}' のトークン発行成功。")
    return create_access_token(user), user


async def get_current_user(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
        ) -> schemas.TokenData:
    """
    Authorization ヘッダーのBearerトークンから認証済みユーザーを復元します。

    トークン自体にユーザーID・ユーザー名・ロールが含まれるため、
    データベースへの問い合わせは行いません。

    Parameters
    ----------
    credentials : Optional[HTTPAuthorizationCredentials]
        HTTPBearerスキームが抽出した認証情報。ヘッダーがない場合はNone。

    Raises
    ------
    Unauthenticated
        トークンが提供されていない場合。
    InvalidToken
        署名が不正、期限切れ、または必要なクレームが欠けている場合。

    Returns
    -------
    schemas.TokenData
        トークンから復元したユーザー情報。
    """
    if credentials is None or not credentials.credentials:
        raise Unauthenticated("Not authenticated")
    try:
        payload = decode_token(credentials.credentials, settings.secret_key, [settings.algorithm])
    except JWTError:
        raise InvalidToken("Invalid or expired token")

    user_id = payload.get("userId")
    username = payload.get("username")
    role = payload.get("role")
    if user_id is None or username is None or role not in {r.value for r in schemas.Role}:
        raise InvalidToken("Invalid or expired token")
    return schemas.TokenData(user_id=user_id, username=username, role=role)


def check_role(identity: schemas.TokenData, allowed: Collection[schemas.Role]) -> schemas.TokenData:
    """
    ユーザーのロールが許可されたロールに含まれるかを検証します。

    Raises
    ------
    Forbidden
        ロールが許可されていない場合。
    """
    if identity.role not in allowed:
        raise Forbidden("Forbidden: Insufficient role")
    return identity


def require_role(*allowed: schemas.Role) -> Callable[..., Any]:
    """
    指定したロールのユーザーのみを通す依存関係を作成します。

    Parameters
    ----------
    *allowed : schemas.Role
        アクセスを許可するロール。

    Returns
    -------
    Callable
        FastAPIの依存関係として使用できる関数。認証済みユーザーを返します。
    """
    allowed_roles = frozenset(allowed)

    async def role_checker(current_user: schemas.TokenData = Depends(get_current_user)) -> schemas.TokenData:
        return check_role(current_user, allowed_roles)

    return role_checker
