import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, NamedTuple, Optional, Tuple, Type, Union

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from . import models, schemas
from .exceptions import ConflictError, DuplicateError, InvalidId, NotFound, ValidationError

logger = logging.getLogger(__name__)

CatalogModel = Union[models.BoardGame, models.Book]

# INTEGER カラムに収まるIDの上限
MAX_ID = 2 ** 31 - 1

OPEN_LOAN_INDEX = "uq_loans_open_item"


class CatalogEntry(NamedTuple):
    model: Type[CatalogModel]
    label: str
    required: Tuple[str, ...]
    required_message: str


CATALOG: Dict[schemas.ItemType, CatalogEntry] = {
    schemas.ItemType.board_game: CatalogEntry(
        model=models.BoardGame,
        label="Board game",
        required=("title",),
        required_message="Title is required for board game",
    ),
    schemas.ItemType.book: CatalogEntry(
        model=models.Book,
        label="Book",
        required=("title", "author"),
        required_message="Title and Author are required for book",
    ),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def check_id(value: int) -> int:
    """
    IDが正の整数かつ INTEGER カラムの範囲内であるかを検証します。

    Raises
    ------
    InvalidId
        範囲外の場合。
    """
    if not 1 <= value <= MAX_ID:
        raise InvalidId("Invalid ID format")
    return value


def _is_open_loan_conflict(exc: IntegrityError) -> bool:
    # PostgreSQL はインデックス名、SQLite は対象カラムをメッセージに含める
    message = str(exc.orig)
    return OPEN_LOAN_INDEX in message or "loans.item_type, loans.item_id" in message


def _clean(fields: Dict[str, Any]) -> Dict[str, Any]:
    # 文字列は前後の空白を除去し、空文字は未指定として扱う
    cleaned = {}
    for key, value in fields.items():
        if isinstance(value, str):
            value = value.strip() or None
        cleaned[key] = value
    return cleaned


# ユーザー名でユーザーを取得する関数
async def get_user_by_username(db: AsyncSession, username: str) -> Optional[models.User]:
    """
    ユーザー名でユーザーを取得します。

    Parameters
    ----------
    db : AsyncSession
        データベースセッション。
    username : str
        取得するユーザーのユーザー名。

    Returns
    -------
    Optional[models.User]
        見つかった場合はユーザーオブジェクト、存在しない場合はNone。
    """
    result = await db.execute(select(models.User).filter(models.User.username == username))
    return result.scalars().first()


async def count_users(db: AsyncSession) -> int:
    """
    登録済みユーザー数を返します。
    """
    result = await db.execute(select(func.count()).select_from(models.User))
    return result.scalar_one()


# 新規ユーザーを作成する関数
async def create_user(
        db: AsyncSession,
        username: str,
        password_hash: str,
        role: schemas.Role = schemas.Role.user
        ) -> models.User:
    """
    新しいユーザーを作成します。

    Parameters
    ----------
    db : AsyncSession
        データベースセッション。
    username : str
        ユーザー名。
    password_hash : str
        ハッシュ化済みのパスワード。
    role : schemas.Role, optional
        ユーザーのロール（デフォルトは user）。

    Returns
    -------
    models.User
        作成された新しいユーザーオブジェクト。

    Raises
    ------
    DuplicateError
        同じユーザー名が同時に登録され、一意制約に違反した場合。
    """
    db_user = models.User(username=username, password_hash=password_hash, role=role.value)
    db.add(db_user)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise DuplicateError("Username already taken") from exc
    await db.refresh(db_user)
    return db_user


# ---------------------------------------------------------------- カタログ

def _validate_required(entry: CatalogEntry, data: Dict[str, Any], partial: bool = False) -> None:
    for name in entry.required:
        if partial and name not in data:
            continue
        if not data.get(name):
            raise ValidationError(entry.required_message)


async def get_catalog_items(db: AsyncSession, item_type: schemas.ItemType) -> List[CatalogModel]:
    """
    指定した種別のアイテムを登録順に全件取得します。

    Parameters
    ----------
    db : AsyncSession
        データベースセッション。
    item_type : schemas.ItemType
        取得するアイテムの種別。

    Returns
    -------
    List[CatalogModel]
        アイテムオブジェクトのリスト。
    """
    model = CATALOG[item_type].model
    result = await db.execute(select(model).order_by(model.id))
    return result.scalars().all()


async def get_catalog_item(db: AsyncSession, item_type: schemas.ItemType, item_id: int) -> CatalogModel:
    """
    IDで特定のアイテムを取得します。

    Parameters
    ----------
    db : AsyncSession
        データベースセッション。
    item_type : schemas.ItemType
        アイテムの種別。
    item_id : int
        取得するアイテムのID。

    Returns
    -------
    CatalogModel
        見つかったアイテムオブジェクト。

    Raises
    ------
    NotFound
        アイテムが存在しない場合。
    """
    entry = CATALOG[item_type]
    db_item = await db.get(entry.model, item_id)
    if db_item is None:
        raise NotFound(f"{entry.label} not found")
    return db_item


async def create_catalog_item(
        db: AsyncSession,
        item_type: schemas.ItemType,
        fields: Dict[str, Any]
        ) -> CatalogModel:
    """
    新しいアイテムを作成します。

    Parameters
    ----------
    db : AsyncSession
        データベースセッション。
    item_type : schemas.ItemType
        作成するアイテムの種別。
    fields : Dict[str, Any]
        タイトル等の項目。

    Returns
    -------
    CatalogModel
        作成されたアイテムオブジェクト。

    Raises
    ------
    ValidationError
        必須項目（タイトル、書籍の場合は著者も）が欠けている場合。
    """
    entry = CATALOG[item_type]
    data = _clean(fields)
    _validate_required(entry, data)
    db_item = entry.model(**data)
    db.add(db_item)
    await db.commit()
    await db.refresh(db_item)
    logger.info(f"{entry.label} '{db_item.title}' (ID {db_item.id}) を登録しました。")
    return db_item


async def update_catalog_item(
        db: AsyncSession,
        item_type: schemas.ItemType,
        item_id: int,
        fields: Dict[str, Any]
        ) -> CatalogModel:
    """
    アイテムを部分更新します。指定された項目のみ書き換えます。

    Parameters
    ----------
    db : AsyncSession
        データベースセッション。
    item_type : schemas.ItemType
        アイテムの種別。
    item_id : int
        更新するアイテムのID。
    fields : Dict[str, Any]
        更新する項目。

    Returns
    -------
    CatalogModel
        更新されたアイテムオブジェクト。

    Raises
    ------
    ValidationError
        必須項目を空にしようとした場合。
    NotFound
        アイテムが存在しない場合。
    """
    entry = CATALOG[item_type]
    data = _clean(fields)
    _validate_required(entry, data, partial=True)
    db_item = await get_catalog_item(db, item_type, item_id)
    for key, value in data.items():
        setattr(db_item, key, value)
    await db.commit()
    await db.refresh(db_item)
    logger.info(f"{entry.label} (ID {item_id}) を更新しました。")
    return db_item


async def delete_catalog_item(db: AsyncSession, item_type: schemas.ItemType, item_id: int) -> None:
    """
    アイテムを削除します。

    Raises
    ------
    NotFound
        アイテムが存在しない場合。
    """
    db_item = await get_catalog_item(db, item_type, item_id)
    await db.delete(db_item)
    await db.commit()
    logger.info(f"{CATALOG[item_type].label} (ID {item_id}) を削除しました。")


# ---------------------------------------------------------------- 貸出

async def borrow_item(
        db: AsyncSession,
        item_id: Optional[int],
        item_type: Optional[str],
        borrower_name: Optional[str],
        due_date: Optional[datetime],
        acting_user_id: int
        ) -> models.Loan:
    """
    アイテムを貸し出します。

    未返却の貸出が既に存在するかどうかは、loans テーブルの部分一意インデックス
    （return_date IS NULL の行に対する (item_type, item_id) の一意制約）で判定します。
    同一アイテムへの同時貸出はどちらか一方のみコミットされます。

    Parameters
    ----------
    db : AsyncSession
        データベースセッション。
    item_id : Optional[int]
        貸出対象アイテムのID。
    item_type : Optional[str]
        "BoardGame" または "Book"。
    borrower_name : Optional[str]
        借り手の名前。
    due_date : Optional[datetime]
        返却期限。
    acting_user_id : int
        貸出を処理するユーザーのID。

    Returns
    -------
    models.Loan
        作成された貸出レコード。

    Raises
    ------
    ValidationError
        必須項目が欠けている、または item_type が不正な場合。
    InvalidId
        item_id が有効なIDの範囲外の場合。
    NotFound
        貸出対象アイテムが存在しない場合。
    ConflictError
        アイテムが既に貸出中の場合。
    """
    if isinstance(borrower_name, str):
        borrower_name = borrower_name.strip()
    if item_id is None or not item_type or not borrower_name or due_date is None:
        raise ValidationError("Missing required fields")
    check_id(item_id)
    try:
        kind = schemas.ItemType(item_type)
    except ValueError:
        raise ValidationError('Invalid itemType. Must be "BoardGame" or "Book".')

    if await db.get(CATALOG[kind].model, item_id) is None:
        raise NotFound(f"{kind.value} with ID {item_id} not found.")

    db_loan = models.Loan(
        item_id=item_id,
        item_type=kind.value,
        borrower_name=borrower_name,
        loan_date=_utcnow(),
        due_date=due_date,
        return_date=None,
        loaned_by_user_id=acting_user_id,
    )
    db.add(db_loan)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        if not _is_open_loan_conflict(exc):
            raise
        logger.warning(f"{kind.value} (ID {item_id}) は既に貸出中のため貸出を拒否しました。")
        raise ConflictError(f"{kind.value} with ID {item_id} is already on loan.") from exc
    await db.refresh(db_loan)
    logger.info(f"{kind.value} (ID {item_id}) を '{borrower_name}' に貸し出しました（貸出ID {db_loan.id}）。")
    return db_loan


async def return_loan(db: AsyncSession, loan_id: Optional[int], acting_user_id: int) -> models.Loan:
    """
    貸出を返却済みにします。

    return_date が NULL の場合のみ更新する条件付き UPDATE で処理するため、
    同じ貸出に対する返却は一度だけ成功します。

    Parameters
    ----------
    db : AsyncSession
        データベースセッション。
    loan_id : Optional[int]
        返却する貸出のID。
    acting_user_id : int
        返却を処理するユーザーのID。

    Returns
    -------
    models.Loan
        更新された貸出レコード。

    Raises
    ------
    ValidationError
        loan_id が指定されていない場合。
    InvalidId
        loan_id が有効なIDの範囲外の場合。
    NotFound
        貸出が存在しない場合。
    ConflictError
        既に返却済みの場合。return_date は変更されません。
    """
    if loan_id is None:
        raise ValidationError("Missing loanId")
    check_id(loan_id)

    result = await db.execute(
        update(models.Loan)
        .where(models.Loan.id == loan_id, models.Loan.return_date.is_(None))
        .values(return_date=_utcnow(), returned_by_user_id=acting_user_id)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        if await db.get(models.Loan, loan_id) is None:
            raise NotFound(f"Loan with ID {loan_id} not found.")
        logger.warning(f"貸出ID {loan_id} は既に返却済みです。")
        raise ConflictError(f"Loan with ID {loan_id} has already been returned.")

    await db.commit()
    db_loan = await db.get(models.Loan, loan_id, populate_existing=True)
    logger.info(f"貸出ID {loan_id} を返却済みにしました。")
    return db_loan


async def get_loans(
        db: AsyncSession,
        status: Optional[schemas.LoanStatus] = None,
        borrower_name: Optional[str] = None
        ) -> List[schemas.LoanDetail]:
    """
    条件に一致する貸出を取得し、表示用の情報を付加して返します。

    Parameters
    ----------
    db : AsyncSession
        データベースセッション。
    status : Optional[schemas.LoanStatus], optional
        "loaned" なら未返却のみ、"returned" なら返却済みのみ。
    borrower_name : Optional[str], optional
        借り手名の部分一致条件（大文字小文字を区別しない）。

    Returns
    -------
    List[schemas.LoanDetail]
        貸出対象アイテムと処理ユーザー名を付加した貸出のリスト。
    """
    stmt = (
        select(models.Loan)
        .options(selectinload(models.Loan.loaned_by), selectinload(models.Loan.returned_by))
        .order_by(models.Loan.id)
    )
    if status == schemas.LoanStatus.loaned:
        stmt = stmt.filter(models.Loan.return_date.is_(None))
    elif status == schemas.LoanStatus.returned:
        stmt = stmt.filter(models.Loan.return_date.is_not(None))
    if borrower_name:
        stmt = stmt.filter(
            func.lower(models.Loan.borrower_name).contains(borrower_name.lower(), autoescape=True)
        )
    loans = (await db.execute(stmt)).scalars().all()

    # アイテム種別ごとに1回のクエリで参照先をまとめて取得する
    items: Dict[Tuple[str, int], Union[schemas.BoardGame, schemas.Book]] = {}
    for kind, entry in CATALOG.items():
        ids = {loan.item_id for loan in loans if loan.item_type == kind.value}
        if not ids:
            continue
        result = await db.execute(select(entry.model).filter(entry.model.id.in_(ids)))
        out_schema = schemas.BoardGame if kind == schemas.ItemType.board_game else schemas.Book
        for db_item in result.scalars().all():
            items[(kind.value, db_item.id)] = out_schema.model_validate(db_item)

    details = []
    for loan in loans:
        detail = schemas.LoanDetail.model_validate(loan)
        details.append(detail.model_copy(update={
            "item": items.get((loan.item_type, loan.item_id)),
            "loaned_by_username": loan.loaned_by.username if loan.loaned_by else None,
            "returned_by_username": loan.returned_by.username if loan.returned_by else None,
        }))
    return details
