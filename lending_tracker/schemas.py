from datetime import date, datetime
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Role(str, Enum):
    user = "user"
    admin = "admin"


class ItemType(str, Enum):
    board_game = "BoardGame"
    book = "Book"


class LoanStatus(str, Enum):
    loaned = "loaned"
    returned = "returned"


class Timestamped(BaseModel):
    """
    作成日時・更新日時を持つレスポンスモデルの共通部分

    Attributes
    ----------
    created_at : datetime
        レコードが作成された日時。
    updated_at : datetime
        レコードが最後に更新された日時。
    """
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


# ---------------------------------------------------------------- ユーザー

class UserCredentials(BaseModel):
    """
    登録・ログイン時のリクエストボディ

    必須チェックとパスワード長のチェックは認証処理側で行い、
    メッセージを統一します。

    Attributes
    ----------
    username : Optional[str]
        ユーザー名。
    password : Optional[str]
        パスワード。登録時は6文字以上。
    """
    username: Optional[str] = None
    password: Optional[str] = None


class User(Timestamped):
    """
    ユーザー取得時のモデル（パスワードハッシュは含まない）

    Attributes
    ----------
    id : int
        ユーザーの一意のID。
    username : str
        ユーザー名。
    role : Role
        "user" または "admin"。
    """
    id: int
    username: str
    role: Role


class UserEnvelope(BaseModel):
    user: User


class LoginResponse(BaseModel):
    """
    ログイン成功時のレスポンス

    Attributes
    ----------
    token : str
        署名付きのJWTアクセストークン。
    user : User
        ログインしたユーザー。
    """
    token: str
    user: User


class TokenData(BaseModel):
    """
    トークンから復元した認証済みユーザーの情報
    """
    user_id: int
    username: str
    role: Role


class Message(BaseModel):
    message: str


# ---------------------------------------------------------------- カタログ

class BoardGameCreate(BaseModel):
    title: Optional[str] = None
    designer: Optional[str] = None
    genre: Optional[str] = None


class BoardGameUpdate(BoardGameCreate):
    pass


class BoardGame(Timestamped):
    id: int
    title: str
    designer: Optional[str] = None
    genre: Optional[str] = None


class BookCreate(BaseModel):
    title: Optional[str] = None
    author: Optional[str] = None
    genre: Optional[str] = None


class BookUpdate(BookCreate):
    pass


class Book(Timestamped):
    id: int
    title: str
    author: str
    genre: Optional[str] = None


# ---------------------------------------------------------------- 貸出

class BorrowRequest(BaseModel):
    """
    貸出リクエスト

    Attributes
    ----------
    item_id : Optional[int]
        貸出対象アイテムのID。
    item_type : Optional[str]
        "BoardGame" または "Book"。不正な値は貸出処理側で拒否します。
    borrower_name : Optional[str]
        借り手の名前。
    due_date : Optional[datetime]
        返却期限。"2025-01-01" のような日付のみの指定も受け付けます。
    """
    item_id: Optional[int] = Field(None, alias="itemId")
    item_type: Optional[str] = Field(None, alias="itemType")
    borrower_name: Optional[str] = Field(None, alias="borrowerName")
    due_date: Optional[datetime] = Field(None, alias="dueDate")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("due_date", mode="before")
    def date_only_due_date(cls, v: Any) -> Any:
        if isinstance(v, str) and len(v) == 10:
            try:
                return datetime.combine(date.fromisoformat(v), datetime.min.time())
            except ValueError:
                return v
        return v


class ReturnRequest(BaseModel):
    loan_id: Optional[int] = Field(None, alias="loanId")

    model_config = ConfigDict(populate_by_name=True)


class Loan(Timestamped):
    """
    貸出レコードのレスポンスモデル
    """
    id: int
    item_id: int = Field(alias="itemId")
    item_type: ItemType = Field(alias="itemType")
    borrower_name: str = Field(alias="borrowerName")
    loan_date: datetime = Field(alias="loanDate")
    due_date: datetime = Field(alias="dueDate")
    return_date: Optional[datetime] = Field(None, alias="returnDate")
    loaned_by_user_id: int = Field(alias="loanedByUserId")
    returned_by_user_id: Optional[int] = Field(None, alias="returnedByUserId")


class LoanDetail(Loan):
    """
    一覧表示用に貸出対象アイテムと処理ユーザー名を付加した貸出レコード

    Attributes
    ----------
    item : Optional[Union[Book, BoardGame]]
        貸出対象アイテム。貸出後に削除された場合は None。
    loaned_by_username : Optional[str]
        貸出を処理したユーザーのユーザー名。
    returned_by_username : Optional[str]
        返却を処理したユーザーのユーザー名。未返却の場合は None。
    """
    item: Optional[Union[Book, BoardGame]] = None
    loaned_by_username: Optional[str] = Field(None, alias="loanedByUsername")
    returned_by_username: Optional[str] = Field(None, alias="returnedByUsername")
