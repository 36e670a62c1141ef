from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import relationship
from .database import BaseDatabase


class User(BaseDatabase):
    """
    ユーザーモデル。ログイン情報とロールを保持します。

    Attributes
    ----------
    id : sqlalchemy.Column
        ユーザーの一意な識別子。プライマリキーであり、インデックスが作成されています。
    username : sqlalchemy.Column
        ユーザー名。ユニークであり、インデックスが作成されています。必須項目です。
    password_hash : sqlalchemy.Column
        bcryptでハッシュ化されたパスワード。必須項目です。
    role : sqlalchemy.Column
        "user" または "admin"。最初に登録されたユーザーのみ "admin" になります。
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    role = Column(String(16), nullable=False, default="user")


class BoardGame(BaseDatabase):
    """
    ボードゲームモデル。

    Attributes
    ----------
    title : sqlalchemy.Column
        タイトル。必須項目です。
    designer : sqlalchemy.Column
        デザイナー名。任意項目です。
    genre : sqlalchemy.Column
        ジャンル。任意項目です。
    """
    __tablename__ = "board_games"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    designer = Column(String, nullable=True)
    genre = Column(String, nullable=True)


class Book(BaseDatabase):
    """
    書籍モデル。ボードゲームと異なり著者は必須です。
    """
    __tablename__ = "books"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    author = Column(String, nullable=False)
    genre = Column(String, nullable=True)


class Loan(BaseDatabase):
    """
    貸出モデル。貸出対象は (item_type, item_id) の組で参照します。

    Attributes
    ----------
    item_id : sqlalchemy.Column
        貸出対象アイテムのID。item_type が示すテーブルのIDです。
    item_type : sqlalchemy.Column
        "BoardGame" または "Book"。
    borrower_name : sqlalchemy.Column
        借り手の名前。
    loan_date : sqlalchemy.Column
        貸出日時。
    due_date : sqlalchemy.Column
        返却期限。
    return_date : sqlalchemy.Column
        返却日時。未返却の間は NULL です。
    loaned_by_user_id : sqlalchemy.Column
        貸出を処理したユーザーのID。
    returned_by_user_id : sqlalchemy.Column
        返却を処理したユーザーのID。未返却の間は NULL です。
    """
    __tablename__ = "loans"
    __table_args__ = (
        # 同一アイテムに対して未返却の貸出は1件まで
        Index(
            "uq_loans_open_item",
            "item_type",
            "item_id",
            unique=True,
            postgresql_where=text("return_date IS NULL"),
            sqlite_where=text("return_date IS NULL"),
        ),
        Index("ix_loans_borrower_name", "borrower_name"),
    )

    id = Column(Integer, primary_key=True, index=True)
    item_id = Column(Integer, nullable=False)
    item_type = Column(String(16), nullable=False)
    borrower_name = Column(String, nullable=False)
    loan_date = Column(DateTime(timezone=True), nullable=False)
    due_date = Column(DateTime(timezone=True), nullable=False)
    return_date = Column(DateTime(timezone=True), nullable=True)
    loaned_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    returned_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    loaned_by = relationship("User", foreign_keys=[loaned_by_user_id], lazy="raise")
    returned_by = relationship("User", foreign_keys=[returned_by_user_id], lazy="raise")
