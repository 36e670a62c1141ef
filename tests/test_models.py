import pytest
from datetime import datetime, timezone
from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from lending_tracker import models


def _loan(**overrides) -> models.Loan:
    fields = dict(
        item_id=1,
        item_type="BoardGame",
        borrower_name="Bob",
        loan_date=datetime.now(timezone.utc),
        due_date=datetime(2025, 1, 1),
        loaned_by_user_id=1,
    )
    fields.update(overrides)
    return models.Loan(**fields)


@pytest.mark.asyncio
async def test_user_timestamps(db_session: AsyncSession):
    """
    Userモデルを作成し、作成日時・更新日時が設定されることを確認します。
    """
    user = models.User(username="alice", password_hash="hash", role="admin")
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)

    assert user.id is not None, "ユーザーIDが設定されていること"
    assert isinstance(user.created_at, datetime), "created_atがdatetime型であること"
    assert isinstance(user.updated_at, datetime), "updated_atがdatetime型であること"


@pytest.mark.asyncio
async def test_second_open_loan_for_same_item_is_rejected(db_session: AsyncSession):
    """
    同一アイテムに対する未返却の貸出が2件目になる挿入は一意制約で拒否されることを確認します。
    """
    db_session.add(_loan())
    await db_session.commit()

    db_session.add(_loan(borrower_name="Carol"))
    with pytest.raises(IntegrityError):
        await db_session.commit()
    await db_session.rollback()


@pytest.mark.asyncio
async def test_returned_loans_do_not_block_new_loans(db_session: AsyncSession):
    """
    返却済みの貸出は何件あっても一意制約の対象外であることを確認します。
    """
    returned_at = datetime.now(timezone.utc)
    db_session.add(_loan(return_date=returned_at, returned_by_user_id=1))
    db_session.add(_loan(return_date=returned_at, returned_by_user_id=1))
    db_session.add(_loan())
    await db_session.commit()


@pytest.mark.asyncio
async def test_open_loans_are_unique_per_item_type(db_session: AsyncSession):
    db_session.add(_loan(item_type="BoardGame"))
    db_session.add(_loan(item_type="Book"))
    await db_session.commit()


@pytest.mark.asyncio
async def test_tables_and_open_loan_index(engine):
    def inspect_schema(conn):
        inspector = inspect(conn)
        return inspector.get_table_names(), inspector.get_indexes("loans")

    async with engine.connect() as conn:
        tables, indexes = await conn.run_sync(inspect_schema)

    assert {"users", "board_games", "books", "loans"} <= set(tables)
    open_item_index = next(index for index in indexes if index["name"] == "uq_loans_open_item")
    assert open_item_index["unique"]
    assert open_item_index["column_names"] == ["item_type", "item_id"]
